from contextlib import contextmanager
from datetime import datetime
import logging

from sqlalchemy import update
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlmodel import Session

from app.core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session: Session):
    """
    Runs the block as one unit of work: commit on success, rollback on any error.

    Lock waits and timeouts from the driver are re-raised as StoreUnavailable so
    callers can tell them apart from business failures. Nothing is retried here.
    """
    try:
        yield session
        session.commit()
    except (OperationalError, PoolTimeoutError) as e:
        session.rollback()
        logger.warning("Database call failed, transaction rolled back: %s", e)
        raise StoreUnavailable(
            "Database did not answer in time, please retry") from e
    except Exception:
        session.rollback()
        raise


def compare_and_swap(session: Session, model, expected_version: int, *criteria, **values) -> bool:
    """
    UPDATE model SET values, version = version + 1 WHERE criteria AND version = expected_version.

    Returns False when another writer got there first (zero rows matched).
    """
    statement = (
        update(model)
        .where(*criteria, model.version == expected_version)
        .values(version=expected_version + 1, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(statement)
    return result.rowcount == 1
