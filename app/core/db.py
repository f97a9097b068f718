from typing import Annotated
from fastapi import Depends
from sqlmodel import Session, create_engine, SQLModel
from .config import settings

# Every table model has to be imported before create_all runs
from app.models import (
    StaffRole, Service, CheckIn, CheckInService, CustodyRecord,
    ConsumptionRecord, WorkerAccount, EarningsTransaction, PaymentRequest
)


def build_engine(database_url: str, timeout: float = settings.DB_TIMEOUT_SECONDS, echo: bool = False):
    """Create an engine whose connections stop waiting on locks after `timeout` seconds."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": timeout}
        )

    connect_args = {}
    if database_url.startswith("postgresql"):
        millis = int(timeout * 1000)
        connect_args["options"] = f"-c lock_timeout={millis} -c statement_timeout={millis}"
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_timeout=timeout,
        connect_args=connect_args
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)


def create_all_tables(bind=None):
    """Create every table that is not there yet."""
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]
