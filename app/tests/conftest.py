import pytest
from decimal import Decimal
from uuid import uuid4
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session

from app.core.config import settings
from app.core.db import build_engine, create_all_tables, get_session
from app.main import app
from app.models.staff_role import StaffRole, StaffRoleName, RoleStatus
from app.models.service import Service
from app.models.check_in import CheckIn, CheckInService, CheckInStatus


@pytest.fixture()
def engine(tmp_path):
    """File-backed database so that several sessions see each other's commits"""
    engine = build_engine(f"sqlite:///{tmp_path / 'carwash_test.db'}", timeout=1.0)
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def other_session(engine):
    """A second, independent connection for interleaving tests"""
    with Session(engine) as session:
        yield session


@pytest.fixture()
def client(engine):
    def get_test_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_test_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def worker_id():
    return uuid4()


@pytest.fixture()
def admin_id(session):
    user_id = uuid4()
    session.add(StaffRole(user_id=user_id, role=StaffRoleName.ADMIN, status=RoleStatus.APPROVED))
    session.commit()
    return user_id


@pytest.fixture()
def auth_headers():
    def make_headers(user_id):
        token = jwt.encode({"sub": str(user_id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return {"Authorization": f"Bearer {token}"}
    return make_headers


@pytest.fixture()
def make_check_in(session):
    """
    Creates a check-in with one line per (price, washer %, company %) tuple,
    each backed by its own catalog service.
    """
    def factory(worker_id, lines, status="completed"):
        check_in = CheckIn(assigned_worker_id=worker_id, status=CheckInStatus(status))
        session.add(check_in)
        session.flush()
        for position, (price, washer_pct, company_pct) in enumerate(lines):
            service = Service(
                name=f"Service {position}",
                price=price if price is not None else Decimal("0.00"),
                washer_commission_percentage=washer_pct,
                company_commission_percentage=company_pct,
            )
            session.add(service)
            session.flush()
            session.add(CheckInService(
                check_in_id=check_in.id,
                service_id=service.id,
                position=position,
                price=price,
            ))
        session.commit()
        session.refresh(check_in)
        return check_in
    return factory
