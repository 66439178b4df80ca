"""Pytest configuration and shared fixtures."""
import os

# Must be set before extra_pay.database builds its engine
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from extra_pay.database import Base, get_db
from extra_pay.models.domain import ExtraPayContract, ExtraPayRequest
from extra_pay.models.audit import ExtraPayEvent
from extra_pay.services.event_store import Actor
from extra_pay.services.state_machine import StateMachine


DISTRICT_A = 1
DISTRICT_B = 2


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def admin():
    return Actor(id="admin_1", role="admin")


@pytest.fixture
def staff():
    return Actor(id="staff_7", role="staff")


@pytest.fixture
def payroll():
    return Actor(id="payroll_3", role="payroll")


@pytest.fixture
def sm(db_session):
    return StateMachine(db_session)


@pytest.fixture
def sample_contract(sm, admin):
    """An active coaching contract in district A running through the year."""
    today = date.today()
    return sm.create_contract(
        DISTRICT_A,
        admin,
        title="Basketball Coach",
        description="Varsity boys basketball, winter season",
        contract_type="coaching",
        amount=Decimal("1000.00"),
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=180)
    )


@pytest.fixture
def sample_request(sm, staff, sample_contract):
    """A pending request to pay against the sample contract."""
    return sm.create_request(
        DISTRICT_A,
        staff,
        contract_id=sample_contract.id,
        employee_id=42,
        amount=Decimal("200.00"),
        hours_worked=Decimal("8.00"),
        work_date=date.today(),
        description="Saturday tournament"
    )


@pytest.fixture
def client():
    """TestClient bound to a shared in-memory database."""
    from extra_pay.main import app

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def headers(district_id=DISTRICT_A, user_id="admin_1", role="admin"):
    """Tenant and actor headers for API calls."""
    return {
        "X-District-ID": str(district_id),
        "X-User-ID": user_id,
        "X-User-Role": role,
    }
