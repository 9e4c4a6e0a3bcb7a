"""
Shared fixtures: an in-memory database wired into the FastAPI app, and a
small salon (admin, clients, one stylist with the default week, services).
"""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from salon.auth import create_access_token
from salon.data import DEFAULT_WEEKLY_SCHEDULE
from salon.db import get_session
from salon.main import app
from salon.models import Schedule, Service, Staff, User
from salon.timeutils import parse_hhmm

TZ_NAME = "America/New_York"


def future_weekday(weekday: int, weeks_ahead: int = 2) -> date:
    """A date ``weeks_ahead`` weeks out falling on ``weekday`` (0=Sunday)."""
    start = date.today() + timedelta(weeks=weeks_ahead)
    offset = (weekday - (start.weekday() + 1) % 7) % 7
    return start + timedelta(days=offset)


def auth_header(user: User) -> dict:
    token = create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


def make_user(session: Session, email: str, role: str = "client", first_name: str = "Test") -> User:
    user = User(email=email, password_hash="not-used", role=role, first_name=first_name, last_name="User")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_staff(session: Session, user: User, service_ids=None, tz_name: str = TZ_NAME) -> Staff:
    staff = Staff(user_id=user.id, title="Stylist", service_ids=service_ids or [], timezone=tz_name)
    session.add(staff)
    session.commit()
    session.refresh(staff)
    for entry in DEFAULT_WEEKLY_SCHEDULE:
        session.add(Schedule(
            staff_id=staff.id,
            day_of_week=entry["day_of_week"],
            is_working_day=entry["is_working_day"],
            start_time=parse_hhmm(entry["start_time"]) if entry["start_time"] else None,
            end_time=parse_hhmm(entry["end_time"]) if entry["end_time"] else None,
            breaks=list(entry["breaks"]),
        ))
    session.commit()
    return staff


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    app.dependency_overrides[get_session] = lambda: session
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin(session):
    return make_user(session, "admin@salon.test", role="admin", first_name="Ada")


@pytest.fixture
def customer(session):
    return make_user(session, "client@salon.test", first_name="Cleo")


@pytest.fixture
def other_customer(session):
    return make_user(session, "other@salon.test", first_name="Olga")


@pytest.fixture
def stylist_user(session):
    return make_user(session, "stylist@salon.test", role="staff", first_name="Sam")


@pytest.fixture
def stylist(session, stylist_user):
    return make_staff(session, stylist_user)


@pytest.fixture
def other_stylist(session):
    user = make_user(session, "stylist2@salon.test", role="staff", first_name="Rae")
    return make_staff(session, user)


@pytest.fixture
def haircut(session):
    service = Service(name="Haircut", price=40.0, duration_minutes=60, category="haircut")
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def trim(session):
    service = Service(name="Fringe trim", price=15.0, duration_minutes=15, category="haircut")
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def monday():
    return future_weekday(1)
