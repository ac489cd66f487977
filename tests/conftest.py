# tests/conftest.py
import os

# Settings are read once at import time, so the environment must be ready first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("ADMIN_DEFAULT_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from slot_booking import crud, models
from slot_booking.database import Base, engine, get_db
from slot_booking.main import app
from slot_booking.security import AdminContext, get_password_hash

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-pass-123"


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_admin(db, username=ADMIN_USERNAME, password=ADMIN_PASSWORD, role=models.AdminRole.ADMIN, full_name="Test Admin"):
    return crud.create_admin_user(
        db, username=username, password_hash=get_password_hash(password), full_name=full_name, role=role
    )


def login(client, username=ADMIN_USERNAME, password=ADMIN_PASSWORD):
    response = client.post("/api/auth/admin/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin_user(db_session):
    return make_admin(db_session)


@pytest.fixture
def auth_headers(client, admin_user):
    return login(client)


@pytest.fixture
def actor(admin_user):
    return AdminContext(
        id=admin_user.id,
        username=admin_user.username,
        role=admin_user.role,
        full_name=admin_user.full_name,
        ip_address="127.0.0.1",
        user_agent="pytest",
    )


@pytest.fixture
def make_booking(db_session):
    from slot_booking.services.weekly_limit import week_bounds

    def _make(booking_date, status=models.BookingStatus.confirmed, phone="+919876543210", time_slot="09:00"):
        booking = models.Booking(
            name="Ravi Kumar", phone=phone, date=booking_date, time_slot=time_slot,
            purpose="Meeting", location="HQ", status=status, week_start=week_bounds(booking_date)[0],
        )
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make
