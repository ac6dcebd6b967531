"""Shared fixtures: in-memory SQLite, a captured outbox and row factories."""
import os

# must be set before the first import of sprechtag.config
os.environ["DB_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["AUTO_ASSIGN_ENABLED"] = "false"
os.environ["ADMIN_PASSWORD"] = ""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from sprechtag.core.clock import utcnow
from sprechtag.core.security import hash_password
from sprechtag.core.timewindows import format_date_de
from sprechtag.database import Base, SessionLocal, engine
from sprechtag.main import app
from sprechtag.models.event import Event, EventStatus
from sprechtag.models.slot import Slot
from sprechtag.models.teacher import Teacher
from sprechtag.models.user import Role, User
from sprechtag.schemas.booking import BookingRequestIn
from sprechtag.services import booking_requests, notifications
from sprechtag.services.slot_store import generate_slots_for_teacher

from helpers import PARENT, auth_header


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Every mail lands here as ``(to, subject, text, html)``; sending succeeds."""
    sent = []

    def fake_send(to, subject, text, html):
        sent.append((to, subject, text, html))
        return True

    monkeypatch.setattr(notifications, "send_mail", fake_send)
    return sent


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    # no context manager: the lifespan (sweeper, bootstrap admin) stays off
    return TestClient(app)


@pytest.fixture
def event(db):
    now = utcnow()
    row = Event(
        name="Elternsprechtag Herbst",
        school_year="2026/27",
        starts_at=now + timedelta(days=7),
        ends_at=now + timedelta(days=7, hours=3),
        status=EventStatus.PUBLISHED,
        slot_minutes=15,
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def event_date(event):
    return format_date_de(event.starts_at)


@pytest.fixture
def teacher(db):
    row = Teacher(name="Frau Müller", email="mueller@bksb.nrw", salutation="Frau",
                  subject="Mathematik", system="dual", room="B204")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def slots(db, teacher, event, event_date):
    """The teacher's eight 15 minute slots for the event day."""
    generate_slots_for_teacher(db, teacher, event.id, event_date, 15)
    db.commit()
    return (
        db.query(Slot)
        .filter(Slot.teacher_id == teacher.id)
        .order_by(Slot.time.asc())
        .all()
    )


@pytest.fixture
def make_request(db, teacher, event):
    """Create a booking request through the service; returns ``(row, token)``."""

    def make(requested_time="16:00 - 16:30", *, verified=True, created_at=None, **visitor):
        payload = BookingRequestIn(
            teacher_id=teacher.id, requested_time=requested_time, **{**PARENT, **visitor}
        )
        now = created_at or utcnow()
        row, token = booking_requests.create_booking_request(db, payload, now=now)
        if verified:
            booking_requests.verify_token(db, token, now=now)
            db.refresh(row)
        return row, token

    return make


@pytest.fixture
def make_user(db):
    def make(username, role=Role.TEACHER, teacher_id=None, password="geheim123"):
        user = User(username=username, password_hash=hash_password(password),
                    role=role, teacher_id=teacher_id)
        db.add(user)
        db.commit()
        return user

    return make


@pytest.fixture
def teacher_auth(make_user, teacher):
    return auth_header(make_user("mueller", Role.TEACHER, teacher.id))


@pytest.fixture
def admin_auth(make_user):
    return auth_header(make_user("admin", Role.ADMIN))
