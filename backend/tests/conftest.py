"""Pytest fixtures: SQLite database for fast, isolated tests."""
from datetime import datetime, timezone, timedelta

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.main import app

# Import all models so they register with Base.metadata
from app.models.event import Event                          # noqa: F401
from app.models.attendee import Attendee                    # noqa: F401
from app.models.family_member import FamilyMember           # noqa: F401
from app.models.attendee_mutation import AttendeeMutation   # noqa: F401

from app.schemas.attendee import AttendeeCreate
from app.services import event_service
from app.services.attendee_registry import AttendeeRegistry, RegistryPolicy
from app.services.sql_stores import SqlAttendeeStore, SqlEventDescriptorProvider, SqlFamilyProfileStore

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Service-level helpers
# ---------------------------------------------------------------------------
def make_event(db, max_attendees=None, waitlist_enabled=False, waitlist_limit=None, title="Park Picnic"):
    """Create an event descriptor directly through the service layer."""
    return event_service.create_event(
        db,
        title=title,
        start_at=datetime.now(timezone.utc) + timedelta(days=7),
        max_attendees=max_attendees,
        waitlist_enabled=waitlist_enabled,
        waitlist_limit=waitlist_limit,
    )


def make_registry(db, event_id: str, **policy) -> AttendeeRegistry:
    """Registry over the SQL stores; ``policy`` overrides RegistryPolicy defaults."""
    return AttendeeRegistry(
        event_id=event_id,
        attendees=SqlAttendeeStore(db),
        events=SqlEventDescriptorProvider(db),
        profiles=SqlFamilyProfileStore(db),
        policy=RegistryPolicy(**policy),
    )


def primary(user_id: str, status: str = "going", name: str = None) -> AttendeeCreate:
    return AttendeeCreate(
        user_id=user_id,
        attendee_type="primary",
        name=name or f"Parent {user_id}",
        rsvp_status=status,
    )


def family(user_id: str, name: str, status: str = "going", age_group: str = "3-5", **extra) -> AttendeeCreate:
    return AttendeeCreate(
        user_id=user_id,
        attendee_type="family_member",
        name=name,
        age_group=age_group,
        relationship="child",
        rsvp_status=status,
        **extra,
    )


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
def create_test_event(client: TestClient, max_attendees=None, waitlist_enabled=False, title="Park Picnic") -> dict:
    """Helper: POST /api/events and return response JSON."""
    start = datetime.now(timezone.utc) + timedelta(days=7)
    resp = client.post("/api/events/", json={
        "title": title,
        "start_at": start.isoformat(),
        "max_attendees": max_attendees,
        "waitlist_enabled": waitlist_enabled,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def rsvp(client: TestClient, event_id: str, actor: str, **payload):
    """Helper: POST an attendee for ``actor`` and return the raw response."""
    body = {"user_id": actor, "attendee_type": "primary", "name": f"Parent {actor}", "rsvp_status": "going"}
    body.update(payload)
    return client.post(f"/api/events/{event_id}/attendees/?actor_user_id={actor}", json=body)
