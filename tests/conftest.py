"""Shared pytest fixtures for EventDesk."""

from __future__ import annotations

import os
import sys
import tempfile
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Settings are read at import time; keep test runs away from ./data and any
# local eventdesk.toml.
_TEST_DIR = Path(tempfile.mkdtemp(prefix="eventdesk-tests-"))
os.environ["EVENTDESK_DATA_DIR"] = str(_TEST_DIR)
os.environ["EVENTDESK_CONFIG"] = str(_TEST_DIR / "eventdesk.toml")
os.environ["EVENTDESK_MAIL_BACKEND"] = "memory"
os.environ["EVENTDESK_ENABLE_SCHEDULER"] = "false"
os.environ["EVENTDESK_ADMIN_EMAIL"] = "admin@woo.hoo"

from fastapi.testclient import TestClient

from eventdesk import api, auth, crud, database, mailer, storage
from eventdesk.models import Base
from eventdesk.utils import today

PASSWORD = "correct horse battery"


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    database.SessionLocal.remove()
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield
    database.SessionLocal.remove()


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    monkeypatch.setattr(auth, "PBKDF2_ITERATIONS", 1_000)


@pytest.fixture(autouse=True)
def outbox():
    """The in-memory mailer's outbox, emptied for every test."""

    assert isinstance(mailer.mailer, mailer.MemoryMailer)
    mailer.mailer.clear()
    yield mailer.mailer.outbox
    mailer.mailer.clear()


@pytest.fixture()
def client(monkeypatch):
    """FastAPI test client with migrations and the scheduler disabled."""

    monkeypatch.setattr(api, "init_db", lambda: None)
    monkeypatch.setattr(api, "start_scheduler", lambda: None)
    monkeypatch.setattr(api, "stop_scheduler", lambda: None)
    with TestClient(api.app) as test_client:
        yield test_client


@pytest.fixture()
def db():
    session = database.SessionLocal()
    yield session
    session.close()


def _make_user(session, email: str, *, admin: bool = False, name: str | None = None):
    user = crud.create_user(
        session, email=email, password=PASSWORD, name=name, admin=admin
    )
    session.commit()
    return user


@pytest.fixture()
def organizer(db):
    return _make_user(db, "klaus@example.com", name="Klaus")


@pytest.fixture()
def other_organizer(db):
    return _make_user(db, "erika@example.com", name="Erika")


@pytest.fixture()
def admin(db):
    return _make_user(db, "admin@example.com", admin=True, name="Admin")


@pytest.fixture()
def make_event(db):
    """Factory for persisted events; dates are relative to today."""

    def factory(organizer, *, approved: bool = False, **overrides):
        current_day = today()
        fields = {
            "name": "Event",
            "description": "A friendly conference.",
            "city": "Berlin",
            "country": "Germany",
            "start_date": current_day + timedelta(days=10),
            "end_date": current_day + timedelta(days=12),
            "deadline": current_day + timedelta(days=5),
            "application_process": "selection_by_travis",
            "number_of_tickets": 2,
            "ticket_funded": True,
        }
        fields.update(overrides)
        event = crud.create_event(db, organizer=organizer, fields=fields)
        event.approved = approved
        db.commit()
        return event

    return factory


@pytest.fixture()
def sign_in_as(client):
    """Sign ``user`` in on the shared test client."""

    def _sign_in(user):
        response = client.post(
            "/sign_in",
            data={"email": user.email, "password": PASSWORD},
            follow_redirects=False,
        )
        assert response.status_code == 303
        return client

    return _sign_in
