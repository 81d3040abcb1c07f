"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. The schema is created fresh
for every test and dropped afterwards, so nothing leaks between tests.
"""
import pytest
import sys
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

# Settings are read at import time; configure the environment first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-signing-key-0123456789abcdef0123456789")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SESSION_COOKIE_SECURE"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_FORMAT"] = "text"
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import Base, SessionLocal, engine
from core.session_store import DatabaseSessionStore
import models  # noqa: F401  (registers tables on Base.metadata)
from fixtures.training_fixtures import make_athlete, text_response


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def test_athlete(db_session):
    return make_athlete(db_session)


@pytest.fixture
def other_athlete(db_session):
    return make_athlete(db_session)


@pytest.fixture
def session_store():
    return DatabaseSessionStore(SessionLocal)


class FrozenClock:
    """Injectable clock for the session store."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def frozen_clock():
    return FrozenClock(datetime.now(timezone.utc))


@pytest.fixture
def fake_anthropic():
    """Stand-in for AsyncAnthropic: only messages.create is used."""
    client = SimpleNamespace(messages=SimpleNamespace())
    client.messages.create = AsyncMock(return_value=text_response("Progress is steady"))
    return client
