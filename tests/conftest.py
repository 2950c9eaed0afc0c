"""
pytest configuration and shared fixtures.

Tests never need a live Postgres: DATABASE_URL points at a throwaway SQLite
file and is set BEFORE anything under surelink is imported, because the
engine is created at import time. The in-memory engine tests use a fake
clock and a recording emitter instead of a real Socket.IO server.
"""

import os
import tempfile

import pytest

_DB_PATH = os.path.join(tempfile.gettempdir(), f"surelink_test_{os.getpid()}.db")

os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["LOG_FILE"] = ""
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ["ADMIN_SECRET"] = "test-secret"


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingEmitter:
    """Stands in for socketio.AsyncServer.emit and keeps every call."""

    def __init__(self):
        self.events = []

    async def emit(self, event, data=None, to=None, **kwargs):
        self.events.append((event, data, to))

    def sent(self, event, to="*"):
        return [
            (data, target)
            for name, data, target in self.events
            if name == event and (to == "*" or target == to)
        ]

    def clear(self):
        self.events.clear()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def emitter():
    return RecordingEmitter()


@pytest.fixture()
def coordinator(emitter, clock):
    from surelink.realtime.coordinator import SessionCoordinator

    return SessionCoordinator(emitter=emitter, clock=clock)


@pytest.fixture()
def db():
    """Fresh schema per test."""
    from surelink.core.db import Base, engine
    from surelink.core.init_db import init_db

    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
async def client(db):  # tables must exist first
    from httpx import ASGITransport, AsyncClient

    from surelink.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def pytest_sessionfinish(session, exitstatus):
    if os.path.exists(_DB_PATH):
        os.remove(_DB_PATH)
