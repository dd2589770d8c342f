"""Shared fixtures: an isolated SQLite database, in-memory storage and mailer fakes, and an authenticated client."""

import asyncio
import os
from pathlib import Path

TEST_DB_PATH = Path(__file__).parent / "test.db"

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["APP_USERNAME"] = "admin"
os.environ["APP_PASSWORD"] = "admin-password"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_clock, get_mailer, get_storage
from app.db.base import Base
from app.db.session import AsyncSessionLocal, engine
from app.main import app
from app.services.nodes import NodeStore
from fakes import FakeClock, InMemoryStorage, RecordingMailer


def _reset_database() -> None:
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()


@pytest.fixture()
def storage():
    return InMemoryStorage()


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def run_with_store():
    """Run ``fn(store)`` on a fresh schema inside its own event loop."""
    _reset_database()

    def run(fn):
        async def scenario():
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            async with AsyncSessionLocal() as session:
                return await fn(NodeStore(session))

        return asyncio.run(scenario())

    yield run
    _reset_database()


@pytest.fixture()
def client(storage, mailer, clock):
    """Authenticated TestClient over a fresh database with fakes for storage, email and time."""
    _reset_database()
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        response = test_client.post(
            "/api/v1/auth/login",
            json={"username": "admin", "password": "admin-password"},
        )
        assert response.status_code == 200
        yield test_client

    app.dependency_overrides.clear()
    _reset_database()


@pytest.fixture()
def anonymous_client():
    _reset_database()
    with TestClient(app) as test_client:
        yield test_client
    _reset_database()
