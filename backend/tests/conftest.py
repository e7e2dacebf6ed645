"""
VoiceConnect Backend: Test Configuration (conftest.py)
========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment variables are set before the first voiceconnect import,
       so the `settings` singleton, the engine and the retry decorators
       are built from test values (SQLite file, cheap bcrypt, one attempt).

Fixture Hierarchy:
    Function-scoped:
    ├── mock_db_session: AsyncMock session for pure unit tests
    ├── db_session: real AsyncSession on a fresh SQLite schema
    ├── notifications: notification_service.send replaced by a MagicMock
    ├── user_factory: inserts and commits users
    ├── drive_token: a non-expired Google Drive token dict
    └── test_client: HTTPX AsyncClient bound to the ASGI app
"""

import os
import tempfile
import time
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

_TEST_DIR = tempfile.mkdtemp(prefix="voiceconnect_test_")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-access-secret-0123456789abcdef0123456789"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-0123456789abcdef012345678"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_DIR, "uploads")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["TRANSCRIPTION_ENABLED"] = "false"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"

from voiceconnect.database import (  # noqa: E402
    async_session_factory,
    create_all_tables,
    drop_all_tables,
    engine,
)
from voiceconnect.middleware.rate_limit import reset_rate_limits  # noqa: E402
from voiceconnect.models.user import User  # noqa: E402
from voiceconnect.security import create_access_token, hash_password  # noqa: E402
from voiceconnect.services.notification_service import notification_service  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Unit-test fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock async database session.

    Usage:
        async def test_something(mock_db_session):
            mock_db_session.get.return_value = user
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def drive_token() -> Dict[str, Any]:
    """A Drive token that expires an hour from now."""
    return {
        "access_token": "ya29.test-access",
        "refresh_token": "1//test-refresh",
        "scope": "https://www.googleapis.com/auth/drive.file",
        "token_type": "Bearer",
        "expiry_date": int((time.time() + 3600) * 1000),
    }


@pytest.fixture(autouse=True)
def notifications():
    """
    Replaces the shared queue's send() for every test.

    Services call notification_service.send() synchronously, so assertions
    on the mock see exactly what a request would have queued. Queue
    behaviour itself is covered by test_notification_service.py with its
    own NotificationService instance.
    """
    with patch.object(notification_service, "send") as mock_send:
        yield mock_send


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


# ══════════════════════════════════════════════════════════════════════════
# Database fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_session():
    """
    A real session on an empty schema.

    Tables are created per test and dropped afterwards; the engine is
    disposed so no pooled connection outlives the test's event loop.
    """
    await create_all_tables()
    async with async_session_factory() as session:
        yield session
        await session.rollback()
    await drop_all_tables()
    await engine.dispose()


@pytest.fixture
def user_factory(db_session):
    """
    Inserts a committed user.

    Usage:
        alice = await user_factory("alice")
        bob = await user_factory("bob", auto_accept_connections=True)
    """

    async def _create(username: str, password: str = "secret123", **overrides) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password(password),
            **overrides,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _create


@pytest.fixture
def auth_headers():
    """Builds the bearer header for a user: `headers=auth_headers(alice)`."""

    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest_asyncio.fixture
async def test_client(db_session):
    """
    An HTTPX AsyncClient talking to the FastAPI app in-process.

    Depends on db_session so the schema exists for the request sessions.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from voiceconnect.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
