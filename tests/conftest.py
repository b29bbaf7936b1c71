"""
Test fixtures for the Funding Bank API test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh SQLite database for each test
  - client: Async HTTP test client (unauthenticated)
  - authenticated_client: Test client with a pre-registered user and JWT
  - second_authenticated_client: A second user for cross-user tests

Key design decisions:
  - Each test gets its own SQLite file under pytest's tmp_path, so no
    state leaks between tests. A file (rather than :memory:) lets every
    request open its own connection, which the concurrent funding tests
    rely on: SQLite then serializes the writers exactly like it would in
    production.
  - We override FastAPI's get_db dependency to inject our test sessions,
    so the application code works exactly as it does in production.
  - The authenticated_client fixture creates a user via the signup
    endpoint, so it exercises the real signup flow (not just DB inserts).
"""

import base64
import os

# Settings are read at import time; these must exist before app is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault(
    "FUNDING_SOURCE_ENCRYPTION_KEY",
    base64.urlsafe_b64encode(b"0" * 32).decode(),
)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.database import Base, get_db
from app.main import app


SIGNUP_PAYLOAD = {
    "email": "testuser@example.com",
    "password": "SecurePass123!",
    "first_name": "Test",
    "last_name": "User",
}

SECOND_SIGNUP_PAYLOAD = {
    "email": "seconduser@example.com",
    "password": "SecurePass456!",
    "first_name": "Second",
    "last_name": "User",
}


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the
    per-test database instead of the real one.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(client):
    """
    Test client with a pre-registered user and JWT token.

    Signs up a test user via the real signup endpoint, then sets the
    Authorization header on the client for all subsequent requests.
    """
    response = await client.post("/auth/signup", json=SIGNUP_PAYLOAD)
    assert response.status_code == 201, f"Signup failed: {response.text}"
    token = response.json()["token"]
    client.headers["Authorization"] = f"Bearer {token}"
    return client


@pytest_asyncio.fixture
async def second_user_headers(client):
    """
    Authorization headers for a second, unrelated user.

    Pass these per request alongside authenticated_client to verify that
    one user cannot reach another user's accounts.
    """
    response = await client.post("/auth/signup", json=SECOND_SIGNUP_PAYLOAD)
    assert response.status_code == 201, f"Signup failed: {response.text}"
    return {"Authorization": f"Bearer {response.json()['token']}"}
