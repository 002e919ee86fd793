"""
Test fixtures for the GhostCard API test suite.

This module provides shared fixtures used across all test files:

  - settings / make_settings: Test configuration (fresh Fernet key, rate
    limiting off unless a test turns it on)
  - db_engine / session_factory: Fresh in-memory SQLite database per test
  - app: An application built by create_app() on top of that database
  - client: Async HTTP test client (unauthenticated)
  - user_client / second_user_client / merchant_client / admin_client:
    One client per caller, each carrying its own bearer token
  - issued_card: A card issued to user_client, with its plaintext details

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) with a StaticPool, so every
    session in a test shares the one connection and sees the same data.
    Each test gets a completely fresh database — no state leaks between tests.
  - The app's session factory is swapped for one bound to the test engine,
    so the real get_db dependency (commit on domain errors, rollback
    otherwise) runs unchanged.
  - Users are created through the real registration endpoint. Admins are
    created by registering a normal user and then updating the role in the
    database, the way an operator provisions them.
"""

import uuid

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ghostcard.config import Settings
from ghostcard.database import Base
from ghostcard.main import create_app
from ghostcard.models.user import User, UserRole


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

DEFAULT_PASSWORD = "SecurePass123!"


def make_settings(**overrides) -> Settings:
    """Settings for tests; keyword arguments override any field."""
    values = {
        "SECRET_KEY": "test-secret-key-not-for-production",
        "CARD_ENCRYPTION_KEY": Fernet.generate_key().decode(),
        "DATABASE_URL": TEST_DATABASE_URL,
        "LOG_JSON": False,
        "LOG_LEVEL": "WARNING",
        "RATE_LIMIT_ENABLED": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A session for inspecting the database directly from a test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def app(settings, db_engine, session_factory):
    application = create_app(settings)
    await application.state.engine.dispose()
    application.state.engine = db_engine
    application.state.session_factory = session_factory
    return application


def make_client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP test client, not logged in."""
    async with make_client(app) as ac:
        yield ac


async def register(client: AsyncClient, role: str, email: str, name: str = "Test User") -> dict:
    """Register through the API and return the response body."""
    response = await client.post(
        f"/auth/register/{role}",
        json={"name": name, "email": email, "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 201, f"Registration failed: {response.text}"
    return response.json()


async def _log_in_as(ac: AsyncClient, role: str, email: str, name: str) -> AsyncClient:
    """Register on an open client and attach the bearer token to it."""
    data = await register(ac, role, email, name)
    ac.headers["Authorization"] = f"Bearer {data['token']}"
    ac.user = data["user"]
    return ac


@pytest_asyncio.fixture
async def user_client(app):
    """Cardholder client (role user)."""
    async with make_client(app) as ac:
        yield await _log_in_as(ac, "user", "alice@example.com", "Alice Cardholder")


@pytest_asyncio.fixture
async def second_user_client(app):
    """
    A second cardholder for cross-user tests.

    Use alongside user_client to verify that one user cannot see the
    other's cards or transactions.
    """
    async with make_client(app) as ac:
        yield await _log_in_as(ac, "user", "bob@example.com", "Bob Cardholder")


@pytest_asyncio.fixture
async def merchant_client(app):
    async with make_client(app) as ac:
        yield await _log_in_as(ac, "merchant", "shop@example.com", "Corner Shop")


@pytest_asyncio.fixture
async def second_merchant_client(app):
    async with make_client(app) as ac:
        yield await _log_in_as(ac, "merchant", "cafe@example.com", "Cafe")


@pytest_asyncio.fixture
async def admin_client(app, session_factory):
    """
    Admin client.

    Registers a normal user, promotes it to ADMIN directly in the database,
    then logs in again so the token carries the admin role.
    """
    async with make_client(app) as ac:
        data = await register(ac, "user", "admin@example.com", "Platform Admin")
        user_id = uuid.UUID(data["user"]["id"])

        async with session_factory() as session:
            await session.execute(
                update(User).where(User.id == user_id).values(role=UserRole.ADMIN)
            )
            await session.commit()

        login = await ac.post(
            "/auth/login",
            json={"email": "admin@example.com", "password": DEFAULT_PASSWORD},
        )
        assert login.status_code == 200, login.text
        ac.headers["Authorization"] = f"Bearer {login.json()['token']}"
        ac.user = login.json()["user"]
        yield ac


@pytest_asyncio.fixture
async def issued_card(user_client) -> dict:
    """A fresh card issued to user_client (includes number and CVV)."""
    response = await user_client.post("/cards")
    assert response.status_code == 201, response.text
    return response.json()["card"]


def charge_body(card: dict, **overrides) -> dict:
    """A valid POST /charges body for card; keyword arguments override fields."""
    body = {
        "card_number": card["card_number"],
        "cvv": card["cvv"],
        "expiry_date": card["expiry_date"],
        "amount_cents": 2500,
        "description": "Coffee beans",
        "location": "Berlin",
    }
    body.update(overrides)
    return body
