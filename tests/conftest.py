"""
Shared test fixtures for POSTTRR API tests.

Provides database session management, test clients, user fixtures and
controllable delivery channels.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from posttrr.auth.api_key import issue_api_key
from posttrr.config import settings
from posttrr.database import Base, get_db
from posttrr.main import app
from posttrr.middleware.rate_limit import reset_limiter

# Import models so they're registered with Base.metadata before table creation
from posttrr.models import User, UserRole
from posttrr.services.channels import get_channel_senders

# Test database URL (SQLite by default)
TEST_DATABASE_URL = settings.test_database_url

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    poolclass=NullPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# --- Rate Limiter Reset Fixture ---


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Reset rate limiter before each test to ensure test isolation."""
    reset_limiter()
    yield


# --- Delivery Channels ---


class RecordingChannel:
    """Channel sender that records sends and can fail for chosen emails."""

    def __init__(self, name: str):
        self.name = name
        self.sent: list[str] = []
        self.fail_for: set[str] = set()

    async def send(self, recipient, notification) -> None:
        if recipient.email in self.fail_for:
            raise RuntimeError(f"{self.name} provider rejected {recipient.email}")
        self.sent.append(recipient.email)


@pytest.fixture
def channels() -> dict[str, RecordingChannel]:
    """Recording email/push senders wired into the app."""
    senders = {"email": RecordingChannel("email"), "push": RecordingChannel("push")}
    app.dependency_overrides[get_channel_senders] = lambda: senders
    yield senders
    app.dependency_overrides.pop(get_channel_senders, None)


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create tables before each test function, drop after.
    Provides isolated database state per test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession, channels: dict[str, RecordingChannel]
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client configured for testing.
    Overrides the database dependency with the test session.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=True,
    ) as client:
        yield client

    app.dependency_overrides.clear()


# --- Authentication Helper Fixtures ---


@pytest.fixture
def auth_headers():
    """Factory fixture for creating X-API-Key headers."""

    def _auth_headers(api_key: str) -> dict[str, str]:
        return {"X-API-Key": api_key}

    return _auth_headers


# --- User Fixtures ---


async def create_user(
    db_session: AsyncSession,
    username: str,
    user_type: str | None,
    roles: list[str] | None = None,
    display_name: str | None = None,
) -> dict[str, Any]:
    """Create a user with roles and an API key; returns plain values only."""
    roles = roles or ["member"]
    user = User(
        username=username,
        email=f"{username}@example.com",
        display_name=display_name or username.replace("_", " ").title(),
        user_type=user_type,
    )
    db_session.add(user)
    await db_session.flush()

    for role in roles:
        db_session.add(UserRole(user_id=user.id, role=role))
    plaintext_key, _ = issue_api_key(db_session, user, "Test key", roles)
    await db_session.commit()

    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "user_type": user.user_type,
        "api_key": plaintext_key,
    }


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> dict[str, Any]:
    """Staff account with the admin role and no user type."""
    return await create_user(db_session, "admin", None, roles=["member", "admin"])


@pytest_asyncio.fixture
async def buyer(db_session: AsyncSession) -> dict[str, Any]:
    return await create_user(db_session, "buyer_one", "buyer", display_name="Bea Buyer")


@pytest_asyncio.fixture
async def seller(db_session: AsyncSession) -> dict[str, Any]:
    return await create_user(db_session, "seller_one", "seller", display_name="Sam Seller")


@pytest_asyncio.fixture
async def agent(db_session: AsyncSession) -> dict[str, Any]:
    return await create_user(db_session, "agent_one", "agent", display_name="Ada Agent")


@pytest_asyncio.fixture
async def members(buyer, seller, agent) -> dict[str, dict[str, Any]]:
    """One member of each user type."""
    return {"buyer": buyer, "seller": seller, "agent": agent}


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for code that opens its own sessions."""
    return TestSessionLocal


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory fixture for additional users."""

    async def _make_user(username: str, user_type: str | None, **kwargs) -> dict[str, Any]:
        return await create_user(db_session, username, user_type, **kwargs)

    return _make_user
