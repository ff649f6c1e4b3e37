"""
Test fixtures for the UMS API test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test,
    with the built-in roles already seeded
  - make_client: Factory for independent HTTP clients (each has its own
    cookie jar, so each one is a separate browser)
  - client: One unauthenticated client
  - create_user: Insert a user straight into the database
  - login_as: Log a client in and arm it with the x-csrf-token header
  - user_client / admin_client: Logged-in USER and ADMIN clients
  - outbox: Read back what mail_service recorded
  - extract_token: Pull the raw token out of a mail body

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database; no state leaks between tests.
  - We override FastAPI's get_db dependency to inject our test sessions,
    so the application code works exactly as it does in production,
    including commit-on-success / rollback-on-error.
  - Sessions are cookie based: httpx keeps the session and csrf cookies in
    each client's jar, and login_as copies the CSRF value into the header
    the way a browser frontend would.
"""

import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from ums.clock import utc_now
from ums.config import settings
from ums.database import Base, get_db
from ums.main import app
from ums.models.outbox import OutboxMessage
from ums.models.role import RoleName, UserRole
from ums.models.user import User, UserStatus
from ums.security import hash_password, normalize_email
from ums.services import bootstrap


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

USER_EMAIL = "user@example.com"
USER_PASSWORD = "UserPass123!"
ADMIN_EMAIL = "boss@example.com"
ADMIN_PASSWORD = "AdminPass123!"


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables and built-in roles."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        await bootstrap.seed_builtin_roles(session)
        await session.commit()

    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_client(session_factory):
    """
    Factory for async HTTP test clients with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one.
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
    clients: list[AsyncClient] = []

    async def _make() -> AsyncClient:
        ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(ac)
        return ac

    yield _make

    for ac in clients:
        await ac.aclose()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(make_client):
    return await make_client()


@pytest_asyncio.fixture
async def create_user(session_factory):
    """
    Insert a user directly, bypassing signup.

    Defaults give an ACTIVE, verified user with role USER.
    """
    async def _create(
        email: str,
        password: str | None = "Password123!",
        status: UserStatus = UserStatus.ACTIVE,
        verified: bool = True,
        roles: tuple[RoleName, ...] = (RoleName.USER,),
    ) -> uuid.UUID:
        now = utc_now()
        async with session_factory() as session:
            user = User(
                email=email,
                email_norm=normalize_email(email),
                email_verified_at=now if verified else None,
                password_hash=hash_password(password) if password else None,
                status=status,
                display_name=email.split("@")[0],
                created_at=now,
                updated_at=now,
            )
            session.add(user)
            await session.flush()
            for role in roles:
                session.add(UserRole(user_id=user.id, role_name=role.value, assigned_at=now))
            await session.commit()
            return user.id

    return _create


@pytest_asyncio.fixture
async def login_as():
    """Log a client in and set its x-csrf-token header. Returns the login body."""
    async def _login(ac: AsyncClient, email: str, password: str, remember: bool = False) -> dict:
        response = await ac.post(
            "/auth/login",
            json={"email": email, "password": password, "remember": remember},
        )
        assert response.status_code == 200, f"Login failed: {response.text}"
        body = response.json()
        ac.headers[settings.CSRF_HEADER] = body["csrf_token"]
        return body

    return _login


@pytest_asyncio.fixture
async def user_client(make_client, create_user, login_as):
    """A logged-in client for an ACTIVE user with role USER."""
    await create_user(USER_EMAIL, USER_PASSWORD)
    ac = await make_client()
    await login_as(ac, USER_EMAIL, USER_PASSWORD)
    return ac


@pytest_asyncio.fixture
async def admin_client(make_client, create_user, login_as):
    """
    A logged-in client for an ADMIN.

    Admins are provisioned directly in the database, the way the startup
    seed or demo/promote_admin.py would, not through self-service signup.
    """
    await create_user(ADMIN_EMAIL, ADMIN_PASSWORD, roles=(RoleName.ADMIN, RoleName.USER))
    ac = await make_client()
    await login_as(ac, ADMIN_EMAIL, ADMIN_PASSWORD)
    return ac


@pytest_asyncio.fixture
async def outbox(session_factory):
    """Return a coroutine that lists outbox messages for an address, oldest first."""
    async def _read(to_email: str) -> list[OutboxMessage]:
        async with session_factory() as session:
            result = await session.execute(
                select(OutboxMessage)
                .where(OutboxMessage.to_email == to_email)
                .order_by(OutboxMessage.created_at)
            )
            return list(result.scalars().all())

    return _read


def token_from_body(body: str) -> str:
    """Pull the one-time token out of a verification / reset / invite mail."""
    marker = "token="
    start = body.index(marker) + len(marker)
    end = body.index("\n", start)
    return body[start:end]


@pytest.fixture
def extract_token():
    return token_from_body
