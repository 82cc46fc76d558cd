"""Pytest configuration and fixtures for TokenVault tests.

Most tests run against the in-memory session registry and identity store.

PostgreSQL Handling (only for tests using ``db_session``):
- Uses TEST_DATABASE_URL when set
- Otherwise, if testcontainers is installed and Docker is available, spins up PostgreSQL
- Skips the test if neither is available
"""

import os
import uuid
import warnings
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set test environment variables before importing tokenvault modules
TEST_ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
TEST_REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"
os.environ["JWT_SECRET_KEY"] = TEST_ACCESS_SECRET
os.environ["JWT_REFRESH_SECRET_KEY"] = TEST_REFRESH_SECRET
os.environ["SESSION_CLEANUP_ENABLED"] = "false"

from tokenvault.core.config import Settings  # noqa: E402
from tokenvault.models.user import Role, User  # noqa: E402
from tokenvault.services.credentials import CredentialVerifier  # noqa: E402
from tokenvault.services.identity import InMemoryIdentityStore  # noqa: E402
from tokenvault.services.session_registry import InMemorySessionRegistry  # noqa: E402
from tokenvault.services.token_codec import TokenCodec  # noqa: E402
from tokenvault.services.tokens import RevocationManager, TokenIssuer, TokenRotator  # noqa: E402

TEST_EMAIL = "gestor@example.com"
TEST_PASSWORD = "Correct-Horse-42"

# Cheap Argon2 parameters so tests do not spend seconds hashing
FAST_HASH = {"time_cost": 1, "memory_cost": 1024, "parallelism": 1}
TEST_FLOOR_MS = 20


# --- PostgreSQL Container Management ---

_container = None
_database_url: str | None = None


def _try_testcontainers() -> str | None:
    """Try to start PostgreSQL using testcontainers.

    Returns database URL if successful, None otherwise.
    """
    try:
        from testcontainers.postgres import PostgresContainer
    except ImportError:
        return None

    global _container
    try:
        _container = PostgresContainer(
            image="postgres:16-alpine",
            username="test",
            password="test",
            dbname="tokenvault_test",
        )
        _container.start()
        url = _container.get_connection_url()
        url = url.replace("postgresql+psycopg2://", "postgresql+asyncpg://")
        return url.replace("postgresql://", "postgresql+asyncpg://")
    except Exception as e:
        warnings.warn(f"Testcontainers not available: {e}", stacklevel=2)
        if _container:
            try:
                _container.stop()
            except Exception:
                pass
            _container = None
        return None


def _get_database_url() -> str | None:
    """Get database URL, preferring TEST_DATABASE_URL over testcontainers."""
    global _database_url
    if _database_url is None:
        _database_url = os.environ.get("TEST_DATABASE_URL") or _try_testcontainers() or ""
    return _database_url or None


def pytest_sessionfinish(session, exitstatus):
    """Clean up testcontainers when tests finish."""
    global _container
    if _container:
        try:
            _container.stop()
        except Exception:
            pass
        _container = None


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a PostgreSQL engine with fresh tables, or skip when unavailable."""
    url = _get_database_url()
    if url is None:
        pytest.skip("PostgreSQL test database not available")

    from tokenvault.core.database import Base

    engine = create_async_engine(url, poolclass=NullPool, echo=False)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL test database not available: {e}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(db_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with db_session_factory() as session:
        yield session
        await session.rollback()


# --- Component Fixtures ---


@pytest.fixture
def test_settings() -> Settings:
    """Settings for an app using in-memory stores and cheap hashing."""
    return Settings(
        _env_file=None,
        storage_backend="memory",
        jwt_secret_key=TEST_ACCESS_SECRET,
        jwt_refresh_secret_key=TEST_REFRESH_SECRET,
        password_hash_time_cost=FAST_HASH["time_cost"],
        password_hash_memory_cost=FAST_HASH["memory_cost"],
        password_hash_parallelism=FAST_HASH["parallelism"],
        credential_verify_floor_ms=TEST_FLOOR_MS,
        login_rate_limit_max_attempts=5,
        login_rate_limit_window_seconds=900,
        session_cleanup_enabled=False,
    )


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_ACCESS_SECRET, TEST_REFRESH_SECRET)


@pytest.fixture
def verifier() -> CredentialVerifier:
    return CredentialVerifier(**FAST_HASH, floor_ms=TEST_FLOOR_MS)


@pytest.fixture
def registry() -> InMemorySessionRegistry:
    return InMemorySessionRegistry()


@pytest.fixture
def identities() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture
def issuer(codec, registry) -> TokenIssuer:
    return TokenIssuer(
        codec,
        registry,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
    )


@pytest.fixture
def rotator(codec, registry, identities, issuer) -> TokenRotator:
    return TokenRotator(codec, registry, identities, issuer)


@pytest.fixture
def revocation(registry) -> RevocationManager:
    return RevocationManager(registry)


UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def user_factory(identities, verifier) -> UserFactory:
    """Factory for creating users in the in-memory identity store."""

    async def _create_user(
        email: str = TEST_EMAIL,
        password: str = TEST_PASSWORD,
        role: Role = Role.GESTOR,
        is_active: bool = True,
    ) -> User:
        hashed = await verifier.hash(password)
        return await identities.create_user(
            email=email,
            password_hash=hashed.hash,
            role=role,
            is_active=is_active,
        )

    return _create_user


@pytest_asyncio.fixture
async def test_user(user_factory) -> User:
    return await user_factory()


# --- Application Fixtures ---


@pytest.fixture
def app(test_settings):
    """A fresh application instance with its own stores and rate limiter."""
    from tokenvault.main import create_app

    return create_app(test_settings)


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def app_user_factory(app) -> UserFactory:
    """Factory for creating users in the application's identity store."""

    async def _create_user(
        email: str = TEST_EMAIL,
        password: str = TEST_PASSWORD,
        role: Role = Role.GESTOR,
        is_active: bool = True,
    ) -> User:
        hashed = await app.state.verifier.hash(password)
        return await app.state.identity_store.create_user(
            email=email,
            password_hash=hashed.hash,
            role=role,
            is_active=is_active,
        )

    return _create_user


@pytest_asyncio.fixture
async def app_user(app_user_factory) -> User:
    return await app_user_factory()


@pytest_asyncio.fixture
async def admin_user(app_user_factory) -> User:
    return await app_user_factory(email="admin@example.com", role=Role.ADMIN)


async def login(client: AsyncClient, email: str = TEST_EMAIL, password: str = TEST_PASSWORD):
    return await client.post("/auth/login", json={"identifier": email, "secret": password})


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def random_owner() -> uuid.UUID:
    return uuid.uuid4()
