import socket
import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from comments_api.core.config import settings
from comments_api.models.base import Base

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Test password (valid length, never used outside tests)
TEST_PASSWORD = "correct horse battery"  # nosec B105  # gitleaks:allow

# Cheapest bcrypt cost factor bcrypt accepts; keeps the suite fast
_TEST_BCRYPT_ROUNDS = 4


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on the configured port, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex((settings.database_host, settings.database_port))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    Provides clear skip message to help diagnose CI/local issues.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            f"PostgreSQL not available on port {settings.database_port}. "
            "Start database with: docker compose up -d"
        )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# Model Fixtures
# =============================================================================


async def create_user(
    db: AsyncSession,
    *,
    email: str,
    activated: bool,
    name: str = "Test User",
    password: str = TEST_PASSWORD,
):
    """Insert a user with a real bcrypt hash and commit.

    Args:
        db: Database session.
        email: Unique email address.
        activated: Whether the account is activated.
        name: Display name.
        password: Plain-text password to hash.

    Returns:
        User model instance.
    """
    from comments_api.core.credentials import hash_password
    from comments_api.models import User

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password, rounds=_TEST_BCRYPT_ROUNDS),
        activated=activated,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def issue_token(
    db: AsyncSession,
    user_id: uuid.UUID,
    scope,
    ttl: timedelta = timedelta(hours=1),
) -> str:
    """Issue and commit a token, returning its plaintext."""
    from comments_api.services.token_service import TokenService

    issued = await TokenService(db).issue(user_id, scope, ttl)
    await db.commit()
    return issued.plaintext


@pytest_asyncio.fixture
async def activated_user(db_session: AsyncSession):
    """Create an activated user."""
    return await create_user(db_session, email="active@example.com", activated=True)


@pytest_asyncio.fixture
async def inactive_user(db_session: AsyncSession):
    """Create a registered but not yet activated user."""
    return await create_user(db_session, email="inactive@example.com", activated=False)


@pytest_asyncio.fixture
async def activated_token(db_session: AsyncSession, activated_user) -> str:
    """Authentication token plaintext for activated_user."""
    from comments_api.models import TokenScope

    return await issue_token(db_session, activated_user.id, TokenScope.AUTHENTICATION)


@pytest_asyncio.fixture
async def inactive_token(db_session: AsyncSession, inactive_user) -> str:
    """Authentication token plaintext for inactive_user."""
    from comments_api.models import TokenScope

    return await issue_token(db_session, inactive_user.id, TokenScope.AUTHENTICATION)


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    db_engine, monkeypatch: pytest.MonkeyPatch
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test database.

    Sets up:
    - get_db dependency override for route handlers
    - The session factory used by the authentication middleware
    - httpx.AsyncClient with ASGI transport (no Authorization header)

    Args:
        db_engine: Test database engine from db_engine fixture.

    Yields:
        Configured AsyncClient for making API requests.
    """
    from comments_api.core import database
    from comments_api.core.database import get_db
    from comments_api.main import app

    # Create session factory for this test
    test_session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Override get_db to use test database
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(database, "async_session_factory", test_session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Cleanup
    app.dependency_overrides.clear()


def bearer(token: str) -> dict[str, str]:
    """Authorization header for a token plaintext."""
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Security: Rate limiting is tested separately; disable for other tests
    to avoid flaky failures from rate limit triggers. Covers the per-route
    slowapi limiter, the global limiter of the module-level app, and
    limiters built from settings by create_app().

    Yields:
        None (autouse fixture).
    """
    from comments_api.core.rate_limiting import limiter
    from comments_api.main import app

    # Store original state and disable
    original_enabled = limiter.enabled
    original_global = app.state.rate_limiter.enabled
    original_setting = settings.limiter_enabled
    limiter.enabled = False
    app.state.rate_limiter.enabled = False
    settings.limiter_enabled = False

    yield

    # Restore original state
    limiter.enabled = original_enabled
    app.state.rate_limiter.enabled = original_global
    settings.limiter_enabled = original_setting


@pytest.fixture(autouse=True)
def fast_password_hashing() -> Iterator[None]:
    """Use the minimum bcrypt cost factor for passwords hashed in tests."""
    original = settings.bcrypt_rounds
    settings.bcrypt_rounds = _TEST_BCRYPT_ROUNDS
    yield
    settings.bcrypt_rounds = original
