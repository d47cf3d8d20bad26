import socket
from collections.abc import AsyncGenerator, Iterator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.auth import SessionTokenCodec
from app.core.config import settings
from app.core.passwords import PasswordHasher
from app.models.base import Base
from app.repositories.ephemeral_token_repository import TokenPurpose
from app.services.activation_flow import ActivationFlow
from app.services.credential_verifier import CredentialVerifier
from app.services.password_reset_flow import PasswordResetFlow
from app.services.session_validator import SessionValidator
from tests.fakes import FakeMailer, FakeSession, FakeTokenStore, FakeUserDirectory

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

# Low cost factor for fast tests
TEST_BCRYPT_ROUNDS = 4


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
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            f"PostgreSQL not available on {settings.database_host}:"
            f"{settings.database_port}. Start database with: docker compose up -d"
        )


# =============================================================================
# Database Fixtures (PostgreSQL, skipped when unavailable)
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with a fresh schema.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# In-memory Collaborators
# =============================================================================


@pytest.fixture
def fake_db() -> FakeSession:
    return FakeSession()


@pytest.fixture
def users() -> FakeUserDirectory:
    return FakeUserDirectory()


@pytest.fixture
def activation_store() -> FakeTokenStore:
    return FakeTokenStore(TokenPurpose.ACTIVATION)


@pytest.fixture
def reset_store() -> FakeTokenStore:
    return FakeTokenStore(TokenPurpose.PASSWORD_RESET, ttl=timedelta(hours=1))


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def codec() -> SessionTokenCodec:
    return SessionTokenCodec(TEST_AUTH_SECRET)


@pytest.fixture
def verifier(
    users: FakeUserDirectory, hasher: PasswordHasher, codec: SessionTokenCodec
) -> CredentialVerifier:
    return CredentialVerifier(users=users, hasher=hasher, codec=codec)


@pytest.fixture
def validator(users: FakeUserDirectory, codec: SessionTokenCodec) -> SessionValidator:
    return SessionValidator(users=users, codec=codec)


@pytest.fixture
def activation_flow(
    users: FakeUserDirectory, activation_store: FakeTokenStore, mailer: FakeMailer
) -> ActivationFlow:
    return ActivationFlow(mailer=mailer, users=users, tokens=activation_store)


@pytest.fixture
def reset_flow(
    users: FakeUserDirectory,
    reset_store: FakeTokenStore,
    mailer: FakeMailer,
    hasher: PasswordHasher,
) -> PasswordResetFlow:
    return PasswordResetFlow(
        mailer=mailer, users=users, tokens=reset_store, hasher=hasher
    )


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def api_client(
    fake_db: FakeSession,
    users: FakeUserDirectory,
    mailer: FakeMailer,
    hasher: PasswordHasher,
    codec: SessionTokenCodec,
    activation_flow: ActivationFlow,
    reset_flow: PasswordResetFlow,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the in-memory collaborators.

    Every service dependency is overridden, so no database is needed.
    Session cookies are sent over plain http for the duration of the test.
    """
    from app.api import deps
    from app.core.database import get_db
    from app.main import app

    async def override_get_db() -> AsyncGenerator[FakeSession, None]:
        yield fake_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_user_directory] = lambda: users
    app.dependency_overrides[deps.get_password_hasher] = lambda: hasher
    app.dependency_overrides[deps.get_session_codec] = lambda: codec
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    app.dependency_overrides[deps.get_activation_flow] = lambda: activation_flow
    app.dependency_overrides[deps.get_password_reset_flow] = lambda: reset_flow

    original_cookie_secure = settings.auth_cookie_secure
    original_auth_secret = settings.auth_secret
    settings.auth_cookie_secure = False
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    settings.auth_cookie_secure = original_cookie_secure
    settings.auth_secret = original_auth_secret
    app.dependency_overrides.clear()


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Security: Rate limiting is tested separately; disable for other tests
    to avoid flaky failures from rate limit triggers.

    Yields:
        None (autouse fixture).
    """
    from app.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled
