"""
Pytest configuration and shared test fixtures.

Provides actors of each access level, a mocked async session whose
savepoints behave like SQLAlchemy's, and an HTTP client bound to the
FastAPI app with the database and identity dependencies overridden.
"""

import uuid
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Registers every mapped class so relationships resolve when models are built
import brokerage.database.models  # noqa: F401
from brokerage.core.actor import AccessLevel, Actor


class FakeSavepoint:
    """Async context manager standing in for ``session.begin_nested()``.

    Exceptions raised inside the block propagate, as with a real savepoint
    that rolls back.
    """

    def __init__(self):
        self.entered = False
        self.rolled_back = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.rolled_back = exc_type is not None
        return False


def make_actor(
    access_level: AccessLevel = AccessLevel.BROKER_MEMBER,
    company_id: uuid.UUID | None = None,
) -> Actor:
    """Build an actor with a fresh id."""
    return Actor(
        id=uuid.uuid4(),
        name="김배차",
        email="dispatcher@example.com",
        access_level=access_level,
        company_id=company_id,
    )


# ============================================================================
# Actors
# ============================================================================


@pytest.fixture
def actor() -> Actor:
    """Broker member belonging to a broker company."""
    return make_actor(AccessLevel.BROKER_MEMBER, company_id=uuid.uuid4())


@pytest.fixture
def admin_actor() -> Actor:
    return make_actor(AccessLevel.PLATFORM_ADMIN, company_id=uuid.uuid4())


@pytest.fixture
def viewer_actor() -> Actor:
    return make_actor(AccessLevel.VIEWER)


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def mock_session() -> AsyncMock:
    """
    Create mock async database session.

    ``add`` is synchronous like the real session; ``begin_nested`` returns
    a fresh FakeSavepoint per call.

    Returns:
        AsyncMock: Mock database session
    """
    session = AsyncMock(spec=AsyncSession)
    session.add = Mock()
    session.delete = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.begin_nested = Mock(side_effect=lambda: FakeSavepoint())
    return session


# ============================================================================
# HTTP client
# ============================================================================


@pytest.fixture
def current_actor(actor: Actor) -> Actor:
    """Actor returned by the overridden identity dependency.

    Tests override this fixture to call endpoints as another actor.
    """
    return actor


@pytest.fixture
async def async_client(
    mock_session: AsyncMock, current_actor: Actor
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an asynchronous test client for the FastAPI application.

    The database session and the authenticated actor are replaced with
    test doubles; rate limiting is switched off.

    Yields:
        AsyncClient: Client sending requests to the app in-process
    """
    from brokerage.api.deps import get_current_actor
    from brokerage.api.rate_limit import limiter
    from brokerage.database.connection import get_db
    from brokerage.main import app

    async def override_db():
        yield mock_session

    async def override_actor():
        return current_actor

    limiter.enabled = False
    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_actor] = override_actor

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
async def anonymous_client(mock_session: AsyncMock) -> AsyncGenerator[AsyncClient, None]:
    """Client without an identity override: requests must authenticate."""
    from brokerage.api.rate_limit import limiter
    from brokerage.database.connection import get_db
    from brokerage.main import app

    async def override_db():
        yield mock_session

    limiter.enabled = False
    app.dependency_overrides[get_db] = override_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def mock_cache() -> MagicMock:
    """Redis client double with async JSON helpers."""
    cache = MagicMock()
    cache.get_json = AsyncMock(return_value=None)
    cache.set_json = AsyncMock(return_value=True)
    cache.delete_pattern = AsyncMock(return_value=0)
    return cache
