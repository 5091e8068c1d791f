"""Global pytest fixtures for the Agora engine.

Engine and route tests run against an in-memory SQLite database created
from the ORM metadata, so every test starts from an empty schema.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from agora.config import AgoraSettings
from agora.models import Base


# ===========================================
# TIME & SETTINGS
# ===========================================


@pytest.fixture
def now() -> datetime:
    """A fixed reference instant for cooldown and window arithmetic."""
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> AgoraSettings:
    """Default cooldowns, independent of the environment."""
    return AgoraSettings(
        message_cooldown_seconds=0,
        vote_cooldown_seconds=30,
        report_cooldown_seconds=60,
        streak_window_hours=24,
    )


# ===========================================
# DATABASE FIXTURES
# ===========================================


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """A session configured like the application's."""
    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with factory() as session:
        yield session


# ===========================================
# REDIS & HTTP CLIENT
# ===========================================


@pytest.fixture
def mock_redis() -> AsyncMock:
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test session injected."""
    from agora.database import get_db
    from agora.main import create_app

    app = create_app()

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
