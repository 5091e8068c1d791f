"""Async engine and session handling.

Production runs on PostgreSQL through asyncpg; tests bind their own
aiosqlite engine and override ``get_db``.
"""

from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from agora.config import AgoraSettings, get_settings
from agora.logging_config import get_logger

logger = get_logger(__name__)

_ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}

_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def async_url(url: str) -> str:
    """Rewrite a plain database URL to use its async driver."""
    for scheme, driver in _ASYNC_DRIVERS.items():
        if url.startswith(scheme):
            return driver + url[len(scheme):]
    return url


def build_engine(settings: AgoraSettings) -> AsyncEngine:
    url = async_url(settings.database_url)
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.database_echo)
    return create_async_engine(
        url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings)
        logger.info(
            "database_engine_created",
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _sessions
    if _sessions is None:
        # Objects stay readable after commit; actions re-fetch under locks
        _sessions = async_sessionmaker(
            bind=get_engine(), expire_on_commit=False, autoflush=False
        )
    return _sessions


async def init_db() -> None:
    """Verify the database is reachable. Schema is managed by alembic."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        raise
    logger.info("database_connection_verified")


async def close_db() -> None:
    global _engine, _sessions
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _sessions = None
        logger.info("database_connections_closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session; uncommitted work is rolled back."""
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
