"""
Async database engine and session factory.

Uses SQLAlchemy 2.x async engine with aiosqlite (default) or asyncpg.
Provides module-level engine and session factory singletons for the API,
an async generator for FastAPI dependency injection, and ``init_schema``
for creating tables on a fresh SQLite store.

CHANGELOG:
- 2026-10-12: Add init_schema for solar-init-db (STORY-003)
- 2026-10-12: Initial creation (STORY-003)
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from solar_rollup.config import get_settings
from solar_rollup.db.models import Base

# Module-level singletons, initialized lazily via init_engine().
async_engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        database_url: Explicit URL. Falls back to ``DATABASE_URL`` from
            settings when omitted.

    Returns:
        AsyncEngine: Configured async engine.
    """
    url = database_url or get_settings().database_url
    return create_async_engine(url, echo=False)


def create_session_factory(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory.

    Args:
        engine: Optional async engine. If not provided, creates one from config.

    Returns:
        async_sessionmaker: Factory for creating AsyncSession instances.
    """
    if engine is None:
        engine = create_engine()
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet.

    Args:
        engine: Engine bound to the target database.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def init_engine() -> None:
    """Initialize the module-level async engine and session factory.

    Safe to call multiple times; subsequent calls are no-ops.
    """
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is None:
        async_engine = create_engine()
        async_session_factory = create_session_factory(async_engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for FastAPI dependency injection.

    Yields:
        AsyncSession: An async SQLAlchemy session.
    """
    init_engine()
    assert async_session_factory is not None, "Session factory not initialized"
    async with async_session_factory() as session:
        yield session
