"""Database connection and session management."""

import os
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

# Lazy database initialization - don't create engine at import time
engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def to_async_url(database_url: str) -> str:
    """Rewrite a plain database URL to use an asyncio driver.

    PostgreSQL URLs are pointed at asyncpg and SQLite URLs at aiosqlite; URLs
    that already name a driver are returned unchanged.
    """
    if database_url.startswith("postgresql+psycopg2://"):
        return database_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend."""
    async_url = to_async_url(database_url)
    if async_url.startswith("sqlite"):
        return create_async_engine(async_url, echo=False)
    return create_async_engine(
        async_url,
        pool_size=settings.MAX_CONNECTIONS,
        max_overflow=0,
        echo=False,
    )


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``db_engine``."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _initialize_database() -> None:
    """Initialize database engine and session factory."""
    global engine, async_session_factory

    if engine is not None:
        return  # Already initialized

    if os.getenv("TESTING") == "true" and not os.getenv("TEST_DATABASE_URL"):
        # Keep as None for testing - will be overridden in test fixtures
        return

    engine = create_engine_for_url(settings.DATABASE_URL)
    async_session_factory = create_session_factory(engine)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory, initializing it on first use.

    Raises:
        RuntimeError: If the database could not be initialized
    """
    _initialize_database()

    if async_session_factory is None:
        raise RuntimeError("Database not initialized - cannot create session")
    return async_session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Yields:
        AsyncSession: Database session
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def dispose_engine() -> None:
    """Dispose of the engine and forget the session factory."""
    global engine, async_session_factory

    if engine is not None:
        await engine.dispose()
    engine = None
    async_session_factory = None


async def create_tables(db_engine: AsyncEngine | None = None) -> None:
    """Create any missing tables for the ORM models."""
    from app.database.base import Base
    import app.database.models  # noqa: F401

    if db_engine is None:
        _initialize_database()
        db_engine = engine
    if db_engine is None:
        raise RuntimeError("Database not initialized - cannot create tables")

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
