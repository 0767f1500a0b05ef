"""
Database connection management.

Provides the async SQLAlchemy engine, a session factory with explicit
transaction control, and schema creation.

Dependencies: sqlalchemy, asyncpg or aiosqlite, chunk_index.configs
System role: Database connection lifecycle management
"""

from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chunk_index.boundary.db.base import Base
from chunk_index.configs.database import DatabaseSettings


def create_engine_from_settings(db_config: DatabaseSettings) -> AsyncEngine:
    """
    Create an async engine for the configured database.

    PostgreSQL gets a sized pool with pre-ping; in-memory SQLite gets a
    StaticPool so every session sees the same database. SQLite connections
    enable foreign keys so ON DELETE CASCADE applies.

    Args:
        db_config: Database settings

    Returns:
        AsyncEngine: Configured async SQLAlchemy engine

    Raises:
        ArgumentError: If database URL is invalid or engine creation fails
    """
    url = db_config.async_database_url
    if db_config.is_sqlite:
        kwargs = {"poolclass": StaticPool} if ":memory:" in url else {}
        engine = create_async_engine(
            url,
            echo=db_config.echo_sql,
            connect_args={"check_same_thread": False},
            **kwargs,
        )
        _enable_sqlite_foreign_keys(engine)
        return engine

    return create_async_engine(
        url,
        echo=db_config.echo_sql,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=True,
    )


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@lru_cache
def get_async_engine() -> AsyncEngine:
    """
    Process-wide async engine built from application settings.

    Returns:
        AsyncEngine: Cached engine
    """
    from chunk_index.configs import get_settings

    return create_engine_from_settings(get_settings().database)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create async session factory bound to an engine.

    autoflush is off and objects stay usable after commit, so services can
    hand ORM rows back to callers after the transaction closes.

    Args:
        engine: Async engine

    Returns:
        async_sessionmaker: Session factory configured for manual transaction control

    Usage:
        SessionFactory = create_session_factory(engine)
        async with SessionFactory() as session:
            async with session.begin():
                session.add(obj)
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the cached application engine."""
    return create_session_factory(get_async_engine())


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session from the application factory and close it afterwards.

    Yields:
        AsyncSession: Async SQLAlchemy database session
    """
    SessionFactory = get_async_session_factory()
    async with SessionFactory() as session:
        yield session


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables registered on the declarative base."""
    from chunk_index.boundary.db import models  # noqa: F401  (registers mappers)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: AsyncEngine) -> None:
    """Drop all tables registered on the declarative base."""
    from chunk_index.boundary.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
