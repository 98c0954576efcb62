"""Database connection management for CodeSentinel.

This module provides factory functions for creating SQLAlchemy async engines
and session factories, configured from the application's DatabaseConfig, and
a helper that creates the schema on first use.

The default URL targets a local SQLite file through the aiosqlite driver;
any async SQLAlchemy URL is accepted.

Example usage:
    >>> from codesentinel.config import DatabaseConfig
    >>> from codesentinel.database.connection import get_engine, get_session_factory
    >>>
    >>> engine = get_engine(DatabaseConfig(url="sqlite+aiosqlite:///review.db"))
    >>> await init_schema(engine)
    >>> SessionFactory = get_session_factory(engine)
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from codesentinel.config import DatabaseConfig
from codesentinel.database.models.base import Base


def get_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine from database configuration.

    Args:
        config: Database configuration containing URL and SQL echo preference.

    Returns:
        Configured AsyncEngine instance.
    """
    return create_async_engine(config.url, echo=config.echo)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the given engine.

    Sessions are configured with expire_on_commit=False so that attributes
    stay readable after commit without triggering lazy loads.

    Args:
        engine: AsyncEngine to bind sessions to.

    Returns:
        Configured async_sessionmaker that produces AsyncSession instances.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
