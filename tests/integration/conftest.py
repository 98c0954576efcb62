"""Pytest fixtures for integration tests.

Provides async database fixtures backed by an in-memory SQLite database
through aiosqlite, plus a TOML configuration pointing at a temporary
on-disk database for API and CLI tests.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from codesentinel.database.models.base import Base
from codesentinel.store import SessionStore

SESSION_KEY = "codesentinel_session_v1"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine with the schema created.

    Yields:
        Configured AsyncEngine instance using in-memory SQLite.
    """
    test_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session_store(session_factory: async_sessionmaker[AsyncSession]) -> SessionStore:
    """Session store over the in-memory database."""
    return SessionStore(session_factory, SESSION_KEY)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """URL of a fresh on-disk SQLite database."""
    return f"sqlite+aiosqlite:///{tmp_path / 'codesentinel.db'}"


@pytest.fixture
def config_file(tmp_path: Path, database_url: str) -> Path:
    """TOML configuration using the scripted analyzer and no breather."""
    path = tmp_path / "codesentinel.toml"
    path.write_text(
        "[database]\n"
        f'url = "{database_url}"\n'
        "\n"
        "[analyzer]\n"
        'provider = "scripted"\n'
        "\n"
        "[marathon]\n"
        "breather_seconds = 0\n"
        "retry_delay_seconds = 0\n"
        "\n"
        "[logging]\n"
        'level = "WARNING"\n'
    )
    return path
