"""Pytest fixtures for E2E tests.

Provides a persistent SQLite database and session store so that full review
runs can be interrupted, restored into a fresh orchestrator and resumed, the
way a restarted process would see them.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from codesentinel.analyzer.base import Analyzer
from codesentinel.config import DatabaseConfig, MarathonConfig
from codesentinel.database.connection import get_engine, get_session_factory, init_schema
from codesentinel.orchestrator.marathon import MarathonOrchestrator
from codesentinel.store import SessionStore


@pytest_asyncio.fixture
async def e2e_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create an on-disk SQLite engine with the schema created.

    Yields:
        Configured AsyncEngine instance.
    """
    engine = get_engine(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'e2e.db'}"))
    await init_schema(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def e2e_session_factory(e2e_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_session_factory(e2e_engine)


@pytest_asyncio.fixture
async def make_orchestrator(
    e2e_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[Callable[..., MarathonOrchestrator], None]:
    """Factory building orchestrators that share one durable store.

    Every orchestrator built here is shut down when the test finishes.
    """
    created: list[MarathonOrchestrator] = []

    def _make(
        analyzer: Analyzer,
        config: MarathonConfig | None = None,
        api_key: str | None = "e2e-key",
    ) -> MarathonOrchestrator:
        orchestrator = MarathonOrchestrator(
            analyzer=analyzer,
            store=SessionStore(e2e_session_factory, "codesentinel_session_v1"),
            config=config or MarathonConfig(breather_seconds=0, retry_delay_seconds=0),
            api_key=api_key,
        )
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        await orchestrator.shutdown()
