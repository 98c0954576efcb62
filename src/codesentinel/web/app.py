"""FastAPI application factory for CodeSentinel.

The application exposes the review session, marathon controls and the
dashboard summary. Its lifespan builds the database engine, session store,
analyzer and orchestrator, restores the persisted session, and on shutdown
cancels scheduled marathon work and disposes the engine.

Example usage:
    >>> from codesentinel.config import CodeSentinelConfig
    >>> from codesentinel.web.app import create_app
    >>>
    >>> app = create_app(CodeSentinelConfig())
    >>> import uvicorn
    >>> uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codesentinel import __version__
from codesentinel.analyzer import create_analyzer
from codesentinel.config import CodeSentinelConfig
from codesentinel.database.connection import get_engine, get_session_factory, init_schema
from codesentinel.logging import get_logger
from codesentinel.orchestrator.marathon import MarathonOrchestrator
from codesentinel.store import SessionStore
from codesentinel.web.middleware import RequestLoggingMiddleware
from codesentinel.web.routes.dashboard import create_dashboard_router
from codesentinel.web.routes.health import create_health_router
from codesentinel.web.routes.marathon import create_marathon_router
from codesentinel.web.routes.session import create_session_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the orchestrator on startup and tear it down on shutdown.

    Args:
        app: FastAPI application instance

    Yields:
        None after startup, cleans up on context exit
    """
    config: CodeSentinelConfig = app.state.config

    logger.info("app_startup_begin", host=config.web.host, port=config.web.port)

    engine = get_engine(config.database)
    await init_schema(engine)
    session_factory = get_session_factory(engine)

    store = SessionStore(session_factory, config.database.session_key)
    orchestrator = MarathonOrchestrator(
        analyzer=create_analyzer(config.analyzer),
        store=store,
        config=config.marathon,
        api_key=config.analyzer.api_key,
    )
    await orchestrator.restore()

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.orchestrator = orchestrator

    logger.info("app_startup_complete", analyzer=config.analyzer.provider)

    yield

    logger.info("app_shutdown_begin")
    await orchestrator.shutdown()
    await engine.dispose()
    logger.info("database_engine_disposed")


def create_app(config: CodeSentinelConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Optional CodeSentinelConfig. If None, creates default config.

    Returns:
        Configured FastAPI application instance.
    """
    if config is None:
        config = CodeSentinelConfig()

    app = FastAPI(
        title="CodeSentinel",
        version=__version__,
        description="Autonomous multi-phase code review orchestration",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(create_health_router())
    app.include_router(create_session_router())
    app.include_router(create_marathon_router())
    app.include_router(create_dashboard_router())

    logger.info("app_created", cors_origins=config.web.cors_origins, version=__version__)

    return app
