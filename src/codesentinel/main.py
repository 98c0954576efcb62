"""Main CLI entry point for CodeSentinel.

This module provides the main Typer application with sub-commands for the
review session and the marathon loop, plus the web server.

Usage:
    codesentinel session login ops@example.com
    codesentinel session target --repo https://github.com/acme/payments-api
    codesentinel marathon run --offline
    codesentinel serve --port 8000
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from codesentinel.analyzer import Analyzer, create_analyzer
from codesentinel.cli import marathon as marathon_cli
from codesentinel.cli import session as session_cli
from codesentinel.config import CodeSentinelConfig, MarathonConfig, load_config
from codesentinel.database.connection import get_engine, get_session_factory, init_schema
from codesentinel.logging import setup_logging
from codesentinel.orchestrator.marathon import MarathonOrchestrator
from codesentinel.store import SessionStore

app = typer.Typer(
    name="codesentinel",
    help="CodeSentinel: Autonomous Code Review Orchestration",
    no_args_is_help=True,
)

app.add_typer(session_cli.app, name="session", help="Manage the review session")
app.add_typer(marathon_cli.app, name="marathon", help="Run the review marathon")

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded CodeSentinel configuration
        engine: Async SQLAlchemy engine
        session_factory: Factory for creating database sessions
        store: Session store bound to the configured session key
    """

    def __init__(self, config: CodeSentinelConfig):
        self.config = config
        self.engine = get_engine(config.database)
        self.session_factory = get_session_factory(self.engine)
        self.store = SessionStore(self.session_factory, config.database.session_key)

    async def open_orchestrator(
        self,
        analyzer: Analyzer | None = None,
        marathon: MarathonConfig | None = None,
        api_key: str | None = None,
    ) -> MarathonOrchestrator:
        """Create the schema if needed and return an orchestrator holding the restored session."""
        await init_schema(self.engine)
        orchestrator = MarathonOrchestrator(
            analyzer=analyzer or create_analyzer(self.config.analyzer),
            store=self.store,
            config=marathon or self.config.marathon,
            api_key=api_key or self.config.analyzer.api_key,
        )
        await orchestrator.restore()
        return orchestrator

    async def close(self) -> None:
        await self.engine.dispose()


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: CodeSentinelConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-h", help="Host to bind to (default from config)"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to bind to (default from config)"),
    ] = None,
) -> None:
    """Start the CodeSentinel control API."""
    import uvicorn

    from codesentinel.web.app import create_app

    config = get_app_context().config
    bind_host = host or config.web.host
    bind_port = port or config.web.port

    console.print("[bold cyan]Starting CodeSentinel API[/bold cyan]")
    console.print(f"[dim]Host:[/dim] {bind_host}")
    console.print(f"[dim]Port:[/dim] {bind_port}")
    console.print()

    uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_level="info")


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Load configuration, configure logging and initialize the application context."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    logging_config = config.logging.model_copy(
        update={"format": "console", "level": "DEBUG" if verbose else config.logging.level}
    )
    setup_logging(logging_config)

    initialize_context(config)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
