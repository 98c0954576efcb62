"""Review session CLI commands.

This module provides CLI commands for the mocked login, target selection,
status display, logout and hard reset of the persisted review session.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codesentinel.review.activity_log import tail
from codesentinel.review.intake import (
    operator_from_email,
    target_from_archive,
    target_from_repository_url,
)
from codesentinel.review.models import LogLevel, Session
from codesentinel.review.scoring import health_scores

app = typer.Typer(help="Review session commands")
console = Console()

LEVEL_STYLES = {
    LogLevel.INFO: "cyan",
    LogLevel.WARN: "yellow",
    LogLevel.ERROR: "red",
    LogLevel.SUCCESS: "green",
    LogLevel.THOUGHT: "magenta",
    LogLevel.VALIDATION: "blue",
}


@app.command()
def login(
    email: Annotated[str, typer.Argument(help="Operator e-mail address")],
) -> None:
    """Log in as an operator (no real authentication)."""
    from codesentinel.main import get_app_context

    ctx = get_app_context()

    try:
        operator = operator_from_email(email)
    except ValueError as e:
        console.print(f"[red]Invalid login:[/red] {e}")
        raise typer.Exit(code=1)

    async def _login() -> bool:
        try:
            orchestrator = await ctx.open_orchestrator()
            await orchestrator.login(operator)
            return orchestrator.credential_requested
        finally:
            await ctx.close()

    credential_requested = asyncio.run(_login())

    console.print(f"[green]Logged in as[/green] [bold]{operator.name}[/bold] ({operator.role})")
    if credential_requested:
        console.print(
            "[yellow]No analyzer API key configured.[/yellow] "
            "Set CODESENTINEL_ANALYZER__API_KEY or pass --api-key to 'marathon run'."
        )


@app.command()
def target(
    repo: Annotated[
        Optional[str],
        typer.Option("--repo", "-r", help="Repository URL to review"),
    ] = None,
    archive: Annotated[
        Optional[str],
        typer.Option("--archive", "-a", help="Archive filename to review"),
    ] = None,
    content_file: Annotated[
        Optional[Path],
        typer.Option(
            "--content-file",
            "-f",
            help="Source file to analyze instead of the built-in demo snippet",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
) -> None:
    """Select the review target. Resets the review to its first phase."""
    from codesentinel.main import get_app_context

    ctx = get_app_context()

    if bool(repo) == bool(archive):
        console.print("[red]Provide exactly one of --repo or --archive[/red]")
        raise typer.Exit(code=1)

    content = content_file.read_text(encoding="utf-8") if content_file else None
    try:
        descriptor = (
            target_from_repository_url(repo, content=content)
            if repo
            else target_from_archive(archive or "", content=content)
        )
    except ValueError as e:
        console.print(f"[red]Invalid target:[/red] {e}")
        raise typer.Exit(code=1)

    async def _select() -> Session | None:
        try:
            orchestrator = await ctx.open_orchestrator()
            if orchestrator.session.operator is None:
                return None
            return await orchestrator.select_target(descriptor)
        finally:
            await ctx.close()

    session = asyncio.run(_select())
    if session is None:
        console.print("[red]Not logged in.[/red] Run 'codesentinel session login <email>' first.")
        raise typer.Exit(code=1)

    signature = session.state.thought_signature
    panel = Panel(
        f"[green]Target ingested[/green]\n\n"
        f"[bold]Name:[/bold] {descriptor.name}\n"
        f"[bold]Type:[/bold] {descriptor.type.value}\n"
        f"[bold]Session:[/bold] {signature.session_id}\n"
        f"[bold]Phase:[/bold] {session.state.phase.label}",
        title="Target Selected",
        border_style="green",
    )
    console.print(panel)


@app.command()
def status(
    logs: Annotated[
        int,
        typer.Option("--logs", "-n", help="Number of recent log entries to show"),
    ] = 10,
) -> None:
    """Show the persisted review session."""
    from codesentinel.main import get_app_context

    ctx = get_app_context()

    async def _load() -> Session:
        try:
            orchestrator = await ctx.open_orchestrator()
            return orchestrator.session
        finally:
            await ctx.close()

    session = asyncio.run(_load())
    console.print(build_session_table(session))

    entries = tail(session.state.logs, logs)
    if entries:
        console.print()
        console.print(build_log_table(entries))


@app.command()
def logout() -> None:
    """Log out and clear the persisted session."""
    from codesentinel.main import get_app_context

    ctx = get_app_context()

    async def _logout() -> None:
        try:
            orchestrator = await ctx.open_orchestrator()
            await orchestrator.logout()
        finally:
            await ctx.close()

    asyncio.run(_logout())
    console.print("[green]Logged out. Session cleared.[/green]")


@app.command()
def reset(
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt"),
    ] = False,
) -> None:
    """Hard reset: clear all findings while keeping the target."""
    from codesentinel.main import get_app_context

    ctx = get_app_context()

    def _confirm() -> bool:
        return yes or typer.confirm("Hard reset of CodeSentinel orchestration?", default=False)

    async def _reset() -> bool:
        try:
            orchestrator = await ctx.open_orchestrator()
            return await orchestrator.reset_session(_confirm)
        finally:
            await ctx.close()

    if asyncio.run(_reset()):
        console.print("[green]Session reset.[/green]")
    else:
        console.print("[yellow]Reset cancelled.[/yellow]")


def build_session_table(session: Session) -> Table:
    """Build a summary table for ``session``."""
    state = session.state
    signature = state.thought_signature

    table = Table(title="CodeSentinel Session", show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")

    operator = session.operator
    table.add_row("Operator", f"{operator.name} ({operator.role})" if operator else "-")
    table.add_row("Target", state.repo_name)
    table.add_row("Phase", state.phase.label)
    table.add_row("Progress", f"{state.progress}%")
    table.add_row("Session ID", signature.session_id)
    table.add_row("Simulated Time", f"{signature.simulated_duration} min")
    table.add_row("Next Action", signature.next_planned_action)
    table.add_row("Architecture", str(len(state.architecture)))
    table.add_row("Vulnerabilities", str(len(state.vulnerabilities)))
    table.add_row("Performance", str(len(state.performance)))
    table.add_row("Tests", str(len(state.tests)))
    table.add_row("Self-corrections", str(len(signature.self_corrections)))

    scores = health_scores(state)
    table.add_row("Scores", ", ".join(f"{name} {value}" for name, value in scores.items()))
    if state.summary:
        table.add_row("Summary", state.summary)
    return table


def build_log_table(entries: list) -> Table:
    """Build a table of activity log entries."""
    table = Table(title="Activity Log")
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Message")
    for entry in entries:
        style = LEVEL_STYLES.get(entry.level, "white")
        table.add_row(entry.timestamp, f"[{style}]{entry.level.value}[/{style}]", entry.message)
    return table
