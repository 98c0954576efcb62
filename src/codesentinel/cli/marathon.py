"""Marathon control CLI commands.

This module provides the command that runs the review marathon to
completion from the terminal, showing a live status table.
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from codesentinel.analyzer.scripted import ScriptedAnalyzer
from codesentinel.orchestrator.marathon import MarathonError, MarathonOrchestrator
from codesentinel.review.models import ReviewPhase

app = typer.Typer(help="Marathon control commands")
console = Console()

OFFLINE_CREDENTIAL = "offline"


@app.command()
def run(
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Use the scripted analyzer instead of the provider"),
    ] = False,
    breather: Annotated[
        Optional[float],
        typer.Option("--breather", "-b", min=0.0, help="Seconds to pause between phases"),
    ] = None,
    max_retries: Annotated[
        Optional[int],
        typer.Option("--max-retries", min=0, help="Halt after this many consecutive failures"),
    ] = None,
    api_key: Annotated[
        Optional[str],
        typer.Option("--api-key", envvar="GEMINI_API_KEY", help="Analyzer API key"),
    ] = None,
) -> None:
    """Run the marathon on the persisted session until it completes.

    Restores the session, starts (or resumes) automatic phase execution and
    waits until the review reaches COMPLETE, the marathon halts, or Ctrl+C
    is pressed. Progress is persisted after every phase.
    """
    from codesentinel.main import get_app_context

    ctx = get_app_context()

    updates: dict[str, object] = {}
    if breather is not None:
        updates["breather_seconds"] = breather
    if max_retries is not None:
        updates["max_phase_retries"] = max_retries
    marathon_config = ctx.config.marathon.model_copy(update=updates)

    analyzer = ScriptedAnalyzer() if offline else None
    credential = api_key or (OFFLINE_CREDENTIAL if offline else None)

    async def _run() -> MarathonOrchestrator:
        orchestrator = await ctx.open_orchestrator(
            analyzer=analyzer, marathon=marathon_config, api_key=credential
        )
        try:
            await orchestrator.start_marathon()
            with Live(build_status_table(orchestrator), console=console, refresh_per_second=4) as live:
                while orchestrator.is_running or orchestrator.in_flight:
                    await asyncio.sleep(0.25)
                    live.update(build_status_table(orchestrator))
            await orchestrator.join()
            return orchestrator
        finally:
            await orchestrator.shutdown()
            await ctx.close()

    console.print()
    console.print(
        Panel(
            f"[bold cyan]CodeSentinel Marathon[/bold cyan]\n\n"
            f"[bold]Analyzer:[/bold] {'scripted (offline)' if offline else ctx.config.analyzer.model}\n"
            f"[bold]Breather:[/bold] {marathon_config.breather_seconds}s",
            title="Starting Marathon",
            border_style="cyan",
        )
    )

    try:
        orchestrator = asyncio.run(_run())
    except MarathonError as e:
        console.print(f"[red]Cannot start marathon:[/red] {e}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("[yellow]Marathon interrupted. Progress so far is saved.[/yellow]")
        raise typer.Exit(code=130)

    state = orchestrator.session.state
    if state.phase is ReviewPhase.COMPLETE:
        console.print("[bold green]Mission complete.[/bold green]")
        if state.summary:
            console.print(state.summary)
    else:
        console.print(f"[yellow]Marathon halted at {state.phase.label}.[/yellow]")
        raise typer.Exit(code=1)


def build_status_table(orchestrator: MarathonOrchestrator) -> Table:
    """Build a live status table for the orchestrator."""
    status = orchestrator.status()
    state = orchestrator.session.state

    table = Table(title="Marathon Status", show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")

    table.add_row("Status", "[green]Running[/green]" if status.running else "[dim]Stopped[/dim]")
    table.add_row("Target", status.repo_name)
    table.add_row("Phase", status.phase_label)
    table.add_row("Progress", f"{status.progress}%")
    table.add_row("Analyzer Call", "in flight" if status.in_flight else "-")
    table.add_row("Vulnerabilities", str(len(state.vulnerabilities)))
    table.add_row("Performance", str(len(state.performance)))
    table.add_row("Tests", str(len(state.tests)))
    if state.logs:
        table.add_row("Last Log", state.logs[-1].message[:100])
    return table
