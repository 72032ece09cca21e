"""Helpers shared by CLI commands."""

import logging
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taskpilot.application.factory import EngineFactory
from taskpilot.core.domain.models import SessionStatus

console = Console()

STATUS_STYLES = {
    SessionStatus.RUNNING.value: "yellow",
    SessionStatus.COMPLETED.value: "green",
    SessionStatus.FAILED.value: "red",
    SessionStatus.STOPPED.value: "magenta",
}


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def resolve_profile(ctx: typer.Context, profile: Optional[str]) -> str:
    """Local --profile wins over the global one."""
    return profile or (ctx.obj or {}).get("profile", "dev")


def factory_from(ctx: typer.Context) -> EngineFactory:
    return EngineFactory(config_dir=(ctx.obj or {}).get("config_dir", "configs"))


def load_profile_or_exit(factory: EngineFactory, profile: str) -> dict:
    try:
        return factory.load_profile(profile)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def print_session(data: dict) -> None:
    """Render a session snapshot dict: header, step table and final summary."""
    console.print(f"\n[bold]Session:[/bold] {data['session_id']}")
    console.print(f"[bold]Goal:[/bold] {data['goal']}")
    console.print(
        f"[bold]Status:[/bold] {styled_status(data['status'])} "
        f"({data['iteration_count']}/{data['max_iterations']} iterations)"
    )

    steps = data.get("step_history") or []
    if steps:
        table = Table(title="Steps")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Action", style="cyan")
        table.add_column("Result", style="white")
        for step in steps:
            action = step.get("action") or {}
            label = action.get("capability") or action.get("kind") or "(planner failure)"
            result = step.get("result") or {}
            outcome = "[green]ok[/green]" if result.get("success") else f"[red]{result.get('error', 'failed')}[/red]"
            table.add_row(str(step.get("iteration", "")), label, outcome)
        console.print(table)

    summary = data.get("final_summary")
    if summary:
        body = summary.get("message", "")
        if summary.get("recap"):
            body = f"{body}\n\n{summary['recap']}"
        console.print(Panel(body, title=f"Final summary: {summary.get('reason')}", border_style="blue"))
