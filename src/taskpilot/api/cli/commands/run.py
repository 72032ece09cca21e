"""Run command - Execute goals and goal templates."""

import asyncio
import json
from typing import Optional

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from taskpilot.api.cli.common import console, factory_from, print_session, resolve_profile
from taskpilot.core.domain.errors import InvalidParameters, TemplateNotFound
from taskpilot.core.domain.models import SessionStatus

app = typer.Typer(help="Execute goals")


def _parse_json(value: Optional[str], option: str) -> dict:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        console.print(f"[red]{option} is not valid JSON: {e}[/red]")
        raise typer.Exit(1)
    if not isinstance(parsed, dict):
        console.print(f"[red]{option} must be a JSON object[/red]")
        raise typer.Exit(1)
    return parsed


def _execute(ctx: typer.Context, profile: Optional[str], submit, timeout: Optional[float]) -> None:
    """Build an engine, submit via ``submit(executor)``, wait and render the outcome."""
    factory = factory_from(ctx)
    profile = resolve_profile(ctx, profile)

    async def _run():
        executor = factory.create_executor(profile=profile)
        try:
            session_id = await submit(executor)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"[>] Running session {session_id[:8]}...", total=None)
                return await executor.sessions.wait(session_id, timeout=timeout)
        finally:
            await executor.close()

    try:
        snapshot = asyncio.run(_run())
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except TemplateNotFound as e:
        console.print(f"[red]{e}[/red]")
        if e.available:
            console.print(f"Available templates: {', '.join(e.available)}")
        raise typer.Exit(1)
    except (InvalidParameters, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    print_session(snapshot.to_dict())
    if snapshot.status != SessionStatus.COMPLETED:
        raise typer.Exit(1)


@app.command("goal")
def run_goal(
    ctx: typer.Context,
    goal: str = typer.Argument(..., help="Goal description"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile (overrides global --profile)"),
    context: Optional[str] = typer.Option(None, "--context", "-c", help="Session context as a JSON object"),
    max_iterations: Optional[int] = typer.Option(None, "--max-iterations", "-n", min=1, help="Iteration budget"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model alias override"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait before giving up (session keeps its state)"),
):
    """Execute a goal and wait for the session to finish.

    Examples:
        taskpilot run goal "Summarize notes.txt into summary.md"

        taskpilot run goal "Fetch https://example.com" -n 3
    """
    session_context = _parse_json(context, "--context")
    overrides = {"max_iterations": max_iterations, "model": model}

    async def submit(executor):
        return await executor.submit_goal(goal, context=session_context, overrides=overrides)

    _execute(ctx, profile, submit, timeout)


@app.command("template")
def run_template(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Template name"),
    params: Optional[str] = typer.Option(None, "--params", help="Template parameters as a JSON object"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile (overrides global --profile)"),
    max_iterations: Optional[int] = typer.Option(None, "--max-iterations", "-n", min=1, help="Iteration budget"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait before giving up"),
):
    """Execute a predefined goal template.

    Example:
        taskpilot run template revenue-forecast --params '{"months": 3}'
    """
    parameters = _parse_json(params, "--params")
    overrides = {"max_iterations": max_iterations}

    async def submit(executor):
        return await executor.submit_template(name, parameters=parameters, overrides=overrides)

    _execute(ctx, profile, submit, timeout)
