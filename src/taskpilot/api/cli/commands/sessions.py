"""Sessions command - Inspect archived sessions."""

import asyncio
from typing import Optional

import typer
from rich.table import Table

from taskpilot.api.cli.common import (
    console,
    factory_from,
    load_profile_or_exit,
    print_session,
    resolve_profile,
    styled_status,
)

app = typer.Typer(help="Session management")


def _store(ctx: typer.Context, profile: Optional[str]):
    factory = factory_from(ctx)
    store = factory.create_session_store(load_profile_or_exit(factory, resolve_profile(ctx, profile)))
    if store is None:
        console.print("[red]Session archive is disabled for this profile (persistence.type: none)[/red]")
        raise typer.Exit(1)
    return store


@app.command("list")
def list_sessions(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """List archived sessions, newest first."""
    store = _store(ctx, profile)

    async def _load_all():
        return [await store.load(sid) for sid in await store.list_sessions()]

    table = Table(title="Sessions")
    table.add_column("Session ID", style="cyan")
    table.add_column("Status", style="white")
    table.add_column("Iterations", justify="right")
    table.add_column("Goal", style="white")

    for data in asyncio.run(_load_all()):
        if not data:
            continue
        table.add_row(
            data.get("session_id", "?"),
            styled_status(data.get("status", "unknown")),
            str(data.get("iteration_count", "")),
            (data.get("goal") or "")[:60],
        )

    console.print(table)


@app.command("show")
def show_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
    raw: bool = typer.Option(False, "--json", help="Print the raw snapshot JSON"),
):
    """Show an archived session."""
    store = _store(ctx, profile)
    data = asyncio.run(store.load(session_id))

    if not data:
        console.print(f"[red]Session '{session_id}' not found[/red]")
        raise typer.Exit(1)

    if raw:
        console.print_json(data=data)
    else:
        print_session(data)
