"""Capabilities command - List and inspect registered capabilities."""

from typing import Optional

import typer
from rich.table import Table

from taskpilot.api.cli.common import console, factory_from, load_profile_or_exit, resolve_profile
from taskpilot.core.domain.capabilities import NotFound

app = typer.Typer(help="Capability management")


@app.command("list")
def list_capabilities(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
    category: Optional[str] = typer.Option(None, "--category", help="Only this category"),
):
    """List registered capabilities."""
    factory = factory_from(ctx)
    registry = factory.create_registry(load_profile_or_exit(factory, resolve_profile(ctx, profile)))

    table = Table(title="Capabilities")
    table.add_column("Name", style="cyan")
    table.add_column("Category", style="magenta")
    table.add_column("Description", style="white")

    for descriptor in registry.list():
        if category and descriptor.category != category:
            continue
        table.add_row(descriptor.name, descriptor.category, descriptor.description)

    console.print(table)


@app.command("inspect")
def inspect_capability(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Capability name to inspect"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """Inspect a capability's description and parameter schema."""
    factory = factory_from(ctx)
    registry = factory.create_registry(load_profile_or_exit(factory, resolve_profile(ctx, profile)))

    result = registry.lookup(name)
    if isinstance(result, NotFound):
        console.print(f"[red]Capability '{name}' not found[/red]")
        raise typer.Exit(1)

    descriptor = result.descriptor
    console.print(f"\n[bold cyan]{descriptor.name}[/bold cyan] [dim]({descriptor.category})[/dim]")
    console.print(f"{descriptor.description}\n")
    console.print("[bold]Parameters:[/bold]")
    console.print_json(data=descriptor.parameters_schema)
