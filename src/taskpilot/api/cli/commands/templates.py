"""Templates command - List predefined goal templates."""

from typing import Optional

import typer
from rich.table import Table

from taskpilot.api.cli.common import console, factory_from, load_profile_or_exit, resolve_profile
from taskpilot.application.templates import TemplateCatalog

app = typer.Typer(help="Goal templates")


@app.command("list")
def list_templates(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """List goal templates configured in the profile."""
    factory = factory_from(ctx)
    catalog = TemplateCatalog.from_config(
        load_profile_or_exit(factory, resolve_profile(ctx, profile)).get("templates")
    )

    table = Table(title="Goal Templates")
    table.add_column("Name", style="cyan")
    table.add_column("Parameters", style="magenta")
    table.add_column("Goal", style="white")

    for template in catalog.all():
        table.add_row(template.name, ", ".join(template.placeholders) or "-", template.goal)

    console.print(table)
