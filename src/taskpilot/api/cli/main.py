"""Taskpilot CLI entry point."""

import typer

from taskpilot.api.cli.common import configure_logging, console
from taskpilot.api.cli.commands import capabilities, run, sessions, templates

app = typer.Typer(
    name="taskpilot",
    help="Taskpilot - autonomous goal execution",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(run.app, name="run", help="Execute goals")
app.add_typer(capabilities.app, name="capabilities", help="Capability management")
app.add_typer(sessions.app, name="sessions", help="Session management")
app.add_typer(templates.app, name="templates", help="Goal templates")


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    config_dir: str = typer.Option("configs", "--config-dir", help="Directory holding profile YAML files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Taskpilot CLI."""
    configure_logging(verbose)
    ctx.obj = {"profile": profile, "config_dir": config_dir, "verbose": verbose}


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(8070, "--port", help="Port"),
):
    """Start the HTTP API."""
    import uvicorn

    from taskpilot.api.server import create_app

    opts = ctx.obj or {}
    console.print(f"[bold blue]Taskpilot[/bold blue] API on [cyan]http://{host}:{port}[/cyan] (profile: {opts.get('profile')})")
    uvicorn.run(create_app(profile=opts.get("profile"), config_dir=opts.get("config_dir")), host=host, port=port)


@app.command()
def version():
    """Show Taskpilot version."""
    from taskpilot import __version__

    console.print(f"[bold blue]Taskpilot[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
