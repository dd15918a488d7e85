"""Conductor CLI entry point."""

import typer
from rich.console import Console

from conductor.api.cli.commands import agents, run, serve

app = typer.Typer(
    name="conductor",
    help="Conductor - hierarchical task execution engine",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(run.app, name="run", help="Execute tasks")
app.add_typer(agents.app, name="agents", help="Agent management")
app.add_typer(serve.app, name="serve", help="HTTP API server")


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    config_dir: str = typer.Option("configs", "--config-dir", "-c", help="Configuration directory"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Conductor CLI."""
    # Store global options in context for subcommands
    ctx.obj = {"profile": profile, "config_dir": config_dir, "debug": debug}


@app.command()
def version():
    """Show Conductor version."""
    from conductor import __version__

    console.print(f"[bold blue]Conductor[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
