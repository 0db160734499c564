"""Taskpilot CLI entry point."""

import logging
import sys

import structlog
import typer
from rich.console import Console

from taskpilot.api.cli.commands import config, cron, interval

app = typer.Typer(
    name="taskpilot",
    help="Taskpilot - automation rule engine for task boards",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register command groups
app.add_typer(config.app, name="config", help="Configuration management")
app.add_typer(cron.app, name="cron", help="Cron schedule tools")
app.add_typer(interval.app, name="interval", help="Interval schedule tools")


def configure_logging(debug: bool) -> None:
    """Route structlog output to stderr at DEBUG or WARNING level."""
    level = logging.DEBUG if debug else logging.WARNING
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    config_dir: str = typer.Option(
        "configs", "--config-dir", help="Directory containing profile YAML files"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """Taskpilot automation CLI."""
    configure_logging(debug)
    # Store global options in context for subcommands
    ctx.obj = {"profile": profile, "config_dir": config_dir, "debug": debug}


@app.command()
def version():
    """Show Taskpilot version."""
    from taskpilot import __version__

    console.print(f"[bold blue]Version:[/bold blue] [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
