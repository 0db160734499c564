"""Config command - Configuration management."""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from taskpilot.api.cli.commands._context import load_engine_config

app = typer.Typer(help="Configuration management")
console = Console()


@app.command("list")
def list_profiles(ctx: typer.Context):
    """List available configuration profiles."""
    config_dir = Path((ctx.obj or {}).get("config_dir", "configs"))

    if not config_dir.exists():
        console.print(f"[red]Configuration directory not found: {config_dir}[/red]")
        raise typer.Exit(1)

    profiles = sorted(config_dir.glob("*.yaml"))

    if not profiles:
        console.print("[yellow]No configuration profiles found[/yellow]")
        return

    table = Table(title="Configuration Profiles")
    table.add_column("Profile", style="cyan")
    table.add_column("Path", style="white")

    for profile_path in profiles:
        table.add_row(profile_path.stem, str(profile_path))

    console.print(table)


@app.command("show")
def show_profile(ctx: typer.Context):
    """Show the validated configuration of the selected profile."""
    config = load_engine_config(ctx)
    profile = (ctx.obj or {}).get("profile", "dev")

    console.print(f"\n[bold]Profile:[/bold] {profile}\n")
    console.print_json(data=config.model_dump())
