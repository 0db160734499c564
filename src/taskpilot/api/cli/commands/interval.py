"""Interval command - evaluate interval schedules."""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from taskpilot.api.cli.commands._context import instant_ms, load_engine_config
from taskpilot.application.schedule_evaluator import evaluate_interval_schedule
from taskpilot.core.domain.errors import ScheduleConfigError
from taskpilot.core.domain.schedule import IntervalSchedule, validate_schedule
from taskpilot.core.utils.time import to_iso

app = typer.Typer(help="Interval schedule tools")
console = Console()


@app.command("check")
def check(
    ctx: typer.Context,
    minutes: int = typer.Option(..., "--minutes", "-m", help="Interval in minutes"),
    now: Optional[str] = typer.Option(None, "--now", help="Evaluation instant (ISO, default now)"),
    last: Optional[str] = typer.Option(None, "--last", help="Stored last_evaluated_at (ISO)"),
):
    """Evaluate an interval schedule at an instant."""
    config = load_engine_config(ctx)
    try:
        validate_schedule(
            IntervalSchedule(interval_minutes=minutes),
            min_interval_minutes=config.min_interval_minutes,
        )
    except ScheduleConfigError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(1) from exc

    now_ms = instant_ms(now, "--now")
    if last is not None:
        last = to_iso(instant_ms(last, "--last"))
    evaluation = evaluate_interval_schedule(now_ms, last, minutes)

    table = Table(title=f"Every {minutes} minutes")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Now", to_iso(now_ms))
    table.add_row("Last evaluated", last or "-")
    table.add_row("Should fire", "[green]yes[/green]" if evaluation.should_fire else "no")
    table.add_row("New last evaluated", evaluation.new_last_evaluated_at)
    console.print(table)
