"""Cron command - parse and evaluate cron schedules."""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from taskpilot.api.cli.commands._context import instant_ms, load_engine_config
from taskpilot.application.schedule_evaluator import (
    evaluate_cron_schedule,
    find_most_recent_cron_match,
)
from taskpilot.core.domain.errors import CronParseError
from taskpilot.core.domain.schedule import CronSchedule
from taskpilot.core.utils.time import from_ms, to_iso
from taskpilot.infrastructure.scheduler.cron_expression import (
    describe_cron_schedule,
    parse_cron_expression,
    to_cron_expression,
)

app = typer.Typer(help="Cron schedule tools")
console = Console()


def _parse(expression: str) -> CronSchedule:
    try:
        return parse_cron_expression(expression)
    except CronParseError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(1) from exc


@app.command("parse")
def parse(expression: str = typer.Argument(..., help="5-field cron expression")):
    """Show the structured schedule for a cron expression."""
    schedule = _parse(expression)

    table = Table(title="Cron Schedule")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Expression", to_cron_expression(schedule))
    table.add_row("Hour", str(schedule.hour))
    table.add_row("Minute", str(schedule.minute))
    table.add_row("Days of week", ", ".join(map(str, schedule.days_of_week)) or "*")
    table.add_row("Days of month", ", ".join(map(str, schedule.days_of_month)) or "*")
    table.add_row("Description", describe_cron_schedule(schedule))
    console.print(table)


@app.command("check")
def check(
    ctx: typer.Context,
    expression: str = typer.Argument(..., help="5-field cron expression"),
    now: Optional[str] = typer.Option(None, "--now", help="Evaluation instant (ISO, default now)"),
    last: Optional[str] = typer.Option(None, "--last", help="Stored last_evaluated_at (ISO)"),
):
    """Evaluate a cron schedule at an instant."""
    schedule = _parse(expression)
    tz = load_engine_config(ctx).tzinfo
    now_ms = instant_ms(now, "--now")
    if last is not None:
        last = to_iso(instant_ms(last, "--last"))

    match = find_most_recent_cron_match(from_ms(now_ms), schedule, tz)
    evaluation = evaluate_cron_schedule(now_ms, last, schedule, tz)

    table = Table(title=describe_cron_schedule(schedule))
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Now", to_iso(now_ms))
    table.add_row("Last evaluated", last or "-")
    table.add_row("Most recent match", to_iso(match) if match else "-")
    table.add_row("Should fire", "[green]yes[/green]" if evaluation.should_fire else "no")
    table.add_row("New last evaluated", evaluation.new_last_evaluated_at)
    console.print(table)
