"""Helpers shared by CLI command groups."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console

from taskpilot.application.config_loader import ConfigLoader
from taskpilot.core.domain.config_schema import EngineConfigSchema
from taskpilot.core.domain.errors import ConfigError
from taskpilot.core.utils.time import parse_iso, to_ms, utc_now

error_console = Console(stderr=True)


def load_engine_config(ctx: typer.Context) -> EngineConfigSchema:
    """Load the profile selected by the global options, or exit with an error."""
    opts = ctx.obj or {}
    loader = ConfigLoader(Path(opts.get("config_dir", "configs")))
    try:
        return loader.load_safe(opts.get("profile", "dev"))
    except ConfigError as exc:
        error_console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(1) from exc


def parse_instant(value: str | None, option: str) -> datetime:
    """Parse an ISO option value; None means now."""
    if value is None:
        return utc_now()
    try:
        return parse_iso(value)
    except ValueError as exc:
        error_console.print(f"[red]Invalid timestamp for {option}: {value}[/red]")
        raise typer.Exit(2) from exc


def instant_ms(value: str | None, option: str) -> int:
    return to_ms(parse_instant(value, option))
