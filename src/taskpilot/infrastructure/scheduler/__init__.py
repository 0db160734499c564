"""Schedule parsing helpers."""

from taskpilot.infrastructure.scheduler.cron_expression import (
    describe_cron_schedule,
    describe_schedule,
    parse_cron_expression,
    to_cron_expression,
)

__all__ = [
    "describe_cron_schedule",
    "describe_schedule",
    "parse_cron_expression",
    "to_cron_expression",
]
