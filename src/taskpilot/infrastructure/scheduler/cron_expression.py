"""Conversion between 5-field cron strings and CronSchedule values.

Schedules are always stored as structured fields; cron strings are only an
input and display convenience. Supported syntax per field: ``*``, single
numbers, comma lists, ranges and steps (``*/N``, ``N-M/S``). The month
field must be ``*``, minute and hour must resolve to exactly one value, and
``L``, ``W``, ``#`` and ``?`` are rejected.
"""

from __future__ import annotations

import re

from taskpilot.core.domain.errors import CronParseError
from taskpilot.core.domain.schedule import (
    CronSchedule,
    DueDateRelativeSchedule,
    IntervalSchedule,
    OneTimeSchedule,
    Schedule,
)

_UNSUPPORTED_CHARS = re.compile(r"[LWlw#?]")

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
DAY_NAMES_SHORT = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def _to_int(text: str, field_name: str, expression: str) -> int:
    if not text.strip().isdigit():
        raise CronParseError(f'Invalid value "{text}" in {field_name} field', expression=expression)
    return int(text)


def _parse_field(
    text: str, lo: int, hi: int, field_name: str, expression: str
) -> list[int] | None:
    """Return the sorted values a field selects, or None for ``*``."""
    if text == "*":
        return None

    values: set[int] = set()
    for part in text.split(","):
        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            step = _to_int(step_text, field_name, expression)
            if step < 1:
                raise CronParseError(
                    f'Invalid step value "{step_text}" in {field_name} field',
                    expression=expression,
                )
            start, end = lo, hi
            if part != "*":
                start = _to_int(part.split("-", 1)[0], field_name, expression)
                if "-" in part:
                    end = _to_int(part.split("-", 1)[1], field_name, expression)
        elif "-" in part:
            start_text, end_text = part.split("-", 1)
            start = _to_int(start_text, field_name, expression)
            end = _to_int(end_text, field_name, expression)
        else:
            start = end = _to_int(part, field_name, expression)

        if start < lo or end > hi or start > end:
            raise CronParseError(
                f'Invalid value "{part}" in {field_name} field (expected {lo}-{hi})',
                expression=expression,
            )
        values.update(range(start, end + 1, step))

    return sorted(values)


def _single(values: list[int] | None, text: str, field_name: str, expression: str) -> int:
    if values is None:
        raise CronParseError(
            f"Wildcard (*) for {field_name} field produces multiple values "
            "and cannot be represented as a single schedule",
            expression=expression,
        )
    if len(values) != 1:
        raise CronParseError(
            f'The {field_name} field "{text}" produces multiple values '
            "and cannot be represented as a single schedule",
            expression=expression,
        )
    return values[0]


def parse_cron_expression(expression: str) -> CronSchedule:
    """Parse ``minute hour day-of-month month day-of-week`` into a CronSchedule.

    Raises:
        CronParseError: For anything the structured schedule cannot express.
    """
    trimmed = expression.strip()
    if not trimmed:
        raise CronParseError("Cron expression is required", expression=expression)

    unsupported = _UNSUPPORTED_CHARS.search(trimmed)
    if unsupported:
        raise CronParseError(
            f'Unsupported character "{unsupported.group(0)}" in cron expression',
            expression=expression,
        )

    fields = trimmed.split()
    if len(fields) != 5:
        message = (
            f"Expected 5 fields (minute hour day-of-month month day-of-week), got {len(fields)}"
        )
        if len(fields) > 5:
            message += ". Seconds and year fields are not supported."
        raise CronParseError(message, expression=expression)

    minute_text, hour_text, dom_text, month_text, dow_text = fields
    if month_text != "*":
        raise CronParseError(
            "Month filtering is not supported. Use * for the month field.",
            expression=expression,
        )

    minute = _single(
        _parse_field(minute_text, 0, 59, "minute", expression), minute_text, "minute", expression
    )
    hour = _single(
        _parse_field(hour_text, 0, 23, "hour", expression), hour_text, "hour", expression
    )
    days_of_month = _parse_field(dom_text, 1, 31, "day-of-month", expression) or []
    days_of_week = _parse_field(dow_text, 0, 6, "day-of-week", expression) or []

    if days_of_month and days_of_week:
        raise CronParseError(
            "Restricting both day-of-month and day-of-week is not supported",
            expression=expression,
        )

    return CronSchedule(
        hour=hour, minute=minute, days_of_week=days_of_week, days_of_month=days_of_month
    )


def to_cron_expression(schedule: CronSchedule) -> str:
    """Render a schedule as a cron string; empty day lists become ``*``."""
    dom = ",".join(str(d) for d in schedule.days_of_month) or "*"
    dow = ",".join(str(d) for d in schedule.days_of_week) or "*"
    return f"{schedule.minute} {schedule.hour} {dom} * {dow}"


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def describe_cron_schedule(schedule: CronSchedule) -> str:
    """Human readable form, e.g. "Every Mon, Tue at 09:00"."""
    time = f"{schedule.hour:02d}:{schedule.minute:02d}"
    if schedule.days_of_week:
        if len(schedule.days_of_week) == 1:
            return f"Every {DAY_NAMES[schedule.days_of_week[0]]} at {time}"
        days = ", ".join(DAY_NAMES_SHORT[d] for d in schedule.days_of_week)
        return f"Every {days} at {time}"
    if schedule.days_of_month:
        days = ", ".join(_ordinal(d) for d in schedule.days_of_month)
        return f"Every {days} of month at {time}"
    return f"Every day at {time}"


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def describe_schedule(schedule: Schedule) -> str:
    """Human readable form of any schedule variant."""
    match schedule:
        case IntervalSchedule(interval_minutes=minutes):
            if minutes >= 1440 and minutes % 1440 == 0:
                return f"Every {_plural(minutes // 1440, 'day')}"
            if minutes >= 60 and minutes % 60 == 0:
                return f"Every {_plural(minutes // 60, 'hour')}"
            return f"Every {_plural(minutes, 'minute')}"
        case CronSchedule() as cron:
            return describe_cron_schedule(cron)
        case DueDateRelativeSchedule(offset_minutes=offset):
            direction = "before" if offset < 0 else "after"
            magnitude = abs(offset)
            if magnitude >= 1440 and magnitude % 1440 == 0:
                amount = _plural(magnitude // 1440, "day")
            elif magnitude >= 60 and magnitude % 60 == 0:
                amount = _plural(magnitude // 60, "hour")
            else:
                amount = _plural(magnitude, "minute")
            return f"{amount} {direction} due date"
        case OneTimeSchedule(fire_at=fire_at):
            return f"Once at {fire_at}"
        case _:
            return "Unknown schedule"
