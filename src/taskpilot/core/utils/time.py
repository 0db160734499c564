"""Shared UTC time helpers.

Provides a single ``utc_now`` function plus the conversions between epoch
milliseconds, aware datetimes and the ISO strings stored on rules
(``2025-01-03T09:00:00.000Z``). Every evaluator works on these primitives
so that results never depend on a wall clock.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)


def utc_now() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(UTC)


def from_ms(ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return _EPOCH + timedelta(milliseconds=ms)


def to_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (value - _EPOCH) // _ONE_MS


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware datetime (naive means UTC)."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_iso_ms(value: str) -> int:
    """Parse an ISO-8601 string into epoch milliseconds."""
    return to_ms(parse_iso(value))


def to_iso(value: int | datetime) -> str:
    """Format epoch milliseconds or a datetime as a UTC ISO string with millis."""
    dt = from_ms(value) if isinstance(value, int) else value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
