"""Injectable clock for the scheduler driver.

Production code uses :class:`SystemClock`; tests drive time explicitly with
:class:`FakeClock`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from taskpilot.core.utils.time import from_ms, to_ms, utc_now


class Clock(Protocol):
    """Source of "now" as epoch milliseconds."""

    def now_ms(self) -> int:
        """Return the current time in epoch milliseconds."""
        ...


class SystemClock:
    """Clock backed by the system UTC time."""

    def now_ms(self) -> int:
        return to_ms(utc_now())


class FakeClock:
    """Manually advanced clock for deterministic tests."""

    def __init__(self, initial: int | datetime = 0) -> None:
        self._current = initial if isinstance(initial, int) else to_ms(initial)

    def now_ms(self) -> int:
        return self._current

    def now(self) -> datetime:
        """Current fake time as an aware datetime."""
        return from_ms(self._current)

    def advance(self, ms: int) -> None:
        """Move time forward by ``ms`` milliseconds."""
        self._current += ms

    def set(self, value: int | datetime) -> None:
        """Jump to an absolute point in time."""
        self._current = value if isinstance(value, int) else to_ms(value)
