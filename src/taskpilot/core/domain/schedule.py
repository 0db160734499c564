"""Schedule domain models for time-based automation triggers.

A schedule is a tagged variant over four kinds (interval, cron,
due-date-relative and one-time). The evaluator dispatches over the variant
with a single ``match`` statement; validation happens up front in
:func:`validate_schedule` so the evaluators can assume well-formed input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from taskpilot.core.domain.errors import ScheduleConfigError
from taskpilot.core.utils.time import parse_iso

MIN_INTERVAL_MINUTES = 5


class ScheduleKind(str, Enum):
    """Discriminator of the schedule variant."""

    INTERVAL = "interval"
    CRON = "cron"
    DUE_DATE_RELATIVE = "due_date_relative"
    ONE_TIME = "one_time"


class CatchUpPolicy(str, Enum):
    """What a schedule does with windows missed while the host was not running."""

    CATCH_UP_LATEST = "catch_up_latest"
    SKIP_MISSED = "skip_missed"


@dataclass(frozen=True)
class IntervalSchedule:
    """Fire every ``interval_minutes`` minutes."""

    kind: ClassVar[ScheduleKind] = ScheduleKind.INTERVAL

    interval_minutes: int

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "interval_minutes": self.interval_minutes}


@dataclass(frozen=True)
class CronSchedule:
    """Fire at ``hour:minute`` on matching days.

    Attributes:
        hour: 0-23.
        minute: 0-59.
        days_of_week: Allowed weekdays, Sunday=0 ... Saturday=6. Empty = any.
        days_of_month: Allowed month days, 1-31. Empty = any. Values past the
            end of a month match that month's last day.
    """

    kind: ClassVar[ScheduleKind] = ScheduleKind.CRON

    hour: int
    minute: int
    days_of_week: tuple[int, ...] = ()
    days_of_month: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists from callers while keeping the dataclass hashable
        object.__setattr__(self, "days_of_week", tuple(self.days_of_week))
        object.__setattr__(self, "days_of_month", tuple(self.days_of_month))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "hour": self.hour,
            "minute": self.minute,
            "days_of_week": list(self.days_of_week),
            "days_of_month": list(self.days_of_month),
        }


@dataclass(frozen=True)
class DueDateRelativeSchedule:
    """Fire ``offset_minutes`` relative to each task's due date (negative = before)."""

    kind: ClassVar[ScheduleKind] = ScheduleKind.DUE_DATE_RELATIVE

    offset_minutes: int

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "offset_minutes": self.offset_minutes}


@dataclass(frozen=True)
class OneTimeSchedule:
    """Fire once at ``fire_at`` (ISO timestamp)."""

    kind: ClassVar[ScheduleKind] = ScheduleKind.ONE_TIME

    fire_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "fire_at": self.fire_at}


Schedule = Union[IntervalSchedule, CronSchedule, DueDateRelativeSchedule, OneTimeSchedule]


@dataclass(frozen=True)
class ScheduleEvaluation:
    """Result of evaluating one schedule at one instant.

    The caller persists ``new_last_evaluated_at``; the evaluator never
    mutates rule state itself.

    Attributes:
        should_fire: Whether the rule's action should run now.
        new_last_evaluated_at: ISO timestamp to store as ``last_evaluated_at``.
        matching_task_ids: Tasks whose due dates triggered a due-date-relative
            schedule. Always empty for the other kinds.
    """

    should_fire: bool
    new_last_evaluated_at: str
    matching_task_ids: tuple[str, ...] = field(default_factory=tuple)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_schedule(
    schedule: Schedule, *, min_interval_minutes: int = MIN_INTERVAL_MINUTES
) -> None:
    """Raise :class:`ScheduleConfigError` if ``schedule`` is malformed.

    Malformed input is reported, never coerced to something that might run.
    """
    if isinstance(schedule, IntervalSchedule):
        if not _is_int(schedule.interval_minutes):
            raise ScheduleConfigError(
                "interval_minutes must be an integer", schedule_kind=schedule.kind.value
            )
        if schedule.interval_minutes < min_interval_minutes:
            raise ScheduleConfigError(
                f"interval_minutes must be >= {min_interval_minutes}, "
                f"got {schedule.interval_minutes}",
                schedule_kind=schedule.kind.value,
            )
        return

    if isinstance(schedule, CronSchedule):
        kind = schedule.kind.value
        if not _is_int(schedule.hour) or not 0 <= schedule.hour <= 23:
            raise ScheduleConfigError(f"hour must be in 0-23, got {schedule.hour!r}", schedule_kind=kind)
        if not _is_int(schedule.minute) or not 0 <= schedule.minute <= 59:
            raise ScheduleConfigError(
                f"minute must be in 0-59, got {schedule.minute!r}", schedule_kind=kind
            )
        if schedule.days_of_week and schedule.days_of_month:
            raise ScheduleConfigError(
                "days_of_week and days_of_month are mutually exclusive", schedule_kind=kind
            )
        bad_weekdays = [d for d in schedule.days_of_week if not _is_int(d) or not 0 <= d <= 6]
        if bad_weekdays:
            raise ScheduleConfigError(
                f"days_of_week values must be in 0-6, got {bad_weekdays}", schedule_kind=kind
            )
        bad_days = [d for d in schedule.days_of_month if not _is_int(d) or not 1 <= d <= 31]
        if bad_days:
            raise ScheduleConfigError(
                f"days_of_month values must be in 1-31, got {bad_days}", schedule_kind=kind
            )
        return

    if isinstance(schedule, DueDateRelativeSchedule):
        if not _is_int(schedule.offset_minutes):
            raise ScheduleConfigError(
                "offset_minutes must be an integer", schedule_kind=schedule.kind.value
            )
        return

    if isinstance(schedule, OneTimeSchedule):
        try:
            parse_iso(schedule.fire_at)
        except (TypeError, ValueError) as exc:
            raise ScheduleConfigError(
                f"fire_at is not an ISO timestamp: {schedule.fire_at!r}",
                schedule_kind=schedule.kind.value,
            ) from exc
        return

    raise ScheduleConfigError(f"Unsupported schedule type: {type(schedule).__name__}")


def schedule_from_dict(data: dict[str, Any]) -> Schedule:
    """Deserialize a schedule from a dict produced by ``to_dict``."""
    raw_kind = data.get("kind")
    try:
        kind = ScheduleKind(raw_kind)
    except ValueError as exc:
        raise ScheduleConfigError(f"Unknown schedule kind: {raw_kind!r}") from exc

    try:
        if kind is ScheduleKind.INTERVAL:
            return IntervalSchedule(interval_minutes=data["interval_minutes"])
        if kind is ScheduleKind.CRON:
            return CronSchedule(
                hour=data["hour"],
                minute=data["minute"],
                days_of_week=tuple(data.get("days_of_week", ())),
                days_of_month=tuple(data.get("days_of_month", ())),
            )
        if kind is ScheduleKind.DUE_DATE_RELATIVE:
            return DueDateRelativeSchedule(offset_minutes=data["offset_minutes"])
        return OneTimeSchedule(fire_at=data["fire_at"])
    except KeyError as exc:
        raise ScheduleConfigError(
            f"Missing schedule field {exc.args[0]!r}", schedule_kind=kind.value
        ) from exc
