"""Schedule evaluation for time-based automation rules.

Every function here is pure: given "now" as epoch milliseconds, the rule's
``last_evaluated_at`` and the schedule, it decides whether the rule fires
and which ``last_evaluated_at`` the caller should store next.

All evaluators share the same contract:

* deterministic - identical inputs give identical results;
* idempotent - re-evaluating at the same instant with the returned
  ``new_last_evaluated_at`` never fires again;
* catch-up safe - an absence of any length produces at most one fire.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo

from taskpilot.core.domain.automation_rule import AutomationRule, ScheduleTrigger
from taskpilot.core.domain.errors import ScheduleConfigError
from taskpilot.core.domain.schedule import (
    MIN_INTERVAL_MINUTES,
    CronSchedule,
    DueDateRelativeSchedule,
    IntervalSchedule,
    OneTimeSchedule,
    ScheduleEvaluation,
    validate_schedule,
)
from taskpilot.core.domain.task import TaskSnapshot
from taskpilot.core.utils.dates import last_day_of_month, sunday_based_weekday
from taskpilot.core.utils.time import from_ms, parse_iso_ms, to_iso, to_ms

MS_PER_MINUTE = 60_000

# Longest gap between two occurrences of a valid cron schedule: a single
# month day (clamped to short months) recurs at most 31 days apart.
CRON_LOOKBACK_DAYS = 31

# Window used for a due-date-relative rule that was never evaluated.
FIRST_EVALUATION_LOOKBACK_MS = 60_000


@dataclass(frozen=True)
class ScheduledRuleResult:
    """A schedule-triggered rule that fired, with its evaluation."""

    rule: AutomationRule
    evaluation: ScheduleEvaluation


def evaluate_interval_schedule(
    now_ms: int, last_evaluated_at: str | None, interval_minutes: int
) -> ScheduleEvaluation:
    """Fire once at least ``interval_minutes`` have passed since the last fire.

    A rule that was never evaluated fires immediately. Elapsed time equal to
    the interval fires.
    """
    now_iso = to_iso(now_ms)
    if last_evaluated_at is None:
        return ScheduleEvaluation(should_fire=True, new_last_evaluated_at=now_iso)

    elapsed = now_ms - parse_iso_ms(last_evaluated_at)
    if elapsed >= interval_minutes * MS_PER_MINUTE:
        return ScheduleEvaluation(should_fire=True, new_last_evaluated_at=now_iso)

    return ScheduleEvaluation(should_fire=False, new_last_evaluated_at=last_evaluated_at)


def find_most_recent_cron_match(
    now: datetime, schedule: CronSchedule, tz: tzinfo = UTC
) -> datetime | None:
    """Return the latest instant at or before ``now`` matching ``schedule``.

    Days are walked backwards in ``tz``. Month days past the end of a month
    match that month's last day, so a "31st" schedule fires on 30-day months
    and in February.

    Across daylight-saving changes a wall time that does not exist resolves
    to the instant it would have been under the previous offset (02:30 on a
    spring-forward day becomes 03:30), and a wall time that occurs twice
    matches its first occurrence only. Candidates are compared to ``now`` as
    absolute instants.

    Args:
        now: Reference instant. Naive values are taken as UTC.
        schedule: Validated cron schedule.
        tz: Timezone the hour and minute are expressed in.

    Returns:
        The matching instant as an aware datetime in ``tz``, or None when
        nothing matches within the look-back window.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    now_ms = to_ms(now)
    today = now.astimezone(tz).date()

    for day_offset in range(CRON_LOOKBACK_DAYS + 1):
        day = today - timedelta(days=day_offset)
        wall = datetime(day.year, day.month, day.day, schedule.hour, schedule.minute, tzinfo=tz)
        candidate = wall.astimezone(UTC).astimezone(tz)
        if to_ms(candidate) > now_ms:
            continue

        if schedule.days_of_week and sunday_based_weekday(day) not in schedule.days_of_week:
            continue

        if schedule.days_of_month:
            month_end = last_day_of_month(day.year, day.month)
            if day.day not in {min(d, month_end) for d in schedule.days_of_month}:
                continue

        return candidate

    return None


def evaluate_cron_schedule(
    now_ms: int,
    last_evaluated_at: str | None,
    schedule: CronSchedule,
    tz: tzinfo = UTC,
) -> ScheduleEvaluation:
    """Fire when a scheduled instant passed since ``last_evaluated_at``.

    On fire the stored timestamp advances to the matched instant, not to
    ``now``: however many instants were missed, exactly one fire happens and
    every earlier instant counts as handled. A null ``last_evaluated_at``
    sorts before every instant, so the first match always fires.
    """
    match = find_most_recent_cron_match(from_ms(now_ms), schedule, tz)
    if match is None:
        return ScheduleEvaluation(
            should_fire=False,
            new_last_evaluated_at=last_evaluated_at if last_evaluated_at is not None else to_iso(now_ms),
        )

    match_ms = to_ms(match)
    if last_evaluated_at is None or match_ms > parse_iso_ms(last_evaluated_at):
        return ScheduleEvaluation(should_fire=True, new_last_evaluated_at=to_iso(match_ms))

    return ScheduleEvaluation(should_fire=False, new_last_evaluated_at=last_evaluated_at)


def evaluate_due_date_relative_schedule(
    now_ms: int,
    last_evaluated_at: str | None,
    offset_minutes: int,
    tasks: Iterable[TaskSnapshot],
) -> ScheduleEvaluation:
    """Collect tasks whose ``due_date + offset`` falls in ``(last_evaluated_at, now]``.

    Completed tasks, subtasks and tasks without a due date never match. The
    window always advances to ``now``. A rule that was never evaluated looks
    back one minute.
    """
    if last_evaluated_at is not None:
        window_start = parse_iso_ms(last_evaluated_at)
    else:
        window_start = now_ms - FIRST_EVALUATION_LOOKBACK_MS
    offset_ms = offset_minutes * MS_PER_MINUTE

    matching: list[str] = []
    for task in tasks:
        if not task.due_date or task.completed or task.parent_task_id is not None:
            continue
        trigger_ms = parse_iso_ms(task.due_date) + offset_ms
        if window_start < trigger_ms <= now_ms:
            matching.append(task.id)

    return ScheduleEvaluation(
        should_fire=bool(matching),
        new_last_evaluated_at=to_iso(now_ms),
        matching_task_ids=tuple(matching),
    )


def evaluate_one_time_schedule(
    now_ms: int, last_evaluated_at: str | None, fire_at: str
) -> ScheduleEvaluation:
    """Fire once when ``fire_at`` has been reached and was not handled yet.

    Disabling the rule afterwards is the scheduler's job.
    """
    now_iso = to_iso(now_ms)
    fire_at_ms = parse_iso_ms(fire_at)

    if now_ms < fire_at_ms:
        return ScheduleEvaluation(
            should_fire=False,
            new_last_evaluated_at=last_evaluated_at if last_evaluated_at is not None else now_iso,
        )

    if last_evaluated_at is not None and parse_iso_ms(last_evaluated_at) >= fire_at_ms:
        return ScheduleEvaluation(should_fire=False, new_last_evaluated_at=last_evaluated_at)

    return ScheduleEvaluation(should_fire=True, new_last_evaluated_at=now_iso)


def evaluate_schedule(
    now_ms: int,
    trigger: ScheduleTrigger,
    tasks: Iterable[TaskSnapshot] = (),
    *,
    tz: tzinfo = UTC,
) -> ScheduleEvaluation:
    """Dispatch to the evaluator for the trigger's schedule kind."""
    last = trigger.last_evaluated_at
    match trigger.schedule:
        case IntervalSchedule(interval_minutes=minutes):
            return evaluate_interval_schedule(now_ms, last, minutes)
        case CronSchedule() as cron:
            return evaluate_cron_schedule(now_ms, last, cron, tz)
        case DueDateRelativeSchedule(offset_minutes=offset):
            return evaluate_due_date_relative_schedule(now_ms, last, offset, tasks)
        case OneTimeSchedule(fire_at=fire_at):
            return evaluate_one_time_schedule(now_ms, last, fire_at)
        case other:
            raise ScheduleConfigError(f"Unsupported schedule type: {type(other).__name__}")


def evaluate_scheduled_rules(
    now_ms: int,
    rules: Sequence[AutomationRule],
    tasks: Sequence[TaskSnapshot],
    *,
    tz: tzinfo = UTC,
    min_interval_minutes: int = MIN_INTERVAL_MINUTES,
) -> list[ScheduledRuleResult]:
    """Evaluate every active schedule-triggered rule and return those that fire.

    Due-date-relative rules only see tasks of their own project. Schedules
    are validated before evaluation; a malformed one raises
    :class:`ScheduleConfigError`.
    """
    results: list[ScheduledRuleResult] = []

    for rule in rules:
        if not rule.is_active or not isinstance(rule.trigger, ScheduleTrigger):
            continue

        validate_schedule(rule.trigger.schedule, min_interval_minutes=min_interval_minutes)

        scoped_tasks: Iterable[TaskSnapshot] = tasks
        if isinstance(rule.trigger.schedule, DueDateRelativeSchedule):
            scoped_tasks = [
                t for t in tasks if rule.project_id is None or t.project_id == rule.project_id
            ]

        evaluation = evaluate_schedule(now_ms, rule.trigger, scoped_tasks, tz=tz)
        if evaluation.should_fire:
            results.append(ScheduledRuleResult(rule=rule, evaluation=evaluation))

    return results
