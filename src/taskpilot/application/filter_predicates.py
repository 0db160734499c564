"""Filter predicates for automation rules.

A rule's filters are a list of :class:`FilterSpec` values combined with AND.
Each spec names a predicate kind; :data:`FILTER_PREDICATE_MAP` is the single
registry of supported kinds, shared by evaluation and rule validation.

Predicates never mutate the context. Task predicates evaluate to False when
the context carries no task snapshot, or when a partial snapshot does not
know the fields the predicate reads.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from types import MappingProxyType
from typing import Any

from taskpilot.core.domain.automation_rule import FilterSpec
from taskpilot.core.domain.domain_event import DomainEvent, DomainEventType
from taskpilot.core.domain.errors import ConfigError, UnknownFilterError
from taskpilot.core.domain.task import TaskSnapshot
from taskpilot.core.utils.dates import add_months, add_working_days, start_of_week
from taskpilot.core.utils.time import parse_iso

MS_PER_HOUR = 3_600_000
MS_PER_DAY = 86_400_000

_TASK_EVENT_TYPES = frozenset(
    {
        DomainEventType.TASK_CREATED,
        DomainEventType.TASK_UPDATED,
        DomainEventType.TASK_DELETED,
        DomainEventType.SCHEDULE_FIRED,
    }
)


@dataclass(frozen=True)
class FilterContext:
    """Read-only input for filter evaluation.

    Attributes:
        now: Reference instant for date-based predicates.
        event: The triggering event (synthetic for schedule ticks).
        task: Snapshot of the task being evaluated, if any.
        tz: Timezone calendar-day predicates are evaluated in.
    """

    now: datetime
    event: DomainEvent | None = None
    task: TaskSnapshot | None = None
    tz: tzinfo = UTC

    @classmethod
    def from_event(
        cls,
        event: DomainEvent,
        now: datetime,
        task: TaskSnapshot | None = None,
        *,
        tz: tzinfo = UTC,
    ) -> FilterContext:
        """Build a context for ``event``.

        Without an explicit snapshot, task events get a snapshot built from
        the event's changed fields. Only a creation event carries the whole
        entity; for every other event the snapshot is partial.
        """
        if task is None and event.event_type in _TASK_EVENT_TYPES and event.entity_id:
            task = TaskSnapshot.from_changes(
                event.entity_id,
                event.scope_id,
                event.changes,
                complete=event.event_type is DomainEventType.TASK_CREATED,
            )
        return cls(now=now, event=event, task=task, tz=tz)

    def today(self) -> date:
        return self.now.astimezone(self.tz).date()

    def local_date(self, iso_value: str) -> date:
        return parse_iso(iso_value).astimezone(self.tz).date()

    def task_knowing(self, *names: str) -> TaskSnapshot | None:
        """The task snapshot, provided it knows every named field."""
        if self.task is None or not self.task.knows(*names):
            return None
        return self.task


FilterPredicate = Callable[[FilterSpec, FilterContext], bool]


# ---------------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------------


def _param(spec: FilterSpec, name: str) -> Any:
    try:
        return spec.params[name]
    except KeyError:
        raise ConfigError(
            f"Filter '{spec.kind}' requires parameter '{name}'",
            details={"filter_kind": spec.kind, "parameter": name},
        ) from None


def _threshold_ms(spec: FilterSpec) -> int:
    value = int(_param(spec, "value"))
    unit = spec.params.get("unit", "days")
    if unit == "days":
        return value * MS_PER_DAY
    if unit == "hours":
        return value * MS_PER_HOUR
    raise ConfigError(
        f"Filter '{spec.kind}' does not support unit '{unit}'",
        details={"filter_kind": spec.kind, "unit": unit},
    )


def _target_date(spec: FilterSpec, ctx: FilterContext, name: str) -> date:
    value = int(_param(spec, name))
    unit = spec.params.get("unit", "days")
    today = ctx.today()
    if unit == "days":
        return today + timedelta(days=value)
    if unit == "working_days":
        return add_working_days(value, today)
    raise ConfigError(
        f"Filter '{spec.kind}' does not support unit '{unit}'",
        details={"filter_kind": spec.kind, "unit": unit},
    )


def _elapsed_ms(ctx: FilterContext, iso_value: str) -> float:
    return (ctx.now - parse_iso(iso_value)) / timedelta(milliseconds=1)


# ---------------------------------------------------------------------------
# Section and status predicates
# ---------------------------------------------------------------------------


def _in_section(spec: FilterSpec, ctx: FilterContext) -> bool:
    section_id = _param(spec, "section_id")
    task = ctx.task_knowing("section_id")
    return task is not None and task.section_id == section_id


def _not_in_section(spec: FilterSpec, ctx: FilterContext) -> bool:
    section_id = _param(spec, "section_id")
    task = ctx.task_knowing("section_id")
    return task is not None and task.section_id != section_id


def _is_complete(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("completed")
    return task is not None and task.completed


def _is_incomplete(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("completed")
    return task is not None and not task.completed


# ---------------------------------------------------------------------------
# Due date predicates
# ---------------------------------------------------------------------------


def _has_due_date(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("due_date")
    return task is not None and task.due_date is not None


def _no_due_date(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("due_date")
    return task is not None and task.due_date is None


def _is_overdue(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("due_date", "completed")
    if task is None or task.due_date is None or task.completed:
        return False
    return parse_iso(task.due_date) < ctx.now


def _due_day(ctx: FilterContext) -> date | None:
    task = ctx.task_knowing("due_date")
    if task is None or task.due_date is None:
        return None
    return ctx.local_date(task.due_date)


def _due_today(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    return due is not None and due == ctx.today()


def _due_tomorrow(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    return due is not None and due == ctx.today() + timedelta(days=1)


def _due_this_week(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    return due is not None and start_of_week(due) == start_of_week(ctx.today())


def _due_next_week(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    if due is None:
        return False
    next_monday = start_of_week(ctx.today()) + timedelta(days=7)
    return next_monday <= due <= next_monday + timedelta(days=6)


def _due_this_month(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    today = ctx.today()
    return due is not None and (due.year, due.month) == (today.year, today.month)


def _due_next_month(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    if due is None:
        return False
    next_month = add_months(ctx.today(), 1)
    return (due.year, due.month) == (next_month.year, next_month.month)


def _negated(predicate: FilterPredicate) -> FilterPredicate:
    """Logical negation of a due date predicate; tasks without a due date match."""

    def _predicate(spec: FilterSpec, ctx: FilterContext) -> bool:
        task = ctx.task_knowing("due_date")
        if task is None:
            return False
        if task.due_date is None:
            return True
        return not predicate(spec, ctx)

    return _predicate


def _due_in_less_than(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    if due is None:
        return False
    return ctx.today() < due <= _target_date(spec, ctx, "value")


def _due_in_more_than(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    return due is not None and due > _target_date(spec, ctx, "value")


def _due_in_exactly(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    return due is not None and due == _target_date(spec, ctx, "value")


def _due_in_between(spec: FilterSpec, ctx: FilterContext) -> bool:
    due = _due_day(ctx)
    if due is None:
        return False
    return _target_date(spec, ctx, "min_value") <= due <= _target_date(spec, ctx, "max_value")


# ---------------------------------------------------------------------------
# Age predicates (strict ">" on elapsed time)
# ---------------------------------------------------------------------------


def _created_more_than(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("created_at")
    if task is None or task.created_at is None:
        return False
    return _elapsed_ms(ctx, task.created_at) > _threshold_ms(spec)


def _completed_more_than(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("completed", "completed_at")
    if task is None or not task.completed:
        return False
    # Tasks completed before completed_at was tracked count as long done
    if task.completed_at is None:
        return True
    return _elapsed_ms(ctx, task.completed_at) > _threshold_ms(spec)


def _last_updated_more_than(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("updated_at")
    if task is None or task.updated_at is None:
        return False
    return _elapsed_ms(ctx, task.updated_at) > _threshold_ms(spec)


def _in_section_for_more_than(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("moved_to_section_at", "created_at")
    if task is None:
        return False
    since = task.moved_to_section_at or task.created_at
    if since is None:
        return False
    return _elapsed_ms(ctx, since) > _threshold_ms(spec)


def _overdue_by_more_than(spec: FilterSpec, ctx: FilterContext) -> bool:
    task = ctx.task_knowing("due_date", "completed")
    if task is None or task.due_date is None or task.completed:
        return False
    return _elapsed_ms(ctx, task.due_date) > _threshold_ms(spec)


# ---------------------------------------------------------------------------
# Event predicates
# ---------------------------------------------------------------------------


def _field_changed(spec: FilterSpec, ctx: FilterContext) -> bool:
    name = _param(spec, "field")
    event = ctx.event
    if event is None or name not in event.changes:
        return False
    return event.changes[name] != event.previous_values.get(name)


def _field_transitioned(spec: FilterSpec, ctx: FilterContext) -> bool:
    name = _param(spec, "field")
    expected_from = _param(spec, "from")
    expected_to = _param(spec, "to")
    event = ctx.event
    if event is None or name not in event.changes:
        return False
    return (
        event.previous_values.get(name) == expected_from
        and event.changes[name] == expected_to
    )


FILTER_PREDICATE_MAP: Mapping[str, FilterPredicate] = MappingProxyType(
    {
        "in_section": _in_section,
        "not_in_section": _not_in_section,
        "is_complete": _is_complete,
        "is_incomplete": _is_incomplete,
        "has_due_date": _has_due_date,
        "no_due_date": _no_due_date,
        "is_overdue": _is_overdue,
        "due_today": _due_today,
        "due_tomorrow": _due_tomorrow,
        "due_this_week": _due_this_week,
        "due_next_week": _due_next_week,
        "due_this_month": _due_this_month,
        "due_next_month": _due_next_month,
        "not_due_today": _negated(_due_today),
        "not_due_tomorrow": _negated(_due_tomorrow),
        "not_due_this_week": _negated(_due_this_week),
        "not_due_next_week": _negated(_due_next_week),
        "not_due_this_month": _negated(_due_this_month),
        "not_due_next_month": _negated(_due_next_month),
        "due_in_less_than": _due_in_less_than,
        "due_in_more_than": _due_in_more_than,
        "due_in_exactly": _due_in_exactly,
        "due_in_between": _due_in_between,
        "created_more_than": _created_more_than,
        "completed_more_than": _completed_more_than,
        "last_updated_more_than": _last_updated_more_than,
        "not_modified_in": _last_updated_more_than,
        "in_section_for_more_than": _in_section_for_more_than,
        "overdue_by_more_than": _overdue_by_more_than,
        "field_changed": _field_changed,
        "field_transitioned": _field_transitioned,
    }
)


def supported_filter_kinds() -> list[str]:
    """Sorted names of every supported predicate kind."""
    return sorted(FILTER_PREDICATE_MAP)


def evaluate_filter(spec: FilterSpec, context: FilterContext) -> bool:
    """Evaluate one filter.

    Raises:
        UnknownFilterError: If ``spec.kind`` is not a registered predicate.
        ConfigError: If a required predicate parameter is missing or invalid.
    """
    predicate = FILTER_PREDICATE_MAP.get(spec.kind)
    if predicate is None:
        raise UnknownFilterError(spec.kind)
    return predicate(spec, context)


def evaluate_filters(specs: Iterable[FilterSpec], context: FilterContext) -> bool:
    """AND of all filters. An empty list matches."""
    return all(evaluate_filter(spec, context) for spec in specs)
