"""Side-effect free preview of what a schedule rule would touch right now."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, tzinfo

from taskpilot.application.filter_predicates import FilterContext, evaluate_filters
from taskpilot.application.schedule_evaluator import MS_PER_MINUTE
from taskpilot.core.domain.automation_rule import AutomationRule, ScheduleTrigger
from taskpilot.core.domain.domain_event import DomainEvent, DomainEventType
from taskpilot.core.domain.schedule import DueDateRelativeSchedule
from taskpilot.core.domain.task import TaskSnapshot
from taskpilot.core.utils.time import from_ms, parse_iso_ms


@dataclass(frozen=True)
class DryRunResult:
    """Tasks a schedule rule would act on."""

    matching_task_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def total_count(self) -> int:
        return len(self.matching_task_ids)


def _trigger_reached(task: TaskSnapshot, offset_minutes: int, now_ms: int) -> bool:
    if not task.due_date or task.completed or task.is_subtask:
        return False
    return parse_iso_ms(task.due_date) + offset_minutes * MS_PER_MINUTE <= now_ms


def dry_run_scheduled_rule(
    rule: AutomationRule,
    now_ms: int,
    tasks: Iterable[TaskSnapshot],
    *,
    tz: tzinfo = UTC,
) -> DryRunResult:
    """Preview a schedule rule without evaluating or updating its state.

    Due-date-relative rules list the tasks whose trigger time has been
    reached, regardless of ``last_evaluated_at``. Other schedule rules list
    the project's tasks passing the rule's filters. Disabled, broken and
    event-triggered rules match nothing.
    """
    if not rule.is_active or not isinstance(rule.trigger, ScheduleTrigger):
        return DryRunResult()

    schedule = rule.trigger.schedule
    now = from_ms(now_ms)
    matching: list[str] = []

    for task in tasks:
        if rule.project_id is not None and task.project_id != rule.project_id:
            continue
        if isinstance(schedule, DueDateRelativeSchedule) and not _trigger_reached(
            task, schedule.offset_minutes, now_ms
        ):
            continue
        event = DomainEvent(
            event_type=DomainEventType.SCHEDULE_FIRED,
            entity_id=task.id,
            scope_id=task.project_id or "",
            changes={"trigger_type": rule.trigger.trigger_type.value},
            triggered_by_rule=rule.rule_id,
        )
        if evaluate_filters(rule.filters, FilterContext.from_event(event, now, task, tz=tz)):
            matching.append(task.id)

    return DryRunResult(matching_task_ids=tuple(matching))
