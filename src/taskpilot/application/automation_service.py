"""Automation service orchestrating rule evaluation and action execution.

Bridges the domain event bus, the rule engine and the host's action
executor. A user-initiated event starts a cascade: matching rules act, the
executor reports the follow-up events their actions produced, and those are
handled depth-first until nothing matches, the depth guard trips, or a
repeated ``rule:entity:action`` combination is skipped.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, tzinfo

import structlog

from taskpilot.application.filter_predicates import FilterContext, evaluate_filters
from taskpilot.application.rule_engine import RuleEngine
from taskpilot.application.schedule_evaluator import ScheduledRuleResult
from taskpilot.core.domain.automation_rule import AutomationRule
from taskpilot.core.domain.domain_event import DomainEvent, DomainEventType
from taskpilot.core.domain.errors import CascadeDepthError
from taskpilot.core.domain.schedule import IntervalSchedule
from taskpilot.core.domain.task import TaskSnapshot
from taskpilot.core.interfaces.action_executor import ActionExecutorProtocol
from taskpilot.core.interfaces.event_bus import DomainEventBusProtocol
from taskpilot.core.interfaces.repositories import TaskRepositoryProtocol
from taskpilot.core.utils.clock import Clock, SystemClock
from taskpilot.core.utils.time import from_ms

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExecutedAction:
    """One action the executor ran during a cascade."""

    rule_id: str
    entity_id: str
    action_type: str
    depth: int


@dataclass(frozen=True)
class ActionFailure:
    """An action that raised; its cascade branch was abandoned."""

    rule_id: str
    entity_id: str
    action_type: str
    error: Exception


@dataclass
class CascadeReport:
    """What happened while handling one user-initiated event."""

    executed: list[ExecutedAction] = field(default_factory=list)
    skipped_duplicates: list[str] = field(default_factory=list)
    failures: list[ActionFailure] = field(default_factory=list)
    cascade_limit_hits: int = 0
    events_handled: int = 0

    @property
    def max_depth_reached(self) -> int:
        return max((action.depth for action in self.executed), default=0)


def dedup_key(rule: AutomationRule, entity_id: str) -> str:
    return f"{rule.rule_id}:{entity_id}:{rule.action.action_type}"


class AutomationService:
    """Handles domain events and scheduled firings for a set of rules.

    Args:
        engine: Rule engine holding the current rule index.
        executor: Host implementation that performs rule actions.
        task_repository: Optional source of full task snapshots for filters.
        clock: Time source for date filters.
        tz: Timezone for calendar-day filters.
    """

    def __init__(
        self,
        engine: RuleEngine,
        executor: ActionExecutorProtocol,
        *,
        task_repository: TaskRepositoryProtocol | None = None,
        clock: Clock | None = None,
        tz: tzinfo = UTC,
    ) -> None:
        self._engine = engine
        self._executor = executor
        self._task_repository = task_repository
        self._clock = clock or SystemClock()
        self._tz = tz

    @property
    def engine(self) -> RuleEngine:
        return self._engine

    def attach(self, bus: DomainEventBusProtocol) -> Callable[[], None]:
        """Subscribe to ``bus``; returns the unsubscribe function.

        Only user-initiated events start a cascade from the bus. Follow-up
        events are already handled by the cascade that produced them.
        """
        return bus.subscribe(self._on_bus_event)

    def _on_bus_event(self, event: DomainEvent) -> None:
        if not event.is_user_initiated:
            return
        self.handle_event(event)

    def _snapshot(self, event: DomainEvent) -> TaskSnapshot | None:
        if self._task_repository is None or not event.entity_id:
            return None
        if event.event_type in (DomainEventType.SECTION_CREATED, DomainEventType.SECTION_UPDATED):
            return None
        return self._task_repository.find_by_id(event.entity_id)

    def handle_event(self, event: DomainEvent, dedup: set[str] | None = None) -> CascadeReport:
        """Evaluate ``event`` and run the actions of every matching rule.

        Args:
            event: Event to handle.
            dedup: Keys already executed in this cascade. A fresh set is
                created for user-initiated events.

        Returns:
            Report of the whole cascade below ``event``.

        Raises:
            CascadeDepthError: If the executor returns a follow-up event whose
                depth is not ``event.depth + 1``.
        """
        report = CascadeReport()
        self._handle(event, dedup if dedup is not None else set(), report)
        logger.info(
            "automation.cascade_completed",
            event_id=event.event_id,
            event_type=event.event_type.value,
            actions_executed=len(report.executed),
            duplicates_skipped=len(report.skipped_duplicates),
            action_failures=len(report.failures),
            cascade_limit_hits=report.cascade_limit_hits,
        )
        return report

    def _handle(self, event: DomainEvent, dedup: set[str], report: CascadeReport) -> None:
        report.events_handled += 1
        if event.depth >= self._engine.max_depth:
            report.cascade_limit_hits += 1

        rules = self._engine.evaluate(
            event, now=from_ms(self._clock.now_ms()), task=self._snapshot(event)
        )
        for rule in rules:
            self._run(rule, event, dedup, report)

    def _run(
        self,
        rule: AutomationRule,
        event: DomainEvent,
        dedup: set[str],
        report: CascadeReport,
    ) -> None:
        key = dedup_key(rule, event.entity_id)
        if key in dedup:
            report.skipped_duplicates.append(key)
            logger.debug("automation.duplicate_skipped", key=key, depth=event.depth)
            return
        dedup.add(key)

        try:
            follow_ups = self._executor.execute(rule, event)
        except Exception as exc:
            report.failures.append(
                ActionFailure(
                    rule_id=rule.rule_id,
                    entity_id=event.entity_id,
                    action_type=rule.action.action_type,
                    error=exc,
                )
            )
            logger.error(
                "automation.action_failed",
                rule_id=rule.rule_id,
                entity_id=event.entity_id,
                action_type=rule.action.action_type,
                depth=event.depth,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return

        report.executed.append(
            ExecutedAction(
                rule_id=rule.rule_id,
                entity_id=event.entity_id,
                action_type=rule.action.action_type,
                depth=event.depth,
            )
        )
        logger.info(
            "automation.action_executed",
            rule_id=rule.rule_id,
            rule_name=rule.name,
            entity_id=event.entity_id,
            action_type=rule.action.action_type,
            depth=event.depth,
            follow_up_count=len(follow_ups),
        )

        for follow_up in follow_ups:
            if follow_up.depth != event.depth + 1:
                raise CascadeDepthError(
                    f"Follow-up event of rule {rule.rule_id} has depth {follow_up.depth}, "
                    f"expected {event.depth + 1}",
                    details={"rule_id": rule.rule_id, "event_id": follow_up.event_id},
                )
            self._handle(follow_up, dedup, report)

    # -- Scheduled rules ---------------------------------------------------

    def scheduled_events(self, result: ScheduledRuleResult) -> list[DomainEvent]:
        """Build the synthetic ``schedule.fired`` events for a fired rule.

        Due-date-relative firings produce one event per matching task. Other
        schedules produce a single event whose entity is the rule itself.
        """
        rule = result.rule
        scope_id = rule.project_id or ""
        changes: dict[str, object] = {"trigger_type": rule.trigger.trigger_type.value}

        if result.evaluation.matching_task_ids:
            return [
                DomainEvent(
                    event_type=DomainEventType.SCHEDULE_FIRED,
                    entity_id=task_id,
                    scope_id=scope_id,
                    changes=dict(changes),
                    triggered_by_rule=rule.rule_id,
                )
                for task_id in result.evaluation.matching_task_ids
            ]

        schedule = getattr(rule.trigger, "schedule", None)
        if isinstance(schedule, IntervalSchedule):
            changes["interval_minutes"] = schedule.interval_minutes
        return [
            DomainEvent(
                event_type=DomainEventType.SCHEDULE_FIRED,
                entity_id=rule.rule_id,
                scope_id=scope_id,
                changes=changes,
                triggered_by_rule=rule.rule_id,
            )
        ]

    def handle_scheduled_rule(self, result: ScheduledRuleResult) -> CascadeReport:
        """Run a fired schedule rule's action and the cascade it starts.

        For per-task events the rule's filters are checked against the task
        snapshot first; tasks that no longer pass are skipped.
        """
        report = CascadeReport()
        dedup: set[str] = set()
        now = from_ms(self._clock.now_ms())

        for event in self.scheduled_events(result):
            report.events_handled += 1
            if result.evaluation.matching_task_ids and result.rule.filters:
                task = self._snapshot(event)
                context = FilterContext.from_event(event, now, task, tz=self._tz)
                if task is None or not evaluate_filters(result.rule.filters, context):
                    logger.debug(
                        "automation.scheduled_task_filtered",
                        rule_id=result.rule.rule_id,
                        task_id=event.entity_id,
                    )
                    continue
            self._run(result.rule, event, dedup, report)

        logger.info(
            "automation.scheduled_rule_handled",
            rule_id=result.rule.rule_id,
            trigger_type=result.rule.trigger.trigger_type.value,
            actions_executed=len(report.executed),
            action_failures=len(report.failures),
        )
        return report
