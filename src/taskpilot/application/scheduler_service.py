"""Asyncio-based scheduler driving schedule-triggered automation rules.

Each tick reads every rule and task from the repositories, evaluates the
schedule rules with the pure evaluator, stores the new
``last_evaluated_at`` and only then hands the firing to the callback. A
crash between the two steps therefore loses at most one firing instead of
repeating it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, tzinfo
from typing import Any

import structlog

from taskpilot.application.schedule_evaluator import (
    ScheduledRuleResult,
    evaluate_scheduled_rules,
)
from taskpilot.core.domain.automation_rule import AutomationRule, ScheduleTrigger
from taskpilot.core.domain.errors import TaskpilotError
from taskpilot.core.domain.schedule import (
    MIN_INTERVAL_MINUTES,
    CatchUpPolicy,
    IntervalSchedule,
    OneTimeSchedule,
    ScheduleEvaluation,
)
from taskpilot.core.interfaces.repositories import RuleRepositoryProtocol, TaskRepositoryProtocol
from taskpilot.core.utils.clock import Clock, SystemClock
from taskpilot.core.utils.time import parse_iso_ms, to_iso

logger = structlog.get_logger(__name__)

DEFAULT_TICK_INTERVAL_SECONDS = 60

RuleFiredCallback = Callable[[ScheduledRuleResult], Any]


@dataclass(frozen=True)
class TickSummary:
    """Outcome of one scheduler tick."""

    rules_evaluated: int = 0
    rules_fired: int = 0
    rules_skipped: int = 0
    tasks_affected: int = 0
    is_catch_up: bool = False
    errors: int = 0


class SchedulerService:
    """Periodically evaluates schedule rules and reports the ones that fire.

    Args:
        rule_repository: Storage for automation rules.
        task_repository: Read access to task snapshots.
        on_rule_fired: Called with every firing, after its state was stored.
        clock: Time source. Tests inject a FakeClock.
        tick_interval_seconds: Delay between two ticks of the running loop.
        tz: Timezone cron schedules are expressed in.
        min_interval_minutes: Smallest interval schedule accepted.
    """

    def __init__(
        self,
        rule_repository: RuleRepositoryProtocol,
        task_repository: TaskRepositoryProtocol,
        on_rule_fired: RuleFiredCallback,
        *,
        clock: Clock | None = None,
        tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
        tz: tzinfo = UTC,
        min_interval_minutes: int = MIN_INTERVAL_MINUTES,
    ) -> None:
        self._rules = rule_repository
        self._tasks = task_repository
        self._on_rule_fired = on_rule_fired
        self._clock = clock or SystemClock()
        self._tick_interval_seconds = tick_interval_seconds
        self._tz = tz
        self._min_interval_minutes = min_interval_minutes
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Whether the tick loop is active."""
        return self._loop_task is not None

    @property
    def stale_threshold_ms(self) -> int:
        """Age after which a non-fired rule's ``last_evaluated_at`` is advanced."""
        return int(self._tick_interval_seconds * 1000) * 2

    # -- Lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Run a catch-up tick, then tick every ``tick_interval_seconds``."""
        if self._loop_task is not None:
            return
        self.tick(is_catch_up=True)
        self._loop_task = asyncio.create_task(self._run_loop(), name="taskpilot-scheduler")
        logger.info("scheduler.started", tick_interval_seconds=self._tick_interval_seconds)

    async def stop(self) -> None:
        """Cancel the tick loop."""
        task = self._loop_task
        if task is None:
            return
        self._loop_task = None
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("scheduler.stopped")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval_seconds)
            self.tick(is_catch_up=False)

    # -- Ticks -------------------------------------------------------------

    def tick(self, is_catch_up: bool = False) -> TickSummary:
        """Evaluate every schedule rule once.

        Args:
            is_catch_up: True for the tick run after start or after the host
                was suspended. Rules with the ``skip_missed`` policy record
                their new state but do not fire on such ticks.

        Returns:
            Counts of what happened during the tick.
        """
        try:
            rules = self._rules.find_all()
            tasks = self._tasks.find_all()
        except Exception as exc:
            # Retry on the next tick
            logger.warning("scheduler.repository_failed", error=str(exc))
            return TickSummary(is_catch_up=is_catch_up, errors=1)

        now_ms = self._clock.now_ms()
        schedule_rules = [r for r in rules if r.is_active and r.is_scheduled]
        fired_ids: set[str] = set()
        invalid_ids: set[str] = set()
        fired = skipped = tasks_affected = errors = 0

        for rule in schedule_rules:
            try:
                results = evaluate_scheduled_rules(
                    now_ms,
                    [rule],
                    tasks,
                    tz=self._tz,
                    min_interval_minutes=self._min_interval_minutes,
                )
            except TaskpilotError as exc:
                errors += 1
                invalid_ids.add(rule.rule_id)
                logger.warning(
                    "scheduler.rule_invalid", rule_id=rule.rule_id, error=exc.message
                )
                continue

            for result in results:
                fired_ids.add(rule.rule_id)
                self._store_last_evaluated_at(rule.rule_id, result.evaluation.new_last_evaluated_at)

                trigger = rule.trigger
                if not isinstance(trigger, ScheduleTrigger):
                    continue
                if is_catch_up and trigger.catch_up_policy == CatchUpPolicy.SKIP_MISSED:
                    skipped += 1
                    logger.info("scheduler.catch_up_skipped", rule_id=rule.rule_id)
                    continue

                if not self._fire(result):
                    errors += 1

                if isinstance(trigger.schedule, OneTimeSchedule):
                    self._disable(rule.rule_id)

                fired += 1
                tasks_affected += len(result.evaluation.matching_task_ids) or 1

        self._advance_non_fired(schedule_rules, fired_ids | invalid_ids, now_ms)

        summary = TickSummary(
            rules_evaluated=len(schedule_rules),
            rules_fired=fired,
            rules_skipped=skipped,
            tasks_affected=tasks_affected,
            is_catch_up=is_catch_up,
            errors=errors,
        )
        if fired or skipped or errors:
            logger.info(
                "scheduler.tick_completed",
                rules_evaluated=summary.rules_evaluated,
                rules_fired=summary.rules_fired,
                rules_skipped=summary.rules_skipped,
                tasks_affected=summary.tasks_affected,
                is_catch_up=is_catch_up,
                errors=errors,
            )
        return summary

    def run_now(self, rule: AutomationRule) -> bool:
        """Fire a schedule rule immediately, regardless of its schedule.

        Returns:
            False when the rule has no schedule trigger.
        """
        if not isinstance(rule.trigger, ScheduleTrigger):
            return False
        now_iso = to_iso(self._clock.now_ms())
        self._store_last_evaluated_at(rule.rule_id, now_iso)
        evaluation = ScheduleEvaluation(should_fire=True, new_last_evaluated_at=now_iso)
        logger.info("scheduler.run_now", rule_id=rule.rule_id)
        self._fire(ScheduledRuleResult(rule=rule, evaluation=evaluation))
        return True

    # -- Helpers -----------------------------------------------------------

    def _fire(self, result: ScheduledRuleResult) -> bool:
        logger.info(
            "scheduler.rule_fired",
            rule_id=result.rule.rule_id,
            trigger_type=result.rule.trigger.trigger_type.value,
            matching_tasks=len(result.evaluation.matching_task_ids),
        )
        try:
            self._on_rule_fired(result)
        except Exception as exc:
            logger.error(
                "scheduler.callback_failed",
                rule_id=result.rule.rule_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        return True

    def _store_last_evaluated_at(self, rule_id: str, last_evaluated_at: str) -> None:
        current = self._rules.find_by_id(rule_id)
        if current is None or not isinstance(current.trigger, ScheduleTrigger):
            return
        try:
            self._rules.save(current.with_last_evaluated_at(last_evaluated_at))
        except Exception as exc:
            # The rule may fire again next tick; evaluation stays idempotent
            logger.warning("scheduler.state_save_failed", rule_id=rule_id, error=str(exc))

    def _disable(self, rule_id: str) -> None:
        current = self._rules.find_by_id(rule_id)
        if current is None:
            return
        try:
            self._rules.save(replace(current, enabled=False))
        except Exception as exc:
            logger.warning("scheduler.disable_failed", rule_id=rule_id, error=str(exc))
            return
        logger.info("scheduler.one_time_rule_disabled", rule_id=rule_id)

    def _advance_non_fired(
        self, rules: list[AutomationRule], handled_ids: set[str], now_ms: int
    ) -> None:
        """Move stale ``last_evaluated_at`` forward for rules that did not fire.

        State older than two ticks advances to ``now``, so a long absence
        never leaves a wide catch-up window behind. Interval rules are left
        alone: an elapsed interval always fires, and moving the timestamp of
        one that has not elapsed would postpone its next run.
        """
        now_iso = to_iso(now_ms)
        for rule in rules:
            if rule.rule_id in handled_ids:
                continue
            trigger = rule.trigger
            if not isinstance(trigger, ScheduleTrigger):
                continue
            if isinstance(trigger.schedule, IntervalSchedule):
                continue
            last_ms = parse_iso_ms(trigger.last_evaluated_at) if trigger.last_evaluated_at else 0
            if now_ms - last_ms > self.stale_threshold_ms:
                self._store_last_evaluated_at(rule.rule_id, now_iso)
