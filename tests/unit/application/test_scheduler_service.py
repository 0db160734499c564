"""Tests for the scheduler driver."""

from datetime import UTC, datetime

import pytest

from taskpilot.application.schedule_evaluator import ScheduledRuleResult
from taskpilot.application.scheduler_service import SchedulerService
from taskpilot.core.domain.automation_rule import ScheduleTrigger, TriggerType
from taskpilot.core.domain.schedule import (
    CatchUpPolicy,
    DueDateRelativeSchedule,
    IntervalSchedule,
    OneTimeSchedule,
)
from taskpilot.core.domain.task import TaskSnapshot
from taskpilot.core.utils.clock import FakeClock
from taskpilot.core.utils.time import to_iso
from taskpilot.infrastructure.persistence import InMemoryRuleRepository, InMemoryTaskRepository

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)
NOW_ISO = "2025-03-10T12:00:00.000Z"
MINUTE_MS = 60_000


class FiredRecorder:
    """Callback recording every firing together with the stored rule state."""

    def __init__(self, rules: InMemoryRuleRepository, fail: bool = False) -> None:
        self.results: list[ScheduledRuleResult] = []
        self.stored_at_fire: list[str | None] = []
        self._rules = rules
        self._fail = fail

    def __call__(self, result: ScheduledRuleResult) -> None:
        self.results.append(result)
        stored = self._rules.find_by_id(result.rule.rule_id)
        self.stored_at_fire.append(stored.trigger.last_evaluated_at if stored else None)
        if self._fail:
            raise RuntimeError("callback failed")


class FailingRuleRepository(InMemoryRuleRepository):
    def find_all(self):
        raise ConnectionError("storage offline")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


def make_scheduler(rules, clock, tasks=(), fail=False, **kwargs):
    rule_repo = rules if isinstance(rules, InMemoryRuleRepository) else InMemoryRuleRepository(rules)
    recorder = FiredRecorder(rule_repo, fail=fail)
    scheduler = SchedulerService(
        rule_repo, InMemoryTaskRepository(tasks), recorder, clock=clock, **kwargs
    )
    return scheduler, rule_repo, recorder


def last_evaluated(repo: InMemoryRuleRepository, rule_id: str) -> str | None:
    return repo.find_by_id(rule_id).trigger.last_evaluated_at


class TestTick:
    """Tests for a single scheduler tick."""

    def test_never_evaluated_interval_rule_fires(self, make_rule, clock) -> None:
        rule = make_rule(IntervalSchedule(interval_minutes=30), rule_id="r1")
        scheduler, repo, recorder = make_scheduler([rule], clock)

        summary = scheduler.tick()

        assert summary.rules_evaluated == 1
        assert summary.rules_fired == 1
        assert summary.tasks_affected == 1
        assert last_evaluated(repo, "r1") == NOW_ISO
        assert [r.rule.rule_id for r in recorder.results] == ["r1"]

    def test_state_is_stored_before_callback(self, make_rule, clock) -> None:
        rule = make_rule(IntervalSchedule(interval_minutes=30), rule_id="r1")
        scheduler, _, recorder = make_scheduler([rule], clock)

        scheduler.tick()

        assert recorder.stored_at_fire == [NOW_ISO]

    def test_second_tick_at_same_instant_does_not_fire(self, make_rule, clock) -> None:
        rule = make_rule(IntervalSchedule(interval_minutes=30), rule_id="r1")
        scheduler, _, recorder = make_scheduler([rule], clock)

        scheduler.tick()
        summary = scheduler.tick()

        assert summary.rules_fired == 0
        assert len(recorder.results) == 1

    def test_interval_fires_again_after_interval(self, make_rule, clock) -> None:
        rule = make_rule(IntervalSchedule(interval_minutes=30), rule_id="r1")
        scheduler, _, recorder = make_scheduler([rule], clock)

        scheduler.tick()
        clock.advance(29 * MINUTE_MS)
        scheduler.tick()
        clock.advance(1 * MINUTE_MS)
        scheduler.tick()

        assert len(recorder.results) == 2

    def test_disabled_rules_ignored(self, make_rule, clock) -> None:
        rule = make_rule(IntervalSchedule(interval_minutes=30), enabled=False)
        scheduler, _, recorder = make_scheduler([rule], clock)

        assert scheduler.tick().rules_evaluated == 0
        assert recorder.results == []

    def test_event_rules_ignored(self, make_rule, clock) -> None:
        scheduler, _, _ = make_scheduler([make_rule(TriggerType.TASK_CREATED)], clock)
        assert scheduler.tick().rules_evaluated == 0

    def test_skip_missed_records_state_without_firing_on_catch_up(self, make_rule, clock) -> None:
        trigger = ScheduleTrigger(
            schedule=IntervalSchedule(interval_minutes=30),
            last_evaluated_at="2025-03-09T12:00:00.000Z",
            catch_up_policy=CatchUpPolicy.SKIP_MISSED,
        )
        scheduler, repo, recorder = make_scheduler([make_rule(trigger, rule_id="r1")], clock)

        summary = scheduler.tick(is_catch_up=True)

        assert summary.is_catch_up is True
        assert summary.rules_skipped == 1
        assert summary.rules_fired == 0
        assert recorder.results == []
        assert last_evaluated(repo, "r1") == NOW_ISO

    def test_catch_up_latest_fires_on_catch_up(self, make_rule, clock) -> None:
        rule = make_rule(
            IntervalSchedule(interval_minutes=30),
            last_evaluated_at="2025-03-09T12:00:00.000Z",
        )
        scheduler, _, recorder = make_scheduler([rule], clock)

        scheduler.tick(is_catch_up=True)

        assert len(recorder.results) == 1

    def test_one_time_rule_disabled_after_firing(self, make_rule, clock) -> None:
        rule = make_rule(OneTimeSchedule(fire_at="2025-03-10T11:00:00.000Z"), rule_id="once")
        scheduler, repo, recorder = make_scheduler([rule], clock)

        scheduler.tick()
        clock.advance(60 * MINUTE_MS)
        scheduler.tick()

        assert len(recorder.results) == 1
        assert repo.find_by_id("once").enabled is False

    def test_due_date_rule_counts_affected_tasks(self, make_rule, clock) -> None:
        rule = make_rule(
            DueDateRelativeSchedule(offset_minutes=0),
            last_evaluated_at="2025-03-10T11:00:00.000Z",
        )
        tasks = [
            TaskSnapshot(id="t1", project_id="proj-1", due_date="2025-03-10T11:30:00.000Z"),
            TaskSnapshot(id="t2", project_id="proj-1", due_date="2025-03-10T11:45:00.000Z"),
            TaskSnapshot(id="t3", project_id="proj-1", due_date="2025-03-11T11:45:00.000Z"),
        ]
        scheduler, _, recorder = make_scheduler([rule], clock, tasks=tasks)

        summary = scheduler.tick()

        assert summary.tasks_affected == 2
        assert recorder.results[0].evaluation.matching_task_ids == ("t1", "t2")

    def test_callback_failure_keeps_state(self, make_rule, clock) -> None:
        rule = make_rule(IntervalSchedule(interval_minutes=30), rule_id="r1")
        scheduler, repo, _ = make_scheduler([rule], clock, fail=True)

        summary = scheduler.tick()

        assert summary.errors == 1
        assert last_evaluated(repo, "r1") == NOW_ISO

    def test_invalid_rule_does_not_block_others(self, make_rule, clock) -> None:
        invalid = make_rule(
            IntervalSchedule(interval_minutes=1),
            rule_id="too-fast",
            last_evaluated_at="2025-03-01T00:00:00.000Z",
        )
        valid = make_rule(IntervalSchedule(interval_minutes=30), rule_id="ok")
        scheduler, repo, recorder = make_scheduler([invalid, valid], clock)

        summary = scheduler.tick()

        assert summary.errors == 1
        assert [r.rule.rule_id for r in recorder.results] == ["ok"]
        assert last_evaluated(repo, "too-fast") == "2025-03-01T00:00:00.000Z"

    def test_repository_failure_reported(self, clock) -> None:
        scheduler, _, recorder = make_scheduler(FailingRuleRepository(), clock)

        summary = scheduler.tick()

        assert summary.errors == 1
        assert recorder.results == []


class TestAdvanceNonFired:
    """Tests for moving last_evaluated_at of rules that did not fire."""

    def test_stale_state_advanced(self, make_rule, clock) -> None:
        rule = make_rule(
            OneTimeSchedule(fire_at="2025-04-01T00:00:00.000Z"),
            rule_id="later",
            last_evaluated_at="2025-03-01T00:00:00.000Z",
        )
        scheduler, repo, _ = make_scheduler([rule], clock)

        scheduler.tick()

        assert last_evaluated(repo, "later") == NOW_ISO

    def test_recent_state_kept(self, make_rule, clock) -> None:
        recent = to_iso(clock.now_ms() - MINUTE_MS)
        rule = make_rule(
            OneTimeSchedule(fire_at="2025-04-01T00:00:00.000Z"),
            rule_id="later",
            last_evaluated_at=recent,
        )
        scheduler, repo, _ = make_scheduler([rule], clock)

        scheduler.tick()

        assert last_evaluated(repo, "later") == recent

    def test_interval_rule_not_advanced_before_interval(self, make_rule, clock) -> None:
        last = "2025-03-10T11:50:00.000Z"
        rule = make_rule(IntervalSchedule(interval_minutes=30), rule_id="r1", last_evaluated_at=last)
        scheduler, repo, _ = make_scheduler([rule], clock)

        scheduler.tick()

        assert last_evaluated(repo, "r1") == last


class TestRunNow:
    def test_fires_schedule_rule_immediately(self, make_rule, clock) -> None:
        rule = make_rule(
            IntervalSchedule(interval_minutes=30),
            rule_id="r1",
            last_evaluated_at="2025-03-10T11:59:00.000Z",
        )
        scheduler, repo, recorder = make_scheduler([rule], clock)

        assert scheduler.run_now(rule) is True
        assert len(recorder.results) == 1
        assert last_evaluated(repo, "r1") == NOW_ISO

    def test_event_rule_rejected(self, make_rule, clock) -> None:
        rule = make_rule(TriggerType.TASK_CREATED)
        scheduler, _, recorder = make_scheduler([rule], clock)

        assert scheduler.run_now(rule) is False
        assert recorder.results == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_catch_up_tick(self, make_rule, clock) -> None:
        rule = make_rule(IntervalSchedule(interval_minutes=30))
        scheduler, _, recorder = make_scheduler([rule], clock, tick_interval_seconds=3600)

        await scheduler.start()
        try:
            assert scheduler.is_running is True
            assert len(recorder.results) == 1
        finally:
            await scheduler.stop()

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, make_rule, clock) -> None:
        rule = make_rule(IntervalSchedule(interval_minutes=30))
        scheduler, _, recorder = make_scheduler([rule], clock, tick_interval_seconds=3600)

        await scheduler.start()
        await scheduler.start()
        await scheduler.stop()

        assert len(recorder.results) == 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self, clock) -> None:
        scheduler, _, _ = make_scheduler([], clock)
        await scheduler.stop()
        assert scheduler.is_running is False

    def test_stale_threshold_is_two_ticks(self, clock) -> None:
        scheduler, _, _ = make_scheduler([], clock, tick_interval_seconds=30)
        assert scheduler.stale_threshold_ms == 60_000
