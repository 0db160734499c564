"""Property tests for cascade termination.

Whatever follow-up events the actions produce, a cascade never executes an
action at or beyond the maximum depth and never runs the same
rule/entity/action combination twice.
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings, strategies as st

from taskpilot.application.automation_service import AutomationService, dedup_key
from taskpilot.application.rule_engine import RuleEngine
from taskpilot.core.domain.automation_rule import AutomationRule, EventTrigger, RuleAction, TriggerType
from taskpilot.core.domain.domain_event import DomainEvent, DomainEventType
from taskpilot.core.utils.clock import FakeClock

pytestmark = pytest.mark.property

ENTITY_IDS = [f"task-{i}" for i in range(4)]


class FanOutExecutor:
    """Emits ``fan_out`` updates of pseudo-random entities for every action."""

    def __init__(self, fan_out: int, seed: int) -> None:
        self.fan_out = fan_out
        self.seed = seed
        self.calls: list[tuple[AutomationRule, DomainEvent]] = []

    def execute(self, rule: AutomationRule, event: DomainEvent) -> list[DomainEvent]:
        self.calls.append((rule, event))
        return [
            event.caused_by(
                rule.rule_id,
                event_type=DomainEventType.TASK_UPDATED,
                entity_id=ENTITY_IDS[(self.seed + len(self.calls) + i) % len(ENTITY_IDS)],
            )
            for i in range(self.fan_out)
        ]


@given(
    rule_count=st.integers(1, 3),
    fan_out=st.integers(0, 3),
    seed=st.integers(0, 100),
    max_depth=st.integers(1, 6),
)
@settings(max_examples=100, deadline=None)
def test_cascade_terminates_within_depth(
    rule_count: int, fan_out: int, seed: int, max_depth: int
) -> None:
    rules = [
        AutomationRule(
            rule_id=f"rule-{i}",
            project_id="proj-1",
            trigger=EventTrigger(TriggerType.TASK_UPDATED),
            action=RuleAction(action_type=f"action-{i}"),
        )
        for i in range(rule_count)
    ]
    executor = FanOutExecutor(fan_out, seed)
    service = AutomationService(RuleEngine(rules, max_depth=max_depth), executor, clock=FakeClock(0))

    report = service.handle_event(DomainEvent(DomainEventType.TASK_UPDATED, "task-0", "proj-1"))

    assert all(event.depth < max_depth for _, event in executor.calls)
    keys = [dedup_key(rule, event.entity_id) for rule, event in executor.calls]
    assert len(keys) == len(set(keys))
    assert len(executor.calls) <= rule_count * len(ENTITY_IDS)
    assert len(report.executed) == len(executor.calls)
