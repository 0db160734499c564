"""Test configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
import structlog

from taskpilot.core.domain.automation_rule import (
    AutomationRule,
    EventTrigger,
    FilterSpec,
    RuleAction,
    ScheduleTrigger,
    Trigger,
    TriggerType,
)
from taskpilot.core.domain.domain_event import DomainEvent
from taskpilot.core.domain.schedule import Schedule


@pytest.fixture(autouse=True)
def reset_structlog():
    """CLI tests reconfigure structlog; restore defaults after every test."""
    yield
    structlog.reset_defaults()


class RecordingExecutor:
    """Action executor that records calls and returns scripted follow-ups."""

    def __init__(
        self,
        follow_ups: Callable[[AutomationRule, DomainEvent], list[DomainEvent]] | None = None,
    ) -> None:
        self.calls: list[tuple[AutomationRule, DomainEvent]] = []
        self._follow_ups = follow_ups

    def execute(self, rule: AutomationRule, event: DomainEvent) -> list[DomainEvent]:
        self.calls.append((rule, event))
        if self._follow_ups is None:
            return []
        return self._follow_ups(rule, event)


@pytest.fixture
def make_rule() -> Callable[..., AutomationRule]:
    """Factory for rules with sensible defaults."""

    def _make(
        trigger: Trigger | TriggerType | Schedule | None = None,
        *,
        rule_id: str | None = None,
        project_id: str | None = "proj-1",
        filters: list[FilterSpec] | None = None,
        action_type: str = "move_card_to_bottom_of_section",
        last_evaluated_at: str | None = None,
        **kwargs: Any,
    ) -> AutomationRule:
        if trigger is None:
            trigger = EventTrigger(TriggerType.CARD_MARKED_COMPLETE)
        elif isinstance(trigger, TriggerType):
            trigger = EventTrigger(trigger)
        elif not isinstance(trigger, (EventTrigger, ScheduleTrigger)):
            trigger = ScheduleTrigger(schedule=trigger, last_evaluated_at=last_evaluated_at)
        extra = {"rule_id": rule_id} if rule_id else {}
        return AutomationRule(
            project_id=project_id,
            trigger=trigger,
            action=RuleAction(action_type=action_type),
            filters=tuple(filters or ()),
            **extra,
            **kwargs,
        )

    return _make


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def executor_factory() -> type[RecordingExecutor]:
    """The RecordingExecutor class, for tests that script follow-up events."""
    return RecordingExecutor
