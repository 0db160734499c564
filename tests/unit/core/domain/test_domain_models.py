"""Tests for domain events, rules, schedules and errors."""

import pytest

from taskpilot.core.domain.automation_rule import (
    AutomationRule,
    EventTrigger,
    FilterSpec,
    RuleAction,
    ScheduleTrigger,
    TriggerType,
    trigger_from_dict,
)
from taskpilot.core.domain.domain_event import DomainEvent, DomainEventType
from taskpilot.core.domain.errors import (
    ScheduleConfigError,
    TaskpilotError,
    UnknownFilterError,
)
from taskpilot.core.domain.schedule import (
    CatchUpPolicy,
    CronSchedule,
    DueDateRelativeSchedule,
    IntervalSchedule,
    OneTimeSchedule,
    schedule_from_dict,
    validate_schedule,
)


class TestDomainEvent:
    def test_user_initiated_defaults(self) -> None:
        event = DomainEvent(DomainEventType.TASK_CREATED, "t1", "p1")
        assert event.depth == 0
        assert event.is_user_initiated is True
        assert event.event_id

    def test_negative_depth_rejected(self) -> None:
        with pytest.raises(ValueError):
            DomainEvent(DomainEventType.TASK_CREATED, "t1", "p1", depth=-1)

    def test_caused_by_increments_depth(self) -> None:
        parent = DomainEvent(DomainEventType.TASK_UPDATED, "t1", "p1", depth=2)
        child = parent.caused_by(
            "rule-1",
            event_type=DomainEventType.TASK_UPDATED,
            entity_id="t2",
            changes={"section_id": "s1"},
        )
        assert child.depth == 3
        assert child.triggered_by_rule == "rule-1"
        assert child.scope_id == "p1"
        assert child.is_user_initiated is False

    def test_dict_round_trip(self) -> None:
        event = DomainEvent(
            DomainEventType.TASK_UPDATED,
            "t1",
            "p1",
            changes={"completed": True},
            previous_values={"completed": False},
        )
        assert DomainEvent.from_dict(event.to_dict()) == event


class TestTriggers:
    def test_event_trigger_rejects_scheduled_type(self) -> None:
        with pytest.raises(ValueError):
            EventTrigger(TriggerType.SCHEDULED_CRON)

    def test_schedule_trigger_type_follows_schedule(self) -> None:
        trigger = ScheduleTrigger(schedule=DueDateRelativeSchedule(offset_minutes=-30))
        assert trigger.trigger_type == TriggerType.SCHEDULED_DUE_DATE_RELATIVE
        assert trigger.section_id is None

    def test_trigger_from_dict(self) -> None:
        trigger = trigger_from_dict(
            {
                "type": "scheduled_interval",
                "schedule": {"kind": "interval", "interval_minutes": 15},
                "catch_up_policy": "skip_missed",
            }
        )
        assert isinstance(trigger, ScheduleTrigger)
        assert trigger.catch_up_policy == CatchUpPolicy.SKIP_MISSED
        event_trigger = trigger_from_dict({"type": "card_moved_into_section", "section_id": "s1"})
        assert event_trigger == EventTrigger(TriggerType.CARD_MOVED_INTO_SECTION, "s1")


class TestAutomationRule:
    def test_is_active(self) -> None:
        assert AutomationRule().is_active is True
        assert AutomationRule(enabled=False).is_active is False
        assert AutomationRule(broken_reason="section deleted").is_active is False

    def test_with_last_evaluated_at(self) -> None:
        rule = AutomationRule(trigger=ScheduleTrigger(schedule=IntervalSchedule(15)))
        updated = rule.with_last_evaluated_at("2025-01-01T00:00:00.000Z")
        assert updated.trigger.last_evaluated_at == "2025-01-01T00:00:00.000Z"
        assert rule.trigger.last_evaluated_at is None

    def test_with_last_evaluated_at_requires_schedule(self) -> None:
        with pytest.raises(TypeError):
            AutomationRule().with_last_evaluated_at("2025-01-01T00:00:00.000Z")

    def test_dict_round_trip(self) -> None:
        rule = AutomationRule(
            name="Archive done",
            project_id="p1",
            trigger=ScheduleTrigger(
                schedule=CronSchedule(hour=9, minute=30, days_of_week=(1, 3)),
                last_evaluated_at="2025-01-01T09:30:00.000Z",
            ),
            action=RuleAction("move_card_to_bottom_of_section", {"section_id": "s9"}),
            filters=[FilterSpec("is_complete")],
            priority=3,
        )
        restored = AutomationRule.from_dict(rule.to_dict())
        assert restored == rule
        assert isinstance(restored.filters, tuple)


class TestSchedules:
    @pytest.mark.parametrize(
        "schedule",
        [
            IntervalSchedule(interval_minutes=5),
            CronSchedule(hour=0, minute=0),
            CronSchedule(hour=23, minute=59, days_of_month=(31,)),
            DueDateRelativeSchedule(offset_minutes=-1440),
            OneTimeSchedule(fire_at="2025-06-01T08:00:00.000Z"),
        ],
    )
    def test_valid_schedules(self, schedule) -> None:
        validate_schedule(schedule)
        assert schedule_from_dict(schedule.to_dict()) == schedule

    @pytest.mark.parametrize(
        "schedule",
        [
            IntervalSchedule(interval_minutes=4),
            CronSchedule(hour=24, minute=0),
            CronSchedule(hour=9, minute=60),
            CronSchedule(hour=9, minute=0, days_of_week=(7,)),
            CronSchedule(hour=9, minute=0, days_of_month=(0,)),
            OneTimeSchedule(fire_at="next tuesday"),
        ],
    )
    def test_invalid_schedules(self, schedule) -> None:
        with pytest.raises(ScheduleConfigError) as exc_info:
            validate_schedule(schedule)
        assert exc_info.value.details["schedule_kind"] == schedule.kind.value

    def test_unknown_kind(self) -> None:
        with pytest.raises(ScheduleConfigError):
            schedule_from_dict({"kind": "lunar"})

    def test_missing_field(self) -> None:
        with pytest.raises(ScheduleConfigError):
            schedule_from_dict({"kind": "cron", "hour": 9})


class TestErrors:
    def test_errors_share_base(self) -> None:
        error = UnknownFilterError("is_shiny")
        assert isinstance(error, TaskpilotError)
        assert error.code == "unknown_filter"
        assert error.details == {"filter_kind": "is_shiny"}
        assert str(error) == "Unknown filter kind: is_shiny"
