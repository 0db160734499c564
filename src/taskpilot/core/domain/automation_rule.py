"""Automation rule domain models.

Defines the "when X happens, do Y" primitives. A rule carries either an
event trigger (matched against domain events by the rule engine) or a
schedule trigger (decided by the schedule evaluator), a list of filter
conditions and an opaque action for the execution layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Union
from uuid import uuid4

from taskpilot.core.domain.schedule import (
    CatchUpPolicy,
    Schedule,
    ScheduleKind,
    schedule_from_dict,
)
from taskpilot.core.utils.time import utc_now


class TriggerType(str, Enum):
    """Trigger signature used to index rules."""

    # Entity lifecycle
    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    TASK_DELETED = "task.deleted"
    SECTION_CREATED = "section.created"
    SECTION_UPDATED = "section.updated"

    # Task transitions derived from task.updated
    CARD_MOVED_INTO_SECTION = "card_moved_into_section"
    CARD_MOVED_OUT_OF_SECTION = "card_moved_out_of_section"
    CARD_MARKED_COMPLETE = "card_marked_complete"
    CARD_MARKED_INCOMPLETE = "card_marked_incomplete"

    # Schedules
    SCHEDULED_INTERVAL = "scheduled_interval"
    SCHEDULED_CRON = "scheduled_cron"
    SCHEDULED_DUE_DATE_RELATIVE = "scheduled_due_date_relative"
    SCHEDULED_ONE_TIME = "scheduled_one_time"

    @property
    def is_scheduled(self) -> bool:
        return self.value.startswith("scheduled_")


SECTION_SCOPED_TRIGGERS = frozenset(
    {TriggerType.CARD_MOVED_INTO_SECTION, TriggerType.CARD_MOVED_OUT_OF_SECTION}
)

SCHEDULE_TRIGGER_TYPES: dict[ScheduleKind, TriggerType] = {
    ScheduleKind.INTERVAL: TriggerType.SCHEDULED_INTERVAL,
    ScheduleKind.CRON: TriggerType.SCHEDULED_CRON,
    ScheduleKind.DUE_DATE_RELATIVE: TriggerType.SCHEDULED_DUE_DATE_RELATIVE,
    ScheduleKind.ONE_TIME: TriggerType.SCHEDULED_ONE_TIME,
}


@dataclass(frozen=True)
class EventTrigger:
    """Trigger matched against incoming domain events.

    Attributes:
        trigger_type: Event signature to match (never a scheduled_* type).
        section_id: Optional section the trigger is scoped to.
    """

    trigger_type: TriggerType
    section_id: str | None = None

    def __post_init__(self) -> None:
        if self.trigger_type.is_scheduled:
            raise ValueError(f"{self.trigger_type.value} is not an event trigger type")

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.trigger_type.value, "section_id": self.section_id}


@dataclass(frozen=True)
class ScheduleTrigger:
    """Time-based trigger.

    ``last_evaluated_at`` is owned by the schedule evaluator's result and
    persisted by whoever stores the rule after each tick.
    """

    schedule: Schedule
    last_evaluated_at: str | None = None
    catch_up_policy: CatchUpPolicy = CatchUpPolicy.CATCH_UP_LATEST

    @property
    def trigger_type(self) -> TriggerType:
        return SCHEDULE_TRIGGER_TYPES[self.schedule.kind]

    @property
    def section_id(self) -> str | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.trigger_type.value,
            "schedule": self.schedule.to_dict(),
            "last_evaluated_at": self.last_evaluated_at,
            "catch_up_policy": self.catch_up_policy.value,
        }


Trigger = Union[EventTrigger, ScheduleTrigger]


@dataclass(frozen=True)
class FilterSpec:
    """One filter condition, resolved through the filter predicate registry.

    Attributes:
        kind: Predicate name (e.g. "in_section", "due_in_less_than").
        params: Predicate-specific parameters (section_id, value, unit, ...).
    """

    kind: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterSpec:
        return cls(kind=str(data["kind"]), params=dict(data.get("params", {})))


@dataclass(frozen=True)
class RuleAction:
    """Action the execution layer performs when the rule fires.

    The automation core treats actions as opaque.
    """

    action_type: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"action_type": self.action_type, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleAction:
        return cls(action_type=str(data["action_type"]), params=dict(data.get("params", {})))


@dataclass(frozen=True)
class AutomationRule:
    """A user-authored automation rule.

    Attributes:
        rule_id: Unique identifier for this rule.
        name: Human-readable rule name.
        project_id: Project the rule belongs to. None = every project.
        trigger: Event or schedule trigger.
        action: What the execution layer should do.
        filters: Conditions that must all hold for the rule to act.
        enabled: Whether the rule participates in matching at all.
        priority: Optional explicit priority (higher first).
        broken_reason: Set when the rule references something that no longer
            exists; broken rules never match.
        order: Position in the user's rule list.
        created_at: When the rule was created.
    """

    rule_id: str = field(default_factory=lambda: uuid4().hex)
    name: str = ""
    project_id: str | None = None
    trigger: Trigger = field(
        default_factory=lambda: EventTrigger(TriggerType.CARD_MARKED_COMPLETE)
    )
    action: RuleAction = field(default_factory=lambda: RuleAction(action_type="noop"))
    filters: tuple[FilterSpec, ...] = ()
    enabled: bool = True
    priority: int | None = None
    broken_reason: str | None = None
    order: int = 0
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "filters", tuple(self.filters))

    @property
    def is_active(self) -> bool:
        """Enabled and not broken."""
        return self.enabled and self.broken_reason is None

    @property
    def is_scheduled(self) -> bool:
        return isinstance(self.trigger, ScheduleTrigger)

    def with_last_evaluated_at(self, last_evaluated_at: str) -> AutomationRule:
        """Return a copy with the schedule trigger's ``last_evaluated_at`` replaced."""
        if not isinstance(self.trigger, ScheduleTrigger):
            raise TypeError(f"Rule {self.rule_id} does not have a schedule trigger")
        return replace(self, trigger=replace(self.trigger, last_evaluated_at=last_evaluated_at))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for hosts that store rules."""
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "project_id": self.project_id,
            "trigger": self.trigger.to_dict(),
            "action": self.action.to_dict(),
            "filters": [f.to_dict() for f in self.filters],
            "enabled": self.enabled,
            "priority": self.priority,
            "broken_reason": self.broken_reason,
            "order": self.order,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutomationRule:
        """Deserialize from a dict produced by :meth:`to_dict`."""
        created_raw = data.get("created_at")
        priority_raw = data.get("priority")
        return cls(
            rule_id=str(data.get("rule_id", uuid4().hex)),
            name=str(data.get("name", "")),
            project_id=data.get("project_id"),
            trigger=trigger_from_dict(data["trigger"]),
            action=RuleAction.from_dict(data.get("action", {"action_type": "noop"})),
            filters=tuple(FilterSpec.from_dict(f) for f in data.get("filters", [])),
            enabled=bool(data.get("enabled", True)),
            priority=int(priority_raw) if priority_raw is not None else None,
            broken_reason=data.get("broken_reason"),
            order=int(data.get("order", 0)),
            created_at=datetime.fromisoformat(created_raw) if created_raw else utc_now(),
        )


def trigger_from_dict(data: dict[str, Any]) -> Trigger:
    """Deserialize a trigger; schedule triggers are recognised by their schedule."""
    if "schedule" in data:
        return ScheduleTrigger(
            schedule=schedule_from_dict(data["schedule"]),
            last_evaluated_at=data.get("last_evaluated_at"),
            catch_up_policy=CatchUpPolicy(
                data.get("catch_up_policy", CatchUpPolicy.CATCH_UP_LATEST.value)
            ),
        )
    return EventTrigger(trigger_type=TriggerType(data["type"]), section_id=data.get("section_id"))
