"""Domain event models emitted after every tracked entity mutation.

A ``DomainEvent`` is an immutable fact: the service layer publishes it on the
domain event bus once a task or section mutation has completed, and the rule
engine consumes it to decide which automation rules should act.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from taskpilot.core.utils.time import utc_now


class DomainEventType(str, Enum):
    """Lifecycle tags of the two tracked entity kinds."""

    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    TASK_DELETED = "task.deleted"
    SECTION_CREATED = "section.created"
    SECTION_UPDATED = "section.updated"

    # Synthetic event produced for a firing schedule
    SCHEDULE_FIRED = "schedule.fired"


@dataclass(frozen=True)
class DomainEvent:
    """A completed mutation of a task or section.

    Attributes:
        event_type: Lifecycle tag of the mutation.
        entity_id: ID of the affected entity.
        scope_id: Project scope of the entity.
        changes: New values of the fields that changed.
        previous_values: Prior values of the same fields.
        triggered_by_rule: ID of the rule whose action produced this event,
            None for user-initiated mutations.
        depth: Cascade counter, 0 for user-initiated events.
        event_id: Unique identifier for tracing.
        timestamp: When the event was created.
    """

    event_type: DomainEventType
    entity_id: str
    scope_id: str
    changes: dict[str, Any] = field(default_factory=dict)
    previous_values: dict[str, Any] = field(default_factory=dict)
    triggered_by_rule: str | None = None
    depth: int = 0
    event_id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.depth < 0:
            raise ValueError(f"Cascade depth must be >= 0, got {self.depth}")

    @property
    def is_user_initiated(self) -> bool:
        """True when no automation rule produced this event."""
        return self.triggered_by_rule is None

    def caused_by(
        self,
        rule_id: str,
        *,
        event_type: DomainEventType,
        entity_id: str,
        changes: dict[str, Any] | None = None,
        previous_values: dict[str, Any] | None = None,
        scope_id: str | None = None,
    ) -> DomainEvent:
        """Build the follow-up event produced by a rule acting on this event."""
        return DomainEvent(
            event_type=event_type,
            entity_id=entity_id,
            scope_id=scope_id if scope_id is not None else self.scope_id,
            changes=dict(changes or {}),
            previous_values=dict(previous_values or {}),
            triggered_by_rule=rule_id,
            depth=self.depth + 1,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event for transport or logging."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "entity_id": self.entity_id,
            "scope_id": self.scope_id,
            "changes": self.changes,
            "previous_values": self.previous_values,
            "triggered_by_rule": self.triggered_by_rule,
            "depth": self.depth,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomainEvent:
        """Deserialize an event from a dict produced by :meth:`to_dict`."""
        ts_raw = data.get("timestamp")
        return cls(
            event_type=DomainEventType(data["event_type"]),
            entity_id=str(data.get("entity_id", "")),
            scope_id=str(data.get("scope_id", "")),
            changes=dict(data.get("changes", {})),
            previous_values=dict(data.get("previous_values", {})),
            triggered_by_rule=data.get("triggered_by_rule"),
            depth=int(data.get("depth", 0)),
            event_id=str(data.get("event_id", uuid4().hex)),
            timestamp=datetime.fromisoformat(ts_raw) if ts_raw else utc_now(),
        )
