"""Read-only entity snapshots consumed by the automation core.

The entity store lives outside this package. Predicates and the due-date
evaluator only ever see these frozen copies.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any


@dataclass(frozen=True)
class TaskSnapshot:
    """Point-in-time view of a task.

    Timestamps are ISO-8601 strings as stored by the entity layer.
    ``known_fields`` is None for a complete snapshot. A partial snapshot
    built from event data lists the fields it actually carries; the
    remaining attributes hold placeholders that must not be trusted.
    """

    id: str
    project_id: str | None = None
    parent_task_id: str | None = None
    section_id: str | None = None
    description: str = ""
    due_date: str | None = None
    completed: bool = False
    completed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    moved_to_section_at: str | None = None
    known_fields: frozenset[str] | None = None

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None

    @property
    def is_partial(self) -> bool:
        return self.known_fields is not None

    def knows(self, *names: str) -> bool:
        """True when every named field reflects the task's real state."""
        return self.known_fields is None or all(name in self.known_fields for name in names)

    @classmethod
    def from_changes(
        cls,
        entity_id: str,
        scope_id: str | None,
        changes: dict[str, Any],
        *,
        complete: bool = False,
    ) -> TaskSnapshot:
        """Build a snapshot from the changed fields of an event.

        Only fields present in ``changes`` are marked as known, unless
        ``complete`` says the changes describe the whole entity (as for a
        creation event).
        """
        names = {f.name for f in fields(cls)} - {"id", "known_fields"}
        values = {name: changes[name] for name in names if name in changes}
        if "description" in values:
            values["description"] = str(values["description"])
        if "completed" in values:
            values["completed"] = bool(values["completed"])
        if scope_id is not None:
            values.setdefault("project_id", scope_id)
        known = None if complete else frozenset(values)
        return cls(id=entity_id, known_fields=known, **values)
