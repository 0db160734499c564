"""Repository Protocols for rule and task storage.

Storage itself lives outside the automation core. The scheduler driver only
needs to read rules and tasks and to write back rule state changes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from taskpilot.core.domain.automation_rule import AutomationRule
    from taskpilot.core.domain.task import TaskSnapshot


class RuleRepositoryProtocol(Protocol):
    """Protocol for automation rule storage."""

    def find_all(self) -> list[AutomationRule]:
        """Return every rule in insertion order."""
        ...

    def find_by_id(self, rule_id: str) -> AutomationRule | None:
        """Return a rule by ID, or None if it does not exist."""
        ...

    def find_by_project_id(self, project_id: str) -> list[AutomationRule]:
        """Return the rules of one project in insertion order."""
        ...

    def save(self, rule: AutomationRule) -> None:
        """Insert or replace a rule, keeping its original position."""
        ...


class TaskRepositoryProtocol(Protocol):
    """Protocol for read access to task snapshots."""

    def find_all(self) -> list[TaskSnapshot]:
        """Return every task."""
        ...

    def find_by_id(self, task_id: str) -> TaskSnapshot | None:
        """Return a task by ID, or None if it does not exist."""
        ...
