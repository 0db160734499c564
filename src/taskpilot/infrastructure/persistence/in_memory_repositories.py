"""In-memory repositories for automation rules and task snapshots.

Hosts with their own storage implement the repository protocols directly;
these versions back the scheduler in tests and embedded setups.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from taskpilot.core.domain.automation_rule import AutomationRule
from taskpilot.core.domain.task import TaskSnapshot

logger = structlog.get_logger(__name__)


class InMemoryRuleRepository:
    """Rule storage keyed by rule ID, keeping insertion order."""

    def __init__(self, rules: Iterable[AutomationRule] = ()) -> None:
        self._rules: dict[str, AutomationRule] = {}
        for rule in rules:
            self._rules[rule.rule_id] = rule

    def find_all(self) -> list[AutomationRule]:
        return list(self._rules.values())

    def find_by_id(self, rule_id: str) -> AutomationRule | None:
        return self._rules.get(rule_id)

    def find_by_project_id(self, project_id: str) -> list[AutomationRule]:
        return [r for r in self._rules.values() if r.project_id == project_id]

    def save(self, rule: AutomationRule) -> None:
        """Insert or replace; a replaced rule keeps its position."""
        self._rules[rule.rule_id] = rule
        logger.debug("rule_repository.saved", rule_id=rule.rule_id)

    def delete(self, rule_id: str) -> bool:
        if self._rules.pop(rule_id, None) is None:
            return False
        logger.debug("rule_repository.deleted", rule_id=rule_id)
        return True


class InMemoryTaskRepository:
    """Task snapshot storage keyed by task ID."""

    def __init__(self, tasks: Iterable[TaskSnapshot] = ()) -> None:
        self._tasks: dict[str, TaskSnapshot] = {t.id: t for t in tasks}

    def find_all(self) -> list[TaskSnapshot]:
        return list(self._tasks.values())

    def find_by_id(self, task_id: str) -> TaskSnapshot | None:
        return self._tasks.get(task_id)

    def find_by_project_id(self, project_id: str) -> list[TaskSnapshot]:
        return [t for t in self._tasks.values() if t.project_id == project_id]

    def save(self, task: TaskSnapshot) -> None:
        self._tasks[task.id] = task

    def delete(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None
