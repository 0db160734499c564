"""In-memory rule and task storage."""

from taskpilot.infrastructure.persistence.in_memory_repositories import (
    InMemoryRuleRepository,
    InMemoryTaskRepository,
)

__all__ = ["InMemoryRuleRepository", "InMemoryTaskRepository"]
