"""
Core Protocol Interfaces

Contracts for the collaborators the automation core talks to without
owning them: the domain event bus, rule and task storage, and the action
execution layer.
"""

from taskpilot.core.interfaces.action_executor import ActionExecutorProtocol
from taskpilot.core.interfaces.event_bus import DomainEventBusProtocol, DomainEventListener
from taskpilot.core.interfaces.repositories import RuleRepositoryProtocol, TaskRepositoryProtocol

__all__ = [
    "ActionExecutorProtocol",
    "DomainEventBusProtocol",
    "DomainEventListener",
    "RuleRepositoryProtocol",
    "TaskRepositoryProtocol",
]
