"""
Domain Models

This package contains the core domain models of the automation engine:
- Domain events emitted after entity mutations
- Automation rules, triggers and filters
- Schedule variants and evaluation results
- Configuration schemas
"""

from taskpilot.core.domain.automation_rule import (
    AutomationRule,
    EventTrigger,
    FilterSpec,
    RuleAction,
    ScheduleTrigger,
    TriggerType,
)
from taskpilot.core.domain.domain_event import DomainEvent, DomainEventType
from taskpilot.core.domain.schedule import (
    CatchUpPolicy,
    CronSchedule,
    DueDateRelativeSchedule,
    IntervalSchedule,
    OneTimeSchedule,
    ScheduleEvaluation,
)
from taskpilot.core.domain.task import TaskSnapshot

__all__ = [
    "AutomationRule",
    "CatchUpPolicy",
    "CronSchedule",
    "DomainEvent",
    "DomainEventType",
    "DueDateRelativeSchedule",
    "EventTrigger",
    "FilterSpec",
    "IntervalSchedule",
    "OneTimeSchedule",
    "RuleAction",
    "ScheduleEvaluation",
    "ScheduleTrigger",
    "TaskSnapshot",
    "TriggerType",
]
