"""Domain-specific exception types for Taskpilot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class TaskpilotError(Exception):
    """Base exception for Taskpilot domain errors."""

    message: str
    code: str = "taskpilot_error"
    details: Dict[str, Any] | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.details is None:
            self.details = {}


class ConfigError(TaskpilotError):
    """Error raised for configuration failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="config_error", details=details)


class ScheduleConfigError(TaskpilotError):
    """Error raised for a malformed schedule definition."""

    def __init__(
        self,
        message: str,
        *,
        schedule_kind: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if schedule_kind:
            details.setdefault("schedule_kind", schedule_kind)
        self.schedule_kind = schedule_kind
        super().__init__(message=message, code="schedule_config_error", details=details)


class UnknownFilterError(TaskpilotError):
    """Error raised when a rule references a filter kind that does not exist."""

    def __init__(self, kind: str, *, details: Dict[str, Any] | None = None) -> None:
        details = dict(details or {})
        details.setdefault("filter_kind", kind)
        self.kind = kind
        super().__init__(
            message=f"Unknown filter kind: {kind}", code="unknown_filter", details=details
        )


class CronParseError(TaskpilotError):
    """Error raised when a cron expression cannot be converted to a schedule."""

    def __init__(self, message: str, *, expression: str | None = None) -> None:
        details = {"expression": expression} if expression is not None else {}
        super().__init__(message=message, code="cron_parse_error", details=details)


class RuleValidationError(TaskpilotError):
    """Error raised when a rule fails validation."""

    def __init__(self, message: str, *, problems: list[str] | None = None) -> None:
        self.problems = list(problems or [])
        super().__init__(
            message=message, code="rule_validation_error", details={"problems": self.problems}
        )


class CascadeDepthError(TaskpilotError):
    """Error raised when a follow-up event does not advance the cascade depth."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="cascade_depth_error", details=details)


class ListenerError(TaskpilotError):
    """Error raised when a domain event listener fails and the host asked to see it."""

    def __init__(
        self,
        message: str,
        *,
        listener_name: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if listener_name:
            details.setdefault("listener_name", listener_name)
        self.listener_name = listener_name
        super().__init__(message=message, code="listener_error", details=details)


class EventBusDisposedError(TaskpilotError):
    """Error raised when a disposed event bus is used."""

    def __init__(self, message: str = "Domain event bus has been disposed") -> None:
        super().__init__(message=message, code="event_bus_disposed")
