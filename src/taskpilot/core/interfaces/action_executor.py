"""Action Executor Protocol.

The automation core decides which rules act; what an action mutates is up
to the execution layer behind this protocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from taskpilot.core.domain.automation_rule import AutomationRule
    from taskpilot.core.domain.domain_event import DomainEvent


class ActionExecutorProtocol(Protocol):
    """Protocol for executing a matched rule's action."""

    def execute(self, rule: AutomationRule, event: DomainEvent) -> list[DomainEvent]:
        """Execute ``rule.action`` in response to ``event``.

        Args:
            rule: The rule whose action should run.
            event: The event the rule matched.

        Returns:
            Follow-up events for the mutations the action performed. Each
            must be built with ``event.caused_by(...)`` so its depth is
            ``event.depth + 1``.
        """
        ...
