"""Domain Event Bus Protocol.

Defines the publish point that entity mutations reach without knowing
about automation.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from taskpilot.core.domain.domain_event import DomainEvent

DomainEventListener = Callable[["DomainEvent"], Any]


class DomainEventBusProtocol(Protocol):
    """Synchronous in-process publish/subscribe channel for DomainEvents."""

    def subscribe(self, listener: DomainEventListener) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Callable invoked with every emitted event.

        Returns:
            A function that removes the listener again.
        """
        ...

    def emit(self, event: DomainEvent) -> list[Any]:
        """Deliver an event to every registered listener in registration order.

        Args:
            event: The event to deliver.

        Returns:
            Failures of individual listeners; delivery continues past them.
        """
        ...

    def reset(self) -> None:
        """Remove all listeners."""
        ...
