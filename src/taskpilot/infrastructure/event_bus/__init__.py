"""Domain event bus."""

from taskpilot.infrastructure.event_bus.domain_event_bus import DomainEventBus, ListenerFailure

__all__ = ["DomainEventBus", "ListenerFailure"]
