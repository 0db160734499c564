"""Synchronous in-process domain event bus.

Entity mutations publish a DomainEvent here after they complete; listeners
such as the automation service react to it. Delivery is synchronous and in
registration order. A failing listener never prevents the others from
running, and every failure is reported back to the emitter.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog

from taskpilot.core.domain.domain_event import DomainEvent
from taskpilot.core.domain.errors import EventBusDisposedError, ListenerError
from taskpilot.core.interfaces.event_bus import DomainEventListener

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ListenerFailure:
    """A listener that raised while handling an event."""

    listener_name: str
    event: DomainEvent
    error: Exception


def _listener_name(listener: DomainEventListener) -> str:
    return getattr(listener, "__qualname__", None) or type(listener).__name__


class DomainEventBus:
    """Publish/subscribe channel for DomainEvents.

    One instance per host. ``reset()`` drops listeners (for tests and
    reconfiguration) and ``dispose()`` shuts the bus down for good.
    """

    def __init__(self) -> None:
        self._listeners: list[DomainEventListener] = []
        self._failures: list[ListenerFailure] = []
        self._disposed = False
        self._events_emitted = 0

    # -- Lifecycle ---------------------------------------------------------

    def init(self) -> None:
        """Start from an empty listener list."""
        self._ensure_usable()
        self._listeners = []
        self._failures = []
        self._events_emitted = 0
        logger.debug("domain_event_bus.initialized")

    def reset(self) -> None:
        """Remove every listener."""
        self._listeners = []
        logger.debug("domain_event_bus.reset")

    def dispose(self) -> None:
        """Remove every listener and refuse further use."""
        self._listeners = []
        self._disposed = True
        logger.debug("domain_event_bus.disposed")

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def _ensure_usable(self) -> None:
        if self._disposed:
            raise EventBusDisposedError()

    # -- Core API ----------------------------------------------------------

    def subscribe(self, listener: DomainEventListener) -> Callable[[], None]:
        """Register ``listener`` and return a function that unregisters it."""
        self._ensure_usable()
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, event: DomainEvent, *, raise_failures: bool = False) -> list[ListenerFailure]:
        """Deliver ``event`` to every listener registered at call time.

        Args:
            event: The event to deliver.
            raise_failures: Raise :class:`ListenerError` for the first failure
                once every listener has run.

        Returns:
            One entry per listener that raised.

        Raises:
            EventBusDisposedError: If the bus was disposed.
            ListenerError: If ``raise_failures`` is set and a listener failed.
        """
        self._ensure_usable()
        self._events_emitted += 1
        failures: list[ListenerFailure] = []

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                failure = ListenerFailure(
                    listener_name=_listener_name(listener), event=event, error=exc
                )
                failures.append(failure)
                logger.error(
                    "domain_event_bus.listener_failed",
                    listener=failure.listener_name,
                    event_id=event.event_id,
                    event_type=event.event_type.value,
                    entity_id=event.entity_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        self._failures.extend(failures)

        if failures and raise_failures:
            first = failures[0]
            raise ListenerError(
                f"Listener {first.listener_name} failed: {first.error}",
                listener_name=first.listener_name,
                details={"failure_count": len(failures)},
            ) from first.error

        return failures

    # -- Observability -----------------------------------------------------

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def events_emitted(self) -> int:
        return self._events_emitted

    @property
    def failures(self) -> list[ListenerFailure]:
        """Every listener failure since the bus was created or last initialized."""
        return list(self._failures)
