"""Tests for DomainEventBus."""

import pytest
from structlog.testing import capture_logs

from taskpilot.core.domain.domain_event import DomainEvent, DomainEventType
from taskpilot.core.domain.errors import EventBusDisposedError, ListenerError
from taskpilot.infrastructure.event_bus import DomainEventBus


@pytest.fixture
def bus() -> DomainEventBus:
    bus = DomainEventBus()
    bus.init()
    return bus


@pytest.fixture
def event() -> DomainEvent:
    return DomainEvent(DomainEventType.TASK_CREATED, "t1", "p1")


class TestSubscribeAndEmit:
    def test_listeners_called_in_registration_order(self, bus, event) -> None:
        calls: list[str] = []
        bus.subscribe(lambda e: calls.append("first"))
        bus.subscribe(lambda e: calls.append("second"))

        assert bus.emit(event) == []
        assert calls == ["first", "second"]
        assert bus.events_emitted == 1

    def test_listener_receives_event(self, bus, event) -> None:
        received: list[DomainEvent] = []
        bus.subscribe(received.append)
        bus.emit(event)
        assert received == [event]

    def test_unsubscribe_is_idempotent(self, bus, event) -> None:
        received: list[DomainEvent] = []
        unsubscribe = bus.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        bus.emit(event)

        assert received == []
        assert bus.listener_count == 0

    def test_unsubscribe_during_emit_keeps_current_delivery(self, bus, event) -> None:
        calls: list[str] = []
        unsubscribe_second = None

        def first(e: DomainEvent) -> None:
            calls.append("first")
            unsubscribe_second()

        bus.subscribe(first)
        unsubscribe_second = bus.subscribe(lambda e: calls.append("second"))

        bus.emit(event)
        bus.emit(event)

        assert calls == ["first", "second", "first"]


class TestListenerFailures:
    def test_failure_isolated_and_reported(self, bus, event) -> None:
        calls: list[str] = []

        def broken(e: DomainEvent) -> None:
            raise RuntimeError("listener exploded")

        bus.subscribe(broken)
        bus.subscribe(lambda e: calls.append("after"))

        with capture_logs() as logs:
            failures = bus.emit(event)

        assert calls == ["after"]
        assert len(failures) == 1
        assert failures[0].listener_name.endswith("broken")
        assert isinstance(failures[0].error, RuntimeError)
        assert bus.failures == failures
        assert any(entry["event"] == "domain_event_bus.listener_failed" for entry in logs)

    def test_raise_failures_after_all_listeners(self, bus, event) -> None:
        calls: list[str] = []

        def broken(e: DomainEvent) -> None:
            raise ValueError("bad")

        bus.subscribe(broken)
        bus.subscribe(lambda e: calls.append("after"))

        with pytest.raises(ListenerError) as exc_info:
            bus.emit(event, raise_failures=True)

        assert calls == ["after"]
        assert isinstance(exc_info.value.__cause__, ValueError)


class TestLifecycle:
    def test_reset_removes_listeners(self, bus, event) -> None:
        received: list[DomainEvent] = []
        bus.subscribe(received.append)
        bus.reset()
        bus.emit(event)
        assert received == []

    def test_init_clears_state(self, bus, event) -> None:
        bus.subscribe(lambda e: None)
        bus.emit(event)
        bus.init()
        assert bus.listener_count == 0
        assert bus.events_emitted == 0

    def test_disposed_bus_refuses_use(self, bus, event) -> None:
        bus.dispose()
        assert bus.is_disposed is True
        with pytest.raises(EventBusDisposedError):
            bus.subscribe(lambda e: None)
        with pytest.raises(EventBusDisposedError):
            bus.emit(event)
        with pytest.raises(EventBusDisposedError):
            bus.init()
