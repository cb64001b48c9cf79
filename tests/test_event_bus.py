"""Tests for the in-process event bus and event store."""

import asyncio
from datetime import timedelta

import pytest

from signalbot.events.bus import Event, EventBus, EventHandler, EventType
from signalbot.events.store import InMemoryEventStore


class RecordingHandler:
    def __init__(self):
        self.events: list[Event] = []

    async def handle(self, event: Event) -> None:
        self.events.append(event)


class FilteringHandler(RecordingHandler):
    def can_handle(self, event: Event) -> bool:
        return event.payload.get("pair") == "BTC/USDT"


class BrokenFilterHandler(RecordingHandler):
    def can_handle(self, event: Event) -> bool:
        raise KeyError("pair")


class FailingHandler:
    async def handle(self, event: Event) -> None:
        raise RuntimeError("boom")


class BrokenStore:
    def append(self, event):
        raise OSError("disk full")


class TestSubscription:
    def test_subscribe_is_idempotent(self):
        bus = EventBus()
        handler = RecordingHandler()
        bus.subscribe(EventType.SIGNAL_GENERATED, handler)
        bus.subscribe(EventType.SIGNAL_GENERATED, handler)
        assert bus.handler_count(EventType.SIGNAL_GENERATED) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        handler = RecordingHandler()
        bus.subscribe(EventType.SIGNAL_GENERATED, handler)
        bus.unsubscribe(EventType.SIGNAL_GENERATED, handler)
        assert bus.has_handlers(EventType.SIGNAL_GENERATED) is False
        assert bus.registered_event_types == []

    def test_handler_count_across_types(self):
        bus = EventBus()
        bus.subscribe(EventType.SIGNAL_GENERATED, RecordingHandler())
        bus.subscribe(EventType.SIGNAL_FAILED, RecordingHandler())
        assert bus.handler_count() == 2
        bus.clear()
        assert bus.handler_count() == 0

    def test_handlers_satisfy_protocol(self):
        assert isinstance(RecordingHandler(), EventHandler)


class TestPublish:
    @pytest.mark.asyncio
    async def test_delivers_to_subscribers_of_type_only(self):
        bus = EventBus()
        generated, failed = RecordingHandler(), RecordingHandler()
        bus.subscribe(EventType.SIGNAL_GENERATED, generated)
        bus.subscribe(EventType.SIGNAL_FAILED, failed)

        event = await bus.publish(EventType.SIGNAL_GENERATED, {"signal_id": "s1"}, "test")

        assert generated.events == [event]
        assert failed.events == []

    @pytest.mark.asyncio
    async def test_event_is_stamped(self):
        bus = EventBus()
        event = await bus.publish(
            EventType.SIGNAL_GENERATED, {"signal_id": "s1"}, "engine", correlation_id="s1",
        )
        assert event.id
        assert event.source == "engine"
        assert event.correlation_id == "s1"
        assert event.version == "1.0"
        assert event.to_dict()["type"] == "signal.generated"

    @pytest.mark.asyncio
    async def test_can_handle_filters(self):
        bus = EventBus()
        handler = FilteringHandler()
        bus.subscribe(EventType.SIGNAL_GENERATED, handler)
        await bus.publish(EventType.SIGNAL_GENERATED, {"pair": "ETH/USDT"}, "test")
        await bus.publish(EventType.SIGNAL_GENERATED, {"pair": "BTC/USDT"}, "test")
        assert [e.payload["pair"] for e in handler.events] == ["BTC/USDT"]

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self):
        bus = EventBus()
        good = RecordingHandler()
        bus.subscribe(EventType.SIGNAL_GENERATED, FailingHandler())
        bus.subscribe(EventType.SIGNAL_GENERATED, good)

        await bus.publish(EventType.SIGNAL_GENERATED, {}, "test")

        assert len(good.events) == 1
        metrics = bus.get_metrics()
        assert metrics["error_count"] == 1
        assert metrics["total_handled"] == 1

    @pytest.mark.asyncio
    async def test_failing_can_handle_is_isolated(self):
        bus = EventBus()
        broken, good = BrokenFilterHandler(), RecordingHandler()
        bus.subscribe(EventType.SIGNAL_GENERATED, broken)
        bus.subscribe(EventType.SIGNAL_GENERATED, good)

        event = await bus.publish(EventType.SIGNAL_GENERATED, {}, "test")

        assert good.events == [event]
        assert broken.events == []
        metrics = bus.get_metrics()
        assert metrics["error_count"] == 1
        assert metrics["total_handled"] == 1

    @pytest.mark.asyncio
    async def test_store_failure_does_not_block_delivery(self):
        bus = EventBus(store=BrokenStore())
        handler = RecordingHandler()
        bus.subscribe(EventType.SIGNAL_GENERATED, handler)
        await bus.publish(EventType.SIGNAL_GENERATED, {}, "test")
        assert len(handler.events) == 1

    @pytest.mark.asyncio
    async def test_events_are_stored(self):
        store = InMemoryEventStore()
        bus = EventBus(store=store)
        await bus.publish(EventType.MONITORING_STARTED, {}, "engine")
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_publish_batch(self):
        bus = EventBus()
        handler = RecordingHandler()
        bus.subscribe(EventType.MARKET_DATA_UPDATED, handler)
        events = await bus.publish_batch([
            (EventType.MARKET_DATA_UPDATED, {"pair": "BTC/USDT"}, "engine"),
            (EventType.MARKET_DATA_UPDATED, {"pair": "ETH/USDT"}, "engine"),
        ])
        assert len(events) == 2
        assert len(handler.events) == 2


class TestWaitForEvent:
    @pytest.mark.asyncio
    async def test_resolves_on_publish(self):
        bus = EventBus()
        waiter = asyncio.create_task(bus.wait_for_event(EventType.SIGNAL_EXECUTED, timeout=1.0))
        await asyncio.sleep(0)
        published = await bus.publish(EventType.SIGNAL_EXECUTED, {"signal_id": "s1"}, "api")
        assert await waiter is published

    @pytest.mark.asyncio
    async def test_times_out(self):
        bus = EventBus()
        with pytest.raises(asyncio.TimeoutError):
            await bus.wait_for_event(EventType.SIGNAL_EXECUTED, timeout=0.01)


class TestMetrics:
    @pytest.mark.asyncio
    async def test_counts_by_type(self):
        bus = EventBus()
        bus.subscribe(EventType.SIGNAL_GENERATED, RecordingHandler())
        await bus.publish(EventType.SIGNAL_GENERATED, {}, "test")
        await bus.publish(EventType.SIGNAL_GENERATED, {}, "test")
        await bus.publish(EventType.SIGNAL_FAILED, {}, "test")

        metrics = bus.get_metrics()
        assert metrics["total_published"] == 3
        assert metrics["events_by_type"] == {"signal.generated": 2, "signal.failed": 1}
        assert metrics["handlers_by_type"] == {"signal.generated": 1}

        bus.reset_metrics()
        assert bus.get_metrics()["total_published"] == 0

    @pytest.mark.asyncio
    async def test_health_flags_missing_handlers(self):
        bus = EventBus()
        await bus.publish(EventType.SIGNAL_GENERATED, {}, "test")
        status = bus.health_status()
        assert status["healthy"] is False
        assert "No event handlers" in status["issues"][0]

    @pytest.mark.asyncio
    async def test_health_flags_error_rate(self):
        bus = EventBus()
        bus.subscribe(EventType.SIGNAL_GENERATED, FailingHandler())
        for _ in range(101):
            await bus.publish(EventType.SIGNAL_GENERATED, {}, "test")
        status = bus.health_status()
        assert any("error rate" in issue for issue in status["issues"])

    def test_healthy_when_idle(self):
        assert EventBus().health_status()["healthy"] is True


# ── Store ────────────────────────────────────────────────────────────────


def _event(event_type=EventType.SIGNAL_GENERATED, source="engine", **kwargs) -> Event:
    return Event(type=event_type, payload={}, source=source, **kwargs)


class TestInMemoryEventStore:
    def test_bounded(self):
        store = InMemoryEventStore(max_events=2)
        events = [_event() for _ in range(3)]
        for e in events:
            store.append(e)
        assert store.get_events() == events[1:]

    def test_filters(self):
        store = InMemoryEventStore()
        a = _event(correlation_id="s1")
        b = _event(EventType.SIGNAL_FAILED, source="api", correlation_id="s1")
        c = _event(source="api")
        for e in (a, b, c):
            store.append(e)

        assert store.get_events(event_type=EventType.SIGNAL_FAILED) == [b]
        assert store.get_events(source="api") == [b, c]
        assert store.get_events(correlation_id="s1") == [a, b]
        assert store.get_events(limit=1) == [c]
        assert store.get_events(limit=0) == []

    def test_time_window(self):
        store = InMemoryEventStore()
        first = _event()
        second = _event(timestamp=first.timestamp + timedelta(minutes=5))
        store.append(first)
        store.append(second)
        assert store.get_events(since=first.timestamp + timedelta(minutes=1)) == [second]
        assert store.get_events(until=first.timestamp) == [first]

    def test_get_event_and_clear(self):
        store = InMemoryEventStore()
        event = _event()
        store.append(event)
        assert store.get_event(event.id) is event
        assert store.get_event("missing") is None
        store.clear()
        assert len(store) == 0
