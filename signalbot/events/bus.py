"""In-process event bus.

Handlers subscribe to an ``EventType``.  ``publish`` stamps the event,
stores it (best effort), then runs every subscribed handler concurrently.
A failing handler is counted and logged and never affects the others or
the publisher.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

logger = logging.getLogger("signalbot.events")

_MAX_TIMING_SAMPLES = 1000
_HEALTH_MIN_EVENTS = 100
_HEALTH_MAX_ERROR_RATE = 0.05
_HEALTH_MAX_AVG_MS = 1000.0


class EventType(str, Enum):
    SIGNAL_GENERATED = "signal.generated"
    SIGNAL_EXECUTED = "signal.executed"
    SIGNAL_FAILED = "signal.failed"
    SIGNAL_GENERATION_FAILED = "signal.generation.failed"
    EXCHANGE_CONNECTED = "exchange.connected"
    EXCHANGE_DISCONNECTED = "exchange.disconnected"
    EXCHANGE_ERROR = "exchange.error"
    MARKET_DATA_UPDATED = "market.data.updated"
    MONITORING_STARTED = "monitoring.started"
    MONITORING_STOPPED = "monitoring.stopped"
    MONITORING_ERROR = "monitoring.error"


@dataclass(frozen=True)
class Event:
    """A published event.  ``id`` and ``timestamp`` are set by the bus."""

    type: EventType
    payload: dict
    source: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: Optional[str] = None
    version: str = "1.0"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "version": self.version,
            "payload": self.payload,
        }


@runtime_checkable
class EventHandler(Protocol):
    """Anything with an async ``handle(event)``.

    A handler may also define ``can_handle(event) -> bool`` to skip
    individual events of its subscribed type.
    """

    async def handle(self, event: Event) -> None:
        ...


class EventBus:
    """Publish/subscribe registry keyed by ``EventType``.

    Args:
        store: Optional ``EventStore``; append failures are logged only.
    """

    def __init__(self, store=None) -> None:
        self._store = store
        self._handlers: dict[EventType, list[Any]] = {}
        self._waiters: dict[EventType, list[asyncio.Future]] = {}
        self._handling_times: deque[float] = deque(maxlen=_MAX_TIMING_SAMPLES)
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._published = 0
        self._handled = 0
        self._errors = 0
        self._events_by_type: dict[str, int] = {}
        self._handling_times.clear()

    # ── Subscription ─────────────────────────────────────────────────────

    def subscribe(self, event_type: EventType, handler) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug("Subscribed %s to %s", type(handler).__name__, event_type.value)

    def unsubscribe(self, event_type: EventType, handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(event_type, None)

    def clear(self) -> None:
        self._handlers.clear()

    @property
    def registered_event_types(self) -> list[EventType]:
        return list(self._handlers.keys())

    def handler_count(self, event_type: Optional[EventType] = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(h) for h in self._handlers.values())

    def has_handlers(self, event_type: EventType) -> bool:
        return self.handler_count(event_type) > 0

    # ── Publishing ───────────────────────────────────────────────────────

    async def publish(
        self,
        event_type: EventType,
        payload: dict,
        source: str,
        correlation_id: Optional[str] = None,
    ) -> Event:
        """Stamp, store and deliver one event.  Returns the stamped event."""
        event = Event(
            type=event_type,
            payload=payload,
            source=source,
            correlation_id=correlation_id,
        )
        self._published += 1
        self._events_by_type[event_type.value] = (
            self._events_by_type.get(event_type.value, 0) + 1
        )

        if self._store is not None:
            try:
                self._store.append(event)
            except Exception as exc:
                logger.warning("Event store append failed for %s: %s", event.id, exc)

        handlers = list(self._handlers.get(event_type, []))
        if handlers:
            await asyncio.gather(*(self._deliver(h, event) for h in handlers))
        else:
            logger.debug("No handlers for %s", event_type.value)

        self._resolve_waiters(event)
        return event

    async def publish_batch(self, events: list[tuple[EventType, dict, str]]) -> list[Event]:
        """Publish ``(type, payload, source)`` tuples concurrently."""
        return list(
            await asyncio.gather(*(self.publish(t, p, s) for t, p, s in events))
        )

    async def _deliver(self, handler, event: Event) -> None:
        can_handle = getattr(handler, "can_handle", None)
        try:
            if can_handle is not None and not can_handle(event):
                return
        except Exception:
            self._errors += 1
            logger.exception(
                "Handler %s can_handle failed on %s (%s)",
                type(handler).__name__, event.type.value, event.id,
            )
            return

        start = time.perf_counter()
        try:
            await handler.handle(event)
            self._handled += 1
        except Exception:
            self._errors += 1
            logger.exception(
                "Handler %s failed on %s (%s)",
                type(handler).__name__, event.type.value, event.id,
            )
        finally:
            self._handling_times.append((time.perf_counter() - start) * 1000)

    # ── Waiting ──────────────────────────────────────────────────────────

    async def wait_for_event(self, event_type: EventType, timeout: float = 5.0) -> Event:
        """Wait for the next event of *event_type*.

        Raises ``asyncio.TimeoutError`` if none arrives within *timeout*.
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(event_type, []).append(future)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            waiters = self._waiters.get(event_type, [])
            if future in waiters:
                waiters.remove(future)

    def _resolve_waiters(self, event: Event) -> None:
        for future in self._waiters.pop(event.type, []):
            if not future.done():
                future.set_result(event)

    # ── Observability ────────────────────────────────────────────────────

    @property
    def average_handling_ms(self) -> float:
        if not self._handling_times:
            return 0.0
        return sum(self._handling_times) / len(self._handling_times)

    def get_metrics(self) -> dict:
        return {
            "total_published": self._published,
            "total_handled": self._handled,
            "error_count": self._errors,
            "average_handling_ms": round(self.average_handling_ms, 3),
            "events_by_type": dict(self._events_by_type),
            "handlers_by_type": {
                t.value: len(h) for t, h in self._handlers.items()
            },
        }

    def reset_metrics(self) -> None:
        self._reset_counters()

    def health_status(self) -> dict:
        """Return ``{"healthy": bool, "issues": [...], "metrics": {...}}``."""
        issues: list[str] = []

        if self._published > _HEALTH_MIN_EVENTS:
            error_rate = self._errors / self._published
            if error_rate > _HEALTH_MAX_ERROR_RATE:
                issues.append(f"High error rate: {error_rate * 100:.1f}%")

        avg = self.average_handling_ms
        if avg > _HEALTH_MAX_AVG_MS:
            issues.append(f"Slow event handling: {avg:.0f}ms average")

        if self.handler_count() == 0 and self._published > 0:
            issues.append("No event handlers registered but events are being published")

        return {
            "healthy": not issues,
            "issues": issues,
            "metrics": self.get_metrics(),
        }
