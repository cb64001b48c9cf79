"""Bounded in-memory event store."""

from collections import deque
from datetime import datetime
from typing import Optional

from signalbot.events.bus import Event, EventType


class InMemoryEventStore:
    """Keeps the most recent *max_events* events, oldest dropped first."""

    def __init__(self, max_events: int = 10_000) -> None:
        self._events: deque[Event] = deque(maxlen=max_events)

    def append(self, event: Event) -> None:
        self._events.append(event)

    def __len__(self) -> int:
        return len(self._events)

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        source: Optional[str] = None,
        correlation_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Event]:
        """Return matching events, oldest first.  *limit* keeps the newest."""
        events = [
            e for e in self._events
            if (event_type is None or e.type == event_type)
            and (source is None or e.source == source)
            and (correlation_id is None or e.correlation_id == correlation_id)
            and (since is None or e.timestamp >= since)
            and (until is None or e.timestamp <= until)
        ]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def get_event(self, event_id: str) -> Optional[Event]:
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    def clear(self) -> None:
        self._events.clear()
