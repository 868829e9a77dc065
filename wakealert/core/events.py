"""
WakeAlert — Event System.
In-process pub/sub used for the fire → dispatch → present handoff.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Coroutine
from uuid import uuid4

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    # Trigger lifecycle
    REMINDER_FIRED = "reminder.fired"
    # Delivery events
    ALERT_POSTED = "alert.posted"
    PRESENTATION_REQUESTED = "presentation.requested"
    PRESENTATION_STARTED = "presentation.started"
    PRESENTATION_DISMISSED = "presentation.dismissed"
    # System events
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"


@dataclass
class Event:
    """System event."""
    id: str = field(default_factory=lambda: str(uuid4()))
    type: EventType | str = ""
    source: str = ""  # Who emitted
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# Type alias for event handlers
EventHandler = Callable[[Event], Coroutine[Any, Any, None]]


def _type_value(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else event_type


class EventBus:
    """
    Pub/sub event bus for internal event-driven communication.
    Handlers run concurrently; a failing handler is logged and never
    prevents the others from running.
    """

    def __init__(self, max_log_size: int = 1_000):
        self._handlers: dict[str, list[EventHandler]] = {}
        self._event_log: list[Event] = []
        self._max_log_size = max_log_size

    def on(self, event_type: EventType | str, handler: EventHandler):
        """Subscribe a handler to an event type."""
        key = _type_value(event_type)
        if key not in self._handlers:
            self._handlers[key] = []
        self._handlers[key].append(handler)
        logger.debug(f"EventBus: handler registered for '{key}'")

    def off(self, event_type: EventType | str, handler: EventHandler):
        """Unsubscribe a handler."""
        key = _type_value(event_type)
        if key in self._handlers:
            self._handlers[key] = [h for h in self._handlers[key] if h != handler]

    def clear(self):
        """Drop every handler and the event log."""
        self._handlers.clear()
        self._event_log.clear()

    async def emit(self, event: Event):
        """Emit an event to all subscribed handlers."""
        self._event_log.append(event)
        if len(self._event_log) > self._max_log_size:
            self._event_log = self._event_log[-self._max_log_size:]

        event_type = _type_value(event.type)
        handlers = list(self._handlers.get(event_type, []))
        if not handlers:
            return

        tasks = [h(event) for h in handlers]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for result in results:
            if isinstance(result, Exception):
                logger.error(f"EventBus handler error on '{event_type}': {result!r}")

    async def emit_simple(self, event_type: EventType | str, source: str = "", data: dict | None = None):
        """Convenience method to emit a simple event."""
        await self.emit(Event(type=event_type, source=source, data=data or {}))

    def get_recent_events(self, event_type: EventType | str | None = None, limit: int = 50) -> list[Event]:
        """Get recent events, newest first."""
        events = self._event_log
        if event_type:
            wanted = _type_value(event_type)
            events = [e for e in events if _type_value(e.type) == wanted]
        return sorted(events, key=lambda e: e.timestamp, reverse=True)[:limit]


# Singleton
event_bus = EventBus()
