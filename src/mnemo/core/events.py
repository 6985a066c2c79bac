"""Domain event bus.

Skill and memory components publish events here; notification and UI
collaborators subscribe. Handlers can be plain functions or coroutines.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from mnemo.core.logging import get_logger
from mnemo.core.typing import JSONDict

logger = get_logger("core.events")


class EventType(Enum):
    LEVEL_UP = "skill:level-up"
    DECAY_LEVEL_DOWN = "skill:decay-level-down"
    ACHIEVEMENT_UNLOCKED = "skill:achievement-unlocked"
    XP_AWARDED = "skill:xp-awarded"
    MEMORY_CONSOLIDATED = "memory:consolidated"


@dataclass
class Event:
    """A published domain event."""

    type: EventType
    payload: JSONDict
    timestamp: datetime = field(default_factory=datetime.now)


Handler = Callable[[Event], object]


class EventBus:
    """In-process publish/subscribe for domain events."""

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Handler]] = {}

    def subscribe(self, event_type: EventType, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def emit(self, event_type: EventType, payload: JSONDict) -> Event:
        """Deliver an event to every subscriber in registration order."""
        event = Event(type=event_type, payload=payload)
        for handler in list(self._handlers.get(event_type, [])):
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Event handler for {event_type.value} failed: {e}")
        logger.debug(f"Emitted {event_type.value}: {payload}")
        return event
