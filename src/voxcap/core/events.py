"""Async event bus for observing voice capture.

The orchestrator publishes session lifecycle events here so that UI layers can
react without polling engine state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of voice events."""

    VOICE_SESSION_STARTED = auto()
    VOICE_ENDPOINT = auto()
    VOICE_PROCESSING = auto()
    VOICE_TRANSCRIPT = auto()
    VOICE_ERROR = auto()
    VOICE_ENGINE_SWITCHED = auto()
    VOICE_SESSION_ENDED = auto()


@dataclass
class Event:
    """An event in the system."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __repr__(self) -> str:
        return f"Event({self.type.name}, {self.data})"


# Type alias for event handlers
EventHandler = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """Async event bus.

    Components subscribe to event types (or to everything); ``emit_now`` runs
    the matching handlers concurrently and returns once they have finished.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}
        self._all_handlers: list[EventHandler] = []  # Handlers for all events

    def subscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler,
    ) -> None:
        """Subscribe to an event type.

        Args:
            event_type: The event type to subscribe to, or None for all events
            handler: Async function to call when event fires
        """
        if event_type is None:
            self._all_handlers.append(handler)
        else:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler,
    ) -> None:
        """Unsubscribe from an event type."""
        if event_type is None:
            if handler in self._all_handlers:
                self._all_handlers.remove(handler)
        elif event_type in self._handlers and handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    async def emit_now(self, event: Event) -> None:
        """Emit an event and wait for all handlers to complete."""
        await self._dispatch(event)

    async def _dispatch(self, event: Event) -> None:
        """Dispatch event to all matching handlers."""
        handlers = list(self._all_handlers)
        handlers.extend(self._handlers.get(event.type, []))

        if not handlers:
            return

        results = await asyncio.gather(
            *(handler(event) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Handler {getattr(handler, '__qualname__', handler)} failed on {event.type.name}: {result}"
                )

    def clear(self) -> None:
        """Clear all handlers."""
        self._handlers.clear()
        self._all_handlers.clear()


# Global event bus instance
event_bus = EventBus()
