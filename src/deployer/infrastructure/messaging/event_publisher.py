"""In-process pipeline event bus."""

from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from deployer.domain.ports.services import EventPublisher


logger = structlog.get_logger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


class InMemoryEventPublisher(EventPublisher):
    """Dispatches pipeline events to in-process subscribers.

    The most recent ``history_size`` events are kept so a run's timeline can
    be inspected after the fact; older entries fall off the log.
    """

    def __init__(self, history_size: int = 1000) -> None:
        self._events: deque[tuple[str, dict[str, Any]]] = deque(maxlen=history_size)
        self._handlers: dict[str, list[EventHandler]] = {}

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        self._events.append((event_type, payload))
        logger.info(
            "pipeline_event",
            event_type=event_type,
            run_id=payload.get("run_id"),
            job=payload.get("job"),
        )
        for handler in self._handlers.get(event_type, []):
            await handler(payload)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def timeline(self, run_id: str) -> list[str]:
        """Event types recorded for one run, oldest first."""
        return [
            event_type for event_type, payload in self._events
            if payload.get("run_id") == run_id
        ]

    @property
    def published_events(self) -> list[tuple[str, dict[str, Any]]]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()
