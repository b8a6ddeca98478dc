"""Async event bus used for audit and change notifications."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

from kidtrack.events.types import EventType

logger = logging.getLogger(__name__)

Listener = Callable[[EventType, dict[str, Any]], Coroutine[Any, Any, None]]


class EventBus:
    """Pub/sub bus delivering child, access and log events to listeners.

    A failing listener is logged and skipped; it never fails the operation
    that emitted the event.
    """

    def __init__(self) -> None:
        self._listeners: dict[EventType, list[Listener]] = defaultdict(list)
        self._global_listeners: list[Listener] = []

    def on(self, event_type: EventType, listener: Listener) -> None:
        self._listeners[event_type].append(listener)

    def on_all(self, listener: Listener) -> None:
        """Register a listener that receives every event, e.g. the audit trail."""
        self._global_listeners.append(listener)

    async def emit(self, event_type: EventType, data: dict[str, Any] | None = None) -> None:
        """Deliver an event, stamping it with ``occurred_at`` when absent."""
        payload = dict(data or {})
        payload.setdefault("occurred_at", datetime.now(UTC).isoformat())
        listeners = self._listeners.get(event_type, []) + self._global_listeners

        for listener in listeners:
            try:
                await listener(event_type, payload)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Listener failed for %s", event_type)
