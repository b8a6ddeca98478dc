"""Audit trail: records every child, access and log event in the activity log."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from kidtrack.events.bus import EventBus
from kidtrack.events.types import EventType
from kidtrack.storage.base import StorageBackend

logger = logging.getLogger(__name__)

# event -> (entity_type, key holding the entity id)
_ENTITY_KEYS: dict[EventType, tuple[str, str]] = {
    EventType.CHILD_CREATED: ("child", "child_id"),
    EventType.CHILD_UPDATED: ("child", "child_id"),
    EventType.CHILD_DELETED: ("child", "child_id"),
    EventType.CHILD_VIEWED: ("child", "child_id"),
    EventType.ACCESS_GRANTED: ("relation", "child_id"),
    EventType.ACCESS_REVOKED: ("relation", "child_id"),
    EventType.LOG_CREATED: ("log", "log_id"),
    EventType.LOG_UPDATED: ("log", "log_id"),
    EventType.LOG_DELETED: ("log", "log_id"),
    EventType.LOGS_EXPORTED: ("log", "child_id"),
}


def describe(event_type: EventType, data: dict[str, Any]) -> str:
    if event_type in (EventType.ACCESS_GRANTED, EventType.ACCESS_REVOKED):
        rel = data.get("relationship_type")
        suffix = f" as {rel}" if rel else ""
        return f"{event_type.value} for user {data.get('user_id')}{suffix}"
    if event_type == EventType.LOGS_EXPORTED:
        return f"exported {data.get('count', 0)} logs as {data.get('format')}"
    if event_type == EventType.CHILD_UPDATED and data.get("fields"):
        return f"updated fields: {', '.join(data['fields'])}"
    return event_type.value


class AuditTrail:
    """Subscribes to the event bus and appends one activity entry per event."""

    def __init__(self, store: StorageBackend, event_bus: EventBus) -> None:
        self._store = store
        self._event_bus = event_bus

    def attach(self) -> None:
        self._event_bus.on_all(self._record)

    async def _record(self, event_type: EventType, data: dict[str, Any]) -> None:
        entity_type, key = _ENTITY_KEYS.get(event_type, ("unknown", "id"))
        actor = data.get("granted_by") if event_type == EventType.ACCESS_GRANTED else None
        entry = {
            "id": str(uuid.uuid4()),
            "user_id": actor or data.get("user_id"),
            "activity_type": event_type.value,
            "entity_type": entity_type,
            "entity_id": data.get(key),
            "description": describe(event_type, data),
            "created_at": data.get("occurred_at") or datetime.now(UTC).isoformat(),
        }
        await self._store.log_activity(entry)
        logger.debug("Audited %s on %s %s", event_type, entity_type, entry["entity_id"])

    async def recent(
        self, *, entity_type: str | None = None, limit: int = 20
    ) -> list[dict[str, Any]]:
        return await self._store.get_activity_log(entity_type=entity_type, limit=limit)
