"""Event type constants for kidtrack."""

from enum import StrEnum


class EventType(StrEnum):
    CHILD_CREATED = "child.created"
    CHILD_UPDATED = "child.updated"
    CHILD_DELETED = "child.deleted"
    CHILD_VIEWED = "child.viewed"

    ACCESS_GRANTED = "access.granted"
    ACCESS_REVOKED = "access.revoked"

    LOG_CREATED = "log.created"
    LOG_UPDATED = "log.updated"
    LOG_DELETED = "log.deleted"
    LOGS_EXPORTED = "logs.exported"
