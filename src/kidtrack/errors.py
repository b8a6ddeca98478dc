"""Error taxonomy for kidtrack."""

from __future__ import annotations


class KidtrackError(Exception):
    """Base class for kidtrack errors."""


class UnauthorizedError(KidtrackError):
    """Raised when a guarded operation is rejected by the permission engine."""

    def __init__(self, action: str, resource_id: str | None = None) -> None:
        self.action = action
        self.resource_id = resource_id
        target = f" on {resource_id}" if resource_id else ""
        super().__init__(f"Permission denied: {action}{target}")


class NotFoundError(KidtrackError):
    """Raised when a referenced child, relation or log does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ValidationError(KidtrackError, ValueError):
    """Raised for malformed input, before any store mutation."""


class StoreError(KidtrackError):
    """Raised when the underlying store fails."""


class UnknownActionError(KidtrackError, ValueError):
    """Raised when an action id is not part of the catalog."""
