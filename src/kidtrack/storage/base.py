"""Abstract storage interface for kidtrack."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class StorageBackend(ABC):
    """Abstract interface for kidtrack storage backends.

    Rows travel as plain dicts; services turn them into models.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize database schema and connections."""

    @abstractmethod
    async def close(self) -> None:
        """Close all connections."""

    # --- Profile operations ---

    @abstractmethod
    async def insert_profile(self, profile: dict[str, Any]) -> dict[str, Any]:
        """Insert a user profile."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        """Get a profile by ID."""

    @abstractmethod
    async def get_profile_by_email(self, email: str) -> dict[str, Any] | None:
        """Get a profile by email address."""

    @abstractmethod
    async def list_profiles(self) -> list[dict[str, Any]]:
        """List all profiles."""

    # --- Child operations ---

    @abstractmethod
    async def insert_child(self, child: dict[str, Any]) -> dict[str, Any]:
        """Insert a child."""

    @abstractmethod
    async def get_child(self, child_id: str) -> dict[str, Any] | None:
        """Get a child by ID, active or not."""

    @abstractmethod
    async def update_child(self, child_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        """Update a child. Returns the updated row or None."""

    @abstractmethod
    async def soft_delete_child(self, child_id: str) -> bool:
        """Mark a child inactive. Returns True if an active child was found."""

    @abstractmethod
    async def list_children_for_user(
        self, user_id: str, *, include_inactive: bool = False
    ) -> list[dict[str, Any]]:
        """Children the user owns or is related to, joined with the user's relation.

        Relation columns are prefixed ``rel_`` and are NULL when no row exists.
        """

    # --- Relation operations ---

    @abstractmethod
    async def upsert_relation(self, relation: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace the relation keyed by (user_id, child_id)."""

    @abstractmethod
    async def get_relation(self, child_id: str, user_id: str) -> dict[str, Any] | None:
        """Get the relation for a (child, user) pair."""

    @abstractmethod
    async def delete_relation(self, child_id: str, user_id: str) -> bool:
        """Delete a relation. Returns True if a row was removed."""

    @abstractmethod
    async def list_relations(self, child_id: str) -> list[dict[str, Any]]:
        """All relations for a child."""

    # --- Log operations ---

    @abstractmethod
    async def insert_log(self, log: dict[str, Any]) -> dict[str, Any]:
        """Insert a daily log."""

    @abstractmethod
    async def get_log(self, log_id: str) -> dict[str, Any] | None:
        """Get a non-deleted log by ID."""

    @abstractmethod
    async def update_log(self, log_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        """Update a log. Returns the updated row or None."""

    @abstractmethod
    async def soft_delete_log(self, log_id: str) -> bool:
        """Mark a log deleted. Returns True if found."""

    @abstractmethod
    async def query_logs(
        self,
        child_id: str,
        *,
        include_private: bool = True,
        private_author: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Non-deleted logs for a child, newest first.

        With ``include_private`` False, private logs are excluded except those
        written by ``private_author``.
        """

    @abstractmethod
    async def count_logs(
        self,
        child_ids: list[str],
        *,
        since: str | None = None,
        include_private: bool = True,
        private_author: str | None = None,
    ) -> int:
        """Count non-deleted logs across children, optionally created at or after ``since``."""

    # --- Activity log ---

    @abstractmethod
    async def log_activity(self, entry: dict[str, Any]) -> None:
        """Append an audit entry."""

    @abstractmethod
    async def get_activity_log(
        self, *, entity_type: str | None = None, limit: int = 20
    ) -> list[dict[str, Any]]:
        """Recent audit entries, newest first."""

    # --- Stats ---

    @abstractmethod
    async def get_stats(self) -> dict[str, Any]:
        """Row counts per table."""
