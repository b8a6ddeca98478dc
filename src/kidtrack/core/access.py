"""Access relation store: who may do what with which child.

Grants are upserts keyed by (user, child) and revocations are deletes, so
both are idempotent and retried on transient store failures. Reads are not
retried. Nothing here is cached; callers that cache relations must
invalidate on grant and revoke.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiosqlite

from kidtrack.auth.roles import (
    Capabilities,
    RelationshipType,
    default_capabilities_for,
    parse_relationship_type,
)
from kidtrack.errors import NotFoundError, StoreError, ValidationError
from kidtrack.events.bus import EventBus
from kidtrack.events.types import EventType
from kidtrack.models.child import Child, ChildWithRelation
from kidtrack.models.relation import AccessRelation
from kidtrack.storage.base import StorageBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = ("database is locked", "database is busy", "database table is locked")


def is_transient(error: BaseException) -> bool:
    """True for store failures that are safe to retry."""
    if not isinstance(error, aiosqlite.OperationalError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


async def store_call(label: str, op: Callable[[], Awaitable[T]]) -> T:
    """Run one store operation, reporting database failures as StoreError."""
    try:
        return await op()
    except aiosqlite.Error as e:
        raise StoreError(f"{label} failed: {e}") from e


class AccessRelationStore:
    """Grants, revokes and resolves per-child access relations."""

    def __init__(
        self,
        store: StorageBackend,
        event_bus: EventBus,
        *,
        max_retries: int = 3,
        retry_delay: float = 0.1,
    ) -> None:
        """Initialize the relation store.

        Args:
            store: Storage backend for persistence
            event_bus: Event bus for access events
            max_retries: Attempts for idempotent writes on transient failures
            retry_delay: Initial delay between retries (doubles each retry)
        """
        self._store = store
        self._event_bus = event_bus
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    async def _read(self, label: str, op: Callable[[], Awaitable[T]]) -> T:
        return await store_call(label, op)

    async def _write_with_retry(self, label: str, op: Callable[[], Awaitable[T]]) -> T:
        delay = self.retry_delay
        for attempt in range(self.max_retries):
            try:
                return await op()
            except aiosqlite.Error as e:
                if not is_transient(e) or attempt == self.max_retries - 1:
                    raise StoreError(
                        f"{label} failed after {attempt + 1} attempt(s): {e}"
                    ) from e
                logger.warning(
                    "%s hit a transient failure (attempt %d/%d): %s",
                    label,
                    attempt + 1,
                    self.max_retries,
                    e,
                )
            await asyncio.sleep(delay)
            delay *= 2
        raise StoreError(f"{label} failed")  # pragma: no cover

    async def grant_access(
        self,
        child_id: str,
        grantee_user_id: str,
        relationship_type: str,
        capabilities: Capabilities | None = None,
        *,
        granted_by: str,
    ) -> AccessRelation:
        """Create or replace the grantee's relation to a child.

        Args:
            child_id: Child being shared
            grantee_user_id: User receiving access
            relationship_type: One of the RelationshipType values
            capabilities: Explicit flags; defaults follow the relationship type
            granted_by: User performing the grant

        Returns:
            The stored relation

        Raises:
            ValidationError: On missing ids or an unknown relationship type
            NotFoundError: If the child or grantee does not exist
            StoreError: If the store keeps failing
        """
        if not child_id:
            raise ValidationError("child_id is required")
        if not grantee_user_id:
            raise ValidationError("grantee_user_id is required")
        if not granted_by:
            raise ValidationError("granted_by is required")
        rel_type = parse_relationship_type(relationship_type)

        if not await self._read("get child", lambda: self._store.get_child(child_id)):
            raise NotFoundError("child", child_id)
        if not await self._read(
            "get profile", lambda: self._store.get_profile(grantee_user_id)
        ):
            raise NotFoundError("profile", grantee_user_id)

        caps = capabilities if capabilities is not None else default_capabilities_for(rel_type)
        relation = AccessRelation(
            user_id=grantee_user_id,
            child_id=child_id,
            relationship_type=rel_type,
            can_edit=caps.can_edit,
            can_view=caps.can_view,
            can_export=caps.can_export,
            granted_by=granted_by,
        )

        data = await self._write_with_retry(
            "grant access", lambda: self._store.upsert_relation(relation.to_storage())
        )
        stored = AccessRelation(**data)
        logger.info(
            "Granted %s access on child %s to %s (by %s)",
            rel_type,
            child_id,
            grantee_user_id,
            granted_by,
        )
        await self._event_bus.emit(
            EventType.ACCESS_GRANTED,
            {
                "child_id": child_id,
                "user_id": grantee_user_id,
                "relationship_type": rel_type.value,
                "granted_by": granted_by,
            },
        )
        return stored

    async def revoke_access(self, child_id: str, grantee_user_id: str) -> bool:
        """Remove a relation. Returns False when there was nothing to remove."""
        if not child_id or not grantee_user_id:
            raise ValidationError("child_id and grantee_user_id are required")

        removed = await self._write_with_retry(
            "revoke access", lambda: self._store.delete_relation(child_id, grantee_user_id)
        )
        if not removed:
            logger.debug("No relation to revoke for child %s user %s", child_id, grantee_user_id)
            return False

        logger.info("Revoked access on child %s for %s", child_id, grantee_user_id)
        await self._event_bus.emit(
            EventType.ACCESS_REVOKED, {"child_id": child_id, "user_id": grantee_user_id}
        )
        return True

    async def get_relation(self, child_id: str, user_id: str) -> AccessRelation | None:
        data = await self._read(
            "get relation", lambda: self._store.get_relation(child_id, user_id)
        )
        return AccessRelation(**data) if data else None

    async def capabilities_for(self, child_id: str, user_id: str) -> Capabilities:
        """The user's flags on a child. A missing relation means no capabilities."""
        relation = await self.get_relation(child_id, user_id)
        return relation.capabilities if relation else Capabilities.none()

    async def list_relations(self, child_id: str) -> list[AccessRelation]:
        rows = await self._read("list relations", lambda: self._store.list_relations(child_id))
        return [AccessRelation(**row) for row in rows]

    async def annotate(self, child: Child, user_id: str) -> ChildWithRelation:
        """Attach the user's own relation to a child record."""
        relation = await self.get_relation(child.id, user_id)
        return _with_relation(
            child,
            user_id,
            relation.relationship_type if relation else None,
            relation.capabilities if relation else None,
        )

    async def list_children_for_user(
        self, user_id: str, *, include_inactive: bool = False
    ) -> list[ChildWithRelation]:
        """Children the user owns or was granted, each with the user's capabilities."""
        rows = await self._read(
            "list children",
            lambda: self._store.list_children_for_user(
                user_id, include_inactive=include_inactive
            ),
        )
        return [_row_to_child_with_relation(row, user_id) for row in rows]


def _with_relation(
    child: Child,
    user_id: str,
    relationship_type: RelationshipType | str | None,
    capabilities: Capabilities | None,
) -> ChildWithRelation:
    if child.created_by == user_id:
        return ChildWithRelation.annotate(
            child,
            relationship_type=RelationshipType(relationship_type or RelationshipType.PARENT),
            capabilities=Capabilities.full(),
        )
    return ChildWithRelation.annotate(
        child,
        relationship_type=RelationshipType(relationship_type) if relationship_type else None,
        capabilities=capabilities or Capabilities.none(),
    )


def _row_to_child_with_relation(row: dict[str, Any], user_id: str) -> ChildWithRelation:
    rel_type = row.pop("rel_relationship_type", None)
    caps = Capabilities(
        can_edit=bool(row.pop("rel_can_edit", None)),
        can_view=bool(row.pop("rel_can_view", None)),
        can_export=bool(row.pop("rel_can_export", None)),
    )
    return _with_relation(Child(**row), user_id, rel_type, caps)
