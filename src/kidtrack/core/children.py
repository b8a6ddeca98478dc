"""Child service: create, read, update, soft-delete and share children.

Every mutation asks the permission facade first and raises
UnauthorizedError on a deny. A child the caller cannot view is reported as
NotFoundError, so callers cannot discover the existence of other families'
records.
"""

import logging
from datetime import UTC, datetime

from kidtrack.auth.facade import PermissionFacade
from kidtrack.auth.permissions import Action
from kidtrack.auth.roles import Capabilities, RelationshipType
from kidtrack.core.access import AccessRelationStore, store_call
from kidtrack.errors import NotFoundError, StoreError, UnauthorizedError, ValidationError
from kidtrack.events.bus import EventBus
from kidtrack.events.types import EventType
from kidtrack.models.child import Child, ChildWithRelation
from kidtrack.models.relation import AccessRelation
from kidtrack.storage.base import StorageBackend

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"name", "birth_date", "diagnosis", "notes"}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def load_visible_child(
    store: StorageBackend,
    access: AccessRelationStore,
    facade: PermissionFacade,
    child_id: str,
) -> ChildWithRelation:
    """Fetch an active child the caller may view, annotated with their relation."""
    user = facade.user
    data = await store_call("get child", lambda: store.get_child(child_id))
    if user is None or not data or not data.get("is_active"):
        raise NotFoundError("child", child_id)

    child = await access.annotate(Child(**data), user.id)
    if not facade.can_read_child(child):
        logger.debug("Child %s hidden from %s", child_id, user.id)
        raise NotFoundError("child", child_id)
    return child


class ChildService:
    """Guarded operations on children."""

    def __init__(
        self, store: StorageBackend, access: AccessRelationStore, event_bus: EventBus
    ) -> None:
        self._store = store
        self._access = access
        self._event_bus = event_bus

    async def create_child(
        self,
        facade: PermissionFacade,
        *,
        name: str,
        birth_date: str | None = None,
        diagnosis: str | None = None,
        notes: str | None = None,
    ) -> Child:
        """Create a child owned by the facade's user.

        The owner also gets an explicit ``parent`` relation with full
        capabilities. Ownership alone already grants full rights, so a
        failure to write that relation is logged and the child is kept.

        Raises:
            UnauthorizedError: If the user's role may not create children
            ValidationError: If name is empty or whitespace-only
            NotFoundError: If the user has no stored profile
        """
        user = facade.user
        if user is None or not facade.can_create_child():
            raise UnauthorizedError(Action.CHILDREN_CREATE)

        if not name or not name.strip():
            raise ValidationError("Child name cannot be empty")
        if not await store_call("get profile", lambda: self._store.get_profile(user.id)):
            raise NotFoundError("profile", user.id)

        child = Child(
            name=name.strip(),
            birth_date=_clean(birth_date),
            diagnosis=_clean(diagnosis),
            notes=_clean(notes),
            created_by=user.id,
        )
        await store_call("insert child", lambda: self._store.insert_child(child.to_storage()))
        logger.info("Created child %s (id=%s) for %s", child.name, child.id, user.id)

        try:
            await self._access.grant_access(
                child.id,
                user.id,
                RelationshipType.PARENT,
                Capabilities.full(),
                granted_by=user.id,
            )
        except StoreError:
            logger.warning("Owner relation not written for child %s", child.id, exc_info=True)

        await self._event_bus.emit(
            EventType.CHILD_CREATED,
            {"child_id": child.id, "user_id": user.id, "name": child.name},
        )
        return child

    async def _load(self, facade: PermissionFacade, child_id: str) -> ChildWithRelation:
        return await load_visible_child(self._store, self._access, facade, child_id)

    async def get_child(self, facade: PermissionFacade, child_id: str) -> ChildWithRelation:
        child = await self._load(facade, child_id)
        await self._event_bus.emit(
            EventType.CHILD_VIEWED,
            {"child_id": child.id, "user_id": facade.user.id if facade.user else None},
        )
        return child

    async def list_children(
        self,
        facade: PermissionFacade,
        *,
        include_inactive: bool = False,
        search: str | None = None,
        relationship_type: str | None = None,
    ) -> list[ChildWithRelation]:
        """Children visible to the caller, optionally filtered by name or relation."""
        user = facade.user
        if user is None:
            return []

        children = await self._access.list_children_for_user(
            user.id, include_inactive=include_inactive
        )
        results = []
        for child in children:
            if not facade.can_read_child(child):
                continue
            if search and search.lower() not in child.name.lower():
                continue
            if relationship_type and child.relationship_type != relationship_type:
                continue
            results.append(child)
        return results

    async def update_child(self, facade: PermissionFacade, child_id: str, **updates) -> Child:
        """Update a child's descriptive fields.

        Raises:
            NotFoundError: If the child is absent or not visible to the caller
            UnauthorizedError: If the caller may view but not edit the child
            ValidationError: On unknown fields or an empty name
        """
        child = await self._load(facade, child_id)
        if not facade.can_edit_child(child):
            raise UnauthorizedError(Action.CHILDREN_UPDATE_EDITABLE, child_id)

        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {sorted(unknown)}")
        if "name" in updates:
            name = updates["name"]
            if not name or not name.strip():
                raise ValidationError("Child name cannot be empty")
            updates["name"] = name.strip()
        for key in ("birth_date", "diagnosis", "notes"):
            if key in updates:
                updates[key] = _clean(updates[key])

        updates["updated_at"] = datetime.now(UTC).isoformat()
        data = await store_call(
            "update child", lambda: self._store.update_child(child_id, updates)
        )
        if not data:
            raise NotFoundError("child", child_id)

        await self._event_bus.emit(
            EventType.CHILD_UPDATED,
            {
                "child_id": child_id,
                "user_id": facade.user.id if facade.user else None,
                "fields": sorted(k for k in updates if k != "updated_at"),
            },
        )
        return Child(**data)

    async def delete_child(self, facade: PermissionFacade, child_id: str) -> None:
        """Soft-delete a child. Only a parent who owns the child may do this."""
        child = await self._load(facade, child_id)
        if not facade.can_delete_child(child):
            raise UnauthorizedError(Action.CHILDREN_DELETE_OWN, child_id)

        if not await store_call(
            "delete child", lambda: self._store.soft_delete_child(child_id)
        ):
            raise NotFoundError("child", child_id)
        logger.info("Child %s marked inactive", child_id)
        await self._event_bus.emit(
            EventType.CHILD_DELETED,
            {"child_id": child_id, "user_id": facade.user.id if facade.user else None},
        )

    async def share_child(
        self,
        facade: PermissionFacade,
        child_id: str,
        grantee_user_id: str,
        relationship_type: str,
        capabilities: Capabilities | None = None,
    ) -> AccessRelation:
        """Grant another user access to a child."""
        child = await self._load(facade, child_id)
        user = facade.user
        if user is None or not facade.can_share_child(child):
            raise UnauthorizedError(Action.CHILDREN_SHARE_OWN, child_id)
        if grantee_user_id == child.created_by:
            raise ValidationError("The owner of a child already has full access")

        return await self._access.grant_access(
            child_id,
            grantee_user_id,
            relationship_type,
            capabilities,
            granted_by=user.id,
        )

    async def unshare_child(
        self, facade: PermissionFacade, child_id: str, grantee_user_id: str
    ) -> bool:
        """Revoke a user's access to a child. Returns False if there was none."""
        child = await self._load(facade, child_id)
        if not facade.can_share_child(child):
            raise UnauthorizedError(Action.CHILDREN_SHARE_OWN, child_id)
        return await self._access.revoke_access(child_id, grantee_user_id)

    async def list_access(self, facade: PermissionFacade, child_id: str) -> list[AccessRelation]:
        """Everyone holding a relation to the child. Requires the share right."""
        child = await self._load(facade, child_id)
        if not facade.can_share_child(child):
            raise UnauthorizedError(Action.CHILDREN_SHARE_OWN, child_id)
        return await self._access.list_relations(child_id)
