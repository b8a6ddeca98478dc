"""Per-user permission predicates built on the permission engine."""

from __future__ import annotations

from enum import StrEnum

from kidtrack.auth.permissions import Action, PermissionContext, is_allowed
from kidtrack.models.child import ChildWithRelation
from kidtrack.models.profile import Profile


class PermissionLevel(StrEnum):
    NONE = "none"
    VIEW = "view"
    EDIT = "edit"
    FULL = "full"


class PermissionFacade:
    """Binds the authenticated user and answers "can this user do X?".

    With no user bound every predicate is False and the permission level is
    ``none``.
    """

    def __init__(self, user: Profile | None) -> None:
        self._user = user

    @property
    def user(self) -> Profile | None:
        return self._user

    def context_for(self, child: ChildWithRelation | None = None) -> PermissionContext | None:
        """Build the engine context for the bound user, optionally against a child."""
        if self._user is None:
            return None
        if child is None:
            return PermissionContext(actor_role=self._user.role, actor_id=self._user.id)
        return PermissionContext(
            actor_role=self._user.role,
            actor_id=self._user.id,
            resource_owner_id=child.created_by,
            relationship_type=child.relationship_type,
            can_edit=child.can_edit,
            can_view=child.can_view,
            can_export=child.can_export,
        )

    def _owner_context(self, owner_id: str) -> PermissionContext | None:
        if self._user is None:
            return None
        return PermissionContext(
            actor_role=self._user.role, actor_id=self._user.id, resource_owner_id=owner_id
        )

    def _check(self, action: Action, ctx: PermissionContext | None) -> bool:
        return ctx is not None and is_allowed(action, ctx)

    # --- Children ---

    def can_create_child(self) -> bool:
        return self._check(Action.CHILDREN_CREATE, self.context_for())

    def can_read_child(self, child: ChildWithRelation) -> bool:
        return self._check(Action.CHILDREN_READ_ACCESSIBLE, self.context_for(child))

    def can_edit_child(self, child: ChildWithRelation) -> bool:
        return self._check(Action.CHILDREN_UPDATE_EDITABLE, self.context_for(child))

    def can_delete_child(self, child: ChildWithRelation) -> bool:
        return self._check(Action.CHILDREN_DELETE_OWN, self._owner_context(child.created_by))

    def can_share_child(self, child: ChildWithRelation) -> bool:
        return self._check(Action.CHILDREN_SHARE_OWN, self.context_for(child))

    # --- Logs ---

    def can_create_log(self, child: ChildWithRelation) -> bool:
        return self._check(Action.LOGS_CREATE_EDITABLE, self.context_for(child))

    def can_read_logs(self, child: ChildWithRelation) -> bool:
        return self._check(Action.LOGS_READ_ACCESSIBLE, self.context_for(child))

    def can_edit_log(self, log_owner_id: str) -> bool:
        return self._check(Action.LOGS_UPDATE_OWN, self._owner_context(log_owner_id))

    def can_export_logs(self, child: ChildWithRelation) -> bool:
        return self._check(Action.LOGS_EXPORT_EXPORTABLE, self.context_for(child))

    # --- Profile ---

    def can_read_profile(self, profile_id: str) -> bool:
        return self._check(Action.PROFILE_READ_OWN, self._owner_context(profile_id))

    def can_update_profile(self, profile_id: str) -> bool:
        return self._check(Action.PROFILE_UPDATE_OWN, self._owner_context(profile_id))

    # --- Derived ---

    def has_role(self, role: str) -> bool:
        return self._user is not None and self._user.role == role

    def get_permission_level(self, child: ChildWithRelation) -> PermissionLevel:
        """Resolve owner, then edit, then view; anything else is none."""
        if self._user is None:
            return PermissionLevel.NONE
        if child.created_by == self._user.id:
            return PermissionLevel.FULL
        if child.can_edit:
            return PermissionLevel.EDIT
        if child.can_view:
            return PermissionLevel.VIEW
        return PermissionLevel.NONE
