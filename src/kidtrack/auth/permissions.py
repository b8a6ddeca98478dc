"""Permission engine for children, daily logs and profiles.

A decision is made in two stages. The actor's role must list the action
(role gate), then the action's condition must hold for the given context
(condition gate). Both stages are pure: the result depends only on the
``PermissionContext`` passed in.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from kidtrack.auth.roles import RelationshipType, Role
from kidtrack.errors import UnknownActionError

logger = logging.getLogger(__name__)


class Action(StrEnum):
    CHILDREN_CREATE = "children.create"
    CHILDREN_READ_OWN = "children.read.own"
    CHILDREN_READ_ACCESSIBLE = "children.read.accessible"
    CHILDREN_UPDATE_OWN = "children.update.own"
    CHILDREN_UPDATE_EDITABLE = "children.update.editable"
    CHILDREN_DELETE_OWN = "children.delete.own"
    CHILDREN_SHARE_OWN = "children.share.own"

    LOGS_CREATE_EDITABLE = "logs.create.editable"
    LOGS_READ_ACCESSIBLE = "logs.read.accessible"
    LOGS_UPDATE_OWN = "logs.update.own"
    LOGS_EXPORT_EXPORTABLE = "logs.export.exportable"

    PROFILE_READ_OWN = "profile.read.own"
    PROFILE_UPDATE_OWN = "profile.update.own"


class PermissionContext(BaseModel):
    """Everything a permission decision is allowed to look at."""

    model_config = ConfigDict(frozen=True)

    actor_role: str
    actor_id: str
    resource_owner_id: str | None = None
    relationship_type: str | None = None
    can_edit: bool = False
    can_view: bool = False
    can_export: bool = False

    @property
    def is_owner(self) -> bool:
        return self.resource_owner_id is not None and self.resource_owner_id == self.actor_id


_LOG_ACTIONS = frozenset(
    {
        Action.LOGS_CREATE_EDITABLE,
        Action.LOGS_READ_ACCESSIBLE,
        Action.LOGS_UPDATE_OWN,
        Action.LOGS_EXPORT_EXPORTABLE,
    }
)
_PROFILE_ACTIONS = frozenset({Action.PROFILE_READ_OWN, Action.PROFILE_UPDATE_OWN})

ROLE_PERMISSIONS: dict[Role, frozenset[Action]] = {
    Role.PARENT: frozenset(Action),
    Role.TEACHER: frozenset(Action) - {Action.CHILDREN_DELETE_OWN},
    Role.SPECIALIST: frozenset(
        {Action.CHILDREN_READ_ACCESSIBLE, Action.CHILDREN_UPDATE_EDITABLE}
    )
    | _LOG_ACTIONS
    | _PROFILE_ACTIONS,
    Role.OBSERVER: frozenset({Action.CHILDREN_READ_ACCESSIBLE, Action.LOGS_READ_ACCESSIBLE})
    | _PROFILE_ACTIONS,
    # Admins oversee existing records; subjects are created by guardians and teachers.
    Role.ADMIN: frozenset(Action) - {Action.CHILDREN_CREATE},
}


def _owner(ctx: PermissionContext) -> bool:
    return ctx.is_owner


def _viewable(ctx: PermissionContext) -> bool:
    return ctx.can_view or ctx.is_owner


def _editable(ctx: PermissionContext) -> bool:
    return ctx.can_edit or ctx.is_owner


def _exportable(ctx: PermissionContext) -> bool:
    return ctx.can_export or ctx.is_owner


def _deletable(ctx: PermissionContext) -> bool:
    # Role is re-checked here even though the role gate already ran.
    return ctx.is_owner and ctx.actor_role == Role.PARENT


def _shareable(ctx: PermissionContext) -> bool:
    return ctx.is_owner or ctx.relationship_type == RelationshipType.PARENT


_CONDITIONS: dict[Action, Callable[[PermissionContext], bool]] = {
    Action.CHILDREN_READ_OWN: _owner,
    Action.CHILDREN_READ_ACCESSIBLE: _viewable,
    Action.CHILDREN_UPDATE_OWN: _owner,
    Action.CHILDREN_UPDATE_EDITABLE: _editable,
    Action.CHILDREN_DELETE_OWN: _deletable,
    Action.CHILDREN_SHARE_OWN: _shareable,
    Action.LOGS_CREATE_EDITABLE: _editable,
    Action.LOGS_READ_ACCESSIBLE: _viewable,
    Action.LOGS_UPDATE_OWN: _owner,
    Action.LOGS_EXPORT_EXPORTABLE: _exportable,
    Action.PROFILE_READ_OWN: _owner,
    Action.PROFILE_UPDATE_OWN: _owner,
}


def _parse_action(action: Action | str) -> Action:
    try:
        return Action(action)
    except ValueError as e:
        raise UnknownActionError(f"Unknown action: {action!r}") from e


def allowed_actions(role: str) -> frozenset[Action]:
    """Return the base action set for a role. Unknown roles get nothing."""
    try:
        return ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        return frozenset()


def is_allowed(action: Action | str, context: PermissionContext) -> bool:
    """Decide whether the context may perform the action.

    Returns False for every legitimate deny. Raises UnknownActionError only
    when the action is not in the catalog.
    """
    act = _parse_action(action)

    if act not in allowed_actions(context.actor_role):
        logger.debug("Role %r lacks %s for actor %s", context.actor_role, act, context.actor_id)
        return False

    condition = _CONDITIONS.get(act)
    if condition is None:
        return True

    allowed = condition(context)
    if not allowed:
        logger.debug(
            "Condition for %s failed: actor=%s owner=%s",
            act,
            context.actor_id,
            context.resource_owner_id,
        )
    return allowed
