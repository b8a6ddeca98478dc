"""Account roles, per-child relationship types and their default capabilities."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from kidtrack.errors import ValidationError


class Role(StrEnum):
    PARENT = "parent"
    TEACHER = "teacher"
    SPECIALIST = "specialist"
    OBSERVER = "observer"
    ADMIN = "admin"


class RelationshipType(StrEnum):
    PARENT = "parent"
    TEACHER = "teacher"
    SPECIALIST = "specialist"
    OBSERVER = "observer"
    FAMILY = "family"


class Capabilities(BaseModel):
    """Edit/view/export flags carried by an access relation."""

    model_config = ConfigDict(frozen=True)

    can_edit: bool = False
    can_view: bool = False
    can_export: bool = False

    @classmethod
    def full(cls) -> Capabilities:
        return cls(can_edit=True, can_view=True, can_export=True)

    @classmethod
    def none(cls) -> Capabilities:
        return cls()


DEFAULT_CAPABILITIES: dict[RelationshipType, Capabilities] = {
    RelationshipType.PARENT: Capabilities(can_edit=True, can_view=True, can_export=True),
    RelationshipType.TEACHER: Capabilities(can_edit=True, can_view=True, can_export=False),
    RelationshipType.SPECIALIST: Capabilities(can_edit=False, can_view=True, can_export=True),
    RelationshipType.OBSERVER: Capabilities(can_edit=False, can_view=True, can_export=False),
    RelationshipType.FAMILY: Capabilities(can_edit=False, can_view=False, can_export=False),
}


def default_capabilities_for(relationship_type: str | None) -> Capabilities:
    """Return the capabilities granted by default for a relationship type.

    Unrecognized values fail closed.
    """
    try:
        rel = RelationshipType(relationship_type)
    except ValueError:
        return Capabilities.none()
    return DEFAULT_CAPABILITIES.get(rel, Capabilities.none())


def parse_relationship_type(value: str | None) -> RelationshipType:
    """Strict parse used when validating grant requests."""
    if not value:
        raise ValidationError("relationship_type is required")
    try:
        return RelationshipType(value)
    except ValueError as e:
        valid = ", ".join(r.value for r in RelationshipType)
        raise ValidationError(
            f"Invalid relationship_type: {value}. Must be one of {valid}"
        ) from e


def parse_role(value: str | None) -> Role:
    """Strict parse for account roles."""
    try:
        return Role(value)
    except ValueError as e:
        valid = ", ".join(r.value for r in Role)
        raise ValidationError(f"Invalid role: {value}. Must be one of {valid}") from e
