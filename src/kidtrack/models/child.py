"""Child (tracked subject) models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from kidtrack.auth.roles import Capabilities, RelationshipType


class Child(BaseModel):
    """A tracked child, owned by the user who created it."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    name: str
    birth_date: str | None = None
    diagnosis: str | None = None
    notes: str | None = None
    is_active: bool = True
    created_by: str
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    updated_at: str | None = None

    def to_storage(self) -> dict:
        return self.model_dump()

    def to_response(self, *, detail: str = "summary") -> dict[str, Any]:
        data: dict[str, Any] = {
            "_v": "1.0",
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
        }
        if detail != "summary":
            data.update(
                {
                    "birth_date": self.birth_date,
                    "diagnosis": self.diagnosis,
                    "notes": self.notes,
                    "created_by": self.created_by,
                    "created_at": self.created_at,
                    "updated_at": self.updated_at,
                }
            )
        return data


class ChildWithRelation(Child):
    """A child annotated with the viewing user's own relation to it."""

    relationship_type: RelationshipType | None = None
    can_edit: bool = False
    can_view: bool = False
    can_export: bool = False

    @classmethod
    def annotate(
        cls,
        child: Child,
        *,
        relationship_type: RelationshipType | None,
        capabilities: Capabilities,
    ) -> ChildWithRelation:
        return cls(
            **child.model_dump(),
            relationship_type=relationship_type,
            can_edit=capabilities.can_edit,
            can_view=capabilities.can_view,
            can_export=capabilities.can_export,
        )

    @property
    def capabilities(self) -> Capabilities:
        return Capabilities(
            can_edit=self.can_edit, can_view=self.can_view, can_export=self.can_export
        )

    def to_response(self, *, detail: str = "summary") -> dict[str, Any]:
        data = super().to_response(detail=detail)
        data.update(
            {
                "relationship_type": (
                    self.relationship_type.value if self.relationship_type else None
                ),
                "can_edit": self.can_edit,
                "can_view": self.can_view,
                "can_export": self.can_export,
            }
        )
        return data
