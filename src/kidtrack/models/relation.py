"""Access relation between a user and a child."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from kidtrack.auth.roles import Capabilities, RelationshipType


class AccessRelation(BaseModel):
    """A capability grant binding one user to one child."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    user_id: str
    child_id: str
    relationship_type: RelationshipType
    can_edit: bool = False
    can_view: bool = False
    can_export: bool = False
    granted_by: str
    granted_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def capabilities(self) -> Capabilities:
        return Capabilities(
            can_edit=self.can_edit, can_view=self.can_view, can_export=self.can_export
        )

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")

    def to_response(self) -> dict:
        return {
            "_v": "1.0",
            "user_id": self.user_id,
            "child_id": self.child_id,
            "relationship_type": self.relationship_type.value,
            "can_edit": self.can_edit,
            "can_view": self.can_view,
            "can_export": self.can_export,
            "granted_by": self.granted_by,
        }
