"""User profile model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from kidtrack.auth.roles import Role


class Profile(BaseModel):
    """An authenticated user with a global account role."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    email: str
    full_name: str
    role: Role = Role.PARENT
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    updated_at: str | None = None

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")

    def to_response(self) -> dict:
        return {
            "_v": "1.0",
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role.value,
        }
