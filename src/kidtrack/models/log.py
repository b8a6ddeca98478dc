"""Daily log entry model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field

VALID_INTENSITIES = {"low", "medium", "high"}


class DailyLog(BaseModel):
    """An activity log recorded against one child."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    child_id: str
    title: str
    content: str
    mood_score: int | None = None
    intensity_level: str = "medium"
    logged_by: str
    log_date: str = Field(default_factory=lambda: datetime.now(UTC).date().isoformat())
    is_private: bool = False
    is_deleted: bool = False
    tags: list[str] | None = None
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    updated_at: str | None = None

    def to_storage(self) -> dict:
        return self.model_dump()

    def to_response(self, *, detail: str = "summary") -> dict:
        data = {
            "_v": "1.0",
            "id": self.id,
            "child_id": self.child_id,
            "title": self.title,
            "log_date": self.log_date,
            "mood_score": self.mood_score,
        }
        if detail != "summary":
            data.update(
                {
                    "content": self.content,
                    "intensity_level": self.intensity_level,
                    "logged_by": self.logged_by,
                    "is_private": self.is_private,
                    "tags": self.tags,
                    "created_at": self.created_at,
                    "updated_at": self.updated_at,
                }
            )
        return data
