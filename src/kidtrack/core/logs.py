"""Daily log service: record, edit, list and export logs for a child."""

import csv
import io
import json
import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any

from kidtrack.auth.facade import PermissionFacade
from kidtrack.auth.permissions import Action
from kidtrack.auth.roles import Role
from kidtrack.core.access import AccessRelationStore, store_call
from kidtrack.core.children import load_visible_child
from kidtrack.errors import NotFoundError, UnauthorizedError, ValidationError
from kidtrack.events.bus import EventBus
from kidtrack.events.types import EventType
from kidtrack.models.log import VALID_INTENSITIES, DailyLog
from kidtrack.storage.base import StorageBackend

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "title",
    "content",
    "mood_score",
    "intensity_level",
    "log_date",
    "is_private",
    "tags",
}
EXPORT_FORMATS = {"csv", "json"}
EXPORT_COLUMNS = [
    "id",
    "log_date",
    "title",
    "content",
    "mood_score",
    "intensity_level",
    "logged_by",
    "tags",
    "created_at",
]


def _validate_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Check and normalize log fields. Raises ValidationError on bad input."""
    cleaned = dict(fields)
    for key in ("title", "content"):
        if key in cleaned:
            value = cleaned[key]
            if not value or not str(value).strip():
                raise ValidationError(f"Log {key} cannot be empty")
            cleaned[key] = str(value).strip()

    mood = cleaned.get("mood_score")
    if mood is not None:
        if isinstance(mood, bool) or not isinstance(mood, int) or not 1 <= mood <= 10:
            raise ValidationError(f"mood_score must be an integer from 1 to 10, got {mood!r}")

    if "intensity_level" in cleaned and cleaned["intensity_level"] not in VALID_INTENSITIES:
        raise ValidationError(
            f"Invalid intensity_level: {cleaned['intensity_level']}. "
            f"Must be one of {sorted(VALID_INTENSITIES)}"
        )

    if cleaned.get("log_date") is not None:
        try:
            date.fromisoformat(cleaned["log_date"])
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid log_date: {cleaned['log_date']!r}") from e

    return cleaned


class LogService:
    """Guarded operations on daily logs."""

    def __init__(
        self,
        store: StorageBackend,
        access: AccessRelationStore,
        event_bus: EventBus,
        *,
        page_size_default: int = 20,
        page_size_max: int = 100,
    ) -> None:
        self._store = store
        self._access = access
        self._event_bus = event_bus
        self.page_size_default = page_size_default
        self.page_size_max = page_size_max

    async def create_log(
        self,
        facade: PermissionFacade,
        child_id: str,
        *,
        title: str,
        content: str,
        mood_score: int | None = None,
        intensity_level: str = "medium",
        log_date: str | None = None,
        is_private: bool = False,
        tags: list[str] | None = None,
    ) -> DailyLog:
        """Record a log against a child the caller may edit.

        Raises:
            NotFoundError: If the child is absent or not visible to the caller
            UnauthorizedError: If the caller may not add logs to the child
            ValidationError: On empty title/content, bad mood, intensity or date
        """
        child = await load_visible_child(self._store, self._access, facade, child_id)
        user = facade.user
        if user is None or not facade.can_create_log(child):
            raise UnauthorizedError(Action.LOGS_CREATE_EDITABLE, child_id)

        fields = _validate_fields(
            {
                "title": title,
                "content": content,
                "mood_score": mood_score,
                "intensity_level": intensity_level,
                "log_date": log_date,
            }
        )
        if fields["log_date"] is None:
            fields.pop("log_date")

        log = DailyLog(
            child_id=child_id,
            logged_by=user.id,
            is_private=is_private,
            tags=tags or [],
            **fields,
        )
        await store_call("insert log", lambda: self._store.insert_log(log.to_storage()))
        logger.info("Logged %r for child %s by %s", log.title, child_id, user.id)

        await self._event_bus.emit(
            EventType.LOG_CREATED,
            {"log_id": log.id, "child_id": child_id, "user_id": user.id},
        )
        return log

    async def _load_editable(self, facade: PermissionFacade, log_id: str) -> DailyLog:
        data = await store_call("get log", lambda: self._store.get_log(log_id))
        if not data:
            raise NotFoundError("log", log_id)
        log = DailyLog(**data)

        # The log's child must still be visible; otherwise the log is hidden too.
        await load_visible_child(self._store, self._access, facade, log.child_id)
        if not facade.can_edit_log(log.logged_by):
            raise UnauthorizedError(Action.LOGS_UPDATE_OWN, log_id)
        return log

    async def update_log(self, facade: PermissionFacade, log_id: str, **updates) -> DailyLog:
        """Edit a log. Only its author may do this."""
        log = await self._load_editable(facade, log_id)

        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {sorted(unknown)}")
        updates = _validate_fields(updates)
        updates["updated_at"] = datetime.now(UTC).isoformat()

        data = await store_call("update log", lambda: self._store.update_log(log_id, updates))
        if not data:
            raise NotFoundError("log", log_id)

        await self._event_bus.emit(
            EventType.LOG_UPDATED,
            {"log_id": log_id, "child_id": log.child_id, "user_id": facade.user.id},
        )
        return DailyLog(**data)

    async def delete_log(self, facade: PermissionFacade, log_id: str) -> None:
        """Soft-delete a log. Same rule as editing."""
        log = await self._load_editable(facade, log_id)
        if not await store_call("delete log", lambda: self._store.soft_delete_log(log_id)):
            raise NotFoundError("log", log_id)
        await self._event_bus.emit(
            EventType.LOG_DELETED,
            {"log_id": log_id, "child_id": log.child_id, "user_id": facade.user.id},
        )

    async def list_logs(
        self,
        facade: PermissionFacade,
        child_id: str,
        *,
        include_private: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[DailyLog]:
        """Logs of a child, newest first.

        Private logs are shown to their author. ``include_private`` opens all
        private logs, and is honoured for admins only.
        """
        child = await load_visible_child(self._store, self._access, facade, child_id)
        user = facade.user
        if user is None or not facade.can_read_logs(child):
            raise UnauthorizedError(Action.LOGS_READ_ACCESSIBLE, child_id)

        rows = await store_call(
            "query logs",
            lambda: self._store.query_logs(
                child_id,
                include_private=include_private and facade.has_role(Role.ADMIN),
                private_author=user.id,
                limit=self._page_size(limit),
                offset=max(0, offset),
            ),
        )
        return [DailyLog(**row) for row in rows]

    async def export_logs(
        self, facade: PermissionFacade, child_id: str, *, fmt: str = "csv"
    ) -> str:
        """Render a child's shareable logs as CSV or JSON.

        Private and deleted logs are never exported.
        """
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(
                f"Invalid export format: {fmt}. Must be one of {sorted(EXPORT_FORMATS)}"
            )
        child = await load_visible_child(self._store, self._access, facade, child_id)
        if not facade.can_export_logs(child):
            raise UnauthorizedError(Action.LOGS_EXPORT_EXPORTABLE, child_id)

        logs: list[DailyLog] = []
        offset = 0
        while True:
            rows = await store_call(
                "query logs",
                lambda: self._store.query_logs(
                    child_id, include_private=False, limit=self.page_size_max, offset=offset
                ),
            )
            logs.extend(DailyLog(**row) for row in rows)
            if len(rows) < self.page_size_max:
                break
            offset += self.page_size_max

        output = _render_json(child.name, logs) if fmt == "json" else _render_csv(logs)
        logger.info("Exported %d logs for child %s as %s", len(logs), child_id, fmt)
        await self._event_bus.emit(
            EventType.LOGS_EXPORTED,
            {
                "child_id": child_id,
                "user_id": facade.user.id if facade.user else None,
                "format": fmt,
                "count": len(logs),
            },
        )
        return output

    async def stats(self, facade: PermissionFacade) -> dict[str, int]:
        """Dashboard counts scoped to the children the caller can see.

        Log counts cover children whose logs the caller may read and follow
        the same private-log rule as ``list_logs``.
        """
        counts = dict.fromkeys(
            ("total_children", "total_logs", "logs_this_week", "logs_this_month"), 0
        )
        user = facade.user
        if user is None:
            return counts

        children = await self._access.list_children_for_user(user.id)
        visible = [c for c in children if facade.can_read_child(c)]
        readable = [c.id for c in visible if facade.can_read_logs(c)]
        counts["total_children"] = len(visible)

        now = datetime.now(UTC)
        windows = {
            "total_logs": None,
            "logs_this_week": (now - timedelta(days=7)).isoformat(),
            "logs_this_month": (now - timedelta(days=30)).isoformat(),
        }
        for key, since in windows.items():
            counts[key] = await store_call(
                "count logs",
                lambda since=since: self._store.count_logs(
                    readable,
                    since=since,
                    include_private=facade.has_role(Role.ADMIN),
                    private_author=user.id,
                ),
            )
        return counts

    def _page_size(self, limit: int | None) -> int:
        if not limit or limit < 1:
            return self.page_size_default
        return min(limit, self.page_size_max)


def _render_csv(logs: list[DailyLog]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    for log in logs:
        row = {col: getattr(log, col) for col in EXPORT_COLUMNS}
        row["tags"] = ";".join(log.tags or [])
        writer.writerow(row)
    return buffer.getvalue()


def _render_json(child_name: str, logs: list[DailyLog]) -> str:
    return json.dumps(
        {
            "_v": "1.0",
            "child": child_name,
            "count": len(logs),
            "logs": [log.to_response(detail="full") for log in logs],
        },
        default=str,
    )
