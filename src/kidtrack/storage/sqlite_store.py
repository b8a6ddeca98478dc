"""SQLite storage backend with WAL mode."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from kidtrack.storage.base import StorageBackend

logger = logging.getLogger(__name__)

# Column whitelists per table for UPDATE statements
_ALLOWED_COLUMNS: dict[str, set[str]] = {
    "children": {
        "name",
        "birth_date",
        "diagnosis",
        "notes",
        "is_active",
        "updated_at",
    },
    "daily_logs": {
        "title",
        "content",
        "mood_score",
        "intensity_level",
        "log_date",
        "is_private",
        "tags",
        "updated_at",
    },
}

_BOOL_COLUMNS = ("is_active", "is_private", "is_deleted", "can_edit", "can_view", "can_export")


def _validate_update_keys(table: str, updates: dict[str, Any]) -> dict[str, Any]:
    """Filter update dict to only allowed column names."""
    allowed = _ALLOWED_COLUMNS.get(table, set())
    filtered = {k: v for k, v in updates.items() if k in allowed}
    rejected = set(updates.keys()) - allowed - {"id"}
    if rejected:
        logger.warning("Rejected invalid column names for %s: %s", table, rejected)
    return filtered


class SQLiteStore(StorageBackend):
    """SQLite-based storage for profiles, children, relations and logs."""

    def __init__(self, db_path: Path, *, wal_mode: bool = True) -> None:
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Create database and apply schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row

        if self.wal_mode:
            await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")

        await self._db.executescript(_load_sql("schema.sql"))
        await self._db.commit()
        logger.info("Initialized SQLite store at %s", self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._db

    # --- Profile operations ---

    async def insert_profile(self, profile: dict[str, Any]) -> dict[str, Any]:
        await self.db.execute(
            """INSERT INTO profiles (id, email, full_name, role, created_at, updated_at)
               VALUES (:id, :email, :full_name, :role, :created_at, :updated_at)""",
            profile,
        )
        await self.db.commit()
        return profile

    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        cursor = await self.db.execute("SELECT * FROM profiles WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def get_profile_by_email(self, email: str) -> dict[str, Any] | None:
        cursor = await self.db.execute("SELECT * FROM profiles WHERE email = ?", (email,))
        row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def list_profiles(self) -> list[dict[str, Any]]:
        cursor = await self.db.execute("SELECT * FROM profiles ORDER BY created_at")
        rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    # --- Child operations ---

    async def insert_child(self, child: dict[str, Any]) -> dict[str, Any]:
        await self.db.execute(
            """INSERT INTO children (id, name, birth_date, diagnosis, notes, is_active,
               created_by, created_at, updated_at)
               VALUES (:id, :name, :birth_date, :diagnosis, :notes, :is_active,
               :created_by, :created_at, :updated_at)""",
            child,
        )
        await self.db.commit()
        return child

    async def get_child(self, child_id: str) -> dict[str, Any] | None:
        cursor = await self.db.execute("SELECT * FROM children WHERE id = ?", (child_id,))
        row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def update_child(self, child_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        existing = await self.get_child(child_id)
        if not existing:
            return None

        updates = _validate_update_keys("children", updates)
        set_clauses = []
        values = []
        for key, value in updates.items():
            set_clauses.append(f"{key} = ?")
            values.append(value)

        if not set_clauses:
            return existing

        values.append(child_id)
        await self.db.execute(
            f"UPDATE children SET {', '.join(set_clauses)} WHERE id = ?",
            values,
        )
        await self.db.commit()
        return await self.get_child(child_id)

    async def soft_delete_child(self, child_id: str) -> bool:
        cursor = await self.db.execute(
            """UPDATE children SET is_active = 0, updated_at = strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')
               WHERE id = ? AND is_active = 1""",
            (child_id,),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def list_children_for_user(
        self, user_id: str, *, include_inactive: bool = False
    ) -> list[dict[str, Any]]:
        conditions = ["(c.created_by = ? OR r.id IS NOT NULL)"]
        if not include_inactive:
            conditions.append("c.is_active = 1")
        where = " AND ".join(conditions)
        query = f"""
            SELECT c.*,
                   r.relationship_type AS rel_relationship_type,
                   r.can_edit AS rel_can_edit,
                   r.can_view AS rel_can_view,
                   r.can_export AS rel_can_export
            FROM children c
            LEFT JOIN user_child_relations r
                ON r.child_id = c.id AND r.user_id = ?
            WHERE {where}
            ORDER BY c.created_at DESC
        """
        cursor = await self.db.execute(query, (user_id, user_id))
        rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    # --- Relation operations ---

    async def upsert_relation(self, relation: dict[str, Any]) -> dict[str, Any]:
        await self.db.execute(
            """INSERT INTO user_child_relations (id, user_id, child_id, relationship_type,
               can_edit, can_view, can_export, granted_by, granted_at)
               VALUES (:id, :user_id, :child_id, :relationship_type,
               :can_edit, :can_view, :can_export, :granted_by, :granted_at)
               ON CONFLICT(user_id, child_id) DO UPDATE SET
                   relationship_type = excluded.relationship_type,
                   can_edit = excluded.can_edit,
                   can_view = excluded.can_view,
                   can_export = excluded.can_export,
                   granted_by = excluded.granted_by,
                   granted_at = excluded.granted_at""",
            relation,
        )
        await self.db.commit()
        stored = await self.get_relation(relation["child_id"], relation["user_id"])
        return stored if stored else relation

    async def get_relation(self, child_id: str, user_id: str) -> dict[str, Any] | None:
        cursor = await self.db.execute(
            "SELECT * FROM user_child_relations WHERE child_id = ? AND user_id = ?",
            (child_id, user_id),
        )
        row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def delete_relation(self, child_id: str, user_id: str) -> bool:
        cursor = await self.db.execute(
            "DELETE FROM user_child_relations WHERE child_id = ? AND user_id = ?",
            (child_id, user_id),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def list_relations(self, child_id: str) -> list[dict[str, Any]]:
        cursor = await self.db.execute(
            "SELECT * FROM user_child_relations WHERE child_id = ? ORDER BY granted_at",
            (child_id,),
        )
        rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    # --- Log operations ---

    async def insert_log(self, log: dict[str, Any]) -> dict[str, Any]:
        await self.db.execute(
            """INSERT INTO daily_logs (id, child_id, title, content, mood_score,
               intensity_level, logged_by, log_date, is_private, is_deleted, tags,
               created_at, updated_at)
               VALUES (:id, :child_id, :title, :content, :mood_score,
               :intensity_level, :logged_by, :log_date, :is_private, :is_deleted, :tags,
               :created_at, :updated_at)""",
            _serialize_json_fields(log, ["tags"]),
        )
        await self.db.commit()
        return log

    async def get_log(self, log_id: str) -> dict[str, Any] | None:
        cursor = await self.db.execute(
            "SELECT * FROM daily_logs WHERE id = ? AND is_deleted = 0", (log_id,)
        )
        row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def update_log(self, log_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        existing = await self.get_log(log_id)
        if not existing:
            return None

        updates = _validate_update_keys("daily_logs", updates)
        updates = _serialize_json_fields(updates, ["tags"])
        set_clauses = []
        values = []
        for key, value in updates.items():
            set_clauses.append(f"{key} = ?")
            values.append(value)

        if not set_clauses:
            return existing

        values.append(log_id)
        await self.db.execute(
            f"UPDATE daily_logs SET {', '.join(set_clauses)} WHERE id = ?",
            values,
        )
        await self.db.commit()
        return await self.get_log(log_id)

    async def soft_delete_log(self, log_id: str) -> bool:
        cursor = await self.db.execute(
            "UPDATE daily_logs SET is_deleted = 1 WHERE id = ? AND is_deleted = 0",
            (log_id,),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def query_logs(
        self,
        child_id: str,
        *,
        include_private: bool = True,
        private_author: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        conditions = ["child_id = ?", "is_deleted = 0"]
        params: list[Any] = [child_id]

        if not include_private:
            if private_author:
                conditions.append("(is_private = 0 OR logged_by = ?)")
                params.append(private_author)
            else:
                conditions.append("is_private = 0")

        where = " AND ".join(conditions)
        query = f"""
            SELECT * FROM daily_logs WHERE {where}
            ORDER BY log_date DESC, created_at DESC
            LIMIT ? OFFSET ?
        """
        params.extend([limit, offset])
        cursor = await self.db.execute(query, params)
        rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    async def count_logs(
        self,
        child_ids: list[str],
        *,
        since: str | None = None,
        include_private: bool = True,
        private_author: str | None = None,
    ) -> int:
        if not child_ids:
            return 0

        placeholders = ", ".join("?" for _ in child_ids)
        conditions = [f"child_id IN ({placeholders})", "is_deleted = 0"]
        params: list[Any] = list(child_ids)

        if since:
            conditions.append("created_at >= ?")
            params.append(since)
        if not include_private:
            if private_author:
                conditions.append("(is_private = 0 OR logged_by = ?)")
                params.append(private_author)
            else:
                conditions.append("is_private = 0")

        where = " AND ".join(conditions)
        cursor = await self.db.execute(f"SELECT COUNT(*) FROM daily_logs WHERE {where}", params)
        row = await cursor.fetchone()
        return row[0] if row else 0

    # --- Activity log ---

    async def log_activity(self, entry: dict[str, Any]) -> None:
        await self.db.execute(
            """INSERT INTO activity_log (id, user_id, activity_type, entity_type,
               entity_id, description, created_at)
               VALUES (:id, :user_id, :activity_type, :entity_type,
               :entity_id, :description, :created_at)""",
            entry,
        )
        await self.db.commit()

    async def get_activity_log(
        self, *, entity_type: str | None = None, limit: int = 20
    ) -> list[dict[str, Any]]:
        if entity_type:
            cursor = await self.db.execute(
                "SELECT * FROM activity_log WHERE entity_type = ? ORDER BY created_at DESC LIMIT ?",
                (entity_type, limit),
            )
        else:
            cursor = await self.db.execute(
                "SELECT * FROM activity_log ORDER BY created_at DESC LIMIT ?", (limit,)
            )
        rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    # --- Stats ---

    async def get_stats(self) -> dict[str, Any]:
        counts: dict[str, Any] = {}
        for table, label in (
            ("profiles", "profiles"),
            ("children", "children"),
            ("user_child_relations", "relations"),
            ("daily_logs", "logs"),
        ):
            cursor = await self.db.execute(f"SELECT COUNT(*) FROM {table}")
            row = await cursor.fetchone()
            counts[label] = row[0] if row else 0

        cursor = await self.db.execute("SELECT COUNT(*) FROM children WHERE is_active = 1")
        row = await cursor.fetchone()
        counts["active_children"] = row[0] if row else 0
        counts["db_path"] = str(self.db_path)
        return counts


# --- Helpers ---


def _load_sql(filename: str) -> str:
    """Load SQL file from the schema package."""
    schema_dir = Path(__file__).parent.parent / "schema"
    return (schema_dir / filename).read_text()


def _row_to_dict(row: aiosqlite.Row) -> dict[str, Any]:
    """Convert an aiosqlite Row to a dict, decoding JSON and boolean columns."""
    d = dict(row)
    if isinstance(d.get("tags"), str):
        try:
            d["tags"] = json.loads(d["tags"])
        except (json.JSONDecodeError, TypeError):
            pass
    for key in _BOOL_COLUMNS:
        for col in (key, f"rel_{key}"):
            if col in d and d[col] is not None:
                d[col] = bool(d[col])
    return d


def _serialize_json_fields(data: dict[str, Any], fields: list[str]) -> dict[str, Any]:
    """Serialize dict/list fields to JSON strings for SQLite storage."""
    result = dict(data)
    for field in fields:
        if field in result and not isinstance(result[field], str) and result[field] is not None:
            result[field] = json.dumps(result[field])
    return result
