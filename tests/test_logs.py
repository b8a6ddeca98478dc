"""Tests for the daily log service."""

import csv
import io
import json
from datetime import UTC, datetime

import aiosqlite
import pytest

from kidtrack.errors import NotFoundError, StoreError, UnauthorizedError, ValidationError
from kidtrack.events.types import EventType


@pytest.fixture
async def shared_child(children, as_user):
    """A child owned by the parent, shared with a teacher, specialist and observer."""
    parent = as_user("parent")
    child = await children.create_child(parent, name="Maya")
    for user_id in ("teacher", "specialist", "observer"):
        await children.share_child(parent, child.id, user_id, user_id)
    return child


@pytest.mark.asyncio
async def test_create_log(logs, shared_child, as_user):
    log = await logs.create_log(
        as_user("teacher"),
        shared_child.id,
        title=" Circle time ",
        content="Joined the group",
        mood_score=7,
        intensity_level="low",
        tags=["school"],
    )

    assert log.title == "Circle time"
    assert log.logged_by == "teacher"
    assert log.tags == ["school"]
    assert log.is_private is False


@pytest.mark.asyncio
async def test_create_requires_edit_capability(logs, shared_child, as_user):
    with pytest.raises(UnauthorizedError):
        await logs.create_log(
            as_user("observer"), shared_child.id, title="Note", content="Observed"
        )


@pytest.mark.asyncio
async def test_create_hidden_child(logs, shared_child, as_user):
    with pytest.raises(NotFoundError):
        await logs.create_log(as_user("coparent"), shared_child.id, title="t", content="c")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        {"title": "", "content": "c"},
        {"title": "t", "content": "  "},
        {"title": "t", "content": "c", "mood_score": 0},
        {"title": "t", "content": "c", "mood_score": 11},
        {"title": "t", "content": "c", "intensity_level": "extreme"},
        {"title": "t", "content": "c", "log_date": "yesterday"},
    ],
)
async def test_create_validation(logs, shared_child, as_user, fields):
    with pytest.raises(ValidationError):
        await logs.create_log(as_user("parent"), shared_child.id, **fields)


@pytest.mark.asyncio
async def test_only_author_edits(logs, shared_child, as_user):
    log = await logs.create_log(as_user("teacher"), shared_child.id, title="t", content="c")

    updated = await logs.update_log(as_user("teacher"), log.id, content="changed", mood_score=4)
    assert updated.content == "changed"
    assert updated.mood_score == 4
    assert updated.updated_at is not None

    with pytest.raises(UnauthorizedError):
        await logs.update_log(as_user("parent"), log.id, content="overwrite")


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(logs, shared_child, as_user):
    log = await logs.create_log(as_user("parent"), shared_child.id, title="t", content="c")
    with pytest.raises(ValidationError):
        await logs.update_log(as_user("parent"), log.id, logged_by="teacher")


@pytest.mark.asyncio
async def test_author_loses_edit_after_revoke(logs, children, shared_child, as_user):
    log = await logs.create_log(as_user("teacher"), shared_child.id, title="t", content="c")
    await children.unshare_child(as_user("parent"), shared_child.id, "teacher")

    with pytest.raises(NotFoundError):
        await logs.update_log(as_user("teacher"), log.id, content="late edit")


@pytest.mark.asyncio
async def test_delete_log(logs, shared_child, as_user, event_bus):
    deleted = []

    async def capture(event_type, data):
        deleted.append(data["log_id"])

    event_bus.on(EventType.LOG_DELETED, capture)
    log = await logs.create_log(as_user("parent"), shared_child.id, title="t", content="c")
    await logs.delete_log(as_user("parent"), log.id)

    assert deleted == [log.id]
    assert await logs.list_logs(as_user("parent"), shared_child.id) == []
    with pytest.raises(NotFoundError):
        await logs.delete_log(as_user("parent"), log.id)


class TestListLogs:
    async def test_private_logs_visible_to_author_only(self, logs, shared_child, as_user):
        await logs.create_log(as_user("parent"), shared_child.id, title="open", content="c")
        await logs.create_log(
            as_user("parent"), shared_child.id, title="secret", content="c", is_private=True
        )

        mine = await logs.list_logs(as_user("parent"), shared_child.id)
        theirs = await logs.list_logs(as_user("observer"), shared_child.id)
        assert {log.title for log in mine} == {"open", "secret"}
        assert [log.title for log in theirs] == ["open"]

    async def test_include_private_ignored_for_non_admin(self, logs, shared_child, as_user):
        await logs.create_log(
            as_user("parent"), shared_child.id, title="secret", content="c", is_private=True
        )
        listed = await logs.list_logs(as_user("teacher"), shared_child.id, include_private=True)
        assert listed == []

    async def test_include_private_for_admin(self, logs, children, shared_child, as_user):
        await children.share_child(as_user("parent"), shared_child.id, "admin", "observer")
        await logs.create_log(
            as_user("parent"), shared_child.id, title="secret", content="c", is_private=True
        )
        listed = await logs.list_logs(as_user("admin"), shared_child.id, include_private=True)
        assert [log.title for log in listed] == ["secret"]

    async def test_pagination(self, logs, shared_child, as_user):
        parent = as_user("parent")
        for day in range(1, 13):
            await logs.create_log(
                parent, shared_child.id, title=f"day {day}", content="c",
                log_date=f"2024-03-{day:02d}",
            )

        first = await logs.list_logs(parent, shared_child.id)
        assert len(first) == 5
        assert first[0].title == "day 12"

        capped = await logs.list_logs(parent, shared_child.id, limit=50)
        assert len(capped) == 10

        tail = await logs.list_logs(parent, shared_child.id, limit=10, offset=10)
        assert [log.title for log in tail] == ["day 2", "day 1"]


class TestExport:
    async def test_csv(self, logs, shared_child, as_user):
        await logs.create_log(
            as_user("parent"), shared_child.id, title="Park", content="Swings",
            tags=["outdoor", "play"],
        )
        await logs.create_log(
            as_user("parent"), shared_child.id, title="Diary", content="x", is_private=True
        )

        rendered = await logs.export_logs(as_user("specialist"), shared_child.id)
        rows = list(csv.DictReader(io.StringIO(rendered)))
        assert [row["title"] for row in rows] == ["Park"]
        assert rows[0]["tags"] == "outdoor;play"

    async def test_json_collects_every_page(self, logs, shared_child, as_user):
        for i in range(12):
            await logs.create_log(as_user("parent"), shared_child.id, title=f"t{i}", content="c")

        rendered = await logs.export_logs(as_user("parent"), shared_child.id, fmt="json")
        payload = json.loads(rendered)
        assert payload["child"] == "Maya"
        assert payload["count"] == 12

    async def test_requires_export_capability(self, logs, shared_child, as_user):
        with pytest.raises(UnauthorizedError):
            await logs.export_logs(as_user("teacher"), shared_child.id)

    async def test_unknown_format(self, logs, shared_child, as_user):
        with pytest.raises(ValidationError):
            await logs.export_logs(as_user("parent"), shared_child.id, fmt="xml")

    async def test_emits_exported(self, logs, shared_child, as_user, event_bus):
        seen = []

        async def capture(event_type, data):
            seen.append(data)

        event_bus.on(EventType.LOGS_EXPORTED, capture)
        await logs.export_logs(as_user("parent"), shared_child.id, fmt="json")
        assert seen[0]["format"] == "json"
        assert seen[0]["count"] == 0


@pytest.mark.asyncio
async def test_no_user_is_not_found(logs, children, shared_child):
    from kidtrack.auth.facade import PermissionFacade

    nobody = PermissionFacade(None)
    with pytest.raises(NotFoundError):
        await logs.create_log(nobody, shared_child.id, title="t", content="c")
    with pytest.raises(NotFoundError):
        await logs.list_logs(nobody, shared_child.id)
    with pytest.raises(NotFoundError):
        await children.share_child(nobody, shared_child.id, "teacher2", "teacher")


@pytest.mark.asyncio
async def test_default_log_date_is_utc_today(logs, shared_child, as_user):
    log = await logs.create_log(as_user("parent"), shared_child.id, title="t", content="c")
    assert log.log_date == datetime.now(UTC).date().isoformat()


class TestStoreFailures:
    async def test_insert_failure_is_store_error(self, logs, shared_child, store, as_user):
        async def failing_insert(log):
            raise aiosqlite.OperationalError("disk I/O error")

        store.insert_log = failing_insert
        with pytest.raises(StoreError, match="insert log"):
            await logs.create_log(as_user("parent"), shared_child.id, title="t", content="c")

    async def test_query_failure_is_store_error(self, logs, shared_child, store, as_user):
        async def failing_query(child_id, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        store.query_logs = failing_query
        with pytest.raises(StoreError, match="query logs"):
            await logs.list_logs(as_user("parent"), shared_child.id)


class TestStats:
    async def test_counts_only_visible_children(self, logs, children, shared_child, as_user):
        parent = as_user("parent")
        await logs.create_log(parent, shared_child.id, title="a", content="c")
        await logs.create_log(parent, shared_child.id, title="b", content="c", is_private=True)

        coparent = as_user("coparent")
        other = await children.create_child(coparent, name="Other family")
        for i in range(3):
            await logs.create_log(coparent, other.id, title=f"o{i}", content="c")

        assert await logs.stats(parent) == {
            "total_children": 1,
            "total_logs": 2,
            "logs_this_week": 2,
            "logs_this_month": 2,
        }
        observer = await logs.stats(as_user("observer"))
        assert observer["total_children"] == 1
        assert observer["total_logs"] == 1
        assert (await logs.stats(coparent))["total_logs"] == 3

    async def test_skips_deleted_and_old_logs(self, logs, shared_child, store, as_user):
        parent = as_user("parent")
        gone = await logs.create_log(parent, shared_child.id, title="gone", content="c")
        await logs.delete_log(parent, gone.id)
        await logs.create_log(parent, shared_child.id, title="old", content="c")
        await store.db.execute(
            "UPDATE daily_logs SET created_at = ? WHERE title = 'old'",
            ("2020-01-01T00:00:00+00:00",),
        )
        await store.db.commit()

        counts = await logs.stats(parent)
        assert counts["total_logs"] == 1
        assert counts["logs_this_week"] == 0
        assert counts["logs_this_month"] == 0

    async def test_no_user(self, logs):
        from kidtrack.auth.facade import PermissionFacade

        assert await logs.stats(PermissionFacade(None)) == {
            "total_children": 0,
            "total_logs": 0,
            "logs_this_week": 0,
            "logs_this_month": 0,
        }

    async def test_user_without_children(self, logs, as_user):
        assert (await logs.stats(as_user("specialist")))["total_children"] == 0
