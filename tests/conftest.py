"""Shared test fixtures for kidtrack."""

from __future__ import annotations

from pathlib import Path

import pytest

from kidtrack.auth.facade import PermissionFacade
from kidtrack.auth.roles import Role
from kidtrack.config import Config
from kidtrack.core.access import AccessRelationStore
from kidtrack.core.children import ChildService
from kidtrack.core.logs import LogService
from kidtrack.events.bus import EventBus
from kidtrack.models.profile import Profile
from kidtrack.storage.sqlite_store import SQLiteStore


@pytest.fixture
def tmp_db(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
async def store(tmp_db: Path) -> SQLiteStore:
    s = SQLiteStore(tmp_db)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(data_path=tmp_path)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def access(store, event_bus) -> AccessRelationStore:
    return AccessRelationStore(store, event_bus, max_retries=3, retry_delay=0)


@pytest.fixture
def children(store, access, event_bus) -> ChildService:
    return ChildService(store, access, event_bus)


@pytest.fixture
def logs(store, access, event_bus) -> LogService:
    return LogService(store, access, event_bus, page_size_default=5, page_size_max=10)


async def _add_user(store: SQLiteStore, user_id: str, role: Role) -> Profile:
    profile = Profile(
        id=user_id, email=f"{user_id}@example.com", full_name=user_id.title(), role=role
    )
    await store.insert_profile(profile.to_storage())
    return profile


@pytest.fixture
async def users(store) -> dict[str, Profile]:
    """One stored profile per role, plus a second parent and teacher."""
    return {
        "parent": await _add_user(store, "parent", Role.PARENT),
        "coparent": await _add_user(store, "coparent", Role.PARENT),
        "teacher": await _add_user(store, "teacher", Role.TEACHER),
        "teacher2": await _add_user(store, "teacher2", Role.TEACHER),
        "specialist": await _add_user(store, "specialist", Role.SPECIALIST),
        "observer": await _add_user(store, "observer", Role.OBSERVER),
        "admin": await _add_user(store, "admin", Role.ADMIN),
    }


@pytest.fixture
def as_user(users):
    """Return a facade bound to one of the seeded users."""

    def _facade(name: str) -> PermissionFacade:
        return PermissionFacade(users[name])

    return _facade
