"""kidtrack storage layer."""

from kidtrack.storage.base import StorageBackend
from kidtrack.storage.sqlite_store import SQLiteStore

__all__ = ["SQLiteStore", "StorageBackend"]
