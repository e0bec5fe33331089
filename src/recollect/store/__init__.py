"""Storage adapters for Recollect session data."""

from recollect.store.base import (
    DEFAULT_EVENT_LIMIT,
    MalformedEventError,
    MalformedMessageError,
    RecollectStoreError,
    StorageAdapter,
    StoreNotInitializedError,
    merge_stats,
)
from recollect.store.memory import InMemoryStorageAdapter
from recollect.store.sqlite import SQLiteStorageAdapter

__all__ = [
    "DEFAULT_EVENT_LIMIT",
    "InMemoryStorageAdapter",
    "MalformedEventError",
    "MalformedMessageError",
    "RecollectStoreError",
    "SQLiteStorageAdapter",
    "StorageAdapter",
    "StoreNotInitializedError",
    "merge_stats",
]
