"""Process-local storage adapter backed by plain dictionaries."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from recollect.models.message import Message
from recollect.models.session import SessionEvent, SessionStats
from recollect.store.base import (
    DEFAULT_EVENT_LIMIT,
    StorageAdapter,
    StoreNotInitializedError,
    merge_stats,
)


class InMemoryStorageAdapter(StorageAdapter):
    """
    Keeps everything in memory. Useful for tests and short-lived processes.

    Messages are deep-copied on the way in and out so callers cannot mutate
    stored history through a returned object.
    """

    def __init__(self) -> None:
        self._initialized = False
        self._messages: dict[str, list[Message]] = {}
        self._events: dict[str, list[SessionEvent]] = {}
        self._stats: dict[str, SessionStats] = {}

    def _check(self) -> None:
        if not self._initialized:
            raise StoreNotInitializedError()

    async def initialize(self) -> None:
        self._initialized = True

    async def append_message(self, session_id: str, message: Message) -> None:
        self._check()
        self._messages.setdefault(session_id, []).append(message.model_copy(deep=True))

    async def list_messages(self, session_id: str) -> list[Message]:
        self._check()
        return [m.model_copy(deep=True) for m in self._messages.get(session_id, [])]

    async def replace_messages(self, session_id: str, messages: Sequence[Message]) -> None:
        self._check()
        self._messages[session_id] = [m.model_copy(deep=True) for m in messages]

    async def clear_session(self, session_id: str) -> int:
        self._check()
        return len(self._messages.pop(session_id, []))

    async def append_event(self, event: SessionEvent) -> None:
        self._check()
        self._events.setdefault(event.session_id, []).append(event)

    async def list_events(
        self, session_id: str, limit: int = DEFAULT_EVENT_LIMIT
    ) -> list[SessionEvent]:
        self._check()
        if limit <= 0:
            return []
        return list(self._events.get(session_id, [])[-limit:])

    async def get_stats(self, session_id: str) -> SessionStats:
        self._check()
        return self._stats.get(session_id, SessionStats()).model_copy(deep=True)

    async def update_stats(
        self, session_id: str, *, reset: Iterable[str] = (), **patch: Any
    ) -> SessionStats:
        self._check()
        merged = merge_stats(self._stats.get(session_id, SessionStats()), patch, reset)
        self._stats[session_id] = merged
        return merged.model_copy(deep=True)

    async def dispose(self) -> None:
        self._initialized = False
