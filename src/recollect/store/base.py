"""Storage adapter interface and store errors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

from recollect.models.message import Message
from recollect.models.session import SessionEvent, SessionStats

DEFAULT_EVENT_LIMIT: int = 200

# ── Exceptions ─────────────────────────────────────────────────────────────────


class RecollectStoreError(Exception):
    """Base class for store errors."""


class StoreNotInitializedError(RecollectStoreError):
    """Raised when an adapter is used before ``initialize()`` or after ``dispose()``."""

    def __init__(self) -> None:
        super().__init__("Store is not initialized. Call initialize() first.")


class MalformedMessageError(RecollectStoreError):
    """Raised when a persisted row cannot be parsed back into a message."""

    def __init__(self, session_id: str, row_id: int | str | None, detail: str) -> None:
        super().__init__(f"Invalid message JSON in session {session_id!r} row {row_id}: {detail}")
        self.session_id = session_id
        self.row_id = row_id
        self.detail = detail


class MalformedEventError(RecollectStoreError):
    """Raised when a persisted event row cannot be parsed back into a SessionEvent."""

    def __init__(self, session_id: str, event_id: str | None, detail: str) -> None:
        super().__init__(
            f"Invalid event payload in session {session_id!r} event {event_id}: {detail}"
        )
        self.session_id = session_id
        self.event_id = event_id
        self.detail = detail


def merge_stats(
    current: SessionStats,
    patch: dict[str, Any],
    reset: Iterable[str] = (),
) -> SessionStats:
    """
    Overlay ``patch`` onto ``current``. ``None`` values keep the prior value.

    Fields named in ``reset`` go back to their defaults before the patch is
    applied; this is the only way to clear a field such as
    ``canonical_context``.

    Raises:
        ValueError: If ``patch`` or ``reset`` names a field SessionStats does not have.
    """
    cleared = set(reset)
    unknown = (set(patch) | cleared) - set(SessionStats.model_fields)
    if unknown:
        raise ValueError(f"Unknown session stats fields: {sorted(unknown)}")
    base = {key: value for key, value in dict(current).items() if key not in cleared}
    updates = {key: value for key, value in patch.items() if value is not None}
    return SessionStats.model_validate({**base, **updates})


# ── StorageAdapter ─────────────────────────────────────────────────────────────


class StorageAdapter(ABC):
    """
    Persistence for session message logs, stats and diagnostic events.

    Message order is insertion order and is never changed except by
    :meth:`replace_messages`, which must be atomic: readers see either the old
    history or the new one, never a mix.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backing store. Must be called before any other method."""

    @abstractmethod
    async def append_message(self, session_id: str, message: Message) -> None: ...

    @abstractmethod
    async def list_messages(self, session_id: str) -> list[Message]:
        """Return the session's messages, oldest first. Unknown sessions yield ``[]``."""

    @abstractmethod
    async def replace_messages(self, session_id: str, messages: Sequence[Message]) -> None:
        """Atomically replace the whole message log of a session."""

    @abstractmethod
    async def clear_session(self, session_id: str) -> int:
        """Delete all messages of a session. Stats and events are kept. Returns the count removed."""

    @abstractmethod
    async def append_event(self, event: SessionEvent) -> None: ...

    @abstractmethod
    async def list_events(
        self, session_id: str, limit: int = DEFAULT_EVENT_LIMIT
    ) -> list[SessionEvent]:
        """The most recent ``limit`` events of a session, oldest first."""

    @abstractmethod
    async def get_stats(self, session_id: str) -> SessionStats:
        """Stats for a session; defaults when none have been recorded."""

    @abstractmethod
    async def update_stats(
        self, session_id: str, *, reset: Iterable[str] = (), **patch: Any
    ) -> SessionStats:
        """
        Merge ``patch`` into the session's stats and return the result.

        Fields named in ``reset`` return to their defaults first (see :func:`merge_stats`).
        """

    @abstractmethod
    async def dispose(self) -> None:
        """Release resources. Safe to call more than once."""
