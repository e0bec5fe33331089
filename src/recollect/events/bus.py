"""In-process pub/sub event bus for Recollect session diagnostics."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum

import structlog

from recollect.models.session import SessionEvent

Handler = Callable[[SessionEvent], None | Awaitable[None]]


class SessionEventType(StrEnum):
    """All diagnostic event types recorded by a memory layer.

    Typed payload definitions for each type live in
    :mod:`recollect.events.payloads`.

    ``MESSAGE_APPENDED``
        ``role: str``. One message persisted via ``add_message()``.

    ``MESSAGES_APPENDED``
        ``count: int``. A batch persisted via ``add_messages()``.

    ``PROMPT_SYNCED``
        ``incoming: int``, ``appended: int``. A full prompt reconciled
        against stored history; only the new suffix was appended.

    ``COMPACTION_STARTED``, ``COMPACTION_APPLIED``, ``COMPACTION_SKIPPED``
        One compaction attempt and its passes. ``COMPACTION_SKIPPED``
        carries ``cause`` (``"no_plan"`` or ``"no_token_reduction"``).

    ``CANONICAL_CONTEXT_CAPTURED``
        ``message_count: int``. The pinned instruction head was recorded.

    ``HISTORY_NORMALIZED``
        ``dropped: int``. Normalization removed messages from a batch.

    ``SESSION_CLEARED``
        ``removed_messages: int``.
    """

    MESSAGE_APPENDED = "message_appended"
    MESSAGES_APPENDED = "messages_appended"
    PROMPT_SYNCED = "prompt_synced"
    COMPACTION_STARTED = "compaction_started"
    COMPACTION_APPLIED = "compaction_applied"
    COMPACTION_SKIPPED = "compaction_skipped"
    CANONICAL_CONTEXT_CAPTURED = "canonical_context_captured"
    HISTORY_NORMALIZED = "history_normalized"
    SESSION_CLEARED = "session_cleared"


class EventBus:
    """
    Simple in-process pub/sub event bus.

    - Sync handlers are called inline within ``publish()``.
    - Async handlers are scheduled via ``asyncio.create_task()`` (fire-and-forget).
    - Handler exceptions are logged but never propagate to the publisher.

    Example::

        bus = EventBus()

        def on_compaction(event):
            print(event.session_id, event.payload["tokens_after"])

        bus.subscribe(SessionEventType.COMPACTION_APPLIED, on_compaction)
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._global_handlers: list[Handler] = []
        self._logger = logger or structlog.get_logger("recollect.events")
        self._tasks: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: SessionEventType | str, handler: Handler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: The event type to listen for.
            handler: Callable accepting the :class:`SessionEvent`. May be sync or async.
        """
        self._handlers.setdefault(str(event_type), []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register a handler for ALL event types."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: SessionEventType | str, handler: Handler) -> None:
        """Remove a previously registered handler. No-op if not found."""
        handlers = self._handlers.get(str(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: SessionEvent) -> None:
        """
        Deliver ``event`` to every handler registered for its type, then to global handlers.

        Exceptions from any handler are logged and swallowed.
        """
        all_handlers = list(self._handlers.get(event.type, [])) + list(self._global_handlers)
        for handler in all_handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    task = asyncio.get_running_loop().create_task(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
            except Exception as exc:
                self._logger.error(
                    "event_handler_error",
                    event_type=event.type,
                    session_id=event.session_id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(exc),
                )
