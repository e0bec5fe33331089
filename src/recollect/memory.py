"""Recollect MemoryLayer, the primary public API entry point."""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import structlog

from recollect.compaction.engine import CompactionEngine
from recollect.compaction.planner import leading_pinned_run
from recollect.compaction.summarizer import LLMSummarizer, Summarizer
from recollect.context.reconciler import reconcile_tool_calls
from recollect.events.bus import EventBus, Handler, SessionEventType
from recollect.events.log import EventRecorder
from recollect.events.payloads import (
    CanonicalContextCapturedPayload,
    HistoryNormalizedPayload,
    MessageAppendedPayload,
    MessagesAppendedPayload,
    PromptSyncedPayload,
    SessionClearedPayload,
)
from recollect.history.ingestion import find_prompt_suffix_to_append
from recollect.history.normalizer import normalize_message, normalize_messages
from recollect.models.config import MemoryConfig
from recollect.models.message import (
    InvalidMessageError,
    Message,
    MessageLike,
    Role,
    as_message,
)
from recollect.models.session import CompactionResult, SessionEvent, SessionSnapshot, SessionStats
from recollect.store.base import DEFAULT_EVENT_LIMIT, StorageAdapter
from recollect.store.sqlite import SQLiteStorageAdapter
from recollect.tokens.estimator import TokenCounter, TokenEstimator, count_message_tokens

AUTO_COMPACTION_REASON = "threshold_exceeded"
MANUAL_COMPACTION_REASON = "manual"


class MemoryLayer:
    """
    Bounded conversational memory for any number of chat sessions.

    Stores every turn of a session, keeps the stored history under a token
    budget by summarising older turns into checkpoint messages, and hands back
    a prompt view in which every tool call has a result.

    Usage::

        # Preferred: open() returns an async context manager directly
        async with MemoryLayer.open(MemoryConfig(max_tokens=16_000)) as memory:
            await memory.add_message("sess-1", "user", "Hello!")
            prompt = await memory.get_prompt_messages("sess-1")

        # Manual lifecycle
        memory = await MemoryLayer.create(MemoryConfig(max_tokens=16_000))
        try:
            await memory.sync_from_prompt("sess-1", prompt)
        finally:
            await memory.dispose()

    Collaborators are pluggable: pass ``storage`` (defaults to
    :class:`~recollect.store.sqlite.SQLiteStorageAdapter` on
    ``config.store``), ``summarizer`` (defaults to
    :class:`~recollect.compaction.summarizer.LLMSummarizer`) and
    ``token_counter`` (defaults to
    :class:`~recollect.tokens.estimator.TokenEstimator`).
    """

    def __init__(
        self,
        config: MemoryConfig,
        *,
        storage: StorageAdapter | None = None,
        summarizer: Summarizer | None = None,
        token_counter: TokenCounter | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config
        self._storage = storage or SQLiteStorageAdapter(config.store)
        self._summarizer = summarizer or LLMSummarizer(config.summarizer)
        self._counter = token_counter or TokenEstimator()
        self._event_bus = event_bus or EventBus()
        self._recorder = EventRecorder(self._storage, self._event_bus)
        self._engine = CompactionEngine(
            self._storage,
            self._counter,
            self._summarizer,
            self._recorder,
            config,
        )
        # A session's lock is dropped once no coroutine holds or awaits it.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._initialized = False
        self._disposed = False
        self._logger = structlog.get_logger("recollect.memory")

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Initialize the storage adapter. Called for you by :meth:`create` and :meth:`open`."""
        if self._initialized:
            return
        await self._storage.initialize()
        self._initialized = True
        self._disposed = False
        self._logger.info(
            "memory_initialized",
            max_tokens=self._config.max_tokens,
            trigger_tokens=self._config.trigger_tokens,
            target_tokens=self._config.target_tokens,
        )

    @classmethod
    async def create(cls, config: MemoryConfig, **kwargs: Any) -> MemoryLayer:
        """
        Construct and initialize a memory layer.

        Args:
            config: Memory configuration.
            **kwargs: Forwarded to the constructor (``storage``,
                ``summarizer``, ``token_counter``, ``event_bus``).

        Returns:
            An initialized MemoryLayer.
        """
        layer = cls(config, **kwargs)
        await layer.initialize()
        return layer

    @classmethod
    @asynccontextmanager
    async def open(cls, config: MemoryConfig, **kwargs: Any) -> AsyncGenerator[MemoryLayer, None]:
        """
        Create a memory layer and use it as an async context manager.

        All parameters are identical to :meth:`create`. The layer is disposed
        when the ``async with`` block exits, even on exception.
        """
        layer = await cls.create(config, **kwargs)
        try:
            yield layer
        finally:
            await layer.dispose()

    async def dispose(self) -> None:
        """Release the storage adapter. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        self._initialized = False
        await self._storage.dispose()
        self._logger.info("memory_disposed")

    async def __aenter__(self) -> MemoryLayer:
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.dispose()

    # ── Properties ─────────────────────────────────────────────────────────────

    @property
    def config(self) -> MemoryConfig:
        return self._config

    @property
    def storage(self) -> StorageAdapter:
        return self._storage

    @property
    def event_bus(self) -> EventBus:
        """The bus every recorded session event is published on."""
        return self._event_bus

    def subscribe(self, event_type: SessionEventType | str, handler: Handler) -> None:
        """Shorthand for ``memory.event_bus.subscribe(event_type, handler)``."""
        self._event_bus.subscribe(event_type, handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Shorthand for ``memory.event_bus.subscribe_all(handler)``."""
        self._event_bus.subscribe_all(handler)

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    # ── Writes ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_message(role: Role | None, content: Any) -> Message:
        structured = isinstance(content, (Message, dict))
        if role is None or role == "tool":
            if not structured:
                raise InvalidMessageError(
                    "A structured message is required when role is "
                    f"{'omitted' if role is None else repr(role)}"
                )
            return as_message(content)
        if structured:
            if isinstance(content, dict):
                content = {"role": role, **content}
            message = as_message(content)
            if message.role != role:
                raise InvalidMessageError(
                    f"Role {role!r} does not match the message role {message.role!r}"
                )
            return message
        if content is None:
            content = ""
        if not isinstance(content, (str, list)):
            raise InvalidMessageError(
                f"Message content must be a string or a list of parts, got {type(content).__name__}"
            )
        return as_message({"role": role, "content": content})

    async def add_message(
        self,
        session_id: str,
        role: Role | None,
        content: Any = None,
    ) -> CompactionResult:
        """
        Append one message, then compact if the session is over its trigger.

        Args:
            session_id: The session to append to. Created implicitly.
            role: The message role. ``None`` means ``content`` is a complete
                structured message (a :class:`Message` or wire-format dict).
            content: Text, a list of content parts, or a structured message.
                Tool messages must always be given as structured messages.

        Returns:
            The result of the automatic compaction check.

        Raises:
            InvalidMessageError: If ``role`` and ``content`` do not describe a
                valid message.
        """
        message = self._build_message(role, content)
        async with self._lock(session_id):
            normalized = normalize_message(message)
            if normalized is None:
                dropped: HistoryNormalizedPayload = {"dropped": 1}
                await self._recorder.record(
                    session_id, SessionEventType.HISTORY_NORMALIZED, dropped
                )
            else:
                await self._storage.append_message(session_id, normalized)
                await self._capture_canonical_context(session_id)
                appended: MessageAppendedPayload = {"role": normalized.role}
                await self._recorder.record(
                    session_id, SessionEventType.MESSAGE_APPENDED, appended
                )
            return await self._engine.run(
                session_id, mode="auto", reason=AUTO_COMPACTION_REASON
            )

    async def add_messages(
        self,
        session_id: str,
        messages: Sequence[MessageLike],
        *,
        compact: bool = True,
    ) -> CompactionResult | None:
        """
        Append a batch of structured messages in order.

        Args:
            session_id: The session to append to.
            messages: Messages or wire-format dicts.
            compact: Run the automatic compaction check afterwards.

        Returns:
            The compaction result, or ``None`` when ``compact`` is False.
        """
        batch = [as_message(m) for m in messages]
        async with self._lock(session_id):
            normalized = normalize_messages(batch)
            for message in normalized:
                await self._storage.append_message(session_id, message)
            if normalized:
                await self._capture_canonical_context(session_id)
            appended: MessagesAppendedPayload = {"count": len(normalized)}
            await self._recorder.record(session_id, SessionEventType.MESSAGES_APPENDED, appended)
            if len(normalized) != len(batch):
                dropped: HistoryNormalizedPayload = {"dropped": len(batch) - len(normalized)}
                await self._recorder.record(
                    session_id, SessionEventType.HISTORY_NORMALIZED, dropped
                )
            if not compact:
                return None
            return await self._engine.run(
                session_id, mode="auto", reason=AUTO_COMPACTION_REASON
            )

    async def sync_from_prompt(
        self, session_id: str, prompt: Sequence[MessageLike]
    ) -> list[Message]:
        """
        Persist the part of a full prompt that is not already stored.

        The prompt is compared against the tail of the stored history; only
        the messages after the longest overlap are appended. Sending the same
        prompt twice appends nothing the second time.
        The automatic compaction check runs afterwards under the same lock.

        Returns:
            The messages that were appended.
        """
        incoming = [as_message(m) for m in prompt]
        async with self._lock(session_id):
            existing = await self._storage.list_messages(session_id)
            suffix = find_prompt_suffix_to_append(existing, incoming)
            for message in suffix:
                await self._storage.append_message(session_id, message)
            if suffix:
                await self._capture_canonical_context(session_id)
            synced: PromptSyncedPayload = {
                "incoming": len(normalize_messages(incoming)),
                "appended": len(suffix),
            }
            await self._recorder.record(session_id, SessionEventType.PROMPT_SYNCED, synced)
            await self._engine.run(session_id, mode="auto", reason=AUTO_COMPACTION_REASON)
        self._logger.debug(
            "prompt_synced", session_id=session_id, incoming=len(incoming), appended=len(suffix)
        )
        return suffix

    async def _capture_canonical_context(self, session_id: str) -> None:
        stats = await self._storage.get_stats(session_id)
        messages = await self._storage.list_messages(session_id)
        pinned = leading_pinned_run(messages)
        if not pinned:
            return
        captured = stats.canonical_context
        if captured is not None:
            # Keeps growing only while every stored message is still pinned.
            if len(pinned) != len(messages) or len(pinned) <= len(captured):
                return
        await self._storage.update_stats(session_id, canonical_context=pinned)
        payload: CanonicalContextCapturedPayload = {"message_count": len(pinned)}
        await self._recorder.record(
            session_id, SessionEventType.CANONICAL_CONTEXT_CAPTURED, payload
        )

    async def clear_session(self, session_id: str) -> None:
        """
        Delete every message of a session.

        The captured canonical context is reset so the next pinned messages
        written become the new one. Other stats and the event log are kept.
        """
        async with self._lock(session_id):
            removed = await self._storage.clear_session(session_id)
            await self._storage.update_stats(session_id, reset=("canonical_context",))
            cleared: SessionClearedPayload = {"removed_messages": removed}
            await self._recorder.record(session_id, SessionEventType.SESSION_CLEARED, cleared)
        self._logger.info("session_cleared", session_id=session_id, removed_messages=removed)

    # ── Compaction ─────────────────────────────────────────────────────────────

    async def compact_now(
        self, session_id: str, *, reason: str = MANUAL_COMPACTION_REASON
    ) -> CompactionResult:
        """Compact regardless of the trigger threshold."""
        async with self._lock(session_id):
            return await self._engine.run(session_id, mode="manual", reason=reason, forced=True)

    async def compact_if_needed(
        self,
        session_id: str,
        *,
        mode: str = "auto",
        reason: str = AUTO_COMPACTION_REASON,
    ) -> CompactionResult:
        """Compact only if the session has reached its trigger threshold."""
        async with self._lock(session_id):
            return await self._engine.run(session_id, mode=mode, reason=reason)

    # ── Reads ──────────────────────────────────────────────────────────────────

    async def get_messages(self, session_id: str) -> list[Message]:
        """The stored history, exactly as persisted."""
        return await self._storage.list_messages(session_id)

    async def get_prompt_messages(self, session_id: str) -> list[Message]:
        """The stored history with tool-call pairing repaired, ready to send to a model."""
        return reconcile_tool_calls(await self._storage.list_messages(session_id))

    async def count_tokens(self, session_id: str) -> int:
        return count_message_tokens(await self._storage.list_messages(session_id), self._counter)

    async def get_session_events(
        self, session_id: str, limit: int = DEFAULT_EVENT_LIMIT
    ) -> list[SessionEvent]:
        """The most recent ``limit`` diagnostic events, oldest first."""
        return await self._storage.list_events(session_id, limit)

    async def get_stats(self, session_id: str) -> SessionStats:
        return await self._storage.get_stats(session_id)

    async def get_snapshot(self, session_id: str) -> SessionSnapshot:
        messages = await self._storage.list_messages(session_id)
        return SessionSnapshot(
            session_id=session_id,
            messages=messages,
            token_count=count_message_tokens(messages, self._counter),
            stats=await self._storage.get_stats(session_id),
        )
