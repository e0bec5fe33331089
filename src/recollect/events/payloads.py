"""Typed payload definitions for each SessionEventType.

Usage example::

    from recollect.events.payloads import CompactionAppliedPayload

    def on_applied(event: SessionEvent) -> None:
        payload: CompactionAppliedPayload = event.payload  # type: ignore[assignment]
        print(f"{payload['tokens_before']} -> {payload['tokens_after']} tokens")
"""

from __future__ import annotations

from typing import Literal, NotRequired, TypedDict

# ── Appends ───────────────────────────────────────────────────────────────────


class MessageAppendedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.MESSAGE_APPENDED`."""

    role: str


class MessagesAppendedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.MESSAGES_APPENDED`."""

    count: int


class PromptSyncedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.PROMPT_SYNCED`."""

    incoming: int
    """Messages in the prompt after normalization."""
    appended: int
    """Messages that were new and got persisted."""


class HistoryNormalizedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.HISTORY_NORMALIZED`."""

    dropped: int


class CanonicalContextCapturedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.CANONICAL_CONTEXT_CAPTURED`."""

    message_count: int


class SessionClearedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.SESSION_CLEARED`."""

    removed_messages: int


# ── Compaction ────────────────────────────────────────────────────────────────


class CompactionStartedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.COMPACTION_STARTED`."""

    mode: str
    reason: str
    forced: bool
    tokens: int
    trigger_tokens: int
    target_tokens: int


class CompactionAppliedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.COMPACTION_APPLIED`."""

    mode: str
    reason: str
    pass_number: int
    tokens_before: int
    tokens_after: int
    summarized_messages: int
    kept_messages: int
    merged_checkpoints: int


class CompactionSkippedPayload(TypedDict):
    """Payload for :attr:`SessionEventType.COMPACTION_SKIPPED`."""

    cause: Literal["no_plan", "no_token_reduction"]
    mode: str
    reason: str
    pass_number: int
    tokens: int
    tokens_after: NotRequired[int]
    """Only present for ``no_token_reduction``: the size the rewrite would have had."""
