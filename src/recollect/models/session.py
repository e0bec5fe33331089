"""Session-level state models: stats, diagnostic events, snapshots, compaction results."""

from __future__ import annotations

import time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from recollect.models.message import Message

StopReason = Literal[
    "below_threshold",
    "no_plan",
    "no_token_reduction",
    "converged",
    "max_passes",
]


def make_id(prefix: str) -> str:
    """
    Generate a ULID-based sortable identifier.

    Args:
        prefix: Short prefix for readability (e.g. ``"evt"``).

    Returns:
        ID string in the format ``"{prefix}_{ulid}"``.
    """
    return f"{prefix}_{ULID()}"


class SessionStats(BaseModel):
    """
    Per-session compaction bookkeeping.

    ``canonical_context`` is the leading run of pinned instruction messages
    captured on the first write; ``None`` means nothing has been captured yet.
    """

    compaction_count: int = 0
    last_compaction_tokens_before: int | None = None
    last_compaction_tokens_after: int | None = None
    last_compaction_reason: str | None = None
    canonical_context: list[Message] | None = None


class SessionEvent(BaseModel):
    """An immutable, timestamped diagnostic record. Never mutated after it is appended."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: make_id("evt"))
    """ULID-based sortable ID, e.g. ``evt_01JXYZ6K3MNPQR4STUVWXYZ01``."""
    session_id: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))
    """Unix millisecond timestamp."""


class SessionSnapshot(BaseModel):
    """Point-in-time view of a session: its history, token cost and stats."""

    session_id: str
    messages: list[Message]
    token_count: int
    stats: SessionStats


class CompactionResult(BaseModel):
    """
    The outcome of one compaction attempt (one trigger, up to N passes).

    ``applied_passes`` counts the passes that actually rewrote history; it can
    be lower than ``passes`` when the last pass stopped on the no-progress guard.
    """

    session_id: str
    mode: str
    reason: str
    forced: bool = False
    passes: int = 0
    applied_passes: int = 0
    tokens_before: int
    tokens_after: int
    stop_reason: StopReason

    @property
    def applied(self) -> bool:
        return self.applied_passes > 0
