"""Compaction planning: split a history into head, summarise slice and tail.

The head is the pinned instruction context that must survive every
compaction. The tail holds the most recent turns, kept verbatim. Everything
in between is handed to the summarizer and replaced by one checkpoint message.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from recollect.models.config import MemoryConfig
from recollect.models.message import Message

CHECKPOINT_PREFIX = "[recollect:checkpoint]"
"""Reserved content prefix marking a system message as a compaction checkpoint."""

PINNED_ROLES: frozenset[str] = frozenset({"system", "developer"})


def is_checkpoint(message: Message) -> bool:
    """True for system messages written by a previous compaction."""
    return message.role == "system" and message.text_content().startswith(CHECKPOINT_PREFIX)


def is_pinned(message: Message) -> bool:
    """Instruction messages pinned ahead of the conversation. Checkpoints never are."""
    return message.role in PINNED_ROLES and not is_checkpoint(message)


def leading_pinned_run(messages: Sequence[Message]) -> list[Message]:
    """The run of pinned messages at the start of ``messages``."""
    run: list[Message] = []
    for message in messages:
        if not is_pinned(message):
            break
        run.append(message)
    return run


def checkpoint_body(message: Message) -> str:
    """The summary text of a checkpoint message, without the prefix."""
    return message.text_content()[len(CHECKPOINT_PREFIX) :].strip()


def make_checkpoint(summary: str) -> Message:
    """Build the system message that stands in for a summarised slice."""
    return Message(role="system", content=f"{CHECKPOINT_PREFIX}\n{summary.strip()}")


@dataclass
class CompactionPlan:
    """How one compaction pass will rewrite a history."""

    head: list[Message]
    summarize_slice: list[Message]
    tail: list[Message]
    pinned_head_end: int
    tail_start: int
    existing_summary: str | None = None
    checkpoints_in_slice: list[int] = field(default_factory=list)
    """Indices (into the original history) of prior checkpoints being merged forward."""


def _tail_start(messages: Sequence[Message], pinned_head_end: int, policy: MemoryConfig) -> int:
    n = len(messages)
    boundaries = [i for i in range(pinned_head_end, n) if messages[i].role == "user"]
    if len(boundaries) >= policy.keep_recent_user_turns:
        start = boundaries[-policy.keep_recent_user_turns]
    else:
        start = max(pinned_head_end + 1, n - policy.keep_recent_messages_min)
    return min(start, n - 1)


def plan_compaction(
    messages: Sequence[Message],
    canonical_context: Sequence[Message] | None,
    policy: MemoryConfig,
) -> CompactionPlan | None:
    """
    Decide what one compaction pass summarises and what it keeps.

    Args:
        messages: The stored session history, oldest first.
        canonical_context: Pinned messages captured when the session began.
            When non-empty it leads the head, followed by any live pinned
            messages past its length; otherwise the live leading pinned run is
            the head.
        policy: Retention settings (``keep_recent_user_turns``,
            ``keep_recent_messages_min``, ``minimum_messages_to_compact``).

    Returns:
        A :class:`CompactionPlan`, or ``None`` when the history is too short
        or nothing lies between the pinned head and the protected tail.
    """
    if len(messages) < policy.minimum_messages_to_compact:
        return None

    live_head = leading_pinned_run(messages)
    pinned_head_end = len(live_head)
    if canonical_context:
        head = [*canonical_context, *live_head[len(canonical_context) :]]
    else:
        head = live_head

    tail_start = _tail_start(messages, pinned_head_end, policy)
    if tail_start <= pinned_head_end:
        return None

    summarize_slice = list(messages[pinned_head_end:tail_start])
    checkpoint_indices = [
        pinned_head_end + offset
        for offset, message in enumerate(summarize_slice)
        if is_checkpoint(message)
    ]
    bodies = [checkpoint_body(messages[i]) for i in checkpoint_indices]
    existing_summary = "\n\n".join(body for body in bodies if body) or None

    return CompactionPlan(
        head=head,
        summarize_slice=summarize_slice,
        tail=list(messages[tail_start:]),
        pinned_head_end=pinned_head_end,
        tail_start=tail_start,
        existing_summary=existing_summary,
        checkpoints_in_slice=checkpoint_indices,
    )
