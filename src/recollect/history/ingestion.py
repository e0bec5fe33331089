"""Idempotent ingestion of a full prompt into an existing session history."""

from __future__ import annotations

from collections.abc import Sequence

from recollect.history.normalizer import fingerprint, normalize_messages
from recollect.models.message import Message, MessageLike


def overlap_length(existing_keys: Sequence[str], incoming_keys: Sequence[str]) -> int:
    """
    Largest ``k`` such that the last ``k`` existing keys equal the first ``k`` incoming ones.

    Candidates are tried from ``min(len(existing), len(incoming))`` down to
    zero and the first match wins.
    """
    for size in range(min(len(existing_keys), len(incoming_keys)), 0, -1):
        if list(existing_keys[len(existing_keys) - size :]) == list(incoming_keys[:size]):
            return size
    return 0


def find_prompt_suffix_to_append(
    existing: Sequence[MessageLike],
    incoming: Sequence[MessageLike],
) -> list[Message]:
    """
    Return the part of ``incoming`` not already at the tail of ``existing``.

    Overlap is anchored at the end of the stored history, so resending the full
    history plus one new message yields only that message, while a message that
    repeats an earlier, non-trailing one is still kept.

    Args:
        existing: The stored session history.
        incoming: The prompt supplied by the caller for this turn.

    Returns:
        The normalized messages of ``incoming`` that follow the overlap.
    """
    prompt = normalize_messages(incoming)
    if not prompt:
        return []
    stored = normalize_messages(existing)

    existing_keys = [key for key in (fingerprint(m) for m in stored) if key is not None]
    prompt_keys = [key for key in (fingerprint(m) for m in prompt) if key is not None]
    return prompt[overlap_length(existing_keys, prompt_keys) :]
