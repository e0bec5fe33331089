"""Message normalization and prompt ingestion."""

from recollect.history.ingestion import find_prompt_suffix_to_append, overlap_length
from recollect.history.normalizer import (
    fingerprint,
    normalize_message,
    normalize_messages,
    unique_within_batch,
)

__all__ = [
    "find_prompt_suffix_to_append",
    "fingerprint",
    "normalize_message",
    "normalize_messages",
    "overlap_length",
    "unique_within_batch",
]
