"""Token counting for message histories with tiktoken and a heuristic fallback."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from recollect.models.message import (
    FilePart,
    ImagePart,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

TokenCounter = Callable[[str], int]

MESSAGE_OVERHEAD: int = 4
"""Fixed cost per message for role and formatting tokens."""

ATTACHMENT_SURCHARGE: int = 85
"""Flat cost per file or image part. A rough estimate, not a tokenizer result."""

TOOL_SURCHARGE: int = 10
"""Flat cost added to every tool call and tool result."""

DEFAULT_ENCODING: str = "o200k_base"

logger = structlog.get_logger("recollect.tokens")


class TokenEstimator:
    """
    Default per-string token counter.

    Uses tiktoken's ``o200k_base`` encoding. The encoder is loaded once per
    instance; if tiktoken cannot be imported or the encoding cannot be loaded,
    the estimator falls back to a ``len // 4`` heuristic for the rest of its
    lifetime.

    Instances are callable, so they can be passed wherever a
    :data:`TokenCounter` is expected::

        counter = TokenEstimator()
        counter("hello world")  # -> 2
    """

    def __init__(self, encoding: str = DEFAULT_ENCODING) -> None:
        self._encoding_name = encoding
        self._encoder: Any = None
        self._force_heuristic: bool = False
        """Set to True in tests to skip tiktoken import."""

    def __call__(self, text: str) -> int:
        return self.estimate(text)

    def estimate(self, text: str) -> int:
        """
        Estimate the token count for a string.

        Returns:
            0 for empty text, otherwise an estimate >= 1.
        """
        if not text:
            return 0
        if not self._force_heuristic:
            encoder = self._load_encoder()
            if encoder is not None:
                return len(encoder.encode(text))
        return self._heuristic(text)

    def _load_encoder(self) -> Any:
        if self._encoder is None:
            try:
                import tiktoken

                self._encoder = tiktoken.get_encoding(self._encoding_name)
            except Exception as exc:
                logger.warning(
                    "tiktoken_unavailable",
                    encoding=self._encoding_name,
                    error=str(exc),
                )
                self._force_heuristic = True
                return None
        return self._encoder

    @staticmethod
    def _heuristic(text: str) -> int:
        """Conservative heuristic: 4 characters per token, minimum 1."""
        return max(1, len(text) // 4)


def _serialize(value: Any) -> str:
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False, default=str)


def count_message_tokens(messages: Iterable[Message], counter: TokenCounter) -> int:
    """
    Total token cost of a message list.

    Each message costs :data:`MESSAGE_OVERHEAD` plus the counted size of its
    text. File and image parts add :data:`ATTACHMENT_SURCHARGE`. Tool calls on
    assistant messages (legacy ``tool_calls`` entries and inline ``tool-call``
    parts) cost ``counter(tool_name) + counter(json(args)) + 10``, and every
    ``tool-result`` part costs ``counter(json(output or result)) + 10``.
    Unknown parts cost nothing.

    Args:
        messages: The messages to price.
        counter: Per-string token counter.

    Returns:
        Total estimated token count.
    """
    total = 0
    for message in messages:
        total += MESSAGE_OVERHEAD
        is_assistant = message.role == "assistant"

        if isinstance(message.content, str):
            total += counter(message.content)
        else:
            for part in message.content:
                if isinstance(part, TextPart):
                    total += counter(part.text)
                elif isinstance(part, (FilePart, ImagePart)):
                    total += ATTACHMENT_SURCHARGE
                elif isinstance(part, ToolCallPart):
                    if is_assistant:
                        total += (
                            counter(part.tool_name) + counter(_serialize(part.input)) + TOOL_SURCHARGE
                        )
                elif isinstance(part, ToolResultPart):
                    total += counter(_serialize(part.payload)) + TOOL_SURCHARGE

        if is_assistant and message.tool_calls:
            for entry in message.tool_calls:
                total += (
                    counter(entry.tool_name) + counter(_serialize(entry.arguments)) + TOOL_SURCHARGE
                )
    return total
