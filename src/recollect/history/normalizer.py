"""Canonical message shape and content fingerprints.

Providers surface the same turn in different shapes across calls: string vs.
text-part content, tool-call input as a JSON string vs. an object, reasoning
parts present or not. Normalizing before storage and before comparison keeps
overlap detection stable.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from recollect.models.message import (
    ContentPart,
    FilePart,
    Message,
    MessageLike,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    as_message,
)


def _parse_json_object(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _normalize_part(part: ContentPart) -> ContentPart:
    if isinstance(part, ToolCallPart) and isinstance(part.input, str):
        parsed = _parse_json_object(part.input)
        if parsed is not None:
            return part.model_copy(update={"input": parsed})
    return part


def normalize_message(message: MessageLike) -> Message | None:
    """
    Return the canonical form of ``message``, or ``None`` if nothing is left.

    * String ``tool-call`` inputs that parse as a JSON object become that object.
    * User and assistant string content becomes a single :class:`TextPart`.
    * ``reasoning`` parts are stripped. A message whose content is empty after
      stripping is dropped, unless it still carries legacy ``tool_calls``.

    The input is never mutated.
    """
    msg = as_message(message)

    if isinstance(msg.content, str):
        if msg.role in ("user", "assistant"):
            return msg.model_copy(update={"content": [TextPart(text=msg.content)]})
        return msg

    content = [_normalize_part(p) for p in msg.content if not isinstance(p, ReasoningPart)]
    if not content and not msg.tool_calls:
        return None
    return msg.model_copy(update={"content": content})


def normalize_messages(messages: Iterable[MessageLike]) -> list[Message]:
    """Normalize a batch, dropping messages that normalize to nothing."""
    normalized: list[Message] = []
    for message in messages:
        next_msg = normalize_message(message)
        if next_msg is not None:
            normalized.append(next_msg)
    return normalized


# ── Fingerprints ───────────────────────────────────────────────────────────────


def _canonical_part(part: ContentPart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ToolCallPart):
        return {
            "type": "tool-call",
            "toolCallId": part.tool_call_id,
            "toolName": part.tool_name,
            "input": part.input,
        }
    if isinstance(part, ToolResultPart):
        return {
            "type": "tool-result",
            "toolCallId": part.tool_call_id,
            "toolName": part.tool_name,
            "output": part.payload,
        }
    if isinstance(part, FilePart):
        return {"type": "file", "filename": part.filename, "mediaType": part.media_type}
    return part.to_wire()


def _canonical_message(message: Message) -> dict[str, Any]:
    canonical: dict[str, Any] = {"role": message.role}
    if isinstance(message.content, str):
        canonical["content"] = message.content
    else:
        canonical["content"] = [_canonical_part(p) for p in message.content]
    if message.tool_calls:
        canonical["toolCalls"] = [
            {
                "toolCallId": entry.tool_call_id,
                "toolName": entry.tool_name,
                "args": entry.arguments,
            }
            for entry in message.tool_calls
        ]
    return canonical


def fingerprint(message: MessageLike) -> str | None:
    """
    Stable identity of a message for overlap and duplicate detection.

    The message is normalized first, then serialized as JSON with sorted
    object keys (array order is kept). Returns ``None`` for messages that
    normalize to nothing.
    """
    normalized = normalize_message(message)
    if normalized is None:
        return None
    return json.dumps(
        _canonical_message(normalized),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def unique_within_batch(messages: Iterable[MessageLike]) -> list[Message]:
    """Normalize a batch and drop repeats of an earlier message in the same batch."""
    unique: list[Message] = []
    seen: set[str] = set()
    for message in normalize_messages(messages):
        key = fingerprint(message)
        if key is None or key in seen:
            continue
        seen.add(key)
        unique.append(message)
    return unique
