"""Read-time repair of tool-call / tool-result pairing.

Compaction can separate a tool call from its result: the call survives in the
verbatim tail while the result is summarised away, or the other way round.
Providers reject a prompt containing a call without a result, so every view
handed to a model goes through :func:`reconcile_tool_calls` first.

Stored history is never modified; the repair only applies to the returned list.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from recollect.models.message import Message, ToolCallPart, ToolResultPart

logger = structlog.get_logger("recollect.context")

MISSING_RESULT_STATUS = "missing_result"
MISSING_RESULT_MESSAGE = (
    "The result of this tool call is no longer available; it was removed "
    "from the retained conversation history."
)


def _register_calls(messages: Sequence[Message]) -> dict[str, str]:
    registry: dict[str, str] = {}
    for message in messages:
        if message.role != "assistant":
            continue
        for entry in message.tool_calls or []:
            registry.setdefault(entry.tool_call_id, entry.tool_name)
        if isinstance(message.content, list):
            for part in message.content:
                if isinstance(part, ToolCallPart):
                    registry.setdefault(part.tool_call_id, part.tool_name)
    return registry


def missing_result_part(tool_call_id: str, tool_name: str) -> ToolResultPart:
    """Placeholder result for a call whose real result is not in view."""
    return ToolResultPart(
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        result={"status": MISSING_RESULT_STATUS, "message": MISSING_RESULT_MESSAGE},
    )


def reconcile_tool_calls(messages: Sequence[Message]) -> list[Message]:
    """
    Return a copy of ``messages`` in which every tool call has exactly one visible result.

    1. Every tool call (legacy ``tool_calls`` entries and inline ``tool-call``
       parts on assistant messages) is registered by id.
    2. ``tool-result`` parts in tool messages and inline in assistant messages
       resolve their call. Results whose id matches no call are dropped; a
       message left with no content is dropped entirely.
    3. Unresolved calls each receive a ``missing_result`` placeholder, grouped
       into one tool message appended at the end.

    The function is idempotent: reconciling a reconciled view changes nothing.
    """
    registry = _register_calls(messages)
    resolved: set[str] = set()
    orphans = 0
    view: list[Message] = []

    for message in messages:
        if message.role not in ("tool", "assistant") or isinstance(message.content, str):
            view.append(message)
            continue

        kept = []
        for part in message.content:
            if isinstance(part, ToolResultPart):
                if part.tool_call_id not in registry:
                    orphans += 1
                    continue
                resolved.add(part.tool_call_id)
            kept.append(part)

        if len(kept) == len(message.content):
            view.append(message)
        elif kept or message.tool_calls:
            view.append(message.model_copy(update={"content": kept}))

    missing = [
        missing_result_part(call_id, tool_name)
        for call_id, tool_name in registry.items()
        if call_id not in resolved
    ]
    if missing:
        view.append(Message(role="tool", content=missing))

    if orphans or missing:
        logger.debug(
            "tool_calls_reconciled",
            orphans_dropped=orphans,
            missing_results=len(missing),
        )
    return view
