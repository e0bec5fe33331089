"""Framework-agnostic hooks that keep a MemoryLayer in step with model calls.

Call :meth:`MemoryMiddleware.before_generate` with the prompt you are about to
send and use the prompt it returns; call :meth:`MemoryMiddleware.after_generate`
with the generation result. Both hooks treat memory failures as non-fatal: the
error is logged and passed to ``on_error``, and the caller's prompt or result
is returned unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Literal

import structlog

from recollect.dedup import DEFAULT_DEDUP_CAPACITY, RunDedupCache
from recollect.history.normalizer import unique_within_batch
from recollect.memory import MemoryLayer
from recollect.models.message import MessageLike

PostCompactStrategy = Literal["follow-up-only", "always"]

FOLLOW_UP_FINISH_REASONS: frozenset[str] = frozenset({"tool-calls", "length"})
PRE_SAMPLING_REASON = "pre_sampling_compaction"
POST_SAMPLING_REASON = "post_sampling_compaction"

logger = structlog.get_logger("recollect.middleware")


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _message_list(value: Any) -> list[MessageLike]:
    return list(value) if isinstance(value, (list, tuple)) else []


def collect_generated_messages(result: Any) -> list[MessageLike]:
    """
    Gather the messages a generation produced.

    Reads, in order, every ``steps[].response.messages``, then
    ``response.messages``, then top-level ``content`` (wrapped as a single
    assistant message). Works on mappings and on attribute-style objects.
    """
    messages: list[MessageLike] = []
    steps = _field(result, "steps")
    for step in steps if isinstance(steps, (list, tuple)) else []:
        messages.extend(_message_list(_field(_field(step, "response"), "messages")))

    messages.extend(_message_list(_field(_field(result, "response"), "messages")))

    content = _field(result, "content")
    if isinstance(content, (list, tuple)) and content:
        messages.append({"role": "assistant", "content": list(content)})
    return messages


def finish_reason(result: Any) -> str:
    """The finish reason of a result, given either as a string or as ``{"unified": ...}``."""
    raw = _field(result, "finish_reason")
    if raw is None:
        raw = _field(result, "finishReason")
    if isinstance(raw, str):
        return raw
    unified = _field(raw, "unified")
    if isinstance(unified, str):
        return unified
    return "" if raw is None else str(raw)


def should_run_post_compaction(result: Any, strategy: PostCompactStrategy) -> bool:
    """``"always"`` runs every time; ``"follow-up-only"`` only when the model will be called again."""
    if strategy == "always":
        return True
    return finish_reason(result) in FOLLOW_UP_FINISH_REASONS


class MemoryMiddleware:
    """
    Pre/post model-call hooks backed by a :class:`~recollect.memory.MemoryLayer`.

    Example::

        middleware = MemoryMiddleware(memory, on_error=report)

        prompt = await middleware.before_generate("sess-1", prompt)
        result = await call_model(prompt)
        await middleware.after_generate("sess-1", result, run_id=result["id"])
    """

    def __init__(
        self,
        memory: MemoryLayer,
        *,
        persist_incoming_prompt: bool = True,
        persist_generated: bool = True,
        pre_compact: bool = True,
        post_compact: bool = True,
        post_compact_strategy: PostCompactStrategy = "follow-up-only",
        on_error: Callable[[Exception], None] | None = None,
        dedup_capacity: int = DEFAULT_DEDUP_CAPACITY,
    ) -> None:
        self._memory = memory
        self._persist_incoming_prompt = persist_incoming_prompt
        self._persist_generated = persist_generated
        self._pre_compact = pre_compact
        self._post_compact = post_compact
        self._post_compact_strategy = post_compact_strategy
        self._on_error = on_error
        self._dedup = RunDedupCache(dedup_capacity)

    def _report(self, session_id: str, hook: str, exc: Exception) -> None:
        logger.warning(
            "memory_middleware_error",
            session_id=session_id,
            hook=hook,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        if self._on_error is not None:
            self._on_error(exc)

    async def before_generate(
        self, session_id: str, prompt: Sequence[MessageLike]
    ) -> Sequence[MessageLike]:
        """
        Sync ``prompt`` into memory, compact if needed, and return the memory view.

        Returns:
            The reconciled stored history as wire-format dicts, or ``prompt``
            unchanged if memory failed.
        """
        try:
            if self._persist_incoming_prompt and prompt:
                await self._memory.sync_from_prompt(session_id, prompt)
            if self._pre_compact:
                await self._memory.compact_if_needed(
                    session_id, mode="auto-pre", reason=PRE_SAMPLING_REASON
                )
            view = await self._memory.get_prompt_messages(session_id)
        except Exception as exc:
            self._report(session_id, "before_generate", exc)
            return prompt
        return [message.to_wire() for message in view]

    async def after_generate(self, session_id: str, result: Any, run_id: str | None = None) -> Any:
        """
        Persist the generated messages once per ``run_id`` and compact per strategy.

        Returns:
            ``result``, always unchanged.
        """
        try:
            if run_id is not None and not self._dedup.add(session_id, run_id):
                logger.debug("generation_already_persisted", session_id=session_id, run_id=run_id)
                return result
            if self._persist_generated:
                generated = unique_within_batch(collect_generated_messages(result))
                if generated:
                    await self._memory.add_messages(session_id, generated, compact=False)
            if self._post_compact and should_run_post_compaction(
                result, self._post_compact_strategy
            ):
                await self._memory.compact_if_needed(
                    session_id, mode="auto-post", reason=POST_SAMPLING_REASON
                )
        except Exception as exc:
            self._report(session_id, "after_generate", exc)
        return result
