"""Multi-pass compaction loop.

One compaction attempt runs up to ``max_compaction_passes`` passes. Each pass
plans a head / slice / tail split, summarises the slice into a checkpoint
message and rewrites history as ``head + [checkpoint] + tail``. The loop stops
as soon as the history fits the target, when there is nothing left to plan, or
when a rewrite would not shrink the history.

History is only rewritten after the summarizer has returned; storage and
summarizer errors propagate to the caller with the stored history untouched
for that pass.
"""

from __future__ import annotations

from typing import Literal

import structlog

from recollect.compaction.planner import CompactionPlan, make_checkpoint, plan_compaction
from recollect.compaction.summarizer import Summarizer, call_summarizer, render_transcript
from recollect.events.bus import SessionEventType
from recollect.events.log import EventRecorder
from recollect.events.payloads import (
    CompactionAppliedPayload,
    CompactionSkippedPayload,
    CompactionStartedPayload,
)
from recollect.models.config import MemoryConfig
from recollect.models.message import Message
from recollect.models.session import CompactionResult, StopReason
from recollect.store.base import StorageAdapter
from recollect.tokens.estimator import TokenCounter, count_message_tokens

COMPACTION_RATIONALE = (
    "The conversation has grown past its token budget. Older turns are being "
    "replaced by this summary; the most recent turns stay verbatim after it."
)


class CompactionEngine:
    """
    Runs compaction attempts for one storage backend.

    Example::

        engine = CompactionEngine(storage, counter, summarizer, recorder, config)
        result = await engine.run("sess-1", mode="auto", reason="threshold_exceeded")
        if result.applied:
            print(result.tokens_before, "->", result.tokens_after)
    """

    def __init__(
        self,
        storage: StorageAdapter,
        counter: TokenCounter,
        summarizer: Summarizer,
        recorder: EventRecorder,
        config: MemoryConfig,
    ) -> None:
        self._storage = storage
        self._counter = counter
        self._summarizer = summarizer
        self._recorder = recorder
        self._config = config
        self._logger = structlog.get_logger("recollect.compaction")

    def count(self, messages: list[Message]) -> int:
        return count_message_tokens(messages, self._counter)

    def should_compact(self, tokens: int) -> bool:
        return tokens >= self._config.trigger_tokens

    async def run(
        self,
        session_id: str,
        *,
        mode: str,
        reason: str,
        forced: bool = False,
    ) -> CompactionResult:
        """
        Run one compaction attempt for ``session_id``.

        Args:
            session_id: The session to compact.
            mode: Label recorded on events and the result (``"auto"``,
                ``"auto-pre"``, ``"auto-post"``, ``"manual"``).
            reason: Caller-supplied reason, stored in session stats.
            forced: Skip the trigger check and attempt at least one pass.

        Returns:
            A :class:`CompactionResult` describing the passes run and why the
            loop stopped.
        """
        log = self._logger.bind(session_id=session_id, mode=mode)
        messages = await self._storage.list_messages(session_id)
        tokens = self.count(messages)
        tokens_before = tokens

        if not forced and not self.should_compact(tokens):
            return CompactionResult(
                session_id=session_id,
                mode=mode,
                reason=reason,
                forced=forced,
                tokens_before=tokens,
                tokens_after=tokens,
                stop_reason="below_threshold",
            )

        stats = await self._storage.get_stats(session_id)
        canonical = stats.canonical_context or []
        compaction_count = stats.compaction_count
        target = self._config.target_tokens

        started: CompactionStartedPayload = {
            "mode": mode,
            "reason": reason,
            "forced": forced,
            "tokens": tokens,
            "trigger_tokens": self._config.trigger_tokens,
            "target_tokens": target,
        }
        await self._recorder.record(session_id, SessionEventType.COMPACTION_STARTED, started)
        log.info("compaction_started", tokens=tokens, forced=forced, target_tokens=target)

        passes = 0
        applied = 0
        stop_reason: StopReason = "max_passes"

        while passes < self._config.max_compaction_passes:
            passes += 1
            plan = plan_compaction(messages, canonical, self._config)
            if plan is None:
                await self._skip(session_id, "no_plan", mode, reason, passes, tokens)
                log.info("compaction_skipped", cause="no_plan", pass_number=passes)
                stop_reason = "no_plan"
                break

            rebuilt = await self._rewrite(plan)
            tokens_after = self.count(rebuilt)
            if tokens_after >= tokens:
                await self._skip(
                    session_id, "no_token_reduction", mode, reason, passes, tokens, tokens_after
                )
                log.info(
                    "compaction_skipped",
                    cause="no_token_reduction",
                    pass_number=passes,
                    tokens_before=tokens,
                    tokens_after=tokens_after,
                )
                stop_reason = "no_token_reduction"
                break

            await self._storage.replace_messages(session_id, rebuilt)
            applied += 1
            compaction_count += 1
            await self._storage.update_stats(
                session_id,
                compaction_count=compaction_count,
                last_compaction_tokens_before=tokens,
                last_compaction_tokens_after=tokens_after,
                last_compaction_reason=reason,
            )
            applied_payload: CompactionAppliedPayload = {
                "mode": mode,
                "reason": reason,
                "pass_number": passes,
                "tokens_before": tokens,
                "tokens_after": tokens_after,
                "summarized_messages": len(plan.summarize_slice),
                "kept_messages": len(plan.tail),
                "merged_checkpoints": len(plan.checkpoints_in_slice),
            }
            await self._recorder.record(
                session_id, SessionEventType.COMPACTION_APPLIED, applied_payload
            )
            log.info(
                "compaction_applied",
                pass_number=passes,
                tokens_before=tokens,
                tokens_after=tokens_after,
                summarized_messages=len(plan.summarize_slice),
            )

            messages, tokens = rebuilt, tokens_after
            if tokens <= target:
                stop_reason = "converged"
                break

        if stop_reason == "max_passes":
            log.warning("compaction_pass_limit_reached", passes=passes, tokens=tokens)

        return CompactionResult(
            session_id=session_id,
            mode=mode,
            reason=reason,
            forced=forced,
            passes=passes,
            applied_passes=applied,
            tokens_before=tokens_before,
            tokens_after=tokens,
            stop_reason=stop_reason,
        )

    async def _rewrite(self, plan: CompactionPlan) -> list[Message]:
        summary = await call_summarizer(
            self._summarizer,
            render_transcript(plan.summarize_slice),
            prior_summary=plan.existing_summary,
            reason=COMPACTION_RATIONALE,
        )
        return [*plan.head, make_checkpoint(summary), *plan.tail]

    async def _skip(
        self,
        session_id: str,
        cause: Literal["no_plan", "no_token_reduction"],
        mode: str,
        reason: str,
        pass_number: int,
        tokens: int,
        tokens_after: int | None = None,
    ) -> None:
        payload: CompactionSkippedPayload = {
            "cause": cause,
            "mode": mode,
            "reason": reason,
            "pass_number": pass_number,
            "tokens": tokens,
        }
        if tokens_after is not None:
            payload["tokens_after"] = tokens_after
        await self._recorder.record(session_id, SessionEventType.COMPACTION_SKIPPED, payload)
