"""Tests for the multi-pass CompactionEngine."""

from __future__ import annotations

import pytest

from recollect.compaction.engine import COMPACTION_RATIONALE, CompactionEngine
from recollect.compaction.planner import is_checkpoint
from recollect.events.log import EventRecorder
from tests.conftest import FakeSummarizer, assistant, system, user, word_counter


def _engine(storage, config, summarizer, event_bus) -> CompactionEngine:
    return CompactionEngine(
        storage, word_counter, summarizer, EventRecorder(storage, event_bus), config
    )


async def _seed(storage, session_id, messages):
    for m in messages:
        await storage.append_message(session_id, m)


def _types(event_bus):
    return [e.type for e in event_bus.collected]


class TestTrigger:
    async def test_below_threshold_does_nothing(self, memory_storage, config, summarizer, event_bus):
        await _seed(memory_storage, "s", [user("hi")])
        result = await _engine(memory_storage, config, summarizer, event_bus).run(
            "s", mode="auto", reason="threshold_exceeded"
        )
        assert result.stop_reason == "below_threshold"
        assert result.passes == 0
        assert result.tokens_before == result.tokens_after == 5
        assert summarizer.calls == []
        assert event_bus.collected == []

    async def test_trigger_is_inclusive(self, memory_storage, config, summarizer, event_bus):
        engine = _engine(memory_storage, config, summarizer, event_bus)
        assert config.trigger_tokens == 25
        assert engine.should_compact(25)
        assert not engine.should_compact(24)


class TestPasses:
    async def test_forced_pass_applies(self, memory_storage, config, summarizer, event_bus):
        await _seed(memory_storage, "s", [user("a b c"), assistant("d e f"), user("g h")])
        result = await _engine(memory_storage, config, summarizer, event_bus).run(
            "s", mode="manual", reason="manual", forced=True
        )
        assert result.stop_reason == "converged"
        assert (result.passes, result.applied_passes) == (1, 1)
        assert (result.tokens_before, result.tokens_after) == (20, 13)

        history = await memory_storage.list_messages("s")
        assert is_checkpoint(history[0])
        assert history[1:] == [user("g h")]

        stats = await memory_storage.get_stats("s")
        assert stats.compaction_count == 1
        assert stats.last_compaction_tokens_before == 20
        assert stats.last_compaction_tokens_after == 13
        assert stats.last_compaction_reason == "manual"
        assert _types(event_bus) == ["compaction_started", "compaction_applied"]

    async def test_summarizer_receives_slice_and_rationale(
        self, memory_storage, config, summarizer, event_bus
    ):
        await _seed(memory_storage, "s", [user("a b c"), assistant("d e f"), user("g h")])
        await _engine(memory_storage, config, summarizer, event_bus).run(
            "s", mode="manual", reason="manual", forced=True
        )
        (call,) = summarizer.calls
        assert call["transcript"] == "USER: a b c\n\nASSISTANT: d e f"
        assert call["prior_summary"] is None
        assert call["reason"] == COMPACTION_RATIONALE

    async def test_no_token_reduction_leaves_history(self, memory_storage, config, event_bus):
        verbose = FakeSummarizer(text="word " * 60)
        seeded = [user("a b c"), assistant("d e f"), user("g h")]
        await _seed(memory_storage, "s", seeded)
        result = await _engine(memory_storage, config, verbose, event_bus).run(
            "s", mode="manual", reason="manual", forced=True
        )
        assert result.stop_reason == "no_token_reduction"
        assert result.applied_passes == 0
        assert result.tokens_after == result.tokens_before
        assert await memory_storage.list_messages("s") == seeded
        assert (await memory_storage.get_stats("s")).compaction_count == 0

        skipped = event_bus.collected[-1]
        assert skipped.type == "compaction_skipped"
        assert skipped.payload["cause"] == "no_token_reduction"
        assert skipped.payload["tokens_after"] > skipped.payload["tokens"]

    async def test_no_plan(self, memory_storage, config, summarizer, event_bus):
        await _seed(memory_storage, "s", [user("lonely")])
        result = await _engine(memory_storage, config, summarizer, event_bus).run(
            "s", mode="manual", reason="manual", forced=True
        )
        assert result.stop_reason == "no_plan"
        assert result.passes == 1
        assert event_bus.collected[-1].payload["cause"] == "no_plan"
        assert summarizer.calls == []

    async def test_second_pass_stops_without_progress(
        self, memory_storage, config, summarizer, event_bus
    ):
        """A pass whose only input is the previous checkpoint cannot shrink history."""
        config = config.model_copy(update={"target_tokens_after_compaction": 5})
        await _seed(
            memory_storage,
            "s",
            [user("a b c"), assistant("d e f"), user("g h i"), assistant("j k l")],
        )
        result = await _engine(memory_storage, config, summarizer, event_bus).run(
            "s", mode="auto", reason="threshold_exceeded"
        )
        assert result.stop_reason == "no_token_reduction"
        assert (result.passes, result.applied_passes) == (2, 1)
        assert (result.tokens_before, result.tokens_after) == (28, 21)
        assert summarizer.calls[1]["prior_summary"] == "condensed summary"
        assert summarizer.calls[1]["transcript"] == ""

    async def test_pass_limit(self, memory_storage, config, summarizer, event_bus):
        config = config.model_copy(
            update={"target_tokens_after_compaction": 5, "max_compaction_passes": 1}
        )
        await _seed(
            memory_storage,
            "s",
            [user("a b c"), assistant("d e f"), user("g h i"), assistant("j k l")],
        )
        result = await _engine(memory_storage, config, summarizer, event_bus).run(
            "s", mode="auto", reason="threshold_exceeded"
        )
        assert result.stop_reason == "max_passes"
        assert (result.passes, result.applied_passes) == (1, 1)

    async def test_summarizer_error_propagates(self, memory_storage, config, event_bus):
        async def broken(transcript, prior_summary=None, reason=None):
            raise RuntimeError("LLM unavailable")

        seeded = [user("a b c"), assistant("d e f"), user("g h")]
        await _seed(memory_storage, "s", seeded)
        with pytest.raises(RuntimeError, match="LLM unavailable"):
            await _engine(memory_storage, config, broken, event_bus).run(
                "s", mode="manual", reason="manual", forced=True
            )
        assert await memory_storage.list_messages("s") == seeded

    async def test_canonical_context_is_head(self, memory_storage, config, summarizer, event_bus):
        rules = system("rules")
        await memory_storage.update_stats("s", canonical_context=[rules])
        await _seed(memory_storage, "s", [rules, user("a b c"), assistant("d e f"), user("g h")])
        await _engine(memory_storage, config, summarizer, event_bus).run(
            "s", mode="manual", reason="manual", forced=True
        )
        history = await memory_storage.list_messages("s")
        assert history[0] == rules
        assert is_checkpoint(history[1])
        assert history[2:] == [user("g h")]

    async def test_sqlite_backend(self, sqlite_storage, config, summarizer, event_bus):
        await _seed(sqlite_storage, "s", [user("a b c"), assistant("d e f"), user("g h")])
        result = await _engine(sqlite_storage, config, summarizer, event_bus).run(
            "s", mode="manual", reason="manual", forced=True
        )
        assert result.applied
        events = await sqlite_storage.list_events("s")
        assert [e.type for e in events] == ["compaction_started", "compaction_applied"]
        assert len(await sqlite_storage.list_messages("s")) == 2
