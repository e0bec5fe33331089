"""Compaction planning, summarisation and the multi-pass engine."""

from recollect.compaction.engine import COMPACTION_RATIONALE, CompactionEngine
from recollect.compaction.planner import (
    CHECKPOINT_PREFIX,
    CompactionPlan,
    is_checkpoint,
    is_pinned,
    leading_pinned_run,
    make_checkpoint,
    plan_compaction,
)
from recollect.compaction.summarizer import (
    LLMSummarizer,
    Summarizer,
    render_message,
    render_transcript,
)

__all__ = [
    "CHECKPOINT_PREFIX",
    "COMPACTION_RATIONALE",
    "CompactionEngine",
    "CompactionPlan",
    "LLMSummarizer",
    "Summarizer",
    "is_checkpoint",
    "is_pinned",
    "leading_pinned_run",
    "make_checkpoint",
    "plan_compaction",
    "render_message",
    "render_transcript",
]
