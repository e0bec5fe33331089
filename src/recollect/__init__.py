"""
Recollect: bounded conversational memory for long-running LLM chat sessions.

Quick start::

    from recollect import MemoryConfig, MemoryLayer

    async with MemoryLayer.open(MemoryConfig(max_tokens=16_000)) as memory:
        await memory.add_message("sess-1", "user", "Hello!")
        prompt = await memory.get_prompt_messages("sess-1")
"""

from recollect.compaction import (
    CHECKPOINT_PREFIX,
    CompactionEngine,
    CompactionPlan,
    LLMSummarizer,
    Summarizer,
    plan_compaction,
    render_transcript,
)
from recollect.context import reconcile_tool_calls
from recollect.dedup import RunDedupCache
from recollect.events import EventBus, SessionEventType
from recollect.history import (
    find_prompt_suffix_to_append,
    fingerprint,
    normalize_message,
    normalize_messages,
    unique_within_batch,
)
from recollect.memory import MemoryLayer
from recollect.middleware import (
    MemoryMiddleware,
    collect_generated_messages,
    should_run_post_compaction,
)
from recollect.models import (
    CompactionResult,
    ContentPart,
    FilePart,
    ImagePart,
    InvalidMessageError,
    MemoryConfig,
    Message,
    OpaquePart,
    ReasoningPart,
    SessionEvent,
    SessionSnapshot,
    SessionStats,
    StoreConfig,
    SummarizerConfig,
    TextPart,
    ToolCallEntry,
    ToolCallPart,
    ToolResultPart,
)
from recollect.store import (
    InMemoryStorageAdapter,
    MalformedEventError,
    MalformedMessageError,
    RecollectStoreError,
    SQLiteStorageAdapter,
    StorageAdapter,
    StoreNotInitializedError,
)
from recollect.tokens import TokenCounter, TokenEstimator, count_message_tokens

__version__ = "0.1.0"

__all__ = [
    # Core
    "MemoryLayer",
    "MemoryMiddleware",
    "__version__",
    # Config
    "MemoryConfig",
    "StoreConfig",
    "SummarizerConfig",
    # Messages
    "Message",
    "ContentPart",
    "TextPart",
    "FilePart",
    "ImagePart",
    "ToolCallPart",
    "ToolResultPart",
    "ReasoningPart",
    "OpaquePart",
    "ToolCallEntry",
    "InvalidMessageError",
    # Session state
    "CompactionResult",
    "SessionEvent",
    "SessionSnapshot",
    "SessionStats",
    # Events
    "EventBus",
    "SessionEventType",
    # Storage
    "StorageAdapter",
    "InMemoryStorageAdapter",
    "SQLiteStorageAdapter",
    "RecollectStoreError",
    "StoreNotInitializedError",
    "MalformedEventError",
    "MalformedMessageError",
    # Compaction
    "CHECKPOINT_PREFIX",
    "CompactionEngine",
    "CompactionPlan",
    "LLMSummarizer",
    "Summarizer",
    "plan_compaction",
    "render_transcript",
    # History & context
    "find_prompt_suffix_to_append",
    "fingerprint",
    "normalize_message",
    "normalize_messages",
    "unique_within_batch",
    "reconcile_tool_calls",
    # Tokens
    "TokenCounter",
    "TokenEstimator",
    "count_message_tokens",
    # Middleware helpers
    "RunDedupCache",
    "collect_generated_messages",
    "should_run_post_compaction",
]
