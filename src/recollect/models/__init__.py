"""Recollect data models."""

from recollect.models.config import MemoryConfig, StoreConfig, SummarizerConfig
from recollect.models.message import (
    ContentPart,
    FilePart,
    ImagePart,
    InvalidMessageError,
    Message,
    MessageLike,
    OpaquePart,
    ReasoningPart,
    Role,
    TextPart,
    ToolCallEntry,
    ToolCallPart,
    ToolResultPart,
    as_message,
    as_messages,
)
from recollect.models.session import (
    CompactionResult,
    SessionEvent,
    SessionSnapshot,
    SessionStats,
    StopReason,
)

__all__ = [
    # Config
    "MemoryConfig",
    "StoreConfig",
    "SummarizerConfig",
    # Content parts
    "ContentPart",
    "TextPart",
    "FilePart",
    "ImagePart",
    "ToolCallPart",
    "ToolResultPart",
    "ReasoningPart",
    "OpaquePart",
    # Message
    "Role",
    "Message",
    "MessageLike",
    "ToolCallEntry",
    "InvalidMessageError",
    "as_message",
    "as_messages",
    # Session state
    "SessionStats",
    "SessionEvent",
    "SessionSnapshot",
    "CompactionResult",
    "StopReason",
]
