"""Configuration models for Recollect memory layers and components."""

from __future__ import annotations

import math

from pydantic import BaseModel, Field, model_validator

DEFAULT_TARGET_FRACTION: float = 0.65


def floor_fraction(total: int, fraction: float) -> int:
    """Return ``floor(total * fraction)`` with a floor of 1."""
    return max(1, math.floor(total * fraction))


class StoreConfig(BaseModel):
    """Configuration for the SQLite storage adapter."""

    db_path: str = Field(
        default="~/.recollect/memory.db",
        description="Path to the SQLite database file. ~ is expanded at runtime.",
    )

    wal_mode: bool = True
    """Use WAL journal mode for better concurrent read performance."""

    connection_timeout: float = 30.0
    """Seconds to wait for the database connection before raising."""


class SummarizerConfig(BaseModel):
    """Configuration for the built-in LLM-backed summarizer."""

    model: str = Field(
        default="openai/gpt-4o-mini",
        description="Model string in litellm format used to write checkpoint summaries.",
    )

    max_output_tokens: int = Field(
        default=1_024,
        ge=64,
        le=32_000,
        description="Upper bound on the length of a single summary response.",
    )

    prompt: str | None = Field(
        default=None,
        description="Custom Jinja2 prompt template. None = use the built-in prompt.",
    )

    temperature: float = Field(default=0.2, ge=0.0, le=2.0)


class MemoryConfig(BaseModel):
    """
    Top-level configuration for a :class:`~recollect.memory.MemoryLayer`.

    Only ``max_tokens`` is required; every other knob has a default.

    Example::

        config = MemoryConfig(
            max_tokens=32_000,
            threshold=0.8,
            keep_recent_user_turns=2,
            summarizer=SummarizerConfig(model="anthropic/claude-haiku-3-5"),
        )
    """

    max_tokens: int = Field(ge=1, description="Token budget for the stored session history.")

    threshold: float = Field(
        default=0.9,
        gt=0.0,
        le=1.0,
        description="Fraction of max_tokens at which compaction is attempted.",
    )

    target_tokens_after_compaction: int | None = Field(
        default=None,
        ge=1,
        description=(
            "Token count at which the multi-pass loop stops early. "
            "None = 65 % of max_tokens."
        ),
    )

    keep_recent_user_turns: int = Field(
        default=4,
        ge=1,
        description="Number of most recent user turns kept verbatim after compaction.",
    )

    keep_recent_messages_min: int = Field(
        default=8,
        ge=1,
        description=(
            "Trailing messages kept verbatim when fewer than keep_recent_user_turns "
            "user turns exist."
        ),
    )

    max_compaction_passes: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Upper bound on summarise + rewrite passes per compaction attempt.",
    )

    minimum_messages_to_compact: int = Field(
        default=6,
        ge=1,
        description="Sessions shorter than this are never compacted.",
    )

    store: StoreConfig = Field(default_factory=StoreConfig)
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)

    @model_validator(mode="after")
    def validate_target(self) -> MemoryConfig:
        if (
            self.target_tokens_after_compaction is not None
            and self.target_tokens_after_compaction > self.max_tokens
        ):
            raise ValueError("target_tokens_after_compaction must not exceed max_tokens")
        return self

    @property
    def trigger_tokens(self) -> int:
        """Token count at or above which compaction is attempted."""
        return floor_fraction(self.max_tokens, self.threshold)

    @property
    def target_tokens(self) -> int:
        """Token count at or below which the compaction loop stops."""
        if self.target_tokens_after_compaction is not None:
            return self.target_tokens_after_compaction
        return floor_fraction(self.max_tokens, DEFAULT_TARGET_FRACTION)
