"""Transcript rendering and the default LLM-backed summarizer."""

from __future__ import annotations

import inspect
import json
import os
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog
from jinja2 import Template

from recollect.compaction.planner import is_checkpoint
from recollect.models.config import SummarizerConfig
from recollect.models.message import (
    FilePart,
    ImagePart,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

logger = structlog.get_logger("recollect.compaction.summarizer")

Summarizer = Callable[..., "str | Awaitable[str]"]
"""``(transcript, prior_summary=None, reason=None) -> str``, sync or async."""

MAX_TOOL_PAYLOAD_CHARS: int = 2_000

SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes chat histories. Create a concise "
    "but comprehensive summary of the conversation so far, preserving all crucial "
    "details, user preferences, decisions, tool results and open tasks. The summary "
    "should be written in the third person."
)

DEFAULT_PROMPT_TEMPLATE = """\
{% if reason %}Why this summary is needed: {{ reason }}

{% endif %}\
{% if prior_summary %}A summary of the conversation before this excerpt already exists.
Merge it with the new turns into a single summary; do not drop facts from it.

<previous_summary>
{{ prior_summary }}
</previous_summary>

{% endif %}\
Summarize the following chat history:

<conversation>
{{ transcript }}
</conversation>
"""


def _json(value: Any, limit: int | None = None) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    if limit is not None and len(text) > limit:
        return text[:limit] + "..."
    return text


def render_message(message: Message) -> str:
    """One transcript line: ``ROLE: text [Tool Call ...] [Tool Result ...]``."""
    segments: list[str] = []
    if isinstance(message.content, str):
        if message.content:
            segments.append(message.content)
    else:
        for part in message.content:
            if isinstance(part, TextPart):
                if part.text:
                    segments.append(part.text)
            elif isinstance(part, ToolCallPart):
                segments.append(f"[Tool Call {part.tool_name}({_json(part.input)})]")
            elif isinstance(part, ToolResultPart):
                payload = _json(part.payload, MAX_TOOL_PAYLOAD_CHARS)
                segments.append(f"[Tool Result {part.tool_name}: {payload}]")
            elif isinstance(part, FilePart):
                segments.append(f"[File {part.filename or part.media_type or 'attachment'}]")
            elif isinstance(part, ImagePart):
                segments.append("[Image]")
    for entry in message.tool_calls or []:
        segments.append(f"[Tool Call {entry.tool_name}({_json(entry.arguments)})]")
    return f"{message.role.upper()}: {' '.join(segments)}"


def render_transcript(messages: Sequence[Message]) -> str:
    """
    Format messages as a plain-text transcript for the summarizer.

    Prior checkpoints are left out; their text reaches the summarizer
    separately as the prior summary.
    """
    return "\n\n".join(render_message(m) for m in messages if not is_checkpoint(m))


async def call_summarizer(
    summarizer: Summarizer,
    transcript: str,
    *,
    prior_summary: str | None = None,
    reason: str | None = None,
) -> str:
    """Invoke a sync or async summarizer and return its text."""
    result = summarizer(transcript, prior_summary=prior_summary, reason=reason)
    if inspect.isawaitable(result):
        result = await result
    return str(result)


def _mock_summary(transcript: str, prior_summary: str | None) -> str:
    lines = [ln.strip() for ln in transcript.splitlines() if ln.strip()]
    bullets = "\n".join(f"- {ln[:120]}" for ln in lines[:8]) or "- (no new turns)"
    prior = f"Earlier:\n{prior_summary.strip()}\n\n" if prior_summary else ""
    return f"{prior}Conversation so far:\n{bullets}"


class LLMSummarizer:
    """
    Summarizer backed by any litellm-supported model.

    The user prompt is a Jinja2 template receiving ``transcript``,
    ``prior_summary`` and ``reason``. Set ``RECOLLECT_MOCK_LLM=1`` to get a
    deterministic offline summary instead of a model call.

    Example::

        summarizer = LLMSummarizer(SummarizerConfig(model="anthropic/claude-haiku-3-5"))
        memory = MemoryLayer(config, summarizer=summarizer)
    """

    def __init__(self, config: SummarizerConfig | None = None) -> None:
        self._config = config or SummarizerConfig()
        self._template = Template(self._config.prompt or DEFAULT_PROMPT_TEMPLATE)

    @property
    def model(self) -> str:
        return self._config.model

    def render_prompt(
        self,
        transcript: str,
        prior_summary: str | None = None,
        reason: str | None = None,
    ) -> str:
        return self._template.render(
            transcript=transcript,
            prior_summary=prior_summary,
            reason=reason,
        )

    async def __call__(
        self,
        transcript: str,
        prior_summary: str | None = None,
        reason: str | None = None,
    ) -> str:
        if os.environ.get("RECOLLECT_MOCK_LLM") == "1":
            return _mock_summary(transcript, prior_summary)

        import litellm

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": self.render_prompt(transcript, prior_summary, reason)},
        ]
        response = await litellm.acompletion(
            model=self._config.model,
            messages=messages,
            max_tokens=self._config.max_output_tokens,
            temperature=self._config.temperature,
        )
        text = response.choices[0].message.content or ""
        logger.debug("summary_generated", model=self._config.model, chars=len(text))
        return text
