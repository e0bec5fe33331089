"""Core message and content-part data models for Recollect."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Tag,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

logger = structlog.get_logger("recollect.models")

Role = Literal["system", "developer", "user", "assistant", "tool"]


class InvalidMessageError(ValueError):
    """Raised when a caller supplies a message that cannot be appended as given."""


# ── Part Models ────────────────────────────────────────────────────────────────


class _WireModel(BaseModel):
    """Base for models serialized with camelCase keys (``toolCallId``, ``mediaType``)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """
        Dump with wire (camelCase) keys.

        Optional fields left at ``None`` are omitted unless the caller set them
        explicitly, so a part read from storage dumps back to the same shape.
        """
        unset_none = {
            name
            for name in type(self).model_fields
            if getattr(self, name) is None and name not in self.model_fields_set
        }
        return self.model_dump(by_alias=True, exclude=unset_none)


class TextPart(_WireModel):
    """A plain text segment of a message."""

    type: Literal["text"] = "text"
    text: str = ""


class FilePart(_WireModel):
    """An attached file. Only ``filename`` and ``media_type`` take part in equality."""

    type: Literal["file"] = "file"
    filename: str | None = None
    media_type: str | None = None
    data: Any = None


class ImagePart(_WireModel):
    """An attached image."""

    type: Literal["image"] = "image"
    media_type: str | None = None
    image: Any = None


class ToolCallPart(_WireModel):
    """An inline tool invocation inside assistant content."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str = ""
    tool_name: str = ""
    input: Any = None


class ToolResultPart(_WireModel):
    """
    The result of a tool invocation.

    Providers disagree on the payload key; both ``output`` and ``result`` are
    accepted and ``output`` wins when both are present.
    """

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str = ""
    tool_name: str = ""
    output: Any = None
    result: Any = None

    @property
    def payload(self) -> Any:
        return self.output if self.output is not None else self.result


class ReasoningPart(_WireModel):
    """Private chain-of-thought text. Never persisted into memory."""

    type: Literal["reasoning"] = "reasoning"
    text: str = ""


class OpaquePart(_WireModel):
    """
    Any part kind Recollect does not model.

    Every key is kept verbatim so unrecognised provider parts survive a round
    trip through storage.
    """

    model_config = ConfigDict(extra="allow")

    type: str | None = None


_KNOWN_PART_TYPES: frozenset[str] = frozenset(
    {"text", "file", "image", "tool-call", "tool-result", "reasoning"}
)


def _part_tag(value: Any) -> str:
    if isinstance(value, dict):
        part_type = value.get("type")
    else:
        part_type = getattr(value, "type", None)
    if isinstance(value, OpaquePart) or part_type not in _KNOWN_PART_TYPES:
        return "opaque"
    return part_type


# Closed union with an explicit passthrough variant; the tag function routes
# unknown ``type`` values to OpaquePart instead of failing validation.
ContentPart = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[FilePart, Tag("file")],
        Annotated[ImagePart, Tag("image")],
        Annotated[ToolCallPart, Tag("tool-call")],
        Annotated[ToolResultPart, Tag("tool-result")],
        Annotated[ReasoningPart, Tag("reasoning")],
        Annotated[OpaquePart, Tag("opaque")],
    ],
    Discriminator(_part_tag),
]


class ToolCallEntry(_WireModel):
    """Legacy ``toolCalls`` entry carried on an assistant message instead of inline parts."""

    model_config = ConfigDict(extra="allow")

    tool_call_id: str = ""
    tool_name: str = ""
    args: Any = None

    @property
    def arguments(self) -> Any:
        """``args``, or the ``input`` key some providers send instead."""
        if self.args is not None:
            return self.args
        return (self.model_extra or {}).get("input")


# ── Message ────────────────────────────────────────────────────────────────────


class Message(_WireModel):
    """
    A single conversation message.

    ``content`` is either a plain string or an ordered list of typed parts.
    Unknown top-level keys (provider options and the like) are preserved but do
    not take part in fingerprinting.
    """

    model_config = ConfigDict(extra="allow")

    role: Role
    content: str | list[ContentPart] = ""
    tool_calls: list[ToolCallEntry] | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _discard_non_object_parts(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        kept = [part for part in value if isinstance(part, (dict, BaseModel))]
        if len(kept) != len(value):
            logger.warning(
                "content_parts_discarded",
                discarded=len(value) - len(kept),
            )
        return kept

    @property
    def parts(self) -> list[ContentPart]:
        """Content as a part list; string content yields a single TextPart."""
        if isinstance(self.content, str):
            return [TextPart(text=self.content)]
        return list(self.content)

    def text_content(self) -> str:
        """Concatenate the text of this message (string content or TextParts)."""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, TextPart))

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role}
        if isinstance(self.content, str):
            data["content"] = self.content
        else:
            data["content"] = [part.to_wire() for part in self.content]
        if self.tool_calls is not None:
            data["toolCalls"] = [entry.to_wire() for entry in self.tool_calls]
        if self.model_extra:
            data.update(self.model_extra)
        return data


MessageLike = Union[Message, dict[str, Any]]


def as_message(value: MessageLike) -> Message:
    """Coerce a wire-format mapping into a :class:`Message`; Messages pass through."""
    if isinstance(value, Message):
        return value
    if not isinstance(value, dict):
        raise InvalidMessageError(f"Expected a message mapping, got {type(value).__name__}")
    try:
        return Message.model_validate(value)
    except ValidationError as exc:
        raise InvalidMessageError(f"Invalid message: {exc}") from exc


def as_messages(values: list[MessageLike]) -> list[Message]:
    return [as_message(v) for v in values]

