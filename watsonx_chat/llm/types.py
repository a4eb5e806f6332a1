"""Core types for the chat subsystem."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Union

if TYPE_CHECKING:
    from watsonx_chat.llm.options import ChatOptions


# ---------------------------------------------------------------------------
# Conversation messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Media:
    """
    A media attachment on a user or assistant message.

    Exactly one of *data* (raw bytes, a URL or base64 text) and
    *data_asset_id* (an asset uploaded into the project space) is set.
    """

    mime_type: str
    data: bytes | str | None = None
    data_asset_id: str | None = None
    name: str = ""

    def __post_init__(self) -> None:
        if (self.data is None) == (self.data_asset_id is None):
            raise ValueError("Media requires exactly one of data or data_asset_id")


@dataclass
class ToolCall:
    """A tool call issued by the model.  *arguments* is raw JSON text."""

    id: str
    name: str
    arguments: str
    type: str = "function"


@dataclass
class SystemMessage:
    message_type: ClassVar[str] = "system"

    text: str


@dataclass
class UserMessage:
    message_type: ClassVar[str] = "user"

    text: str
    media: list[Media] = field(default_factory=list)


@dataclass
class AssistantMessage:
    message_type: ClassVar[str] = "assistant"

    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    media: list[Media] = field(default_factory=list)
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.content or ""


@dataclass
class ToolResponse:
    """The result of one tool call, correlated by *id*."""

    id: str | None
    name: str
    response_data: str


@dataclass
class ToolResponseMessage:
    message_type: ClassVar[str] = "tool"

    responses: list[ToolResponse] = field(default_factory=list)


Message = Union[SystemMessage, UserMessage, AssistantMessage, ToolResponseMessage]


@dataclass
class Prompt:
    """A conversation plus the runtime options for one exchange."""

    messages: list[Message]
    options: ChatOptions | None = None


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Usage:
        return cls(
            prompt_tokens=data.get("prompt_tokens") or 0,
            completion_tokens=data.get("completion_tokens") or 0,
            total_tokens=data.get("total_tokens") or 0,
        )


# ---------------------------------------------------------------------------
# Wire types shared by streaming and non-streaming responses
# ---------------------------------------------------------------------------


def _arguments_text(raw: Any) -> str | None:
    # Some models emit the arguments as a JSON object instead of a string.
    if raw is None or isinstance(raw, str):
        return raw
    return json.dumps(raw)


def _warnings(data: dict[str, Any]) -> tuple | None:
    warnings = (data.get("system") or {}).get("warnings")
    return tuple(warnings) if warnings is not None else None


@dataclass(frozen=True)
class FunctionFragment:
    name: str | None = None
    arguments: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FunctionFragment:
        return cls(name=data.get("name"), arguments=_arguments_text(data.get("arguments")))


@dataclass(frozen=True)
class ToolCallFragment:
    """
    A (possibly partial) tool call as it appears on the wire.

    In a stream only the first fragment of a call carries the *id*; later
    fragments for the same call carry argument text only.
    """

    index: int | None = None
    id: str | None = None
    type: str | None = None
    function: FunctionFragment | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCallFragment:
        func = data.get("function")
        return cls(
            index=data.get("index"),
            id=data.get("id"),
            type=data.get("type"),
            function=FunctionFragment.from_dict(func) if func is not None else None,
        )


def _tool_fragments(raw: list | None) -> tuple[ToolCallFragment, ...]:
    return tuple(ToolCallFragment.from_dict(tc) for tc in raw or ())


# ---------------------------------------------------------------------------
# Streaming wire types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChoiceDelta:
    role: str | None = None
    content: str | None = None
    refusal: str | None = None
    tool_calls: tuple[ToolCallFragment, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChoiceDelta:
        return cls(
            role=data.get("role"),
            content=data.get("content"),
            refusal=data.get("refusal"),
            tool_calls=_tool_fragments(data.get("tool_calls")),
        )


@dataclass(frozen=True)
class StreamChoice:
    index: int | None = None
    delta: ChoiceDelta | None = None
    finish_reason: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamChoice:
        delta = data.get("delta")
        return cls(
            index=data.get("index"),
            delta=ChoiceDelta.from_dict(delta) if delta is not None else None,
            finish_reason=data.get("finish_reason"),
        )


@dataclass(frozen=True)
class ChatChunk:
    """
    One event of a streamed chat completion.

    Every field is optional: a chunk may omit values already sent by an
    earlier chunk of the same response.
    """

    id: str | None = None
    model: str | None = None
    created: int | None = None
    model_version: str | None = None
    created_at: str | None = None
    choices: tuple[StreamChoice, ...] = ()
    usage: Usage | None = None
    warnings: tuple | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatChunk:
        usage = data.get("usage")
        return cls(
            id=data.get("id"),
            model=data.get("model_id") or data.get("model"),
            created=data.get("created"),
            model_version=data.get("model_version"),
            created_at=data.get("created_at"),
            choices=tuple(StreamChoice.from_dict(c) for c in data.get("choices") or ()),
            usage=Usage.from_dict(usage) if usage is not None else None,
            warnings=_warnings(data),
        )


# ---------------------------------------------------------------------------
# Non-streaming wire types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AudioOutput:
    """Model-generated speech attached to a response message."""

    id: str | None = None
    data: str | None = None  # base64
    expires_at: int | None = None
    transcript: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AudioOutput:
        return cls(
            id=data.get("id"),
            data=data.get("data"),
            expires_at=data.get("expires_at"),
            transcript=data.get("transcript"),
        )


@dataclass(frozen=True)
class ResponseMessage:
    role: str | None = None
    content: str | None = None
    refusal: str | None = None
    tool_calls: tuple[ToolCallFragment, ...] = ()
    audio: AudioOutput | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponseMessage:
        audio = data.get("audio")
        return cls(
            role=data.get("role"),
            content=data.get("content"),
            refusal=data.get("refusal"),
            tool_calls=_tool_fragments(data.get("tool_calls")),
            audio=AudioOutput.from_dict(audio) if audio is not None else None,
        )


@dataclass(frozen=True)
class ResponseChoice:
    index: int | None = None
    message: ResponseMessage = field(default_factory=ResponseMessage)
    finish_reason: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponseChoice:
        return cls(
            index=data.get("index"),
            message=ResponseMessage.from_dict(data.get("message") or {}),
            finish_reason=data.get("finish_reason"),
        )


@dataclass(frozen=True)
class ChatCompletion:
    """A complete (non-streamed) chat completion."""

    id: str | None = None
    model: str | None = None
    created: int | None = None
    model_version: str | None = None
    created_at: str | None = None
    choices: tuple[ResponseChoice, ...] | None = ()
    usage: Usage | None = None
    warnings: tuple | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatCompletion:
        usage = data.get("usage")
        choices = data.get("choices")
        return cls(
            id=data.get("id"),
            model=data.get("model_id") or data.get("model"),
            created=data.get("created"),
            model_version=data.get("model_version"),
            created_at=data.get("created_at"),
            choices=(
                tuple(ResponseChoice.from_dict(c) for c in choices)
                if choices is not None
                else None
            ),
            usage=Usage.from_dict(usage) if usage is not None else None,
            warnings=_warnings(data),
        )


# ---------------------------------------------------------------------------
# Caller-facing results
# ---------------------------------------------------------------------------


@dataclass
class Generation:
    """One candidate answer: an assistant message plus its finish reason."""

    output: AssistantMessage
    finish_reason: str = ""


@dataclass
class ChatResponseMetadata:
    id: str = ""
    model: str = ""
    usage: Usage = field(default_factory=Usage)
    created: int = 0
    model_version: str = ""
    warnings: tuple | None = None


@dataclass
class ChatResponse:
    generations: list[Generation] = field(default_factory=list)
    metadata: ChatResponseMetadata = field(default_factory=ChatResponseMetadata)

    @property
    def result(self) -> Generation | None:
        return self.generations[0] if self.generations else None

    def has_tool_calls(self) -> bool:
        return any(g.output.tool_calls for g in self.generations)


def cumulative_usage(current: Usage | None, previous: ChatResponse | None) -> Usage:
    """Add *current* to the usage already reported by *previous*."""
    usage = current or Usage()
    if previous is not None:
        usage = usage + previous.metadata.usage
    return usage
