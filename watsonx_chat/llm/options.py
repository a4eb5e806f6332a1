"""
Chat options and their reconciliation.

Options exist at three levels: the built-in defaults of this module, the
default options a ``ChatModel`` is constructed with, and the runtime options
attached to a single ``Prompt``.  ``reconcile`` layers them into the
effective options used for one request attempt:

    built-in defaults  <  default options  <  runtime options

Scalar fields take the first non-null value from the top.  Tool names,
tools, tool context and additional parameters are unions of both levels, so
tools registered on the model and tools added per request both apply.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any

from watsonx_chat.errors import InvalidOptionCombination

if TYPE_CHECKING:
    from watsonx_chat.tools.base import Tool

REASONING_EFFORTS = ("low", "medium", "high")
AUDIO_FORMATS = ("mp3", "wav")

_BUILTIN_DEFAULTS: dict[str, Any] = {
    "temperature": 0.7,
    "top_p": 1.0,
    "max_tokens": 1024,
    "presence_penalty": 0.0,
    "stop_sequences": (),
    "logprobs": False,
    "n": 1,
}

# Fields merged as collections rather than "newest non-null wins".
_UNION_FIELDS = frozenset({"tool_names", "tools", "tool_context", "additional"})

# Fields that steer this client and are never sent to the endpoint.
_LOCAL_FIELDS = frozenset(
    {
        "tool_names",
        "tools",
        "tool_context",
        "internal_tool_execution_enabled",
        "max_tool_iterations",
        "additional",
    }
)

_WIRE_NAMES = {
    "model": "model_id",
    "stop_sequences": "stop",
    "output_audio": "audio",
}


@dataclass(frozen=True)
class AudioParameters:
    """Requested format of model-generated speech."""

    format: str = "mp3"
    voice: str | None = None

    @property
    def mime_type(self) -> str:
        return f"audio/{self.format}"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"format": self.format}
        if self.voice:
            d["voice"] = self.voice
        return d


@dataclass(frozen=True)
class ChatOptions:
    """
    Parameters of a chat request.

    Every field defaults to ``None`` meaning "not set at this level".
    """

    model: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    max_completion_tokens: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    stop_sequences: tuple[str, ...] | None = None
    n: int | None = None
    seed: int | None = None
    logprobs: bool | None = None
    top_logprobs: int | None = None
    logit_bias: dict[str, float] | None = None
    time_limit: int | None = None
    response_format: dict[str, Any] | None = None
    reasoning_effort: str | None = None
    include_reasoning: bool | None = None
    guided_choice: tuple[str, ...] | None = None
    guided_regex: str | None = None
    guided_grammar: str | None = None
    guided_json: dict[str, Any] | None = None
    chat_template_kwargs: dict[str, Any] | None = None
    tool_choice_option: str | None = None
    tool_choice: dict[str, Any] | None = None
    output_audio: AudioParameters | None = None
    additional: dict[str, Any] = field(default_factory=dict)

    # ----- tool calling (client side only) ----
    tool_names: frozenset[str] | None = None
    tools: tuple[Tool, ...] | None = None
    tool_context: dict[str, Any] | None = None
    internal_tool_execution_enabled: bool | None = None
    max_tool_iterations: int | None = None

    def __post_init__(self) -> None:
        # Accept plain lists/sets from callers; store immutable collections.
        for name in ("stop_sequences", "guided_choice", "tools"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))
        if self.tool_names is not None and not isinstance(self.tool_names, frozenset):
            object.__setattr__(self, "tool_names", frozenset(self.tool_names))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Raise ``InvalidOptionCombination`` for invalid values or combinations."""
        if self.top_logprobs is not None:
            if self.logprobs is None:
                raise InvalidOptionCombination(
                    "logprobs cannot be null when using top_logprobs"
                )
            if not self.logprobs:
                raise InvalidOptionCombination(
                    "logprobs cannot be false when using top_logprobs"
                )
        if self.time_limit is not None and self.time_limit <= 0:
            raise InvalidOptionCombination("time_limit must be greater than 0")
        if self.reasoning_effort is not None and self.reasoning_effort not in REASONING_EFFORTS:
            raise InvalidOptionCombination(
                f"reasoning_effort must be one of {list(REASONING_EFFORTS)}"
            )
        if self.n is not None and self.n < 1:
            raise InvalidOptionCombination("n must be at least 1")
        if self.max_tool_iterations is not None and self.max_tool_iterations < 0:
            raise InvalidOptionCombination("max_tool_iterations cannot be negative")
        if self.output_audio is not None and self.output_audio.format not in AUDIO_FORMATS:
            raise InvalidOptionCombination(
                f"output audio format must be one of {list(AUDIO_FORMATS)}"
            )
        for name in self.tool_names or ():
            if not name or not name.strip():
                raise InvalidOptionCombination("tool_names cannot contain empty elements")
        _check_unique_tools(self.tools)

    # ------------------------------------------------------------------
    # Wire rendering
    # ------------------------------------------------------------------

    def to_request_params(self) -> dict[str, Any]:
        """Render the request parameters with their wire names, skipping unset and empty ones."""
        params: dict[str, Any] = {}
        for f in fields(self):
            if f.name in _LOCAL_FIELDS:
                continue
            value = getattr(self, f.name)
            if value is None or value == ():
                continue
            if isinstance(value, AudioParameters):
                value = value.to_dict()
            elif isinstance(value, tuple):
                value = list(value)
            params[_WIRE_NAMES.get(f.name, f.name)] = value

        for key, value in (self.additional or {}).items():
            params[_to_snake_case(key)] = value
        return params


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def reconcile(
    runtime: ChatOptions | None, default: ChatOptions | None
) -> ChatOptions:
    """
    Layer *runtime* over *default* over the built-in defaults.

    The result is validated before it is returned.
    """
    runtime = runtime or ChatOptions()
    default = default or ChatOptions()

    _check_unique_tools(default.tools)
    _check_unique_tools(runtime.tools)

    values: dict[str, Any] = {}
    for f in fields(ChatOptions):
        if f.name in _UNION_FIELDS:
            continue
        value = getattr(runtime, f.name)
        if value is None:
            value = getattr(default, f.name)
        if value is None:
            value = _BUILTIN_DEFAULTS.get(f.name)
        values[f.name] = value

    values["tool_names"] = frozenset(default.tool_names or ()) | frozenset(
        runtime.tool_names or ()
    )
    values["tools"] = _merge_tools(runtime.tools, default.tools)
    values["tool_context"] = {**(default.tool_context or {}), **(runtime.tool_context or {})}
    values["additional"] = {**(default.additional or {}), **(runtime.additional or {})}

    options = ChatOptions(**values)
    options.validate()
    return options


def _merge_tools(
    runtime: tuple[Tool, ...] | None, default: tuple[Tool, ...] | None
) -> tuple[Tool, ...]:
    merged: dict[str, Tool] = {}
    for tool in default or ():
        merged[tool.name] = tool
    for tool in runtime or ():
        merged[tool.name] = tool
    return tuple(merged.values())


def _check_unique_tools(tools: tuple[Tool, ...] | None) -> None:
    seen: set[str] = set()
    for tool in tools or ():
        if tool is None:
            raise InvalidOptionCombination("tools cannot contain null elements")
        if tool.name in seen:
            raise InvalidOptionCombination(
                f"Multiple tools with the same name ({tool.name}) found"
            )
        seen.add(tool.name)


def _to_snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
