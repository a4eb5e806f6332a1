"""
Projection of wire responses into caller-facing generations.

``build_generation`` handles complete choices of a non-streamed completion,
``build_generation_from_stream`` handles merged streaming choices.  Both are
pure: they never raise for well-formed input and always produce an empty
tool-call list and an empty finish reason instead of ``None``.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

from watsonx_chat.llm.arguments import normalize_arguments
from watsonx_chat.llm.options import AudioParameters
from watsonx_chat.llm.types import (
    AssistantMessage,
    AudioOutput,
    ChatChunk,
    ChatCompletion,
    ChatResponse,
    ChatResponseMetadata,
    Generation,
    Media,
    ResponseChoice,
    StreamChoice,
    ToolCall,
    ToolCallFragment,
    Usage,
    cumulative_usage,
)

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_MIME_TYPE = "audio/mp3"
NO_ID = "NO_ID"


def _to_tool_calls(fragments: tuple[ToolCallFragment, ...]) -> list[ToolCall]:
    calls: list[ToolCall] = []
    for idx, fragment in enumerate(fragments):
        func = fragment.function
        calls.append(
            ToolCall(
                id=fragment.id or f"call_{idx}",
                name=(func.name or "").strip() if func else "",
                arguments=normalize_arguments(func.arguments if func else None) or "",
            )
        )
    return calls


def _properties(
    response_id: str | None,
    role: str | None,
    index: int | None,
    finish_reason: str | None,
    refusal: str | None,
) -> dict[str, Any]:
    return {
        "id": response_id or "",
        "role": role or "",
        "index": index if index is not None else 0,
        "finish_reason": finish_reason or "",
        "refusal": refusal or "",
    }


def _audio_media(audio: AudioOutput, mime_type: str) -> Media | None:
    if not audio.data:
        return None
    try:
        data = base64.b64decode(audio.data, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Discarding undecodable audio payload id=%s", audio.id)
        return None
    return Media(mime_type=mime_type, data=data, name=audio.id or "")


# ---------------------------------------------------------------------------
# Generations
# ---------------------------------------------------------------------------


def build_generation(
    choice: ResponseChoice,
    properties: dict[str, Any],
    audio: AudioParameters | None = None,
) -> Generation:
    """
    Build a ``Generation`` from a complete response choice.

    Model-generated speech is decoded into a ``Media`` item typed after the
    requested *audio* format; its transcript stands in for missing text.
    """
    message = choice.message
    content = message.content
    media: list[Media] = []
    props = dict(properties)

    if message.audio is not None:
        mime_type = audio.mime_type if audio is not None else DEFAULT_AUDIO_MIME_TYPE
        item = _audio_media(message.audio, mime_type)
        if item is not None:
            media.append(item)
        if not content:
            content = message.audio.transcript
        props["audio_id"] = message.audio.id or ""
        props["audio_expires_at"] = message.audio.expires_at

    output = AssistantMessage(
        content=content,
        tool_calls=_to_tool_calls(message.tool_calls),
        media=media,
        properties=props,
    )
    return Generation(output=output, finish_reason=choice.finish_reason or "")


def build_generation_from_stream(
    choice: StreamChoice, properties: dict[str, Any]
) -> Generation:
    """Build a ``Generation`` from a (merged) streaming choice."""
    delta = choice.delta
    output = AssistantMessage(
        content=delta.content if delta else None,
        tool_calls=_to_tool_calls(delta.tool_calls) if delta else [],
        properties=dict(properties),
    )
    return Generation(output=output, finish_reason=choice.finish_reason or "")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def response_from_completion(
    completion: ChatCompletion | None,
    audio: AudioParameters | None = None,
    previous: ChatResponse | None = None,
) -> ChatResponse:
    """
    Build the ``ChatResponse`` of one non-streamed round trip.

    Usage is reported cumulatively: *previous* is the response of the prior
    tool-loop iteration, if any.
    """
    if completion is None:
        logger.warning("No chat completion returned")
        return ChatResponse(metadata=ChatResponseMetadata(usage=cumulative_usage(None, previous)))
    if completion.choices is None:
        logger.warning("No choices returned for chat completion id=%s", completion.id)

    generations = [
        build_generation(
            choice,
            _properties(
                completion.id,
                choice.message.role,
                choice.index,
                choice.finish_reason,
                choice.message.refusal,
            ),
            audio,
        )
        for choice in completion.choices or ()
    ]
    return ChatResponse(
        generations=generations,
        metadata=_metadata(completion.id or "", completion, completion.usage, previous),
    )


def response_from_chunk(
    chunk: ChatChunk,
    usage: Usage | None = None,
    previous: ChatResponse | None = None,
) -> ChatResponse:
    """
    Build the ``ChatResponse`` for one emitted stream window.

    *usage* is the usage seen so far in this stream; chunks often carry it
    only on the final event.
    """
    response_id = chunk.id or NO_ID
    generations = [
        build_generation_from_stream(
            choice,
            _properties(
                response_id,
                choice.delta.role if choice.delta else None,
                choice.index,
                choice.finish_reason,
                choice.delta.refusal if choice.delta else None,
            ),
        )
        for choice in chunk.choices
        if choice is not None
    ]
    return ChatResponse(
        generations=generations,
        metadata=_metadata(response_id, chunk, usage or chunk.usage, previous),
    )


def _metadata(
    response_id: str,
    source: ChatCompletion | ChatChunk,
    usage: Usage | None,
    previous: ChatResponse | None,
) -> ChatResponseMetadata:
    return ChatResponseMetadata(
        id=response_id,
        model=source.model or "",
        usage=cumulative_usage(usage, previous),
        created=source.created or 0,
        model_version=source.model_version or "",
        warnings=source.warnings,
    )
