"""
Builds the wire request body for the chat endpoints.

All checks here run before any network interaction: a tool response without
an id, user media with an unmapped MIME type, or a streamed request asking
for several choices fail immediately.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Sequence

from watsonx_chat.errors import (
    InvalidOptionCombination,
    ToolResponseMissingId,
    UnsupportedMediaType,
)
from watsonx_chat.llm.options import ChatOptions
from watsonx_chat.llm.types import (
    AssistantMessage,
    Media,
    Message,
    SystemMessage,
    ToolResponseMessage,
    UserMessage,
)
from watsonx_chat.tools.base import ToolDefinition

logger = logging.getLogger(__name__)

_AUDIO_FORMATS = {
    "audio/mp3": "mp3",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
}


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------


def _media_url(media: Media) -> str:
    if isinstance(media.data, bytes):
        encoded = base64.b64encode(media.data).decode("ascii")
        return f"data:{media.mime_type};base64,{encoded}"
    return str(media.data)


def media_to_content(media: Media) -> dict[str, Any]:
    """Map one user ``Media`` item to a wire content part."""
    mime_type = (media.mime_type or "").lower().split(";")[0].strip()
    asset = {"data_asset": {"id": media.data_asset_id}} if media.data_asset_id else {}

    if mime_type in _AUDIO_FORMATS:
        part: dict[str, Any] = {"type": "input_audio", **asset}
        if media.data is not None:
            data = media.data
            if isinstance(data, bytes):
                data = base64.b64encode(data).decode("ascii")
            part["input_audio"] = {"data": data, "format": _AUDIO_FORMATS[mime_type]}
        return part

    kind = mime_type.split("/", 1)[0]
    if kind == "image":
        part = {"type": "image_url", **asset}
        if media.data is not None:
            part["image_url"] = {"url": _media_url(media), "detail": "auto"}
        return part
    if kind == "video":
        part = {"type": "video_url", **asset}
        if media.data is not None:
            part["video_url"] = {"url": _media_url(media)}
        return part

    raise UnsupportedMediaType(media.mime_type)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def message_to_wire(message: Message) -> list[dict[str, Any]]:
    """Map one conversation message to one or more wire messages."""
    if isinstance(message, SystemMessage):
        return [{"role": "system", "content": message.text}]

    if isinstance(message, UserMessage):
        if not message.media:
            return [{"role": "user", "content": message.text}]
        content: list[dict[str, Any]] = [{"type": "text", "text": message.text}]
        content.extend(media_to_content(m) for m in message.media)
        return [{"role": "user", "content": content}]

    if isinstance(message, AssistantMessage):
        m: dict[str, Any] = {"role": "assistant", "content": message.text}
        if message.tool_calls:
            m["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": tc.type,
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in message.tool_calls
            ]
        return [m]

    if isinstance(message, ToolResponseMessage):
        for response in message.responses:
            if response.id is None:
                raise ToolResponseMissingId("Tool response id must not be null")
        return [
            {
                "role": "tool",
                "content": response.response_data,
                "tool_call_id": response.id,
                "name": response.name,
            }
            for response in message.responses
        ]

    raise TypeError(f"Unsupported message type: {type(message).__name__}")


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


def create_request(
    messages: Sequence[Message],
    options: ChatOptions,
    tool_definitions: Sequence[ToolDefinition] = (),
    *,
    stream: bool = False,
) -> dict[str, Any]:
    """
    Build the request body from a conversation and effective options.

    Raises ``InvalidOptionCombination`` for streamed requests with ``n > 1``:
    stream merging covers a single choice only.
    """
    if stream and options.n is not None and options.n > 1:
        raise InvalidOptionCombination(
            f"Streaming supports a single choice; got n={options.n}"
        )

    wire_messages: list[dict[str, Any]] = []
    for message in messages:
        wire_messages.extend(message_to_wire(message))

    body: dict[str, Any] = {"messages": wire_messages}
    body.update(options.to_request_params())

    if tool_definitions:
        body["tools"] = [d.to_wire() for d in tool_definitions]

    logger.info(
        "REQUEST: model=%s tools=%d messages=%d stream=%s",
        options.model,
        len(tool_definitions),
        len(wire_messages),
        stream,
    )
    return body
