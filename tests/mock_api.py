"""
Mock chat endpoints for testing.

Provides canned completions and chunk streams so tests can exercise the
merger and the tool loop without hitting the real service.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

from watsonx_chat.llm.providers.base import ChatApi
from watsonx_chat.llm.types import ChatChunk, ChatCompletion


class MockChatApi(ChatApi):
    """
    A ``ChatApi`` that answers from pre-configured scripts.

    Usage::

        api = MockChatApi(
            completions=[text_completion("Hello")],
            streams=[[text_chunk("Hel"), text_chunk("lo", finish="stop")]],
        )

    Each call consumes the next completion (or stream).  Once a script is
    exhausted its last entry is repeated.

    Parameters
    ----------
    completions:
        ``ChatCompletion`` objects returned by successive ``chat`` calls.
    streams:
        Chunk lists yielded by successive ``chat_stream`` calls.  An
        exception instance in a list is raised at that position.
    """

    def __init__(
        self,
        completions: list[ChatCompletion] | None = None,
        streams: list[list[Any]] | None = None,
    ) -> None:
        self._completions = completions or []
        self._streams = streams or []
        self.requests: list[dict] = []
        self.call_count = 0
        self.stream_count = 0

    async def chat(self, request: dict[str, Any]) -> ChatCompletion:
        self.requests.append(request)
        idx = min(self.call_count, len(self._completions) - 1)
        self.call_count += 1
        return self._completions[idx]

    async def chat_stream(self, request: dict[str, Any]) -> AsyncIterator[ChatChunk]:
        self.requests.append(request)
        idx = min(self.stream_count, len(self._streams) - 1)
        self.stream_count += 1
        for item in self._streams[idx]:
            if isinstance(item, Exception):
                raise item
            yield item


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def usage(prompt: int, completion: int) -> dict:
    return {
        "prompt_tokens": prompt,
        "completion_tokens": completion,
        "total_tokens": prompt + completion,
    }


def text_completion(text: str, *, usage_: dict | None = None, id: str = "chat-1") -> ChatCompletion:
    data: dict[str, Any] = {
        "id": id,
        "model_id": "ibm/granite-3-3-8b-instruct",
        "created": 1700000000,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
    }
    if usage_ is not None:
        data["usage"] = usage_
    return ChatCompletion.from_dict(data)


def tool_call_completion(
    calls: list[tuple[str, str, str]], *, usage_: dict | None = None, id: str = "chat-tc"
) -> ChatCompletion:
    """*calls* is a list of (id, name, arguments-json)."""
    data: dict[str, Any] = {
        "id": id,
        "model_id": "ibm/granite-3-3-8b-instruct",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {
                            "id": call_id,
                            "type": "function",
                            "function": {"name": name, "arguments": args},
                        }
                        for call_id, name, args in calls
                    ],
                },
                "finish_reason": "tool_calls",
            }
        ],
    }
    if usage_ is not None:
        data["usage"] = usage_
    return ChatCompletion.from_dict(data)


def chunk(
    *,
    content: str | None = None,
    role: str | None = None,
    tool_calls: list[dict] | None = None,
    finish: str | None = None,
    usage_: dict | None = None,
    id: str | None = "chunk-1",
) -> ChatChunk:
    delta: dict[str, Any] = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    data: dict[str, Any] = {
        "id": id,
        "model_id": "ibm/granite-3-3-8b-instruct",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish}],
    }
    if usage_ is not None:
        data["usage"] = usage_
    return ChatChunk.from_dict(data)


def tool_fragment(
    index: int = 0,
    *,
    id: str | None = None,
    name: str | None = None,
    args: str | None = None,
) -> dict:
    function: dict[str, Any] = {}
    if name is not None:
        function["name"] = name
    if args is not None:
        function["arguments"] = args
    frag: dict[str, Any] = {"index": index, "function": function}
    if id is not None:
        frag["id"] = id
        frag["type"] = "function"
    return frag


def tool_call_stream(
    call_id: str, name: str, args_parts: list[str], *, usage_: dict | None = None
) -> list[ChatChunk]:
    """A stream that requests one tool call, its arguments split over chunks."""
    chunks = [chunk(tool_calls=[tool_fragment(0, id=call_id, name=name, args=args_parts[0])])]
    for part in args_parts[1:]:
        chunks.append(chunk(tool_calls=[tool_fragment(0, args=part)]))
    chunks.append(chunk(finish="tool_calls", usage_=usage_))
    return chunks


def text_stream(parts: list[str], *, usage_: dict | None = None) -> list[ChatChunk]:
    chunks = [chunk(role="assistant")]
    chunks.extend(chunk(content=p) for p in parts)
    chunks.append(chunk(content="", finish="stop", usage_=usage_))
    return chunks
