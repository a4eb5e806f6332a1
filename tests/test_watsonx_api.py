"""Tests for WatsonxChatApi against an in-process httpx transport."""

from __future__ import annotations

import json

import httpx
import pytest

from watsonx_chat.errors import ApiError, StreamInterruptedError
from watsonx_chat.llm.providers.watsonx import DEFAULT_VERSION, WatsonxChatApi


class StaticToken:
    async def get_access_token(self) -> str:
        return "tok-123"


class BrokenStream(httpx.AsyncByteStream):
    """Delivers some bytes, then drops the connection."""

    def __init__(self, first: bytes):
        self.first = first

    async def __aiter__(self):
        yield self.first
        raise httpx.ReadError("connection reset")


class SplitStream(httpx.AsyncByteStream):
    """Delivers the body in the given parts."""

    def __init__(self, parts: list[bytes]):
        self.parts = parts

    async def __aiter__(self):
        for part in self.parts:
            yield part


def _sse(*payloads) -> bytes:
    lines = []
    for i, p in enumerate(payloads):
        data = p if isinstance(p, str) else json.dumps(p, ensure_ascii=False)
        lines.append(f"id: {i}\nevent: message\ndata: {data}\n\n")
    return "".join(lines).encode()


def _completion_json(text: str = "hi") -> dict:
    return {
        "id": "chat-1",
        "model_id": "ibm/granite-3-3-8b-instruct",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": text}, "finish_reason": "stop"}
        ],
        "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
    }


def _api(handler, **kwargs) -> WatsonxChatApi:
    kwargs.setdefault("project_id", "proj-1")
    return WatsonxChatApi(StaticToken(), transport=httpx.MockTransport(handler), **kwargs)


class TestChat:
    async def test_request_shape(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion_json())

        completion = await _api(handler).chat({"messages": [{"role": "user", "content": "hi"}]})

        assert completion.choices[0].message.content == "hi"
        assert completion.usage.total_tokens == 4
        req = seen[0]
        assert req.url.path == "/ml/v1/text/chat"
        assert req.url.params["version"] == DEFAULT_VERSION
        assert req.headers["Authorization"] == "Bearer tok-123"
        body = json.loads(req.content)
        assert body["project_id"] == "proj-1"
        assert "space_id" not in body

    async def test_space_id(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=_completion_json())

        await _api(handler, project_id=None, space_id="space-9").chat({"messages": []})
        assert bodies[0]["space_id"] == "space-9"

    def test_project_or_space_required(self):
        with pytest.raises(ValueError):
            WatsonxChatApi(StaticToken())

    async def test_retries_transient_status(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json=_completion_json("second"))

        completion = await _api(handler).chat({"messages": []})
        assert completion.choices[0].message.content == "second"
        assert len(calls) == 2

    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, text="slow down")

        with pytest.raises(ApiError) as exc:
            await _api(handler, max_retries=1).chat({"messages": []})
        assert exc.value.status_code == 429
        assert len(calls) == 2

    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, text="bad model")

        with pytest.raises(ApiError, match="bad model"):
            await _api(handler).chat({"messages": []})
        assert len(calls) == 1

    async def test_transport_error_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("refused")
            return httpx.Response(200, json=_completion_json())

        await _api(handler).chat({"messages": []})
        assert len(calls) == 2


class TestChatStream:
    async def test_parses_sse_events(self):
        seen = []

        def handler(request):
            seen.append(request)
            body = _sse(
                {"id": "s1", "choices": [{"index": 0, "delta": {"role": "assistant"}}]},
                {"id": "s1", "choices": [{"index": 0, "delta": {"content": "4"}}]},
                {"id": "s1", "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]},
                "[DONE]",
            )
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        chunks = [c async for c in _api(handler).chat_stream({"messages": []})]

        assert len(chunks) == 3
        assert chunks[1].choices[0].delta.content == "4"
        assert chunks[2].choices[0].finish_reason == "stop"
        assert seen[0].url.path == "/ml/v1/text/chat_stream"
        assert seen[0].headers["Accept"] == "text/event-stream"

    async def test_bad_event_skipped(self):
        def handler(request):
            body = _sse("{not json", {"id": "s1", "choices": []})
            return httpx.Response(200, content=body)

        chunks = [c async for c in _api(handler).chat_stream({"messages": []})]
        assert len(chunks) == 1
        assert chunks[0].id == "s1"

    async def test_retries_before_stream_starts(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(500, text="oops")
            return httpx.Response(200, content=_sse({"id": "s1", "choices": []}, "[DONE]"))

        chunks = [c async for c in _api(handler).chat_stream({"messages": []})]
        assert len(chunks) == 1
        assert len(calls) == 2

    async def test_break_after_start_raises_interrupted(self):
        calls = []

        def handler(request):
            calls.append(request)
            first = _sse({"id": "s1", "choices": [{"index": 0, "delta": {"content": "par"}}]})
            return httpx.Response(200, stream=BrokenStream(first))

        received = []
        with pytest.raises(StreamInterruptedError):
            async for c in _api(handler).chat_stream({"messages": []}):
                received.append(c)
        assert len(received) == 1
        assert len(calls) == 1

    async def test_multibyte_character_split_across_reads(self):
        body = _sse({"id": "s1", "choices": [{"index": 0, "delta": {"content": "café"}}]}, "[DONE]")
        cut = body.index("é".encode()) + 1

        def handler(request):
            return httpx.Response(200, stream=SplitStream([body[:cut], body[cut:]]))

        chunks = [c async for c in _api(handler).chat_stream({"messages": []})]
        assert chunks[0].choices[0].delta.content == "café"
