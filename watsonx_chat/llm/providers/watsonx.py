"""
watsonx.ai chat endpoints.

``/ml/v1/text/chat`` answers with one JSON completion and
``/ml/v1/text/chat_stream`` with Server-Sent Events.  Both take the API
version as a query parameter and the project (or deployment space) in the
request body.

Dependencies: ``httpx`` (async HTTP client).
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from watsonx_chat.errors import ApiError, StreamInterruptedError
from watsonx_chat.llm.providers.auth import IamAuthenticator
from watsonx_chat.llm.providers.base import ChatApi
from watsonx_chat.llm.types import ChatChunk, ChatCompletion

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://us-south.ml.cloud.ibm.com"
DEFAULT_TEXT_ENDPOINT = "/ml/v1/text/chat"
DEFAULT_STREAM_ENDPOINT = "/ml/v1/text/chat_stream"
DEFAULT_VERSION = "2024-10-17"


def _retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class WatsonxChatApi(ChatApi):
    """
    Parameters
    ----------
    authenticator:
        Supplies the bearer token for every request.
    project_id / space_id:
        Exactly one identifies where the model runs.
    base_url:
        Regional endpoint, e.g. ``"https://eu-de.ml.cloud.ibm.com"``.
    version:
        API version date sent as the ``version`` query parameter.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient HTTP errors (5xx, 429) and
        transport failures.  Applies to the non-streaming call and to
        opening a stream, never to a stream that has started.
    transport:
        Optional httpx transport, mainly for tests.
    """

    def __init__(
        self,
        authenticator: IamAuthenticator,
        project_id: str | None = None,
        space_id: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        text_endpoint: str = DEFAULT_TEXT_ENDPOINT,
        stream_endpoint: str = DEFAULT_STREAM_ENDPOINT,
        version: str = DEFAULT_VERSION,
        timeout: float = 120.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not project_id and not space_id:
            raise ValueError("Either project_id or space_id is required")
        self._authenticator = authenticator
        self._project_id = project_id
        self._space_id = space_id
        self._base_url = base_url.rstrip("/")
        self._text_endpoint = text_endpoint
        self._stream_endpoint = stream_endpoint
        self._version = version
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport

    # ------------------------------------------------------------------
    # ChatApi interface
    # ------------------------------------------------------------------

    async def chat(self, request: dict[str, Any]) -> ChatCompletion:
        url = f"{self._base_url}{self._text_endpoint}"
        body = self._build_body(request)

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            headers = await self._build_headers("application/json")
            try:
                async with self._client() as client:
                    resp = await client.post(
                        url, json=body, headers=headers, params={"version": self._version}
                    )

                    if _retryable(resp.status_code):
                        last_error = _api_error(resp)
                        logger.warning(
                            "chat attempt %d failed: HTTP %d", attempt + 1, resp.status_code
                        )
                        continue

                    if resp.status_code >= 400:
                        raise _api_error(resp)
                    data = resp.json()
            except httpx.TransportError as exc:
                last_error = exc
                logger.warning("chat attempt %d failed: %s", attempt + 1, exc)
                if attempt < self._max_retries:
                    continue
                raise
            else:
                return ChatCompletion.from_dict(data)

        if last_error is not None:
            raise last_error
        raise RuntimeError("unreachable")  # pragma: no cover

    async def chat_stream(self, request: dict[str, Any]) -> AsyncIterator[ChatChunk]:
        url = f"{self._base_url}{self._stream_endpoint}"
        body = self._build_body(request)

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            headers = await self._build_headers("text/event-stream")
            started = False
            try:
                async with self._client() as client:
                    async with client.stream(
                        "POST",
                        url,
                        json=body,
                        headers=headers,
                        params={"version": self._version},
                    ) as response:
                        if _retryable(response.status_code):
                            # Read body so the connection is released.
                            await response.aread()
                            last_error = _api_error(response)
                            logger.warning(
                                "chat_stream attempt %d failed: HTTP %d",
                                attempt + 1,
                                response.status_code,
                            )
                            continue

                        if response.status_code >= 400:
                            await response.aread()
                            raise _api_error(response)

                        async for chunk in self._parse_sse_stream(response):
                            started = True
                            yield chunk
                        return  # success
            except httpx.TransportError as exc:
                if started:
                    raise StreamInterruptedError(f"Stream interrupted: {exc}") from exc
                last_error = exc
                logger.warning("chat_stream attempt %d failed: %s", attempt + 1, exc)
                if attempt < self._max_retries:
                    continue
                raise

        if last_error is not None:
            raise last_error

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _build_headers(self, accept: str) -> dict[str, str]:
        token = await self._authenticator.get_access_token()
        return {
            "Content-Type": "application/json",
            "Accept": accept,
            "Authorization": f"Bearer {token}",
        }

    def _build_body(self, request: dict[str, Any]) -> dict[str, Any]:
        body = dict(request)
        if self._project_id:
            body["project_id"] = self._project_id
        else:
            body["space_id"] = self._space_id
        return body

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _parse_sse_stream(self, response: httpx.Response) -> AsyncIterator[ChatChunk]:
        """
        Parse Server-Sent Events from the response byte stream.

        Each event has the form::

            id: 1
            event: message
            data: {json}

        Only ``data`` lines are read.  The sentinel ``data: [DONE]``
        terminates the stream.  Lines are decoded incrementally, so a
        multibyte character split across network reads stays intact.
        """
        async for line in response.aiter_lines():
            if not line.startswith("data:"):
                continue

            data_str = line[len("data:"):].strip()
            if not data_str:
                continue
            if data_str == "[DONE]":
                return

            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                logger.warning("Failed to parse SSE data: %s", data_str[:200])
                continue

            yield ChatChunk.from_dict(data)


def _api_error(resp: httpx.Response) -> ApiError:
    try:
        detail = resp.text[:500]
    except httpx.ResponseNotRead:
        detail = ""
    return ApiError(f"HTTP {resp.status_code}: {detail}", status_code=resp.status_code)
