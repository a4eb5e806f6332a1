"""Abstract base class for chat endpoints."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from watsonx_chat.llm.types import ChatChunk, ChatCompletion


class ChatApi(ABC):
    """
    Access to one chat endpoint.

    Implementations must support:
      - A complete chat completion (``chat``), retried on transient errors.
      - A streamed chat completion (``chat_stream``).
    """

    @abstractmethod
    async def chat(self, request: dict[str, Any]) -> ChatCompletion:
        """Send *request* and return the whole completion."""
        ...

    @abstractmethod
    async def chat_stream(self, request: dict[str, Any]) -> AsyncIterator[ChatChunk]:
        """
        Send *request* to the streaming endpoint.

        Yields ``ChatChunk`` objects in arrival order.  Each call produces a
        fresh stream.
        """
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield ChatChunk()  # type: ignore[misc]
