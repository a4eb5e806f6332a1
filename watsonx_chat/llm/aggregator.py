"""
Folds the responses emitted for one streamed exchange into a final response.

Each emitted response carries either one content delta or one merged
tool-call window.  The aggregate concatenates the text of the first
generation, collects tool calls in arrival order, and keeps the newest
non-empty finish reason, role properties and metadata.
"""

from __future__ import annotations

from watsonx_chat.llm.types import (
    AssistantMessage,
    ChatResponse,
    ChatResponseMetadata,
    Generation,
    Media,
    ToolCall,
)


class MessageAggregator:
    """Accumulates streamed ``ChatResponse`` objects."""

    def __init__(self) -> None:
        self._text_parts: list[str] = []
        self._tool_calls: list[ToolCall] = []
        self._media: list[Media] = []
        self._properties: dict = {}
        self._finish_reason = ""
        self._metadata: ChatResponseMetadata | None = None
        self.count = 0

    def add(self, response: ChatResponse) -> None:
        """Fold one emitted response into the aggregate."""
        self.count += 1
        self._metadata = response.metadata

        generation = response.result
        if generation is None:
            return

        output = generation.output
        if output.content:
            self._text_parts.append(output.content)
        self._tool_calls.extend(output.tool_calls)
        self._media.extend(output.media)
        for key, value in output.properties.items():
            if value not in ("", None) or key not in self._properties:
                self._properties[key] = value
        if generation.finish_reason:
            self._finish_reason = generation.finish_reason

    def result(self) -> ChatResponse:
        """Return the aggregated response (empty if nothing was added)."""
        metadata = self._metadata or ChatResponseMetadata()
        if self.count == 0:
            return ChatResponse(metadata=metadata)

        output = AssistantMessage(
            content="".join(self._text_parts),
            tool_calls=list(self._tool_calls),
            media=list(self._media),
            properties=dict(self._properties),
        )
        return ChatResponse(
            generations=[Generation(output=output, finish_reason=self._finish_reason)],
            metadata=metadata,
        )
