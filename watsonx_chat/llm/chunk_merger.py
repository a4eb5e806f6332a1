"""
Merges streamed chat-completion chunks into coherent aggregates.

Design goals:
  - ``merge`` is a total, side-effect free fold step: ``merge(None, x)`` and
    ``merge(x, None)`` both return ``x`` so a stream can be folded from
    ``None``.
  - Scalar fields follow "newest non-null wins".  Text content never becomes
    ``None`` once a value has been seen.
  - Tool-call fragments are accumulated per call.  A fragment carrying a
    non-empty ``id`` opens a new call; id-less fragments append their
    argument text to the open call with the same index.
  - A fragment that cannot be attributed to any open call is kept as a new
    call with a synthesized id and logged -- the rest of the response stays
    usable.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import AsyncIterable, AsyncIterator

from watsonx_chat.errors import StreamInterruptedError
from watsonx_chat.llm.types import (
    ChatChunk,
    ChoiceDelta,
    FunctionFragment,
    StreamChoice,
    ToolCallFragment,
)

logger = logging.getLogger(__name__)

FINISH_TOOL_CALLS = "tool_calls"


def _newest(current, previous):
    return current if current is not None else previous


def _first_choice(chunk: ChatChunk) -> StreamChoice | None:
    for choice in chunk.choices:
        if choice is not None and choice.index in (0, None):
            return choice
    return None


class ChunkMerger:
    """Folds ``ChatChunk`` objects of one stream into a single aggregate."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_streaming_tool_call(self, chunk: ChatChunk | None) -> bool:
        """Return ``True`` if any choice of *chunk* carries tool-call fragments."""
        if chunk is None:
            return False
        return any(
            choice is not None and choice.delta is not None and choice.delta.tool_calls
            for choice in chunk.choices
        )

    def is_streaming_tool_call_finish(self, chunk: ChatChunk | None) -> bool:
        """Return ``True`` if *chunk* ends a tool-calling response."""
        if chunk is None:
            return False
        return any(
            choice is not None and choice.finish_reason == FINISH_TOOL_CALLS
            for choice in chunk.choices
        )

    def merge(
        self, previous: ChatChunk | None, current: ChatChunk | None
    ) -> ChatChunk | None:
        """
        Fold *current* into the aggregate *previous*.

        Only the first choice (index 0) is merged; the result carries at most
        one choice.
        """
        if previous is None:
            return current
        if current is None:
            return previous

        choice = self._merge_choice(_first_choice(previous), _first_choice(current))

        return ChatChunk(
            id=_newest(current.id, previous.id),
            model=_newest(current.model, previous.model),
            created=_newest(current.created, previous.created),
            model_version=_newest(current.model_version, previous.model_version),
            created_at=_newest(current.created_at, previous.created_at),
            choices=(choice,) if choice is not None else (),
            usage=_newest(current.usage, previous.usage),
            warnings=_newest(current.warnings, previous.warnings),
        )

    async def window(
        self, chunks: AsyncIterable[ChatChunk]
    ) -> AsyncIterator[ChatChunk]:
        """
        Group a chunk stream into emitted units.

        Chunks outside a tool call are yielded one by one.  From the first
        chunk carrying tool-call fragments up to the chunk finishing with
        ``"tool_calls"``, chunks are merged and yielded as one aggregate.  If
        the stream stops while such a window is open, the partial aggregate
        is yielded.
        """
        pending: ChatChunk | None = None
        inside_tool = False

        try:
            async for chunk in chunks:
                if self.is_streaming_tool_call(chunk):
                    inside_tool = True

                if not inside_tool:
                    yield chunk
                    continue

                pending = self.merge(pending, chunk)
                if self.is_streaming_tool_call_finish(chunk):
                    inside_tool = False
                    yield pending
                    pending = None
        except StreamInterruptedError as exc:
            logger.warning("Chat stream interrupted: %s", exc)

        if pending is not None:
            logger.warning(
                "Chat stream ended inside a tool call; emitting partial aggregate"
            )
            yield pending

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _merge_choice(
        self, previous: StreamChoice | None, current: StreamChoice | None
    ) -> StreamChoice | None:
        if previous is None:
            return current
        if current is None:
            return previous

        return StreamChoice(
            index=_newest(current.index, previous.index),
            delta=self._merge_delta(previous.delta, current.delta),
            finish_reason=_newest(current.finish_reason, previous.finish_reason),
        )

    def _merge_delta(
        self, previous: ChoiceDelta | None, current: ChoiceDelta | None
    ) -> ChoiceDelta:
        previous = previous or ChoiceDelta()
        current = current or ChoiceDelta()

        content = _newest(current.content, previous.content)

        calls = list(previous.tool_calls)
        for fragment in current.tool_calls:
            if fragment.id:
                calls.append(fragment)
                continue

            pos = self._open_call(calls, fragment.index)
            if pos is None:
                synthesized = f"call_{fragment.index if fragment.index is not None else len(calls)}"
                logger.warning(
                    "Malformed stream fragment: tool-call index=%s has no id and "
                    "no open call; keeping it as %s",
                    fragment.index,
                    synthesized,
                )
                calls.append(replace(fragment, id=synthesized))
            else:
                calls[pos] = self._merge_fragment(calls[pos], fragment)

        return ChoiceDelta(
            role=_newest(current.role, previous.role),
            content=content if content is not None else "",
            refusal=_newest(current.refusal, previous.refusal),
            tool_calls=tuple(calls),
        )

    @staticmethod
    def _open_call(calls: list[ToolCallFragment], index: int | None) -> int | None:
        """Position of the call an id-less fragment with *index* belongs to."""
        if not calls:
            return None
        if index is not None:
            for pos in range(len(calls) - 1, -1, -1):
                if calls[pos].index == index:
                    return pos
            if any(call.index is not None for call in calls):
                return None
        return len(calls) - 1

    @staticmethod
    def _merge_fragment(
        previous: ToolCallFragment, current: ToolCallFragment
    ) -> ToolCallFragment:
        return ToolCallFragment(
            index=_newest(current.index, previous.index),
            id=current.id or previous.id,
            type=_newest(current.type, previous.type),
            function=_merge_function(previous.function, current.function),
        )


def _merge_function(
    previous: FunctionFragment | None, current: FunctionFragment | None
) -> FunctionFragment | None:
    if previous is None:
        return current
    if current is None:
        return previous

    arguments = None
    if previous.arguments is not None or current.arguments is not None:
        arguments = (previous.arguments or "") + (current.arguments or "")

    return FunctionFragment(
        name=current.name or previous.name,
        arguments=arguments,
    )
