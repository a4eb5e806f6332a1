"""
Chat model -- the tool-execution loop that ties everything together.

For one exchange the model:
1. Reconciles the prompt's runtime options with its default options
2. Builds the request from the conversation and the resolved tools
3. Sends it, either as one call or as a stream of merged windows
4. Asks the eligibility predicate whether the response requests tools
5. Executes the tools and either returns their output directly or
   resubmits the extended conversation
6. Stops after a bounded number of tool rounds

Usage is reported cumulatively across the rounds of one exchange.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Callable

from watsonx_chat.errors import ToolLoopLimitExceeded
from watsonx_chat.llm.aggregator import MessageAggregator
from watsonx_chat.llm.chunk_merger import ChunkMerger
from watsonx_chat.llm.generation import response_from_chunk, response_from_completion
from watsonx_chat.llm.options import ChatOptions, reconcile
from watsonx_chat.llm.providers.base import ChatApi
from watsonx_chat.llm.request import create_request
from watsonx_chat.llm.types import ChatResponse, Prompt, Usage
from watsonx_chat.tools.eligibility import default_tool_execution_required
from watsonx_chat.tools.manager import ToolCallingManager, ToolExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 10

ToolExecutionPredicate = Callable[[ChatOptions, ChatResponse], bool]


class ChatModel:
    """
    Parameters
    ----------
    api : ChatApi
        The chat endpoint.
    default_options : ChatOptions
        Options applied to every prompt, below the prompt's own options.
    tool_calling_manager : ToolExecutor
        Resolves tool definitions and executes tool calls.
    tool_execution_required : callable
        Decides from (options, response) whether tools must run.
    max_tool_iterations : int
        Max tool-execution rounds per exchange.  ``ChatOptions.max_tool_iterations``
        takes precedence when set.
    """

    def __init__(
        self,
        api: ChatApi,
        default_options: ChatOptions | None = None,
        tool_calling_manager: ToolExecutor | None = None,
        tool_execution_required: ToolExecutionPredicate = default_tool_execution_required,
        max_tool_iterations: int | None = None,
    ) -> None:
        self.api = api
        self.default_options = default_options or ChatOptions()
        self.tool_calling_manager = tool_calling_manager or ToolCallingManager()
        self.tool_execution_required = tool_execution_required
        self.max_tool_iterations = (
            max_tool_iterations
            if max_tool_iterations is not None
            else DEFAULT_MAX_TOOL_ITERATIONS
        )
        self._merger = ChunkMerger()

    async def call(self, prompt: Prompt) -> ChatResponse:
        """Run one exchange without streaming and return the terminal response."""
        previous: ChatResponse | None = None
        rounds = 0

        while True:
            options, request = self._build_request(prompt, stream=False)
            completion = await self.api.chat(request)
            response = response_from_completion(completion, options.output_audio, previous)

            if not self.tool_execution_required(options, response):
                return response

            rounds = self._next_round(options, rounds)
            result = await self.tool_calling_manager.execute_tool_calls(
                Prompt(messages=list(prompt.messages), options=options), response
            )
            if result.return_direct:
                return ChatResponse(
                    generations=result.build_generations(), metadata=response.metadata
                )

            prompt = Prompt(messages=result.conversation_history, options=prompt.options)
            previous = response

    async def stream(self, prompt: Prompt) -> AsyncIterator[ChatResponse]:
        """
        Run one exchange with streaming.

        Yields one ``ChatResponse`` per emitted window in arrival order.  Only
        the aggregate of a round decides whether tools run; a return-direct
        result is yielded last.
        """
        previous: ChatResponse | None = None
        rounds = 0

        while True:
            options, request = self._build_request(prompt, stream=True)
            aggregator = MessageAggregator()
            stream_usage: Usage | None = None

            async for window in self._merger.window(self.api.chat_stream(request)):
                if window.usage is not None:
                    stream_usage = window.usage
                response = response_from_chunk(window, stream_usage, previous)
                aggregator.add(response)
                yield response

            response = aggregator.result()
            if not self.tool_execution_required(options, response):
                return

            rounds = self._next_round(options, rounds)
            result = await self.tool_calling_manager.execute_tool_calls(
                Prompt(messages=list(prompt.messages), options=options), response
            )
            if result.return_direct:
                yield ChatResponse(
                    generations=result.build_generations(), metadata=response.metadata
                )
                return

            prompt = Prompt(messages=result.conversation_history, options=prompt.options)
            previous = response

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_request(self, prompt: Prompt, *, stream: bool) -> tuple[ChatOptions, dict]:
        options = reconcile(prompt.options, self.default_options)
        definitions = self.tool_calling_manager.resolve_tool_definitions(options)
        return options, create_request(prompt.messages, options, definitions, stream=stream)

    def _next_round(self, options: ChatOptions, rounds: int) -> int:
        limit = (
            options.max_tool_iterations
            if options.max_tool_iterations is not None
            else self.max_tool_iterations
        )
        if rounds >= limit:
            logger.warning("Tool loop limit of %d rounds reached", limit)
            raise ToolLoopLimitExceeded(limit)
        logger.info("Executing tool calls (round %d of %d)", rounds + 1, limit)
        return rounds + 1
