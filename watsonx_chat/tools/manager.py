"""
Tool calling -- resolves tool definitions for a request and executes the
tool calls the model asked for.

Every tool call of one assistant turn runs concurrently and all of them
finish before the conversation is handed back to the loop.  A failing call
(unknown tool, unparseable arguments, schema violation, timeout, exception)
becomes an error text in that call's ``ToolResponse``; it never aborts the
exchange.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

import jsonschema

from watsonx_chat.errors import UnnormalizableArguments
from watsonx_chat.llm.arguments import parse_arguments
from watsonx_chat.llm.options import ChatOptions
from watsonx_chat.llm.types import (
    AssistantMessage,
    ChatResponse,
    Generation,
    Message,
    Prompt,
    ToolCall,
    ToolResponse,
    ToolResponseMessage,
)
from watsonx_chat.tools.base import Tool, ToolDefinition, normalize_schema
from watsonx_chat.tools.registry import ToolRegistry
from watsonx_chat.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)

FINISH_RETURN_DIRECT = "return_direct"


@dataclass
class ToolExecutionResult:
    """Conversation after one round of tool execution."""

    conversation_history: list[Message] = field(default_factory=list)
    return_direct: bool = False

    def build_generations(self) -> list[Generation]:
        """One generation per tool response of the last tool-response message."""
        last = self.conversation_history[-1] if self.conversation_history else None
        if not isinstance(last, ToolResponseMessage):
            return []
        return [
            Generation(
                output=AssistantMessage(
                    content=response.response_data,
                    properties={"id": response.id, "tool_name": response.name},
                ),
                finish_reason=FINISH_RETURN_DIRECT,
            )
            for response in last.responses
        ]


class ToolExecutor(Protocol):
    def resolve_tool_definitions(self, options: ChatOptions) -> list[ToolDefinition]: ...

    async def execute_tool_calls(
        self, prompt: Prompt, response: ChatResponse
    ) -> ToolExecutionResult: ...


class ToolCallingManager:
    """
    Default ``ToolExecutor``.

    Parameters
    ----------
    registry : ToolRegistry
        Tools addressable through ``ChatOptions.tool_names``.
    tool_timeout : float
        Max seconds for a single tool execution.
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        tool_timeout: float = 30.0,
    ) -> None:
        self.registry = registry or ToolRegistry()
        self.tool_timeout = tool_timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve_tool_definitions(self, options: ChatOptions) -> list[ToolDefinition]:
        """Definitions of the tools attached to *options* plus those named in it."""
        return [tool.to_definition() for tool in self._resolve_tools(options)]

    async def execute_tool_calls(
        self, prompt: Prompt, response: ChatResponse
    ) -> ToolExecutionResult:
        generation = next((g for g in response.generations if g.output.tool_calls), None)
        if generation is None:
            raise ValueError("No tool call requested by the chat model")

        options = prompt.options or ChatOptions()
        tools = {tool.name: tool for tool in self._resolve_tools(options)}
        tool_calls = generation.output.tool_calls

        outcomes = await asyncio.gather(
            *(self._execute_tool_call(tc, tools, options) for tc in tool_calls)
        )

        responses = [
            ToolResponse(id=tc.id, name=tc.name, response_data=_response_text(result))
            for tc, (result, _) in zip(tool_calls, outcomes)
        ]
        executed = [tool for _, tool in outcomes if tool is not None]
        return_direct = bool(executed) and len(executed) == len(outcomes) and all(
            tool.return_direct for tool in executed
        )

        history: list[Message] = list(prompt.messages)
        history.append(generation.output)
        history.append(ToolResponseMessage(responses=responses))
        return ToolExecutionResult(conversation_history=history, return_direct=return_direct)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_tools(self, options: ChatOptions) -> list[Tool]:
        tools: dict[str, Tool] = {tool.name: tool for tool in options.tools or ()}
        missing = [name for name in options.tool_names or () if name not in tools]
        for tool in self.registry.resolve(missing):
            tools[tool.name] = tool
        return list(tools.values())

    async def _execute_tool_call(
        self, tool_call: ToolCall, tools: dict[str, Tool], options: ChatOptions
    ) -> tuple[ToolResult, Tool | None]:
        """
        Execute a single tool call.

        Returns the result and the tool that ran, or ``None`` when the call
        never reached a tool.
        """
        tool = tools.get(tool_call.name)
        if tool is None:
            return (
                ToolResult(
                    success=False,
                    content=f"Unknown tool: {tool_call.name}",
                    error=f"Unknown tool: {tool_call.name}",
                    error_code=ErrorCode.UNKNOWN_TOOL,
                ),
                None,
            )

        try:
            arguments = parse_arguments(tool_call.arguments)
        except UnnormalizableArguments as e:
            logger.warning("Unparseable arguments for %s (%s): %s", tool_call.name, tool_call.id, e)
            return (
                ToolResult(
                    success=False,
                    content=f"Invalid arguments: {e}",
                    error=str(e),
                    error_code=ErrorCode.INVALID_ARGUMENTS,
                ),
                None,
            )

        rejection = check_arguments(tool, arguments)
        if rejection is not None:
            logger.warning("Rejected arguments for %s (%s): %s", tool.name, tool_call.id, rejection.error)
            return rejection, None

        if tool.accepts_tool_context:
            arguments["tool_context"] = dict(options.tool_context or {})

        try:
            result = await asyncio.wait_for(
                tool.execute(**arguments),
                timeout=self.tool_timeout,
            )
        except asyncio.TimeoutError:
            result = ToolResult(
                success=False,
                content=f"Tool timed out after {self.tool_timeout}s",
                error=f"Timeout after {self.tool_timeout}s",
                error_code=ErrorCode.TIMEOUT,
            )
        except Exception as e:
            logger.exception("Tool %s raised", tool_call.name)
            result = ToolResult(
                success=False,
                content=f"Tool exception: {e}",
                error=str(e),
                error_code=ErrorCode.TOOL_EXCEPTION,
            )
        return result, tool


def check_arguments(tool: Tool, arguments: dict) -> ToolResult | None:
    """
    Check decoded tool-call arguments against the tool's parameter schema.

    Returns ``None`` when they conform, otherwise the ``VALIDATION_ERROR``
    result that is sent back to the model in place of the tool output.
    """
    try:
        jsonschema.validate(instance=arguments, schema=normalize_schema(tool.parameters))
    except jsonschema.ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path)
        error = f"{location}: {e.message}" if location else e.message
        return ToolResult(
            success=False,
            content=f"Validation error: {error}",
            error=error,
            error_code=ErrorCode.VALIDATION_ERROR,
        )
    return None


def _response_text(result: ToolResult) -> str:
    if not result.success and result.error:
        return f"[Error: {result.error_code}] {result.error}"
    return result.content
