from __future__ import annotations

from watsonx_chat.llm.options import ChatOptions
from watsonx_chat.llm.types import ChatResponse


def default_tool_execution_required(
    options: ChatOptions | None, response: ChatResponse | None
) -> bool:
    """True when internal tool execution is on (unset counts as on) and tools were requested."""
    if response is None:
        return False
    if options is not None and options.internal_tool_execution_enabled is False:
        return False
    return response.has_tool_calls()
