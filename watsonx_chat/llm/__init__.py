"""LLM subsystem -- wire types, stream merging, request and response mapping."""

from watsonx_chat.llm.types import (
    AssistantMessage,
    ChatChunk,
    ChatCompletion,
    ChatResponse,
    Generation,
    Media,
    Prompt,
    SystemMessage,
    ToolCall,
    ToolResponse,
    ToolResponseMessage,
    Usage,
    UserMessage,
)
from watsonx_chat.llm.aggregator import MessageAggregator
from watsonx_chat.llm.chunk_merger import ChunkMerger
from watsonx_chat.llm.options import AudioParameters, ChatOptions, reconcile

__all__ = [
    "AssistantMessage",
    "AudioParameters",
    "ChatChunk",
    "ChatCompletion",
    "ChatOptions",
    "ChatResponse",
    "ChunkMerger",
    "Generation",
    "Media",
    "MessageAggregator",
    "Prompt",
    "SystemMessage",
    "ToolCall",
    "ToolResponse",
    "ToolResponseMessage",
    "Usage",
    "UserMessage",
    "reconcile",
]
