from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from watsonx_chat.types import ToolResult


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("additionalProperties", False)
    return s


@dataclass(frozen=True)
class ToolDefinition:
    """What the model is told about a tool."""

    name: str
    description: str
    parameters: dict = field(default_factory=dict)

    def to_wire(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.parameters),
            },
        }


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @property
    def return_direct(self) -> bool:
        """Whether the tool's output is the final answer, skipping the model."""
        return False

    @property
    def accepts_tool_context(self) -> bool:
        """If True, ``execute`` also receives ``tool_context=<dict>``."""
        return False

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult: ...

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=normalize_schema(self.parameters),
        )
