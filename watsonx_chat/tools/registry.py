from __future__ import annotations

from typing import Iterable

from watsonx_chat.errors import ToolResolutionError
from watsonx_chat.tools.base import Tool


class ToolRegistry:
    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def list(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    def resolve(self, names: Iterable[str]) -> list[Tool]:
        """Look up tools by name; unknown names raise ``ToolResolutionError``."""
        resolved: list[Tool] = []
        for name in sorted(names):
            tool = self.get(name)
            if tool is None:
                raise ToolResolutionError(f"No tool found for tool name: {name}")
            resolved.append(tool)
        return resolved
