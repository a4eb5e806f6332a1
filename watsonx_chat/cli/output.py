"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from watsonx_chat.llm.types import ChatResponse, ToolCall


class OutputFormatter:
    """Rich-based output formatting for the wx CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_delta(self, response: ChatResponse) -> None:
        generation = response.result
        if generation is None:
            return
        if generation.output.content:
            self.console.print(generation.output.content, end="", markup=False, highlight=False)
        for tc in generation.output.tool_calls:
            self.format_tool_call(tc)

    def format_tool_call(self, tool_call: ToolCall) -> None:
        self.console.print(f"\n[yellow][tool call][/yellow] {tool_call.name} ({tool_call.id})")
        self.console.print(Syntax(tool_call.arguments or "{}", "json", theme="monokai"))

    def format_response(self, response: ChatResponse) -> None:
        for g in response.generations:
            for tc in g.output.tool_calls:
                self.format_tool_call(tc)
            self.console.print(Panel(
                g.output.text or "[dim](no text)[/dim]",
                title=f"assistant - {g.finish_reason or 'unknown'}",
            ))
        self.format_usage(response)

    def format_usage(self, response: ChatResponse) -> None:
        meta = response.metadata
        table = Table(title="Usage", show_header=True)
        table.add_column("Model", style="cyan", no_wrap=True)
        table.add_column("Prompt", justify="right")
        table.add_column("Completion", justify="right")
        table.add_column("Total", justify="right")
        table.add_row(
            meta.model or "?",
            str(meta.usage.prompt_tokens),
            str(meta.usage.completion_tokens),
            str(meta.usage.total_tokens),
        )
        self.console.print(table)

    def format_config(self, config: dict) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))
