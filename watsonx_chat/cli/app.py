"""
Main CLI application for watsonx-chat.

Usage:
    wx chat PROMPT [--stream] [--model NAME] [--system TEXT] [--profile NAME] [--verbose]
    wx config show|validate
    wx version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from watsonx_chat import __version__
from watsonx_chat.config import WatsonxConfig, load_config
from watsonx_chat.errors import WatsonxError

app = typer.Typer(name="wx", help="watsonx.ai chat client")
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "watsonx.yaml",
        Path.cwd() / "watsonx.yml",
        Path.home() / ".config" / "watsonx" / "config.yaml",
        Path.home() / ".watsonx" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _build_model(cfg: WatsonxConfig):
    """Wire up the chat model from config."""
    from watsonx_chat.llm.providers.auth import IamAuthenticator
    from watsonx_chat.llm.providers.watsonx import WatsonxChatApi
    from watsonx_chat.orchestrator.core import ChatModel
    from watsonx_chat.tools.manager import ToolCallingManager
    from watsonx_chat.tools.registry import ToolRegistry

    conn = cfg.connection
    authenticator = IamAuthenticator(
        cfg.api_key(),
        url=conn.iam_url,
        timeout=float(conn.timeout_seconds),
    )
    api = WatsonxChatApi(
        authenticator,
        project_id=conn.project_id or None,
        space_id=conn.space_id or None,
        base_url=conn.base_url,
        text_endpoint=cfg.chat.text_endpoint,
        stream_endpoint=cfg.chat.stream_endpoint,
        version=cfg.chat.version,
        timeout=float(conn.timeout_seconds),
        max_retries=conn.max_retries,
    )
    manager = ToolCallingManager(
        registry=ToolRegistry(),
        tool_timeout=cfg.tool_loop.tool_timeout_seconds,
    )
    return ChatModel(
        api,
        default_options=cfg.chat_options(),
        tool_calling_manager=manager,
        max_tool_iterations=cfg.tool_loop.max_iterations,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User message"),
    stream: bool = typer.Option(False, "--stream", help="Stream the answer as it arrives"),
    model: Optional[str] = typer.Option(None, help="Model id, overrides config"),
    system: Optional[str] = typer.Option(None, help="System message"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log requests and retries"),
):
    """Send one prompt and print the answer."""
    from watsonx_chat.cli.output import OutputFormatter
    from watsonx_chat.llm.types import Prompt, SystemMessage, UserMessage

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {"chat.model": model} if model else None
    try:
        cfg = load_config(_get_config_path(), profile=profile, cli_overrides=overrides)
    except KeyError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)

    messages = []
    if system:
        messages.append(SystemMessage(system))
    messages.append(UserMessage(prompt))
    formatter = OutputFormatter(console)

    async def _run():
        chat_model = _build_model(cfg)
        request = Prompt(messages=messages)
        if stream:
            async for response in chat_model.stream(request):
                formatter.format_delta(response)
            console.print()
        else:
            formatter.format_response(await chat_model.call(request))

    try:
        asyncio.run(_run())
    except (WatsonxError, ValueError) as e:
        console.print(f"[red]{type(e).__name__}:[/red] {e}")
        raise typer.Exit(1)


@config_app.command("show")
def config_show(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show effective config."""
    from watsonx_chat.cli.output import OutputFormatter

    cfg = load_config(_get_config_path(), profile=profile)
    formatter = OutputFormatter(console)
    formatter.format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Validate config and show any issues."""
    config_path = _get_config_path()
    try:
        cfg = load_config(config_path, profile=profile)
    except Exception as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    problems = cfg.problems()
    if problems:
        console.print("[red]Config validation failed:[/red]")
        for p in problems:
            console.print(f"  - {p}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Endpoint: {cfg.connection.base_url} (version {cfg.chat.version})")
    console.print(f"  Model: {cfg.chat.model}")
    console.print(f"  Max tool rounds: {cfg.tool_loop.max_iterations}")


@app.command()
def version():
    """Show version."""
    console.print(f"watsonx-chat v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
