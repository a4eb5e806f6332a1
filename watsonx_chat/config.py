"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from watsonx_chat.llm.options import ChatOptions


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ConnectionConfig:
    base_url: str = "https://us-south.ml.cloud.ibm.com"
    api_key_env: str = "WATSONX_API_KEY"
    project_id: str = ""
    space_id: str = ""
    iam_url: str = "https://iam.cloud.ibm.com/identity/token"
    timeout_seconds: int = 120
    max_retries: int = 2


@dataclass
class ChatConfig:
    text_endpoint: str = "/ml/v1/text/chat"
    stream_endpoint: str = "/ml/v1/text/chat_stream"
    version: str = "2024-10-17"
    model: str = "ibm/granite-3-3-8b-instruct"
    temperature: float = 0.7
    top_p: float = 1.0
    max_tokens: int = 1024
    presence_penalty: float = 0.0
    stop_sequences: list[str] = field(default_factory=list)
    logprobs: bool = False
    n: int = 1
    time_limit: int | None = None
    reasoning_effort: str | None = None
    extra: dict = field(default_factory=dict)


@dataclass
class ToolLoopConfig:
    max_iterations: int = 10
    tool_timeout_seconds: float = 30.0
    internal_execution: bool = True


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class WatsonxConfig:
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    tool_loop: ToolLoopConfig = field(default_factory=ToolLoopConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'chat.model')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def api_key(self) -> str:
        return os.environ.get(self.connection.api_key_env, "")

    def chat_options(self) -> ChatOptions:
        """Default ``ChatOptions`` for a ``ChatModel`` built from this config."""
        c = self.chat
        return ChatOptions(
            model=c.model,
            temperature=c.temperature,
            top_p=c.top_p,
            max_tokens=c.max_tokens,
            presence_penalty=c.presence_penalty,
            stop_sequences=c.stop_sequences,
            logprobs=c.logprobs,
            n=c.n,
            time_limit=c.time_limit,
            reasoning_effort=c.reasoning_effort,
            additional=dict(c.extra),
            internal_tool_execution_enabled=self.tool_loop.internal_execution,
            max_tool_iterations=self.tool_loop.max_iterations,
        )

    def problems(self) -> list[str]:
        """Human-readable reasons this config cannot reach the endpoint."""
        issues: list[str] = []
        if not self.connection.project_id and not self.connection.space_id:
            issues.append("connection.project_id or connection.space_id must be set")
        if not self.api_key():
            issues.append(f"environment variable {self.connection.api_key_env} is not set")
        try:
            self.chat_options().validate()
        except ValueError as e:
            issues.append(f"chat options: {e}")
        return issues

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "WATSONX_BASE_URL":          ("connection.base_url", str),
    "WATSONX_PROJECT_ID":        ("connection.project_id", str),
    "WATSONX_SPACE_ID":          ("connection.space_id", str),
    "WATSONX_API_KEY_ENV":       ("connection.api_key_env", str),
    "WATSONX_IAM_URL":           ("connection.iam_url", str),
    "WATSONX_TIMEOUT":           ("connection.timeout_seconds", int),
    "WATSONX_MAX_RETRIES":       ("connection.max_retries", int),
    "WATSONX_CHAT_VERSION":      ("chat.version", str),
    "WATSONX_CHAT_MODEL":        ("chat.model", str),
    "WATSONX_CHAT_TEMPERATURE":  ("chat.temperature", float),
    "WATSONX_CHAT_TOP_P":        ("chat.top_p", float),
    "WATSONX_CHAT_MAX_TOKENS":   ("chat.max_tokens", int),
    "WATSONX_CHAT_STOP":         ("chat.stop_sequences", list),
    "WATSONX_TOOLS_MAX_ITER":    ("tool_loop.max_iterations", int),
    "WATSONX_TOOLS_TIMEOUT":     ("tool_loop.tool_timeout_seconds", float),
    "WATSONX_TOOLS_INTERNAL":    ("tool_loop.internal_execution", bool),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> WatsonxConfig:
    """
    Build a WatsonxConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile:
        profile_data = raw.get("profiles", {}).get(profile)
        if profile_data is None:
            raise KeyError(f"Unknown profile: {profile}")
        raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = WatsonxConfig(
        connection=_build_section(ConnectionConfig, raw.get("connection", {})),
        chat=_build_section(ChatConfig, raw.get("chat", {})),
        tool_loop=_build_section(ToolLoopConfig, raw.get("tool_loop", {})),
        profiles=raw.get("profiles", {}),
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    return cfg
