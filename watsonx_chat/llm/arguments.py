"""
Canonicalisation of tool-call argument text.

Models hosted behind the same endpoint disagree on how they encode tool-call
arguments.  Some (Mistral variants) send the JSON object double-encoded as a
JSON string; others (Granite) pretty-print it with ``\\r\\n`` line endings.
``normalize_arguments`` folds those variants into plain JSON text and
``parse_arguments`` turns the result into a dict.
"""

from __future__ import annotations

import json

from watsonx_chat.errors import UnnormalizableArguments

_BACKSLASH_PLACEHOLDER = "\u0000"


def normalize_arguments(raw: str | None) -> str | None:
    """
    Return *raw* with double encoding removed and line endings unified.

    Empty or ``None`` input is returned unchanged.  The function does not
    validate JSON; already-normalized input comes back as-is.  A quoted
    payload is only unwrapped when it decodes to an object or array, so the
    output never starts with a quote and a second pass changes nothing.
    """
    if not raw:
        return raw

    normalized = raw.strip()

    # Double-encoded: "\"{\\n  \\\"location\\\": \\\"Boston\\\"\\n}\""
    if normalized.startswith('"') and normalized.endswith('"') and len(normalized) > 2:
        inner = normalized[1:-1]
        if '\\"' in inner or "\\n" in inner:
            # Escaped backslashes go first so \\" is not read as \".
            unwrapped = (
                inner.replace("\\\\", _BACKSLASH_PLACEHOLDER)
                .replace('\\"', '"')
                .replace("\\n", "\n")
                .replace("\\r", "\r")
                .replace("\\t", "\t")
                .replace(_BACKSLASH_PLACEHOLDER, "\\")
                .strip()
            )
            if unwrapped.startswith(("{", "[")):
                normalized = unwrapped

    return normalized.replace("\r\n", "\n").replace("\r", "\n")


def parse_arguments(raw: str | None) -> dict:
    """
    Normalize and JSON-decode tool-call argument text.

    Empty input decodes to ``{}``.  Raises ``UnnormalizableArguments`` when
    the normalized text is not a JSON object.
    """
    normalized = normalize_arguments(raw)
    if not normalized or not normalized.strip():
        return {}
    try:
        value = json.loads(normalized)
    except (json.JSONDecodeError, ValueError) as exc:
        raise UnnormalizableArguments(
            f"tool_call_json_parse_failed err={exc}", arguments=normalized
        ) from exc
    if not isinstance(value, dict):
        raise UnnormalizableArguments(
            f"tool call arguments must be a JSON object, got {type(value).__name__}",
            arguments=normalized,
        )
    return value
