"""
Exception hierarchy for the watsonx chat client.

Precondition failures (bad options, unsupported media, missing tool-response
ids, unknown tool names) derive from ``ValidationError`` and are raised
before any network call.  They also subclass ``ValueError`` so callers that
only care about "bad input" can catch that.
"""

from __future__ import annotations


class WatsonxError(Exception):
    """Base class for all errors raised by this package."""


# ---------------------------------------------------------------------------
# Precondition failures
# ---------------------------------------------------------------------------


class ValidationError(WatsonxError, ValueError):
    """A caller-supplied value was rejected before the request was sent."""


class InvalidOptionCombination(ValidationError):
    """Reconciled chat options contain an invalid field or field combination."""


class UnsupportedMediaType(ValidationError):
    """Outbound user media has a MIME type with no mapping to the wire format."""

    def __init__(self, mime_type: str) -> None:
        super().__init__(f"Unsupported user media type: {mime_type}")
        self.mime_type = mime_type


class ToolResponseMissingId(ValidationError):
    """A tool-response message lacks the id of the tool call it answers."""


class ToolResolutionError(ValidationError):
    """A tool name requested in the options is not known to the registry."""


# ---------------------------------------------------------------------------
# Tool-loop failures
# ---------------------------------------------------------------------------


class UnnormalizableArguments(WatsonxError):
    """Tool-call argument text is still not a JSON object after normalization."""

    def __init__(self, message: str, arguments: str | None = None) -> None:
        super().__init__(message)
        self.arguments = arguments


class ToolLoopLimitExceeded(WatsonxError):
    """The model kept requesting tools past the configured number of rounds."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Tool execution loop exceeded the maximum of {limit} iterations"
        )
        self.limit = limit


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------


class ApiError(WatsonxError):
    """The chat endpoint answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(ApiError):
    """An IAM access token could not be obtained."""


class StreamInterruptedError(WatsonxError):
    """The chunk stream broke off after it had started delivering data."""
