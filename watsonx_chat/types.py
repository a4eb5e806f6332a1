from dataclasses import dataclass, field


@dataclass
class ToolResult:
    success: bool
    content: str
    data: dict | list | None = None
    error: str | None = None
    error_code: str | None = None
    metadata: dict = field(default_factory=dict)


class ErrorCode:
    VALIDATION_ERROR = "validation_error"
    INVALID_ARGUMENTS = "invalid_arguments"
    TIMEOUT = "timeout"
    TOOL_EXCEPTION = "tool_exception"
    UNKNOWN_TOOL = "unknown_tool"
