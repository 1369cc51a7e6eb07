"""Custom exceptions for pero."""


class PeroError(Exception):
    """Base exception for pero."""

    pass


class ConfigurationError(PeroError):
    """Configuration-related errors."""

    pass


class ContentError(PeroError):
    """Errors raised while expanding inline references."""

    pass


class ContentLoadError(ContentError):
    """Referenced file is missing or unreadable."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot load '{path}': {reason}")
        self.path = path
        self.reason = reason


class UnsupportedReferenceError(ContentError):
    """Reference kind cannot be expanded (e.g. remote audio)."""

    def __init__(self, kind: str, payload: str):
        super().__init__(f"Unsupported {kind} reference: {payload}")
        self.kind = kind
        self.payload = payload


class LLMError(PeroError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToolError(PeroError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolTimeoutError(ToolError):
    """Tool did not finish within its timeout."""

    def __init__(self, tool_name: str, timeout_ms: int):
        super().__init__(f"Tool '{tool_name}' timed out after {timeout_ms}ms")
        self.tool_name = tool_name
        self.timeout_ms = timeout_ms


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class MissingParameterError(ToolError):
    """Command template references a parameter that was not supplied."""

    def __init__(self, parameter: str, command: str):
        super().__init__(f"Missing parameter {parameter} in command {command}")
        self.parameter = parameter
        self.command = command


class McpError(ToolError):
    """Remote tool server errors."""

    pass


class ConnectError(McpError):
    """Failed to connect to a remote tool server."""

    def __init__(self, server_name: str, reason: str):
        super().__init__(f'Failed to connect to MCP server "{server_name}": {reason}')
        self.server_name = server_name
        self.reason = reason


class ServerNotFoundError(McpError):
    """Remote tool server is not connected."""

    def __init__(self, server_name: str):
        super().__init__(f'MCP server "{server_name}" not found')
        self.server_name = server_name


class TooManyToolCallsError(PeroError):
    """Agent loop exceeded its tool-call depth ceiling."""

    def __init__(self, max_depth: int):
        super().__init__(f"Too many tool call rounds (limit {max_depth})")
        self.max_depth = max_depth
