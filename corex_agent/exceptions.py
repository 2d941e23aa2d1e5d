"""Custom exceptions for Corex."""


class CorexError(Exception):
    """Base exception for Corex."""

    pass


class ConfigurationError(CorexError):
    """Configuration-related errors."""

    pass


class BackendError(CorexError):
    """Model backend failure not covered by a more specific type."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NoActiveModelError(BackendError):
    """No model is loaded or configured on the backend."""

    def __init__(self, message: str = "No active model. Load or configure a model first."):
        super().__init__(message)


class BackendUnreachableError(BackendError):
    """Backend could not be reached (connection refused, DNS, reset)."""

    def __init__(self, base_url: str, detail: str = ""):
        message = f"Model backend unreachable at {base_url}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.base_url = base_url


class BackendTimeoutError(BackendError):
    """Model call exceeded the caller-side timeout."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Model call timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class SessionBusyError(CorexError):
    """A turn is already in flight for this session."""

    def __init__(self, state: str):
        super().__init__(f"Session is busy ({state}); wait for the current turn to finish")
        self.state = state


class ToolError(CorexError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name
