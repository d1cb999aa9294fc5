"""Structured error types for the bot."""


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


class ToolError(AgentError):
    """Error raised during tool execution."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name} error: {message}")


class ToolValidationError(ToolError):
    """Tool arguments did not match the declared parameter schema."""

    def __init__(self, tool_name: str, details: str):
        self.details = details
        super().__init__(tool_name, f"invalid arguments: {details}")


class TransportError(AgentError):
    """A chat transport call failed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class MaxTurnsExceeded(AgentError):
    """The model kept requesting tools past the configured turn limit."""

    def __init__(self, max_turns: int):
        self.max_turns = max_turns
        super().__init__(f"Reached max turns ({max_turns}) without a final answer")
