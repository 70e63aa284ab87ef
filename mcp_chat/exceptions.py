"""
Error taxonomy for the tool orchestration core.

Connection and thread-identity errors are hard failures reported to the
caller. Tool lookup and tool execution errors never leave the dispatcher:
they are turned into tool-result messages the model can react to.
"""

from __future__ import annotations


class ServerConnectionError(ConnectionError):
    """A server could not be connected or its tool catalog could not be listed."""

    def __init__(self, server_name: str, message: str):
        super().__init__(f"Server '{server_name}': {message}")
        self.server_name = server_name


class InvalidToolNameError(ValueError):
    """A server or tool name violates the qualified-name convention."""
    pass


class UnknownThreadError(KeyError):
    """Operation on a thread id that was never created."""

    def __init__(self, thread_id: str):
        super().__init__(thread_id)
        self.thread_id = thread_id

    def __str__(self) -> str:
        return f"Unknown thread: {self.thread_id}"


class ToolNotFoundError(LookupError):
    """Qualified tool name does not resolve to a selected session."""

    def __init__(self, tool_name: str):
        super().__init__(f"Session not found for tool {tool_name}")
        self.tool_name = tool_name


class ToolExecutionError(RuntimeError):
    """Remote tool call failed or reported an error result."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name
