"""
Structured logging and MCP error normalization for the chat client.

- ``structlog`` is configured once, on import
- ``MCPErrorHandler`` maps exceptions to MCP error codes and log categories
- ``log_operation`` / ``operation_context`` time connect and shutdown steps
- ``handle_mcp_errors`` turns SDK call failures into ``McpError``
- ``ContextualLogger`` is the logging capability handed to the chat engine
"""

from __future__ import annotations

import functools
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import structlog
from mcp import McpError, types
from pydantic import ValidationError

from mcp_chat.exceptions import (
    InvalidToolNameError,
    ToolExecutionError,
    ToolNotFoundError,
)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)

# (exception type, MCP error code, log category); first match wins
_ERROR_CATEGORIES: list[tuple[Any, int, str]] = [
    (ToolNotFoundError, types.METHOD_NOT_FOUND, "tool_not_found"),
    (ToolExecutionError, types.INTERNAL_ERROR, "tool_error"),
    (InvalidToolNameError, types.INVALID_PARAMS, "invalid_tool_name"),
    (ValidationError, types.INVALID_PARAMS, "validation_error"),
    (TimeoutError, types.INTERNAL_ERROR, "timeout_error"),
    ((ConnectionError, OSError), types.INTERNAL_ERROR, "connection_error"),
    ((ValueError, TypeError), types.INVALID_PARAMS, "parameter_error"),
]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class MCPErrorHandler:
    """Maps exceptions raised around MCP sessions onto MCP error data."""

    @staticmethod
    def classify_error(error: Exception) -> tuple[int, str]:
        """Return ``(mcp_error_code, category)`` for ``error``."""
        if isinstance(error, McpError):
            return error.error.code, "mcp_error"
        for error_type, code, category in _ERROR_CATEGORIES:
            if isinstance(error, error_type):
                return code, category
        return types.INTERNAL_ERROR, "unknown_error"

    @staticmethod
    def create_mcp_error(error: Exception, operation: str) -> McpError:
        """
        Wrap ``error`` as an ``McpError`` whose message keeps the original text.

        The error data carries the operation and category so callers further
        up (registry, dispatcher) can report why a server call failed.
        """
        code, category = MCPErrorHandler.classify_error(error)
        logger.error(
            "MCP operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=category,
            error_message=str(error),
        )
        return McpError(
            error=types.ErrorData(
                code=code,
                message=f"{operation} failed: {error}",
                data={
                    "operation": operation,
                    "error_category": category,
                    "original_error_type": type(error).__name__,
                },
            )
        )


def log_operation(operation: str) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """Log start, duration and failure of an async call at debug/error level."""
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            bound = logger.bind(operation=operation, function=func.__name__)
            bound.debug("Operation started")
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                bound.error(
                    "Operation failed",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    duration_ms=_elapsed_ms(start),
                )
                raise
            bound.debug("Operation completed", duration_ms=_elapsed_ms(start))
            return result

        return wrapper
    return decorator


def handle_mcp_errors(operation: str) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """Let ``McpError`` through unchanged and wrap anything else in one."""
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except McpError as e:
                logger.error(
                    "MCP error in operation",
                    operation=operation,
                    mcp_error_code=e.error.code,
                    mcp_error_message=e.error.message,
                )
                raise
            except Exception as e:
                raise MCPErrorHandler.create_mcp_error(e, operation) from e

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str, *, context: dict[str, Any] | None = None
) -> AsyncIterator[Any]:
    """Bind ``operation`` and ``context`` to a logger and time the block."""
    bound = logger.bind(operation=operation, **(context or {}))
    bound.info("Operation started")
    start = time.perf_counter()
    try:
        yield bound
    except Exception as e:
        bound.error(
            "Operation failed",
            error_type=type(e).__name__,
            error_message=str(e),
            duration_ms=_elapsed_ms(start),
        )
        raise
    bound.info("Operation completed", duration_ms=_elapsed_ms(start))


class ContextualLogger:
    """
    Logger carrying a fixed context into every record.

    ``ChatService`` and ``ToolDispatcher`` receive one at construction and
    only use ``bind`` plus the four level methods.
    """

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        return ContextualLogger({**self.base_context, **context})

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)
