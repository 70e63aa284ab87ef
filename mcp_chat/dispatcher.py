"""
Tool dispatch: routes model-requested tool calls to their sessions.

This is the failure-isolation boundary of the conversation loop. Whatever a
tool does, the model gets a text result back, never an exception.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any

from mcp import types

from mcp_chat.exceptions import (
    InvalidToolNameError,
    ToolExecutionError,
    ToolNotFoundError,
)
from mcp_chat.llm.models import ToolCall
from mcp_chat.logging_utils import ContextualLogger, MCPErrorHandler
from mcp_chat.models import QualifiedName
from mcp_chat.registry import ServerRegistry


def _dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def serialize_tool_content(result: types.CallToolResult) -> Any:
    """Return the JSON-serializable payload of a tool result."""
    if result.structuredContent:
        return result.structuredContent
    return [
        item.model_dump(mode="json", by_alias=True, exclude_none=True)
        for item in result.content
    ]


def format_tool_result(name: str, arguments: Any, payload: Any) -> str:
    return f"tool: {name}\nargs: {_dump_json(arguments)}\nreturn: {_dump_json(payload)}"


def format_tool_error(name: str, arguments: Any, error: Exception) -> str:
    return f"Error calling tool: {name}\nargs: {_dump_json(arguments)}\n{error}"


class ToolDispatcher:
    """Executes a batch of tool calls and renders each outcome as text."""

    def __init__(
        self,
        registry: ServerRegistry,
        logger: ContextualLogger,
        *,
        parallel: bool = True,
    ) -> None:
        self.registry = registry
        self.logger = logger.bind(component="dispatcher")
        self.parallel = parallel

    async def dispatch(self, calls: Sequence[ToolCall]) -> list[str]:
        """
        Run ``calls`` and return one result text per call, in input order.

        With ``parallel`` enabled the calls run concurrently; ordering of the
        output is unaffected by completion order.
        """
        if self.parallel:
            return list(await asyncio.gather(*(self._dispatch_one(c) for c in calls)))
        return [await self._dispatch_one(call) for call in calls]

    async def _dispatch_one(self, call: ToolCall) -> str:
        arguments: Any = call.arguments
        try:
            qualified = self._parse_name(call.name)
            session = self.registry.resolve(qualified.server)
            if session is None:
                raise ToolNotFoundError(call.name)
        except ToolNotFoundError as e:
            self.logger.error("Tool not found", tool=call.name)
            return str(e)

        try:
            arguments = self._decode_arguments(call)
            self.logger.debug("Calling tool", tool=call.name, arguments=arguments)
            result = await session.client.call_tool(qualified.tool, arguments)
            if result.isError:
                raise ToolExecutionError(
                    call.name, _dump_json(serialize_tool_content(result))
                )
        except Exception as e:
            _, category = MCPErrorHandler.classify_error(e)
            self.logger.error(
                "Tool call failed",
                tool=call.name,
                error_category=category,
                error_message=str(e),
            )
            return format_tool_error(call.name, arguments, e)

        payload = serialize_tool_content(result)
        self.logger.debug("Tool call result", tool=call.name, result=payload)
        return format_tool_result(call.name, arguments, payload)

    @staticmethod
    def _parse_name(name: str) -> QualifiedName:
        try:
            return QualifiedName.parse(name)
        except InvalidToolNameError as e:
            raise ToolNotFoundError(name) from e

    @staticmethod
    def _decode_arguments(call: ToolCall) -> dict[str, Any]:
        """Accept arguments as a mapping or as a JSON object string."""
        arguments = call.arguments
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                raise ToolExecutionError(
                    call.name, f"Invalid JSON in tool call arguments: {e}"
                ) from e
        if not isinstance(arguments, dict):
            raise ToolExecutionError(
                call.name, "Tool call arguments must be a JSON object"
            )
        return arguments
