"""
Tool catalog construction.

Turns the raw tool list reported by one MCP server into descriptors the chat
API understands, namespacing every tool under the server name so that tools
from different servers never collide.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from mcp import types

from mcp_chat.models import QualifiedName, ToolDescriptor, ToolParameters


def normalize_properties(properties: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Move a property's ``title`` into ``description`` when no description exists.

    Some servers describe parameters only through ``title``; chat models read
    ``description``. Everything else passes through untouched.
    """
    if not properties:
        return {}

    normalized: dict[str, Any] = {}
    for name, prop in properties.items():
        if isinstance(prop, Mapping) and "title" in prop and "description" not in prop:
            rewritten = {k: v for k, v in prop.items() if k != "title"}
            rewritten["description"] = prop["title"]
            normalized[name] = rewritten
        else:
            normalized[name] = prop
    return normalized


def build_tool_descriptor(server_name: str, tool: types.Tool) -> ToolDescriptor:
    """Build the descriptor for one remote tool of ``server_name``."""
    qualified = QualifiedName(server_name, tool.name)
    schema = tool.inputSchema or {}

    return ToolDescriptor(
        qualified_name=qualified.format(),
        description=tool.description or "",
        parameters=ToolParameters(
            type=schema.get("type", "object"),
            required=list(schema.get("required") or []),
            properties=normalize_properties(schema.get("properties")),
        ),
    )


def build_tool_descriptors(
    server_name: str, tools: Iterable[types.Tool]
) -> list[ToolDescriptor]:
    """
    Build descriptors for a server's whole catalog, preserving catalog order.

    Raises:
        InvalidToolNameError: If the server name or any tool name contains
            the qualified-name delimiter.
    """
    return [build_tool_descriptor(server_name, tool) for tool in tools]
