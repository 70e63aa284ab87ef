"""
Chat API dataclasses: streamed fragments and requested tool calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""
    name: str
    arguments: dict[str, Any] | str = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> ToolCall:
        function = raw.get("function", raw)
        arguments = function.get("arguments")
        return cls(name=function.get("name", ""), arguments=arguments or {})


@dataclass(frozen=True)
class ChatChunk:
    """
    One fragment of a streaming chat response.

    A fragment carries either assistant text or tool calls, never both; a
    raw API line carrying both is split into two chunks by the client.
    """
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def is_content(self) -> bool:
        return bool(self.content)

    @property
    def is_tool_calls(self) -> bool:
        return bool(self.tool_calls)
