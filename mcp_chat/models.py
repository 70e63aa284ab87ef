# mcp_chat/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from mcp_chat.exceptions import InvalidToolNameError

Role = Literal["system", "user", "assistant", "tool"]

TOOL_NAME_DELIMITER = "/"


class Message(BaseModel):
    """A single entry of a conversation thread."""
    role: Role
    content: str = ""


class ToolParameters(BaseModel):
    """Function-schema parameters in the shape the chat API expects."""
    type: str = "object"
    required: list[str] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)


class ToolDescriptor(BaseModel):
    """
    A remote tool as exposed to the model.

    ``qualified_name`` is ``<server>/<tool>`` and is unique across every
    session of a registry.
    """
    qualified_name: str
    description: str = ""
    parameters: ToolParameters = Field(default_factory=ToolParameters)

    def to_chat_tool(self) -> dict[str, Any]:
        """Render as an OpenAI/Ollama compatible function tool."""
        return {
            "type": "function",
            "function": {
                "name": self.qualified_name,
                "description": self.description,
                "parameters": self.parameters.model_dump(),
            },
        }


def validate_name_part(value: str, kind: str) -> str:
    """Reject empty names and names containing the reserved delimiter."""
    if not value:
        raise InvalidToolNameError(f"{kind} name must not be empty")
    if TOOL_NAME_DELIMITER in value:
        raise InvalidToolNameError(
            f"{kind} name '{value}' must not contain '{TOOL_NAME_DELIMITER}'"
        )
    return value


@dataclass(frozen=True)
class QualifiedName:
    """Structured ``server/tool`` identifier used to route tool calls."""
    server: str
    tool: str

    def __post_init__(self) -> None:
        validate_name_part(self.server, "Server")
        validate_name_part(self.tool, "Tool")

    @classmethod
    def parse(cls, text: str) -> QualifiedName:
        server, sep, tool = text.partition(TOOL_NAME_DELIMITER)
        if not sep:
            raise InvalidToolNameError(
                f"Tool name '{text}' is not qualified with a server name"
            )
        return cls(server, tool)

    def format(self) -> str:
        return f"{self.server}{TOOL_NAME_DELIMITER}{self.tool}"

    def __str__(self) -> str:
        return self.format()


@dataclass
class Session:
    """A connected tool provider paired with the catalog discovered at connect."""
    client: Any  # MCPClient
    tools: list[ToolDescriptor] = field(default_factory=list)
