"""
Multi-server MCP tool orchestration for streaming chat models.
"""

from __future__ import annotations

from .chat_service import ChatService
from .config import Configuration
from .exceptions import (
    InvalidToolNameError,
    ServerConnectionError,
    ToolExecutionError,
    ToolNotFoundError,
    UnknownThreadError,
)
from .models import Message, QualifiedName, Session, ToolDescriptor
from .registry import ServerRegistry
from .threads import ThreadStore

__all__ = [
    "ChatService",
    "Configuration",
    # Exceptions
    "InvalidToolNameError",
    "Message",
    "QualifiedName",
    "ServerConnectionError",
    "ServerRegistry",
    "Session",
    "ThreadStore",
    "ToolDescriptor",
    "ToolExecutionError",
    "ToolNotFoundError",
    "UnknownThreadError",
]
