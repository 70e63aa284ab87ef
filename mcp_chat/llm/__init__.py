"""
Streaming chat API integration.

The conversation engine only relies on ``LLMClient.stream_chat`` yielding
``ChatChunk`` fragments; everything HTTP-specific stays in this package.
"""

from __future__ import annotations

from .client import LLMClient
from .exceptions import LLMError, StreamingError
from .models import ChatChunk, ToolCall

__all__ = [
    "ChatChunk",
    # Client
    "LLMClient",
    # Exceptions
    "LLMError",
    "StreamingError",
    "ToolCall",
]
