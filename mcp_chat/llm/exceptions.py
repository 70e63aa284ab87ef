"""
Error types for chat API operations.

A failed stream is not recovered by the conversation engine; these errors
propagate to whoever is consuming ``ChatService.process_message``.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base chat API error with request context."""

    def __init__(
        self,
        message: str,
        model: str,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class StreamingError(LLMError):
    """The chat stream failed before or while producing fragments."""

    def __init__(
        self,
        message: str,
        model: str = "unknown",
        **kwargs,
    ):
        super().__init__(message, model, **kwargs)
