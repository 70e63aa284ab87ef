"""
HTTP client for the streaming chat API (Ollama ``/api/chat``).
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from .exceptions import StreamingError
from .models import ChatChunk, ToolCall

HTTP_OK = 200


class LLMClient:
    """Streaming chat client with structured tool call support."""

    def __init__(
        self,
        config: dict[str, Any],
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        required_keys = ["base_url", "model", "timeout"]
        for key in required_keys:
            if key not in config:
                raise ValueError(
                    f"Required LLM configuration parameter '{key}' not found. "
                    "All LLM parameters must be explicitly configured."
                )

        self.config: dict[str, Any] = config
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config["base_url"],
            headers=headers,
            timeout=config["timeout"],
            transport=transport,
        )

    @property
    def model(self) -> str:
        return self.config["model"]

    def _build_payload(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
        }
        if tools:
            payload["tools"] = tools
        if options := self.config.get("options"):
            payload["options"] = options
        return payload

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> AsyncGenerator[ChatChunk]:
        """
        Stream one chat response as content and tool-call fragments.

        The API answers with one JSON object per line; the last carries
        ``"done": true``. A line holding both text and tool calls is yielded
        as two fragments, text first.

        Raises:
            StreamingError: On HTTP failure, a non-200 status, malformed
                lines, an in-band ``error`` object or a stream that ends
                before ``done``.
        """
        model = model or self.model
        payload = self._build_payload(model, messages, tools)

        try:
            async with self.client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code != HTTP_OK:
                    error_text = (await response.aread()).decode(errors="replace")
                    raise StreamingError(
                        f"Streaming API error {response.status_code}: {error_text}",
                        model,
                        status_code=response.status_code,
                    )

                completed = False
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue

                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise StreamingError(
                            f"Invalid JSON in stream chunk: {e}", model
                        ) from e

                    if error := data.get("error"):
                        raise StreamingError(
                            f"Chat API error: {error}", model, response_data=data
                        )

                    message = data.get("message") or {}
                    if content := message.get("content"):
                        yield ChatChunk(content=content)
                    if tool_calls := message.get("tool_calls"):
                        yield ChatChunk(
                            tool_calls=[ToolCall.from_api(tc) for tc in tool_calls]
                        )

                    if data.get("done"):
                        completed = True
                        break

                if not completed:
                    raise StreamingError("Stream ended before completion", model)

        except httpx.HTTPError as e:
            logging.error(f"HTTP error during streaming: {e}")
            raise StreamingError(f"HTTP error: {e!s}", model) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
