#!/usr/bin/env python3
"""
Tests for the streaming chat API client against a mocked HTTP transport.
"""

from __future__ import annotations

import json

import httpx
import pytest

from mcp_chat.llm import ChatChunk, LLMClient, StreamingError, ToolCall

CONFIG = {
    "base_url": "http://ollama.test",
    "model": "test-model",
    "timeout": 5,
    "options": {"temperature": 0.1},
}


def ndjson(*lines) -> bytes:
    return "".join(json.dumps(line) + "\n" for line in lines).encode()


class Recorder:
    """MockTransport handler returning a fixed response and keeping requests."""

    def __init__(self, body: bytes, status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.body)

    @property
    def payload(self) -> dict:
        return json.loads(self.requests[-1].content)


async def stream(recorder: Recorder, **kwargs) -> list[ChatChunk]:
    client = LLMClient(
        CONFIG, api_key=kwargs.pop("api_key", None),
        transport=httpx.MockTransport(recorder),
    )
    async with client:
        return [
            chunk
            async for chunk in client.stream_chat(
                [{"role": "user", "content": "Hi"}], **kwargs
            )
        ]


@pytest.mark.asyncio
async def test_streams_content_fragments():
    recorder = Recorder(ndjson(
        {"message": {"role": "assistant", "content": "Hel"}, "done": False},
        {"message": {"role": "assistant", "content": "lo"}, "done": False},
        {"message": {"role": "assistant", "content": ""}, "done": True},
    ))

    chunks = await stream(recorder)

    assert [c.content for c in chunks] == ["Hel", "lo"]
    assert all(c.is_content and not c.is_tool_calls for c in chunks)
    assert recorder.requests[0].url.path == "/api/chat"


@pytest.mark.asyncio
async def test_parses_tool_calls():
    recorder = Recorder(ndjson(
        {
            "message": {
                "role": "assistant",
                "content": "",
                "tool_calls": [
                    {"function": {"name": "serverA/toolX", "arguments": {"a": 1}}},
                    {"function": {"name": "serverB/toolY", "arguments": '{"b": 2}'}},
                ],
            },
            "done": False,
        },
        {"message": {"role": "assistant", "content": ""}, "done": True},
    ))

    chunks = await stream(recorder)

    assert len(chunks) == 1
    assert chunks[0].tool_calls == [
        ToolCall("serverA/toolX", {"a": 1}),
        ToolCall("serverB/toolY", '{"b": 2}'),
    ]


@pytest.mark.asyncio
async def test_line_with_text_and_tool_calls_yields_text_first():
    recorder = Recorder(ndjson({
        "message": {
            "content": "Checking.",
            "tool_calls": [{"function": {"name": "s/t", "arguments": {}}}],
        },
        "done": True,
    }))

    chunks = await stream(recorder)

    assert [c.is_content for c in chunks] == [True, False]
    assert chunks[1].tool_calls[0].name == "s/t"


@pytest.mark.asyncio
async def test_payload_includes_tools_options_and_model_override():
    recorder = Recorder(ndjson({"message": {"content": "ok"}, "done": True}))
    tools = [{"type": "function", "function": {"name": "s/t", "description": "",
                                                "parameters": {"type": "object"}}}]

    await stream(recorder, tools=tools, model="other-model", api_key="secret")

    payload = recorder.payload
    assert payload["model"] == "other-model"
    assert payload["stream"] is True
    assert payload["tools"] == tools
    assert payload["options"] == {"temperature": 0.1}
    assert recorder.requests[0].headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_payload_omits_empty_tools():
    recorder = Recorder(ndjson({"message": {"content": "ok"}, "done": True}))

    await stream(recorder, tools=[])

    assert "tools" not in recorder.payload
    assert recorder.payload["model"] == "test-model"
    assert "Authorization" not in recorder.requests[0].headers


@pytest.mark.asyncio
async def test_http_error_status():
    recorder = Recorder(b'{"error": "model not found"}', status_code=404)

    with pytest.raises(StreamingError) as exc_info:
        await stream(recorder)

    assert exc_info.value.status_code == 404
    assert "model not found" in str(exc_info.value)


@pytest.mark.asyncio
async def test_in_band_error():
    recorder = Recorder(ndjson(
        {"message": {"content": "par"}, "done": False},
        {"error": "out of memory"},
    ))

    with pytest.raises(StreamingError, match="out of memory"):
        await stream(recorder)


@pytest.mark.asyncio
async def test_stream_ending_without_done():
    recorder = Recorder(ndjson({"message": {"content": "cut"}, "done": False}))

    with pytest.raises(StreamingError, match="before completion"):
        await stream(recorder)


@pytest.mark.asyncio
async def test_malformed_line():
    recorder = Recorder(b"not json\n")

    with pytest.raises(StreamingError, match="Invalid JSON"):
        await stream(recorder)


@pytest.mark.asyncio
async def test_transport_failure_is_wrapped():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = LLMClient(CONFIG, transport=httpx.MockTransport(refuse))

    with pytest.raises(StreamingError, match="HTTP error") as exc_info:
        async for _ in client.stream_chat([]):
            pass

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    await client.close()


def test_missing_config_key():
    with pytest.raises(ValueError, match="model"):
        LLMClient({"base_url": "http://x", "timeout": 5})
