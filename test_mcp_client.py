#!/usr/bin/env python3
"""
Tests for the MCP client wrapper that do not need a live server.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest
from mcp import McpError, StdioServerParameters

from mcp_chat.config import SseServerParameters, StreamableHttpServerParameters
from mcp_chat.exceptions import ServerConnectionError
from mcp_chat.mcp_client import MCPClient
from mcp_chat.registry import ServerRegistry

CONNECTION_CONFIG = {
    "max_reconnect_attempts": 3,
    "initial_reconnect_delay": 0.01,
    "max_reconnect_delay": 0.02,
    "connection_timeout": 1.0,
}


def make_client(params=None, **overrides) -> MCPClient:
    return MCPClient(
        "test",
        params or SseServerParameters(url="http://localhost:1/sse"),
        {**CONNECTION_CONFIG, **overrides},
    )


def test_missing_connection_parameter():
    config = dict(CONNECTION_CONFIG)
    del config["connection_timeout"]
    with pytest.raises(ValueError, match="connection_timeout"):
        MCPClient("test", SseServerParameters(url="http://x/sse"), config)


@pytest.mark.parametrize(
    "params, transport",
    [
        (StdioServerParameters(command="python"), "stdio"),
        (SseServerParameters(url="http://x/sse"), "sse"),
        (StreamableHttpServerParameters(url="http://x/mcp"), "streamable"),
    ],
)
def test_transport_name(params, transport):
    assert make_client(params).transport == transport


@pytest.mark.asyncio
async def test_calls_require_connection():
    client = make_client()

    with pytest.raises(McpError, match="not connected"):
        await client.list_tools()
    with pytest.raises(McpError, match="not connected"):
        await client.call_tool("anything", {})


@pytest.mark.asyncio
async def test_close_without_connect_is_noop():
    client = make_client()
    await client.close()
    await client.close()
    assert not client.is_connected


@pytest.mark.asyncio
async def test_connect_retries_then_raises():
    client = make_client()
    attempt = AsyncMock(side_effect=OSError("refused"))

    with patch.object(client, "_attempt_connection", attempt):
        with pytest.raises(OSError, match="refused"):
            await client.connect()

    assert attempt.await_count == 3
    assert not client.is_connected


@pytest.mark.asyncio
async def test_connect_succeeds_after_retry():
    client = make_client()
    attempt = AsyncMock(side_effect=[OSError("refused"), None])

    with patch.object(client, "_attempt_connection", attempt):
        await client.connect()

    assert attempt.await_count == 2
    assert client.is_connected
    await client.close()
    assert not client.is_connected


@pytest.mark.asyncio
async def test_missing_stdio_command():
    client = make_client(
        StdioServerParameters(command="definitely-not-a-real-binary-xyz"),
        max_reconnect_attempts=1,
    )

    with pytest.raises(ValueError, match="not found"):
        await client.connect()


class TaskRecordingContext:
    """Async context manager recording which task enters and exits it."""

    def __init__(self) -> None:
        self.entered_in = None
        self.exited_in = None

    async def __aenter__(self):
        self.entered_in = asyncio.current_task()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.exited_in = asyncio.current_task()
        return False


@pytest.mark.asyncio
async def test_contexts_exit_in_the_task_that_entered_them():
    client = make_client()
    transport = TaskRecordingContext()

    async def attempt(stack):
        await stack.enter_async_context(transport)

    with patch.object(client, "_attempt_connection", attempt):
        # Connect inside a gather task, close from this one.
        await asyncio.gather(client.connect())
        assert client.is_connected
        await client.close()

    assert transport.exited_in is not None
    assert transport.exited_in is transport.entered_in
    assert transport.entered_in is not asyncio.current_task()


@pytest.mark.asyncio
async def test_failed_attempt_unwinds_entered_contexts():
    client = make_client(max_reconnect_attempts=1)
    transport = TaskRecordingContext()

    async def attempt(stack):
        await stack.enter_async_context(transport)
        raise TimeoutError("initialize timed out")

    with patch.object(client, "_attempt_connection", attempt):
        with pytest.raises(TimeoutError):
            await client.connect()

    assert transport.exited_in is transport.entered_in
    assert client.session is None


@pytest.mark.asyncio
async def test_list_tools_failure_keeps_cause():
    client = make_client()
    client.session = Mock()
    client.session.list_tools = AsyncMock(side_effect=RuntimeError("schema is not an object"))
    client._is_connected = True

    with pytest.raises(McpError) as exc_info:
        await client.list_tools()

    assert "schema is not an object" in exc_info.value.error.message


@pytest.mark.asyncio
async def test_registry_reports_why_listing_failed():
    client = make_client()

    async def attempt(stack):
        client.session = Mock()
        client.session.list_tools = AsyncMock(side_effect=RuntimeError("schema is not an object"))

    registry = ServerRegistry(lambda name, params: client)
    with patch.object(client, "_attempt_connection", attempt):
        with pytest.raises(ServerConnectionError) as exc_info:
            await registry.connect("test", client.params)

    assert "schema is not an object" in str(exc_info.value)
    assert not client.is_connected
