"""
MCP client wrapper: one connected tool provider per configured server.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import Any

from mcp import ClientSession, McpError, StdioServerParameters, types
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from mcp_chat.config import (
    ServerParameters,
    SseServerParameters,
    StreamableHttpServerParameters,
)
from mcp_chat.logging_utils import handle_mcp_errors

CLIENT_NAME = "mcp-chat-client"
CLIENT_VERSION = "1.0.0"


class MCPClient:
    """
    MCP client over stdio, SSE or streamable HTTP following SDK patterns.

    The transport and session contexts are entered and exited by one owner
    task per connection, so ``connect`` and ``close`` may be awaited from
    different tasks (e.g. ``asyncio.gather`` at startup, the main task at
    shutdown).

    Connection behaviour is configured through ``connection_config``:
    - max_reconnect_attempts: Maximum number of connection attempts
    - initial_reconnect_delay: Initial delay between attempts
    - max_reconnect_delay: Maximum delay (with exponential backoff)
    - connection_timeout: Timeout for the initialization handshake
    """

    def __init__(
        self,
        name: str,
        params: ServerParameters,
        connection_config: dict[str, Any],
    ) -> None:
        self.name: str = name
        self.params = params
        self.session: ClientSession | None = None
        self._cleanup_lock: asyncio.Lock = asyncio.Lock()
        self._is_connected: bool = False
        self._owner_task: asyncio.Task[None] | None = None
        self._shutdown_event: asyncio.Event = asyncio.Event()

        required_params = [
            "max_reconnect_attempts",
            "initial_reconnect_delay",
            "max_reconnect_delay",
            "connection_timeout",
        ]
        for param in required_params:
            if param not in connection_config:
                raise ValueError(
                    f"Required connection parameter '{param}' not found in "
                    "connection_config"
                )

        self._max_reconnect_attempts: int = connection_config["max_reconnect_attempts"]
        self._initial_reconnect_delay: float = connection_config[
            "initial_reconnect_delay"
        ]
        self._max_reconnect_delay: float = connection_config["max_reconnect_delay"]
        self._connection_timeout: float = connection_config["connection_timeout"]

    @property
    def transport(self) -> str:
        if isinstance(self.params, SseServerParameters):
            return "sse"
        if isinstance(self.params, StreamableHttpServerParameters):
            return "streamable"
        return "stdio"

    def _resolve_command(self, command: str) -> str | None:
        """
        Resolve a stdio command to an executable path.

        Absolute paths are returned if they exist; anything else is looked up
        on PATH.
        """
        if os.path.isabs(command):
            return command if os.path.exists(command) else None
        return shutil.which(command)

    async def connect(self) -> None:
        """
        Connect with exponential backoff.

        Raises:
            Exception: The last error once all attempts are exhausted.
        """
        attempts = 0
        delay = self._initial_reconnect_delay

        while True:
            try:
                await self._start_owner_task()
                self._is_connected = True
                return
            except Exception as e:
                attempts += 1

                if attempts >= self._max_reconnect_attempts:
                    logging.error(
                        f"Failed to connect to {self.name} after "
                        f"{attempts} attempts: {e}"
                    )
                    raise

                logging.warning(
                    f"Connection attempt {attempts} failed for "
                    f"{self.name}: {e}. Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._max_reconnect_delay)

    async def _start_owner_task(self) -> None:
        """Spawn the owner task and wait until its handshake succeeds or fails."""
        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._shutdown_event = asyncio.Event()
        self._owner_task = asyncio.create_task(
            self._own_connection(ready), name=f"mcp-client-{self.name}"
        )
        try:
            await ready
        except asyncio.CancelledError:
            self._owner_task.cancel()
            raise
        except Exception:
            await self._owner_task
            self._owner_task = None
            raise

    async def _own_connection(self, ready: asyncio.Future[None]) -> None:
        """Hold the transport open until ``close`` sets the shutdown event."""
        try:
            async with AsyncExitStack() as stack:
                await self._attempt_connection(stack)
                ready.set_result(None)
                await self._shutdown_event.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logging.warning(f"Error closing MCP client {self.name}: {e}")
        finally:
            self.session = None

    async def _open_transport(self, stack: AsyncExitStack) -> tuple[Any, Any]:
        """Enter the transport context matching the parameters' type."""
        if isinstance(self.params, SseServerParameters):
            read_stream, write_stream = await stack.enter_async_context(
                sse_client(
                    url=self.params.url,
                    headers=self.params.headers,
                    timeout=self.params.timeout,
                    sse_read_timeout=self.params.sse_read_timeout,
                )
            )
            return read_stream, write_stream

        if isinstance(self.params, StreamableHttpServerParameters):
            read_stream, write_stream, _ = await stack.enter_async_context(
                streamablehttp_client(
                    url=self.params.url,
                    headers=self.params.headers,
                    timeout=timedelta(seconds=self.params.timeout),
                )
            )
            return read_stream, write_stream

        command = self._resolve_command(self.params.command)
        if not command:
            raise ValueError(f"Command '{self.params.command}' not found in PATH")

        env = {**os.environ, **self.params.env} if self.params.env else None
        server_params = StdioServerParameters(
            command=command,
            args=self.params.args,
            env=env,
            cwd=self.params.cwd,
        )
        return await stack.enter_async_context(stdio_client(server_params))

    async def _attempt_connection(self, stack: AsyncExitStack) -> None:
        """Open the transport and complete the MCP initialization handshake."""
        read_stream, write_stream = await self._open_transport(stack)

        client_info = types.Implementation(name=CLIENT_NAME, version=CLIENT_VERSION)
        self.session = await stack.enter_async_context(
            ClientSession(read_stream, write_stream, client_info=client_info)
        )

        await asyncio.wait_for(
            self.session.initialize(), timeout=self._connection_timeout
        )

        logging.info(f"MCP client '{self.name}' connected over {self.transport}")

    def _require_session(self) -> ClientSession:
        if not self.session or not self._is_connected:
            raise McpError(
                error=types.ErrorData(
                    code=types.INTERNAL_ERROR,
                    message=f"Client {self.name} not connected",
                )
            )
        return self.session

    @handle_mcp_errors("list_tools")
    async def list_tools(self) -> list[types.Tool]:
        """List available tools using official SDK patterns."""
        result = await self._require_session().list_tools()
        return result.tools

    @handle_mcp_errors("call_tool")
    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> types.CallToolResult:
        """Call a tool using official SDK patterns."""
        session = self._require_session()
        logging.info(f"Calling tool '{name}' on client '{self.name}'")
        result = await session.call_tool(name, arguments)
        logging.info(f"Tool '{name}' executed on client '{self.name}'")
        return result

    async def close(self) -> None:
        """Signal the owner task to exit its contexts and wait for it."""
        async with self._cleanup_lock:
            if not self._is_connected:
                return  # Already closed

            self._is_connected = False
            self._shutdown_event.set()
            if self._owner_task is not None:
                await self._owner_task
                self._owner_task = None
            logging.info(f"MCP client '{self.name}' disconnected")

    @property
    def is_connected(self) -> bool:
        """Check if client is currently connected."""
        return self._is_connected
