"""
Server registry: every connected session plus the subset used for chat.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from mcp_chat.config import ServerParameters
from mcp_chat.exceptions import InvalidToolNameError, ServerConnectionError
from mcp_chat.logging_utils import log_operation, operation_context
from mcp_chat.models import Session, ToolDescriptor, validate_name_part
from mcp_chat.tool_catalog import build_tool_descriptors

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, ServerParameters], Any]


class ServerRegistry:
    """
    Owns all connected sessions keyed by server name.

    ``selected`` is always a subset of ``all``. It is replaced by a single
    assignment on ``select`` so a generation pass never observes a half
    updated selection.
    """

    def __init__(self, client_factory: ClientFactory) -> None:
        self._client_factory = client_factory
        self.all: dict[str, Session] = {}
        self.selected: dict[str, Session] = {}

    @property
    def server_names(self) -> list[str]:
        return list(self.all)

    @property
    def selected_names(self) -> list[str]:
        return list(self.selected)

    @log_operation("connect_server")
    async def connect(self, name: str, params: ServerParameters) -> Session:
        """
        Connect one server, discover its tools and register it as selected.

        Raises:
            InvalidToolNameError: If the server name or one of its tool
                names contains the qualified-name delimiter.
            ServerConnectionError: If the transport cannot be established
                or the tool catalog cannot be listed.
        """
        validate_name_part(name, "Server")
        if name in self.all:
            raise ValueError(f"Server '{name}' is already connected")

        session = await self._open_session(name, params)
        self._register(name, session)
        return session

    async def _open_session(self, name: str, params: ServerParameters) -> Session:
        client = self._client_factory(name, params)
        try:
            await client.connect()
            raw_tools = await client.list_tools()
            tools = build_tool_descriptors(name, raw_tools)
        except InvalidToolNameError:
            await self._close_quietly(client)
            raise
        except Exception as e:
            await self._close_quietly(client)
            raise ServerConnectionError(name, str(e)) from e

        logger.info(f"Server '{name}' provides {len(tools)} tool(s)")
        return Session(client=client, tools=tools)

    def _register(self, name: str, session: Session) -> None:
        self.all[name] = session
        self.selected = {**self.selected, name: session}

    async def connect_all(
        self,
        servers: Mapping[str, ServerParameters],
        *,
        fail_fast: bool = True,
    ) -> list[str]:
        """
        Connect every configured server concurrently.

        Sessions are registered in configuration order regardless of which
        connection finishes first.

        Args:
            servers: Server name to connection parameters.
            fail_fast: Raise the first failure (closing whatever did connect)
                instead of skipping failed servers.

        Returns:
            Names of the servers that were connected.
        """
        for name in servers:
            validate_name_part(name, "Server")
            if name in self.all:
                raise ValueError(f"Server '{name}' is already connected")

        names = list(servers)
        results = await asyncio.gather(
            *(self._open_session(name, servers[name]) for name in names),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        failures = [
            (name, result)
            for name, result in zip(names, results, strict=True)
            if isinstance(result, Exception)
        ]
        if failures and fail_fast:
            for result in results:
                if isinstance(result, Session):
                    await self._close_quietly(result.client)
            raise failures[0][1]

        for name, error in failures:
            logger.warning(f"Skipping server '{name}': {error}")

        connected = []
        for name, result in zip(names, results, strict=True):
            if isinstance(result, Session):
                self._register(name, result)
                connected.append(name)

        logger.info(
            f"Connected to {len(connected)} out of {len(names)} MCP servers"
        )
        return connected

    def get_tools(self) -> list[ToolDescriptor]:
        """Tools of every selected session, in selection then catalog order."""
        return [tool for session in self.selected.values() for tool in session.tools]

    def select(self, names: Iterable[str]) -> list[str]:
        """
        Replace the selection with the known servers among ``names``.

        Unknown names are ignored. Returns the resulting selection.
        """
        wanted = set(names)
        self.selected = {
            name: session for name, session in self.all.items() if name in wanted
        }
        logger.info(f"Selected servers: {list(self.selected)}")
        return list(self.selected)

    def resolve(self, server_name: str) -> Session | None:
        """Session for ``server_name`` if it is currently selected."""
        return self.selected.get(server_name)

    async def close_all(self) -> None:
        """Close every session, selected or not, continuing past failures."""
        sessions = list(self.all.items())
        self.all = {}
        self.selected = {}

        async with operation_context(
            "close_servers", context={"servers": len(sessions)}
        ):
            for name, session in sessions:
                try:
                    await session.client.close()
                    logger.info(f"Closed MCP client: {name}")
                except Exception as e:
                    logger.warning(f"Error closing MCP client {name}: {e}")

    async def _close_quietly(self, client: Any) -> None:
        try:
            await client.close()
        except Exception as e:
            logger.debug(f"Error closing half-open client {client.name}: {e}")
