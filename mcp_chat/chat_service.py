"""
Chat Service for the MCP chat client.

This module drives conversations:
- Thread management seeded with the configured system prompt
- Aggregation of tools from the selected MCP servers
- The streaming generation loop with tool dispatch between passes
- Cleanup of server sessions and the chat API client
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncGenerator, Callable, Mapping
from typing import Any

from mcp_chat.config import Configuration, ServerParameters
from mcp_chat.dispatcher import ToolDispatcher
from mcp_chat.llm.client import LLMClient
from mcp_chat.llm.models import ToolCall
from mcp_chat.logging_utils import ContextualLogger
from mcp_chat.mcp_client import MCPClient
from mcp_chat.models import Message, ToolDescriptor
from mcp_chat.registry import ServerRegistry
from mcp_chat.threads import ThreadStore


class ChatService:
    """
    Conversation orchestrator.

    1. Takes your message and appends it to the thread
    2. Streams the model's reply, yielding text as it arrives
    3. Runs any requested tools and feeds their results back
    4. Repeats until the model answers without calling a tool
    """

    def __init__(
        self,
        registry: ServerRegistry,
        llm_client: Any,  # LLMClient
        system_prompt: str,
        *,
        logger: ContextualLogger | None = None,
        max_tool_hops: int | None = None,
        parallel_tool_calls: bool = True,
    ) -> None:
        self.registry = registry
        self.llm_client = llm_client
        self.threads = ThreadStore(system_prompt)
        self.logger = logger or ContextualLogger({"component": "chat_service"})
        self.max_tool_hops = max_tool_hops
        self.dispatcher = ToolDispatcher(
            registry, self.logger, parallel=parallel_tool_calls
        )

        # One lock per thread: passes on the same thread never overlap.
        self._thread_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @classmethod
    async def create(
        cls,
        configuration: Configuration,
        servers: Mapping[str, ServerParameters],
        *,
        llm_client: Any | None = None,
        client_factory: Callable[[str, ServerParameters], Any] | None = None,
        logger: ContextualLogger | None = None,
    ) -> ChatService:
        """Build a service from configuration and connect every server."""
        connection_config = configuration.get_mcp_connection_config()
        registry = ServerRegistry(
            client_factory
            or (lambda name, params: MCPClient(name, params, connection_config))
        )
        if llm_client is None:
            llm_client = LLMClient(
                configuration.get_llm_config(), configuration.llm_api_key
            )

        chat_conf = configuration.get_chat_service_config()
        service = cls(
            registry,
            llm_client,
            chat_conf["system_prompt"],
            logger=logger,
            max_tool_hops=chat_conf["max_tool_hops"],
            parallel_tool_calls=chat_conf["parallel_tool_calls"],
        )

        try:
            await registry.connect_all(
                servers, fail_fast=configuration.get_startup_config()["fail_fast"]
            )
        except Exception:
            await service.llm_client.close()
            raise

        service.logger.info(
            "ChatService ready",
            servers=registry.server_names,
            tools=[tool.qualified_name for tool in registry.get_tools()],
        )
        return service

    # ------------------------------------------------------------------ #
    # Threads and servers                                                #
    # ------------------------------------------------------------------ #

    def new_thread(self) -> str:
        return self.threads.create()

    def clear_thread(self, thread_id: str) -> None:
        self.threads.clear(thread_id)

    def get_thread(self, thread_id: str) -> list[Message]:
        return self.threads.get(thread_id)

    def select_servers(self, names: list[str]) -> list[str]:
        return self.registry.select(names)

    def get_tool_descriptors(self) -> list[ToolDescriptor]:
        return self.registry.get_tools()

    def get_tools(self) -> list[dict[str, Any]]:
        """Selected tools in the chat API's function-tool shape."""
        return [tool.to_chat_tool() for tool in self.registry.get_tools()]

    # ------------------------------------------------------------------ #
    # Conversation loop                                                  #
    # ------------------------------------------------------------------ #

    async def process_message(
        self,
        thread_id: str,
        user_msg: str,
        model: str | None = None,
    ) -> AsyncGenerator[Message]:
        """
        Streaming entry-point - serialized per thread.

        Yields assistant text fragments as they arrive and one tool message
        per executed tool call. Ends when a generation pass requests no tools.

        Raises:
            UnknownThreadError: If ``thread_id`` was never created.
            StreamingError: If the chat stream fails; messages appended
                before the failure stay in the thread.
        """
        self.threads.get(thread_id)  # fail before taking the lock

        async with self._thread_locks[thread_id]:
            self.threads.append(thread_id, Message(role="user", content=user_msg))
            log = self.logger.bind(thread_id=thread_id)

            hops = 0
            while True:
                tool_calls: list[ToolCall] = []
                async for msg in self._generation_pass(thread_id, model, tool_calls, hops):
                    yield msg

                if not tool_calls:
                    log.debug("Generation finished", hops=hops)
                    return

                if self._exceeded_tool_hops(hops):
                    notice = Message(
                        role="assistant",
                        content=(
                            f"Reached maximum tool call limit ({self.max_tool_hops}). "
                            "Stopping to prevent infinite recursion."
                        ),
                    )
                    log.warning("Maximum tool hops reached", max_hops=self.max_tool_hops)
                    self.threads.append(thread_id, notice)
                    yield notice.model_copy()
                    return

                log.debug(
                    "Dispatching tool calls",
                    hop=hops,
                    tools=[call.name for call in tool_calls],
                )
                for result in await self.dispatcher.dispatch(tool_calls):
                    tool_msg = Message(role="tool", content=result)
                    self.threads.append(thread_id, tool_msg)
                    yield tool_msg.model_copy()

                hops += 1

    async def _generation_pass(
        self,
        thread_id: str,
        model: str | None,
        tool_calls: list[ToolCall],
        hop: int,
    ) -> AsyncGenerator[Message]:
        """
        Stream one model response into the thread.

        Text fragments extend a single assistant message until a tool-call
        fragment arrives; text after that starts a new assistant message.
        Requested calls are collected into ``tool_calls``.
        """
        messages = [m.model_dump() for m in self.threads.get(thread_id)]
        tools = self.get_tools()
        self.logger.debug("Prompting", thread_id=thread_id, hop=hop, tools=len(tools))

        current: Message | None = None
        async for chunk in self.llm_client.stream_chat(messages, tools, model):
            if chunk.content:
                if current is None:
                    current = Message(role="assistant", content="")
                    self.threads.append(thread_id, current)
                current.content += chunk.content
                yield Message(role="assistant", content=chunk.content)
            elif chunk.tool_calls:
                tool_calls.extend(chunk.tool_calls)
                current = None

    def _exceeded_tool_hops(self, hops: int) -> bool:
        return self.max_tool_hops is not None and hops >= self.max_tool_hops

    # ------------------------------------------------------------------ #
    # Shutdown                                                           #
    # ------------------------------------------------------------------ #

    async def cleanup(self) -> None:
        """Close every MCP session, then the chat API client."""
        await self.registry.close_all()

        try:
            await self.llm_client.close()
            self.logger.info("LLM client closed successfully")
        except Exception as e:
            self.logger.warning("Error closing LLM client", error_message=str(e))
