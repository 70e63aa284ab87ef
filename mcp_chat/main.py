"""
Main module: interactive chat shell over the configured MCP servers.

Usage: mcp-chat <path-to-servers.json> [path-to-config.yaml]
"""

from __future__ import annotations

import asyncio
import logging
import sys

from mcp_chat.chat_service import ChatService
from mcp_chat.config import Configuration

QUIT_COMMANDS = {"quit", "exit"}

HELP_TEXT = (
    "Commands: 'clear' resets the conversation, '/tools' lists tools, "
    "'/select <server> ...' chooses servers, 'quit' exits."
)


def configure_logging(configuration: Configuration) -> None:
    level = configuration.get_logging_config().get("level", "INFO")
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


async def read_line(prompt: str) -> str | None:
    """Read one line from stdin without blocking the event loop."""
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


def handle_command(service: ChatService, thread_id: str, line: str) -> bool:
    """Run a shell command. Returns False when ``line`` is chat input."""
    command, _, rest = line.partition(" ")
    lowered = command.lower()

    if lowered == "clear":
        service.clear_thread(thread_id)
        print("Conversation cleared.")
    elif lowered == "/tools":
        for tool in service.get_tool_descriptors():
            print(f"  {tool.qualified_name}: {tool.description}")
    elif lowered == "/select":
        selected = service.select_servers(rest.split())
        print(f"Selected servers: {', '.join(selected) or '(none)'}")
    elif lowered in {"/help", "help"}:
        print(HELP_TEXT)
    else:
        return False
    return True


async def chat_loop(service: ChatService) -> None:
    thread_id = service.new_thread()

    print("MCP Client ready")
    print("Chat or type 'quit' to quit")

    while True:
        line = await read_line("Chat: ")
        if line is None or line.strip().lower() in QUIT_COMMANDS:
            break
        if not line.strip() or handle_command(service, thread_id, line.strip()):
            continue

        async for message in service.process_message(thread_id, line):
            if message.role == "assistant":
                sys.stdout.write(message.content)
                sys.stdout.flush()
        sys.stdout.write("\n")


async def main(argv: list[str]) -> int:
    """Main entry point - connect servers, chat, always clean up."""
    if not argv:
        print("Usage: mcp-chat <path-to-servers.json> [path-to-config.yaml]")
        return 1

    configuration = Configuration(argv[1] if len(argv) > 1 else None)
    configure_logging(configuration)
    servers = configuration.load_server_config(argv[0])

    service = await ChatService.create(configuration, servers)
    try:
        await chat_loop(service)
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")
    except Exception as e:
        logging.error(f"Application error: {e}")
        raise
    finally:
        await service.cleanup()
        logging.info("Application shutdown complete")
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main(sys.argv[1:])))


if __name__ == "__main__":
    cli()
