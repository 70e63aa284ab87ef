"""Configuration management for the MCP chat client."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import yaml
from dotenv import load_dotenv
from mcp import StdioServerParameters
from pydantic import BaseModel, Field

from mcp_chat.models import validate_name_part

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")


class SseServerParameters(BaseModel):
    """Connection parameters for a server reached over server-sent events."""
    url: str
    headers: dict[str, str] | None = None
    timeout: float = 5.0
    sse_read_timeout: float = 300.0


class StreamableHttpServerParameters(BaseModel):
    """Connection parameters for a server reached over streamable HTTP."""
    url: str
    headers: dict[str, str] | None = None
    timeout: float = 30.0


ServerParameters = (
    StdioServerParameters | SseServerParameters | StreamableHttpServerParameters
)

# JSON section name -> parameter model
_SERVER_SECTIONS: dict[str, type[BaseModel]] = {
    "stdio": StdioServerParameters,
    "sse": SseServerParameters,
    "streamable": StreamableHttpServerParameters,
}


class Configuration:
    """Manages configuration and environment variables for the MCP chat client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self._config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self._config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @staticmethod
    def load_server_config(file_path: str) -> dict[str, ServerParameters]:
        """Load server connection parameters from a JSON file.

        The file holds up to three sections, ``stdio``, ``sse`` and
        ``streamable``, each mapping a server name to the parameters of
        that transport. Server names must be unique across sections.

        Args:
            file_path: Path to the JSON server file.

        Returns:
            Mapping of server name to typed connection parameters, in file
            order (stdio first, then sse, then streamable).

        Raises:
            FileNotFoundError: If the file doesn't exist.
            JSONDecodeError: If the file is invalid JSON.
            ValueError: If a section is malformed or a name is reused.
        """
        with open(file_path) as f:
            raw = json.load(f)

        if not isinstance(raw, dict):
            raise ValueError(f"Server file must be a JSON object, got {type(raw)}")

        unknown = set(raw) - set(_SERVER_SECTIONS)
        if unknown:
            logger.warning(f"Ignoring unknown server sections: {sorted(unknown)}")

        servers: dict[str, ServerParameters] = {}
        for section, model in _SERVER_SECTIONS.items():
            entries = raw.get(section) or {}
            if not isinstance(entries, dict):
                raise ValueError(f"Section '{section}' must map names to parameters")

            for name, params in entries.items():
                validate_name_part(name, "Server")
                if name in servers:
                    raise ValueError(
                        f"Server name '{name}' is configured more than once"
                    )
                servers[name] = model.model_validate(params)

        return servers

    @property
    def llm_api_key(self) -> str | None:
        """Get the optional API key for the chat endpoint.

        Local Ollama needs no key; hosted deployments read one from the
        environment variable named by ``llm.api_key_env``.
        """
        env_key = self.get_llm_config().get("api_key_env", "OLLAMA_API_KEY")
        return os.getenv(env_key) or None

    def get_llm_config(self) -> dict[str, Any]:
        """Get chat model configuration from YAML.

        Returns:
            LLM configuration dictionary.

        Raises:
            ValueError: If required LLM parameters are missing or invalid.
        """
        llm_config = self._config.get("llm", {})

        required_keys = ["base_url", "model", "timeout"]
        for key in required_keys:
            if key not in llm_config:
                raise ValueError(
                    f"llm.{key} must be explicitly configured in config.yaml"
                )

        if llm_config["timeout"] is not None and llm_config["timeout"] <= 0:
            raise ValueError("llm.timeout must be positive or null")

        options = llm_config.get("options")
        if options is not None and not isinstance(options, dict):
            raise ValueError("llm.options must be a mapping")

        return llm_config

    def get_chat_service_config(self) -> dict[str, Any]:
        """Get chat service configuration from YAML.

        Returns:
            Chat service configuration with ``system_prompt``,
            ``max_tool_hops`` (None for unbounded) and ``parallel_tool_calls``.

        Raises:
            ValueError: If required chat service parameters are missing or invalid.
        """
        service_config = self._config.get("chat", {}).get("service", {})

        if not service_config.get("system_prompt"):
            raise ValueError(
                "system_prompt must be explicitly configured in config.yaml "
                "under chat.service"
            )

        max_hops = service_config.get("max_tool_hops")
        if max_hops is not None and (
            not isinstance(max_hops, int) or isinstance(max_hops, bool) or max_hops < 1
        ):
            raise ValueError("max_tool_hops must be a positive integer or null")

        parallel = service_config.get("parallel_tool_calls", True)
        if not isinstance(parallel, bool):
            raise ValueError("parallel_tool_calls must be a boolean")

        return {
            "system_prompt": service_config["system_prompt"].rstrip(),
            "max_tool_hops": max_hops,
            "parallel_tool_calls": parallel,
        }

    def get_mcp_connection_config(self) -> dict[str, Any]:
        """Get MCP connection configuration from YAML.

        Returns:
            MCP connection configuration dictionary with validated values.

        Raises:
            ValueError: If required connection parameters are missing or invalid.
        """
        mcp_config = self._config.get("mcp", {})
        connection_config = mcp_config.get("connection", {})

        required_keys = [
            "max_reconnect_attempts",
            "initial_reconnect_delay",
            "max_reconnect_delay",
            "connection_timeout",
        ]

        for key in required_keys:
            if key not in connection_config:
                raise ValueError(
                    f"{key} must be explicitly configured in config.yaml "
                    f"under mcp.connection"
                )

        max_attempts = connection_config["max_reconnect_attempts"]
        initial_delay = connection_config["initial_reconnect_delay"]
        max_delay = connection_config["max_reconnect_delay"]
        connection_timeout = connection_config["connection_timeout"]

        if max_attempts < 1:
            raise ValueError("max_reconnect_attempts must be at least 1")
        if initial_delay <= 0:
            raise ValueError("initial_reconnect_delay must be positive")
        if max_delay < initial_delay:
            raise ValueError("max_reconnect_delay must be >= initial_reconnect_delay")
        if connection_timeout <= 0:
            raise ValueError("connection_timeout must be positive")

        return {
            "max_reconnect_attempts": max_attempts,
            "initial_reconnect_delay": initial_delay,
            "max_reconnect_delay": max_delay,
            "connection_timeout": connection_timeout,
        }

    def get_startup_config(self) -> dict[str, Any]:
        """Get server startup policy from YAML.

        ``fail_fast`` true aborts startup when any server fails to connect;
        false skips the failed server and continues with the rest.
        """
        startup = self._config.get("mcp", {}).get("startup", {})
        fail_fast = startup.get("fail_fast", True)
        if not isinstance(fail_fast, bool):
            raise ValueError("mcp.startup.fail_fast must be a boolean")
        return {"fail_fast": fail_fast}

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})
