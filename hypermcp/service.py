"""The MCP server that exposes the tools of the loaded plugins."""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Protocol

import platformdirs
import requests

from .config import Config, PluginConfig
from .memory_plugin import MemoryPlugin
from .myip_plugin import MyIpPlugin
from .oci import OciError, pull_and_extract_oci_image
from .qdrant_plugin import QdrantPlugin
from .sqlite_plugin import SqlitePlugin
from .time_plugin import TimePlugin
from .types import CallToolRequest, CallToolResult, ListToolsResult

log = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
SERVER_NAME = "hyper-mcp"
SERVER_VERSION = "0.1.0"
PROTOCOL_VERSION = "2024-11-05"
BUILTIN_SCHEME = "builtin://"
OCI_SCHEME = "oci://"
OCI_TARGET_FILE = "/plugin.wasm"
HTTP_TIMEOUT = 60


class _Plugin(Protocol):
    def describe(self) -> ListToolsResult: ...

    def call(self, request: CallToolRequest) -> CallToolResult: ...


PluginFactory = Callable[[dict[str, str]], _Plugin]

DEFAULT_FACTORIES: dict[str, PluginFactory] = {
    "time": TimePlugin,
    "myip": MyIpPlugin,
    "memory": MemoryPlugin,
    "sqlite": SqlitePlugin,
    "qdrant": QdrantPlugin,
}


class McpError(Exception):
    """A protocol error, reported to the client as a JSON-RPC error object."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    @classmethod
    def internal_error(cls, message: str, data: Any = None) -> McpError:
        return cls(cls.INTERNAL_ERROR, message, data)

    @classmethod
    def method_not_found(cls, method: str) -> McpError:
        return cls(cls.METHOD_NOT_FOUND, method)

    @classmethod
    def invalid_params(cls, message: str) -> McpError:
        return cls(cls.INVALID_PARAMS, message)

    @classmethod
    def invalid_request(cls, message: str = "Invalid request") -> McpError:
        return cls(cls.INVALID_REQUEST, message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def _error_response(message_id: Any, error: McpError) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": message_id, "error": error.to_dict()}


def oci_cache_path(
    plugin_name: str, image_reference: str, cache_dir: str | Path | None = None
) -> Path:
    """Where the plugin pulled from ``image_reference`` is cached."""
    short_hash = hashlib.sha256(image_reference.encode("utf-8")).hexdigest()[:7]
    directory = (
        Path(cache_dir)
        if cache_dir is not None
        else Path(platformdirs.user_cache_dir(SERVER_NAME, appauthor=False))
    )
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"{plugin_name}-{short_hash}.wasm"


def fetch_plugin_source(
    plugin_config: PluginConfig,
    insecure_skip_signature: bool = False,
    cache_dir: str | Path | None = None,
) -> bytes:
    """Read a plugin artifact from a URL, an OCI registry or a local file."""
    path = plugin_config.path
    if path.startswith("http"):
        return requests.get(path, timeout=HTTP_TIMEOUT).content

    if path.startswith("oci"):
        if not path.startswith(OCI_SCHEME):
            raise ValueError(f"OCI plugin path must start with {OCI_SCHEME}: {path}")
        image_reference = path.removeprefix(OCI_SCHEME)
        output = oci_cache_path(plugin_config.name, image_reference, cache_dir)
        try:
            pull_and_extract_oci_image(
                image_reference, OCI_TARGET_FILE, output, not insecure_skip_signature
            )
        except OciError as exc:
            log.error("Error pulling oci plugin: %s", exc)
            raise OciError(f"Failed to pull OCI plugin: {exc}") from exc
        log.info("cache plugin `%s` to : %s", plugin_config.name, output)
        return output.read_bytes()

    return Path(path).read_bytes()


class PluginService:
    """Routes MCP requests to the plugins that provide each tool."""

    def __init__(
        self, config: Config, factories: Mapping[str, PluginFactory] | None = None
    ) -> None:
        self.config = config
        self.factories = dict(DEFAULT_FACTORIES if factories is None else factories)
        self._plugins: dict[str, _Plugin] = {}
        self._tool_plugins: dict[str, str] = {}
        self._lock = threading.RLock()

    def _plugin_kind(self, plugin_cfg: PluginConfig) -> str:
        if plugin_cfg.path.startswith(BUILTIN_SCHEME):
            return plugin_cfg.path.removeprefix(BUILTIN_SCHEME)
        # The artifact must be reachable; its tools are served by the
        # runtime registered under the plugin's name.
        fetch_plugin_source(plugin_cfg, self.config.insecure_skip_signature)
        return plugin_cfg.name

    def load_plugins(self) -> None:
        """Instantiate every configured plugin and record the tools it offers."""
        for plugin_cfg in self.config.plugins:
            kind = self._plugin_kind(plugin_cfg)
            factory = self.factories.get(kind)
            if factory is None:
                raise ValueError(f"No plugin runtime available for `{kind}`")

            runtime = plugin_cfg.runtime_config
            if runtime is not None:
                log.info("runtime_cfg: %s", runtime)
            env_vars = dict(runtime.env_vars or {}) if runtime is not None else {}
            plugin = factory(env_vars)

            try:
                described = plugin.describe()
            except Exception as exc:  # a failing plugin simply offers no tools yet
                log.warning("plugin %s describe() error: %s", plugin_cfg.name, exc)
                described = None

            with self._lock:
                for tool in described.tools if described is not None else []:
                    log.info("Saving tool %s/%s to cache", plugin_cfg.name, tool.name)
                    existing = self._tool_plugins.get(tool.name)
                    if existing is not None and existing != plugin_cfg.name:
                        message = (
                            f"Tool name collision detected: {tool.name} is provided by "
                            f"both {existing} and {plugin_cfg.name} plugins"
                        )
                        log.error(message)
                        raise ValueError(message)
                    self._tool_plugins[tool.name] = plugin_cfg.name
                self._plugins[plugin_cfg.name] = plugin
            log.info("Loaded plugin %s", plugin_cfg.name)

    def get_info(self) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    def call_tool(self, request: Any) -> dict[str, Any]:
        """Run a tool call and return the plugin's result as a JSON object."""
        if not isinstance(request, Mapping) or not isinstance(request.get("name"), str):
            raise McpError.invalid_params("tools/call requires a string `name`")
        try:
            call = CallToolRequest.from_dict({"params": dict(request)})
        except Exception as exc:
            raise McpError.invalid_params(f"Invalid tool call: {exc}") from exc

        with self._lock:
            plugin_name = self._tool_plugins.get(call.params.name)
            plugin = self._plugins.get(plugin_name) if plugin_name is not None else None
            if plugin is None:
                raise McpError.method_not_found("tools/call")
            try:
                result = plugin.call(call)
            except Exception as exc:
                raise McpError.internal_error(
                    f"Failed to execute plugin {plugin_name}: {exc}"
                ) from exc

        if not isinstance(result, CallToolResult):
            raise McpError.internal_error(
                f"Failed to deserialize data: unexpected result {type(result).__name__}"
            )
        return result.to_dict()

    def list_tools(self, request: Any = None) -> dict[str, Any]:
        """Ask every plugin for its tools and rebuild the tool-to-plugin map."""
        log.info("got tools/list request %s", request)
        tools = []
        with self._lock:
            self._tool_plugins.clear()
            for plugin_name, plugin in self._plugins.items():
                try:
                    described = plugin.describe()
                except Exception as exc:
                    log.error("tool %s describe() error: %s", plugin_name, exc)
                    continue
                for tool in described.tools:
                    self._tool_plugins[tool.name] = plugin_name
                tools.extend(described.tools)
        return ListToolsResult(tools=tools).to_dict()

    def initialize(self, request: Any = None) -> dict[str, Any]:
        log.info("got initialize request %s", request)
        return self.get_info()

    def ping(self) -> dict[str, Any]:
        log.info("got ping request")
        return {}

    def complete(self, request: Any = None) -> dict[str, Any]:
        log.info("got complete request %s", request)
        raise McpError.method_not_found("completion/complete")

    def _dispatch(self, method: str, params: Any) -> dict[str, Any]:
        match method:
            case "initialize":
                return self.initialize(params)
            case "ping":
                return self.ping()
            case "tools/list":
                return self.list_tools(params)
            case "tools/call":
                return self.call_tool(params)
            case "completion/complete":
                return self.complete(params)
            case _:
                raise McpError.method_not_found(method)

    def _notify(self, method: str) -> None:
        if method == "notifications/initialized":
            log.info("got initialized notification")

    def handle_message(self, message: Any) -> dict[str, Any] | None:
        """Answer one JSON-RPC message; notifications and responses get None."""
        if not isinstance(message, Mapping):
            return _error_response(None, McpError.invalid_request())
        if "method" not in message:
            if "result" in message or "error" in message:
                return None
            return _error_response(message.get("id"), McpError.invalid_request())
        method = message["method"]
        if not isinstance(method, str):
            return _error_response(message.get("id"), McpError.invalid_request())

        if "id" not in message:
            self._notify(method)
            return None

        message_id = message["id"]
        try:
            result = self._dispatch(method, message.get("params"))
        except McpError as exc:
            return _error_response(message_id, exc)
        return {"jsonrpc": JSONRPC_VERSION, "id": message_id, "result": result}