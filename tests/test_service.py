import re

import pytest
import responses

from hypermcp.config import Config, PluginConfig, RuntimeConfig
from hypermcp.service import (
    JSONRPC_VERSION,
    PROTOCOL_VERSION,
    SERVER_NAME,
    McpError,
    PluginService,
    fetch_plugin_source,
    oci_cache_path,
)
from hypermcp.types import ListToolsResult, ToolDescription, ToolError, text_result


class EchoPlugin:
    tool_name = "echo"

    def __init__(self, config):
        self.config = config

    def describe(self):
        return ListToolsResult(
            tools=[
                ToolDescription(
                    name=self.tool_name,
                    description="Echo text",
                    input_schema={"type": "object"},
                )
            ]
        )

    def call(self, request):
        args = request.params.arguments or {}
        if "fail" in args:
            raise ToolError("boom")
        return text_result(args["text"] + self.config.get("suffix", ""))


class OtherEchoPlugin(EchoPlugin):
    pass


class BrokenPlugin:
    def __init__(self, config):
        self.config = config

    def describe(self):
        raise RuntimeError("cannot describe")

    def call(self, request):
        raise RuntimeError("cannot call")


def make_service(*plugins, factories=None):
    config = Config(plugins=list(plugins))
    service = PluginService(config, factories or {"echo": EchoPlugin, "broken": BrokenPlugin})
    service.load_plugins()
    return service


def echo_config(name="echo", env=None):
    runtime = RuntimeConfig(env_vars=env) if env is not None else None
    return PluginConfig(name=name, path="builtin://echo", runtime_config=runtime)


def test_list_tools_reports_plugin_tools():
    service = make_service(echo_config())
    result = service.list_tools()
    assert [tool["name"] for tool in result["tools"]] == ["echo"]


def test_call_tool_passes_arguments_and_env_vars():
    service = make_service(echo_config(env={"suffix": "!"}))
    result = service.call_tool({"name": "echo", "arguments": {"text": "hi"}})
    assert result["content"][0]["text"] == "hi!"


def test_unknown_tool_is_method_not_found():
    service = make_service(echo_config())
    with pytest.raises(McpError) as info:
        service.call_tool({"name": "missing", "arguments": {}})
    assert info.value.code == McpError.METHOD_NOT_FOUND


def test_plugin_failure_is_internal_error():
    service = make_service(echo_config())
    with pytest.raises(McpError) as info:
        service.call_tool({"name": "echo", "arguments": {"fail": True}})
    assert info.value.code == McpError.INTERNAL_ERROR
    assert "Failed to execute plugin echo" in info.value.message


def test_call_tool_without_name_is_invalid_params():
    service = make_service(echo_config())
    with pytest.raises(McpError) as info:
        service.call_tool({"arguments": {}})
    assert info.value.code == McpError.INVALID_PARAMS


def test_tool_collision_between_plugins_raises():
    factories = {"echo": EchoPlugin, "other": OtherEchoPlugin}
    first = PluginConfig(name="first", path="builtin://echo")
    second = PluginConfig(name="second", path="builtin://other")
    with pytest.raises(ValueError, match="Tool name collision detected"):
        make_service(first, second, factories=factories)


def test_missing_runtime_raises():
    with pytest.raises(ValueError, match="No plugin runtime"):
        make_service(PluginConfig(name="x", path="builtin://nothing"))


def test_broken_plugin_is_skipped_in_listing():
    service = make_service(echo_config(), PluginConfig(name="bad", path="builtin://broken"))
    result = service.list_tools()
    assert [tool["name"] for tool in result["tools"]] == ["echo"]


def test_local_file_plugin_uses_runtime_named_after_plugin(tmp_path):
    artifact = tmp_path / "echo.wasm"
    artifact.write_bytes(b"\x00asm")
    service = make_service(PluginConfig(name="echo", path=str(artifact)))
    result = service.call_tool({"name": "echo", "arguments": {"text": "ok"}})
    assert result["content"][0]["text"] == "ok"


def test_missing_local_file_fails(tmp_path):
    with pytest.raises(FileNotFoundError):
        make_service(PluginConfig(name="echo", path=str(tmp_path / "absent.wasm")))


def test_default_factories_include_time_plugin():
    service = PluginService(Config(plugins=[PluginConfig(name="clock", path="builtin://time")]))
    service.load_plugins()
    names = [tool["name"] for tool in service.list_tools()["tools"]]
    assert "time" in names


def test_get_info_and_initialize():
    service = make_service()
    info = service.initialize({})
    assert info == service.get_info()
    assert info["protocolVersion"] == PROTOCOL_VERSION
    assert info["serverInfo"]["name"] == SERVER_NAME
    assert "tools" in info["capabilities"]


def test_complete_is_not_supported():
    service = make_service()
    with pytest.raises(McpError) as info:
        service.complete({})
    assert info.value.code == McpError.METHOD_NOT_FOUND


def test_handle_message_ping_and_call():
    service = make_service(echo_config())
    ping = service.handle_message({"jsonrpc": JSONRPC_VERSION, "id": 1, "method": "ping"})
    assert ping == {"jsonrpc": JSONRPC_VERSION, "id": 1, "result": {}}

    call = service.handle_message(
        {
            "jsonrpc": JSONRPC_VERSION,
            "id": "a",
            "method": "tools/call",
            "params": {"name": "echo", "arguments": {"text": "yo"}},
        }
    )
    assert call["id"] == "a"
    assert call["result"]["content"][0]["text"] == "yo"


def test_handle_message_errors_and_notifications():
    service = make_service(echo_config())
    unknown = service.handle_message({"jsonrpc": JSONRPC_VERSION, "id": 2, "method": "nope"})
    assert unknown["error"]["code"] == McpError.METHOD_NOT_FOUND
    assert unknown["error"]["message"] == "nope"

    failing = service.handle_message(
        {
            "jsonrpc": JSONRPC_VERSION,
            "id": 3,
            "method": "tools/call",
            "params": {"name": "echo", "arguments": {"fail": 1}},
        }
    )
    assert failing["error"]["code"] == McpError.INTERNAL_ERROR

    note = service.handle_message(
        {"jsonrpc": JSONRPC_VERSION, "method": "notifications/initialized"}
    )
    assert note is None

    invalid = service.handle_message(["not", "an", "object"])
    assert invalid["error"]["code"] == McpError.INVALID_REQUEST


def test_oci_cache_path_shape(tmp_path):
    first = oci_cache_path("qr", "example.com/plugins/qr:latest", tmp_path)
    again = oci_cache_path("qr", "example.com/plugins/qr:latest", tmp_path)
    other = oci_cache_path("qr", "example.com/plugins/qr:v2", tmp_path)
    assert first == again
    assert first != other
    assert first.parent == tmp_path
    assert re.fullmatch(r"qr-[0-9a-f]{7}\.wasm", first.name)


def test_fetch_plugin_source_uses_oci_cache(tmp_path):
    reference = "example.com/plugins/qr:latest"
    cached = oci_cache_path("qr", reference, tmp_path)
    cached.write_bytes(b"cached-bytes")
    source = fetch_plugin_source(
        PluginConfig(name="qr", path=f"oci://{reference}"), False, tmp_path
    )
    assert source == b"cached-bytes"


def test_fetch_plugin_source_rejects_malformed_oci_path(tmp_path):
    with pytest.raises(ValueError):
        fetch_plugin_source(PluginConfig(name="qr", path="oci:broken"), False, tmp_path)


def test_fetch_plugin_source_over_http():
    url = "https://plugins.example.com/echo.wasm"
    with responses.RequestsMock() as mock:
        mock.add(responses.GET, url, body=b"\x00asm-body")
        source = fetch_plugin_source(PluginConfig(name="echo", path=url))
    assert source == b"\x00asm-body"


def test_mcp_error_to_dict_includes_data_only_when_set():
    plain = McpError.internal_error("oops")
    detailed = McpError.internal_error("oops", {"detail": 1})
    assert plain.to_dict() == {"code": McpError.INTERNAL_ERROR, "message": "oops"}
    assert detailed.to_dict()["data"] == {"detail": 1}