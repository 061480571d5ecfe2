import json
import uuid

import pytest

from hypermcp.memory_plugin import (
    Memory,
    MemoryPlugin,
    get_memory,
    init_db,
    store_memory,
)
from hypermcp.types import CallToolRequest, Params, ToolError


def _request(name, arguments=None):
    return CallToolRequest(params=Params(name=name, arguments=arguments))


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "memories.db")


@pytest.fixture
def plugin(db_path):
    return MemoryPlugin({"db_path": db_path})


def test_store_and_get_round_trip(db_path):
    init_db(db_path)
    memory_id = store_memory("remember the milk", db_path)
    assert get_memory(memory_id, db_path) == Memory(id=memory_id, content="remember the milk")


def test_store_returns_uuid(db_path):
    init_db(db_path)
    memory_id = store_memory("x", db_path)
    assert str(uuid.UUID(memory_id)) == memory_id


def test_get_missing_returns_none(db_path):
    init_db(db_path)
    assert get_memory("no-such-id", db_path) is None


def test_init_db_is_idempotent(db_path):
    init_db(db_path)
    memory_id = store_memory("kept", db_path)
    init_db(db_path)
    assert get_memory(memory_id, db_path).content == "kept"


def test_store_without_database_fails(db_path):
    with pytest.raises(ToolError):
        store_memory("x", db_path)


def test_memory_to_json_keeps_field_order():
    assert Memory(id="a", content="b").to_json() == '{"id":"a","content":"b"}'


def test_describe_lists_both_tools(plugin):
    tools = plugin.describe().tools
    assert [tool.name for tool in tools] == ["store_memory", "get_memory"]
    assert tools[0].input_schema["required"] == ["content"]
    assert tools[1].input_schema["required"] == ["id"]


def test_call_store_then_get(plugin):
    stored = plugin.call(_request("store_memory", {"content": "hello"}))
    assert stored.is_error is None
    assert stored.content[0].mime_type == "application/json"
    memory_id = json.loads(stored.content[0].text)["id"]

    fetched = plugin.call(_request("get_memory", {"id": memory_id}))
    assert fetched.is_error is None
    assert json.loads(fetched.content[0].text) == {"id": memory_id, "content": "hello"}


def test_call_get_missing_is_error(plugin):
    result = plugin.call(_request("get_memory", {"id": "missing"}))
    assert result.is_error is True
    assert result.content[0].text == "Memory not found"
    assert result.content[0].mime_type is None


def test_call_store_requires_string_content(plugin):
    with pytest.raises(ToolError, match="content parameter is required"):
        plugin.call(_request("store_memory", {"content": 5}))
    with pytest.raises(ToolError, match="content parameter is required"):
        plugin.call(_request("store_memory"))


def test_call_get_requires_id(plugin):
    with pytest.raises(ToolError, match="id parameter is required"):
        plugin.call(_request("get_memory", {}))


def test_call_unknown_tool(plugin):
    result = plugin.call(_request("forget", {}))
    assert result.is_error is True
    assert result.content[0].text == "Unknown tool: forget"


def test_call_without_db_path():
    with pytest.raises(ToolError, match="db_path configuration is required but not set"):
        MemoryPlugin({}).call(_request("store_memory", {"content": "x"}))