import json

import pytest

from hypermcp.sqlite_plugin import (
    SqlitePlugin,
    create_table,
    describe_table,
    execute_read_query,
    execute_write_query,
    init_db,
    list_tables,
)
from hypermcp.types import CallToolRequest, Params, ToolError


def _request(name, arguments=None):
    return CallToolRequest(params=Params(name=name, arguments=arguments))


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "data.db")
    init_db(path)
    return path


@pytest.fixture
def plugin(tmp_path):
    return SqlitePlugin({"db_path": str(tmp_path / "plugin.db")})


def test_create_write_read_round_trip(db_path):
    assert create_table("CREATE TABLE people (name TEXT, age INTEGER)", db_path) == (
        '{"status":"success"}'
    )
    written = execute_write_query(
        "INSERT INTO people (name, age) VALUES ('ann', 30), ('bob', 40)", db_path
    )
    assert json.loads(written) == {"rows_affected": 2}
    rows = json.loads(execute_read_query("SELECT name, age FROM people ORDER BY age", db_path))
    assert rows == [{"name": "ann", "age": 30}, {"name": "bob", "age": 40}]


def test_write_output_format(db_path):
    create_table("CREATE TABLE t (x INTEGER)", db_path)
    assert execute_write_query("INSERT INTO t VALUES (1)", db_path) == '{"rows_affected":1}'


def test_read_value_kinds(db_path):
    rows = json.loads(
        execute_read_query("SELECT 1 AS a, 2.5 AS b, 'x' AS c, NULL AS d, X'0102' AS e", db_path)
    )
    assert rows == [{"a": 1, "b": 2.5, "c": "x", "d": None, "e": [1, 2]}]


def test_read_with_no_rows(db_path):
    create_table("CREATE TABLE t (x INTEGER)", db_path)
    assert execute_read_query("SELECT x FROM t", db_path) == "[]"


def test_write_rejects_select(db_path):
    with pytest.raises(ToolError):
        execute_write_query("SELECT 1", db_path)


def test_invalid_sql_raises(db_path):
    with pytest.raises(ToolError):
        execute_read_query("SELEC nothing", db_path)


def test_missing_database_is_not_created(tmp_path):
    path = tmp_path / "absent.db"
    with pytest.raises(ToolError):
        list_tables(str(path))
    assert not path.exists()


def test_list_tables(db_path):
    create_table("CREATE TABLE alpha (x)", db_path)
    create_table("CREATE TABLE beta (y)", db_path)
    assert sorted(json.loads(list_tables(db_path))["tables"]) == ["alpha", "beta"]


def test_describe_table(db_path):
    create_table(
        "CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT NOT NULL DEFAULT 'x')", db_path
    )
    schema = json.loads(describe_table("t", db_path))["schema"]
    assert schema == [
        {"cid": 0, "name": "id", "type": "INTEGER", "notnull": False, "dflt_value": None, "pk": True},
        {"cid": 1, "name": "name", "type": "TEXT", "notnull": True, "dflt_value": "'x'", "pk": False},
    ]


def test_describe_lists_tools(plugin):
    names = [tool.name for tool in plugin.describe().tools]
    assert names == [
        "sqlite_read_query",
        "sqlite_write_query",
        "sqlite_create_table",
        "sqlite_list_tables",
        "sqlite_describe_table",
    ]


def test_call_flow(plugin):
    created = plugin.call(_request("sqlite_create_table", {"query": "CREATE TABLE n (v INTEGER)"}))
    assert created.content[0].mime_type == "application/json"
    plugin.call(_request("sqlite_write_query", {"query": "INSERT INTO n VALUES (7)"}))
    read = plugin.call(_request("sqlite_read_query", {"query": "SELECT v FROM n"}))
    assert read.is_error is None
    assert json.loads(read.content[0].text) == [{"v": 7}]
    tables = plugin.call(_request("sqlite_list_tables"))
    assert json.loads(tables.content[0].text) == {"tables": ["n"]}


def test_call_requires_query(plugin):
    with pytest.raises(ToolError, match="query parameter is required"):
        plugin.call(_request("sqlite_read_query", {"query": 1}))


def test_call_requires_table_name(plugin):
    with pytest.raises(ToolError, match="table_name parameter is required"):
        plugin.call(_request("sqlite_describe_table", {}))


def test_call_unknown_tool(plugin):
    result = plugin.call(_request("sqlite_drop", {}))
    assert result.is_error is True
    assert result.content[0].text == "Unknown tool: sqlite_drop"


def test_call_without_db_path():
    with pytest.raises(ToolError, match="db_path configuration is required but not set"):
        SqlitePlugin().call(_request("sqlite_list_tables"))