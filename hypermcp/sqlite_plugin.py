"""Tool plugin giving access to a SQLite database."""

from __future__ import annotations

import json
import math
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .types import (
    CallToolRequest,
    CallToolResult,
    Content,
    ContentType,
    ListToolsResult,
    ToolDescription,
    ToolError,
    text_result,
)

_JSON_MIME = "application/json"


def _dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, sort_keys=True)


def _uri(db_path: str | Path, create: bool) -> str:
    mode = "rwc" if create else "rw"
    return f"{Path(db_path).absolute().as_uri()}?mode={mode}"


@contextmanager
def _connection(db_path: str | Path, *, create: bool = False) -> Iterator[sqlite3.Connection]:
    try:
        conn = sqlite3.connect(_uri(db_path, create), uri=True, isolation_level=None)
    except sqlite3.Error as exc:
        raise ToolError(f"unable to open database file {db_path}: {exc}") from exc
    try:
        yield conn
    except sqlite3.Error as exc:
        raise ToolError(str(exc)) from exc
    finally:
        conn.close()


def _json_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return list(value)
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _execute_statement(conn: sqlite3.Connection, query: str) -> None:
    cursor = conn.execute(query)
    if cursor.description is not None:
        raise ToolError("Execute returned results - did you mean to call query?")


def init_db(db_path: str | Path) -> None:
    """Create the database file if it does not exist."""
    with _connection(db_path, create=True):
        pass


def execute_read_query(query: str, db_path: str | Path) -> str:
    """Run a query and return its rows as a JSON array of objects."""
    with _connection(db_path) as conn:
        cursor = conn.execute(query)
        columns = [column[0] for column in cursor.description or ()]
        rows = [
            {name: _json_value(value) for name, value in zip(columns, row)}
            for row in cursor.fetchall()
        ]
    return _dumps(rows)


def execute_write_query(query: str, db_path: str | Path) -> str:
    """Run a modifying statement and report how many rows it changed."""
    with _connection(db_path) as conn:
        _execute_statement(conn, query)
        (affected,) = conn.execute("SELECT changes()").fetchone()
    return _dumps({"rows_affected": affected})


def create_table(query: str, db_path: str | Path) -> str:
    """Run a CREATE TABLE statement."""
    with _connection(db_path) as conn:
        _execute_statement(conn, query)
    return _dumps({"status": "success"})


def list_tables(db_path: str | Path) -> str:
    """Return the names of all tables as JSON."""
    with _connection(db_path) as conn:
        tables = [
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        ]
    return _dumps({"tables": tables})


def describe_table(table_name: str, db_path: str | Path) -> str:
    """Return the column layout of a table as JSON."""
    with _connection(db_path) as conn:
        rows = conn.execute(f"PRAGMA table_info({table_name})").fetchall()
    schema = [
        {
            "cid": cid,
            "name": name,
            "type": col_type,
            "notnull": bool(notnull),
            "dflt_value": default,
            "pk": bool(pk),
        }
        for cid, name, col_type, notnull, default, pk in rows
    ]
    return _dumps({"schema": schema})


def _string_argument(args: Mapping[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolError(f"{key} parameter is required")
    return value


def _json_result(text: str) -> CallToolResult:
    return CallToolResult(
        content=[Content(type=ContentType.TEXT, text=text, mime_type=_JSON_MIME)]
    )


def _schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


class SqlitePlugin:
    """Answers the `sqlite_*` tools."""

    def __init__(self, config: Mapping[str, str] | None = None) -> None:
        self.config = dict(config or {})
        self._initialized = False

    @property
    def db_path(self) -> str:
        path = self.config.get("db_path")
        if path is None:
            raise ToolError("db_path configuration is required but not set")
        return path

    def describe(self) -> ListToolsResult:
        return ListToolsResult(
            tools=[
                ToolDescription(
                    name="sqlite_read_query",
                    description="Execute a SELECT query on the SQLite database",
                    input_schema=_schema(
                        {"query": {"type": "string", "description": "SELECT SQL query to execute"}},
                        ["query"],
                    ),
                ),
                ToolDescription(
                    name="sqlite_write_query",
                    description="Execute an INSERT, UPDATE, or DELETE query on the SQLite database",
                    input_schema=_schema(
                        {"query": {"type": "string", "description": "SQL query to execute"}},
                        ["query"],
                    ),
                ),
                ToolDescription(
                    name="sqlite_create_table",
                    description="Create a new table in the SQLite database",
                    input_schema=_schema(
                        {"query": {"type": "string", "description": "CREATE TABLE SQL statement"}},
                        ["query"],
                    ),
                ),
                ToolDescription(
                    name="sqlite_list_tables",
                    description="List all tables in the SQLite database",
                    input_schema=_schema({}, []),
                ),
                ToolDescription(
                    name="sqlite_describe_table",
                    description="Get the schema information for a specific table",
                    input_schema=_schema(
                        {
                            "table_name": {
                                "type": "string",
                                "description": "Name of the table to describe",
                            }
                        },
                        ["table_name"],
                    ),
                ),
            ]
        )

    def call(self, request: CallToolRequest) -> CallToolResult:
        db_path = self.db_path
        if not self._initialized:
            init_db(db_path)
            self._initialized = True

        args = request.params.arguments or {}
        match request.params.name:
            case "sqlite_read_query":
                return _json_result(execute_read_query(_string_argument(args, "query"), db_path))
            case "sqlite_write_query":
                return _json_result(execute_write_query(_string_argument(args, "query"), db_path))
            case "sqlite_create_table":
                return _json_result(create_table(_string_argument(args, "query"), db_path))
            case "sqlite_list_tables":
                return _json_result(list_tables(db_path))
            case "sqlite_describe_table":
                table_name = _string_argument(args, "table_name")
                return _json_result(describe_table(table_name, db_path))
            case other:
                return text_result(f"Unknown tool: {other}", is_error=True)