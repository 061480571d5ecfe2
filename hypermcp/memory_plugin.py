"""Tool plugin that stores and retrieves pieces of text in a SQLite database."""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
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

_CREATE_TABLE = """CREATE TABLE IF NOT EXISTS memories (
            id TEXT PRIMARY KEY,
            content TEXT NOT NULL,
            created_at INTEGER DEFAULT (strftime('%s', 'now'))
        )"""


@dataclass(frozen=True)
class Memory:
    """A stored piece of content and its identifier."""

    id: str
    content: str

    def to_json(self) -> str:
        return json.dumps(
            {"id": self.id, "content": self.content},
            separators=(",", ":"),
            ensure_ascii=False,
        )


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


def init_db(db_path: str | Path) -> None:
    """Create the database file and the memories table if they are missing."""
    with _connection(db_path, create=True) as conn:
        conn.execute(_CREATE_TABLE)


def store_memory(content: str, db_path: str | Path) -> str:
    """Store ``content`` under a fresh identifier and return the identifier."""
    memory_id = str(uuid.uuid4())
    with _connection(db_path) as conn:
        conn.execute("INSERT INTO memories (id, content) VALUES (?, ?)", (memory_id, content))
    return memory_id


def get_memory(memory_id: str, db_path: str | Path) -> Memory | None:
    """Fetch the memory with the given identifier, or None if there is none."""
    with _connection(db_path) as conn:
        row = conn.execute(
            "SELECT id, content FROM memories WHERE id = ?", (memory_id,)
        ).fetchone()
    if row is None:
        return None
    return Memory(id=row[0], content=row[1])


def _string_argument(args: Mapping[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolError(f"{key} parameter is required")
    return value


def _json_result(text: str) -> CallToolResult:
    return CallToolResult(
        content=[Content(type=ContentType.TEXT, text=text, mime_type=_JSON_MIME)]
    )


class MemoryPlugin:
    """Answers the `store_memory` and `get_memory` tools."""

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
                    name="store_memory",
                    description="Store content in memory and return a unique ID",
                    input_schema={
                        "type": "object",
                        "properties": {
                            "content": {
                                "type": "string",
                                "description": "The content to store",
                            }
                        },
                        "required": ["content"],
                    },
                ),
                ToolDescription(
                    name="get_memory",
                    description="Retrieve content from memory by ID",
                    input_schema={
                        "type": "object",
                        "properties": {
                            "id": {
                                "type": "string",
                                "description": "The ID of the content to retrieve",
                            }
                        },
                        "required": ["id"],
                    },
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
            case "store_memory":
                content = _string_argument(args, "content")
                memory_id = store_memory(content, db_path)
                return _json_result(json.dumps({"id": memory_id}, separators=(",", ":")))
            case "get_memory":
                memory_id = _string_argument(args, "id")
                memory = get_memory(memory_id, db_path)
                if memory is None:
                    return text_result("Memory not found", is_error=True)
                return _json_result(memory.to_json())
            case other:
                return text_result(f"Unknown tool: {other}", is_error=True)