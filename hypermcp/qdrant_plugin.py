"""Tool plugin storing and searching vector embeddings in Qdrant."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from .qdrant_client import Point, QdrantClient, QdrantError
from .types import (
    CallToolRequest,
    CallToolResult,
    ListToolsResult,
    ToolDescription,
    ToolError,
    text_result,
)

log = logging.getLogger(__name__)

DEFAULT_VECTOR_SIZE = 384
DEFAULT_LIMIT = 5


@contextmanager
def _qdrant_errors() -> Iterator[None]:
    try:
        yield
    except QdrantError as exc:
        raise ToolError(str(exc)) from exc


def get_qdrant_client(config: Mapping[str, str]) -> QdrantClient:
    """Build a client from the `QDRANT_URL` and optional `QDRANT_API_KEY` settings."""
    url = config.get("QDRANT_URL")
    if url is None:
        raise ToolError("QDRANT_URL configuration is required but not set")
    client = QdrantClient(url)
    api_key = config.get("QDRANT_API_KEY")
    if api_key is not None:
        client.api_key = api_key
    return client


def ensure_collection_exists(
    client: QdrantClient, collection_name: str, vector_size: int
) -> None:
    """Recreate the collection with the given vector size; failures are only logged."""
    try:
        exists = client.collection_exists(collection_name)
    except QdrantError:
        exists = False

    if exists:
        log.info("Collection `%s` exists", collection_name)
        try:
            client.delete_collection(collection_name)
            log.info("Collection `%s` deleted", collection_name)
        except QdrantError as exc:
            log.info("Error deleting collection: %s", exc)

    try:
        client.create_collection(collection_name, vector_size)
        log.info("Create collection result is ok")
    except QdrantError as exc:
        log.info("Create collection result is %s", exc)


def _string_argument(args: Mapping[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolError(f"{key} parameter is required")
    return value


def _vector_argument(args: Mapping[str, Any]) -> list[float]:
    value = args.get("vector")
    if not isinstance(value, list):
        raise ToolError("vector parameter is required")
    return [
        float(item)
        if isinstance(item, (int, float)) and not isinstance(item, bool)
        else 0.0
        for item in value
    ]


def _u64_argument(args: Mapping[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return default
    return value


class QdrantPlugin:
    """Answers the `qdrant_*` tools."""

    def __init__(self, config: Mapping[str, str] | None = None) -> None:
        self.config = dict(config or {})

    def describe(self) -> ListToolsResult:
        return ListToolsResult(
            tools=[
                ToolDescription(
                    name="qdrant_create_collection",
                    description="Creates a new collection in Qdrant with specified vector size",
                    input_schema={
                        "type": "object",
                        "properties": {
                            "collection_name": {
                                "type": "string",
                                "description": "The name of the collection to create",
                            },
                            "vector_size": {
                                "type": "integer",
                                "description": "The size of vectors to be stored in this collection",
                                "default": DEFAULT_VECTOR_SIZE,
                            },
                        },
                        "required": ["collection_name"],
                    },
                ),
                ToolDescription(
                    name="qdrant_store",
                    description="Stores a document with its vector embedding in Qdrant.",
                    input_schema={
                        "type": "object",
                        "properties": {
                            "collection_name": {
                                "type": "string",
                                "description": "The name of the collection to store the document in",
                            },
                            "text": {
                                "type": "string",
                                "description": "The text content to store",
                            },
                            "vector": {
                                "type": "array",
                                "items": {"type": "number"},
                                "description": "The vector embedding of the text.",
                            },
                        },
                        "required": ["collection_name", "text", "vector"],
                    },
                ),
                ToolDescription(
                    name="qdrant_find",
                    description="Finds similar documents in Qdrant using vector similarity search",
                    input_schema={
                        "type": "object",
                        "properties": {
                            "collection_name": {
                                "type": "string",
                                "description": "The name of the collection to search in",
                            },
                            "vector": {
                                "type": "array",
                                "items": {"type": "number"},
                                "description": "The query vector to search with.",
                            },
                            "limit": {
                                "type": "integer",
                                "description": "Maximum number of results to return",
                                "default": DEFAULT_LIMIT,
                            },
                        },
                        "required": ["collection_name", "vector"],
                    },
                ),
            ]
        )

    def call(self, request: CallToolRequest) -> CallToolResult:
        args = request.params.arguments or {}
        match request.params.name:
            case "qdrant_store":
                return self._store(args)
            case "qdrant_find":
                return self._find(args)
            case "qdrant_create_collection":
                return self._create_collection(args)
            case other:
                return text_result(f"Unknown tool: {other}", is_error=True)

    def _store(self, args: Mapping[str, Any]) -> CallToolResult:
        collection_name = _string_argument(args, "collection_name")
        vector = _vector_argument(args)
        text = _string_argument(args, "text")

        client = get_qdrant_client(self.config)
        ensure_collection_exists(client, collection_name, len(vector))

        point_id = str(uuid.uuid4())
        point = Point(id=point_id, vector=vector, payload={"text": text, "metadata": {}})
        with _qdrant_errors():
            client.upsert_points(collection_name, [point])

        return text_result(f"Successfully stored document with ID: {point_id}")

    def _find(self, args: Mapping[str, Any]) -> CallToolResult:
        collection_name = _string_argument(args, "collection_name")
        vector = _vector_argument(args)
        limit = _u64_argument(args, "limit", DEFAULT_LIMIT)

        client = get_qdrant_client(self.config)
        with _qdrant_errors():
            found = client.search_points(collection_name, vector, limit)

        lines = [
            f"Score: {point.score:.4f} - {point.payload['text']}"
            for point in found
            if point.payload is not None and isinstance(point.payload.get("text"), str)
        ]
        return text_result("\n".join(lines))

    def _create_collection(self, args: Mapping[str, Any]) -> CallToolResult:
        collection_name = _string_argument(args, "collection_name")
        vector_size = _u64_argument(args, "vector_size", DEFAULT_VECTOR_SIZE) & 0xFFFFFFFF

        client = get_qdrant_client(self.config)
        ensure_collection_exists(client, collection_name, vector_size)

        return text_result(
            f"Successfully created collection '{collection_name}' with vector size {vector_size}"
        )