"""Wire types exchanged between the MCP service and its tool plugins."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ToolError(Exception):
    """Raised when a plugin cannot carry out a tool call."""


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    RESOURCE = "resource"


class Role(str, Enum):
    ASSISTANT = "assistant"
    USER = "user"


def _dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def _object(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _required(data: dict[str, Any], key: str, what: str) -> Any:
    if key not in data:
        raise ValueError(f"missing field `{key}` in {what}")
    return data[key]


def _string(value: Any, key: str, what: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field `{key}` in {what} must be a string")
    return value


def _optional_string(data: dict[str, Any], key: str, what: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    return _string(value, key, what)


def _list(value: Any, key: str, what: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"field `{key}` in {what} must be an array")
    return value


@dataclass
class TextAnnotation:
    """Audience and priority hints attached to a piece of content."""

    audience: list[Role] = field(default_factory=list)
    priority: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "audience": [role.value for role in self.audience],
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Any) -> TextAnnotation:
        data = _object(data, "annotations")
        audience = _list(_required(data, "audience", "annotations"), "audience", "annotations")
        priority = _required(data, "priority", "annotations")
        if isinstance(priority, bool) or not isinstance(priority, (int, float)):
            raise ValueError("field `priority` in annotations must be a number")
        return cls(audience=[Role(role) for role in audience], priority=float(priority))


@dataclass
class Content:
    """One item of a tool result: text, image data or a resource."""

    type: ContentType = ContentType.TEXT
    text: str | None = None
    mime_type: str | None = None
    data: str | None = None
    annotations: TextAnnotation | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.annotations is not None:
            result["annotations"] = self.annotations.to_dict()
        if self.data is not None:
            result["data"] = self.data
        if self.mime_type is not None:
            result["mimeType"] = self.mime_type
        if self.text is not None:
            result["text"] = self.text
        result["type"] = ContentType(self.type).value
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Content:
        data = _object(data, "content")
        annotations = data.get("annotations")
        return cls(
            type=ContentType(_required(data, "type", "content")),
            text=_optional_string(data, "text", "content"),
            mime_type=_optional_string(data, "mimeType", "content"),
            data=_optional_string(data, "data", "content"),
            annotations=None if annotations is None else TextAnnotation.from_dict(annotations),
        )


@dataclass
class CallToolResult:
    """The outcome of a tool call."""

    content: list[Content] = field(default_factory=list)
    is_error: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"content": [item.to_dict() for item in self.content]}
        if self.is_error is not None:
            result["isError"] = self.is_error
        return result

    @classmethod
    def from_dict(cls, data: Any) -> CallToolResult:
        data = _object(data, "tool result")
        content = _list(_required(data, "content", "tool result"), "content", "tool result")
        is_error = data.get("isError")
        if is_error is not None and not isinstance(is_error, bool):
            raise ValueError("field `isError` in tool result must be a boolean")
        return cls(content=[Content.from_dict(item) for item in content], is_error=is_error)

    def to_json(self) -> str:
        return _dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str | bytes) -> CallToolResult:
        return cls.from_dict(json.loads(text))


@dataclass
class Params:
    """Name and arguments of the tool being called."""

    name: str
    arguments: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.arguments is not None:
            result["arguments"] = self.arguments
        result["name"] = self.name
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Params:
        data = _object(data, "params")
        name = _string(_required(data, "name", "params"), "name", "params")
        arguments = data.get("arguments")
        if arguments is not None and not isinstance(arguments, dict):
            raise ValueError("field `arguments` in params must be a JSON object")
        return cls(name=name, arguments=arguments)


@dataclass
class CallToolRequest:
    """A request to run one tool."""

    params: Params
    method: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.method is not None:
            result["method"] = self.method
        result["params"] = self.params.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Any) -> CallToolRequest:
        data = _object(data, "request")
        return cls(
            params=Params.from_dict(_required(data, "params", "request")),
            method=_optional_string(data, "method", "request"),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> CallToolRequest:
        return cls.from_dict(json.loads(text))


@dataclass
class ToolDescription:
    """A tool offered by a plugin, with the JSON schema of its input."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "inputSchema": self.input_schema,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ToolDescription:
        data = _object(data, "tool")
        schema = _required(data, "inputSchema", "tool")
        if not isinstance(schema, dict):
            raise ValueError("field `inputSchema` in tool must be a JSON object")
        return cls(
            name=_string(_required(data, "name", "tool"), "name", "tool"),
            description=_string(_required(data, "description", "tool"), "description", "tool"),
            input_schema=schema,
        )


@dataclass
class ListToolsResult:
    """The tools offered by one plugin or by the whole service."""

    tools: list[ToolDescription] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"tools": [tool.to_dict() for tool in self.tools]}

    @classmethod
    def from_dict(cls, data: Any) -> ListToolsResult:
        data = _object(data, "tool list")
        tools = _list(_required(data, "tools", "tool list"), "tools", "tool list")
        return cls(tools=[ToolDescription.from_dict(tool) for tool in tools])

    def to_json(self) -> str:
        return _dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str | bytes) -> ListToolsResult:
        return cls.from_dict(json.loads(text))


@dataclass
class BlobResourceContents:
    """A binary resource, base64 encoded."""

    blob: str
    uri: str
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"blob": self.blob}
        if self.mime_type is not None:
            result["mimeType"] = self.mime_type
        result["uri"] = self.uri
        return result

    @classmethod
    def from_dict(cls, data: Any) -> BlobResourceContents:
        data = _object(data, "blob resource")
        return cls(
            blob=_string(_required(data, "blob", "blob resource"), "blob", "blob resource"),
            uri=_string(_required(data, "uri", "blob resource"), "uri", "blob resource"),
            mime_type=_optional_string(data, "mimeType", "blob resource"),
        )


@dataclass
class TextResourceContents:
    """A resource that can be represented as text."""

    text: str
    uri: str
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.mime_type is not None:
            result["mimeType"] = self.mime_type
        result["text"] = self.text
        result["uri"] = self.uri
        return result

    @classmethod
    def from_dict(cls, data: Any) -> TextResourceContents:
        data = _object(data, "text resource")
        return cls(
            text=_string(_required(data, "text", "text resource"), "text", "text resource"),
            uri=_string(_required(data, "uri", "text resource"), "uri", "text resource"),
            mime_type=_optional_string(data, "mimeType", "text resource"),
        )


def text_result(
    text: str, mime_type: str | None = None, is_error: bool | None = None
) -> CallToolResult:
    """Build a result holding a single text item."""
    return CallToolResult(
        content=[Content(type=ContentType.TEXT, text=text, mime_type=mime_type)],
        is_error=is_error,
    )