"""Tool plugin reporting the public IP address of the host."""

from __future__ import annotations

from collections.abc import Mapping

import requests

from .types import (
    CallToolRequest,
    CallToolResult,
    Content,
    ContentType,
    ListToolsResult,
    ToolDescription,
    ToolError,
)

TRACE_URL = "https://1.1.1.1/cdn-cgi/trace"
_PREFIX = "ip="


def parse_trace_ip(text: str) -> str:
    """Extract the address from the `ip=` line of a trace response."""
    for line in text.split("\n"):
        line = line.removesuffix("\r")
        if line.startswith(_PREFIX):
            while line.startswith(_PREFIX):
                line = line[len(_PREFIX):]
            return line
    raise ToolError("Could not find IP address in response")


class MyIpPlugin:
    """Answers the `myip` tool."""

    def __init__(self, config: Mapping[str, str] | None = None) -> None:
        self.config = dict(config or {})

    def describe(self) -> ListToolsResult:
        return ListToolsResult(
            tools=[
                ToolDescription(
                    name="myip",
                    description="Get the current IP address using Cloudflare's service",
                    input_schema={"type": "object", "properties": {}, "required": []},
                )
            ]
        )

    def call(self, request: CallToolRequest) -> CallToolResult:
        try:
            response = requests.get(TRACE_URL, timeout=30)
        except requests.RequestException as exc:
            raise ToolError(f"Failed to make HTTP request: {exc}") from exc

        try:
            text = response.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ToolError(f"Failed to parse response as UTF-8: {exc}") from exc

        return CallToolResult(
            content=[
                Content(
                    type=ContentType.TEXT,
                    text=parse_trace_ip(text),
                    mime_type="text/plain",
                )
            ]
        )