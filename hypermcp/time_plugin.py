"""Tool plugin offering time operations in UTC."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from .types import (
    CallToolRequest,
    CallToolResult,
    Content,
    ContentType,
    ListToolsResult,
    ToolDescription,
    ToolError,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_DESCRIPTION = (
    "Time operations plugin. It provides the following operations:\n"
    "        \n"
    "- `get_time_utc`: Returns the current time in the UTC timezone. Takes no parameters.\n"
    "- `parse_time`: Takes a `time_rfc2822` string in RFC2822 format and returns the "
    "timestamp in UTC timezone.\n"
    "- `time_offset`: Takes integer `timestamp` and `offset` parameters. Adds a time offset "
    "to a given timestamp and returns the new timestamp in UTC timezone.\n"
    "                \n"
    "Always use this tool to compute time operations, especially when it is necessary\n"
    "to compute time differences or offsets."
)

_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {
            "type": "string",
            "description": "The name of the operation to perform. ",
            "enum": ["get_time_utc", "time_offset", "parse_time"],
        },
        "timestamp": {
            "type": "integer",
            "description": "The timestamp used for `time_offset`.",
        },
        "offset": {
            "type": "integer",
            "description": "The offset to add to the time in seconds. ",
        },
        "time_rfc2822": {
            "type": "string",
            "description": "The time in RFC2822 format used in `parse_time`",
        },
    },
}


def _format_rfc2822(moment: datetime) -> str:
    offset = moment.utcoffset() or timedelta(0)
    minutes = int(offset.total_seconds() // 60)
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return (
        f"{_WEEKDAYS[moment.weekday()]}, {moment.day} {_MONTHS[moment.month - 1]} "
        f"{moment.year:04d} {moment.hour:02d}:{moment.minute:02d}:{moment.second:02d} "
        f"{sign}{hours:02d}{mins:02d}"
    )


def _describe_moment(moment: datetime) -> dict[str, str]:
    seconds = (moment - _EPOCH) // timedelta(seconds=1)
    return {"utc_time": str(seconds), "utc_time_rfc2822": _format_rfc2822(moment)}


def get_time_utc() -> dict[str, str]:
    """Return the current UTC time as a timestamp and an RFC 2822 string."""
    return _describe_moment(datetime.now(timezone.utc))


def parse_time(time_rfc2822: str) -> dict[str, str]:
    """Parse an RFC 2822 date, keeping its offset in the formatted output."""
    try:
        moment = parsedate_to_datetime(time_rfc2822)
    except (TypeError, ValueError, IndexError) as exc:
        raise ToolError(f"invalid RFC 2822 time: {time_rfc2822!r}") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return _describe_moment(moment)


def time_offset(timestamp: int, offset: int) -> dict[str, str]:
    """Add ``offset`` seconds to a UNIX timestamp."""
    try:
        moment = _EPOCH + timedelta(seconds=timestamp) + timedelta(seconds=offset)
    except OverflowError as exc:
        raise ToolError(f"timestamp out of range: {timestamp} + {offset}") from exc
    return _describe_moment(moment)


def _int_argument(args: Mapping[str, Any], key: str) -> int:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ToolError(f"`{key}` must be an integer")
    return value


class TimePlugin:
    """Answers the `time` tool."""

    def __init__(self, config: Mapping[str, str] | None = None) -> None:
        self.config = dict(config or {})

    def describe(self) -> ListToolsResult:
        return ListToolsResult(
            tools=[
                ToolDescription(
                    name="time",
                    description=_DESCRIPTION,
                    input_schema=json.loads(json.dumps(_INPUT_SCHEMA)),
                )
            ]
        )

    def call(self, request: CallToolRequest) -> CallToolResult:
        args = request.params.arguments or {}
        name = args.get("name")
        if not isinstance(name, str):
            raise ToolError("`name` must be a string")

        match name:
            case "get_time_utc":
                payload = get_time_utc()
            case "parse_time":
                text = args.get("time_rfc2822")
                if not isinstance(text, str):
                    raise ToolError("`time_rfc2822` must be a string")
                payload = parse_time(text)
            case "time_offset":
                payload = time_offset(_int_argument(args, "timestamp"), _int_argument(args, "offset"))
            case _:
                raise ToolError("unknown command")

        return CallToolResult(
            content=[
                Content(
                    type=ContentType.TEXT,
                    text=json.dumps(payload, separators=(",", ":"), sort_keys=True),
                )
            ],
            is_error=False,
        )