import json
import time

import pytest

from hypermcp.time_plugin import TimePlugin, get_time_utc, parse_time, time_offset
from hypermcp.types import CallToolRequest, ContentType, Params, ToolError


def _request(arguments):
    return CallToolRequest(params=Params(name="time", arguments=arguments))


def test_parse_time_known_value():
    text = "Fri, 28 Nov 2014 21:00:09 +0900"
    assert parse_time(text) == {"utc_time": "1417176009", "utc_time_rfc2822": text}


def test_epoch_formatting():
    assert time_offset(0, 0)["utc_time_rfc2822"] == "Thu, 1 Jan 1970 00:00:00 +0000"


def test_single_digit_day_kept_unpadded():
    text = "Mon, 3 Jan 2022 08:05:01 +0000"
    assert parse_time(text)["utc_time_rfc2822"] == text


def test_negative_offset_preserved():
    text = "Tue, 1 Jul 2003 10:52:37 -0500"
    assert parse_time(text)["utc_time_rfc2822"] == text


def test_time_offset_round_trips_through_parse():
    result = time_offset(1417176009, 3600)
    assert int(result["utc_time"]) == 1417176009 + 3600
    assert parse_time(result["utc_time_rfc2822"]) == result


def test_negative_offset_moves_back():
    later = time_offset(1000, 0)
    earlier = time_offset(1000, -1000)
    assert int(later["utc_time"]) - int(earlier["utc_time"]) == 1000
    assert earlier["utc_time_rfc2822"] == time_offset(0, 0)["utc_time_rfc2822"]


def test_get_time_utc_is_now():
    before = int(time.time())
    result = get_time_utc()
    after = int(time.time())
    assert before <= int(result["utc_time"]) <= after
    assert result["utc_time_rfc2822"].endswith("+0000")
    assert parse_time(result["utc_time_rfc2822"]) == result


def test_parse_time_rejects_garbage():
    with pytest.raises(ToolError):
        parse_time("not a date")


def test_time_offset_overflow():
    with pytest.raises(ToolError):
        time_offset(10**20, 0)


def test_call_time_offset():
    plugin = TimePlugin()
    result = plugin.call(_request({"name": "time_offset", "timestamp": 0, "offset": 60}))
    assert result.is_error is False
    assert result.content[0].type is ContentType.TEXT
    assert json.loads(result.content[0].text) == time_offset(0, 60)


def test_call_parse_time():
    text = "Tue, 1 Jul 2003 10:52:37 -0500"
    result = TimePlugin().call(_request({"name": "parse_time", "time_rfc2822": text}))
    assert json.loads(result.content[0].text) == parse_time(text)


def test_call_get_time_utc():
    result = TimePlugin().call(_request({"name": "get_time_utc"}))
    payload = json.loads(result.content[0].text)
    assert set(payload) == {"utc_time", "utc_time_rfc2822"}


def test_call_unknown_command():
    with pytest.raises(ToolError, match="unknown command"):
        TimePlugin().call(_request({"name": "sleep"}))


def test_call_missing_name():
    with pytest.raises(ToolError):
        TimePlugin().call(_request(None))


def test_call_rejects_float_timestamp():
    with pytest.raises(ToolError, match="timestamp"):
        TimePlugin().call(_request({"name": "time_offset", "timestamp": 1.5, "offset": 0}))


def test_describe():
    tools = TimePlugin().describe().tools
    assert [tool.name for tool in tools] == ["time"]
    schema = tools[0].input_schema
    assert schema["required"] == ["name"]
    assert schema["properties"]["name"]["enum"] == ["get_time_utc", "time_offset", "parse_time"]