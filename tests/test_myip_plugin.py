import pytest
import requests
import responses

from hypermcp.myip_plugin import TRACE_URL, MyIpPlugin, parse_trace_ip
from hypermcp.types import CallToolRequest, ContentType, Params, ToolError


def _request():
    return CallToolRequest(params=Params(name="myip"))


def test_parse_trace_ip():
    assert parse_trace_ip("fl=1\nh=1.1.1.1\nip=203.0.113.7\nts=1\n") == "203.0.113.7"


def test_parse_trace_ip_handles_crlf():
    assert parse_trace_ip("h=x\r\nip=198.51.100.2\r\n") == "198.51.100.2"


def test_parse_trace_ip_strips_repeated_prefix():
    assert parse_trace_ip("ip=ip=192.0.2.1") == "192.0.2.1"


def test_parse_trace_ip_missing():
    with pytest.raises(ToolError, match="Could not find IP address"):
        parse_trace_ip("fl=1\nh=1.1.1.1\n")


def test_call_returns_ip():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, TRACE_URL, body="fl=1\nip=203.0.113.7\nts=1\n")
        result = MyIpPlugin().call(_request())
    assert result.is_error is None
    assert len(result.content) == 1
    assert result.content[0].text == "203.0.113.7"
    assert result.content[0].mime_type == "text/plain"
    assert result.content[0].type is ContentType.TEXT


def test_call_connection_error():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, TRACE_URL, body=requests.ConnectionError("down"))
        with pytest.raises(ToolError, match="Failed to make HTTP request"):
            MyIpPlugin().call(_request())


def test_call_invalid_utf8():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, TRACE_URL, body=b"\xff\xfe ip=1")
        with pytest.raises(ToolError, match="UTF-8"):
            MyIpPlugin().call(_request())


def test_call_without_ip_line():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, TRACE_URL, body="fl=1\n")
        with pytest.raises(ToolError):
            MyIpPlugin().call(_request())


def test_describe():
    tools = MyIpPlugin().describe().tools
    assert [tool.name for tool in tools] == ["myip"]
    assert tools[0].input_schema == {"type": "object", "properties": {}, "required": []}