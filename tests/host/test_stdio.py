"""Tests for the line-delimited JSON host."""

import asyncio
import io
import json

from pivot_host.interfaces.host.stdio import StdioHost, serve_stdio


def test_serve_stdio(engine):
    requests = [
        {"id": 1, "cmd": "init"},
        {"id": 2, "cmd": "table", "name": "t", "args": [{"x": "integer"}]},
        {"id": 3, "cmd": "table_method", "name": "t", "method": "update", "args": [[{"x": 5}]]},
        {"id": 4, "cmd": "table_method", "name": "t", "method": "schema"},
    ]
    stream = io.StringIO("\n".join(json.dumps(r) for r in requests) + "\n\n{not json\n")
    output = io.StringIO()

    asyncio.run(serve_stdio(lambda payload: engine, stream, output))

    replies = [json.loads(line) for line in output.getvalue().splitlines()]
    assert replies[:4] == [
        {"id": 1, "data": "ready"},
        {"id": 2, "data": "t"},
        {"id": 3, "data": True},
        {"id": 4, "data": {"x": "integer"}},
    ]
    assert replies[4]["id"] is None
    assert replies[4]["error"]["name"] == "JSONDecodeError"
    assert len(replies) == 5


def test_blank_lines_are_skipped():
    output = io.StringIO()
    host = StdioHost(output=output)
    host.process_line("   \n")
    assert output.getvalue() == ""


def test_errors_before_init():
    output = io.StringIO()
    host = StdioHost(output=output)
    host.process_line('{"id": 7, "cmd": "view_method", "name": "v", "method": "to_json"}')
    reply = json.loads(output.getvalue())
    assert reply["id"] == 7
    assert reply["error"]["name"] == "EngineNotReadyError"
