"""
Unit tests for the MCP protocol implementation.

This module tests request parsing, method routing, the mapping of tool
errors to JSON-RPC error objects, and the stdio protocol loop.
"""

import json
from io import StringIO
from unittest.mock import AsyncMock, MagicMock

import pytest

TOKEN = "test-token-123"


@pytest.fixture
def dispatcher():
    from school_moodle_mcp.server.dispatcher import ToolDispatcher

    dispatcher = MagicMock(spec=ToolDispatcher)
    dispatcher.dispatch = AsyncMock(
        return_value={"content": [{"type": "text", "text": "[]"}]}
    )
    return dispatcher


@pytest.fixture
def output():
    return StringIO()


@pytest.fixture
def handler(catalog, dispatcher, output):
    from school_moodle_mcp.server.mcp import MCPProtocolHandler

    return MCPProtocolHandler(
        catalog,
        dispatcher,
        server_name="test-moodle-mcp",
        server_version="0.0.1-test",
        output_stream=output,
    )


def read_responses(output):
    return [json.loads(line) for line in output.getvalue().splitlines() if line]


class TestMCPRequest:
    """Test cases for MCPRequest parsing."""

    def test_from_json_request(self):
        from school_moodle_mcp.server.mcp import MCPRequest

        request = MCPRequest.from_json(
            {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}
        )

        assert request.method == "tools/list"
        assert request.id == 1
        assert request.params == {}
        assert not request.is_notification

    def test_from_json_notification(self):
        from school_moodle_mcp.server.mcp import MCPRequest

        request = MCPRequest.from_json(
            {"jsonrpc": "2.0", "method": "notifications/initialized"}
        )

        assert request.is_notification

    @pytest.mark.parametrize(
        "json_data, code",
        [
            ([1, 2], -32600),
            ({"id": 1}, -32600),
            ({"id": 1, "method": ""}, -32600),
            ({"id": 1, "method": "tools/call", "params": [1]}, -32602),
        ],
    )
    def test_from_json_invalid(self, json_data, code):
        from school_moodle_mcp.server.mcp import JSONRPCError, MCPRequest

        with pytest.raises(JSONRPCError) as exc_info:
            MCPRequest.from_json(json_data)

        assert exc_info.value.code == code


@pytest.mark.mcp
class TestParseMessage:
    def test_invalid_json(self, handler):
        from school_moodle_mcp.server.mcp import JSONRPCError

        with pytest.raises(JSONRPCError) as exc_info:
            handler.parse_message("{not json")

        assert exc_info.value.code == -32700

    def test_too_large(self, handler):
        from school_moodle_mcp.server.mcp import MAX_MESSAGE_BYTES, JSONRPCError

        with pytest.raises(JSONRPCError, match="too large"):
            handler.parse_message(" " * (MAX_MESSAGE_BYTES + 1))

    def test_too_deep(self, handler):
        from school_moodle_mcp.server.mcp import JSONRPCError

        nested = "[" * 30 + "]" * 30

        with pytest.raises(JSONRPCError, match="deeply nested"):
            handler.parse_message(
                f'{{"id": 1, "method": "ping", "params": {{"x": {nested}}}}}'
            )

    def test_array_too_large(self, handler):
        from school_moodle_mcp.server.mcp import JSONRPCError

        message = json.dumps({"id": 1, "method": "ping", "params": {"x": list(range(60))}})

        with pytest.raises(JSONRPCError, match="array too large"):
            handler.parse_message(message)


@pytest.mark.mcp
class TestHandleRequest:
    """Test method routing."""

    @pytest.mark.asyncio
    async def test_initialize(self, handler):
        from school_moodle_mcp.server.mcp import MCPRequest

        response = await handler.handle_request(
            MCPRequest(
                method="initialize",
                id=1,
                params={"protocolVersion": "2025-03-26", "clientInfo": {"name": "t"}},
            )
        )

        assert response["jsonrpc"] == "2.0"
        assert response["id"] == 1
        result = response["result"]
        assert result["protocolVersion"] == "2025-03-26"
        assert result["capabilities"] == {"tools": {"listChanged": False}}
        assert result["serverInfo"] == {
            "name": "test-moodle-mcp",
            "version": "0.0.1-test",
        }

    @pytest.mark.asyncio
    async def test_initialize_default_protocol_version(self, handler):
        from school_moodle_mcp.server.mcp import DEFAULT_PROTOCOL_VERSION, MCPRequest

        response = await handler.handle_request(MCPRequest(method="initialize", id=1))

        assert response["result"]["protocolVersion"] == DEFAULT_PROTOCOL_VERSION

    @pytest.mark.asyncio
    async def test_tools_list(self, handler, catalog):
        from school_moodle_mcp.server.mcp import MCPRequest

        response = await handler.handle_request(MCPRequest(method="tools/list", id=2))

        tools = response["result"]["tools"]
        assert [t["name"] for t in tools] == catalog.tool_names()
        for tool in tools:
            assert tool["description"]
            assert "moodle_token" in tool["inputSchema"]["required"]

    @pytest.mark.asyncio
    async def test_tools_call_success(self, handler, dispatcher):
        from school_moodle_mcp.server.mcp import MCPRequest

        arguments = {"moodle_token": TOKEN}
        response = await handler.handle_request(
            MCPRequest(
                method="tools/call",
                id=3,
                params={"name": "get_courses", "arguments": arguments},
            )
        )

        dispatcher.dispatch.assert_awaited_once_with("get_courses", arguments)
        assert response["result"] == {"content": [{"type": "text", "text": "[]"}]}

    @pytest.mark.asyncio
    async def test_tools_call_error_envelope(self, handler, dispatcher):
        from school_moodle_mcp.server.mcp import MCPRequest

        dispatcher.dispatch.return_value = {
            "error": {
                "code": -32010,
                "type": "UpstreamFault",
                "message": "Moodle error (invalidtoken): Invalid token",
                "upstream_code": "invalidtoken",
            }
        }

        response = await handler.handle_request(
            MCPRequest(
                method="tools/call",
                id=4,
                params={"name": "get_courses", "arguments": {"moodle_token": "bad"}},
            )
        )

        assert "result" not in response
        assert response["error"] == {
            "code": -32010,
            "message": "Moodle error (invalidtoken): Invalid token",
            "data": {"type": "UpstreamFault", "upstream_code": "invalidtoken"},
        }

    @pytest.mark.asyncio
    async def test_tools_call_missing_name(self, handler, dispatcher):
        from school_moodle_mcp.server.mcp import MCPRequest

        response = await handler.handle_request(
            MCPRequest(method="tools/call", id=5, params={"arguments": {}})
        )

        assert response["error"]["code"] == -32602
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ping(self, handler):
        from school_moodle_mcp.server.mcp import MCPRequest

        response = await handler.handle_request(MCPRequest(method="ping", id=6))

        assert response == {"jsonrpc": "2.0", "id": 6, "result": {}}

    @pytest.mark.asyncio
    async def test_unknown_method(self, handler):
        from school_moodle_mcp.server.mcp import MCPRequest

        response = await handler.handle_request(
            MCPRequest(method="resources/list", id=7)
        )

        assert response["error"]["code"] == -32601
        assert "resources/list" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_notification_gets_no_response(self, handler, dispatcher):
        from school_moodle_mcp.server.mcp import MCPRequest

        response = await handler.handle_request(
            MCPRequest(method="notifications/initialized")
        )

        assert response is None

    @pytest.mark.asyncio
    async def test_dispatcher_crash_is_internal_error(self, handler, dispatcher):
        from school_moodle_mcp.server.mcp import MCPRequest

        dispatcher.dispatch.side_effect = RuntimeError("boom")

        response = await handler.handle_request(
            MCPRequest(method="tools/call", id=8, params={"name": "get_courses"})
        )

        assert response["error"]["code"] == -32603
        assert "boom" in response["error"]["message"]


@pytest.mark.mcp
class TestProtocolLoop:
    """Test the stdio loop end to end with in-memory streams."""

    @pytest.mark.asyncio
    async def test_session(self, handler, dispatcher, output):
        lines = [
            {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
            {
                "jsonrpc": "2.0",
                "id": 3,
                "method": "tools/call",
                "params": {"name": "get_courses", "arguments": {"moodle_token": TOKEN}},
            },
        ]
        stdin = StringIO("\n".join(json.dumps(line) for line in lines) + "\n\n")

        await handler.run_protocol_loop(stdin)

        responses = {r["id"]: r for r in read_responses(output)}
        assert sorted(responses) == [1, 2, 3]
        assert "serverInfo" in responses[1]["result"]
        assert len(responses[2]["result"]["tools"]) == 7
        assert responses[3]["result"]["content"][0]["text"] == "[]"

    @pytest.mark.asyncio
    async def test_parse_error_answered_with_null_id(self, handler, output):
        await handler.run_protocol_loop(StringIO("garbage\n"))

        responses = read_responses(output)
        assert len(responses) == 1
        assert responses[0]["id"] is None
        assert responses[0]["error"]["code"] == -32700

    @pytest.mark.asyncio
    async def test_non_ascii_output(self, handler, dispatcher, output):
        dispatcher.dispatch.return_value = {
            "content": [{"type": "text", "text": "Matemática 6º ano"}]
        }
        request = {
            "jsonrpc": "2.0",
            "id": 9,
            "method": "tools/call",
            "params": {"name": "get_courses", "arguments": {"moodle_token": TOKEN}},
        }

        await handler.run_protocol_loop(StringIO(json.dumps(request) + "\n"))

        assert "Matemática 6º ano" in output.getvalue()
