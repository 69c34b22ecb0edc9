"""
MCP Protocol Implementation

This module implements the Model Context Protocol (MCP) message handling
over stdio: newline-delimited JSON-RPC 2.0 messages on stdin, responses on
stdout. Logging goes to stderr so it never corrupts the protocol channel.

Supported methods:
- initialize: server identity and capabilities
- tools/list: the tool catalog
- tools/call: one tool call through the dispatcher
- ping: liveness check

Messages without an ``id`` are notifications and never get a response.
"""

import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set, TextIO

from ..catalog import ToolCatalog
from .dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
DEFAULT_PROTOCOL_VERSION = "2024-11-05"

MAX_MESSAGE_BYTES = 1024 * 1024
MAX_JSON_DEPTH = 20
MAX_JSON_NODES = 1000
MAX_OBJECT_KEYS = 100
MAX_ARRAY_ITEMS = 50

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class JSONRPCError(Exception):
    """Protocol-level error answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_json(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data:
            error["data"] = self.data
        return error


@dataclass
class MCPRequest:
    """
    Represents an incoming JSON-RPC request or notification.

    ``id`` is None for notifications.
    """

    method: str
    id: Any = None
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_notification(self) -> bool:
        return self.id is None

    @classmethod
    def from_json(cls, json_data: Any) -> "MCPRequest":
        """
        Parse a request from decoded JSON.

        Raises:
            JSONRPCError: If the message is not a valid JSON-RPC request
        """
        if not isinstance(json_data, dict):
            raise JSONRPCError(INVALID_REQUEST, "Request must be a JSON object")

        method = json_data.get("method")
        if not isinstance(method, str) or not method:
            raise JSONRPCError(INVALID_REQUEST, "Missing required field: method")

        params = json_data.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise JSONRPCError(INVALID_PARAMS, "params must be an object")

        return cls(method=method, id=json_data.get("id"), params=params)


def success_response(request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: Any, error: JSONRPCError) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.to_json()}


class MCPProtocolHandler:
    """
    Handles MCP protocol communication via stdin/stdout.

    This class manages JSON-RPC message parsing, method routing and response
    writing. Tool calls run as independent asyncio tasks, so a slow Moodle
    request does not block other calls.
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        dispatcher: ToolDispatcher,
        server_name: str,
        server_version: str,
        output_stream: Optional[TextIO] = None,
    ):
        """
        Initialize the MCP protocol handler.

        Args:
            catalog: Tool catalog served by tools/list
            dispatcher: ToolDispatcher executing tools/call
            server_name: Name advertised in initialize
            server_version: Version advertised in initialize
            output_stream: Where responses are written (stdout by default)
        """
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.server_name = server_name
        self.server_version = server_version
        self.output_stream = output_stream
        self._pending: Set[asyncio.Task] = set()

    def parse_message(self, line: str) -> MCPRequest:
        """
        Decode one line into a request, enforcing size and complexity limits.

        Raises:
            JSONRPCError: On malformed or oversized input
        """
        if len(line) > MAX_MESSAGE_BYTES:
            raise JSONRPCError(INVALID_REQUEST, "Request too large")

        try:
            json_data = json.loads(line)
        except json.JSONDecodeError as e:
            raise JSONRPCError(PARSE_ERROR, f"Invalid JSON: {e}")

        try:
            if self._count_json_nodes(json_data) > MAX_JSON_NODES:
                raise ValueError("Request too complex")
        except ValueError as e:
            raise JSONRPCError(INVALID_REQUEST, str(e))

        return MCPRequest.from_json(json_data)

    def _count_json_nodes(self, obj: Any, depth: int = 0) -> int:
        """
        Count JSON nodes to reject pathological inputs.

        Raises:
            ValueError: If the structure is too deep or too wide
        """
        if depth > MAX_JSON_DEPTH:
            raise ValueError("JSON structure too deeply nested")

        count = 1
        if isinstance(obj, dict):
            if len(obj) > MAX_OBJECT_KEYS:
                raise ValueError("JSON object too complex")
            for value in obj.values():
                count += self._count_json_nodes(value, depth + 1)
        elif isinstance(obj, list):
            if len(obj) > MAX_ARRAY_ITEMS:
                raise ValueError("JSON array too large")
            for item in obj:
                count += self._count_json_nodes(item, depth + 1)
        return count

    async def handle_request(self, request: MCPRequest) -> Optional[Dict[str, Any]]:
        """
        Handle one request and return its response, or None for notifications.
        """
        logger.debug(f"Handling MCP request: {request.method}")

        if request.is_notification:
            logger.debug(f"Notification received: {request.method}")
            return None

        try:
            if request.method == "initialize":
                result = self._handle_initialize(request.params)
            elif request.method == "tools/list":
                result = self._handle_list_tools()
            elif request.method == "tools/call":
                result = await self._handle_call_tool(request.params)
            elif request.method == "ping":
                result = {}
            else:
                raise JSONRPCError(
                    METHOD_NOT_FOUND, f"Unsupported method: {request.method}"
                )
        except JSONRPCError as e:
            return error_response(request.id, e)
        except Exception as e:
            logger.error(f"Request handling failed: {e}", exc_info=True)
            return error_response(
                request.id,
                JSONRPCError(INTERNAL_ERROR, f"Request handling failed: {e}"),
            )

        return success_response(request.id, result)

    def _handle_initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        protocol_version = params.get("protocolVersion") or DEFAULT_PROTOCOL_VERSION
        client_info = params.get("clientInfo") or {}
        logger.info(
            f"Client connected: {client_info.get('name', 'unknown')} "
            f"(protocol {protocol_version})"
        )
        return {
            "protocolVersion": protocol_version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
        }

    def _handle_list_tools(self) -> Dict[str, Any]:
        return {"tools": [tool.to_mcp() for tool in self.catalog.list_tools()]}

    async def _handle_call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise JSONRPCError(INVALID_PARAMS, "Tool name is required for tools/call")

        envelope = await self.dispatcher.dispatch(name, params.get("arguments"))

        error = envelope.get("error")
        if error:
            raise JSONRPCError(
                error["code"],
                error["message"],
                data={k: v for k, v in error.items() if k not in ("code", "message")},
            )
        return envelope

    def write_response(self, response: Dict[str, Any]) -> None:
        """Write one response line, falling back to an internal error."""
        try:
            json_str = json.dumps(response, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Response serialization failed: {e}")
            json_str = json.dumps(
                error_response(
                    response.get("id"),
                    JSONRPCError(INTERNAL_ERROR, "Response serialization failed"),
                ),
                separators=(",", ":"),
            )
        print(json_str, file=self.output_stream or sys.stdout, flush=True)

    async def process_line(self, line: str) -> None:
        """Parse, handle and answer one input line."""
        line = line.strip()
        if not line:
            return

        try:
            request = self.parse_message(line)
        except JSONRPCError as e:
            logger.warning(f"Request parsing error: {e.message}")
            self.write_response(error_response(None, e))
            return

        response = await self.handle_request(request)
        if response is not None:
            self.write_response(response)

    async def run_protocol_loop(self, input_stream: Optional[TextIO] = None) -> None:
        """
        Run the main MCP protocol loop until EOF.

        Each line is processed in its own task; pending tasks are awaited
        before the loop returns.
        """
        stream = input_stream or sys.stdin
        loop = asyncio.get_running_loop()
        logger.info("Starting MCP protocol loop")

        try:
            while True:
                line = await loop.run_in_executor(None, stream.readline)
                if not line:
                    logger.info("EOF received, shutting down protocol loop")
                    break

                task = asyncio.create_task(self.process_line(line))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

            if self._pending:
                await asyncio.gather(*self._pending, return_exceptions=True)
        finally:
            logger.info("MCP protocol loop terminated")
