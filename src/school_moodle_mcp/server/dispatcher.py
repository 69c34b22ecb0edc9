"""
Tool Dispatcher

Routes one (tool name, arguments) pair through validation, a freshly built
MoodleClient and the tool registry, and wraps the outcome in a uniform
envelope:

- success: ``{"content": [{"type": "text", "text": ...}]}``
- failure: ``{"error": {"code": ..., "type": ..., "message": ...}}``

Dispatch Flow:
1. Validate arguments; failures return immediately, no client is built
2. Build a MoodleClient from the call's token (never reused across calls)
3. Execute the tool through the registry, then close the client
4. Serialize the result; typed errors keep their code, anything else
   becomes InternalError with the original message
5. Write one audit record for the call
"""

import dataclasses
import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

from ..audit import NullAuditLogger
from ..catalog import InputValidator
from ..config import Config
from ..errors import InternalError, ToolError
from ..moodle.client import MoodleClient
from ..tools import ToolRegistry

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], MoodleClient]


class CallLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the tool name and call id."""

    def process(self, msg, kwargs):
        return f"[{self.extra['tool']}#{self.extra['call_id']}] {msg}", kwargs


def format_result(value: Any) -> str:
    """Render a tool result as the text of a success envelope."""
    if isinstance(value, str):
        return value
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def success_envelope(value: Any) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": format_result(value)}]}


def error_envelope(error: ToolError) -> Dict[str, Any]:
    return {"error": error.to_dict()}


class ToolDispatcher:
    """
    Single entry point for tool calls.

    Args:
        validator: InputValidator bound to the tool catalog
        config: Server configuration (site URL, timeouts, digest size)
        registry: ToolRegistry; built from config when omitted
        client_factory: Callable building a MoodleClient from a token
        audit_logger: Audit sink; a no-op sink when omitted
    """

    def __init__(
        self,
        validator: InputValidator,
        config: Config,
        registry: Optional[ToolRegistry] = None,
        client_factory: Optional[ClientFactory] = None,
        audit_logger: Optional[NullAuditLogger] = None,
    ):
        self.validator = validator
        self.config = config
        self.registry = registry or ToolRegistry(
            forum_digest_size=config.forum_digest_size
        )
        self.client_factory = client_factory or self._build_client
        self.audit_logger = audit_logger or NullAuditLogger()

    def _build_client(self, token: str) -> MoodleClient:
        return MoodleClient(
            self.config.moodle_url,
            token,
            timeout=self.config.moodle_timeout,
            verify=self.config.moodle_verify_ssl,
        )

    async def dispatch(self, tool_name: str, arguments: Any) -> Dict[str, Any]:
        """
        Execute one tool call and return its envelope.

        Never raises: every failure is returned as an error envelope.
        """
        start_time = time.monotonic()
        call_logger = CallLoggerAdapter(
            logger, {"tool": tool_name, "call_id": uuid.uuid4().hex[:8]}
        )

        try:
            envelope = await self._dispatch(tool_name, arguments, call_logger)
        except ToolError as e:
            call_logger.warning(f"Tool call failed ({e.error_type}): {e.message}")
            envelope = error_envelope(e)
        except Exception as e:
            call_logger.error(f"Unexpected error: {e}", exc_info=True)
            envelope = error_envelope(InternalError(str(e) or type(e).__name__))

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        error = envelope.get("error")
        self.audit_logger.log_tool_call(
            tool_name=tool_name,
            args=arguments if isinstance(arguments, dict) else {},
            status="fail" if error else "ok",
            elapsed_ms=elapsed_ms,
            error_type=error["type"] if error else "",
        )
        call_logger.debug(f"Completed in {elapsed_ms}ms")
        return envelope

    async def _dispatch(
        self, tool_name: str, arguments: Any, call_logger: CallLoggerAdapter
    ) -> Dict[str, Any]:
        result = self.validator.validate(tool_name, arguments)
        if not result.is_valid:
            raise result.error

        call = result.validated_data
        call_logger.info(f"Calling tool with params {sorted(call.params)}")

        client = self.client_factory(call.token)
        try:
            value = await self.registry.execute_tool(
                tool_name, client, call.params, call_logger
            )
        finally:
            await client.aclose()

        return success_envelope(value)
