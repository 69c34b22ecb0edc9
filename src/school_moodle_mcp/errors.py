"""
Error taxonomy for the Moodle MCP server.

Every failure that can reach a tool caller is a ToolError subclass with a
stable numeric code (JSON-RPC / MCP range) and a short type name. The
dispatcher turns them into ``{"error": {...}}`` envelopes; anything that is
not a ToolError is wrapped into InternalError before it leaves the server.

Codes:
- -32602 InvalidParams: caller input failed validation
- -32601 MethodNotFound / UnknownTool: no such tool
- -32603 InternalError: unexpected failure
- -32004 NotFound: course, activity or assignment does not exist upstream
- -32010 UpstreamFault: Moodle reported an application error
- -32011 UpstreamUnavailable: transport failure reaching Moodle
- -32012 UpstreamShapeError: Moodle answered with an unexpected shape
"""

from typing import Any, Dict, Optional


class ToolError(Exception):
    """Base class for errors surfaced to tool callers."""

    code = -32603
    error_type = "ToolError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Render the error for a response envelope."""
        return {"code": self.code, "type": self.error_type, "message": self.message}


class InvalidParamsError(ToolError):
    """Raised when tool arguments fail validation."""

    code = -32602
    error_type = "InvalidParams"


class MethodNotFoundError(ToolError):
    """Raised when the requested method or tool does not exist."""

    code = -32601
    error_type = "MethodNotFound"


class UnknownToolError(MethodNotFoundError):
    """Raised by the validator when no schema exists for a tool name."""

    error_type = "UnknownTool"


class InternalError(ToolError):
    """Wraps unexpected failures, keeping the original message."""

    code = -32603
    error_type = "InternalError"


class MoodleError(ToolError):
    """Base class for failures talking to Moodle."""


class NotFoundError(MoodleError):
    """Raised when a referenced course, activity or assignment does not exist."""

    code = -32004
    error_type = "NotFound"


class UpstreamFault(MoodleError):
    """Moodle answered with an exception payload."""

    code = -32010
    error_type = "UpstreamFault"

    def __init__(self, errorcode: Optional[str], message: str):
        self.errorcode = errorcode or "unknown"
        super().__init__(f"Moodle error ({self.errorcode}): {message}")

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["upstream_code"] = self.errorcode
        return result


class UpstreamUnavailable(MoodleError):
    """Moodle could not be reached or returned an unreadable response."""

    code = -32011
    error_type = "UpstreamUnavailable"


class UpstreamShapeError(MoodleError):
    """Moodle returned data in an unexpected shape."""

    code = -32012
    error_type = "UpstreamShapeError"
