"""
Audit Logging for Tool Calls

Each dispatched tool call produces one structured JSON Lines record. The
audit logger is handed to the dispatcher at construction time; there is no
module-level logger instance.

Audit Record Format:
- ts: ISO-8601 UTC timestamp
- tool: Name of the called tool
- args_hash: SHA-256 hash of sanitized arguments
- status: ok|fail
- error_type: Error type name for failed calls, empty otherwise
- elapsed_ms: Execution time in milliseconds
- caller: Identifier for the calling context
"""

import hashlib
import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

SENSITIVE_KEY_PARTS = ("password", "token", "secret", "key", "auth")


@dataclass
class AuditRecord:
    """Structured audit record for one tool call."""

    ts: str
    tool: str
    args_hash: str
    status: str
    error_type: str
    elapsed_ms: int
    caller: str


class NullAuditLogger:
    """Audit sink that drops every record."""

    def log_tool_call(
        self,
        tool_name: str,
        args: dict[str, Any],
        status: str,
        elapsed_ms: int,
        error_type: str = "",
        caller: str = "mcp_client",
    ) -> None:
        return None


class AuditLogger(NullAuditLogger):
    """
    JSON Lines audit logger for tool calls.

    Arguments are sanitized before hashing so that tokens and other secrets
    never reach the audit file, even in hashed form.
    """

    def __init__(self, log_file_path: str):
        """
        Initialize the audit logger.

        Args:
            log_file_path: Path to the audit log file
        """
        self.log_file_path = log_file_path

        log_dir = os.path.dirname(self.log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        logger.info(f"Audit logger initialized: {self.log_file_path}")

    def log_tool_call(
        self,
        tool_name: str,
        args: dict[str, Any],
        status: str,
        elapsed_ms: int,
        error_type: str = "",
        caller: str = "mcp_client",
    ) -> None:
        """
        Log a tool call.

        Args:
            tool_name: Name of the called tool
            args: Raw tool arguments (will be sanitized)
            status: ok|fail
            elapsed_ms: Execution time in milliseconds
            error_type: Error type name for failed calls
            caller: Identifier for the calling context
        """
        record = AuditRecord(
            ts=datetime.now(timezone.utc).isoformat(),
            tool=tool_name,
            args_hash=self._hash_sanitized_args(args),
            status=status,
            error_type=error_type,
            elapsed_ms=elapsed_ms,
            caller=caller,
        )

        try:
            self._write_audit_record(record)
        except OSError as e:
            # Audit failures must not fail the tool call itself
            logger.error(f"Failed to write audit record for {tool_name}: {e}")
            return

        logger.debug(f"Audit record logged: {tool_name} -> {status}")

    def _write_audit_record(self, record: AuditRecord) -> None:
        json_line = json.dumps(asdict(record), separators=(",", ":"))
        with open(self.log_file_path, "a", encoding="utf-8") as f:
            f.write(json_line + "\n")

    def _hash_sanitized_args(self, args: dict[str, Any]) -> str:
        """Create a SHA-256 hash of sanitized arguments."""
        sanitized_args = sanitize_args(args)
        args_json = json.dumps(
            sanitized_args, sort_keys=True, separators=(",", ":"), default=str
        )
        return hashlib.sha256(args_json.encode("utf-8")).hexdigest()


def sanitize_args(args: Any) -> Any:
    """
    Redact values whose keys look like credentials.

    Args:
        args: Original arguments (usually a dictionary)

    Returns:
        A sanitized copy; non-dict values are returned unchanged
    """
    if not isinstance(args, dict):
        return args

    sanitized: dict[str, Any] = {}
    for key, value in args.items():
        key_lower = str(key).lower()
        if any(part in key_lower for part in SENSITIVE_KEY_PARTS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_args(value)
        elif isinstance(value, list):
            sanitized[key] = [sanitize_args(item) for item in value]
        else:
            sanitized[key] = value
    return sanitized
