"""Configuration management for the Moodle MCP server."""

import os
from pathlib import Path
from typing import Any, Dict, List

from . import __version__

REST_ENDPOINT_SUFFIX = "/webservice/rest/server.php"

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class ConfigError(Exception):
    """Raised when the configuration cannot be used to start the server."""

    pass


def _parse_bool(env_var: str, default: str) -> bool:
    value = os.environ.get(env_var, default).strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value for {env_var}: {value}")


def normalize_site_url(url: str) -> str:
    """Strip the REST endpoint path and trailing slashes from a Moodle URL."""
    url = url.strip().rstrip("/")
    if url.endswith(REST_ENDPOINT_SUFFIX):
        url = url[: -len(REST_ENDPOINT_SUFFIX)]
    return url.rstrip("/")


class Config:
    """Read-only configuration loaded from environment variables."""

    def __init__(self):
        """Initialize configuration from the current environment."""
        self._defaults = {
            # Moodle site
            "moodle_url": normalize_site_url(os.environ.get("MOODLE_URL", "")),
            "moodle_timeout": float(os.environ.get("MOODLE_TIMEOUT", "30")),
            "moodle_verify_ssl": _parse_bool("MOODLE_VERIFY_SSL", "true"),
            "forum_digest_size": int(os.environ.get("FORUM_DIGEST_SIZE", "5")),
            # Tool catalog override; empty means the packaged tools.yaml
            "tools_file": os.environ.get("TOOLS_FILE", ""),
            # Logging
            "log_level": os.environ.get("LOG_LEVEL", "INFO").upper(),
            "log_dir": os.environ.get("LOG_DIR", ""),
            # Audit
            "audit_enabled": _parse_bool("AUDIT_ENABLED", "false"),
            "audit_log_path": os.environ.get(
                "AUDIT_LOG_PATH", os.path.join("logs", "audit.jsonl")
            ),
            # Server identity
            "server_name": os.environ.get("SERVER_NAME", "school-moodle-mcp"),
            "server_version": os.environ.get("SERVER_VERSION", __version__),
        }

    def __getattr__(self, name: str) -> Any:
        """Get configuration value."""
        try:
            defaults = object.__getattribute__(self, "_defaults")
        except AttributeError:
            raise AttributeError(name) from None
        if name in defaults:
            return defaults[name]
        raise AttributeError(
            f"'{self.__class__.__name__}' object has no attribute '{name}'"
        )

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification of configuration after initialization."""
        try:
            defaults = object.__getattribute__(self, "_defaults")
        except AttributeError:
            defaults = {}
        if name in defaults:
            raise AttributeError(f"Configuration is immutable: cannot set '{name}'")
        super().__setattr__(name, value)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value with optional default."""
        return self._defaults.get(key, default)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of validation error messages. Empty list means valid.
        """
        errors = []

        if not self.moodle_url:
            errors.append("MOODLE_URL is required")
        elif not self.moodle_url.startswith(("http://", "https://")):
            errors.append(f"MOODLE_URL must be an http(s) URL: {self.moodle_url}")

        if self.moodle_timeout <= 0:
            errors.append("MOODLE_TIMEOUT must be positive")

        if self.forum_digest_size < 1:
            errors.append("FORUM_DIGEST_SIZE must be at least 1")

        if self.tools_file and not Path(self.tools_file).exists():
            errors.append(f"Tools file not found: {self.tools_file}")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self._defaults.copy()

    def get_startup_summary(self) -> Dict[str, Any]:
        """Get startup configuration summary for logging (without secrets)."""
        return {
            "server_name": self.server_name,
            "server_version": self.server_version,
            "moodle_url": self.moodle_url,
            "moodle_timeout": self.moodle_timeout,
            "moodle_verify_ssl": self.moodle_verify_ssl,
            "tools_file": self.tools_file or "packaged",
            "audit_enabled": self.audit_enabled,
            "audit_log_path": self.audit_log_path if self.audit_enabled else "disabled",
            "log_level": self.log_level,
        }

    def __repr__(self) -> str:
        return f"Config(moodle_url={self.moodle_url!r})"
