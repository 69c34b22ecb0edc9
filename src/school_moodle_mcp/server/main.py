"""
School Moodle MCP Server - Main Entry Point

This module wires the server together and starts the MCP protocol loop on
stdin/stdout. Configuration comes from environment variables (see
``school_moodle_mcp.config``); no Moodle token is configured here, every
tool call carries its own.

Usage:
    school-moodle-mcp
    python -m school_moodle_mcp.server.main
"""

import asyncio
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

from ..audit import AuditLogger, NullAuditLogger
from ..catalog import CatalogLoader, InputValidator
from ..config import Config, ConfigError
from ..tools import ToolRegistry
from .dispatcher import ToolDispatcher
from .mcp import MCPProtocolHandler

LOG_FILE_NAME = "school-moodle-mcp.log"


def setup_logging(log_level: str = "INFO", log_dir: str = "") -> logging.Logger:
    """
    Set up logging configuration.

    Logs go to stderr so they never interfere with the MCP protocol on
    stdout. When ``log_dir`` is set, a rotating file handler is added.

    Returns:
        Logger instance for the main module
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    # httpx logs every request URL at INFO, and REST URLs carry the token
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)

    if log_dir:
        try:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, LOG_FILE_NAME),
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - "
                    "%(funcName)s:%(lineno)d - %(message)s"
                )
            )
            root_logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not set up file logging: {e}")

    return logger


def build_handler(config: Config, logger: logging.Logger) -> MCPProtocolHandler:
    """
    Build the protocol handler and everything behind it.

    Raises:
        ConfigError: If the configuration is invalid
        CatalogLoadError: If the tool catalog cannot be read
        CatalogValidationError: If the tool catalog is invalid
    """
    errors = config.validate()
    if errors:
        raise ConfigError("; ".join(errors))

    catalog = CatalogLoader(config.tools_file or None).load()
    validator = InputValidator(catalog)

    if config.audit_enabled:
        audit_logger: NullAuditLogger = AuditLogger(config.audit_log_path)
    else:
        audit_logger = NullAuditLogger()
        logger.info("Audit logging disabled by configuration")

    dispatcher = ToolDispatcher(
        validator,
        config,
        registry=ToolRegistry(forum_digest_size=config.forum_digest_size),
        audit_logger=audit_logger,
    )

    return MCPProtocolHandler(
        catalog,
        dispatcher,
        server_name=config.server_name,
        server_version=config.server_version,
    )


def main() -> None:
    """
    Main entry point for the server.

    Loads configuration, initializes all components and runs the MCP
    protocol loop until stdin closes.
    """
    logger: Optional[logging.Logger] = None

    try:
        config = Config()
        logger = setup_logging(config.log_level, config.log_dir)
        logger.info(f"Starting {config.server_name} v{config.server_version}")
        logger.info(f"Configuration: {config.get_startup_summary()}")

        handler = build_handler(config, logger)
        logger.info(f"Available tools: {handler.catalog.tool_names()}")
        logger.info("Server ready - waiting for MCP requests on stdin")

        asyncio.run(handler.run_protocol_loop())

    except KeyboardInterrupt:
        if logger:
            logger.info("Received keyboard interrupt - shutting down")
        sys.exit(0)
    except Exception as e:
        if logger:
            logger.critical(f"Critical error during startup: {e}", exc_info=True)
        else:
            print(f"Critical error during startup: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if logger:
            logger.info("Server shutdown complete")


if __name__ == "__main__":
    main()
