"""
School Moodle MCP Server Module

This module contains the MCP protocol implementation, the tool dispatcher
and the main entry point.
"""

from .dispatcher import ToolDispatcher
from .main import main
from .mcp import MCPProtocolHandler

__all__ = [
    "main",
    "MCPProtocolHandler",
    "ToolDispatcher",
]
