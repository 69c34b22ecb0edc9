"""
School Moodle MCP - Moodle course content for MCP clients

This package provides a Model Context Protocol (MCP) server that exposes a
Moodle site's courses, activities and their content as tools. Every tool
call is authenticated with the caller's own Moodle web service token.
"""

__version__ = "0.1.0"
__author__ = "School Moodle MCP Team"
__description__ = "MCP server exposing Moodle course content as tools"

# Import main components for public API
from .activities import ActivityResolver
from .catalog import CatalogLoader, InputValidator, ToolCatalog
from .moodle import MoodleClient
from .server.dispatcher import ToolDispatcher
from .server.main import main
from .tools import ToolRegistry

# Define public API exports
__all__ = [
    "main",
    "ActivityResolver",
    "CatalogLoader",
    "InputValidator",
    "MoodleClient",
    "ToolCatalog",
    "ToolDispatcher",
    "ToolRegistry",
    "__version__",
    "__author__",
    "__description__",
]
