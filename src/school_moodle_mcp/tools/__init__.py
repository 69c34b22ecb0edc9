"""
Tools Module

This module contains the implementations of the Moodle tools exposed by the
server.
"""

from .registry import ToolRegistry

__all__ = [
    "ToolRegistry",
]
