"""
Tool Catalog Module

This module holds the static tool catalog and the argument validation that
runs before any Moodle call.
"""

from .engine import (
    CatalogLoader,
    CatalogLoadError,
    CatalogValidationError,
    InputValidator,
    SchemaValidator,
    ToolCatalog,
    ToolDefinition,
    ValidatedCall,
    ValidationResult,
)

__all__ = [
    "CatalogLoader",
    "CatalogLoadError",
    "CatalogValidationError",
    "InputValidator",
    "SchemaValidator",
    "ToolCatalog",
    "ToolDefinition",
    "ValidatedCall",
    "ValidationResult",
]
