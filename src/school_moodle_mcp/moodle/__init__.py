"""
Moodle Module

This module contains the Moodle web service client, the typed views over its
payloads and the HTML-to-text helpers used when extracting content.
"""

from .client import MoodleClient, flatten_params, redact_url
from .html import PAGE_NOT_FOUND_PLACEHOLDER, extract_main_text, strip_html
from .models import (
    ActivityReference,
    ContentType,
    CourseModule,
    EnrichedActivityContent,
    FileRef,
    ModuleContent,
    iter_section_modules,
)

__all__ = [
    "ActivityReference",
    "ContentType",
    "CourseModule",
    "EnrichedActivityContent",
    "FileRef",
    "ModuleContent",
    "MoodleClient",
    "PAGE_NOT_FOUND_PLACEHOLDER",
    "extract_main_text",
    "flatten_params",
    "iter_section_modules",
    "redact_url",
    "strip_html",
]
