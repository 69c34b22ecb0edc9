"""
Activities Module

This module resolves activity references and extracts their content through
one strategy per Moodle module type.
"""

from .resolver import ActivityResolver
from .strategies import STRATEGIES, Strategy, enrich, ensure_contents

__all__ = [
    "ActivityResolver",
    "STRATEGIES",
    "Strategy",
    "enrich",
    "ensure_contents",
]
