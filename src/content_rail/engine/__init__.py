"""
CONTENT RAIL - Engine Module

The access transition and the host that runs every operation atomically.
"""

from .access import AccessEngine, AccessResult
from .rail import ContentRail

__all__ = [
    "AccessEngine",
    "AccessResult",
    "ContentRail",
]
