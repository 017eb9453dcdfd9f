"""
CONTENT RAIL
Pay-per-use content access ledger.

Creators register priced content; consumers fund escrow and spend it to
unlock units of content; value moves into withdrawable creator earnings.
"""

__version__ = "1.0.0"

from .core.state import Identity, ContentRecord, LedgerState
from .engine.rail import ContentRail
from .engine.access import AccessResult

__all__ = [
    "__version__",
    "Identity",
    "ContentRecord",
    "LedgerState",
    "ContentRail",
    "AccessResult",
]
