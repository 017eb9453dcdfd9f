"""
Persistence Layer for Content Rail

SQLite storage for ledger state and the signed event log.
"""

from .database import Database, get_database
from .models import ContentRow, UsageRow, EventRow
from .repository import LedgerRepository

__all__ = [
    "Database",
    "get_database",
    "ContentRow",
    "UsageRow",
    "EventRow",
    "LedgerRepository",
]
