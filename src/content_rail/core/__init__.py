"""
CONTENT RAIL - Core Module

Shared ledger state, the error taxonomy and the signed notification log.
"""

from .errors import (
    LedgerError,
    AlreadyRegistered,
    InvalidRate,
    InvalidContentId,
    NotFound,
    InvalidAmount,
    NoFunds,
    CapExceeded,
    InvalidUnits,
    ArithmeticOverflow,
    InsufficientEscrow,
    NoEarnings,
    NotCreator,
    TransferFailed,
)
from .state import (
    Identity,
    ContentRecord,
    LedgerState,
    StateChanges,
    CallContext,
    MonotonicClock,
    UINT256_MAX,
)
from .events import EventLog, EventSigner, LedgerEvent, LedgerEventType

__all__ = [
    "LedgerError",
    "AlreadyRegistered",
    "InvalidRate",
    "InvalidContentId",
    "NotFound",
    "InvalidAmount",
    "NoFunds",
    "CapExceeded",
    "InvalidUnits",
    "ArithmeticOverflow",
    "InsufficientEscrow",
    "NoEarnings",
    "NotCreator",
    "TransferFailed",
    "Identity",
    "ContentRecord",
    "LedgerState",
    "StateChanges",
    "CallContext",
    "MonotonicClock",
    "UINT256_MAX",
    "EventLog",
    "EventSigner",
    "LedgerEvent",
    "LedgerEventType",
]
