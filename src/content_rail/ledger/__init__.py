"""
CONTENT RAIL - Ledger Module

The four sub-ledgers over the shared state:
- ContentCatalog: priced, immutable content records
- EscrowAccount: prepaid consumer balances
- UsageMeter: per-(user, content) counters with caps
- EarningsLedger: withdrawable creator earnings
"""

from .catalog import ContentCatalog
from .escrow import EscrowAccount
from .usage import UsageMeter
from .earnings import EarningsLedger
from .gateway import (
    TransferGateway,
    TransferResult,
    InMemoryTransferGateway,
    Payout,
    pay_out,
)

__all__ = [
    "ContentCatalog",
    "EscrowAccount",
    "UsageMeter",
    "EarningsLedger",
    "TransferGateway",
    "TransferResult",
    "InMemoryTransferGateway",
    "Payout",
    "pay_out",
]
