"""
Ledger Error Taxonomy

Every failure of a ledger operation is terminal for that operation: the host
discards all of its state changes and surfaces the error to the caller.
Retries are the caller's responsibility.
"""

from typing import Any, Dict


class LedgerError(Exception):
    """Base class for all ledger operation failures."""

    code = "LedgerError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class AlreadyRegistered(LedgerError):
    """Content id already has a record."""
    code = "AlreadyRegistered"


class InvalidRate(LedgerError):
    """Rate per unit is zero or outside the numeric domain."""
    code = "InvalidRate"


class InvalidContentId(LedgerError):
    """Content id is outside the numeric domain."""
    code = "InvalidContentId"


class NotFound(LedgerError):
    """No content record for the given id."""
    code = "NotFound"


class InvalidAmount(LedgerError):
    """Deposit amount is zero or outside the numeric domain."""
    code = "InvalidAmount"


class NoFunds(LedgerError):
    """Escrow balance is zero."""
    code = "NoFunds"


class CapExceeded(LedgerError):
    """Purchase would take usage past the content's max units."""
    code = "CapExceeded"


class InvalidUnits(LedgerError):
    """Units are zero or outside the numeric domain."""
    code = "InvalidUnits"


class ArithmeticOverflow(LedgerError):
    """A checked operation left the uint256 domain."""
    code = "ArithmeticOverflow"


class InsufficientEscrow(LedgerError):
    """Escrow balance does not cover the purchase cost."""
    code = "InsufficientEscrow"


class NoEarnings(LedgerError):
    """Creator earnings balance is zero."""
    code = "NoEarnings"


class NotCreator(LedgerError):
    """Caller is not the registered creator of the content."""
    code = "NotCreator"


class TransferFailed(LedgerError):
    """Outbound transfer through the gateway did not succeed."""
    code = "TransferFailed"

