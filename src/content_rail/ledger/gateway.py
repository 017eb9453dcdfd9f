"""
Transfer Gateway

The external collaborator that moves value out of custody. Sending hands
control to the recipient, who may be adversarial and may call back into the
ledger before ``send`` returns. Callers must commit their own state changes
before calling ``pay_out``.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

import structlog

from ..core.errors import TransferFailed

logger = structlog.get_logger()

RecipientHook = Callable[[str, int], None]


@dataclass
class TransferResult:
    """Outcome of an outbound transfer."""
    success: bool
    reference: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Payout:
    """A completed outbound transfer."""
    reference: str
    recipient: str
    amount: int
    sent_at: str


class TransferGateway(ABC):
    """Moves native value out of custody to an identity."""

    @abstractmethod
    def send(self, recipient: str, amount: int) -> TransferResult:
        """Send ``amount`` to ``recipient``. Must not raise for ordinary failures."""
        pass


class InMemoryTransferGateway(TransferGateway):
    """
    In-process custody gateway.

    Records every payout. A recipient may register a hook that runs when
    value arrives, the way a contract's receive function would; a hook that
    raises makes the transfer fail and discards payouts made inside it.
    """

    def __init__(self):
        self.payouts: List[Payout] = []
        self._hooks: Dict[str, RecipientHook] = {}
        self._rejecting: Set[str] = set()

    def register_recipient(self, recipient: str, hook: RecipientHook) -> None:
        self._hooks[recipient] = hook

    def reject_transfers_to(self, recipient: str) -> None:
        """Make every transfer to ``recipient`` fail."""
        self._rejecting.add(recipient)

    def send(self, recipient: str, amount: int) -> TransferResult:
        if recipient in self._rejecting:
            return TransferResult(success=False, error=f"Recipient {recipient} rejected transfer")

        mark = len(self.payouts)
        hook = self._hooks.get(recipient)
        if hook is not None:
            try:
                hook(recipient, amount)
            except Exception as e:
                del self.payouts[mark:]
                return TransferResult(success=False, error=f"Recipient hook failed: {e}")

        payout = Payout(
            reference=f"PAY-{uuid.uuid4().hex[:12].upper()}",
            recipient=recipient,
            amount=amount,
            sent_at=datetime.now(timezone.utc).isoformat(),
        )
        self.payouts.append(payout)
        return TransferResult(success=True, reference=payout.reference)

    def total_paid(self, recipient: Optional[str] = None) -> int:
        return sum(
            p.amount for p in self.payouts
            if recipient is None or p.recipient == recipient
        )


def pay_out(gateway: TransferGateway, recipient: str, amount: int) -> TransferResult:
    """
    Send through the gateway, turning any failure into TransferFailed.

    The caller's state changes must already be applied.
    """
    try:
        result = gateway.send(recipient, amount)
    except Exception as e:
        logger.error("transfer_error", recipient=recipient, amount=amount, error=str(e))
        raise TransferFailed(f"Transfer to {recipient} failed: {e}") from e

    if not result.success:
        logger.warning("transfer_rejected", recipient=recipient, amount=amount, error=result.error)
        raise TransferFailed(result.error or f"Transfer to {recipient} failed")

    return result
