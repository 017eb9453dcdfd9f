"""
Earnings Ledger

Accrued, withdrawable earnings per creator, aggregated across all of the
creator's content. Withdrawal follows the same effects-before-interaction
ordering as escrow withdrawal.
"""

import structlog

from ..core.errors import NoEarnings
from ..core.events import EventLog, LedgerEventType
from ..core.state import CallContext, LedgerState, checked_add
from .gateway import TransferGateway, pay_out

logger = structlog.get_logger()


class EarningsLedger:
    """Creator earnings keyed by creator identity."""

    def __init__(self, state: LedgerState, events: EventLog, gateway: TransferGateway):
        self._state = state
        self._events = events
        self._gateway = gateway

    def balance_of(self, creator: str) -> int:
        return self._state.earnings.get(creator, 0)

    def credit(self, creator: str, amount: int) -> int:
        """Add ``amount`` to the creator's earnings. Returns the new balance."""
        balance = checked_add(self.balance_of(creator), amount)
        self._state.earnings[creator] = balance
        return balance

    def withdraw(self, ctx: CallContext, creator: str, content_id: int) -> int:
        """
        Pay the creator's aggregate earnings out through the gateway.

        Authorization is the caller's job; ``content_id`` is only recorded
        on the notification. Returns the amount paid.
        """
        amount = self.balance_of(creator)
        if amount == 0:
            raise NoEarnings(f"No earnings for {creator}")

        self._state.earnings[creator] = 0
        self._state.total_withdrawn += amount

        result = pay_out(self._gateway, creator, amount)

        self._events.emit(
            LedgerEventType.EARNINGS_WITHDRAWN,
            ctx.timestamp,
            creator=creator,
            content_id=content_id,
            amount=amount,
        )
        logger.info(
            "earnings_withdrawn",
            creator=creator,
            content_id=content_id,
            amount=amount,
            reference=result.reference,
        )
        return amount
