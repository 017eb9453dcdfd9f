"""
Escrow Account

Per-user prepaid balances. Deposits only record a credit: the inbound value
has already been taken into custody by the host. Withdrawals zero the balance
before the outbound transfer, so a recipient calling back into the ledger
during the transfer sees nothing left to withdraw.
"""

import structlog

from ..core.errors import InsufficientEscrow, InvalidAmount, NoFunds
from ..core.events import EventLog, LedgerEventType
from ..core.state import CallContext, LedgerState, checked_add, require_uint
from .gateway import TransferGateway, pay_out

logger = structlog.get_logger()


class EscrowAccount:
    """Escrow balances keyed by identity."""

    def __init__(self, state: LedgerState, events: EventLog, gateway: TransferGateway):
        self._state = state
        self._events = events
        self._gateway = gateway

    def balance_of(self, user: str) -> int:
        return self._state.escrow.get(user, 0)

    def deposit(self, ctx: CallContext, amount: int) -> int:
        """
        Credit the caller's escrow.

        Returns the new balance.
        """
        require_uint(amount, InvalidAmount, "amount", allow_zero=False)
        user = ctx.caller
        balance = checked_add(self.balance_of(user), amount)

        self._state.escrow[user] = balance
        self._state.total_deposited += amount

        self._events.emit(
            LedgerEventType.ESCROW_DEPOSITED,
            ctx.timestamp,
            user=user,
            amount=amount,
            balance=balance,
        )
        logger.info("escrow_deposited", user=user, amount=amount, balance=balance)
        return balance

    def withdraw(self, ctx: CallContext) -> int:
        """
        Pay the caller's whole escrow balance out through the gateway.

        Returns the amount paid.
        """
        user = ctx.caller
        amount = self.balance_of(user)
        if amount == 0:
            raise NoFunds(f"No escrow balance for {user}")

        # Effects before interaction: balance is zero before the recipient runs.
        self._state.escrow[user] = 0
        self._state.total_withdrawn += amount

        result = pay_out(self._gateway, user, amount)

        self._events.emit(
            LedgerEventType.ESCROW_WITHDRAWN,
            ctx.timestamp,
            user=user,
            amount=amount,
        )
        logger.info("escrow_withdrawn", user=user, amount=amount, reference=result.reference)
        return amount

    def debit(self, user: str, amount: int) -> int:
        """Remove ``amount`` from escrow. Returns the new balance."""
        balance = self.balance_of(user)
        if balance < amount:
            raise InsufficientEscrow(f"Escrow {balance} does not cover {amount}")
        balance -= amount
        self._state.escrow[user] = balance
        return balance
