"""
Access Engine

The consume transition: the only operation that touches more than one
sub-ledger. Every check runs before any effect, so once the first effect is
applied the remaining ones cannot fail.

Flow:
1. Look up content
2. Validate units
3. Price the purchase (checked multiplication)
4. Check the usage cap
5. Check escrow covers the cost
6. Debit escrow, charge usage, credit creator earnings
7. Emit ContentAccessed
"""

from dataclasses import dataclass
from typing import Any, Dict

import structlog

from ..core.errors import InsufficientEscrow, InvalidUnits, LedgerError, NotCreator
from ..core.events import EventLog, LedgerEventType
from ..core.state import CallContext, checked_add, checked_mul, require_uint
from ..ledger.catalog import ContentCatalog
from ..ledger.earnings import EarningsLedger
from ..ledger.escrow import EscrowAccount
from ..ledger.usage import UsageMeter

logger = structlog.get_logger()


@dataclass(frozen=True)
class AccessResult:
    """Outcome of a successful purchase."""
    content_id: int
    user: str
    units: int
    total_cost: int
    new_usage_total: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_id": self.content_id,
            "user": self.user,
            "units": self.units,
            "total_cost": self.total_cost,
            "new_usage_total": self.new_usage_total,
        }


class AccessEngine:
    """
    Orchestrates purchases and earnings withdrawals across the sub-ledgers.
    """

    def __init__(
        self,
        catalog: ContentCatalog,
        escrow: EscrowAccount,
        usage: UsageMeter,
        earnings: EarningsLedger,
        events: EventLog,
    ):
        self.catalog = catalog
        self.escrow = escrow
        self.usage = usage
        self.earnings = earnings
        self._events = events

        # Metrics
        self._total_requests = 0
        self._granted_count = 0
        self._denied: Dict[str, int] = {}
        self._units_sold = 0
        self._volume = 0

    def quote(self, content_id: int, units: int) -> int:
        """Price ``units`` of content without buying them."""
        record = self.catalog.get(content_id)
        require_uint(units, InvalidUnits, "units", allow_zero=False)
        return checked_mul(record.rate_per_unit, units)

    def consume(self, ctx: CallContext, content_id: int, units: int) -> AccessResult:
        """
        Buy ``units`` of content for the caller out of escrow.

        Raises:
            NotFound: no such content
            InvalidUnits: units is zero or outside the domain
            ArithmeticOverflow: cost or a resulting balance leaves uint256
            CapExceeded: purchase would pass the content's max units
            InsufficientEscrow: escrow does not cover the cost
        """
        self._total_requests += 1
        user = ctx.caller

        try:
            record = self.catalog.get(content_id)
            require_uint(units, InvalidUnits, "units", allow_zero=False)
            total_cost = checked_mul(record.rate_per_unit, units)
            self.usage.check(user, content_id, units, record.max_units)

            if self.escrow.balance_of(user) < total_cost:
                raise InsufficientEscrow(
                    f"Escrow {self.escrow.balance_of(user)} does not cover cost {total_cost}"
                )
            checked_add(self.earnings.balance_of(record.creator), total_cost)

        except LedgerError as e:
            self._denied[e.code] = self._denied.get(e.code, 0) + 1
            logger.info("access_denied", user=user, content_id=content_id, units=units, reason=e.code)
            raise

        self.escrow.debit(user, total_cost)
        new_usage_total = self.usage.charge(user, content_id, units, record.max_units)
        self.earnings.credit(record.creator, total_cost)

        self._granted_count += 1
        self._units_sold += units
        self._volume += total_cost

        self._events.emit(
            LedgerEventType.CONTENT_ACCESSED,
            ctx.timestamp,
            content_id=content_id,
            user=user,
            units=units,
            total_cost=total_cost,
            new_usage_total=new_usage_total,
        )
        logger.info(
            "access_granted",
            content_id=content_id,
            user=user,
            units=units,
            total_cost=total_cost,
            new_usage_total=new_usage_total,
        )

        return AccessResult(
            content_id=content_id,
            user=user,
            units=units,
            total_cost=total_cost,
            new_usage_total=new_usage_total,
        )

    def withdraw_earnings(self, ctx: CallContext, content_id: int) -> int:
        """
        Withdraw the caller's aggregate earnings through one of their content ids.

        The creator is re-derived from the catalog on every call. Any content
        id the caller created drains all of the caller's earnings, not only
        what that content earned.
        """
        record = self.catalog.get(content_id)
        if record.creator != ctx.caller:
            logger.warning(
                "earnings_withdrawal_refused",
                caller=ctx.caller,
                content_id=content_id,
            )
            raise NotCreator(f"{ctx.caller} is not the creator of content {content_id}")

        return self.earnings.withdraw(ctx, record.creator, content_id)

    def get_metrics(self) -> Dict[str, Any]:
        """Get access metrics."""
        return {
            "total_requests": self._total_requests,
            "granted": self._granted_count,
            "denied": dict(self._denied),
            "units_sold": self._units_sold,
            "volume": self._volume,
            "grant_rate": self._granted_count / self._total_requests if self._total_requests > 0 else 0,
        }
