"""
Content Rail - Execution Host

Hosts the shared ledger state and runs every public operation:
- serialized, in submission order, under one re-entrant lock
- all-or-nothing: the state journals every key an operation writes and the
  event log is checkpointed, both undone if the operation raises
- with the caller identity supplied here, never by the caller's arguments

A transfer recipient calling back into the rail during a withdrawal runs as
a nested transaction. Rolling back the outer operation discards the nested
ones too.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional, Tuple

import structlog

from ..core.events import EventLog, EventSigner
from ..core.state import CallContext, ContentRecord, Identity, LedgerState, MonotonicClock
from ..ledger.catalog import ContentCatalog
from ..ledger.earnings import EarningsLedger
from ..ledger.escrow import EscrowAccount
from ..ledger.gateway import InMemoryTransferGateway, TransferGateway
from ..ledger.usage import UsageMeter
from .access import AccessEngine, AccessResult

logger = structlog.get_logger()


class ContentRail:
    """
    The pay-per-use content ledger.

    Usage:
        rail = ContentRail()
        rail.register_content(Identity("creator"), 1, 10, 5, "Title", b"ref")
        rail.deposit_to_escrow(Identity("alice"), 100)
        rail.access_content(Identity("alice"), 1, 3)
    """

    def __init__(
        self,
        state: Optional[LedgerState] = None,
        events: Optional[EventLog] = None,
        gateway: Optional[TransferGateway] = None,
        repository: Optional[Any] = None,
        clock: Optional[MonotonicClock] = None,
    ):
        self.state = state if state is not None else LedgerState()
        self.events = events if events is not None else EventLog()
        self.gateway = gateway if gateway is not None else InMemoryTransferGateway()
        self.repository = repository
        self.clock = clock if clock is not None else MonotonicClock()

        self.catalog = ContentCatalog(self.state, self.events)
        self.escrow = EscrowAccount(self.state, self.events, self.gateway)
        self.usage = UsageMeter(self.state, self.catalog)
        self.earnings = EarningsLedger(self.state, self.events, self.gateway)
        self.engine = AccessEngine(
            self.catalog, self.escrow, self.usage, self.earnings, self.events
        )

        self._lock = threading.RLock()
        self._depth = 0
        self._committed = 0
        self._rolled_back = 0
        self.start_time = datetime.now(timezone.utc)

    @classmethod
    def from_repository(
        cls,
        repository: Any,
        gateway: Optional[TransferGateway] = None,
        signer: Optional[EventSigner] = None,
        clock: Optional[MonotonicClock] = None,
    ) -> "ContentRail":
        """Resume a rail from persisted state and events."""
        state, stored_events = repository.load()
        events = EventLog(signer)
        events.load(stored_events)

        logger.info(
            "rail_restored",
            contents=len(state.content_ids),
            events=len(stored_events),
        )
        return cls(
            state=state,
            events=events,
            gateway=gateway,
            repository=repository,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str, caller: str) -> Generator[CallContext, None, None]:
        with self._lock:
            self.state.begin()
            checkpoint = self.events.checkpoint()
            self._depth += 1
            try:
                yield CallContext(caller=Identity(caller), timestamp=self.clock.now())
                if self._depth == 1 and self.repository is not None:
                    self.repository.save(
                        self.state,
                        self.state.pending_changes(),
                        self.events.since(checkpoint),
                    )
            except Exception as e:
                self.state.rollback()
                self.events.rollback(checkpoint)
                if self._depth == 1:
                    self._rolled_back += 1
                logger.warning(
                    "transaction_rolled_back",
                    operation=operation,
                    caller=caller,
                    error=getattr(e, "code", type(e).__name__),
                    depth=self._depth,
                )
                raise
            finally:
                self._depth -= 1

            self.state.commit()
            if self._depth == 0:
                self._committed += 1
                self.events.notify(self.events.since(checkpoint))

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def register_content(
        self,
        caller: str,
        content_id: int,
        rate_per_unit: int,
        max_units: int,
        title: str,
        data: bytes,
    ) -> ContentRecord:
        with self._transaction("register_content", caller) as ctx:
            return self.catalog.register(ctx, content_id, rate_per_unit, max_units, title, data)

    def deposit_to_escrow(self, caller: str, amount: int) -> int:
        with self._transaction("deposit_to_escrow", caller) as ctx:
            return self.escrow.deposit(ctx, amount)

    def withdraw_escrow(self, caller: str) -> int:
        with self._transaction("withdraw_escrow", caller) as ctx:
            return self.escrow.withdraw(ctx)

    def access_content(self, caller: str, content_id: int, units: int) -> AccessResult:
        with self._transaction("access_content", caller) as ctx:
            return self.engine.consume(ctx, content_id, units)

    def withdraw_earnings(self, caller: str, content_id: int) -> int:
        with self._transaction("withdraw_earnings", caller) as ctx:
            return self.engine.withdraw_earnings(ctx, content_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all_content_ids(self) -> List[int]:
        with self._lock:
            return self.catalog.list_ids()

    def get_content_data(self, content_id: int) -> ContentRecord:
        with self._lock:
            return self.catalog.get(content_id)

    def get_content_count(self) -> int:
        with self._lock:
            return self.catalog.count()

    def get_user_usage(self, user: str, content_id: int) -> int:
        with self._lock:
            return self.usage.consumed(user, content_id)

    def get_escrow_balance(self, user: str) -> int:
        with self._lock:
            return self.escrow.balance_of(user)

    def get_earnings_balance(self, creator: str) -> int:
        with self._lock:
            return self.earnings.balance_of(creator)

    def quote(self, content_id: int, units: int) -> int:
        with self._lock:
            return self.engine.quote(content_id, units)

    def audit_conservation(self) -> Dict[str, Any]:
        """Check that no value was created or destroyed."""
        with self._lock:
            report = self.state.conservation_report()
        if not report["balanced"]:
            logger.critical("conservation_violated", **report)
        return report

    def verify_event_log(self) -> Tuple[bool, Optional[str]]:
        with self._lock:
            chain_ok, chain_error = self.events.verify_chain_integrity()
            if not chain_ok:
                return (False, chain_error)
            sig_ok, sig_error, _ = self.events.verify_signatures()
            return (sig_ok, sig_error)

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "access": self.engine.get_metrics(),
                "transactions": {
                    "committed": self._committed,
                    "rolled_back": self._rolled_back,
                },
                "contents": self.catalog.count(),
                "events": len(self.events),
            }
