"""
Repository Layer for Content Rail

Saves and restores the ledger: state maps, conservation totals and the
event log. Each save is a single database transaction.
"""

from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..core.events import LedgerEvent
from ..core.state import LedgerState, StateChanges
from .database import Database, get_database
from .models import ContentRow, EventRow, UsageRow

logger = structlog.get_logger()


class LedgerRepository:
    """Repository for the ledger state and its events."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def save(self, state: LedgerState, changes: StateChanges, new_events: List[LedgerEvent]) -> None:
        """
        Write the keys ``changes`` names and append ``new_events``.

        Rows untouched by the operation are left alone, so a save costs
        the size of the operation, not of the ledger.
        """
        first_seq = len(state.content_ids) - len(changes.content_ids)
        contents = [
            ContentRow(record=state.contents[cid], seq=first_seq + i).to_db_tuple()
            for i, cid in enumerate(changes.content_ids)
        ]
        usage = [
            UsageRow(identity=user, content_id=cid, units=state.usage[(user, cid)]).to_db_tuple()
            for user, cid in changes.usage
        ]

        with self.db.connection() as conn:
            conn.executemany(
                """INSERT INTO contents
                   (content_id, seq, creator, rate_per_unit, max_units, title, data, registered_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                contents
            )
            conn.executemany(
                """INSERT INTO escrow_balances (identity, balance) VALUES (?, ?)
                   ON CONFLICT(identity) DO UPDATE SET balance = excluded.balance""",
                [(user, str(state.escrow[user])) for user in changes.escrow]
            )
            conn.executemany(
                """INSERT INTO earnings_balances (identity, balance) VALUES (?, ?)
                   ON CONFLICT(identity) DO UPDATE SET balance = excluded.balance""",
                [(creator, str(state.earnings[creator])) for creator in changes.earnings]
            )
            conn.executemany(
                """INSERT INTO usage_counters (identity, content_id, units) VALUES (?, ?, ?)
                   ON CONFLICT(identity, content_id) DO UPDATE SET units = excluded.units""",
                usage
            )
            conn.executemany(
                """INSERT INTO ledger_totals (name, value) VALUES (?, ?)
                   ON CONFLICT(name) DO UPDATE SET value = excluded.value""",
                [
                    ("total_deposited", str(state.total_deposited)),
                    ("total_withdrawn", str(state.total_withdrawn)),
                ]
            )
            conn.executemany(
                """INSERT INTO ledger_events
                   (sequence, event_id, event_type, timestamp, payload, prev_hash, signature, key_id)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                [EventRow(event=e).to_db_tuple() for e in new_events]
            )

        logger.debug("ledger_saved", contents=len(contents), events=len(new_events))

    def load(self) -> Tuple[LedgerState, List[LedgerEvent]]:
        """Rebuild the state and the event list."""
        state = LedgerState()

        for row in self.db.execute("SELECT * FROM contents ORDER BY seq ASC"):
            record = ContentRow.from_row(row).record
            state.contents[record.content_id] = record
            state.content_ids.append(record.content_id)

        for row in self.db.execute("SELECT identity, balance FROM escrow_balances"):
            state.escrow[row["identity"]] = int(row["balance"])

        for row in self.db.execute("SELECT identity, balance FROM earnings_balances"):
            state.earnings[row["identity"]] = int(row["balance"])

        for row in self.db.execute("SELECT * FROM usage_counters"):
            usage = UsageRow.from_row(row)
            state.usage[(usage.identity, usage.content_id)] = usage.units

        totals = {
            row["name"]: int(row["value"])
            for row in self.db.execute("SELECT name, value FROM ledger_totals")
        }
        state.total_deposited = totals.get("total_deposited", 0)
        state.total_withdrawn = totals.get("total_withdrawn", 0)

        return state, self.get_events()

    def get_events(self, limit: Optional[int] = None) -> List[LedgerEvent]:
        """Stored events in sequence order."""
        if limit is None:
            results = self.db.execute("SELECT * FROM ledger_events ORDER BY sequence ASC")
        else:
            results = self.db.execute(
                "SELECT * FROM ledger_events ORDER BY sequence ASC LIMIT ?",
                (limit,)
            )
        return [EventRow.from_row(r).event for r in results]

    def get_balances(self, identity: str) -> Dict[str, Any]:
        """Escrow and earnings for one identity."""
        escrow = self.db.execute(
            "SELECT balance FROM escrow_balances WHERE identity = ?",
            (identity,)
        )
        earnings = self.db.execute(
            "SELECT balance FROM earnings_balances WHERE identity = ?",
            (identity,)
        )
        return {
            "identity": identity,
            "escrow": int(escrow[0]["balance"]) if escrow else 0,
            "earnings": int(earnings[0]["balance"]) if earnings else 0,
        }
