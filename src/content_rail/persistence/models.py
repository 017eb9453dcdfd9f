"""
Data Models for Persistence Layer

Row shapes for the ledger tables. They mirror the core domain objects and
convert uint256 values to and from decimal text.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict

from ..core.events import LedgerEvent, LedgerEventType
from ..core.state import ContentRecord, Identity


@dataclass
class ContentRow:
    """Persisted content record with its registration position."""
    record: ContentRecord
    seq: int

    def to_db_tuple(self) -> tuple:
        """Convert to database insert tuple."""
        r = self.record
        return (
            str(r.content_id),
            self.seq,
            r.creator,
            str(r.rate_per_unit),
            str(r.max_units),
            r.title,
            r.data,
            r.registered_at,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ContentRow":
        return cls(
            record=ContentRecord(
                content_id=int(row["content_id"]),
                creator=Identity(row["creator"]),
                rate_per_unit=int(row["rate_per_unit"]),
                max_units=int(row["max_units"]),
                title=row["title"],
                data=bytes(row["data"]),
                registered_at=row["registered_at"],
            ),
            seq=row["seq"],
        )


@dataclass
class UsageRow:
    """Persisted usage counter."""
    identity: str
    content_id: int
    units: int

    def to_db_tuple(self) -> tuple:
        return (self.identity, str(self.content_id), str(self.units))

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UsageRow":
        return cls(
            identity=row["identity"],
            content_id=int(row["content_id"]),
            units=int(row["units"]),
        )


@dataclass
class EventRow:
    """Persisted ledger event."""
    event: LedgerEvent

    def to_db_tuple(self) -> tuple:
        e = self.event
        return (
            e.sequence,
            e.event_id,
            e.event_type.value,
            e.timestamp,
            json.dumps(e.payload, sort_keys=True),
            e.prev_hash,
            e.signature,
            e.key_id,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EventRow":
        return cls(
            event=LedgerEvent(
                event_id=row["event_id"],
                event_type=LedgerEventType(row["event_type"]),
                timestamp=row["timestamp"],
                payload=json.loads(row["payload"]),
                sequence=row["sequence"],
                prev_hash=row["prev_hash"],
                signature=row["signature"],
                key_id=row["key_id"],
            )
        )
