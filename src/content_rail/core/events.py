"""
Ledger Notifications

Every state-changing operation emits a structured notification carrying its
key fields, for external indexing and auditing. Notifications are outputs
only: nothing in the ledger reads them back to make a decision.

The log is tamper-evident:
- each event links to the SHA3-256 hash of the previous event
- each event is signed with Ed25519 over its canonical JSON form
"""

import base64
import hashlib
import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

logger = structlog.get_logger()

GENESIS = "GENESIS"


class LedgerEventType(Enum):
    """Notification names."""
    CONTENT_REGISTERED = "ContentRegistered"
    ESCROW_DEPOSITED = "EscrowDeposited"
    ESCROW_WITHDRAWN = "EscrowWithdrawn"
    CONTENT_ACCESSED = "ContentAccessed"
    EARNINGS_WITHDRAWN = "EarningsWithdrawn"


@dataclass
class LedgerEvent:
    """A single signed, hash-linked notification."""
    event_id: str
    event_type: LedgerEventType
    timestamp: int
    payload: Dict[str, Any]
    sequence: int
    prev_hash: str
    signature: str = ""
    key_id: str = ""

    def signing_payload(self) -> bytes:
        """Canonical bytes covered by the signature and the chain hash."""
        return json.dumps({
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "sequence": self.sequence,
            "prev_hash": self.prev_hash,
        }, sort_keys=True, separators=(',', ':')).encode('utf-8')

    def compute_hash(self) -> str:
        return hashlib.sha3_256(self.signing_payload()).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "sequence": self.sequence,
            "prev_hash": self.prev_hash,
            "signature": self.signature,
            "key_id": self.key_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEvent":
        return cls(
            event_id=data["event_id"],
            event_type=LedgerEventType(data["event_type"]),
            timestamp=data["timestamp"],
            payload=data["payload"],
            sequence=data["sequence"],
            prev_hash=data["prev_hash"],
            signature=data.get("signature", ""),
            key_id=data.get("key_id", ""),
        )


class EventSigner:
    """Ed25519 signer for ledger events."""

    def __init__(self, private_key_bytes: Optional[bytes] = None):
        if private_key_bytes:
            self._private_key = ed25519.Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        else:
            self._private_key = ed25519.Ed25519PrivateKey.generate()
        self._public_key = self._private_key.public_key()
        self.key_id = hashlib.sha256(self.get_public_key_bytes()).hexdigest()[:16]

    def sign(self, data: bytes) -> str:
        """Sign data and return a Base64-encoded signature."""
        return base64.b64encode(self._private_key.sign(data)).decode('utf-8')

    def verify(self, data: bytes, signature_b64: str) -> bool:
        try:
            self._public_key.verify(base64.b64decode(signature_b64), data)
            return True
        except Exception:
            return False

    def get_public_key_bytes(self) -> bytes:
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def get_public_key_pem(self) -> str:
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode('utf-8')


@dataclass(frozen=True)
class EventCheckpoint:
    """Position in the log to roll back to."""
    length: int
    prev_hash: str


class EventLog:
    """
    Append-only, hash-chained log of ledger notifications.

    The host takes a checkpoint before each operation and rolls back to it
    when the operation fails, so no notification of a failed operation
    survives.
    """

    def __init__(self, signer: Optional[EventSigner] = None):
        self.signer = signer or EventSigner()
        self.events: List[LedgerEvent] = []
        self._prev_hash = GENESIS
        self._subscribers: List[Callable[[LedgerEvent], None]] = []

    def __len__(self) -> int:
        return len(self.events)

    @property
    def head_hash(self) -> str:
        return self._prev_hash

    def emit(self, event_type: LedgerEventType, timestamp: int, **payload: Any) -> LedgerEvent:
        """Append a signed event to the log."""
        event = LedgerEvent(
            event_id=f"EVT-{uuid.uuid4().hex[:12].upper()}",
            event_type=event_type,
            timestamp=timestamp,
            payload=payload,
            sequence=len(self.events),
            prev_hash=self._prev_hash,
            key_id=self.signer.key_id,
        )
        event.signature = self.signer.sign(event.signing_payload())

        self.events.append(event)
        self._prev_hash = event.compute_hash()

        logger.debug(
            "ledger_event_emitted",
            event_type=event_type.value,
            sequence=event.sequence,
        )
        return event

    def checkpoint(self) -> EventCheckpoint:
        return EventCheckpoint(length=len(self.events), prev_hash=self._prev_hash)

    def rollback(self, checkpoint: EventCheckpoint) -> None:
        """Discard every event emitted after ``checkpoint``."""
        del self.events[checkpoint.length:]
        self._prev_hash = checkpoint.prev_hash

    def since(self, checkpoint: EventCheckpoint) -> List[LedgerEvent]:
        return self.events[checkpoint.length:]

    def load(self, events: List[LedgerEvent]) -> None:
        """Replace the log with previously persisted events."""
        self.events = list(events)
        self._prev_hash = self.events[-1].compute_hash() if self.events else GENESIS

    def subscribe(self, callback: Callable[[LedgerEvent], None]) -> None:
        """Register a callback for committed events."""
        self._subscribers.append(callback)

    def notify(self, events: List[LedgerEvent]) -> None:
        """Deliver committed events to subscribers."""
        for event in events:
            for callback in self._subscribers:
                try:
                    callback(event)
                except Exception as e:
                    logger.error("event_subscriber_error", event_id=event.event_id, error=str(e))

    def verify_chain_integrity(self) -> Tuple[bool, Optional[str]]:
        """
        Verify sequence numbers and hash links.

        Returns (is_valid, error_message)
        """
        prev_hash = GENESIS
        for i, event in enumerate(self.events):
            if event.sequence != i:
                return (False, f"Sequence mismatch at position {i}")
            if event.prev_hash != prev_hash:
                return (False, f"Hash chain broken at position {i}")
            prev_hash = event.compute_hash()
        return (True, None)

    def verify_signatures(self) -> Tuple[bool, Optional[str], int]:
        """
        Verify signatures made with this log's key.

        Events signed under another key (an earlier process without a
        configured signing key) cannot be checked here and are counted.

        Returns (is_valid, error_message, unverifiable_count)
        """
        foreign = 0
        for event in self.events:
            if event.key_id != self.signer.key_id:
                foreign += 1
                continue
            if not self.signer.verify(event.signing_payload(), event.signature):
                return (False, f"Bad signature on event {event.sequence}", foreign)
        return (True, None, foreign)

    def merkle_root(self) -> str:
        """Merkle root over event hashes."""
        if not self.events:
            return hashlib.sha3_256(b"EMPTY").hexdigest()

        hashes = [e.compute_hash() for e in self.events]
        while len(hashes) > 1:
            if len(hashes) % 2 == 1:
                hashes.append(hashes[-1])
            hashes = [
                hashlib.sha3_256((hashes[i] + hashes[i + 1]).encode()).hexdigest()
                for i in range(0, len(hashes), 2)
            ]
        return hashes[0]

    def export(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.events]
