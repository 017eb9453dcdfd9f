"""
Shared Ledger State

One explicit state object holds every sub-ledger: the content catalog, escrow
balances, usage counters and creator earnings. It is passed by reference to
each component; components only touch their own maps.

Values live in the uint256 domain. Python integers never wrap, so every
operation that can leave the domain is checked here and fails loudly instead.
"""

import base64
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, NewType, Optional, Tuple, Type

from .errors import ArithmeticOverflow, LedgerError

Identity = NewType("Identity", str)

UINT256_MAX = 2 ** 256 - 1


def is_uint(value: Any) -> bool:
    """True for ints (not bools) inside [0, 2**256 - 1]."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value <= UINT256_MAX
    )


def require_uint(
    value: Any,
    error: Type[LedgerError],
    name: str,
    allow_zero: bool = True,
) -> int:
    """Validate a uint256 input, raising ``error`` when it does not fit."""
    if not is_uint(value):
        raise error(f"{name} must be an integer in [0, 2**256 - 1], got {value!r}")
    if not allow_zero and value == 0:
        raise error(f"{name} must be greater than zero")
    return value


def checked_add(a: int, b: int) -> int:
    result = a + b
    if result > UINT256_MAX:
        raise ArithmeticOverflow(f"{a} + {b} exceeds uint256")
    return result


def checked_mul(a: int, b: int) -> int:
    result = a * b
    if result > UINT256_MAX:
        raise ArithmeticOverflow(f"{a} * {b} exceeds uint256")
    return result


@dataclass(frozen=True)
class ContentRecord:
    """
    A registered content item.

    Immutable once created. ``data`` is an opaque reference the ledger
    never interprets.
    """
    content_id: int
    creator: Identity
    rate_per_unit: int
    max_units: int
    title: str
    data: bytes
    registered_at: int

    @property
    def unlimited(self) -> bool:
        return self.max_units == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_id": self.content_id,
            "creator": self.creator,
            "rate_per_unit": self.rate_per_unit,
            "max_units": self.max_units,
            "title": self.title,
            "data": base64.b64encode(self.data).decode("ascii"),
            "registered_at": self.registered_at,
        }


_MISSING = object()


class JournaledMap(dict):
    """
    Dict that remembers what each key held before the open transaction
    first wrote it.

    Only item assignment and deletion are journaled; ledger code mutates
    maps through those alone.
    """

    def __init__(self, name: str, journals: List["StateJournal"], data: Any = ()):
        super().__init__(data)
        self.name = name
        self._journals = journals

    def _record(self, key: Any) -> None:
        if self._journals:
            undo = self._journals[-1].undo
            slot = (self.name, key)
            if slot not in undo:
                undo[slot] = dict.get(self, key, _MISSING)

    def __setitem__(self, key: Any, value: Any) -> None:
        self._record(key)
        super().__setitem__(key, value)

    def __delitem__(self, key: Any) -> None:
        self._record(key)
        super().__delitem__(key)


@dataclass
class StateJournal:
    """Undo information for one open transaction."""
    undo: Dict[Tuple[str, Any], Any]
    content_count: int
    total_deposited: int
    total_withdrawn: int


@dataclass(frozen=True)
class StateChanges:
    """Keys written by a transaction, used to persist only what moved."""
    content_ids: Tuple[int, ...]
    escrow: FrozenSet[str]
    earnings: FrozenSet[str]
    usage: FrozenSet[Tuple[str, int]]


@dataclass
class LedgerState:
    """
    The single shared ledger state.

    Global invariant (conservation):
        sum(escrow) + sum(earnings) + total_withdrawn == total_deposited

    Transactions are journaled: ``begin`` opens one, ``rollback`` undoes only
    the keys it touched and ``commit`` folds it into the enclosing one.
    """
    contents: Dict[int, ContentRecord] = field(default_factory=dict)
    content_ids: List[int] = field(default_factory=list)
    escrow: Dict[str, int] = field(default_factory=dict)
    earnings: Dict[str, int] = field(default_factory=dict)
    usage: Dict[Tuple[str, int], int] = field(default_factory=dict)
    total_deposited: int = 0
    total_withdrawn: int = 0

    def __post_init__(self):
        self._journals: List[StateJournal] = []
        for name in ("contents", "escrow", "earnings", "usage"):
            setattr(self, name, JournaledMap(name, self._journals, getattr(self, name)))

    @property
    def in_transaction(self) -> bool:
        return bool(self._journals)

    def begin(self) -> None:
        self._journals.append(StateJournal(
            undo={},
            content_count=len(self.content_ids),
            total_deposited=self.total_deposited,
            total_withdrawn=self.total_withdrawn,
        ))

    def pending_changes(self) -> StateChanges:
        """Keys written since the innermost ``begin``."""
        journal = self._journals[-1]
        written: Dict[str, set] = {"escrow": set(), "earnings": set(), "usage": set()}
        for name, key in journal.undo:
            if name in written:
                written[name].add(key)
        return StateChanges(
            content_ids=tuple(self.content_ids[journal.content_count:]),
            escrow=frozenset(written["escrow"]),
            earnings=frozenset(written["earnings"]),
            usage=frozenset(written["usage"]),
        )

    def commit(self) -> None:
        journal = self._journals.pop()
        if self._journals:
            parent = self._journals[-1].undo
            for slot, prior in journal.undo.items():
                parent.setdefault(slot, prior)

    def rollback(self) -> None:
        journal = self._journals.pop()
        for (name, key), prior in journal.undo.items():
            target = getattr(self, name)
            if prior is _MISSING:
                dict.pop(target, key, None)
            else:
                dict.__setitem__(target, key, prior)
        del self.content_ids[journal.content_count:]
        self.total_deposited = journal.total_deposited
        self.total_withdrawn = journal.total_withdrawn

    def conservation_report(self) -> Dict[str, Any]:
        """Check the conservation invariant and return its terms."""
        escrow_total = sum(self.escrow.values())
        earnings_total = sum(self.earnings.values())
        accounted = escrow_total + earnings_total + self.total_withdrawn
        return {
            "escrow_total": escrow_total,
            "earnings_total": earnings_total,
            "total_withdrawn": self.total_withdrawn,
            "total_deposited": self.total_deposited,
            "balanced": accounted == self.total_deposited,
        }


class MonotonicClock:
    """
    Wall-clock seconds that never go backwards.

    Registration timestamps come from here; if the time source steps back
    the last issued value is repeated.
    """

    def __init__(self, time_source: Optional[Callable[[], float]] = None):
        self._time_source = time_source or time.time
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            current = max(int(self._time_source()), self._last)
            self._last = current
            return current


@dataclass(frozen=True)
class CallContext:
    """
    Per-invocation context supplied by the host.

    ``caller`` is the authenticated principal; operations never take an
    identity from anywhere else.
    """
    caller: Identity
    timestamp: int
