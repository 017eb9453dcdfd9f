"""
Tests for the Shared Ledger State

Tests uint256 domain checks, journaled transactions and the monotonic clock.
"""

import pytest

from content_rail.core.errors import ArithmeticOverflow, InvalidAmount
from content_rail.core.state import (
    UINT256_MAX,
    ContentRecord,
    Identity,
    LedgerState,
    MonotonicClock,
    checked_add,
    checked_mul,
    is_uint,
    require_uint,
)


class TestNumericDomain:
    """Test uint256 validation and checked arithmetic."""

    def test_bounds(self):
        assert is_uint(0)
        assert is_uint(UINT256_MAX)
        assert not is_uint(UINT256_MAX + 1)
        assert not is_uint(-1)

    def test_bool_and_float_rejected(self):
        """Booleans and floats are not amounts."""
        assert not is_uint(True)
        assert not is_uint(1.0)
        assert not is_uint("5")

    def test_require_uint_raises_given_error(self):
        with pytest.raises(InvalidAmount):
            require_uint(-5, InvalidAmount, "amount")

        with pytest.raises(InvalidAmount):
            require_uint(0, InvalidAmount, "amount", allow_zero=False)

        assert require_uint(7, InvalidAmount, "amount") == 7

    def test_checked_mul_does_not_wrap(self):
        """Cost computation must fail rather than wrap to a small number."""
        with pytest.raises(ArithmeticOverflow):
            checked_mul(2 ** 255, 2)

        assert checked_mul(2 ** 128, 2 ** 127) == 2 ** 255

    def test_checked_add_at_limit(self):
        assert checked_add(UINT256_MAX - 1, 1) == UINT256_MAX
        with pytest.raises(ArithmeticOverflow):
            checked_add(UINT256_MAX, 1)


class TestLedgerState:
    """Test journaled transactions."""

    def test_rollback_discards_changes(self):
        state = LedgerState(escrow={"alice": 100})
        state.begin()

        state.escrow["alice"] = 0
        state.escrow["bob"] = 5
        state.usage[("alice", 1)] = 3
        state.content_ids.append(1)
        state.total_withdrawn = 100

        state.rollback()

        assert state.escrow == {"alice": 100}
        assert state.usage == {}
        assert state.content_ids == []
        assert state.total_withdrawn == 0
        assert not state.in_transaction

    def test_pending_changes_names_written_keys(self):
        state = LedgerState(escrow={"alice": 1, "bob": 2, "carol": 3})
        state.begin()

        state.escrow["bob"] = 7
        state.earnings["creator"] = 4
        state.content_ids.append(9)
        changes = state.pending_changes()

        assert changes.escrow == {"bob"}
        assert changes.earnings == {"creator"}
        assert changes.usage == frozenset()
        assert changes.content_ids == (9,)

    def test_outer_rollback_undoes_committed_nested(self):
        """A nested commit is only final once the outermost one commits."""
        state = LedgerState(escrow={"alice": 100})
        state.begin()
        state.escrow["alice"] = 0

        state.begin()
        state.escrow["alice"] = 50
        state.commit()

        assert state.pending_changes().escrow == {"alice"}
        state.rollback()

        assert state.escrow["alice"] == 100

    def test_nested_rollback_keeps_outer_changes(self):
        state = LedgerState()
        state.begin()
        state.earnings["creator"] = 10

        state.begin()
        state.earnings["creator"] = 99
        state.earnings["other"] = 1
        state.rollback()
        state.commit()

        assert state.earnings == {"creator": 10}

    def test_writes_outside_transaction_not_journaled(self):
        state = LedgerState()
        state.escrow["alice"] = 5

        state.begin()
        state.rollback()

        assert state.escrow == {"alice": 5}

    def test_conservation_report(self):
        state = LedgerState(
            escrow={"alice": 70},
            earnings={"creator": 20},
            total_deposited=100,
            total_withdrawn=10,
        )
        report = state.conservation_report()

        assert report["balanced"] is True
        assert report["escrow_total"] == 70

        state.escrow["alice"] = 71
        assert state.conservation_report()["balanced"] is False

    def test_content_record_to_dict_encodes_data(self):
        record = ContentRecord(
            content_id=1,
            creator=Identity("creator"),
            rate_per_unit=10,
            max_units=0,
            title="T",
            data=b"ref",
            registered_at=1,
        )

        assert record.unlimited is True
        assert record.to_dict()["data"] == "cmVm"


class TestMonotonicClock:
    """Test the clock never runs backwards."""

    def test_clock_holds_when_source_steps_back(self):
        readings = iter([100.5, 105.0, 90.0, 106.2])
        clock = MonotonicClock(time_source=lambda: next(readings))

        assert [clock.now() for _ in range(4)] == [100, 105, 105, 106]
