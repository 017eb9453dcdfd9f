"""
Tests for the Persistence Layer

Tests saving and restoring the ledger through SQLite.
"""

import pytest

from conftest import ALICE, BOB, CREATOR, FixedClock
from content_rail.core.errors import AlreadyRegistered, InsufficientEscrow
from content_rail.core.events import EventSigner
from content_rail.core.state import UINT256_MAX
from content_rail.engine.rail import ContentRail
from content_rail.persistence import Database, LedgerRepository, get_database

SIGNING_KEY = bytes(range(32))


def open_rail(database_url):
    repository = LedgerRepository(get_database(database_url))
    return ContentRail.from_repository(
        repository,
        signer=EventSigner(SIGNING_KEY),
        clock=FixedClock(),
    )


class FailingRepository:
    """Repository whose writes always fail."""

    def save(self, state, changes, new_events):
        raise OSError("disk full")


class TestDatabase:
    """Test connection handling."""

    def test_only_sqlite_urls(self):
        with pytest.raises(ValueError):
            Database("postgresql://localhost/rail")

    def test_schema_created(self, temp_db_url):
        db = get_database(temp_db_url)
        tables = {r["name"] for r in db.execute("SELECT name FROM sqlite_master WHERE type='table'")}

        assert {"contents", "escrow_balances", "earnings_balances", "usage_counters",
                "ledger_totals", "ledger_events"} <= tables
        db.close()


class TestRoundTrip:
    """Test state survives a restart."""

    def test_state_restored(self, temp_db_url):
        rail = open_rail(temp_db_url)
        rail.register_content(CREATOR, 9, 10, 5, "Nine", b"\x00\x01")
        rail.register_content(CREATOR, 3, 4, 0, "Three", b"")
        rail.deposit_to_escrow(ALICE, 100)
        rail.access_content(ALICE, 9, 2)
        rail.access_content(ALICE, 3, 5)
        rail.repository.db.close()

        restored = open_rail(temp_db_url)

        assert restored.get_all_content_ids() == [9, 3]
        assert restored.get_content_data(9).data == b"\x00\x01"
        assert restored.get_escrow_balance(ALICE) == 60
        assert restored.get_earnings_balance(CREATOR) == 40
        assert restored.get_user_usage(ALICE, 9) == 2
        assert restored.audit_conservation()["balanced"] is True
        assert len(restored.events) == 5
        assert restored.verify_event_log() == (True, None)

    def test_restored_rail_keeps_rules(self, temp_db_url):
        rail = open_rail(temp_db_url)
        rail.register_content(CREATOR, 1, 10, 0, "One", b"")
        rail.repository.db.close()

        restored = open_rail(temp_db_url)

        with pytest.raises(AlreadyRegistered):
            restored.register_content(BOB, 1, 1, 0, "Copy", b"")

    def test_uint256_values_survive(self, temp_db_url):
        rail = open_rail(temp_db_url)
        rail.register_content(CREATOR, UINT256_MAX, UINT256_MAX, UINT256_MAX, "Max", b"")
        rail.deposit_to_escrow(ALICE, UINT256_MAX)
        rail.access_content(ALICE, UINT256_MAX, 1)
        rail.repository.db.close()

        restored = open_rail(temp_db_url)

        assert restored.get_content_data(UINT256_MAX).rate_per_unit == UINT256_MAX
        assert restored.get_earnings_balance(CREATOR) == UINT256_MAX
        assert restored.get_escrow_balance(ALICE) == 0

    def test_failed_operation_not_persisted(self, temp_db_url):
        rail = open_rail(temp_db_url)
        rail.register_content(CREATOR, 1, 10, 0, "One", b"")
        with pytest.raises(InsufficientEscrow):
            rail.access_content(ALICE, 1, 1)
        rail.repository.db.close()

        restored = open_rail(temp_db_url)

        assert restored.get_user_usage(ALICE, 1) == 0
        assert len(restored.events) == 1

    def test_get_balances(self, temp_db_url):
        rail = open_rail(temp_db_url)
        rail.deposit_to_escrow(ALICE, 12)

        assert rail.repository.get_balances(ALICE) == {
            "identity": ALICE,
            "escrow": 12,
            "earnings": 0,
        }
        assert rail.repository.get_balances(BOB)["escrow"] == 0


class TestIncrementalSave:
    """A save writes only the rows the operation touched."""

    def test_deposit_writes_constant_rows(self, temp_db_url):
        rail = open_rail(temp_db_url)
        for i in range(200):
            rail.deposit_to_escrow(f"user-{i}", 1)

        with rail.repository.db.connection() as conn:
            before = conn.total_changes
        rail.deposit_to_escrow("user-0", 1)
        with rail.repository.db.connection() as conn:
            written = conn.total_changes - before

        # one escrow row, two totals, one event
        assert written == 4

    def test_registration_inserts_only_new_content(self, temp_db_url):
        rail = open_rail(temp_db_url)
        for content_id in range(50):
            rail.register_content(CREATOR, content_id, 1, 0, f"Item {content_id}", b"")

        with rail.repository.db.connection() as conn:
            before = conn.total_changes
        rail.register_content(CREATOR, 50, 1, 0, "Item 50", b"")
        with rail.repository.db.connection() as conn:
            written = conn.total_changes - before

        assert written == 1 + 2 + 1
        rail.repository.db.close()
        assert open_rail(temp_db_url).get_all_content_ids() == list(range(51))

    def test_nested_changes_saved_with_outer(self, temp_db_url, gateway):
        repository = LedgerRepository(get_database(temp_db_url))
        rail = ContentRail.from_repository(
            repository, gateway=gateway, signer=EventSigner(SIGNING_KEY)
        )
        rail.deposit_to_escrow(ALICE, 100)
        gateway.register_recipient(ALICE, lambda recipient, amount: rail.deposit_to_escrow(BOB, 7))

        rail.withdraw_escrow(ALICE)
        repository.db.close()

        restored = open_rail(temp_db_url)
        assert restored.get_escrow_balance(ALICE) == 0
        assert restored.get_escrow_balance(BOB) == 7
        assert restored.audit_conservation()["balanced"] is True


class TestStorageFailure:
    """A failed save rolls the operation back."""

    def test_storage_error_rolls_back(self):
        rail = ContentRail(repository=FailingRepository())

        with pytest.raises(OSError):
            rail.deposit_to_escrow(ALICE, 10)

        assert rail.get_escrow_balance(ALICE) == 0
        assert len(rail.events) == 0
