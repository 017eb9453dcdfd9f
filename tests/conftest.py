"""
Pytest Configuration and Fixtures
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

from content_rail.core.state import Identity, MonotonicClock
from content_rail.engine.rail import ContentRail
from content_rail.ledger.gateway import InMemoryTransferGateway

CREATOR = Identity("creator-0x01")
ALICE = Identity("alice-0xa1")
BOB = Identity("bob-0xb0")


class FixedClock(MonotonicClock):
    """Clock that advances one second per reading."""

    def __init__(self, start: int = 1_700_000_000):
        super().__init__(time_source=lambda: 0)
        self._next = start

    def now(self) -> int:
        value = self._next
        self._next += 1
        return value


@pytest.fixture
def gateway():
    return InMemoryTransferGateway()


@pytest.fixture
def rail(gateway):
    """Rail with in-memory custody and a deterministic clock."""
    return ContentRail(gateway=gateway, clock=FixedClock())


@pytest.fixture
def priced_content(rail):
    """Content id=1, rate=10, maxUnits=5, owned by CREATOR."""
    return rail.register_content(CREATOR, 1, 10, 5, "Chapter One", b"ipfs://chapter-one")


@pytest.fixture
def temp_db_url(tmp_path):
    """SQLite URL in a temporary directory."""
    return f"sqlite:///{tmp_path / 'rail.db'}"
