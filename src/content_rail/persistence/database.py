"""
Database Connection Layer

SQLite storage for the ledger with automatic schema creation. uint256 values
do not fit SQLite integers, so amounts, ids and counters are stored as
decimal text.
"""

import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional

import structlog

logger = structlog.get_logger()

# Schema version for migrations
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Content catalog (seq preserves registration order)
CREATE TABLE IF NOT EXISTS contents (
    content_id TEXT PRIMARY KEY,
    seq INTEGER NOT NULL UNIQUE,
    creator TEXT NOT NULL,
    rate_per_unit TEXT NOT NULL,
    max_units TEXT NOT NULL,
    title TEXT NOT NULL,
    data BLOB NOT NULL,
    registered_at INTEGER NOT NULL
);

-- Escrow balances
CREATE TABLE IF NOT EXISTS escrow_balances (
    identity TEXT PRIMARY KEY,
    balance TEXT NOT NULL
);

-- Creator earnings
CREATE TABLE IF NOT EXISTS earnings_balances (
    identity TEXT PRIMARY KEY,
    balance TEXT NOT NULL
);

-- Usage counters
CREATE TABLE IF NOT EXISTS usage_counters (
    identity TEXT NOT NULL,
    content_id TEXT NOT NULL,
    units TEXT NOT NULL,
    PRIMARY KEY (identity, content_id)
);

-- Conservation totals
CREATE TABLE IF NOT EXISTS ledger_totals (
    name TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Signed notification log
CREATE TABLE IF NOT EXISTS ledger_events (
    sequence INTEGER PRIMARY KEY,
    event_id TEXT NOT NULL UNIQUE,
    event_type TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    payload TEXT NOT NULL,  -- JSON object
    prev_hash TEXT NOT NULL,
    signature TEXT NOT NULL,
    key_id TEXT NOT NULL
);

-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_contents_creator ON contents(creator);
CREATE INDEX IF NOT EXISTS idx_events_type ON ledger_events(event_type);
"""


class Database:
    """
    SQLite connection manager.

    Usage:
        db = Database("sqlite:///content_rail.db")
        db.initialize()
        with db.connection() as conn:
            conn.execute("SELECT * FROM contents")
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or os.environ.get(
            "DATABASE_URL",
            "sqlite:///content_rail.db"
        )
        if not self.database_url.startswith("sqlite:///"):
            raise ValueError(f"Unsupported database URL: {self.database_url}")
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

    @property
    def path(self) -> str:
        """SQLite file path from the URL."""
        return self.database_url[len("sqlite:///"):]

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Per-thread connection; commits on success, rolls back on error.
        """
        if getattr(self._local, 'conn', None) is None:
            conn = sqlite3.connect(
                self.path,
                check_same_thread=False,
                timeout=30.0,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn

        try:
            yield self._local.conn
            self._local.conn.commit()
        except Exception:
            self._local.conn.rollback()
            raise

    def initialize(self) -> None:
        """Create the schema if it does not exist."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            with self.connection() as conn:
                conn.executescript(SCHEMA_SQL)
                conn.execute(
                    "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, datetime.now(timezone.utc).isoformat())
                )

            self._initialized = True
            logger.info("database_initialized", path=self.path)

    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute a query and return results as list of dicts."""
        with self.connection() as conn:
            cursor = conn.execute(query, params)
            if cursor.description:
                return [dict(row) for row in cursor.fetchall()]
            return []

    def close(self) -> None:
        """Close this thread's connection."""
        if getattr(self._local, 'conn', None) is not None:
            self._local.conn.close()
            self._local.conn = None


def get_database(database_url: Optional[str] = None) -> Database:
    """Create and initialize a database."""
    db = Database(database_url)
    db.initialize()
    return db
