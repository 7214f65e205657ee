"""
Repository pattern for ledger persistence.

Exposes the local cache as a small key-value store with versioned
compare-and-swap writes, so that check-then-mutate sequences can be
made atomic without relying on multi-key transactions.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple, TypeVar

from credit_guard.core.errors import StoreConflict

from .db import DEFAULT_DB_PATH, get_connection
from .models import VersionedRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Mutator contract: receives the current raw value (None if absent) and
# returns (new raw value or None to leave the record untouched, result)
Mutator = Callable[[Optional[str]], Tuple[Optional[str], T]]

DEFAULT_MAX_ATTEMPTS = 64


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the ledger_record table if it doesn't exist.

    Each row holds one JSON value and a version counter that is bumped
    on every successful write.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ledger_record (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                version INTEGER NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
    finally:
        conn.close()


class LedgerStore:
    """Key-value store backing the device-local ledger cache.

    Writes never assume exclusive access: other processes or threads may
    write the same key at any time, so every conditional update is a
    compare-and-swap on the stored version.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """Initialize the store, creating the schema if needed.

        Args:
            db_path: Path to SQLite database file
            max_attempts: Compare-and-swap attempts before update() gives up
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.db_path = db_path
        self.max_attempts = max_attempts
        initialize_schema(db_path)

    def read(self, key: str) -> Optional[VersionedRecord]:
        """Return the record stored under key, or None."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT key, value, version FROM ledger_record WHERE key = ?",
                (key,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return VersionedRecord(key=row[0], value=row[1], version=row[2])

    def write(self, key: str, value: str) -> None:
        """Unconditionally store value under key."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO ledger_record (key, value, version, updated_at)
                VALUES (?, ?, 1, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    version = ledger_record.version + 1,
                    updated_at = excluded.updated_at
            """, (key, value, datetime.now().isoformat()))
        finally:
            conn.close()

    def compare_and_swap(self, key: str, value: str, expected_version: int) -> bool:
        """Store value only if the record is still at expected_version.

        An expected_version of 0 means the key must not exist yet.

        Returns:
            True if the write happened, False if another writer got there first
        """
        now = datetime.now().isoformat()
        conn = get_connection(self.db_path)
        try:
            if expected_version == 0:
                cursor = conn.execute("""
                    INSERT OR IGNORE INTO ledger_record (key, value, version, updated_at)
                    VALUES (?, ?, 1, ?)
                """, (key, value, now))
            else:
                cursor = conn.execute("""
                    UPDATE ledger_record
                    SET value = ?, version = version + 1, updated_at = ?
                    WHERE key = ? AND version = ?
                """, (value, now, key, expected_version))
            return cursor.rowcount == 1
        finally:
            conn.close()

    def update(self, key: str, mutate: Mutator) -> T:
        """Apply mutate to the current value atomically, retrying on conflict.

        The mutator may be called several times and must not have side
        effects beyond computing its return value.

        Raises:
            StoreConflict: If every attempt lost the race to another writer
        """
        for attempt in range(1, self.max_attempts + 1):
            record = self.read(key)
            current = record.value if record else None
            new_value, result = mutate(current)
            if new_value is None or new_value == current:
                return result
            expected = record.version if record else 0
            if self.compare_and_swap(key, new_value, expected):
                return result
            logger.debug("Version conflict on %s (attempt %d)", key, attempt)

        logger.warning("Giving up on %s after %d conflicting writes", key, self.max_attempts)
        raise StoreConflict(f"Could not update {key} after {self.max_attempts} attempts")
