"""
Database connection management.

Provides SQLite connection for ledger persistence.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "credit_guard.db"

# Seconds a writer waits on a locked database before giving up
BUSY_TIMEOUT = 30.0


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Connections run in autocommit mode so callers control transactions
    explicitly, and wait on a locked database instead of failing at once.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    return sqlite3.connect(str(path), timeout=BUSY_TIMEOUT, isolation_level=None)
