"""
Database connection management.

Provides the SQLite connection backing the usage ledger.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "edu_guard.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create a SQLite connection with foreign keys enabled.

    Connections are opened in autocommit mode so that callers control
    transactions explicitly with BEGIN statements.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), isolation_level=None, timeout=10.0)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
