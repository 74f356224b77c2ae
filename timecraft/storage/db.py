"""
Database connection management.

Provides SQLite connection for ledger persistence.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path: str = ".timecraft.db") -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Parent directories are created so a fresh install can write its ledger.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))
