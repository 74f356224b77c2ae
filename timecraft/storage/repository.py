"""
Repository pattern for ledger persistence.

Stores the serialized rate-limit ledger under a fixed key, either in
memory or in a SQLite key-value table.
"""

from typing import Optional

from .db import get_connection


LEDGER_KEY = "timecraft_rate_limit"


class LedgerStore:
    """Durable storage for one serialized ledger blob."""

    def load(self) -> Optional[bytes]:
        """Return the stored ledger, or None when nothing is stored."""
        raise NotImplementedError

    def save(self, data: bytes) -> None:
        """Replace the stored ledger."""
        raise NotImplementedError


class InMemoryLedgerStore(LedgerStore):
    """Process-local store, used in tests and when persistence is disabled."""

    def __init__(self, data: Optional[bytes] = None):
        self.data = data

    def load(self) -> Optional[bytes]:
        return self.data

    def save(self, data: bytes) -> None:
        self.data = data


class SqliteLedgerStore(LedgerStore):
    """Ledger store backed by a SQLite key-value table.

    Each save replaces the value under the store's key in its own
    transaction, so a crash never leaves a half-written ledger.
    """

    def __init__(self, db_path: str = ".timecraft.db", key: str = LEDGER_KEY):
        """Initialize the store and create its table if needed.

        Args:
            db_path: Path to SQLite database file
            key: Key the ledger is stored under
        """
        self.db_path = db_path
        self.key = key
        initialize_schema(db_path)

    def load(self) -> Optional[bytes]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (self.key,)
            )
            row = cursor.fetchone()
            if row is None:
                return None
            value = row[0]
            return value.encode("utf-8") if isinstance(value, str) else value
        finally:
            conn.close()

    def save(self, data: bytes) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (self.key, data.decode("utf-8"))
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


def initialize_schema(db_path: str = ".timecraft.db") -> None:
    """Create the kv_store table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()
