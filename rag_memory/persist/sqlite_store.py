"""
SQLite-backed key-value store.

Each table maps a TEXT key to a BLOB value plus a write timestamp. The memory
store keeps records in ``memories`` and an id → key index in ``memory_ids``.
"""

import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple


DEFAULT_TABLES = ("memories", "memory_ids")


class KVStore:
    """
    File-backed SQLite key-value store.

    Thread-safe: one connection guarded by a re-entrant lock, WAL mode for
    concurrent readers from other processes. Hold ``transaction()`` to make a
    read-modify-write sequence atomic.
    """

    def __init__(self, db_path: Path, tables: Sequence[str] = DEFAULT_TABLES):
        """
        Initialize KV store at given path.

        Args:
            db_path: Path to SQLite database file (``:memory:`` allowed)
            tables: Table names to create
        """
        self.db_path = db_path
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.tables = tuple(tables)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            str(db_path),
            check_same_thread=False,
            timeout=10.0,
            isolation_level=None,
        )

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        self._init_tables()

    def _init_tables(self) -> None:
        """Create tables if they don't exist."""
        for table in self.tables:
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    ts INTEGER NOT NULL
                )
            """)
            self._conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_ts
                ON {table}(ts)
            """)

    def _check_table(self, table: str) -> None:
        if table not in self.tables:
            raise ValueError(f"Unknown table: {table}")

    @contextmanager
    def transaction(self) -> Iterator["KVStore"]:
        """
        Run a block of operations atomically.

        Nested use inside the same thread joins the outer transaction.
        """
        with self._lock:
            if self._conn.in_transaction:
                yield self
                return
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def set(self, table: str, key: str, value: bytes) -> None:
        """
        Set a key-value pair in the specified table.

        Args:
            table: Table name
            key: String key
            value: Binary value
        """
        self._check_table(table)
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO {table} (key, value, ts) VALUES (?, ?, ?)",
                (key, value, int(time.time()))
            )

    def get(self, table: str, key: str) -> Optional[bytes]:
        """
        Get value for a key from the specified table.

        Returns:
            Binary value if found, None otherwise
        """
        self._check_table(table)
        with self._lock:
            row = self._conn.execute(
                f"SELECT value FROM {table} WHERE key = ?",
                (key,)
            ).fetchone()
        return row[0] if row else None

    def delete(self, table: str, key: str) -> bool:
        """
        Delete a key from the specified table.

        Returns:
            True if a row was removed
        """
        self._check_table(table)
        with self._lock:
            cursor = self._conn.execute(f"DELETE FROM {table} WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def scan(self, table: str, prefix: str = "") -> List[Tuple[str, bytes]]:
        """
        List ``(key, value)`` pairs whose key starts with ``prefix``.

        Rows come back in insertion order.
        """
        self._check_table(table)
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT key, value FROM {table} WHERE substr(key, 1, ?) = ? ORDER BY rowid",
                (len(prefix), prefix)
            )
            return list(cursor.fetchall())

    def delete_prefix(self, table: str, prefix: str) -> int:
        """
        Delete every key starting with ``prefix``.

        Returns:
            Number of rows deleted
        """
        self._check_table(table)
        with self._lock:
            cursor = self._conn.execute(
                f"DELETE FROM {table} WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix)
            )
        return cursor.rowcount

    def stats(self, table: str) -> dict:
        """
        Get statistics for a table.

        Returns:
            Dict with count, total_bytes, oldest_ts, newest_ts
        """
        self._check_table(table)
        with self._lock:
            row = self._conn.execute(f"""
                SELECT
                    COUNT(*) as count,
                    SUM(LENGTH(value)) as total_bytes,
                    MIN(ts) as oldest_ts,
                    MAX(ts) as newest_ts
                FROM {table}
            """).fetchone()

        return {
            "count": row[0] or 0,
            "total_bytes": row[1] or 0,
            "oldest_ts": row[2] or 0,
            "newest_ts": row[3] or 0,
        }

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
