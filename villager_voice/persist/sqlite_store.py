"""
SQLite-backed result cache backend.

Drop-in replacement for the JSON document: each entry is its own row,
so concurrent writers no longer overwrite each other's keys.

Table ``results``:
- key: fingerprint
- value: JSON-encoded CacheEntry
- ts: write time (ms)
"""

import json
import sqlite3
from pathlib import Path
from typing import Optional

import structlog

from ..errors import StoreError
from .backend import CacheBackend, CacheEntry

logger = structlog.get_logger(__name__)


class SqliteBackend(CacheBackend):
    """
    File-backed SQLite key-value store for cache entries.

    Thread-safe with WAL mode; every write commits immediately.
    """

    TABLE = "results"

    def __init__(self, db_path: Path):
        """
        Initialize backend at given path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,  # Handlers may run on worker threads
                timeout=10.0,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._init_tables()
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open cache database {self.db_path}: {e}") from e

    def _init_tables(self) -> None:
        """Create the results table if it doesn't exist."""
        self._conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                ts INTEGER NOT NULL
            )
        """)
        self._conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{self.TABLE}_ts
            ON {self.TABLE}(ts)
        """)
        self._conn.commit()

    def read(self, key: str) -> Optional[CacheEntry]:
        cursor = self._conn.execute(
            f"SELECT value FROM {self.TABLE} WHERE key = ?",
            (key,)
        )
        row = cursor.fetchone()
        if row is None:
            return None

        raw = row[0]
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            doc = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("cache_row_corrupt", key=key, error=str(e))
            return None

        if not isinstance(doc, dict):
            logger.error("cache_row_corrupt", key=key, error="not an object")
            return None
        return CacheEntry.from_dict(doc)

    def write(self, key: str, entry: CacheEntry) -> None:
        try:
            value = json.dumps(entry.to_dict()).encode("utf-8")
            self._conn.execute(
                f"INSERT OR REPLACE INTO {self.TABLE} (key, value, ts) VALUES (?, ?, ?)",
                (key, value, entry.timestamp)
            )
            self._conn.commit()
        except (TypeError, ValueError, sqlite3.Error) as e:
            raise StoreError(f"Failed writing cache entry {key}: {e}") from e

    def delete(self, key: str) -> None:
        self._conn.execute(
            f"DELETE FROM {self.TABLE} WHERE key = ?",
            (key,)
        )
        self._conn.commit()

    def keys(self) -> list[str]:
        cursor = self._conn.execute(f"SELECT key FROM {self.TABLE} ORDER BY key")
        return [row[0] for row in cursor.fetchall()]

    def purge(self) -> int:
        """
        Delete all entries.

        Returns:
            Number of rows deleted
        """
        cursor = self._conn.execute(f"SELECT COUNT(*) FROM {self.TABLE}")
        count = cursor.fetchone()[0]

        self._conn.execute(f"DELETE FROM {self.TABLE}")
        self._conn.commit()

        return count

    def stats(self) -> dict:
        """
        Get statistics for the results table.

        Returns:
            Dict with count, total_bytes, oldest_ts, newest_ts (seconds)
        """
        cursor = self._conn.execute(f"""
            SELECT
                COUNT(*) as count,
                SUM(LENGTH(value)) as total_bytes,
                MIN(ts) as oldest_ts,
                MAX(ts) as newest_ts
            FROM {self.TABLE}
        """)
        row = cursor.fetchone()

        return {
            "count": row[0] or 0,
            "total_bytes": row[1] or 0,
            "oldest_ts": (row[2] or 0) // 1000,
            "newest_ts": (row[3] or 0) // 1000,
        }

    def vacuum(self) -> None:
        """Reclaim space after large deletions."""
        self._conn.execute("VACUUM")
        self._conn.commit()

    def close(self) -> None:
        """Close database connection."""
        self._conn.close()
