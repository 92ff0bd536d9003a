#!/usr/bin/env python3
"""
SQLite Store
Persistent backend for the cache facade.

Implements:
- get(key) → value | None
- get_multiple(keys) → {key: value}
- set(key, value, ttl) / set_multiple(items, ttl)
- delete(key) / delete_multiple(keys) / clear()
- clear_expired() → rows removed

Values are pickled, so dependency objects attached by the facade
survive a round trip through the database.
"""

import os
import pickle
import sqlite3
import time
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from .base import TTL, normalize_ttl

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "~/.cache/depcache/cache.db"

# Errors a write can hit: backend failures and values pickle refuses
WRITE_ERRORS = (sqlite3.Error, pickle.PicklingError, TypeError, AttributeError)


class SQLiteStore:
    """
    SQLite-backed key-value store with TTL.

    Design principles:
    - Expired rows are invisible to reads, removed by clear_expired()
    - Write failures are logged and returned as False
    - Read failures degrade to a miss
    """

    def __init__(self, db_path: str = None, default_ttl: TTL = None):
        """Open (and create if needed) the database at db_path."""
        if db_path is None:
            db_path = os.path.expanduser(DEFAULT_DB_PATH)

        self.db_path = str(db_path)
        self.default_ttl = default_ttl
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Use check_same_thread=False so one store can back a shared facade
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        self.conn.row_factory = sqlite3.Row

        self._init_schema()

        logger.info(f"SQLiteStore initialized at {self.db_path}")

    def _init_schema(self):
        """Create tables if they don't exist."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS cache_entries (
                cache_key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                created_at REAL NOT NULL,
                expires_at REAL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at)")

        self.conn.commit()
        logger.debug("Schema initialized")

    def _expires_at(self, ttl: TTL, now: float) -> Optional[float]:
        seconds = normalize_ttl(ttl, self.default_ttl)
        return now + seconds if seconds is not None else None

    def get(self, key: str) -> Optional[Any]:
        """Return the unpickled value, or None if absent or expired."""
        return self.get_multiple([key]).get(key)

    def get_multiple(self, keys: Iterable[str]) -> Dict[str, Any]:
        """
        Fetch several keys in one query.

        Returns:
            {key: value} for live entries only; absent keys are omitted
        """
        keys = list(dict.fromkeys(keys))
        if not keys:
            return {}

        placeholders = ",".join("?" for _ in keys)
        try:
            cursor = self.conn.cursor()
            cursor.execute(f"""
                SELECT cache_key, value FROM cache_entries
                WHERE cache_key IN ({placeholders})
                AND (expires_at IS NULL OR expires_at > ?)
            """, (*keys, time.time()))
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Cache get error: {e}")
            return {}

        results = {}
        for row in rows:
            try:
                results[row["cache_key"]] = pickle.loads(row["value"])
            except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
                logger.error(f"Cannot unpickle value for {row['cache_key']}: {e}")
        return results

    def has(self, key: str) -> bool:
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT 1 FROM cache_entries
                WHERE cache_key = ? AND (expires_at IS NULL OR expires_at > ?)
                LIMIT 1
            """, (key, time.time()))
            return cursor.fetchone() is not None
        except sqlite3.Error as e:
            logger.error(f"Cache has error: {e}")
            return False

    def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        return self.set_multiple({key: value}, ttl)

    def set_multiple(self, items: Mapping[str, Any], ttl: TTL = None) -> bool:
        """
        Write all items in a single transaction.

        A non-positive TTL deletes the keys instead. Returns False and
        writes nothing if any value fails to pickle or the insert fails.
        """
        now = time.time()
        expires_at = self._expires_at(ttl, now)
        if expires_at is not None and expires_at <= now:
            return self.delete_multiple(items.keys())

        try:
            rows = [
                (key, sqlite3.Binary(pickle.dumps(value)), now, expires_at)
                for key, value in items.items()
            ]
            with self.conn:
                self.conn.executemany("""
                    INSERT OR REPLACE INTO cache_entries
                    (cache_key, value, created_at, expires_at)
                    VALUES (?, ?, ?, ?)
                """, rows)
        except WRITE_ERRORS as e:
            logger.error(f"Cache write error: {e}")
            return False

        logger.debug(f"Cached {len(rows)} entries (expires_at={expires_at})")
        return True

    def delete(self, key: str) -> bool:
        return self.delete_multiple([key])

    def delete_multiple(self, keys: Iterable[str]) -> bool:
        try:
            with self.conn:
                self.conn.executemany(
                    "DELETE FROM cache_entries WHERE cache_key = ?",
                    [(key,) for key in keys],
                )
            return True
        except sqlite3.Error as e:
            logger.error(f"Cache delete error: {e}")
            return False

    def clear(self) -> bool:
        try:
            with self.conn:
                self.conn.execute("DELETE FROM cache_entries")
            logger.info(f"Cleared all cache entries in {self.db_path}")
            return True
        except sqlite3.Error as e:
            logger.error(f"Cache clear error: {e}")
            return False

    def clear_expired(self) -> int:
        """Remove all expired entries. Should be called periodically."""
        try:
            with self.conn:
                cursor = self.conn.execute(
                    "DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
                    (time.time(),),
                )
            cleared = cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Clear expired error: {e}")
            return 0

        if cleared > 0:
            logger.info(f"Cleared {cleared} expired cache entries")
        return cleared

    def close(self):
        """Close database connection. Later calls fail like any backend error."""
        self.conn.close()
        logger.info("SQLiteStore closed")
