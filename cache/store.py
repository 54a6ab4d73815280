"""
cache/store.py -- SQLite-backed cache for API responses.

Entries live in named buckets (e.g. "user" for the user listing) with a
configurable TTL. Writers that change what a bucket describes call
delete(bucket) so the next read goes back to the store.

Usage:
    cache = ResponseCache()
    data = cache.get("user")      # returns decoded JSON or None
    cache.set("user", data)
    cache.delete("user")          # after a registration / unregistration
    cache.purge_expired()         # call periodically to trim old entries
"""

import json
import sqlite3
import time
from typing import Any, Optional

from core.config import get_settings

_DDL = """
CREATE TABLE IF NOT EXISTS response_cache (
    cache_key   TEXT PRIMARY KEY,
    data        TEXT NOT NULL,
    cached_at   REAL NOT NULL
);
"""


class ResponseCache:
    def __init__(self, db_path: Optional[str] = None, ttl: Optional[int] = None) -> None:
        settings = get_settings()
        self.ttl = ttl if ttl is not None else settings.cache_ttl_seconds
        self._conn = sqlite3.connect(db_path or settings.cache_db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def get(self, key: str) -> Optional[Any]:
        """Return cached data for key if it exists and hasn't expired."""
        row = self._conn.execute(
            "SELECT data, cached_at FROM response_cache WHERE cache_key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        data, cached_at = row
        if time.time() - cached_at > self.ttl:
            self.delete(key)
            return None
        return json.loads(data)

    def set(self, key: str, data: Any) -> None:
        """Store data for key, replacing any existing entry."""
        self._conn.execute(
            "INSERT OR REPLACE INTO response_cache (cache_key, data, cached_at) VALUES (?, ?, ?)",
            (key, json.dumps(data), time.time()),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        """Drop the entry for key. Missing keys are a no-op."""
        self._conn.execute("DELETE FROM response_cache WHERE cache_key = ?", (key,))
        self._conn.commit()

    def purge_expired(self) -> int:
        """Delete all entries older than TTL. Returns number of rows removed."""
        cutoff = time.time() - self.ttl
        cursor = self._conn.execute("DELETE FROM response_cache WHERE cached_at < ?", (cutoff,))
        self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()
