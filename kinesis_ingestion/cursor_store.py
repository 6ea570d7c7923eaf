"""
Cursor Store

Per-shard checkpoint persistence over a key/value cache.

PRINCIPLES:
===========
1. Exactly one cursor per (stream, shard) key
2. Every save refreshes the expiry - abandoned shards age out
3. Expired entries read as absent
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Protocol, Tuple
from datetime import datetime, timedelta
from pathlib import Path
import asyncio
import logging
import sqlite3
from contextlib import contextmanager

from .clock import LogicalClock

logger = logging.getLogger(__name__)

CURSOR_KEY_PREFIX = "_kinesis_shard_"
SEQUENCE_KEY_SUFFIX = "_seq"
DEFAULT_CURSOR_TTL_SECONDS = 120


def cursor_key(stream_name: str, shard_id: str) -> str:
    """Namespaced cache key for a shard's cursor."""
    return f"{CURSOR_KEY_PREFIX}{stream_name}_{shard_id}"


def sequence_key(key: str) -> str:
    return f"{key}{SEQUENCE_KEY_SUFFIX}"


class CacheBackend(Protocol):
    """Key/value cache the store is built on."""

    async def get(self, key: str, default: Any = None) -> Any:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def expire(self, key: str, ttl_seconds: int) -> None:
        ...


# =============================================================================
# CACHE BACKENDS
# =============================================================================

class InMemoryCache:
    """
    Process-local cache with TTL support.

    Expiry is measured on the injected clock.
    """

    def __init__(self, clock: Optional[LogicalClock] = None):
        self._clock = clock or LogicalClock.live()
        self._entries: Dict[str, Tuple[Any, Optional[datetime]]] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if expires_at is not None and self._clock.now() >= expires_at:
            del self._entries[key]
            return default
        return value

    async def set(self, key: str, value: Any) -> None:
        # A plain set clears any previous expiry, as in Redis
        self._entries[key] = (value, None)

    async def expire(self, key: str, ttl_seconds: int) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        self._entries[key] = (entry[0], self._clock.now() + timedelta(seconds=ttl_seconds))

    async def purge(self) -> int:
        """Delete expired entries. Returns count removed."""
        now = self._clock.now()
        expired = [
            key for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class SqliteCache:
    """
    Durable cache backed by a single SQLite table.

    Survives process restarts so a redeployed bridge resumes from its
    last checkpoint.
    """

    def __init__(self, db_path: Path, clock: Optional[LogicalClock] = None):
        self._db_path = Path(db_path)
        self._clock = clock or LogicalClock.live()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_conn() as conn:
            conn.executescript('''
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    expires_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_cache_entries_expires ON cache_entries(expires_at);
            ''')

    @contextmanager
    def _get_conn(self):
        """Get database connection."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _get_sync(self, key: str, default: Any) -> Any:
        now = self._clock.now()
        with self._get_conn() as conn:
            row = conn.execute(
                'SELECT value, expires_at FROM cache_entries WHERE key = ?',
                (key,)
            ).fetchone()
            if row is None:
                return default
            if row['expires_at'] and datetime.fromisoformat(row['expires_at']) <= now:
                conn.execute('DELETE FROM cache_entries WHERE key = ?', (key,))
                return default
            return row['value']

    def _set_sync(self, key: str, value: Any):
        with self._get_conn() as conn:
            conn.execute('''
                INSERT OR REPLACE INTO cache_entries (key, value, expires_at)
                VALUES (?, ?, NULL)
            ''', (key, value))

    def _expire_sync(self, key: str, ttl_seconds: int):
        expires_at = self._clock.now() + timedelta(seconds=ttl_seconds)
        with self._get_conn() as conn:
            conn.execute(
                'UPDATE cache_entries SET expires_at = ? WHERE key = ?',
                (expires_at.isoformat(), key)
            )

    async def get(self, key: str, default: Any = None) -> Any:
        return await asyncio.to_thread(self._get_sync, key, default)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def expire(self, key: str, ttl_seconds: int) -> None:
        await asyncio.to_thread(self._expire_sync, key, ttl_seconds)

    async def purge(self) -> int:
        return await asyncio.to_thread(self.purge_expired)

    def purge_expired(self) -> int:
        """Delete expired rows. Returns count removed."""
        now = self._clock.now().isoformat()
        with self._get_conn() as conn:
            cursor = conn.execute(
                'DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= ?',
                (now,)
            )
            return cursor.rowcount


# =============================================================================
# CURSOR STORE
# =============================================================================

class CursorStore:
    """
    Loads and saves shard cursors through a cache backend.

    The sequence number of the last record read before a cursor is kept
    under a sibling key with the same expiry, so an expired cursor can be
    reissued right after it instead of at LATEST.
    """

    def __init__(self, cache: CacheBackend, ttl_seconds: int = DEFAULT_CURSOR_TTL_SECONDS):
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    async def load(self, key: str) -> Optional[str]:
        """Previously persisted cursor, or None if never set / expired."""
        cursor = await self._cache.get(key, None)
        return cursor or None

    async def load_sequence(self, key: str) -> Optional[str]:
        """Sequence number of the last record read before the persisted cursor."""
        sequence_number = await self._cache.get(sequence_key(key), None)
        return sequence_number or None

    async def save(
        self,
        key: str,
        cursor: str,
        sequence_number: Optional[str] = None,
        ttl_seconds: Optional[int] = None
    ) -> None:
        """Persist a cursor and refresh its expiry."""
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        await self._cache.set(key, cursor)
        await self._cache.expire(key, ttl)
        if sequence_number is not None:
            await self._cache.set(sequence_key(key), sequence_number)
        # Refreshed even when unchanged so both keys age out together
        await self._cache.expire(sequence_key(key), ttl)
        logger.debug(f"Checkpoint saved for {key}")

    async def clear(self, key: str) -> None:
        """Drop a checkpoint so the key reads as absent."""
        await self._cache.expire(key, 0)
        await self._cache.expire(sequence_key(key), 0)
        logger.debug(f"Checkpoint cleared for {key}")

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds
