"""Persistent key/value backends for the second cache tier."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from inkora.utils.response_cache import CacheEntry, TimeSource


class CacheStorageError(RuntimeError):
    """Raised when a persistent backend cannot read or write."""


def split_key(full_key: str) -> tuple[str, str]:
    namespace, _, key = full_key.partition(":")
    return namespace, key


class CacheStorage(ABC):
    """Opaque get/set/delete store keyed by ``namespace:key``."""

    @abstractmethod
    def get(self, full_key: str) -> CacheEntry | None:
        """Return the live entry for ``full_key``; expired rows are purged."""

    @abstractmethod
    def set(self, full_key: str, value: Any, expires_at: float | None) -> None:
        """Persist ``value`` until ``expires_at`` (absolute) or forever."""

    @abstractmethod
    def delete(self, full_key: str) -> None:
        """Remove ``full_key`` if present."""

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; return how many."""

    @abstractmethod
    def clear(self) -> None:
        """Remove everything."""

    def size_bytes(self) -> int:
        return 0

    def close(self) -> None:  # noqa: B027 - optional hook
        """Release backend resources."""


class InMemoryCacheStorage(CacheStorage):
    """Dictionary backed storage for tests and ephemeral contexts."""

    def __init__(self, *, time_source: TimeSource = time.time) -> None:
        self._rows: dict[str, CacheEntry] = {}
        self._now = time_source
        self._lock = threading.Lock()

    def get(self, full_key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._rows.get(full_key)
            if entry is None:
                return None
            if entry.is_expired(self._now()):
                del self._rows[full_key]
                return None
            return entry

    def set(self, full_key: str, value: Any, expires_at: float | None) -> None:
        namespace, key = split_key(full_key)
        # Round-trip through JSON so callers get the same shapes SQLite returns.
        stored = json.loads(json.dumps(value, ensure_ascii=False))
        with self._lock:
            self._rows[full_key] = CacheEntry(namespace, key, stored, self._now(), expires_at)

    def delete(self, full_key: str) -> None:
        with self._lock:
            self._rows.pop(full_key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._rows if key.startswith(prefix)]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def __len__(self) -> int:
        return len(self._rows)


class SqliteCacheStorage(CacheStorage):
    """SQLite backed storage; values are stored as JSON text."""

    def __init__(self, db_path: str | Path, *, time_source: TimeSource = time.time) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._now = time_source
        self._initialise()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        # autocommit; every operation is a single statement
        conn = sqlite3.connect(self._db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _initialise(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS cache_entries (
                        cache_key TEXT PRIMARY KEY,
                        payload TEXT NOT NULL,
                        cached_at REAL NOT NULL,
                        expires_at REAL
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise CacheStorageError(f"Cannot initialise cache database {self._db_path}: {exc}") from exc

    def get(self, full_key: str) -> CacheEntry | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT payload, cached_at, expires_at FROM cache_entries WHERE cache_key = ?",
                    (full_key,),
                ).fetchone()
                if not row:
                    return None
                if row["expires_at"] is not None and self._now() >= row["expires_at"]:
                    conn.execute("DELETE FROM cache_entries WHERE cache_key = ?", (full_key,))
                    return None
        except sqlite3.Error as exc:
            raise CacheStorageError(f"Cache read failed for {full_key}: {exc}") from exc

        try:
            value = json.loads(row["payload"])
        except (TypeError, json.JSONDecodeError) as exc:
            raise CacheStorageError(f"Invalid cache payload for {full_key}") from exc
        namespace, key = split_key(full_key)
        return CacheEntry(namespace, key, value, row["cached_at"], row["expires_at"])

    def set(self, full_key: str, value: Any, expires_at: float | None) -> None:
        try:
            serialized = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise CacheStorageError(f"Value for {full_key} is not JSON serialisable") from exc
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO cache_entries(cache_key, payload, cached_at, expires_at)
                    VALUES(?, ?, ?, ?)
                    ON CONFLICT(cache_key) DO UPDATE SET
                        payload = excluded.payload,
                        cached_at = excluded.cached_at,
                        expires_at = excluded.expires_at
                    """,
                    (full_key, serialized, self._now(), expires_at),
                )
        except sqlite3.Error as exc:
            raise CacheStorageError(f"Cache write failed for {full_key}: {exc}") from exc

    def delete(self, full_key: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM cache_entries WHERE cache_key = ?", (full_key,))
        except sqlite3.Error as exc:
            raise CacheStorageError(f"Cache delete failed for {full_key}: {exc}") from exc

    def delete_prefix(self, prefix: str) -> int:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM cache_entries WHERE substr(cache_key, 1, ?) = ?",
                    (len(prefix), prefix),
                )
                return cursor.rowcount
        except sqlite3.Error as exc:
            raise CacheStorageError(f"Cache prefix delete failed for {prefix}: {exc}") from exc

    def clear(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM cache_entries")
        except sqlite3.Error as exc:
            raise CacheStorageError(f"Cache clear failed: {exc}") from exc

    def size_bytes(self) -> int:
        total = 0
        for suffix in ("", "-wal", "-shm"):
            path = Path(f"{self._db_path}{suffix}")
            if path.exists():
                total += path.stat().st_size
        return total


__all__ = [
    "CacheStorage",
    "CacheStorageError",
    "InMemoryCacheStorage",
    "SqliteCacheStorage",
]
