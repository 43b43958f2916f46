"""Namespaced two-tier cache plus the on-disk image cache."""

from __future__ import annotations

import hashlib
import re
import shutil
import time
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from inkora.config.config import CACHE_NAMESPACES, DEFAULT_MEMORY_CACHE_SIZE
from inkora.storage.cache_storage import CacheStorage, CacheStorageError, InMemoryCacheStorage
from inkora.utils.logger import cache_logger as logger
from inkora.utils.response_cache import MemoryCache, TimeSource

IMAGE_TYPES = ("cover", "page")
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class NamespaceCache:
    """One logical cache namespace backed by a memory tier and a persistent tier.

    Reads try memory, then storage; a storage hit is promoted into memory
    with whatever TTL it has left. Writes go to both tiers. A failing
    storage backend is logged and behaves like a miss.
    """

    def __init__(
        self,
        namespace: str,
        storage: CacheStorage,
        *,
        ttl: float | None = None,
        max_size: int = DEFAULT_MEMORY_CACHE_SIZE,
        time_source: TimeSource = time.time,
    ) -> None:
        self.namespace = namespace
        self.ttl = ttl
        self._storage = storage
        self._now = time_source
        self.memory = MemoryCache(namespace, max_size=max_size, default_ttl=ttl, time_source=time_source)

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Any:
        entry = self.memory.get_entry(key)
        if entry is not None:
            return entry.value

        try:
            stored = self._storage.get(self._full_key(key))
        except CacheStorageError as exc:
            logger.warning(f"[Cache] Storage read failed for {self.namespace}:{key}: {exc}")
            return None
        if stored is None:
            return None

        remaining = stored.remaining_ttl(self._now())
        if remaining is not None and remaining <= 0:
            return None
        self.memory.set(key, stored.value, ttl=remaining)
        logger.debug(f"[Cache] Promoted {self.namespace}:{key} from storage")
        return stored.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl_seconds = ttl if ttl is not None else self.ttl
        entry = self.memory.set(key, value, ttl=ttl_seconds)
        try:
            self._storage.set(self._full_key(key), value, entry.expires_at)
        except CacheStorageError as exc:
            logger.warning(f"[Cache] Storage write failed for {self.namespace}:{key}: {exc}")

    def delete(self, key: str) -> None:
        self.memory.delete(key)
        try:
            self._storage.delete(self._full_key(key))
        except CacheStorageError as exc:
            logger.warning(f"[Cache] Storage delete failed for {self.namespace}:{key}: {exc}")

    def clear_namespace(self) -> None:
        self.memory.clear()
        try:
            removed = self._storage.delete_prefix(f"{self.namespace}:")
        except CacheStorageError as exc:
            logger.warning(f"[Cache] Storage clear failed for {self.namespace}: {exc}")
            return
        logger.info(f"[Cache] Cleared namespace {self.namespace} ({removed} stored entries)")


def sanitize_file_key(key: str) -> str:
    cleaned = _UNSAFE_KEY_CHARS.sub("_", key).strip("_")
    return cleaned or "item"


def file_key(key: str) -> str:
    """Filename segment for ``key``; keys that had to be rewritten get a digest suffix."""

    cleaned = sanitize_file_key(key)
    if cleaned == key:
        return cleaned
    return f"{cleaned}-{hashlib.md5(key.encode()).hexdigest()[:10]}"


class ImageFileCache:
    """Binary image files under ``<root>/<type>s/<type>_<key>_<timestamp>.<ext>``."""

    def __init__(self, root: str | Path, *, time_source: TimeSource = time.time) -> None:
        self._root = Path(root)
        self._now = time_source

    @property
    def root(self) -> Path:
        return self._root

    def directory_for(self, image_type: str) -> Path:
        return self._root / f"{image_type}s"

    def _prefix(self, key: str, image_type: str) -> str:
        return f"{image_type}_{file_key(key)}_"

    def lookup(self, key: str, image_type: str = "cover") -> Path | None:
        """Newest file stored for exactly ``key``."""

        directory = self.directory_for(image_type)
        if not directory.is_dir():
            return None
        pattern = re.compile(rf"{re.escape(self._prefix(key, image_type))}(\d+)\.[^.]+")
        matches: list[tuple[int, Path]] = []
        for path in directory.iterdir():
            match = pattern.fullmatch(path.name)
            if match is not None:
                matches.append((int(match.group(1)), path))
        return max(matches)[1] if matches else None

    async def read(self, key: str, image_type: str = "cover") -> bytes | None:
        path = self.lookup(key, image_type)
        if path is None:
            return None
        async with aiofiles.open(path, "rb") as handle:
            return await handle.read()

    async def write(self, key: str, data: bytes, image_type: str = "cover", extension: str = "jpg") -> Path:
        directory = self.directory_for(image_type)
        await aiofiles.os.makedirs(directory, exist_ok=True)
        stamp = int(self._now() * 1000)
        path = directory / f"{self._prefix(key, image_type)}{stamp}.{extension.lstrip('.') or 'jpg'}"
        async with aiofiles.open(path, "wb") as handle:
            await handle.write(data)
        logger.debug(f"[Cache] Stored {image_type} image {path.name} ({len(data)} bytes)")
        return path

    def size_bytes(self) -> int:
        if not self._root.exists():
            return 0
        return sum(path.stat().st_size for path in self._root.rglob("*") if path.is_file())

    def clear(self) -> None:
        if self._root.exists():
            shutil.rmtree(self._root)
        for image_type in IMAGE_TYPES:
            self.directory_for(image_type).mkdir(parents=True, exist_ok=True)


class CacheManager:
    """Own the cache namespaces, their storage backend and the image files."""

    def __init__(
        self,
        storage: CacheStorage | None = None,
        *,
        image_root: str | Path | None = None,
        namespaces: dict[str, tuple[float, int]] | None = None,
        default_capacity: int = DEFAULT_MEMORY_CACHE_SIZE,
        time_source: TimeSource = time.time,
    ) -> None:
        self.storage = storage or InMemoryCacheStorage(time_source=time_source)
        self._time_source = time_source
        self._default_capacity = default_capacity
        self._namespaces: dict[str, NamespaceCache] = {}
        for name, (ttl, capacity) in (namespaces or CACHE_NAMESPACES).items():
            self._namespaces[name] = NamespaceCache(
                name, self.storage, ttl=ttl, max_size=capacity, time_source=time_source
            )
        self.images = ImageFileCache(image_root, time_source=time_source) if image_root else None

    def namespace(self, name: str) -> NamespaceCache:
        cache = self._namespaces.get(name)
        if cache is None:
            cache = NamespaceCache(
                name, self.storage, max_size=self._default_capacity, time_source=self._time_source
            )
            self._namespaces[name] = cache
        return cache

    @property
    def covers(self) -> NamespaceCache:
        return self.namespace("covers")

    @property
    def chapters(self) -> NamespaceCache:
        return self.namespace("chapters")

    @property
    def manga(self) -> NamespaceCache:
        return self.namespace("manga")

    @property
    def extensions(self) -> NamespaceCache:
        return self.namespace("extensions")

    def namespaces(self) -> list[str]:
        return sorted(self._namespaces)

    def clear_all(self) -> None:
        for cache in self._namespaces.values():
            cache.memory.clear()
        try:
            self.storage.clear()
        except CacheStorageError as exc:
            logger.warning(f"[Cache] Storage reset failed: {exc}")
        if self.images is not None:
            self.images.clear()
        logger.info("[Cache] All caches cleared")

    def size_bytes(self) -> int:
        total = self.storage.size_bytes()
        if self.images is not None:
            total += self.images.size_bytes()
        return total

    def close(self) -> None:
        self.storage.close()


__all__ = [
    "CacheManager",
    "ImageFileCache",
    "NamespaceCache",
    "file_key",
    "sanitize_file_key",
]
