from __future__ import annotations

import pytest

from inkora.storage.cache_manager import (
    CacheManager,
    ImageFileCache,
    NamespaceCache,
    file_key,
    sanitize_file_key,
)
from inkora.storage.cache_storage import (
    CacheStorage,
    CacheStorageError,
    InMemoryCacheStorage,
    SqliteCacheStorage,
)
from inkora.utils.response_cache import MemoryCache


class ManualTime:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenStorage(CacheStorage):
    def get(self, full_key):
        raise CacheStorageError("disk gone")

    def set(self, full_key, value, expires_at):
        raise CacheStorageError("disk gone")

    def delete(self, full_key):
        raise CacheStorageError("disk gone")

    def delete_prefix(self, prefix):
        raise CacheStorageError("disk gone")

    def clear(self):
        raise CacheStorageError("disk gone")


def test_ttl_boundary():
    now = ManualTime()
    cache = MemoryCache("manga", max_size=10, time_source=now)
    cache.set("k", "v", ttl=10)

    now.now = 109.999
    assert cache.get("k") == "v"
    now.now = 110.0
    assert cache.get("k") is None
    assert "k" not in cache.keys()


def test_lru_evicts_least_recently_used():
    cache = MemoryCache("covers", max_size=3)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    assert cache.get("a") == 1

    cache.set("d", 4)

    assert cache.keys() == ["c", "a", "d"]
    assert cache.get("b") is None
    assert cache.stats["evictions"] == 1


def test_overwrite_at_capacity_does_not_evict():
    cache = MemoryCache("covers", max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)

    assert len(cache) == 2
    assert cache.get("a") == 10
    assert cache.get("b") == 2
    assert cache.stats["evictions"] == 0


def test_namespace_cache_promotes_with_remaining_ttl():
    now = ManualTime()
    storage = InMemoryCacheStorage(time_source=now)
    writer = NamespaceCache("chapters", storage, ttl=60, time_source=now)
    writer.set("src:1", [{"id": "c1"}])

    now.now = 140.0
    reader = NamespaceCache("chapters", storage, ttl=60, time_source=now)
    assert reader.get("src:1") == [{"id": "c1"}]
    entry = reader.memory.get_entry("src:1")
    assert entry.expires_at == pytest.approx(160.0)

    now.now = 160.0
    assert reader.get("src:1") is None


def test_namespace_clear_only_touches_its_prefix():
    storage = InMemoryCacheStorage()
    manager = CacheManager(storage)
    manager.manga.set("a", {"id": "a"})
    manager.covers.set("a", "https://x/a.jpg")

    manager.manga.clear_namespace()

    assert manager.manga.get("a") is None
    assert manager.covers.get("a") == "https://x/a.jpg"


def test_storage_failures_degrade_to_miss():
    cache = NamespaceCache("manga", BrokenStorage(), ttl=60)
    cache.set("k", {"v": 1})
    assert cache.get("k") == {"v": 1}
    cache.memory.clear()
    assert cache.get("k") is None
    cache.delete("k")
    cache.clear_namespace()


def test_sqlite_storage_round_trip(tmp_path):
    now = ManualTime()
    storage = SqliteCacheStorage(tmp_path / "cache.sqlite3", time_source=now)
    storage.set("manga:1", {"title": "Frieren", "genres": ["Fantasy"]}, expires_at=200.0)
    storage.set("manga:2", {"title": "Dungeon Meshi"}, expires_at=None)
    storage.set("covers:1", "https://x/1.jpg", expires_at=None)

    entry = storage.get("manga:1")
    assert entry.namespace == "manga"
    assert entry.key == "1"
    assert entry.value == {"title": "Frieren", "genres": ["Fantasy"]}

    storage.set("manga:1", {"title": "Sousou no Frieren"}, expires_at=200.0)
    assert storage.get("manga:1").value == {"title": "Sousou no Frieren"}

    now.now = 200.0
    assert storage.get("manga:1") is None
    assert storage.get("manga:2").value == {"title": "Dungeon Meshi"}

    assert storage.delete_prefix("manga:") == 1
    assert storage.get("covers:1") is not None
    assert storage.size_bytes() > 0

    storage.clear()
    assert storage.get("covers:1") is None


def test_sqlite_storage_rejects_unserialisable_values(tmp_path):
    storage = SqliteCacheStorage(tmp_path / "cache.sqlite3")
    with pytest.raises(CacheStorageError):
        storage.set("manga:1", object(), expires_at=None)


def test_persistent_tier_survives_a_new_manager(tmp_path):
    db_path = tmp_path / "cache.sqlite3"
    first = CacheManager(SqliteCacheStorage(db_path))
    first.manga.set("mangadex_org:abc", {"id": "abc", "title": "Frieren"})
    first.close()

    second = CacheManager(SqliteCacheStorage(db_path))
    assert second.manga.get("mangadex_org:abc") == {"id": "abc", "title": "Frieren"}


def test_sanitize_file_key():
    assert sanitize_file_key("https://img.bato.to/pages/1.jpg") == "https_img.bato.to_pages_1.jpg"
    assert sanitize_file_key("///") == "item"


async def test_image_file_cache(tmp_path):
    now = ManualTime(1_700_000_000.0)
    images = ImageFileCache(tmp_path / "images", time_source=now)

    assert await images.read("cover-1") is None
    path = await images.write("cover-1", b"\x89PNG", extension="png")

    assert path.parent.name == "covers"
    assert path.name == "cover_cover-1_1700000000000.png"
    assert images.lookup("cover-1") == path
    assert await images.read("cover-1") == b"\x89PNG"
    assert images.lookup("cover-1", "page") is None
    assert images.size_bytes() == 4

    images.clear()
    assert images.lookup("cover-1") is None
    assert (tmp_path / "images" / "pages").is_dir()


async def test_image_keys_do_not_collide(tmp_path):
    now = ManualTime(1_700_000_000.0)
    images = ImageFileCache(tmp_path / "images", time_source=now)

    await images.write("abc_def", b"OTHER")
    assert images.lookup("abc") is None
    assert await images.read("abc") is None

    now.now += 1
    await images.write("abc/def", b"SLASHED")
    assert await images.read("abc_def") == b"OTHER"
    assert await images.read("abc/def") == b"SLASHED"

    now.now += 1
    newest = await images.write("abc_def", b"NEWER", extension="webp")
    assert images.lookup("abc_def") == newest
    assert await images.read("abc_def") == b"NEWER"


def test_file_key_marks_rewritten_keys():
    assert file_key("cover-1") == "cover-1"
    assert file_key("abc/def").startswith("abc_def-")
    assert file_key("abc/def") != file_key("abc:def")


def test_manager_clear_all_and_size(tmp_path):
    manager = CacheManager(SqliteCacheStorage(tmp_path / "db.sqlite3"), image_root=tmp_path / "img")
    manager.extensions.set("catalog", [{"name": "Bato"}])
    assert manager.size_bytes() > 0

    manager.clear_all()

    assert manager.extensions.get("catalog") is None
    assert "extensions" in manager.namespaces()
