"""Tests for the mtime-keyed shape cache."""

import json
import os

from conftest import make_record
from shapeshelf.library.cache import ShapeCache


def _bump_mtime(path, seconds: int = 10) -> None:
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + seconds * 1_000_000_000))


class TestShapeCache:
    """Tests for ShapeCache."""

    def test_hit_while_mtime_matches(self, tmp_path):
        """A put entry is served while the file is unchanged."""
        store_path = tmp_path / "basic.json"
        store_path.write_text("[]")
        cache = ShapeCache()
        records = [make_record("s1")]

        cache.put("basic", store_path, records)

        assert cache.get("basic", store_path) == records

    def test_miss_without_entry(self, tmp_path):
        assert ShapeCache().get("basic", tmp_path / "basic.json") is None

    def test_stale_entry_is_evicted(self, tmp_path):
        """A newer mtime is a miss and drops the entry."""
        store_path = tmp_path / "basic.json"
        store_path.write_text("[]")
        cache = ShapeCache()
        cache.put("basic", store_path, [make_record("s1")])

        _bump_mtime(store_path)

        assert cache.get("basic", store_path) is None
        assert "basic" not in cache

    def test_missing_file_is_evicted(self, tmp_path):
        """A store that cannot be stat'd is a miss and drops the entry."""
        store_path = tmp_path / "basic.json"
        store_path.write_text("[]")
        cache = ShapeCache()
        cache.put("basic", store_path, [])

        store_path.unlink()

        assert cache.get("basic", store_path) is None
        assert "basic" not in cache

    def test_put_on_missing_file_is_skipped(self, tmp_path, caplog):
        """Caching against a missing file logs and stores nothing."""
        cache = ShapeCache()
        cache.put("basic", tmp_path / "absent.json", [])
        assert "basic" not in cache
        assert "Failed to cache shapes for basic" in caplog.text

    def test_invalidate(self, tmp_path):
        store_path = tmp_path / "basic.json"
        store_path.write_text("[]")
        cache = ShapeCache()
        cache.put("basic", store_path, [])
        cache.put("arrows", store_path, [])

        cache.invalidate("basic")
        assert "basic" not in cache and "arrows" in cache

        cache.invalidate_all()
        assert "arrows" not in cache

    def test_stats(self, tmp_path):
        """Stats report categories and cached record totals."""
        store_path = tmp_path / "basic.json"
        store_path.write_text("[]")
        cache = ShapeCache()
        cache.put("basic", store_path, [make_record("a"), make_record("b")])
        cache.put("arrows", store_path, [make_record("c", category="arrows")])

        stats = cache.stats()

        assert stats["categories_in_cache"] == 2
        assert stats["total_shapes_cached"] == 3
        assert sorted(stats["categories"]) == ["arrows", "basic"]

    def test_returned_list_is_a_copy(self, tmp_path):
        """Mutating a returned list does not change the cache."""
        store_path = tmp_path / "basic.json"
        store_path.write_text("[]")
        cache = ShapeCache()
        cache.put("basic", store_path, [make_record("a")])

        cache.get("basic", store_path).clear()

        assert len(cache.get("basic", store_path)) == 1


class TestStoreCacheCoherence:
    """The store reloads when the file changes behind the cache."""

    def test_external_edit_is_picked_up(self, store, paths, cache):
        """Touching the store file makes the next list() read from disk."""
        store.add(make_record("s1", name="Original"))
        assert store.list("basic")[0].name == "Original"
        assert "basic" in cache

        store_path = paths.store_path("basic")
        data = json.loads(store_path.read_text(encoding="utf-8"))
        data[0]["name"] = "Edited elsewhere"
        store_path.write_text(json.dumps(data), encoding="utf-8")
        _bump_mtime(store_path)

        assert store.list("basic")[0].name == "Edited elsewhere"
