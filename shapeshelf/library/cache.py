"""In-memory cache of parsed category stores, keyed by file mtime."""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path

from shapeshelf.dsl.schema import ShapeRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Parsed records plus the store file's mtime when they were cached."""

    records: tuple[ShapeRecord, ...]
    last_modified: int


def _mtime_ns(path: Path | str) -> int:
    return os.stat(path).st_mtime_ns


class ShapeCache:
    """Read-through cache, one entry per category.

    The cache never reads store files itself; the store decides when to
    populate it. An entry is only served while the store file's mtime
    matches the one recorded at ``put`` time.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, category: str, store_path: Path | str) -> list[ShapeRecord] | None:
        """Get cached records for a category.

        Args:
            category: Category key.
            store_path: Path of the category's JSON store.

        Returns:
            Cached records, or None on a miss. A stale or unreadable
            store evicts the entry.
        """
        with self._lock:
            entry = self._entries.get(category)
            if entry is None:
                return None

            try:
                current = _mtime_ns(store_path)
            except OSError:
                del self._entries[category]
                return None

            if current != entry.last_modified:
                del self._entries[category]
                return None

            return list(entry.records)

    def put(self, category: str, store_path: Path | str, records: list[ShapeRecord]) -> None:
        """Cache records for a category against the store file's current mtime.

        Args:
            category: Category key.
            store_path: Path of the category's JSON store.
            records: Records just loaded from that file.
        """
        try:
            last_modified = _mtime_ns(store_path)
        except OSError as e:
            logger.warning(f"Failed to cache shapes for {category}: {e}")
            return

        with self._lock:
            self._entries[category] = CacheEntry(tuple(records), last_modified)

    def invalidate(self, category: str) -> None:
        """Drop the entry for one category."""
        with self._lock:
            self._entries.pop(category, None)

    def invalidate_all(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def clear(self) -> None:
        self.invalidate_all()

    def __contains__(self, category: str) -> bool:
        return category in self._entries

    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            categories = list(self._entries)
            return {
                "categories_in_cache": len(categories),
                "total_shapes_cached": sum(len(e.records) for e in self._entries.values()),
                "categories": categories,
            }
