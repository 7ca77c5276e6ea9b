"""Category-partitioned JSON storage of shape records."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from pydantic import TypeAdapter, ValidationError

from shapeshelf.config import DEFAULT_CATEGORIES
from shapeshelf.dsl.schema import ShapeRecord
from shapeshelf.errors import InvalidShapeError, ShapeNotFoundError, ShapeshelfError, UnknownCategoryError
from shapeshelf.library.cache import ShapeCache
from shapeshelf.library.paths import LibraryPaths

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(list[ShapeRecord])

# Fields that identify a record's storage slot and cannot change through update().
_IMMUTABLE_FIELDS = {"id", "category"}


def field_name(key: str) -> str:
    """Map an on-disk key (``nativePptx``) to its field name (``native_pptx``)."""
    for name, info in ShapeRecord.model_fields.items():
        if key == name or key == info.alias:
            return name
    return key


def check_preview(record: ShapeRecord) -> None:
    """Reject a record whose preview path is not under its own category.

    Raises:
        InvalidShapeError: If ``record.preview`` names another category.
    """
    if record.preview_category != record.category:
        raise InvalidShapeError(
            f"Preview for shape {record.id} must be under {record.category}/",
            detail=record.preview,
        )


class ShapeStore:
    """Storage and retrieval of shape records, one JSON document per category.

    Every mutation reads the whole category document, modifies it in
    memory and rewrites it sorted by name. Reads go through the
    ShapeCache when caching is enabled.
    """

    def __init__(
        self,
        paths: LibraryPaths,
        cache: ShapeCache | None = None,
        categories: Iterable[str] = DEFAULT_CATEGORIES,
        enable_cache: bool = True,
    ) -> None:
        """Initialize the shape store.

        Args:
            paths: Library layout resolver.
            cache: Shared cache; a private one is created if omitted.
            categories: Closed set of category keys.
            enable_cache: Whether reads consult the cache.
        """
        self.paths = paths
        self.cache = cache if cache is not None else ShapeCache()
        self.categories: list[str] = list(categories)
        self.enable_cache = enable_cache
        self._lock = threading.RLock()
        self._corrupt: set[str] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def check_category(self, category: str) -> None:
        """Raise UnknownCategoryError for keys outside the configured set."""
        if category not in self.categories:
            raise UnknownCategoryError(category, self.categories)

    def list(self, category: str) -> list[ShapeRecord]:
        """List the records of a category, sorted by name.

        A missing store is an empty category. An unreadable store is
        logged and also treated as empty.

        Args:
            category: Category key.

        Returns:
            Records in storage order.
        """
        self.check_category(category)
        store_path = self.paths.store_path(category)

        if self.enable_cache:
            cached = self.cache.get(category, store_path)
            if cached is not None:
                return cached

        with self._lock:
            records, loaded = self._load(category, store_path)
            if loaded and self.enable_cache:
                self.cache.put(category, store_path, records)
        return records

    def list_all(self) -> list[ShapeRecord]:
        """All records across every category."""
        records: list[ShapeRecord] = []
        for category in self.categories:
            records.extend(self.list(category))
        return records

    def get(self, shape_id: str, category: str) -> ShapeRecord | None:
        """Get a record by id, or None."""
        for record in self.list(category):
            if record.id == shape_id:
                return record
        return None

    def get_or_raise(self, shape_id: str, category: str) -> ShapeRecord:
        """Get a record by id.

        Raises:
            ShapeNotFoundError: If the id is not in the category.
        """
        record = self.get(shape_id, category)
        if record is None:
            raise ShapeNotFoundError(shape_id, category)
        return record

    def find(self, shape_id: str) -> ShapeRecord | None:
        """Look a record up by id in every category."""
        for category in self.categories:
            record = self.get(shape_id, category)
            if record is not None:
                return record
        return None

    def exists(self, shape_id: str, category: str) -> bool:
        """Check if a shape with the same ID already exists."""
        return self.get(shape_id, category) is not None

    def counts(self) -> dict[str, int]:
        """Number of records per category."""
        return {category: len(self.list(category)) for category in self.categories}

    def total(self) -> int:
        """Total number of records across categories."""
        return sum(self.counts().values())

    def search(
        self,
        query: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
    ) -> list[ShapeRecord]:
        """Search records.

        Args:
            query: Case-insensitive text matched against name, description and tags.
            category: Restrict to one category.
            tags: Keep records carrying any of these tags.

        Returns:
            Matching records.
        """
        results = self.list(category) if category else self.list_all()

        if tags:
            wanted = {t.lower() for t in tags}
            results = [r for r in results if wanted & {t.lower() for t in r.tags}]

        if query:
            needle = query.lower()
            results = [
                r
                for r in results
                if needle in r.name.lower()
                or needle in r.description.lower()
                or any(needle in t.lower() for t in r.tags)
            ]

        return results

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, record: ShapeRecord) -> Path:
        """Add a record, replacing any record with the same id.

        Args:
            record: Record to store in ``record.category``.

        Returns:
            Path of the category store that was written.

        Raises:
            InvalidShapeError: If the preview lies outside the record's category.
        """
        category = record.category
        self.check_category(category)
        check_preview(record)

        with self._lock:
            records = self._read_for_write(category)
            index = next((i for i, r in enumerate(records) if r.id == record.id), None)
            if index is None:
                records.append(record)
            else:
                records[index] = record
            return self._write(category, records)

    def update(self, shape_id: str, category: str, changes: dict[str, Any]) -> ShapeRecord:
        """Merge field changes into an existing record.

        ``id`` and ``category`` are ignored if present in ``changes``;
        moving a record between categories is ShapeLibrary's job.

        Args:
            shape_id: Record id.
            category: Category the record lives in.
            changes: Field values keyed by field name or on-disk key.

        Returns:
            The updated record.

        Raises:
            ShapeNotFoundError: If the id is not in the category.
            InvalidShapeError: If the changes are invalid, or move the preview
                outside the category.
        """
        self.check_category(category)
        updates = {field_name(k): v for k, v in changes.items()}
        ignored = _IMMUTABLE_FIELDS & updates.keys()
        if ignored:
            logger.debug(f"Ignoring changes to {sorted(ignored)} for shape {shape_id}")
        for key in ignored:
            updates.pop(key)

        with self._lock:
            records = self._read_for_write(category)
            index = next((i for i, r in enumerate(records) if r.id == shape_id), None)
            if index is None:
                raise ShapeNotFoundError(shape_id, category)

            try:
                updated = records[index].with_changes(**updates)
            except ValidationError as e:
                raise InvalidShapeError(f"Invalid changes for shape {shape_id}", detail=str(e)) from e
            check_preview(updated)
            records[index] = updated
            self._write(category, records)
            return updated

    def remove(self, shape_id: str, category: str) -> ShapeRecord:
        """Remove a record from its category.

        Returns:
            The removed record.

        Raises:
            ShapeNotFoundError: If the id is not in the category. The
                store file is left untouched.
        """
        self.check_category(category)

        with self._lock:
            records = self._read_for_write(category)
            removed = next((r for r in records if r.id == shape_id), None)
            if removed is None:
                raise ShapeNotFoundError(shape_id, category)

            self._write(category, [r for r in records if r.id != shape_id])
            return removed

    # ------------------------------------------------------------------
    # Disk I/O
    # ------------------------------------------------------------------

    def _read_for_write(self, category: str) -> list[ShapeRecord]:
        records, _ = self._load(category, self.paths.store_path(category))
        return records

    def _load(self, category: str, store_path: Path) -> tuple[list[ShapeRecord], bool]:
        """Load a category document from disk.

        Returns:
            Tuple of (records, loaded). ``loaded`` is False when the file
            is absent or could not be parsed.
        """
        if not store_path.exists():
            return [], False

        try:
            with open(store_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            records = _RECORDS.validate_python(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load {category} shapes from {store_path}: {e}")
            self._corrupt.add(category)
            return [], False

        self._corrupt.discard(category)
        return records, True

    def _write(self, category: str, records: list[ShapeRecord]) -> Path:
        store_path = self.paths.store_path(category)
        ordered = sorted(records, key=lambda r: r.name)

        if category in self._corrupt and store_path.exists():
            self._preserve_corrupt(category, store_path)

        payload = json.dumps([r.to_json_dict() for r in ordered], indent=2, ensure_ascii=False)
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{category}-", suffix=".json", dir=store_path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, store_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise ShapeshelfError(
                f"Failed to save shapes to {category}.json",
                detail=f"{store_path}: {e}",
            ) from e
        finally:
            self.cache.invalidate(category)

        self._corrupt.discard(category)
        logger.info(f"Saved {category}.json ({len(ordered)} shapes) to {store_path}")
        return store_path

    def _preserve_corrupt(self, category: str, store_path: Path) -> None:
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup = store_path.with_name(f"{store_path.name}.corrupt-{stamp}")
        try:
            shutil.copy2(store_path, backup)
            logger.warning(f"Unreadable {category} store preserved as {backup.name} before rewrite")
        except OSError as e:
            logger.warning(f"Could not preserve unreadable {category} store: {e}")
