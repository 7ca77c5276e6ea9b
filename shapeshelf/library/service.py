"""ShapeLibrary: capture, edit, preview and insert operations over the library."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from shapeshelf.capture.bridge import CaptureBridge, get_platform_bridge
from shapeshelf.capture.normalizer import normalize
from shapeshelf.config import Settings, get_settings
from shapeshelf.dsl.schema import ShapeRecord
from shapeshelf.errors import InvalidShapeError, ShapeshelfError
from shapeshelf.library.assets import AssetManager, RepairReport, placeholder_preview
from shapeshelf.library.cache import ShapeCache
from shapeshelf.library.deck import LibraryDeck
from shapeshelf.library.paths import LibraryPaths
from shapeshelf.library.store import ShapeStore, field_name
from shapeshelf.renderer.insert import InsertResult, InsertService, InsertSource
from shapeshelf.renderer.pptx_writer import ShapeDocumentWriter
from shapeshelf.renderer.raster import LibreOfficeConverter, PreviewRasterizer
from shapeshelf.renderer.temp_files import TempFileRegistry

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"


class ShapeLibrary:
    """Entry point for every library operation.

    Wires the store, asset manager, aggregate deck and insert service
    together and keeps records and their files consistent across
    category changes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        paths: LibraryPaths | None = None,
        store: ShapeStore | None = None,
        assets: AssetManager | None = None,
        deck: LibraryDeck | None = None,
        inserter: InsertService | None = None,
        temp_files: TempFileRegistry | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.paths = paths or LibraryPaths.from_settings(self.settings)
        self.store = store or ShapeStore(
            self.paths,
            cache=ShapeCache(),
            categories=self.settings.categories,
            enable_cache=self.settings.enable_cache,
        )
        self.temp_files = temp_files or TempFileRegistry(
            delay_seconds=self.settings.cleanup_delay_seconds,
            enabled=self.settings.auto_cleanup,
        )
        writer = ShapeDocumentWriter()
        self.assets = assets or AssetManager(
            self.paths,
            self.store,
            rasterizer=PreviewRasterizer(LibreOfficeConverter(self.settings.soffice_path)),
            writer=writer,
        )
        self.deck = deck or LibraryDeck(self.paths)
        self.inserter = inserter or InsertService(
            self.settings,
            self.paths,
            writer=writer,
            temp_files=self.temp_files,
            deck=self.deck,
        )

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def capture(
        self,
        bridge: CaptureBridge | None = None,
        custom_name: str | None = None,
        save: bool = True,
    ) -> ShapeRecord:
        """Capture the host's selected shape as a new record.

        Args:
            bridge: Capture bridge; the platform bridge by default.
            custom_name: Name to store instead of the host's shape name.
            save: Persist the record. When False the record is only
                returned, for review before ``save``.

        Returns:
            The new record.

        Raises:
            BridgeError: If the bridge failed or timed out.
            ShapeshelfError: If a group or picture was captured without
                its native file.
        """
        bridge = bridge or get_platform_bridge(self.settings, self.paths)
        raw = bridge.capture_selection().raise_for_error()
        record = self._fit_category(normalize(raw, custom_name))

        if record.native_pptx and not self.assets.has_native_file(record):
            if record.native_only:
                raise ShapeshelfError(
                    "Groups and pictures need a native file, but it was not saved",
                    detail=record.native_pptx,
                )
            logger.warning(f"Native file {record.native_pptx} was not written; keeping {record.id} without it")
            record = record.with_changes(native_pptx=None)
        elif record.native_only and not record.native_pptx:
            raise ShapeshelfError("Groups and pictures need a native file, but none was saved")

        if raw.png_temp_path:
            try:
                record = record.with_changes(preview=self.assets.attach_preview_file(record, raw.png_temp_path))
            except ShapeshelfError as e:
                logger.warning(f"Keeping placeholder preview for {record.id}: {e}")

        if save:
            record = self.save(record)
        return record

    def save(self, record: ShapeRecord, name: str | None = None) -> ShapeRecord:
        """Persist a captured record, mirroring its native file into the deck.

        Args:
            record: Record from ``capture(save=False)``.
            name: Optional new name.

        Returns:
            The stored record.
        """
        if name and name.strip():
            record = record.with_changes(name=name.strip())
        self.store.add(record)
        logger.info(f"Saved {record.id} to {record.category}")

        if self.settings.use_library_deck and self.assets.has_native_file(record):
            try:
                slide = self.deck.add_from_native(self.assets.native_path(record))
                record = self.store.update(record.id, record.category, {"deck_slide": slide})
            except ShapeshelfError as e:
                logger.warning(f"Could not add {record.id} to the library deck: {e}")
        return record

    def _fit_category(self, record: ShapeRecord) -> ShapeRecord:
        if record.category in self.store.categories:
            return record
        fallback = "basic" if "basic" in self.store.categories else self.store.categories[0]
        logger.warning(f"Category {record.category} is not configured; filing {record.id} under {fallback}")
        return record.with_changes(category=fallback, preview=placeholder_preview(fallback))

    # ------------------------------------------------------------------
    # Browse
    # ------------------------------------------------------------------

    def list(self, category: str | None = None) -> list[ShapeRecord]:
        """Records of one category, or of all categories for ``None``/``"all"``."""
        if category in (None, ALL_CATEGORIES):
            return self.store.list_all()
        return self.store.list(category)

    def get(self, shape_id: str, category: str) -> ShapeRecord:
        return self.store.get_or_raise(shape_id, category)

    def find(self, shape_id: str) -> ShapeRecord | None:
        return self.store.find(shape_id)

    def counts(self) -> dict[str, int]:
        return self.store.counts()

    def total(self) -> int:
        return self.store.total()

    def search(self, query: str | None = None, category: str | None = None, tags: list[str] | None = None) -> list[ShapeRecord]:
        if category == ALL_CATEGORIES:
            category = None
        return self.store.search(query, category=category, tags=tags)

    def cache_stats(self) -> dict:
        return self.store.cache.stats()

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    def update(self, shape_id: str, category: str, changes: dict[str, Any]) -> ShapeRecord:
        """Update a record, moving it and its preview when the category changes.

        The preview file is moved before the record is written under the
        new category, so a stored record never points at a preview in
        another category's directory.

        Args:
            shape_id: Record id.
            category: Current category.
            changes: Fields to change, by field name or on-disk key.

        Returns:
            The updated record.

        Raises:
            ShapeNotFoundError: If the record does not exist.
            UnknownCategoryError: If the new category is not configured.
            InvalidShapeError: If the changes are invalid; nothing is moved.
            AssetError: If the preview could not be moved.
        """
        updates = {field_name(k): v for k, v in changes.items()}
        updates.pop("id", None)
        new_category = updates.pop("category", None)

        if not new_category or new_category == category:
            return self.store.update(shape_id, category, updates)

        self.store.check_category(new_category)
        current = self.store.get_or_raise(shape_id, category)
        updates.pop("preview", None)

        try:
            moved = current.with_changes(
                **updates,
                category=new_category,
                preview=self.paths.preview_relpath(new_category, shape_id),
            )
        except ValidationError as e:
            raise InvalidShapeError(f"Invalid changes for shape {shape_id}", detail=str(e)) from e

        new_preview = self.assets.relocate_preview(current, new_category)
        moved = moved.model_copy(update={"preview": new_preview})

        try:
            self.store.add(moved)
        except ShapeshelfError:
            self._restore_preview(current, moved)
            raise
        self.store.remove(shape_id, category)

        logger.info(f"Moved {shape_id} from {category} to {new_category}")
        return moved

    def _restore_preview(self, original: ShapeRecord, moved: ShapeRecord) -> None:
        if original.has_placeholder_preview:
            return
        src = self.paths.resolve_preview(moved.preview)
        dest = self.paths.resolve_preview(original.preview)
        if src == dest or not src.exists():
            return
        try:
            self.assets.move_file(src, dest)
        except ShapeshelfError as e:
            logger.warning(f"Could not move preview for {original.id} back to {original.preview}: {e}")

    def remove(self, shape_id: str, category: str) -> ShapeRecord:
        """Delete a record, then best-effort delete its preview and native file.

        Raises:
            ShapeNotFoundError: If the record does not exist.
        """
        removed = self.store.remove(shape_id, category)
        self.assets.delete_assets(removed)
        logger.info(f"Removed {shape_id} from {category}")
        return removed

    def repair(self) -> RepairReport:
        """Run an orphaned-preview repair pass."""
        return self.assets.repair_orphans()

    # ------------------------------------------------------------------
    # Previews and export
    # ------------------------------------------------------------------

    def generate_preview(self, shape_id: str, category: str) -> ShapeRecord:
        return self.assets.generate_preview(self.get(shape_id, category))

    def generate_all_previews(self) -> tuple[int, int]:
        """Regenerate every preview, continuing past failures.

        Returns:
            Tuple of (generated, failed).
        """
        generated = failed = 0
        for record in self.store.list_all():
            try:
                self.assets.generate_preview(record)
                generated += 1
            except ShapeshelfError as e:
                failed += 1
                logger.warning(f"Preview generation failed for {record.id}: {e}")
        logger.info(f"Generated {generated} previews ({failed} failed)")
        return generated, failed

    def export_definition(self, shape_id: str, category: str, output_path: Path | str) -> Path:
        """Write one record as a standalone JSON file."""
        record = self.get(shape_id, category)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(record.to_json_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        return output_path

    def export_document(self, shape_id: str, category: str, output_path: Path | str) -> Path:
        """Write a record's best document (native file or generated) to a path."""
        source = self.resolve_insert_source(shape_id, category)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(source.path.read_bytes())
        if source.temporary:
            self.temp_files.cleanup(source.path)
        return output_path

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    def resolve_insert_source(self, shape_id: str, category: str) -> InsertSource:
        return self.inserter.resolve_source(self.get(shape_id, category))

    def insert(self, shape_id: str, category: str) -> InsertResult:
        return self.inserter.insert(self.get(shape_id, category))

    def close(self) -> int:
        """Delete any temporary documents still pending."""
        return self.temp_files.cleanup_all()


_default_library: ShapeLibrary | None = None


def get_library(settings: Settings | None = None) -> ShapeLibrary:
    """Get the default library instance.

    Args:
        settings: Optional settings (only used on first call).

    Returns:
        ShapeLibrary instance.
    """
    global _default_library
    if _default_library is None:
        _default_library = ShapeLibrary(settings)
    return _default_library
