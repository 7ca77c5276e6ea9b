"""Preview and native files attached to shape records.

The manager keeps a record's ``preview`` path under the directory of the
record's current category, moving files when the category changes and
repairing libraries where the two have already drifted apart.
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from shapeshelf.dsl.schema import PLACEHOLDER_PREVIEW, ShapeRecord
from shapeshelf.errors import AssetError, NativeArtifactRequiredError, RenderError
from shapeshelf.library.paths import LibraryPaths
from shapeshelf.library.store import ShapeStore
from shapeshelf.renderer.pptx_writer import ShapeDocumentWriter
from shapeshelf.renderer.raster import PreviewRasterizer

logger = logging.getLogger(__name__)

REPAIR_MARKER = ".repair_marker"


@dataclass
class RepairReport:
    """Result of one orphan-repair pass."""

    repaired: int = 0
    scanned: int = 0
    moved: list[str] = field(default_factory=list)
    relinked: list[str] = field(default_factory=list)
    unowned: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "repaired": self.repaired,
            "scanned": self.scanned,
            "moved": self.moved,
            "relinked": self.relinked,
            "unowned": self.unowned,
            "missing": self.missing,
        }


def placeholder_preview(category: str) -> str:
    return f"{category}/{PLACEHOLDER_PREVIEW}"


class AssetManager:
    """Manages preview images and native files for the library."""

    def __init__(
        self,
        paths: LibraryPaths,
        store: ShapeStore,
        rasterizer: PreviewRasterizer | None = None,
        writer: ShapeDocumentWriter | None = None,
    ) -> None:
        """Initialize the asset manager.

        Args:
            paths: Library layout resolver.
            store: Store whose records own the assets.
            rasterizer: Document to PNG exporter.
            writer: Document generator for records without a native file.
        """
        self.paths = paths
        self.store = store
        self.rasterizer = rasterizer or PreviewRasterizer()
        self.writer = writer or ShapeDocumentWriter()

    # ------------------------------------------------------------------
    # File moves
    # ------------------------------------------------------------------

    def move_file(self, src: Path, dest: Path) -> None:
        """Move a file, falling back to copy-then-delete across devices.

        Raises:
            AssetError: If the file could not be placed at ``dest``. A
                failure to delete the original after a successful copy
                is only logged.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.rename(src, dest)
            return
        except OSError as e:
            logger.debug(f"Rename {src} -> {dest} failed ({e}); copying instead")

        try:
            shutil.copy2(src, dest)
        except OSError as e:
            raise AssetError(f"Failed to move preview {src.name}", detail=f"{src} -> {dest}: {e}") from e

        try:
            src.unlink()
        except OSError as e:
            logger.warning(f"Copied {src} to {dest} but could not delete the original: {e}")

    def relocate_preview(self, record: ShapeRecord, new_category: str) -> str:
        """Move a record's preview under ``new_category``.

        Must run before the record is saved with its new category.

        Args:
            record: Record as currently stored.
            new_category: Category the record is moving to.

        Returns:
            The preview path to store on the moved record.

        Raises:
            AssetError: If the preview exists but could not be copied.
        """
        if record.has_placeholder_preview:
            return placeholder_preview(new_category)

        new_rel = self.paths.preview_relpath(new_category, record.id)
        src = self.paths.resolve_preview(record.preview)
        dest = self.paths.preview_path(new_category, record.id)

        if src == dest:
            return new_rel
        if not src.exists():
            if not dest.exists():
                logger.warning(f"Preview {src} for {record.id} is missing; pointing record at {new_rel}")
            return new_rel

        self.move_file(src, dest)
        logger.info(f"Moved preview for {record.id}: {record.preview} -> {new_rel}")
        return new_rel

    # ------------------------------------------------------------------
    # Orphan repair
    # ------------------------------------------------------------------

    def repair_orphans(self) -> RepairReport:
        """Bring preview files and preview paths back in line with categories.

        Files under the wrong category directory are moved to their
        owner's category; records whose ``preview`` points outside their
        category are rewritten. Running it twice in a row changes nothing
        the second time.

        Returns:
            RepairReport with the number of records repaired.
        """
        report = RepairReport()
        records = self.store.list_all()
        owners: dict[str, list[ShapeRecord]] = {}
        for record in records:
            owners.setdefault(record.id, []).append(record)
        fixed: set[tuple[str, str]] = set()

        assets_dir = self.paths.assets_dir
        for png in sorted(assets_dir.glob("*/*.png")):
            if png.name == PLACEHOLDER_PREVIEW:
                continue
            report.scanned += 1
            candidates = owners.get(png.stem, [])
            if not candidates:
                report.unowned.append(png.relative_to(assets_dir).as_posix())
                continue
            if any(c.category == png.parent.name for c in candidates):
                continue
            if len(candidates) > 1:
                categories = ", ".join(sorted(c.category for c in candidates))
                logger.warning(f"Stray preview {png} left in place; id {png.stem} is used in {categories}")
                continue

            owner = candidates[0]
            dest = self.paths.preview_path(owner.category, owner.id)
            if dest.exists():
                logger.warning(f"Stray preview {png} left in place; {dest} already exists")
                continue
            self.move_file(png, dest)
            report.moved.append(owner.id)
            fixed.add((owner.category, owner.id))

        for record in records:
            wanted = self._expected_preview(record)
            if wanted is None:
                report.missing.append(record.id)
                continue
            if wanted != record.preview:
                self.store.update(record.id, record.category, {"preview": wanted})
                report.relinked.append(record.id)
                fixed.add((record.category, record.id))

        report.repaired = len(fixed)
        self._write_marker(report)
        logger.info(f"Repair pass: {report.repaired} repaired, {report.scanned} previews scanned")
        return report

    def _expected_preview(self, record: ShapeRecord) -> str | None:
        if record.has_placeholder_preview:
            return placeholder_preview(record.category)
        expected = self.paths.preview_relpath(record.category, record.id)
        if self.paths.resolve_preview(expected).exists():
            return expected
        if record.preview_category != record.category:
            return placeholder_preview(record.category)
        return None

    def _write_marker(self, report: RepairReport) -> None:
        marker = self.paths.assets_dir / REPAIR_MARKER
        try:
            marker.write_text(
                json.dumps({"lastRepair": datetime.now().isoformat(), "repaired": report.repaired}),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning(f"Failed to write repair marker {marker}: {e}")

    def last_repair(self) -> datetime | None:
        """When the last repair pass ran, if ever."""
        marker = self.paths.assets_dir / REPAIR_MARKER
        try:
            data = json.loads(marker.read_text(encoding="utf-8"))
            return datetime.fromisoformat(data["lastRepair"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable repair marker {marker}: {e}")
            return None

    # ------------------------------------------------------------------
    # Preview generation
    # ------------------------------------------------------------------

    def generate_preview(self, record: ShapeRecord) -> ShapeRecord:
        """Render a PNG preview and point the stored record at it.

        Uses the native file when present, otherwise a document generated
        from the definition, which is deleted afterwards.

        Returns:
            The updated record.

        Raises:
            NativeArtifactRequiredError: For a native-only record without
                its native file.
            RenderError: If no preview could be produced.
        """
        document, temporary = self._preview_source(record)
        output = self.paths.preview_path(record.category, record.id)
        try:
            self.rasterizer.rasterize(record, document, output)
        finally:
            if temporary and document is not None:
                try:
                    document.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"Failed to delete intermediate document {document}: {e}")

        rel = self.paths.preview_relpath(record.category, record.id)
        logger.info(f"Generated preview {rel}")
        if self.store.exists(record.id, record.category):
            return self.store.update(record.id, record.category, {"preview": rel})
        return record.with_changes(preview=rel)

    def _preview_source(self, record: ShapeRecord) -> tuple[Path | None, bool]:
        native = self.native_path(record)
        if native is not None and native.exists():
            return native, False
        if record.native_only:
            raise NativeArtifactRequiredError(f"No native file for '{record.name}'", detail=record.id)
        try:
            return self.writer.write_temp(record), True
        except RenderError as e:
            logger.warning(f"Could not generate a document for {record.id}: {e}")
            return None, False

    def attach_preview_file(self, record: ShapeRecord, png_path: Path | str) -> str:
        """Move an externally produced PNG into the record's preview slot.

        Returns:
            The preview path to store on the record.

        Raises:
            AssetError: If the file is missing or cannot be moved.
        """
        png_path = Path(png_path)
        if not png_path.exists():
            raise AssetError(f"Preview image {png_path.name} does not exist", detail=str(png_path))
        self.move_file(png_path, self.paths.preview_path(record.category, record.id))
        return self.paths.preview_relpath(record.category, record.id)

    # ------------------------------------------------------------------
    # Native files and removal
    # ------------------------------------------------------------------

    def native_path(self, record: ShapeRecord) -> Path | None:
        """Absolute path of the record's native file, if one is recorded."""
        if not record.native_pptx:
            return None
        return self.paths.resolve_native(record.native_pptx)

    def has_native_file(self, record: ShapeRecord) -> bool:
        native = self.native_path(record)
        return native is not None and native.exists()

    def delete_assets(self, record: ShapeRecord) -> list[Path]:
        """Best-effort deletion of a record's preview and native file.

        The category placeholder is never deleted. Failures are logged.

        Returns:
            Paths that were deleted.
        """
        targets: list[Path] = []
        if not record.has_placeholder_preview:
            targets.append(self.paths.resolve_preview(record.preview))
        native = self.native_path(record)
        if native is not None:
            targets.append(native)

        deleted = []
        for path in targets:
            try:
                if path.exists():
                    path.unlink()
                    deleted.append(path)
            except OSError as e:
                logger.warning(f"Failed to delete {path} for {record.id}: {e}")
        return deleted
