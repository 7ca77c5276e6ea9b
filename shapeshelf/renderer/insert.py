"""Place a library shape into the running presentation host."""

import logging
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from shapeshelf.capture.bridge import ERROR_PREFIX, ps_literal, run_powershell
from shapeshelf.config import Settings
from shapeshelf.dsl.schema import ShapeRecord
from shapeshelf.errors import NativeArtifactRequiredError, ShapeshelfError
from shapeshelf.library.deck import LibraryDeck
from shapeshelf.library.paths import LibraryPaths
from shapeshelf.renderer.pptx_writer import ShapeDocumentWriter
from shapeshelf.renderer.temp_files import TempFileRegistry

logger = logging.getLogger(__name__)

INSERT_TIMEOUT_SECONDS = 30.0

WINDOWS_PASTE_SCRIPT = r"""
$ErrorActionPreference = "Stop"
try {
  $ppt = [Runtime.InteropServices.Marshal]::GetActiveObject('PowerPoint.Application')
  if ($ppt.Presentations.Count -eq 0) { Write-Output 'ERROR:No presentation is open'; exit 1 }
  $dest = $ppt.ActiveWindow.View.Slide
  if ($null -eq $dest) { $dest = $ppt.ActivePresentation.Slides.Item(1) }

  $src = $ppt.Presentations.Open(__SOURCE__, $true, $false, $false)
  $s1 = $src.Slides.Item(1)
  if ($s1.Shapes.Count -eq 0) { Write-Output 'ERROR:Source slide has no shapes'; $src.Close(); exit 1 }
  $s1.Shapes.Range().Copy()
  $dest.Shapes.Paste() | Out-Null
  $src.Close()
  Write-Output 'OK'
} catch {
  Write-Output "ERROR:$($_.Exception.Message)"; exit 1
}
"""

NATIVE_REQUIRED_MESSAGE = (
    "Native PPTX required. Recapture this shape to generate a native PPTX file with your template theme."
)


@dataclass
class InsertSource:
    """Document to hand to the host and whether it is a temporary copy."""

    path: Path
    temporary: bool
    origin: str  # "native", "deck" or "generated"


@dataclass
class InsertResult:
    """Outcome of an insert."""

    method: str  # "pasted" or "opened"
    source: InsertSource
    message: str


class InsertService:
    """Resolves a record's best document and places it in the host.

    On Windows the first slide's shapes are pasted into the active slide
    of the running PowerPoint. On macOS the document is opened for the
    user to copy from.
    """

    def __init__(
        self,
        settings: Settings,
        paths: LibraryPaths,
        writer: ShapeDocumentWriter | None = None,
        temp_files: TempFileRegistry | None = None,
        deck: LibraryDeck | None = None,
        platform: str | None = None,
    ) -> None:
        self.settings = settings
        self.paths = paths
        self.writer = writer or ShapeDocumentWriter()
        self.temp_files = temp_files or TempFileRegistry(
            delay_seconds=settings.cleanup_delay_seconds,
            enabled=settings.auto_cleanup,
        )
        self.deck = deck or LibraryDeck(paths)
        self.platform = platform or sys.platform

    def resolve_source(self, record: ShapeRecord) -> InsertSource:
        """Pick the highest-fidelity document available for a record.

        Order: aggregate deck slide (when enabled), native file, then a
        document generated from the definition.

        Raises:
            NativeArtifactRequiredError: If no native document exists and
                exact shapes are enforced or the record is native-only.
        """
        if self.settings.use_library_deck and record.deck_slide and self.deck.exists():
            try:
                path = self.deck.extract_slide(record.deck_slide)
                return InsertSource(self.temp_files.track(path), temporary=True, origin="deck")
            except ShapeshelfError as e:
                logger.warning(f"Deck slide {record.deck_slide} unusable for {record.id}: {e}")

        if record.native_pptx:
            native = self.paths.resolve_native(record.native_pptx)
            if native.exists():
                return InsertSource(native, temporary=False, origin="native")
            logger.warning(f"Native file {native} for {record.id} is missing")

        if self.settings.force_exact_shapes or record.native_only:
            raise NativeArtifactRequiredError(NATIVE_REQUIRED_MESSAGE, detail=record.id)

        path = self.writer.write_temp(record)
        return InsertSource(self.temp_files.track(path), temporary=True, origin="generated")

    def insert(self, record: ShapeRecord) -> InsertResult:
        """Insert a record into the host application.

        Raises:
            NativeArtifactRequiredError: See ``resolve_source``.
            ShapeshelfError: If the host automation fails or the platform
                is unsupported.
        """
        source = self.resolve_source(record)
        try:
            if self.platform == "win32":
                self._paste_windows(source.path)
                result = InsertResult("pasted", source, "Shape pasted into active slide")
            elif self.platform == "darwin":
                self._open_mac(source.path)
                result = InsertResult("opened", source, "Copy the shape (Ctrl+C / Cmd+C) to use it")
            else:
                raise ShapeshelfError(
                    f"Inserting shapes is not supported on {self.platform}",
                    detail=str(source.path),
                )
        finally:
            if source.temporary:
                self.temp_files.schedule_cleanup(source.path)

        logger.info(f"Inserted {record.id} from {source.origin} document ({result.method})")
        return result

    def _paste_windows(self, path: Path) -> None:
        script = WINDOWS_PASTE_SCRIPT.replace("__SOURCE__", ps_literal(path))
        try:
            completed = run_powershell(script, INSERT_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired as e:
            raise ShapeshelfError("PowerPoint did not respond in time") from e
        except OSError as e:
            raise ShapeshelfError("Failed to start PowerShell", detail=str(e)) from e

        output = (completed.stdout or "").strip()
        if output.startswith(ERROR_PREFIX):
            raise ShapeshelfError(output[len(ERROR_PREFIX):].strip())
        if completed.returncode != 0:
            raise ShapeshelfError(
                f"PowerShell failed ({completed.returncode})",
                detail=completed.stderr or output,
            )

    def _open_mac(self, path: Path) -> None:
        try:
            completed = subprocess.run(
                ["open", str(path)],
                capture_output=True,
                text=True,
                timeout=INSERT_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ShapeshelfError(f"Failed to open {path.name}", detail=str(e)) from e
        if completed.returncode != 0:
            raise ShapeshelfError(f"Failed to open {path.name}", detail=completed.stderr)
