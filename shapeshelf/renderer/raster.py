"""
raster.py — PNG previews of shape documents.

Previews are produced in two ways:
1. Converting the single-slide document with LibreOffice (headless)
2. Drawing an approximation of the shape with Pillow when LibreOffice
   is not installed or fails
"""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path

from PIL import Image, ImageDraw

from shapeshelf.dsl.schema import ShapeDefinition, ShapeKind, ShapeRecord
from shapeshelf.errors import RenderError

logger = logging.getLogger(__name__)

PREVIEW_SIZE = (400, 300)
PIXELS_PER_INCH = 96
CONVERT_TIMEOUT_SECONDS = 60

DEFAULT_FILL = "4472C4"
DEFAULT_LINE = "2F528F"
BACKGROUND = (255, 255, 255, 0)

_SOFFICE_CANDIDATES = [
    r"C:\Program Files\LibreOffice\program\soffice.exe",
    r"C:\Program Files (x86)\LibreOffice\program\soffice.exe",
    "/usr/bin/soffice",
    "/usr/bin/libreoffice",
    "/Applications/LibreOffice.app/Contents/MacOS/soffice",
]


def find_soffice(configured: str | None = None) -> str | None:
    """Locate a LibreOffice executable.

    Args:
        configured: Explicit path from settings; used when it exists.

    Returns:
        Executable path, or None if LibreOffice is not installed.
    """
    if configured:
        if os.path.exists(configured):
            return configured
        logger.warning(f"Configured soffice path {configured} does not exist")

    for path in _SOFFICE_CANDIDATES:
        if os.path.exists(path):
            return path

    return shutil.which("soffice") or shutil.which("libreoffice")


class LibreOfficeConverter:
    """Converts .pptx documents to PNG with LibreOffice headless mode."""

    def __init__(self, soffice_path: str | None = None, timeout: float = CONVERT_TIMEOUT_SECONDS) -> None:
        self.soffice_path = find_soffice(soffice_path)
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return self.soffice_path is not None

    def convert(self, pptx_path: Path | str, output_path: Path | str) -> Path:
        """Render the first slide of a document to PNG.

        Args:
            pptx_path: Source document.
            output_path: Destination PNG; parent directories are created.

        Returns:
            The written PNG path.

        Raises:
            RenderError: If LibreOffice is missing, fails or times out.
        """
        if not self.available:
            raise RenderError("LibreOffice not found")

        output_path = Path(output_path)
        with tempfile.TemporaryDirectory(prefix="shapeshelf_png_") as out_dir:
            cmd = [
                self.soffice_path,
                "--headless",
                "--convert-to", "png",
                "--outdir", out_dir,
                str(pptx_path),
            ]
            try:
                result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                raise RenderError("LibreOffice conversion timed out") from e
            except OSError as e:
                raise RenderError("LibreOffice could not be started", detail=str(e)) from e

            if result.returncode != 0:
                raise RenderError("LibreOffice conversion failed", detail=result.stderr)

            images = sorted(Path(out_dir).glob("*.png"))
            if not images:
                raise RenderError("LibreOffice produced no image", detail=result.stdout)

            output_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(images[0]), output_path)

        return output_path


def _hex_to_rgba(color: str | None, fallback: str, transparency: float | None = None) -> tuple[int, int, int, int]:
    text = color or fallback
    alpha = 255 if transparency is None else int(round(255 * (1.0 - transparency)))
    return (int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16), alpha)


def _arrow_points(kind: ShapeKind, box: tuple[float, float, float, float]) -> list[tuple[float, float]]:
    left, top, right, bottom = box
    w, h = right - left, bottom - top
    if kind == ShapeKind.RIGHT_ARROW:
        head = left + w * 0.6
        return [
            (left, top + h * 0.3), (head, top + h * 0.3), (head, top), (right, top + h / 2),
            (head, bottom), (head, top + h * 0.7), (left, top + h * 0.7),
        ]
    if kind == ShapeKind.LEFT_ARROW:
        head = left + w * 0.4
        return [
            (right, top + h * 0.3), (head, top + h * 0.3), (head, top), (left, top + h / 2),
            (head, bottom), (head, top + h * 0.7), (right, top + h * 0.7),
        ]
    if kind == ShapeKind.UP_ARROW:
        head = top + h * 0.4
        return [
            (left + w * 0.3, bottom), (left + w * 0.3, head), (left, head), (left + w / 2, top),
            (right, head), (left + w * 0.7, head), (left + w * 0.7, bottom),
        ]
    head = top + h * 0.6
    return [
        (left + w * 0.3, top), (left + w * 0.3, head), (left, head), (left + w / 2, bottom),
        (right, head), (left + w * 0.7, head), (left + w * 0.7, top),
    ]


_ARROWS = {ShapeKind.RIGHT_ARROW, ShapeKind.LEFT_ARROW, ShapeKind.UP_ARROW, ShapeKind.DOWN_ARROW}


def draw_preview(record: ShapeRecord, output_path: Path | str) -> Path:
    """Draw an approximate preview of a record with Pillow.

    The shape is scaled to fit a 400x300 canvas at 96 px/in. Kinds
    without a drawing routine are shown as a rectangle labelled with
    the shape name.

    Args:
        record: Shape to draw.
        output_path: Destination PNG.

    Returns:
        The written PNG path.
    """
    definition: ShapeDefinition = record.pptx_definition
    canvas_w, canvas_h = PREVIEW_SIZE
    margin = 20

    w_px = max(definition.w * PIXELS_PER_INCH, 1.0)
    h_px = max(definition.h * PIXELS_PER_INCH, 1.0)
    scale = min((canvas_w - 2 * margin) / w_px, (canvas_h - 2 * margin) / h_px, 1.0)
    w_px, h_px = w_px * scale, h_px * scale
    left = (canvas_w - w_px) / 2
    top = (canvas_h - h_px) / 2
    box = (left, top, left + w_px, top + h_px)

    fill = definition.fill
    line = definition.line
    fill_rgba = _hex_to_rgba(fill.color if fill else None, DEFAULT_FILL, fill.transparency if fill else None)
    line_rgba = _hex_to_rgba(line.color if line else None, DEFAULT_LINE, line.transparency if line else None)
    line_width = max(1, int(round((line.width if line and line.width else 1.0) * PIXELS_PER_INCH / 72)))

    image = Image.new("RGBA", PREVIEW_SIZE, BACKGROUND)
    draw = ImageDraw.Draw(image)
    kind = definition.type

    if kind == ShapeKind.RECTANGLE:
        draw.rectangle(box, fill=fill_rgba, outline=line_rgba, width=line_width)
    elif kind == ShapeKind.ROUND_RECTANGLE:
        radius = (definition.rect_radius if definition.rect_radius is not None else 0.16667) * min(w_px, h_px)
        draw.rounded_rectangle(box, radius=radius, fill=fill_rgba, outline=line_rgba, width=line_width)
    elif kind == ShapeKind.ELLIPSE:
        draw.ellipse(box, fill=fill_rgba, outline=line_rgba, width=line_width)
    elif kind == ShapeKind.TRIANGLE:
        points = [(left + w_px / 2, top), (box[2], box[3]), (left, box[3])]
        draw.polygon(points, fill=fill_rgba, outline=line_rgba, width=line_width)
    elif kind == ShapeKind.DIAMOND:
        points = [(left + w_px / 2, top), (box[2], top + h_px / 2), (left + w_px / 2, box[3]), (left, top + h_px / 2)]
        draw.polygon(points, fill=fill_rgba, outline=line_rgba, width=line_width)
    elif kind in _ARROWS:
        draw.polygon(_arrow_points(kind, box), fill=fill_rgba, outline=line_rgba, width=line_width)
    else:
        draw.rectangle(box, fill=fill_rgba, outline=line_rgba, width=line_width)
        draw.text((left + 6, top + 6), record.name, fill=(0, 0, 0, 255))

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(output_path, "PNG")
    return output_path


class PreviewRasterizer:
    """Produces preview PNGs, preferring LibreOffice over the Pillow drawing."""

    def __init__(self, converter: LibreOfficeConverter | None = None) -> None:
        self.converter = converter or LibreOfficeConverter()

    def rasterize(self, record: ShapeRecord, document: Path | str | None, output_path: Path | str) -> Path:
        """Write a preview for a record.

        Args:
            record: Shape the preview is for.
            document: Rendered or native .pptx to convert, if any.
            output_path: Destination PNG.

        Returns:
            The written PNG path.

        Raises:
            RenderError: If neither backend can produce an image.
        """
        if document is not None and self.converter.available:
            try:
                return self.converter.convert(document, output_path)
            except RenderError as e:
                logger.warning(f"LibreOffice preview failed for {record.id}, drawing instead: {e}")

        if record.native_only:
            raise RenderError(f"Cannot draw a preview for native-only shape '{record.name}'")

        try:
            return draw_preview(record, output_path)
        except OSError as e:
            raise RenderError(f"Failed to write preview for '{record.name}'", detail=str(e)) from e
