"""Generate single-slide PPTX documents from shape records."""

import logging
import re
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Any, BinaryIO, Union

from lxml import etree
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.oxml.ns import qn
from pptx.slide import Slide
from pptx.util import Inches, Pt

from shapeshelf.dsl.schema import ShapeDefinition, ShapeFill, ShapeKind, ShapeLine, ShapeRecord
from shapeshelf.errors import NativeArtifactRequiredError, RenderError

logger = logging.getLogger(__name__)

# 16:9, matching the host's default widescreen layout
SLIDE_WIDTH = Inches(13.333)
SLIDE_HEIGHT = Inches(7.5)
BLANK_LAYOUT = 6

_HEX6 = re.compile(r"^[0-9A-Fa-f]{6}$")


def _mso(name: str) -> MSO_SHAPE | None:
    return getattr(MSO_SHAPE, name, None)


# Map shape kinds to python-pptx auto shape types
_KIND_TO_MSO_NAME: dict[ShapeKind, str] = {
    # Basic shapes
    ShapeKind.RECTANGLE: "RECTANGLE",
    ShapeKind.ROUND_RECTANGLE: "ROUNDED_RECTANGLE",
    ShapeKind.ELLIPSE: "OVAL",
    ShapeKind.TRIANGLE: "ISOSCELES_TRIANGLE",
    ShapeKind.DIAMOND: "DIAMOND",
    ShapeKind.PARALLELOGRAM: "PARALLELOGRAM",
    ShapeKind.TRAPEZOID: "TRAPEZOID",
    ShapeKind.PENTAGON: "REGULAR_PENTAGON",
    ShapeKind.HEXAGON: "HEXAGON",
    ShapeKind.OCTAGON: "OCTAGON",
    ShapeKind.CROSS: "CROSS",
    ShapeKind.PLUS: "CROSS",
    ShapeKind.STAR: "STAR_5_POINT",
    ShapeKind.HEART: "HEART",
    # Arrows
    ShapeKind.LEFT_ARROW: "LEFT_ARROW",
    ShapeKind.RIGHT_ARROW: "RIGHT_ARROW",
    ShapeKind.UP_ARROW: "UP_ARROW",
    ShapeKind.DOWN_ARROW: "DOWN_ARROW",
    ShapeKind.LEFT_RIGHT_ARROW: "LEFT_RIGHT_ARROW",
    ShapeKind.UP_DOWN_ARROW: "UP_DOWN_ARROW",
    ShapeKind.QUAD_ARROW: "QUAD_ARROW",
    ShapeKind.NOTCHED_RIGHT_ARROW: "NOTCHED_RIGHT_ARROW",
    ShapeKind.BENT_ARROW: "BENT_ARROW",
    ShapeKind.UTURN_ARROW: "U_TURN_ARROW",
    ShapeKind.CIRCULAR_ARROW: "CIRCULAR_ARROW",
    ShapeKind.LEFT_ARROW_CALLOUT: "LEFT_ARROW_CALLOUT",
    ShapeKind.RIGHT_ARROW_CALLOUT: "RIGHT_ARROW_CALLOUT",
    ShapeKind.UP_ARROW_CALLOUT: "UP_ARROW_CALLOUT",
    ShapeKind.DOWN_ARROW_CALLOUT: "DOWN_ARROW_CALLOUT",
    ShapeKind.CHEVRON: "CHEVRON",
    # Flowchart
    ShapeKind.FLOWCHART_PROCESS: "FLOWCHART_PROCESS",
    ShapeKind.FLOWCHART_ALTERNATE_PROCESS: "FLOWCHART_ALTERNATE_PROCESS",
    ShapeKind.FLOWCHART_DECISION: "FLOWCHART_DECISION",
    ShapeKind.FLOWCHART_INPUT_OUTPUT: "FLOWCHART_DATA",
    ShapeKind.FLOWCHART_PREDEFINED_PROCESS: "FLOWCHART_PREDEFINED_PROCESS",
    ShapeKind.FLOWCHART_INTERNAL_STORAGE: "FLOWCHART_INTERNAL_STORAGE",
    ShapeKind.FLOWCHART_DOCUMENT: "FLOWCHART_DOCUMENT",
    ShapeKind.FLOWCHART_MULTIDOCUMENT: "FLOWCHART_MULTIDOCUMENT",
    ShapeKind.FLOWCHART_TERMINATOR: "FLOWCHART_TERMINATOR",
    ShapeKind.FLOWCHART_PREPARATION: "FLOWCHART_PREPARATION",
    ShapeKind.FLOWCHART_MANUAL_INPUT: "FLOWCHART_MANUAL_INPUT",
    ShapeKind.FLOWCHART_MANUAL_OPERATION: "FLOWCHART_MANUAL_OPERATION",
    ShapeKind.FLOWCHART_CONNECTOR: "FLOWCHART_CONNECTOR",
    ShapeKind.FLOWCHART_OFFPAGE_CONNECTOR: "FLOWCHART_OFFPAGE_CONNECTOR",
    ShapeKind.FLOWCHART_MAGNETIC_TAPE: "FLOWCHART_SEQUENTIAL_ACCESS_STORAGE",
    ShapeKind.FLOWCHART_MAGNETIC_DISK: "FLOWCHART_MAGNETIC_DISK",
    ShapeKind.FLOWCHART_MAGNETIC_DRUM: "FLOWCHART_DIRECT_ACCESS_STORAGE",
    ShapeKind.FLOWCHART_DISPLAY: "FLOWCHART_DISPLAY",
    ShapeKind.FLOWCHART_DELAY: "FLOWCHART_DELAY",
    ShapeKind.FLOWCHART_SORT: "FLOWCHART_SORT",
    ShapeKind.FLOWCHART_EXTRACT: "FLOWCHART_EXTRACT",
    ShapeKind.FLOWCHART_MERGE: "FLOWCHART_MERGE",
    ShapeKind.FLOWCHART_ONLINE_STORAGE: "FLOWCHART_STORED_DATA",
    ShapeKind.FLOWCHART_SUMMING_JUNCTION: "FLOWCHART_SUMMING_JUNCTION",
    ShapeKind.FLOWCHART_OR: "FLOWCHART_OR",
    ShapeKind.FLOWCHART_COLLATE: "FLOWCHART_COLLATE",
    ShapeKind.FLOWCHART_PUNCHED_CARD: "FLOWCHART_CARD",
    ShapeKind.FLOWCHART_PUNCHED_TAPE: "FLOWCHART_PUNCHED_TAPE",
    # Callouts
    ShapeKind.WEDGE_RECT_CALLOUT: "RECTANGULAR_CALLOUT",
    ShapeKind.WEDGE_ROUND_RECT_CALLOUT: "ROUNDED_RECTANGULAR_CALLOUT",
    ShapeKind.WEDGE_ELLIPSE_CALLOUT: "OVAL_CALLOUT",
    ShapeKind.CLOUD_CALLOUT: "CLOUD_CALLOUT",
    ShapeKind.BORDER_CALLOUT_1: "LINE_CALLOUT_1",
    ShapeKind.BORDER_CALLOUT_2: "LINE_CALLOUT_2",
    ShapeKind.BORDER_CALLOUT_3: "LINE_CALLOUT_3",
    ShapeKind.ACCENT_CALLOUT_1: "LINE_CALLOUT_1_ACCENT_BAR",
    ShapeKind.CALLOUT_1: "LINE_CALLOUT_1_NO_BORDER",
    ShapeKind.CALLOUT_2: "LINE_CALLOUT_2_NO_BORDER",
    ShapeKind.CALLOUT_3: "LINE_CALLOUT_3_NO_BORDER",
    ShapeKind.ACCENT_BORDER_CALLOUT_1: "LINE_CALLOUT_1_BORDER_AND_ACCENT_BAR",
    ShapeKind.ACCENT_BORDER_CALLOUT_2: "LINE_CALLOUT_2_BORDER_AND_ACCENT_BAR",
    ShapeKind.ACCENT_BORDER_CALLOUT_3: "LINE_CALLOUT_3_BORDER_AND_ACCENT_BAR",
}

KIND_TO_MSO: dict[ShapeKind, MSO_SHAPE] = {
    kind: mso for kind, name in _KIND_TO_MSO_NAME.items() if (mso := _mso(name)) is not None
}


def normalize_color(color: str | None) -> RGBColor | None:
    """Parse ``RRGGBB`` or ``#RRGGBB`` into an absolute RGB color."""
    if not color:
        return None
    text = color.strip().lstrip("#")
    if not _HEX6.match(text):
        return None
    return RGBColor.from_string(text.upper())


class ShapeDocumentWriter:
    """Renders shape records onto blank slides."""

    def write(
        self,
        record: ShapeRecord,
        output: Union[str, Path, BinaryIO, None] = None,
    ) -> bytes | None:
        """Write a one-slide presentation holding the record's shape.

        Args:
            record: Shape to render from its definition.
            output: Output path, file object, or None to return bytes.

        Returns:
            PPTX bytes if output is None, otherwise None.

        Raises:
            NativeArtifactRequiredError: For native-only records, which
                have no geometry to synthesize.
        """
        if record.native_only:
            raise NativeArtifactRequiredError(
                f"'{record.name}' is a group or picture and can only be inserted from its native file"
            )

        prs = self.create_presentation()
        slide = prs.slides.add_slide(prs.slide_layouts[BLANK_LAYOUT])
        prs.core_properties.title = f"{record.name} - Shape Template"
        prs.core_properties.subject = record.name
        self.render(slide, record.pptx_definition, name=record.name)

        if output is None:
            buffer = BytesIO()
            prs.save(buffer)
            buffer.seek(0)
            return buffer.read()
        elif isinstance(output, (str, Path)):
            prs.save(str(output))
            return None
        else:
            prs.save(output)
            return None

    def write_temp(self, record: ShapeRecord, directory: Path | str | None = None) -> Path:
        """Write the record to a uniquely named temporary .pptx.

        Returns:
            Path of the new file; the caller owns its cleanup.
        """
        safe_id = re.sub(r"[^a-z0-9-]", "_", record.id, flags=re.IGNORECASE)
        fd, name = tempfile.mkstemp(prefix=f"shape_{safe_id}_", suffix=".pptx", dir=directory)
        path = Path(name)
        try:
            with open(fd, "wb") as f:
                self.write(record, f)
        except NativeArtifactRequiredError:
            path.unlink(missing_ok=True)
            raise
        except Exception as e:
            path.unlink(missing_ok=True)
            raise RenderError(f"Failed to generate a document for '{record.name}'", detail=str(e)) from e
        return path

    def render(self, slide: Slide, definition: ShapeDefinition, name: str | None = None) -> Any:
        """Add one auto shape to a slide.

        Args:
            slide: The PowerPoint slide.
            definition: Geometry and style.
            name: Shape name shown in the host's selection pane.

        Returns:
            The python-pptx shape.
        """
        mso_shape = KIND_TO_MSO.get(definition.type, MSO_SHAPE.RECTANGLE)
        pptx_shape = slide.shapes.add_shape(
            mso_shape,
            Inches(definition.x),
            Inches(definition.y),
            Inches(definition.w),
            Inches(definition.h),
        )
        if name:
            pptx_shape.name = name

        if definition.rotate:
            pptx_shape.rotation = definition.rotate

        self._apply_adjustments(pptx_shape, definition)
        self._apply_fill(pptx_shape, definition.fill)
        self._apply_line(pptx_shape, definition.line)
        return pptx_shape

    def create_presentation(self) -> Presentation:
        """New 16:9 presentation."""
        prs = Presentation()
        prs.slide_width = SLIDE_WIDTH
        prs.slide_height = SLIDE_HEIGHT
        return prs

    def _apply_adjustments(self, pptx_shape: Any, definition: ShapeDefinition) -> None:
        values = list(definition.adj or [])
        if definition.rect_radius is not None:
            if values:
                values[0] = definition.rect_radius
            else:
                values = [definition.rect_radius]

        adjustments = pptx_shape.adjustments
        for i, value in enumerate(values[: len(adjustments)]):
            adjustments[i] = value

    def _apply_fill(self, pptx_shape: Any, fill: ShapeFill | None) -> None:
        color = normalize_color(fill.color) if fill else None
        if color is None:
            return
        pptx_shape.fill.solid()
        pptx_shape.fill.fore_color.rgb = color
        if fill.transparency:
            self._set_alpha(pptx_shape._element.spPr.find(qn("a:solidFill")), 1.0 - fill.transparency)

    def _apply_line(self, pptx_shape: Any, line: ShapeLine | None) -> None:
        color = normalize_color(line.color) if line else None
        if color is None:
            return
        pptx_shape.line.color.rgb = color
        if line.width:
            pptx_shape.line.width = Pt(line.width)
        if line.transparency:
            ln = pptx_shape._element.spPr.find(qn("a:ln"))
            fill = ln.find(qn("a:solidFill")) if ln is not None else None
            self._set_alpha(fill, 1.0 - line.transparency)

    def _set_alpha(self, solid_fill: Any, alpha: float) -> None:
        """Set opacity on an ``a:solidFill`` via XML."""
        if solid_fill is None:
            return
        srgb = solid_fill.find(qn("a:srgbClr"))
        if srgb is None:
            return
        for existing in srgb.findall(qn("a:alpha")):
            srgb.remove(existing)
        alpha_elem = etree.SubElement(srgb, qn("a:alpha"))
        alpha_elem.set("val", str(int(max(0.0, min(alpha, 1.0)) * 100000)))
