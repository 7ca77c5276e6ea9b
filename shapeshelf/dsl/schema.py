"""Pydantic v2 models for shape records and raw captures.

A ShapeRecord is the canonical persisted description of one reusable
shape. Positions and sizes are in inches, rotation in degrees, colors are
six hex digits without a leading ``#``. Records are stored with camelCase
keys (``pptxDefinition``, ``nativePptx``...) so existing library files
stay readable.
"""

import logging
import math
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from shapeshelf.errors import BridgeError, BridgeTimeoutError

logger = logging.getLogger(__name__)

PLACEHOLDER_PREVIEW = "placeholder.png"


class ShapeKind(str, Enum):
    """Renderable primitive kinds."""

    # Basic shapes
    RECTANGLE = "rectangle"
    ROUND_RECTANGLE = "roundRectangle"
    ELLIPSE = "ellipse"
    TRIANGLE = "triangle"
    DIAMOND = "diamond"
    PARALLELOGRAM = "parallelogram"
    TRAPEZOID = "trapezoid"
    PENTAGON = "pentagon"
    HEXAGON = "hexagon"
    OCTAGON = "octagon"
    CROSS = "cross"
    PLUS = "plus"
    STAR = "star"
    HEART = "heart"

    # Arrows
    LEFT_ARROW = "leftArrow"
    RIGHT_ARROW = "rightArrow"
    UP_ARROW = "upArrow"
    DOWN_ARROW = "downArrow"
    LEFT_RIGHT_ARROW = "leftRightArrow"
    UP_DOWN_ARROW = "upDownArrow"
    QUAD_ARROW = "quadArrow"
    NOTCHED_RIGHT_ARROW = "notchedRightArrow"
    BENT_ARROW = "bentArrow"
    UTURN_ARROW = "uturnArrow"
    CIRCULAR_ARROW = "circularArrow"
    LEFT_ARROW_CALLOUT = "leftArrowCallout"
    RIGHT_ARROW_CALLOUT = "rightArrowCallout"
    UP_ARROW_CALLOUT = "upArrowCallout"
    DOWN_ARROW_CALLOUT = "downArrowCallout"
    CHEVRON = "chevron"

    # Flowchart
    FLOWCHART_PROCESS = "flowChartProcess"
    FLOWCHART_ALTERNATE_PROCESS = "flowChartAlternateProcess"
    FLOWCHART_DECISION = "flowChartDecision"
    FLOWCHART_INPUT_OUTPUT = "flowChartInputOutput"
    FLOWCHART_PREDEFINED_PROCESS = "flowChartPredefinedProcess"
    FLOWCHART_INTERNAL_STORAGE = "flowChartInternalStorage"
    FLOWCHART_DOCUMENT = "flowChartDocument"
    FLOWCHART_MULTIDOCUMENT = "flowChartMultidocument"
    FLOWCHART_TERMINATOR = "flowChartTerminator"
    FLOWCHART_PREPARATION = "flowChartPreparation"
    FLOWCHART_MANUAL_INPUT = "flowChartManualInput"
    FLOWCHART_MANUAL_OPERATION = "flowChartManualOperation"
    FLOWCHART_CONNECTOR = "flowChartConnector"
    FLOWCHART_OFFPAGE_CONNECTOR = "flowChartOffpageConnector"
    FLOWCHART_MAGNETIC_TAPE = "flowChartMagneticTape"
    FLOWCHART_MAGNETIC_DISK = "flowChartMagneticDisk"
    FLOWCHART_MAGNETIC_DRUM = "flowChartMagneticDrum"
    FLOWCHART_DISPLAY = "flowChartDisplay"
    FLOWCHART_DELAY = "flowChartDelay"
    FLOWCHART_SORT = "flowChartSort"
    FLOWCHART_EXTRACT = "flowChartExtract"
    FLOWCHART_MERGE = "flowChartMerge"
    FLOWCHART_ONLINE_STORAGE = "flowChartOnlineStorage"
    FLOWCHART_SUMMING_JUNCTION = "flowChartSummingJunction"
    FLOWCHART_OR = "flowChartOr"
    FLOWCHART_COLLATE = "flowChartCollate"
    FLOWCHART_PUNCHED_CARD = "flowChartPunchedCard"
    FLOWCHART_PUNCHED_TAPE = "flowChartPunchedTape"

    # Callouts
    WEDGE_RECT_CALLOUT = "wedgeRectCallout"
    WEDGE_ROUND_RECT_CALLOUT = "wedgeRoundRectCallout"
    WEDGE_ELLIPSE_CALLOUT = "wedgeEllipseCallout"
    CLOUD_CALLOUT = "cloudCallout"
    BORDER_CALLOUT_1 = "borderCallout1"
    BORDER_CALLOUT_2 = "borderCallout2"
    BORDER_CALLOUT_3 = "borderCallout3"
    ACCENT_CALLOUT_1 = "accentCallout1"
    CALLOUT_1 = "callout1"
    CALLOUT_2 = "callout2"
    CALLOUT_3 = "callout3"
    ACCENT_BORDER_CALLOUT_1 = "accentBorderCallout1"
    ACCENT_BORDER_CALLOUT_2 = "accentBorderCallout2"
    ACCENT_BORDER_CALLOUT_3 = "accentBorderCallout3"


def _normalize_hex(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip().lstrip("#").upper()
        return value or None
    return value


HexColor = Annotated[str | None, BeforeValidator(_normalize_hex)]


# ============================================================================
# Shape records
# ============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ShapeFill(_CamelModel):
    """Solid fill color of a shape."""

    color: HexColor = Field(default=None, description="RRGGBB")
    transparency: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("color")
    @classmethod
    def _six_hex_digits(cls, value: str | None) -> str | None:
        if value is not None and (len(value) != 6 or any(c not in "0123456789ABCDEF" for c in value)):
            raise ValueError(f"Expected 6 hex digits, got '{value}'")
        return value


class ShapeLine(ShapeFill):
    """Outline of a shape."""

    width: float | None = Field(default=None, ge=0.0, description="Line weight in points")


class ShapeDefinition(_CamelModel):
    """Renderable description of a shape (``pptxDefinition`` on disk)."""

    type: ShapeKind = ShapeKind.RECTANGLE
    x: float = Field(description="Left position in inches")
    y: float = Field(description="Top position in inches")
    w: float = Field(ge=0, description="Width in inches")
    h: float = Field(ge=0, description="Height in inches")
    rotate: float | None = Field(default=None, description="Rotation in degrees")
    adj: list[float] | None = Field(default=None, description="Flat adjustment values")
    rect_radius: float | None = None
    fill: ShapeFill | None = None
    line: ShapeLine | None = None


class ShapeRecord(_CamelModel):
    """One reusable shape in the library."""

    id: str = Field(min_length=1)
    name: str
    category: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    preview: str = Field(description="Preview path relative to the assets directory")
    pptx_definition: ShapeDefinition
    native_pptx: str | None = Field(
        default=None,
        description="Native file path relative to the library root",
    )
    native_only: bool | None = None
    deck_slide: int | None = Field(default=None, ge=1)

    @property
    def has_native(self) -> bool:
        """Whether a native file is recorded for this shape."""
        return bool(self.native_pptx)

    @property
    def is_renderable(self) -> bool:
        """Native-only records are unusable without their native file."""
        return self.has_native or not self.native_only

    @property
    def preview_category(self) -> str:
        """Leading segment of the preview path."""
        return self.preview.replace("\\", "/").lstrip("/").split("/", 1)[0]

    @property
    def has_placeholder_preview(self) -> bool:
        """Whether the preview still points at the category placeholder."""
        return self.preview.replace("\\", "/").endswith("/" + PLACEHOLDER_PREVIEW)

    def with_changes(self, **changes: Any) -> "ShapeRecord":
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return ShapeRecord.model_validate(data)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with on-disk key names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Raw captures from the automation bridge
# ============================================================================


def _lenient_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _lenient_int(value: Any) -> int | None:
    number = _lenient_float(value)
    return int(number) if number is not None else None


def _lenient_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _lenient_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _lenient_numbers(value: Any) -> list[float] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        value = [value]
    numbers = [n for n in (_lenient_float(v) for v in value) if n is not None]
    return numbers


def _lenient_mapping(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


LenientFloat = Annotated[float | None, BeforeValidator(_lenient_float)]
LenientInt = Annotated[int | None, BeforeValidator(_lenient_int)]
LenientBool = Annotated[bool, BeforeValidator(_lenient_bool)]
LenientStr = Annotated[str | None, BeforeValidator(_lenient_str)]
LenientNumbers = Annotated[list[float] | None, BeforeValidator(_lenient_numbers)]


class _RawModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RawPoint(_RawModel):
    x: LenientFloat = None
    y: LenientFloat = None


class RawSize(_RawModel):
    width: LenientFloat = None
    height: LenientFloat = None


class RawFill(_RawModel):
    color: LenientStr = None
    transparency: LenientFloat = None


class RawLine(_RawModel):
    color: LenientStr = None
    weight: LenientFloat = None
    transparency: LenientFloat = None


class RawCapturedShape(_RawModel):
    """Loosely-typed shape properties as reported by the automation bridge.

    Every field tolerates missing or malformed values; the normalizer
    substitutes defaults.
    """

    name: LenientStr = None
    type: LenientInt = Field(default=None, description="Host AutoShapeType code")
    auto_shape_name: LenientStr = Field(default=None, description="e.g. msoShapeRoundedRectangle")
    is_group: LenientBool = False
    is_picture: LenientBool = False
    position: Annotated[RawPoint, BeforeValidator(_lenient_mapping)] = Field(default_factory=RawPoint)
    size: Annotated[RawSize, BeforeValidator(_lenient_mapping)] = Field(default_factory=RawSize)
    rotation: LenientFloat = None
    adjustments: LenientNumbers = None
    native_pptx_rel_path: LenientStr = None
    png_temp_path: LenientStr = None
    fill: Annotated[RawFill, BeforeValidator(_lenient_mapping)] = Field(default_factory=RawFill)
    line: Annotated[RawLine, BeforeValidator(_lenient_mapping)] = Field(default_factory=RawLine)

    @classmethod
    def from_bridge(cls, data: Any) -> "RawCapturedShape":
        """Build from whatever the bridge returned, never raising.

        Accepts the nested layout as well as the flat ``left/top/width/
        height/fillColor/lineColor...`` keys emitted by the host scripts.

        Args:
            data: Decoded bridge payload.

        Returns:
            RawCapturedShape with unknown values left unset.
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            return cls()

        payload = dict(data)
        payload.setdefault("position", {"x": data.get("left"), "y": data.get("top")})
        payload.setdefault("size", {"width": data.get("width"), "height": data.get("height")})
        payload.setdefault(
            "fill",
            {"color": data.get("fillColor"), "transparency": data.get("fillTransparency")},
        )
        payload.setdefault(
            "line",
            {
                "color": data.get("lineColor"),
                "weight": data.get("lineWeight"),
                "transparency": data.get("lineTransparency"),
            },
        )
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Discarding malformed bridge payload: {e}")
            return cls()


class CaptureResult(BaseModel):
    """Outcome of one bridge call."""

    success: bool
    shape: RawCapturedShape | None = None
    error: str | None = None
    timed_out: bool = False
    logs: list[str] = Field(default_factory=list)

    @classmethod
    def failure(cls, error: str, logs: list[str] | None = None, timed_out: bool = False) -> "CaptureResult":
        return cls(success=False, error=error, logs=logs or [], timed_out=timed_out)

    def raise_for_error(self) -> RawCapturedShape:
        """Return the captured shape or raise the matching BridgeError."""
        if self.success and self.shape is not None:
            return self.shape
        message = self.error or "Capture failed"
        if self.timed_out:
            raise BridgeTimeoutError(message, detail="\n".join(self.logs) or None)
        raise BridgeError(message, detail="\n".join(self.logs) or None)
