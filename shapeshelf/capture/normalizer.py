"""Map raw bridge captures onto canonical shape records.

Kind resolution is a lookup chain over plain tables:

1. symbolic AutoShapeType name (``msoShapeRoundedRectangle``)
2. numeric AutoShapeType code (``5``)
3. name heuristics (``tag``/``label`` look like rounded rectangles)
4. ``rectangle``

Reference: https://learn.microsoft.com/en-us/office/vba/api/office.msoautoshapetype
"""

import logging
import re
import time
from typing import Any, Callable

from shapeshelf.dsl.schema import (
    PLACEHOLDER_PREVIEW,
    RawCapturedShape,
    ShapeDefinition,
    ShapeFill,
    ShapeKind,
    ShapeLine,
    ShapeRecord,
)

logger = logging.getLogger(__name__)

K = ShapeKind

AUTOSHAPE_TYPE_MAP: dict[int, ShapeKind] = {
    # Basic shapes
    1: K.RECTANGLE,
    2: K.PARALLELOGRAM,
    3: K.TRAPEZOID,
    4: K.DIAMOND,
    5: K.ROUND_RECTANGLE,
    6: K.OCTAGON,
    7: K.TRIANGLE,  # isosceles
    8: K.TRIANGLE,  # right
    9: K.ELLIPSE,
    10: K.HEXAGON,
    11: K.CROSS,
    12: K.PLUS,
    13: K.STAR,
    17: K.HEART,
    19: K.PENTAGON,
    # Arrows
    36: K.LEFT_ARROW,
    37: K.DOWN_ARROW,
    38: K.UP_ARROW,
    39: K.RIGHT_ARROW,
    40: K.LEFT_RIGHT_ARROW,
    41: K.UP_DOWN_ARROW,
    42: K.QUAD_ARROW,
    43: K.NOTCHED_RIGHT_ARROW,
    44: K.BENT_ARROW,
    45: K.UTURN_ARROW,
    46: K.LEFT_ARROW_CALLOUT,
    47: K.RIGHT_ARROW_CALLOUT,
    48: K.UP_ARROW_CALLOUT,
    49: K.DOWN_ARROW_CALLOUT,
    52: K.CIRCULAR_ARROW,
    55: K.CHEVRON,
    # Callouts
    56: K.WEDGE_RECT_CALLOUT,
    57: K.WEDGE_ROUND_RECT_CALLOUT,
    58: K.WEDGE_ELLIPSE_CALLOUT,
    61: K.BORDER_CALLOUT_1,
    62: K.BORDER_CALLOUT_2,
    63: K.BORDER_CALLOUT_3,
    64: K.ACCENT_CALLOUT_1,
    65: K.BORDER_CALLOUT_1,
    66: K.BORDER_CALLOUT_2,
    67: K.BORDER_CALLOUT_3,
    68: K.ACCENT_CALLOUT_1,
    70: K.CALLOUT_1,
    71: K.CALLOUT_2,
    72: K.CALLOUT_3,
    73: K.ACCENT_CALLOUT_1,
    74: K.ACCENT_BORDER_CALLOUT_1,
    75: K.ACCENT_BORDER_CALLOUT_2,
    76: K.ACCENT_BORDER_CALLOUT_3,
    106: K.CLOUD_CALLOUT,
    # Flowchart
    109: K.FLOWCHART_PROCESS,
    110: K.FLOWCHART_ALTERNATE_PROCESS,
    111: K.FLOWCHART_DECISION,
    112: K.FLOWCHART_INPUT_OUTPUT,
    113: K.FLOWCHART_PREDEFINED_PROCESS,
    114: K.FLOWCHART_INTERNAL_STORAGE,
    115: K.FLOWCHART_DOCUMENT,
    116: K.FLOWCHART_MULTIDOCUMENT,
    117: K.FLOWCHART_TERMINATOR,
    118: K.FLOWCHART_PREPARATION,
    119: K.FLOWCHART_MANUAL_INPUT,
    120: K.FLOWCHART_MANUAL_OPERATION,
    121: K.FLOWCHART_CONNECTOR,
    122: K.FLOWCHART_OFFPAGE_CONNECTOR,
    125: K.FLOWCHART_MAGNETIC_TAPE,
    126: K.FLOWCHART_MAGNETIC_DISK,
    127: K.FLOWCHART_MAGNETIC_DRUM,
    128: K.FLOWCHART_DISPLAY,
    129: K.FLOWCHART_DELAY,
    134: K.FLOWCHART_SORT,
    135: K.FLOWCHART_EXTRACT,
    136: K.FLOWCHART_MERGE,
    137: K.FLOWCHART_ONLINE_STORAGE,
    138: K.FLOWCHART_SUMMING_JUNCTION,
    139: K.FLOWCHART_OR,
    140: K.FLOWCHART_COLLATE,
    141: K.FLOWCHART_PUNCHED_CARD,
    142: K.FLOWCHART_PUNCHED_TAPE,
}

AUTOSHAPE_NAME_MAP: dict[str, ShapeKind] = {
    "msoShapeRectangle": K.RECTANGLE,
    "msoShapeRoundedRectangle": K.ROUND_RECTANGLE,
    "msoShapeOval": K.ELLIPSE,
    "msoShapeIsoscelesTriangle": K.TRIANGLE,
    "msoShapeRightTriangle": K.TRIANGLE,
    "msoShapeDiamond": K.DIAMOND,
    "msoShapeHexagon": K.HEXAGON,
    "msoShapeOctagon": K.OCTAGON,
    "msoShapeParallelogram": K.PARALLELOGRAM,
    "msoShapeTrapezoid": K.TRAPEZOID,
    "msoShapePentagon": K.PENTAGON,
    "msoShapeHeart": K.HEART,
    # Arrows
    "msoShapeLeftArrow": K.LEFT_ARROW,
    "msoShapeDownArrow": K.DOWN_ARROW,
    "msoShapeUpArrow": K.UP_ARROW,
    "msoShapeRightArrow": K.RIGHT_ARROW,
    "msoShapeLeftRightArrow": K.LEFT_RIGHT_ARROW,
    "msoShapeUpDownArrow": K.UP_DOWN_ARROW,
    "msoShapeQuadArrow": K.QUAD_ARROW,
    "msoShapeNotchedRightArrow": K.NOTCHED_RIGHT_ARROW,
    "msoShapeBentArrow": K.BENT_ARROW,
    "msoShapeUTurnArrow": K.UTURN_ARROW,
    "msoShapeLeftArrowCallout": K.LEFT_ARROW_CALLOUT,
    "msoShapeRightArrowCallout": K.RIGHT_ARROW_CALLOUT,
    "msoShapeUpArrowCallout": K.UP_ARROW_CALLOUT,
    "msoShapeDownArrowCallout": K.DOWN_ARROW_CALLOUT,
    "msoShapeCircularArrow": K.CIRCULAR_ARROW,
    "msoShapeChevron": K.CHEVRON,
    # Flowchart
    "msoShapeFlowchartProcess": K.FLOWCHART_PROCESS,
    "msoShapeFlowchartAlternateProcess": K.FLOWCHART_ALTERNATE_PROCESS,
    "msoShapeFlowchartDecision": K.FLOWCHART_DECISION,
    "msoShapeFlowchartData": K.FLOWCHART_INPUT_OUTPUT,
    "msoShapeFlowchartPredefinedProcess": K.FLOWCHART_PREDEFINED_PROCESS,
    "msoShapeFlowchartInternalStorage": K.FLOWCHART_INTERNAL_STORAGE,
    "msoShapeFlowchartDocument": K.FLOWCHART_DOCUMENT,
    "msoShapeFlowchartMultidocument": K.FLOWCHART_MULTIDOCUMENT,
    "msoShapeFlowchartTerminator": K.FLOWCHART_TERMINATOR,
    "msoShapeFlowchartPreparation": K.FLOWCHART_PREPARATION,
    "msoShapeFlowchartManualInput": K.FLOWCHART_MANUAL_INPUT,
    "msoShapeFlowchartManualOperation": K.FLOWCHART_MANUAL_OPERATION,
    "msoShapeFlowchartConnector": K.FLOWCHART_CONNECTOR,
    "msoShapeFlowchartOffpageConnector": K.FLOWCHART_OFFPAGE_CONNECTOR,
    "msoShapeFlowchartDisplay": K.FLOWCHART_DISPLAY,
    "msoShapeFlowchartDelay": K.FLOWCHART_DELAY,
    "msoShapeFlowchartSort": K.FLOWCHART_SORT,
    "msoShapeFlowchartExtract": K.FLOWCHART_EXTRACT,
    "msoShapeFlowchartMerge": K.FLOWCHART_MERGE,
    "msoShapeFlowchartOnlineStorage": K.FLOWCHART_ONLINE_STORAGE,
    "msoShapeFlowchartSummingJunction": K.FLOWCHART_SUMMING_JUNCTION,
    "msoShapeFlowchartOr": K.FLOWCHART_OR,
    "msoShapeFlowchartCollate": K.FLOWCHART_COLLATE,
    # Callouts
    "msoShapeRectangularCallout": K.WEDGE_RECT_CALLOUT,
    "msoShapeRoundedRectangularCallout": K.WEDGE_ROUND_RECT_CALLOUT,
    "msoShapeOvalCallout": K.WEDGE_ELLIPSE_CALLOUT,
    "msoShapeCloudCallout": K.CLOUD_CALLOUT,
    # Plaque / tag-like (approximate)
    "msoShapePlaque": K.ROUND_RECTANGLE,
    "msoShapePlaqueTabs": K.ROUND_RECTANGLE,
}

# Name fragments that suggest a tag-like shape.
TAG_NAME_HINTS = ("tag", "etiqueta", "label")

FLOWCHART_PREFIX = "flowChart"

DEFAULT_POSITION = 1.0
DEFAULT_SIZE = 2.0
DEFAULT_LINE_WIDTH = 1.0

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_HEX6 = re.compile(r"^#?[0-9A-Fa-f]{6}$")


# =============================================================================
# Kind and category inference
# =============================================================================


def choose_kind(raw: RawCapturedShape) -> ShapeKind:
    """Resolve the renderable kind of a captured shape."""
    if raw.auto_shape_name and raw.auto_shape_name in AUTOSHAPE_NAME_MAP:
        return AUTOSHAPE_NAME_MAP[raw.auto_shape_name]
    if raw.type is not None and raw.type in AUTOSHAPE_TYPE_MAP:
        return AUTOSHAPE_TYPE_MAP[raw.type]

    name = (raw.name or "").lower()
    if any(hint in name for hint in TAG_NAME_HINTS):
        return K.ROUND_RECTANGLE
    return K.RECTANGLE


def category_for_kind(kind: ShapeKind | str) -> str:
    """Category a kind belongs to."""
    value = kind.value if isinstance(kind, ShapeKind) else kind
    lowered = value.lower()

    if value.startswith(FLOWCHART_PREFIX):
        return "flowchart"
    if "arrow" in lowered or "chevron" in lowered:
        return "arrows"
    if "callout" in lowered:
        return "callouts"
    return "basic"


# =============================================================================
# Identifiers and tags
# =============================================================================


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number <= 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def generate_shape_id(name: str, now_ms: int | None = None) -> str:
    """Build a filesystem-safe id sortable by capture time.

    Args:
        name: Shape name.
        now_ms: Epoch milliseconds; defaults to the current time.

    Returns:
        ``captured-<slug>-<base36 timestamp>``.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    slug = _NON_ALNUM.sub("-", name.lower())
    return f"captured-{slug}-{_base36(now_ms)}"


def generate_tags(name: str, kind: ShapeKind, category: str) -> list[str]:
    """Search tags for a captured shape, in first-seen order."""
    tags = ["captured", category]
    tags.extend(part.lower() for part in _CAMEL_BOUNDARY.split(kind.value))
    tags.extend(p for p in _NON_ALNUM.sub(" ", name.lower()).split() if len(p) > 2)
    return list(dict.fromkeys(tags))


# =============================================================================
# Normalization
# =============================================================================


def _positive_or(value: float | None, default: float) -> float:
    return value if value is not None and value > 0 else default


def _number_or(value: float | None, default: float) -> float:
    return value if value is not None else default


def _fraction(value: float | None) -> float | None:
    if value is None:
        return None
    return min(max(value, 0.0), 1.0)


def _hex_color(value: str | None) -> str | None:
    if value and _HEX6.match(value):
        return value.lstrip("#").upper()
    return None


def _build_fill(raw: RawCapturedShape) -> ShapeFill | None:
    color = _hex_color(raw.fill.color)
    if color is None:
        return None
    return ShapeFill(color=color, transparency=_fraction(raw.fill.transparency))


def _build_line(raw: RawCapturedShape) -> ShapeLine | None:
    color = _hex_color(raw.line.color)
    if color is None:
        return None
    weight = raw.line.weight if raw.line.weight is not None and raw.line.weight > 0 else DEFAULT_LINE_WIDTH
    return ShapeLine(color=color, width=weight, transparency=_fraction(raw.line.transparency))


def _describe(raw: RawCapturedShape) -> str:
    suffix = " (Group)" if raw.is_group else " (Picture)" if raw.is_picture else ""
    code = raw.type if raw.type is not None else "unknown"
    return f"Captured from PowerPoint{suffix} (Type: {code})"


def normalize(
    raw: RawCapturedShape | dict[str, Any],
    custom_name: str | None = None,
    clock: Callable[[], float] = time.time,
) -> ShapeRecord:
    """Map a raw capture onto a ShapeRecord.

    Never raises on malformed input: missing or invalid numbers fall back
    to defaults (position 1in, size 2in, no rotation).

    Args:
        raw: Bridge capture, as a model or decoded payload.
        custom_name: Name chosen by the user; overrides the host name.
        clock: Epoch-seconds source for the id timestamp.

    Returns:
        A new, unsaved record.
    """
    if not isinstance(raw, RawCapturedShape):
        raw = RawCapturedShape.from_bridge(raw)

    name = (custom_name or "").strip() or raw.name or "Unnamed Shape"
    native_only = raw.is_group or raw.is_picture

    if native_only:
        kind = K.RECTANGLE
        category = "basic"
    else:
        kind = choose_kind(raw)
        category = category_for_kind(kind)

    adjustments = raw.adjustments or None
    rotation = _number_or(raw.rotation, 0.0)

    definition = ShapeDefinition(
        type=kind,
        x=_number_or(raw.position.x, DEFAULT_POSITION),
        y=_number_or(raw.position.y, DEFAULT_POSITION),
        w=_positive_or(raw.size.width, DEFAULT_SIZE),
        h=_positive_or(raw.size.height, DEFAULT_SIZE),
        rotate=rotation if rotation != 0 else None,
        adj=adjustments,
        rect_radius=adjustments[0] if kind == K.ROUND_RECTANGLE and adjustments else None,
        fill=_build_fill(raw),
        line=_build_line(raw),
    )

    record = ShapeRecord(
        id=generate_shape_id(name, int(clock() * 1000)),
        name=name,
        category=category,
        description=_describe(raw),
        tags=generate_tags(name, kind, category),
        preview=f"{category}/{PLACEHOLDER_PREVIEW}",
        pptx_definition=definition,
        native_pptx=raw.native_pptx_rel_path,
        native_only=True if native_only else None,
    )

    logger.info(
        f"AutoShapeType={raw.type} Name={raw.auto_shape_name or '(n/a)'} -> "
        + ("Native-only" if native_only else f"Kind={kind.value}")
    )
    return record


# =============================================================================
# Lookup helpers
# =============================================================================


def get_shape_type_name(auto_shape_type: int) -> str:
    """Human-readable name for an AutoShapeType code, e.g. ``Right Arrow``."""
    kind = AUTOSHAPE_TYPE_MAP.get(auto_shape_type)
    if kind is None:
        return f"Unknown ({auto_shape_type})"
    return " ".join(part[:1].upper() + part[1:] for part in _CAMEL_BOUNDARY.split(kind.value))


def is_supported_shape_type(auto_shape_type: int) -> bool:
    """Whether an AutoShapeType code maps to a renderable kind."""
    return auto_shape_type in AUTOSHAPE_TYPE_MAP


def get_supported_shape_types() -> list[int]:
    """All AutoShapeType codes with a renderable kind."""
    return list(AUTOSHAPE_TYPE_MAP)
