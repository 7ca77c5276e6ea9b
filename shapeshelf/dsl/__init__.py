"""Shape record models."""

from shapeshelf.dsl.schema import (
    CaptureResult,
    RawCapturedShape,
    ShapeDefinition,
    ShapeFill,
    ShapeKind,
    ShapeLine,
    ShapeRecord,
)

__all__ = [
    "CaptureResult",
    "RawCapturedShape",
    "ShapeDefinition",
    "ShapeFill",
    "ShapeKind",
    "ShapeLine",
    "ShapeRecord",
]
