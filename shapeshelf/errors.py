"""Exceptions raised by the shape library."""


class ShapeshelfError(Exception):
    """Base error with a short user-facing message and an optional detail."""

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return self.message


class ShapeNotFoundError(ShapeshelfError, KeyError):
    """Raised when an update/remove/get targets an id absent from its category."""

    def __init__(self, shape_id: str, category: str) -> None:
        super().__init__(f"Shape with ID '{shape_id}' not found in {category} category")
        self.shape_id = shape_id
        self.category = category


class UnknownCategoryError(ShapeshelfError, ValueError):
    """Raised for a category key outside the configured set."""

    def __init__(self, category: str, allowed: list[str]) -> None:
        super().__init__(
            f"Unknown category '{category}'",
            detail=f"Expected one of: {', '.join(allowed)}",
        )
        self.category = category


class BridgeError(ShapeshelfError):
    """The automation bridge could not capture a shape."""


class BridgeTimeoutError(BridgeError):
    """The automation bridge exceeded its wall-clock limit."""


class AssetError(ShapeshelfError):
    """A preview or native file could not be written or moved."""


class NativeArtifactRequiredError(ShapeshelfError):
    """The operation needs a native file and the record has none."""


class RenderError(ShapeshelfError):
    """A document or raster preview could not be produced."""


class InvalidShapeError(ShapeshelfError, ValueError):
    """A change would leave a record invalid, or its preview outside its category."""
