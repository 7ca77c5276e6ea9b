"""FastAPI dependencies."""

from fastapi import HTTPException, status

from shapeshelf.errors import (
    InvalidShapeError,
    NativeArtifactRequiredError,
    ShapeNotFoundError,
    ShapeshelfError,
    UnknownCategoryError,
)
from shapeshelf.library.service import ShapeLibrary, get_library


def get_shape_library() -> ShapeLibrary:
    """Library instance shared by all requests."""
    return get_library()


def status_for(error: ShapeshelfError) -> int:
    """HTTP status code for a library error."""
    if isinstance(error, ShapeNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, UnknownCategoryError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, NativeArtifactRequiredError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, InvalidShapeError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def http_error(error: ShapeshelfError) -> HTTPException:
    """Convert a library error into an HTTPException carrying its message."""
    return HTTPException(status_code=status_for(error), detail=error.message)
