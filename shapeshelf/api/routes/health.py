"""Health check routes."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from shapeshelf import __version__
from shapeshelf.api.dependencies import get_shape_library
from shapeshelf.library.service import ShapeLibrary

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""
    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
    )


@router.get("/ready", response_model=ReadinessResponse)
def readiness_check(library: ShapeLibrary = Depends(get_shape_library)):
    """Readiness check: the library root must be usable."""
    checks = {}

    try:
        checks["library"] = library.paths.shapes_dir.is_dir()
    except OSError:
        checks["library"] = False

    return ReadinessResponse(ready=all(checks.values()), checks=checks)
