"""API routes for shapeshelf."""

from fastapi import APIRouter

from shapeshelf.api.routes.health import router as health_router
from shapeshelf.api.routes.shapes import router as shapes_router

# Main API router
api_router = APIRouter()

api_router.include_router(health_router, tags=["Health"])
api_router.include_router(shapes_router, prefix="/shapes", tags=["Shapes"])

__all__ = ["api_router"]
