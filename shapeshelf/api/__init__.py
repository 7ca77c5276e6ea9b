"""Local HTTP API over the shape library."""

from shapeshelf.api.main import app, create_app
from shapeshelf.api.routes import api_router

__all__ = [
    "app",
    "create_app",
    "api_router",
]
