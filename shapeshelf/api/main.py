"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shapeshelf import __version__
from shapeshelf.api.dependencies import get_shape_library, status_for
from shapeshelf.api.middleware import LoggingMiddleware
from shapeshelf.api.routes import api_router
from shapeshelf.config import configure_logging
from shapeshelf.errors import ShapeshelfError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    logger.info(f"Starting shapeshelf API v{__version__}")

    yield

    library = app.dependency_overrides.get(get_shape_library, get_shape_library)()
    removed = library.close()
    logger.info(f"Shutting down; removed {removed} temporary files")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="shapeshelf",
        description="Personal PowerPoint shape library",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(LoggingMiddleware, exclude_paths=["/health", "/ready"])

    @app.exception_handler(ShapeshelfError)
    async def shapeshelf_error_handler(request: Request, exc: ShapeshelfError) -> JSONResponse:
        """Errors that escaped a route keep their user-facing message."""
        if exc.detail:
            logger.debug(f"{exc.message}: {exc.detail}")
        return JSONResponse(status_code=status_for(exc), content={"detail": exc.message})

    app.include_router(api_router)
    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run(
        "shapeshelf.api.main:app",
        host="127.0.0.1",
        port=8000,
    )
