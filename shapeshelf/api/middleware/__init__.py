"""API middleware for shapeshelf."""

from shapeshelf.api.middleware.logging import LoggingMiddleware

__all__ = [
    "LoggingMiddleware",
]
