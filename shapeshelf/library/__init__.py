"""Library storage - category stores, cache and on-disk layout."""

from shapeshelf.library.cache import ShapeCache
from shapeshelf.library.paths import LibraryPaths, expand_user_path
from shapeshelf.library.store import ShapeStore

__all__ = [
    "LibraryPaths",
    "ShapeCache",
    "ShapeStore",
    "expand_user_path",
]
