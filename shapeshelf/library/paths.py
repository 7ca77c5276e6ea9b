"""Resolve the library root and the layout beneath it.

Layout::

    <root>/shapes/<category>.json
    <root>/assets/<category>/<id>.png
    <root>/native/<artifact>.pptx
    <root>/library_deck.pptx
"""

import logging
import os
import re
from pathlib import Path

import platformdirs

from shapeshelf.config import Settings

logger = logging.getLogger(__name__)

APP_NAME = "shapeshelf"
DECK_FILENAME = "library_deck.pptx"

_WINDOWS_VAR = re.compile(r"%([A-Za-z0-9_]+)%")


def expand_user_path(raw: str) -> Path:
    """Expand a user-supplied folder setting into an absolute path.

    Strips surrounding quotes, expands ``%VAR%`` and ``$VAR`` references
    and ``~``, and anchors relative paths at the home directory.

    Args:
        raw: Path as typed by the user.

    Returns:
        Absolute path.
    """
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        text = text[1:-1]
    text = _WINDOWS_VAR.sub(lambda m: os.environ.get(m.group(1), ""), text)
    text = os.path.expandvars(text)
    path = Path(text).expanduser()
    if not path.is_absolute():
        path = Path.home() / path
    return path


def default_library_root() -> Path:
    """Application-owned data directory."""
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


class LibraryPaths:
    """Single source of truth for where library state lives."""

    def __init__(self, root: Path | str | None = None) -> None:
        """Initialize the resolver.

        Args:
            root: Library root. ``None`` uses the application data directory.
        """
        self._configured = Path(root) if root is not None else None
        self._root: Path | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "LibraryPaths":
        """Build from the ``library_path`` option."""
        if settings.library_path:
            return cls(expand_user_path(settings.library_path))
        return cls()

    @property
    def root(self) -> Path:
        """Library root, created on first access.

        Falls back to the application data directory if the configured
        folder cannot be created.
        """
        if self._root is None:
            self._root = self._resolve_root()
        return self._root

    def _resolve_root(self) -> Path:
        fallback = default_library_root()
        base = self._configured or fallback
        try:
            base.mkdir(parents=True, exist_ok=True)
            return base
        except OSError as e:
            if base == fallback:
                raise
            logger.warning(f"Cannot use library folder {base} ({e}); falling back to {fallback}")
            fallback.mkdir(parents=True, exist_ok=True)
            return fallback

    def _subdir(self, name: str) -> Path:
        path = self.root / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def shapes_dir(self) -> Path:
        return self._subdir("shapes")

    @property
    def assets_dir(self) -> Path:
        return self._subdir("assets")

    @property
    def native_dir(self) -> Path:
        return self._subdir("native")

    @property
    def deck_path(self) -> Path:
        return self.root / DECK_FILENAME

    def store_path(self, category: str) -> Path:
        """JSON store for one category."""
        return self.shapes_dir / f"{category}.json"

    def preview_relpath(self, category: str, shape_id: str) -> str:
        """Preview path as stored on a record (relative to ``assets``)."""
        return f"{category}/{shape_id}.png"

    def preview_path(self, category: str, shape_id: str) -> Path:
        return self.assets_dir / category / f"{shape_id}.png"

    def resolve_preview(self, relpath: str) -> Path:
        """Absolute path of a record's ``preview`` value."""
        return self.assets_dir / relpath.replace("\\", "/").lstrip("/")

    def resolve_native(self, relpath: str) -> Path:
        """Absolute path of a record's ``nativePptx`` value."""
        return self.root / relpath.replace("\\", "/").lstrip("/")

    def native_relpath(self, filename: str) -> str:
        return f"native/{filename}"
