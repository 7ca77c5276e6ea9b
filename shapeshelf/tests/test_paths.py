"""Tests for library path resolution."""

import logging
from pathlib import Path
from unittest.mock import patch

from shapeshelf.library.paths import DECK_FILENAME, LibraryPaths, expand_user_path


class TestExpandUserPath:
    """Tests for expand_user_path."""

    def test_strips_quotes(self, tmp_path):
        assert expand_user_path(f'"{tmp_path}"') == tmp_path
        assert expand_user_path(f"  '{tmp_path}' ") == tmp_path

    def test_windows_style_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SHAPESHELF_TEST_DIR", str(tmp_path))
        assert expand_user_path("%SHAPESHELF_TEST_DIR%/shapes") == tmp_path / "shapes"

    def test_posix_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SHAPESHELF_TEST_DIR", str(tmp_path))
        assert expand_user_path("$SHAPESHELF_TEST_DIR/shapes") == tmp_path / "shapes"

    def test_home(self):
        assert expand_user_path("~/shapes") == Path.home() / "shapes"

    def test_relative_is_anchored_at_home(self):
        assert expand_user_path("Documents/shapes") == Path.home() / "Documents" / "shapes"


class TestLibraryPaths:
    """Tests for LibraryPaths."""

    def test_layout(self, library_root):
        paths = LibraryPaths(library_root)

        assert paths.store_path("arrows") == library_root / "shapes" / "arrows.json"
        assert paths.preview_path("arrows", "s1") == library_root / "assets" / "arrows" / "s1.png"
        assert paths.preview_relpath("arrows", "s1") == "arrows/s1.png"
        assert paths.deck_path == library_root / DECK_FILENAME
        assert paths.native_relpath("a.pptx") == "native/a.pptx"
        assert (library_root / "shapes").is_dir()

    def test_resolve_windows_separators(self, library_root):
        paths = LibraryPaths(library_root)
        assert paths.resolve_preview("basic\\s1.png") == library_root / "assets" / "basic" / "s1.png"
        assert paths.resolve_native("/native/a.pptx") == library_root / "native" / "a.pptx"

    def test_root_is_created(self, tmp_path):
        root = tmp_path / "deep" / "library"
        assert LibraryPaths(root).root == root
        assert root.is_dir()

    def test_falls_back_to_app_data(self, tmp_path, caplog):
        """An unusable configured folder falls back to the app data directory."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        fallback = tmp_path / "appdata"

        with patch("shapeshelf.library.paths.default_library_root", return_value=fallback), \
                caplog.at_level(logging.WARNING):
            root = LibraryPaths(blocker / "library").root

        assert root == fallback
        assert fallback.is_dir()
        assert "falling back" in caplog.text

    def test_from_settings(self, settings, library_root):
        assert LibraryPaths.from_settings(settings).root == library_root

    def test_from_settings_default(self, settings, tmp_path):
        unset = settings.model_copy(update={"library_path": None})
        with patch("shapeshelf.library.paths.default_library_root", return_value=tmp_path / "appdata"):
            assert LibraryPaths.from_settings(unset).root == tmp_path / "appdata"
