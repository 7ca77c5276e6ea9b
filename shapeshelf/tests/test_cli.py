"""Tests for the command-line interface."""

import json
from unittest.mock import patch

import pytest

from conftest import FakeBridge, make_record, seed_records, write_png
from shapeshelf.cli import build_parser, main


class TestParser:
    def test_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_update_options(self):
        args = build_parser().parse_args(["update", "s1", "basic", "--move-to", "arrows", "--tags", "a, b"])
        assert args.new_category == "arrows"
        assert args.tags == "a, b"


class TestCommands:
    """Tests for main() against a temporary library."""

    def test_list_and_counts(self, library, capsys):
        library.store.add(make_record("s1", name="Box"))
        library.store.add(make_record("a1", name="Arrow", category="arrows", native_pptx="native/a.pptx"))

        assert main(["list"], library=library) == 0
        out = capsys.readouterr().out
        assert "s1\tbasic\tBox" in out
        assert "a1\tarrows\tArrow [native]" in out
        assert "2 shapes" in out

        assert main(["counts"], library=library) == 0
        assert "arrows: 1" in capsys.readouterr().out

    def test_list_with_query(self, library, capsys):
        library.store.add(make_record("s1", name="Box"))
        library.store.add(make_record("s2", name="Circle"))

        main(["list", "--query", "circ"], library=library)

        out = capsys.readouterr().out
        assert "s2" in out and "s1" not in out

    def test_show(self, library, capsys):
        library.store.add(make_record("s1"))

        assert main(["show", "s1", "basic"], library=library) == 0

        assert json.loads(capsys.readouterr().out)["id"] == "s1"

    def test_missing_shape_is_an_error(self, library, capsys):
        assert main(["show", "nope", "basic"], library=library) == 1
        assert "Error: Shape with ID 'nope' not found in basic category" in capsys.readouterr().err

    def test_update_moves_category(self, library, paths, capsys):
        library.store.add(make_record("s1"))
        write_png(paths.preview_path("basic", "s1"))

        assert main(["update", "s1", "basic", "--move-to", "arrows", "--tags", "x, y"], library=library) == 0

        record = library.get("s1", "arrows")
        assert record.tags == ["x", "y"]
        assert record.preview == "arrows/s1.png"

    def test_update_without_changes(self, library, capsys):
        library.store.add(make_record("s1"))
        assert main(["update", "s1", "basic"], library=library) == 2

    def test_remove(self, library, capsys):
        library.store.add(make_record("s1", name="Box"))
        assert main(["remove", "s1", "basic"], library=library) == 0
        assert "Removed 'Box'" in capsys.readouterr().out
        assert library.total() == 0

    def test_repair(self, library, paths, capsys):
        seed_records(paths, make_record("s1", category="arrows", preview="basic/s1.png"))
        write_png(paths.preview_path("basic", "s1"))

        assert main(["repair"], library=library) == 0
        assert "Repaired 1 shapes" in capsys.readouterr().out

    def test_preview_all(self, library, capsys):
        library.store.add(make_record("s1"))
        assert main(["preview", "--all"], library=library) == 0
        assert "Generated 1 previews, 0 failed" in capsys.readouterr().out

    def test_preview_needs_target(self, library):
        assert main(["preview"], library=library) == 2

    def test_export(self, library, tmp_path, capsys):
        library.store.add(make_record("s1"))
        output = tmp_path / "s1.json"

        assert main(["export", "s1", "basic", str(output)], library=library) == 0

        assert json.loads(output.read_text(encoding="utf-8"))["id"] == "s1"

    def test_capture_with_name(self, library, capsys):
        bridge = FakeBridge.returning(name="Arrow1", type=39)

        with patch("shapeshelf.library.service.get_platform_bridge", return_value=bridge):
            assert main(["capture", "--name", "Go"], library=library) == 0

        assert "Saved 'Go' to arrows" in capsys.readouterr().out
        assert library.counts()["arrows"] == 1

    def test_capture_prompts_for_name(self, library, capsys):
        bridge = FakeBridge.returning(name="Arrow1", type=39)

        with patch("shapeshelf.library.service.get_platform_bridge", return_value=bridge), \
                patch("builtins.input", return_value="Typed Name"):
            main(["capture"], library=library)

        assert library.list("arrows")[0].name == "Typed Name"

    def test_capture_dry_run(self, library, capsys):
        bridge = FakeBridge.returning(name="Arrow1", type=39)

        with patch("shapeshelf.library.service.get_platform_bridge", return_value=bridge):
            assert main(["capture", "--dry-run"], library=library) == 0

        assert json.loads(capsys.readouterr().out)["category"] == "arrows"
        assert library.total() == 0

    def test_insert_keeps_temp_files(self, library, capsys):
        """Insert leaves its document for the host; other commands clean up."""
        library.store.add(make_record("s1"))
        library.inserter.platform = "linux"

        with patch.object(library.temp_files, "cleanup_all") as cleanup_all:
            assert main(["insert", "s1", "basic"], library=library) == 1

        cleanup_all.assert_not_called()
