"""Tests for capture normalization."""

import re

import pytest

from shapeshelf.capture.normalizer import (
    category_for_kind,
    choose_kind,
    generate_shape_id,
    generate_tags,
    get_shape_type_name,
    get_supported_shape_types,
    is_supported_shape_type,
    normalize,
)
from shapeshelf.dsl.schema import RawCapturedShape, ShapeKind

FIXED_CLOCK = lambda: 1_700_000_000.0  # noqa: E731


class TestChooseKind:
    """Tests for kind resolution."""

    def test_symbolic_name_wins_over_code(self):
        """The symbolic type name is preferred over the numeric code."""
        raw = RawCapturedShape(type=1, auto_shape_name="msoShapeChevron")
        assert choose_kind(raw) == ShapeKind.CHEVRON

    def test_numeric_code(self):
        """Numeric codes map through the code table."""
        assert choose_kind(RawCapturedShape(type=39)) == ShapeKind.RIGHT_ARROW
        assert choose_kind(RawCapturedShape(type=111)) == ShapeKind.FLOWCHART_DECISION

    def test_unknown_symbol_falls_back_to_code(self):
        """An unknown symbol is ignored in favour of the code."""
        raw = RawCapturedShape(type=9, auto_shape_name="msoShapeSomethingNew")
        assert choose_kind(raw) == ShapeKind.ELLIPSE

    def test_name_heuristic(self):
        """Tag-like names become rounded rectangles when nothing else matches."""
        assert choose_kind(RawCapturedShape(name="Price Tag", type=999)) == ShapeKind.ROUND_RECTANGLE
        assert choose_kind(RawCapturedShape(name="Label 3")) == ShapeKind.ROUND_RECTANGLE

    def test_default_rectangle(self):
        """Unknown everything resolves to a rectangle."""
        assert choose_kind(RawCapturedShape(name="Thing", type=999)) == ShapeKind.RECTANGLE


class TestCategoryForKind:
    """Tests for category inference."""

    @pytest.mark.parametrize(
        "kind,category",
        [
            (ShapeKind.FLOWCHART_PROCESS, "flowchart"),
            (ShapeKind.RIGHT_ARROW, "arrows"),
            (ShapeKind.CHEVRON, "arrows"),
            (ShapeKind.LEFT_ARROW_CALLOUT, "arrows"),
            (ShapeKind.CLOUD_CALLOUT, "callouts"),
            (ShapeKind.BORDER_CALLOUT_2, "callouts"),
            (ShapeKind.HEXAGON, "basic"),
        ],
    )
    def test_rules(self, kind, category):
        """Flowchart prefix first, then arrow/chevron, then callout."""
        assert category_for_kind(kind) == category


class TestIdsAndTags:
    """Tests for id and tag generation."""

    def test_id_format(self):
        """Ids are captured-<slug>-<base36 ms>."""
        assert generate_shape_id("My Shape", 36) == "captured-my-shape-10"
        assert generate_shape_id("A  & B", 35) == "captured-a-b-z"

    def test_tags_are_deduplicated(self):
        """Tags merge the marker, category, kind words and long name tokens."""
        tags = generate_tags("Right arrow big", ShapeKind.RIGHT_ARROW, "arrows")
        assert tags == ["captured", "arrows", "right", "arrow", "big"]


class TestNormalize:
    """Tests for normalize()."""

    def test_arrow_scenario(self):
        """Arrow1 with code 39 becomes a right arrow in arrows."""
        record = normalize({"name": "Arrow1", "type": 39}, clock=FIXED_CLOCK)

        assert record.category == "arrows"
        assert record.pptx_definition.type == ShapeKind.RIGHT_ARROW
        assert re.fullmatch(r"captured-arrow1-[0-9a-z]+", record.id)
        assert record.preview == "arrows/placeholder.png"
        assert record.description == "Captured from PowerPoint (Type: 39)"

    def test_deterministic_with_fixed_clock(self):
        """Identical input and clock give identical records."""
        raw = {"name": "Box", "type": 1, "left": 0.5, "top": 0.25, "width": 3, "height": 1}
        assert normalize(raw, clock=FIXED_CLOCK) == normalize(raw, clock=FIXED_CLOCK)

    def test_only_id_depends_on_time(self):
        """Records captured at different times differ only in the id."""
        raw = {"name": "Box", "type": 1}
        first = normalize(raw, clock=lambda: 1000.0)
        second = normalize(raw, clock=lambda: 2000.0)

        assert first.id != second.id
        assert first.model_dump(exclude={"id"}) == second.model_dump(exclude={"id"})

    def test_defaults_for_garbage(self):
        """Missing or malformed numbers fall back to defaults."""
        raw = {"name": None, "type": "abc", "left": "x", "top": float("nan"), "width": -3, "rotation": None}
        record = normalize(raw, clock=FIXED_CLOCK)
        definition = record.pptx_definition

        assert record.name == "Unnamed Shape"
        assert (definition.x, definition.y) == (1.0, 1.0)
        assert (definition.w, definition.h) == (2.0, 2.0)
        assert definition.rotate is None
        assert definition.type == ShapeKind.RECTANGLE

    def test_non_dict_input(self):
        """Even a non-mapping payload yields a usable record."""
        record = normalize("not a shape", clock=FIXED_CLOCK)
        assert record.category == "basic"

    def test_custom_name(self):
        """A custom name overrides the host name in name, id and tags."""
        record = normalize({"name": "Rectangle 4", "type": 1}, custom_name="Hero Card", clock=FIXED_CLOCK)
        assert record.name == "Hero Card"
        assert record.id.startswith("captured-hero-card-")
        assert "hero" in record.tags and "card" in record.tags

    def test_group_is_native_only(self):
        """Groups are native-only, basic and keep their native path."""
        raw = {
            "name": "Group 7",
            "type": 39,
            "isGroup": True,
            "nativePptxRelPath": "native/shape_captured_1.pptx",
        }
        record = normalize(raw, clock=FIXED_CLOCK)

        assert record.native_only is True
        assert record.category == "basic"
        assert record.pptx_definition.type == ShapeKind.RECTANGLE
        assert record.native_pptx == "native/shape_captured_1.pptx"
        assert record.description == "Captured from PowerPoint (Group) (Type: 39)"

    def test_round_rectangle_radius(self):
        """The first adjustment of a rounded rectangle becomes the corner radius."""
        raw = {"name": "Card", "autoShapeName": "msoShapeRoundedRectangle", "adjustments": [0.25, 0.5]}
        definition = normalize(raw, clock=FIXED_CLOCK).pptx_definition
        assert definition.rect_radius == 0.25
        assert definition.adj == [0.25, 0.5]

    def test_style(self):
        """Colors are normalized, invalid ones dropped, line width defaulted."""
        raw = {
            "name": "Styled",
            "type": 1,
            "fillColor": "#ff8800",
            "fillTransparency": 1.7,
            "lineColor": "00FF00",
            "rotation": 45,
        }
        definition = normalize(raw, clock=FIXED_CLOCK).pptx_definition

        assert definition.fill.color == "FF8800"
        assert definition.fill.transparency == 1.0
        assert definition.line.color == "00FF00"
        assert definition.line.width == 1.0
        assert definition.rotate == 45

        bad = normalize({"name": "x", "fillColor": "red"}, clock=FIXED_CLOCK).pptx_definition
        assert bad.fill is None


class TestLookupHelpers:
    """Tests for shape type lookups."""

    def test_type_name(self):
        assert get_shape_type_name(39) == "Right Arrow"
        assert get_shape_type_name(9999) == "Unknown (9999)"

    def test_supported(self):
        assert is_supported_shape_type(1)
        assert not is_supported_shape_type(9999)
        assert 109 in get_supported_shape_types()
