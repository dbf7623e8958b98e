"""Tests for input validation of MCP tool parameters."""

import pytest

from mindmap_mcp.models import BoundingBox
from mindmap_mcp.selection import PopupKind
from mindmap_mcp.validation import (
    ValidationError,
    _LAYOUT_ACTIONS,
    _MINDMAP_ACTIONS,
    validate_action,
    validate_bool,
    validate_collaborator_id,
    validate_color,
    validate_dict,
    validate_list,
    validate_map_id,
    validate_node_fields,
    validate_node_ids,
    validate_non_empty_string,
    validate_number,
    validate_pointer_target,
    validate_popup_kind,
    validate_region,
    validate_selection_mode,
    validate_string,
)


class TestValidateNonEmptyString:
    def test_valid(self) -> None:
        assert validate_non_empty_string("hello", "f") == "hello"

    def test_strips_whitespace(self) -> None:
        assert validate_non_empty_string("  hi  ", "f") == "hi"

    def test_whitespace_only(self) -> None:
        with pytest.raises(ValidationError, match="non-empty"):
            validate_non_empty_string("   ", "field")

    def test_none(self) -> None:
        with pytest.raises(ValidationError, match="non-empty"):
            validate_non_empty_string(None, "field")


class TestValidateString:
    def test_empty_allowed(self) -> None:
        assert validate_string("", "s") == ""

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not be empty"):
            validate_string(" ", "s", allow_empty=False)

    def test_not_a_string(self) -> None:
        with pytest.raises(ValidationError, match="must be a string"):
            validate_string(5, "s")


class TestValidateColor:
    def test_valid_hex6(self) -> None:
        assert validate_color("#FF0000", "c") == "#FF0000"

    def test_valid_hex3(self) -> None:
        assert validate_color(" #F00 ", "c") == "#F00"

    def test_invalid_color(self) -> None:
        with pytest.raises(ValidationError, match="hex color"):
            validate_color("red", "c")

    def test_not_a_string(self) -> None:
        with pytest.raises(ValidationError, match="color string"):
            validate_color(123, "c")


class TestValidateNumber:
    def test_valid_int(self) -> None:
        assert validate_number(42, "n") == 42.0

    def test_bool_rejected(self) -> None:
        with pytest.raises(ValidationError, match="number"):
            validate_number(True, "n")

    def test_min_val(self) -> None:
        with pytest.raises(ValidationError, match=">="):
            validate_number(-1, "n", min_val=0)

    def test_max_val(self) -> None:
        with pytest.raises(ValidationError, match="<="):
            validate_number(200, "n", max_val=100)

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_rejected(self, bad) -> None:
        with pytest.raises(ValidationError, match="finite"):
            validate_number(bad, "n", min_val=0)


class TestContainers:
    def test_bool(self) -> None:
        assert validate_bool(False, "b") is False
        with pytest.raises(ValidationError, match="boolean"):
            validate_bool("yes", "b")

    def test_list_min_length(self) -> None:
        with pytest.raises(ValidationError, match="at least 2"):
            validate_list([1], "l", min_length=2)

    def test_dict(self) -> None:
        with pytest.raises(ValidationError, match="dict"):
            validate_dict([], "d")


class TestValidateAction:
    def test_case_insensitive(self) -> None:
        assert validate_action("GET_JSON", "mindmap", _MINDMAP_ACTIONS) == "get_json"

    def test_unknown_action(self) -> None:
        with pytest.raises(ValidationError, match="Unknown"):
            validate_action("bogus", "mindmap", _MINDMAP_ACTIONS)

    def test_empty_action(self) -> None:
        with pytest.raises(ValidationError, match="requires"):
            validate_action("", "mindmap", _MINDMAP_ACTIONS)

    def test_layout_actions_follow_registry(self) -> None:
        assert validate_action("Radial", "layout", _LAYOUT_ACTIONS) == "radial"


class TestValidateMapId:
    def test_valid(self) -> None:
        assert validate_map_id(" project-1.v2 ") == "project-1.v2"

    @pytest.mark.parametrize("bad", ["../etc", "a/b", "..", "with space"])
    def test_rejects_paths(self, bad) -> None:
        with pytest.raises(ValidationError):
            validate_map_id(bad)


class TestDomainValidators:
    def test_node_ids(self) -> None:
        assert validate_node_ids([" a ", "b"]) == ["a", "b"]
        with pytest.raises(ValidationError, match="index 1"):
            validate_node_ids(["a", ""])
        with pytest.raises(ValidationError, match="at least 1"):
            validate_node_ids([])

    def test_pointer_target(self) -> None:
        assert validate_pointer_target("Canvas") == "canvas"
        with pytest.raises(ValidationError, match="must be one of"):
            validate_pointer_target("toolbar")

    def test_selection_mode(self) -> None:
        assert validate_selection_mode("COLLABORATOR") == "collaborator"

    def test_popup_kind(self) -> None:
        assert validate_popup_kind("due_date") is PopupKind.DUE_DATE
        with pytest.raises(ValidationError):
            validate_popup_kind("settings")

    def test_collaborator_id(self) -> None:
        assert validate_collaborator_id("MR") == "mr"
        with pytest.raises(ValidationError):
            validate_collaborator_id("zz")

    def test_region(self) -> None:
        assert validate_region({"x": 1, "y": 2, "width": 3, "height": 4}) == BoundingBox(1, 2, 3, 4)
        with pytest.raises(ValidationError, match="missing required key 'height'"):
            validate_region({"x": 1, "y": 2, "width": 3})
        with pytest.raises(ValidationError, match=">="):
            validate_region({"x": 1, "y": 2, "width": -3, "height": 4})


class TestValidateNodeFields:
    def test_aliases_normalised(self) -> None:
        patch = validate_node_fields({"fontColor": "#000", "dueDate": "2026-05-01"})
        assert patch == {"font_color": "#000", "due_date": "2026-05-01"}

    def test_clearing_optional_fields(self) -> None:
        assert validate_node_fields({"emoji": None, "fontColor": None}) == {
            "emoji": None, "font_color": None,
        }

    def test_list_fields(self) -> None:
        assert validate_node_fields({"collaborators": ["jd"]}) == {"collaborators": ["jd"]}
        with pytest.raises(ValidationError):
            validate_node_fields({"attachments": "file.txt"})

    def test_unknown_and_empty(self) -> None:
        with pytest.raises(ValidationError, match="Unknown node field 'x'"):
            validate_node_fields({"x": 3})
        with pytest.raises(ValidationError, match="at least one"):
            validate_node_fields({})

    def test_color_cannot_be_cleared(self) -> None:
        with pytest.raises(ValidationError):
            validate_node_fields({"color": None})
