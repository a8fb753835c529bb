"""Tests for input validation in the MCP server tools."""

import pytest

from nestgraph_mcp.models import ROOT_LEVEL, GraphOptions
from nestgraph_mcp.validation import (
    ValidationError,
    validate_action,
    validate_choice,
    validate_dict,
    validate_edge_dict,
    validate_int,
    validate_list,
    validate_name_list,
    validate_node_dict,
    validate_non_empty_string,
    validate_non_negative_number,
    validate_number,
    validate_options,
    validate_positive_number,
    validate_viewport,
    _GRAPH_ACTIONS,
    _VIEW_ACTIONS,
)


# ===================================================================
# Unit tests for primitive validators
# ===================================================================


class TestValidateNonEmptyString:
    def test_valid(self) -> None:
        assert validate_non_empty_string("hello", "f") == "hello"

    def test_strips_whitespace(self) -> None:
        assert validate_non_empty_string("  hi  ", "f") == "hi"

    def test_empty_string(self) -> None:
        with pytest.raises(ValidationError, match="non-empty"):
            validate_non_empty_string("", "field")

    def test_not_a_string(self) -> None:
        with pytest.raises(ValidationError, match="non-empty"):
            validate_non_empty_string(123, "field")


class TestValidateChoice:
    def test_valid_is_lowercased(self) -> None:
        assert validate_choice(" Vector ", "c", ("scale", "vector")) == "vector"

    def test_unknown(self) -> None:
        with pytest.raises(ValidationError, match="one of: scale, vector"):
            validate_choice("grid", "c", ("scale", "vector"))

    def test_wrong_type(self) -> None:
        with pytest.raises(ValidationError, match="one of"):
            validate_choice(3, "c", ("scale",))


class TestValidateNumber:
    def test_valid_int(self) -> None:
        assert validate_number(42, "n") == 42.0

    def test_min_val(self) -> None:
        with pytest.raises(ValidationError, match=">="):
            validate_number(-1, "n", min_val=0)

    def test_max_val(self) -> None:
        with pytest.raises(ValidationError, match="<="):
            validate_number(200, "n", max_val=100)

    def test_not_a_number(self) -> None:
        with pytest.raises(ValidationError, match="number"):
            validate_number("abc", "n")

    def test_bool_rejected(self) -> None:
        with pytest.raises(ValidationError, match="number"):
            validate_number(True, "n")

    def test_nan_rejected(self) -> None:
        with pytest.raises(ValidationError, match="finite"):
            validate_number(float("nan"), "n")

    def test_positive(self) -> None:
        assert validate_positive_number(0.5, "p") == 0.5
        with pytest.raises(ValidationError, match="> 0"):
            validate_positive_number(0, "p")

    def test_non_negative(self) -> None:
        assert validate_non_negative_number(0, "p") == 0
        with pytest.raises(ValidationError, match=">="):
            validate_non_negative_number(-0.1, "p")


class TestValidateInt:
    def test_valid(self) -> None:
        assert validate_int(10, "i") == 10

    def test_bool_rejected(self) -> None:
        with pytest.raises(ValidationError, match="integer"):
            validate_int(True, "i")

    def test_float_rejected(self) -> None:
        with pytest.raises(ValidationError, match="integer"):
            validate_int(3.5, "i")

    def test_range(self) -> None:
        with pytest.raises(ValidationError, match="<="):
            validate_int(101, "i", max_val=100)


class TestValidateContainers:
    def test_list(self) -> None:
        assert validate_list([1], "l", min_length=1) == [1]
        with pytest.raises(ValidationError, match="at least 1"):
            validate_list([], "l", min_length=1)
        with pytest.raises(ValidationError, match="must be a list"):
            validate_list("x", "l")

    def test_dict(self) -> None:
        assert validate_dict({}, "d") == {}
        with pytest.raises(ValidationError, match="dict"):
            validate_dict([], "d")

    def test_name_list(self) -> None:
        assert validate_name_list([" A ", "b"], "names") == ["A", "b"]
        with pytest.raises(ValidationError, match=r"names\[1\]"):
            validate_name_list(["A", ""], "names")


# ===================================================================
# Actions
# ===================================================================

class TestValidateAction:
    def test_lowercases(self) -> None:
        assert validate_action(" CREATE ", "graph", _GRAPH_ACTIONS) == "create"

    def test_missing(self) -> None:
        with pytest.raises(ValidationError, match="requires an 'action'"):
            validate_action("", "graph", _GRAPH_ACTIONS)

    def test_filter_actions(self) -> None:
        assert validate_action("toggle_filter", "view", _VIEW_ACTIONS) == "toggle_filter"

    def test_unknown_lists_choices(self) -> None:
        with pytest.raises(ValidationError, match="toggle_expand"):
            validate_action("explode", "view", _VIEW_ACTIONS)


# ===================================================================
# Node / edge dicts
# ===================================================================

class TestValidateNodeDict:
    def test_minimal(self) -> None:
        validate_node_dict({"name": "A"}, 0)

    def test_full(self) -> None:
        validate_node_dict({
            "name": "a1", "parent": "A", "width": 50, "height": 20,
            "x": 1, "y": 2, "style": {"color": "red"},
        }, 0)

    def test_not_a_dict(self) -> None:
        with pytest.raises(ValidationError, match="dict"):
            validate_node_dict("A", 0)

    def test_missing_name(self) -> None:
        with pytest.raises(ValidationError, match="'name'"):
            validate_node_dict({"parent": "A"}, 2)

    def test_own_parent(self) -> None:
        with pytest.raises(ValidationError, match="own parent"):
            validate_node_dict({"name": "A", "parent": "A"}, 0)

    def test_non_positive_size(self) -> None:
        with pytest.raises(ValidationError, match="> 0"):
            validate_node_dict({"name": "A", "width": 0, "height": 10}, 0)

    def test_half_size(self) -> None:
        with pytest.raises(ValidationError, match="both 'width' and 'height'"):
            validate_node_dict({"name": "A", "width": 10}, 0)

    def test_half_hint(self) -> None:
        with pytest.raises(ValidationError, match="both 'x' and 'y'"):
            validate_node_dict({"name": "A", "x": 10}, 0)

    def test_bad_style(self) -> None:
        with pytest.raises(ValidationError, match="'style'"):
            validate_node_dict({"name": "A", "style": "red"}, 0)

    def test_reserved_root_name(self) -> None:
        with pytest.raises(ValidationError, match="reserved"):
            validate_node_dict({"name": ROOT_LEVEL}, 0)


class TestValidateEdgeDict:
    def test_valid(self) -> None:
        validate_edge_dict({"from": "a", "to": "b", "label": "x"}, 0)

    def test_missing_to(self) -> None:
        with pytest.raises(ValidationError, match="'to'"):
            validate_edge_dict({"from": "a"}, 0)

    def test_empty_from(self) -> None:
        with pytest.raises(ValidationError, match="'from'"):
            validate_edge_dict({"from": " ", "to": "b"}, 0)

    def test_bad_label(self) -> None:
        with pytest.raises(ValidationError, match="'label'"):
            validate_edge_dict({"from": "a", "to": "b", "label": 3}, 0)


# ===================================================================
# Options
# ===================================================================

class TestValidateOptions:
    def test_none_gives_defaults(self) -> None:
        assert validate_options(None) == GraphOptions()

    def test_valid(self) -> None:
        opts = validate_options({"iterations": 50, "gravity": -20, "node_margin": 4})
        assert opts.iterations == 50
        assert opts.gravity == -20
        assert opts.node_margin == 4

    def test_unknown_key(self) -> None:
        with pytest.raises(ValidationError, match="Unknown option 'bogus'"):
            validate_options({"bogus": 1})

    def test_iterations_must_be_int(self) -> None:
        with pytest.raises(ValidationError, match="integer"):
            validate_options({"iterations": 2.5})

    def test_negative_margin(self) -> None:
        with pytest.raises(ValidationError, match=">="):
            validate_options({"node_margin": -1})

    def test_scale_step_range(self) -> None:
        with pytest.raises(ValidationError, match="between 0 and 1"):
            validate_options({"scale_step": 1})

    def test_projection_method(self) -> None:
        assert validate_options({"projection": "VECTOR"}).projection == "vector"
        with pytest.raises(ValidationError, match="options.projection"):
            validate_options({"projection": "grid"})

    def test_grow_factor_above_one(self) -> None:
        with pytest.raises(ValidationError, match="grow_factor"):
            validate_options({"grow_factor": 0.9})

    def test_viewport(self) -> None:
        assert validate_viewport(800, 600) == (800.0, 600.0)
        with pytest.raises(ValidationError, match="'height'"):
            validate_viewport(800, 0)
