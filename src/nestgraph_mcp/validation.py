"""
Input validation for nestgraph MCP server tool parameters.

Provides reusable validators that produce clear error messages for all
parameters received from LLM callers.
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any

from nestgraph_mcp.models import PROJECTION_METHODS, ROOT_LEVEL, GraphOptions


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    """Validate a numeric value and optional range."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a number, got {type(value).__name__}."
        )
    val = float(value)
    if val != val or val in (float("inf"), float("-inf")):
        raise ValidationError(f"'{field_name}' must be a finite number.")
    if min_val is not None and val < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {val}."
        )
    if max_val is not None and val > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {val}."
        )
    return val


def validate_int(
    value: Any,
    field_name: str,
    *,
    min_val: int | None = None,
    max_val: int | None = None,
) -> int:
    """Validate an integer value and optional range."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be an integer, got {type(value).__name__}."
        )
    if min_val is not None and value < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {value}."
        )
    if max_val is not None and value > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {value}."
        )
    return value


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    """Ensure *value* is a list with at least *min_length* items."""
    if not isinstance(value, list):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


def validate_dict(value: Any, field_name: str) -> dict:
    """Ensure *value* is a dict."""
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


def validate_choice(value: Any, field_name: str, choices: tuple[str, ...]) -> str:
    """Ensure *value* is one of *choices* (case-insensitive); returns it lowercased."""
    if not isinstance(value, str) or value.strip().lower() not in choices:
        raise ValidationError(
            f"'{field_name}' must be one of: {', '.join(choices)}; got {value!r}."
        )
    return value.strip().lower()


def validate_positive_number(value: Any, field_name: str) -> float:
    """Validate that a number is positive (> 0)."""
    val = validate_number(value, field_name)
    if val <= 0:
        raise ValidationError(f"'{field_name}' must be > 0, got {val}.")
    return val


def validate_non_negative_number(value: Any, field_name: str) -> float:
    """Validate that a number is >= 0."""
    return validate_number(value, field_name, min_val=0)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

_GRAPH_ACTIONS = {"CREATE", "ADD_NODES", "ADD_EDGES", "GET", "LIST", "DELETE"}
_VIEW_ACTIONS = {
    "EXPAND", "COLLAPSE", "TOGGLE_EXPAND",
    "SELECT", "DESELECT", "TOGGLE_SELECT",
    "FILTER", "UNFILTER", "TOGGLE_FILTER",
    "STATE", "RESET",
}
_LAYOUT_ACTIONS = {"RENDER", "SETTLE"}
_INSPECT_ACTIONS = {"VISIBLE", "SUBGRAPH", "REPRESENTATIVE", "EDGES", "OVERLAPS"}


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Node / edge dict validators
# ---------------------------------------------------------------------------

def validate_node_dict(n: Any, index: int) -> None:
    """Validate a single node dict from the nodes list."""
    if not isinstance(n, dict):
        raise ValidationError(f"Node at index {index} must be a dict/object.")
    if "name" not in n:
        raise ValidationError(f"Node at index {index} missing required key 'name'.")
    if not isinstance(n["name"], str) or not n["name"].strip():
        raise ValidationError(f"Node at index {index}: 'name' must be a non-empty string.")
    if n["name"].strip() == ROOT_LEVEL:
        raise ValidationError(f"Node at index {index}: '{ROOT_LEVEL}' is reserved for the outermost level.")
    parent = n.get("parent")
    if parent is not None and (not isinstance(parent, str) or not parent.strip()):
        raise ValidationError(f"Node at index {index}: 'parent' must be a non-empty string or null.")
    if parent is not None and parent.strip() == n["name"].strip():
        raise ValidationError(f"Node at index {index}: a node cannot be its own parent.")
    for key in ("width", "height"):
        if key in n:
            if not isinstance(n[key], (int, float)) or isinstance(n[key], bool):
                raise ValidationError(f"Node at index {index}: '{key}' must be a number.")
            if n[key] <= 0:
                raise ValidationError(f"Node at index {index}: '{key}' must be > 0.")
    if ("width" in n) != ("height" in n):
        raise ValidationError(f"Node at index {index}: give both 'width' and 'height' or neither.")
    for key in ("x", "y"):
        if key in n and (not isinstance(n[key], (int, float)) or isinstance(n[key], bool)):
            raise ValidationError(f"Node at index {index}: '{key}' must be a number.")
    if ("x" in n) != ("y" in n):
        raise ValidationError(f"Node at index {index}: give both 'x' and 'y' or neither.")
    if "style" in n and not isinstance(n["style"], dict):
        raise ValidationError(f"Node at index {index}: 'style' must be a dict/object.")


def validate_edge_dict(e: Any, index: int) -> None:
    """Validate a single edge dict from the edges list."""
    if not isinstance(e, dict):
        raise ValidationError(f"Edge at index {index} must be a dict/object.")
    if "from" not in e:
        raise ValidationError(f"Edge at index {index} missing required key 'from'.")
    if "to" not in e:
        raise ValidationError(f"Edge at index {index} missing required key 'to'.")
    if not isinstance(e["from"], str) or not e["from"].strip():
        raise ValidationError(f"Edge at index {index}: 'from' must be a non-empty string.")
    if not isinstance(e["to"], str) or not e["to"].strip():
        raise ValidationError(f"Edge at index {index}: 'to' must be a non-empty string.")
    if "label" in e and e["label"] is not None and not isinstance(e["label"], str):
        raise ValidationError(f"Edge at index {index}: 'label' must be a string.")


def validate_name_list(value: Any, field_name: str) -> list[str]:
    """Validate a non-empty list of node names."""
    validate_list(value, field_name, min_length=1)
    return [validate_non_empty_string(v, f"{field_name}[{i}]") for i, v in enumerate(value)]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

_INT_OPTIONS = {"iterations", "max_scale_attempts"}
_POSITIVE_OPTIONS = {
    "default_width", "default_height", "text_size", "time_step",
    "mass_scale", "grow_factor", "loose_margin_factor", "anchor_max_angle",
}
_NON_NEGATIVE_OPTIONS = {
    "node_margin", "title_height", "spring_length", "spring_coefficient",
    "drag_coefficient", "theta", "resize_tolerance", "arrow_height",
}
_FRACTION_OPTIONS = {"scale_step", "shrink_factor"}


def validate_options(value: Any) -> GraphOptions:
    """Validate a layout options mapping and build ``GraphOptions`` from it."""
    if value is None:
        return GraphOptions()
    validate_dict(value, "options")
    known = {f.name for f in fields(GraphOptions)}
    for key, val in value.items():
        if key not in known:
            choices = ", ".join(sorted(known))
            raise ValidationError(f"Unknown option '{key}'. Valid options: {choices}.")
        if val is None:
            continue
        field_name = f"options.{key}"
        if key == "projection":
            validate_choice(val, field_name, PROJECTION_METHODS)
        elif key in _INT_OPTIONS:
            validate_int(val, field_name, min_val=0 if key == "iterations" else 1)
        elif key in _POSITIVE_OPTIONS:
            validate_positive_number(val, field_name)
        elif key in _NON_NEGATIVE_OPTIONS:
            validate_non_negative_number(val, field_name)
        elif key in _FRACTION_OPTIONS:
            val = validate_number(val, field_name)
            if not 0 < val < 1:
                raise ValidationError(f"'{field_name}' must be between 0 and 1 (exclusive), got {val}.")
        else:
            validate_number(val, field_name)
    if value.get("grow_factor") is not None and value["grow_factor"] <= 1:
        raise ValidationError(f"'options.grow_factor' must be > 1, got {value['grow_factor']}.")
    return GraphOptions.from_dict(value)


def validate_viewport(width: Any, height: Any) -> tuple[float, float]:
    """Validate a viewport size."""
    return (
        validate_positive_number(width, "width"),
        validate_positive_number(height, "height"),
    )
