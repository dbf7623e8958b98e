"""
Input validation for mind-map MCP tool parameters.

Provides reusable validators that produce clear error messages for all
parameters received from LLM callers.
"""

from __future__ import annotations

import math
import re
from typing import Any

from mindmap_mcp.layout import LAYOUTS
from mindmap_mcp.models import EDITABLE_NODE_FIELDS, BoundingBox, COLLABORATORS
from mindmap_mcp.selection import PopupKind


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


def validate_string(value: Any, field_name: str, *, allow_empty: bool = True) -> str:
    """Ensure *value* is a string (optionally non-empty)."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    if not allow_empty and not value.strip():
        raise ValidationError(f"'{field_name}' must not be empty.")
    return value


def validate_color(value: Any, field_name: str) -> str:
    """Validate a CSS-style hex color (#RGB, #RRGGBB, #RRGGBBAA)."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a color string, got {type(value).__name__}.")
    value = value.strip()
    if not re.match(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$", value):
        raise ValidationError(
            f"'{field_name}' must be a valid hex color (#RGB, #RRGGBB, or #RRGGBBAA), got '{value}'."
        )
    return value


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
    if not math.isfinite(val):
        raise ValidationError(f"'{field_name}' must be a finite number, got {val}.")
    if min_val is not None and val < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {val}."
        )
    if max_val is not None and val > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {val}."
        )
    return val


def validate_bool(value: Any, field_name: str) -> bool:
    """Ensure *value* is a boolean."""
    if not isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a boolean, got {type(value).__name__}."
        )
    return value


def validate_enum(value: Any, field_name: str, allowed: set[str]) -> str:
    """Validate that a string value is one of the allowed choices (case-insensitive)."""
    if not isinstance(value, str):
        raise ValidationError(
            f"'{field_name}' must be a string, got {type(value).__name__}."
        )
    normalized = value.strip().lower()
    if normalized not in {a.lower() for a in allowed}:
        choices = ", ".join(sorted(allowed))
        raise ValidationError(
            f"'{field_name}' must be one of [{choices}], got '{value}'."
        )
    return normalized


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


# ---------------------------------------------------------------------------
# Composite / domain validators
# ---------------------------------------------------------------------------

_MINDMAP_ACTIONS = {"CREATE", "OPEN", "SAVE", "CLOSE", "LIST", "GET_JSON", "UNDO", "REDO", "HISTORY"}
_NODE_ACTIONS = {
    "ADD_STANDALONE", "ADD_CHILD", "CONNECT", "UPDATE_TEXT", "UPDATE",
    "DELETE", "MOVE", "DRAG", "TOGGLE_TAG",
}
_SELECT_ACTIONS = {
    "CLICK", "MODE", "REGION", "ALL", "CLEAR", "GET", "OPEN_POPUP", "CLOSE_POPUP",
}
_GROUP_ACTIONS = {"ASSIGN", "REMOVE", "LIST", "COLLABORATORS"}
_TAG_ACTIONS = {"SET", "DELETE", "LIST"}
_LAYOUT_ACTIONS = {name.upper() for name in LAYOUTS}
_VIEWPORT_ACTIONS = {
    "ZOOM", "SET_ZOOM", "PAN", "POINTER_DOWN", "POINTER_MOVE", "POINTER_UP",
    "TO_CANVAS", "GET", "RESET",
}
_INSPECT_ACTIONS = {"NODES", "CONNECTIONS", "GEOMETRY", "PROGRESS", "INFO"}

_POINTER_TARGETS = {"canvas", "node", "panel"}
_SELECTION_MODES = {"simple", "collaborator"}

_MAP_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


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


def validate_map_id(value: Any) -> str:
    """Map ids double as file names: letters, digits, '_', '-' and '.'."""
    map_id = validate_non_empty_string(value, "map_id")
    if not _MAP_ID_RE.match(map_id) or map_id in (".", ".."):
        raise ValidationError(
            f"'map_id' may only contain letters, digits, '_', '-' and '.', got '{map_id}'."
        )
    return map_id


def validate_node_ids(value: Any, field_name: str = "node_ids", *, min_length: int = 1) -> list[str]:
    items = validate_list(value, field_name, min_length=min_length)
    for i, item in enumerate(items):
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(f"'{field_name}' item at index {i} must be a non-empty string.")
    return [item.strip() for item in items]


def validate_pointer_target(value: Any) -> str:
    return validate_enum(value, "target", _POINTER_TARGETS)


def validate_selection_mode(value: Any) -> str:
    return validate_enum(value, "mode", _SELECTION_MODES)


def validate_popup_kind(value: Any) -> PopupKind:
    kind = validate_enum(value, "popup", {k.value for k in PopupKind})
    return PopupKind(kind)


def validate_collaborator_id(value: Any) -> str:
    collab = validate_enum(value, "collaborator_id", {c.id for c in COLLABORATORS})
    return collab


def validate_region(value: Any, field_name: str = "region") -> BoundingBox:
    """Validate ``{x, y, width, height}`` with non-negative size."""
    region = validate_dict(value, field_name)
    for key in ("x", "y", "width", "height"):
        if key not in region:
            raise ValidationError(f"'{field_name}' missing required key '{key}'.")
    x = validate_number(region["x"], f"{field_name}.x")
    y = validate_number(region["y"], f"{field_name}.y")
    width = validate_number(region["width"], f"{field_name}.width", min_val=0)
    height = validate_number(region["height"], f"{field_name}.height", min_val=0)
    return BoundingBox(x, y, width, height)


_FIELD_ALIASES = {"fontColor": "font_color", "dueDate": "due_date"}


def validate_node_fields(value: Any) -> dict[str, Any]:
    """Validate a node property patch and normalise wire names to attributes."""
    fields = validate_dict(value, "fields")
    if not fields:
        raise ValidationError("'fields' must contain at least one property.")
    patch: dict[str, Any] = {}
    for raw_key, val in fields.items():
        key = _FIELD_ALIASES.get(raw_key, raw_key)
        if key not in EDITABLE_NODE_FIELDS:
            allowed = ", ".join(sorted(EDITABLE_NODE_FIELDS))
            raise ValidationError(f"Unknown node field '{raw_key}'. Editable fields: {allowed}.")
        if key in ("color", "font_color"):
            patch[key] = None if val is None and key == "font_color" else validate_color(val, key)
        elif key == "completed":
            patch[key] = validate_bool(val, key)
        elif key in ("attachments", "collaborators"):
            patch[key] = [validate_string(v, f"{key} item") for v in validate_list(val, key)]
        elif key == "text":
            patch[key] = validate_string(val, key)
        else:
            patch[key] = None if val is None else validate_string(val, key)
    return patch
