"""
Mind Map MCP Server — edit mind-map graphs via Model Context Protocol.

Exposes 8 tools that let an LLM agent drive the mind-map editing engine:

Tools:
  1. mindmap  — lifecycle: create, open, save, close, list, get_json, undo, redo, history
  2. node     — content:   add standalone/child nodes, connect, edit, delete, move, drag, tags
  3. select   — selection: click, mode, rectangle region, all, clear, popups
  4. group    — collaborator groups: assign, remove, list, collaborators directory
  5. tag      — tag palette: set, delete, list
  6. layout   — auto-layout of a node's children: tree, radial, hierarchy,
                horizontal, vertical, mindmap
  7. viewport — pan/zoom and raw pointer events
  8. inspect  — read-only: nodes, routed connections, geometry, progress, info
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any

from mcp.server.fastmcp import FastMCP

from mindmap_mcp.editor import EditorConfig, MindMapEditor
from mindmap_mcp.geometry import NodeRect, node_rect
from mindmap_mcp.models import COLLABORATORS, MindMapError, Point
from mindmap_mcp.operations import node_progress
from mindmap_mcp.persistence import JsonFileStore, PersistenceAdapter
from mindmap_mcp.selection import SelectionMode
from mindmap_mcp.viewport import Viewport
from mindmap_mcp.validation import (
    ValidationError,
    validate_action,
    validate_bool,
    validate_collaborator_id,
    validate_color,
    validate_dict,
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
    _GROUP_ACTIONS,
    _INSPECT_ACTIONS,
    _LAYOUT_ACTIONS,
    _MINDMAP_ACTIONS,
    _NODE_ACTIONS,
    _SELECT_ACTIONS,
    _TAG_ACTIONS,
    _VIEWPORT_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging — suppress routine FastMCP INFO messages that editors show
# as warnings (they go to stderr).
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("mindmap-mcp")

STORAGE_DIR_ENV = "MINDMAP_MCP_STORAGE_DIR"
DEFAULT_STORAGE_DIR = "mindmaps"

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "mindmap-mcp",
    instructions=(
        "MCP server for editing mind maps (node/edge trees on a pan/zoom canvas).\n\n"
        "=== 8 TOOLS — use the 'action' parameter to pick the operation ===\n\n"
        "1. mindmap(action, map_id) — create, open, save, close, list, get_json,\n"
        "   undo, redo, history.\n"
        "2. node(action, map_id, ...) — add_standalone, add_child, connect,\n"
        "   update_text, update, delete, move, drag, toggle_tag.\n"
        "3. select(action, map_id, ...) — click, mode, region, all, clear, get,\n"
        "   open_popup, close_popup.\n"
        "4. group(action, map_id, ...) — assign, remove, list, collaborators.\n"
        "5. tag(action, map_id, ...) — set, delete, list.\n"
        "6. layout(action, map_id, parent_id) — tree, radial, hierarchy,\n"
        "   horizontal, vertical, mindmap.\n"
        "7. viewport(action, map_id, ...) — zoom, set_zoom, pan, pointer_down,\n"
        "   pointer_move, pointer_up, to_canvas, get, reset.\n"
        "8. inspect(action, map_id) — nodes, connections, geometry, progress, info.\n\n"
        "=== RULES ===\n"
        "- Every map has exactly one node with id 'root'; it cannot be deleted.\n"
        "- Node (x, y) is the node CENTRE in canvas coordinates.\n"
        "- Every change is one undo step; changes are saved after 1 s of quiet.\n"
        "- Rectangle selection needs select(action='mode', mode='collaborator').\n"
        "- Grouped nodes cannot be dragged outside their group's box.\n"
    ),
)

# In-memory editor registry: map_id -> MindMapEditor
# Guarded by _editors_lock for thread-safety.
_editors: dict[str, MindMapEditor] = {}
_editors_lock = threading.Lock()
_store: PersistenceAdapter | None = None


def set_store(adapter: PersistenceAdapter) -> None:
    """Replace the persistence adapter used for newly opened maps."""
    global _store
    _store = adapter


def _get_store() -> PersistenceAdapter:
    global _store
    if _store is None:
        directory = os.environ.get(STORAGE_DIR_ENV, DEFAULT_STORAGE_DIR)
        logger.info("Storing mind maps under %s", directory)
        _store = JsonFileStore(directory)
    return _store


def _get_editor(map_id: Any) -> MindMapEditor:
    map_id = validate_map_id(map_id)
    editor = _editors.get(map_id)
    if editor is None:
        raise MindMapError(f"mind map '{map_id}' is not open. Use mindmap(action='open').")
    return editor


def _error(exc: ValidationError | MindMapError) -> str:
    return f"Error: {exc.message}"


# ===================================================================
# RESOURCES
# ===================================================================

@mcp.resource("mindmap://collaborators")
def collaborator_catalog() -> str:
    """Return the collaborator directory used for groups."""
    return json.dumps([c.to_dict() for c in COLLABORATORS], indent=2)


# ===================================================================
# TOOL 1: mindmap — lifecycle
# ===================================================================

@mcp.tool()
def mindmap(action: str, map_id: str = "") -> str:
    """Mind map lifecycle management.

    Actions:
      create   — Start a fresh map (root node only), replacing any stored one
                 on the next save. Params: map_id.
      open     — Open a stored map; falls back to a fresh map when missing or
                 unreadable. Params: map_id.
      save     — Save immediately. Params: map_id.
      close    — Save pending changes and close the editor. Params: map_id.
      list     — List open maps. No params.
      get_json — Full persisted JSON of the map. Params: map_id.
      undo     — Undo the last change. Params: map_id.
      redo     — Redo the last undone change. Params: map_id.
      history  — Undo/redo cursor information. Params: map_id.

    Args:
        action: One of the actions listed above.
        map_id: Map identifier (letters, digits, '_', '-', '.').

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "mindmap", _MINDMAP_ACTIONS)
    except ValidationError as exc:
        return _error(exc)

    if action == "list":
        with _editors_lock:
            result = [
                {"map_id": mid, "nodes": len(ed.state.nodes), "connections": len(ed.state.connections)}
                for mid, ed in sorted(_editors.items())
            ]
        return json.dumps(result, indent=2)

    if action in ("create", "open"):
        try:
            map_id = validate_map_id(map_id)
        except ValidationError as exc:
            return _error(exc)
        with _editors_lock:
            previous = _editors.pop(map_id, None)
            if previous is not None:
                previous.close()
            if action == "create":
                editor = MindMapEditor(map_id, adapter=_get_store(), config=EditorConfig())
            else:
                editor = MindMapEditor.open(map_id, _get_store(), EditorConfig())
            _editors[map_id] = editor
        logger.info("Opened mind map '%s' (%d nodes)", map_id, len(editor.state.nodes))
        source = "loaded" if editor.loaded else "new"
        return f"Mind map '{map_id}' {'created' if action == 'create' else 'opened'} ({source}, {len(editor.state.nodes)} node(s))."

    try:
        editor = _get_editor(map_id)
    except (ValidationError, MindMapError) as exc:
        return _error(exc)

    if action == "save":
        try:
            editor.save_now()
        except (MindMapError, OSError) as exc:
            logger.exception("Saving '%s' failed", editor.map_id)
            return f"Error: could not save '{editor.map_id}': {exc}"
        return f"Mind map '{editor.map_id}' saved."

    elif action == "close":
        with _editors_lock:
            _editors.pop(editor.map_id, None)
        editor.close(flush=True)
        return f"Mind map '{editor.map_id}' closed."

    elif action == "get_json":
        return json.dumps(editor.state.to_dict(), indent=2)

    elif action == "undo":
        return "Undone." if editor.undo() else "Nothing to undo."

    elif action == "redo":
        return "Redone." if editor.redo() else "Nothing to redo."

    else:  # history
        h = editor.history
        return json.dumps({
            "cursor": h.cursor,
            "entries": len(h),
            "can_undo": h.can_undo(),
            "can_redo": h.can_redo(),
        })


# ===================================================================
# TOOL 2: node — content
# ===================================================================

@mcp.tool()
def node(
    action: str,
    map_id: str = "",
    node_id: str = "",
    node_ids: list[str] | None = None,
    parent_id: str = "",
    target_id: str = "",
    text: str = "",
    fields: dict[str, Any] | None = None,
    tag_id: str = "",
    x: float = 0,
    y: float = 0,
    dx: float = 0,
    dy: float = 0,
) -> str:
    """Add, edit, move and delete nodes.

    Actions:
      add_standalone — Add an unconnected node near the visible centre; it
                       becomes the selection. No extra params.
      add_child      — Add a child to the right of parent_id. Params: parent_id.
      connect        — Connect node_id -> target_id (single parent only).
      update_text    — Params: node_id, text.
      update         — Patch properties. Params: node_id, fields ({text?, color?,
                       fontColor?, emoji?, notes?, priority?, status?, dueDate?,
                       completed?, attachments?, collaborators?}). Applies to
                       the whole selection when node_id is selected.
      delete         — Delete nodes and their connections. Params: node_id or
                       node_ids. The root cannot be deleted.
      move           — Move one node to (x, y), clamped to its group. Params:
                       node_id, x, y.
      drag           — Move several nodes by (dx, dy), each clamped to its
                       own group. Params: node_ids (defaults to selection), dx, dy.
      toggle_tag     — Add/remove a tag on a node. Params: node_id, tag_id.

    Returns:
        JSON result with created ids, or confirmation message.
    """
    try:
        action = validate_action(action, "node", _NODE_ACTIONS)
        editor = _get_editor(map_id)
    except (ValidationError, MindMapError) as exc:
        return _error(exc)

    try:
        if action == "add_standalone":
            editor.dispatch("add_standalone_node")
            return json.dumps({"node_id": editor.last_result})

        elif action == "add_child":
            parent_id = validate_non_empty_string(parent_id, "parent_id")
            editor.dispatch("add_child_node", parent_id=parent_id)
            return json.dumps({"node_id": editor.last_result})

        elif action == "connect":
            source = validate_non_empty_string(node_id, "node_id")
            target = validate_non_empty_string(target_id, "target_id")
            editor.dispatch("connect_nodes", source=source, target=target)
            return json.dumps({"connection_id": editor.last_result})

        elif action == "update_text":
            node_id = validate_non_empty_string(node_id, "node_id")
            editor.dispatch("update_node_text", node_id=node_id, text=validate_string(text, "text"))
            return f"Node '{node_id}' updated."

        elif action == "update":
            node_id = validate_non_empty_string(node_id, "node_id")
            patch = validate_node_fields(fields)
            editor.dispatch("update_node_fields", node_id=node_id, fields=patch)
            return f"Node '{node_id}' updated."

        elif action == "delete":
            ids = validate_node_ids(node_ids) if node_ids else [validate_non_empty_string(node_id, "node_id")]
            before = len(editor.state.nodes)
            editor.dispatch("delete_nodes", node_ids=ids)
            return f"Deleted {before - len(editor.state.nodes)} node(s)."

        elif action == "move":
            node_id = validate_non_empty_string(node_id, "node_id")
            editor.dispatch(
                "move_node", node_id=node_id,
                x=validate_number(x, "x"), y=validate_number(y, "y"),
            )
            moved = editor.state.require_node(node_id)
            return json.dumps({"node_id": node_id, "x": moved.x, "y": moved.y})

        elif action == "drag":
            ids = validate_node_ids(node_ids) if node_ids else list(editor.selection.node_ids)
            if not ids:
                raise ValidationError("'node_ids' is required when nothing is selected.")
            editor.dispatch(
                "move_nodes", node_ids=ids,
                dx=validate_number(dx, "dx"), dy=validate_number(dy, "dy"),
            )
            return json.dumps([
                {"node_id": n.id, "x": n.x, "y": n.y}
                for n in editor.state.nodes if n.id in ids
            ])

        else:  # toggle_tag
            node_id = validate_non_empty_string(node_id, "node_id")
            tag_id = validate_non_empty_string(tag_id, "tag_id")
            editor.dispatch("toggle_node_tag", node_id=node_id, tag_id=tag_id)
            return json.dumps({"node_id": node_id, "tags": list(editor.state.require_node(node_id).tags)})

    except (ValidationError, MindMapError) as exc:
        return _error(exc)


# ===================================================================
# TOOL 3: select — selection & popups
# ===================================================================

@mcp.tool()
def select(
    action: str,
    map_id: str = "",
    node_id: str = "",
    modifier: bool = False,
    mode: str = "simple",
    region: dict[str, float] | None = None,
    popup: str = "",
) -> str:
    """Node selection and popups.

    Actions:
      click       — Click a node; modifier=True toggles it in a multi-select.
      mode        — Switch selection mode: simple or collaborator. Params: mode.
      region      — Rectangle selection in canvas coordinates (collaborator
                    mode only). Selects nodes fully inside plus their whole
                    subtrees. Params: region {x, y, width, height}.
      all         — Select every node.
      clear       — Clear the selection.
      get         — Current selection, mode and open popup.
      open_popup  — Open a popup for a node. Params: node_id, popup (emoji,
                    notes, tags, due_date, collaborators, attachments, color).
      close_popup — Close the open popup.

    Returns:
        JSON with the resulting selection.
    """
    try:
        action = validate_action(action, "select", _SELECT_ACTIONS)
        editor = _get_editor(map_id)
    except (ValidationError, MindMapError) as exc:
        return _error(exc)

    try:
        if action == "click":
            editor.click_node(validate_non_empty_string(node_id, "node_id"), validate_bool(modifier, "modifier"))
        elif action == "mode":
            editor.set_mode(SelectionMode(validate_selection_mode(mode)))
        elif action == "region":
            if region is None:
                raise ValidationError("'region' is required for the region action.")
            editor.select_region(validate_region(region))
        elif action == "all":
            editor.select_all()
        elif action == "clear":
            editor.clear_selection()
        elif action == "open_popup":
            editor.open_popup(validate_non_empty_string(node_id, "node_id"), validate_popup_kind(popup))
        elif action == "close_popup":
            editor.close_popup()
    except (ValidationError, MindMapError) as exc:
        return _error(exc)

    return json.dumps(_selection_json(editor))


def _selection_json(editor: MindMapEditor) -> dict[str, Any]:
    popup = editor.popup
    return {
        "mode": editor.selection.mode.value,
        "selected": list(editor.selection.node_ids),
        "popup": {"node_id": popup.node_id, "kind": popup.kind.value} if popup else None,
    }


# ===================================================================
# TOOL 4: group — collaborator groups
# ===================================================================

@mcp.tool()
def group(
    action: str,
    map_id: str = "",
    collaborator_id: str = "",
    node_ids: list[str] | None = None,
    region: dict[str, float] | None = None,
    group_id: str = "",
) -> str:
    """Collaborator groups constraining where nodes may be dragged.

    Actions:
      assign        — Create a group for a collaborator. Params: collaborator_id,
                      node_ids? (defaults to the current selection and the
                      rectangle that produced it), region? {x, y, width, height}.
      remove        — Remove a group. Params: group_id.
      list          — List groups of the map.
      collaborators — The collaborator directory.

    Returns:
        JSON result.
    """
    try:
        action = validate_action(action, "group", _GROUP_ACTIONS)
    except ValidationError as exc:
        return _error(exc)

    if action == "collaborators":
        return json.dumps([c.to_dict() for c in COLLABORATORS], indent=2)

    try:
        editor = _get_editor(map_id)
        if action == "assign":
            collab = validate_collaborator_id(collaborator_id)
            ids = validate_node_ids(node_ids, min_length=2) if node_ids else None
            box = validate_region(region) if region is not None else None
            editor.dispatch("assign_collaborator_group", collaborator_id=collab, node_ids=ids, region=box)
            return json.dumps({"group_id": editor.last_result})
        elif action == "remove":
            group_id = validate_non_empty_string(group_id, "group_id")
            editor.dispatch("remove_group", group_id=group_id)
            return f"Group '{group_id}' removed."
        else:  # list
            return json.dumps([g.to_dict() for g in editor.state.groups], indent=2)
    except (ValidationError, MindMapError) as exc:
        return _error(exc)


# ===================================================================
# TOOL 5: tag — palette
# ===================================================================

@mcp.tool()
def tag(
    action: str,
    map_id: str = "",
    tag_id: str = "",
    title: str = "",
    color: str = "",
) -> str:
    """Tag palette management.

    Actions:
      set    — Update tag_id, or add a new tag when tag_id is empty.
               Params: title, color (#RRGGBB), tag_id?.
      delete — Delete a tag and remove it from every node. Params: tag_id.
      list   — List the palette.

    Returns:
        JSON result.
    """
    try:
        action = validate_action(action, "tag", _TAG_ACTIONS)
        editor = _get_editor(map_id)
        if action == "set":
            editor.dispatch(
                "set_tag",
                title=validate_string(title, "title"),
                color=validate_color(color, "color"),
                tag_id=tag_id.strip() or None,
            )
            return json.dumps({"tag_id": editor.last_result})
        elif action == "delete":
            tag_id = validate_non_empty_string(tag_id, "tag_id")
            editor.dispatch("delete_tag", tag_id=tag_id)
            return f"Tag '{tag_id}' deleted."
        else:  # list
            return json.dumps([t.to_dict() for t in editor.state.tags], indent=2)
    except (ValidationError, MindMapError) as exc:
        return _error(exc)


# ===================================================================
# TOOL 6: layout
# ===================================================================

@mcp.tool()
def layout(action: str, map_id: str = "", parent_id: str = "root") -> str:
    """Auto-layout the direct children of a node (deeper nodes stay put).

    Actions:
      tree       — Row below the parent, centred on it.
      radial     — Evenly around the parent at radius 250.
      hierarchy  — Alternating left/right below the parent.
      horizontal — Single row to the right.
      vertical   — Single column below.
      mindmap    — Like radial with a random radius in 200..300.

    Args:
        action: Layout name.
        map_id: Target map.
        parent_id: Node whose children are arranged (default 'root').

    Returns:
        JSON list of new child positions.
    """
    try:
        action = validate_action(action, "layout", _LAYOUT_ACTIONS)
        editor = _get_editor(map_id)
        parent_id = validate_non_empty_string(parent_id, "parent_id")
        editor.dispatch("apply_layout", layout=action, parent_id=parent_id)
    except (ValidationError, MindMapError) as exc:
        return _error(exc)
    child_ids = {c.target for c in editor.state.connections if c.source == parent_id}
    return json.dumps([
        {"node_id": n.id, "x": round(n.x, 2), "y": round(n.y, 2)}
        for n in editor.state.nodes if n.id in child_ids
    ])


# ===================================================================
# TOOL 7: viewport — pan / zoom / pointer
# ===================================================================

@mcp.tool()
def viewport(
    action: str,
    map_id: str = "",
    delta_y: float = 0,
    zoom: float = 1.0,
    dx: float = 0,
    dy: float = 0,
    screen_x: float = 0,
    screen_y: float = 0,
    target: str = "canvas",
    node_id: str = "",
    modifier: bool = False,
) -> str:
    """Viewport transform and raw pointer input (screen coordinates).

    Actions:
      zoom         — Wheel step: delta_y > 0 zooms out (x0.9), else in (x1.1).
      set_zoom     — Set zoom directly (clamped to 0.2..3.0). Params: zoom.
      pan          — Pan by (dx, dy) screen pixels.
      pointer_down — Press at (screen_x, screen_y) on target canvas/node/panel
                     (node_id for node). Starts a pan, rectangle selection or
                     node drag depending on mode and target.
      pointer_move — Move the pointer to (screen_x, screen_y).
      pointer_up   — Release; commits a drag or finishes a rectangle selection.
      to_canvas    — Convert (screen_x, screen_y) to canvas coordinates.
      get          — Current pan and zoom.
      reset        — Pan (0, 0), zoom 1.

    Returns:
        JSON viewport / gesture state.
    """
    try:
        action = validate_action(action, "viewport", _VIEWPORT_ACTIONS)
        editor = _get_editor(map_id)
        point = Point(validate_number(screen_x, "screen_x"), validate_number(screen_y, "screen_y"))
        extra: dict[str, Any] = {}
        if action == "zoom":
            editor.wheel(validate_number(delta_y, "delta_y"))
        elif action == "set_zoom":
            editor.viewport = editor.viewport.with_zoom(validate_number(zoom, "zoom", min_val=0))
        elif action == "pan":
            editor.viewport = editor.viewport.panned(validate_number(dx, "dx"), validate_number(dy, "dy"))
        elif action == "pointer_down":
            gesture = editor.pointer_down(
                validate_pointer_target(target), point,
                node_id=node_id.strip() or None, modifier=validate_bool(modifier, "modifier"),
            )
            extra["gesture"] = gesture.value
        elif action == "pointer_move":
            editor.pointer_move(point)
            extra["gesture"] = editor.gesture.value
            rect = editor.selection_rect()
            if rect is not None:
                extra["selection_rect"] = rect.to_dict()
        elif action == "pointer_up":
            selected = editor.pointer_up()
            if selected is not None:
                extra["selected"] = selected
        elif action == "to_canvas":
            extra["canvas"] = editor.viewport.screen_to_canvas(point).to_dict()
        elif action == "reset":
            editor.viewport = Viewport()
    except (ValidationError, MindMapError) as exc:
        return _error(exc)
    return json.dumps({**editor.viewport.to_dict(), **extra})


# ===================================================================
# TOOL 8: inspect — read-only
# ===================================================================

@mcp.tool()
def inspect(
    action: str,
    map_id: str = "",
    node_id: str = "",
    measurements: dict[str, dict[str, float]] | None = None,
) -> str:
    """Read-only inspection of a map.

    Actions:
      nodes       — All nodes with their properties.
      connections — Routed connections: perimeter anchors, curve control
                    points and SVG path. Params: measurements? (node id ->
                    screen rect {left, top, right, bottom}).
      geometry    — Canvas rectangle of every node. Params: measurements?.
      progress    — Completion of node_id's descendants.
      info        — Counts, history and viewport summary.

    Returns:
        JSON data.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
        editor = _get_editor(map_id)
        measured = _parse_measurements(measurements)
    except (ValidationError, MindMapError) as exc:
        return _error(exc)

    state = editor.state
    if action == "nodes":
        return json.dumps([n.to_dict() for n in state.nodes], indent=2)

    elif action == "connections":
        return json.dumps([r.to_dict() for r in editor.routes(measured)], indent=2)

    elif action == "geometry":
        return json.dumps({
            n.id: node_rect(n, measured.get(n.id), editor.viewport, editor.config.metrics).to_dict()
            for n in state.nodes
        }, indent=2)

    elif action == "progress":
        try:
            progress = node_progress(state, validate_non_empty_string(node_id, "node_id"))
        except (ValidationError, MindMapError) as exc:
            return _error(exc)
        return json.dumps(progress)

    else:  # info
        return json.dumps({
            "map_id": editor.map_id,
            "nodes": len(state.nodes),
            "connections": len(state.connections),
            "groups": len(state.groups),
            "tags": len(state.tags),
            "history_entries": len(editor.history),
            "viewport": editor.viewport.to_dict(),
            "save_pending": bool(editor.saver and editor.saver.pending),
        }, indent=2)


def _parse_measurements(value: Any) -> dict[str, NodeRect]:
    if value is None:
        return {}
    raw = validate_dict(value, "measurements")
    rects: dict[str, NodeRect] = {}
    for nid, r in raw.items():
        r = validate_dict(r, f"measurements.{nid}")
        try:
            rects[nid] = NodeRect(
                *(validate_number(r[k], f"measurements.{nid}.{k}") for k in ("left", "top", "right", "bottom"))
            )
        except KeyError as exc:
            raise ValidationError(f"'measurements.{nid}' missing key {exc}.") from exc
    return rects


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    mcp.run()


if __name__ == "__main__":
    main()
