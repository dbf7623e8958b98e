"""
The mind-map editor aggregate.

`MindMapEditor` owns the current `MindMap`, its undo history, the selection,
the viewport, the active popup and the debounced saver. All graph changes go
through `dispatch`, which applies one pure operation, records one history
snapshot and re-arms the save timer. Pointer handling (pan, rectangle
selection, node drags) is a small state machine driven by
`pointer_down` / `pointer_move` / `pointer_up`.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from mindmap_mcp import operations as ops
from mindmap_mcp.geometry import (
    DEFAULT_METRICS,
    ConnectionRoute,
    FontMetrics,
    NodeRect,
    PlacementConfig,
    route_connections,
)
from mindmap_mcp.groups import drag_nodes
from mindmap_mcp.history import History
from mindmap_mcp.layout import LayoutConfig, apply_layout
from mindmap_mcp.models import (
    BoundingBox,
    MindMap,
    MindMapError,
    Point,
    find_collaborator,
)
from mindmap_mcp.persistence import (
    DebouncedSaver,
    PersistenceAdapter,
    load_or_fresh,
    serialize,
)
from mindmap_mcp.selection import (
    ActivePopup,
    PopupKind,
    Selection,
    SelectionMode,
    nodes_in_region,
)
from mindmap_mcp.viewport import Viewport, can_start_pan

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class EditorConfig:
    """Editor-wide settings."""
    screen_width: float = 1200
    screen_height: float = 800
    history_capacity: Optional[int] = None
    metrics: FontMetrics = DEFAULT_METRICS
    placement: PlacementConfig = field(default_factory=PlacementConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)


class Gesture(Enum):
    IDLE = "idle"
    PANNING = "panning"
    SELECTING = "selecting"
    DRAGGING = "dragging"


@dataclass
class _PointerState:
    gesture: Gesture = Gesture.IDLE
    last_screen: Point = field(default_factory=lambda: Point(0, 0))
    origin: Point = field(default_factory=lambda: Point(0, 0))   # canvas space
    current: Point = field(default_factory=lambda: Point(0, 0))  # canvas space
    drag_ids: tuple[str, ...] = ()
    drag_base: Optional[MindMap] = None


ACTIONS = frozenset({
    "add_standalone_node",
    "add_child_node",
    "connect_nodes",
    "update_node_text",
    "update_node_fields",
    "delete_node",
    "delete_nodes",
    "move_node",
    "move_nodes",
    "assign_collaborator_group",
    "remove_group",
    "set_tag",
    "delete_tag",
    "toggle_node_tag",
    "apply_layout",
})


class MindMapEditor:
    """Single-writer editing session for one map id."""

    def __init__(
        self,
        map_id: str,
        mind_map: Optional[MindMap] = None,
        adapter: Optional[PersistenceAdapter] = None,
        config: Optional[EditorConfig] = None,
        rng: Optional[random.Random] = None,
        saver: Optional[DebouncedSaver] = None,
    ) -> None:
        self.config = config or EditorConfig()
        self.rng = rng or random.Random()
        self.adapter = adapter
        if saver is None and adapter is not None:
            saver = DebouncedSaver(adapter)
        self.saver = saver
        self.viewport = Viewport()
        self.map_id = map_id
        self._state = mind_map if mind_map is not None else self._fresh()
        self.history = History(self._state.snapshot(), self.config.history_capacity)
        self.selection = Selection()
        self.popup: Optional[ActivePopup] = None
        self.last_region: Optional[BoundingBox] = None
        self.last_result: Any = None
        self.loaded = False
        self._pointer = _PointerState()

    @classmethod
    def open(
        cls,
        map_id: str,
        adapter: PersistenceAdapter,
        config: Optional[EditorConfig] = None,
        rng: Optional[random.Random] = None,
        saver: Optional[DebouncedSaver] = None,
    ) -> MindMapEditor:
        """Load *map_id* from *adapter*, or start a fresh map if unavailable."""
        editor = cls(map_id, MindMap.fresh(), adapter, config, rng, saver)
        editor.loaded = editor._load(map_id)
        return editor

    # ----- state -----

    @property
    def state(self) -> MindMap:
        return self._state

    @property
    def gesture(self) -> Gesture:
        return self._pointer.gesture

    def _fresh(self) -> MindMap:
        center = self.viewport.visible_center(self.config.screen_width, self.config.screen_height)
        return MindMap.fresh(center.x, center.y)

    def _load(self, map_id: str) -> bool:
        self.map_id = map_id
        loaded = False
        if self.adapter is not None:
            self._state, loaded = load_or_fresh(self.adapter, map_id, self._fresh)
        else:
            self._state = self._fresh()
        self.history.reset(self._state.snapshot())
        self.selection = Selection(mode=self.selection.mode)
        self.popup = None
        self.last_region = None
        self._pointer = _PointerState()
        return loaded

    def switch_map(self, map_id: str) -> bool:
        """Open another map in this session; a pending save of the old one is dropped."""
        if self.saver is not None:
            self.saver.cancel()
        self.loaded = self._load(map_id)
        return self.loaded

    def close(self, flush: bool = True) -> None:
        """Tear down: write the pending save now (or drop it) and stop the timer."""
        if self.saver is None:
            return
        if flush:
            self.saver.flush()
        else:
            self.saver.cancel()

    def save_now(self) -> None:
        if self.adapter is None:
            raise MindMapError("No persistence adapter configured.")
        if self.saver is not None:
            self.saver.cancel()
        self.adapter.save(self.map_id, serialize(self._state))

    def _schedule_save(self) -> None:
        if self.saver is not None:
            state = self._state
            self.saver.schedule(self.map_id, lambda: serialize(state))

    # ----- command interface -----

    def dispatch(self, action: str, **params: Any) -> MindMap:
        """Apply one named mutation and commit it as a single undo step.

        The operation's secondary result (a new node / connection / group /
        tag id) is stored in `last_result`. Failing operations leave the
        state untouched.
        """
        if action not in ACTIONS:
            raise MindMapError(f"Unknown action '{action}'.")
        handler: Callable[..., Any] = getattr(self, f"_do_{action}")
        self._pause_drag()
        try:
            outcome = handler(**params)
            if isinstance(outcome, tuple):
                new_state, self.last_result = outcome
            else:
                new_state, self.last_result = outcome, None
            self._commit(new_state)
        finally:
            self._resume_drag()
        return self._state

    def _commit(self, new_state: MindMap) -> None:
        if new_state == self._state:
            return
        snapshot_changed = new_state.snapshot() != self._state.snapshot()
        self._state = new_state
        if snapshot_changed:
            self.history.push(new_state.snapshot())
        self.selection = self.selection.prune(new_state)
        if self.popup is not None and not new_state.has_node(self.popup.node_id):
            self.popup = None
        self._schedule_save()

    def _do_add_standalone_node(self) -> tuple[MindMap, str]:
        center = self.viewport.visible_center(self.config.screen_width, self.config.screen_height)
        new_state, node_id = ops.add_standalone_node(
            self._state, center, self.rng, self.config.placement
        )
        self.selection = self.selection.select([node_id])
        return new_state, node_id

    def _do_add_child_node(self, parent_id: str) -> tuple[MindMap, str]:
        return ops.add_child_node(self._state, parent_id, self.config.metrics)

    def _do_connect_nodes(self, source: str, target: str) -> tuple[MindMap, str]:
        return ops.connect_nodes(self._state, source, target)

    def _do_update_node_text(self, node_id: str, text: str) -> MindMap:
        return ops.update_node_text(self._state, node_id, text)

    def _do_update_node_fields(self, node_id: str, fields: dict[str, Any]) -> MindMap:
        return ops.update_node_fields(self._state, node_id, fields, self.selection.node_ids)

    def _do_delete_node(self, node_id: str) -> MindMap:
        return ops.delete_node(self._state, node_id)

    def _do_delete_nodes(self, node_ids: list[str]) -> MindMap:
        return ops.delete_nodes(self._state, node_ids)

    def _do_move_node(self, node_id: str, x: float, y: float) -> MindMap:
        node = self._state.require_node(node_id)
        return drag_nodes(self._state, [node_id], x - node.x, y - node.y)

    def _do_move_nodes(self, node_ids: list[str], dx: float, dy: float) -> MindMap:
        return drag_nodes(self._state, node_ids, dx, dy)

    def _do_assign_collaborator_group(
        self,
        collaborator_id: str,
        node_ids: Optional[list[str]] = None,
        region: Optional[BoundingBox] = None,
    ) -> tuple[MindMap, str]:
        collaborator = find_collaborator(collaborator_id)
        if collaborator is None:
            raise MindMapError(f"Unknown collaborator '{collaborator_id}'.")
        if node_ids is None:
            # Group the current selection with the rectangle that produced it
            node_ids = list(self.selection.node_ids)
            region = region or self.last_region
        new_state, group_id = ops.assign_collaborator_group(
            self._state, node_ids, collaborator, region
        )
        self.selection = self.selection.clear()
        self.last_region = None
        return new_state, group_id

    def _do_remove_group(self, group_id: str) -> MindMap:
        return ops.remove_group(self._state, group_id)

    def _do_set_tag(self, title: str, color: str, tag_id: Optional[str] = None) -> tuple[MindMap, str]:
        return ops.set_tag(self._state, title, color, tag_id)

    def _do_delete_tag(self, tag_id: str) -> MindMap:
        return ops.delete_tag(self._state, tag_id)

    def _do_toggle_node_tag(self, node_id: str, tag_id: str) -> MindMap:
        return ops.toggle_node_tag(self._state, node_id, tag_id)

    def _do_apply_layout(self, layout: str, parent_id: str = "root") -> MindMap:
        return apply_layout(self._state, layout, parent_id, self.config.layout, self.rng)

    # ----- undo / redo -----

    def undo(self) -> bool:
        snapshot = self.history.undo()
        if snapshot is None:
            return False
        self._restore(snapshot)
        return True

    def redo(self) -> bool:
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self._restore(snapshot)
        return True

    def _restore(self, snapshot) -> None:
        self._pause_drag()
        try:
            self._state = self._state.restore(snapshot)
            self.selection = self.selection.prune(self._state)
            if self.popup is not None and not self._state.has_node(self.popup.node_id):
                self.popup = None
            self._schedule_save()
        finally:
            self._resume_drag()

    # ----- selection & popups -----

    def set_mode(self, mode: SelectionMode) -> None:
        self.selection = self.selection.with_mode(mode).clear()
        self.last_region = None

    def click_node(self, node_id: str, modifier: bool = False) -> Selection:
        self._state.require_node(node_id)
        self.selection = self.selection.click(node_id, modifier)
        return self.selection

    def select_all(self) -> Selection:
        self.selection = self.selection.select(n.id for n in self._state.nodes)
        return self.selection

    def clear_selection(self) -> Selection:
        self.selection = self.selection.clear()
        return self.selection

    def select_region(self, region: BoundingBox) -> list[str]:
        """Rectangle selection in canvas space (collaborator mode only)."""
        if self.selection.mode is not SelectionMode.COLLABORATOR:
            raise MindMapError("Rectangle selection is only available in collaborator mode.")
        selected = nodes_in_region(self._state, region, self.config.metrics)
        self.selection = self.selection.select(selected)
        self.last_region = region if selected else None
        return selected

    def open_popup(self, node_id: str, kind: PopupKind) -> ActivePopup:
        self._state.require_node(node_id)
        self.popup = ActivePopup(node_id, kind)
        return self.popup

    def close_popup(self) -> None:
        self.popup = None

    # ----- pointer state machine -----

    def pointer_down(
        self,
        target: str,
        screen: Point,
        node_id: Optional[str] = None,
        modifier: bool = False,
    ) -> Gesture:
        """Begin a gesture. *target* is ``"canvas"``, ``"node"`` or ``"panel"``."""
        self._pointer = _PointerState(last_screen=screen)
        canvas = self.viewport.screen_to_canvas(screen)

        if target == "node":
            if node_id is None:
                raise MindMapError("pointer_down on a node needs a node_id.")
            self._state.require_node(node_id)
            if node_id not in self.selection or modifier:
                self.click_node(node_id, modifier)
            drag_ids = self.selection.node_ids if node_id in self.selection else (node_id,)
            self._pointer.gesture = Gesture.DRAGGING
            self._pointer.origin = canvas
            self._pointer.current = canvas
            self._pointer.drag_ids = drag_ids
            self._pointer.drag_base = self._state
            return self._pointer.gesture

        if target != "canvas":
            return self._pointer.gesture

        self.close_popup()
        if self.selection.mode is SelectionMode.COLLABORATOR:
            self._pointer.gesture = Gesture.SELECTING
            self._pointer.origin = canvas
            self._pointer.current = canvas
        elif can_start_pan(target, bool(self.selection)):
            self._pointer.gesture = Gesture.PANNING
        else:
            self.clear_selection()
        return self._pointer.gesture

    def _pause_drag(self) -> None:
        """Put the committed state back while a drag preview is showing."""
        p = self._pointer
        if p.gesture is Gesture.DRAGGING and p.drag_base is not None:
            self._state = p.drag_base

    def _resume_drag(self) -> None:
        """Rebase an ongoing drag on the current state and redraw its preview."""
        p = self._pointer
        if p.gesture is not Gesture.DRAGGING or p.drag_base is None:
            return
        p.drag_ids = tuple(i for i in p.drag_ids if self._state.has_node(i))
        if not p.drag_ids:
            # Every dragged node was deleted mid-gesture
            self._pointer = _PointerState()
            return
        p.drag_base = self._state
        self._state = drag_nodes(p.drag_base, p.drag_ids, p.current.x - p.origin.x, p.current.y - p.origin.y)

    def pointer_move(self, screen: Point) -> None:
        p = self._pointer
        if p.gesture is Gesture.PANNING:
            self.viewport = self.viewport.panned(screen.x - p.last_screen.x, screen.y - p.last_screen.y)
        elif p.gesture is Gesture.SELECTING:
            p.current = self.viewport.screen_to_canvas(screen)
        elif p.gesture is Gesture.DRAGGING and p.drag_base is not None:
            p.current = self.viewport.screen_to_canvas(screen)
            dx = p.current.x - p.origin.x
            dy = p.current.y - p.origin.y
            # Preview only; committed on pointer_up
            self._state = drag_nodes(p.drag_base, p.drag_ids, dx, dy)
        p.last_screen = screen

    def pointer_up(self) -> Any:
        """Finish the gesture; returns the selected ids for a rectangle selection."""
        p = self._pointer
        self._pointer = _PointerState()
        if p.gesture is Gesture.SELECTING:
            region = BoundingBox.from_corners(p.origin.x, p.origin.y, p.current.x, p.current.y)
            return self.select_region(region)
        if p.gesture is Gesture.DRAGGING and p.drag_base is not None:
            moved = self._state
            self._state = p.drag_base
            self._commit(moved)
        return None

    def wheel(self, delta_y: float) -> float:
        self.viewport = self.viewport.zoom_by_wheel(delta_y)
        return self.viewport.zoom

    def selection_rect(self) -> Optional[BoundingBox]:
        """The rubber band currently being drawn, in canvas space."""
        p = self._pointer
        if p.gesture is not Gesture.SELECTING:
            return None
        return BoundingBox.from_corners(p.origin.x, p.origin.y, p.current.x, p.current.y)

    # ----- rendering helpers -----

    def routes(self, measurements: Optional[dict[str, NodeRect]] = None) -> list[ConnectionRoute]:
        return route_connections(self._state, measurements, self.viewport, self.config.metrics)
