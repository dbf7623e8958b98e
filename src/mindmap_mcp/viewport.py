"""
Viewport transform: pan/zoom state and screen <-> canvas mapping.

Every pointer coordinate goes through `Viewport.screen_to_canvas` before it
touches node positions, so panning and zooming never distort the graph.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace

from mindmap_mcp.models import Point


MIN_ZOOM = 0.2
MAX_ZOOM = 3.0
ZOOM_OUT_FACTOR = 0.9
ZOOM_IN_FACTOR = 1.1


def clamp_zoom(value: float, current: float = 1.0) -> float:
    """Clamp *value* to the zoom range; NaN and infinities keep *current*."""
    if not math.isfinite(value):
        return current
    return min(max(value, MIN_ZOOM), MAX_ZOOM)


@dataclass(frozen=True)
class Viewport:
    pan: Point = field(default_factory=lambda: Point(0, 0))
    zoom: float = 1.0

    def screen_to_canvas(self, point: Point) -> Point:
        return Point((point.x - self.pan.x) / self.zoom, (point.y - self.pan.y) / self.zoom)

    def canvas_to_screen(self, point: Point) -> Point:
        return Point(point.x * self.zoom + self.pan.x, point.y * self.zoom + self.pan.y)

    def screen_delta_to_canvas(self, dx: float, dy: float) -> tuple[float, float]:
        """Convert a pointer displacement; pan cancels out, only zoom applies."""
        return dx / self.zoom, dy / self.zoom

    def zoom_by_wheel(self, delta_y: float) -> Viewport:
        """Wheel step: scrolling down zooms out, anything else zooms in."""
        factor = ZOOM_OUT_FACTOR if delta_y > 0 else ZOOM_IN_FACTOR
        return replace(self, zoom=clamp_zoom(self.zoom * factor, self.zoom))

    def with_zoom(self, zoom: float) -> Viewport:
        return replace(self, zoom=clamp_zoom(zoom, self.zoom))

    def panned(self, dx: float, dy: float) -> Viewport:
        return replace(self, pan=Point(self.pan.x + dx, self.pan.y + dy))

    def visible_center(self, width: float, height: float) -> Point:
        """Canvas-space point shown at the centre of a screen of the given size."""
        return self.screen_to_canvas(Point(width / 2, height / 2))

    def to_dict(self) -> dict:
        return {"pan": self.pan.to_dict(), "zoom": self.zoom}


def can_start_pan(target: str, has_selection: bool) -> bool:
    """Whether a pointer-down on *target* should begin panning.

    *target* is ``"canvas"``, ``"node"`` or ``"panel"``; only empty canvas
    pans, and only while no node is selected.
    """
    return target == "canvas" and not has_selection
