"""
Node geometry and connection routing.

- Node rectangles, either measured from a rendered element (screen space,
  converted through the viewport) or computed from text length
- Perimeter anchors so edges terminate exactly on a node's border
- Cubic S-curves between anchors, with sampling for collision checks
- Ring-search placement for new standalone nodes
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from mindmap_mcp.models import (
    Connection,
    GeometryUnavailableError,
    MindMap,
    Node,
    Point,
)
from mindmap_mcp.viewport import Viewport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FontMetrics:
    """Font metric table used to derive node size from its text."""
    char_width: float = 8
    padding: float = 40
    min_width: float = 120
    max_width: float = 300
    height: float = 50


@dataclass(frozen=True)
class PlacementConfig:
    """Ring-search tuning for standalone node placement."""
    min_distance: float = 200
    start_radius: float = 250
    radius_step: float = 100
    positions_per_ring: int = 8
    max_rings: int = 5


DEFAULT_METRICS = FontMetrics()


# ---------------------------------------------------------------------------
# Rectangles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NodeRect:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> Point:
        return Point((self.left + self.right) / 2, (self.top + self.bottom) / 2)

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> NodeRect:
        return cls(cx - width / 2, cy - height / 2, cx + width / 2, cy + height / 2)

    def contains_point(self, px: float, py: float, padding: float = 0) -> bool:
        return (
            self.left - padding <= px <= self.right + padding
            and self.top - padding <= py <= self.bottom + padding
        )

    def to_dict(self) -> dict[str, float]:
        return {"left": self.left, "top": self.top, "right": self.right, "bottom": self.bottom}


def node_width(text: str, metrics: FontMetrics = DEFAULT_METRICS) -> float:
    """Width derived from the longest text line, clamped to the metric bounds."""
    longest = max((len(line) for line in text.split("\n")), default=0)
    raw = longest * metrics.char_width + metrics.padding
    return max(metrics.min_width, min(metrics.max_width, raw))


def computed_rect(node: Node, metrics: FontMetrics = DEFAULT_METRICS) -> NodeRect:
    return NodeRect.from_center(node.x, node.y, node_width(node.text, metrics), metrics.height)


def node_rect(
    node: Node,
    measured: Optional[NodeRect] = None,
    viewport: Optional[Viewport] = None,
    metrics: FontMetrics = DEFAULT_METRICS,
) -> NodeRect:
    """Canvas-space rectangle for *node*.

    *measured* is a screen-space rectangle taken from the rendered element;
    when present it is mapped through *viewport*, otherwise the computed
    estimate is used.
    """
    if measured is None:
        return computed_rect(node, metrics)
    vp = viewport or Viewport()
    top_left = vp.screen_to_canvas(Point(measured.left, measured.top))
    bottom_right = vp.screen_to_canvas(Point(measured.right, measured.bottom))
    return NodeRect(top_left.x, top_left.y, bottom_right.x, bottom_right.y)


def rect_for_id(
    mind_map: MindMap,
    node_id: str,
    measurements: Optional[Mapping[str, NodeRect]] = None,
    viewport: Optional[Viewport] = None,
    metrics: FontMetrics = DEFAULT_METRICS,
) -> NodeRect:
    node = mind_map.get_node(node_id)
    if node is None:
        raise GeometryUnavailableError(f"No geometry for node '{node_id}'.")
    measured = measurements.get(node_id) if measurements else None
    return node_rect(node, measured, viewport, metrics)


# ---------------------------------------------------------------------------
# Perimeter anchors & curves
# ---------------------------------------------------------------------------

def perimeter_anchor(rect: NodeRect, target: Point) -> Point:
    """Point on *rect*'s border along the ray from its centre to *target*."""
    center = rect.center
    dx = target.x - center.x
    dy = target.y - center.y
    if dx == 0 and dy == 0:
        return center

    half_w = rect.width / 2
    half_h = rect.height / 2
    angle = math.atan2(dy, dx)
    corner = math.atan2(half_h, half_w)

    if abs(angle) <= corner or abs(angle) >= math.pi - corner:
        # left / right edge
        scale = half_w / abs(dx)
    else:
        # top / bottom edge
        scale = half_h / abs(dy)
    x = center.x + dx * scale
    y = center.y + dy * scale

    x = max(rect.left, min(rect.right, x))
    y = max(rect.top, min(rect.bottom, y))
    return Point(x, y)


def curve_control_points(start: Point, end: Point) -> tuple[Point, Point]:
    dx = end.x - start.x
    dy = end.y - start.y
    c1 = Point(start.x + 0.25 * dx, start.y + 0.1 * dy)
    c2 = Point(end.x - 0.25 * dx, end.y - 0.1 * dy)
    return c1, c2


def curve_path(start: Point, end: Point) -> str:
    """SVG path data for the cubic curve between two anchors."""
    c1, c2 = curve_control_points(start, end)
    return (
        f"M {start.x:g} {start.y:g} "
        f"C {c1.x:g} {c1.y:g}, {c2.x:g} {c2.y:g}, {end.x:g} {end.y:g}"
    )


def sample_curve(start: Point, c1: Point, c2: Point, end: Point, samples: int = 10) -> list[Point]:
    """Interior points of a cubic Bezier at t = 1/samples .. (samples-1)/samples."""
    points: list[Point] = []
    for i in range(1, samples):
        t = i / samples
        mt = 1 - t
        x = mt ** 3 * start.x + 3 * mt ** 2 * t * c1.x + 3 * mt * t ** 2 * c2.x + t ** 3 * end.x
        y = mt ** 3 * start.y + 3 * mt ** 2 * t * c1.y + 3 * mt * t ** 2 * c2.y + t ** 3 * end.y
        points.append(Point(x, y))
    return points


@dataclass(frozen=True)
class ConnectionRoute:
    connection_id: str
    start: Point
    end: Point
    control1: Point
    control2: Point

    @property
    def path(self) -> str:
        return curve_path(self.start, self.end)

    def to_dict(self) -> dict:
        return {
            "id": self.connection_id,
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
            "control1": self.control1.to_dict(),
            "control2": self.control2.to_dict(),
            "path": self.path,
        }


def route_connection(
    mind_map: MindMap,
    connection: Connection,
    measurements: Optional[Mapping[str, NodeRect]] = None,
    viewport: Optional[Viewport] = None,
    metrics: FontMetrics = DEFAULT_METRICS,
) -> Optional[ConnectionRoute]:
    """Route one edge between the borders of its endpoints.

    Returns None when either endpoint has no geometry; the edge is simply
    not drawn this pass.
    """
    try:
        src = rect_for_id(mind_map, connection.source, measurements, viewport, metrics)
        tgt = rect_for_id(mind_map, connection.target, measurements, viewport, metrics)
    except GeometryUnavailableError as exc:
        logger.debug("Skipping connection %s: %s", connection.id, exc.message)
        return None
    start = perimeter_anchor(src, tgt.center)
    end = perimeter_anchor(tgt, src.center)
    c1, c2 = curve_control_points(start, end)
    return ConnectionRoute(connection.id, start, end, c1, c2)


def route_connections(
    mind_map: MindMap,
    measurements: Optional[Mapping[str, NodeRect]] = None,
    viewport: Optional[Viewport] = None,
    metrics: FontMetrics = DEFAULT_METRICS,
) -> list[ConnectionRoute]:
    routes: list[ConnectionRoute] = []
    for conn in mind_map.connections:
        route = route_connection(mind_map, conn, measurements, viewport, metrics)
        if route is not None:
            routes.append(route)
    return routes


def curve_collides(
    route: ConnectionRoute,
    obstacles: Iterable[NodeRect],
    padding: float = 5,
    samples: int = 10,
) -> bool:
    """True when a sampled point of the curve falls inside any obstacle."""
    points = sample_curve(route.start, route.control1, route.control2, route.end, samples)
    for rect in obstacles:
        if any(rect.contains_point(p.x, p.y, padding) for p in points):
            return True
    return False


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

def _clears(x: float, y: float, existing: list[Point], min_distance: float) -> bool:
    return all(math.hypot(p.x - x, p.y - y) >= min_distance for p in existing)


def find_free_position(
    center: Point,
    existing: Iterable[Point],
    rng: Optional[random.Random] = None,
    config: PlacementConfig = PlacementConfig(),
) -> Point:
    """Ring search for a spot at least ``min_distance`` from every node.

    Starts at a random angle and tries ``positions_per_ring`` evenly spaced
    angles; each unsuccessful ring grows the radius by ``radius_step``.
    After ``max_rings`` rings, falls back to a point beyond the farthest
    existing node, which is clear by construction.
    """
    rng = rng or random.Random()
    points = list(existing)
    if _clears(center.x, center.y, points, config.min_distance):
        return center

    start_angle = rng.uniform(0, 2 * math.pi)
    step = 2 * math.pi / config.positions_per_ring
    radius = config.start_radius
    for _ in range(config.max_rings):
        for i in range(config.positions_per_ring):
            angle = start_angle + i * step
            x = center.x + radius * math.cos(angle)
            y = center.y + radius * math.sin(angle)
            if _clears(x, y, points, config.min_distance):
                return Point(x, y)
        radius += config.radius_step

    farthest = max(math.hypot(p.x - center.x, p.y - center.y) for p in points)
    fallback_radius = max(radius, farthest + config.min_distance)
    logger.debug("Ring search exhausted; falling back to radius %.1f", fallback_radius)
    return Point(
        center.x + fallback_radius * math.cos(start_angle),
        center.y + fallback_radius * math.sin(start_angle),
    )
