"""
Automatic layout of a node's direct children.

Six deterministic strategies (``mindmap`` is deterministic given its random
source). Only the children's positions change; connections, groups and
deeper descendants are left alone.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from typing import Callable, Optional

from mindmap_mcp.models import ROOT_ID, MindMap, MindMapError, Node
from mindmap_mcp.selection import children_of, parent_of


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LayoutConfig:
    """Spacing constants for the auto-layout strategies."""
    level_spacing: float = 150      # Vertical distance per tree level
    sibling_spacing: float = 200    # Horizontal slot width per child (tree / hierarchy)
    radial_radius: float = 250
    row_spacing: float = 250        # horizontal layout step
    column_spacing: float = 150     # vertical layout step
    mindmap_min_radius: float = 200
    mindmap_max_radius: float = 300


def node_level(mind_map: MindMap, node_id: str) -> int:
    """Number of hops from *node_id* back to its topmost ancestor."""
    level = 0
    seen = {node_id}
    current = parent_of(mind_map.connections, node_id)
    while current is not None and current not in seen:
        level += 1
        seen.add(current)
        current = parent_of(mind_map.connections, current)
    return level


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

# (parent, index, count, level, config, rng) -> (x, y)
Placement = Callable[[Node, int, int, int, LayoutConfig, random.Random], tuple[float, float]]


def _tree(parent: Node, i: int, n: int, level: int, cfg: LayoutConfig, rng: random.Random) -> tuple[float, float]:
    width = n * cfg.sibling_spacing
    x = parent.x - width / 2 + (i + 0.5) * cfg.sibling_spacing
    return x, parent.y + level * cfg.level_spacing


def _radial(parent: Node, i: int, n: int, level: int, cfg: LayoutConfig, rng: random.Random) -> tuple[float, float]:
    angle = i * (2 * math.pi / n)
    return (
        parent.x + cfg.radial_radius * math.cos(angle),
        parent.y + cfg.radial_radius * math.sin(angle),
    )


def _hierarchy(parent: Node, i: int, n: int, level: int, cfg: LayoutConfig, rng: random.Random) -> tuple[float, float]:
    # 0 under the parent, then left / right alternately, moving outwards
    sign = -1 if i % 2 else 1
    x = parent.x + cfg.sibling_spacing * sign * math.ceil(i / 2)
    return x, parent.y + level * cfg.level_spacing


def _horizontal(parent: Node, i: int, n: int, level: int, cfg: LayoutConfig, rng: random.Random) -> tuple[float, float]:
    return parent.x + (i + 1) * cfg.row_spacing, parent.y


def _vertical(parent: Node, i: int, n: int, level: int, cfg: LayoutConfig, rng: random.Random) -> tuple[float, float]:
    return parent.x, parent.y + (i + 1) * cfg.column_spacing


def _mindmap(parent: Node, i: int, n: int, level: int, cfg: LayoutConfig, rng: random.Random) -> tuple[float, float]:
    angle = i * (2 * math.pi / n)
    radius = rng.uniform(cfg.mindmap_min_radius, cfg.mindmap_max_radius)
    return parent.x + radius * math.cos(angle), parent.y + radius * math.sin(angle)


LAYOUTS: dict[str, Placement] = {
    "tree": _tree,
    "radial": _radial,
    "hierarchy": _hierarchy,
    "horizontal": _horizontal,
    "vertical": _vertical,
    "mindmap": _mindmap,
}


def apply_layout(
    mind_map: MindMap,
    layout: str,
    parent_id: str = ROOT_ID,
    config: Optional[LayoutConfig] = None,
    rng: Optional[random.Random] = None,
) -> MindMap:
    """Reposition the direct children of *parent_id* using *layout*.

    Raises MindMapError for an unknown layout name and NodeNotFoundError
    for an unknown parent.
    """
    place = LAYOUTS.get(layout.lower())
    if place is None:
        raise MindMapError(
            f"Unknown layout '{layout}'. Valid layouts: {', '.join(LAYOUTS)}."
        )
    cfg = config or LayoutConfig()
    rng = rng or random.Random()
    parent = mind_map.require_node(parent_id)

    child_ids = [c for c in children_of(mind_map.connections, parent_id) if mind_map.has_node(c)]
    if not child_ids:
        return mind_map
    count = len(child_ids)
    positions: dict[str, tuple[float, float]] = {}
    for index, child_id in enumerate(child_ids):
        level = node_level(mind_map, child_id)
        positions[child_id] = place(parent, index, count, level, cfg, rng)

    nodes = tuple(
        n.moved_to(*positions[n.id]) if n.id in positions else n
        for n in mind_map.nodes
    )
    return replace(mind_map, nodes=nodes)
