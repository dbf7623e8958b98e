"""
Collaborator group constraints.

A group's bounding box is a fixed region: dragging a member clamps it so its
approximate extent stays inside the box, and ordinary drags never resize the
box. Boxes are only recomputed when a member is deleted.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from mindmap_mcp.models import (
    BoundingBox,
    Collaborator,
    Group,
    InvalidGraphError,
    MindMap,
    Node,
    new_id,
)


NODE_HALF_WIDTH = 75
NODE_HALF_HEIGHT = 25
GROUP_PADDING = 10
MIN_GROUP_SIZE = 2


def members_box(nodes: Iterable[Node], padding: float = GROUP_PADDING) -> BoundingBox:
    """Box enclosing the approximate extents of *nodes* plus padding."""
    nodes = list(nodes)
    if not nodes:
        raise InvalidGraphError("Cannot compute a group box without member nodes.")
    min_x = min(n.x - NODE_HALF_WIDTH for n in nodes)
    max_x = max(n.x + NODE_HALF_WIDTH for n in nodes)
    min_y = min(n.y - NODE_HALF_HEIGHT for n in nodes)
    max_y = max(n.y + NODE_HALF_HEIGHT for n in nodes)
    return BoundingBox(
        min_x - padding,
        min_y - padding,
        (max_x - min_x) + 2 * padding,
        (max_y - min_y) + 2 * padding,
    )


def _clamp_axis(value: float, low: float, high: float) -> float:
    if low > high:
        # Box narrower than the node: centre it
        return (low + high) / 2
    return min(max(value, low), high)


def clamp_to_box(x: float, y: float, box: BoundingBox) -> tuple[float, float]:
    return (
        _clamp_axis(x, box.x + NODE_HALF_WIDTH, box.right - NODE_HALF_WIDTH),
        _clamp_axis(y, box.y + NODE_HALF_HEIGHT, box.bottom - NODE_HALF_HEIGHT),
    )


def constrain_position(mind_map: MindMap, node_id: str, x: float, y: float) -> tuple[float, float]:
    """Clamp a proposed centre for *node_id* into every group it belongs to."""
    for group in mind_map.groups_for(node_id):
        x, y = clamp_to_box(x, y, group.bounding_box)
    return x, y


def drag_node(mind_map: MindMap, node_id: str, x: float, y: float) -> MindMap:
    mind_map.require_node(node_id)
    cx, cy = constrain_position(mind_map, node_id, x, y)
    nodes = tuple(n.moved_to(cx, cy) if n.id == node_id else n for n in mind_map.nodes)
    return replace(mind_map, nodes=nodes)


def drag_nodes(mind_map: MindMap, node_ids: Iterable[str], dx: float, dy: float) -> MindMap:
    """Translate several nodes by ``(dx, dy)``, reclamping each to its own groups.

    Nodes in different groups may end up displaced by different amounts.
    """
    ids = set(node_ids)
    for node_id in ids:
        mind_map.require_node(node_id)
    moved: list[Node] = []
    for node in mind_map.nodes:
        if node.id in ids:
            x, y = constrain_position(mind_map, node.id, node.x + dx, node.y + dy)
            node = node.moved_to(x, y)
        moved.append(node)
    return replace(mind_map, nodes=tuple(moved))


def create_group(
    mind_map: MindMap,
    node_ids: Iterable[str],
    collaborator: Collaborator,
    region: Optional[BoundingBox] = None,
) -> Group:
    """Build a group from a selection and the rectangle that produced it."""
    ids = tuple(dict.fromkeys(node_ids))
    if len(ids) < MIN_GROUP_SIZE:
        raise InvalidGraphError(f"A group needs at least {MIN_GROUP_SIZE} nodes, got {len(ids)}.")
    members = [mind_map.require_node(node_id) for node_id in ids]
    box = region if region is not None else members_box(members)
    return Group(new_id("group"), ids, collaborator, box)


def prune_groups(groups: Iterable[Group], removed: set[str], remaining: Iterable[Node]) -> tuple[Group, ...]:
    """Drop *removed* ids from each group; dissolve or re-box the survivors.

    Groups untouched by the removal keep their box.
    """
    by_id = {n.id: n for n in remaining}
    kept: list[Group] = []
    for group in groups:
        if not removed.intersection(group.node_ids):
            kept.append(group)
            continue
        node_ids = tuple(n for n in group.node_ids if n not in removed)
        if len(node_ids) < MIN_GROUP_SIZE:
            continue
        box = members_box(by_id[n] for n in node_ids)
        kept.append(replace(group, node_ids=node_ids, bounding_box=box))
    return tuple(kept)
