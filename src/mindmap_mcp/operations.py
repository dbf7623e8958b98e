"""
Pure graph mutations.

Every function takes a `MindMap` and returns a new one; the input is never
modified. Callers commit the result (and its history snapshot) through
`MindMapEditor.dispatch`.
"""

from __future__ import annotations

import math
import random
from dataclasses import replace
from typing import Any, Iterable, Optional

from mindmap_mcp.geometry import (
    DEFAULT_METRICS,
    FontMetrics,
    PlacementConfig,
    find_free_position,
    node_width,
)
from mindmap_mcp.groups import create_group, prune_groups
from mindmap_mcp.models import (
    DEFAULT_NODE_TEXT,
    EDITABLE_NODE_FIELDS,
    ROOT_ID,
    BoundingBox,
    Collaborator,
    Connection,
    InvalidGraphError,
    MindMap,
    Node,
    Point,
    ProtectedNodeError,
    Tag,
    new_id,
)
from mindmap_mcp.selection import ancestors_of, children_of, descendants_of, parent_of


CHILD_SPACING_X = 200
CHILD_SPACING_Y = 100


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

def add_standalone_node(
    mind_map: MindMap,
    center: Point,
    rng: Optional[random.Random] = None,
    placement: PlacementConfig = PlacementConfig(),
) -> tuple[MindMap, str]:
    """Add an unconnected node near *center* without overlapping others."""
    pos = find_free_position(center, [Point(n.x, n.y) for n in mind_map.nodes], rng, placement)
    node = Node(new_id("node"), DEFAULT_NODE_TEXT, pos.x, pos.y)
    return replace(mind_map, nodes=mind_map.nodes + (node,)), node.id


def child_offset(sibling_index: int) -> float:
    """Vertical offset of the n-th child: 0, +1, -1, +2, -2, ... spacings."""
    if sibling_index == 0:
        return 0.0
    step = math.ceil(sibling_index / 2) * CHILD_SPACING_Y
    return float(step if sibling_index % 2 else -step)


def add_child_node(
    mind_map: MindMap,
    parent_id: str,
    metrics: FontMetrics = DEFAULT_METRICS,
) -> tuple[MindMap, str]:
    """Add a node to the right of *parent_id* and connect parent -> child."""
    parent = mind_map.require_node(parent_id)
    siblings = len(children_of(mind_map.connections, parent_id))
    x = parent.x + node_width(parent.text, metrics) / 2 + CHILD_SPACING_X
    y = parent.y + child_offset(siblings)
    child = Node(new_id("node"), DEFAULT_NODE_TEXT, x, y, color=parent.color)
    conn = Connection(new_id("conn"), parent_id, child.id)
    return (
        replace(
            mind_map,
            nodes=mind_map.nodes + (child,),
            connections=mind_map.connections + (conn,),
        ),
        child.id,
    )


def connect_nodes(mind_map: MindMap, source: str, target: str) -> tuple[MindMap, str]:
    """Connect two existing nodes, keeping the graph a forest.

    Rejects self-loops, a second parent for *target*, edges into the root
    and edges that would close a cycle.
    """
    mind_map.require_node(source)
    mind_map.require_node(target)
    if source == target:
        raise InvalidGraphError("A node cannot be connected to itself.")
    if target == ROOT_ID:
        raise InvalidGraphError("The root node cannot have a parent.")
    if parent_of(mind_map.connections, target) is not None:
        raise InvalidGraphError(f"Node '{target}' already has a parent.")
    if target in ancestors_of(mind_map.connections, source):
        raise InvalidGraphError(f"Connecting '{source}' -> '{target}' would create a cycle.")
    conn = Connection(new_id("conn"), source, target)
    return replace(mind_map, connections=mind_map.connections + (conn,)), conn.id


def update_node_text(mind_map: MindMap, node_id: str, text: str) -> MindMap:
    mind_map.require_node(node_id)
    return replace(
        mind_map,
        nodes=tuple(replace(n, text=text) if n.id == node_id else n for n in mind_map.nodes),
    )


def update_node_fields(
    mind_map: MindMap,
    node_id: str,
    fields: dict[str, Any],
    selected: Iterable[str] = (),
) -> MindMap:
    """Patch node properties.

    When *node_id* is part of *selected*, the patch applies to every selected
    node; otherwise only to *node_id*.
    """
    mind_map.require_node(node_id)
    unknown = set(fields) - EDITABLE_NODE_FIELDS
    if unknown:
        raise InvalidGraphError(f"Fields cannot be edited: {', '.join(sorted(unknown))}.")
    patch = {
        k: tuple(v) if k in ("attachments", "collaborators") else v
        for k, v in fields.items()
    }
    selected = set(selected)
    targets = selected if node_id in selected else {node_id}
    return replace(
        mind_map,
        nodes=tuple(replace(n, **patch) if n.id in targets else n for n in mind_map.nodes),
    )


def delete_nodes(mind_map: MindMap, node_ids: Iterable[str]) -> MindMap:
    """Remove nodes with their connections, shrinking affected groups.

    The whole batch is rejected with ProtectedNodeError if it contains the
    root; unknown ids are ignored.
    """
    removed = set(node_ids)
    if ROOT_ID in removed:
        raise ProtectedNodeError()
    removed &= {n.id for n in mind_map.nodes}
    if not removed:
        return mind_map
    nodes = tuple(n for n in mind_map.nodes if n.id not in removed)
    connections = tuple(
        c for c in mind_map.connections
        if c.source not in removed and c.target not in removed
    )
    groups = prune_groups(mind_map.groups, removed, nodes)
    return replace(mind_map, nodes=nodes, connections=connections, groups=groups)


def delete_node(mind_map: MindMap, node_id: str) -> MindMap:
    return delete_nodes(mind_map, [node_id])


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

def assign_collaborator_group(
    mind_map: MindMap,
    node_ids: Iterable[str],
    collaborator: Collaborator,
    region: Optional[BoundingBox] = None,
) -> tuple[MindMap, str]:
    group = create_group(mind_map, node_ids, collaborator, region)
    return replace(mind_map, groups=mind_map.groups + (group,)), group.id


def remove_group(mind_map: MindMap, group_id: str) -> MindMap:
    return replace(mind_map, groups=tuple(g for g in mind_map.groups if g.id != group_id))


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def set_tag(mind_map: MindMap, title: str, color: str, tag_id: Optional[str] = None) -> tuple[MindMap, str]:
    """Update the tag *tag_id*, or append a new palette slot when it is None."""
    if tag_id is None:
        tag = Tag(new_id("tag"), title, color)
        return replace(mind_map, tags=mind_map.tags + (tag,)), tag.id
    if mind_map.get_tag(tag_id) is None:
        raise InvalidGraphError(f"Tag '{tag_id}' not found.")
    tags = tuple(Tag(t.id, title, color) if t.id == tag_id else t for t in mind_map.tags)
    return replace(mind_map, tags=tags), tag_id


def delete_tag(mind_map: MindMap, tag_id: str) -> MindMap:
    """Remove a tag from the palette and from every node that used it."""
    nodes = tuple(
        replace(n, tags=tuple(t for t in n.tags if t != tag_id)) if tag_id in n.tags else n
        for n in mind_map.nodes
    )
    return replace(mind_map, nodes=nodes, tags=tuple(t for t in mind_map.tags if t.id != tag_id))


def toggle_node_tag(mind_map: MindMap, node_id: str, tag_id: str) -> MindMap:
    node = mind_map.require_node(node_id)
    if mind_map.get_tag(tag_id) is None:
        raise InvalidGraphError(f"Tag '{tag_id}' not found.")
    tags = (
        tuple(t for t in node.tags if t != tag_id) if tag_id in node.tags
        else node.tags + (tag_id,)
    )
    return replace(
        mind_map,
        nodes=tuple(replace(n, tags=tags) if n.id == node_id else n for n in mind_map.nodes),
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def subtree_depth(mind_map: MindMap, node_id: str) -> int:
    """Longest downward path (in edges) starting at *node_id*."""
    depth = 0
    frontier = [node_id]
    seen = {node_id}
    while True:
        nxt = [
            c for n in frontier for c in children_of(mind_map.connections, n)
            if c not in seen
        ]
        if not nxt:
            return depth
        seen.update(nxt)
        frontier = nxt
        depth += 1


def node_progress(mind_map: MindMap, node_id: str) -> Optional[dict[str, int]]:
    """Completion statistics over all descendants, or None for a leaf."""
    mind_map.require_node(node_id)
    descendants = [
        mind_map.get_node(d) for d in descendants_of(mind_map.connections, node_id)
    ]
    descendants = [d for d in descendants if d is not None]
    if not descendants:
        return None
    completed = sum(1 for d in descendants if d.completed)
    total = len(descendants)
    return {
        "completed": completed,
        "total": total,
        "percentage": round(completed / total * 100),
        "depth": subtree_depth(mind_map, node_id),
    }
