"""
Selection engine: click selection, rectangle selection with subtree
propagation, and the single active popup reference.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional

from mindmap_mcp.geometry import DEFAULT_METRICS, FontMetrics, computed_rect
from mindmap_mcp.models import BoundingBox, Connection, MindMap


class SelectionMode(Enum):
    SIMPLE = "simple"
    COLLABORATOR = "collaborator"


class PopupKind(Enum):
    EMOJI = "emoji"
    NOTES = "notes"
    TAGS = "tags"
    DUE_DATE = "due_date"
    COLLABORATORS = "collaborators"
    ATTACHMENTS = "attachments"
    COLOR = "color"


@dataclass(frozen=True)
class ActivePopup:
    """Which node's popup is open. At most one exists at a time."""
    node_id: str
    kind: PopupKind


# ---------------------------------------------------------------------------
# Graph traversal
# ---------------------------------------------------------------------------

def children_of(connections: Iterable[Connection], node_id: str) -> list[str]:
    return [c.target for c in connections if c.source == node_id]


def parent_of(connections: Iterable[Connection], node_id: str) -> Optional[str]:
    for conn in connections:
        if conn.target == node_id:
            return conn.source
    return None


def descendants_of(connections: Iterable[Connection], node_id: str) -> list[str]:
    """All transitive children of *node_id*, depth-first, without duplicates."""
    connections = list(connections)
    seen: set[str] = {node_id}
    order: list[str] = []
    stack = list(reversed(children_of(connections, node_id)))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        order.append(current)
        stack.extend(reversed(children_of(connections, current)))
    return order


def ancestors_of(connections: Iterable[Connection], node_id: str) -> list[str]:
    """Parents from the immediate one up to the topmost ancestor."""
    connections = list(connections)
    chain: list[str] = []
    seen = {node_id}
    current = parent_of(connections, node_id)
    while current is not None and current not in seen:
        chain.append(current)
        seen.add(current)
        current = parent_of(connections, current)
    return chain


# ---------------------------------------------------------------------------
# Selection state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Selection:
    """Selected node ids in selection order, plus the active mode."""
    node_ids: tuple[str, ...] = ()
    mode: SelectionMode = SelectionMode.SIMPLE

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.node_ids

    def __len__(self) -> int:
        return len(self.node_ids)

    @property
    def primary(self) -> Optional[str]:
        return self.node_ids[0] if self.node_ids else None

    def with_mode(self, mode: SelectionMode) -> Selection:
        return replace(self, mode=mode)

    def click(self, node_id: str, modifier: bool = False) -> Selection:
        """Plain click selects only *node_id*; modifier-click toggles it."""
        if not modifier:
            return replace(self, node_ids=(node_id,))
        if node_id in self.node_ids:
            return replace(self, node_ids=tuple(n for n in self.node_ids if n != node_id))
        return replace(self, node_ids=self.node_ids + (node_id,))

    def select(self, node_ids: Iterable[str]) -> Selection:
        return replace(self, node_ids=tuple(dict.fromkeys(node_ids)))

    def clear(self) -> Selection:
        return replace(self, node_ids=())

    def prune(self, mind_map: MindMap) -> Selection:
        """Forget ids that no longer exist in *mind_map*."""
        return replace(self, node_ids=tuple(n for n in self.node_ids if mind_map.has_node(n)))


def nodes_in_region(
    mind_map: MindMap,
    region: BoundingBox,
    metrics: FontMetrics = DEFAULT_METRICS,
) -> list[str]:
    """Nodes fully inside *region*, each followed by its whole subtree."""
    contained: list[str] = []
    for node in mind_map.nodes:
        rect = computed_rect(node, metrics)
        if region.contains_box(rect.left, rect.top, rect.right, rect.bottom):
            contained.append(node.id)
    result: dict[str, None] = {}
    for node_id in contained:
        result[node_id] = None
        for child in descendants_of(mind_map.connections, node_id):
            result[child] = None
    return list(result)
