"""
Core data model for mind-map documents.

Provides immutable, typed records for nodes, connections, collaborator
groups and tags, the `MindMap` aggregate that owns them, the error taxonomy
shared by the engine, and the versioned JSON shape used for persistence.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Optional


ROOT_ID = "root"
ROOT_TEXT = "Central Idea"
DEFAULT_NODE_TEXT = "New Idea"
DEFAULT_NODE_COLOR = "#EEF2FF"
SCHEMA_VERSION = 2


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class MindMapError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ProtectedNodeError(MindMapError):
    """Raised when a deletion would remove the root node."""

    def __init__(self, node_id: str = ROOT_ID) -> None:
        self.node_id = node_id
        super().__init__(f"Cannot delete the central idea node '{node_id}'.")


class NodeNotFoundError(MindMapError):
    """Raised when an operation references a node that does not exist."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' not found.")


class InvalidGraphError(MindMapError):
    """Raised when a change would break the tree structure."""


class DeserializationError(MindMapError):
    """Raised when a persisted payload cannot be turned into a MindMap."""


class GeometryUnavailableError(MindMapError):
    """Raised when no rectangle can be produced for a node."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Point:
    """A 2-D coordinate in canvas or screen space."""
    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box given by its top-left corner and size."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> BoundingBox:
        """Normalise two arbitrary corners (drag start/end) into a box."""
        return cls(min(x1, x2), min(y1, y2), abs(x2 - x1), abs(y2 - y1))

    def contains_box(self, left: float, top: float, right: float, bottom: float) -> bool:
        """True when the given extent lies entirely inside this box."""
        return (
            left >= self.x and right <= self.right
            and top >= self.y and bottom <= self.bottom
        )

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Collaborator:
    id: str
    initials: str
    name: str
    color: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "initials": self.initials, "name": self.name, "color": self.color}


@dataclass(frozen=True)
class Tag:
    id: str
    title: str
    color: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "color": self.color}


@dataclass(frozen=True)
class Node:
    """A positioned vertex. ``(x, y)`` is the centre in canvas space."""
    id: str
    text: str
    x: float
    y: float
    color: str = DEFAULT_NODE_COLOR
    font_color: Optional[str] = None
    emoji: Optional[str] = None
    notes: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[str] = None
    completed: bool = False
    attachments: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    collaborators: tuple[str, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.id == ROOT_ID

    def moved_to(self, x: float, y: float) -> Node:
        return replace(self, x=x, y=y)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "x": self.x,
            "y": self.y,
            "color": self.color,
            "completed": self.completed,
            "attachments": list(self.attachments),
            "tags": list(self.tags),
            "collaborators": list(self.collaborators),
        }
        # Optional fields are only written when set
        for key, attr in _OPTIONAL_NODE_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        kwargs: dict[str, Any] = {
            "id": str(data["id"]),
            "text": str(data.get("text", "")),
            "x": float(data["x"]),
            "y": float(data["y"]),
            "color": data.get("color") or data.get("bgColor") or DEFAULT_NODE_COLOR,
            "completed": bool(data.get("completed", False)),
            "attachments": tuple(_attachment_name(a) for a in data.get("attachments") or ()),
            "tags": tuple(str(t) for t in data.get("tags") or ()),
            "collaborators": tuple(str(c) for c in data.get("collaborators") or ()),
        }
        for key, attr in _OPTIONAL_NODE_FIELDS.items():
            if data.get(key) is not None:
                kwargs[attr] = data[key]
        return cls(**kwargs)


# Wire key -> attribute name
_OPTIONAL_NODE_FIELDS = {
    "fontColor": "font_color",
    "emoji": "emoji",
    "notes": "notes",
    "priority": "priority",
    "status": "status",
    "dueDate": "due_date",
}

# Fields a caller may patch through update_node_fields
EDITABLE_NODE_FIELDS = frozenset({
    "text", "color", "font_color", "emoji", "notes", "priority",
    "status", "due_date", "completed", "attachments", "collaborators",
})


def _attachment_name(value: Any) -> str:
    # Older payloads stored attachments as {name, url} objects
    if isinstance(value, dict):
        return str(value.get("name") or value.get("url") or "")
    return str(value)


@dataclass(frozen=True)
class Connection:
    """Directed parent -> child edge."""
    id: str
    source: str
    target: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "from": self.source, "to": self.target}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Connection:
        return cls(id=str(data["id"]), source=str(data["from"]), target=str(data["to"]))


@dataclass(frozen=True)
class Group:
    """Collaborator region constraining where its member nodes may be dragged."""
    id: str
    node_ids: tuple[str, ...]
    collaborator: Collaborator
    bounding_box: BoundingBox

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "nodeIds": list(self.node_ids),
            "collaborator": self.collaborator.to_dict(),
            "boundingBox": self.bounding_box.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Group:
        box = data["boundingBox"]
        collab = data["collaborator"]
        return cls(
            id=str(data["id"]),
            node_ids=tuple(str(n) for n in data["nodeIds"]),
            collaborator=Collaborator(
                str(collab["id"]), str(collab["initials"]), str(collab["name"]), str(collab["color"])
            ),
            bounding_box=BoundingBox(
                float(box["x"]), float(box["y"]), float(box["width"]), float(box["height"])
            ),
        )


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

COLLABORATORS: tuple[Collaborator, ...] = (
    Collaborator("jd", "JD", "John Doe", "#3B82F6"),
    Collaborator("ak", "AK", "Alex Kim", "#10B981"),
    Collaborator("mr", "MR", "Maria Rodriguez", "#F59E0B"),
    Collaborator("ts", "TS", "Taylor Smith", "#8B5CF6"),
)

DEFAULT_TAGS: tuple[Tag, ...] = (
    Tag("tag-1", "", "#EF4444"),
    Tag("tag-2", "", "#F59E0B"),
    Tag("tag-3", "", "#10B981"),
    Tag("tag-4", "", "#3B82F6"),
    Tag("tag-5", "", "#8B5CF6"),
    Tag("tag-6", "", "#EC4899"),
)


def find_collaborator(collaborator_id: str) -> Optional[Collaborator]:
    for collab in COLLABORATORS:
        if collab.id == collaborator_id.lower():
            return collab
    return None


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Snapshot:
    """Immutable history entry."""
    nodes: tuple[Node, ...]
    connections: tuple[Connection, ...]
    groups: tuple[Group, ...] = ()


@dataclass(frozen=True)
class MindMap:
    """The whole editable graph. Every operation returns a new instance."""
    nodes: tuple[Node, ...] = ()
    connections: tuple[Connection, ...] = ()
    groups: tuple[Group, ...] = ()
    tags: tuple[Tag, ...] = field(default_factory=lambda: DEFAULT_TAGS)

    @classmethod
    def fresh(cls, center_x: float = 0, center_y: float = 0) -> MindMap:
        """A new map holding only the root node at the given centre."""
        return cls(nodes=(Node(ROOT_ID, ROOT_TEXT, center_x, center_y),))

    # ----- lookups -----

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def require_node(self, node_id: str) -> Node:
        node = self.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def get_tag(self, tag_id: str) -> Optional[Tag]:
        for tag in self.tags:
            if tag.id == tag_id:
                return tag
        return None

    def groups_for(self, node_id: str) -> list[Group]:
        return [g for g in self.groups if node_id in g.node_ids]

    # ----- history -----

    def snapshot(self) -> Snapshot:
        return Snapshot(self.nodes, self.connections, self.groups)

    def restore(self, snap: Snapshot) -> MindMap:
        """Swap in a history snapshot, keeping the current tag palette.

        Tag ids the palette no longer holds are dropped from the restored nodes.
        """
        known = {t.id for t in self.tags}
        nodes = tuple(
            n if all(t in known for t in n.tags)
            else replace(n, tags=tuple(t for t in n.tags if t in known))
            for n in snap.nodes
        )
        return replace(self, nodes=nodes, connections=snap.connections, groups=snap.groups)

    # ----- serialisation -----

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SCHEMA_VERSION,
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
            "groups": [g.to_dict() for g in self.groups],
            "tags": [t.to_dict() for t in self.tags],
        }

    @classmethod
    def from_dict(cls, data: Any) -> MindMap:
        """Build a map from its persisted shape.

        Version 1 payloads predate tags and groups; both default here.
        Raises DeserializationError for anything malformed, including a
        payload without a root node or with dangling / multi-parent edges.
        """
        if not isinstance(data, dict):
            raise DeserializationError(
                f"Mind map payload must be an object, got {type(data).__name__}."
            )
        try:
            nodes = tuple(Node.from_dict(n) for n in data.get("nodes") or ())
            connections = tuple(Connection.from_dict(c) for c in data.get("connections") or ())
            groups = tuple(Group.from_dict(g) for g in data.get("groups") or ())
            raw_tags = data.get("tags")
            tags = (
                tuple(Tag(str(t["id"]), str(t.get("title", "")), str(t["color"])) for t in raw_tags)
                if raw_tags is not None else DEFAULT_TAGS
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise DeserializationError(f"Malformed mind map payload: {exc!r}") from exc

        mind_map = cls(nodes=nodes, connections=connections, groups=groups, tags=tags)
        problems = check_integrity(mind_map)
        if problems:
            raise DeserializationError("Invalid mind map: " + "; ".join(problems))
        return mind_map


def check_integrity(mind_map: MindMap) -> list[str]:
    """Return human-readable invariant violations (empty when valid)."""
    problems: list[str] = []
    ids = [n.id for n in mind_map.nodes]
    id_set = set(ids)
    if len(ids) != len(id_set):
        problems.append("duplicate node ids")
    if ids.count(ROOT_ID) != 1:
        problems.append("exactly one root node is required")
    parents: dict[str, str] = {}
    for conn in mind_map.connections:
        if conn.source not in id_set or conn.target not in id_set:
            problems.append(f"connection '{conn.id}' references a missing node")
            continue
        if conn.source == conn.target:
            problems.append(f"connection '{conn.id}' links '{conn.source}' to itself")
            continue
        if conn.target == ROOT_ID:
            problems.append(f"connection '{conn.id}' gives the root a parent")
            continue
        if conn.target in parents:
            problems.append(f"node '{conn.target}' has more than one parent")
            continue
        parents[conn.target] = conn.source
    for start in parents:
        # Walk up the parent chain; revisiting *start* means a cycle
        seen = {start}
        current = parents.get(start)
        while current is not None and current not in seen:
            seen.add(current)
            current = parents.get(current)
        if current == start:
            problems.append(f"node '{start}' is part of a cycle")
    for group in mind_map.groups:
        if len(group.node_ids) < 2:
            problems.append(f"group '{group.id}' has fewer than 2 members")
        missing = [n for n in group.node_ids if n not in id_set]
        if missing:
            problems.append(f"group '{group.id}' references missing nodes {missing}")
    return problems


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _uid() -> str:
    return uuid.uuid4().hex[:12]


def new_id(prefix: str) -> str:
    """Generate a prefixed unique id such as ``node-3f2a9c1b7d4e``."""
    return f"{prefix}-{_uid()}"
