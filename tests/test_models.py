"""Tests for the mind-map data model and its persisted shape."""

import pytest

from mindmap_mcp.models import (
    DEFAULT_TAGS,
    ROOT_ID,
    BoundingBox,
    Connection,
    DeserializationError,
    MindMap,
    Node,
    check_integrity,
    find_collaborator,
    new_id,
)


def test_fresh_map_has_only_root() -> None:
    m = MindMap.fresh(600, 400)
    assert len(m.nodes) == 1
    root = m.nodes[0]
    assert root.id == ROOT_ID
    assert root.text == "Central Idea"
    assert (root.x, root.y) == (600, 400)
    assert m.connections == ()
    assert m.groups == ()
    assert m.tags == DEFAULT_TAGS
    assert len(m.tags) == 6


def test_round_trip_through_dict() -> None:
    m = MindMap(
        nodes=(
            Node(ROOT_ID, "Root", 0, 0),
            Node("a", "A", 200, 0, font_color="#111111", due_date="2026-01-01", tags=("tag-1",)),
        ),
        connections=(Connection("c1", ROOT_ID, "a"),),
    )
    data = m.to_dict()
    assert data["version"] == 2
    assert data["connections"] == [{"id": "c1", "from": "root", "to": "a"}]
    assert data["nodes"][1]["fontColor"] == "#111111"
    assert data["nodes"][1]["dueDate"] == "2026-01-01"
    assert "emoji" not in data["nodes"][1]
    assert MindMap.from_dict(data) == m


def test_version_one_payload_defaults_tags_and_groups() -> None:
    legacy = {
        "nodes": [{"id": "root", "text": "Central Idea", "x": 1, "y": 2}],
        "connections": [],
    }
    m = MindMap.from_dict(legacy)
    assert m.tags == DEFAULT_TAGS
    assert m.groups == ()
    root = m.get_node("root")
    assert root.attachments == ()
    assert root.completed is False


def test_legacy_attachment_objects_are_flattened() -> None:
    data = {
        "nodes": [{"id": "root", "text": "", "x": 0, "y": 0,
                   "attachments": [{"name": "brief.pdf", "url": "http://x"}, "plain.txt"]}],
    }
    m = MindMap.from_dict(data)
    assert m.get_node("root").attachments == ("brief.pdf", "plain.txt")


@pytest.mark.parametrize("payload", [
    "not a dict",
    {"nodes": [{"id": "root"}]},
    {"nodes": [{"id": "a", "text": "", "x": 0, "y": 0}]},
    {"nodes": [{"id": "root", "text": "", "x": "abc", "y": 0}]},
    {"nodes": [{"id": "root", "text": "", "x": 0, "y": 0}],
     "connections": [{"id": "c", "from": "root", "to": "ghost"}]},
])
def test_malformed_payloads_raise(payload) -> None:
    with pytest.raises(DeserializationError):
        MindMap.from_dict(payload)


def test_integrity_flags_second_parent() -> None:
    m = MindMap(
        nodes=(Node(ROOT_ID, "r", 0, 0), Node("a", "a", 0, 0), Node("b", "b", 0, 0)),
        connections=(Connection("1", ROOT_ID, "b"), Connection("2", "a", "b")),
    )
    problems = check_integrity(m)
    assert any("more than one parent" in p for p in problems)


def test_bounding_box_from_corners_normalises() -> None:
    box = BoundingBox.from_corners(100, 50, 20, 10)
    assert box == BoundingBox(20, 10, 80, 40)
    assert box.contains_box(20, 10, 100, 50)
    assert not box.contains_box(19, 10, 100, 50)


def test_find_collaborator_is_case_insensitive() -> None:
    assert find_collaborator("JD").name == "John Doe"
    assert find_collaborator("zz") is None


def test_new_id_prefix_and_uniqueness() -> None:
    a, b = new_id("node"), new_id("node")
    assert a.startswith("node-")
    assert a != b


def test_snapshot_restore_keeps_tags() -> None:
    m = MindMap.fresh()
    snap = m.snapshot()
    other = MindMap(nodes=(Node(ROOT_ID, "x", 5, 5),), tags=())
    restored = other.restore(snap)
    assert restored.nodes == m.nodes
    assert restored.tags == ()


def test_snapshot_restore_drops_deleted_tag_ids() -> None:
    tagged = MindMap(nodes=(Node(ROOT_ID, "r", 0, 0, tags=("tag-1", "tag-2")),))
    snap = tagged.snapshot()
    palette_without_tag_1 = tuple(t for t in DEFAULT_TAGS if t.id != "tag-1")
    current = MindMap(nodes=(Node(ROOT_ID, "r", 0, 0),), tags=palette_without_tag_1)
    assert current.restore(snap).get_node(ROOT_ID).tags == ("tag-2",)


def _raw(connections=(), groups=()) -> dict:
    return {
        "nodes": [
            {"id": "root", "text": "", "x": 0, "y": 0},
            {"id": "a", "text": "", "x": 0, "y": 0},
            {"id": "b", "text": "", "x": 0, "y": 0},
        ],
        "connections": list(connections),
        "groups": list(groups),
    }


def _group(node_ids) -> dict:
    return {
        "id": "g1",
        "nodeIds": list(node_ids),
        "collaborator": {"id": "jd", "initials": "JD", "name": "John Doe", "color": "#3B82F6"},
        "boundingBox": {"x": 0, "y": 0, "width": 10, "height": 10},
    }


class TestIntegrityOnImport:
    def test_group_member_must_exist(self) -> None:
        with pytest.raises(DeserializationError, match="missing nodes"):
            MindMap.from_dict(_raw(groups=[_group(["a", "b", "ghost"])]))

    def test_root_cannot_have_parent(self) -> None:
        with pytest.raises(DeserializationError, match="root a parent"):
            MindMap.from_dict(_raw(connections=[{"id": "c1", "from": "a", "to": "root"}]))

    def test_cycle_rejected(self) -> None:
        with pytest.raises(DeserializationError, match="cycle"):
            MindMap.from_dict(_raw(connections=[
                {"id": "c1", "from": "a", "to": "b"},
                {"id": "c2", "from": "b", "to": "a"},
            ]))

    def test_self_loop_rejected(self) -> None:
        with pytest.raises(DeserializationError, match="itself"):
            MindMap.from_dict(_raw(connections=[{"id": "c1", "from": "a", "to": "a"}]))

    def test_valid_forest_with_group_loads(self) -> None:
        m = MindMap.from_dict(_raw(
            connections=[{"id": "c1", "from": "root", "to": "a"}],
            groups=[_group(["a", "b"])],
        ))
        assert check_integrity(m) == []
