"""Tests for collaborator group boxes and drag clamping."""

import pytest

from mindmap_mcp.groups import (
    NODE_HALF_HEIGHT,
    NODE_HALF_WIDTH,
    clamp_to_box,
    create_group,
    drag_node,
    drag_nodes,
    members_box,
    prune_groups,
)
from mindmap_mcp.models import (
    ROOT_ID,
    BoundingBox,
    InvalidGraphError,
    MindMap,
    Node,
    find_collaborator,
)


JD = find_collaborator("jd")


def _grouped_map() -> MindMap:
    nodes = (
        Node(ROOT_ID, "root", 0, 0),
        Node("a", "A", 100, 100),
        Node("b", "B", 300, 100),
        Node("c", "C", 1000, 1000),
    )
    m = MindMap(nodes=nodes)
    group = create_group(m, ["a", "b"], JD)
    return MindMap(nodes=nodes, groups=(group,))


def test_members_box_includes_padding() -> None:
    box = members_box([Node("a", "", 100, 100), Node("b", "", 300, 100)])
    assert box == BoundingBox(15, 65, 370, 70)


def test_create_group_needs_two_members() -> None:
    m = MindMap(nodes=(Node(ROOT_ID, "", 0, 0), Node("a", "", 1, 1)))
    with pytest.raises(InvalidGraphError):
        create_group(m, ["a", "a"], JD)


def test_create_group_uses_region_when_given() -> None:
    m = _grouped_map()
    region = BoundingBox(0, 0, 500, 500)
    group = create_group(m, ["a", "b"], JD, region)
    assert group.bounding_box == region
    assert group.id.startswith("group-")


class TestClamp:
    def test_clamped_extent_stays_in_box(self) -> None:
        box = BoundingBox(0, 0, 400, 200)
        for x, y in [(-500, -500), (5000, 90), (200, 9999), (123, 45)]:
            cx, cy = clamp_to_box(x, y, box)
            assert box.contains_box(
                cx - NODE_HALF_WIDTH, cy - NODE_HALF_HEIGHT,
                cx + NODE_HALF_WIDTH, cy + NODE_HALF_HEIGHT,
            )

    def test_narrow_box_centres_node(self) -> None:
        box = BoundingBox(0, 0, 100, 200)
        cx, _ = clamp_to_box(500, 100, box)
        assert cx == 50

    def test_drag_outside_group_is_clamped(self) -> None:
        m = _grouped_map()
        box = m.groups[0].bounding_box
        moved = drag_node(m, "a", -1000, -1000).get_node("a")
        assert moved.x == box.x + NODE_HALF_WIDTH
        assert moved.y == box.y + NODE_HALF_HEIGHT

    def test_drag_does_not_resize_group(self) -> None:
        m = _grouped_map()
        after = drag_node(m, "a", 150, 100)
        assert after.groups == m.groups

    def test_ungrouped_node_moves_freely(self) -> None:
        moved = drag_node(_grouped_map(), "c", 5000, -5000).get_node("c")
        assert (moved.x, moved.y) == (5000, -5000)


def test_multi_drag_displacements_can_differ() -> None:
    m = _grouped_map()
    after = drag_nodes(m, ["a", "c"], 0, 500)
    # c is free, a is stopped by its group's bottom edge
    assert after.get_node("c").y == 1500
    assert after.get_node("a").y == m.groups[0].bounding_box.bottom - NODE_HALF_HEIGHT


class TestPrune:
    def test_group_below_two_members_dissolves(self) -> None:
        m = _grouped_map()
        remaining = [n for n in m.nodes if n.id != "b"]
        assert prune_groups(m.groups, {"b"}, remaining) == ()

    def test_unaffected_group_keeps_box(self) -> None:
        m = _grouped_map()
        remaining = [n for n in m.nodes if n.id != "c"]
        assert prune_groups(m.groups, {"c"}, remaining) == m.groups

    def test_surviving_group_is_reboxed(self) -> None:
        nodes = (
            Node(ROOT_ID, "", 0, 0), Node("a", "", 0, 0),
            Node("b", "", 100, 0), Node("c", "", 1000, 0),
        )
        group = create_group(MindMap(nodes=nodes), ["a", "b", "c"], JD)
        remaining = [n for n in nodes if n.id != "c"]
        (pruned,) = prune_groups((group,), {"c"}, remaining)
        assert pruned.node_ids == ("a", "b")
        assert pruned.bounding_box == members_box(remaining[1:])
