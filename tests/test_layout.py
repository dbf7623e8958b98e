"""Tests for the auto-layout strategies."""

import math
import random

import pytest

from mindmap_mcp.layout import LAYOUTS, LayoutConfig, apply_layout, node_level
from mindmap_mcp.models import ROOT_ID, Connection, MindMap, MindMapError, Node, NodeNotFoundError


def _star(children: int, grandchild: bool = False) -> MindMap:
    nodes = [Node(ROOT_ID, "root", 0, 0)]
    conns = []
    for i in range(children):
        nodes.append(Node(f"c{i}", f"c{i}", 999, 999))
        conns.append(Connection(f"e{i}", ROOT_ID, f"c{i}"))
    if grandchild:
        nodes.append(Node("g", "g", 42, 43))
        conns.append(Connection("eg", "c0", "g"))
    return MindMap(nodes=tuple(nodes), connections=tuple(conns))


def _positions(m: MindMap, ids) -> list[tuple[float, float]]:
    return [(m.get_node(i).x, m.get_node(i).y) for i in ids]


def test_registry_has_six_layouts() -> None:
    assert set(LAYOUTS) == {"tree", "radial", "hierarchy", "horizontal", "vertical", "mindmap"}


def test_radial_four_children_on_circle() -> None:
    m = apply_layout(_star(4), "radial")
    expected = [(250, 0), (0, 250), (-250, 0), (0, -250)]
    for (x, y), (ex, ey) in zip(_positions(m, ["c0", "c1", "c2", "c3"]), expected):
        assert x == pytest.approx(ex, abs=1e-9)
        assert y == pytest.approx(ey, abs=1e-9)


def test_tree_centres_children_below_parent() -> None:
    m = apply_layout(_star(3), "tree")
    assert _positions(m, ["c0", "c1", "c2"]) == [(-200, 150), (0, 150), (200, 150)]


def test_hierarchy_alternates_sides() -> None:
    m = apply_layout(_star(4), "hierarchy")
    assert _positions(m, ["c0", "c1", "c2", "c3"]) == [
        (0, 150), (-200, 150), (200, 150), (-400, 150),
    ]


def test_horizontal_and_vertical_steps() -> None:
    h = apply_layout(_star(3), "horizontal")
    assert _positions(h, ["c0", "c1", "c2"]) == [(250, 0), (500, 0), (750, 0)]
    v = apply_layout(_star(3), "vertical")
    assert _positions(v, ["c0", "c1", "c2"]) == [(0, 150), (0, 300), (0, 450)]


def test_mindmap_radius_within_band_and_seeded() -> None:
    a = apply_layout(_star(5), "mindmap", rng=random.Random(3))
    b = apply_layout(_star(5), "mindmap", rng=random.Random(3))
    assert a == b
    for x, y in _positions(a, [f"c{i}" for i in range(5)]):
        assert 200 <= math.hypot(x, y) <= 300


def test_only_direct_children_move() -> None:
    before = _star(2, grandchild=True)
    after = apply_layout(before, "radial")
    assert after.get_node("g") == before.get_node("g")
    assert after.get_node(ROOT_ID) == before.get_node(ROOT_ID)
    assert after.connections == before.connections


def test_deeper_levels_use_hop_count() -> None:
    m = _star(1, grandchild=True)
    assert node_level(m, "g") == 2
    laid = apply_layout(m, "tree", parent_id="c0")
    c0 = m.get_node("c0")
    assert laid.get_node("g").y == c0.y + 2 * LayoutConfig().level_spacing


def test_leaf_parent_is_noop() -> None:
    m = _star(2)
    assert apply_layout(m, "tree", parent_id="c1") is m


def test_unknown_layout_and_parent() -> None:
    with pytest.raises(MindMapError):
        apply_layout(_star(1), "spiral")
    with pytest.raises(NodeNotFoundError):
        apply_layout(_star(1), "tree", parent_id="nope")
