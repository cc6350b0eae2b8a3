from __future__ import annotations

import pytest

from autoresume.core.errors import NotVisible
from autoresume.core.geometry import (
    Box,
    bounding_box,
    center_distance,
    depth,
    in_viewport,
    lca_depth,
    lowest_common_ancestor,
    wait_for_visible,
)
from fake_dom import FakeDriver, document, el


def _tree():
    leaf_a = el("span", "a", (10, 10, 10, 10))
    leaf_b = el("span", "b", (40, 10, 10, 10))
    inner = el("div", "", (0, 0, 100, 100), leaf_a, leaf_b)
    outer = el("div", "", (0, 0, 200, 200), inner)
    other = el("span", "c", (300, 10, 10, 10))
    root = document(outer, other)
    return root, outer, inner, leaf_a, leaf_b, other


def test_box_from_raw_rejects_degenerate_geometry():
    assert Box.from_raw(None) is None
    assert Box.from_raw({"x": 1, "y": 2, "width": 0, "height": 5}) is None
    assert Box.from_raw({"x": 1, "y": 2, "width": 5, "height": -1}) is None
    box = Box.from_raw({"x": 1, "y": 2, "width": 4, "height": 6})
    assert box == Box(1, 2, 4, 6)
    assert (box.right, box.bottom, box.center_x, box.center_y) == (5, 8, 3, 5)


def test_bounding_box_treats_driver_errors_as_invisible():
    class Exploding(FakeDriver):
        def bounding_box(self, node):
            raise RuntimeError("detached")

    root, *_ = _tree()
    assert bounding_box(Exploding(root), root) is None
    assert bounding_box(FakeDriver(root), None) is None


def test_depth_stops_at_body_and_html():
    root, outer, inner, leaf_a, _, other = _tree()
    driver = FakeDriver(root)
    body = root.children[0]
    assert depth(driver, None) == 0
    assert depth(driver, root) == 0
    assert depth(driver, body) == 0
    assert depth(driver, outer) == 0
    assert depth(driver, inner) == 1
    assert depth(driver, leaf_a) == 2
    assert depth(driver, other) == 0


def test_lowest_common_ancestor_and_depth():
    root, outer, inner, leaf_a, leaf_b, other = _tree()
    driver = FakeDriver(root)
    assert lowest_common_ancestor(driver, leaf_a, leaf_b) is inner
    assert lca_depth(driver, leaf_a, leaf_b) == 1
    assert lowest_common_ancestor(driver, leaf_a, other) is root.children[0]
    assert lca_depth(driver, leaf_a, other) == 0
    assert lowest_common_ancestor(driver, leaf_a, None) is None


def test_lowest_common_ancestor_of_disjoint_trees_is_none():
    root, _, _, leaf_a, _, _ = _tree()
    stray = el("div", "", (0, 0, 1, 1))
    driver = FakeDriver(root)
    assert lowest_common_ancestor(driver, leaf_a, stray) is None
    assert lca_depth(driver, leaf_a, stray) == 0


def test_center_distance_and_viewport():
    assert center_distance(Box(0, 0, 10, 10), Box(30, 40, 10, 10)) == pytest.approx(50)
    assert in_viewport(Box(10, 10, 5, 5), (100, 100))
    assert not in_viewport(Box(10, 120, 5, 5), (100, 100))
    assert not in_viewport(Box(-50, 10, 20, 5), (100, 100))


def test_wait_for_visible_polls_until_node_renders():
    root, _, _, leaf_a, _, _ = _tree()
    driver = FakeDriver(root)
    leaf_a.box = None

    def reveal(d):
        if d.waited >= 300:
            leaf_a.box = (10, 10, 10, 10)

    driver.wait_hooks.append(reveal)
    node = wait_for_visible(driver, lambda: leaf_a, query="a", timeout_ms=1000, interval_ms=100)
    assert node is leaf_a
    assert driver.waited == 300


def test_wait_for_visible_gives_up_after_timeout():
    root, *_ = _tree()
    driver = FakeDriver(root)
    with pytest.raises(NotVisible) as exc:
        wait_for_visible(driver, lambda: None, query="missing", timeout_ms=500, interval_ms=100)
    assert exc.value.query == "missing"
    assert driver.waited == 500


def test_wait_for_visible_terminates_with_non_positive_interval():
    root, *_ = _tree()
    driver = FakeDriver(root)
    for interval in (0, -50):
        driver.waited = 0
        with pytest.raises(NotVisible):
            wait_for_visible(driver, lambda: None, query="missing", timeout_ms=5, interval_ms=interval)
        assert driver.waited == 5
