"""Tests for parent-first ordering, cycle handling and orphan detection."""
from conftest import goal_item
from okr_tracker.importer.hierarchy import (
    UNRESOLVABLE_DEPTH, compute_depths, find_missing_parents, order_by_depth,
    select_child_objectives, select_root_objectives,
)
from okr_tracker.importer.records import parse_goal_item


def outcome(item_id, title, parents=None):
    return parse_goal_item(goal_item(item_id, title, parents=parents))


def kpi(item_id, title, parents=None):
    return parse_goal_item(goal_item(item_id, title, kind="Kpi", parents=parents))


def test_roots_sorted_by_title_ordinal():
    items = [outcome(1, "b"), outcome(2, "a"), outcome(3, "B"), outcome(4, "child", parents=[1]), kpi(5, "A")]

    assert [i.title for i in select_root_objectives(items)] == ["B", "a", "b"]
    assert [i.title for i in select_child_objectives(items)] == ["child"]


def test_depth_follows_parent_chain():
    resolved = {1}
    items = [outcome(4, "d", [3]), outcome(3, "c", [2]), outcome(2, "b", [1])]

    depths = compute_depths(items, resolved.__contains__)

    assert depths == {2: 0, 3: 1, 4: 2}
    assert [i.id for i in order_by_depth(items, resolved.__contains__)] == [2, 3, 4]


def test_parent_outside_batch_is_depth_zero():
    items = [outcome(2, "b", [404])]
    assert compute_depths(items, lambda _: False) == {2: 0}


def test_cycles_are_unresolvable():
    items = [outcome(10, "x", [11]), outcome(11, "y", [10]), outcome(12, "z", [10]), outcome(13, "self", [13])]

    depths = compute_depths(items, lambda _: False)

    assert depths == {10: UNRESOLVABLE_DEPTH, 11: UNRESOLVABLE_DEPTH,
                      12: UNRESOLVABLE_DEPTH, 13: UNRESOLVABLE_DEPTH}


def test_ties_broken_by_title():
    items = [outcome(3, "zeta", [1]), outcome(2, "alpha", [1])]
    assert [i.title for i in order_by_depth(items, lambda sid: sid == 1)] == ["alpha", "zeta"]


def test_every_parent_sorts_before_its_child():
    resolved = {1}
    items = [outcome(n, f"o{n}", [n - 1]) for n in range(20, 1, -1)]

    ordered = order_by_depth(items, resolved.__contains__)
    position = {item.id: index for index, item in enumerate(ordered)}

    for item in items:
        if item.parent_id in position:
            assert position[item.parent_id] < position[item.id]


def test_missing_parents_grouped_once():
    metrics = [
        kpi(10, "m1", [999]),
        kpi(11, "m2", [999]),
        kpi(12, "m3", [1]),
        kpi(13, "m4", [10]),
        kpi(14, "m5", [998]),
    ]
    batch_ids = [m.id for m in metrics]

    missing = find_missing_parents(metrics, {1}.__contains__, batch_ids)

    assert list(missing) == [999, 998]
    assert [m.title for m in missing[999]] == ["m1", "m2"]
