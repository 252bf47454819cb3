"""
Ordering of goal items so that every parent is resolved before its children.

Parent links in an export are plain ids and may point at items that are
missing or that loop back on themselves. Depth is computed iteratively with an
on-path set, so a cycle yields UNRESOLVABLE_DEPTH instead of recursing forever.
"""
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from okr_tracker.importer.records import GoalItemBase, MetricItem, OutcomeItem
from okr_tracker.importer.values import SourceId

# Longest parent chain followed before giving up
MAX_DEPTH = 64
UNRESOLVABLE_DEPTH = MAX_DEPTH + 1

Item = TypeVar("Item", bound=GoalItemBase)


def _sort_key(item: GoalItemBase):
    return (item.title, str(item.id))


def select_root_objectives(items: Iterable[GoalItemBase]) -> List[OutcomeItem]:
    """Outcome items without parents, sorted by title."""
    roots = [i for i in items if isinstance(i, OutcomeItem) and not i.parent_ids]
    return sorted(roots, key=_sort_key)


def select_child_objectives(items: Iterable[GoalItemBase]) -> List[OutcomeItem]:
    return [i for i in items if isinstance(i, OutcomeItem) and i.parent_ids]


def compute_depths(items: Sequence[Item], is_resolved: Callable[[SourceId], bool]) -> Dict[SourceId, int]:
    """
    Depth of each item below the already-resolved part of the tree.

    0 when the first parent is resolved or not among ``items``; otherwise one
    more than the parent's depth. Items on a cycle, and anything hanging below
    one, get UNRESOLVABLE_DEPTH.
    """
    by_id = {item.id: item for item in items}
    depths: Dict[SourceId, int] = {}

    for start in items:
        if start.id in depths:
            continue
        path: List[SourceId] = []
        on_path = set()
        current: Optional[SourceId] = start.id
        base = 0
        while True:
            if current in depths:
                base = depths[current]
                break
            if current in on_path or len(path) > MAX_DEPTH:
                base = UNRESOLVABLE_DEPTH
                break
            path.append(current)
            on_path.add(current)
            parent = by_id[current].parent_id
            if parent is None or parent not in by_id or is_resolved(parent):
                base = -1
                break
            current = parent

        # Unwind: the last element on the path sits directly under ``base``
        for offset, source_id in enumerate(reversed(path)):
            if base >= UNRESOLVABLE_DEPTH:
                depths[source_id] = UNRESOLVABLE_DEPTH
            else:
                depths[source_id] = min(base + 1 + offset, UNRESOLVABLE_DEPTH)
    return depths


def order_by_depth(items: Sequence[Item], is_resolved: Callable[[SourceId], bool]) -> List[Item]:
    """Items sorted by (depth, title) so parents come before their children."""
    depths = compute_depths(items, is_resolved)
    return sorted(items, key=lambda item: (depths[item.id], item.title, str(item.id)))


def find_missing_parents(metrics: Iterable[MetricItem], is_resolved: Callable[[SourceId], bool],
                         batch_ids: Iterable[SourceId] = ()) -> "OrderedDict[SourceId, List[MetricItem]]":
    """
    Parent ids referenced by metric items that nothing has resolved, with
    the metrics that point at each. Parents that are themselves metric items
    of ``batch_ids`` are left out; they get resolved within the phase.
    """
    in_batch = set(batch_ids)
    missing: "OrderedDict[SourceId, List[MetricItem]]" = OrderedDict()
    for metric in metrics:
        parent = metric.parent_id
        if parent is None or is_resolved(parent) or parent in in_batch:
            continue
        missing.setdefault(parent, []).append(metric)
    return missing
