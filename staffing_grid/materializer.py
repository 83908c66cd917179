"""
View materialization: filter, rollup, group and flatten one forest into grid rows.

Every function here is pure. Rollups and group nodes are rebuilt on each call
and never written back to the store.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import (
    DEFAULT_CAPACITY,
    AllocationCell,
    Dealfolder,
    DisplayNode,
    Filter,
    Forest,
    GridConfig,
    GroupNode,
    ResourceNode,
    Row,
    Thresholds,
)

UTILIZATION_BUCKETS = ("Available", "Warning", "Overbooked")
FILTER_KEYS = ("status", "department", "manager", "name", "skills", "utilization")
GROUP_KEYS_BY_VIEW: Dict[Forest, Tuple[str, ...]] = {
    "people": ("none", "department", "manager"),
    "projects": ("none", "dealfolder"),
}
UNASSIGNED = "Unassigned"
UNFILED_GROUP_ID = "grp_folder_unassigned"
DEFAULT_STATUS = "Active"

_GROUP_LABELS = {"department": "Members", "manager": "Reports", "dealfolder": "Projects"}
_GROUP_PREFIXES = {"department": "grp_dept", "manager": "grp_mgr"}


def rollup_cells(node: ResourceNode, months: Iterable[str], default_capacity: float = DEFAULT_CAPACITY) -> Dict[str, AllocationCell]:
    """Monthly cells of ``node`` with effort summed from its children.

    A childless node keeps its stored cells. A month gets a cell when the node
    stores one or any child does; capacity comes from the node itself.
    """
    if not node.children:
        return {month: node.allocations[month] for month in months if month in node.allocations}
    cells: Dict[str, AllocationCell] = {}
    for month in months:
        own = node.allocations.get(month)
        child_cells = [child.allocations[month] for child in node.children if month in child.allocations]
        if own is None and not child_cells:
            continue
        total = sum(cell.effort for cell in child_cells)
        capacity = own.capacity if own is not None else default_capacity
        cells[month] = AllocationCell(effort=total, capacity=capacity)
    return cells


def rollup(node: ResourceNode, months: Iterable[str], default_capacity: float = DEFAULT_CAPACITY) -> ResourceNode:
    if not node.children:
        return node
    allocations = dict(node.allocations)
    allocations.update(rollup_cells(node, months, default_capacity))
    return node.with_allocations(allocations)


def average_utilization(cells: Mapping[str, AllocationCell], months: Iterable[str]) -> float:
    """Mean of effort/capacity*100 over the months that have a positive capacity."""
    ratios = [
        cells[month].effort / cells[month].capacity * 100.0
        for month in months
        if month in cells and cells[month].capacity > 0
    ]
    if not ratios:
        return 0.0
    return sum(ratios) / len(ratios)


def utilization_bucket(percentage: float, thresholds: Thresholds) -> str:
    if percentage <= thresholds.balanced:
        return "Available"
    if percentage <= thresholds.over:
        return "Warning"
    return "Overbooked"


def resource_bucket(node: ResourceNode, months: Sequence[str], config: GridConfig) -> str:
    cells = rollup_cells(node, months, config.default_capacity)
    return utilization_bucket(average_utilization(cells, months), config.thresholds)


def _field_value(node: ResourceNode, key: str) -> str:
    if key == "status":
        return node.status or DEFAULT_STATUS
    if key == "department":
        return node.department or UNASSIGNED
    if key == "manager":
        return node.manager or UNASSIGNED
    if key == "name":
        return node.name
    raise ValueError(f"unsupported filter key '{key}'")


def _validate_filters(filters: Iterable[Filter]) -> List[Filter]:
    checked = list(filters)
    for item in checked:
        if item.key not in FILTER_KEYS:
            raise ValueError(f"unsupported filter key '{item.key}'")
        if item.key == "utilization":
            unknown = [value for value in item.values if value not in UTILIZATION_BUCKETS]
            if unknown:
                raise ValueError(f"unsupported utilization bucket: {', '.join(unknown)}")
    return checked


def matches_filter(node: ResourceNode, item: Filter, months: Sequence[str], config: GridConfig) -> bool:
    if not item.is_active():
        return True
    if item.key == "skills":
        return all(skill in node.skills for skill in item.values)
    if item.key == "utilization":
        return resource_bucket(node, months, config) in item.values
    return _field_value(node, item.key) in item.values


def apply_filters(
    forest: Iterable[ResourceNode],
    filters: Iterable[Filter],
    months: Sequence[str],
    config: GridConfig,
) -> List[ResourceNode]:
    checked = _validate_filters(filters)
    return [
        node for node in forest
        if all(matches_filter(node, item, months, config) for item in checked)
    ]


def _group_subtext(count: int, label: str, utilization: float) -> str:
    return f"{count} {label} • {utilization:.0f}% avg"


def group_utilization(members: Sequence[ResourceNode], window: Sequence[str], default_capacity: float) -> float:
    """Σ(effort/capacity) across members×months, over the valid-month count, ×100."""
    total = 0.0
    valid = 0
    for member in members:
        cells = rollup_cells(member, window, default_capacity)
        for month in window:
            cell = cells.get(month)
            if cell is None or cell.capacity <= 0:
                continue
            total += cell.effort / cell.capacity
            valid += 1
    if valid == 0:
        return 0.0
    return total / valid * 100.0


def _make_group(
    group_id: str,
    name: str,
    members: Sequence[ResourceNode],
    label: str,
    config: GridConfig,
) -> GroupNode:
    utilization = group_utilization(members, config.summary_window(), config.default_capacity)
    return GroupNode(
        id=group_id,
        name=name,
        subtext=_group_subtext(len(members), label, utilization),
        children=tuple(members),
        average_utilization=utilization,
    )


def group_items(
    items: Sequence[ResourceNode],
    group_by: Optional[str],
    config: GridConfig,
    dealfolders: Sequence[Dealfolder] = (),
) -> List[DisplayNode]:
    key = (group_by or "none").lower()
    if key == "none":
        return list(items)
    if key == "dealfolder":
        by_id = {item.entity_id: item for item in items}
        groups: List[DisplayNode] = []
        for folder in dealfolders:
            members = [by_id[pid] for pid in folder.project_ids if pid in by_id]
            if not members:
                continue
            groups.append(_make_group(folder.id, folder.name, members, _GROUP_LABELS[key], config))
        filed = {pid for folder in dealfolders for pid in folder.project_ids}
        loose = [item for item in items if item.entity_id not in filed]
        if loose:
            groups.append(_make_group(UNFILED_GROUP_ID, UNASSIGNED, loose, _GROUP_LABELS[key], config))
        return groups
    if key not in _GROUP_PREFIXES:
        raise ValueError(f"unsupported group key '{group_by}'")
    buckets: "OrderedDict[str, List[ResourceNode]]" = OrderedDict()
    for item in items:
        buckets.setdefault(_field_value(item, key), []).append(item)
    return [
        _make_group(f"{_GROUP_PREFIXES[key]}_{idx}", name, members, _GROUP_LABELS[key], config)
        for idx, (name, members) in enumerate(buckets.items())
    ]


def _default_expanded(node: DisplayNode) -> bool:
    return isinstance(node, GroupNode)


def flatten(
    nodes: Sequence[DisplayNode],
    expanded: Optional[Mapping[str, bool]] = None,
    view: Forest = "people",
    focus_months: Sequence[str] = (),
) -> List[Row]:
    """Depth-first rows; children appear only under expanded nodes."""
    expanded = expanded or {}
    rows: List[Row] = []

    def visit(node: DisplayNode, depth: int) -> None:
        is_group = isinstance(node, GroupNode)
        rows.append(Row(kind="resource", depth=depth, node=node, is_group_header=is_group))
        if not expanded.get(node.id, _default_expanded(node)):
            return
        children: Sequence[DisplayNode] = node.children
        if view == "people" and focus_months and not is_group:
            children = [
                child for child in children
                if any(child.effort(month) > 0 for month in focus_months)
            ]
        for child in children:
            visit(child, depth + 1)
        if view == "projects" and isinstance(node, ResourceNode) and node.is_root:
            rows.append(Row(kind="action", depth=depth + 1, parent_id=node.id))

    for node in nodes:
        visit(node, 0)
    return rows


def materialize(
    forest: Sequence[ResourceNode],
    filters: Iterable[Filter],
    group_by: Optional[str],
    visible_months: Sequence[str],
    *,
    view: Forest = "people",
    config: Optional[GridConfig] = None,
    expanded: Optional[Mapping[str, bool]] = None,
    dealfolders: Sequence[Dealfolder] = (),
    focus_months: Sequence[str] = (),
) -> List[Row]:
    config = config or GridConfig()
    key = (group_by or "none").lower()
    if key not in GROUP_KEYS_BY_VIEW[view]:
        raise ValueError(f"group key '{group_by}' is not available in the {view} view")
    filtered = apply_filters(forest, filters, visible_months, config)
    rolled = [rollup(node, visible_months, config.default_capacity) for node in filtered]
    grouped = group_items(rolled, key, config, dealfolders)
    return flatten(grouped, expanded, view, focus_months)


def utilization_summary(
    items: Iterable[ResourceNode],
    months: Sequence[str],
    config: GridConfig,
) -> Dict[str, List[ResourceNode]]:
    summary: Dict[str, List[ResourceNode]] = {bucket: [] for bucket in UTILIZATION_BUCKETS}
    for item in items:
        summary[resource_bucket(item, months, config)].append(item)
    return summary


def filter_options(
    forest: Iterable[ResourceNode],
    category: str,
    filters: Iterable[Filter],
    months: Sequence[str],
    config: Optional[GridConfig] = None,
) -> List[str]:
    """Distinct values of ``category`` among roots passing every other active filter."""
    config = config or GridConfig()
    if category not in FILTER_KEYS:
        raise ValueError(f"unsupported filter key '{category}'")
    others = [item for item in filters if item.key != category]
    context = apply_filters(forest, others, months, config)
    values = set()
    for node in context:
        if category == "skills":
            values.update(node.skills)
        elif category == "utilization":
            values.add(resource_bucket(node, months, config))
        else:
            values.add(_field_value(node, category))
    return sorted(values)


def selectable_ids(nodes: Iterable[DisplayNode], view: Forest) -> List[str]:
    wanted = "person" if view == "people" else "work_item"
    ids: List[str] = []

    def visit(node: DisplayNode) -> None:
        if isinstance(node, ResourceNode) and node.kind == wanted:
            ids.append(node.id)
        for child in node.children:
            visit(child)

    for node in nodes:
        visit(node)
    return ids
