from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from dateutil import parser as dateparser

from .models import (
    DEFAULT_CAPACITY,
    AllocationCell,
    Dealfolder,
    GridConfig,
    NodeKind,
    ResourceNode,
    Thresholds,
    build_month_labels,
)
from .store import ResourceTreeStore

_ROOT_FIELDS = {"id", "name"}


def parse_effort(raw: object) -> float:
    """Validate a typed effort/capacity value before it reaches the mutator."""
    if isinstance(raw, bool):
        raise ValueError("effort must be a number")
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            raise ValueError("effort is required")
        try:
            value = float(stripped)
        except ValueError as exc:
            raise ValueError(f"invalid effort value '{raw}'") from exc
    else:
        raise ValueError(f"unsupported effort value {raw!r}")
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"effort must be finite, got '{raw}'")
    if value < 0:
        raise ValueError(f"effort must not be negative, got '{raw}'")
    return value


def _require_fields(entry: Mapping[str, object], required: Iterable[str], source: str) -> None:
    missing = [name for name in required if name not in entry or entry[name] in (None, "")]
    if missing:
        raise ValueError(f"{source} missing required fields: {', '.join(missing)}")


def _parse_skills(value: object, source: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(";") if part.strip())
    if isinstance(value, Sequence):
        return tuple(str(item).strip() for item in value if str(item).strip())
    raise ValueError(f"unsupported skills value for {source}: {value!r}")


def _parse_cells(
    value: object, source: str, months: Sequence[str], default_capacity: float
) -> Dict[str, AllocationCell]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"allocations for {source} must be an object")
    cells: Dict[str, AllocationCell] = {}
    for month, raw_cell in value.items():
        if month not in months:
            raise ValueError(f"unknown month '{month}' in allocations for {source}")
        if isinstance(raw_cell, Mapping):
            effort = parse_effort(raw_cell.get("effort", 0))
            capacity = parse_effort(raw_cell.get("capacity", default_capacity))
        else:
            effort = parse_effort(raw_cell)
            capacity = default_capacity
        cells[str(month)] = AllocationCell(effort=effort, capacity=capacity)
    return cells


def _parse_root(
    entry: object, kind: NodeKind, months: Sequence[str], default_capacity: float
) -> ResourceNode:
    if not isinstance(entry, Mapping):
        raise ValueError(f"{kind} entries must be objects")
    _require_fields(entry, _ROOT_FIELDS, kind)
    node_id = str(entry["id"])
    if "::" in node_id:
        raise ValueError(f"root id '{node_id}' must not contain '::'")
    return ResourceNode(
        entity_id=node_id,
        name=str(entry["name"]),
        kind=kind,
        subtext=str(entry.get("subtext", "") or ""),
        manager=entry.get("manager") or None,
        department=entry.get("department") or None,
        skills=_parse_skills(entry.get("skills"), node_id),
        status=entry.get("status") or None,
        allocations=_parse_cells(entry.get("allocations"), node_id, months, default_capacity),
    )


def _attach(
    roots: Dict[str, ResourceNode],
    parent_id: str,
    template: ResourceNode,
    cells: Dict[str, AllocationCell],
    role: Optional[str],
    subtext: Optional[str] = None,
) -> None:
    parent = roots[parent_id]
    if parent.find_child(template.entity_id) is not None:
        raise ValueError(f"duplicate assignment of '{template.entity_id}' under '{parent_id}'")
    child = ResourceNode(
        entity_id=template.entity_id,
        name=template.name,
        kind=template.kind,
        parent_id=parent_id,
        subtext=subtext if subtext is not None else template.subtext,
        manager=template.manager,
        department=template.department,
        skills=template.skills,
        status=template.status,
        role=role,
        allocations=dict(cells),
    )
    roots[parent_id] = parent.with_children(parent.children + (child,))


def build_store(data: Mapping[str, object], config: GridConfig) -> ResourceTreeStore:
    """Build both forests from a seed document.

    Assignments are listed once, as (person, work item) facts, and are
    written under both parents so the seeded forests start mirrored.
    """
    months = config.months
    people_raw = data.get("people") or []
    projects_raw = data.get("projects") or []
    if not isinstance(people_raw, list) or not isinstance(projects_raw, list):
        raise ValueError("people and projects must be arrays")
    people: Dict[str, ResourceNode] = {}
    for entry in people_raw:
        node = _parse_root(entry, "person", months, config.default_capacity)
        if node.entity_id in people:
            raise ValueError(f"duplicate person id '{node.entity_id}'")
        people[node.entity_id] = node
    projects: Dict[str, ResourceNode] = {}
    for entry in projects_raw:
        node = _parse_root(entry, "work_item", months, config.default_capacity)
        if node.entity_id in projects or node.entity_id in people:
            raise ValueError(f"duplicate project id '{node.entity_id}'")
        projects[node.entity_id] = node

    assignments = data.get("assignments") or []
    if not isinstance(assignments, list):
        raise ValueError("assignments must be an array")
    for entry in assignments:
        if not isinstance(entry, Mapping):
            raise ValueError("assignment entries must be objects")
        _require_fields(entry, ("person", "work_item"), "assignment")
        person_id = str(entry["person"])
        work_item_id = str(entry["work_item"])
        if person_id not in people:
            raise ValueError(f"assignment references unknown person '{person_id}'")
        if work_item_id not in projects:
            raise ValueError(f"assignment references unknown work item '{work_item_id}'")
        source = f"{work_item_id}/{person_id}"
        cells = _parse_cells(entry.get("allocations"), source, months, config.default_capacity)
        if not cells:
            raise ValueError(f"assignment {source} has no allocated months")
        role = entry.get("role") or None
        person_template = people[person_id].as_template()
        project_template = projects[work_item_id].as_template()
        _attach(people, person_id, project_template, cells, role)
        _attach(projects, work_item_id, person_template, cells, role, subtext=role or person_template.subtext)

    folders_raw = data.get("dealfolders") or []
    if not isinstance(folders_raw, list):
        raise ValueError("dealfolders must be an array")
    folders: List[Dealfolder] = []
    seen_projects: Dict[str, str] = {}
    for entry in folders_raw:
        if not isinstance(entry, Mapping):
            raise ValueError("dealfolder entries must be objects")
        _require_fields(entry, _ROOT_FIELDS, "dealfolder")
        project_ids = tuple(str(pid) for pid in entry.get("projects") or ())
        for pid in project_ids:
            if pid not in projects:
                raise ValueError(f"dealfolder '{entry['id']}' references unknown project '{pid}'")
            if pid in seen_projects:
                raise ValueError(f"project '{pid}' appears in dealfolders '{seen_projects[pid]}' and '{entry['id']}'")
            seen_projects[pid] = str(entry["id"])
        folders.append(Dealfolder(id=str(entry["id"]), name=str(entry["name"]), project_ids=project_ids))

    return ResourceTreeStore(
        people=list(people.values()),
        projects=list(projects.values()),
        dealfolders=folders,
    )


def load_seed(path: str | Path, config: GridConfig) -> ResourceTreeStore:
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("seed file must be a JSON object")
    return build_store(data, config)


def _parse_number(data: Mapping[str, object], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def parse_config(data: Mapping[str, object]) -> GridConfig:
    months_raw = data.get("months")
    if months_raw is not None:
        if not isinstance(months_raw, list) or not months_raw:
            raise ValueError("months must be a non-empty array of labels")
        months = tuple(str(label) for label in months_raw)
        if len(set(months)) != len(months):
            raise ValueError("months must not contain duplicates")
    else:
        try:
            planning_start = dateparser.isoparse(str(data["planning_start"])).date()
        except (KeyError, ValueError, TypeError) as exc:
            raise ValueError("planning_start must be a valid ISO date string") from exc
        month_count = data.get("month_count", 9)
        if isinstance(month_count, bool) or not isinstance(month_count, int) or month_count <= 0:
            raise ValueError("month_count must be a positive integer")
        months = build_month_labels(planning_start, month_count)

    default_capacity = _parse_number(data, "default_capacity", DEFAULT_CAPACITY)
    if default_capacity < 0:
        raise ValueError("default_capacity must not be negative")

    thresholds_raw = data.get("thresholds") or {}
    if not isinstance(thresholds_raw, dict):
        raise ValueError("thresholds must be an object")
    defaults = Thresholds()
    thresholds = Thresholds(
        under=_parse_number(thresholds_raw, "under", defaults.under),
        balanced=_parse_number(thresholds_raw, "balanced", defaults.balanced),
        over=_parse_number(thresholds_raw, "over", defaults.over),
    ).validate()

    summary_months = data.get("summary_months", 6)
    if isinstance(summary_months, bool) or not isinstance(summary_months, int) or summary_months <= 0:
        raise ValueError("summary_months must be a positive integer")

    logging_level = data.get("logging_level", "INFO")
    if not isinstance(logging_level, str):
        raise ValueError("logging_level must be a string")

    return GridConfig(
        months=months,
        default_capacity=default_capacity,
        thresholds=thresholds,
        summary_months=summary_months,
        logging_level=logging_level,
    )


def load_config(path: str | Path) -> GridConfig:
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("config file must be a JSON object")
    return parse_config(data)


def ensure_directory(path: str | Path) -> Path:
    target = Path(path)
    target.mkdir(parents=True, exist_ok=True)
    return target


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
