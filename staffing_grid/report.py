from __future__ import annotations

from typing import Dict, List, Sequence

import pandas as pd

from .models import Forest, GroupNode, ResourceNode, Row
from .store import ResourceTreeStore

ALLOCATION_COLUMNS = ["person_id", "work_item_id", "month", "effort", "role"]


def allocation_frame(forest: Sequence[ResourceNode], view: Forest) -> pd.DataFrame:
    """One row per (person, work item, month) assignment fact held in ``forest``."""
    records: List[Dict[str, object]] = []
    for root in forest:
        for child in root.children:
            if view == "people":
                person_id, work_item_id = root.entity_id, child.entity_id
            else:
                person_id, work_item_id = child.entity_id, root.entity_id
            for month, cell in child.allocations.items():
                records.append(
                    {
                        "person_id": person_id,
                        "work_item_id": work_item_id,
                        "month": month,
                        "effort": float(cell.effort),
                        "role": child.role or "",
                    }
                )
    frame = pd.DataFrame(records, columns=ALLOCATION_COLUMNS)
    return frame.sort_values(ALLOCATION_COLUMNS[:3]).reset_index(drop=True)


def mirror_discrepancies(store: ResourceTreeStore) -> pd.DataFrame:
    """Facts whose People and Projects copies disagree or exist on one side only."""
    keys = ALLOCATION_COLUMNS[:3]
    merged = allocation_frame(store.people, "people").merge(
        allocation_frame(store.projects, "projects"),
        on=keys,
        how="outer",
        suffixes=("_people", "_projects"),
        indicator=True,
    )
    one_sided = merged["_merge"] != "both"
    effort_diff = merged["effort_people"] != merged["effort_projects"]
    role_diff = merged["role_people"] != merged["role_projects"]
    result = merged[one_sided | effort_diff | role_diff]
    return result.drop(columns="_merge").reset_index(drop=True)


def rows_frame(rows: Sequence[Row], months: Sequence[str]) -> pd.DataFrame:
    """Flat grid export: one line per resource row with an effort column per month."""
    records: List[Dict[str, object]] = []
    for row in rows:
        if row.kind != "resource" or row.node is None:
            continue
        node = row.node
        record: Dict[str, object] = {
            "id": node.id,
            "name": node.name,
            "depth": row.depth,
            "group": row.is_group_header,
            "subtext": node.subtext,
        }
        for month in months:
            if isinstance(node, GroupNode):
                record[month] = sum(member.effort(month) for member in node.children)
            else:
                record[month] = node.effort(month)
        records.append(record)
    return pd.DataFrame(records, columns=["id", "name", "depth", "group", "subtext", *months])
