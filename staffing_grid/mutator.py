from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Literal, Optional, Tuple

from .models import (
    DEFAULT_CAPACITY,
    ROOT_KIND_BY_FOREST,
    AllocationCell,
    Forest,
    ResourceNode,
    clean_id,
)
from .store import ForestPair, ResourceTreeStore

logger = logging.getLogger(__name__)

SaveMode = Literal["add", "edit"]


@dataclass(frozen=True)
class SaveAssignment:
    """Payload of an assignment editor save, relative to the view it came from."""

    mode: SaveMode
    resource_id: str
    effort: float
    month: Optional[str] = None
    months: Tuple[str, ...] = ()
    parent_id: Optional[str] = None
    new_item: Optional[ResourceNode] = None
    role: Optional[str] = None
    is_capacity_edit: bool = False
    view: Forest = "people"

    def target_months(self) -> Tuple[str, ...]:
        if self.months:
            return tuple(self.months)
        if self.month:
            return (self.month,)
        return ()


def _check_value(value: float) -> float:
    value = float(value)
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ValueError(f"mutations require a finite non-negative value, got {value!r}")
    return value


def _months_of(month: Optional[str], months: Iterable[str]) -> Tuple[str, ...]:
    months = tuple(months)
    if months:
        return months
    return (month,) if month else ()


class AllocationMutator:
    """Applies every assignment change to both forests of a store.

    Each (pair, month) write is independent: a pair that cannot be resolved is
    logged and skipped, and earlier months of the same batch stay applied.
    """

    def __init__(self, store: ResourceTreeStore, default_capacity: float = DEFAULT_CAPACITY) -> None:
        self.store = store
        self.default_capacity = float(default_capacity)

    def resolve_pair(
        self,
        view: Forest,
        mode: SaveMode,
        resource_id: str,
        parent_id: Optional[str] = None,
        new_item: Optional[ResourceNode] = None,
    ) -> Optional[Tuple[str, str]]:
        """Return ``(person_id, work_item_id)`` for a click in ``view``."""
        if mode == "add":
            root_id = clean_id(resource_id)
            other_id = new_item.entity_id if new_item is not None else None
        else:
            root_id = parent_id
            other_id = clean_id(resource_id)
        if not root_id or not other_id:
            return None
        if view == "people":
            return root_id, other_id
        return other_id, root_id

    def save_assignment(self, payload: SaveAssignment) -> ForestPair:
        effort = _check_value(payload.effort)
        months = payload.target_months()
        if not months:
            logger.warning("save for %s ignored: no target month", payload.resource_id)
        for month in months:
            if payload.is_capacity_edit:
                self.update_capacity(payload.resource_id, month, effort, forest=payload.view)
                continue
            pair = self.resolve_pair(
                payload.view, payload.mode, payload.resource_id, payload.parent_id, payload.new_item
            )
            if pair is None:
                logger.warning(
                    "skipping %s save for %s in %s: assignment pair unresolved",
                    payload.mode,
                    payload.resource_id,
                    month,
                )
                continue
            person_id, work_item_id = pair
            person = self._lookup("people", person_id, payload.new_item)
            work_item = self._lookup("projects", work_item_id, payload.new_item)
            if person is None or work_item is None:
                logger.warning(
                    "skipping save of %s/%s in %s: %s not found",
                    person_id,
                    work_item_id,
                    month,
                    person_id if person is None else work_item_id,
                )
                continue
            self.mirror_upsert(
                "people", person.entity_id, work_item, month, effort,
                role=payload.role, parent_template=person,
            )
            self.mirror_upsert(
                "projects", work_item.entity_id, person, month, effort,
                role=payload.role, parent_template=work_item,
            )
        return self.store.snapshot()

    def _lookup(self, forest: Forest, entity_id: str, new_item: Optional[ResourceNode]) -> Optional[ResourceNode]:
        node = self.store.find_root(forest, entity_id)
        if node is not None:
            return node
        if (
            new_item is not None
            and new_item.entity_id == entity_id
            and new_item.kind == ROOT_KIND_BY_FOREST[forest]
        ):
            return new_item.as_template()
        return None

    def mirror_upsert(
        self,
        forest: Forest,
        parent_id: str,
        child_template: ResourceNode,
        month: str,
        effort: float,
        *,
        role: Optional[str] = None,
        parent_template: Optional[ResourceNode] = None,
    ) -> bool:
        """Write ``effort`` for ``month`` on the child of ``parent_id`` that stands for the template entity.

        Missing children are appended with the composite id ``entity::parent``;
        a missing parent root is created from ``parent_template`` when given.
        """
        parent = self.store.find_root(forest, parent_id)
        is_new_root = parent is None
        if parent is None:
            if parent_template is None:
                logger.warning("no root %s in %s forest; upsert skipped", parent_id, forest)
                return False
            parent = parent_template.as_template()
        found = parent.find_child(child_template.entity_id)
        if found is not None:
            idx, child = found
            cell = child.cell(month) or AllocationCell(effort=0.0, capacity=self.default_capacity)
            allocations: Dict[str, AllocationCell] = dict(child.allocations)
            allocations[month] = cell.with_effort(effort)
            changes: Dict[str, object] = {"allocations": allocations}
            if role:
                changes["role"] = role
                if forest == "projects":
                    changes["subtext"] = role
            children = list(parent.children)
            children[idx] = replace(child, **changes)
        else:
            template = child_template.as_template()
            subtext = template.subtext
            if forest == "projects" and role:
                subtext = role
            child = replace(
                template,
                parent_id=parent.entity_id,
                role=role or None,
                subtext=subtext,
                allocations={month: AllocationCell(effort=float(effort), capacity=self.default_capacity)},
                children=(),
            )
            children = list(parent.children) + [child]
        updated = parent.with_children(children)
        if is_new_root:
            self.store.append_root(forest, updated)
        else:
            self.store.replace_root(forest, updated)
        logger.debug("%s: %s under %s = %s for %s", forest, child_template.entity_id, parent_id, effort, month)
        return True

    def delete_allocation(
        self,
        resource_id: str,
        parent_id: Optional[str] = None,
        month: Optional[str] = None,
        months: Iterable[str] = (),
        view: Forest = "people",
    ) -> ForestPair:
        if not parent_id:
            logger.warning("delete for %s ignored: no parent", resource_id)
            return self.store.snapshot()
        pair = self.resolve_pair(view, "edit", resource_id, parent_id)
        if pair is None:
            return self.store.snapshot()
        person_id, work_item_id = pair
        for target in _months_of(month, months):
            self._remove_month("people", person_id, work_item_id, target)
            self._remove_month("projects", work_item_id, person_id, target)
        return self.store.snapshot()

    def _remove_month(self, forest: Forest, parent_id: str, child_entity_id: str, month: str) -> None:
        parent = self.store.find_root(forest, parent_id)
        found = parent.find_child(child_entity_id) if parent is not None else None
        if parent is None or found is None:
            logger.warning("no assignment %s under %s in %s forest; delete skipped", child_entity_id, parent_id, forest)
            return
        idx, child = found
        if month not in child.allocations:
            return
        allocations = {key: cell for key, cell in child.allocations.items() if key != month}
        children = list(parent.children)
        if allocations:
            children[idx] = child.with_allocations(allocations)
        else:
            del children[idx]
            logger.debug("%s: removed empty assignment %s under %s", forest, child_entity_id, parent_id)
        self.store.replace_root(forest, parent.with_children(children))

    def update_capacity(
        self,
        resource_id: str,
        month: str,
        capacity: float,
        forest: Optional[Forest] = None,
    ) -> ForestPair:
        capacity = _check_value(capacity)
        entity_id = clean_id(resource_id)
        target = forest or self.store.root_forest_of(entity_id)
        root = self.store.find_root(target, entity_id) if target else None
        if target is None or root is None:
            logger.warning("capacity edit for %s skipped: not a root", resource_id)
            return self.store.snapshot()
        cell = root.cell(month) or AllocationCell(effort=0.0, capacity=self.default_capacity)
        allocations = dict(root.allocations)
        allocations[month] = cell.with_capacity(capacity)
        self.store.replace_root(target, root.with_allocations(allocations))
        logger.debug("%s: capacity of %s set to %s for %s", target, entity_id, capacity, month)
        return self.store.snapshot()

    def inline_save(
        self,
        resource_id: str,
        month: str,
        value: float,
        is_capacity: bool,
        view: Forest = "people",
    ) -> ForestPair:
        parent_id = self.store.find_parent_id(view, resource_id)
        if parent_id is None:
            if not is_capacity:
                logger.debug("inline edit on root %s applied as capacity", resource_id)
            return self.update_capacity(resource_id, month, value, forest=view)
        return self.save_assignment(
            SaveAssignment(
                mode="edit",
                resource_id=resource_id,
                parent_id=parent_id,
                month=month,
                effort=value,
                view=view,
            )
        )
