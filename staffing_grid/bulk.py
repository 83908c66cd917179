from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .models import Forest, ResourceNode
from .mutator import AllocationMutator, SaveAssignment

logger = logging.getLogger(__name__)

EFFORT_STEP = 0.5
DEFAULT_ROLE = "Engineer"

_TITLE_ROLES = (
    ("senior", "Senior Engineer"),
    ("managing consultant", "Managing Consultant"),
    ("project manager", "Project Manager"),
    ("lead", "Project Lead"),
    ("analyst", "Analyst"),
)
_DEPARTMENT_ROLES = {
    "Reporting": "Analyst",
    "Project Management": "Project Manager",
    "Management": "Managing Consultant",
}


def suggest_role(subtext: Optional[str], department: Optional[str]) -> str:
    title = (subtext or "").lower()
    for keyword, role in _TITLE_ROLES:
        if keyword in title:
            return role
    return _DEPARTMENT_ROLES.get(department or "", DEFAULT_ROLE)


def step_effort(current: float, delta: float) -> float:
    value = max(0.0, current + delta)
    return round(value / EFFORT_STEP) * EFFORT_STEP


@dataclass
class BulkDraft:
    """Per-person, per-month efforts collected before a bulk assignment is applied."""

    months: List[str]
    people: Dict[str, ResourceNode] = field(default_factory=dict)
    efforts: Dict[str, Dict[str, float]] = field(default_factory=dict)
    roles: Dict[str, str] = field(default_factory=dict)

    def add_person(self, person: ResourceNode) -> None:
        if person.entity_id in self.people:
            return
        self.people[person.entity_id] = person
        self.efforts.setdefault(person.entity_id, {month: 0.0 for month in self.months})
        self.roles.setdefault(person.entity_id, suggest_role(person.subtext, person.department))

    def remove_person(self, person_id: str) -> None:
        self.people.pop(person_id, None)
        self.efforts.pop(person_id, None)
        self.roles.pop(person_id, None)

    def add_month(self, month: str, order: Sequence[str]) -> None:
        if month in self.months:
            return
        self.months = sorted(self.months + [month], key=order.index)
        for efforts in self.efforts.values():
            efforts.setdefault(month, 0.0)

    def remove_month(self, month: str) -> None:
        self.months = [m for m in self.months if m != month]

    def step(self, person_id: str, month: str, delta: float) -> float:
        efforts = self.efforts.setdefault(person_id, {})
        efforts[month] = step_effort(efforts.get(month, 0.0), delta)
        return efforts[month]

    def total(self) -> float:
        return sum(
            self.efforts.get(person_id, {}).get(month, 0.0)
            for person_id in self.people
            for month in self.months
        )

    def apply(self, mutator: AllocationMutator, work_item: ResourceNode) -> int:
        """Assign every drafted person to ``work_item``; one save per (person, month)."""
        issued = 0
        view: Forest = "projects"
        for person_id, person in self.people.items():
            for month in self.months:
                effort = self.efforts.get(person_id, {}).get(month, 0.0)
                if effort <= 0:
                    continue
                mutator.save_assignment(
                    SaveAssignment(
                        mode="add",
                        resource_id=work_item.entity_id,
                        effort=effort,
                        month=month,
                        new_item=person.as_template(),
                        role=self.roles.get(person_id),
                        view=view,
                    )
                )
                issued += 1
        logger.debug("bulk assignment to %s issued %d saves", work_item.entity_id, issued)
        return issued
