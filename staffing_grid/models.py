from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Literal, Mapping, Optional, Sequence, Tuple, Union

from dateutil.relativedelta import relativedelta

Forest = Literal["people", "projects"]
NodeKind = Literal["person", "work_item"]
CellStatus = Literal["optimal", "over", "under", "empty"]
RowKind = Literal["resource", "action"]

FORESTS: Tuple[Forest, ...] = ("people", "projects")
ROOT_KIND_BY_FOREST: Dict[Forest, NodeKind] = {"people": "person", "projects": "work_item"}
MONTH_LABEL_FMT = "%b '%y"
TIME_RANGES: Dict[str, int] = {"3M": 3, "6M": 6, "9M": 9}
DEFAULT_CAPACITY = 20.0
ID_SEPARATOR = "::"


def other_forest(forest: Forest) -> Forest:
    return "projects" if forest == "people" else "people"


def derive_status(effort: float, capacity: float) -> CellStatus:
    if effort == 0:
        return "empty"
    if effort > capacity:
        return "over"
    if effort < capacity:
        return "under"
    return "optimal"


@dataclass(frozen=True)
class AllocationCell:
    """Effort and capacity for one month; status is always derived."""

    effort: float = 0.0
    capacity: float = DEFAULT_CAPACITY

    @property
    def status(self) -> CellStatus:
        return derive_status(self.effort, self.capacity)

    def with_effort(self, effort: float) -> "AllocationCell":
        return replace(self, effort=float(effort))

    def with_capacity(self, capacity: float) -> "AllocationCell":
        return replace(self, capacity=float(capacity))


@dataclass(frozen=True)
class AssignmentKey:
    """Typed (entity, parent) pair identifying a mirrored assignment node."""

    entity_id: str
    parent_id: str

    @property
    def composite_id(self) -> str:
        return f"{self.entity_id}{ID_SEPARATOR}{self.parent_id}"

    def mirrored(self) -> "AssignmentKey":
        return AssignmentKey(entity_id=self.parent_id, parent_id=self.entity_id)


def clean_id(node_id: str) -> str:
    """Strip the parent part from a composite assignment id."""
    return node_id.split(ID_SEPARATOR, 1)[0]


def id_matches(candidate_id: str, target_id: str) -> bool:
    return candidate_id == target_id or candidate_id.startswith(f"{target_id}{ID_SEPARATOR}")


@dataclass(frozen=True)
class ResourceNode:
    """Authoritative tree node: a root person/project or an assignment under one.

    Assignment nodes carry ``parent_id``; their display id is the composite
    ``entity::parent`` string. Nodes are immutable, so a mutation replaces the
    path from the root down to the changed node and shares everything else.
    """

    entity_id: str
    name: str
    kind: NodeKind
    parent_id: Optional[str] = None
    subtext: str = ""
    manager: Optional[str] = None
    department: Optional[str] = None
    skills: Tuple[str, ...] = ()
    status: Optional[str] = None
    role: Optional[str] = None
    allocations: Mapping[str, AllocationCell] = field(default_factory=dict)
    children: Tuple["ResourceNode", ...] = ()

    @property
    def id(self) -> str:
        if self.parent_id is None:
            return self.entity_id
        return self.key.composite_id

    @property
    def key(self) -> AssignmentKey:
        if self.parent_id is None:
            raise ValueError(f"root node '{self.entity_id}' has no assignment key")
        return AssignmentKey(entity_id=self.entity_id, parent_id=self.parent_id)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def cell(self, month: str) -> Optional[AllocationCell]:
        return self.allocations.get(month)

    def effort(self, month: str) -> float:
        cell = self.allocations.get(month)
        return cell.effort if cell else 0.0

    def with_allocations(self, allocations: Mapping[str, AllocationCell]) -> "ResourceNode":
        return replace(self, allocations=dict(allocations))

    def with_children(self, children: Sequence["ResourceNode"]) -> "ResourceNode":
        return replace(self, children=tuple(children))

    def find_child(self, entity_id: str) -> Optional[Tuple[int, "ResourceNode"]]:
        for idx, child in enumerate(self.children):
            if child.entity_id == entity_id:
                return idx, child
        return None

    def as_template(self) -> "ResourceNode":
        """Metadata-only copy used when attaching this entity under another parent."""
        return replace(self, parent_id=None, allocations={}, children=())


@dataclass(frozen=True)
class GroupNode:
    """Synthetic grouping node built by the materializer; never stored."""

    id: str
    name: str
    subtext: str
    children: Tuple[ResourceNode, ...] = ()
    average_utilization: float = 0.0

    @property
    def member_count(self) -> int:
        return len(self.children)


DisplayNode = Union[ResourceNode, GroupNode]


@dataclass(frozen=True)
class Dealfolder:
    """Fixed parent/child structure over project roots used for dealfolder grouping."""

    id: str
    name: str
    project_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Row:
    kind: RowKind
    depth: int
    node: Optional[DisplayNode] = None
    parent_id: Optional[str] = None
    is_group_header: bool = False

    @property
    def key(self) -> str:
        if self.kind == "action":
            return f"action-{self.parent_id}"
        if self.node is None:
            raise ValueError(f"{self.kind} row has no node")
        return self.node.id

    @property
    def resource(self) -> Optional[ResourceNode]:
        return self.node if isinstance(self.node, ResourceNode) else None


@dataclass(frozen=True)
class Filter:
    key: str
    values: Tuple[str, ...] = ()

    def is_active(self) -> bool:
        return bool(self.values)


@dataclass(frozen=True)
class Thresholds:
    under: float = 50.0
    balanced: float = 90.0
    over: float = 110.0

    def validate(self) -> "Thresholds":
        if not (0 <= self.under <= self.balanced <= self.over):
            raise ValueError("thresholds must satisfy 0 <= under <= balanced <= over")
        return self


def build_month_labels(start: date, count: int) -> Tuple[str, ...]:
    first = date(start.year, start.month, 1)
    return tuple((first + relativedelta(months=offset)).strftime(MONTH_LABEL_FMT) for offset in range(count))


@dataclass(frozen=True)
class GridConfig:
    months: Tuple[str, ...] = field(default_factory=lambda: build_month_labels(date(2024, 1, 1), 9))
    default_capacity: float = DEFAULT_CAPACITY
    thresholds: Thresholds = field(default_factory=Thresholds)
    summary_months: int = 6
    logging_level: str = "INFO"

    def visible_months(self, time_range: str) -> Tuple[str, ...]:
        if time_range not in TIME_RANGES:
            raise ValueError(f"unsupported time range '{time_range}'")
        return self.months[: TIME_RANGES[time_range]]

    def summary_window(self) -> Tuple[str, ...]:
        return self.months[: self.summary_months]

    def month_index(self, month: str) -> int:
        try:
            return self.months.index(month)
        except ValueError as exc:
            raise ValueError(f"unknown month label '{month}'") from exc
