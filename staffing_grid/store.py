from __future__ import annotations

import logging
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .models import (
    FORESTS,
    Dealfolder,
    Forest,
    ResourceNode,
    id_matches,
)

logger = logging.getLogger(__name__)

ForestNodes = Tuple[ResourceNode, ...]


class ForestPair(NamedTuple):
    people: ForestNodes
    projects: ForestNodes


def find_node(nodes: Iterable[ResourceNode], node_id: str) -> Optional[ResourceNode]:
    """Depth-first search by id; assignment ids also match on their ``id::`` prefix."""
    for node in nodes:
        if id_matches(node.id, node_id):
            return node
        found = find_node(node.children, node_id)
        if found is not None:
            return found
    return None


def find_parent_id(nodes: Iterable[ResourceNode], child_id: str) -> Optional[str]:
    for node in nodes:
        if any(id_matches(child.id, child_id) for child in node.children):
            return node.id
        found = find_parent_id(node.children, child_id)
        if found is not None:
            return found
    return None


def searchable_items(people: Sequence[ResourceNode], projects: Sequence[ResourceNode]) -> List[Dict[str, object]]:
    items: Dict[str, Dict[str, object]] = {}
    for node in list(projects) + list(people):
        if not node.is_root:
            continue
        items[node.entity_id] = {
            "id": node.entity_id,
            "name": node.name,
            "subtext": node.subtext,
            "kind": node.kind,
            "department": node.department,
        }
    return list(items.values())


class ResourceTreeStore:
    """Owns the People and Projects forests; the only holder of authoritative state.

    Reads never mutate. Writes go through ``replace_root``/``append_root``,
    which swap a single root tuple slot, so earlier snapshots stay valid.
    """

    def __init__(
        self,
        people: Sequence[ResourceNode] = (),
        projects: Sequence[ResourceNode] = (),
        dealfolders: Sequence[Dealfolder] = (),
    ) -> None:
        self._forests: Dict[Forest, ForestNodes] = {
            "people": tuple(people),
            "projects": tuple(projects),
        }
        self._root_index: Dict[Forest, Dict[str, int]] = {}
        for forest in FORESTS:
            self._rebuild_index(forest)
        self.dealfolders: Tuple[Dealfolder, ...] = tuple(dealfolders)

    def _rebuild_index(self, forest: Forest) -> None:
        index: Dict[str, int] = {}
        for idx, root in enumerate(self._forests[forest]):
            if not root.is_root:
                raise ValueError(f"forest '{forest}' has non-root node '{root.id}' at top level")
            if root.entity_id in index:
                raise ValueError(f"duplicate root id '{root.entity_id}' in forest '{forest}'")
            index[root.entity_id] = idx
        self._root_index[forest] = index

    @property
    def people(self) -> ForestNodes:
        return self._forests["people"]

    @property
    def projects(self) -> ForestNodes:
        return self._forests["projects"]

    def forest(self, forest: Forest) -> ForestNodes:
        if forest not in self._forests:
            raise ValueError(f"unknown forest '{forest}'")
        return self._forests[forest]

    def snapshot(self) -> ForestPair:
        return ForestPair(people=self.people, projects=self.projects)

    def find_node(self, forest: Forest, node_id: str) -> Optional[ResourceNode]:
        return find_node(self.forest(forest), node_id)

    def find_parent_id(self, forest: Forest, child_id: str) -> Optional[str]:
        return find_parent_id(self.forest(forest), child_id)

    def find_root(self, forest: Forest, entity_id: str) -> Optional[ResourceNode]:
        idx = self._root_index[forest].get(entity_id)
        if idx is None:
            return None
        return self._forests[forest][idx]

    def root_forest_of(self, entity_id: str) -> Optional[Forest]:
        for forest in FORESTS:
            if entity_id in self._root_index[forest]:
                return forest
        return None

    def replace_root(self, forest: Forest, root: ResourceNode) -> None:
        idx = self._root_index[forest].get(root.entity_id)
        if idx is None:
            raise KeyError(f"no root '{root.entity_id}' in forest '{forest}'")
        nodes = list(self._forests[forest])
        nodes[idx] = root
        self._forests[forest] = tuple(nodes)

    def append_root(self, forest: Forest, root: ResourceNode) -> None:
        if not root.is_root:
            raise ValueError(f"cannot append assignment node '{root.id}' as a root")
        if root.entity_id in self._root_index[forest]:
            raise ValueError(f"root '{root.entity_id}' already exists in forest '{forest}'")
        self._forests[forest] = self._forests[forest] + (root,)
        self._root_index[forest][root.entity_id] = len(self._forests[forest]) - 1
        logger.debug("added root %s to %s forest", root.entity_id, forest)

    def dealfolder_of(self, project_id: str) -> Optional[Dealfolder]:
        for folder in self.dealfolders:
            if project_id in folder.project_ids:
                return folder
        return None
