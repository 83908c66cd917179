from pathlib import Path

import pytest

from staffing_grid.io_utils import build_store
from staffing_grid.models import GridConfig
from staffing_grid.mutator import AllocationMutator

REPO_ROOT = Path(__file__).resolve().parents[1]
SAMPLE_INPUT = REPO_ROOT / "portfolios" / "sample" / "input"

JAN, FEB, MAR = "Jan '24", "Feb '24", "Mar '24"


def seed_document():
    return {
        "people": [
            {"id": "e1", "name": "Jane Doe", "subtext": "Senior Dev", "department": "Engineering",
             "manager": "Alice Wong", "skills": ["React", "Node.js"],
             "allocations": {JAN: {"effort": 0, "capacity": 20}}},
            {"id": "e2", "name": "John Smith", "subtext": "Tech Lead", "department": "Engineering",
             "manager": "David Kim", "skills": ["Java"]},
            {"id": "e3", "name": "Alice Wong", "subtext": "UX Designer", "department": "Design",
             "status": "Paused", "skills": ["Figma", "React"]},
        ],
        "projects": [
            {"id": "p1", "name": "Cloud Migration", "allocations": {JAN: {"effort": 0, "capacity": 20}}},
            {"id": "p2", "name": "Android App V2"},
            {"id": "p3", "name": "Maps API Integration", "status": "At Risk"},
        ],
        "assignments": [
            {"person": "e1", "work_item": "p1", "role": "Senior Engineer", "allocations": {JAN: 10, FEB: 5}},
            {"person": "e1", "work_item": "p2", "allocations": {JAN: 5}},
            {"person": "e2", "work_item": "p1", "allocations": {MAR: 8}},
        ],
        "dealfolders": [
            {"id": "f1", "name": "Strategic Accounts", "projects": ["p1", "p3"]},
            {"id": "f2", "name": "Mobile & Web", "projects": ["p2"]},
        ],
    }


@pytest.fixture
def config():
    return GridConfig()


@pytest.fixture
def store(config):
    return build_store(seed_document(), config)


@pytest.fixture
def mutator(store, config):
    return AllocationMutator(store, default_capacity=config.default_capacity)
