from datetime import date

import pytest

from staffing_grid.models import (
    AllocationCell,
    AssignmentKey,
    GridConfig,
    ResourceNode,
    Row,
    Thresholds,
    build_month_labels,
    clean_id,
    id_matches,
)


@pytest.mark.parametrize(
    "effort, capacity, expected",
    [(0, 20, "empty"), (25, 20, "over"), (10, 20, "under"), (20, 20, "optimal"), (0, 0, "empty")],
)
def test_cell_status_is_derived(effort, capacity, expected):
    assert AllocationCell(effort=effort, capacity=capacity).status == expected


def test_cell_updates_return_new_cells():
    cell = AllocationCell(effort=5, capacity=20)
    assert cell.with_effort(25).status == "over"
    assert cell.with_capacity(5).status == "optimal"
    assert cell.effort == 5


def test_assignment_node_uses_composite_id():
    node = ResourceNode(entity_id="p9", name="New", kind="work_item", parent_id="e1")
    assert node.id == "p9::e1"
    assert node.key == AssignmentKey("p9", "e1")
    assert node.key.mirrored().composite_id == "e1::p9"
    assert not node.is_root


def test_root_node_has_no_assignment_key():
    node = ResourceNode(entity_id="e1", name="Jane", kind="person")
    assert node.id == "e1"
    with pytest.raises(ValueError):
        node.key


def test_id_helpers():
    assert clean_id("p1::e1") == "p1"
    assert clean_id("p1") == "p1"
    assert id_matches("p1::e1", "p1")
    assert id_matches("p1", "p1")
    assert not id_matches("p10::e1", "p1")


def test_month_labels_follow_calendar():
    assert build_month_labels(date(2023, 11, 15), 3) == ("Nov '23", "Dec '23", "Jan '24")


def test_visible_months_by_time_range():
    config = GridConfig()
    assert len(config.visible_months("3M")) == 3
    assert config.visible_months("9M") == config.months
    assert config.summary_window() == config.months[:6]
    with pytest.raises(ValueError):
        config.visible_months("12M")


def test_thresholds_must_be_ordered():
    with pytest.raises(ValueError):
        Thresholds(under=95, balanced=90, over=110).validate()


def test_row_key_requires_node_for_resource_rows():
    assert Row(kind="action", depth=1, parent_id="p1").key == "action-p1"
    with pytest.raises(ValueError):
        Row(kind="resource", depth=0).key
