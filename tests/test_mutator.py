import pytest

from conftest import FEB, JAN, MAR
from staffing_grid.models import ResourceNode
from staffing_grid.mutator import SaveAssignment
from staffing_grid.report import mirror_discrepancies


def new_project(project_id="p9", name="Data Platform"):
    return ResourceNode(entity_id=project_id, name=name, kind="work_item", subtext="New")


def test_add_assignment_from_people_view_writes_both_forests(store, mutator):
    mutator.save_assignment(
        SaveAssignment(mode="add", resource_id="e1", new_item=new_project(), month=JAN, effort=5)
    )
    person = store.find_node("people", "e1")
    added = next(child for child in person.children if child.id == "p9::e1")
    assert added.allocations[JAN].effort == 5

    project = store.find_node("projects", "p9")
    assert project.is_root
    assert [child.id for child in project.children] == ["e1::p9"]
    assert project.children[0].allocations[JAN].effort == 5
    assert mirror_discrepancies(store).empty


def test_add_assignment_from_projects_view(store, mutator):
    person = store.find_root("people", "e3")
    mutator.save_assignment(
        SaveAssignment(
            mode="add", resource_id="p2", new_item=person, month=FEB, effort=4,
            role="Designer", view="projects",
        )
    )
    child = store.find_node("projects", "e3::p2")
    assert child.allocations[FEB].effort == 4
    assert child.role == "Designer"
    assert child.subtext == "Designer"
    mirrored = store.find_node("people", "p2::e3")
    assert mirrored.role == "Designer"
    assert mirrored.allocations[FEB].effort == 4


def test_edit_overwrites_existing_child_and_creates_missing_month(store, mutator):
    mutator.save_assignment(
        SaveAssignment(mode="edit", resource_id="p1::e1", parent_id="e1", months=(FEB, MAR), effort=7)
    )
    child = store.find_node("people", "p1::e1")
    assert child.allocations[FEB].effort == 7
    assert child.allocations[MAR].effort == 7
    assert child.allocations[MAR].capacity == 20
    assert child.allocations[JAN].effort == 10
    assert store.find_node("projects", "e1::p1").allocations[MAR].effort == 7
    assert len(store.find_root("people", "e1").children) == 2


def test_overwrite_is_idempotent(store, mutator):
    payload = SaveAssignment(mode="edit", resource_id="p2::e1", parent_id="e1", month=FEB, effort=3)
    once = mutator.save_assignment(payload)
    twice = mutator.save_assignment(payload)
    assert once == twice


def test_role_survives_reedit_without_role(store, mutator):
    mutator.save_assignment(
        SaveAssignment(mode="edit", resource_id="p1::e1", parent_id="e1", month=JAN, effort=12)
    )
    assert store.find_node("people", "p1::e1").role == "Senior Engineer"
    assert store.find_node("projects", "e1::p1").role == "Senior Engineer"


def test_delete_last_month_prunes_both_forests(store, mutator):
    mutator.delete_allocation("p1", "e2", MAR)
    assert store.find_root("people", "e2").children == ()
    assert [child.entity_id for child in store.find_root("projects", "p1").children] == ["e1"]
    assert mirror_discrepancies(store).empty


def test_delete_some_months_keeps_the_child(store, mutator):
    mutator.delete_allocation("e1::p1", "p1", months=[JAN], view="projects")
    child = store.find_node("people", "p1::e1")
    assert set(child.allocations) == {FEB}
    assert set(store.find_node("projects", "e1::p1").allocations) == {FEB}


def test_delete_without_parent_is_a_noop(store, mutator):
    before = store.snapshot()
    assert mutator.delete_allocation("p1::e1", None, JAN) == before


def test_capacity_edit_touches_only_the_root(store, mutator):
    people_before = store.people
    mutator.save_assignment(
        SaveAssignment(mode="edit", resource_id="p1", month=FEB, effort=10, is_capacity_edit=True, view="projects")
    )
    root = store.find_root("projects", "p1")
    assert root.allocations[FEB].capacity == 10
    assert root.allocations[FEB].effort == 0
    assert store.people is people_before


def test_update_capacity_resolves_forest_from_root(store, mutator):
    mutator.update_capacity("e3", JAN, 16)
    assert store.find_root("people", "e3").allocations[JAN].capacity == 16


def test_update_capacity_skips_non_roots(store, mutator):
    before = store.snapshot()
    assert mutator.update_capacity("nobody", JAN, 16) == before


def test_inline_save_on_root_edits_capacity(store, mutator):
    mutator.inline_save("p1", JAN, 12, True, view="projects")
    assert store.find_root("projects", "p1").allocations[JAN].capacity == 12


def test_inline_save_on_child_mirrors_effort(store, mutator):
    mutator.inline_save("e1::p1", FEB, 9, False, view="projects")
    assert store.find_node("projects", "e1::p1").allocations[FEB].effort == 9
    assert store.find_node("people", "p1::e1").allocations[FEB].effort == 9


def test_unresolved_pair_is_skipped_without_blocking_other_saves(store, mutator):
    before = store.snapshot()
    mutator.save_assignment(SaveAssignment(mode="edit", resource_id="p1::ghost", parent_id="ghost", month=JAN, effort=3))
    assert store.snapshot() == before

    mutator.save_assignment(SaveAssignment(mode="add", resource_id="e2", new_item=None, month=JAN, effort=3))
    assert store.snapshot() == before


def test_batch_writes_every_month(store, mutator):
    mutator.save_assignment(
        SaveAssignment(mode="edit", resource_id="p2::e1", parent_id="e1", months=(JAN, FEB), effort=6)
    )
    child = store.find_node("people", "p2::e1")
    assert child.allocations[JAN].effort == 6
    assert child.allocations[FEB].effort == 6


def test_mutations_copy_only_the_touched_path(store, mutator):
    before = store.snapshot()
    mutator.save_assignment(SaveAssignment(mode="edit", resource_id="p2::e1", parent_id="e1", month=JAN, effort=1))
    after = store.snapshot()
    assert before.people[0].find_child("p2")[1].allocations[JAN].effort == 5
    assert after.people[1] is before.people[1]
    assert after.people[0].children[0] is before.people[0].children[0]
    assert after.projects[2] is before.projects[2]


def test_negative_values_never_reach_the_forests(mutator):
    with pytest.raises(ValueError):
        mutator.save_assignment(SaveAssignment(mode="edit", resource_id="p1::e1", parent_id="e1", month=JAN, effort=-1))
    with pytest.raises(ValueError):
        mutator.update_capacity("p1", JAN, float("nan"))


def test_mirror_consistency_after_mixed_sequence(store, mutator):
    mutator.save_assignment(SaveAssignment(mode="add", resource_id="e3", new_item=new_project(), months=(JAN, FEB), effort=2))
    mutator.inline_save("p9::e3", JAN, 4, False)
    mutator.delete_allocation("p9::e3", "e3", FEB)
    mutator.save_assignment(
        SaveAssignment(mode="add", resource_id="p9", new_item=store.find_root("people", "e2"), month=MAR, effort=1, view="projects", role="Lead")
    )
    mutator.delete_allocation("p2", "e1", JAN)
    assert mirror_discrepancies(store).empty
    assert store.find_node("projects", "e3::p9").allocations[JAN].effort == 4
    assert store.find_node("people", "p2::e1") is None
