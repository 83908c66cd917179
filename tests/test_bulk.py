import pytest

from conftest import FEB, JAN, MAR
from staffing_grid.bulk import BulkDraft, step_effort, suggest_role
from staffing_grid.report import mirror_discrepancies


@pytest.mark.parametrize(
    "subtext, department, role",
    [
        ("Senior Dev • London", "Engineering", "Senior Engineer"),
        ("Tech Lead • Remote", "Engineering", "Project Lead"),
        ("", "Reporting", "Analyst"),
        ("Director", "Management", "Managing Consultant"),
        ("UX Designer", "Design", "Engineer"),
        (None, None, "Engineer"),
    ],
)
def test_suggest_role(subtext, department, role):
    assert suggest_role(subtext, department) == role


def test_step_effort_floors_at_zero_and_snaps():
    assert step_effort(0, -0.5) == 0
    assert step_effort(1.2, 0.5) == 1.5
    assert step_effort(2, 1) == 3


def test_draft_tracks_people_and_months(store, config):
    draft = BulkDraft(months=[JAN])
    draft.add_person(store.find_root("people", "e1"))
    draft.add_person(store.find_root("people", "e1"))
    assert list(draft.people) == ["e1"]
    assert draft.roles["e1"] == "Senior Engineer"

    draft.add_month(MAR, config.months)
    draft.add_month(FEB, config.months)
    assert draft.months == [JAN, FEB, MAR]
    assert draft.efforts["e1"] == {JAN: 0.0, FEB: 0.0, MAR: 0.0}

    draft.step("e1", FEB, 2)
    draft.step("e1", MAR, 1)
    draft.remove_month(MAR)
    assert draft.total() == 2

    draft.remove_person("e1")
    assert draft.total() == 0
    assert draft.roles == {}


def test_apply_issues_one_save_per_person_month(store, mutator):
    draft = BulkDraft(months=[JAN, FEB])
    draft.add_person(store.find_root("people", "e2"))
    draft.add_person(store.find_root("people", "e3"))
    for _ in range(3):
        draft.step("e2", JAN, 0.5)
    draft.step("e3", FEB, 1)
    draft.step("e3", JAN, 1)

    work_item = store.find_root("projects", "p3")
    assert draft.apply(mutator, work_item) == 3

    e2 = store.find_node("projects", "e2::p3")
    assert e2.allocations[JAN].effort == 1.5
    assert FEB not in e2.allocations
    assert e2.role == "Project Lead"
    assert e2.subtext == "Project Lead"
    e3 = store.find_node("people", "p3::e3")
    assert e3.allocations[FEB].effort == 1
    assert e3.role == "Engineer"
    assert mirror_discrepancies(store).empty


def test_apply_with_empty_draft_writes_nothing(store, mutator):
    before = store.snapshot()
    draft = BulkDraft(months=[JAN])
    draft.add_person(store.find_root("people", "e1"))
    assert draft.apply(mutator, store.find_root("projects", "p2")) == 0
    assert store.snapshot() == before
