
import pandas as pd
import pytest

from conftest import SAMPLE_INPUT
from staffing_grid.main import main, parse_filters
from staffing_grid.models import Filter

PORTFOLIO = SAMPLE_INPUT.parent


def test_parse_filters_merges_repeated_keys():
    assert parse_filters(["Department=Design", "department=Product, Engineering", "skills=React"]) == [
        Filter("department", ("Design", "Product", "Engineering")),
        Filter("skills", ("React",)),
    ]
    with pytest.raises(ValueError):
        parse_filters(["department"])


def test_dry_run_with_check_prints_grid(capsys):
    main(["--project-dir", str(PORTFOLIO), "--dry-run", "--check", "--group-by", "department"])
    out = capsys.readouterr().out
    assert "Mirror check passed." in out
    assert "People view, 9 months" in out
    assert "- Engineering [grp_dept_0]" in out
    assert "Available:" in out


def test_writes_grid_and_allocations(tmp_path, capsys):
    main([
        "--project-dir", str(PORTFOLIO),
        "--view", "projects",
        "--group-by", "dealfolder",
        "--time-range", "3M",
        "--expand", "all",
        "--outdir", str(tmp_path),
    ])
    grid = pd.read_csv(tmp_path / "grid_projects.csv")
    assert list(grid.columns)[:5] == ["id", "name", "depth", "group", "subtext"]
    assert len(grid.columns) == 8
    assert grid["id"].iloc[0] == "f1"
    assert "e5::p1" in set(grid["id"])
    allocations = pd.read_csv(tmp_path / "allocations.csv")
    assert len(allocations) == 12
    assert "Wrote" in capsys.readouterr().out


def test_invalid_input_exits_with_code_2(tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--project-dir", str(PORTFOLIO), "--dry-run", "--filter", "colour=red"])
    assert excinfo.value.code == 2
    assert "colour" in capsys.readouterr().err

    with pytest.raises(SystemExit) as excinfo:
        main(["--project-dir", str(tmp_path / "missing")])
    assert excinfo.value.code == 2


def test_check_fails_on_diverged_forests(monkeypatch, capsys):
    diverged = pd.DataFrame([{"person_id": "e1", "work_item_id": "p6", "month": "Jan '24", "effort_people": 10.0}])
    monkeypatch.setattr("staffing_grid.main.mirror_discrepancies", lambda store: diverged)
    with pytest.raises(SystemExit) as excinfo:
        main(["--project-dir", str(PORTFOLIO), "--check", "--dry-run"])
    assert excinfo.value.code == 1
    assert "disagree" in capsys.readouterr().err
