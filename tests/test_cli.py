"""Tests for the worktrack CLI surface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from worktrack import cli
from worktrack.store import load_collection


def _run_cli(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return int(exc.value.code)


def test_flats_json(store_root: Path, capsys):
    code = _run_cli(["flats", "Skyline", "--store", str(store_root), "--json"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert [f["flat_no"] for f in payload["flats"]] == ["101", "102", "201", "B1"]


def test_store_from_environment(store_root: Path, monkeypatch, capsys):
    monkeypatch.setenv("WORKTRACK_STORE", str(store_root))
    code = _run_cli(["kits", "Skyline", "--json"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["kits"][0]["producible_count"] == 3


def test_dashboard_json(store_root: Path, capsys):
    code = _run_cli(["dashboard", "Skyline", "--store", str(store_root), "--as-of", "2026-10-19", "--json"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["overall_progress"] == 31


@pytest.mark.parametrize("argv", [
    ["dashboard", "Skyline", "--as-of", "2026-10-19"],
    ["flats", "Skyline"],
    ["flat", "Skyline", "101"],
    ["tiles", "Skyline", "--building", "A"],
    ["final-check", "Skyline"],
    ["billing", "Skyline"],
    ["kits", "Skyline"],
])
def test_read_commands_render_tables(store_root: Path, argv):
    assert _run_cli([*argv, "--store", str(store_root)]) == 0


def test_progress_command_updates_store(store_root: Path):
    code = _run_cli([
        "progress", "Skyline", "plan-1", "101", "t3", "75",
        "--by", "Site Engineer", "--store", str(store_root),
    ])
    assert code == 0
    plans = load_collection(store_root, "work_plans")
    plan = next(p for p in plans if p["id"] == "plan-1")
    assert plan["flat_plans"][0]["tasks"]["t3"]["progress"] == 75


def test_approve_then_bill(store_root: Path, capsys):
    assert _run_cli(["approve", "Skyline", "plan-1", "101", "t2", "--store", str(store_root)]) == 0
    code = _run_cli([
        "bill", "Skyline", "--contractor", "Ravi Electricals",
        "--item", "plan-1:101:t2", "--item", "plan-1:102:t1",
        "--store", str(store_root), "--json",
    ])
    assert code == 0
    out = capsys.readouterr().out
    payload = json.loads(out[out.index("{"):])
    assert payload["item_count"] == 2


def test_reject_requires_remark_value(store_root: Path):
    assert _run_cli(["reject", "Skyline", "plan-1", "101", "t2", "--remark", " ", "--store", str(store_root)]) == 1


def test_unknown_flat_exits_1(store_root: Path):
    assert _run_cli(["flat", "Skyline", "999", "--store", str(store_root)]) == 1


def test_issue_kit_shortage_exits_1(store_root: Path):
    code = _run_cli([
        "issue-kit", "Skyline", "kit-1", "--contractor", "Mehta Works", "--quantity", "9",
        "--store", str(store_root),
    ])
    assert code == 1


def test_bad_bill_item_exits_1(store_root: Path):
    code = _run_cli(["bill", "Skyline", "--contractor", "Ravi Electricals", "--item", "plan-1", "--store", str(store_root)])
    assert code == 1


def test_internal_key_error_is_not_reported_as_missing(store_root: Path, monkeypatch):
    def broken_report(snapshot, project):
        raise KeyError("producible_count")

    monkeypatch.setattr(cli.reports, "kit_stock_report", broken_report)
    with pytest.raises(KeyError):
        cli.main(["kits", "Skyline", "--store", str(store_root)])


def test_unknown_plan_in_write_exits_1(store_root: Path, capsys):
    assert _run_cli(["approve", "Skyline", "plan-9", "101", "t2", "--store", str(store_root)]) == 1
    assert "Not found: plan-9" in capsys.readouterr().out


def test_progress_with_photo(store_root: Path):
    code = _run_cli([
        "progress", "Skyline", "plan-1", "101", "t3", "90", "--by", "Site Engineer",
        "--photo", "site/101-t3.jpg", "--store", str(store_root),
    ])
    assert code == 0
    plan = next(p for p in load_collection(store_root, "work_plans") if p["id"] == "plan-1")
    entry = plan["flat_plans"][0]["tasks"]["t3"]["updates"][-1]
    assert entry["photos"][0]["data_uri"] == "site/101-t3.jpg"


def test_approve_with_checklist(store_root: Path, capsys):
    base = ["approve", "Skyline", "plan-3", "101", "p1", "--store", str(store_root)]
    assert _run_cli([*base, "--checked", "c1"]) == 1
    assert "Corners beaded" in capsys.readouterr().out
    assert _run_cli([*base, "--checked", "c1", "--checked", "c2", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["task"]["stage"] == "for_billing"


def test_reject_lists_unchecked_points(store_root: Path, capsys):
    code = _run_cli([
        "reject", "Skyline", "plan-3", "101", "p1", "--remark", "Corners chipped",
        "--checked", "c1", "--store", str(store_root),
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert "unchecked" in out
    assert "Corners beaded" in out


def test_checklist_command(store_root: Path, capsys):
    code = _run_cli(["checklist", "plaster", "--task", "p1", "--add", "Curing done", "--store", str(store_root), "--json"])
    assert code == 0
    added = json.loads(capsys.readouterr().out)
    assert added["point"]["point"] == "Curing done"

    assert _run_cli(["checklist", "plaster", "--task", "p1", "--remove", "c1", "--store", str(store_root)]) == 0
    capsys.readouterr()
    assert _run_cli(["checklist", "plaster", "--store", str(store_root), "--json"]) == 0
    catalog = json.loads(capsys.readouterr().out)
    assert [p["point"] for p in catalog["tasks"][0]["points"]] == ["Corners beaded", "Curing done"]

    assert _run_cli(["checklist", "plaster", "--add", "No task", "--store", str(store_root)]) == 1
    assert _run_cli(["checklist", "roofing", "--store", str(store_root)]) == 1
    assert _run_cli(["checklist", "plaster", "--store", str(store_root)]) == 0
