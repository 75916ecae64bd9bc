"""Shared sample project for report, store, server and CLI tests."""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest

SAMPLE_RAW = {
    "work_tiles": [
        {
            "id": "electrical",
            "name": "Electrical",
            "tasks": [
                {"id": "t1", "label": "Wiring"},
                {"id": "t2", "label": "Switches"},
            ],
        },
        {
            "id": "plaster",
            "name": "Plaster",
            "tasks": [{"id": "p1", "label": "Base coat"}],
        },
    ],
    "assignments": [
        {
            "project_name": "Skyline",
            "building_name": "A",
            "work_tile_id": "electrical",
            "custom_tasks": [
                {"id": "t1", "label": "Rewiring"},
                {"id": "t3", "label": "Fixtures"},
            ],
        },
        {"project_name": "Skyline", "building_name": "A", "work_tile_id": "plaster", "custom_tasks": []},
        {"project_name": "Skyline", "building_name": "B", "work_tile_id": "electrical", "custom_tasks": []},
    ],
    "work_plans": [
        {
            "id": "plan-1",
            "project_name": "Skyline",
            "building_name": "A",
            "contractor_name": "Ravi Electricals",
            "work_tile": "Electrical",
            "start_date": "2026-01-10",
            "end_date": "2026-10-22",
            "created_at": "2026-01-10T09:00:00Z",
            "flat_plans": [
                {
                    "flat_no": "101",
                    "type": "2BHK",
                    "tasks": {
                        "t1": {"progress": 100, "final_check_status": "approved", "billed": True},
                        "t2": {"progress": 100, "final_check_status": "pending"},
                        "t3": {"progress": 40},
                    },
                },
                {
                    "flat_no": "102",
                    "type": "2BHK",
                    "tasks": {"t1": {"progress": 100, "final_check_status": "approved"}},
                },
            ],
        },
        {
            "id": "plan-2",
            "project_name": "Skyline",
            "building_name": "A",
            "contractor_name": "Mehta Works",
            "work_tile_id": "electrical",
            "start_date": "2026-02-01",
            "end_date": "2026-12-31",
            "created_at": "2026-02-01T09:00:00Z",
            "flat_plans": [{"flat_no": "201", "type": "3BHK", "tasks": {"t1": {"progress": 0}}}],
        },
        {
            "id": "plan-3",
            "project_name": "Skyline",
            "building_name": "A",
            "contractor_name": "Mehta Works",
            "work_tile": "Plaster",
            "start_date": "2026-03-01",
            "end_date": "2026-10-20",
            "created_at": "2026-03-01T09:00:00Z",
            "flat_plans": [{"flat_no": "101", "type": "2BHK", "tasks": {"p1": {"progress": 100}}}],
        },
    ],
    "flats": [
        {"project_name": "Skyline", "building_name": "A", "floor_name": "1", "flat_no": "101", "type": "2BHK"},
        {"project_name": "Skyline", "building_name": "A", "floor_name": "1", "flat_no": "102", "type": "2BHK"},
        {"project_name": "Skyline", "building_name": "A", "floor_name": "2", "flat_no": "201", "type": "3BHK"},
        {"project_name": "Skyline", "building_name": "B", "floor_name": "1", "flat_no": "B1", "type": "1BHK"},
    ],
    "contractor_bills": [
        {
            "id": "bill-1",
            "bill_number": "BILL-0001",
            "contractor_name": "Ravi Electricals",
            "project_name": "Skyline",
            "date": "2026-05-04",
            "billed_items": [
                {"plan_id": "plan-1", "flat_no": "101", "task_id": "t1", "task_label": "Wiring", "work_tile": "Electrical", "rate": 1200},
            ],
        },
    ],
    "material_kits": [
        {
            "id": "kit-1",
            "name": "Plaster kit",
            "items": [
                {"material_name": "cement", "quantity": 2},
                {"material_name": "sand", "quantity": 1},
            ],
        },
    ],
    "inventory": [
        {"project": "Skyline", "material_name": "cement", "current_stock": 7, "unit": "bag"},
        {"project": "Skyline", "material_name": "sand", "current_stock": 10, "unit": "cft"},
        {"project": "Harbor", "material_name": "cement", "current_stock": 100, "unit": "bag"},
    ],
    "issue_records": [],
    "final_checklists": [
        {
            "work_tile_id": "plaster",
            "task_id": "p1",
            "points": [
                {"id": "c1", "point": "Surface level within 3mm"},
                {"id": "c2", "point": "Corners beaded"},
            ],
        },
    ],
}


def write_store(root: Path, raw: dict) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for name, items in raw.items():
        payload = {"version": 1, "updated_at": "2026-10-01T00:00:00Z", "items": items}
        (root / f"{name}.json").write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return root


@pytest.fixture
def sample_raw() -> dict:
    return copy.deepcopy(SAMPLE_RAW)


@pytest.fixture
def store_root(tmp_path: Path, sample_raw: dict) -> Path:
    return write_store(tmp_path / "store", sample_raw)
