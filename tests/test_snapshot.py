"""Tests for worktrack.snapshot — key normalization and tile joins."""

from worktrack.snapshot import build_snapshot, snake_key, snake_keys


def test_snake_key():
    assert snake_key("projectName") == "project_name"
    assert snake_key("workTileId") == "work_tile_id"
    assert snake_key("flat_no") == "flat_no"


def test_explicit_snake_key_beats_alias():
    assert snake_keys({"projectName": "old", "project_name": "new"}) == {"project_name": "new"}
    assert snake_keys({"project_name": "new", "projectName": "old"}) == {"project_name": "new"}


def test_legacy_camel_case_collections():
    raw = {
        "workTiles": [{"id": "electrical", "name": "Electrical", "tasks": [{"id": "t1", "label": "Wiring"}]}],
        "assignments": [{"projectName": "Skyline", "buildingName": "A", "workTileId": "electrical", "customTasks": []}],
        "workPlans": [{
            "id": "p1",
            "projectName": "Skyline",
            "buildingName": "A",
            "contractorName": "Ravi",
            "workTile": "Electrical",
            "createdAt": "2026-01-01",
            "flatPlans": [{"flatNo": "101", "tasks": {
                "t1": {"progress": 100, "finalCheckStatus": "approved", "rejectionRemark": ""},
            }}],
        }],
        "contractorBills": [{"id": "b1", "date": "2026-02-01", "billedItems": [{"planId": "p1", "flatNo": "101", "taskId": "t1"}]}],
    }
    snap = build_snapshot(raw)
    plan = snap["work_plans"][0]
    assert plan["work_tile_id"] == "electrical"
    assert plan["work_tile"] == "Electrical"
    assert plan["flat_plans"][0]["flat_no"] == "101"
    assert plan["flat_plans"][0]["tasks"]["t1"]["final_check_status"] == "approved"
    assert snap["assignments"][0]["work_tile_id"] == "electrical"
    assert snap["contractor_bills"][0]["billed_items"][0] == {"plan_id": "p1", "flat_no": "101", "task_id": "t1"}
    assert snap["inventory"] == []


def test_task_ids_are_not_renamed():
    raw = {"work_plans": [{"id": "p1", "flat_plans": [{"flat_no": "1", "tasks": {"taskOne": {"progress": 5}}}]}]}
    tasks = build_snapshot(raw)["work_plans"][0]["flat_plans"][0]["tasks"]
    assert list(tasks) == ["taskOne"]


def test_explicit_tile_id_wins_over_name():
    raw = {
        "work_tiles": [{"id": "electrical", "name": "Electrical"}, {"id": "loft", "name": "Loft"}],
        "work_plans": [{"id": "p1", "work_tile": "Electrical", "work_tile_id": "loft"}],
    }
    assert build_snapshot(raw)["work_plans"][0]["work_tile_id"] == "loft"


def test_unknown_tile_name_leaves_empty_id():
    raw = {"work_tiles": [], "work_plans": [{"id": "p1", "work_tile": "Ghost"}]}
    assert build_snapshot(raw)["work_plans"][0]["work_tile_id"] == ""


def test_default_tasks_by_tile_merged_after_tile_tasks():
    raw = {
        "work_tiles": [{"id": "electrical", "name": "Electrical", "tasks": [{"id": "t1", "label": "Wiring"}]}],
        "defaultTasksByTile": {"electrical": [{"id": "t1", "label": "Other"}, {"id": "t2", "label": "Switches"}]},
    }
    tasks = build_snapshot(raw)["work_tiles"][0]["tasks"]
    assert tasks == [{"id": "t1", "label": "Wiring"}, {"id": "t2", "label": "Switches"}]


def test_raw_input_is_not_mutated(sample_raw):
    before = repr(sample_raw)
    snap = build_snapshot(sample_raw)
    snap["work_plans"][0]["flat_plans"][0]["tasks"]["t1"]["progress"] = 0
    assert repr(sample_raw) == before


def test_none_input():
    snap = build_snapshot(None)
    assert all(value == [] for value in snap.values())


def test_nested_checklists_are_flattened():
    raw = {"finalChecklists": {"plaster": {"p1": [
        {"id": "c1", "point": "Surface level"},
        {"id": "c2", "point": "  "},
    ]}}}
    assert build_snapshot(raw)["final_checklists"] == [
        {"work_tile_id": "plaster", "task_id": "p1", "points": [{"id": "c1", "point": "Surface level"}]},
    ]


def test_update_photos_keep_their_metadata():
    raw = {"work_plans": [{"id": "p1", "flat_plans": [{"flat_no": "1", "tasks": {"t1": {
        "progress": 60,
        "updates": [{"progress": 60, "updatedBy": "Site Engineer", "photos": [
            {"dataUri": "data:image/png;base64,AAAA", "timestamp": "2026-10-01T10:00:00Z"},
            "not-a-photo",
        ]}],
    }}}]}]}
    entry = build_snapshot(raw)["work_plans"][0]["flat_plans"][0]["tasks"]["t1"]["updates"][0]
    assert entry["updated_by"] == "Site Engineer"
    assert entry["photos"] == [{"data_uri": "data:image/png;base64,AAAA", "timestamp": "2026-10-01T10:00:00Z"}]
