"""Tests for worktrack.catalog — task resolution and building catalogs."""

from worktrack.catalog import assigned_tiles, building_catalog, resolve_tasks, task_label


TILES = [
    {"id": "electrical", "name": "Electrical", "tasks": [{"id": "t1", "label": "Wiring"}]},
    {"id": "loft", "name": "Loft", "tasks": []},
]


def _assignment(building, tile_id, custom=None, project="Skyline"):
    return {
        "project_name": project,
        "building_name": building,
        "work_tile_id": tile_id,
        "custom_tasks": custom or [],
    }


class TestResolveTasks:
    def test_custom_task_with_default_id_keeps_default_label(self):
        assignments = [_assignment("A", "electrical", [
            {"id": "t1", "label": "Rewiring"},
            {"id": "t2", "label": "Fixtures"},
        ])]
        tasks = resolve_tasks("electrical", "Skyline", assignments, [{"id": "t1", "label": "Wiring"}])
        assert tasks == [
            {"id": "t1", "label": "Wiring"},
            {"id": "t2", "label": "Fixtures"},
        ]

    def test_earlier_assignment_custom_task_wins(self):
        assignments = [
            _assignment("A", "electrical", [{"id": "t9", "label": "First"}]),
            _assignment("B", "electrical", [{"id": "t9", "label": "Second"}]),
        ]
        tasks = resolve_tasks("electrical", "Skyline", assignments, [])
        assert tasks == [{"id": "t9", "label": "First"}]

    def test_other_project_and_tile_ignored(self):
        assignments = [
            _assignment("A", "electrical", [{"id": "x"}], project="Harbor"),
            _assignment("A", "loft", [{"id": "y", "label": "Loft task"}]),
        ]
        assert resolve_tasks("electrical", "Skyline", assignments, []) == []

    def test_building_scope_limits_custom_tasks(self):
        assignments = [
            _assignment("A", "electrical", [{"id": "t2", "label": "Fixtures"}]),
            _assignment("B", "electrical", [{"id": "t3", "label": "Panels"}]),
        ]
        tasks = resolve_tasks("electrical", "Skyline", assignments, [], building_name="B")
        assert [t["id"] for t in tasks] == ["t3"]

    def test_unknown_tile_is_empty(self):
        assert resolve_tasks("missing", "Skyline", [], []) == []

    def test_malformed_entries_skipped(self):
        assignments = [None, "junk", _assignment("A", "electrical", [None, {"label": "no id"}, {"id": "t2"}])]
        tasks = resolve_tasks("electrical", "Skyline", assignments, [{"id": ""}, {"id": "t1", "label": "Wiring"}])
        assert tasks == [{"id": "t1", "label": "Wiring"}, {"id": "t2", "label": ""}]

    def test_inputs_not_mutated(self):
        defaults = [{"id": "t1", "label": "Wiring"}]
        assignments = [_assignment("A", "electrical", [{"id": "t2", "label": "Fixtures"}])]
        snapshot = (repr(defaults), repr(assignments))
        resolve_tasks("electrical", "Skyline", assignments, defaults)
        assert (repr(defaults), repr(assignments)) == snapshot


class TestAssignedTiles:
    def test_deduplicated_in_assignment_order(self):
        assignments = [
            _assignment("A", "loft"),
            _assignment("A", "electrical"),
            _assignment("A", "loft"),
            _assignment("B", "electrical"),
        ]
        tiles = assigned_tiles("Skyline", "A", assignments, TILES)
        assert [t["id"] for t in tiles] == ["loft", "electrical"]

    def test_missing_tile_skipped(self):
        tiles = assigned_tiles("Skyline", "A", [_assignment("A", "deleted")], TILES)
        assert tiles == []


def test_building_catalog_pairs_tiles_with_tasks():
    assignments = [
        _assignment("A", "electrical", [{"id": "t2", "label": "Fixtures"}]),
        _assignment("A", "loft"),
    ]
    catalog = building_catalog("Skyline", "A", assignments, TILES)
    assert [(tile["id"], [t["id"] for t in tasks]) for tile, tasks in catalog] == [
        ("electrical", ["t1", "t2"]),
        ("loft", []),
    ]


def test_task_label_falls_back_to_id():
    assignments = [_assignment("A", "electrical", [{"id": "t2", "label": "Fixtures"}])]
    assert task_label("electrical", "t2", "Skyline", assignments, TILES) == "Fixtures"
    assert task_label("electrical", "zz", "Skyline", assignments, TILES) == "zz"


def test_task_label_scoped_to_building():
    assignments = [
        _assignment("B", "electrical", [{"id": "t2", "label": "Conduits"}]),
        _assignment("A", "electrical", [{"id": "t2", "label": "Fixtures"}]),
    ]
    assert task_label("electrical", "t2", "Skyline", assignments, TILES) == "Conduits"
    assert task_label("electrical", "t2", "Skyline", assignments, TILES, building_name="A") == "Fixtures"
