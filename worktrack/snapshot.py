"""Normalize raw collections into the snapshot the core reads.

Raw data may use the legacy camelCase keys and address tiles by name on
work plans. The snapshot is a deep copy with snake_case keys and every plan
joined to its tile by id, so nothing downstream matches tiles by name.
"""

from __future__ import annotations

import copy
import re
from typing import Any

from .utils import text

COLLECTIONS = (
    "work_tiles",
    "assignments",
    "work_plans",
    "flats",
    "contractor_bills",
    "material_kits",
    "inventory",
    "issue_records",
    "final_checklists",
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def snake_key(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", str(key)).lower()


def snake_keys(record: Any) -> dict[str, Any]:
    """Shallow key conversion; an explicit snake_case key beats its camelCase alias."""
    if not isinstance(record, dict):
        return {}
    out: dict[str, Any] = {}
    for key, value in record.items():
        name = snake_key(key)
        if name in out and name != key:
            continue
        out[name] = value
    return out


def _records(raw: Any, key: str) -> list[dict[str, Any]]:
    if not isinstance(raw, dict):
        return []
    value = raw.get(key)
    if value is None:
        camel = re.sub(r"_([a-z])", lambda m: m.group(1).upper(), key)
        value = raw.get(camel)
    if not isinstance(value, list):
        return []
    return [snake_keys(item) for item in value if isinstance(item, dict)]


def _task_definitions(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [snake_keys(task) for task in value if isinstance(task, dict)]


def _merge_tasks(first: list[dict[str, Any]], second: list[dict[str, Any]]) -> list[dict[str, Any]]:
    merged: dict[str, dict[str, Any]] = {}
    for task in [*first, *second]:
        task_id = text(task.get("id"))
        if task_id:
            merged.setdefault(task_id, task)
    return list(merged.values())


def _normalize_tiles(tiles: list[dict[str, Any]], defaults_by_tile: dict[str, Any]) -> list[dict[str, Any]]:
    for tile in tiles:
        tile["id"] = text(tile.get("id"))
        tile["name"] = text(tile.get("name"))
        extra = defaults_by_tile.get(tile["id"]) or defaults_by_tile.get(tile["name"]) or []
        tile["tasks"] = _merge_tasks(_task_definitions(tile.get("tasks")), _task_definitions(extra))
    return tiles


def _update_entry(value: dict[str, Any]) -> dict[str, Any]:
    entry = snake_keys(value)
    photos = entry.get("photos")
    entry["photos"] = [snake_keys(photo) for photo in photos if isinstance(photo, dict)] if isinstance(photos, list) else []
    return entry


def _progress_record(value: Any) -> dict[str, Any]:
    record = snake_keys(value)
    if isinstance(record.get("updates"), list):
        record["updates"] = [_update_entry(entry) for entry in record["updates"] if isinstance(entry, dict)]
    return record


def _normalize_plan(plan: dict[str, Any], tile_ids_by_name: dict[str, str], tile_names_by_id: dict[str, str]) -> dict[str, Any]:
    tile_id = text(plan.get("work_tile_id"))
    tile_name = text(plan.get("work_tile"))
    if not tile_id:
        tile_id = tile_ids_by_name.get(tile_name, "")
    if not tile_name:
        tile_name = tile_names_by_id.get(tile_id, "")
    plan["work_tile_id"] = tile_id
    plan["work_tile"] = tile_name

    flat_plans: list[dict[str, Any]] = []
    for flat_plan in plan.get("flat_plans") or []:
        flat_plan = snake_keys(flat_plan)
        if not flat_plan:
            continue
        tasks = flat_plan.get("tasks")
        flat_plan["flat_no"] = text(flat_plan.get("flat_no"))
        flat_plan["tasks"] = {
            text(task_id): _progress_record(record)
            for task_id, record in (tasks.items() if isinstance(tasks, dict) else [])
        }
        flat_plans.append(flat_plan)
    plan["flat_plans"] = flat_plans
    return plan


def _checklist_points(value: Any) -> list[dict[str, str]]:
    points: list[dict[str, str]] = []
    for point in value if isinstance(value, list) else []:
        point = snake_keys(point)
        if text(point.get("point")):
            points.append({"id": text(point.get("id")), "point": text(point.get("point"))})
    return points


def _normalize_checklists(raw: dict[str, Any]) -> list[dict[str, Any]]:
    """Checklist entries, one per (tile, task).

    The nested ``{tile_id: {task_id: [points]}}`` mapping is flattened into
    entries.
    """
    value = raw.get("final_checklists", raw.get("finalChecklists"))
    if isinstance(value, dict):
        value = [
            {"work_tile_id": tile_id, "task_id": task_id, "points": points}
            for tile_id, by_task in value.items() if isinstance(by_task, dict)
            for task_id, points in by_task.items()
        ]
    checklists: list[dict[str, Any]] = []
    for entry in value if isinstance(value, list) else []:
        entry = snake_keys(entry)
        if not entry:
            continue
        entry["work_tile_id"] = text(entry.get("work_tile_id"))
        entry["task_id"] = text(entry.get("task_id"))
        entry["points"] = _checklist_points(entry.get("points"))
        checklists.append(entry)
    return checklists


def _with_items(records: list[dict[str, Any]], key: str) -> list[dict[str, Any]]:
    for record in records:
        items = record.get(key)
        record[key] = [snake_keys(item) for item in items if isinstance(item, dict)] if isinstance(items, list) else []
    return records


def build_snapshot(raw: dict[str, Any] | None) -> dict[str, Any]:
    """Deep-copied, key-normalized collections keyed by collection name."""
    raw = copy.deepcopy(raw) if isinstance(raw, dict) else {}

    defaults_by_tile = raw.get("default_tasks_by_tile", raw.get("defaultTasksByTile"))
    if not isinstance(defaults_by_tile, dict):
        defaults_by_tile = {}

    tiles = _normalize_tiles(_records(raw, "work_tiles"), defaults_by_tile)
    tile_ids_by_name: dict[str, str] = {}
    tile_names_by_id: dict[str, str] = {}
    for tile in tiles:
        if tile["name"]:
            tile_ids_by_name.setdefault(tile["name"], tile["id"])
        tile_names_by_id.setdefault(tile["id"], tile["name"])

    assignments = _records(raw, "assignments")
    for assignment in assignments:
        tile_id = text(assignment.get("work_tile_id")) or tile_ids_by_name.get(text(assignment.get("work_tile")), "")
        assignment["work_tile_id"] = tile_id
        assignment["custom_tasks"] = _task_definitions(assignment.get("custom_tasks"))

    plans = [
        _normalize_plan(plan, tile_ids_by_name, tile_names_by_id)
        for plan in _records(raw, "work_plans")
    ]

    return {
        "work_tiles": tiles,
        "assignments": assignments,
        "work_plans": plans,
        "flats": _records(raw, "flats"),
        "contractor_bills": _with_items(_records(raw, "contractor_bills"), "billed_items"),
        "material_kits": _with_items(_records(raw, "material_kits"), "items"),
        "inventory": _records(raw, "inventory"),
        "issue_records": _with_items(_records(raw, "issue_records"), "items"),
        "final_checklists": _normalize_checklists(raw),
    }
