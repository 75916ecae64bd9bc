"""Task catalog resolution: which task definitions apply to a tile.

A tile owns default tasks; assignments of that tile to buildings may add
custom tasks. Defaults always win, then the earliest assignment.
"""

from __future__ import annotations

from typing import Any

from .utils import text


def _task_definitions(raw: Any) -> list[dict[str, str]]:
    if not isinstance(raw, list):
        return []
    out: list[dict[str, str]] = []
    for task in raw:
        if not isinstance(task, dict):
            continue
        task_id = text(task.get("id"))
        if task_id:
            out.append({"id": task_id, "label": text(task.get("label"))})
    return out


def _assignment_matches(
    assignment: dict[str, Any],
    tile_id: str,
    project_name: str,
    building_name: str | None,
) -> bool:
    if text(assignment.get("work_tile_id")) != tile_id:
        return False
    if text(assignment.get("project_name")) != project_name:
        return False
    if building_name is not None and text(assignment.get("building_name")) != building_name:
        return False
    return True


def resolve_tasks(
    tile_id: str,
    project_name: str,
    assignments: list[dict[str, Any]],
    tile_default_tasks: list[dict[str, Any]],
    building_name: str | None = None,
) -> list[dict[str, str]]:
    """
    De-duplicated task definitions for a tile within a project.

    Defaults are inserted first in tile order; custom tasks from matching
    assignments follow and are skipped when their id is already known, so a
    custom task never relabels a default or an earlier custom task. Passing
    ``building_name`` restricts the custom tasks to that building's
    assignments.
    """
    tile_id = text(tile_id)
    project_name = text(project_name)
    resolved: dict[str, dict[str, str]] = {}

    for task in _task_definitions(tile_default_tasks):
        resolved.setdefault(task["id"], task)

    for assignment in assignments or []:
        if not isinstance(assignment, dict):
            continue
        if not _assignment_matches(assignment, tile_id, project_name, building_name):
            continue
        for task in _task_definitions(assignment.get("custom_tasks")):
            resolved.setdefault(task["id"], task)

    return list(resolved.values())


def tiles_by_id(work_tiles: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    by_id: dict[str, dict[str, Any]] = {}
    for tile in work_tiles or []:
        if not isinstance(tile, dict):
            continue
        tile_id = text(tile.get("id"))
        if tile_id and tile_id not in by_id:
            by_id[tile_id] = tile
    return by_id


def assigned_tiles(
    project_name: str,
    building_name: str,
    assignments: list[dict[str, Any]],
    work_tiles: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Tiles assigned to a building, in first-assignment order, without repeats.

    Assignments pointing at a tile that no longer exists are ignored.
    """
    by_id = tiles_by_id(work_tiles)
    seen: set[str] = set()
    out: list[dict[str, Any]] = []
    for assignment in assignments or []:
        if not isinstance(assignment, dict):
            continue
        if text(assignment.get("project_name")) != text(project_name):
            continue
        if text(assignment.get("building_name")) != text(building_name):
            continue
        tile_id = text(assignment.get("work_tile_id"))
        if tile_id in seen or tile_id not in by_id:
            continue
        seen.add(tile_id)
        out.append(by_id[tile_id])
    return out


def building_catalog(
    project_name: str,
    building_name: str,
    assignments: list[dict[str, Any]],
    work_tiles: list[dict[str, Any]],
) -> list[tuple[dict[str, Any], list[dict[str, str]]]]:
    """Every tile assigned to a building paired with its resolved tasks."""
    catalog: list[tuple[dict[str, Any], list[dict[str, str]]]] = []
    for tile in assigned_tiles(project_name, building_name, assignments, work_tiles):
        tasks = resolve_tasks(
            text(tile.get("id")),
            project_name,
            assignments,
            tile.get("tasks") or [],
            building_name=building_name,
        )
        catalog.append((tile, tasks))
    return catalog


def task_label(
    tile_id: str,
    task_id: str,
    project_name: str,
    assignments: list[dict[str, Any]],
    work_tiles: list[dict[str, Any]],
    building_name: str | None = None,
) -> str:
    """Display label for a task id, falling back to the id itself.

    With ``building_name`` only that building's custom tasks are consulted.
    """
    tile = tiles_by_id(work_tiles).get(text(tile_id))
    defaults = tile.get("tasks") if isinstance(tile, dict) else []
    for task in resolve_tasks(tile_id, project_name, assignments, defaults or [], building_name=building_name):
        if task["id"] == text(task_id):
            return task["label"] or task["id"]
    return text(task_id)
