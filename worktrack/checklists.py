"""Final-check checklists: the points an inspector ticks before approving a task."""

from __future__ import annotations

from typing import Any, Iterable

from .utils import text


def checklist_entry(tile_id: str, task_id: str, checklists: list[dict[str, Any]]) -> dict[str, Any] | None:
    tile_id, task_id = text(tile_id), text(task_id)
    for entry in checklists or []:
        if text(entry.get("work_tile_id")) == tile_id and text(entry.get("task_id")) == task_id:
            return entry
    return None


def checklist_points(tile_id: str, task_id: str, checklists: list[dict[str, Any]]) -> list[dict[str, str]]:
    """Points defined for a task of a tile, in definition order; none gives []."""
    entry = checklist_entry(tile_id, task_id, checklists)
    if entry is None:
        return []
    return [dict(point) for point in entry.get("points") or []]


def checklist_results(points: list[dict[str, str]], checked: Iterable[str] | None) -> dict[str, bool]:
    """Map every point id to whether it was ticked.

    Raises ValueError for a ticked id the checklist does not define.
    """
    ticked = {text(point_id) for point_id in checked or [] if text(point_id)}
    known = {point["id"] for point in points}
    unknown = sorted(ticked - known)
    if unknown:
        raise ValueError(f"Unknown checklist point(s): {', '.join(unknown)}")
    return {point["id"]: point["id"] in ticked for point in points}


def unchecked_points(points: list[dict[str, str]], results: dict[str, bool] | None) -> list[dict[str, str]]:
    results = results or {}
    return [dict(point) for point in points if not results.get(point["id"])]


def task_photos(record: dict[str, Any] | None) -> list[dict[str, Any]]:
    """Photos from every progress update of a task, oldest update first."""
    photos: list[dict[str, Any]] = []
    for entry in (record or {}).get("updates") or []:
        if isinstance(entry, dict):
            photos.extend(photo for photo in entry.get("photos") or [] if isinstance(photo, dict))
    return photos
