"""
Roll per-task stages up into flat, tile and building summaries.

Every summary is computed from task rows produced by ``flat_task_rows``.
A row carries the task's progress and its 6-stage status, so the overall
percentage and the coarse stage always come from the same data.
"""

from __future__ import annotations

from typing import Any, Iterable

from .billing import find_billed_date
from .catalog import building_catalog
from .locator import flat_task_index
from .status import (
    COARSE_COMPLETED,
    COARSE_IN_PROGRESS,
    COARSE_PENDING,
    COARSE_PLANNED,
    STAGE_BILLED,
    STAGE_PLANNED,
    STAGES,
    coarse_badge,
    derive_status,
    stage_badge,
    task_progress,
)
from .utils import round_half_up, text


def _row_progress(row: Any) -> float:
    if isinstance(row, dict):
        return row.get("progress") or 0
    return row or 0


def aggregate_progress(rows: Iterable[Any]) -> int:
    """Mean progress over every registered task, rounded half up.

    Rows are task rows or bare progress numbers. No rows gives 0.
    """
    values = [_row_progress(row) for row in rows]
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def overall_stage(rows: Iterable[dict[str, Any]]) -> str:
    rows = list(rows)
    total = sum(_row_progress(row) for row in rows)
    if rows and aggregate_progress(rows) == 100:
        return COARSE_COMPLETED
    if total > 0:
        return COARSE_IN_PROGRESS
    if any(row.get("stage") == STAGE_PLANNED for row in rows):
        return COARSE_PLANNED
    return COARSE_PENDING


def stage_counts(rows: Iterable[dict[str, Any]]) -> dict[str, int]:
    counts = {stage: 0 for stage in STAGES}
    for row in rows:
        stage = row.get("stage")
        if stage in counts:
            counts[stage] += 1
    return counts


def flat_task_rows(
    project_name: str,
    building_name: str,
    flat_no: str,
    assignments: list[dict[str, Any]],
    work_tiles: list[dict[str, Any]],
    work_plans: list[dict[str, Any]],
    bills: list[dict[str, Any]] | None = None,
) -> list[dict[str, Any]]:
    """One row per registered task of a flat, in catalog order.

    The catalog is every tile assigned to the flat's building with its
    resolved tasks. A task no plan covers is a pending row with progress 0.
    """
    flat_no = text(flat_no)
    rows: list[dict[str, Any]] = []
    for tile, tasks in building_catalog(project_name, building_name, assignments, work_tiles):
        tile_id = text(tile.get("id"))
        index = flat_task_index(flat_no, building_name, tile_id, work_plans, project_name)
        for task in tasks:
            plan, record = index.get(task["id"], (None, None))
            stage = derive_status(record)
            billed_date = None
            if stage == STAGE_BILLED and plan is not None and bills:
                billed_date = find_billed_date(text(plan.get("id")), flat_no, task["id"], bills)
            rows.append({
                "tile_id": tile_id,
                "tile_name": text(tile.get("name")),
                "task_id": task["id"],
                "label": task["label"] or task["id"],
                "planned": record is not None,
                "progress": task_progress(record),
                "stage": stage,
                "badge": stage_badge(stage),
                "final_check_status": text((record or {}).get("final_check_status")) or "pending",
                "plan_id": text(plan.get("id")) if plan else "",
                "contractor_name": text(plan.get("contractor_name")) if plan else "",
                "billed_date": billed_date,
            })
    return rows


def summarize_rows(rows: list[dict[str, Any]]) -> dict[str, Any]:
    progress = aggregate_progress(rows)
    stage = overall_stage(rows)
    return {
        "progress": progress,
        "stage": stage,
        "badge": coarse_badge(stage),
        "task_count": len(rows),
        "planned_count": sum(1 for row in rows if row.get("planned")),
        "stage_counts": stage_counts(rows),
    }


def flat_summary(rows: list[dict[str, Any]]) -> dict[str, Any]:
    return summarize_rows(rows)


def flat_tile_summary(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Group a flat's rows by tile, each group with its own overall figures."""
    groups: dict[str, dict[str, Any]] = {}
    for row in rows:
        group = groups.setdefault(row["tile_id"], {
            "tile_id": row["tile_id"],
            "tile_name": row.get("tile_name", ""),
            "tasks": [],
        })
        group["tasks"].append(row)

    out: list[dict[str, Any]] = []
    for group in groups.values():
        summary = summarize_rows(group["tasks"])
        out.append({**group, **summary})
    return out


def flats_in_building(
    flats: list[dict[str, Any]],
    project_name: str,
    building_name: str | None = None,
) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for flat in flats or []:
        if not isinstance(flat, dict):
            continue
        if text(flat.get("project_name")) != text(project_name):
            continue
        if building_name is not None and text(flat.get("building_name")) != text(building_name):
            continue
        out.append(flat)
    return out


def building_summary(
    project_name: str,
    building_name: str,
    flats: list[dict[str, Any]],
    assignments: list[dict[str, Any]],
    work_tiles: list[dict[str, Any]],
    work_plans: list[dict[str, Any]],
    bills: list[dict[str, Any]] | None = None,
    with_rows: bool = False,
) -> dict[str, Any]:
    """Per-flat summaries of a building plus the building's task-weighted roll-up.

    With ``with_rows`` the underlying task rows are returned under ``rows``.
    """
    all_rows: list[dict[str, Any]] = []
    flat_rows: list[dict[str, Any]] = []
    for flat in flats_in_building(flats, project_name, building_name):
        flat_no = text(flat.get("flat_no"))
        rows = flat_task_rows(project_name, building_name, flat_no, assignments, work_tiles, work_plans, bills)
        all_rows.extend(rows)
        flat_rows.append({
            "flat_no": flat_no,
            "floor_name": text(flat.get("floor_name")),
            "type": text(flat.get("type")),
            **flat_summary(rows),
        })

    summary = {
        "building_name": text(building_name),
        "flat_count": len(flat_rows),
        **summarize_rows(all_rows),
        "flats": flat_rows,
    }
    if with_rows:
        summary["rows"] = all_rows
    return summary
