"""Screen-level views built from a snapshot.

Each view is a thin caller of the core: rows come from ``flat_task_rows``
or ``authoritative_records``, stages from ``derive_status``. Nothing here
decides status on its own.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from .aggregate import (
    building_summary,
    flat_summary,
    flat_task_rows,
    flat_tile_summary,
    flats_in_building,
    stage_counts,
    summarize_rows,
)
from .catalog import building_catalog, task_label, tiles_by_id
from .checklists import checklist_points, task_photos, unchecked_points
from .config import DEADLINE_WINDOW_DAYS
from .kits import compute_producibility, inventory_by_material
from .locator import authoritative_records, flat_plan_for, flat_task_index
from .status import (
    COARSE_COMPLETED,
    COARSE_STAGES,
    STAGE_FINAL_CHECK,
    STAGE_FOR_BILLING,
    coarse_stage,
    derive_status,
    stage_badge,
    task_progress,
)
from .utils import parse_dt, text


def _project_buildings(snapshot: dict[str, Any], project: str) -> list[str]:
    names: list[str] = []
    for record in [*snapshot["flats"], *snapshot["assignments"]]:
        if text(record.get("project_name")) != project:
            continue
        name = text(record.get("building_name"))
        if name and name not in names:
            names.append(name)
    return names


def _rows_for_flat(snapshot: dict[str, Any], project: str, flat: dict[str, Any], with_bills: bool = False):
    return flat_task_rows(
        project,
        text(flat.get("building_name")),
        text(flat.get("flat_no")),
        snapshot["assignments"],
        snapshot["work_tiles"],
        snapshot["work_plans"],
        snapshot["contractor_bills"] if with_bills else None,
    )


def _flat_header(flat: dict[str, Any]) -> dict[str, str]:
    return {
        "flat_no": text(flat.get("flat_no")),
        "building_name": text(flat.get("building_name")),
        "floor_name": text(flat.get("floor_name")),
        "type": text(flat.get("type")),
    }


def _matches_search(flat: dict[str, Any], search: str | None) -> bool:
    needle = text(search).lower()
    return not needle or needle in text(flat.get("flat_no")).lower()


# ── Flats ─────────────────────────────────────────────────────────────────────

def flat_status_list(
    snapshot: dict[str, Any],
    project: str,
    building: str | None = None,
    search: str | None = None,
    max_progress: float | None = None,
) -> dict[str, Any]:
    """Overall progress and stage for each flat, filtered.

    ``max_progress`` keeps only flats strictly under that percentage.
    """
    project = text(project)
    out: list[dict[str, Any]] = []
    for flat in flats_in_building(snapshot["flats"], project, building):
        if not _matches_search(flat, search):
            continue
        summary = flat_summary(_rows_for_flat(snapshot, project, flat))
        if max_progress is not None and summary["progress"] >= max_progress:
            continue
        out.append({**_flat_header(flat), **summary})
    return {"project": project, "flats": out, "count": len(out)}


def flat_detail(snapshot: dict[str, Any], project: str, flat_no: str) -> dict[str, Any]:
    project, flat_no = text(project), text(flat_no)
    flat = next(
        (f for f in flats_in_building(snapshot["flats"], project) if text(f.get("flat_no")) == flat_no),
        None,
    )
    if flat is None:
        raise KeyError(flat_no)
    rows = _rows_for_flat(snapshot, project, flat, with_bills=True)
    return {
        **_flat_header(flat),
        **flat_summary(rows),
        "tiles": flat_tile_summary(rows),
    }


def tile_status_matrix(
    snapshot: dict[str, Any],
    project: str,
    building: str | None = None,
    tile_id: str | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    """Flat by tile grid; each cell is the tile's roll-up for that flat."""
    project = text(project)
    tile_filter = text(tile_id) or None
    columns: dict[str, dict[str, str]] = {}
    matrix: list[dict[str, Any]] = []

    for flat in flats_in_building(snapshot["flats"], project, building):
        if not _matches_search(flat, search):
            continue
        cells: dict[str, Any] = {}
        for group in flat_tile_summary(_rows_for_flat(snapshot, project, flat)):
            if tile_filter and group["tile_id"] != tile_filter:
                continue
            columns.setdefault(group["tile_id"], {"id": group["tile_id"], "name": group["tile_name"]})
            cells[group["tile_id"]] = group
        if tile_filter and not cells:
            continue
        matrix.append({**_flat_header(flat), "cells": cells})

    return {"project": project, "tiles": list(columns.values()), "flats": matrix}


# ── Dashboard ─────────────────────────────────────────────────────────────────

def project_dashboard(snapshot: dict[str, Any], project: str, as_of: Any) -> dict[str, Any]:
    """Project-wide counts, progress and deadlines as of a given date."""
    project = text(project)
    start = parse_dt(as_of)
    if start is None:
        raise ValueError(f"Invalid as_of date: {as_of!r}")
    end = start + timedelta(days=DEADLINE_WINDOW_DAYS)

    all_rows: list[dict[str, Any]] = []
    buildings: list[dict[str, Any]] = []
    flats_by_stage = {stage: 0 for stage in COARSE_STAGES}
    for building in _project_buildings(snapshot, project):
        summary = building_summary(
            project,
            building,
            snapshot["flats"],
            snapshot["assignments"],
            snapshot["work_tiles"],
            snapshot["work_plans"],
            with_rows=True,
        )
        for flat in summary["flats"]:
            flats_by_stage[flat["stage"]] += 1
        buildings.append({
            "building_name": building,
            "flat_count": summary["flat_count"],
            "progress": summary["progress"],
            "stage": summary["stage"],
        })
        all_rows.extend(summary["rows"])

    tiles: dict[str, dict[str, Any]] = {}
    for row in all_rows:
        entry = tiles.setdefault(row["tile_id"], {
            "tile_id": row["tile_id"],
            "tile_name": row["tile_name"],
            "total": 0,
            "completed": 0,
            "pending": 0,
        })
        entry["total"] += 1
        if coarse_stage(row["stage"]) == COARSE_COMPLETED:
            entry["completed"] += 1
        else:
            entry["pending"] += 1

    plans = [p for p in snapshot["work_plans"] if text(p.get("project_name")) == project]
    contractors = sorted({text(p.get("contractor_name")) for p in plans if text(p.get("contractor_name"))})
    deadlines: list[dict[str, Any]] = []
    for plan in plans:
        end_date = parse_dt(plan.get("end_date"))
        if end_date is None or not start <= end_date <= end:
            continue
        deadlines.append({
            "plan_id": text(plan.get("id")),
            "building_name": text(plan.get("building_name")),
            "contractor_name": text(plan.get("contractor_name")),
            "work_tile": text(plan.get("work_tile")),
            "end_date": text(plan.get("end_date")),
        })
    deadlines.sort(key=lambda item: (parse_dt(item["end_date"]), item["plan_id"]))

    overall = summarize_rows(all_rows)
    return {
        "project": project,
        "as_of": start.date().isoformat(),
        "building_count": len(buildings),
        "flat_count": len(flats_in_building(snapshot["flats"], project)),
        "overall_progress": overall["progress"],
        "overall_stage": overall["stage"],
        "stage_distribution": stage_counts(all_rows),
        "flats_by_stage": flats_by_stage,
        "buildings": buildings,
        "tiles": list(tiles.values()),
        "active_contractors": contractors,
        "active_contractor_count": len(contractors),
        "upcoming_deadlines": deadlines,
    }


# ── Queues ────────────────────────────────────────────────────────────────────

def _queued_records(snapshot: dict[str, Any], project: str, stage: str):
    for (building, tile_id, flat_no, task_id), (plan, record) in authoritative_records(
        snapshot["work_plans"], project
    ).items():
        if derive_status(record) != stage:
            continue
        label = task_label(
            tile_id, task_id, project, snapshot["assignments"], snapshot["work_tiles"], building_name=building,
        )
        yield plan, record, {
            "plan_id": text(plan.get("id")),
            "building_name": building,
            "work_tile_id": tile_id,
            "work_tile": text(plan.get("work_tile")),
            "flat_no": flat_no,
            "task_id": task_id,
            "label": label,
            "progress": task_progress(record),
        }


def final_check_queue(snapshot: dict[str, Any], project: str) -> dict[str, Any]:
    """Tasks at 100% awaiting inspection, grouped by plan."""
    project = text(project)
    plans: dict[str, dict[str, Any]] = {}
    for plan, record, item in _queued_records(snapshot, project, STAGE_FINAL_CHECK):
        group = plans.setdefault(item["plan_id"], {
            "plan_id": item["plan_id"],
            "building_name": item["building_name"],
            "contractor_name": text(plan.get("contractor_name")),
            "work_tile": item["work_tile"],
            "tasks": [],
        })
        group["tasks"].append({
            "flat_no": item["flat_no"],
            "task_id": item["task_id"],
            "label": item["label"],
            "progress": item["progress"],
            "final_check_status": text(record.get("final_check_status")) or "pending",
        })
    groups = list(plans.values())
    return {"project": project, "plans": groups, "count": sum(len(g["tasks"]) for g in groups)}


def billing_queue(snapshot: dict[str, Any], project: str) -> dict[str, Any]:
    """Approved, unbilled tasks grouped by contractor. Amounts are not computed."""
    project = text(project)
    contractors: dict[str, dict[str, Any]] = {}
    for plan, _, item in _queued_records(snapshot, project, STAGE_FOR_BILLING):
        name = text(plan.get("contractor_name"))
        group = contractors.setdefault(name, {"contractor_name": name, "items": []})
        group["items"].append({key: item[key] for key in (
            "plan_id", "building_name", "work_tile", "flat_no", "task_id", "label",
        )})
    groups = sorted(contractors.values(), key=lambda g: g["contractor_name"])
    for group in groups:
        group["item_count"] = len(group["items"])
    return {"project": project, "contractors": groups, "count": sum(g["item_count"] for g in groups)}


# ── Final Check ───────────────────────────────────────────────────────────────

def final_check_detail(
    snapshot: dict[str, Any],
    project: str,
    plan_id: str,
    flat_no: str,
    task_id: str,
) -> dict[str, Any]:
    """What an inspector sees for one task: checklist state, photos and update log."""
    project, plan_id, flat_no, task_id = text(project), text(plan_id), text(flat_no), text(task_id)
    plan = next((
        p for p in snapshot["work_plans"]
        if text(p.get("id")) == plan_id and text(p.get("project_name")) == project
    ), None)
    if plan is None:
        raise KeyError(plan_id)
    flat_plan = flat_plan_for(plan, flat_no)
    record = flat_plan["tasks"].get(task_id) if flat_plan else None
    if record is None:
        raise KeyError(f"{plan_id}/{flat_no}/{task_id}")

    building = text(plan.get("building_name"))
    tile_id = text(plan.get("work_tile_id"))
    points = checklist_points(tile_id, task_id, snapshot["final_checklists"])
    results = record.get("checklist_results") if isinstance(record.get("checklist_results"), dict) else {}
    stage = derive_status(record)
    return {
        "plan_id": plan_id,
        "building_name": building,
        "contractor_name": text(plan.get("contractor_name")),
        "work_tile_id": tile_id,
        "work_tile": text(plan.get("work_tile")),
        "flat_no": flat_no,
        "task_id": task_id,
        "label": task_label(
            tile_id, task_id, project, snapshot["assignments"], snapshot["work_tiles"], building_name=building,
        ),
        "progress": task_progress(record),
        "stage": stage,
        "badge": stage_badge(stage),
        "final_check_status": text(record.get("final_check_status")) or "pending",
        "rejection_remark": text(record.get("rejection_remark")),
        "checklist": [{**point, "checked": bool(results.get(point["id"]))} for point in points],
        "unchecked_points": unchecked_points(points, results),
        "photos": task_photos(record),
        "updates": list(record.get("updates") or []),
    }


def checklist_catalog(snapshot: dict[str, Any], tile_id: str) -> dict[str, Any]:
    """Checklist points per task of a tile; tasks without points are listed empty."""
    tile = tiles_by_id(snapshot["work_tiles"]).get(text(tile_id))
    if tile is None:
        raise KeyError(text(tile_id))
    labels = {text(task.get("id")): text(task.get("label")) for task in tile.get("tasks") or []}
    for entry in snapshot["final_checklists"]:
        if text(entry.get("work_tile_id")) == tile["id"]:
            labels.setdefault(text(entry.get("task_id")), "")
    tasks = [
        {
            "task_id": task_id,
            "label": label or task_id,
            "points": checklist_points(tile["id"], task_id, snapshot["final_checklists"]),
        }
        for task_id, label in labels.items()
    ]
    return {"tile_id": tile["id"], "tile_name": tile["name"], "tasks": tasks}


# ── Planning & Kits ───────────────────────────────────────────────────────────

def planning_task_stages(snapshot: dict[str, Any], project: str, building: str, tile_id: str) -> dict[str, Any]:
    """Current stage of every (flat, task) for one building and tile.

    Planners use it to avoid planning work that another plan already holds.
    """
    project, building, tile_id = text(project), text(building), text(tile_id)
    tile = tiles_by_id(snapshot["work_tiles"]).get(tile_id)
    tasks: list[dict[str, str]] = []
    for catalog_tile, catalog_tasks in building_catalog(project, building, snapshot["assignments"], snapshot["work_tiles"]):
        if text(catalog_tile.get("id")) == tile_id:
            tasks = catalog_tasks
            break

    flats: list[dict[str, Any]] = []
    for flat in flats_in_building(snapshot["flats"], project, building):
        flat_no = text(flat.get("flat_no"))
        index = flat_task_index(flat_no, building, tile_id, snapshot["work_plans"], project)
        stages: dict[str, Any] = {}
        for task in tasks:
            plan, record = index.get(task["id"], (None, None))
            stage = derive_status(record)
            stages[task["id"]] = {
                "stage": stage,
                "badge": stage_badge(stage),
                "plan_id": text(plan.get("id")) if plan else "",
            }
        flats.append({
            "flat_no": flat_no,
            "type": text(flat.get("type")),
            "tasks": stages,
            "planned_task_ids": [task_id for task_id, entry in stages.items() if entry["plan_id"]],
        })

    return {
        "project": project,
        "building_name": building,
        "tile_id": tile_id,
        "tile_name": text(tile.get("name")) if tile else "",
        "tasks": tasks,
        "flats": flats,
    }


def kit_stock_report(snapshot: dict[str, Any], project: str) -> dict[str, Any]:
    project = text(project)
    stock = inventory_by_material(snapshot["inventory"], project)
    kits: list[dict[str, Any]] = []
    for kit in snapshot["material_kits"]:
        kits.append({
            "kit_id": text(kit.get("id")),
            "name": text(kit.get("name")),
            "items": kit.get("items") or [],
            **compute_producibility(kit, stock),
        })
    return {"project": project, "kits": kits, "stock": stock}
