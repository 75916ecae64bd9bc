"""Locate the authoritative progress record for a (flat, tile, task) key.

Several work plans may cover the same building and tile. When more than one
of them holds the same flat/task key, the plan created last wins; plans with
equal or missing ``created_at`` are ordered by id, greater id winning. Every
lookup in the package goes through ``plan_order_key`` so the choice is the
same everywhere.
"""

from __future__ import annotations

from typing import Any

from .utils import text, timestamp_or_floor

TaskKey = tuple[str, str, str, str]  # (building_name, work_tile_id, flat_no, task_id)


def plan_order_key(plan: dict[str, Any]) -> tuple[float, str]:
    return (timestamp_or_floor(plan.get("created_at")), text(plan.get("id")))


def _plan_matches(
    plan: dict[str, Any],
    building_name: str | None,
    tile_id: str | None,
    project_name: str | None,
) -> bool:
    if building_name is not None and text(plan.get("building_name")) != building_name:
        return False
    if tile_id is not None and text(plan.get("work_tile_id")) != tile_id:
        return False
    if project_name is not None and text(plan.get("project_name")) != project_name:
        return False
    return True


def ordered_plans(
    work_plans: list[dict[str, Any]],
    *,
    building_name: str | None = None,
    tile_id: str | None = None,
    project_name: str | None = None,
) -> list[dict[str, Any]]:
    """Matching plans, oldest first; the last one is the most authoritative."""
    matching = [
        plan for plan in work_plans or []
        if isinstance(plan, dict) and _plan_matches(plan, building_name, tile_id, project_name)
    ]
    return sorted(matching, key=plan_order_key)


def flat_plan_for(plan: dict[str, Any], flat_no: str) -> dict[str, Any] | None:
    """First flat plan of ``plan`` for ``flat_no``."""
    for flat_plan in plan.get("flat_plans") or []:
        if isinstance(flat_plan, dict) and text(flat_plan.get("flat_no")) == flat_no:
            return flat_plan
    return None


def _flat_tasks(flat_plan: dict[str, Any] | None) -> dict[str, Any]:
    tasks = flat_plan.get("tasks") if isinstance(flat_plan, dict) else None
    return tasks if isinstance(tasks, dict) else {}


def locate_task(
    flat_no: str,
    building_name: str,
    tile_id: str,
    task_id: str,
    work_plans: list[dict[str, Any]],
    project_name: str | None = None,
) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    """Return ``(plan, record)`` for the authoritative record, or ``(None, None)``."""
    flat_no, task_id = text(flat_no), text(task_id)
    plans = ordered_plans(
        work_plans,
        building_name=text(building_name),
        tile_id=text(tile_id),
        project_name=text(project_name) if project_name is not None else None,
    )
    for plan in reversed(plans):
        tasks = _flat_tasks(flat_plan_for(plan, flat_no))
        if task_id in tasks:
            record = tasks[task_id]
            return plan, record if isinstance(record, dict) else {}
    return None, None


def find_progress(
    flat_no: str,
    building_name: str,
    tile_id: str,
    task_id: str,
    work_plans: list[dict[str, Any]],
    project_name: str | None = None,
) -> dict[str, Any] | None:
    _, record = locate_task(flat_no, building_name, tile_id, task_id, work_plans, project_name)
    return record


def flat_task_index(
    flat_no: str,
    building_name: str,
    tile_id: str,
    work_plans: list[dict[str, Any]],
    project_name: str | None = None,
) -> dict[str, tuple[dict[str, Any], dict[str, Any]]]:
    """Authoritative ``task_id -> (plan, record)`` for one flat and tile."""
    flat_no = text(flat_no)
    index: dict[str, tuple[dict[str, Any], dict[str, Any]]] = {}
    plans = ordered_plans(
        work_plans,
        building_name=text(building_name),
        tile_id=text(tile_id),
        project_name=text(project_name) if project_name is not None else None,
    )
    for plan in plans:
        for task_id, record in _flat_tasks(flat_plan_for(plan, flat_no)).items():
            index[text(task_id)] = (plan, record if isinstance(record, dict) else {})
    return index


def authoritative_records(
    work_plans: list[dict[str, Any]],
    project_name: str | None = None,
) -> dict[TaskKey, tuple[dict[str, Any], dict[str, Any]]]:
    """Every task key across the plans mapped to its winning ``(plan, record)``."""
    result: dict[TaskKey, tuple[dict[str, Any], dict[str, Any]]] = {}
    plans = ordered_plans(
        work_plans,
        project_name=text(project_name) if project_name is not None else None,
    )
    for plan in plans:
        building = text(plan.get("building_name"))
        tile_id = text(plan.get("work_tile_id"))
        seen_flats: set[str] = set()
        for flat_plan in plan.get("flat_plans") or []:
            if not isinstance(flat_plan, dict):
                continue
            flat_no = text(flat_plan.get("flat_no"))
            if flat_no in seen_flats:
                continue
            seen_flats.add(flat_no)
            for task_id, record in _flat_tasks(flat_plan).items():
                key = (building, tile_id, flat_no, text(task_id))
                result[key] = (plan, record if isinstance(record, dict) else {})
    return result


def is_authoritative(
    plan: dict[str, Any],
    flat_no: str,
    task_id: str,
    work_plans: list[dict[str, Any]],
) -> bool:
    winner, _ = locate_task(
        flat_no,
        text(plan.get("building_name")),
        text(plan.get("work_tile_id")),
        task_id,
        work_plans,
        project_name=text(plan.get("project_name")),
    )
    return winner is not None and text(winner.get("id")) == text(plan.get("id"))


def ambiguous_task_keys(work_plans: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Task keys held by more than one plan, with the plan ids in winning order."""
    holders: dict[tuple[str, str, str, str, str], list[str]] = {}
    for plan in ordered_plans(work_plans):
        project = text(plan.get("project_name"))
        building = text(plan.get("building_name"))
        tile_id = text(plan.get("work_tile_id"))
        seen_flats: set[str] = set()
        for flat_plan in plan.get("flat_plans") or []:
            if not isinstance(flat_plan, dict):
                continue
            flat_no = text(flat_plan.get("flat_no"))
            if flat_no in seen_flats:
                continue
            seen_flats.add(flat_no)
            for task_id in _flat_tasks(flat_plan):
                key = (project, building, tile_id, flat_no, text(task_id))
                holders.setdefault(key, []).append(text(plan.get("id")))

    ambiguous: list[dict[str, Any]] = []
    for (project, building, tile_id, flat_no, task_id), plan_ids in holders.items():
        if len(plan_ids) < 2:
            continue
        ambiguous.append({
            "project_name": project,
            "building_name": building,
            "work_tile_id": tile_id,
            "flat_no": flat_no,
            "task_id": task_id,
            "plan_ids": plan_ids,
            "winning_plan_id": plan_ids[-1],
        })
    return ambiguous
