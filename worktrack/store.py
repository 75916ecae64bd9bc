"""File-backed collections and the write operations over them.

A store root holds one JSON file per collection, each shaped
``{version, updated_at, items}``. A bare list is accepted on read. Every
write loads a fresh snapshot, mutates it, saves the touched collection
files whole, and returns a payload describing the change.
"""

from __future__ import annotations

import sys
import uuid
from pathlib import Path
from typing import Any

from .billing import billed_keys
from .checklists import checklist_entry, checklist_points, checklist_results, unchecked_points
from .config import COLLECTION_FILES, REJECTED_PROGRESS, STORE_FILE_VERSION
from .kits import inventory_by_material, kit_items, kit_shortages
from .locator import ambiguous_task_keys, flat_plan_for, is_authoritative
from .snapshot import COLLECTIONS, build_snapshot
from .status import (
    FINAL_CHECK_APPROVED,
    FINAL_CHECK_PENDING,
    FINAL_CHECK_REJECTED,
    STAGE_FOR_BILLING,
    derive_status,
    task_progress,
)
from .utils import load_json, now_iso, safe_float, safe_int, save_json, text

_UNREADABLE = object()


def collection_path(store_root: Path, name: str) -> Path:
    if name not in COLLECTION_FILES:
        raise ValueError(f"Unknown collection '{name}'. Valid collections: {', '.join(COLLECTIONS)}")
    return Path(store_root) / COLLECTION_FILES[name]


def load_collection(store_root: Path, name: str) -> list[dict[str, Any]]:
    path = collection_path(store_root, name)
    if not path.exists():
        return []
    payload = load_json(path, default=_UNREADABLE)
    if isinstance(payload, dict):
        payload = payload.get("items")
    if not isinstance(payload, list):
        print(f"[worktrack] Ignoring unreadable collection file: {path}", file=sys.stderr)
        return []
    return [item for item in payload if isinstance(item, dict)]


def save_collection(store_root: Path, name: str, items: list[dict[str, Any]]):
    save_json(collection_path(store_root, name), {
        "version": STORE_FILE_VERSION,
        "updated_at": now_iso(),
        "items": items,
    })


def load_raw(store_root: Path) -> dict[str, list[dict[str, Any]]]:
    return {name: load_collection(store_root, name) for name in COLLECTIONS}


def load_snapshot(store_root: Path, *, warn: bool = False) -> dict[str, Any]:
    """Read and normalize every collection under ``store_root``.

    With ``warn`` set, task keys covered by more than one plan are reported
    on stderr together with the plan that wins.
    """
    snapshot = build_snapshot(load_raw(store_root))
    if warn:
        for entry in ambiguous_task_keys(snapshot["work_plans"]):
            print(
                f"[worktrack] {entry['building_name']}/{entry['flat_no']} task {entry['task_id']} "
                f"is planned by {', '.join(entry['plan_ids'])}; using {entry['winning_plan_id']}",
                file=sys.stderr,
            )
    return snapshot


# ── Task Lookup ───────────────────────────────────────────────────────────────

def _find_plan(snapshot: dict[str, Any], plan_id: str, project_name: str | None = None) -> dict[str, Any]:
    plan_id = text(plan_id)
    for plan in snapshot["work_plans"]:
        if text(plan.get("id")) != plan_id:
            continue
        if project_name is not None and text(plan.get("project_name")) != text(project_name):
            continue
        return plan
    raise KeyError(plan_id)


def _find_task(
    snapshot: dict[str, Any],
    plan_id: str,
    flat_no: str,
    task_id: str,
    project_name: str | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    plan = _find_plan(snapshot, plan_id, project_name)
    flat_plan = flat_plan_for(plan, text(flat_no))
    if flat_plan is None:
        raise KeyError(f"{plan_id}/{flat_no}")
    record = flat_plan["tasks"].get(text(task_id))
    if record is None:
        raise KeyError(f"{plan_id}/{flat_no}/{task_id}")
    return plan, record


def _task_payload(plan: dict[str, Any], flat_no: str, task_id: str, record: dict[str, Any]) -> dict[str, Any]:
    return {
        "plan_id": text(plan.get("id")),
        "flat_no": text(flat_no),
        "task_id": text(task_id),
        "progress": task_progress(record),
        "final_check_status": text(record.get("final_check_status")) or FINAL_CHECK_PENDING,
        "billed": record.get("billed") is True,
        "stage": derive_status(record),
    }


# ── Progress & Final Check ────────────────────────────────────────────────────

def update_task_progress(
    store_root: Path,
    plan_id: str,
    flat_no: str,
    task_id: str,
    progress: Any,
    updated_by: str,
    description: str | None = None,
    photos: list[str] | None = None,
    project_name: str | None = None,
) -> dict[str, Any]:
    """Set a task's progress and append an update-log entry.

    ``photos`` are data URIs or paths stored on the entry with the update
    time. Lower values than the current progress are accepted as-is.
    """
    try:
        value = float(progress)
    except (TypeError, ValueError):
        raise ValueError(f"progress must be a number, got {progress!r}.") from None
    if not 0 <= value <= 100:
        raise ValueError("progress must be between 0 and 100.")
    if not text(updated_by):
        raise ValueError("updated_by is required.")
    value = int(value) if value.is_integer() else value

    snapshot = load_snapshot(store_root)
    plan, record = _find_task(snapshot, plan_id, flat_no, task_id, project_name)
    if record.get("billed") is True:
        raise ValueError(f"Task {task_id} for flat {flat_no} is already billed.")

    record["progress"] = value
    stamp = now_iso()
    updates = record.get("updates") if isinstance(record.get("updates"), list) else []
    updates.append({
        "date": stamp,
        "progress": value,
        "description": text(description),
        "photos": [{"data_uri": text(uri), "timestamp": stamp} for uri in photos or [] if text(uri)],
        "updated_by": text(updated_by),
    })
    record["updates"] = updates
    save_collection(store_root, "work_plans", snapshot["work_plans"])
    return {"status": "updated", "task": _task_payload(plan, flat_no, task_id, record)}


def _final_check_task(
    snapshot: dict[str, Any],
    plan_id: str,
    flat_no: str,
    task_id: str,
    project_name: str | None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    plan, record = _find_task(snapshot, plan_id, flat_no, task_id, project_name)
    if record.get("billed") is True:
        raise ValueError(f"Task {task_id} for flat {flat_no} is already billed.")
    if task_progress(record) != 100:
        raise ValueError(f"Task {task_id} for flat {flat_no} is not at 100% progress.")
    return plan, record


def approve_final_check(
    store_root: Path,
    plan_id: str,
    flat_no: str,
    task_id: str,
    project_name: str | None = None,
    checked: list[str] | None = None,
) -> dict[str, Any]:
    """Pass a task at final check; every checklist point of the task must be ticked."""
    snapshot = load_snapshot(store_root)
    plan, record = _final_check_task(snapshot, plan_id, flat_no, task_id, project_name)
    points = checklist_points(plan.get("work_tile_id"), task_id, snapshot["final_checklists"])
    results = checklist_results(points, checked)
    missing = unchecked_points(points, results)
    if missing:
        raise ValueError(f"Unchecked checklist points: {', '.join(point['point'] for point in missing)}")

    record["final_check_status"] = FINAL_CHECK_APPROVED
    record["rejection_remark"] = ""
    record["checklist_results"] = results
    save_collection(store_root, "work_plans", snapshot["work_plans"])
    return {"status": "approved", "task": _task_payload(plan, flat_no, task_id, record), "unchecked_points": []}


def reject_final_check(
    store_root: Path,
    plan_id: str,
    flat_no: str,
    task_id: str,
    remark: str,
    project_name: str | None = None,
    checked: list[str] | None = None,
) -> dict[str, Any]:
    """Send a task back to work with a remark; its progress drops to ``REJECTED_PROGRESS``.

    The ticked checklist points are stored on the record and the unticked
    ones are returned as ``unchecked_points``.
    """
    remark = text(remark)
    if not remark:
        raise ValueError("A remark is required for rejection.")

    snapshot = load_snapshot(store_root)
    plan, record = _final_check_task(snapshot, plan_id, flat_no, task_id, project_name)
    points = checklist_points(plan.get("work_tile_id"), task_id, snapshot["final_checklists"])
    results = checklist_results(points, checked)

    record["final_check_status"] = FINAL_CHECK_REJECTED
    record["rejection_remark"] = remark
    record["progress"] = REJECTED_PROGRESS
    record["checklist_results"] = results
    save_collection(store_root, "work_plans", snapshot["work_plans"])
    return {
        "status": "rejected",
        "task": _task_payload(plan, flat_no, task_id, record),
        "unchecked_points": unchecked_points(points, results),
    }


# ── Checklists ────────────────────────────────────────────────────────────────

def add_checklist_point(store_root: Path, tile_id: str, task_id: str, point: str) -> dict[str, Any]:
    tile_id, task_id, point = text(tile_id), text(task_id), text(point)
    if not point:
        raise ValueError("Checklist point cannot be empty.")
    if not task_id:
        raise ValueError("task_id is required.")

    snapshot = load_snapshot(store_root)
    if not any(text(tile.get("id")) == tile_id for tile in snapshot["work_tiles"]):
        raise KeyError(tile_id)
    entry = checklist_entry(tile_id, task_id, snapshot["final_checklists"])
    if entry is None:
        entry = {"work_tile_id": tile_id, "task_id": task_id, "points": []}
        snapshot["final_checklists"].append(entry)
    new_point = {"id": f"point-{uuid.uuid4().hex[:12]}", "point": point}
    entry["points"].append(new_point)
    save_collection(store_root, "final_checklists", snapshot["final_checklists"])
    return {"status": "added", "point": new_point, "points": entry["points"]}


def remove_checklist_point(store_root: Path, tile_id: str, task_id: str, point_id: str) -> dict[str, Any]:
    snapshot = load_snapshot(store_root)
    entry = checklist_entry(tile_id, task_id, snapshot["final_checklists"])
    points = entry["points"] if entry else []
    kept = [point for point in points if point["id"] != text(point_id)]
    if len(kept) == len(points):
        raise KeyError(text(point_id))
    entry["points"] = kept
    save_collection(store_root, "final_checklists", snapshot["final_checklists"])
    return {"status": "removed", "point_id": text(point_id), "points": kept}


# ── Billing ───────────────────────────────────────────────────────────────────

def _next_bill_number(bills: list[dict[str, Any]]) -> str:
    highest = 0
    for bill in bills:
        number = text(bill.get("bill_number"))
        if number.startswith("BILL-"):
            highest = max(highest, safe_int(number[5:], 0))
    return f"BILL-{highest + 1:04d}"


def record_bill(
    store_root: Path,
    contractor_name: str,
    project_name: str,
    items: list[dict[str, Any]],
    bill_date: str | None = None,
) -> dict[str, Any]:
    """Bill ``for_billing`` tasks to a contractor and flag their records billed.

    Each item names ``plan_id``, ``flat_no`` and ``task_id``; ``rate`` and
    ``task_label`` are copied onto the bill when given. Nothing is summed.
    """
    contractor_name = text(contractor_name)
    project_name = text(project_name)
    if not contractor_name:
        raise ValueError("contractor_name is required.")
    if not project_name:
        raise ValueError("project_name is required.")
    if not items:
        raise ValueError("At least one item is required.")

    snapshot = load_snapshot(store_root)
    already_billed = billed_keys(snapshot["contractor_bills"])
    seen: set[tuple[str, str, str]] = set()
    billed_items: list[dict[str, Any]] = []
    records: list[dict[str, Any]] = []

    for item in items:
        item = item if isinstance(item, dict) else {}
        key = (text(item.get("plan_id")), text(item.get("flat_no")), text(item.get("task_id")))
        if not all(key):
            raise ValueError("Each item needs plan_id, flat_no and task_id.")
        if key in seen:
            raise ValueError(f"Duplicate bill item {'/'.join(key)}.")
        seen.add(key)

        plan, record = _find_task(snapshot, *key, project_name=project_name)
        if record.get("billed") is True or key in already_billed:
            raise ValueError(f"Task {key[2]} for flat {key[1]} is already billed.")
        if text(plan.get("contractor_name")) != contractor_name:
            raise ValueError(f"Plan {key[0]} belongs to contractor '{text(plan.get('contractor_name'))}'.")
        if not is_authoritative(plan, key[1], key[2], snapshot["work_plans"]):
            raise ValueError(f"Plan {key[0]} is not the current plan for task {key[2]} in flat {key[1]}.")
        if derive_status(record) != STAGE_FOR_BILLING:
            raise ValueError(f"Task {key[2]} for flat {key[1]} has not passed final check.")

        billed_item = {
            "plan_id": key[0],
            "flat_no": key[1],
            "task_id": key[2],
            "task_label": text(item.get("task_label")),
            "work_tile": text(plan.get("work_tile")),
        }
        if item.get("rate") is not None:
            billed_item["rate"] = safe_float(item.get("rate"))
        billed_items.append(billed_item)
        records.append(record)

    bill = {
        "id": f"bill-{uuid.uuid4().hex[:12]}",
        "bill_number": _next_bill_number(snapshot["contractor_bills"]),
        "contractor_name": contractor_name,
        "project_name": project_name,
        "date": text(bill_date) or now_iso(),
        "billed_items": billed_items,
    }
    for record in records:
        record["billed"] = True

    snapshot["contractor_bills"].append(bill)
    save_collection(store_root, "work_plans", snapshot["work_plans"])
    save_collection(store_root, "contractor_bills", snapshot["contractor_bills"])
    return {"status": "billed", "bill": bill, "item_count": len(billed_items)}


# ── Material Kits ─────────────────────────────────────────────────────────────

def issue_kit(
    store_root: Path,
    project_name: str,
    kit_id: str,
    quantity: Any,
    contractor_name: str,
    building_name: str,
    flat_no: str,
    remarks: str | None = None,
) -> dict[str, Any]:
    """Issue ``quantity`` kits to a contractor, deducting project stock."""
    count = safe_int(quantity, 0)
    if count <= 0:
        raise ValueError("quantity must be a positive integer.")
    if not text(contractor_name):
        raise ValueError("contractor_name is required.")

    snapshot = load_snapshot(store_root)
    kit = next((k for k in snapshot["material_kits"] if text(k.get("id")) == text(kit_id)), None)
    if kit is None:
        raise KeyError(text(kit_id))
    items = kit_items(kit)
    if not items:
        raise ValueError(f"Kit {kit_id} has no materials.")

    stock = inventory_by_material(snapshot["inventory"], project_name)
    short = kit_shortages(kit, count, stock)
    if short:
        names = ", ".join(
            f"{entry['material_name']} (need {entry['required']}, have {entry['in_stock']})"
            for entry in short
        )
        raise ValueError(f"Insufficient stock: {names}")

    issued: list[dict[str, Any]] = []
    for item in items:
        remaining = item["quantity"] * count
        issued.append({"material_name": item["material_name"], "quantity": remaining})
        for row in snapshot["inventory"]:
            if remaining <= 0:
                break
            if text(row.get("project")) != text(project_name) or text(row.get("material_name")) != item["material_name"]:
                continue
            available = safe_float(row.get("current_stock"))
            take = min(available, remaining)
            if take <= 0:
                continue
            left = available - take
            row["current_stock"] = int(left) if float(left).is_integer() else left
            remaining -= take

    record = {
        "id": f"issue-{uuid.uuid4().hex[:12]}",
        "date": now_iso(),
        "project_name": text(project_name),
        "contractor_name": text(contractor_name),
        "building_name": text(building_name),
        "flat_no": text(flat_no),
        "kit_id": text(kit_id),
        "items": issued,
        "remarks": text(remarks),
    }
    snapshot["issue_records"].append(record)
    save_collection(store_root, "inventory", snapshot["inventory"])
    save_collection(store_root, "issue_records", snapshot["issue_records"])
    return {"status": "issued", "issue": record, "quantity": count}
