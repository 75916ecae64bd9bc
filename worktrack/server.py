"""
Worktrack API server — read views and write actions over a file-backed store.

Each project name becomes a route prefix. Every request reads a fresh
snapshot from the store; nothing is cached between requests. Write routes
ask the module-level ``has_permission`` predicate first, which hosts replace
with their own role check.

Usage:
    worktrack serve [--port 3100] [--store worktrack_store]
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import reports
from .billing import find_billed_date
from .config import DEFAULT_STORE_DIR
from .store import (
    add_checklist_point,
    approve_final_check,
    issue_kit,
    load_snapshot,
    record_bill,
    reject_final_check,
    remove_checklist_point,
    update_task_progress,
)

PERMISSION_FULL_ACCESS = "full_access"
PERMISSION_WORK_IN_PROCESS = "manage_work_in_process"
PERMISSION_FINAL_WORK = "manage_final_work"
PERMISSION_BILLING = "manage_billing"
PERMISSION_MATERIAL_ISSUE = "manage_material_issue"

# ── In-memory config ───────────────────────────────────────────

store_path: Path = Path(DEFAULT_STORE_DIR)


def _allow_all(permission: str) -> bool:
    return True


has_permission: Callable[[str], bool] = _allow_all

app = FastAPI(title="Worktrack")


# ── Request bodies ─────────────────────────────────────────────

class ProgressUpdateRequest(BaseModel):
    progress: float
    updated_by: str = Field(..., min_length=1)
    description: str | None = None
    photos: list[str] = Field(default_factory=list)


class ApproveRequest(BaseModel):
    checked: list[str] = Field(default_factory=list)


class RejectRequest(BaseModel):
    remark: str = ""
    checked: list[str] = Field(default_factory=list)


class ChecklistPointRequest(BaseModel):
    point: str = Field(..., min_length=1)


class BillItemRequest(BaseModel):
    plan_id: str = Field(..., min_length=1)
    flat_no: str = Field(..., min_length=1)
    task_id: str = Field(..., min_length=1)
    task_label: str = ""
    rate: float | None = None


class BillRequest(BaseModel):
    contractor_name: str = Field(..., min_length=1)
    items: list[BillItemRequest]
    date: str | None = None


class IssueKitRequest(BaseModel):
    quantity: int = 1
    contractor_name: str = Field(..., min_length=1)
    building_name: str = ""
    flat_no: str = ""
    remarks: str | None = None


# ── Helpers ────────────────────────────────────────────────────

def _permitted(permission: str) -> bool:
    return bool(has_permission(permission) or has_permission(PERMISSION_FULL_ACCESS))


def _forbidden(permission: str) -> JSONResponse:
    return JSONResponse({"error": f"Permission '{permission}' required"}, status_code=403)


def _not_found(exc: KeyError) -> JSONResponse:
    missing = exc.args[0] if exc.args else ""
    return JSONResponse({"error": f"Not found: {missing}"}, status_code=404)


def _bad_request(exc: ValueError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


def _snapshot() -> dict[str, Any]:
    return load_snapshot(store_path)


def _run_write(permission: str, action: Callable[[], dict[str, Any]]):
    if not _permitted(permission):
        return _forbidden(permission)
    try:
        return action()
    except KeyError as exc:
        return _not_found(exc)
    except ValueError as exc:
        return _bad_request(exc)


# ── Read routes ────────────────────────────────────────────────

@app.get("/api/health")
async def api_health():
    return {"status": "ok", "store": str(store_path)}


@app.get("/{project}/api/dashboard")
async def api_dashboard(project: str, as_of: str | None = None):
    when = as_of or datetime.now(timezone.utc).date().isoformat()
    try:
        return reports.project_dashboard(_snapshot(), project, when)
    except ValueError as exc:
        return _bad_request(exc)


@app.get("/{project}/api/flats")
async def api_flats(
    project: str,
    building: str | None = None,
    search: str | None = None,
    max_progress: float | None = None,
):
    return reports.flat_status_list(_snapshot(), project, building=building, search=search, max_progress=max_progress)


@app.get("/{project}/api/flats/{flat_no}")
async def api_flat_detail(project: str, flat_no: str):
    try:
        return reports.flat_detail(_snapshot(), project, flat_no)
    except KeyError:
        return JSONResponse({"error": f"Flat '{flat_no}' not found"}, status_code=404)


@app.get("/{project}/api/tiles/status")
async def api_tile_status(
    project: str,
    building: str | None = None,
    tile_id: str | None = None,
    search: str | None = None,
):
    return reports.tile_status_matrix(_snapshot(), project, building=building, tile_id=tile_id, search=search)


@app.get("/{project}/api/planning")
async def api_planning(project: str, building: str, tile_id: str):
    return reports.planning_task_stages(_snapshot(), project, building, tile_id)


@app.get("/{project}/api/final-check")
async def api_final_check_queue(project: str):
    return reports.final_check_queue(_snapshot(), project)


@app.get("/{project}/api/billing/queue")
async def api_billing_queue(project: str):
    return reports.billing_queue(_snapshot(), project)


@app.get("/{project}/api/kits")
async def api_kits(project: str):
    return reports.kit_stock_report(_snapshot(), project)


@app.get("/{project}/api/plans/{plan_id}/flats/{flat_no}/tasks/{task_id}/billed-date")
async def api_billed_date(project: str, plan_id: str, flat_no: str, task_id: str):
    snapshot = _snapshot()
    bills = [b for b in snapshot["contractor_bills"] if b.get("project_name") in (None, "", project)]
    return {
        "plan_id": plan_id,
        "flat_no": flat_no,
        "task_id": task_id,
        "billed_date": find_billed_date(plan_id, flat_no, task_id, bills),
    }


@app.get("/{project}/api/plans/{plan_id}/flats/{flat_no}/tasks/{task_id}/final-check")
async def api_final_check_detail(project: str, plan_id: str, flat_no: str, task_id: str):
    try:
        return reports.final_check_detail(_snapshot(), project, plan_id, flat_no, task_id)
    except KeyError as exc:
        return _not_found(exc)


@app.get("/api/checklists/{tile_id}")
async def api_checklists(tile_id: str):
    try:
        return reports.checklist_catalog(_snapshot(), tile_id)
    except KeyError as exc:
        return _not_found(exc)


# ── Write routes ───────────────────────────────────────────────

@app.post("/{project}/api/plans/{plan_id}/flats/{flat_no}/tasks/{task_id}/progress")
async def api_update_progress(project: str, plan_id: str, flat_no: str, task_id: str, payload: ProgressUpdateRequest):
    return _run_write(PERMISSION_WORK_IN_PROCESS, lambda: update_task_progress(
        store_path,
        plan_id,
        flat_no,
        task_id,
        payload.progress,
        payload.updated_by,
        description=payload.description,
        photos=payload.photos,
        project_name=project,
    ))


@app.post("/{project}/api/plans/{plan_id}/flats/{flat_no}/tasks/{task_id}/approve")
async def api_approve(project: str, plan_id: str, flat_no: str, task_id: str, payload: ApproveRequest | None = None):
    checked = payload.checked if payload else []
    return _run_write(PERMISSION_FINAL_WORK, lambda: approve_final_check(
        store_path, plan_id, flat_no, task_id, project_name=project, checked=checked,
    ))


@app.post("/{project}/api/plans/{plan_id}/flats/{flat_no}/tasks/{task_id}/reject")
async def api_reject(project: str, plan_id: str, flat_no: str, task_id: str, payload: RejectRequest):
    return _run_write(PERMISSION_FINAL_WORK, lambda: reject_final_check(
        store_path, plan_id, flat_no, task_id, payload.remark, project_name=project, checked=payload.checked,
    ))


@app.post("/api/checklists/{tile_id}/tasks/{task_id}/points")
async def api_add_checklist_point(tile_id: str, task_id: str, payload: ChecklistPointRequest):
    return _run_write(PERMISSION_FINAL_WORK, lambda: add_checklist_point(store_path, tile_id, task_id, payload.point))


@app.delete("/api/checklists/{tile_id}/tasks/{task_id}/points/{point_id}")
async def api_remove_checklist_point(tile_id: str, task_id: str, point_id: str):
    return _run_write(PERMISSION_FINAL_WORK, lambda: remove_checklist_point(store_path, tile_id, task_id, point_id))


@app.post("/{project}/api/bills")
async def api_record_bill(project: str, payload: BillRequest):
    return _run_write(PERMISSION_BILLING, lambda: record_bill(
        store_path,
        payload.contractor_name,
        project,
        [item.model_dump() for item in payload.items],
        bill_date=payload.date,
    ))


@app.post("/{project}/api/kits/{kit_id}/issue")
async def api_issue_kit(project: str, kit_id: str, payload: IssueKitRequest):
    return _run_write(PERMISSION_MATERIAL_ISSUE, lambda: issue_kit(
        store_path,
        project,
        kit_id,
        payload.quantity,
        payload.contractor_name,
        payload.building_name,
        payload.flat_no,
        remarks=payload.remarks,
    ))
