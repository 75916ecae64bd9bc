"""Lifecycle stages for a single (flat, task) instance.

``derive_status`` is the one place a task record is turned into a stage.
Every view calls it; none re-implements the precedence.
"""

from __future__ import annotations

from typing import Any

STAGE_PENDING = "pending"
STAGE_PLANNED = "planned"
STAGE_WORK_IN_PROGRESS = "work_in_progress"
STAGE_FINAL_CHECK = "final_check"
STAGE_FOR_BILLING = "for_billing"
STAGE_BILLED = "billed"

# Ascending precedence.
STAGES = (
    STAGE_PENDING,
    STAGE_PLANNED,
    STAGE_WORK_IN_PROGRESS,
    STAGE_FINAL_CHECK,
    STAGE_FOR_BILLING,
    STAGE_BILLED,
)

COARSE_PENDING = "pending"
COARSE_PLANNED = "planned"
COARSE_IN_PROGRESS = "in_progress"
COARSE_COMPLETED = "completed"

COARSE_STAGES = (COARSE_PENDING, COARSE_PLANNED, COARSE_IN_PROGRESS, COARSE_COMPLETED)

FINAL_CHECK_PENDING = "pending"
FINAL_CHECK_APPROVED = "approved"
FINAL_CHECK_REJECTED = "rejected"
FINAL_CHECK_STATUSES = {FINAL_CHECK_PENDING, FINAL_CHECK_APPROVED, FINAL_CHECK_REJECTED}

STAGE_BADGES: dict[str, dict[str, str]] = {
    STAGE_PENDING: {"label": "Pending", "style": "dim"},
    STAGE_PLANNED: {"label": "Planned", "style": "cyan"},
    STAGE_WORK_IN_PROGRESS: {"label": "WIP", "style": "yellow"},
    STAGE_FINAL_CHECK: {"label": "Final Check", "style": "blue"},
    STAGE_FOR_BILLING: {"label": "For Billing", "style": "magenta"},
    STAGE_BILLED: {"label": "Billed", "style": "bold green"},
}

COARSE_BADGES: dict[str, dict[str, str]] = {
    COARSE_PENDING: {"label": "Pending", "style": "dim"},
    COARSE_PLANNED: {"label": "Planned", "style": "cyan"},
    COARSE_IN_PROGRESS: {"label": "In Progress", "style": "yellow"},
    COARSE_COMPLETED: {"label": "Completed", "style": "green"},
}

_COARSE_BY_STAGE = {
    STAGE_PENDING: COARSE_PENDING,
    STAGE_PLANNED: COARSE_PLANNED,
    STAGE_WORK_IN_PROGRESS: COARSE_IN_PROGRESS,
    STAGE_FINAL_CHECK: COARSE_COMPLETED,
    STAGE_FOR_BILLING: COARSE_COMPLETED,
    STAGE_BILLED: COARSE_COMPLETED,
}


def task_progress(record: dict[str, Any] | None) -> float:
    """Progress of a task record clamped into 0..100; absent record is 0.

    A non-numeric progress raises; callers own the shape of their records.
    """
    if not record:
        return 0
    raw = record.get("progress")
    if raw is None:
        return 0
    value = float(raw)
    if value.is_integer():
        value = int(value)
    return max(0, min(100, value))


def derive_status(record: dict[str, Any] | None, is_planned: bool = False) -> str:
    """Map a task progress record to its lifecycle stage.

    The highest satisfied condition wins, checked top-down: billed flag,
    final-check approval, full progress, partial progress, key presence.
    A record that exists is planned by definition; ``is_planned`` covers
    callers that know the key exists without holding its record.
    """
    if record is None:
        return STAGE_PLANNED if is_planned else STAGE_PENDING

    if record.get("billed") is True:
        return STAGE_BILLED
    if record.get("final_check_status") == FINAL_CHECK_APPROVED:
        return STAGE_FOR_BILLING

    progress = task_progress(record)
    if progress == 100:
        return STAGE_FINAL_CHECK
    if progress > 0:
        return STAGE_WORK_IN_PROGRESS
    return STAGE_PLANNED


def coarse_stage(stage: str) -> str:
    return _COARSE_BY_STAGE.get(stage, COARSE_PENDING)


def stage_badge(stage: str) -> dict[str, str]:
    return dict(STAGE_BADGES.get(stage, STAGE_BADGES[STAGE_PENDING]))


def coarse_badge(stage: str) -> dict[str, str]:
    return dict(COARSE_BADGES.get(stage, COARSE_BADGES[COARSE_PENDING]))
