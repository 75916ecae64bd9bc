"""Link billed task instances back to the contractor bill that billed them."""

from __future__ import annotations

from datetime import date
from typing import Any

from .utils import parse_dt, text


def billed_item_matches(item: Any, plan_id: str, flat_no: str, task_id: str) -> bool:
    if not isinstance(item, dict):
        return False
    return (
        text(item.get("plan_id")) == plan_id
        and text(item.get("flat_no")) == flat_no
        and text(item.get("task_id")) == task_id
    )


def find_bill(
    plan_id: str,
    flat_no: str,
    task_id: str,
    bills: list[dict[str, Any]],
) -> dict[str, Any] | None:
    """First bill, in list order, whose billed items include the task."""
    plan_id, flat_no, task_id = text(plan_id), text(flat_no), text(task_id)
    for bill in bills or []:
        if not isinstance(bill, dict):
            continue
        items = bill.get("billed_items")
        if not isinstance(items, list):
            continue
        if any(billed_item_matches(item, plan_id, flat_no, task_id) for item in items):
            return bill
    return None


def find_billed_date(
    plan_id: str,
    flat_no: str,
    task_id: str,
    bills: list[dict[str, Any]],
) -> date | None:
    """Date of the bill covering the task, or None.

    A task flagged billed with no matching bill, or a bill whose date does
    not parse, is a data gap reported as None rather than raised.
    """
    bill = find_bill(plan_id, flat_no, task_id, bills)
    if bill is None:
        return None
    billed_at = parse_dt(bill.get("date"))
    return billed_at.date() if billed_at else None


def billed_keys(bills: list[dict[str, Any]]) -> set[tuple[str, str, str]]:
    """Every ``(plan_id, flat_no, task_id)`` already carried on a bill."""
    keys: set[tuple[str, str, str]] = set()
    for bill in bills or []:
        if not isinstance(bill, dict):
            continue
        for item in bill.get("billed_items") or []:
            if isinstance(item, dict):
                keys.add((text(item.get("plan_id")), text(item.get("flat_no")), text(item.get("task_id"))))
    return keys
