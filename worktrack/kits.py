"""How many complete kits current stock can assemble, and what blocks the next one."""

from __future__ import annotations

import math
from typing import Any

from .utils import safe_float, text


def _number(value: float) -> float:
    return int(value) if float(value).is_integer() else value


def kit_items(kit: dict[str, Any] | None) -> list[dict[str, Any]]:
    """Kit items with a material name and a positive quantity.

    A material listed on several lines is merged into one item whose
    quantity is the sum, kept at the position of its first line.
    """
    items = kit.get("items") if isinstance(kit, dict) else None
    merged: dict[str, float] = {}
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        name = text(item.get("material_name"))
        quantity = safe_float(item.get("quantity"))
        if not name or quantity <= 0:
            continue
        merged[name] = merged.get(name, 0) + quantity
    return [{"material_name": name, "quantity": _number(quantity)} for name, quantity in merged.items()]


def inventory_by_material(inventory: list[dict[str, Any]], project: str | None = None) -> dict[str, float]:
    """Stock per material name, summed across rows, optionally for one project."""
    stock: dict[str, float] = {}
    for row in inventory or []:
        if not isinstance(row, dict):
            continue
        if project is not None and text(row.get("project")) != text(project):
            continue
        name = text(row.get("material_name"))
        if not name:
            continue
        stock[name] = _number(stock.get(name, 0) + safe_float(row.get("current_stock")))
    return stock


def compute_producibility(kit: dict[str, Any] | None, inventory_by_material: dict[str, float]) -> dict[str, Any]:
    """
    Bottleneck count of complete kits and the shortfall for one more.

    ``producible_count`` is the floor of the smallest stock/quantity ratio.
    A material missing from stock counts as 0 and a kit without items makes
    nothing. ``pending_items`` lists every material that cannot cover kit
    number ``producible_count + 1``.
    """
    items = kit_items(kit)
    stock_map = inventory_by_material or {}
    if not items:
        return {"producible_count": 0, "pending_items": []}

    producible = min(
        math.floor(max(0, safe_float(stock_map.get(item["material_name"]))) / item["quantity"])
        for item in items
    )

    pending: list[dict[str, Any]] = []
    for item in items:
        in_stock = _number(safe_float(stock_map.get(item["material_name"])))
        needed_for_next = (producible + 1) * item["quantity"]
        if in_stock < needed_for_next:
            pending.append({
                "material_name": item["material_name"],
                "needed": _number(needed_for_next - in_stock),
                "in_stock": in_stock,
            })

    return {"producible_count": int(producible), "pending_items": pending}


def kit_shortages(kit: dict[str, Any], quantity: int, stock: dict[str, float]) -> list[dict[str, Any]]:
    """Materials that cannot cover ``quantity`` kits, with required and available amounts."""
    short: list[dict[str, Any]] = []
    for item in kit_items(kit):
        required = _number(item["quantity"] * quantity)
        available = _number(safe_float(stock.get(item["material_name"])))
        if available < required:
            short.append({
                "material_name": item["material_name"],
                "required": required,
                "in_stock": available,
            })
    return short
