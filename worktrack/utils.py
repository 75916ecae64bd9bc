"""
Worktrack shared utilities — JSON files, text coercion, dates, rounding.

These functions are shared between the store, the core, and the server.
Canonical implementations live here; no duplication.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any


# ── Value Coercion ────────────────────────────────────────────────────────────

def text(value: Any) -> str:
    """Stringify and strip a scalar; None becomes ''."""
    return str(value).strip() if value is not None else ""


def safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def safe_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negatives."""
    return int(math.floor(value + 0.5))


# ── Dates ─────────────────────────────────────────────────────────────────────

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_dt(value: Any) -> datetime | None:
    """Parse an ISO string, date or datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        v = value.strip()
        dt = None
        for candidate in (v, v.replace("Z", "+00:00"), f"{v}T00:00:00"):
            try:
                dt = datetime.fromisoformat(candidate)
                break
            except ValueError:
                continue
        if dt is None:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def timestamp_or_floor(value: Any) -> float:
    """Sortable timestamp; unparseable or missing values sort first."""
    dt = parse_dt(value)
    return dt.timestamp() if dt else float("-inf")


# ── File Helpers ──────────────────────────────────────────────────────────────

def load_json(path: Path, default: Any = None) -> Any:
    """Safely load a JSON file, returning default on failure."""
    if default is None:
        default = {}
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default


def save_json(path: Path, data: Any, indent: int = 2):
    """Save data as JSON, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, default=str)
