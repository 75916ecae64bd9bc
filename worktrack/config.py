"""
Worktrack configuration — centralized defaults and environment handling.
"""

from __future__ import annotations

import os
from pathlib import Path

# ── Store ─────────────────────────────────────────────────────────────────────

DEFAULT_STORE_DIR = "worktrack_store"
STORE_ENV_VAR = "WORKTRACK_STORE"
STORE_FILE_VERSION = 1

COLLECTION_FILES = {
    "work_tiles": "work_tiles.json",
    "assignments": "assignments.json",
    "work_plans": "work_plans.json",
    "flats": "flats.json",
    "contractor_bills": "contractor_bills.json",
    "material_kits": "material_kits.json",
    "inventory": "inventory.json",
    "issue_records": "issue_records.json",
    "final_checklists": "final_checklists.json",
}

# ── Workflow Defaults ─────────────────────────────────────────────────────────

DEADLINE_WINDOW_DAYS = 7
REJECTED_PROGRESS = 50  # progress a task falls back to when final check rejects it

# ── Server ────────────────────────────────────────────────────────────────────

DEFAULT_PORT = 3100
DEFAULT_HOST = "0.0.0.0"


def get_store_path(override: str | Path | None = None) -> Path:
    """Resolve store path from override or environment or default."""
    if override:
        return Path(override)
    env = os.environ.get(STORE_ENV_VAR)
    if env:
        return Path(env)
    return Path(DEFAULT_STORE_DIR)


def load_dotenv(workspace: Path | None = None):
    """Load .env file from workspace or cwd."""
    candidates = []
    if workspace:
        candidates.append(workspace / ".env")
    candidates.append(Path(".env"))

    for env_path in candidates:
        if env_path.exists():
            with env_path.open() as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        k, v = line.split("=", 1)
                        os.environ.setdefault(k.strip(), v.strip())
            return
