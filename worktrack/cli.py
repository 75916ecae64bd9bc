"""
Worktrack CLI — status views and task actions against a file-backed store.

Usage:
    worktrack serve [--port 3100] [--store DIR]
    worktrack dashboard <project> [--as-of DATE] [--json]
    worktrack flats <project> [--building B] [--search S] [--under N] [--json]
    worktrack flat <project> <flat_no> [--json]
    worktrack tiles <project> [--building B] [--tile ID] [--search S] [--json]
    worktrack final-check <project> [--json]
    worktrack billing <project> [--json]
    worktrack kits <project> [--json]
    worktrack progress <project> <plan_id> <flat_no> <task_id> <progress> --by NAME [--photo URI ...]
    worktrack approve <project> <plan_id> <flat_no> <task_id> [--checked POINT ...]
    worktrack reject <project> <plan_id> <flat_no> <task_id> --remark TEXT [--checked POINT ...]
    worktrack checklist <tile_id> [--task ID --add TEXT | --task ID --remove POINT]
    worktrack bill <project> --contractor NAME --item PLAN:FLAT:TASK [...]
    worktrack issue-kit <project> <kit_id> --contractor NAME [--quantity N]
"""

from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import reports
from .config import DEADLINE_WINDOW_DAYS, DEFAULT_HOST, DEFAULT_PORT, get_store_path, load_dotenv
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

CYAN = "cyan"
BRIGHT_CYAN = "bright_cyan"
DIM = "dim"

console = Console()


def _print_json(payload: dict[str, Any]):
    print(json.dumps(payload, indent=2, default=str))


def _store(args: argparse.Namespace) -> Path:
    return get_store_path(getattr(args, "store", None))


class NotFoundError(Exception):
    pass


def _call(action, *args, **kwargs):
    """Run a store or report call, turning an unknown id into ``NotFoundError``."""
    try:
        return action(*args, **kwargs)
    except KeyError as exc:
        missing = exc.args[0] if exc.args else ""
        raise NotFoundError(f"Not found: {missing}") from None


def _styled(badge: dict[str, str]) -> str:
    style = badge.get("style", "white")
    return f"[{style}]{badge.get('label', '')}[/]"


# ── Read commands ─────────────────────────────────────────────────────────────

def _cmd_dashboard(args: argparse.Namespace) -> int:
    as_of = args.as_of or datetime.now(timezone.utc).date().isoformat()
    payload = reports.project_dashboard(load_snapshot(_store(args), warn=True), args.project, as_of)
    if args.json:
        _print_json(payload)
        return 0

    summary = Table(show_header=False, box=None, padding=(0, 1))
    summary.add_row("buildings", str(payload["building_count"]))
    summary.add_row("flats", str(payload["flat_count"]))
    summary.add_row("overall progress", f"{payload['overall_progress']}%")
    summary.add_row("active contractors", str(payload["active_contractor_count"]))
    summary.add_row(
        "flats by stage",
        ", ".join(f"{stage} {count}" for stage, count in payload["flats_by_stage"].items()),
    )
    summary.add_row(
        "task stages",
        ", ".join(f"{stage} {count}" for stage, count in payload["stage_distribution"].items()),
    )
    console.print(Panel(summary, border_style=CYAN, title=f"[bold {BRIGHT_CYAN}]{payload['project']} — {payload['as_of']}[/]"))

    buildings = Table(title="Buildings")
    buildings.add_column("Building")
    buildings.add_column("Flats", justify="right")
    buildings.add_column("Progress", justify="right")
    buildings.add_column("Stage")
    for row in payload["buildings"]:
        buildings.add_row(row["building_name"], str(row["flat_count"]), f"{row['progress']}%", row["stage"])
    console.print(buildings)

    if payload["upcoming_deadlines"]:
        deadlines = Table(title="Plans ending soon")
        deadlines.add_column("Plan")
        deadlines.add_column("Building")
        deadlines.add_column("Contractor")
        deadlines.add_column("Ends")
        for row in payload["upcoming_deadlines"]:
            deadlines.add_row(row["plan_id"], row["building_name"], row["contractor_name"], row["end_date"])
        console.print(deadlines)
    else:
        console.print(f"[{DIM}]No plans ending in the next {DEADLINE_WINDOW_DAYS} days.[/]")
    return 0


def _cmd_flats(args: argparse.Namespace) -> int:
    payload = reports.flat_status_list(
        load_snapshot(_store(args)),
        args.project,
        building=args.building,
        search=args.search,
        max_progress=args.under,
    )
    if args.json:
        _print_json(payload)
        return 0

    table = Table(title=f"Flats — {payload['project']}")
    table.add_column("Building")
    table.add_column("Flat")
    table.add_column("Floor")
    table.add_column("Progress", justify="right")
    table.add_column("Stage")
    for row in payload["flats"]:
        table.add_row(row["building_name"], row["flat_no"], row["floor_name"], f"{row['progress']}%", _styled(row["badge"]))
    console.print(table)
    return 0


def _cmd_flat(args: argparse.Namespace) -> int:
    payload = _call(reports.flat_detail, load_snapshot(_store(args)), args.project, args.flat_no)
    if args.json:
        _print_json(payload)
        return 0

    console.print(Panel(
        f"{payload['building_name']} · floor {payload['floor_name'] or '-'} · {payload['type'] or '-'}\n"
        f"overall {payload['progress']}% · {_styled(payload['badge'])}",
        border_style=CYAN,
        title=f"[bold {BRIGHT_CYAN}]Flat {payload['flat_no']}[/]",
    ))
    for tile in payload["tiles"]:
        table = Table(title=f"{tile['tile_name'] or tile['tile_id']} — {tile['progress']}%")
        table.add_column("Task")
        table.add_column("Progress", justify="right")
        table.add_column("Status")
        table.add_column("Contractor")
        table.add_column("Billed")
        for row in tile["tasks"]:
            table.add_row(
                row["label"],
                f"{row['progress']}%",
                _styled(row["badge"]),
                row["contractor_name"] or "-",
                str(row["billed_date"] or "-"),
            )
        console.print(table)
    return 0


def _cmd_tiles(args: argparse.Namespace) -> int:
    payload = reports.tile_status_matrix(
        load_snapshot(_store(args)),
        args.project,
        building=args.building,
        tile_id=args.tile,
        search=args.search,
    )
    if args.json:
        _print_json(payload)
        return 0

    table = Table(title=f"Tile status — {payload['project']}")
    table.add_column("Flat")
    for tile in payload["tiles"]:
        table.add_column(tile["name"] or tile["id"])
    for row in payload["flats"]:
        cells = []
        for tile in payload["tiles"]:
            cell = row["cells"].get(tile["id"])
            cells.append(f"{cell['progress']}% {_styled(cell['badge'])}" if cell else "-")
        table.add_row(f"{row['building_name']}/{row['flat_no']}", *cells)
    console.print(table)
    return 0


def _cmd_final_check(args: argparse.Namespace) -> int:
    payload = reports.final_check_queue(load_snapshot(_store(args), warn=True), args.project)
    if args.json:
        _print_json(payload)
        return 0

    if not payload["plans"]:
        console.print(f"[{DIM}]Nothing waiting for final check.[/]")
        return 0
    for plan in payload["plans"]:
        table = Table(title=f"{plan['plan_id']} · {plan['building_name']} · {plan['contractor_name']}")
        table.add_column("Flat")
        table.add_column("Task")
        table.add_column("Status")
        for task in plan["tasks"]:
            table.add_row(task["flat_no"], task["label"], task["final_check_status"])
        console.print(table)
    return 0


def _cmd_billing(args: argparse.Namespace) -> int:
    payload = reports.billing_queue(load_snapshot(_store(args), warn=True), args.project)
    if args.json:
        _print_json(payload)
        return 0

    if not payload["contractors"]:
        console.print(f"[{DIM}]Nothing ready for billing.[/]")
        return 0
    for group in payload["contractors"]:
        table = Table(title=f"{group['contractor_name']} — {group['item_count']} item(s)")
        table.add_column("Plan")
        table.add_column("Building")
        table.add_column("Flat")
        table.add_column("Task")
        for item in group["items"]:
            table.add_row(item["plan_id"], item["building_name"], item["flat_no"], item["label"])
        console.print(table)
    return 0


def _cmd_kits(args: argparse.Namespace) -> int:
    payload = reports.kit_stock_report(load_snapshot(_store(args)), args.project)
    if args.json:
        _print_json(payload)
        return 0

    table = Table(title=f"Kits — {payload['project']}")
    table.add_column("Kit")
    table.add_column("Producible", justify="right")
    table.add_column("Short for next kit")
    for kit in payload["kits"]:
        short = ", ".join(
            f"{item['material_name']} +{item['needed']} (have {item['in_stock']})"
            for item in kit["pending_items"]
        )
        table.add_row(kit["name"] or kit["kit_id"], str(kit["producible_count"]), short or "-")
    console.print(table)
    return 0


# ── Write commands ────────────────────────────────────────────────────────────

def _report_write(payload: dict[str, Any], args: argparse.Namespace) -> int:
    if getattr(args, "json", False):
        _print_json(payload)
        return 0
    task = payload.get("task")
    if isinstance(task, dict):
        console.print(
            f"[green]{payload['status']}[/] {task['plan_id']}/{task['flat_no']}/{task['task_id']} "
            f"→ {task['progress']}% ({task['stage']})"
        )
    else:
        console.print(f"[green]{payload['status']}[/]")
    for point in payload.get("unchecked_points") or []:
        console.print(f"  [yellow]unchecked[/] {point['point']} [{DIM}]({point['id']})[/]")
    return 0


def _cmd_progress(args: argparse.Namespace) -> int:
    payload = _call(
        update_task_progress,
        _store(args),
        args.plan_id,
        args.flat_no,
        args.task_id,
        args.progress,
        args.by,
        description=args.description,
        photos=args.photo,
        project_name=args.project,
    )
    return _report_write(payload, args)


def _cmd_approve(args: argparse.Namespace) -> int:
    payload = _call(
        approve_final_check, _store(args), args.plan_id, args.flat_no, args.task_id,
        project_name=args.project, checked=args.checked,
    )
    return _report_write(payload, args)


def _cmd_reject(args: argparse.Namespace) -> int:
    payload = _call(
        reject_final_check, _store(args), args.plan_id, args.flat_no, args.task_id, args.remark,
        project_name=args.project, checked=args.checked,
    )
    return _report_write(payload, args)


def _cmd_checklist(args: argparse.Namespace) -> int:
    if (args.add or args.remove) and not args.task:
        raise ValueError("--task is required with --add or --remove.")
    if args.add:
        payload = _call(add_checklist_point, _store(args), args.tile_id, args.task, args.add)
    elif args.remove:
        payload = _call(remove_checklist_point, _store(args), args.tile_id, args.task, args.remove)
    else:
        payload = _call(reports.checklist_catalog, load_snapshot(_store(args)), args.tile_id)
    if args.json:
        _print_json(payload)
        return 0

    if "status" in payload:
        console.print(f"[green]{payload['status']}[/] {args.tile_id}/{args.task}: {len(payload['points'])} point(s)")
        return 0
    table = Table(title=f"Final check — {payload['tile_name'] or payload['tile_id']}")
    table.add_column("Task")
    table.add_column("Point")
    table.add_column("Id", style=DIM)
    for task in payload["tasks"]:
        if not task["points"]:
            table.add_row(task["label"], f"[{DIM}]none[/]", "")
        for point in task["points"]:
            table.add_row(task["label"], point["point"], point["id"])
    console.print(table)
    return 0


def _parse_bill_item(raw: str) -> dict[str, str]:
    parts = raw.split(":")
    if len(parts) != 3:
        raise ValueError(f"Bill item must look like PLAN:FLAT:TASK, got '{raw}'.")
    return {"plan_id": parts[0], "flat_no": parts[1], "task_id": parts[2]}


def _cmd_bill(args: argparse.Namespace) -> int:
    items = [_parse_bill_item(raw) for raw in args.item]
    payload = _call(record_bill, _store(args), args.contractor, args.project, items, bill_date=args.date)
    if args.json:
        _print_json(payload)
        return 0
    bill = payload["bill"]
    console.print(f"[green]billed[/] {bill['bill_number']} · {payload['item_count']} item(s) · {bill['contractor_name']}")
    return 0


def _cmd_issue_kit(args: argparse.Namespace) -> int:
    payload = _call(
        issue_kit,
        _store(args),
        args.project,
        args.kit_id,
        args.quantity,
        args.contractor,
        args.building,
        args.flat,
        remarks=args.remarks,
    )
    if args.json:
        _print_json(payload)
        return 0
    materials = ", ".join(f"{item['material_name']} {item['quantity']}" for item in payload["issue"]["items"])
    console.print(f"[green]issued[/] {payload['quantity']} × {args.kit_id} to {args.contractor}: {materials}")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    import worktrack.server as srv

    srv.store_path = _store(args)
    load_snapshot(srv.store_path, warn=True)
    print(f"Worktrack server starting on http://localhost:{args.port}")
    print(f"Store: {srv.store_path}")
    uvicorn.run(srv.app, host=args.host, port=args.port, log_level="warning", access_log=False)
    return 0


# ── Parser ────────────────────────────────────────────────────────────────────

def _task_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("project")
    parser.add_argument("plan_id")
    parser.add_argument("flat_no")
    parser.add_argument("task_id")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="worktrack",
        description="Worktrack — flat and task status for construction projects",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--store", type=str, default=None, help="Store directory (default: $WORKTRACK_STORE or ./worktrack_store)")
    common.add_argument("--json", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Start the API server")
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument("--host", type=str, default=DEFAULT_HOST)
    serve.add_argument("--store", type=str, default=None)

    dashboard = sub.add_parser("dashboard", parents=[common], help="Project dashboard")
    dashboard.add_argument("project")
    dashboard.add_argument("--as-of", default=None, help="Reference date (default: today)")

    flats = sub.add_parser("flats", parents=[common], help="Flat status list")
    flats.add_argument("project")
    flats.add_argument("--building", default=None)
    flats.add_argument("--search", default=None, help="Flat number contains")
    flats.add_argument("--under", type=float, default=None, help="Only flats under this percentage")

    flat = sub.add_parser("flat", parents=[common], help="Task status for one flat")
    flat.add_argument("project")
    flat.add_argument("flat_no")

    tiles = sub.add_parser("tiles", parents=[common], help="Flat by tile status matrix")
    tiles.add_argument("project")
    tiles.add_argument("--building", default=None)
    tiles.add_argument("--tile", default=None, help="Work tile id")
    tiles.add_argument("--search", default=None)

    for name, help_text in (
        ("final-check", "Tasks waiting for final check"),
        ("billing", "Approved tasks ready for billing"),
        ("kits", "Kit producibility from current stock"),
    ):
        queue = sub.add_parser(name, parents=[common], help=help_text)
        queue.add_argument("project")

    progress = sub.add_parser("progress", parents=[common], help="Record task progress")
    _task_arguments(progress)
    progress.add_argument("progress", type=float)
    progress.add_argument("--by", required=True, help="Who made the update")
    progress.add_argument("--description", default=None)
    progress.add_argument("--photo", action="append", default=None, help="Photo data URI or path (repeatable)")

    approve = sub.add_parser("approve", parents=[common], help="Approve a task at final check")
    _task_arguments(approve)
    approve.add_argument("--checked", action="append", default=None, help="Ticked checklist point id (repeatable)")

    reject = sub.add_parser("reject", parents=[common], help="Reject a task at final check")
    _task_arguments(reject)
    reject.add_argument("--remark", required=True)
    reject.add_argument("--checked", action="append", default=None, help="Ticked checklist point id (repeatable)")

    checklist = sub.add_parser("checklist", parents=[common], help="Final-check checklist points of a work tile")
    checklist.add_argument("tile_id")
    checklist.add_argument("--task", default=None, help="Task id for --add or --remove")
    edit = checklist.add_mutually_exclusive_group()
    edit.add_argument("--add", default=None, metavar="TEXT", help="Add a checklist point")
    edit.add_argument("--remove", default=None, metavar="POINT_ID", help="Remove a checklist point")

    bill = sub.add_parser("bill", parents=[common], help="Bill approved tasks to a contractor")
    bill.add_argument("project")
    bill.add_argument("--contractor", required=True)
    bill.add_argument("--item", action="append", required=True, help="PLAN:FLAT:TASK (repeatable)")
    bill.add_argument("--date", default=None)

    issue = sub.add_parser("issue-kit", parents=[common], help="Issue material kits to a contractor")
    issue.add_argument("project")
    issue.add_argument("kit_id")
    issue.add_argument("--contractor", required=True)
    issue.add_argument("--quantity", type=int, default=1)
    issue.add_argument("--building", default="")
    issue.add_argument("--flat", default="")
    issue.add_argument("--remarks", default=None)

    return parser


def main(argv: list[str] | None = None):
    load_dotenv()
    args = build_parser().parse_args(argv)
    handlers = {
        "serve": _cmd_serve,
        "dashboard": _cmd_dashboard,
        "flats": _cmd_flats,
        "flat": _cmd_flat,
        "tiles": _cmd_tiles,
        "final-check": _cmd_final_check,
        "billing": _cmd_billing,
        "kits": _cmd_kits,
        "progress": _cmd_progress,
        "approve": _cmd_approve,
        "reject": _cmd_reject,
        "checklist": _cmd_checklist,
        "bill": _cmd_bill,
        "issue-kit": _cmd_issue_kit,
    }
    try:
        code = handlers[args.command](args)
    except NotFoundError as exc:
        console.print(f"[red]{exc}[/]")
        code = 1
    except ValueError as exc:
        console.print(f"[red]{exc}[/]")
        code = 1
    raise SystemExit(code)


if __name__ == "__main__":
    main()
