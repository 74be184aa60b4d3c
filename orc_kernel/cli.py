"""
orc-infra — plan and apply workshop/commission infrastructure.

    orc-infra plan workshop WORK-001
    orc-infra apply workshop WORK-001
    orc-infra plan commission COMM-001
    orc-infra apply commission COMM-001

Exit code 0 on full success, 1 if any hard error occurred.
"""

import argparse
import json
import sqlite3
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from orc_kernel.adapters.tmux import SessionDriverError, TmuxDriver
from orc_kernel.adapters.workspace import FilesystemWorkspace, WorkspaceError
from orc_kernel.config.settings import load_settings
from orc_kernel.execution.executor import ExecutionError
from orc_kernel.logging_config import setup_logging
from orc_kernel.models.guards import GuardDenied
from orc_kernel.models.infra import ApplyReport
from orc_kernel.persistence.sqlite_store import NotFoundError, SqliteRepository
from orc_kernel.services.infra import (
    InfraService,
    group_commission_plan,
    group_workshop_plan,
    summarize_commission,
    summarize_workshop,
)

_HARD_ERRORS = (
    NotFoundError,
    GuardDenied,
    ExecutionError,
    WorkspaceError,
    SessionDriverError,
    sqlite3.Error,
)


def build_service(config: Optional[str] = None, log_level: Optional[str] = None) -> InfraService:
    settings = load_settings(config)
    setup_logging(log_level or settings.log_level)
    db_path = Path(settings.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return InfraService(
        SqliteRepository(str(db_path)),
        FilesystemWorkspace(),
        TmuxDriver(
            agent_pane=settings.session.agent_pane_index,
            socket=settings.session.tmux_socket,
        ),
        settings,
    )


def render_groups(title: str, groups: Dict[str, List[str]]) -> str:
    lines = [title]
    for heading, items in groups.items():
        lines.append(f"{heading} ({len(items)}):")
        lines.extend(f"  - {item}" for item in items)
    return "\n".join(lines)


def render_report(report: ApplyReport, applied: bool) -> str:
    if report.nothing_to_do:
        return "Nothing to do."
    lines = [
        f"created: {report.created}  updated: {report.updated}  skipped: {report.skipped}"
        f"  attention: {len(report.attention)}"
    ]
    if applied:
        result = report.result
        lines.append(f"applied: {len(result.completed)} ok, {len(result.failed)} failed")
        for err in result.errors:
            lines.append(f"  ! {err.entity_id} ({err.label}): {err.message}")
    return "\n".join(lines)


def cmd_workshop(service: InfraService, workshop_id: str, apply: bool, as_json: bool) -> int:
    plan = service.plan_workshop(workshop_id)
    groups = group_workshop_plan(plan)
    report = service.apply_workshop(plan) if apply else summarize_workshop(plan)
    return _emit(f"Workshop {plan.workshop_id} ({plan.workshop_name})", groups, report, apply, as_json)


def cmd_commission(service: InfraService, commission_id: str, apply: bool, as_json: bool) -> int:
    plan = service.plan_commission(commission_id)
    groups = group_commission_plan(plan)
    report = service.apply_commission(plan) if apply else summarize_commission(plan)
    return _emit(f"Commission {plan.commission_id}", groups, report, apply, as_json)


def _emit(
    title: str,
    groups: Dict[str, List[str]],
    report: ApplyReport,
    applied: bool,
    as_json: bool,
) -> int:
    if as_json:
        print(json.dumps({"groups": groups, "report": report.model_dump(mode="json")}, indent=2))
    else:
        print(render_groups(title, groups))
        print(render_report(report, applied))
    return 0 if report.succeeded else 1


def main(argv: Optional[Sequence[str]] = None, service: Optional[InfraService] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="orc-infra", description="Plan and apply ORC infrastructure"
    )
    parser.add_argument("--config", default=None, help="Config file (default: $ORC_CONFIG or ~/.orc/config.yml)")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--json", action="store_true", help="Emit JSON output")

    subparsers = parser.add_subparsers(dest="action", required=True)
    for action, help_text in (
        ("plan", "Show what apply would do"),
        ("apply", "Create whatever is missing"),
    ):
        action_parser = subparsers.add_parser(action, help=help_text)
        action_parser.add_argument("target", choices=["workshop", "commission"])
        action_parser.add_argument("id", help="Workshop or commission ID")

    args = parser.parse_args(argv)
    apply = args.action == "apply"

    try:
        if service is None:
            service = build_service(args.config, args.log_level)
        if args.target == "workshop":
            return cmd_workshop(service, args.id, apply, args.json)
        return cmd_commission(service, args.id, apply, args.json)
    except _HARD_ERRORS as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
