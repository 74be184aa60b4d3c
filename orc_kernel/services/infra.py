"""
Infrastructure Service — gather, reconcile and apply for workshops and commissions.

Behavioral Contract:
- plan_* never mutates anything; it loads records, probes, and reconciles
- apply_* runs in best-effort batch mode and returns an ApplyReport
- materialize_workbench runs in single-entity mode and raises on failure
- Deletion happens only through cleanup_workbench, never through apply
"""

import logging
from typing import Dict, List, Optional

from orc_kernel.adapters.ports import SessionDriver, WorkspaceAdapter
from orc_kernel.adapters.tmux import SessionDriverError
from orc_kernel.config.settings import OrcSettings
from orc_kernel.execution.executor import EffectExecutor
from orc_kernel.models.guards import GuardDenied
from orc_kernel.models.infra import (
    ApplyReport,
    CommissionInfraPlan,
    OpStatus,
    WorkshopPlan,
)
from orc_kernel.models.records import RepoRecord
from orc_kernel.persistence.ports import Repository
from orc_kernel.reconciler.planner import (
    commission_effects,
    desired_commission,
    desired_workshop,
    plan_commission_infra,
    reconcile,
    workbench_effects,
    workshop_effects,
)
from orc_kernel.world_model.gatherer import StateGatherer

logger = logging.getLogger(__name__)

CREATE = "will create"
SATISFIED = "already satisfied"
ATTENTION = "needs manual attention"


class InfraService:
    """Plans and applies workshop and commission infrastructure."""

    def __init__(
        self,
        repository: Repository,
        workspace: WorkspaceAdapter,
        sessions: Optional[SessionDriver] = None,
        settings: Optional[OrcSettings] = None,
    ):
        self.repository = repository
        self.workspace = workspace
        self.sessions = sessions
        self.settings = settings or OrcSettings()
        self.gatherer = StateGatherer(workspace, sessions, self.settings.session)
        self.executor = EffectExecutor(workspace, sessions, repository)

    # --- Workshops ---

    def _repos_for(self, workbenches) -> Dict[str, RepoRecord]:
        repos: Dict[str, RepoRecord] = {}
        for wb in workbenches:
            if wb.repo_id and wb.repo_id not in repos:
                repo = self.repository.find_repo(wb.repo_id)
                if repo is not None:
                    repos[wb.repo_id] = repo
        return repos

    def plan_workshop(self, workshop_id: str) -> WorkshopPlan:
        """Probe and reconcile one workshop. Raises NotFoundError for unknown IDs."""
        workshop = self.repository.get_workshop(workshop_id)
        workbenches = self.repository.list_workbenches(workshop_id)
        desired = desired_workshop(
            workshop, workbenches, self._repos_for(workbenches), self.settings.paths
        )
        known_ids = [wb.id for wb in self.repository.list_workbenches()]
        actual = self.gatherer.gather_workshop(
            desired, scan_root=self.settings.paths.workbench_dir(), known_ids=known_ids
        )
        plan = reconcile(desired, actual, self.settings.session)
        logger.info(
            "Planned workshop %s: nothing_to_do=%s, %d workbenches, %d orphans",
            workshop_id, plan.nothing_to_do, len(plan.workbenches), len(plan.orphans),
        )
        return plan

    def apply_workshop(self, plan: WorkshopPlan) -> ApplyReport:
        report = summarize_workshop(plan)
        if plan.nothing_to_do:
            logger.info("Workshop %s: nothing to do", plan.workshop_id)
            return report
        batches = workshop_effects(plan, self.settings.session)
        report.result = self.executor.execute_batch(batches)
        logger.info(
            "Applied workshop %s: %d batches ok, %d failed",
            plan.workshop_id, len(report.result.completed), len(report.result.failed),
        )
        return report

    def materialize_workbench(self, workbench_id: str) -> None:
        """Create one workbench's worktree, marker and window. Raises ExecutionError."""
        record = self.repository.get_workbench(workbench_id)
        workshop = self.repository.get_workshop(record.workshop_id)
        desired = desired_workshop(
            workshop, [record], self._repos_for([record]), self.settings.paths
        )
        if not desired.workbenches:
            logger.info("Workbench %s is %s, not materializing", workbench_id, record.status)
            return

        actual = self.gatherer.gather_workshop(desired)
        plan = reconcile(desired, actual, self.settings.session)
        op = plan.workbenches[0]
        window = None
        if actual.session.exists:
            window = next((w for w in plan.session.windows if w.name == op.name), None)
        self.executor.execute(workbench_effects(
            op, workshop.id, plan.session.session_name, window
        ))

    def cleanup_workbench(self, workbench_id: str, force: bool = False) -> None:
        """
        Remove a workbench's worktree and window. Refuses a dirty worktree
        unless forced. The record itself is left to the caller.
        """
        record = self.repository.get_workbench(workbench_id)
        path = self.settings.paths.workbench_path(record.name)
        repo = self.repository.find_repo(record.repo_id) if record.repo_id else None

        if self.workspace.directory_exists(path):
            is_worktree = self.workspace.worktree_exists(path)
            if is_worktree and not force:
                dirty = self.workspace.worktree_status(path)
                if dirty:
                    raise GuardDenied(
                        f"workbench {workbench_id} has {len(dirty)} uncommitted "
                        f"change(s) in {path}. Use --force to delete anyway"
                    )
            if is_worktree and repo is not None:
                self.workspace.remove_worktree(repo.local_path, path)
            else:
                self.workspace.remove_directory(path)
            logger.info("Removed workbench directory %s", path)

        if self.sessions is None:
            return
        try:
            session = self.sessions.find_session_by_env(
                self.settings.session.workshop_env_var, record.workshop_id
            )
            if session and record.name in self.sessions.list_windows(session):
                self.sessions.kill_window(session, record.name)
        except SessionDriverError as e:
            logger.warning("Could not close window for %s: %s", workbench_id, e)

    # --- Commissions ---

    def plan_commission(self, commission_id: str) -> CommissionInfraPlan:
        self.repository.get_commission(commission_id)
        groves = self.repository.list_groves(commission_id)
        desired = desired_commission(commission_id, groves, self.settings.paths)
        actual = self.gatherer.gather_commission(desired)
        return plan_commission_infra(desired, actual)

    def apply_commission(self, plan: CommissionInfraPlan) -> ApplyReport:
        report = summarize_commission(plan)
        if plan.nothing_to_do:
            return report
        report.result = self.executor.execute_batch(commission_effects(plan))
        return report


# --- Reporting ---

def group_workshop_plan(plan: WorkshopPlan) -> Dict[str, List[str]]:
    """Plan items grouped for display."""
    groups: Dict[str, List[str]] = {CREATE: [], SATISFIED: [], ATTENTION: []}

    def place(label: str, status: OpStatus, config_status: OpStatus) -> None:
        if status == OpStatus.CREATE:
            groups[CREATE].append(label)
        elif status == OpStatus.EXISTS and config_status == OpStatus.CREATE:
            groups[CREATE].append(f"{label} config")
        elif status == OpStatus.EXISTS:
            groups[SATISFIED].append(label)

    gh = plan.gatehouse
    place(f"gatehouse {gh.path}", gh.status, gh.config_status)
    for op in plan.workbenches:
        place(f"workbench {op.id} {op.path}", op.status, op.config_status)

    session = plan.session
    if session.status == OpStatus.CREATE:
        groups[CREATE].append(f"session {session.session_name}")
    else:
        groups[SATISFIED].append(f"session {session.session_name}")
    for w in session.windows:
        label = f"window {w.index}:{w.name}"
        if w.action == OpStatus.CREATE and session.status == OpStatus.EXISTS:
            groups[CREATE].append(label)
        elif w.action == OpStatus.EXISTS:
            groups[SATISFIED].append(label)
        elif w.action == OpStatus.UPDATE:
            detail = (
                f"{w.pane_count} panes, agent pane running '{w.agent_command or '?'}'"
            )
            if w.misplaced_pane_paths:
                detail += f", panes outside {w.path}: {', '.join(w.misplaced_pane_paths)}"
            groups[ATTENTION].append(f"{label} deviates ({detail})")
        elif w.action == OpStatus.SKIP:
            groups[ATTENTION].append(f"{label} skipped: directory {w.path} not available")

    for orphan in plan.orphans:
        groups[ATTENTION].append(
            f"orphan {orphan.entity} {orphan.id} ({orphan.name}): {orphan.reason}"
        )
    for name in plan.orphan_windows:
        groups[ATTENTION].append(
            f"window {name} in session {session.session_name} matches no active workbench"
        )
    for stray in plan.stray_markers:
        groups[ATTENTION].append(f"marker {stray.place_id} at {stray.path} has no record")
    return groups


def summarize_workshop(plan: WorkshopPlan) -> ApplyReport:
    groups = group_workshop_plan(plan)
    updated = sum(1 for w in plan.session.windows if w.action == OpStatus.UPDATE)
    skipped = sum(1 for w in plan.session.windows if w.action == OpStatus.SKIP)
    return ApplyReport(
        target_id=plan.workshop_id,
        nothing_to_do=plan.nothing_to_do,
        created=0 if plan.nothing_to_do else len(groups[CREATE]),
        updated=updated,
        skipped=skipped,
        attention=groups[ATTENTION],
    )


def group_commission_plan(plan: CommissionInfraPlan) -> Dict[str, List[str]]:
    groups: Dict[str, List[str]] = {CREATE: [], SATISFIED: [], ATTENTION: []}
    for label, create in (
        (f"workspace {plan.workspace_path}", plan.create_workspace),
        (f"groves dir {plan.groves_dir}", plan.create_groves_dir),
    ):
        groups[CREATE if create else SATISFIED].append(label)

    for g in plan.groves:
        label = f"grove {g.grove_id} {g.desired_path}"
        if g.action == OpStatus.MOVE:
            groups[CREATE].append(f"move {g.grove_id} {g.current_path} -> {g.desired_path}")
        elif g.action == OpStatus.MISSING:
            groups[ATTENTION].append(f"{label} missing on disk")
            continue
        elif g.update_db_path:
            groups[CREATE].append(f"update {g.grove_id} path -> {g.desired_path}")
        else:
            groups[SATISFIED].append(label)
        if g.config_status == OpStatus.CREATE:
            groups[CREATE].append(f"{label} config")
    return groups


def summarize_commission(plan: CommissionInfraPlan) -> ApplyReport:
    groups = group_commission_plan(plan)
    moved = sum(1 for g in plan.groves if g.update_db_path)
    return ApplyReport(
        target_id=plan.commission_id,
        nothing_to_do=plan.nothing_to_do,
        created=len(groups[CREATE]) - moved,
        updated=moved,
        skipped=0,
        attention=groups[ATTENTION],
    )

