"""
Plan Generator — pure reconciliation of desired state against gathered state.

Nothing in this module performs I/O. Given the same desired and actual
values it always returns the same plan, and the same plan always
translates into the same effects.

Behavioral Contract:
- Operation precedence per entity:
    1. current path == desired path: Exists if present, else Missing
    2. paths differ: Move (+db update) if only current exists,
       Exists (+db update, no filesystem move) if desired exists,
       Missing if neither exists
  An unknown probe counts as "not present", so it never yields Exists or Move.
- Terminal-status records are filtered out before any diffing.
- Windows are exists/update/create/skip; a window is never created
  against a directory that neither exists nor is created in the same plan.
- A workshop with nothing to do produces no effects at all.
- Session windows no active workbench claims are listed as orphan windows
  and left running.
- Generated effects never delete anything.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from orc_kernel.config.settings import PathSettings, SessionSettings, slugify
from orc_kernel.models.effects import (
    Effect,
    EffectBatch,
    FileEffect,
    FileOperation,
    GitEffect,
    PersistEffect,
    SessionEffect,
    SessionOperation,
)
from orc_kernel.models.infra import (
    CommissionActualState,
    CommissionInfraPlan,
    DesiredCommissionInfra,
    DesiredGrove,
    DesiredWorkbench,
    DesiredWorkshop,
    GatehouseOp,
    GroveAction,
    GroveProbe,
    OpStatus,
    OrphanItem,
    PathProbe,
    SessionOp,
    WindowPlan,
    WindowProbe,
    WorkbenchOp,
    WorkshopActualState,
    WorkshopPlan,
)
from orc_kernel.models.marker import PlaceMarker, marker_dir, marker_path, render_marker
from orc_kernel.models.records import (
    GroveRecord,
    RepoRecord,
    WorkbenchRecord,
    WorkshopRecord,
    is_terminal,
)

DIR_MODE = 0o755
MARKER_MODE = 0o644

T = TypeVar("T")


# --- Desired state ---

def select_active(records: Iterable[T]) -> List[T]:
    """Drop archived/complete/closed records. They never reach the diff."""
    return [r for r in records if not is_terminal(getattr(r, "status", ""))]


def desired_workshop(
    workshop: WorkshopRecord,
    workbenches: Sequence[WorkbenchRecord],
    repos: Dict[str, RepoRecord],
    paths: PathSettings,
) -> DesiredWorkshop:
    desired = []
    for wb in select_active(workbenches):
        repo = repos.get(wb.repo_id) if wb.repo_id else None
        desired.append(DesiredWorkbench(
            id=wb.id,
            name=wb.name,
            path=paths.workbench_path(wb.name),
            repo_path=repo.local_path if repo else None,
            branch=wb.home_branch,
            # A workbench linked to a repo that no longer has a record
            materializable=not (wb.repo_id and repo is None),
        ))
    return DesiredWorkshop(
        workshop_id=workshop.id,
        workshop_name=workshop.name,
        session_name=slugify(workshop.name) or workshop.id,
        gatehouse_path=paths.gatehouse_path(workshop.id, workshop.name),
        workbenches=desired,
    )


def desired_commission(
    commission_id: str, groves: Sequence[GroveRecord], paths: PathSettings
) -> DesiredCommissionInfra:
    return DesiredCommissionInfra(
        commission_id=commission_id,
        workspace_path=paths.commission_workspace(commission_id),
        groves_dir=paths.groves_dir(commission_id),
        groves=[
            DesiredGrove(
                id=g.id,
                name=g.name,
                commission_id=commission_id,
                current_path=g.path or paths.grove_path(commission_id, g.name),
                desired_path=paths.grove_path(commission_id, g.name),
                repos=g.repos,
            )
            for g in select_active(groves)
        ],
    )


# --- Operation derivation ---

def derive_operation(
    current_path: str,
    desired_path: str,
    current_exists: Optional[bool],
    desired_exists: Optional[bool],
) -> Tuple[OpStatus, bool]:
    """Returns (operation, update_db_path)."""
    current = current_exists is True
    target = desired_exists is True

    if current_path == desired_path:
        return (OpStatus.EXISTS if current else OpStatus.MISSING), False

    if target:
        return OpStatus.EXISTS, True
    if current:
        return OpStatus.MOVE, True
    return OpStatus.MISSING, False


def analyze_grove(grove: DesiredGrove, probe: GroveProbe) -> GroveAction:
    action, update_db = derive_operation(
        grove.current_path,
        grove.desired_path,
        probe.current.exists,
        probe.desired.exists,
    )

    if action == OpStatus.MISSING:
        config_status = OpStatus.MISSING
    elif action == OpStatus.MOVE:
        # The marker travels with the directory
        config_status = OpStatus.EXISTS if probe.current.config_present else OpStatus.CREATE
    else:
        config_status = OpStatus.EXISTS if probe.desired.config_present else OpStatus.CREATE

    return GroveAction(
        grove_id=grove.id,
        name=grove.name,
        current_path=grove.current_path,
        desired_path=grove.desired_path,
        action=action,
        path_exists=action in (OpStatus.EXISTS, OpStatus.MOVE),
        update_db_path=update_db,
        config_status=config_status,
    )


def plan_commission_infra(
    desired: DesiredCommissionInfra, actual: CommissionActualState
) -> CommissionInfraPlan:
    groves = []
    for grove in desired.groves:
        probe = actual.groves.get(grove.id) or GroveProbe(
            current=PathProbe(path=grove.current_path),
            desired=PathProbe(path=grove.desired_path),
        )
        groves.append(analyze_grove(grove, probe))

    return CommissionInfraPlan(
        commission_id=desired.commission_id,
        workspace_path=desired.workspace_path,
        groves_dir=desired.groves_dir,
        create_workspace=not actual.workspace.present,
        create_groves_dir=not actual.groves_dir.present,
        groves=groves,
    )


# --- Windows ---

def _within(path: str, root: str) -> bool:
    """True when path is root or lies below it. Panes may cd into subdirectories."""
    root = root.rstrip("/")
    return path == root or path.startswith(root + "/")


def classify_window(
    index: int,
    name: str,
    path: str,
    probe: Optional[WindowProbe],
    directory_ready: bool,
    settings: Optional[SessionSettings] = None,
    check_layout: bool = True,
) -> WindowPlan:
    """
    exists: window present with the expected layout, agent command and pane paths
    update: window present but pane count, agent command or a pane path deviates
    create: window absent (or session absent)
    skip:   window absent and its directory will not exist after this plan
    """
    settings = settings or SessionSettings()
    command = settings.agent_launch_command if check_layout else None

    if probe is not None and probe.exists:
        misplaced = [] if not check_layout else [
            p for p in probe.pane_paths if p and not _within(p, path)
        ]
        if not check_layout:
            action = OpStatus.EXISTS
        elif (
            probe.pane_count == settings.expected_pane_count
            and probe.agent_command == settings.agent_command
            and not misplaced
        ):
            action = OpStatus.EXISTS
        else:
            action = OpStatus.UPDATE
        return WindowPlan(
            index=index,
            name=name,
            path=path,
            action=action,
            command=command,
            pane_count=probe.pane_count,
            agent_command=probe.agent_command,
            misplaced_pane_paths=misplaced,
            needs_update=action == OpStatus.UPDATE,
        )

    action = OpStatus.CREATE if directory_ready else OpStatus.SKIP
    return WindowPlan(index=index, name=name, path=path, action=action, command=command)


# --- Workshop reconciliation ---

def _status(probe: PathProbe) -> OpStatus:
    return OpStatus.EXISTS if probe.present else OpStatus.CREATE


def _config_status(probe: PathProbe) -> OpStatus:
    return OpStatus.EXISTS if probe.config_present else OpStatus.CREATE


def _plan_workbench(
    wb: DesiredWorkbench, probe: PathProbe
) -> Tuple[WorkbenchOp, Optional[OrphanItem]]:
    orphan = None
    if probe.present:
        status, config_status = OpStatus.EXISTS, _config_status(probe)
    elif probe.unknown:
        status, config_status = OpStatus.MISSING, OpStatus.MISSING
        orphan = OrphanItem(
            entity="workbench", id=wb.id, name=wb.name, path=wb.path,
            reason=f"state unknown: {probe.error or 'probe failed'}",
        )
    elif not wb.materializable:
        status, config_status = OpStatus.MISSING, OpStatus.MISSING
        orphan = OrphanItem(
            entity="workbench", id=wb.id, name=wb.name, path=wb.path,
            reason="linked repository record not found",
        )
    else:
        status, config_status = OpStatus.CREATE, OpStatus.CREATE

    op = WorkbenchOp(
        id=wb.id,
        name=wb.name,
        path=wb.path,
        status=status,
        config_status=config_status,
        repo_path=wb.repo_path,
        branch=wb.branch,
    )
    return op, orphan


def reconcile(
    desired: DesiredWorkshop,
    actual: WorkshopActualState,
    settings: Optional[SessionSettings] = None,
) -> WorkshopPlan:
    """Compute the workshop plan. Pure: no probing, no effects."""
    settings = settings or SessionSettings()

    # 1. Gatehouse (always materializable)
    gatehouse = GatehouseOp(
        workshop_id=desired.workshop_id,
        path=desired.gatehouse_path,
        status=_status(actual.gatehouse),
        config_status=_config_status(actual.gatehouse),
    )

    # 2. Workbenches
    ops: List[WorkbenchOp] = []
    orphans: List[OrphanItem] = []
    for wb in desired.workbenches:
        probe = actual.workbenches.get(wb.id) or PathProbe(path=wb.path)
        op, orphan = _plan_workbench(wb, probe)
        ops.append(op)
        if orphan:
            orphans.append(orphan)

    # 3. Session and windows
    session_present = actual.session.exists is True
    session_name = actual.session.session_name or desired.session_name
    window_probes = actual.session.windows if session_present else {}

    windows = [classify_window(
        1,
        settings.gatehouse_window,
        gatehouse.path,
        window_probes.get(settings.gatehouse_window),
        directory_ready=True,
        settings=settings,
        check_layout=False,
    )]
    for i, op in enumerate(ops):
        windows.append(classify_window(
            i + 2,
            op.name,
            op.path,
            window_probes.get(op.name),
            directory_ready=op.status in (OpStatus.EXISTS, OpStatus.CREATE),
            settings=settings,
        ))

    session = SessionOp(
        session_name=session_name,
        status=OpStatus.EXISTS if session_present else OpStatus.CREATE,
        windows=windows,
    )
    expected = {w.name for w in windows}
    orphan_windows = [
        name for name in (actual.session.all_windows if session_present else [])
        if name not in expected
    ]

    # 4. Fast path. Orphan windows are reported but never block it.
    nothing_to_do = (
        session_present
        and gatehouse.status == OpStatus.EXISTS
        and gatehouse.config_status == OpStatus.EXISTS
        and all(
            op.status == OpStatus.EXISTS and op.config_status == OpStatus.EXISTS
            for op in ops
        )
        and not any(w.action in (OpStatus.CREATE, OpStatus.UPDATE) for w in windows)
    )

    return WorkshopPlan(
        workshop_id=desired.workshop_id,
        workshop_name=desired.workshop_name,
        gatehouse=gatehouse,
        workbenches=ops,
        session=session,
        orphans=orphans,
        orphan_windows=orphan_windows,
        stray_markers=actual.stray_markers,
        nothing_to_do=nothing_to_do,
    )


# --- Effect translation ---

def _marker_effects(root: str, marker: PlaceMarker) -> List[Effect]:
    return [
        FileEffect(operation=FileOperation.MKDIR, path=marker_dir(root), mode=DIR_MODE),
        FileEffect(
            operation=FileOperation.WRITE,
            path=marker_path(root),
            content=render_marker(marker),
            mode=MARKER_MODE,
        ),
    ]


def workbench_effects(
    op: WorkbenchOp,
    workshop_id: str,
    session_name: Optional[str] = None,
    window: Optional[WindowPlan] = None,
) -> List[Effect]:
    """Materialize one workbench: worktree or directory, marker, then its window."""
    effects: List[Effect] = []
    if op.status == OpStatus.CREATE:
        if op.repo_path:
            effects.append(GitEffect(
                repo_path=op.repo_path, branch=op.branch, target_path=op.path
            ))
        else:
            effects.append(FileEffect(
                operation=FileOperation.MKDIR, path=op.path, mode=DIR_MODE
            ))
    if op.config_status == OpStatus.CREATE:
        effects.extend(_marker_effects(op.path, PlaceMarker(
            place_id=op.id, role="IMP", name=op.name, workshop_id=workshop_id,
        )))
    if session_name and window is not None and window.action == OpStatus.CREATE:
        effects.append(SessionEffect(
            operation=SessionOperation.CREATE_WINDOW,
            session_name=session_name,
            window_name=window.name,
            working_dir=window.path,
            command=window.command,
        ))
    return effects


def workshop_effects(
    plan: WorkshopPlan, settings: Optional[SessionSettings] = None
) -> List[EffectBatch]:
    """
    Translate a workshop plan into per-entity batches, in dependency order:
    gatehouse, session (with the gatehouse window), then each workbench.
    """
    if plan.nothing_to_do:
        return []
    settings = settings or SessionSettings()
    batches: List[EffectBatch] = []

    gatehouse = plan.gatehouse
    effects: List[Effect] = []
    if gatehouse.status == OpStatus.CREATE:
        effects.append(FileEffect(
            operation=FileOperation.MKDIR, path=gatehouse.path, mode=DIR_MODE
        ))
    if gatehouse.config_status == OpStatus.CREATE:
        effects.extend(_marker_effects(gatehouse.path, PlaceMarker(
            place_id=plan.workshop_id, role="ORC",
            name=plan.workshop_name, workshop_id=plan.workshop_id,
        )))
    if effects:
        batches.append(EffectBatch(
            entity_id=plan.workshop_id, label="gatehouse", effects=effects
        ))

    session = plan.session
    windows = {w.name: w for w in session.windows}
    gate_window = windows.get(settings.gatehouse_window)
    if session.status == OpStatus.CREATE:
        batches.append(EffectBatch(
            entity_id=plan.workshop_id,
            label=f"session {session.session_name}",
            effects=[SessionEffect(
                operation=SessionOperation.CREATE_SESSION,
                session_name=session.session_name,
                window_name=settings.gatehouse_window,
                working_dir=gatehouse.path,
                environment={settings.workshop_env_var: plan.workshop_id},
            )],
        ))
    elif gate_window is not None and gate_window.action == OpStatus.CREATE:
        batches.append(EffectBatch(
            entity_id=plan.workshop_id,
            label=f"window {settings.gatehouse_window}",
            effects=[SessionEffect(
                operation=SessionOperation.CREATE_WINDOW,
                session_name=session.session_name,
                window_name=settings.gatehouse_window,
                working_dir=gatehouse.path,
            )],
        ))

    for op in plan.workbenches:
        effects = workbench_effects(
            op, plan.workshop_id, session.session_name, windows.get(op.name)
        )
        if effects:
            batches.append(EffectBatch(
                entity_id=op.id, label=f"workbench {op.name}", effects=effects
            ))
    return batches


def commission_effects(plan: CommissionInfraPlan) -> List[EffectBatch]:
    """Workspace directories first, then one batch per grove."""
    batches: List[EffectBatch] = []

    effects: List[Effect] = []
    if plan.create_workspace:
        effects.append(FileEffect(
            operation=FileOperation.MKDIR, path=plan.workspace_path, mode=DIR_MODE
        ))
    if plan.create_groves_dir:
        effects.append(FileEffect(
            operation=FileOperation.MKDIR, path=plan.groves_dir, mode=DIR_MODE
        ))
    if effects:
        batches.append(EffectBatch(
            entity_id=plan.commission_id, label="workspace", effects=effects
        ))

    for grove in plan.groves:
        if grove.action == OpStatus.MISSING:
            continue
        effects = []
        if grove.action == OpStatus.MOVE:
            effects.append(FileEffect(
                operation=FileOperation.MOVE,
                path=grove.current_path,
                destination=grove.desired_path,
            ))
        if grove.update_db_path:
            effects.append(PersistEffect(
                entity="grove",
                operation="update_path",
                data={"grove_id": grove.grove_id, "path": grove.desired_path},
            ))
        if grove.config_status == OpStatus.CREATE:
            effects.extend(_marker_effects(grove.desired_path, PlaceMarker(
                place_id=grove.grove_id, role="GROVE",
                name=grove.name, commission_id=plan.commission_id,
            )))
        if effects:
            batches.append(EffectBatch(
                entity_id=grove.grove_id, label=f"grove {grove.name}", effects=effects
            ))
    return batches
