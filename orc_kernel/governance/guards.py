"""
Guard Engine — evaluates role permissions and lifecycle preconditions.

One pure function per guarded transition. Callers gather every fact
(existence, counts, pinned flags, current status) and pass it in; a guard
never performs I/O and never counts anything itself.

Behavioral Contract:
- Returns GuardResult(allowed=True) when every precondition holds
- Otherwise returns allowed=False with a reason naming the blocking
  condition and, where one exists, the command that removes it
- Never raises; callers decide whether to raise GuardDenied
"""

from typing import Dict, FrozenSet, Tuple

from orc_kernel.models.guards import (
    ActorContext,
    ArchiveWorkbenchContext,
    ArchiveWorkshopContext,
    CommissionStateContext,
    CreatePlanContext,
    CreateWorkbenchContext,
    DeleteCommissionContext,
    DeleteWorkbenchContext,
    DeleteWorkshopContext,
    FocusContext,
    GuardResult,
    OpenWorkbenchContext,
    PinContext,
    PlanStateContext,
    RenameWorkbenchContext,
)
from orc_kernel.models.records import PlanStatus, RecordStatus, Role


# Workflow plan transitions: action -> (allowed source statuses, target status)
PLAN_TRANSITIONS: Dict[str, Tuple[FrozenSet[str], str]] = {
    "submit": (
        frozenset({PlanStatus.DRAFT.value}),
        PlanStatus.PENDING_REVIEW.value,
    ),
    "approve": (
        frozenset({PlanStatus.PENDING_REVIEW.value}),
        PlanStatus.APPROVED.value,
    ),
    "escalate": (
        frozenset({PlanStatus.DRAFT.value, PlanStatus.PENDING_REVIEW.value}),
        PlanStatus.ESCALATED.value,
    ),
}


def _require_orc(ctx: ActorContext, verb: str, noun: str) -> GuardResult:
    if ctx.role != Role.ORC:
        return GuardResult.deny(
            f"{ctx.role.value}s cannot {verb} {noun} - only ORC can {verb} "
            f"{noun} (agent: {ctx.actor_id})"
        )
    return GuardResult.allow()


def _check_source_status(ctx: PlanStateContext, action: str) -> GuardResult:
    sources, _ = PLAN_TRANSITIONS[action]
    if ctx.status not in sources:
        allowed = " or ".join(sorted(sources))
        return GuardResult.deny(
            f"can only {action} {allowed} plans (current status: {ctx.status})"
        )
    return GuardResult.allow()


# --- Commissions ---

def can_create_commission(ctx: ActorContext) -> GuardResult:
    """Only ORC creates commissions. IMPs work within existing ones."""
    return _require_orc(ctx, "create", "commissions")


def can_start_commission(ctx: ActorContext) -> GuardResult:
    return _require_orc(ctx, "start", "commissions")


def can_launch_commission(ctx: ActorContext) -> GuardResult:
    """Launch = create + start, so it carries the same role rule."""
    return _require_orc(ctx, "launch", "commissions")


def _pinned_terminal(ctx: CommissionStateContext, verb: str) -> GuardResult:
    if ctx.pinned:
        return GuardResult.deny(
            f"cannot {verb} pinned commission {ctx.commission_id}. "
            f"Unpin first with: orc commission unpin {ctx.commission_id}"
        )
    return GuardResult.allow()


def can_complete_commission(ctx: CommissionStateContext) -> GuardResult:
    return _pinned_terminal(ctx, "complete")


def can_archive_commission(ctx: CommissionStateContext) -> GuardResult:
    return _pinned_terminal(ctx, "archive")


def can_delete_commission(ctx: DeleteCommissionContext) -> GuardResult:
    """Commissions with groves or plans require force."""
    if (ctx.grove_count > 0 or ctx.plan_count > 0) and not ctx.force:
        return GuardResult.deny(
            f"commission {ctx.commission_id} has {ctx.grove_count} groves and "
            f"{ctx.plan_count} plans. Use --force to delete anyway"
        )
    return GuardResult.allow()


def can_pin_commission(ctx: PinContext) -> GuardResult:
    if not ctx.commission_exists:
        return GuardResult.deny(f"commission {ctx.commission_id} not found")
    return GuardResult.allow()


def can_unpin_commission(ctx: PinContext) -> GuardResult:
    return can_pin_commission(ctx)


# --- Workbenches ---

def can_create_workbench(ctx: CreateWorkbenchContext) -> GuardResult:
    result = _require_orc(ctx.actor, "create", "workbenches")
    if not result.allowed:
        return result
    if not ctx.workshop_exists:
        return GuardResult.deny(
            f"cannot create workbench: workshop {ctx.workshop_id} not found"
        )
    return GuardResult.allow()


def can_open_workbench(ctx: OpenWorkbenchContext) -> GuardResult:
    if not ctx.workbench_exists:
        return GuardResult.deny(f"workbench {ctx.workbench_id} not found")
    if not ctx.path_exists:
        return GuardResult.deny(
            "workbench worktree not found - run 'orc infra apply' to materialize"
        )
    if not ctx.in_session:
        return GuardResult.deny(
            "not in a tmux session - run this command from within a tmux session"
        )
    return GuardResult.allow()


def can_rename_workbench(ctx: RenameWorkbenchContext) -> GuardResult:
    if not ctx.workbench_exists:
        return GuardResult.deny(f"workbench {ctx.workbench_id} not found")
    return GuardResult.allow()


def can_archive_workbench(ctx: ArchiveWorkbenchContext) -> GuardResult:
    if ctx.status == RecordStatus.ARCHIVED.value:
        return GuardResult.deny(f"workbench {ctx.workbench_id} is already archived")
    return GuardResult.allow()


def can_delete_workbench(ctx: DeleteWorkbenchContext) -> GuardResult:
    if ctx.active_task_count > 0 and not ctx.force:
        return GuardResult.deny(
            f"workbench {ctx.workbench_id} has {ctx.active_task_count} active "
            f"tasks. Use --force to delete anyway"
        )
    return GuardResult.allow()


def can_focus(ctx: FocusContext) -> GuardResult:
    """An actor may not focus a container held by a different active actor."""
    if not ctx.container_exists:
        return GuardResult.deny(f"cannot focus {ctx.container_id}: not found")
    others = sorted({a for a in ctx.focused_by if a != ctx.actor_id})
    if others:
        return GuardResult.deny(
            f"cannot focus {ctx.container_id}: already focused by "
            f"{', '.join(others)}. Ask them to run 'orc focus --clear' first"
        )
    return GuardResult.allow()


# --- Workshops ---

def can_archive_workshop(ctx: ArchiveWorkshopContext) -> GuardResult:
    if ctx.active_workbench_count > 0:
        return GuardResult.deny(
            f"cannot archive workshop {ctx.workshop_id}: "
            f"{ctx.active_workbench_count} active workbench(es) remaining. "
            f"Archive them first with 'orc workbench archive'"
        )
    return GuardResult.allow()


def can_delete_workshop(ctx: DeleteWorkshopContext) -> GuardResult:
    if ctx.workbench_count > 0 and not ctx.force:
        return GuardResult.deny(
            f"workshop {ctx.workshop_id} has {ctx.workbench_count} workbenches. "
            f"Use --force to delete anyway"
        )
    return GuardResult.allow()


# --- Workflow plans ---

def can_create_plan(ctx: CreatePlanContext) -> GuardResult:
    if not ctx.commission_exists:
        return GuardResult.deny(f"commission {ctx.commission_id} not found")
    return GuardResult.allow()


def can_submit_plan(ctx: PlanStateContext) -> GuardResult:
    result = _check_source_status(ctx, "submit")
    if not result.allowed:
        return result
    if not ctx.has_content:
        return GuardResult.deny("cannot submit plan without content")
    return GuardResult.allow()


def can_approve_plan(ctx: PlanStateContext) -> GuardResult:
    # Status first: other statuses cannot be approved regardless of pinning
    result = _check_source_status(ctx, "approve")
    if not result.allowed:
        return result
    if ctx.pinned:
        return GuardResult.deny(
            f"cannot approve pinned plan {ctx.plan_id}. "
            f"Unpin first with: orc plan unpin {ctx.plan_id}"
        )
    return GuardResult.allow()


def can_escalate_plan(ctx: PlanStateContext) -> GuardResult:
    result = _check_source_status(ctx, "escalate")
    if not result.allowed:
        return result
    if not ctx.has_content:
        return GuardResult.deny("cannot escalate plan without content")
    if not ctx.has_reason:
        return GuardResult.deny("escalation reason is required")
    return GuardResult.allow()


def can_delete_plan(ctx: PlanStateContext) -> GuardResult:
    if ctx.pinned:
        return GuardResult.deny(
            f"cannot delete pinned plan {ctx.plan_id}. "
            f"Unpin first with: orc plan unpin {ctx.plan_id}"
        )
    return GuardResult.allow()
