"""
Lifecycle Services — guarded CRUD for commissions, workbenches, workshops
and workflow plans.

Every mutation follows the same three steps: gather the facts the guard
needs, evaluate the guard (raising GuardDenied on denial), then write.
"""

import logging
from typing import Optional

from orc_kernel.governance import guards
from orc_kernel.models.effects import FileEffect, FileOperation
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
    PinContext,
    PlanStateContext,
    RenameWorkbenchContext,
)
from orc_kernel.models.records import (
    CommissionRecord,
    RecordStatus,
    WorkbenchRecord,
    WorkflowPlanRecord,
    WorkshopRecord,
    is_terminal,
)
from orc_kernel.persistence.ports import Repository
from orc_kernel.services.infra import InfraService

logger = logging.getLogger(__name__)


class CommissionService:
    def __init__(self, repository: Repository):
        self.repository = repository

    def create(self, actor: ActorContext, title: str) -> CommissionRecord:
        guards.can_create_commission(actor).raise_if_denied()
        record = self.repository.create_commission(title)
        logger.info("Created commission %s (%s)", record.id, title)
        return record

    def start(self, actor: ActorContext, commission_id: str) -> CommissionRecord:
        guards.can_start_commission(actor).raise_if_denied()
        self.repository.update_commission_status(commission_id, RecordStatus.ACTIVE.value)
        return self.repository.get_commission(commission_id)

    def launch(self, actor: ActorContext, title: str) -> CommissionRecord:
        """Create and start in one step."""
        guards.can_launch_commission(actor).raise_if_denied()
        record = self.create(actor, title)
        return self.start(actor, record.id)

    def _terminal(self, commission_id: str, status: RecordStatus, guard) -> CommissionRecord:
        record = self.repository.get_commission(commission_id)
        guard(CommissionStateContext(
            commission_id=commission_id, pinned=record.pinned
        )).raise_if_denied()
        self.repository.update_commission_status(commission_id, status.value)
        return self.repository.get_commission(commission_id)

    def complete(self, commission_id: str) -> CommissionRecord:
        return self._terminal(commission_id, RecordStatus.COMPLETE, guards.can_complete_commission)

    def archive(self, commission_id: str) -> CommissionRecord:
        return self._terminal(commission_id, RecordStatus.ARCHIVED, guards.can_archive_commission)

    def delete(self, commission_id: str, force: bool = False) -> None:
        self.repository.get_commission(commission_id)
        guards.can_delete_commission(DeleteCommissionContext(
            commission_id=commission_id,
            grove_count=len(self.repository.list_groves(commission_id)),
            plan_count=len(self.repository.list_plans(commission_id)),
            force=force,
        )).raise_if_denied()
        self.repository.delete_commission(commission_id)

    def pin(self, commission_id: str) -> None:
        guards.can_pin_commission(PinContext(
            commission_id=commission_id,
            commission_exists=self.repository.commission_exists(commission_id),
        )).raise_if_denied()
        self.repository.set_commission_pinned(commission_id, True)

    def unpin(self, commission_id: str) -> None:
        guards.can_unpin_commission(PinContext(
            commission_id=commission_id,
            commission_exists=self.repository.commission_exists(commission_id),
        )).raise_if_denied()
        self.repository.set_commission_pinned(commission_id, False)


class WorkbenchService:
    """Workbench records plus their on-disk materialization."""

    def __init__(self, repository: Repository, infra: InfraService):
        self.repository = repository
        self.infra = infra

    def create(
        self,
        actor: ActorContext,
        workshop_id: str,
        name: str,
        repo_id: Optional[str] = None,
        home_branch: Optional[str] = None,
        materialize: bool = True,
    ) -> WorkbenchRecord:
        guards.can_create_workbench(CreateWorkbenchContext(
            actor=actor,
            workshop_id=workshop_id,
            workshop_exists=self.repository.workshop_exists(workshop_id),
        )).raise_if_denied()
        record = self.repository.create_workbench(
            name, workshop_id, home_branch or name, repo_id=repo_id
        )
        logger.info("Created workbench %s (%s) in %s", record.id, name, workshop_id)
        if materialize:
            self.infra.materialize_workbench(record.id)
        return record

    def rename(self, workbench_id: str, new_name: str) -> WorkbenchRecord:
        """Rename the record and move the directory along with it."""
        exists = self.repository.workbench_exists(workbench_id)
        guards.can_rename_workbench(RenameWorkbenchContext(
            workbench_id=workbench_id, workbench_exists=exists
        )).raise_if_denied()

        record = self.repository.get_workbench(workbench_id)
        paths = self.infra.settings.paths
        old_path = paths.workbench_path(record.name)
        new_path = paths.workbench_path(new_name)
        workspace = self.infra.workspace
        if workspace.directory_exists(old_path) and not workspace.directory_exists(new_path):
            self.infra.executor.execute([FileEffect(
                operation=FileOperation.MOVE, path=old_path, destination=new_path
            )])
        self.repository.rename_workbench(workbench_id, new_name)
        return self.repository.get_workbench(workbench_id)

    def archive(self, workbench_id: str) -> WorkbenchRecord:
        record = self.repository.get_workbench(workbench_id)
        guards.can_archive_workbench(ArchiveWorkbenchContext(
            workbench_id=workbench_id, status=record.status
        )).raise_if_denied()
        self.repository.update_workbench_status(workbench_id, RecordStatus.ARCHIVED.value)
        return self.repository.get_workbench(workbench_id)

    def delete(self, workbench_id: str, force: bool = False) -> None:
        self.repository.get_workbench(workbench_id)
        guards.can_delete_workbench(DeleteWorkbenchContext(
            workbench_id=workbench_id,
            active_task_count=self.repository.count_active_tasks(workbench_id),
            force=force,
        )).raise_if_denied()
        self.infra.cleanup_workbench(workbench_id, force=force)
        self.repository.delete_workbench(workbench_id)

    def focus(self, workbench_id: str, container_id: str) -> WorkbenchRecord:
        """Point a workbench's actor at a container (currently a commission)."""
        self.repository.get_workbench(workbench_id)
        focused_by = [
            wb.id
            for wb in self.repository.list_workbenches()
            if wb.focused_id == container_id and not is_terminal(wb.status)
        ]
        guards.can_focus(FocusContext(
            actor_id=workbench_id,
            container_id=container_id,
            container_exists=self.repository.commission_exists(container_id),
            focused_by=focused_by,
        )).raise_if_denied()
        self.repository.set_workbench_focus(workbench_id, container_id)
        return self.repository.get_workbench(workbench_id)

    def clear_focus(self, workbench_id: str) -> None:
        self.repository.set_workbench_focus(workbench_id, None)


class WorkshopService:
    def __init__(self, repository: Repository):
        self.repository = repository

    def create(self, name: str) -> WorkshopRecord:
        return self.repository.create_workshop(name)

    def archive(self, workshop_id: str) -> WorkshopRecord:
        self.repository.get_workshop(workshop_id)
        active = [
            wb for wb in self.repository.list_workbenches(workshop_id)
            if not is_terminal(wb.status)
        ]
        guards.can_archive_workshop(ArchiveWorkshopContext(
            workshop_id=workshop_id, active_workbench_count=len(active)
        )).raise_if_denied()
        self.repository.update_workshop_status(workshop_id, RecordStatus.ARCHIVED.value)
        return self.repository.get_workshop(workshop_id)

    def delete(self, workshop_id: str, force: bool = False) -> None:
        self.repository.get_workshop(workshop_id)
        guards.can_delete_workshop(DeleteWorkshopContext(
            workshop_id=workshop_id,
            workbench_count=len(self.repository.list_workbenches(workshop_id)),
            force=force,
        )).raise_if_denied()
        self.repository.delete_workshop(workshop_id)


class WorkflowPlanService:
    """Plans move draft -> pending_review -> approved, or escalate."""

    def __init__(self, repository: Repository):
        self.repository = repository

    def _context(self, record: WorkflowPlanRecord, reason: Optional[str] = None) -> PlanStateContext:
        return PlanStateContext(
            plan_id=record.id,
            status=record.status,
            pinned=record.pinned,
            has_content=bool(record.content.strip()),
            has_reason=bool(reason and reason.strip()),
        )

    def _transition(self, plan_id: str, action: str, guard, reason: Optional[str] = None):
        record = self.repository.get_plan(plan_id)
        guard(self._context(record, reason)).raise_if_denied()
        _, target = guards.PLAN_TRANSITIONS[action]
        self.repository.update_plan_status(plan_id, target, escalation_reason=reason)
        logger.info("Plan %s: %s -> %s", plan_id, record.status, target)
        return self.repository.get_plan(plan_id)

    def create(self, commission_id: str, title: str, content: str = "") -> WorkflowPlanRecord:
        guards.can_create_plan(CreatePlanContext(
            commission_id=commission_id,
            commission_exists=self.repository.commission_exists(commission_id),
        )).raise_if_denied()
        return self.repository.create_plan(commission_id, title, content)

    def submit(self, plan_id: str) -> WorkflowPlanRecord:
        return self._transition(plan_id, "submit", guards.can_submit_plan)

    def approve(self, plan_id: str) -> WorkflowPlanRecord:
        return self._transition(plan_id, "approve", guards.can_approve_plan)

    def escalate(self, plan_id: str, reason: str) -> WorkflowPlanRecord:
        return self._transition(plan_id, "escalate", guards.can_escalate_plan, reason=reason)

    def pin(self, plan_id: str) -> None:
        self.repository.get_plan(plan_id)
        self.repository.set_plan_pinned(plan_id, True)

    def unpin(self, plan_id: str) -> None:
        self.repository.get_plan(plan_id)
        self.repository.set_plan_pinned(plan_id, False)

    def delete(self, plan_id: str) -> None:
        record = self.repository.get_plan(plan_id)
        guards.can_delete_plan(self._context(record)).raise_if_denied()
        self.repository.delete_plan(plan_id)
