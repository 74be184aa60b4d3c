"""Repository interfaces, one per entity kind, and the union the services depend on."""

from typing import List, Optional, Protocol

from orc_kernel.models.records import (
    CommissionRecord,
    GroveRecord,
    RepoRecord,
    TaskRecord,
    WorkbenchRecord,
    WorkflowPlanRecord,
    WorkshopRecord,
)


class WorkshopRepository(Protocol):
    def create_workshop(self, name: str) -> WorkshopRecord: ...

    def get_workshop(self, workshop_id: str) -> WorkshopRecord: ...

    def workshop_exists(self, workshop_id: str) -> bool: ...

    def list_workshops(self) -> List[WorkshopRecord]: ...

    def update_workshop_status(self, workshop_id: str, status: str) -> None: ...

    def delete_workshop(self, workshop_id: str) -> None: ...


class WorkbenchRepository(Protocol):
    def create_workbench(
        self, name: str, workshop_id: str, home_branch: str, repo_id: Optional[str] = None
    ) -> WorkbenchRecord: ...

    def get_workbench(self, workbench_id: str) -> WorkbenchRecord: ...

    def workbench_exists(self, workbench_id: str) -> bool: ...

    def list_workbenches(self, workshop_id: Optional[str] = None) -> List[WorkbenchRecord]: ...

    def rename_workbench(self, workbench_id: str, name: str) -> None: ...

    def update_workbench_status(self, workbench_id: str, status: str) -> None: ...

    def set_workbench_focus(self, workbench_id: str, focused_id: Optional[str]) -> None: ...

    def delete_workbench(self, workbench_id: str) -> None: ...


class RepoRepository(Protocol):
    def create_repo(self, name: str, local_path: str) -> RepoRecord: ...

    def find_repo(self, repo_id: str) -> Optional[RepoRecord]: ...

    def delete_repo(self, repo_id: str) -> None: ...


class CommissionRepository(Protocol):
    def create_commission(self, title: str) -> CommissionRecord: ...

    def get_commission(self, commission_id: str) -> CommissionRecord: ...

    def commission_exists(self, commission_id: str) -> bool: ...

    def update_commission_status(self, commission_id: str, status: str) -> None: ...

    def set_commission_pinned(self, commission_id: str, pinned: bool) -> None: ...

    def delete_commission(self, commission_id: str) -> None: ...


class GroveRepository(Protocol):
    def create_grove(
        self, name: str, commission_id: str, path: str, repos: Optional[List[str]] = None
    ) -> GroveRecord: ...

    def get_grove(self, grove_id: str) -> GroveRecord: ...

    def list_groves(self, commission_id: str) -> List[GroveRecord]: ...

    def update_grove_path(self, grove_id: str, path: str) -> None: ...


class WorkflowPlanRepository(Protocol):
    def create_plan(self, commission_id: str, title: str, content: str = "") -> WorkflowPlanRecord: ...

    def get_plan(self, plan_id: str) -> WorkflowPlanRecord: ...

    def list_plans(self, commission_id: str) -> List[WorkflowPlanRecord]: ...

    def update_plan_status(
        self, plan_id: str, status: str, escalation_reason: Optional[str] = None
    ) -> None: ...

    def set_plan_pinned(self, plan_id: str, pinned: bool) -> None: ...

    def delete_plan(self, plan_id: str) -> None: ...


class TaskRepository(Protocol):
    def create_task(self, title: str, workbench_id: Optional[str] = None) -> TaskRecord: ...

    def update_task_status(self, task_id: str, status: str) -> None: ...

    def count_active_tasks(self, workbench_id: str) -> int: ...


class Repository(
    WorkshopRepository,
    WorkbenchRepository,
    RepoRepository,
    CommissionRepository,
    GroveRepository,
    WorkflowPlanRepository,
    TaskRepository,
    Protocol,
):
    """Everything the services need from storage. SqliteRepository satisfies it."""
