"""Guard contexts and results — pre-gathered facts in, allow/deny out."""

from typing import List, Optional

from pydantic import BaseModel

from orc_kernel.models.records import Role


class GuardDenied(Exception):
    """A guarded transition was refused. The message is the guard's reason."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class GuardResult(BaseModel):
    allowed: bool
    reason: str = ""                        # Human-actionable, set when denied

    @classmethod
    def allow(cls) -> "GuardResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "GuardResult":
        return cls(allowed=False, reason=reason)

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise GuardDenied(self.reason)


class ActorContext(BaseModel):
    """Who is acting."""

    role: Role
    actor_id: str                           # e.g. "ORC" or "IMP-BENCH-001"
    commission_id: Optional[str] = None


class CommissionStateContext(BaseModel):
    commission_id: str
    pinned: bool = False


class DeleteCommissionContext(BaseModel):
    commission_id: str
    grove_count: int = 0
    plan_count: int = 0
    force: bool = False


class PinContext(BaseModel):
    commission_id: str
    commission_exists: bool


class CreateWorkbenchContext(BaseModel):
    actor: ActorContext
    workshop_id: str
    workshop_exists: bool


class OpenWorkbenchContext(BaseModel):
    workbench_id: str
    workbench_exists: bool
    path_exists: bool
    in_session: bool


class RenameWorkbenchContext(BaseModel):
    workbench_id: str
    workbench_exists: bool


class ArchiveWorkbenchContext(BaseModel):
    workbench_id: str
    status: str


class DeleteWorkbenchContext(BaseModel):
    workbench_id: str
    active_task_count: int = 0
    force: bool = False


class FocusContext(BaseModel):
    actor_id: str
    container_id: str
    container_exists: bool
    # Actor IDs of active entities currently focused on container_id
    focused_by: List[str] = []


class ArchiveWorkshopContext(BaseModel):
    workshop_id: str
    active_workbench_count: int = 0


class DeleteWorkshopContext(BaseModel):
    workshop_id: str
    workbench_count: int = 0
    force: bool = False


class CreatePlanContext(BaseModel):
    commission_id: str
    commission_exists: bool


class PlanStateContext(BaseModel):
    """Facts about one workflow plan for submit/approve/escalate/delete."""

    plan_id: str
    status: str
    pinned: bool = False
    has_content: bool = True
    has_reason: bool = False
