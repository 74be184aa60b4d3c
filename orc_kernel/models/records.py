"""Persisted records — what the repositories store about each entity."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class Role(str, Enum):
    """Actor roles. ORC orchestrates; IMPs implement inside a workbench."""
    ORC = "ORC"
    IMP = "IMP"


class RecordStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETE = "complete"
    ARCHIVED = "archived"
    CLOSED = "closed"


# Records in these statuses never take part in reconciliation.
TERMINAL_STATUSES = frozenset({
    RecordStatus.COMPLETE.value,
    RecordStatus.ARCHIVED.value,
    RecordStatus.CLOSED.value,
})


class PlanStatus(str, Enum):
    """Workflow plan lifecycle (distinct from reconciliation plans)."""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    ESCALATED = "escalated"


class WorkshopRecord(BaseModel):
    id: str                                 # e.g. "WORK-001"
    name: str
    status: str = RecordStatus.ACTIVE.value
    created_at: Optional[datetime] = None


class RepoRecord(BaseModel):
    id: str                                 # e.g. "REPO-001"
    name: str
    local_path: str


class WorkbenchRecord(BaseModel):
    """A workbench. Its path is derived from `name`, never stored."""

    id: str                                 # e.g. "BENCH-001"
    name: str
    workshop_id: str
    repo_id: Optional[str] = None
    home_branch: str
    status: str = RecordStatus.ACTIVE.value
    focused_id: Optional[str] = None        # Container this IMP is focused on
    created_at: Optional[datetime] = None


class CommissionRecord(BaseModel):
    id: str                                 # e.g. "COMM-001"
    title: str
    status: str = RecordStatus.ACTIVE.value
    pinned: bool = False
    created_at: Optional[datetime] = None


class GroveRecord(BaseModel):
    """
    A grove inside a commission workspace. `path` is the last path written
    to the database; the desired path is derived and may differ (legacy rows).
    """

    id: str                                 # e.g. "GROVE-001"
    name: str
    commission_id: str
    path: str
    repos: List[str] = []
    status: str = RecordStatus.ACTIVE.value
    created_at: Optional[datetime] = None


class WorkflowPlanRecord(BaseModel):
    id: str                                 # e.g. "PLAN-001"
    commission_id: str
    title: str
    content: str = ""
    status: str = PlanStatus.DRAFT.value
    pinned: bool = False
    escalation_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class TaskRecord(BaseModel):
    id: str                                 # e.g. "TASK-001"
    title: str
    workbench_id: Optional[str] = None
    status: str = RecordStatus.ACTIVE.value
    created_at: Optional[datetime] = None


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
