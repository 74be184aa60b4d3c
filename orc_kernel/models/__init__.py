"""ORC Kernel data models."""

from orc_kernel.models.effects import (
    CompositeEffect,
    Effect,
    EffectBatch,
    FileEffect,
    FileOperation,
    GitEffect,
    GitOperation,
    LogEffect,
    LogLevel,
    NoEffect,
    PersistEffect,
    SessionEffect,
    SessionOperation,
)
from orc_kernel.models.guards import GuardDenied, GuardResult
from orc_kernel.models.infra import (
    ApplyReport,
    BatchApplyResult,
    BatchError,
    CommissionInfraPlan,
    GroveAction,
    OpStatus,
    WindowPlan,
    WorkbenchOp,
    WorkshopPlan,
)
from orc_kernel.models.marker import PlaceMarker
from orc_kernel.models.records import (
    CommissionRecord,
    GroveRecord,
    PlanStatus,
    RecordStatus,
    RepoRecord,
    Role,
    TaskRecord,
    WorkbenchRecord,
    WorkflowPlanRecord,
    WorkshopRecord,
)

__all__ = [
    "ApplyReport",
    "BatchApplyResult",
    "BatchError",
    "CommissionInfraPlan",
    "CommissionRecord",
    "CompositeEffect",
    "Effect",
    "EffectBatch",
    "FileEffect",
    "FileOperation",
    "GitEffect",
    "GitOperation",
    "GroveAction",
    "GroveRecord",
    "GuardDenied",
    "GuardResult",
    "LogEffect",
    "LogLevel",
    "NoEffect",
    "OpStatus",
    "PersistEffect",
    "PlaceMarker",
    "PlanStatus",
    "RecordStatus",
    "RepoRecord",
    "Role",
    "SessionEffect",
    "SessionOperation",
    "TaskRecord",
    "WindowPlan",
    "WorkbenchOp",
    "WorkbenchRecord",
    "WorkflowPlanRecord",
    "WorkshopPlan",
    "WorkshopRecord",
]
