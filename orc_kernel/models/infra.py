"""
Infrastructure state — desired state, gathered actual state, plans and results.

Desired values are built from database records, actual values are probed
fresh on every invocation, and plans are derived from both. None of these
are persisted.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel


class OpStatus(str, Enum):
    CREATE = "create"       # Should exist, doesn't, this pass will make it
    EXISTS = "exists"       # Already satisfied
    MOVE = "move"           # Exists at a stale path, will be renamed
    MISSING = "missing"     # Should exist, doesn't, out of scope for this pass
    UPDATE = "update"       # Exists but deviates from the expected shape
    SKIP = "skip"           # Cannot be acted on yet (e.g. no working directory)


# --- Desired state ---

class DesiredWorkbench(BaseModel):
    id: str
    name: str
    path: str                               # Derived from name
    repo_path: Optional[str] = None         # None -> plain directory
    branch: str
    materializable: bool = True             # False when the linked repo is gone


class DesiredWorkshop(BaseModel):
    workshop_id: str
    workshop_name: str
    session_name: str                       # Name to use if a session is created
    gatehouse_path: str
    workbenches: List[DesiredWorkbench] = []


class DesiredGrove(BaseModel):
    id: str
    name: str
    commission_id: str
    current_path: str                       # As stored in the database
    desired_path: str                       # Derived from commission + name
    repos: List[str] = []


class DesiredCommissionInfra(BaseModel):
    commission_id: str
    workspace_path: str
    groves_dir: str
    groves: List[DesiredGrove] = []


# --- Actual state (gathered) ---

class PathProbe(BaseModel):
    """Existence facts for one path. None means the probe could not tell."""

    path: str
    exists: Optional[bool] = None
    config_exists: Optional[bool] = None
    error: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.exists is True

    @property
    def config_present(self) -> bool:
        return self.config_exists is True

    @property
    def unknown(self) -> bool:
        return self.exists is None


class WindowProbe(BaseModel):
    name: str
    exists: Optional[bool] = None
    pane_count: int = 0
    agent_command: str = ""                 # Command running in the agent pane
    pane_paths: List[str] = []              # Current directory of each pane, in index order


class SessionProbe(BaseModel):
    session_name: Optional[str] = None      # Actual name, found by env marker
    exists: Optional[bool] = None
    windows: Dict[str, WindowProbe] = {}
    all_windows: List[str] = []             # Every window in the session, expected or not
    error: Optional[str] = None


class StrayMarker(BaseModel):
    """A marker on disk whose place_id has no database record."""

    place_id: str
    path: str


class WorkshopActualState(BaseModel):
    gatehouse: PathProbe
    workbenches: Dict[str, PathProbe] = {}
    session: SessionProbe = SessionProbe()
    stray_markers: List[StrayMarker] = []


class GroveProbe(BaseModel):
    current: PathProbe
    desired: PathProbe


class CommissionActualState(BaseModel):
    workspace: PathProbe
    groves_dir: PathProbe
    groves: Dict[str, GroveProbe] = {}


# --- Plans ---

class GatehouseOp(BaseModel):
    workshop_id: str
    path: str
    status: OpStatus
    config_status: OpStatus


class WorkbenchOp(BaseModel):
    id: str
    name: str
    path: str
    status: OpStatus
    config_status: OpStatus
    repo_path: Optional[str] = None
    branch: str = ""


class OrphanItem(BaseModel):
    """A record with no materialized state that this engine will not create."""

    entity: str
    id: str
    name: str
    path: str
    reason: str


class WindowPlan(BaseModel):
    index: int
    name: str
    path: str
    action: OpStatus
    command: Optional[str] = None
    pane_count: int = 0
    agent_command: str = ""
    misplaced_pane_paths: List[str] = []    # Pane directories outside the window path
    needs_update: bool = False


class SessionOp(BaseModel):
    session_name: str
    status: OpStatus
    windows: List[WindowPlan] = []


class WorkshopPlan(BaseModel):
    workshop_id: str
    workshop_name: str
    gatehouse: GatehouseOp
    workbenches: List[WorkbenchOp] = []
    session: SessionOp
    orphans: List[OrphanItem] = []
    orphan_windows: List[str] = []          # Session windows no active workbench claims
    stray_markers: List[StrayMarker] = []
    nothing_to_do: bool = False


class GroveAction(BaseModel):
    grove_id: str
    name: str
    current_path: str
    desired_path: str
    action: OpStatus
    path_exists: bool = False
    update_db_path: bool = False
    config_status: OpStatus = OpStatus.EXISTS


class CommissionInfraPlan(BaseModel):
    commission_id: str
    workspace_path: str
    groves_dir: str
    create_workspace: bool = False
    create_groves_dir: bool = False
    groves: List[GroveAction] = []

    @property
    def nothing_to_do(self) -> bool:
        if self.create_workspace or self.create_groves_dir:
            return False
        for grove in self.groves:
            if grove.action != OpStatus.EXISTS or grove.update_db_path:
                return False
            if grove.config_status == OpStatus.CREATE:
                return False
        return True


# --- Results ---

class BatchError(BaseModel):
    entity_id: str
    label: str
    effect_kind: str
    message: str


class BatchApplyResult(BaseModel):
    completed: List[str] = []
    failed: List[str] = []
    errors: List[BatchError] = []

    @property
    def ok(self) -> bool:
        return not self.errors


class ApplyReport(BaseModel):
    """Summary printed after `plan` and `apply`."""

    target_id: str
    nothing_to_do: bool = False
    created: int = 0
    updated: int = 0
    skipped: int = 0
    attention: List[str] = []
    result: BatchApplyResult = BatchApplyResult()

    @property
    def succeeded(self) -> bool:
        return self.result.ok
