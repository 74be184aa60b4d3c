"""
ORC Kernel API — FastAPI endpoints.

Exposes, over local HTTP:
- Workshop infrastructure plan/apply
- Commission infrastructure plan/apply
- Commission creation
- Workflow plan creation and review transitions

Guard denials map to 403 with the guard's reason; unknown IDs map to 404.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from orc_kernel.adapters.ports import SessionDriver, WorkspaceAdapter
from orc_kernel.adapters.workspace import FilesystemWorkspace
from orc_kernel.config.settings import OrcSettings
from orc_kernel.models.guards import ActorContext, GuardDenied
from orc_kernel.models.records import Role
from orc_kernel.persistence.sqlite_store import NotFoundError, SqliteRepository
from orc_kernel.services.infra import (
    InfraService,
    group_commission_plan,
    group_workshop_plan,
)
from orc_kernel.services.lifecycle import (
    CommissionService,
    WorkflowPlanService,
    WorkshopService,
)


# --- Request/Response Models ---

class CommissionCreateRequest(BaseModel):
    title: str
    role: Role = Role.ORC
    actor_id: str = "ORC"


class WorkshopCreateRequest(BaseModel):
    name: str


class PlanCreateRequest(BaseModel):
    commission_id: str
    title: str
    content: str = ""


class EscalateRequest(BaseModel):
    reason: str


# --- Application Factory ---

def create_app(
    repository: Optional[SqliteRepository] = None,
    workspace: Optional[WorkspaceAdapter] = None,
    sessions: Optional[SessionDriver] = None,
    settings: Optional[OrcSettings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="ORC Kernel API",
        description="Workbench and workshop infrastructure reconciliation",
        version="0.1.0",
    )

    # Initialize components
    settings = settings or OrcSettings()
    repo = repository or SqliteRepository(":memory:")
    infra = InfraService(repo, workspace or FilesystemWorkspace(), sessions, settings)
    commissions = CommissionService(repo)
    workshops = WorkshopService(repo)
    plans = WorkflowPlanService(repo)

    # Store components on app state for access in endpoints
    app.state.repository = repo
    app.state.infra = infra

    @app.exception_handler(GuardDenied)
    async def guard_denied(request: Request, exc: GuardDenied):
        return JSONResponse(status_code=403, content={"detail": exc.reason})

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    # === WORKSHOPS ===

    @app.post("/workshops")
    def create_workshop(req: WorkshopCreateRequest):
        return workshops.create(req.name).model_dump(mode="json")

    @app.get("/workshops/{workshop_id}/plan")
    def plan_workshop(workshop_id: str):
        """Show what apply would do, without doing it."""
        plan = infra.plan_workshop(workshop_id)
        return {
            "plan": plan.model_dump(mode="json"),
            "groups": group_workshop_plan(plan),
        }

    @app.post("/workshops/{workshop_id}/apply")
    def apply_workshop(workshop_id: str):
        report = infra.apply_workshop(infra.plan_workshop(workshop_id))
        return {**report.model_dump(mode="json"), "succeeded": report.succeeded}

    # === COMMISSIONS ===

    @app.post("/commissions")
    def create_commission(req: CommissionCreateRequest):
        actor = ActorContext(role=req.role, actor_id=req.actor_id)
        return commissions.create(actor, req.title).model_dump(mode="json")

    @app.get("/commissions/{commission_id}/infra/plan")
    def plan_commission(commission_id: str):
        plan = infra.plan_commission(commission_id)
        return {
            "plan": plan.model_dump(mode="json"),
            "nothing_to_do": plan.nothing_to_do,
            "groups": group_commission_plan(plan),
        }

    @app.post("/commissions/{commission_id}/infra/apply")
    def apply_commission(commission_id: str):
        report = infra.apply_commission(infra.plan_commission(commission_id))
        return {**report.model_dump(mode="json"), "succeeded": report.succeeded}

    # === WORKFLOW PLANS ===

    @app.post("/plans")
    def create_plan(req: PlanCreateRequest):
        return plans.create(req.commission_id, req.title, req.content).model_dump(mode="json")

    @app.post("/plans/{plan_id}/submit")
    def submit_plan(plan_id: str):
        return plans.submit(plan_id).model_dump(mode="json")

    @app.post("/plans/{plan_id}/approve")
    def approve_plan(plan_id: str):
        return plans.approve(plan_id).model_dump(mode="json")

    @app.post("/plans/{plan_id}/escalate")
    def escalate_plan(plan_id: str, req: EscalateRequest):
        return plans.escalate(plan_id, req.reason).model_dump(mode="json")

    return app
