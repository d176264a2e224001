import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from execution_pipeline.errors import InvalidTransitionError
from execution_pipeline.execution_models import StepUpdateOutcome
from execution_pipeline.pipeline import ExecutionPipeline
from proposal_pipeline.pipeline import ProposalPipeline
from proposal_pipeline.proposal_models import Proposal

from .schemas import (
    ApproveRequest,
    EmergencyStopRequest,
    IngestRequest,
    MonitorRequest,
    ProposalDecisionRequest,
    ProposalPlanRequest,
    RejectRequest,
    ResumeRequest,
    RollbackActionRequest,
    RollbackRequest,
    StepStatusRequest,
)

logger = logging.getLogger(__name__)

execution_router = APIRouter()
proposal_router = APIRouter()


def _pipeline(request: Request) -> ExecutionPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=500, detail="execution pipeline not bound")
    return pipeline


def _proposal_pipeline(request: Request, name: str) -> ProposalPipeline:
    pipelines = getattr(request.app.state, "proposal_pipelines", None) or {}
    if name not in pipelines:
        raise HTTPException(status_code=404, detail=f"unknown proposal pipeline {name}")
    return pipelines[name]


def _check_admin(request: Request, token: Optional[str]):
    expected = request.app.state.settings.ADMIN_TOKEN
    # simple token check
    if expected:
        if not token or token != expected:
            raise HTTPException(status_code=401, detail="unauthorized")


# ============================================================================
# EXECUTION PLANS
# ============================================================================

@execution_router.post("/ingest")
def ingest(body: IngestRequest, request: Request) -> Dict[str, Any]:
    steps = _pipeline(request).ingest(body.to_input())
    return {"count": len(steps), "steps": [s.to_dict() for s in steps]}


@execution_router.post("/plans")
def create_plan(body: IngestRequest, request: Request) -> Dict[str, Any]:
    pipeline = _pipeline(request)
    plan = pipeline.sequence(pipeline.ingest(body.to_input()))
    return plan.to_dict()


@execution_router.get("/plans")
def list_plans(request: Request) -> Dict[str, Any]:
    plans = _pipeline(request).list_plans()
    return {"count": len(plans), "items": [p.to_dict() for p in plans]}


@execution_router.get("/plans/{plan_id}")
def get_plan(plan_id: str, request: Request) -> Dict[str, Any]:
    return _pipeline(request).get_plan(plan_id).to_dict()


@execution_router.post("/plans/{plan_id}/approve")
def approve_plan(plan_id: str, body: ApproveRequest, request: Request) -> Dict[str, Any]:
    return _pipeline(request).approve(plan_id, body.approver).to_dict()


@execution_router.post("/plans/{plan_id}/reject")
def reject_plan(plan_id: str, body: RejectRequest, request: Request) -> Dict[str, Any]:
    return _pipeline(request).reject(plan_id, body.actor, body.reason).to_dict()


@execution_router.post("/plans/{plan_id}/resume")
def resume_plan(plan_id: str, body: ResumeRequest, request: Request) -> Dict[str, Any]:
    return _pipeline(request).resume(plan_id, body.operator, body.note).to_dict()


@execution_router.post("/plans/{plan_id}/steps/{step_id}/status")
def update_step_status(plan_id: str, step_id: str, body: StepStatusRequest, request: Request) -> Dict[str, Any]:
    update = _pipeline(request).update_step_status(plan_id, step_id, body.status, body.telemetry)
    if update.outcome is StepUpdateOutcome.STEP_NOT_FOUND:
        raise HTTPException(status_code=404, detail=f"Step {step_id} not found in plan {plan_id}")
    return update.to_dict()


@execution_router.post("/plans/{plan_id}/monitor")
def monitor_plan(plan_id: str, body: MonitorRequest, request: Request) -> Dict[str, Any]:
    plan, report = _pipeline(request).monitor_tick(plan_id, body.telemetry)
    return {"plan": plan.to_dict(), "report": report.to_dict()}


# ============================================================================
# ROLLBACK
# ============================================================================

@execution_router.post("/plans/{plan_id}/rollbacks")
def generate_rollback(plan_id: str, body: RollbackRequest, request: Request) -> Dict[str, Any]:
    rollback = _pipeline(request).generate_rollback(plan_id, body.failed_step_id, body.reason, body.triggered_by)
    return rollback.to_dict()


@execution_router.get("/rollbacks/{rollback_id}")
def get_rollback(rollback_id: str, request: Request) -> Dict[str, Any]:
    return _pipeline(request).get_rollback(rollback_id).to_dict()


@execution_router.post("/rollbacks/{rollback_id}/approve")
def approve_rollback(rollback_id: str, body: RollbackActionRequest, request: Request) -> Dict[str, Any]:
    return _pipeline(request).approve_rollback(rollback_id, body.actor).to_dict()


@execution_router.post("/rollbacks/{rollback_id}/complete")
def complete_rollback(rollback_id: str, body: RollbackActionRequest, request: Request) -> Dict[str, Any]:
    return _pipeline(request).complete_rollback(rollback_id, body.actor).to_dict()


# ============================================================================
# EMERGENCY STOP
# ============================================================================

@execution_router.get("/emergency-stop")
def emergency_stop_state(request: Request) -> Dict[str, Any]:
    return _pipeline(request).emergency_stop.get_state()


@execution_router.post("/emergency-stop/engage")
def engage_emergency_stop(body: EmergencyStopRequest, request: Request) -> Dict[str, Any]:
    controller = _pipeline(request).emergency_stop
    if not controller.engage(body.actor, body.reason):
        raise HTTPException(status_code=422, detail="actor and reason are required")
    return controller.get_state()


@execution_router.post("/emergency-stop/release")
def release_emergency_stop(body: EmergencyStopRequest, request: Request) -> Dict[str, Any]:
    controller = _pipeline(request).emergency_stop
    if not controller.release(body.actor, body.reason):
        raise HTTPException(status_code=422, detail="actor and reason are required")
    return controller.get_state()


# ============================================================================
# EXECUTION LOG
# ============================================================================

@execution_router.get("/log")
def list_log(request: Request, category: Optional[str] = None, limit: int = 100) -> Dict[str, Any]:
    entries = _pipeline(request).log.list(category)[-limit:] if limit > 0 else []
    return {"count": len(entries), "items": [e.to_dict() for e in entries]}


@execution_router.get("/log/export")
def export_log(request: Request) -> Dict[str, Any]:
    return _pipeline(request).log.export()


@execution_router.post("/log/clear")
def clear_log(request: Request, x_admin_token: str = Header(None, alias="X-Admin-Token")) -> Dict[str, Any]:
    _check_admin(request, x_admin_token)
    return {"removed": _pipeline(request).log.clear()}


# ============================================================================
# PROPOSAL PIPELINES
# ============================================================================

@proposal_router.post("/{pipeline_name}/submit")
def submit_proposal(pipeline_name: str, body: Proposal, request: Request) -> Dict[str, Any]:
    return _proposal_pipeline(request, pipeline_name).submit(body).to_dict()


@proposal_router.post("/{pipeline_name}/audit")
def audit_proposal(pipeline_name: str, body: Proposal, request: Request) -> Dict[str, Any]:
    return _proposal_pipeline(request, pipeline_name).audit(body).to_dict()


@proposal_router.post("/{pipeline_name}/plans")
def create_proposal_plan(pipeline_name: str, body: ProposalPlanRequest, request: Request) -> Dict[str, Any]:
    plan = _proposal_pipeline(request, pipeline_name).create_plan(
        body.name, body.description, body.proposals, body.priority_order,
    )
    return plan.to_dict()


@proposal_router.get("/{pipeline_name}/plans")
def list_proposal_plans(pipeline_name: str, request: Request) -> Dict[str, Any]:
    plans = _proposal_pipeline(request, pipeline_name).list()
    return {"count": len(plans), "items": [p.to_dict() for p in plans]}


@proposal_router.get("/{pipeline_name}/plans/{plan_id}")
def get_proposal_plan(pipeline_name: str, plan_id: str, request: Request) -> Dict[str, Any]:
    plan = _proposal_pipeline(request, pipeline_name).get(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail=f"{pipeline_name} plan {plan_id} not found")
    return plan.to_dict()


@proposal_router.post("/{pipeline_name}/plans/{plan_id}/approve")
def approve_proposal_plan(
    pipeline_name: str, plan_id: str, body: ProposalDecisionRequest, request: Request,
) -> Dict[str, Any]:
    plan = _proposal_pipeline(request, pipeline_name).approve_plan(plan_id, body.approver, body.notes)
    if plan is None:
        raise HTTPException(status_code=404, detail=f"{pipeline_name} plan {plan_id} not found")
    return plan.to_dict()


@proposal_router.post("/{pipeline_name}/plans/{plan_id}/reject")
def reject_proposal_plan(
    pipeline_name: str, plan_id: str, body: ProposalDecisionRequest, request: Request,
) -> Dict[str, Any]:
    plan = _proposal_pipeline(request, pipeline_name).reject_plan(plan_id, body.approver, body.notes)
    if plan is None:
        raise HTTPException(status_code=404, detail=f"{pipeline_name} plan {plan_id} not found")
    return plan.to_dict()


# ============================================================================
# ERROR MAPPING
# ============================================================================

def install_error_handlers(app: FastAPI):
    """Unknown ids -> 404, illegal transitions -> 409, other bad values -> 422."""

    @app.exception_handler(LookupError)
    async def not_found(request: Request, exc: LookupError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def conflict(request: Request, exc: InvalidTransitionError):
        logger.warning("Rejected request %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def invalid(request: Request, exc: ValueError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})
