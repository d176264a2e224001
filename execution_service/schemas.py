from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from execution_pipeline.execution_models import StepStatus, TelemetrySnapshot
from execution_pipeline.upstream_models import (
    AllocationPlan,
    ExecutionIngestInput,
    StrategyPlan,
    WorkflowPlan,
)
from proposal_pipeline.proposal_models import Proposal


def _required(v: str) -> str:
    if v is None or not v.strip():
        raise ValueError("must be non-empty")
    return v.strip()


class IngestRequest(BaseModel):
    workflow_plan: Optional[WorkflowPlan] = None
    strategy_plan: Optional[StrategyPlan] = None
    allocation_plan: Optional[AllocationPlan] = None
    simulation_insights: Optional[List[str]] = None
    refinement_findings: Optional[List[str]] = None
    facility_orchestrator_notes: Optional[List[str]] = None
    telemetry_baselines: Optional[List[TelemetrySnapshot]] = None

    def to_input(self) -> ExecutionIngestInput:
        def _t(values):
            return tuple(values) if values is not None else None

        return ExecutionIngestInput(
            workflow_plan=self.workflow_plan,
            strategy_plan=self.strategy_plan,
            allocation_plan=self.allocation_plan,
            simulation_insights=_t(self.simulation_insights),
            refinement_findings=_t(self.refinement_findings),
            facility_orchestrator_notes=_t(self.facility_orchestrator_notes),
            telemetry_baselines=_t(self.telemetry_baselines),
        )


class ApproveRequest(BaseModel):
    approver: str

    @field_validator('approver')
    @classmethod
    def non_empty(cls, v):
        return _required(v)


class RejectRequest(BaseModel):
    actor: str
    reason: str

    @field_validator('actor', 'reason')
    @classmethod
    def non_empty(cls, v):
        return _required(v)


class ResumeRequest(BaseModel):
    operator: str
    note: str

    @field_validator('operator', 'note')
    @classmethod
    def non_empty(cls, v):
        return _required(v)


class StepStatusRequest(BaseModel):
    status: StepStatus
    telemetry: Optional[TelemetrySnapshot] = None


class MonitorRequest(BaseModel):
    telemetry: Optional[TelemetrySnapshot] = None


class RollbackRequest(BaseModel):
    failed_step_id: str
    reason: str
    triggered_by: str = "execution-monitor"


class RollbackActionRequest(BaseModel):
    actor: str


class EmergencyStopRequest(BaseModel):
    actor: str
    reason: str


class ProposalPlanRequest(BaseModel):
    name: str
    description: str = ""
    proposals: List[Proposal] = Field(default_factory=list)
    priority_order: Optional[List[str]] = None


class ProposalDecisionRequest(BaseModel):
    approver: str
    notes: str = ""
