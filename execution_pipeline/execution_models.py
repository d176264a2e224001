"""
Execution Pipeline: Data Models

CORE PRINCIPLE:
"Every transition produces a new value. Nothing is edited in place."

This module defines the value types shared by the engine, planner, safety
gate, monitor and rollback engine. These models are:
- IMMUTABLE (frozen dataclasses, tuple-valued collections)
- PURELY STRUCTURAL (no gate, sequencing or rollback logic lives here)
- AUDIT-FIRST (every type serializes to a JSON-safe dict for the log)

Mutations (approve, pause, complete) are expressed with dataclasses.replace
by the owning component, so two components never share a mutable plan.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4


DEFAULT_OPERATIONS_ROLE = "operations-lead"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ============================================================================
# ENUMS
# ============================================================================

class ExecutionSource(str, Enum):
    """Upstream artifact kind a step proposal was compiled from."""
    WORKFLOW_PLAN = "workflow-plan"
    STRATEGY_PLAN = "strategy-plan"
    RESOURCE_ALLOCATION = "resource-allocation"
    SIMULATION_INSIGHT = "simulation-insight"
    REFINEMENT_INSIGHT = "refinement-insight"
    FACILITY_ORCHESTRATOR = "facility-orchestrator"


class ResourceCategory(str, Enum):
    LABOR = "labor"
    EQUIPMENT = "equipment"
    MATERIAL = "material"


class StepStatus(str, Enum):
    """Lifecycle of a single step. Mutated only by the planner and monitor."""
    AWAITING_APPROVAL = "awaiting-approval"
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PlanStatus(str, Enum):
    """
    Plan state machine.

    draft -> pending-approval -> approved | rejected
    approved -> paused (safety gate) -> approved (operator resume only)
    approved -> completed

    REJECTED and COMPLETED are terminal.
    """
    DRAFT = "draft"
    PENDING_APPROVAL = "pending-approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAUSED = "paused"
    COMPLETED = "completed"


TERMINAL_PLAN_STATUSES = frozenset({PlanStatus.REJECTED, PlanStatus.COMPLETED})


class SafetyDecision(str, Enum):
    """Ordered by severity: BLOCK beats WARN beats ALLOW."""
    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"

    @property
    def severity(self) -> int:
        return _DECISION_SEVERITY[self]


_DECISION_SEVERITY = {
    SafetyDecision.ALLOW: 0,
    SafetyDecision.WARN: 1,
    SafetyDecision.BLOCK: 2,
}


class RollbackStatus(str, Enum):
    PENDING_APPROVAL = "pending-approval"
    APPROVED = "approved"
    COMPLETED = "completed"


class ExecutionLogCategory(str, Enum):
    INGEST = "ingest"
    PLANNING = "planning"
    APPROVAL = "approval"
    SAFETY_GATE = "safety-gate"
    MONITOR = "monitor"
    ROLLBACK = "rollback"
    EXPORT = "export"


class StepUpdateOutcome(str, Enum):
    """Result kinds of ExecutionMonitor.update_step_status."""
    APPLIED = "applied"
    PAUSED = "paused"
    STEP_NOT_FOUND = "step_not_found"
    PLAN_NOT_ACTIVE = "plan_not_active"


# ============================================================================
# TELEMETRY
# ============================================================================

@dataclass(frozen=True)
class TelemetrySnapshot:
    """Point-in-time reading of facility metrics. Every metric is optional."""
    timestamp: datetime = field(default_factory=utc_now)
    room_id: Optional[str] = None
    facility_id: Optional[str] = None
    temperature_c: Optional[float] = None
    humidity_percent: Optional[float] = None
    co2_ppm: Optional[float] = None
    contamination_risk_score: Optional[float] = None  # 0-100
    equipment_load_percent: Optional[float] = None
    labor_utilization_percent: Optional[float] = None
    regressions_detected: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": _iso(self.timestamp),
            "room_id": self.room_id,
            "facility_id": self.facility_id,
            "temperature_c": self.temperature_c,
            "humidity_percent": self.humidity_percent,
            "co2_ppm": self.co2_ppm,
            "contamination_risk_score": self.contamination_risk_score,
            "equipment_load_percent": self.equipment_load_percent,
            "labor_utilization_percent": self.labor_utilization_percent,
            "regressions_detected": list(self.regressions_detected),
        }


@dataclass(frozen=True)
class EnvironmentLimits:
    temperature_max: Optional[float] = None
    temperature_min: Optional[float] = None
    humidity_max: Optional[float] = None
    humidity_min: Optional[float] = None
    co2_max: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature_max": self.temperature_max,
            "temperature_min": self.temperature_min,
            "humidity_max": self.humidity_max,
            "humidity_min": self.humidity_min,
            "co2_max": self.co2_max,
        }


@dataclass(frozen=True)
class TelemetryWatch:
    """Per-step numeric ceilings checked by the safety gate."""
    contamination_risk_max: Optional[float] = None
    equipment_load_max: Optional[float] = None
    labor_utilization_max: Optional[float] = None
    environment: Optional[EnvironmentLimits] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contamination_risk_max": self.contamination_risk_max,
            "equipment_load_max": self.equipment_load_max,
            "labor_utilization_max": self.labor_utilization_max,
            "environment": self.environment.to_dict() if self.environment else None,
        }


# ============================================================================
# STEPS & PLANS
# ============================================================================

@dataclass(frozen=True)
class ResourceUse:
    name: str
    category: ResourceCategory
    quantity: float
    unit: str

    @property
    def key(self) -> str:
        return f"{self.category.value}:{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "quantity": self.quantity,
            "unit": self.unit,
        }


@dataclass(frozen=True)
class ExecutionStepProposal:
    """
    One unit of proposed work awaiting safety clearance and approval.

    The status only moves to RUNNING or COMPLETED through the monitor, after
    the safety gate has cleared the step against the telemetry supplied at
    transition time. Approval fields are stamped only by the planner.
    """

    step_id: str
    source_type: ExecutionSource
    title: str = ""
    description: str = ""
    source_reference_id: Optional[str] = None
    expected_duration_minutes: int = 30
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    dependencies: Tuple[str, ...] = ()
    resources: Tuple[ResourceUse, ...] = ()
    safety_checks: Tuple[str, ...] = ()
    telemetry_watch: Optional[TelemetryWatch] = None
    rollback_steps: Tuple[str, ...] = ()
    requires_approval: bool = True
    approved: bool = False
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    status: StepStatus = StepStatus.AWAITING_APPROVAL
    status_updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.step_id:
            raise ValueError("step_id is required")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "source_type": self.source_type.value,
            "source_reference_id": self.source_reference_id,
            "title": self.title,
            "description": self.description,
            "expected_duration_minutes": self.expected_duration_minutes,
            "scheduled_start": _iso(self.scheduled_start),
            "scheduled_end": _iso(self.scheduled_end),
            "dependencies": list(self.dependencies),
            "resources": [r.to_dict() for r in self.resources],
            "safety_checks": list(self.safety_checks),
            "telemetry_watch": self.telemetry_watch.to_dict() if self.telemetry_watch else None,
            "rollback_steps": list(self.rollback_steps),
            "requires_approval": self.requires_approval,
            "approved": self.approved,
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "status": self.status.value,
            "status_updated_at": _iso(self.status_updated_at),
        }


@dataclass(frozen=True)
class ExecutionPlan:
    """
    Unit of approval and monitoring.

    Every overwrite is a new version: components return
    replace(plan, ..., version=plan.version + 1) instead of editing a plan.
    """

    plan_id: str = field(default_factory=lambda: f"execution-plan-{uuid4().hex}")
    created_at: datetime = field(default_factory=utc_now)
    steps: Tuple[ExecutionStepProposal, ...] = ()
    dependencies: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    resource_conflicts: Tuple[str, ...] = ()
    timing_conflicts: Tuple[str, ...] = ()
    approval_required: Tuple[str, ...] = (DEFAULT_OPERATIONS_ROLE,)
    status: PlanStatus = PlanStatus.DRAFT
    version: int = 1
    manual_overrides: Tuple[str, ...] = ()
    rejection_reason: Optional[str] = None

    def find_step(self, step_id: str) -> Optional[ExecutionStepProposal]:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PLAN_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "created_at": _iso(self.created_at),
            "steps": [s.to_dict() for s in self.steps],
            "dependencies": {k: list(v) for k, v in self.dependencies.items()},
            "resource_conflicts": list(self.resource_conflicts),
            "timing_conflicts": list(self.timing_conflicts),
            "approval_required": list(self.approval_required),
            "status": self.status.value,
            "version": self.version,
            "manual_overrides": list(self.manual_overrides),
            "rejection_reason": self.rejection_reason,
        }


# ============================================================================
# SAFETY GATE & MONITORING
# ============================================================================

@dataclass(frozen=True)
class SafetyChecks:
    """Named boolean sub-checks of one gate evaluation."""
    emergency_stop: bool = False
    contamination_spike: bool = False
    equipment_overload: bool = False
    labor_mismatch: bool = False
    environmental_limit: bool = False
    regression_detected: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "emergencyStop": self.emergency_stop,
            "contaminationSpike": self.contamination_spike,
            "equipmentOverload": self.equipment_overload,
            "laborMismatch": self.labor_mismatch,
            "environmentalLimit": self.environmental_limit,
            "regressionDetected": self.regression_detected,
        }


@dataclass(frozen=True)
class SafetyGateResult:
    """Ephemeral gate verdict. Logged, never stored as an entity."""
    gate_id: str
    step_id: str
    decision: SafetyDecision
    rationale: Tuple[str, ...] = ()
    recommended_alternatives: Tuple[str, ...] = ()
    checks: SafetyChecks = field(default_factory=SafetyChecks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gate_id": self.gate_id,
            "step_id": self.step_id,
            "decision": self.decision.value,
            "rationale": list(self.rationale),
            "recommended_alternatives": list(self.recommended_alternatives),
            "checks": self.checks.to_dict(),
        }


@dataclass(frozen=True)
class StepStatusSnapshot:
    step_id: str
    status: StepStatus
    last_updated: datetime
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "last_updated": _iso(self.last_updated),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class TelemetryDeviation:
    step_id: str
    metric: str
    current_value: float
    severity: str  # "warning" | "critical"
    rationale: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "metric": self.metric,
            "current_value": self.current_value,
            "severity": self.severity,
            "rationale": list(self.rationale),
        }


@dataclass(frozen=True)
class ExecutionStatusReport:
    plan_id: str
    report_id: str = field(default_factory=lambda: f"report-{uuid4().hex}")
    timestamp: datetime = field(default_factory=utc_now)
    step_statuses: Tuple[StepStatusSnapshot, ...] = ()
    telemetry_deviations: Tuple[TelemetryDeviation, ...] = ()
    actions_taken: Tuple[str, ...] = ()
    paused_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "plan_id": self.plan_id,
            "timestamp": _iso(self.timestamp),
            "step_statuses": [s.to_dict() for s in self.step_statuses],
            "telemetry_deviations": [d.to_dict() for d in self.telemetry_deviations],
            "actions_taken": list(self.actions_taken),
            "paused_reason": self.paused_reason,
        }


@dataclass(frozen=True)
class StepStatusUpdate:
    """Typed result of a single step transition attempt."""
    plan: ExecutionPlan
    step_id: str
    requested_status: StepStatus
    outcome: StepUpdateOutcome
    gate_result: Optional[SafetyGateResult] = None

    @property
    def found(self) -> bool:
        return self.outcome is not StepUpdateOutcome.STEP_NOT_FOUND

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan.to_dict(),
            "step_id": self.step_id,
            "requested_status": self.requested_status.value,
            "outcome": self.outcome.value,
            "gate_result": self.gate_result.to_dict() if self.gate_result else None,
        }


# ============================================================================
# ROLLBACK
# ============================================================================

@dataclass(frozen=True)
class RollbackStep:
    rollback_step_id: str
    target_step_id: str
    action: str
    expected_duration_minutes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rollback_step_id": self.rollback_step_id,
            "target_step_id": self.target_step_id,
            "action": self.action,
            "expected_duration_minutes": self.expected_duration_minutes,
        }


@dataclass(frozen=True)
class RollbackPlan:
    plan_id: str
    failed_step_id: str
    reason: str
    triggered_by: str = "execution-monitor"
    rollback_id: str = field(default_factory=lambda: f"rollback-{uuid4().hex}")
    steps: Tuple[RollbackStep, ...] = ()
    status: RollbackStatus = RollbackStatus.PENDING_APPROVAL
    created_at: datetime = field(default_factory=utc_now)
    approved_by: Optional[str] = None
    completed_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rollback_id": self.rollback_id,
            "plan_id": self.plan_id,
            "failed_step_id": self.failed_step_id,
            "triggered_by": self.triggered_by,
            "reason": self.reason,
            "steps": [s.to_dict() for s in self.steps],
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "approved_by": self.approved_by,
            "completed_by": self.completed_by,
        }


# ============================================================================
# EXECUTION LOG
# ============================================================================

@dataclass(frozen=True)
class ExecutionLogEntry:
    """
    Immutable audit record.

    category is a plain string so sibling pipelines can share the log type
    with their own category enums (all of them are str enums).
    """

    category: str
    message: str
    entry_id: str = field(default_factory=lambda: f"exec-log-{uuid4().hex}")
    timestamp: datetime = field(default_factory=utc_now)
    context: Dict[str, Any] = field(default_factory=dict)
    details: Optional[Any] = None

    def __post_init__(self):
        if not self.category:
            raise ValueError("category is required")
        if not self.message:
            raise ValueError("message is required")

    def to_dict(self) -> Dict[str, Any]:
        category = self.category.value if isinstance(self.category, Enum) else self.category
        return {
            "entry_id": self.entry_id,
            "timestamp": _iso(self.timestamp),
            "category": category,
            "message": self.message,
            "context": dict(self.context),
            "details": self.details,
        }
