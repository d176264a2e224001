"""
Execution Pipeline Module

SAFETY-GATED EXECUTION PLANNING for cultivation facility operations.

This package turns upstream plans (workflow schedules, strategy proposals,
resource allocations, insight notes) into sequenced, human-approved
execution plans and keeps them under continuous safety gating.

KEY PRINCIPLE:
"Nothing runs until a human approved it and the gate cleared it."

ARCHITECTURE:
- execution_models.py: Immutable value types (steps, plans, gate results, rollback plans)
- execution_log.py: Bounded, append-only audit log shared by every component
- safety_gate.py: Pure allow/warn/block decision per step and telemetry snapshot
- execution_engine.py: Compiles upstream artifacts into step proposals
- execution_planner.py: Ordering, conflict detection, approval state machine
- execution_monitor.py: Step transitions and plan-wide gating (pauses plans)
- rollback_engine.py: Plans compensating actions; never performs them
- emergency_stop.py: Operator-owned latch that forces every gate decision to BLOCK
- plan_store.py / pipeline.py: Latest-version store and per-plan serialized facade

DEFAULT BEHAVIOR: steps await approval; missing telemetry is allowed through.
"""

from execution_pipeline.errors import (
    ExecutionPipelineError,
    InvalidTransitionError,
    PlanNotFoundError,
    RollbackNotFoundError,
    StepNotFoundError,
)
from execution_pipeline.execution_models import (
    ExecutionPlan,
    ExecutionStatusReport,
    ExecutionStepProposal,
    PlanStatus,
    RollbackPlan,
    SafetyDecision,
    SafetyGateResult,
    StepStatus,
    TelemetrySnapshot,
)
from execution_pipeline.execution_log import ExecutionLog
from execution_pipeline.safety_gate import SafetyGate, SafetyGateOptions
from execution_pipeline.execution_engine import ExecutionEngine
from execution_pipeline.execution_planner import ExecutionPlanner
from execution_pipeline.execution_monitor import ExecutionMonitor
from execution_pipeline.rollback_engine import RollbackEngine
from execution_pipeline.emergency_stop import EmergencyStopController
from execution_pipeline.plan_store import PlanStore
from execution_pipeline.pipeline import ExecutionPipeline

__all__ = [
    "ExecutionPipelineError",
    "InvalidTransitionError",
    "PlanNotFoundError",
    "RollbackNotFoundError",
    "StepNotFoundError",
    "ExecutionPlan",
    "ExecutionStatusReport",
    "ExecutionStepProposal",
    "PlanStatus",
    "RollbackPlan",
    "SafetyDecision",
    "SafetyGateResult",
    "StepStatus",
    "TelemetrySnapshot",
    "ExecutionLog",
    "SafetyGate",
    "SafetyGateOptions",
    "ExecutionEngine",
    "ExecutionPlanner",
    "ExecutionMonitor",
    "RollbackEngine",
    "EmergencyStopController",
    "PlanStore",
    "ExecutionPipeline",
]
