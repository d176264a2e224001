"""
Upstream plan records consumed by the execution engine.

These mirror the shape of the workflow scheduler, strategy planner and
resource allocator outputs. They are read-only inputs; the engine never
writes back to them.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from execution_pipeline.execution_models import TelemetrySnapshot


@dataclass(frozen=True)
class ScheduledTask:
    task_id: str
    type: str
    sequence_order: int
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    room: Optional[str] = None
    facility: Optional[str] = None
    species: Optional[str] = None
    assigned_labor: float = 0  # hours
    assigned_equipment: Tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowGroup:
    workflow_name: str
    tasks: Tuple[str, ...] = ()  # task ids


@dataclass(frozen=True)
class WorkflowPlan:
    plan_id: str
    scheduled_tasks: Tuple[ScheduledTask, ...] = ()
    grouped_workflows: Tuple[WorkflowGroup, ...] = ()


@dataclass(frozen=True)
class StrategyProposal:
    id: str
    type: str
    title: str
    description: str = ""
    risk_level: str = "low"  # low | medium | high
    implementation_steps: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StrategyPlan:
    id: str
    proposals: Tuple[StrategyProposal, ...] = ()
    name: str = ""


@dataclass(frozen=True)
class ResourceAllocation:
    allocation_id: str
    category: str
    resource_name: str
    quantity_allocated: float
    unit: str
    requirement_id: Optional[str] = None


@dataclass(frozen=True)
class AllocationPlan:
    plan_id: str
    allocations: Tuple[ResourceAllocation, ...] = ()


@dataclass(frozen=True)
class ExecutionIngestInput:
    """
    Discriminated bag of upstream artifacts.

    Any combination may be present. Insight and orchestrator signals only
    need to be present (even empty) to force their review checkpoint.
    """
    workflow_plan: Optional[WorkflowPlan] = None
    strategy_plan: Optional[StrategyPlan] = None
    allocation_plan: Optional[AllocationPlan] = None
    simulation_insights: Optional[Tuple[str, ...]] = None
    refinement_findings: Optional[Tuple[str, ...]] = None
    facility_orchestrator_notes: Optional[Tuple[str, ...]] = None
    telemetry_baselines: Optional[Tuple[TelemetrySnapshot, ...]] = None
