"""
Execution Pipeline: Execution Engine

Compiles heterogeneous upstream plans into normalized step proposals.

Each generated step carries:
- resource demand (labor / equipment / material)
- a telemetry watch contract for the safety gate
- rollback hints for the rollback engine

Nothing here is approved or gated; every step leaves the engine as
AWAITING_APPROVAL. Durations are deterministic placeholders, not estimates.
"""

import itertools
import logging
from typing import Iterable, List, Optional

from execution_pipeline.execution_log import ExecutionLog
from execution_pipeline.execution_models import (
    DEFAULT_OPERATIONS_ROLE,
    EnvironmentLimits,
    ExecutionLogCategory,
    ExecutionPlan,
    ExecutionSource,
    ExecutionStepProposal,
    PlanStatus,
    ResourceCategory,
    ResourceUse,
    TelemetryWatch,
)
from execution_pipeline.upstream_models import (
    AllocationPlan,
    ExecutionIngestInput,
    StrategyPlan,
    WorkflowPlan,
)


logger = logging.getLogger(__name__)

WORKFLOW_SAFETY_CHECKS = ("telemetry-deviation", "contamination-risk", "equipment-overload", "labor-mismatch")
WORKFLOW_TELEMETRY_WATCH = TelemetryWatch(
    contamination_risk_max=80,
    equipment_load_max=90,
    labor_utilization_max=90,
    environment=EnvironmentLimits(
        temperature_max=28,
        temperature_min=12,
        humidity_max=98,
        humidity_min=50,
        co2_max=7000,
    ),
)
WORKFLOW_ROLLBACK_STEPS = (
    "Return room to previous environmental setpoints",
    "Isolate affected batch",
    "Log contamination and halt adjacent tasks",
)

STRATEGY_CONTAMINATION_MAX = {"high": 85, "medium": 80, "low": 70}
STRATEGY_FALLBACK_ROLLBACK = "Restore previous configuration"

ALLOCATION_ROLLBACK_STEPS = ("Return resources to inventory", "Reconcile counts in inventory manager")


class ExecutionEngine:
    """
    Turns upstream artifacts into step proposals and draft plans.

    Step ids come from a per-engine monotonic counter, zero padded so
    lexicographic order equals creation order.
    """

    def __init__(self, log: ExecutionLog, operations_role: str = DEFAULT_OPERATIONS_ROLE):
        self.log = log
        self.operations_role = operations_role
        self._step_counter = itertools.count(1)

    def ingest(self, ingest_input: ExecutionIngestInput) -> List[ExecutionStepProposal]:
        """
        Compile every present artifact into step proposals.

        Args:
            ingest_input: Bag of optional upstream artifacts

        Returns:
            Step proposals sorted by step id
        """
        steps: List[ExecutionStepProposal] = []

        if ingest_input.workflow_plan is not None:
            steps.extend(self._build_workflow_steps(ingest_input.workflow_plan))

        if ingest_input.strategy_plan is not None:
            steps.extend(self._build_strategy_steps(ingest_input.strategy_plan))

        if ingest_input.allocation_plan is not None:
            steps.extend(self._build_resource_steps(ingest_input.allocation_plan))

        if ingest_input.simulation_insights is not None or ingest_input.refinement_findings is not None:
            steps.append(self._build_insight_step(ingest_input))

        if ingest_input.facility_orchestrator_notes is not None or ingest_input.telemetry_baselines is not None:
            steps.append(self._build_stability_check_step())

        ordered = sorted(steps, key=lambda s: s.step_id)

        self.log.record(
            ExecutionLogCategory.INGEST,
            f"Ingested execution inputs -> {len(ordered)} step proposals",
            context={
                "source_type": ExecutionSource.WORKFLOW_PLAN.value,
                "source_id": ingest_input.workflow_plan.plan_id if ingest_input.workflow_plan else None,
            },
            details={
                "strategy_plan_id": ingest_input.strategy_plan.id if ingest_input.strategy_plan else None,
                "allocation_plan_id": ingest_input.allocation_plan.plan_id if ingest_input.allocation_plan else None,
                "simulation_insights": _as_list(ingest_input.simulation_insights),
                "refinement_findings": _as_list(ingest_input.refinement_findings),
                "orchestrator_notes": _as_list(ingest_input.facility_orchestrator_notes),
                "step_ids": [s.step_id for s in ordered],
            },
        )
        return ordered

    def build_draft_plan(self, steps: Iterable[ExecutionStepProposal]) -> ExecutionPlan:
        """Wrap raw steps into a DRAFT plan. No conflict detection here."""
        steps = tuple(steps)
        return ExecutionPlan(
            steps=steps,
            dependencies={s.step_id: tuple(s.dependencies) for s in steps},
            approval_required=(self.operations_role,),
            status=PlanStatus.DRAFT,
            version=1,
        )

    def _next_step_id(self) -> str:
        return f"exec-step-{next(self._step_counter):06d}"

    def _build_workflow_steps(self, plan: WorkflowPlan) -> List[ExecutionStepProposal]:
        steps = []
        for task in plan.scheduled_tasks:
            resources = []
            if task.assigned_labor:
                resources.append(ResourceUse("labor-hours", ResourceCategory.LABOR, task.assigned_labor, "hours"))
            for equipment_id in task.assigned_equipment:
                resources.append(ResourceUse(equipment_id, ResourceCategory.EQUIPMENT, 1, "unit"))

            # Every other task in the same workflow group becomes a dependency
            dependencies = ()
            for group in plan.grouped_workflows:
                if task.task_id in group.tasks:
                    dependencies = tuple(t for t in group.tasks if t != task.task_id)
                    break

            steps.append(ExecutionStepProposal(
                step_id=self._next_step_id(),
                source_type=ExecutionSource.WORKFLOW_PLAN,
                source_reference_id=plan.plan_id,
                title=f"Execute {task.type} ({task.task_id})",
                description=(
                    f"Run workflow task {task.task_id} for species {task.species or 'n/a'} "
                    f"in {task.room or 'unassigned'}"
                ),
                expected_duration_minutes=max(30, task.sequence_order * 15),
                scheduled_start=task.scheduled_start,
                scheduled_end=task.scheduled_end,
                dependencies=dependencies,
                resources=tuple(resources),
                safety_checks=WORKFLOW_SAFETY_CHECKS,
                telemetry_watch=WORKFLOW_TELEMETRY_WATCH,
                rollback_steps=WORKFLOW_ROLLBACK_STEPS,
            ))
        return steps

    def _build_strategy_steps(self, plan: StrategyPlan) -> List[ExecutionStepProposal]:
        steps = []
        for proposal in plan.proposals:
            rollback = proposal.implementation_steps[0] if proposal.implementation_steps else STRATEGY_FALLBACK_ROLLBACK
            steps.append(ExecutionStepProposal(
                step_id=self._next_step_id(),
                source_type=ExecutionSource.STRATEGY_PLAN,
                source_reference_id=plan.id,
                title=f"Implement strategy: {proposal.title}",
                description=proposal.description,
                expected_duration_minutes=60,
                resources=(ResourceUse("labor-hours", ResourceCategory.LABOR, 2, "hours"),),
                safety_checks=("regression-detection", "telemetry-deviation"),
                telemetry_watch=TelemetryWatch(
                    contamination_risk_max=STRATEGY_CONTAMINATION_MAX.get(proposal.risk_level, 70),
                    equipment_load_max=90,
                    labor_utilization_max=90,
                ),
                rollback_steps=(rollback,),
            ))
        return steps

    def _build_resource_steps(self, plan: AllocationPlan) -> List[ExecutionStepProposal]:
        steps = []
        for allocation in plan.allocations:
            category = ResourceCategory.LABOR if allocation.category == "labor" else ResourceCategory.MATERIAL
            # req-* markers are external references, never resolved to step ids
            dependencies = (f"req-{allocation.requirement_id}",) if allocation.requirement_id else ()
            steps.append(ExecutionStepProposal(
                step_id=self._next_step_id(),
                source_type=ExecutionSource.RESOURCE_ALLOCATION,
                source_reference_id=plan.plan_id,
                title=f"Allocate {allocation.resource_name}",
                description=(
                    f"Move {allocation.quantity_allocated}{allocation.unit} of {allocation.resource_name} "
                    f"to fulfill requirement {allocation.requirement_id}"
                ),
                expected_duration_minutes=30,
                dependencies=dependencies,
                resources=(ResourceUse(
                    allocation.resource_name, category, allocation.quantity_allocated, allocation.unit,
                ),),
                safety_checks=("resource-availability", "labor-mismatch"),
                telemetry_watch=TelemetryWatch(contamination_risk_max=80, equipment_load_max=95),
                rollback_steps=ALLOCATION_ROLLBACK_STEPS,
            ))
        return steps

    def _build_insight_step(self, ingest_input: ExecutionIngestInput) -> ExecutionStepProposal:
        source = (
            ExecutionSource.SIMULATION_INSIGHT
            if ingest_input.simulation_insights is not None
            else ExecutionSource.REFINEMENT_INSIGHT
        )
        return ExecutionStepProposal(
            step_id=self._next_step_id(),
            source_type=source,
            title="Validate simulation/refinement alignment",
            description="Ensure execution matches latest simulation and refinement guidance",
            expected_duration_minutes=30,
            resources=(ResourceUse("review-time", ResourceCategory.LABOR, 1, "hours"),),
            safety_checks=("regression-detection", "telemetry-deviation"),
            telemetry_watch=TelemetryWatch(contamination_risk_max=80, equipment_load_max=90),
        )

    def _build_stability_check_step(self) -> ExecutionStepProposal:
        return ExecutionStepProposal(
            step_id=self._next_step_id(),
            source_type=ExecutionSource.FACILITY_ORCHESTRATOR,
            title="Facility and telemetry stability check",
            description="Cross-check orchestrator directives against telemetry baselines before execution",
            expected_duration_minutes=20,
            resources=(ResourceUse("labor-hours", ResourceCategory.LABOR, 0.5, "hours"),),
            safety_checks=("telemetry-deviation", "equipment-overload", "labor-mismatch"),
            telemetry_watch=TelemetryWatch(
                contamination_risk_max=75,
                equipment_load_max=85,
                labor_utilization_max=85,
            ),
        )


def _as_list(values: Optional[Iterable[str]]) -> Optional[List[str]]:
    return list(values) if values is not None else None
