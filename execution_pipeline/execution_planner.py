"""
Execution Pipeline: Execution Planner

Orders steps, reports resource and timing conflicts, and owns the
approval state machine:

    draft -> pending-approval -> approved | rejected
    paused -> approved            (explicit operator resume only)

Conflicts are INFORMATIONAL: they populate the plan's report lists and
never change plan status on their own.

Ordering is a dependency-COUNT heuristic (fewer declared dependencies
first, ties by step id). It is not a topological sort and performs no
cycle detection.
"""

import logging
from collections import OrderedDict
from dataclasses import replace
from typing import Dict, FrozenSet, Iterable, List, Tuple

from execution_pipeline.errors import InvalidTransitionError
from execution_pipeline.execution_log import ExecutionLog
from execution_pipeline.execution_models import (
    DEFAULT_OPERATIONS_ROLE,
    ExecutionLogCategory,
    ExecutionPlan,
    ExecutionStepProposal,
    PlanStatus,
    ResourceCategory,
    StepStatus,
    utc_now,
)


logger = logging.getLogger(__name__)

_APPROVABLE: FrozenSet[PlanStatus] = frozenset({PlanStatus.PENDING_APPROVAL})
_REJECTABLE: FrozenSet[PlanStatus] = frozenset({
    PlanStatus.DRAFT, PlanStatus.PENDING_APPROVAL, PlanStatus.PAUSED,
})
_SEQUENCEABLE: FrozenSet[PlanStatus] = frozenset({PlanStatus.DRAFT, PlanStatus.PENDING_APPROVAL})


def order_steps(steps: Iterable[ExecutionStepProposal]) -> Tuple[ExecutionStepProposal, ...]:
    """Stable order: dependency count ascending, then step id."""
    return tuple(sorted(steps, key=lambda s: (len(s.dependencies), s.step_id)))


def detect_resource_conflicts(steps: Iterable[ExecutionStepProposal]) -> Tuple[str, ...]:
    """
    One conflict per (category, name) key whose accumulated non-labor
    quantity exceeds a single unit.
    """
    totals: "OrderedDict[str, List]" = OrderedDict()
    for step in steps:
        for resource in step.resources:
            if resource.key not in totals:
                totals[resource.key] = [resource, 0.0]
            totals[resource.key][1] += resource.quantity

    conflicts = []
    for key, (resource, total) in totals.items():
        if resource.category is ResourceCategory.LABOR:
            continue
        if total > 1:
            conflicts.append(
                f"Resource contention on {key}: {total:g} {resource.unit} requested across steps"
            )
    return tuple(conflicts)


def detect_timing_conflicts(steps: Iterable[ExecutionStepProposal]) -> Tuple[str, ...]:
    """One conflict per pair of scheduled steps whose intervals overlap."""
    scheduled = [s for s in steps if s.scheduled_start is not None and s.scheduled_end is not None]
    conflicts = []
    for i, a in enumerate(scheduled):
        for b in scheduled[i + 1:]:
            if a.scheduled_end > b.scheduled_start and a.scheduled_start < b.scheduled_end:
                conflicts.append(f"Timing overlap between {a.step_id} and {b.step_id}")
    return tuple(conflicts)


class ExecutionPlanner:
    """Sequencing, conflict detection and approval transitions."""

    def __init__(self, log: ExecutionLog, operations_role: str = DEFAULT_OPERATIONS_ROLE):
        self.log = log
        self.operations_role = operations_role

    def sequence_steps(self, steps: Iterable[ExecutionStepProposal]) -> ExecutionPlan:
        """
        Build a new conflict-annotated plan awaiting approval.

        Args:
            steps: Raw step proposals (any order)

        Returns:
            ExecutionPlan in PENDING_APPROVAL, version 1
        """
        ordered = order_steps(steps)
        plan = ExecutionPlan(
            steps=ordered,
            dependencies=_dependency_map(ordered),
            resource_conflicts=detect_resource_conflicts(ordered),
            timing_conflicts=detect_timing_conflicts(ordered),
            approval_required=(self.operations_role,),
            status=PlanStatus.PENDING_APPROVAL,
        )
        self._log_sequenced(plan)
        return plan

    def resequence(self, plan: ExecutionPlan) -> ExecutionPlan:
        """Re-sort a draft or pending plan and recompute its conflicts."""
        self._require(plan, _SEQUENCEABLE, PlanStatus.PENDING_APPROVAL)
        ordered = order_steps(plan.steps)
        updated = replace(
            plan,
            steps=ordered,
            dependencies=_dependency_map(ordered),
            resource_conflicts=detect_resource_conflicts(ordered),
            timing_conflicts=detect_timing_conflicts(ordered),
            status=PlanStatus.PENDING_APPROVAL,
            version=plan.version + 1,
        )
        self._log_sequenced(updated)
        return updated

    def request_approval(self, plan: ExecutionPlan) -> ExecutionPlan:
        self._require(plan, frozenset({PlanStatus.DRAFT}), PlanStatus.PENDING_APPROVAL)
        updated = replace(plan, status=PlanStatus.PENDING_APPROVAL, version=plan.version + 1)
        self.log.record(
            ExecutionLogCategory.PLANNING,
            f"Approval requested for {plan.plan_id} from {', '.join(plan.approval_required)}",
            context={"plan_id": plan.plan_id},
        )
        return updated

    def approve_plan(self, plan: ExecutionPlan, approver: str) -> ExecutionPlan:
        """
        Approve a pending plan and stamp every step.

        Steps awaiting approval move to PENDING; all steps record the
        approver and approval time.
        """
        if not approver:
            raise ValueError("approver is required")
        self._require(plan, _APPROVABLE, PlanStatus.APPROVED)

        approved_at = utc_now()
        steps = tuple(
            replace(
                step,
                approved=True,
                approved_by=approver,
                approved_at=approved_at,
                status=StepStatus.PENDING if step.status is StepStatus.AWAITING_APPROVAL else step.status,
                status_updated_at=approved_at,
            )
            for step in plan.steps
        )
        updated = replace(plan, steps=steps, status=PlanStatus.APPROVED, version=plan.version + 1)
        self.log.record(
            ExecutionLogCategory.APPROVAL,
            f"Execution plan approved by {approver}",
            context={"plan_id": plan.plan_id, "user_id": approver},
            details={"version": updated.version, "steps": len(steps)},
        )
        return updated

    def reject_plan(self, plan: ExecutionPlan, actor: str, reason: str) -> ExecutionPlan:
        if not actor:
            raise ValueError("actor is required")
        if not reason:
            raise ValueError("rejection reason is required")
        self._require(plan, _REJECTABLE, PlanStatus.REJECTED)

        updated = replace(
            plan, status=PlanStatus.REJECTED, rejection_reason=reason, version=plan.version + 1,
        )
        self.log.record(
            ExecutionLogCategory.APPROVAL,
            f"Execution plan rejected by {actor}: {reason}",
            context={"plan_id": plan.plan_id, "user_id": actor},
        )
        return updated

    def resume_plan(self, plan: ExecutionPlan, operator: str, note: str) -> ExecutionPlan:
        """
        Operator override: return a paused plan to APPROVED.

        The override is appended to manual_overrides for audit.
        """
        if not operator:
            raise ValueError("operator is required")
        if not note:
            raise ValueError("override note is required")
        self._require(plan, frozenset({PlanStatus.PAUSED}), PlanStatus.APPROVED)

        override = f"{utc_now().isoformat()} {operator} resumed execution: {note}"
        updated = replace(
            plan,
            status=PlanStatus.APPROVED,
            manual_overrides=plan.manual_overrides + (override,),
            version=plan.version + 1,
        )
        self.log.record(
            ExecutionLogCategory.APPROVAL,
            f"Paused plan resumed by {operator}",
            context={"plan_id": plan.plan_id, "user_id": operator},
            details={"note": note},
        )
        return updated

    def _require(self, plan: ExecutionPlan, allowed: FrozenSet[PlanStatus], target: PlanStatus):
        if plan.status not in allowed:
            logger.warning("Rejected transition of %s: %s -> %s", plan.plan_id, plan.status.value, target.value)
            raise InvalidTransitionError(plan.plan_id, plan.status.value, target.value)

    def _log_sequenced(self, plan: ExecutionPlan):
        self.log.record(
            ExecutionLogCategory.PLANNING,
            f"Sequenced {len(plan.steps)} steps "
            f"({len(plan.resource_conflicts)} resource conflicts, {len(plan.timing_conflicts)} timing conflicts)",
            context={"plan_id": plan.plan_id},
            details={
                "order": [s.step_id for s in plan.steps],
                "resource_conflicts": list(plan.resource_conflicts),
                "timing_conflicts": list(plan.timing_conflicts),
                "version": plan.version,
            },
        )


def _dependency_map(steps: Iterable[ExecutionStepProposal]) -> Dict[str, Tuple[str, ...]]:
    return {s.step_id: tuple(s.dependencies) for s in steps}
