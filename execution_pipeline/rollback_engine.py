"""
Execution Pipeline: Rollback Engine

Plans compensating actions for a paused or failed execution plan.

The engine ONLY PLANS the reversal. Performing it is an external
operational action; approve() and complete() merely record that humans
signed off and finished.

Scope: a PAUSED plan, or an APPROVED plan whose failing step is FAILED.
Selection rule: every COMPLETED step plus the failing step, in plan order.
Action: the step's first declared rollback action (or a generic fallback).
Duration: max(15, round(original duration / 2)) minutes.
"""

import logging
from dataclasses import replace

from execution_pipeline.errors import InvalidTransitionError, StepNotFoundError
from execution_pipeline.execution_log import ExecutionLog
from execution_pipeline.execution_models import (
    ExecutionLogCategory,
    ExecutionPlan,
    PlanStatus,
    RollbackPlan,
    RollbackStatus,
    RollbackStep,
    StepStatus,
)


logger = logging.getLogger(__name__)

MIN_ROLLBACK_MINUTES = 15


def rollback_duration(expected_duration_minutes: int) -> int:
    # half-up, not banker's rounding
    return max(MIN_ROLLBACK_MINUTES, int(expected_duration_minutes / 2 + 0.5))


def _can_roll_back(plan: ExecutionPlan, failed_step_status: StepStatus) -> bool:
    if plan.status is PlanStatus.PAUSED:
        return True
    return plan.status is PlanStatus.APPROVED and failed_step_status is StepStatus.FAILED


class RollbackEngine:
    def __init__(self, log: ExecutionLog):
        self.log = log

    def generate(
        self,
        plan: ExecutionPlan,
        failed_step_id: str,
        reason: str,
        triggered_by: str = "execution-monitor",
    ) -> RollbackPlan:
        """
        Derive a rollback plan for a failing step.

        Args:
            plan: Plan being rolled back
            failed_step_id: Step that failed or triggered the pause
            reason: Human-readable trigger description
            triggered_by: Actor or component requesting the rollback

        Returns:
            RollbackPlan in PENDING_APPROVAL

        Raises:
            StepNotFoundError: failed_step_id is not part of the plan
            InvalidTransitionError: the plan is neither paused nor approved with
                failed_step_id marked FAILED
        """
        failed_step = plan.find_step(failed_step_id)
        if failed_step is None:
            raise StepNotFoundError(plan.plan_id, failed_step_id)
        if not _can_roll_back(plan, failed_step.status):
            logger.warning(
                "Rejected rollback of %s: plan is %s, step %s is %s",
                plan.plan_id, plan.status.value, failed_step_id, failed_step.status.value,
            )
            raise InvalidTransitionError(plan.plan_id, plan.status.value, "rollback")

        rollback = RollbackPlan(
            plan_id=plan.plan_id,
            failed_step_id=failed_step_id,
            reason=reason,
            triggered_by=triggered_by,
        )
        targets = [
            s for s in plan.steps
            if s.status is StepStatus.COMPLETED or s.step_id == failed_step_id
        ]
        steps = tuple(
            RollbackStep(
                rollback_step_id=f"{rollback.rollback_id}-step-{index}",
                target_step_id=step.step_id,
                action=step.rollback_steps[0] if step.rollback_steps else f"Revert step {step.step_id} to its previous state",
                expected_duration_minutes=rollback_duration(step.expected_duration_minutes),
            )
            for index, step in enumerate(targets, start=1)
        )
        rollback = replace(rollback, steps=steps)

        self.log.record(
            ExecutionLogCategory.ROLLBACK,
            f"Rollback plan generated with {len(steps)} steps: {reason}",
            context={
                "plan_id": plan.plan_id,
                "step_id": failed_step_id,
                "rollback_id": rollback.rollback_id,
                "user_id": triggered_by,
            },
            details={"targets": [s.target_step_id for s in steps]},
        )
        return rollback

    def approve(self, rollback: RollbackPlan, approver: str) -> RollbackPlan:
        if not approver:
            raise ValueError("approver is required")
        if rollback.status is not RollbackStatus.PENDING_APPROVAL:
            raise InvalidTransitionError(
                rollback.rollback_id, rollback.status.value, RollbackStatus.APPROVED.value,
            )
        updated = replace(rollback, status=RollbackStatus.APPROVED, approved_by=approver)
        self.log.record(
            ExecutionLogCategory.ROLLBACK,
            f"Rollback plan approved by {approver}",
            context={"plan_id": rollback.plan_id, "rollback_id": rollback.rollback_id, "user_id": approver},
        )
        return updated

    def complete(self, rollback: RollbackPlan, actor: str) -> RollbackPlan:
        if not actor:
            raise ValueError("actor is required")
        if rollback.status is not RollbackStatus.APPROVED:
            raise InvalidTransitionError(
                rollback.rollback_id, rollback.status.value, RollbackStatus.COMPLETED.value,
            )
        updated = replace(rollback, status=RollbackStatus.COMPLETED, completed_by=actor)
        self.log.record(
            ExecutionLogCategory.ROLLBACK,
            f"Rollback plan completed by {actor}",
            context={"plan_id": rollback.plan_id, "rollback_id": rollback.rollback_id, "user_id": actor},
        )
        return updated
