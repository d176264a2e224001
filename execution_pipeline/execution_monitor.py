"""
Execution Pipeline: Execution Monitor

Re-evaluates the safety gate against live telemetry and transitions plans.

Rules:
- A step moves to RUNNING or COMPLETED only after the gate runs against the
  telemetry supplied with the request.
- BLOCK pauses the whole plan; the step keeps its prior status.
- WARN pauses the plan when starting work (RUNNING). A WARN while recording
  COMPLETED is tolerated: history may be written under a soft warning,
  new risky work may not start.
- Only APPROVED and PAUSED plans accept step updates or get paused. Draft,
  pending and terminal plans are reported on, never transitioned, so a
  pause can only come from an approved plan.
- Steps may be requested RUNNING, COMPLETED or FAILED. AWAITING_APPROVAL and
  PENDING belong to the planner; COMPLETED is final.
- Resuming a paused plan is an operator action (ExecutionPlanner.resume_plan),
  never automatic.
"""

import logging
from dataclasses import replace
from typing import Optional, Sequence, Tuple

from execution_pipeline.errors import InvalidTransitionError
from execution_pipeline.execution_log import ExecutionLog
from execution_pipeline.execution_models import (
    ExecutionLogCategory,
    ExecutionPlan,
    ExecutionStatusReport,
    PlanStatus,
    SafetyDecision,
    SafetyGateResult,
    StepStatus,
    StepStatusSnapshot,
    StepStatusUpdate,
    StepUpdateOutcome,
    TelemetryDeviation,
    TelemetrySnapshot,
    utc_now,
)
from execution_pipeline.safety_gate import SafetyGate, SafetyGateOptions


logger = logging.getLogger(__name__)

PAUSED_ACTION = "Paused execution, awaiting operator review"
CONTINUE_ACTION = "Monitoring continues"

_GATED_STATUSES = frozenset({StepStatus.RUNNING, StepStatus.COMPLETED})
# awaiting-approval and pending are set by the planner only
_REQUESTABLE_STATUSES = frozenset({StepStatus.RUNNING, StepStatus.COMPLETED, StepStatus.FAILED})
# Only plans a human approved are monitored and paused
_ACTIVE_PLAN_STATUSES = frozenset({PlanStatus.APPROVED, PlanStatus.PAUSED})


class ExecutionMonitor:
    """Continuous gating of plans and their steps."""

    def __init__(self, gate: SafetyGate, log: ExecutionLog):
        self.gate = gate
        self.log = log

    def update_step_status(
        self,
        plan: ExecutionPlan,
        step_id: str,
        new_status: StepStatus,
        telemetry: Optional[TelemetrySnapshot] = None,
        options: Optional[SafetyGateOptions] = None,
    ) -> StepStatusUpdate:
        """
        Attempt a single step transition.

        Args:
            plan: Current plan value
            step_id: Step to transition
            new_status: Requested status
            telemetry: Reading the gate evaluates (RUNNING / COMPLETED only)
            options: Gate options (emergency stop, thresholds)

        Returns:
            StepStatusUpdate carrying the resulting plan and outcome

        Raises:
            InvalidTransitionError: new_status is reserved for the planner, or
                the step is already COMPLETED
        """
        step = plan.find_step(step_id)
        if step is None:
            self.log.record(
                ExecutionLogCategory.MONITOR,
                f"Step {step_id} not found in plan {plan.plan_id}",
                context={"plan_id": plan.plan_id, "step_id": step_id},
            )
            return StepStatusUpdate(plan, step_id, new_status, StepUpdateOutcome.STEP_NOT_FOUND)

        gate_result = None
        if plan.status not in _ACTIVE_PLAN_STATUSES:
            self.log.record(
                ExecutionLogCategory.MONITOR,
                f"Refused to update {step_id}: plan is {plan.status.value}",
                context={"plan_id": plan.plan_id, "step_id": step_id},
            )
            return StepStatusUpdate(plan, step_id, new_status, StepUpdateOutcome.PLAN_NOT_ACTIVE)

        if new_status not in _REQUESTABLE_STATUSES or step.status is StepStatus.COMPLETED:
            logger.warning(
                "Rejected step transition %s: %s -> %s", step_id, step.status.value, new_status.value,
            )
            raise InvalidTransitionError(step_id, step.status.value, new_status.value)

        if new_status in _GATED_STATUSES:
            if new_status is StepStatus.RUNNING and plan.status is not PlanStatus.APPROVED:
                self.log.record(
                    ExecutionLogCategory.MONITOR,
                    f"Refused to start {step_id}: plan is {plan.status.value}",
                    context={"plan_id": plan.plan_id, "step_id": step_id},
                )
                return StepStatusUpdate(plan, step_id, new_status, StepUpdateOutcome.PLAN_NOT_ACTIVE)

            gate_result = self.gate.evaluate_step(step, telemetry, options)
            pause = gate_result.decision is SafetyDecision.BLOCK or (
                gate_result.decision is SafetyDecision.WARN and new_status is StepStatus.RUNNING
            )
            if pause:
                paused = self._pause(plan)
                self.log.record(
                    ExecutionLogCategory.MONITOR,
                    f"Safety gate {gate_result.decision.value} on {step_id}; plan paused",
                    context={"plan_id": plan.plan_id, "step_id": step_id, "gate_id": gate_result.gate_id},
                    details={"requested_status": new_status.value, "rationale": list(gate_result.rationale)},
                )
                return StepStatusUpdate(paused, step_id, new_status, StepUpdateOutcome.PAUSED, gate_result)

        now = utc_now()
        steps = tuple(
            replace(s, status=new_status, status_updated_at=now) if s.step_id == step_id else s
            for s in plan.steps
        )
        status = plan.status
        if plan.status is PlanStatus.APPROVED and all(s.status is StepStatus.COMPLETED for s in steps):
            status = PlanStatus.COMPLETED
        updated = replace(plan, steps=steps, status=status, version=plan.version + 1)

        self.log.record(
            ExecutionLogCategory.MONITOR,
            f"Step {step_id} -> {new_status.value}",
            context={
                "plan_id": plan.plan_id,
                "step_id": step_id,
                "gate_id": gate_result.gate_id if gate_result else None,
            },
            details={"previous_status": step.status.value, "plan_status": status.value},
        )
        if status is PlanStatus.COMPLETED:
            self.log.record(
                ExecutionLogCategory.MONITOR,
                f"All steps completed; plan {plan.plan_id} completed",
                context={"plan_id": plan.plan_id},
            )
        return StepStatusUpdate(updated, step_id, new_status, StepUpdateOutcome.APPLIED, gate_result)

    def monitor_plan(
        self,
        plan: ExecutionPlan,
        telemetry: Optional[TelemetrySnapshot] = None,
        options: Optional[SafetyGateOptions] = None,
    ) -> Tuple[ExecutionPlan, ExecutionStatusReport]:
        """
        Gate every step at once and report.

        Any WARN or BLOCK pauses an approved plan. Plans that are not
        approved yet, and terminal plans, are reported on but never
        transitioned.

        Returns:
            (plan, report) where plan is a new version only if it was paused
        """
        results = self.gate.evaluate_plan(plan.steps, telemetry, options)
        flagged = [r for r in results if r.decision is not SafetyDecision.ALLOW]

        should_pause = bool(flagged) and plan.status in _ACTIVE_PLAN_STATUSES
        monitored = plan
        if should_pause:
            monitored = self._pause(plan)

        paused_reason = None
        if monitored.status is PlanStatus.PAUSED and flagged:
            paused_reason = "Safety gate flagged " + ", ".join(
                f"{r.step_id} ({r.decision.value})" for r in flagged
            )

        report = ExecutionStatusReport(
            plan_id=plan.plan_id,
            step_statuses=tuple(
                StepStatusSnapshot(
                    step_id=s.step_id,
                    status=s.status,
                    last_updated=s.status_updated_at or plan.created_at,
                )
                for s in monitored.steps
            ),
            telemetry_deviations=tuple(_deviation(r, telemetry) for r in flagged),
            actions_taken=(PAUSED_ACTION,) if should_pause else (CONTINUE_ACTION,),
            paused_reason=paused_reason,
        )

        self.log.record(
            ExecutionLogCategory.MONITOR,
            f"Monitor tick: {len(flagged)} of {len(results)} steps flagged"
            + ("; plan paused" if should_pause else ""),
            context={"plan_id": plan.plan_id, "report_id": report.report_id},
            details={"decisions": {r.step_id: r.decision.value for r in results}},
        )
        return monitored, report

    def _pause(self, plan: ExecutionPlan) -> ExecutionPlan:
        if plan.status is PlanStatus.PAUSED:
            return plan
        logger.warning("Pausing execution plan %s (was %s)", plan.plan_id, plan.status.value)
        return replace(plan, status=PlanStatus.PAUSED, version=plan.version + 1)


# Highest precedence first
_METRIC_PRECEDENCE: Sequence[Tuple[str, str]] = (
    ("emergency_stop", "emergencyStop"),
    ("environmental_limit", "temperature_c"),
    ("contamination_spike", "contamination_risk_score"),
    ("equipment_overload", "equipment_load_percent"),
    ("labor_mismatch", "labor_utilization_percent"),
    ("regression_detected", "regressions_detected"),
)


def _deviation(result: SafetyGateResult, telemetry: Optional[TelemetrySnapshot]) -> TelemetryDeviation:
    metric, value = "safetyGate", 0.0
    for check, field_name in _METRIC_PRECEDENCE:
        if getattr(result.checks, check):
            metric = field_name
            value = _metric_value(field_name, telemetry)
            break
    return TelemetryDeviation(
        step_id=result.step_id,
        metric=metric,
        current_value=value,
        severity="critical" if result.decision is SafetyDecision.BLOCK else "warning",
        rationale=result.rationale,
    )


def _metric_value(field_name: str, telemetry: Optional[TelemetrySnapshot]) -> float:
    if telemetry is None or field_name == "emergencyStop":
        return 0.0
    raw = getattr(telemetry, field_name, None)
    if field_name == "regressions_detected":
        return float(len(raw or ()))
    return float(raw) if raw is not None else 0.0
