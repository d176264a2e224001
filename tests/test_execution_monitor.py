"""
Execution Monitor Test Suite

Tests for:
- Gated step transitions (RUNNING / COMPLETED)
- Typed results for unknown steps and inactive plans
- Rejected requests for planner-owned statuses and completed steps
- Plan-wide monitoring, pause propagation and status reports
- Plan completion
"""

from dataclasses import replace

import pytest

from execution_pipeline.errors import InvalidTransitionError
from execution_pipeline.execution_models import (
    ExecutionLogCategory,
    PlanStatus,
    StepStatus,
    StepUpdateOutcome,
)
from execution_pipeline.execution_monitor import CONTINUE_ACTION, PAUSED_ACTION, ExecutionMonitor
from execution_pipeline.execution_planner import ExecutionPlanner
from execution_pipeline.safety_gate import SafetyGate, SafetyGateOptions


@pytest.fixture
def monitor(log):
    return ExecutionMonitor(SafetyGate(log), log)


@pytest.fixture
def approved_plan(log, make_step):
    planner = ExecutionPlanner(log)
    plan = planner.sequence_steps([make_step("exec-step-000001"), make_step("exec-step-000002")])
    return planner.approve_plan(plan, "alice")


# ============================================================================
# SECTION 1: STEP TRANSITIONS
# ============================================================================

class TestStepTransitions:
    """update_step_status gates RUNNING and COMPLETED."""

    def test_clear_telemetry_applies(self, monitor, approved_plan, telemetry):
        update = monitor.update_step_status(approved_plan, "exec-step-000001", StepStatus.RUNNING, telemetry())
        assert update.outcome is StepUpdateOutcome.APPLIED
        assert update.plan.find_step("exec-step-000001").status is StepStatus.RUNNING
        assert update.plan.version == approved_plan.version + 1
        assert update.gate_result is not None

    def test_block_pauses_plan_and_keeps_step_status(self, monitor, approved_plan, telemetry):
        update = monitor.update_step_status(
            approved_plan, "exec-step-000001", StepStatus.RUNNING, telemetry(contamination_risk_score=95),
        )
        assert update.outcome is StepUpdateOutcome.PAUSED
        assert update.plan.status is PlanStatus.PAUSED
        assert update.plan.find_step("exec-step-000001").status is StepStatus.PENDING

    def test_warn_pauses_when_starting(self, monitor, approved_plan, telemetry):
        update = monitor.update_step_status(
            approved_plan, "exec-step-000001", StepStatus.RUNNING, telemetry(equipment_load_percent=95),
        )
        assert update.outcome is StepUpdateOutcome.PAUSED
        assert update.plan.status is PlanStatus.PAUSED

    def test_warn_tolerated_when_completing(self, monitor, approved_plan, telemetry):
        """A soft warning does not stop recording completed work."""
        update = monitor.update_step_status(
            approved_plan, "exec-step-000001", StepStatus.COMPLETED, telemetry(equipment_load_percent=95),
        )
        assert update.outcome is StepUpdateOutcome.APPLIED
        assert update.plan.status is PlanStatus.APPROVED
        assert update.plan.find_step("exec-step-000001").status is StepStatus.COMPLETED

    def test_block_stops_completion(self, monitor, approved_plan, telemetry):
        update = monitor.update_step_status(
            approved_plan, "exec-step-000001", StepStatus.COMPLETED, telemetry(temperature_c=35),
        )
        assert update.outcome is StepUpdateOutcome.PAUSED

    def test_failed_is_not_gated(self, monitor, approved_plan):
        """Marking a step failed never runs the gate."""
        update = monitor.update_step_status(
            approved_plan, "exec-step-000001", StepStatus.FAILED, None, SafetyGateOptions(emergency_stop=True),
        )
        assert update.outcome is StepUpdateOutcome.APPLIED
        assert update.gate_result is None

    def test_emergency_stop_pauses(self, monitor, approved_plan):
        update = monitor.update_step_status(
            approved_plan, "exec-step-000001", StepStatus.RUNNING, None, SafetyGateOptions(emergency_stop=True),
        )
        assert update.outcome is StepUpdateOutcome.PAUSED
        assert update.gate_result.checks.emergency_stop is True


# ============================================================================
# SECTION 2: TYPED NON-RESULTS
# ============================================================================

class TestTypedOutcomes:
    """Unknown steps and inactive plans are explicit outcomes."""

    def test_unknown_step(self, monitor, approved_plan, log):
        update = monitor.update_step_status(approved_plan, "exec-step-999999", StepStatus.RUNNING)
        assert update.outcome is StepUpdateOutcome.STEP_NOT_FOUND
        assert update.found is False
        assert update.plan is approved_plan
        assert "not found" in log.list(ExecutionLogCategory.MONITOR)[-1].message

    def test_running_requires_approved_plan(self, monitor, log, make_step, telemetry):
        pending = ExecutionPlanner(log).sequence_steps([make_step()])
        update = monitor.update_step_status(pending, "exec-step-000001", StepStatus.RUNNING, telemetry())
        assert update.outcome is StepUpdateOutcome.PLAN_NOT_ACTIVE
        assert update.plan is pending

    def test_terminal_plan_is_not_updated(self, monitor, log, make_step):
        planner = ExecutionPlanner(log)
        rejected = planner.reject_plan(planner.sequence_steps([make_step()]), "bob", "not now")
        update = monitor.update_step_status(rejected, "exec-step-000001", StepStatus.FAILED)
        assert update.outcome is StepUpdateOutcome.PLAN_NOT_ACTIVE

    def test_completed_on_pending_plan_refused(self, monitor, log, make_step, telemetry):
        pending = ExecutionPlanner(log).sequence_steps([make_step()])
        update = monitor.update_step_status(pending, "exec-step-000001", StepStatus.COMPLETED, telemetry())
        assert update.outcome is StepUpdateOutcome.PLAN_NOT_ACTIVE
        assert update.plan is pending
        assert update.plan.find_step("exec-step-000001").status is StepStatus.AWAITING_APPROVAL

    def test_failed_on_draft_plan_refused(self, monitor, log, make_step):
        draft = replace(ExecutionPlanner(log).sequence_steps([make_step()]), status=PlanStatus.DRAFT)
        update = monitor.update_step_status(draft, "exec-step-000001", StepStatus.FAILED)
        assert update.outcome is StepUpdateOutcome.PLAN_NOT_ACTIVE
        assert update.plan is draft


# ============================================================================
# SECTION 3: REJECTED TRANSITIONS
# ============================================================================

class TestRejectedTransitions:
    """Planner-owned statuses and completed steps cannot be requested."""

    @pytest.mark.parametrize("status", [StepStatus.AWAITING_APPROVAL, StepStatus.PENDING])
    def test_planner_statuses_rejected(self, monitor, approved_plan, telemetry, status):
        with pytest.raises(InvalidTransitionError):
            monitor.update_step_status(approved_plan, "exec-step-000001", status, telemetry())

    @pytest.mark.parametrize("status", [StepStatus.RUNNING, StepStatus.FAILED, StepStatus.COMPLETED])
    def test_completed_step_is_final(self, monitor, approved_plan, telemetry, status):
        plan = monitor.update_step_status(approved_plan, "exec-step-000001", StepStatus.COMPLETED, telemetry()).plan
        with pytest.raises(InvalidTransitionError):
            monitor.update_step_status(plan, "exec-step-000001", status, telemetry())

    def test_running_step_may_fail(self, monitor, approved_plan, telemetry):
        plan = monitor.update_step_status(approved_plan, "exec-step-000001", StepStatus.RUNNING, telemetry()).plan
        update = monitor.update_step_status(plan, "exec-step-000001", StepStatus.FAILED)
        assert update.outcome is StepUpdateOutcome.APPLIED
        assert update.plan.find_step("exec-step-000001").status is StepStatus.FAILED


# ============================================================================
# SECTION 4: COMPLETION
# ============================================================================

class TestCompletion:
    """The plan completes when every step is completed."""

    def test_plan_completes(self, monitor, approved_plan, telemetry):
        plan = monitor.update_step_status(approved_plan, "exec-step-000001", StepStatus.COMPLETED, telemetry()).plan
        assert plan.status is PlanStatus.APPROVED
        plan = monitor.update_step_status(plan, "exec-step-000002", StepStatus.COMPLETED, telemetry()).plan
        assert plan.status is PlanStatus.COMPLETED


# ============================================================================
# SECTION 5: PLAN-WIDE MONITORING
# ============================================================================

class TestMonitorPlan:
    """monitor_plan gates every step and reports."""

    def test_nominal_telemetry_continues(self, monitor, approved_plan, telemetry):
        plan, report = monitor.monitor_plan(approved_plan, telemetry())
        assert plan is approved_plan
        assert report.actions_taken == (CONTINUE_ACTION,)
        assert report.telemetry_deviations == ()
        assert report.paused_reason is None
        assert [s.step_id for s in report.step_statuses] == ["exec-step-000001", "exec-step-000002"]

    def test_no_telemetry_continues(self, monitor, approved_plan):
        plan, report = monitor.monitor_plan(approved_plan, None)
        assert plan.status is PlanStatus.APPROVED

    def test_block_pauses_with_critical_deviation(self, monitor, approved_plan, telemetry):
        plan, report = monitor.monitor_plan(approved_plan, telemetry(contamination_risk_score=90))
        assert plan.status is PlanStatus.PAUSED
        assert plan.version == approved_plan.version + 1
        assert report.actions_taken == (PAUSED_ACTION,)
        assert len(report.telemetry_deviations) == 2
        deviation = report.telemetry_deviations[0]
        assert deviation.severity == "critical"
        assert deviation.metric == "contamination_risk_score"
        assert deviation.current_value == 90.0
        assert "exec-step-000001 (block)" in report.paused_reason

    def test_warn_pauses_with_warning_deviation(self, monitor, approved_plan, telemetry):
        plan, report = monitor.monitor_plan(approved_plan, telemetry(labor_utilization_percent=99))
        assert plan.status is PlanStatus.PAUSED
        assert {d.severity for d in report.telemetry_deviations} == {"warning"}
        assert report.telemetry_deviations[0].metric == "labor_utilization_percent"

    def test_already_paused_keeps_version(self, monitor, approved_plan, telemetry):
        paused, _ = monitor.monitor_plan(approved_plan, telemetry(contamination_risk_score=90))
        again, report = monitor.monitor_plan(paused, telemetry(contamination_risk_score=90))
        assert again.version == paused.version
        assert report.paused_reason is not None

    def test_terminal_plan_never_paused(self, monitor, log, make_step, telemetry):
        planner = ExecutionPlanner(log)
        rejected = planner.reject_plan(planner.sequence_steps([make_step()]), "bob", "not now")
        plan, report = monitor.monitor_plan(rejected, telemetry(contamination_risk_score=99))
        assert plan.status is PlanStatus.REJECTED
        assert report.actions_taken == (CONTINUE_ACTION,)
        assert len(report.telemetry_deviations) == 1

    def test_pending_plan_reported_not_paused(self, monitor, log, make_step, telemetry):
        """Unapproved plans are reported on, never paused."""
        pending = ExecutionPlanner(log).sequence_steps([make_step()])
        plan, report = monitor.monitor_plan(pending, telemetry(contamination_risk_score=90))
        assert plan is pending
        assert plan.status is PlanStatus.PENDING_APPROVAL
        assert report.actions_taken == (CONTINUE_ACTION,)
        assert report.paused_reason is None
        assert report.telemetry_deviations[0].severity == "critical"

    def test_pending_plan_cannot_be_resumed_after_tick(self, monitor, log, make_step, telemetry):
        planner = ExecutionPlanner(log)
        pending = planner.sequence_steps([make_step()])
        plan, _ = monitor.monitor_plan(pending, telemetry(contamination_risk_score=90))
        with pytest.raises(InvalidTransitionError):
            planner.resume_plan(plan, "carol", "Room sanitized")

    @pytest.mark.parametrize("risk,paused", [(10, False), (79, False), (82, True), (95, True)])
    def test_paused_iff_any_flag(self, monitor, approved_plan, telemetry, risk, paused):
        plan, _ = monitor.monitor_plan(approved_plan, telemetry(contamination_risk_score=risk))
        assert (plan.status is PlanStatus.PAUSED) is paused

    def test_tick_is_logged(self, monitor, approved_plan, telemetry, log):
        _, report = monitor.monitor_plan(approved_plan, telemetry())
        entry = log.list(ExecutionLogCategory.MONITOR)[-1]
        assert entry.context["report_id"] == report.report_id
