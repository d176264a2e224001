"""
Execution Pipeline: Facade

Wires one log, gate, engine, planner, monitor, rollback engine, emergency
stop and plan store, and exposes the in-process RPC surface used by the
service layer:

    ingest -> sequence -> approve | reject
    update_step_status / monitor_tick -> (paused) -> resume | generate_rollback

Every call that reads and rewrites a stored plan holds that plan's lock
for the whole read-modify-write.

Collaborators are injected; the process that bootstraps the pipeline owns
its lifecycle. There are no module-level instances.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from execution_pipeline.emergency_stop import EmergencyStopController
from execution_pipeline.execution_engine import ExecutionEngine
from execution_pipeline.execution_log import DEFAULT_MAX_ENTRIES, ExecutionLog
from execution_pipeline.execution_models import (
    DEFAULT_OPERATIONS_ROLE,
    ExecutionPlan,
    ExecutionStatusReport,
    ExecutionStepProposal,
    RollbackPlan,
    StepStatus,
    StepStatusUpdate,
    TelemetrySnapshot,
)
from execution_pipeline.execution_monitor import ExecutionMonitor
from execution_pipeline.execution_planner import ExecutionPlanner
from execution_pipeline.plan_store import PlanStore
from execution_pipeline.rollback_engine import RollbackEngine
from execution_pipeline.safety_gate import SafetyGate, SafetyGateOptions
from execution_pipeline.upstream_models import ExecutionIngestInput


logger = logging.getLogger(__name__)


class ExecutionPipeline:
    """Stateful entry point over the pure execution components."""

    def __init__(
        self,
        log: Optional[ExecutionLog] = None,
        store: Optional[PlanStore] = None,
        emergency_stop: Optional[EmergencyStopController] = None,
        contamination_threshold: float = 70,
        contamination_block_threshold: float = 85,
        operations_role: str = DEFAULT_OPERATIONS_ROLE,
    ):
        self.log = log if log is not None else ExecutionLog()
        self.store = store if store is not None else PlanStore()
        self.emergency_stop = emergency_stop if emergency_stop is not None else EmergencyStopController(self.log)
        self.contamination_threshold = contamination_threshold
        self.contamination_block_threshold = contamination_block_threshold

        self.gate = SafetyGate(self.log)
        self.engine = ExecutionEngine(self.log, operations_role)
        self.planner = ExecutionPlanner(self.log, operations_role)
        self.monitor = ExecutionMonitor(self.gate, self.log)
        self.rollback_engine = RollbackEngine(self.log)

    @classmethod
    def from_settings(cls, settings) -> "ExecutionPipeline":
        """Build a pipeline from an execution_service Settings object."""
        log = ExecutionLog(
            max_entries=settings.EXECUTION_LOG_MAX_ENTRIES or DEFAULT_MAX_ENTRIES,
            log_file=settings.EXECUTION_LOG_FILE or None,
        )
        return cls(
            log=log,
            contamination_threshold=settings.CONTAMINATION_WARN_THRESHOLD,
            contamination_block_threshold=settings.CONTAMINATION_BLOCK_THRESHOLD,
            operations_role=settings.OPERATIONS_ROLE,
        )

    def gate_options(self) -> SafetyGateOptions:
        return SafetyGateOptions(
            emergency_stop=self.emergency_stop.is_engaged(),
            contamination_threshold=self.contamination_threshold,
            contamination_block_threshold=self.contamination_block_threshold,
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def ingest(self, ingest_input: ExecutionIngestInput) -> List[ExecutionStepProposal]:
        return self.engine.ingest(ingest_input)

    def sequence(self, steps: Iterable[ExecutionStepProposal]) -> ExecutionPlan:
        """Sequence steps into a new stored plan awaiting approval."""
        plan = self.planner.sequence_steps(steps)
        with self.store.lock_for(plan.plan_id):
            return self.store.save(plan)

    def create_draft(self, steps: Iterable[ExecutionStepProposal]) -> ExecutionPlan:
        plan = self.engine.build_draft_plan(steps)
        with self.store.lock_for(plan.plan_id):
            return self.store.save(plan)

    def resequence(self, plan_id: str) -> ExecutionPlan:
        with self.store.lock_for(plan_id):
            return self.store.save(self.planner.resequence(self.store.require(plan_id)))

    def request_approval(self, plan_id: str) -> ExecutionPlan:
        with self.store.lock_for(plan_id):
            return self.store.save(self.planner.request_approval(self.store.require(plan_id)))

    def get_plan(self, plan_id: str) -> ExecutionPlan:
        return self.store.require(plan_id)

    def list_plans(self) -> List[ExecutionPlan]:
        return self.store.list_plans()

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def approve(self, plan_id: str, approver: str) -> ExecutionPlan:
        with self.store.lock_for(plan_id):
            return self.store.save(self.planner.approve_plan(self.store.require(plan_id), approver))

    def reject(self, plan_id: str, actor: str, reason: str) -> ExecutionPlan:
        with self.store.lock_for(plan_id):
            return self.store.save(self.planner.reject_plan(self.store.require(plan_id), actor, reason))

    def resume(self, plan_id: str, operator: str, note: str) -> ExecutionPlan:
        with self.store.lock_for(plan_id):
            return self.store.save(self.planner.resume_plan(self.store.require(plan_id), operator, note))

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def update_step_status(
        self,
        plan_id: str,
        step_id: str,
        new_status: StepStatus,
        telemetry: Optional[TelemetrySnapshot] = None,
    ) -> StepStatusUpdate:
        with self.store.lock_for(plan_id):
            plan = self.store.require(plan_id)
            update = self.monitor.update_step_status(plan, step_id, new_status, telemetry, self.gate_options())
            if update.plan.version != plan.version:
                self.store.save(update.plan)
            return update

    def monitor_tick(
        self,
        plan_id: str,
        telemetry: Optional[TelemetrySnapshot] = None,
    ) -> Tuple[ExecutionPlan, ExecutionStatusReport]:
        with self.store.lock_for(plan_id):
            plan = self.store.require(plan_id)
            monitored, report = self.monitor.monitor_plan(plan, telemetry, self.gate_options())
            if monitored.version != plan.version:
                self.store.save(monitored)
            return monitored, report

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def generate_rollback(
        self,
        plan_id: str,
        failed_step_id: str,
        reason: str,
        triggered_by: str = "execution-monitor",
    ) -> RollbackPlan:
        with self.store.lock_for(plan_id):
            plan = self.store.require(plan_id)
            rollback = self.rollback_engine.generate(plan, failed_step_id, reason, triggered_by)
            return self.store.save_rollback(rollback)

    def approve_rollback(self, rollback_id: str, approver: str) -> RollbackPlan:
        rollback = self.store.require_rollback(rollback_id)
        with self.store.lock_for(rollback.plan_id):
            rollback = self.store.require_rollback(rollback_id)
            return self.store.save_rollback(self.rollback_engine.approve(rollback, approver))

    def complete_rollback(self, rollback_id: str, actor: str) -> RollbackPlan:
        rollback = self.store.require_rollback(rollback_id)
        with self.store.lock_for(rollback.plan_id):
            rollback = self.store.require_rollback(rollback_id)
            return self.store.save_rollback(self.rollback_engine.complete(rollback, actor))

    def get_rollback(self, rollback_id: str) -> RollbackPlan:
        return self.store.require_rollback(rollback_id)
