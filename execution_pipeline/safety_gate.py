"""
Execution Pipeline: Safety Gate

CORE PRINCIPLE:
"The gate decides from the telemetry in front of it and nothing else."

The safety gate is a PURE DECISION FUNCTION:
- (step, telemetry snapshot, options) -> allow | warn | block
- Every sub-check is independent; several may fire at once
- Emergency stop always wins
- Missing telemetry means "nothing to check", not "block"

Cross-step contention is NOT the gate's concern (see ExecutionPlanner).
The only side effect is an optional audit log entry per evaluation.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional
from uuid import uuid4

from execution_pipeline.execution_log import ExecutionLog
from execution_pipeline.execution_models import (
    ExecutionLogCategory,
    ExecutionStepProposal,
    SafetyChecks,
    SafetyDecision,
    SafetyGateResult,
    TelemetrySnapshot,
)


logger = logging.getLogger(__name__)

EMERGENCY_STOP_RATIONALE = "Emergency stop engaged"
EMERGENCY_STOP_ALTERNATIVE = "Hold execution and inspect onsite"
BLOCK_ALTERNATIVE = "Pause execution and re-run safety checks after remediation"
WARN_ALTERNATIVE = "Require manual approval before proceeding"


@dataclass(frozen=True)
class SafetyGateOptions:
    """
    Gate-wide switches.

    The contamination thresholds apply to steps that do not declare their
    own contamination ceiling, and always decide warn vs block severity.
    """
    emergency_stop: bool = False
    contamination_threshold: float = 70
    contamination_block_threshold: float = 85


class SafetyGate:
    """
    Deterministic pre-step safety checks.

    Decision precedence is fixed:
    - BLOCK: emergency stop, environmental limit breach, or a contamination
      spike at or above the block threshold
    - WARN: labor mismatch, equipment overload, regression signals, or a
      contamination spike at or above the warn threshold
    - ALLOW otherwise
    """

    def __init__(self, log: Optional[ExecutionLog] = None):
        self.log = log

    def evaluate_step(
        self,
        step: ExecutionStepProposal,
        telemetry: Optional[TelemetrySnapshot] = None,
        options: Optional[SafetyGateOptions] = None,
    ) -> SafetyGateResult:
        """
        Evaluate a single step against a telemetry snapshot.

        Args:
            step: Step proposal carrying its telemetry_watch contract
            telemetry: Current reading (None means nothing to check)
            options: Emergency stop and contamination thresholds

        Returns:
            SafetyGateResult with decision, rationale and sub-checks
        """
        options = options or SafetyGateOptions()
        gate_id = f"gate-{step.step_id}-{uuid4().hex[:8]}"

        if options.emergency_stop:
            result = SafetyGateResult(
                gate_id=gate_id,
                step_id=step.step_id,
                decision=SafetyDecision.BLOCK,
                rationale=(EMERGENCY_STOP_RATIONALE,),
                recommended_alternatives=(EMERGENCY_STOP_ALTERNATIVE,),
                checks=SafetyChecks(emergency_stop=True),
            )
            self._record(result)
            return result

        warn_at = options.contamination_threshold
        block_at = options.contamination_block_threshold
        watch = step.telemetry_watch
        rationale: List[str] = []
        contamination_spike = False
        equipment_overload = False
        labor_mismatch = False
        environmental_limit = False
        regression_detected = False

        if telemetry is not None:
            risk = telemetry.contamination_risk_score
            if watch is not None and watch.contamination_risk_max is not None and risk is not None:
                # Step ceiling: any breach is a spike, severity resolved below
                if risk > watch.contamination_risk_max:
                    rationale.append(
                        f"Contamination risk {risk} exceeds limit {watch.contamination_risk_max}"
                    )
                    contamination_spike = True
            elif risk is not None:
                if risk >= block_at:
                    rationale.append(f"Contamination risk {risk} exceeds block threshold {block_at}")
                    contamination_spike = True
                elif risk >= warn_at:
                    rationale.append(f"Contamination risk {risk} exceeds warn threshold {warn_at}")
                    contamination_spike = True

            load = telemetry.equipment_load_percent
            if watch is not None and watch.equipment_load_max is not None and load is not None:
                if load > watch.equipment_load_max:
                    rationale.append(f"Equipment load {load}% exceeds limit {watch.equipment_load_max}%")
                    equipment_overload = True

            labor = telemetry.labor_utilization_percent
            if watch is not None and watch.labor_utilization_max is not None and labor is not None:
                if labor > watch.labor_utilization_max:
                    rationale.append(
                        f"Labor utilization {labor}% exceeds limit {watch.labor_utilization_max}%"
                    )
                    labor_mismatch = True

            temperature = telemetry.temperature_c
            env = watch.environment if watch is not None else None
            if env is not None and temperature is not None:
                if env.temperature_max is not None and temperature > env.temperature_max:
                    rationale.append(f"Temperature {temperature}°C exceeds max {env.temperature_max}°C")
                    environmental_limit = True
                if env.temperature_min is not None and temperature < env.temperature_min:
                    rationale.append(f"Temperature {temperature}°C below min {env.temperature_min}°C")
                    environmental_limit = True

            if telemetry.regressions_detected:
                regression_detected = True
                rationale.append(f"Regression signals: {', '.join(telemetry.regressions_detected)}")

        risk = telemetry.contamination_risk_score if telemetry is not None else None
        should_block = environmental_limit or (
            contamination_spike and risk is not None and risk >= block_at
        )
        should_warn = (
            labor_mismatch
            or equipment_overload
            or regression_detected
            or (contamination_spike and risk is not None and risk >= warn_at)
        )

        if should_block:
            decision = SafetyDecision.BLOCK
            alternatives = (BLOCK_ALTERNATIVE,)
        elif should_warn:
            decision = SafetyDecision.WARN
            alternatives = (WARN_ALTERNATIVE,)
        else:
            decision = SafetyDecision.ALLOW
            alternatives = ()

        result = SafetyGateResult(
            gate_id=gate_id,
            step_id=step.step_id,
            decision=decision,
            rationale=tuple(rationale),
            recommended_alternatives=alternatives,
            checks=SafetyChecks(
                contamination_spike=contamination_spike,
                equipment_overload=equipment_overload,
                labor_mismatch=labor_mismatch,
                environmental_limit=environmental_limit,
                regression_detected=regression_detected,
            ),
        )
        self._record(result)
        return result

    def evaluate_plan(
        self,
        steps: Iterable[ExecutionStepProposal],
        telemetry: Optional[TelemetrySnapshot] = None,
        options: Optional[SafetyGateOptions] = None,
    ) -> List[SafetyGateResult]:
        """Evaluate every step independently (no cross-step interaction)."""
        return [self.evaluate_step(step, telemetry, options) for step in steps]

    def _record(self, result: SafetyGateResult):
        if result.decision is not SafetyDecision.ALLOW:
            logger.warning(
                "Safety gate %s for step %s: %s",
                result.decision.value, result.step_id, "; ".join(result.rationale),
            )
        if self.log is None:
            return
        self.log.record(
            ExecutionLogCategory.SAFETY_GATE,
            f"Safety gate {result.decision.value} for {result.step_id}",
            context={"step_id": result.step_id, "gate_id": result.gate_id},
            details=result.to_dict(),
        )
