"""
Proposal Pipeline: Generic Engine

CORE PRINCIPLE:
"One pipeline, many rule tables."

Strategy, optimization and refinement proposals all follow the same path:

    proposal -> audit (rule table) -> plan -> approve | reject

and every step is written to the shared execution log under the
pipeline's name. Audits are ADVISORY: a blocked audit does not prevent a
human from planning or approving, it tells them not to.
"""

import logging
import re
import threading
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from execution_pipeline.errors import InvalidTransitionError
from execution_pipeline.execution_log import ExecutionLog
from execution_pipeline.execution_models import SafetyDecision
from proposal_pipeline.audit_rules import (
    OPTIMIZATION_IMPACT_METRICS,
    OPTIMIZATION_RULES,
    REFINEMENT_IMPACT_METRICS,
    REFINEMENT_RULES,
    STRATEGY_IMPACT_METRICS,
    STRATEGY_RULES,
    STRATEGY_TRADEOFFS,
)
from proposal_pipeline.proposal_models import (
    AuditRule,
    Proposal,
    ProposalAudit,
    ProposalLogCategory,
    ProposalPlan,
    ProposalPlanStatus,
)


logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 80
MAX_VIOLATIONS_BEFORE_BLOCK = 2
REVIEW_RECOMMENDATION = "Request additional review before implementation."
NO_TRADEOFFS = "No major tradeoffs detected; proposals are largely complementary."

_PERCENT = re.compile(r"(\d+)-?(\d*)%")


class ProposalPipeline:
    """
    Audit and plan proposals against one rule table.

    Args:
        name: Pipeline name ("strategy", "optimization", "refinement")
        rules: Audit rules applied to each proposal
        impact_metrics: proposal kind -> impact summary key
        log: Shared execution log
        tradeoffs: (kind a, kind b, text) pairs reported for mixed plans
    """

    def __init__(
        self,
        name: str,
        rules: Sequence[AuditRule],
        impact_metrics: Mapping[str, str],
        log: ExecutionLog,
        tradeoffs: Sequence[Tuple[str, str, str]] = (),
    ):
        self.name = name
        self.rules = tuple(rules)
        self.impact_metrics = dict(impact_metrics)
        self.tradeoffs = tuple(tradeoffs)
        self.log = log
        self._plans: List[ProposalPlan] = []
        self._lock = threading.Lock()

    def submit(self, proposal: Proposal) -> Proposal:
        """Record that a proposal entered the pipeline."""
        self.log.record(
            ProposalLogCategory.PROPOSAL,
            f"{self.name} proposal received: {proposal.title}",
            context={"pipeline": self.name, "proposal_id": proposal.id},
            details={"kind": proposal.kind, "risk_level": proposal.risk_level},
        )
        return proposal

    def audit(self, proposal: Proposal) -> ProposalAudit:
        """
        Run every applicable rule and decide.

        WARN when the proposal is high risk or any rule was violated,
        BLOCK when more than two rules were violated.
        """
        rationale: List[str] = []
        violations: List[str] = []
        recommendations: List[str] = []
        checks: Dict[str, bool] = {}

        for rule in self.rules:
            if not rule.applies_to(proposal):
                continue
            finding = rule.check(proposal)
            if finding is None:
                checks[rule.name] = True
                continue
            checks[rule.name] = finding.passed
            rationale.extend(finding.rationale)
            recommendations.extend(finding.recommendations)
            if finding.violation:
                violations.append(finding.violation)

        decision = SafetyDecision.ALLOW
        if proposal.risk_level == "high" or violations:
            decision = SafetyDecision.WARN
            rationale.append("High-risk proposal or constraint violations detected; recommend caution.")
        if len(violations) > MAX_VIOLATIONS_BEFORE_BLOCK:
            decision = SafetyDecision.BLOCK
            rationale.append("Multiple constraint violations; recommend rejection or redesign.")
        if decision is not SafetyDecision.ALLOW:
            recommendations.append(REVIEW_RECOMMENDATION)

        audit = ProposalAudit(
            proposal_id=proposal.id,
            decision=decision,
            rationale=tuple(rationale),
            constraint_violations=tuple(violations),
            checks=checks,
            recommendations=tuple(recommendations),
        )
        self.log.record(
            ProposalLogCategory.AUDIT,
            f"{self.name} audit completed: {decision.value}",
            context={"pipeline": self.name, "proposal_id": proposal.id, "audit_id": audit.audit_id},
            details={"decision": decision.value, "violations": len(violations)},
        )
        return audit

    def create_plan(
        self,
        name: str,
        description: str,
        proposals: Sequence[Proposal],
        priority_order: Optional[Sequence[str]] = None,
    ) -> ProposalPlan:
        """
        Bundle proposals into a draft plan.

        Args:
            name: Plan name
            description: Free text
            proposals: Proposals to include
            priority_order: Proposal ids, highest priority first (default: given order)

        Returns:
            ProposalPlan in DRAFT
        """
        if not name:
            raise ValueError("plan name is required")
        proposals = tuple(proposals)
        confidence = _round_half_up(
            sum(p.confidence for p in proposals) / max(len(proposals), 1)
        )
        plan = ProposalPlan(
            name=name,
            description=description,
            proposals=proposals,
            priority_order=tuple(priority_order) if priority_order else tuple(p.id for p in proposals),
            impact_summary=self._impact_summary(proposals),
            tradeoffs=self._evaluate_tradeoffs(proposals),
            overall_confidence=confidence,
            approvals_required=("operator",) if confidence > HIGH_CONFIDENCE else ("supervisor",),
        )
        with self._lock:
            self._plans.append(plan)

        self.log.record(
            ProposalLogCategory.PLAN,
            f"{self.name} plan created: {name}",
            context={"pipeline": self.name, "plan_id": plan.plan_id},
            details={"proposals": len(proposals), "confidence": confidence},
        )
        return plan

    def approve_plan(self, plan_id: str, approver: str, notes: str = "") -> Optional[ProposalPlan]:
        return self._decide(plan_id, approver, notes, ProposalPlanStatus.APPROVED)

    def reject_plan(self, plan_id: str, approver: str, notes: str) -> Optional[ProposalPlan]:
        if not notes:
            raise ValueError("rejection notes are required")
        return self._decide(plan_id, approver, notes, ProposalPlanStatus.REJECTED)

    def list(self) -> List[ProposalPlan]:
        """Plans, newest first."""
        with self._lock:
            return list(reversed(self._plans))

    def get(self, plan_id: str) -> Optional[ProposalPlan]:
        with self._lock:
            for plan in self._plans:
                if plan.plan_id == plan_id:
                    return plan
        return None

    def _decide(
        self, plan_id: str, approver: str, notes: str, status: ProposalPlanStatus,
    ) -> Optional[ProposalPlan]:
        if not approver:
            raise ValueError("approver is required")
        with self._lock:
            index = next((i for i, p in enumerate(self._plans) if p.plan_id == plan_id), None)
            if index is None:
                logger.warning("%s plan %s not found", self.name, plan_id)
                return None
            plan = self._plans[index]
            if plan.status is not ProposalPlanStatus.DRAFT:
                raise InvalidTransitionError(plan_id, plan.status.value, status.value)
            plan = replace(plan, status=status, approval_notes=notes, decided_by=approver)
            self._plans[index] = plan

        self.log.record(
            ProposalLogCategory.APPROVAL,
            f"{self.name} plan {status.value} by {approver}",
            context={"pipeline": self.name, "plan_id": plan_id, "user_id": approver},
            details={"notes": notes},
        )
        return plan

    def _evaluate_tradeoffs(self, proposals: Sequence[Proposal]) -> Tuple[str, ...]:
        kinds = {p.kind for p in proposals}
        tradeoffs = [text for a, b, text in self.tradeoffs if a in kinds and b in kinds]

        if any(p.risk_level == "high" for p in proposals):
            tradeoffs.append("Plan includes high-risk proposals; requires careful monitoring and rollback readiness.")

        costs = [p.estimated_cost for p in proposals if p.estimated_cost and p.estimated_cost != "minimal"]
        if costs:
            tradeoffs.append(f"Plan implementation cost: {', '.join(costs)}.")

        if not tradeoffs:
            tradeoffs.append(NO_TRADEOFFS)
        return tuple(tradeoffs)

    def _impact_summary(self, proposals: Sequence[Proposal]) -> Dict[str, object]:
        totals: Dict[str, int] = {}
        resources: List[str] = []
        for proposal in proposals:
            metric = self.impact_metrics.get(proposal.kind)
            if metric is not None:
                match = _PERCENT.search(proposal.expected_benefit)
                if match:
                    totals[metric] = totals.get(metric, 0) + int(match.group(1))
            cost = proposal.estimated_cost
            if cost and cost != "minimal" and cost not in resources:
                resources.append(cost)

        summary: Dict[str, object] = {k: v for k, v in totals.items() if v > 0}
        if resources:
            summary["resources_required"] = resources
        return summary


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def build_default_pipelines(log: ExecutionLog) -> Dict[str, ProposalPipeline]:
    """The strategy, optimization and refinement pipelines over one log."""
    return {
        "strategy": ProposalPipeline(
            "strategy", STRATEGY_RULES, STRATEGY_IMPACT_METRICS, log, tradeoffs=STRATEGY_TRADEOFFS,
        ),
        "optimization": ProposalPipeline("optimization", OPTIMIZATION_RULES, OPTIMIZATION_IMPACT_METRICS, log),
        "refinement": ProposalPipeline("refinement", REFINEMENT_RULES, REFINEMENT_IMPACT_METRICS, log),
    }
