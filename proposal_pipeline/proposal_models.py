"""
Proposal Pipeline: Data Models

Proposals, audits and plans shared by the strategy, optimization and
refinement pipelines. The three differ only in their audit-rule table and
impact metrics, never in these types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import uuid4

from execution_pipeline.execution_models import SafetyDecision, _iso, utc_now
from execution_pipeline.upstream_models import StrategyPlan, StrategyProposal


RISK_LEVELS = ("low", "medium", "high")


class ProposalLogCategory(str, Enum):
    PROPOSAL = "proposal"
    AUDIT = "audit"
    PLAN = "plan"
    APPROVAL = "approval"


class ProposalPlanStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Proposal:
    """A suggested change awaiting audit. kind selects which rules apply."""
    kind: str
    title: str
    id: str = field(default_factory=lambda: f"proposal-{uuid4().hex}")
    description: str = ""
    risk_level: str = "low"
    confidence: float = 50  # 0-100
    implementation_steps: Tuple[str, ...] = ()
    affected_systems: Tuple[str, ...] = ()
    expected_benefit: str = ""
    estimated_cost: Optional[str] = None  # e.g. "minimal", "$500", "2 hours labor"
    source: Optional[str] = None

    def __post_init__(self):
        if not self.kind:
            raise ValueError("kind is required")
        if not self.title:
            raise ValueError("title is required")
        if self.risk_level not in RISK_LEVELS:
            raise ValueError(f"risk_level must be one of {RISK_LEVELS}, got {self.risk_level!r}")
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be within 0-100, got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "description": self.description,
            "risk_level": self.risk_level,
            "confidence": self.confidence,
            "implementation_steps": list(self.implementation_steps),
            "affected_systems": list(self.affected_systems),
            "expected_benefit": self.expected_benefit,
            "estimated_cost": self.estimated_cost,
            "source": self.source,
        }


@dataclass(frozen=True)
class RuleFinding:
    """
    Output of one audit rule.

    violation is None when the rule passed; rationale and recommendations
    may be present either way.
    """
    violation: Optional[str] = None
    rationale: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return self.violation is None


@dataclass(frozen=True)
class AuditRule:
    """
    Named check over a proposal.

    kinds limits the rule to those proposal kinds; empty means every kind.
    check returns None when it has nothing to say.
    """
    name: str
    check: Callable[[Proposal], Optional[RuleFinding]]
    kinds: Tuple[str, ...] = ()

    def applies_to(self, proposal: Proposal) -> bool:
        return not self.kinds or proposal.kind in self.kinds


@dataclass(frozen=True)
class ProposalAudit:
    proposal_id: str
    decision: SafetyDecision
    audit_id: str = field(default_factory=lambda: f"audit-{uuid4().hex}")
    rationale: Tuple[str, ...] = ()
    constraint_violations: Tuple[str, ...] = ()
    checks: Dict[str, bool] = field(default_factory=dict)
    recommendations: Tuple[str, ...] = ()
    rollback_plan: str = "Revert to previous environmental setpoints and document outcomes."
    audited_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "audit_id": self.audit_id,
            "proposal_id": self.proposal_id,
            "decision": self.decision.value,
            "rationale": list(self.rationale),
            "constraint_violations": list(self.constraint_violations),
            "checks": dict(self.checks),
            "recommendations": list(self.recommendations),
            "rollback_plan": self.rollback_plan,
            "audited_at": _iso(self.audited_at),
        }


@dataclass(frozen=True)
class ProposalPlan:
    name: str
    plan_id: str = field(default_factory=lambda: f"proposal-plan-{uuid4().hex}")
    description: str = ""
    proposals: Tuple[Proposal, ...] = ()
    priority_order: Tuple[str, ...] = ()
    impact_summary: Dict[str, Any] = field(default_factory=dict)
    tradeoffs: Tuple[str, ...] = ()
    overall_confidence: int = 0
    approvals_required: Tuple[str, ...] = ()
    status: ProposalPlanStatus = ProposalPlanStatus.DRAFT
    approval_notes: Optional[str] = None
    decided_by: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def as_strategy_plan(self) -> StrategyPlan:
        """Project the plan onto the execution engine's strategy input, in priority order."""
        by_id = {p.id: p for p in self.proposals}
        ordered = [by_id[pid] for pid in self.priority_order if pid in by_id]
        ordered += [p for p in self.proposals if p.id not in self.priority_order]
        return StrategyPlan(
            id=self.plan_id,
            name=self.name,
            proposals=tuple(
                StrategyProposal(
                    id=p.id,
                    type=p.kind,
                    title=p.title,
                    description=p.description,
                    risk_level=p.risk_level,
                    implementation_steps=p.implementation_steps,
                )
                for p in ordered
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "name": self.name,
            "description": self.description,
            "proposals": [p.to_dict() for p in self.proposals],
            "priority_order": list(self.priority_order),
            "impact_summary": dict(self.impact_summary),
            "tradeoffs": list(self.tradeoffs),
            "overall_confidence": self.overall_confidence,
            "approvals_required": list(self.approvals_required),
            "status": self.status.value,
            "approval_notes": self.approval_notes,
            "decided_by": self.decided_by,
            "created_at": _iso(self.created_at),
        }
