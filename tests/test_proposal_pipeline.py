"""
Proposal Pipeline Test Suite

Tests for:
- Strategy audit rules (species limits, contamination terms, scheduling)
- Optimization and refinement rule tables
- Plan creation (tradeoffs, confidence, impact summary, approvers)
- Approve / reject / list / get
- Hand-off to the execution engine
"""

import pytest

from execution_pipeline.errors import InvalidTransitionError
from execution_pipeline.execution_engine import ExecutionEngine
from execution_pipeline.execution_models import ExecutionSource, SafetyDecision
from execution_pipeline.upstream_models import ExecutionIngestInput
from proposal_pipeline import (
    Proposal,
    ProposalLogCategory,
    ProposalPlanStatus,
    build_default_pipelines,
)
from proposal_pipeline.pipeline import NO_TRADEOFFS, REVIEW_RECOMMENDATION


@pytest.fixture
def pipelines(log):
    return build_default_pipelines(log)


@pytest.fixture
def strategy(pipelines):
    return pipelines["strategy"]


def _proposal(kind="energy", **overrides):
    fields = dict(
        kind=kind,
        title=f"{kind} proposal",
        description="",
        confidence=70,
        implementation_steps=("Apply change",),
        affected_systems=("hvac-1",),
        expected_benefit="",
    )
    fields.update(overrides)
    return Proposal(**fields)


# ============================================================================
# SECTION 1: PROPOSAL VALIDATION
# ============================================================================

class TestProposal:
    """Proposals validate their own fields."""

    def test_confidence_range(self):
        with pytest.raises(ValueError):
            _proposal(confidence=120)

    def test_risk_level(self):
        with pytest.raises(ValueError):
            _proposal(risk_level="extreme")


# ============================================================================
# SECTION 2: STRATEGY AUDIT
# ============================================================================

class TestStrategyAudit:
    """Rule table of the strategy pipeline."""

    def test_low_risk_energy_allowed(self, strategy):
        audit = strategy.audit(_proposal("energy"))
        assert audit.decision is SafetyDecision.ALLOW
        assert "Monitor environmental stability after implementation." in audit.recommendations
        assert REVIEW_RECOMMENDATION not in audit.recommendations

    def test_high_risk_warns(self, strategy):
        audit = strategy.audit(_proposal("energy", risk_level="high"))
        assert audit.decision is SafetyDecision.WARN
        assert audit.recommendations[-1] == REVIEW_RECOMMENDATION

    def test_yield_without_affected_systems(self, strategy):
        audit = strategy.audit(_proposal("yield", affected_systems=()))
        assert audit.decision is SafetyDecision.WARN
        assert audit.constraint_violations == ("Proposed environmental changes exceed species limits.",)
        assert audit.checks["species-limits"] is False

    @pytest.mark.parametrize("description,ok", [
        ("Increase airflow in fruiting rooms", True),
        ("Tighten HYGIENE protocols", True),
        ("Paint the walls", False),
    ])
    def test_contamination_strategy_terms(self, strategy, description, ok):
        audit = strategy.audit(_proposal("contamination-mitigation", description=description))
        assert audit.checks["contamination-strategy"] is ok
        assert "Contamination mitigation aligns with facility safety." in audit.rationale

    def test_scheduling_conflicts(self, strategy):
        audit = strategy.audit(_proposal("scheduling", description="Stagger harvests and batch prep"))
        assert audit.decision is SafetyDecision.WARN
        assert len(audit.constraint_violations) == 1
        assert "Staggered schedules" in audit.constraint_violations[0]
        assert "Batch timing" in audit.constraint_violations[0]

    def test_audit_logged(self, strategy, log):
        audit = strategy.audit(_proposal())
        entry = log.list(ProposalLogCategory.AUDIT)[-1]
        assert entry.context["audit_id"] == audit.audit_id
        assert entry.context["pipeline"] == "strategy"


# ============================================================================
# SECTION 3: OPTIMIZATION & REFINEMENT AUDIT
# ============================================================================

class TestOtherRuleTables:
    """Same pipeline, different rules."""

    def test_optimization_blocks_on_three_violations(self, pipelines):
        proposal = _proposal("equipment", confidence=20, implementation_steps=(), affected_systems=())
        audit = pipelines["optimization"].audit(proposal)
        assert len(audit.constraint_violations) == 3
        assert audit.decision is SafetyDecision.BLOCK

    def test_optimization_two_violations_warn(self, pipelines):
        proposal = _proposal("energy", confidence=20, implementation_steps=())
        audit = pipelines["optimization"].audit(proposal)
        assert audit.decision is SafetyDecision.WARN

    def test_refinement_confidence_floor(self, pipelines):
        assert pipelines["refinement"].audit(_proposal("yield", confidence=55)).decision is SafetyDecision.WARN
        assert pipelines["refinement"].audit(_proposal("yield", confidence=60)).decision is SafetyDecision.ALLOW

    def test_strategy_rules_ignore_unknown_kinds(self, strategy):
        audit = strategy.audit(_proposal("multi-facility-coordination"))
        assert audit.checks == {}
        assert audit.decision is SafetyDecision.ALLOW


# ============================================================================
# SECTION 4: PLANS
# ============================================================================

class TestPlans:
    """Plan creation and decisions."""

    def test_complementary_plan(self, strategy):
        plan = strategy.create_plan("Quiet week", "", [_proposal("scheduling", estimated_cost="minimal")])
        assert plan.tradeoffs == (NO_TRADEOFFS,)
        assert plan.status is ProposalPlanStatus.DRAFT

    def test_tradeoffs(self, strategy):
        proposals = [
            _proposal("energy", estimated_cost="$500"),
            _proposal("yield", risk_level="high"),
            _proposal("contamination-mitigation", estimated_cost="2 hours labor"),
        ]
        plan = strategy.create_plan("Mixed", "", proposals)
        assert len(plan.tradeoffs) == 4
        assert plan.tradeoffs[-1] == "Plan implementation cost: $500, 2 hours labor."

    def test_confidence_and_approvers(self, strategy):
        high = strategy.create_plan("High", "", [_proposal(confidence=90), _proposal(confidence=81)])
        assert high.overall_confidence == 86
        assert high.approvals_required == ("operator",)

        low = strategy.create_plan("Low", "", [_proposal(confidence=80)])
        assert low.approvals_required == ("supervisor",)

    def test_empty_plan_confidence(self, strategy):
        assert strategy.create_plan("Empty", "", []).overall_confidence == 0

    def test_impact_summary(self, strategy):
        proposals = [
            _proposal("energy", expected_benefit="15-25% reduction", estimated_cost="$500"),
            _proposal("energy", expected_benefit="5% reduction", estimated_cost="$500"),
            _proposal("yield", expected_benefit="10% more yield"),
            _proposal("scheduling", expected_benefit="30% less waiting"),
        ]
        summary = strategy.create_plan("Impact", "", proposals).impact_summary
        assert summary == {
            "estimated_energy_reduction": 20,
            "estimated_yield_increase": 10,
            "resources_required": ["$500"],
        }

    def test_priority_order_default(self, strategy):
        a, b = _proposal(), _proposal()
        assert strategy.create_plan("Order", "", [a, b]).priority_order == (a.id, b.id)

    def test_approve_and_reject(self, strategy):
        plan = strategy.create_plan("Decide", "", [_proposal()])
        approved = strategy.approve_plan(plan.plan_id, "alice", "Looks good")
        assert approved.status is ProposalPlanStatus.APPROVED
        assert strategy.get(plan.plan_id) is approved
        with pytest.raises(InvalidTransitionError):
            strategy.reject_plan(plan.plan_id, "bob", "Too late")

    def test_unknown_plan_returns_none(self, strategy):
        assert strategy.approve_plan("missing", "alice") is None
        assert strategy.reject_plan("missing", "alice", "no") is None
        assert strategy.get("missing") is None

    def test_list_newest_first(self, strategy):
        first = strategy.create_plan("First", "", [])
        second = strategy.create_plan("Second", "", [])
        assert [p.plan_id for p in strategy.list()] == [second.plan_id, first.plan_id]

    def test_pipelines_are_independent(self, pipelines):
        pipelines["strategy"].create_plan("Only here", "", [])
        assert pipelines["optimization"].list() == []


# ============================================================================
# SECTION 5: EXECUTION HAND-OFF
# ============================================================================

class TestExecutionHandOff:
    """Approved strategy plans compile into execution steps."""

    def test_as_strategy_plan_follows_priority(self, strategy, log):
        a = _proposal("energy", title="A", risk_level="high")
        b = _proposal("yield", title="B")
        plan = strategy.create_plan("Handoff", "", [a, b], priority_order=[b.id, a.id])

        strategy_plan = plan.as_strategy_plan()
        assert [p.title for p in strategy_plan.proposals] == ["B", "A"]

        steps = ExecutionEngine(log).ingest(ExecutionIngestInput(strategy_plan=strategy_plan))
        assert [s.source_type for s in steps] == [ExecutionSource.STRATEGY_PLAN] * 2
        assert steps[0].source_reference_id == plan.plan_id
        assert steps[1].telemetry_watch.contamination_risk_max == 85
