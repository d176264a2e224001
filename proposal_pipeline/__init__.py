"""
Proposal Pipeline Module

One generic proposal -> audit -> plan -> approval pipeline, instantiated
three times (strategy, optimization, refinement) with different rule
tables. Approved strategy plans feed the execution engine through
ProposalPlan.as_strategy_plan().
"""

from proposal_pipeline.proposal_models import (
    AuditRule,
    Proposal,
    ProposalAudit,
    ProposalLogCategory,
    ProposalPlan,
    ProposalPlanStatus,
    RuleFinding,
)
from proposal_pipeline.audit_rules import OPTIMIZATION_RULES, REFINEMENT_RULES, STRATEGY_RULES
from proposal_pipeline.pipeline import ProposalPipeline, build_default_pipelines

__all__ = [
    "AuditRule",
    "Proposal",
    "ProposalAudit",
    "ProposalLogCategory",
    "ProposalPlan",
    "ProposalPlanStatus",
    "RuleFinding",
    "OPTIMIZATION_RULES",
    "REFINEMENT_RULES",
    "STRATEGY_RULES",
    "ProposalPipeline",
    "build_default_pipelines",
]
