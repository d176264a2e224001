"""
Proposal Pipeline: Audit Rule Tables

Each pipeline is parameterized by one of the tables below. Rules are plain
functions returning a RuleFinding (or None when they have nothing to add);
the pipeline turns findings into an allow / warn / block decision.
"""

from typing import Dict, Optional, Tuple

from proposal_pipeline.proposal_models import AuditRule, Proposal, RuleFinding


CONTAMINATION_POSITIVE_TERMS = ("humidity", "ventilation", "airflow", "hygiene", "filtration", "scheduling")

OPTIMIZATION_MIN_CONFIDENCE = 50
REFINEMENT_MIN_CONFIDENCE = 60


# ============================================================================
# STRATEGY RULES
# ============================================================================

def energy_guidance(proposal: Proposal) -> RuleFinding:
    return RuleFinding(
        rationale=("Energy optimization proposals generally low risk if gradual.",),
        recommendations=("Monitor environmental stability after implementation.",),
    )


def species_limits(proposal: Proposal) -> RuleFinding:
    # No species database here: a yield change must at least name the systems it touches
    if proposal.affected_systems:
        return RuleFinding()
    return RuleFinding(
        violation="Proposed environmental changes exceed species limits.",
        recommendations=("Verify species compatibility with new targets.",),
    )


def contamination_strategy(proposal: Proposal) -> RuleFinding:
    rationale = ("Contamination mitigation aligns with facility safety.",)
    description = proposal.description.lower()
    if any(term in description for term in CONTAMINATION_POSITIVE_TERMS):
        return RuleFinding(rationale=rationale)
    return RuleFinding(
        violation="Mitigation strategy may create unintended risks.",
        rationale=rationale,
        recommendations=("Expand risk analysis before approval.",),
    )


def scheduling_conflicts(proposal: Proposal) -> Optional[RuleFinding]:
    description = proposal.description.lower()
    conflicts = []
    if "stagger" in description:
        conflicts.append("Staggered schedules may impact staff availability.")
    if "batch" in description:
        conflicts.append("Batch timing affects prep area utilization.")
    if not conflicts:
        return None
    return RuleFinding(violation=f"Scheduling conflicts detected: {', '.join(conflicts)}")


STRATEGY_RULES: Tuple[AuditRule, ...] = (
    AuditRule("energy-guidance", energy_guidance, kinds=("energy",)),
    AuditRule("species-limits", species_limits, kinds=("yield",)),
    AuditRule("contamination-strategy", contamination_strategy, kinds=("contamination-mitigation",)),
    AuditRule("scheduling-conflicts", scheduling_conflicts, kinds=("scheduling",)),
)


# ============================================================================
# OPTIMIZATION / REFINEMENT RULES
# ============================================================================

def rollback_feasibility(proposal: Proposal) -> RuleFinding:
    # The execution engine derives a strategy step's rollback from its first implementation step
    if proposal.implementation_steps:
        return RuleFinding()
    return RuleFinding(
        violation="No implementation steps declared; rollback cannot be derived.",
        recommendations=("List concrete implementation steps, first step reversible.",),
    )


def minimum_confidence(threshold: float):
    def check(proposal: Proposal) -> RuleFinding:
        if proposal.confidence >= threshold:
            return RuleFinding()
        return RuleFinding(
            violation=f"Confidence {proposal.confidence:g} below minimum {threshold:g}.",
            recommendations=("Gather more telemetry or simulation evidence.",),
        )
    return check


def equipment_scope(proposal: Proposal) -> RuleFinding:
    if proposal.affected_systems:
        return RuleFinding()
    return RuleFinding(
        violation="Equipment change does not name the affected systems.",
        recommendations=("Identify the equipment and rooms affected.",),
    )


OPTIMIZATION_RULES: Tuple[AuditRule, ...] = (
    AuditRule("rollback-feasibility", rollback_feasibility),
    AuditRule("minimum-confidence", minimum_confidence(OPTIMIZATION_MIN_CONFIDENCE)),
    AuditRule("equipment-scope", equipment_scope, kinds=("equipment",)),
)

REFINEMENT_RULES: Tuple[AuditRule, ...] = (
    AuditRule("rollback-feasibility", rollback_feasibility),
    AuditRule("minimum-confidence", minimum_confidence(REFINEMENT_MIN_CONFIDENCE)),
)


# ============================================================================
# IMPACT METRICS & TRADEOFFS
# ============================================================================

# proposal kind -> impact summary key (summed leading percentage of expected_benefit)
STRATEGY_IMPACT_METRICS: Dict[str, str] = {
    "energy": "estimated_energy_reduction",
    "yield": "estimated_yield_increase",
    "contamination-mitigation": "contamination_risk_reduction",
}

OPTIMIZATION_IMPACT_METRICS: Dict[str, str] = {
    "energy": "estimated_energy_reduction",
    "equipment": "estimated_equipment_load_reduction",
    "labor": "estimated_labor_savings",
}

REFINEMENT_IMPACT_METRICS: Dict[str, str] = {
    "yield": "estimated_yield_increase",
    "contamination-mitigation": "contamination_risk_reduction",
}

# (kind a, kind b, tradeoff text) reported when a plan mixes both kinds
STRATEGY_TRADEOFFS: Tuple[Tuple[str, str, str], ...] = (
    ("energy", "yield",
     "Energy reduction may require tighter environmental control, increasing equipment wear."),
    ("energy", "contamination-mitigation",
     "Energy savings (e.g., reduced HVAC) may conflict with contamination risk mitigation "
     "(e.g., increased ventilation)."),
)
