"""
Handoff protocol between tiers.

A handoff carries everything the receiving tier needs to continue without
re-asking: consultation summary, preserved business and technical context,
the escalation rationale and continuity information. Escalations into the
architect tier additionally carry cross-domain impact, decision complexity,
a derived stakeholder list and a communication plan.

Checklist items and quality gates are evaluated from the package content when
it is built; validation re-checks required fields and reports continuity gaps
separately, since those are surfaced to the receiver rather than blocking.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from src.tiered_router.classifier import detect_domains
from src.tiered_router.complexity import context_count
from src.tiered_router.models import (
    Analysis,
    ArchitectEscalationPackage,
    ConsultationSummary,
    ContinuityInfo,
    CrossDomainImpact,
    DecisionComplexity,
    EscalationHop,
    EscalationRationale,
    HandoffCriterion,
    HandoffPackage,
    HandoffValidation,
    NamedCheck,
    PreservedContext,
    Recommendation,
    RiskLevel,
    RoutingDecision,
    Task,
    Tier,
)
from src.tiered_router.specialists import Specialist


CHECKLIST_ITEMS = [
    "Initial assessment completed",
    "Constraints documented",
    "Preliminary recommendations provided",
    "Escalation criteria met",
    "Context preserved",
    "Stakeholders informed",
    "Timeline communicated",
    "Expected outcomes defined",
]

QUALITY_GATES = [
    "Source consultation complete",
    "Escalation criteria validated",
    "Context completeness verified",
    "Target specialist availability confirmed",
    "Handoff documentation approved",
]

RISK_WEIGHTS = {RiskLevel.HIGH: 3.0, RiskLevel.MEDIUM: 1.0, RiskLevel.LOW: 0.0}

COMMUNICATION_PLAN = {
    "frequency": "Weekly status updates",
    "format": "Architecture review meetings",
    "documentation": "Architecture decision records",
    "escalation": "Escalation to architecture board if needed",
}


@dataclass
class EscalationState:
    """Everything known about a task at the moment a handoff criterion fires."""
    task: Task
    decision: RoutingDecision
    source: Specialist
    analysis: Analysis
    recommendation: Recommendation
    criterion: HandoffCriterion
    target: Optional[Specialist] = None
    trail: List[EscalationHop] = field(default_factory=list)


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    return [str(value)]


class HandoffProtocol:
    """Builds and validates handoff packages."""

    def build_handoff(self, state: EscalationState) -> HandoffPackage:
        """
        Build the package for an escalation.

        Args:
            state: Escalation state at the firing criterion

        Returns:
            HandoffPackage, or ArchitectEscalationPackage when the target is TIER_3
        """
        task = state.task
        summary = self._summary(state)
        preserved = self._preserved_context(state)
        rationale = self._rationale(state)
        continuity = self._continuity(state)

        target_id = state.target.id if state.target is not None else state.criterion.target_specialist
        notified = [state.source.id, target_id]
        notified += [s for s in preserved.stakeholders if s not in notified]

        fields: Dict[str, Any] = dict(
            source_tier=state.source.tier,
            target_tier=state.criterion.target_tier,
            source_specialist=state.source.id,
            target_specialist=target_id,
            summary=summary,
            preserved_context=preserved,
            rationale=rationale,
            continuity=continuity,
            notified=notified,
        )

        if state.criterion.target_tier == Tier.TIER_3:
            fields.update(self._architect_fields(state, preserved))
            package_cls = ArchitectEscalationPackage
        else:
            package_cls = HandoffPackage

        draft = package_cls(**fields)
        checklist = self._checklist(draft, state)
        gates = self._quality_gates(draft, state, checklist)
        package = draft.model_copy(update={"checklist": checklist, "quality_gates": gates})

        logger.info("Handoff package built",
                    handoff_id=package.handoff_id,
                    task_id=task.task_id,
                    source_tier=package.source_tier.value,
                    target_tier=package.target_tier.value,
                    target_specialist=package.target_specialist,
                    architect=isinstance(package, ArchitectEscalationPackage))
        return package

    def validate(self, package: HandoffPackage) -> HandoffValidation:
        """
        Check a package before delivery.

        Args:
            package: Package to check

        Returns:
            HandoffValidation; valid only without missing fields or failed checks
        """
        missing = self.missing_fields(package)
        gaps = self.continuity_gaps(package.continuity)
        failed = [c.name for c in package.checklist + package.quality_gates if not c.passed]
        if not package.checklist or not package.quality_gates:
            failed.append("checks-not-evaluated")

        validation = HandoffValidation(
            valid=not missing and not failed,
            missing_fields=missing,
            continuity_gaps=gaps,
            failed_checks=failed,
        )

        if not validation.valid:
            logger.warning("Handoff package failed validation",
                           handoff_id=package.handoff_id,
                           missing_fields=missing,
                           failed_checks=failed)
        elif gaps:
            logger.info("Handoff package has continuity gaps",
                        handoff_id=package.handoff_id,
                        continuity_gaps=gaps)
        return validation

    @staticmethod
    def missing_fields(package: HandoffPackage) -> List[str]:
        required = {
            "problem": package.summary.problem,
            "initial_assessment": package.summary.initial_assessment,
            "business_requirements": package.preserved_context.business_requirements,
            "technical_constraints": package.preserved_context.technical_constraints,
            "why_escalated": package.rationale.why_escalated,
            "completed_work": package.continuity.completed_work,
        }
        missing = []
        for name, value in required.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    @staticmethod
    def continuity_gaps(continuity: ContinuityInfo) -> List[str]:
        gaps = []
        if not continuity.completed_work:
            gaps.append("missing-completed-work")
        if not continuity.remaining_tasks:
            gaps.append("missing-remaining-tasks")
        if not continuity.decisions:
            gaps.append("missing-decisions")
        return gaps

    # Package sections

    def _summary(self, state: EscalationState) -> ConsultationSummary:
        task, analysis = state.task, state.analysis
        problem = task.description.strip() or state.recommendation.rationale or \
            f"{state.decision.domain} task {task.task_id}"
        assessment = "; ".join(analysis.findings) or (
            f"Complexity {analysis.task_complexity}/10 at {state.decision.tier.value}, "
            f"domain relevance {analysis.domain_relevance}"
        )
        return ConsultationSummary(
            problem=problem,
            initial_assessment=assessment,
            constraints=list(analysis.constraints),
            preliminary_recommendations=[state.recommendation.primary_recommendation]
            + list(state.recommendation.alternatives),
            specialist_id=state.source.id,
            tier=state.source.tier,
        )

    def _preserved_context(self, state: EscalationState) -> PreservedContext:
        task = state.task
        business = list(task.requirements) + _as_list(task.context.get("business_requirements"))
        return PreservedContext(
            business_requirements=business,
            technical_constraints=list(task.constraints),
            timeline=str(task.context.get("timeline") or state.recommendation.timeline_estimate),
            resource_constraints=list(state.recommendation.resources),
            stakeholders=_as_list(task.context.get("stakeholders")),
        )

    def _rationale(self, state: EscalationState) -> EscalationRationale:
        target = state.target
        expertise = list(target.expertise[:3]) if target is not None else []
        return EscalationRationale(
            why_escalated=state.criterion.reason,
            expertise_needed=expertise,
            expected_outcomes=[
                f"{state.criterion.target_specialist} recommendation covering {state.criterion.condition}",
                "Revised implementation plan",
            ],
            complexity_factors=list(state.decision.reasoning),
        )

    def _continuity(self, state: EscalationState) -> ContinuityInfo:
        completed = [f"{hop.specialist_id} consultation at {hop.tier.value}" for hop in state.trail]
        own = f"{state.source.id} consultation at {state.source.tier.value}"
        if own not in completed:
            completed.append(own)
        return ContinuityInfo(
            completed_work=completed,
            remaining_tasks=list(state.recommendation.implementation_steps),
            decisions=[state.recommendation.primary_recommendation] if state.recommendation.primary_recommendation else [],
            assumptions=[
                f"Task domain is {state.decision.domain}",
                f"Routing score {state.decision.numeric_score} holds for the receiving tier",
            ],
        )

    def _architect_fields(self, state: EscalationState, preserved: PreservedContext) -> Dict[str, Any]:
        task = state.task
        domains = detect_domains(task.full_text)
        raw_systems = task.context.get("existing_systems")
        systems = _as_list(raw_systems) if isinstance(raw_systems, (list, tuple, set)) else []
        system_count = max(len(systems), context_count(task.context, "existing_systems"))

        impact = CrossDomainImpact(
            affected_domains=domains,
            affected_systems=systems,
            data_flow_impact="data" in domains,
            security_impact="security" in domains,
        )

        stakeholder_count = max(context_count(task.context, "stakeholder_count"), len(preserved.stakeholders))
        risk_level = state.analysis.highest_risk or RiskLevel.MEDIUM
        complexity = DecisionComplexity(
            stakeholder_count=stakeholder_count,
            domain_crossover=len(domains),
            risk_level=risk_level,
            affected_systems=system_count,
            score=self.decision_complexity_score(stakeholder_count, len(domains), system_count, risk_level),
            justifications=self._justifications(stakeholder_count, len(domains), system_count, risk_level),
        )

        considerations = ["Maintainability impact across owning teams", "Evolution strategy for affected systems"]
        if "performance" in domains or state.decision.vector.scope > 7:
            considerations.insert(0, "Scalability requirements")
        if impact.security_impact or state.decision.vector.stakeholder > 6:
            considerations.append("Governance and standards alignment")

        return {
            "cross_domain_impact": impact,
            "architectural_considerations": considerations,
            "decision_complexity": complexity,
            "stakeholders": self.derive_stakeholders(impact, stakeholder_count),
            "communication_plan": dict(COMMUNICATION_PLAN),
        }

    @staticmethod
    def decision_complexity_score(stakeholders: int, domains: int, systems: int, risk: RiskLevel) -> float:
        score = stakeholders * 0.5 + domains * 1.0 + systems * 0.3 + RISK_WEIGHTS[risk]
        return round(min(score, 10.0), 2)

    @staticmethod
    def _justifications(stakeholders: int, domains: int, systems: int, risk: RiskLevel) -> List[str]:
        reasons = []
        if stakeholders > 5:
            reasons.append("Multiple stakeholder coordination required")
        if domains > 3:
            reasons.append("Cross-domain architectural decisions needed")
        if risk == RiskLevel.HIGH:
            reasons.append("High-risk decisions require architectural oversight")
        if systems > 5:
            reasons.append("Enterprise-wide system impact requires coordination")
        return reasons or ["Complex architectural coordination required"]

    @staticmethod
    def derive_stakeholders(impact: CrossDomainImpact, stakeholder_count: int) -> List[str]:
        stakeholders = ["enterprise-architect", "technical-leads"]
        if impact.security_impact:
            stakeholders += ["security-architect", "compliance-team"]
        if impact.data_flow_impact:
            stakeholders += ["data-architect", "data-governance"]
        if stakeholder_count > 3:
            stakeholders += ["program-manager", "business-stakeholders"]
        return list(dict.fromkeys(stakeholders))

    # Checks

    def _checklist(self, package: HandoffPackage, state: EscalationState) -> List[NamedCheck]:
        results = [
            bool(package.summary.initial_assessment),
            package.summary.constraints is not None,
            bool(package.summary.preliminary_recommendations),
            package.target_tier.rank > package.source_tier.rank and bool(package.rationale.why_escalated),
            package.preserved_context.business_requirements is not None
            and package.preserved_context.technical_constraints is not None,
            bool(package.notified),
            bool(package.preserved_context.timeline),
            bool(package.rationale.expected_outcomes),
        ]
        return [NamedCheck(name=name, passed=passed) for name, passed in zip(CHECKLIST_ITEMS, results)]

    def _quality_gates(self, package: HandoffPackage, state: EscalationState,
                       checklist: List[NamedCheck]) -> List[NamedCheck]:
        target = state.target
        results = [
            bool(state.recommendation.implementation_steps),
            state.criterion.target_tier.rank > state.source.tier.rank,
            not self.missing_fields(package),
            target is not None and target.tier == package.target_tier,
            all(c.passed for c in checklist),
        ]
        return [NamedCheck(name=name, passed=passed) for name, passed in zip(QUALITY_GATES, results)]


__all__ = [
    "CHECKLIST_ITEMS",
    "QUALITY_GATES",
    "COMMUNICATION_PLAN",
    "EscalationState",
    "HandoffProtocol",
]
