"""
Specialist interface and the shared rule-based implementation.

Every specialist exposes the same capability set:
- analyze(task, context) -> Analysis
- recommend(analysis, task, context) -> Recommendation
- evaluate_handoff(criterion, analysis, task) -> bool

Specialists are tagged with exactly one tier and registered once at start-up.
RuleBasedSpecialist implements the capability set from class-level
declarations (expertise, handoff criteria with trigger keywords, approach,
steps, resources, risk templates), so concrete specialists are mostly data.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

from src.tiered_router.classifier import TIER_PROFILES
from src.tiered_router.models import (
    Analysis,
    ConsultationContext,
    HandoffCriterion,
    Recommendation,
    RiskItem,
    RiskLevel,
    Task,
    Tier,
)


def _tokens(phrase: str) -> List[str]:
    """Significant words of an expertise phrase."""
    return [w for w in re.findall(r'[a-z0-9]+', phrase.lower()) if len(w) >= 4]


def _mentions(text: str, term: str) -> bool:
    return re.search(rf'\b{re.escape(term)}\b', text) is not None


class Specialist(ABC):
    """Interface every registered specialist implements."""

    id: str = ""
    name: str = ""
    domain: str = "general"
    tier: Tier = Tier.DIRECT
    max_complexity_handled: int = 5
    expertise: Tuple[str, ...] = ()
    handoff_criteria: Tuple[HandoffCriterion, ...] = ()

    @abstractmethod
    def analyze(self, task: Task, context: ConsultationContext) -> Analysis:
        """Assess the task from this specialist's point of view."""

    @abstractmethod
    def recommend(self, analysis: Analysis, task: Task, context: ConsultationContext) -> Recommendation:
        """Produce a recommendation from a prior analysis."""

    @abstractmethod
    def evaluate_handoff(self, criterion: HandoffCriterion, analysis: Analysis, task: Task) -> bool:
        """Whether the given handoff criterion applies to this task."""

    def describe(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "domain": self.domain,
            "tier": self.tier.value,
            "max_complexity_handled": self.max_complexity_handled,
            "expertise": list(self.expertise),
            "handoff_criteria": [c.model_dump() for c in self.handoff_criteria],
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} tier={self.tier.value} domain={self.domain}>"


class RuleBasedSpecialist(Specialist):
    """
    Specialist driven by declarative tables.

    Subclasses declare what they know; the analysis and recommendation
    contract is shared.
    """

    # condition -> keywords that make the condition relevant to a task
    condition_triggers: Dict[str, Tuple[str, ...]] = {}

    approach: str = "Implement the change incrementally with tests"
    alternatives: Tuple[str, ...] = ()
    steps: Tuple[str, ...] = ("Implement the change", "Test the change", "Deploy the change")
    resources: Tuple[str, ...] = ("1 engineer",)
    success_criteria: Tuple[str, ...] = ("Change verified in a staging environment",)

    # (keywords, description, level, mitigation)
    risk_templates: Tuple[Tuple[Tuple[str, ...], str, RiskLevel, str], ...] = ()

    base_hours: float = 2.0

    def matched_expertise(self, text: str) -> List[str]:
        text = text.lower()
        return [e for e in self.expertise if any(_mentions(text, t) for t in _tokens(e))]

    def assess_domain_relevance(self, task: Task) -> float:
        if not self.expertise:
            return 0.0
        return round(len(self.matched_expertise(task.full_text)) / len(self.expertise), 3)

    def identify_constraints(self, task: Task) -> List[str]:
        constraints = list(task.constraints)
        for key in ("budget", "timeline", "team_size"):
            if key in task.context:
                constraints.append(f"{key}: {task.context[key]}")
        return constraints

    def identify_risks(self, task: Task, context: ConsultationContext) -> List[RiskItem]:
        """
        Risks from the routing risk dimension plus this specialist's templates.

        Args:
            task: Task under analysis
            context: Consultation context with the routing decision

        Returns:
            Non-empty list of risks, each with a mitigation
        """
        risk_score = context.decision.vector.risk
        if risk_score >= 8:
            risks = [RiskItem(description="High-impact change affecting production, security or compliance",
                              level=RiskLevel.HIGH,
                              mitigation="Staged rollout behind feature flags with a rehearsed rollback plan")]
        elif risk_score >= 5:
            risks = [RiskItem(description="Moderate impact on existing behaviour",
                              level=RiskLevel.MEDIUM,
                              mitigation="Regression test suite and peer review before release")]
        else:
            risks = [RiskItem(description="Regression in existing behaviour",
                              level=RiskLevel.LOW,
                              mitigation="Add tests covering the changed paths")]

        text = task.full_text
        for keywords, description, level, mitigation in self.risk_templates:
            if any(_mentions(text, k) for k in keywords):
                risks.append(RiskItem(description=description, level=level, mitigation=mitigation))
        return risks

    def calculate_confidence(self, analysis: Analysis) -> float:
        confidence = 0.7 + analysis.domain_relevance * 0.2
        if analysis.task_complexity <= self.max_complexity_handled:
            confidence += 0.1
        return round(min(confidence, 1.0), 3)

    def domain_findings(self, task: Task, context: ConsultationContext) -> List[str]:
        """Specialist-specific observations; empty by default."""
        return []

    @staticmethod
    def historical_findings(context: ConsultationContext) -> List[str]:
        """Observations drawn from earlier consultations and escalation tiers."""
        findings = []
        for prior in context.prior_recommendations:
            findings.append(f"{prior.tier.value} {prior.specialist_id} recommended: {prior.primary_recommendation}")
        for similar in context.insights.similar_consultations:
            findings.append(f"Similar consultation by {similar.specialist_id} "
                            f"(similarity {similar.similarity:.2f}) ended {similar.outcome} "
                            f"at quality {similar.quality_score:.2f}")
        for pattern in context.insights.relevant_patterns:
            signature = ", ".join(pattern.signature) or "no keyword signature"
            findings.append(f"Recurring {pattern.domain} pattern at {pattern.tier.value} ({signature}) "
                            f"seen {pattern.frequency} times, success rate {pattern.success_rate:.0%}")
        return findings

    def analyze(self, task: Task, context: ConsultationContext) -> Analysis:
        findings = self.domain_findings(task, context)
        if context.handoff is not None:
            findings.append(f"Received handoff from {context.handoff.source_specialist}: "
                            f"{context.handoff.rationale.why_escalated}")
        findings.extend(self.historical_findings(context))
        return Analysis(
            specialist_id=self.id,
            task_complexity=context.decision.numeric_score,
            domain_relevance=self.assess_domain_relevance(task),
            matched_expertise=self.matched_expertise(task.full_text),
            contextual_factors={
                "tier": context.decision.tier.value,
                "domain": context.decision.domain,
                "urgency": task.context.get("urgency", "normal"),
                "escalated": context.handoff is not None,
            },
            constraints=self.identify_constraints(task),
            risks=self.identify_risks(task, context),
            findings=findings,
        )

    def _priority(self, analysis: Analysis, task: Task) -> str:
        urgency = str(task.context.get("urgency", "")).lower()
        if urgency in ("high", "critical") or analysis.highest_risk == RiskLevel.HIGH:
            return "high"
        if analysis.highest_risk == RiskLevel.MEDIUM:
            return "medium"
        return "low"

    def recommend(self, analysis: Analysis, task: Task, context: ConsultationContext) -> Recommendation:
        applied = list(analysis.matched_expertise)
        for entry in self.expertise:
            if len(applied) >= 2:
                break
            if entry not in applied:
                applied.append(entry)

        steps = list(self.steps) + [f"Satisfy requirement: {r}" for r in task.requirements]
        within_limits = analysis.task_complexity <= self.max_complexity_handled

        return Recommendation(
            specialist_id=self.id,
            domain=self.domain,
            tier=self.tier,
            primary_recommendation=self.approach,
            rationale=f"Problem: {task.description.strip()}" if task.description.strip() else "",
            alternatives=list(self.alternatives),
            implementation_steps=steps,
            priority=self._priority(analysis, task),
            resources=list(self.resources),
            quality_checks=list(TIER_PROFILES[self.tier].quality_checks),
            success_criteria=list(self.success_criteria) + [f"Requirement met: {r}" for r in task.requirements],
            risks=list(analysis.risks),
            expertise_applied=applied,
            timeline_estimate=TIER_PROFILES[self.tier].estimated_time,
            estimated_hours=round(self.base_hours * (1 + analysis.task_complexity / 10), 1),
            timeline_confidence=0.8 if within_limits else 0.6,
            confidence=self.calculate_confidence(analysis),
        )

    def evaluate_handoff(self, criterion: HandoffCriterion, analysis: Analysis, task: Task) -> bool:
        """
        A criterion applies when the task mentions one of its trigger keywords
        and the work is beyond this specialist, either by complexity or by an
        identified high risk.
        """
        triggers = self.condition_triggers.get(criterion.condition, ())
        text = task.full_text
        if not any(_mentions(text, k) for k in triggers):
            return False
        beyond_limits = analysis.task_complexity > self.max_complexity_handled
        return beyond_limits or analysis.highest_risk == RiskLevel.HIGH


__all__ = [
    "Specialist",
    "RuleBasedSpecialist",
]
