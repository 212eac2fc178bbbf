"""
Quality gate for specialist recommendations.

This module scores a recommendation on independent dimensions and decides
whether it is good enough to hand back to the caller:

DIMENSIONS:
- expertise_alignment: does the specialist fit the task domain and complexity
- completeness: are the expected sections of a recommendation present
- implementation_viability: steps, timeline confidence, resources, unmitigated risk
- risk_coverage: share of identified risks that carry a mitigation
- Optional evaluators (maintainability, testability, observability or any
  caller callable returning a score in [0, 1])

LEVELS:
- excellent (>= 0.9), acceptable (>= 0.75), minimal below

A minimal recommendation may be revised once; if it is still minimal the
assessment is flagged for escalation.
"""

from collections import Counter, deque
from typing import Callable, Dict, List, Optional

from loguru import logger

from src.tiered_router.models import (
    QualityAssessment,
    QualityLevel,
    Recommendation,
    RiskItem,
    RiskLevel,
    RoutingDecision,
    Task,
)
from src.tiered_router.specialists import Specialist
from src.tiered_router.utils import get_config


Evaluator = Callable[[Recommendation, Task], float]

# Specialist domain -> task domains close enough to share expertise
SIMILAR_DOMAINS = {
    "architecture": ("integration", "performance", "security"),
    "security": ("architecture", "data", "integration"),
    "performance": ("architecture", "data"),
    "data": ("performance", "architecture", "integration"),
    "integration": ("architecture", "data", "security"),
    "frontend": ("performance", "security"),
}

COMPLETENESS_ELEMENTS = {
    "problem_definition": lambda r: bool(r.rationale),
    "solution_approach": lambda r: bool(r.primary_recommendation),
    "implementation_steps": lambda r: bool(r.implementation_steps),
    "success_criteria": lambda r: bool(r.success_criteria),
    "risk_assessment": lambda r: bool(r.risks),
    "timeline": lambda r: bool(r.timeline_estimate),
    "resource_requirements": lambda r: bool(r.resources),
}

IMPROVEMENT_HINTS = {
    "expertise_alignment": "Route to a specialist whose domain and capacity match the task",
    "completeness": "Fill in the missing recommendation sections",
    "implementation_viability": "Add concrete implementation steps, resources and a realistic timeline",
    "risk_coverage": "Provide a mitigation for every identified risk",
    "maintainability": "Include documentation and code review in the plan",
    "testability": "Plan automated tests for the changed behaviour",
    "observability": "Add logging, metrics and alerting for the new behaviour",
}


def _mentions_any(recommendation: Recommendation, keywords) -> int:
    text = " ".join(recommendation.implementation_steps + recommendation.quality_checks
                    + recommendation.success_criteria).lower()
    return sum(1 for k in keywords if k in text)


def maintainability_evaluator(recommendation: Recommendation, task: Task) -> float:
    hits = _mentions_any(recommendation, ("document", "review", "interface", "refactor", "standard"))
    return min(0.5 + 0.15 * hits, 1.0)


def testability_evaluator(recommendation: Recommendation, task: Task) -> float:
    hits = _mentions_any(recommendation, ("test", "verify", "validate", "staging", "regression"))
    return min(0.4 + 0.2 * hits, 1.0)


def observability_evaluator(recommendation: Recommendation, task: Task) -> float:
    hits = _mentions_any(recommendation, ("monitor", "metric", "alert", "logging", "tracing", "track"))
    return min(0.4 + 0.2 * hits, 1.0)


OPTIONAL_EVALUATORS: Dict[str, Evaluator] = {
    "maintainability": maintainability_evaluator,
    "testability": testability_evaluator,
    "observability": observability_evaluator,
}


class QualityGate:
    """Scores recommendations and keeps a bounded assessment history."""

    def __init__(self, acceptable_threshold: Optional[float] = None,
                 excellent_threshold: Optional[float] = None,
                 weights: Optional[Dict[str, float]] = None,
                 evaluators: Optional[Dict[str, Evaluator]] = None):
        """
        Initialize the gate.

        Args:
            acceptable_threshold: Minimum overall score to pass
            excellent_threshold: Score from which a recommendation is excellent
            weights: Optional per-dimension weights for the overall score
            evaluators: Extra named dimensions to score
        """
        self.config = get_config()
        self.acceptable_threshold = acceptable_threshold or self.config.get('QUALITY_ACCEPTABLE_THRESHOLD', 0.75)
        self.excellent_threshold = excellent_threshold or self.config.get('QUALITY_EXCELLENT_THRESHOLD', 0.9)
        self.weights = dict(weights or {})
        self.evaluators = dict(evaluators or {})
        self.history: deque = deque(maxlen=1000)

        logger.info("QualityGate initialized",
                    acceptable=self.acceptable_threshold,
                    excellent=self.excellent_threshold,
                    evaluators=list(self.evaluators))

    # Dimensions

    @staticmethod
    def domain_match(specialist_domain: str, task_domain: str) -> float:
        if specialist_domain == task_domain:
            return 1.0
        if specialist_domain == "general" or task_domain in SIMILAR_DOMAINS.get(specialist_domain, ()):
            return 0.7
        return 0.3

    @staticmethod
    def expertise_relevance(recommendation: Recommendation) -> float:
        applied = len(recommendation.expertise_applied)
        if applied >= 2:
            return 1.0
        return 0.6 if applied == 1 else 0.2

    @staticmethod
    def complexity_match(max_handled: int, score: float) -> float:
        if score <= max_handled:
            return 1.0
        if score - max_handled <= 2:
            return 0.7
        return 0.3

    def expertise_alignment(self, recommendation: Recommendation, specialist: Specialist,
                            decision: RoutingDecision) -> float:
        score = (self.domain_match(specialist.domain, decision.domain) * 0.4
                 + self.expertise_relevance(recommendation) * 0.4
                 + self.complexity_match(specialist.max_complexity_handled, decision.numeric_score) * 0.2)
        return round(score, 4)

    @staticmethod
    def completeness(recommendation: Recommendation) -> float:
        present = sum(1 for check in COMPLETENESS_ELEMENTS.values() if check(recommendation))
        return round(present / len(COMPLETENESS_ELEMENTS), 4)

    @staticmethod
    def implementation_viability(recommendation: Recommendation) -> float:
        score = 0.4 * min(len(recommendation.implementation_steps) / 3, 1.0)
        score += 0.3 * recommendation.timeline_confidence
        score += 0.3 if recommendation.resources else 0.0
        if any(r.level == RiskLevel.HIGH and not r.mitigation for r in recommendation.risks):
            score -= 0.2
        return round(max(0.0, min(score, 1.0)), 4)

    @staticmethod
    def risk_coverage(recommendation: Recommendation) -> float:
        if not recommendation.risks:
            return 0.5
        mitigated = sum(1 for r in recommendation.risks if r.mitigation)
        return round(0.2 + 0.8 * mitigated / len(recommendation.risks), 4)

    def level_for(self, score: float) -> QualityLevel:
        if score >= self.excellent_threshold:
            return QualityLevel.EXCELLENT
        if score >= self.acceptable_threshold:
            return QualityLevel.ACCEPTABLE
        return QualityLevel.MINIMAL

    def overall(self, scores: Dict[str, float], weights: Optional[Dict[str, float]] = None) -> float:
        weights = weights or self.weights
        if weights:
            total = sum(weights.get(name, 0.0) for name in scores)
            if total > 0:
                return round(sum(s * weights.get(name, 0.0) for name, s in scores.items()) / total, 4)
        return round(sum(scores.values()) / len(scores), 4)

    def assess(self, recommendation: Recommendation, task: Task, specialist: Specialist,
               decision: RoutingDecision, revision: int = 0,
               weights: Optional[Dict[str, float]] = None,
               evaluators: Optional[Dict[str, Evaluator]] = None) -> QualityAssessment:
        """
        Score a recommendation.

        Args:
            recommendation: Recommendation to score
            task: Task it answers
            specialist: Specialist that produced it
            decision: Routing decision for the task
            revision: 0 for the first assessment, 1 after revision
            weights: Caller weights for the overall score
            evaluators: Extra evaluators for this call only

        Returns:
            QualityAssessment
        """
        scores = {
            "expertise_alignment": self.expertise_alignment(recommendation, specialist, decision),
            "completeness": self.completeness(recommendation),
            "implementation_viability": self.implementation_viability(recommendation),
            "risk_coverage": self.risk_coverage(recommendation),
        }
        for name, evaluator in {**self.evaluators, **(evaluators or {})}.items():
            scores[name] = round(max(0.0, min(float(evaluator(recommendation, task)), 1.0)), 4)

        overall = self.overall(scores, weights)
        level = self.level_for(overall)
        passed = overall >= self.acceptable_threshold

        improvements: List[str] = []
        if not passed:
            weak = sorted(
                ((name, score) for name, score in scores.items() if score < self.acceptable_threshold),
                key=lambda item: item[1]
            )
            improvements = [
                f"{name} ({score:.2f}): {IMPROVEMENT_HINTS.get(name, 'Raise this dimension above the acceptable threshold')}"
                for name, score in weak
            ]

        assessment = QualityAssessment(
            dimension_scores=scores,
            overall_score=overall,
            level=level,
            passed=passed,
            improvements=improvements,
            escalation_needed=level == QualityLevel.MINIMAL and revision >= 1,
            revision=revision,
        )
        self.history.append(assessment)

        logger.info("Recommendation assessed",
                    specialist_id=recommendation.specialist_id,
                    overall_score=overall,
                    level=level.value,
                    passed=passed,
                    revision=revision)
        return assessment

    def revise(self, recommendation: Recommendation, assessment: QualityAssessment,
               task: Optional[Task] = None) -> Recommendation:
        """
        Produce one revised recommendation that fills the gaps the assessment found.

        Args:
            recommendation: Original recommendation, left untouched
            assessment: Its assessment
            task: Task, used to restate the problem when missing

        Returns:
            New Recommendation with revision incremented
        """
        update: Dict[str, object] = {"revision": recommendation.revision + 1}

        if not recommendation.rationale and task is not None and task.description.strip():
            update["rationale"] = f"Problem: {task.description.strip()}"

        steps = list(recommendation.implementation_steps)
        for filler in ("Implement the agreed approach", "Validate the change in staging",
                       "Document the outcome and review with stakeholders"):
            if len(steps) >= 3:
                break
            if filler not in steps:
                steps.append(filler)
        update["implementation_steps"] = steps

        if not recommendation.success_criteria:
            update["success_criteria"] = ["Outcome verified against the stated requirements"]
        if not recommendation.resources:
            update["resources"] = ["1 engineer"]
        if not recommendation.timeline_estimate:
            update["timeline_estimate"] = "To be confirmed during planning"

        risks = [
            r if r.mitigation else r.model_copy(update={"mitigation": "Monitor closely with a rehearsed rollback plan"})
            for r in recommendation.risks
        ] or [RiskItem(description="Regression in existing behaviour", level=RiskLevel.LOW,
                       mitigation="Add tests covering the changed paths")]
        update["risks"] = risks

        revised = recommendation.model_copy(update=update)
        logger.info("Recommendation revised",
                    specialist_id=recommendation.specialist_id,
                    revision=revised.revision,
                    improvements=len(assessment.improvements))
        return revised

    def get_quality_metrics(self) -> Dict[str, object]:
        """Summary over the assessment history."""
        assessments = list(self.history)
        if not assessments:
            return {"total_assessments": 0, "avg_overall_score": 0.0, "pass_rate": 0.0,
                    "level_distribution": {}, "recent_trend": "stable"}

        total = len(assessments)
        trend = "stable"
        if total >= 40:
            recent_avg = sum(a.overall_score for a in assessments[-20:]) / 20
            previous_avg = sum(a.overall_score for a in assessments[-40:-20]) / 20
            diff = recent_avg - previous_avg
            if diff > 0.2:
                trend = "improving"
            elif diff < -0.2:
                trend = "declining"

        return {
            "total_assessments": total,
            "avg_overall_score": round(sum(a.overall_score for a in assessments) / total, 3),
            "pass_rate": round(sum(1 for a in assessments if a.passed) / total, 3),
            "level_distribution": dict(Counter(a.level.value for a in assessments)),
            "recent_trend": trend,
        }


__all__ = [
    "Evaluator",
    "SIMILAR_DOMAINS",
    "COMPLETENESS_ELEMENTS",
    "OPTIONAL_EVALUATORS",
    "maintainability_evaluator",
    "testability_evaluator",
    "observability_evaluator",
    "QualityGate",
]
