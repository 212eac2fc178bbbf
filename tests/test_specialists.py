"""Tests for the built-in specialists."""

import pytest

from src.tiered_router.classifier import TierClassifier
from src.tiered_router.complexity import ComplexityScorer
from src.tiered_router.models import (
    ConsultationContext,
    HistoricalInsights,
    PatternInsight,
    Recommendation,
    RiskLevel,
    SimilarConsultation,
    Task,
    Tier,
)
from src.tiered_router.specialists import ARCHITECTS, DOMAIN_SPECIALISTS, GENERALISTS, DirectImplementer
from src.tiered_router.specialists.architects import SecurityArchitect
from src.tiered_router.specialists.generalists import ArchitectureGeneralist, SecurityGeneralist

from tests.conftest import MEMORY_LEAK_TASK, ZERO_TRUST_TASK, make_decision


def routed(description, **task_fields):
    task = Task(description=description, **task_fields)
    decision = TierClassifier().classify(ComplexityScorer().score(task), task)
    return task, ConsultationContext(decision=decision)


class TestCatalogue:
    @pytest.mark.parametrize("group,tier", [
        (GENERALISTS, Tier.TIER_1), (DOMAIN_SPECIALISTS, Tier.TIER_2), (ARCHITECTS, Tier.TIER_3),
    ])
    def test_group_tiers(self, group, tier):
        assert len(group) == 6
        assert all(cls.tier == tier for cls in group)

    def test_criteria_only_target_higher_tiers(self):
        for cls in GENERALISTS + DOMAIN_SPECIALISTS:
            for criterion in cls.handoff_criteria:
                assert criterion.target_tier.rank > cls.tier.rank
                assert criterion.condition in cls.condition_triggers

    def test_architects_end_every_path(self):
        assert all(not cls.handoff_criteria for cls in ARCHITECTS)

    def test_describe(self):
        description = SecurityGeneralist().describe()
        assert description["tier"] == "TIER_1"
        assert len(description["handoff_criteria"]) == 2


class TestDirectImplementer:
    def test_analysis_and_recommendation(self):
        task, context = routed(MEMORY_LEAK_TASK)
        specialist = DirectImplementer()
        analysis = specialist.analyze(task, context)
        assert analysis.task_complexity == 1.5
        assert analysis.domain_relevance == 0.0
        assert [r.level for r in analysis.risks] == [RiskLevel.LOW]

        recommendation = specialist.recommend(analysis, task, context)
        assert recommendation.tier == Tier.DIRECT
        assert recommendation.rationale == f"Problem: {MEMORY_LEAK_TASK}"
        assert recommendation.implementation_steps == ["Implement the change", "Test the change", "Deploy the change"]
        assert recommendation.expertise_applied == ["incremental implementation", "unit testing"]
        assert recommendation.timeline_estimate == "15-60 minutes"
        assert recommendation.confidence == 0.8
        assert recommendation.priority == "low"

    def test_requirements_become_steps(self):
        task, context = routed("Update the export button", requirements=["Keep CSV format"])
        specialist = DirectImplementer()
        recommendation = specialist.recommend(specialist.analyze(task, context), task, context)
        assert recommendation.implementation_steps[-1] == "Satisfy requirement: Keep CSV format"
        assert "Requirement met: Keep CSV format" in recommendation.success_criteria


class TestHandoffCriteria:
    def test_generalist_escalates_integration_beyond_its_limits(self):
        task = Task(description="Split the order monolith into microservices")
        specialist = ArchitectureGeneralist()
        context = ConsultationContext(decision=make_decision(Tier.TIER_1, domain="architecture", score=7.5))
        analysis = specialist.analyze(task, context)
        fired = [c.condition for c in specialist.handoff_criteria
                 if specialist.evaluate_handoff(c, analysis, task)]
        assert fired == ["complex-integration-design"]

    def test_generalist_keeps_work_within_its_limits(self):
        task = Task(description="Split the order monolith into microservices")
        specialist = ArchitectureGeneralist()
        context = ConsultationContext(decision=make_decision(Tier.TIER_1, domain="architecture", score=5.0))
        analysis = specialist.analyze(task, context)
        # Score 5 keeps the risk dimension at MEDIUM and within max_complexity_handled
        assert not any(specialist.evaluate_handoff(c, analysis, task) for c in specialist.handoff_criteria)

    def test_high_risk_triggers_handoff_within_limits(self):
        task = Task(description="Add audit logging for GDPR compliance")
        specialist = SecurityGeneralist()
        decision = make_decision(Tier.TIER_1, score=5.0)
        decision = decision.model_copy(update={"vector": decision.vector.model_copy(update={"risk": 9})})
        analysis = specialist.analyze(task, ConsultationContext(decision=decision))
        assert analysis.highest_risk == RiskLevel.HIGH
        compliance = specialist.handoff_criteria[1]
        assert specialist.evaluate_handoff(compliance, analysis, task)


class TestSecurityArchitect:
    def test_enterprise_security_recommendation(self):
        task, context = routed(ZERO_TRUST_TASK)
        specialist = SecurityArchitect()
        analysis = specialist.analyze(task, context)
        assert analysis.highest_risk == RiskLevel.HIGH
        assert all(r.mitigation for r in analysis.risks)
        assert analysis.findings == ["Work spans 2 domains: architecture, security"]

        recommendation = specialist.recommend(analysis, task, context)
        assert recommendation.priority == "high"
        assert recommendation.timeline_estimate == "1-5 days"
        assert len(recommendation.implementation_steps) == 5


class TestHistoricalFindings:
    def test_history_is_reported_in_findings(self):
        decision = make_decision(Tier.TIER_1)
        prior = Recommendation(specialist_id="direct-implementation", domain="general", tier=Tier.DIRECT,
                               primary_recommendation="Patch the handler")
        insights = HistoricalInsights(
            similar_consultations=[SimilarConsultation(fingerprint="fp-old", specialist_id="security-generalist",
                                                       similarity=0.82, quality_score=0.9, outcome="completed")],
            relevant_patterns=[PatternInsight(domain="security", tier=Tier.TIER_1, signature=["auth"],
                                              frequency=4, success_rate=0.75, relevance=0.8)],
        )
        context = ConsultationContext(decision=decision, prior_recommendations=[prior], insights=insights)
        analysis = SecurityGeneralist().analyze(Task(description="Harden login"), context)

        assert analysis.findings == [
            "DIRECT direct-implementation recommended: Patch the handler",
            "Similar consultation by security-generalist (similarity 0.82) ended completed at quality 0.90",
            "Recurring security pattern at TIER_1 (auth) seen 4 times, success rate 75%",
        ]

    def test_no_history_adds_nothing(self):
        context = ConsultationContext(decision=make_decision(Tier.TIER_1))
        analysis = SecurityGeneralist().analyze(Task(description="Harden login"), context)
        assert analysis.findings == []
