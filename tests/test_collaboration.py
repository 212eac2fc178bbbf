"""Tests for multi-specialist collaboration reports."""

import pytest

from src.tiered_router.collaboration import CollaborationAnalyzer
from src.tiered_router.models import Recommendation, Tier


def recommendation(specialist_id, priority="medium", hours=4.0, steps=(), expertise=()):
    return Recommendation(specialist_id=specialist_id, domain="security", tier=Tier.TIER_2,
                          priority=priority, estimated_hours=hours,
                          implementation_steps=list(steps), expertise_applied=list(expertise))


@pytest.fixture
def analyzer():
    return CollaborationAnalyzer()


class TestConflicts:
    def test_priority_and_timeline_conflicts(self, analyzer):
        conflicts = analyzer.detect_conflicts([
            recommendation("auth", priority="high", hours=10.0),
            recommendation("data", priority="low", hours=4.0),
        ])
        assert [c["type"] for c in conflicts] == ["priority", "timeline"]
        assert conflicts[1]["values"] == [10.0, 4.0]

    def test_close_estimates_do_not_conflict(self, analyzer):
        assert analyzer.detect_conflicts([recommendation("a", hours=4.0), recommendation("b", hours=8.0)]) == []

    def test_missing_estimate_is_not_a_conflict(self, analyzer):
        assert analyzer.detect_conflicts([recommendation("a", hours=0.0), recommendation("b", hours=8.0)]) == []


class TestSynergies:
    def test_shared_expertise_and_steps(self, analyzer):
        synergies = analyzer.detect_synergies([
            recommendation("auth", steps=["Add audit logging", "Rotate keys"], expertise=["Token security"]),
            recommendation("data", steps=["Add audit logging"], expertise=["Data security governance"]),
        ])
        assert synergies == [
            {"type": "shared-expertise", "specialists": ["auth", "data"], "terms": ["security"]},
            {"type": "shared-step", "specialists": ["auth", "data"], "steps": ["Add audit logging"]},
        ]


class TestReport:
    def test_consolidated_steps_keep_first_occurrence_order(self, analyzer):
        report = analyzer.build_report([
            recommendation("a", steps=["Plan", "Build"]),
            recommendation("b", steps=["Build", "Verify"]),
        ])
        assert report.consolidated_steps == ["Plan", "Build", "Verify"]
        assert len(report.recommendations) == 2
