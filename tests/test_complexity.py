"""Tests for the eight-dimension complexity scorer."""

import random

import pytest

from src.tiered_router.classifier import TierClassifier
from src.tiered_router.complexity import ComplexityScorer, context_count
from src.tiered_router.models import DIMENSIONS, Task

from tests.conftest import MEMORY_LEAK_TASK, ZERO_TRUST_TASK


@pytest.fixture
def scorer():
    return ComplexityScorer()


class TestScoring:
    def test_simple_fix(self, scorer):
        vector = scorer.score(Task(description=MEMORY_LEAK_TASK))
        assert vector.as_dict() == {
            "scope": 1, "technical": 1, "domain": 2, "risk": 3,
            "temporal": 1, "stakeholder": 1, "uncertainty": 1, "dependency": 1,
        }
        assert vector.low_confidence is False

    def test_enterprise_security_architecture(self, scorer):
        vector = scorer.score(Task(description=ZERO_TRUST_TASK))
        assert vector.as_dict() == {
            "scope": 8, "technical": 10, "domain": 9, "risk": 9,
            "temporal": 6, "stakeholder": 9, "uncertainty": 1, "dependency": 3,
        }

    def test_empty_text_returns_floor_with_low_confidence(self, scorer):
        vector = scorer.score(Task(description="   "))
        assert all(value == 1 for value in vector.as_dict().values())
        assert vector.low_confidence is True

    def test_none_description_is_coerced(self, scorer):
        task = Task(description=None)
        assert task.description == ""
        assert scorer.score(task).low_confidence is True

    def test_scores_are_deterministic(self, scorer):
        task = Task(description=ZERO_TRUST_TASK)
        assert scorer.score(task) == scorer.score(task)

    @pytest.mark.parametrize("seed", [3, 19, 77])
    def test_random_tasks_route_identically(self, seed):
        rng = random.Random(seed)
        vocabulary = (ZERO_TRUST_TASK + " " + MEMORY_LEAK_TASK + " api database migration legacy "
                      "gdpr audit production stakeholders unclear research cache latency 3 teams").split()
        for _ in range(50):
            words = [rng.choice(vocabulary) for _ in range(rng.randint(0, 25))]
            requirements = [rng.choice(vocabulary) for _ in range(rng.randint(0, 3))]
            description = " ".join(words)

            decisions = []
            for _ in range(2):
                task = Task(description=description, requirements=list(requirements))
                vector = ComplexityScorer().score(task)
                decisions.append(TierClassifier().classify(vector, task))

            first, second = (d.model_dump(exclude={"decided_at"}) for d in decisions)
            assert first == second, description

    def test_dimensions_are_capped(self, scorer):
        text = ("Design enterprise-wide zero-trust encryption architecture with regulatory compliance, "
                "audit, gdpr, hipaa, pci, production release, migration, legacy compatibility and "
                "security across 12 business units")
        vector = scorer.score(Task(description=text))
        for name in DIMENSIONS:
            assert 1 <= getattr(vector, name) <= 10

    def test_context_raises_stakeholder_and_risk(self, scorer):
        plain = scorer.score(Task(description="Update the billing report"))
        flagged = scorer.score(Task(
            description="Update the billing report",
            context={"stakeholder_count": 9, "urgency": "critical", "production_impact": True},
        ))
        assert flagged.stakeholder == plain.stakeholder + 3
        assert flagged.risk == plain.risk + 4
        assert flagged.temporal == plain.temporal + 2

    def test_requirements_are_scored(self, scorer):
        base = scorer.score(Task(description="Update the login page"))
        with_req = scorer.score(Task(description="Update the login page",
                                     requirements=["Support OAuth authentication"]))
        assert with_req.domain > base.domain

    def test_unclear_requirements_raise_uncertainty(self, scorer):
        vector = scorer.score(Task(description="Investigate slow checkout?",
                                   context={"requirements_clear": False}))
        # exploratory (+3), one question mark (+0.5), unclear requirements (+2)
        assert vector.uncertainty == 7


class TestHelpers:
    def test_duration_by_verb_family(self, scorer):
        assert scorer.estimate_duration_days("fix the bug") == 5
        assert scorer.estimate_duration_days("build a dashboard") == 20
        assert scorer.estimate_duration_days("design the platform") == 60
        assert scorer.estimate_duration_days("something else") == 15

    def test_matched_rules(self, scorer):
        fired = scorer.matched_rules(Task(description=MEMORY_LEAK_TASK))
        assert list(fired) == DIMENSIONS
        assert fired["risk"] == ["defect"]
        assert fired["domain"] == ["performance"]
        assert fired["scope"] == []

    @pytest.mark.parametrize("value,expected", [
        (None, 0), (True, 0), (4, 4), ("7", 7), (["a", "b"], 2), ("many", 0), (-3, 0),
    ])
    def test_context_count(self, value, expected):
        assert context_count({"key": value}, "key") == expected


class TestTaskInput:
    def test_context_is_read_only(self):
        task = Task(description=MEMORY_LEAK_TASK, context={"urgency": "high"})
        with pytest.raises(TypeError):
            task.context["urgency"] = "low"
        assert task.context["urgency"] == "high"

    def test_context_is_detached_from_the_caller(self):
        context = {"stakeholders": ["ops"], "urgency": "high"}
        task = Task(description=MEMORY_LEAK_TASK, context=context)
        context["urgency"] = "low"
        context["stakeholders"].append("finance")
        assert dict(task.context) == {"stakeholders": ["ops"], "urgency": "high"}

    def test_context_serialises_as_dict(self):
        task = Task(description=MEMORY_LEAK_TASK, context={"stakeholder_count": 4})
        assert task.model_dump()["context"] == {"stakeholder_count": 4}
