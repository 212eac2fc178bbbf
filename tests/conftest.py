"""
Shared fixtures for the tiered router test suite.

Provides a manual clock, fresh configuration per test, stub specialists with
call counters and helpers to build routing decisions without scoring.
"""

import time
from typing import Iterable, List, Optional

import pytest

from src.tiered_router.models import (
    Analysis,
    ComplexityVector,
    ConsultationContext,
    HandoffCriterion,
    Recommendation,
    RiskItem,
    RiskLevel,
    RoutingDecision,
    Task,
    Tier,
)
from src.tiered_router.quality import QualityGate
from src.tiered_router.registry import SpecialistRegistry
from src.tiered_router.specialists import Specialist
from src.tiered_router.store import ContextStore
from src.tiered_router.utils import ManualClock, reset_config


CONFIG_KEYS = [
    "LOG_LEVEL", "TIER_DIRECT_MAX", "TIER_1_MAX", "TIER_2_MAX", "CONSULTATION_TIMEOUT_SECONDS",
    "MAX_ESCALATION_HOPS", "CACHE_MAX_SIZE", "CACHE_TTL_DAYS_HIGH", "CACHE_TTL_DAYS_NORMAL",
    "CACHE_TTL_DAYS_LOW", "QUALITY_ACCEPTABLE_THRESHOLD", "QUALITY_EXCELLENT_THRESHOLD",
    "LEARNING_MIN_OUTCOMES", "ANALYTICS_LOG_SIZE", "SIMILARITY_THRESHOLD", "PATTERN_LIBRARY_SIZE",
    "PROPOSAL_HISTORY_SIZE",
]

MEMORY_LEAK_TASK = "Fix memory leak in session cleanup"
ZERO_TRUST_TASK = ("Design enterprise-wide zero-trust security architecture across 5 business units "
                   "with regulatory compliance")


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Every test starts from default settings."""
    for key in CONFIG_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store(clock):
    return ContextStore(clock=clock)


class StubSpecialist(Specialist):
    """Specialist with configurable behaviour and call counters."""

    def __init__(self, specialist_id: str, tier: Tier, domain: str = "security",
                 criteria: Iterable[HandoffCriterion] = (), fire: Iterable[str] = (),
                 delay: float = 0.0, sparse: bool = False, max_complexity: int = 10):
        self.id = specialist_id
        self.name = specialist_id.replace("-", " ").title()
        self.tier = tier
        self.domain = domain
        self.max_complexity_handled = max_complexity
        self.expertise = ("threat modeling", "access control")
        self.handoff_criteria = tuple(criteria)
        self.fire = set(fire)
        self.delay = delay
        self.sparse = sparse
        self.analyze_calls = 0
        self.recommend_calls = 0

    def analyze(self, task: Task, context: ConsultationContext) -> Analysis:
        self.analyze_calls += 1
        if self.delay:
            time.sleep(self.delay)
        return Analysis(
            specialist_id=self.id,
            task_complexity=context.decision.numeric_score,
            domain_relevance=0.5,
            matched_expertise=list(self.expertise),
            constraints=list(task.constraints),
            risks=[RiskItem(description="Regression", level=RiskLevel.LOW, mitigation="Add tests")],
            findings=[f"{self.id} reviewed the task"],
        )

    def recommend(self, analysis: Analysis, task: Task, context: ConsultationContext) -> Recommendation:
        self.recommend_calls += 1
        if self.sparse:
            return Recommendation(specialist_id=self.id, domain=self.domain, tier=self.tier,
                                  primary_recommendation="Do it")
        return Recommendation(
            specialist_id=self.id,
            domain=self.domain,
            tier=self.tier,
            primary_recommendation=f"{self.id} approach",
            rationale=f"Problem: {task.description}",
            implementation_steps=["Plan", "Build", "Verify"],
            resources=["1 engineer"],
            success_criteria=["Works"],
            risks=list(analysis.risks),
            expertise_applied=list(self.expertise),
            timeline_estimate="1 day",
            timeline_confidence=0.8,
            confidence=0.8,
        )

    def evaluate_handoff(self, criterion: HandoffCriterion, analysis: Analysis, task: Task) -> bool:
        return criterion.condition in self.fire


def criterion(condition: str, tier: Tier, target: str) -> HandoffCriterion:
    return HandoffCriterion(condition=condition, target_tier=tier, target_specialist=target,
                            reason=f"{condition} needs {target}")


def make_decision(tier: Tier, domain: str = "security", score: Optional[float] = None,
                  fingerprint: str = "fp-test") -> RoutingDecision:
    default_scores = {Tier.DIRECT: 2.0, Tier.TIER_1: 5.0, Tier.TIER_2: 7.5, Tier.TIER_3: 9.0}
    return RoutingDecision(
        tier=tier,
        numeric_score=score if score is not None else default_scores[tier],
        confidence=0.8,
        reasoning=["stub decision"],
        domain=domain,
        fingerprint=fingerprint,
        vector=ComplexityVector(scope=5, technical=5, domain=5, risk=5, temporal=5,
                                stakeholder=5, uncertainty=5, dependency=5),
        protocol="consultation",
        estimated_time="1-4 hours",
    )


def escalation_chain(delay: float = 0.0) -> List[StubSpecialist]:
    """TIER_1 -> TIER_2 -> TIER_3 stubs that always escalate."""
    t1 = StubSpecialist("stub-t1", Tier.TIER_1, criteria=[criterion("deep", Tier.TIER_2, "stub-t2")], fire={"deep"})
    t2 = StubSpecialist("stub-t2", Tier.TIER_2, criteria=[criterion("wide", Tier.TIER_3, "stub-t3")], fire={"wide"},
                        delay=delay)
    t3 = StubSpecialist("stub-t3", Tier.TIER_3)
    return [t1, t2, t3]


def registry_with(*specialists: Specialist) -> SpecialistRegistry:
    registry = SpecialistRegistry()
    for specialist in specialists:
        registry.register(specialist, tier_default=True)
    return registry


@pytest.fixture
def quality_gate():
    return QualityGate()
