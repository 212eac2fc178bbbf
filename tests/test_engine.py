"""End-to-end tests for routing, consultation, escalation and caching."""

import asyncio

import pytest

from src.tiered_router import create_engine
from src.tiered_router.engine import TieredRoutingEngine
from src.tiered_router.errors import (
    ConsultationCancelled,
    EscalationLimitExceeded,
    InvalidEscalation,
    NoSpecialistAvailable,
)
from src.tiered_router.models import (
    ArchitectEscalationPackage,
    ConsultationContext,
    ExecutionStatus,
    QualityLevel,
    Task,
    Tier,
)
from src.tiered_router.quality import QualityGate
from src.tiered_router.registry import RegistrySealedError
from src.tiered_router.store import ContextStore

from tests.conftest import (
    MEMORY_LEAK_TASK,
    ZERO_TRUST_TASK,
    StubSpecialist,
    criterion,
    escalation_chain,
    make_decision,
    registry_with,
)


TASK = Task(description="Harden the session token handling")


class StepsDroppedSpecialist(StubSpecialist):
    """Escalates with a recommendation that has no implementation steps."""

    def recommend(self, analysis, task, context):
        recommendation = super().recommend(analysis, task, context)
        return recommendation.model_copy(update={"implementation_steps": []})


class ContextRecordingSpecialist(StubSpecialist):
    """Keeps every consultation context it is handed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.contexts = []

    def analyze(self, task, context):
        self.contexts.append(context)
        return super().analyze(task, context)


def engine_for(clock, *specialists, **kwargs):
    return TieredRoutingEngine(registry=registry_with(*specialists), store=ContextStore(clock=clock),
                               clock=clock, **kwargs)


@pytest.fixture
def engine(clock):
    return create_engine(clock=clock)


class TestRouting:
    def test_route_has_no_side_effects(self, engine, clock):
        decision = engine.route(Task(description=MEMORY_LEAK_TASK))
        assert decision.tier == Tier.DIRECT
        assert decision.decided_at == clock.now()
        assert engine.store.get_stats()["cache"]["size"] == 0
        assert engine.store.get_stats()["outcomes_logged"] == 0
        assert not engine.registry.sealed


class TestDefaultSpecialists:
    @pytest.mark.asyncio
    async def test_direct_task(self, engine):
        task = Task(description=MEMORY_LEAK_TASK)
        result = await engine.execute(engine.route(task), task)
        assert result.status == ExecutionStatus.COMPLETED
        assert result.from_cache is False
        assert result.final_tier == Tier.DIRECT
        assert [hop.specialist_id for hop in result.escalation_trail] == ["direct-implementation"]
        assert result.quality_assessment.overall_score == pytest.approx(0.955)
        assert result.quality_assessment.level == QualityLevel.EXCELLENT

    @pytest.mark.asyncio
    async def test_cached_result_is_reused(self, engine):
        task = Task(description=MEMORY_LEAK_TASK)
        decision = engine.route(task)
        first = await engine.execute(decision, task)
        second = await engine.execute(decision, task)
        assert second.from_cache is True
        assert second.recommendation == first.recommendation
        assert engine.store.get_stats()["outcomes_logged"] == 1

    @pytest.mark.asyncio
    async def test_each_execute_counts_one_cache_lookup(self, engine):
        task = Task(description=MEMORY_LEAK_TASK)
        decision = engine.route(task)
        await engine.execute(decision, task)
        await engine.execute(decision, task)
        cache = engine.get_stats()["store"]["cache"]
        assert (cache["hits"], cache["misses"]) == (1, 1)
        assert cache["hit_rate"] == 0.5

    @pytest.mark.asyncio
    async def test_enterprise_task_goes_to_security_architect(self, engine):
        task = Task(description=ZERO_TRUST_TASK)
        decision = engine.route(task)
        result = await engine.execute(decision, task)
        assert decision.tier == Tier.TIER_3
        assert result.status == ExecutionStatus.COMPLETED
        assert [hop.specialist_id for hop in result.escalation_trail] == ["security-architect"]
        assert result.quality_assessment.passed

    @pytest.mark.asyncio
    async def test_registry_is_sealed_after_first_execute(self, engine):
        task = Task(description=MEMORY_LEAK_TASK)
        await engine.execute(engine.route(task), task)
        with pytest.raises(RegistrySealedError):
            engine.registry.register(StubSpecialist("late", Tier.TIER_1))


class TestEscalation:
    @pytest.mark.asyncio
    async def test_escalates_through_every_tier(self, clock):
        engine = engine_for(clock, *escalation_chain())
        result = await engine.execute(make_decision(Tier.TIER_1), TASK)

        trail = result.escalation_trail
        assert [hop.specialist_id for hop in trail] == ["stub-t1", "stub-t2", "stub-t3"]
        assert [hop.tier.rank for hop in trail] == [1, 2, 3]
        assert [hop.escalated_to for hop in trail] == [Tier.TIER_2, Tier.TIER_3, None]
        assert isinstance(trail[1].handoff, ArchitectEscalationPackage)
        assert trail[0].handoff.continuity.completed_work == ["stub-t1 consultation at TIER_1"]
        assert result.final_tier == Tier.TIER_3
        assert result.recommendation.specialist_id == "stub-t3"

        record = engine.store.outcomes()[0]
        assert record.initial_tier == Tier.TIER_1
        assert record.escalation_count == 2

    @pytest.mark.asyncio
    async def test_hop_limit(self, clock):
        engine = engine_for(clock, *escalation_chain(), max_hops=1)
        with pytest.raises(EscalationLimitExceeded):
            await engine.execute(make_decision(Tier.TIER_1), TASK)
        assert engine.store.get_stats()["cache"]["size"] == 0
        assert engine.store.get_stats()["outcomes_logged"] == 0

    @pytest.mark.asyncio
    async def test_escalation_must_go_up(self, clock):
        sideways = StubSpecialist("stub-t2", Tier.TIER_2, criteria=[criterion("back", Tier.TIER_1, "stub-t1")],
                                  fire={"back"})
        engine = engine_for(clock, StubSpecialist("stub-t1", Tier.TIER_1), sideways)
        with pytest.raises(InvalidEscalation):
            await engine.execute(make_decision(Tier.TIER_2), TASK)

    @pytest.mark.asyncio
    async def test_invalid_handoff_is_recoverable(self, clock):
        source = StepsDroppedSpecialist("stub-t1", Tier.TIER_1, criteria=[criterion("deep", Tier.TIER_2, "stub-t2")],
                                        fire={"deep"})
        engine = engine_for(clock, source, StubSpecialist("stub-t2", Tier.TIER_2))
        result = await engine.execute(make_decision(Tier.TIER_1), TASK)

        assert result.status == ExecutionStatus.RECOVERABLE_ERROR
        issue = result.issues[0]
        assert issue.error_type == "InvalidHandoffPackage"
        assert issue.recoverable
        assert "Source consultation complete" in issue.details["failed_checks"]
        assert engine.store.get_stats()["cache"]["size"] == 0
        assert engine.store.get_stats()["outcomes_logged"] == 0

    @pytest.mark.asyncio
    async def test_missing_tier(self, clock):
        engine = engine_for(clock, StubSpecialist("stub-t1", Tier.TIER_1))
        with pytest.raises(NoSpecialistAvailable) as exc_info:
            await engine.execute(make_decision(Tier.TIER_2), TASK)
        assert exc_info.value.fingerprint == "fp-test"
        assert exc_info.value.tier == Tier.TIER_2

    @pytest.mark.asyncio
    async def test_missing_escalation_target_carries_fingerprint(self, clock):
        source = StubSpecialist("stub-t1", Tier.TIER_1, criteria=[criterion("deep", Tier.TIER_2, "stub-t2")],
                                fire={"deep"})
        engine = engine_for(clock, source)
        with pytest.raises(NoSpecialistAvailable) as exc_info:
            await engine.execute(make_decision(Tier.TIER_1, fingerprint="fp-escalating"), TASK)
        assert exc_info.value.fingerprint == "fp-escalating"
        assert exc_info.value.tier == Tier.TIER_2
        assert exc_info.value.to_issue().fingerprint == "fp-escalating"

    @pytest.mark.asyncio
    async def test_escalated_specialist_sees_prior_recommendations(self, clock):
        first = StubSpecialist("stub-t1", Tier.TIER_1, criteria=[criterion("deep", Tier.TIER_2, "stub-t2")],
                               fire={"deep"})
        second = ContextRecordingSpecialist("stub-t2", Tier.TIER_2)
        engine = engine_for(clock, first, second)
        await engine.execute(make_decision(Tier.TIER_1), TASK)

        context = second.contexts[0]
        assert [r.specialist_id for r in context.prior_recommendations] == ["stub-t1"]
        assert context.handoff.source_specialist == "stub-t1"


class TestDeadlines:
    @pytest.mark.asyncio
    async def test_timeout_is_recoverable_and_writes_nothing(self, clock):
        slow = StubSpecialist("slow", Tier.TIER_2, delay=0.3)
        engine = engine_for(clock, slow, timeout_seconds=0.05)
        result = await engine.execute(make_decision(Tier.TIER_2), TASK)

        assert result.status == ExecutionStatus.RECOVERABLE_ERROR
        assert result.issues[0].error_type == "ConsultationTimeout"
        assert result.issues[0].escalation_eligible
        assert result.final_tier == Tier.TIER_2
        assert engine.store.get_stats()["cache"]["size"] == 0
        assert engine.store.get_stats()["outcomes_logged"] == 0

    @pytest.mark.asyncio
    async def test_cancelled_pipeline_writes_nothing(self, clock):
        stub = StubSpecialist("stub-t1", Tier.TIER_1)
        engine = engine_for(clock, stub)
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(ConsultationCancelled):
            await engine.execute(make_decision(Tier.TIER_1), TASK, cancel_event=cancel)
        assert stub.analyze_calls == 1
        assert stub.recommend_calls == 0
        stats = engine.store.get_stats()
        assert stats["cache"]["size"] == 0
        assert stats["cache"]["in_flight"] == 0
        assert stats["outcomes_logged"] == 0


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_executions_consult_once(self, clock):
        stub = StubSpecialist("stub-t2", Tier.TIER_2, delay=0.05)
        engine = engine_for(clock, stub)
        decision = make_decision(Tier.TIER_2)
        results = await asyncio.gather(engine.execute(decision, TASK), engine.execute(decision, TASK))
        assert stub.analyze_calls == 1
        assert sorted(r.from_cache for r in results) == [False, True]
        assert all(r.status == ExecutionStatus.COMPLETED for r in results)


class TestHistoricalInsights:
    @pytest.mark.asyncio
    async def test_first_consultation_has_no_history(self, clock):
        stub = ContextRecordingSpecialist("stub-t1", Tier.TIER_1)
        engine = engine_for(clock, stub)
        await engine.execute(make_decision(Tier.TIER_1, fingerprint="fp-a"), TASK)
        assert stub.contexts[0].insights.empty

    @pytest.mark.asyncio
    async def test_similar_consultations_and_patterns_reach_the_specialist(self, clock):
        stub = ContextRecordingSpecialist("stub-t1", Tier.TIER_1)
        engine = engine_for(clock, stub)
        await engine.execute(make_decision(Tier.TIER_1, fingerprint="fp-a"), TASK)
        await engine.execute(make_decision(Tier.TIER_1, fingerprint="fp-b"), TASK)

        insights = stub.contexts[1].insights
        similar = insights.similar_consultations
        assert [s.fingerprint for s in similar] == ["fp-a"]
        assert similar[0].specialist_id == "stub-t1"
        assert similar[0].similarity == 1.0
        assert similar[0].outcome == "completed"

        pattern = insights.relevant_patterns[0]
        assert (pattern.domain, pattern.tier, pattern.frequency) == ("security", Tier.TIER_1, 1)
        assert pattern.success_rate == 1.0

    @pytest.mark.asyncio
    async def test_default_specialist_reports_history_in_findings(self, engine):
        task = Task(description=MEMORY_LEAK_TASK)
        decision = engine.route(task)
        await engine.execute(decision, task)

        later = decision.model_copy(update={"fingerprint": "fp-later"})
        insights = engine.store.historical_insights(task, later)
        specialist = engine.registry.find(later.domain, later.tier)
        analysis = specialist.analyze(task, ConsultationContext(decision=later, insights=insights))
        assert any(f.startswith("Similar consultation by direct-implementation") for f in analysis.findings)
        assert any(f.startswith("Recurring performance pattern at DIRECT") for f in analysis.findings)


class TestQuality:
    @pytest.mark.asyncio
    async def test_weak_recommendation_is_revised_once(self, clock):
        engine = engine_for(clock, StubSpecialist("sparse", Tier.TIER_1, sparse=True))
        result = await engine.execute(make_decision(Tier.TIER_1), Task(description="Harden login"))
        assert result.status == ExecutionStatus.COMPLETED
        assert result.recommendation.revision == 1
        assert result.quality_assessment.revision == 1
        assert result.quality_assessment.overall_score == pytest.approx(0.8825)

    @pytest.mark.asyncio
    async def test_degraded_result_is_not_cached(self, clock):
        engine = engine_for(clock, StubSpecialist("sparse", Tier.TIER_1, sparse=True),
                            quality_gate=QualityGate(acceptable_threshold=0.95, excellent_threshold=0.99))
        result = await engine.execute(make_decision(Tier.TIER_1), Task(description="Harden login"))
        assert result.status == ExecutionStatus.DEGRADED
        assert result.recommendation is not None
        assert result.issues[0].error_type == "QualityGateFailed"
        assert result.issues[0].details["improvements"]
        assert engine.store.get_stats()["cache"]["size"] == 0
        assert engine.store.get_stats()["outcomes_logged"] == 1


class TestLearningLoop:
    @pytest.mark.asyncio
    async def test_proposal_waits_for_explicit_apply(self, clock, monkeypatch):
        monkeypatch.setenv("LEARNING_MIN_OUTCOMES", "10")
        engine = engine_for(clock, *escalation_chain())
        for index in range(10):
            await engine.execute(make_decision(Tier.TIER_1, fingerprint=f"fp-{index}"), TASK)

        proposals = engine.pending_proposals()
        assert len(proposals) == 1
        assert proposals[0].boundaries == [3.5, 6.25, 8.5]
        assert engine.classifier.boundaries == [3.5, 6.5, 8.5]

        engine.apply_proposal(proposals[0].proposal_id)
        assert engine.classifier.boundaries == [3.5, 6.25, 8.5]
        assert engine.pending_proposals() == []


class TestCollaboration:
    @pytest.mark.asyncio
    async def test_collaborate_across_domains(self, engine):
        task = Task(description="Add SSO login with audit logging of sensitive data access")
        report = await engine.collaborate(task, make_decision(Tier.TIER_1), ["security", "data", "security"])
        assert [r.specialist_id for r in report.recommendations] == ["security-generalist", "data-generalist"]
        assert report.consolidated_steps
        assert engine.registry.sealed


class TestObservability:
    @pytest.mark.asyncio
    async def test_stats_and_health(self, engine):
        task = Task(description=MEMORY_LEAK_TASK)
        await engine.execute(engine.route(task), task)
        stats = engine.get_stats()
        assert set(stats) == {"store", "quality", "classifier", "registry"}
        assert stats["store"]["routing_distribution"]["DIRECT"] == 1
        assert stats["quality"]["total_assessments"] == 1

        health = await engine.get_health_status()
        assert health["registry"] == {"sealed": True, "specialists": 19}
        assert health["cache"]["size"] == 1
