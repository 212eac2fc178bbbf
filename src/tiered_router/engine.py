"""
Consultation engine and the public routing facade.

This module provides the complete pipeline:
1. Complexity scoring and tier classification (route)
2. Cache lookup with single-flight per fingerprint
3. Specialist consultation with the handoff loop to strictly higher tiers
4. Quality gate with one revision
5. Cache write, outcome logging and threshold proposals

Specialist steps at TIER_2 and TIER_3 run in worker threads under a
mandatory per-step timeout. A caller-supplied asyncio.Event is checked after
every specialist step; an abandoned pipeline never writes to the cache or the
outcome log.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from src.tiered_router.classifier import TierClassifier
from src.tiered_router.collaboration import CollaborationAnalyzer
from src.tiered_router.complexity import ComplexityScorer
from src.tiered_router.errors import (
    ConsultationCancelled,
    ConsultationTimeout,
    EscalationLimitExceeded,
    InvalidEscalation,
    InvalidHandoffPackage,
    QualityGateFailed,
    RoutingError,
)
from src.tiered_router.handoff import EscalationState, HandoffProtocol
from src.tiered_router.models import (
    CollaborationReport,
    ConsultationCacheEntry,
    ConsultationContext,
    ConsultationOutcome,
    EscalationHop,
    ExecutionResult,
    ExecutionStatus,
    HandoffCriterion,
    HandoffPackage,
    HistoricalInsights,
    Recommendation,
    RoutingDecision,
    Task,
    ThresholdProposal,
    Tier,
)
from src.tiered_router.quality import QualityGate
from src.tiered_router.registry import SpecialistRegistry, build_default_registry
from src.tiered_router.specialists import Specialist
from src.tiered_router.store import ContextStore
from src.tiered_router.utils import Clock, SystemClock, Timer, get_config, sanitize_for_logging


TIMED_TIERS = (Tier.TIER_2, Tier.TIER_3)


class ConsultationEngine:
    """Runs a task through its specialist, escalating along handoff criteria."""

    def __init__(self, registry: SpecialistRegistry, quality_gate: Optional[QualityGate] = None,
                 handoff: Optional[HandoffProtocol] = None, timeout_seconds: Optional[float] = None,
                 max_hops: Optional[int] = None):
        """
        Initialize the consultation engine.

        Args:
            registry: Specialist registry to resolve specialists from
            quality_gate: Gate used to assess recommendations
            handoff: Handoff protocol for escalations
            timeout_seconds: Per-step deadline at TIER_2 and TIER_3
            max_hops: Maximum escalation hops per task
        """
        self.config = get_config()
        self.registry = registry
        self.quality_gate = quality_gate or QualityGate()
        self.handoff = handoff or HandoffProtocol()
        self.timeout_seconds = timeout_seconds or self.config.get('CONSULTATION_TIMEOUT_SECONDS', 30.0)
        self.max_hops = max_hops if max_hops is not None else self.config.get('MAX_ESCALATION_HOPS', 3)
        self.collaboration = CollaborationAnalyzer()

    async def run_step(self, specialist: Specialist, step: str, func: Callable[..., Any], *args,
                       fingerprint: Optional[str] = None,
                       cancel_event: Optional[asyncio.Event] = None) -> Any:
        """
        Run one specialist step.

        TIER_2 and TIER_3 steps run in a worker thread under the step deadline.
        If the awaiting task is cancelled, the running step is allowed to
        finish before the cancellation propagates.

        Raises:
            ConsultationTimeout: If the step exceeds its deadline
            ConsultationCancelled: If the cancel event is set once the step finishes
        """
        if specialist.tier in TIMED_TIERS:
            inner = asyncio.ensure_future(asyncio.to_thread(func, *args))
            try:
                result = await asyncio.wait_for(asyncio.shield(inner), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("Specialist step timed out",
                               specialist_id=specialist.id,
                               step=step,
                               timeout_seconds=self.timeout_seconds,
                               fingerprint=fingerprint)
                raise ConsultationTimeout(
                    f"{specialist.id} {step} exceeded {self.timeout_seconds}s",
                    fingerprint=fingerprint,
                    tier=specialist.tier,
                    details={"specialist_id": specialist.id, "step": step}
                )
            except asyncio.CancelledError:
                await asyncio.wait([inner])
                raise
        else:
            result = func(*args)

        if cancel_event is not None and cancel_event.is_set():
            logger.info("Consultation cancelled", specialist_id=specialist.id, step=step, fingerprint=fingerprint)
            raise ConsultationCancelled(
                f"Cancelled after {specialist.id} {step}",
                fingerprint=fingerprint,
                tier=specialist.tier
            )
        return result

    def first_handoff(self, specialist: Specialist, analysis, task: Task) -> Optional[HandoffCriterion]:
        for criterion in specialist.handoff_criteria:
            if specialist.evaluate_handoff(criterion, analysis, task):
                return criterion
        return None

    def resolve_target(self, criterion: HandoffCriterion, decision: RoutingDecision) -> Specialist:
        target = self.registry.get(criterion.target_specialist)
        if target is None or target.tier != criterion.target_tier:
            target = self.registry.find(decision.domain, criterion.target_tier, fingerprint=decision.fingerprint)
        return target

    async def consult(self, task: Task, decision: RoutingDecision,
                      cancel_event: Optional[asyncio.Event] = None,
                      insights: Optional[HistoricalInsights] = None) -> ConsultationOutcome:
        """
        Consult the specialist for a decision, following handoffs upward.

        Args:
            task: Task being executed
            decision: Its routing decision
            cancel_event: Optional event that abandons the pipeline when set
            insights: Similar consultations and patterns shown to every specialist

        Returns:
            ConsultationOutcome with the final recommendation, its assessment and the trail

        Raises:
            NoSpecialistAvailable: If a tier has no suitable specialist
            InvalidEscalation: If a criterion targets a tier that is not strictly higher
            EscalationLimitExceeded: If the task escalates more than max_hops times
            InvalidHandoffPackage: If a handoff package fails validation
            ConsultationTimeout: If a TIER_2/TIER_3 step exceeds its deadline
            ConsultationCancelled: If the cancel event was set
        """
        fingerprint = decision.fingerprint
        specialist = self.registry.find(decision.domain, decision.tier, fingerprint=fingerprint)
        if insights is None:
            insights = HistoricalInsights()
        trail: List[EscalationHop] = []
        handoff: Optional[HandoffPackage] = None
        gaps: List[str] = []
        prior: List[Recommendation] = []

        while True:
            context = ConsultationContext(decision=decision, handoff=handoff,
                                          prior_recommendations=list(prior), insights=insights)
            analysis = await self.run_step(specialist, "analyze", specialist.analyze, task, context,
                                           fingerprint=fingerprint, cancel_event=cancel_event)
            recommendation = await self.run_step(specialist, "recommend", specialist.recommend,
                                                 analysis, task, context,
                                                 fingerprint=fingerprint, cancel_event=cancel_event)
            hop = EscalationHop(tier=specialist.tier, specialist_id=specialist.id, continuity_gaps=gaps)

            criterion = self.first_handoff(specialist, analysis, task)
            if criterion is None:
                trail.append(hop)
                break

            if criterion.target_tier.rank <= specialist.tier.rank:
                raise InvalidEscalation(
                    f"{specialist.id} cannot escalate from {specialist.tier.value} to {criterion.target_tier.value}",
                    fingerprint=fingerprint,
                    tier=specialist.tier,
                    details={"criterion": criterion.condition}
                )

            escalations = len(trail)
            if escalations >= self.max_hops:
                logger.error("Escalation limit exceeded",
                             fingerprint=fingerprint,
                             max_hops=self.max_hops,
                             trail=[h.specialist_id for h in trail] + [specialist.id])
                raise EscalationLimitExceeded(
                    f"More than {self.max_hops} escalation hops",
                    fingerprint=fingerprint,
                    tier=specialist.tier
                )

            target = self.resolve_target(criterion, decision)
            state = EscalationState(
                task=task, decision=decision, source=specialist, analysis=analysis,
                recommendation=recommendation, criterion=criterion, target=target, trail=trail,
            )
            package = self.handoff.build_handoff(state)
            validation = self.handoff.validate(package)
            if not validation.valid:
                raise InvalidHandoffPackage(
                    f"Handoff from {specialist.id} to {target.id} failed validation",
                    missing_fields=validation.missing_fields,
                    failed_checks=validation.failed_checks,
                    fingerprint=fingerprint,
                    tier=specialist.tier
                )

            trail.append(hop.model_copy(update={
                "escalated_to": criterion.target_tier,
                "target_specialist": target.id,
                "reason": criterion.reason,
                "handoff": package,
            }))
            logger.info("Task escalated",
                        fingerprint=fingerprint,
                        from_specialist=specialist.id,
                        to_specialist=target.id,
                        from_tier=specialist.tier.value,
                        to_tier=target.tier.value,
                        condition=criterion.condition)

            handoff = package
            gaps = validation.continuity_gaps
            prior.append(recommendation)
            specialist = target

        assessment = self.quality_gate.assess(recommendation, task, specialist, decision)
        if not assessment.passed:
            recommendation = self.quality_gate.revise(recommendation, assessment, task)
            assessment = self.quality_gate.assess(recommendation, task, specialist, decision, revision=1)

        return ConsultationOutcome(
            recommendation=recommendation,
            quality_assessment=assessment,
            escalations=trail,
            final_tier=specialist.tier,
            specialist_id=specialist.id,
        )

    async def collaborate(self, task: Task, decision: RoutingDecision, domains: List[str],
                          cancel_event: Optional[asyncio.Event] = None) -> CollaborationReport:
        """
        Consult one specialist per domain at the decision's tier and compare the results.

        Args:
            task: Task being executed
            decision: Its routing decision
            domains: Domains to consult
            cancel_event: Optional cancellation event

        Returns:
            CollaborationReport
        """
        specialists: Dict[str, Specialist] = {}
        for domain in domains:
            specialist = self.registry.find(domain, decision.tier, fingerprint=decision.fingerprint)
            specialists.setdefault(specialist.id, specialist)

        recommendations = []
        for specialist in specialists.values():
            context = ConsultationContext(decision=decision)
            analysis = await self.run_step(specialist, "analyze", specialist.analyze, task, context,
                                           fingerprint=decision.fingerprint, cancel_event=cancel_event)
            recommendations.append(await self.run_step(
                specialist, "recommend", specialist.recommend, analysis, task, context,
                fingerprint=decision.fingerprint, cancel_event=cancel_event))

        return self.collaboration.build_report(recommendations)


class TieredRoutingEngine:
    """Public facade: route tasks and execute routing decisions."""

    def __init__(self, registry: Optional[SpecialistRegistry] = None, store: Optional[ContextStore] = None,
                 quality_gate: Optional[QualityGate] = None, clock: Optional[Clock] = None,
                 scorer: Optional[ComplexityScorer] = None, classifier: Optional[TierClassifier] = None,
                 timeout_seconds: Optional[float] = None, max_hops: Optional[int] = None):
        self.config = get_config()
        self.clock = clock or SystemClock()
        self.registry = registry or build_default_registry()
        self.store = store or ContextStore(clock=self.clock)
        self.quality_gate = quality_gate or QualityGate()
        self.scorer = scorer or ComplexityScorer()
        self.classifier = classifier or TierClassifier()
        self.consultation = ConsultationEngine(
            self.registry,
            quality_gate=self.quality_gate,
            timeout_seconds=timeout_seconds,
            max_hops=max_hops,
        )

        logger.info("TieredRoutingEngine initialized",
                    specialists=len(self.registry),
                    timeout_seconds=self.consultation.timeout_seconds,
                    max_hops=self.consultation.max_hops)

    def route(self, task: Task) -> RoutingDecision:
        """
        Score and classify a task. No side effects.

        Args:
            task: Task to route

        Returns:
            RoutingDecision
        """
        with Timer("task_routing"):
            try:
                vector = self.scorer.score(task)
                decision = self.classifier.classify(vector, task)
                return decision.model_copy(update={"decided_at": self.clock.now()})
            except Exception as e:
                logger.error("Task routing failed",
                             error=str(e),
                             task_preview=sanitize_for_logging(task.description, 50))
                raise

    def _cached_result(self, entry: ConsultationCacheEntry, started: float) -> ExecutionResult:
        return ExecutionResult(
            status=ExecutionStatus.COMPLETED,
            fingerprint=entry.cache_key,
            recommendation=entry.recommendation,
            quality_assessment=entry.quality_assessment,
            from_cache=True,
            escalation_trail=entry.escalation_trail,
            final_tier=entry.tier,
            duration_ms=(time.time() - started) * 1000,
        )

    async def execute(self, decision: RoutingDecision, task: Task,
                      cancel_event: Optional[asyncio.Event] = None) -> ExecutionResult:
        """
        Execute a routing decision.

        Args:
            decision: Decision produced by route()
            task: The routed task
            cancel_event: Optional event; setting it abandons the pipeline after the running step

        Returns:
            ExecutionResult; recoverable errors are reported in issues

        Raises:
            RoutingError: For fatal errors (no specialist, invalid escalation,
                escalation limit, cancellation)
        """
        self.registry.seal()
        started = time.time()
        fingerprint = decision.fingerprint

        logger.info("Starting task execution",
                    task_id=task.task_id,
                    fingerprint=fingerprint,
                    tier=decision.tier.value,
                    task_preview=sanitize_for_logging(task.description, 100))

        entry = self.store.cache_get(fingerprint)
        if entry is not None:
            logger.info("Serving consultation from cache", fingerprint=fingerprint)
            return self._cached_result(entry, started)

        async def compute() -> ExecutionResult:
            cached = self.store.cache_get(fingerprint, record=False)
            if cached is not None:
                return self._cached_result(cached, started)
            return await self._consult_and_record(decision, task, cancel_event, started)

        with Timer("task_execution"):
            result, shared = await self.store.run_once(fingerprint, compute)
        if shared and result.status == ExecutionStatus.COMPLETED:
            result = result.model_copy(update={"from_cache": True})
        return result

    async def _consult_and_record(self, decision: RoutingDecision, task: Task,
                                  cancel_event: Optional[asyncio.Event], started: float) -> ExecutionResult:
        fingerprint = decision.fingerprint
        try:
            insights = self.store.historical_insights(task, decision)
            outcome = await self.consultation.consult(task, decision, cancel_event, insights=insights)
        except (ConsultationTimeout, InvalidHandoffPackage) as e:
            logger.warning("Consultation ended with a recoverable error",
                           fingerprint=fingerprint,
                           error_type=type(e).__name__,
                           error=e.message)
            return ExecutionResult(
                status=ExecutionStatus.RECOVERABLE_ERROR,
                fingerprint=fingerprint,
                final_tier=e.tier,
                issues=[e.to_issue()],
                duration_ms=(time.time() - started) * 1000,
            )
        except RoutingError as e:
            logger.error("Task execution failed",
                         fingerprint=fingerprint,
                         error_type=type(e).__name__,
                         error=e.message)
            raise

        assessment = outcome.quality_assessment
        issues = []
        if assessment.passed:
            status = ExecutionStatus.COMPLETED
            self.store.cache_put(self.store.create_entry(task, decision, outcome))
        else:
            status = ExecutionStatus.DEGRADED
            issues.append(QualityGateFailed(
                f"Recommendation from {outcome.specialist_id} below the acceptable threshold after revision",
                improvements=assessment.improvements,
                fingerprint=fingerprint,
                tier=outcome.final_tier
            ).to_issue())

        signature = sorted({name for names in self.scorer.matched_rules(task).values() for name in names})
        self.store.log_outcome(decision, outcome, signature=signature)
        if self.store.learning_due():
            self.store.propose_adjustments(self.classifier)

        result = ExecutionResult(
            status=status,
            fingerprint=fingerprint,
            recommendation=outcome.recommendation,
            quality_assessment=assessment,
            escalation_trail=outcome.escalations,
            final_tier=outcome.final_tier,
            issues=issues,
            duration_ms=(time.time() - started) * 1000,
        )

        logger.info("Task execution completed",
                    fingerprint=fingerprint,
                    status=status.value,
                    final_tier=outcome.final_tier.value,
                    specialist_id=outcome.specialist_id,
                    escalations=len(outcome.escalations) - 1,
                    quality_score=assessment.overall_score,
                    duration_ms=result.duration_ms)
        return result

    async def collaborate(self, task: Task, decision: RoutingDecision, domains: List[str],
                          cancel_event: Optional[asyncio.Event] = None) -> CollaborationReport:
        self.registry.seal()
        return await self.consultation.collaborate(task, decision, domains, cancel_event)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "store": self.store.get_stats(),
            "quality": self.quality_gate.get_quality_metrics(),
            "classifier": self.classifier.get_classification_stats(),
            "registry": self.registry.get_registry_stats(),
        }

    async def get_health_status(self) -> Dict[str, Any]:
        health = await self.store.get_health_status()
        health["registry"] = {"sealed": self.registry.sealed, "specialists": len(self.registry)}
        return health

    def pending_proposals(self) -> List[ThresholdProposal]:
        return self.store.pending_proposals()

    def apply_proposal(self, proposal_id: str) -> ThresholdProposal:
        return self.store.apply_proposal(proposal_id, self.classifier)

    def reject_proposal(self, proposal_id: str) -> ThresholdProposal:
        return self.store.reject_proposal(proposal_id)


def create_engine(registry: Optional[SpecialistRegistry] = None, store: Optional[ContextStore] = None,
                  quality_gate: Optional[QualityGate] = None, clock: Optional[Clock] = None, **kwargs) -> TieredRoutingEngine:
    """
    Build an engine from configuration with the default registry.

    Args:
        registry: Specialist registry, the built-in set by default
        store: Context store, a fresh in-memory store by default
        quality_gate: Quality gate, configured from settings by default
        clock: Clock used for TTLs and timestamps
        **kwargs: Forwarded to TieredRoutingEngine (scorer, classifier, timeout_seconds, max_hops)

    Returns:
        TieredRoutingEngine
    """
    return TieredRoutingEngine(registry=registry, store=store, quality_gate=quality_gate, clock=clock, **kwargs)


__all__ = [
    "TIMED_TIERS",
    "ConsultationEngine",
    "TieredRoutingEngine",
    "create_engine",
]
