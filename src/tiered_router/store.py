"""
Context and learning store for consultations.

This module provides:
- Consultation cache keyed by task fingerprint with priority-based TTL
- LRU eviction at capacity and freshness labels by age
- Single-flight execution so one fingerprint is computed once at a time
- Pluggable persistence backend (in-memory by default)
- Pattern library of recurring (domain, tier, signature) combinations
- Similar-consultation lookup over cached entries
- Bounded outcome log feeding threshold learning
- Pending threshold proposals with explicit apply / reject
- Statistics and health status with process memory usage

Key Features:
- asyncio lock and in-flight futures per fingerprint
- Failures are never cached and propagate to every waiter
- Injectable clock for deterministic expiry
"""

import asyncio
import re
from abc import ABC, abstractmethod
from collections import Counter, OrderedDict, deque
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import psutil
from loguru import logger

from src.tiered_router.classifier import TierClassifier
from src.tiered_router.errors import ConsultationCancelled
from src.tiered_router.learning import LearningSystem
from src.tiered_router.models import (
    ConsultationCacheEntry,
    ConsultationOutcome,
    HistoricalInsights,
    OutcomeRecord,
    PatternInsight,
    PatternRecord,
    ProposalStatus,
    RoutingDecision,
    SimilarConsultation,
    Task,
    TaskPriority,
    ThresholdProposal,
    TIER_ORDER,
)
from src.tiered_router.utils import Clock, SystemClock, generate_id, get_config


class StoreBackend(ABC):
    """Persistence contract for cache entries and the outcome log."""

    @abstractmethod
    def load(self, key: str) -> Optional[ConsultationCacheEntry]:
        pass

    @abstractmethod
    def save(self, entry: ConsultationCacheEntry) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass

    @abstractmethod
    def append_outcome(self, record: OutcomeRecord) -> None:
        pass

    @abstractmethod
    def outcomes(self) -> List[OutcomeRecord]:
        pass


class InMemoryBackend(StoreBackend):
    """Process-local backend. The outcome log is a bounded ring buffer."""

    def __init__(self, outcome_log_size: int = 10000):
        self._entries: Dict[str, ConsultationCacheEntry] = {}
        self._outcomes: deque = deque(maxlen=outcome_log_size)

    def load(self, key: str) -> Optional[ConsultationCacheEntry]:
        return self._entries.get(key)

    def save(self, entry: ConsultationCacheEntry) -> None:
        self._entries[entry.cache_key] = entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self._entries)

    def append_outcome(self, record: OutcomeRecord) -> None:
        self._outcomes.append(record)

    def outcomes(self) -> List[OutcomeRecord]:
        return list(self._outcomes)


def _words(text: str) -> set:
    return set(re.findall(r'[a-z0-9]+', text.lower()))


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    left, right = set(left), set(right)
    if not left and not right:
        return 1.0
    return len(left & right) / len(left | right)


class ContextStore:
    """Cache, outcome log, pattern library and proposal registry."""

    def __init__(self, backend: Optional[StoreBackend] = None, clock: Optional[Clock] = None,
                 max_size: Optional[int] = None, learning: Optional[LearningSystem] = None):
        """
        Initialize the store.

        Args:
            backend: Persistence backend, in-memory by default
            clock: Object with now(), SystemClock by default
            max_size: Cache capacity, CACHE_MAX_SIZE by default
            learning: Learning system used for threshold proposals
        """
        self.config = get_config()
        self.backend = backend or InMemoryBackend(self.config.get('ANALYTICS_LOG_SIZE', 10000))
        self.clock = clock or SystemClock()
        self.max_size = max_size or self.config.get('CACHE_MAX_SIZE', 1000)
        self.learning = learning or LearningSystem()

        self._lock = asyncio.Lock()
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._lru: "OrderedDict[str, None]" = OrderedDict((k, None) for k in self.backend.keys())

        self.pattern_library_size = max(self.config.get('PATTERN_LIBRARY_SIZE', 500), 1)
        self.proposal_history_size = max(self.config.get('PROPOSAL_HISTORY_SIZE', 20), 1)
        self._patterns: "OrderedDict[Tuple[str, str, Tuple[str, ...]], PatternRecord]" = OrderedDict()
        self._proposals: "OrderedDict[str, ThresholdProposal]" = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._outcomes_logged = 0
        self._quality_total = 0.0
        self._routing_counts: Counter = Counter()
        self._final_tier_counts: Counter = Counter()

    # ==================== CACHE ====================

    def ttl_for(self, priority: TaskPriority, quality_score: Optional[float] = None) -> timedelta:
        """Cache lifetime by priority class, extended by half for excellent quality."""
        if priority in (TaskPriority.CRITICAL, TaskPriority.HIGH):
            days = self.config.get('CACHE_TTL_DAYS_HIGH', 7)
        elif priority == TaskPriority.LOW:
            days = self.config.get('CACHE_TTL_DAYS_LOW', 1)
        else:
            days = self.config.get('CACHE_TTL_DAYS_NORMAL', 3)
        ttl = timedelta(days=days)
        if quality_score is not None and quality_score > 0.9:
            ttl = ttl * 1.5
        return ttl

    def freshness(self, entry: ConsultationCacheEntry) -> str:
        age = self.clock.now() - entry.created_at
        if age < timedelta(hours=1):
            return "very-fresh"
        if age < timedelta(hours=6):
            return "fresh"
        if age < timedelta(hours=24):
            return "acceptable"
        return "stale"

    def create_entry(self, task: Task, decision: RoutingDecision,
                     outcome: ConsultationOutcome) -> ConsultationCacheEntry:
        now = self.clock.now()
        quality = outcome.quality_assessment.overall_score
        return ConsultationCacheEntry(
            cache_key=decision.fingerprint,
            specialist_id=outcome.specialist_id,
            domain=decision.domain,
            tier=outcome.final_tier,
            recommendation=outcome.recommendation,
            quality_assessment=outcome.quality_assessment,
            escalation_trail=outcome.escalations,
            outcome="completed" if outcome.quality_assessment.passed else "degraded",
            task_text=task.full_text,
            requirements=list(task.requirements),
            numeric_score=decision.numeric_score,
            created_at=now,
            expiration_time=now + self.ttl_for(task.priority, quality),
        )

    def _expired(self, entry: ConsultationCacheEntry, now: datetime) -> bool:
        return now >= entry.expiration_time

    def _drop(self, key: str) -> None:
        self.backend.delete(key)
        self._lru.pop(key, None)

    def cache_get(self, fingerprint: str, record: bool = True) -> Optional[ConsultationCacheEntry]:
        """
        Look up a cached consultation.

        Args:
            fingerprint: Task fingerprint
            record: Count the lookup in the hit and miss statistics

        Returns:
            Entry within TTL, or None
        """
        entry = self.backend.load(fingerprint)
        now = self.clock.now()

        if entry is None or self._expired(entry, now):
            if entry is not None:
                self._drop(fingerprint)
                logger.debug("Cache entry expired", fingerprint=fingerprint)
            if record:
                self._misses += 1
            return None

        entry = entry.model_copy(update={"access_count": entry.access_count + 1, "last_accessed": now})
        self.backend.save(entry)
        self._lru[fingerprint] = None
        self._lru.move_to_end(fingerprint)
        if record:
            self._hits += 1

        logger.debug("Cache hit",
                     fingerprint=fingerprint,
                     access_count=entry.access_count,
                     freshness=self.freshness(entry))
        return entry

    def cache_put(self, entry: ConsultationCacheEntry) -> None:
        """Store an entry, evicting the least recently used one at capacity."""
        key = entry.cache_key
        if key not in self._lru:
            while len(self._lru) >= self.max_size:
                evicted, _ = self._lru.popitem(last=False)
                self.backend.delete(evicted)
                self._evictions += 1
                logger.debug("Cache entry evicted", fingerprint=evicted)

        self.backend.save(entry)
        self._lru[key] = None
        self._lru.move_to_end(key)

        logger.info("Consultation cached",
                    fingerprint=key,
                    specialist_id=entry.specialist_id,
                    expires_at=entry.expiration_time.isoformat())

    def cleanup_expired(self) -> int:
        now = self.clock.now()
        removed = 0
        for key in list(self._lru):
            entry = self.backend.load(key)
            if entry is None or self._expired(entry, now):
                self._drop(key)
                removed += 1
        if removed:
            logger.info("Expired cache entries removed", count=removed)
        return removed

    async def run_once(self, fingerprint: str,
                       compute: Callable[[], Awaitable[Any]]) -> Tuple[Any, bool]:
        """
        Run compute for a fingerprint unless a run is already in flight.

        Args:
            fingerprint: Key to serialise on
            compute: Coroutine function producing the value

        Returns:
            (value, shared) where shared is True when another caller computed it

        Raises:
            Whatever compute raised, for the computing caller and every waiter
        """
        while True:
            async with self._lock:
                future = self._in_flight.get(fingerprint)
                owner = future is None
                if owner:
                    future = asyncio.get_running_loop().create_future()
                    self._in_flight[fingerprint] = future

            if not owner:
                await asyncio.wait([future])
                if future.cancelled():
                    # The computing caller was abandoned; compute afresh
                    continue
                return future.result(), True

            try:
                result = await compute()
            except (asyncio.CancelledError, ConsultationCancelled):
                future.cancel()
                raise
            except Exception as e:
                future.set_exception(e)
                future.exception()
                raise
            else:
                future.set_result(result)
                return result, False
            finally:
                self._in_flight.pop(fingerprint, None)

    # ==================== SIMILARITY ====================

    def similarity(self, task: Task, decision: RoutingDecision, entry: ConsultationCacheEntry) -> float:
        text_score = jaccard(_words(task.full_text), _words(entry.task_text))
        domain_score = 1.0 if decision.domain == entry.domain else 0.0
        if decision.tier == entry.tier:
            tier_score = max(0.0, 1.0 - abs(decision.numeric_score - entry.numeric_score) / 10)
        else:
            tier_score = 0.0
        requirement_score = jaccard(
            (r.lower() for r in task.requirements),
            (r.lower() for r in entry.requirements),
        )
        return round(text_score * 0.4 + domain_score * 0.3 + tier_score * 0.2 + requirement_score * 0.1, 4)

    def find_similar(self, task: Task, decision: RoutingDecision,
                     threshold: Optional[float] = None, limit: int = 5) -> List[Tuple[ConsultationCacheEntry, float]]:
        """
        Cached consultations that resemble the task.

        Args:
            task: Task to compare
            decision: Its routing decision
            threshold: Minimum similarity, SIMILARITY_THRESHOLD by default
            limit: Maximum results

        Returns:
            (entry, similarity) pairs, most similar first
        """
        threshold = threshold if threshold is not None else self.config.get('SIMILARITY_THRESHOLD', 0.7)
        now = self.clock.now()
        matches = []
        for key in list(self._lru):
            entry = self.backend.load(key)
            if entry is None or self._expired(entry, now) or key == decision.fingerprint:
                continue
            score = self.similarity(task, decision, entry)
            if score >= threshold:
                matches.append((entry, score))
        matches.sort(key=lambda item: item[1], reverse=True)
        return matches[:limit]

    # ==================== OUTCOMES & PATTERNS ====================

    def log_outcome(self, decision: RoutingDecision, outcome: ConsultationOutcome,
                    signature: Optional[List[str]] = None) -> OutcomeRecord:
        """
        Record a completed routing outcome for learning.

        Args:
            decision: Initial routing decision
            outcome: Consultation outcome
            signature: Keyword signature used for the pattern library

        Returns:
            The stored OutcomeRecord
        """
        quality = outcome.quality_assessment
        record = OutcomeRecord(
            fingerprint=decision.fingerprint,
            initial_tier=decision.tier,
            final_tier=outcome.final_tier,
            numeric_score=decision.numeric_score,
            vector=decision.vector.as_dict(),
            domain=decision.domain,
            escalation_count=max(len(outcome.escalations) - 1, 0),
            quality_score=quality.overall_score,
            passed=quality.passed,
            recorded_at=self.clock.now(),
        )
        self.backend.append_outcome(record)
        self._outcomes_logged += 1
        self._quality_total += record.quality_score
        self._routing_counts[record.initial_tier.value] += 1
        self._final_tier_counts[record.final_tier.value] += 1
        self._update_pattern(record, signature or [])

        logger.info("Outcome logged",
                    fingerprint=record.fingerprint,
                    initial_tier=record.initial_tier.value,
                    final_tier=record.final_tier.value,
                    escalations=record.escalation_count,
                    quality_score=record.quality_score)
        return record

    def _update_pattern(self, record: OutcomeRecord, signature: List[str]) -> None:
        key = (record.domain, record.initial_tier.value, tuple(sorted(signature)))
        pattern = self._patterns.get(key)
        if pattern is None:
            pattern = PatternRecord(
                pattern_id=generate_id("pattern"),
                domain=record.domain,
                tier=record.initial_tier,
                signature=list(key[2]),
                last_seen=record.recorded_at,
            )
        successes = pattern.success_rate * pattern.frequency + (1 if record.passed else 0)
        frequency = pattern.frequency + 1
        self._patterns[key] = pattern.model_copy(update={
            "frequency": frequency,
            "success_rate": round(successes / frequency, 4),
            "last_seen": record.recorded_at,
        })
        self._patterns.move_to_end(key)
        while len(self._patterns) > self.pattern_library_size:
            evicted, _ = self._patterns.popitem(last=False)
            logger.debug("Pattern evicted", domain=evicted[0], tier=evicted[1])

    def pattern_relevance(self, pattern: PatternRecord) -> float:
        max_frequency = max((p.frequency for p in self._patterns.values()), default=1)
        age_days = (self.clock.now() - pattern.last_seen).total_seconds() / 86400
        recency = max(0.0, 1.0 - age_days / 365)
        return round(pattern.frequency / max_frequency * 0.3 + pattern.success_rate * 0.4 + recency * 0.3, 4)

    def get_relevant_patterns(self, domain: Optional[str] = None, limit: int = 5) -> List[Tuple[PatternRecord, float]]:
        patterns = [p for p in self._patterns.values() if domain is None or p.domain == domain]
        scored = [(p, self.pattern_relevance(p)) for p in patterns]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:limit]

    def outcomes(self) -> List[OutcomeRecord]:
        return self.backend.outcomes()

    def historical_insights(self, task: Task, decision: RoutingDecision, limit: int = 3) -> HistoricalInsights:
        """
        Similar cached consultations and relevant patterns for a task.

        Args:
            task: Task about to be consulted
            decision: Its routing decision
            limit: Maximum entries of each kind

        Returns:
            HistoricalInsights, empty when nothing comparable is known
        """
        similar = [
            SimilarConsultation(
                fingerprint=entry.cache_key,
                specialist_id=entry.specialist_id,
                similarity=min(score, 1.0),
                quality_score=entry.quality_assessment.overall_score,
                outcome=entry.outcome,
            )
            for entry, score in self.find_similar(task, decision, limit=limit)
        ]
        patterns = [
            PatternInsight(
                domain=pattern.domain,
                tier=pattern.tier,
                signature=list(pattern.signature),
                frequency=pattern.frequency,
                success_rate=pattern.success_rate,
                relevance=min(relevance, 1.0),
            )
            for pattern, relevance in self.get_relevant_patterns(decision.domain, limit=limit)
        ]
        return HistoricalInsights(similar_consultations=similar, relevant_patterns=patterns)

    # ==================== LEARNING ====================

    def learning_due(self) -> bool:
        every = self.config.get('LEARNING_MIN_OUTCOMES', 50)
        return self._outcomes_logged > 0 and self._outcomes_logged % every == 0

    def propose_adjustments(self, classifier: TierClassifier) -> Optional[ThresholdProposal]:
        """
        Derive a proposal from the outcome log and keep it pending.

        A newer proposal supersedes any still pending. Only the most recent
        PROPOSAL_HISTORY_SIZE proposals are kept.
        """
        proposal = self.learning.adjust_thresholds(self.backend.outcomes(), classifier)
        if proposal is None:
            return None

        for pending in self.pending_proposals():
            self._proposals[pending.proposal_id] = pending.model_copy(update={"status": ProposalStatus.SUPERSEDED})
            logger.info("Threshold proposal superseded",
                        proposal_id=pending.proposal_id,
                        superseded_by=proposal.proposal_id)

        self._proposals[proposal.proposal_id] = proposal
        while len(self._proposals) > self.proposal_history_size:
            self._proposals.popitem(last=False)
        return proposal

    def pending_proposals(self) -> List[ThresholdProposal]:
        return [p for p in self._proposals.values() if p.status == ProposalStatus.PENDING]

    def _pending(self, proposal_id: str) -> ThresholdProposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None or proposal.status != ProposalStatus.PENDING:
            raise ValueError(f"No pending proposal {proposal_id}")
        return proposal

    def apply_proposal(self, proposal_id: str, classifier: TierClassifier) -> ThresholdProposal:
        """
        Adopt a pending proposal.

        Raises:
            ValueError: If no such pending proposal exists
            ConfigurationError: If the proposal is inconsistent
        """
        proposal = self._pending(proposal_id)
        classifier.apply_proposal(proposal)
        applied = proposal.model_copy(update={"status": ProposalStatus.APPLIED})
        self._proposals[proposal_id] = applied
        logger.info("Threshold proposal applied", proposal_id=proposal_id)
        return applied

    def reject_proposal(self, proposal_id: str) -> ThresholdProposal:
        rejected = self._pending(proposal_id).model_copy(update={"status": ProposalStatus.REJECTED})
        self._proposals[proposal_id] = rejected
        logger.info("Threshold proposal rejected", proposal_id=proposal_id)
        return rejected

    # ==================== STATS & HEALTH ====================

    def get_stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "cache": {
                "size": len(self._lru),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
                "evictions": self._evictions,
                "in_flight": len(self._in_flight),
            },
            "outcomes_logged": self._outcomes_logged,
            "avg_quality": round(self._quality_total / self._outcomes_logged, 3) if self._outcomes_logged else 0.0,
            "routing_distribution": {t.value: self._routing_counts.get(t.value, 0) for t in TIER_ORDER},
            "final_tier_distribution": {t.value: self._final_tier_counts.get(t.value, 0) for t in TIER_ORDER},
            "pattern_count": len(self._patterns),
            "pending_proposals": len(self.pending_proposals()),
        }

    def memory_usage_mb(self) -> float:
        process = psutil.Process()
        return process.memory_info().rss / 1024 / 1024

    async def get_health_status(self) -> Dict[str, Any]:
        """
        Get health status of the store.

        Returns:
            Dictionary containing health information
        """
        async with self._lock:
            usage_mb = self.memory_usage_mb()

            memory_status = "healthy" if usage_mb < 500 else "warning"
            if usage_mb > 1000:
                memory_status = "critical"

            cache_status = "healthy" if len(self._lru) < self.max_size else "warning"

            return {
                "status": "healthy" if memory_status == "healthy" else memory_status,
                "timestamp": self.clock.now().isoformat(),
                "memory": {
                    "status": memory_status,
                    "usage_mb": round(usage_mb, 2),
                },
                "cache": {
                    "status": cache_status,
                    "size": len(self._lru),
                    "max_size": self.max_size,
                },
                "learning": {
                    "outcomes_logged": self._outcomes_logged,
                    "pending_proposals": len(self.pending_proposals()),
                    "patterns": len(self._patterns),
                },
            }


__all__ = [
    "StoreBackend",
    "InMemoryBackend",
    "jaccard",
    "ContextStore",
]
