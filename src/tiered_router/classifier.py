"""
Tier classification for scored tasks.

This module maps a ComplexityVector to one of four processing tiers:

TIERS:
- DIRECT (score <= 3.5): direct implementation, no consultation
- TIER_1 (score <= 6.5): generalist consultation
- TIER_2 (score <= 8.5): domain specialist deep analysis
- TIER_3 (score > 8.5): architect coordination

SCORING:
- Weighted sum of the eight dimensions (scope .20, technical .25, domain .20,
  risk .15, the remaining four .05 each)
- Contextual adjustments for risky uncertainty, tangled dependencies and
  deep technical/domain overlap, clamped to 10
- Confidence from description length, uncertainty and technical terminology
- Ordered reasoning with one entry per dimension over its high threshold

Boundaries and weights are read from configuration and can only change
through an explicitly applied ThresholdProposal.
"""

import hashlib
import json
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from loguru import logger

from src.tiered_router.models import (
    ComplexityVector,
    RoutingDecision,
    Task,
    Tier,
    TierAlternative,
    ThresholdProposal,
    TIER_ORDER,
    DIMENSIONS,
)
from src.tiered_router.utils import get_config, sanitize_for_logging, Timer, ConfigurationError


DEFAULT_WEIGHTS = {
    "scope": 0.20,
    "technical": 0.25,
    "domain": 0.20,
    "risk": 0.15,
    "temporal": 0.05,
    "stakeholder": 0.05,
    "uncertainty": 0.05,
    "dependency": 0.05,
}

# A dimension is "high" when it exceeds its threshold
REASONING_THRESHOLDS = {
    "scope": 7,
    "technical": 7,
    "domain": 7,
    "risk": 7,
    "temporal": 6,
    "stakeholder": 6,
    "uncertainty": 6,
    "dependency": 6,
}

REASON_TEMPLATES = {
    "scope": "High scope complexity ({value}/10): multiple components or cross-domain changes",
    "technical": "Significant technical complexity ({value}/10): new technology, performance or algorithmic work",
    "domain": "Deep domain expertise required ({value}/10)",
    "risk": "High risk ({value}/10): production, security or regulatory impact",
    "temporal": "Time pressure or long planning horizon ({value}/10)",
    "stakeholder": "Many stakeholders involved ({value}/10)",
    "uncertainty": "High uncertainty ({value}/10): requirements need exploration",
    "dependency": "Complex dependencies ({value}/10): external or cross-system coordination",
}

DIRECT_REASON = "Task complexity suitable for direct implementation (direct-implementation-suitable)"


@dataclass(frozen=True)
class TierProfile:
    protocol: str
    estimated_time: str
    quality_checks: Tuple[str, ...]


TIER_PROFILES = {
    Tier.DIRECT: TierProfile(
        "direct-implementation", "15-60 minutes",
        ("basic-functionality", "code-review")),
    Tier.TIER_1: TierProfile(
        "consultation", "1-4 hours",
        ("architecture-review", "best-practices", "security-basics")),
    Tier.TIER_2: TierProfile(
        "deep-analysis", "4-24 hours",
        ("comprehensive-review", "performance-analysis", "security-audit")),
    Tier.TIER_3: TierProfile(
        "coordination", "1-5 days",
        ("enterprise-review", "compliance-check", "scalability-assessment", "risk-assessment")),
}


@dataclass
class DomainPatterns:
    """Keyword patterns for task domain detection."""

    DOMAIN_PATTERNS = {
        'architecture': ('architecture', 'design', 'pattern', 'scalability', 'system design'),
        'security': ('auth', 'authentication', 'security', 'encryption', 'oauth', 'jwt', 'permission',
                     'vulnerability', 'zero-trust', 'compliance', 'regulatory', 'identity'),
        'performance': ('performance', 'optimization', 'cache', 'speed', 'latency', 'memory'),
        'data': ('database', 'query', 'data', 'analytics', 'migration', 'sql', 'nosql'),
        'integration': ('api', 'integration', 'service', 'webhook', 'event', 'microservice'),
        'frontend': ('ui', 'component', 'react', 'vue', 'angular', 'css', 'responsive'),
        'testing': ('test', 'testing', 'qa', 'automation', 'ci/cd', 'quality'),
        'ml': ('ml', 'ai', 'machine learning', 'model', 'prediction', 'analytics'),
    }

    # Recognised technical terminology raises classification confidence
    TECHNICAL_TERMS = (
        'react', 'nodejs', 'python', 'javascript', 'typescript', 'docker', 'kubernetes',
        'aws', 'gcp', 'azure', 'postgresql', 'mongodb', 'redis', 'graphql', 'rest api',
        'microservices'
    )


_PATTERNS = DomainPatterns()


def _contains(text: str, term: str) -> bool:
    return re.search(rf'\b{re.escape(term)}\b', text) is not None


def domain_hits(text: str) -> Dict[str, int]:
    """Number of pattern hits per domain, in pattern order."""
    text = text.lower()
    return {
        domain: sum(1 for p in patterns if _contains(text, p))
        for domain, patterns in _PATTERNS.DOMAIN_PATTERNS.items()
    }


def detect_domains(text: str) -> List[str]:
    """All domains with at least one pattern hit."""
    return [domain for domain, hits in domain_hits(text).items() if hits > 0]


def identify_domain(task: Task) -> str:
    """
    Pick the task's primary domain.

    A "domain" hint in the task context wins when it names a known domain.
    Otherwise the domain with the most pattern hits is chosen; ties go to the
    earlier domain and no hits yields "general".

    Args:
        task: Task to inspect

    Returns:
        Domain name
    """
    hint = str(task.context.get("domain", "")).lower()
    if hint in _PATTERNS.DOMAIN_PATTERNS:
        return hint

    best_match = "general"
    max_hits = 0
    for domain, hits in domain_hits(task.full_text).items():
        if hits > max_hits:
            max_hits = hits
            best_match = domain
    return best_match


def task_fingerprint(task: Task, domain: str, tier: Tier) -> str:
    """
    Deterministic cache key over normalised task text, domain and tier.

    Args:
        task: Task being routed
        domain: Detected domain
        tier: Routing tier

    Returns:
        Hex digest fingerprint
    """
    normalised = " ".join(task.full_text.split())
    text_hash = hashlib.md5(normalised.encode()).hexdigest()
    key_data = {"text": text_hash, "domain": domain, "tier": tier.value}
    return hashlib.md5(json.dumps(key_data, sort_keys=True).encode()).hexdigest()


class TierClassifier:
    """Maps complexity vectors to routing decisions."""

    def __init__(self, weights: Optional[Dict[str, float]] = None,
                 boundaries: Optional[List[float]] = None):
        """
        Initialize the classifier.

        Args:
            weights: Dimension weights, defaults to DEFAULT_WEIGHTS
            boundaries: Upper score bounds for DIRECT, TIER_1 and TIER_2
        """
        self.config = get_config()
        self.weights = dict(weights or DEFAULT_WEIGHTS)
        self.boundaries = list(boundaries or [
            self.config.get('TIER_DIRECT_MAX', 3.5),
            self.config.get('TIER_1_MAX', 6.5),
            self.config.get('TIER_2_MAX', 8.5),
        ])
        self._validate(self.weights, self.boundaries)

        logger.info("TierClassifier initialized", boundaries=self.boundaries, weights=self.weights)

    @staticmethod
    def _validate(weights: Dict[str, float], boundaries: List[float]) -> None:
        if set(weights) != set(DIMENSIONS):
            raise ConfigurationError(f"Weights must cover exactly the dimensions {DIMENSIONS}")
        if any(w < 0 for w in weights.values()) or abs(sum(weights.values()) - 1.0) > 1e-6:
            raise ConfigurationError("Weights must be non-negative and sum to 1")
        if len(boundaries) != 3 or not boundaries[0] < boundaries[1] < boundaries[2]:
            raise ConfigurationError(f"Tier boundaries must be three increasing values, got {boundaries}")

    def weighted_score(self, vector: ComplexityVector) -> float:
        """Weighted sum of dimensions before contextual adjustment."""
        values = vector.as_dict()
        return sum(values[name] * self.weights[name] for name in DIMENSIONS)

    def contextual_adjustment(self, vector: ComplexityVector) -> float:
        """Extra score for combinations that compound each other."""
        adjustment = 0.0
        if vector.risk > 8 and vector.uncertainty > 7:
            adjustment += 1.0
        if vector.dependency > 8 and vector.stakeholder > 6:
            adjustment += 0.5
        if vector.technical > 8 and vector.domain > 8:
            adjustment += 0.5
        return adjustment

    def compute_score(self, vector: ComplexityVector) -> float:
        score = self.weighted_score(vector) + self.contextual_adjustment(vector)
        return round(min(max(score, 0.0), 10.0), 2)

    def tier_for_score(self, score: float) -> Tier:
        direct_max, tier1_max, tier2_max = self.boundaries
        if score <= direct_max:
            return Tier.DIRECT
        elif score <= tier1_max:
            return Tier.TIER_1
        elif score <= tier2_max:
            return Tier.TIER_2
        return Tier.TIER_3

    def detect_technical_terms(self, text: str) -> List[str]:
        text = text.lower()
        return [term for term in _PATTERNS.TECHNICAL_TERMS if _contains(text, term)]

    def calculate_confidence(self, vector: ComplexityVector, task: Task) -> float:
        """
        Confidence in the tier selection.

        Args:
            vector: Scored complexity
            task: Original task, for description length and terminology

        Returns:
            Confidence clamped to [0.3, 1.0]
        """
        confidence = 0.8
        length = len(task.description.strip())

        if length < 50:
            confidence -= 0.2
        elif length > 200:
            confidence += 0.1

        if vector.uncertainty > 7:
            confidence -= 0.3
        elif vector.uncertainty < 3:
            confidence += 0.1

        if self.detect_technical_terms(task.full_text):
            confidence += 0.1

        if vector.low_confidence:
            confidence -= 0.2

        return round(max(0.3, min(1.0, confidence)), 2)

    def generate_reasoning(self, vector: ComplexityVector) -> List[str]:
        """
        One reason per high dimension, in fixed dimension order.

        Args:
            vector: Scored complexity

        Returns:
            Ordered list of reasons, never empty
        """
        values = vector.as_dict()
        reasoning = [
            REASON_TEMPLATES[name].format(value=values[name])
            for name in DIMENSIONS
            if values[name] > REASONING_THRESHOLDS[name]
        ]
        return reasoning or [DIRECT_REASON]

    def _alternatives(self, tier: Tier) -> List[TierAlternative]:
        alternatives = []
        lower = tier.previous_tier()
        if lower is not None:
            alternatives.append(TierAlternative(tier=lower, reason="Lower cost if scope can be reduced"))
        higher = tier.next_tier()
        if higher is not None:
            alternatives.append(TierAlternative(tier=higher, reason="Additional expertise if complexity grows"))
        return alternatives

    def classify(self, vector: ComplexityVector, task: Task) -> RoutingDecision:
        """
        Build the routing decision for a scored task.

        Args:
            vector: Complexity vector produced for the task
            task: The task itself

        Returns:
            RoutingDecision with tier, score, confidence and reasoning
        """
        with Timer("tier_classification"):
            try:
                score = self.compute_score(vector)
                tier = self.tier_for_score(score)
                domain = identify_domain(task)
                profile = TIER_PROFILES[tier]

                decision = RoutingDecision(
                    tier=tier,
                    numeric_score=score,
                    confidence=self.calculate_confidence(vector, task),
                    reasoning=self.generate_reasoning(vector),
                    domain=domain,
                    fingerprint=task_fingerprint(task, domain, tier),
                    vector=vector,
                    protocol=profile.protocol,
                    estimated_time=profile.estimated_time,
                    quality_checks=list(profile.quality_checks),
                    alternatives=self._alternatives(tier),
                )

                logger.info("Task classified",
                            task_id=task.task_id,
                            tier=tier.value,
                            score=score,
                            confidence=decision.confidence,
                            domain=domain)
                return decision

            except Exception as e:
                logger.error("Task classification failed",
                             error=str(e),
                             task_preview=sanitize_for_logging(task.description, 50))
                raise

    def apply_proposal(self, proposal: ThresholdProposal) -> None:
        """
        Adopt the boundaries and weights of a learning proposal.

        Args:
            proposal: Proposal to adopt

        Raises:
            ConfigurationError: If the proposal is inconsistent
        """
        self._validate(proposal.weights, proposal.boundaries)
        previous = list(self.boundaries)
        self.boundaries = list(proposal.boundaries)
        self.weights = dict(proposal.weights)
        logger.info("Routing thresholds updated",
                    proposal_id=proposal.proposal_id,
                    previous_boundaries=previous,
                    boundaries=self.boundaries)

    def get_classification_stats(self) -> Dict[str, object]:
        return {
            "boundaries": {tier.value: bound for tier, bound in zip(TIER_ORDER, self.boundaries)},
            "weights": dict(self.weights),
            "pattern_counts": {
                "domains": len(_PATTERNS.DOMAIN_PATTERNS),
                "technical_terms": len(_PATTERNS.TECHNICAL_TERMS),
            }
        }


__all__ = [
    "DEFAULT_WEIGHTS",
    "REASONING_THRESHOLDS",
    "DIRECT_REASON",
    "TierProfile",
    "TIER_PROFILES",
    "DomainPatterns",
    "domain_hits",
    "detect_domains",
    "identify_domain",
    "task_fingerprint",
    "TierClassifier",
]
