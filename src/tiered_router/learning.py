"""
Threshold learning from routing outcomes.

Proposes bounded adjustments to tier boundaries and dimension weights from
(decision, quality, escalation) history. Proposals are never applied here;
the store keeps them pending until an explicit apply.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from src.tiered_router.classifier import TierClassifier
from src.tiered_router.models import (
    ComplexityVector,
    DIMENSIONS,
    OutcomeRecord,
    ThresholdProposal,
    Tier,
    TIER_ORDER,
)


class LearningSystem:
    """Derives ThresholdProposals from outcome history."""

    MAX_BOUNDARY_STEP = 0.25
    MAX_WEIGHT_STEP = 0.05
    MIN_TIER_SAMPLES = 10
    ESCALATION_RATE_HIGH = 0.3
    ESCALATION_RATE_LOW = 0.05
    QUALITY_HIGH = 0.9
    DIMENSION_GAP = 2.0
    MIN_BOUNDARY_GAP = 0.5

    def tier_statistics(self, history: Sequence[OutcomeRecord]) -> Dict[Tier, Dict[str, float]]:
        grouped: Dict[Tier, List[OutcomeRecord]] = defaultdict(list)
        for record in history:
            grouped[record.initial_tier].append(record)

        stats = {}
        for tier, records in grouped.items():
            stats[tier] = {
                "samples": len(records),
                "escalation_rate": sum(1 for r in records if r.escalation_count > 0) / len(records),
                "avg_quality": sum(r.quality_score for r in records) / len(records),
            }
        return stats

    def propose_boundaries(self, stats: Dict[Tier, Dict[str, float]],
                           boundaries: List[float]) -> Tuple[List[float], List[str]]:
        """
        Move boundaries by at most one step each.

        A tier that escalates too often gets a lower upper boundary, so more
        work starts one tier higher. A tier above DIRECT that never escalates
        and scores high quality pulls the boundary below it up.
        """
        deltas = [0.0, 0.0, 0.0]
        rationale = []
        for tier in TIER_ORDER:
            tier_stats = stats.get(tier)
            if not tier_stats or tier_stats["samples"] < self.MIN_TIER_SAMPLES:
                continue
            rate = tier_stats["escalation_rate"]
            if rate > self.ESCALATION_RATE_HIGH and tier.rank < len(boundaries):
                deltas[tier.rank] -= self.MAX_BOUNDARY_STEP
                rationale.append(f"{tier.value} escalation rate {rate:.2f} above {self.ESCALATION_RATE_HIGH}, "
                                 f"lowering its upper boundary")
            elif (tier.rank > 0 and rate < self.ESCALATION_RATE_LOW
                  and tier_stats["avg_quality"] >= self.QUALITY_HIGH):
                deltas[tier.rank - 1] += self.MAX_BOUNDARY_STEP
                rationale.append(f"{tier.value} resolves work at quality {tier_stats['avg_quality']:.2f} without "
                                 f"escalation, raising the boundary below it")

        proposed = list(boundaries)
        for index, delta in enumerate(deltas):
            delta = max(-self.MAX_BOUNDARY_STEP, min(self.MAX_BOUNDARY_STEP, delta))
            if delta == 0:
                continue
            candidate = list(proposed)
            candidate[index] = round(candidate[index] + delta, 2)
            if self._ordered(candidate):
                proposed = candidate
            else:
                rationale.append(f"Skipped moving boundary {index} to keep tiers ordered")
        return proposed, rationale

    def _ordered(self, boundaries: List[float]) -> bool:
        lower, middle, upper = boundaries
        return (0 < lower and upper < 10
                and middle - lower >= self.MIN_BOUNDARY_GAP
                and upper - middle >= self.MIN_BOUNDARY_GAP)

    def propose_weights(self, history: Sequence[OutcomeRecord],
                        weights: Dict[str, float]) -> Tuple[Dict[str, float], List[str]]:
        """Nudge the dimension that best separates escalated from settled outcomes."""
        escalated = [r for r in history if r.escalation_count > 0]
        settled = [r for r in history if r.escalation_count == 0]
        if not escalated or not settled:
            return dict(weights), []

        gaps = {}
        for name in DIMENSIONS:
            escalated_mean = sum(r.vector.get(name, 0) for r in escalated) / len(escalated)
            settled_mean = sum(r.vector.get(name, 0) for r in settled) / len(settled)
            gaps[name] = escalated_mean - settled_mean

        dimension = max(DIMENSIONS, key=lambda name: gaps[name])
        if gaps[dimension] <= self.DIMENSION_GAP:
            return dict(weights), []

        raised = dict(weights)
        raised[dimension] += self.MAX_WEIGHT_STEP
        total = sum(raised.values())
        normalised = {name: round(raised[name] / total, 4) for name in DIMENSIONS}
        # Rounding residue goes to the last dimension so the weights sum to 1
        last = DIMENSIONS[-1]
        normalised[last] = round(1.0 - sum(v for k, v in normalised.items() if k != last), 4)

        return normalised, [f"{dimension} separates escalated outcomes by {gaps[dimension]:.1f} points, "
                            f"raising its weight"]

    @staticmethod
    def replay_tier(record: OutcomeRecord, boundaries: List[float], weights: Dict[str, float],
                    classifier: TierClassifier) -> Tier:
        vector = ComplexityVector(**record.vector)
        score = sum(record.vector.get(name, 0) * weights[name] for name in DIMENSIONS)
        score = round(min(max(score + classifier.contextual_adjustment(vector), 0.0), 10.0), 2)
        for tier, bound in zip(TIER_ORDER, boundaries):
            if score <= bound:
                return tier
        return Tier.TIER_3

    def adjust_thresholds(self, history: Sequence[OutcomeRecord],
                          classifier: TierClassifier) -> Optional[ThresholdProposal]:
        """
        Build a proposal from history.

        Args:
            history: Logged outcomes
            classifier: Classifier whose current boundaries and weights are the baseline

        Returns:
            ThresholdProposal, or None when nothing warrants a change
        """
        history = list(history)
        if not history:
            return None

        stats = self.tier_statistics(history)
        boundaries, boundary_reasons = self.propose_boundaries(stats, classifier.boundaries)
        weights, weight_reasons = self.propose_weights(history, classifier.weights)

        if boundaries == list(classifier.boundaries) and weights == dict(classifier.weights):
            logger.debug("No threshold adjustment warranted", sample_size=len(history))
            return None

        changed = sum(
            1 for r in history
            if self.replay_tier(r, boundaries, weights, classifier) != r.initial_tier
        )
        proposal = ThresholdProposal(
            boundaries=boundaries,
            weights=weights,
            rationale=boundary_reasons + weight_reasons,
            expected_impact=round(changed / len(history), 4),
            sample_size=len(history),
        )

        logger.info("Threshold adjustment proposed",
                    proposal_id=proposal.proposal_id,
                    boundaries=boundaries,
                    expected_impact=proposal.expected_impact,
                    sample_size=proposal.sample_size)
        return proposal


__all__ = ["LearningSystem"]
