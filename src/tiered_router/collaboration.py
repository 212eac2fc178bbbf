"""
Multi-specialist collaboration.

Compares the recommendations several specialists produced for one task and
reports where they disagree, where they overlap and a merged step list.
Detection is rule-based and deterministic.
"""

import re
from itertools import combinations
from typing import Any, Dict, List, Set

from loguru import logger

from src.tiered_router.models import CollaborationReport, Recommendation


def _vocabulary(recommendation: Recommendation) -> Set[str]:
    words = set()
    for entry in recommendation.expertise_applied:
        words.update(w for w in re.findall(r'[a-z0-9]+', entry.lower()) if len(w) >= 4)
    return words


class CollaborationAnalyzer:
    """Conflict, synergy and step consolidation across recommendations."""

    TIMELINE_RATIO = 2.0

    def detect_conflicts(self, recommendations: List[Recommendation]) -> List[Dict[str, Any]]:
        conflicts = []
        for left, right in combinations(recommendations, 2):
            if left.priority != right.priority:
                conflicts.append({
                    "type": "priority",
                    "specialists": [left.specialist_id, right.specialist_id],
                    "values": [left.priority, right.priority],
                })
            low, high = sorted([left.estimated_hours, right.estimated_hours])
            if low > 0 and high / low > self.TIMELINE_RATIO:
                conflicts.append({
                    "type": "timeline",
                    "specialists": [left.specialist_id, right.specialist_id],
                    "values": [left.estimated_hours, right.estimated_hours],
                })
        return conflicts

    def detect_synergies(self, recommendations: List[Recommendation]) -> List[Dict[str, Any]]:
        synergies = []
        for left, right in combinations(recommendations, 2):
            shared = sorted(_vocabulary(left) & _vocabulary(right))
            if shared:
                synergies.append({
                    "type": "shared-expertise",
                    "specialists": [left.specialist_id, right.specialist_id],
                    "terms": shared,
                })
            common_steps = [s for s in left.implementation_steps if s in right.implementation_steps]
            if common_steps:
                synergies.append({
                    "type": "shared-step",
                    "specialists": [left.specialist_id, right.specialist_id],
                    "steps": common_steps,
                })
        return synergies

    @staticmethod
    def consolidate_steps(recommendations: List[Recommendation]) -> List[str]:
        steps: Dict[str, None] = {}
        for recommendation in recommendations:
            for step in recommendation.implementation_steps:
                steps.setdefault(step, None)
        return list(steps)

    def build_report(self, recommendations: List[Recommendation]) -> CollaborationReport:
        report = CollaborationReport(
            recommendations=list(recommendations),
            conflicts=self.detect_conflicts(recommendations),
            synergies=self.detect_synergies(recommendations),
            consolidated_steps=self.consolidate_steps(recommendations),
        )
        logger.info("Collaboration report built",
                    specialists=[r.specialist_id for r in recommendations],
                    conflicts=len(report.conflicts),
                    synergies=len(report.synergies))
        return report


__all__ = ["CollaborationAnalyzer"]
