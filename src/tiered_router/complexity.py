"""
Multi-dimensional task complexity scoring.

This module turns a task description and its context flags into an
eight-dimension ComplexityVector:

SCORING MODEL:
- scope, technical, domain, risk, temporal, stakeholder, uncertainty, dependency
- Every dimension starts at the floor (1) and is raised by additive rules
- Each dimension is rounded to an integer and capped at 10
- No dimension reads another dimension's value

RULE TABLES:
- Keyword rules live in ComplexityRules as explicit (name, keywords, delta) rows
- Keywords match on word boundaries against lower-cased task text
- Regex patterns cover phrasing such as "across 5 business units"

Scoring is deterministic and side-effect free. Empty or malformed task text
yields the floor on every dimension with the low_confidence flag set.

Usage:
    scorer = ComplexityScorer()
    vector = scorer.score(Task(description="Fix memory leak in session cleanup"))
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple
from loguru import logger

from src.tiered_router.models import ComplexityVector, Task, DIMENSIONS
from src.tiered_router.utils import sanitize_for_logging


def _contains(text: str, term: str) -> bool:
    """Word-boundary match of a literal term."""
    return re.search(rf'\b{re.escape(term)}\b', text) is not None


def _count_occurrences(text: str, term: str) -> int:
    """Occurrences of a term, allowing a plural 's'."""
    return len(re.findall(rf'\b{re.escape(term)}s?\b', text))


@dataclass(frozen=True)
class KeywordRule:
    """One row of a rule table: fires when any keyword or pattern matches."""
    name: str
    delta: float
    keywords: Tuple[str, ...] = ()
    patterns: Tuple[str, ...] = ()

    def matched_keywords(self, text: str) -> List[str]:
        return [k for k in self.keywords if _contains(text, k)]

    def matches(self, text: str) -> bool:
        if self.matched_keywords(text):
            return True
        return any(re.search(p, text) for p in self.patterns)


@dataclass(frozen=True)
class DomainVocabulary:
    name: str
    weight: float
    keywords: Tuple[str, ...]


@dataclass
class ComplexityRules:
    """Rule tables for every complexity dimension."""

    COMPONENT_KEYWORDS = ('component', 'module', 'service', 'system')
    LAYER_KEYWORDS = ('frontend', 'backend', 'database', 'api', 'ui', 'server')

    SCOPE_RULES = (
        KeywordRule('integration', 1, ('integrate', 'integration', 'connect', 'sync', 'webhook', 'api')),
        KeywordRule('data_flow', 1, ('data flow', 'pipeline', 'stream', 'queue', 'event')),
        KeywordRule('organisation_breadth', 3, ('enterprise-wide', 'organization-wide', 'organisation-wide',
                                                'company-wide', 'org-wide', 'global')),
        KeywordRule('multi_unit', 2, patterns=(
            r'\b(?:\d+|multiple|several|many|all)\s+(?:business units?|teams?|departments?|regions?|divisions?|services|systems)\b',
        )),
        KeywordRule('system_wide_architecture', 2, ('architecture', 'system-wide', 'platform-wide', 'infrastructure')),
    )

    TECHNICAL_RULES = (
        KeywordRule('new_technology', 2, ('new', 'implement', 'introduce', 'adopt', 'migrate')),
        KeywordRule('performance', 2, ('performance', 'optimize', 'fast', 'speed', 'latency', 'cache')),
        KeywordRule('algorithmic', 3, ('algorithm', 'sort', 'search', 'complex logic')),
        KeywordRule('concurrency', 2, ('concurrent', 'concurrency', 'parallel', 'async', 'thread', 'queue')),
        KeywordRule('security_architecture', 3, ('zero-trust', 'encryption', 'cryptography', 'key management',
                                                 'threat model', 'identity federation')),
        KeywordRule('architecture_design', 2, ('architecture', 'design', 'system design', 'distributed')),
        KeywordRule('compliance_controls', 2, ('regulatory', 'compliance', 'audit trail', 'policy enforcement')),
        KeywordRule('enterprise_scale', 2, ('enterprise-wide', 'organization-wide', 'organisation-wide',
                                            'company-wide', 'multi-region', 'large-scale')),
    )

    DOMAIN_VOCABULARIES = (
        DomainVocabulary('security', 2.5, ('auth', 'authentication', 'authorization', 'security', 'encryption',
                                           'oauth', 'jwt', 'permission', 'vulnerability', 'threat', 'compliance',
                                           'audit', 'zero-trust', 'identity', 'regulatory')),
        DomainVocabulary('performance', 2.0, ('optimization', 'cache', 'performance', 'speed', 'latency',
                                              'bottleneck', 'profiling', 'monitoring', 'memory')),
        DomainVocabulary('data', 2.0, ('database', 'query', 'data', 'analytics', 'migration', 'etl',
                                       'warehouse', 'lake', 'governance')),
        DomainVocabulary('architecture', 2.5, ('architecture', 'design', 'pattern', 'scalability', 'microservices',
                                               'distributed', 'system design', 'enterprise-wide')),
        DomainVocabulary('integration', 2.0, ('api', 'integration', 'service', 'webhook', 'event', 'messaging',
                                              'orchestration', 'choreography')),
        DomainVocabulary('ml', 3.0, ('machine learning', 'ai', 'model', 'training', 'inference', 'ml',
                                     'neural', 'algorithm')),
        DomainVocabulary('devops', 1.5, ('deployment', 'ci/cd', 'infrastructure', 'kubernetes', 'docker',
                                         'monitoring', 'observability')),
    )

    RISK_RULES = (
        KeywordRule('production_impact', 3, ('production', 'live', 'deploy', 'release', 'critical', 'outage')),
        KeywordRule('data_consistency', 2, ('migration', 'data change', 'schema', 'consistency')),
        KeywordRule('security_exposure', 2, ('security', 'auth', 'authentication', 'permission', 'encryption',
                                             'sensitive', 'zero-trust')),
        KeywordRule('compatibility', 2, ('breaking change', 'compatibility', 'legacy', 'version')),
        KeywordRule('regulatory_exposure', 3, ('regulatory', 'compliance', 'audit', 'gdpr', 'hipaa', 'sox', 'pci')),
        KeywordRule('organisational_blast_radius', 3, ('enterprise-wide', 'organization-wide', 'organisation-wide',
                                                       'company-wide', 'business units', 'all users')),
        KeywordRule('defect', 2, ('leak', 'bug', 'crash', 'regression', 'corruption')),
    )

    TEMPORAL_RULES = (
        KeywordRule('urgency', 2, ('urgent', 'asap', 'immediate', 'critical', 'emergency')),
        KeywordRule('time_constraint', 1, ('deadline', 'timeline', 'schedule', 'time-sensitive')),
        KeywordRule('long_term', 3, ('roadmap', 'strategic', 'long-term', 'future', 'evolution',
                                     'enterprise-wide', 'transformation')),
    )

    QUICK_VERBS = ('fix', 'update', 'change', 'modify')
    MEDIUM_VERBS = ('implement', 'create', 'build', 'develop')
    LONG_VERBS = ('design', 'architect', 'migrate', 'refactor', 'transform')

    STAKEHOLDER_WORDS = ('stakeholder', 'team', 'department', 'user', 'client', 'customer', 'business unit')
    STAKEHOLDER_RULES = (
        KeywordRule('approval', 2, ('approval', 'sign-off', 'review', 'governance', 'compliance')),
        KeywordRule('cross_functional', 2, ('cross-functional', 'multi-team', 'coordination', 'collaboration'),
                    patterns=(r'\bacross\s+\d+\b',)),
        KeywordRule('organisational_units', 3, ('business units', 'enterprise-wide', 'organization-wide',
                                                'organisation-wide', 'company-wide', 'divisions')),
    )

    UNCERTAINTY_RULES = (
        KeywordRule('exploratory', 3, ('unclear', 'unknown', 'investigate', 'research', 'explore')),
        KeywordRule('experimental', 2, ('experiment', 'prototype', 'proof of concept', 'pilot', 'trial')),
        KeywordRule('unknown_scope', 2, ('tbd', 'to be determined', 'flexible', 'adaptive', 'iterative')),
    )

    DEPENDENCY_WORDS = ('depends on', 'requires', 'needs', 'prerequisite', 'blocks', 'blocked by')
    SYSTEM_WORDS = ('system', 'service', 'component', 'module', 'library')
    DEPENDENCY_RULES = (
        KeywordRule('external', 2, ('external', 'third-party', '3rd party', 'vendor', 'partner')),
        KeywordRule('organisational_dependencies', 2, ('business units', 'departments', 'divisions')),
    )


def _finalize(raw: float) -> int:
    """Round half up and clamp to the 1..10 range."""
    return max(1, min(10, int(raw + 0.5)))


class ComplexityScorer:
    """Computes ComplexityVectors from tasks using the rule tables."""

    def __init__(self, rules: ComplexityRules = None):
        self.rules = rules or ComplexityRules()

    # Dimension scorers. Each reads only the task text and context.

    def score_scope(self, text: str, context: Dict[str, Any]) -> int:
        score = 1.0
        if any(len(re.findall(rf'\b{k}s?\b', text)) > 1 for k in self.rules.COMPONENT_KEYWORDS):
            score += 2
        if sum(1 for layer in self.rules.LAYER_KEYWORDS if _contains(text, layer)) > 1:
            score += 2
        score += sum(rule.delta for rule in self.rules.SCOPE_RULES if rule.matches(text))
        score += min(context_count(context, "existing_systems") // 3, 2)
        return _finalize(score)

    def score_technical(self, text: str, context: Dict[str, Any]) -> int:
        score = 1.0
        score += sum(rule.delta for rule in self.rules.TECHNICAL_RULES if rule.matches(text))
        return _finalize(score)

    def score_domain(self, text: str, context: Dict[str, Any]) -> int:
        depth = 0.0
        hint = str(context.get("domain", "")).lower()
        for vocabulary in self.rules.DOMAIN_VOCABULARIES:
            matches = sum(1 for k in vocabulary.keywords if _contains(text, k))
            if hint == vocabulary.name:
                matches += 1
            depth += matches * vocabulary.weight
        return _finalize(1.0 + min(depth / 2, 8))

    def score_risk(self, text: str, context: Dict[str, Any]) -> int:
        score = 1.0
        for rule in self.rules.RISK_RULES:
            if rule.matches(text) or (rule.name == 'production_impact' and context.get("production_impact")):
                score += rule.delta
        if str(context.get("urgency", "")).lower() == "critical":
            score += 1
        return _finalize(score)

    def score_temporal(self, text: str, context: Dict[str, Any]) -> int:
        score = 1.0
        for rule in self.rules.TEMPORAL_RULES:
            urgent_context = rule.name == 'urgency' and str(context.get("urgency", "")).lower() in ("high", "critical")
            if rule.matches(text) or urgent_context:
                score += rule.delta
        duration = self.estimate_duration_days(text)
        if duration > 30:
            score += 2
        if duration > 90:
            score += 1
        return _finalize(score)

    def score_stakeholder(self, text: str, context: Dict[str, Any]) -> int:
        score = 1.0
        mentions = sum(_count_occurrences(text, word) for word in self.rules.STAKEHOLDER_WORDS)
        score += min(mentions, 3)
        score += sum(rule.delta for rule in self.rules.STAKEHOLDER_RULES if rule.matches(text))
        score += min(context_count(context, "stakeholder_count") // 3, 3)
        return _finalize(score)

    def score_uncertainty(self, text: str, context: Dict[str, Any]) -> int:
        score = 1.0
        score += sum(rule.delta for rule in self.rules.UNCERTAINTY_RULES if rule.matches(text))
        score += min(text.count('?') * 0.5, 2)
        if context.get("requirements_clear") is False:
            score += 2
        return _finalize(score)

    def score_dependency(self, text: str, context: Dict[str, Any]) -> int:
        score = 1.0
        dependency_count = sum(1 for k in self.rules.DEPENDENCY_WORDS if _contains(text, k))
        score += min(dependency_count * 1.5, 4)
        score += sum(rule.delta for rule in self.rules.DEPENDENCY_RULES if rule.matches(text))
        system_matches = sum(1 for k in self.rules.SYSTEM_WORDS if _contains(text, k))
        system_matches = max(system_matches, context_count(context, "existing_systems"))
        score += min(system_matches * 0.5, 2)
        return _finalize(score)

    def estimate_duration_days(self, text: str) -> int:
        """
        Rough effort estimate from the leading verb family.

        Args:
            text: Lower-cased task text

        Returns:
            Estimated duration in days
        """
        if any(_contains(text, verb) for verb in self.rules.QUICK_VERBS):
            return 5
        if any(_contains(text, verb) for verb in self.rules.MEDIUM_VERBS):
            return 20
        if any(_contains(text, verb) for verb in self.rules.LONG_VERBS):
            return 60
        return 15

    def matched_rules(self, task: Task) -> Dict[str, List[str]]:
        """
        Names of the keyword rules that fired for each dimension.

        Args:
            task: Task to inspect

        Returns:
            Mapping of dimension name to fired rule names
        """
        text = task.full_text
        tables = {
            "scope": self.rules.SCOPE_RULES,
            "technical": self.rules.TECHNICAL_RULES,
            "risk": self.rules.RISK_RULES,
            "temporal": self.rules.TEMPORAL_RULES,
            "stakeholder": self.rules.STAKEHOLDER_RULES,
            "uncertainty": self.rules.UNCERTAINTY_RULES,
            "dependency": self.rules.DEPENDENCY_RULES,
        }
        fired = {name: [rule.name for rule in table if rule.matches(text)] for name, table in tables.items()}
        fired["domain"] = [
            v.name for v in self.rules.DOMAIN_VOCABULARIES
            if any(_contains(text, k) for k in v.keywords)
        ]
        return {name: fired[name] for name in DIMENSIONS}

    def score(self, task: Task) -> ComplexityVector:
        """
        Score a task on all eight dimensions.

        Args:
            task: Task to score

        Returns:
            ComplexityVector, floor vector with low_confidence for empty text
        """
        text = task.full_text
        context = task.context or {}

        if not text.strip():
            logger.warning("Empty task text, returning floor complexity", task_id=task.task_id)
            return ComplexityVector(**{name: 1 for name in DIMENSIONS}, low_confidence=True)

        vector = ComplexityVector(
            scope=self.score_scope(text, context),
            technical=self.score_technical(text, context),
            domain=self.score_domain(text, context),
            risk=self.score_risk(text, context),
            temporal=self.score_temporal(text, context),
            stakeholder=self.score_stakeholder(text, context),
            uncertainty=self.score_uncertainty(text, context),
            dependency=self.score_dependency(text, context),
        )

        logger.debug("Task complexity scored",
                     task_id=task.task_id,
                     task_preview=sanitize_for_logging(task.description, 80),
                     vector=vector.as_dict())
        return vector


def context_count(context: Dict[str, Any], key: str) -> int:
    """Read a count from context, accepting either an int or a list."""
    value = context.get(key)
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (list, tuple, set)):
        return len(value)
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


__all__ = [
    "KeywordRule",
    "DomainVocabulary",
    "ComplexityRules",
    "ComplexityScorer",
    "context_count",
]
