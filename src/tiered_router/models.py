"""
Pydantic data models for the tiered routing engine.

This module defines the data structures that flow through the pipeline:
tasks, complexity vectors, routing decisions, specialist analyses and
recommendations, handoff packages, quality assessments, cache entries and
learning records.
"""

import copy
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Any
from pydantic import BaseModel, Field, field_serializer, field_validator
from enum import Enum
import uuid


# UTC datetime factory function
def utc_now():
    """Factory function to get current UTC datetime."""
    return datetime.now(timezone.utc)


# Enums for controlled vocabulary
class Tier(str, Enum):
    """Processing tier, ordered by expertise and consultation cost."""
    DIRECT = "DIRECT"      # Straight implementation, no consultation
    TIER_1 = "TIER_1"      # Generalist consultation
    TIER_2 = "TIER_2"      # Domain specialist deep analysis
    TIER_3 = "TIER_3"      # Architect coordination

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self)

    def next_tier(self) -> Optional["Tier"]:
        """Tier directly above this one, or None at the top."""
        if self.rank + 1 < len(TIER_ORDER):
            return TIER_ORDER[self.rank + 1]
        return None

    def previous_tier(self) -> Optional["Tier"]:
        if self.rank > 0:
            return TIER_ORDER[self.rank - 1]
        return None


TIER_ORDER = [Tier.DIRECT, Tier.TIER_1, Tier.TIER_2, Tier.TIER_3]


class TaskPriority(str, Enum):
    """Priority class of a task, drives cache lifetime."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QualityLevel(str, Enum):
    """Quality gate verdict."""
    MINIMAL = "minimal"
    ACCEPTABLE = "acceptable"
    EXCELLENT = "excellent"


class ExecutionStatus(str, Enum):
    """Final status of an execute() call."""
    COMPLETED = "completed"                  # Recommendation passed the quality gate
    DEGRADED = "degraded"                    # Recommendation returned below the acceptable threshold
    RECOVERABLE_ERROR = "recoverable_error"  # Timeout or invalid handoff, caller may retry or escalate


class ProposalStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"  # Replaced by a newer proposal before review


DIMENSIONS = [
    "scope", "technical", "domain", "risk",
    "temporal", "stakeholder", "uncertainty", "dependency"
]


# Input models
class Task(BaseModel):
    """A unit of work submitted for routing. Immutable once created."""
    task_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Caller-visible task identifier")
    description: str = Field("", description="Free-text description of the work")
    requirements: List[str] = Field(default_factory=list, description="Ordered structured requirements")
    constraints: List[str] = Field(default_factory=list, description="Ordered constraints")
    context: Mapping[str, Any] = Field(default_factory=dict, description="Domain hint, urgency, stakeholder count, existing systems")
    priority: TaskPriority = Field(TaskPriority.NORMAL, description="Priority class used for cache lifetime")

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, v):
        # Malformed descriptions are scored at the floor instead of rejected
        if v is None:
            return ""
        if not isinstance(v, str):
            return str(v)
        return v

    @field_validator("context", mode="after")
    @classmethod
    def freeze_context(cls, v):
        return MappingProxyType(copy.deepcopy(dict(v)))

    @field_serializer("context")
    def serialize_context(self, v):
        return dict(v)

    @property
    def full_text(self) -> str:
        """Description, requirements and constraints as one lower-cased string."""
        parts = [self.description] + list(self.requirements) + list(self.constraints)
        return " ".join(p for p in parts if p).lower()

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "description": "Add OAuth login to the customer portal",
                "requirements": ["Support Google and GitHub providers"],
                "constraints": ["No downtime during rollout"],
                "context": {"urgency": "high", "stakeholder_count": 4},
                "priority": "high"
            }
        }


class ComplexityVector(BaseModel):
    """Eight independent complexity dimensions, each an integer 0..10."""
    scope: int = Field(..., ge=0, le=10)
    technical: int = Field(..., ge=0, le=10)
    domain: int = Field(..., ge=0, le=10)
    risk: int = Field(..., ge=0, le=10)
    temporal: int = Field(..., ge=0, le=10)
    stakeholder: int = Field(..., ge=0, le=10)
    uncertainty: int = Field(..., ge=0, le=10)
    dependency: int = Field(..., ge=0, le=10)
    low_confidence: bool = Field(False, description="Set when the task text was empty or malformed")

    def as_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in DIMENSIONS}

    class Config:
        frozen = True


class TierAlternative(BaseModel):
    tier: Tier
    reason: str


class RoutingDecision(BaseModel):
    """Routing decision with score, confidence and ordered reasoning."""
    tier: Tier = Field(..., description="Selected processing tier")
    numeric_score: float = Field(..., ge=0.0, le=10.0, description="Weighted complexity score after adjustments")
    confidence: float = Field(..., ge=0.3, le=1.0, description="Confidence in the tier selection")
    reasoning: List[str] = Field(..., description="Ordered human-readable reasons")

    domain: str = Field("general", description="Detected task domain")
    fingerprint: str = Field(..., description="Cache key derived from task text, domain and tier")
    vector: ComplexityVector
    protocol: str = Field(..., description="Consultation protocol for the tier")
    estimated_time: str = Field(..., description="Expected effort range for the tier")
    quality_checks: List[str] = Field(default_factory=list)
    alternatives: List[TierAlternative] = Field(default_factory=list)
    decided_at: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "tier": "DIRECT",
                "numeric_score": 1.5,
                "confidence": 0.7,
                "reasoning": ["Task complexity suitable for direct implementation (direct-implementation-suitable)"],
                "domain": "performance",
                "fingerprint": "9f2c1e...",
                "protocol": "direct-implementation",
                "estimated_time": "15-60 minutes"
            }
        }


# Specialist payloads
class HandoffCriterion(BaseModel):
    """Condition under which a specialist hands the task to a higher tier."""
    condition: str
    target_tier: Tier
    target_specialist: str
    reason: str


class RiskItem(BaseModel):
    description: str
    level: RiskLevel = RiskLevel.LOW
    mitigation: Optional[str] = None


class Analysis(BaseModel):
    """Specialist analysis of a task."""
    specialist_id: str
    task_complexity: float = Field(..., ge=0.0, le=10.0, description="Routing score seen by the specialist")
    domain_relevance: float = Field(..., ge=0.0, le=1.0, description="Share of specialist expertise that matches the task")
    matched_expertise: List[str] = Field(default_factory=list)
    contextual_factors: Dict[str, Any] = Field(default_factory=dict)
    constraints: List[str] = Field(default_factory=list)
    risks: List[RiskItem] = Field(default_factory=list)
    findings: List[str] = Field(default_factory=list)

    @property
    def highest_risk(self) -> Optional[RiskLevel]:
        order = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH]
        levels = [r.level for r in self.risks]
        return max(levels, key=order.index) if levels else None


class Recommendation(BaseModel):
    """Specialist recommendation. Revisions produce a new object."""
    specialist_id: str
    domain: str
    tier: Tier
    primary_recommendation: str = ""
    rationale: str = Field("", description="Problem definition the recommendation answers")
    alternatives: List[str] = Field(default_factory=list)
    implementation_steps: List[str] = Field(default_factory=list)
    priority: str = "medium"
    resources: List[str] = Field(default_factory=list)
    quality_checks: List[str] = Field(default_factory=list)
    success_criteria: List[str] = Field(default_factory=list)
    risks: List[RiskItem] = Field(default_factory=list)
    expertise_applied: List[str] = Field(default_factory=list)
    timeline_estimate: str = ""
    estimated_hours: float = Field(0.0, ge=0.0)
    timeline_confidence: float = Field(0.5, ge=0.0, le=1.0)
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    revision: int = Field(0, ge=0)

    class Config:
        frozen = True


# Handoff models
class ConsultationSummary(BaseModel):
    problem: str = ""
    initial_assessment: str = ""
    constraints: Optional[List[str]] = None
    preliminary_recommendations: List[str] = Field(default_factory=list)
    specialist_id: str = ""
    tier: Tier


class PreservedContext(BaseModel):
    business_requirements: Optional[List[str]] = None
    technical_constraints: Optional[List[str]] = None
    timeline: str = ""
    resource_constraints: List[str] = Field(default_factory=list)
    stakeholders: List[str] = Field(default_factory=list)


class EscalationRationale(BaseModel):
    why_escalated: str = ""
    expertise_needed: List[str] = Field(default_factory=list)
    expected_outcomes: List[str] = Field(default_factory=list)
    complexity_factors: List[str] = Field(default_factory=list)


class ContinuityInfo(BaseModel):
    completed_work: List[str] = Field(default_factory=list)
    remaining_tasks: List[str] = Field(default_factory=list)
    decisions: List[str] = Field(default_factory=list)
    assumptions: List[str] = Field(default_factory=list)


class NamedCheck(BaseModel):
    """A named boolean requirement, used for checklists and quality gates."""
    name: str
    passed: bool


class HandoffPackage(BaseModel):
    """Context transferred from one tier to a strictly higher one."""
    handoff_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_tier: Tier
    target_tier: Tier
    source_specialist: str
    target_specialist: str
    summary: ConsultationSummary
    preserved_context: PreservedContext
    rationale: EscalationRationale
    continuity: ContinuityInfo
    notified: List[str] = Field(default_factory=list, description="Parties informed of the handoff")
    checklist: List[NamedCheck] = Field(default_factory=list)
    quality_gates: List[NamedCheck] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class CrossDomainImpact(BaseModel):
    affected_domains: List[str] = Field(default_factory=list)
    affected_systems: List[str] = Field(default_factory=list)
    data_flow_impact: bool = False
    security_impact: bool = False


class DecisionComplexity(BaseModel):
    stakeholder_count: int = Field(0, ge=0)
    domain_crossover: int = Field(0, ge=0)
    risk_level: RiskLevel = RiskLevel.LOW
    affected_systems: int = Field(0, ge=0)
    score: float = Field(0.0, ge=0.0, le=10.0)
    justifications: List[str] = Field(default_factory=list)


class ArchitectEscalationPackage(HandoffPackage):
    """Handoff to the architect tier with impact analysis and communication plan."""
    cross_domain_impact: CrossDomainImpact
    architectural_considerations: List[str] = Field(default_factory=list)
    decision_complexity: DecisionComplexity
    stakeholders: List[str] = Field(default_factory=list)
    communication_plan: Dict[str, Any] = Field(default_factory=dict)


class HandoffValidation(BaseModel):
    valid: bool
    missing_fields: List[str] = Field(default_factory=list)
    continuity_gaps: List[str] = Field(default_factory=list)
    failed_checks: List[str] = Field(default_factory=list)


# Quality models
class QualityAssessment(BaseModel):
    """Multi-dimensional verdict on a recommendation."""
    dimension_scores: Dict[str, float] = Field(..., description="Per-dimension scores in [0,1]")
    overall_score: float = Field(..., ge=0.0, le=1.0)
    level: QualityLevel
    passed: bool
    improvements: List[str] = Field(default_factory=list)
    escalation_needed: bool = False
    revision: int = Field(0, ge=0)
    assessed_at: datetime = Field(default_factory=utc_now)

    @field_validator("dimension_scores")
    @classmethod
    def validate_dimension_range(cls, v):
        for name, score in v.items():
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"Dimension {name} score {score} outside [0, 1]")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "dimension_scores": {
                    "expertise_alignment": 0.88,
                    "completeness": 1.0,
                    "implementation_viability": 0.94,
                    "risk_coverage": 1.0
                },
                "overall_score": 0.955,
                "level": "excellent",
                "passed": True,
                "improvements": [],
                "escalation_needed": False
            }
        }


# Pipeline models
class EscalationHop(BaseModel):
    """One consultation step in a task's trail."""
    tier: Tier
    specialist_id: str
    escalated_to: Optional[Tier] = None
    target_specialist: Optional[str] = None
    reason: Optional[str] = None
    continuity_gaps: List[str] = Field(default_factory=list)
    handoff: Optional[HandoffPackage] = None


class SimilarConsultation(BaseModel):
    """A cached consultation resembling the current task."""
    fingerprint: str
    specialist_id: str
    similarity: float = Field(..., ge=0.0, le=1.0)
    quality_score: float = Field(..., ge=0.0, le=1.0)
    outcome: str


class PatternInsight(BaseModel):
    """A recurring (domain, tier, signature) pattern and its relevance now."""
    domain: str
    tier: Tier
    signature: List[str] = Field(default_factory=list)
    frequency: int = 0
    success_rate: float = Field(0.0, ge=0.0, le=1.0)
    relevance: float = Field(0.0, ge=0.0, le=1.0)


class HistoricalInsights(BaseModel):
    """What earlier consultations suggest about the current task."""
    similar_consultations: List[SimilarConsultation] = Field(default_factory=list)
    relevant_patterns: List[PatternInsight] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.similar_consultations and not self.relevant_patterns


class ConsultationContext(BaseModel):
    """Context handed to a specialist alongside the task."""
    decision: RoutingDecision
    handoff: Optional[HandoffPackage] = None
    prior_recommendations: List[Recommendation] = Field(default_factory=list)
    insights: HistoricalInsights = Field(default_factory=HistoricalInsights)


class ConsultationOutcome(BaseModel):
    recommendation: Recommendation
    quality_assessment: QualityAssessment
    escalations: List[EscalationHop] = Field(default_factory=list)
    final_tier: Tier
    specialist_id: str


class EngineIssue(BaseModel):
    """Structured form of a recoverable error returned to the caller."""
    error_type: str
    message: str
    fingerprint: Optional[str] = None
    tier: Optional[Tier] = None
    recoverable: bool = True
    escalation_eligible: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)


class ExecutionResult(BaseModel):
    """What execute() hands back to the caller."""
    status: ExecutionStatus
    fingerprint: str
    recommendation: Optional[Recommendation] = None
    quality_assessment: Optional[QualityAssessment] = None
    from_cache: bool = False
    escalation_trail: List[EscalationHop] = Field(default_factory=list)
    final_tier: Optional[Tier] = None
    issues: List[EngineIssue] = Field(default_factory=list)
    duration_ms: float = 0.0


# Store models
class ConsultationCacheEntry(BaseModel):
    cache_key: str
    specialist_id: str
    domain: str
    tier: Tier
    recommendation: Recommendation
    quality_assessment: Optional[QualityAssessment] = None
    escalation_trail: List[EscalationHop] = Field(default_factory=list)
    outcome: str = "completed"
    task_text: str = ""
    requirements: List[str] = Field(default_factory=list)
    numeric_score: float = 0.0
    created_at: datetime
    expiration_time: datetime
    access_count: int = 0
    last_accessed: Optional[datetime] = None


class OutcomeRecord(BaseModel):
    """One completed routing outcome, used for learning."""
    fingerprint: str
    initial_tier: Tier
    final_tier: Tier
    numeric_score: float
    vector: Dict[str, int]
    domain: str
    escalation_count: int = Field(0, ge=0)
    quality_score: float = Field(..., ge=0.0, le=1.0)
    passed: bool
    recorded_at: datetime


class PatternRecord(BaseModel):
    pattern_id: str
    domain: str
    tier: Tier
    signature: List[str] = Field(default_factory=list)
    frequency: int = 0
    success_rate: float = Field(0.0, ge=0.0, le=1.0)
    last_seen: datetime


class ThresholdProposal(BaseModel):
    """Pending change to tier boundaries and dimension weights."""
    proposal_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    boundaries: List[float] = Field(..., min_length=3, max_length=3)
    weights: Dict[str, float]
    rationale: List[str] = Field(default_factory=list)
    expected_impact: float = Field(0.0, ge=0.0, le=1.0, description="Share of past decisions that would route differently")
    sample_size: int = Field(0, ge=0)
    status: ProposalStatus = ProposalStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)


class CollaborationReport(BaseModel):
    recommendations: List[Recommendation] = Field(default_factory=list)
    conflicts: List[Dict[str, Any]] = Field(default_factory=list)
    synergies: List[Dict[str, Any]] = Field(default_factory=list)
    consolidated_steps: List[str] = Field(default_factory=list)


__all__ = [
    "utc_now",
    "Tier",
    "TIER_ORDER",
    "TaskPriority",
    "RiskLevel",
    "QualityLevel",
    "ExecutionStatus",
    "ProposalStatus",
    "DIMENSIONS",
    "Task",
    "ComplexityVector",
    "TierAlternative",
    "RoutingDecision",
    "HandoffCriterion",
    "RiskItem",
    "Analysis",
    "Recommendation",
    "ConsultationSummary",
    "PreservedContext",
    "EscalationRationale",
    "ContinuityInfo",
    "NamedCheck",
    "HandoffPackage",
    "CrossDomainImpact",
    "DecisionComplexity",
    "ArchitectEscalationPackage",
    "HandoffValidation",
    "QualityAssessment",
    "EscalationHop",
    "SimilarConsultation",
    "PatternInsight",
    "HistoricalInsights",
    "ConsultationContext",
    "ConsultationOutcome",
    "EngineIssue",
    "ExecutionResult",
    "ConsultationCacheEntry",
    "OutcomeRecord",
    "PatternRecord",
    "ThresholdProposal",
    "CollaborationReport",
]
