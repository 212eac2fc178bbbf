"""
Error taxonomy for routing and consultation.

Fatal errors abort the task pipeline and propagate to the caller. Recoverable
errors are converted into EngineIssue records and returned inside the
ExecutionResult so the caller can retry, escalate or accept.
"""

from typing import Any, Dict, List, Optional

from src.tiered_router.models import EngineIssue, Tier


class RoutingError(Exception):
    """Base class for engine errors. Carries the task fingerprint and tier."""

    recoverable = False
    escalation_eligible = False

    def __init__(self, message: str, fingerprint: Optional[str] = None,
                 tier: Optional[Tier] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.fingerprint = fingerprint
        self.tier = tier
        self.details = details or {}

    def to_issue(self) -> EngineIssue:
        return EngineIssue(
            error_type=type(self).__name__,
            message=self.message,
            fingerprint=self.fingerprint,
            tier=self.tier,
            recoverable=self.recoverable,
            escalation_eligible=self.escalation_eligible,
            details=self.details
        )

    def __str__(self) -> str:
        tier = self.tier.value if self.tier else "unknown"
        return f"{self.message} (fingerprint={self.fingerprint}, tier={tier})"


class NoSpecialistAvailable(RoutingError):
    """No registered specialist for the requested domain and tier."""
    pass


class InvalidEscalation(RoutingError):
    """Escalation target tier is not strictly above the current tier."""
    pass


class EscalationLimitExceeded(RoutingError):
    """More escalation hops than tiers above DIRECT."""
    pass


class ConsultationCancelled(RoutingError):
    """Caller cancelled the task; the pipeline was abandoned between specialist steps."""
    pass


class InvalidHandoffPackage(RoutingError):
    """Handoff package failed validation and was not delivered to the next tier."""

    recoverable = True

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 failed_checks: Optional[List[str]] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        details.update({
            "missing_fields": list(missing_fields or []),
            "failed_checks": list(failed_checks or [])
        })
        super().__init__(message, details=details, **kwargs)
        self.missing_fields = list(missing_fields or [])
        self.failed_checks = list(failed_checks or [])


class ConsultationTimeout(RoutingError):
    """Specialist step exceeded its deadline. Partial work is discarded."""

    recoverable = True
    escalation_eligible = True


class QualityGateFailed(RoutingError):
    """Recommendation stayed below the acceptable threshold after one revision."""

    recoverable = True
    escalation_eligible = True

    def __init__(self, message: str, improvements: Optional[List[str]] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        details["improvements"] = list(improvements or [])
        super().__init__(message, details=details, **kwargs)
        self.improvements = list(improvements or [])


__all__ = [
    "RoutingError",
    "NoSpecialistAvailable",
    "InvalidEscalation",
    "EscalationLimitExceeded",
    "ConsultationCancelled",
    "InvalidHandoffPackage",
    "ConsultationTimeout",
    "QualityGateFailed",
]
