"""Direct implementation handler for tasks that need no consultation."""

from src.tiered_router.models import Tier
from src.tiered_router.specialists.base import RuleBasedSpecialist


class DirectSpecialist(RuleBasedSpecialist):
    """Tier tag for DIRECT handlers."""
    tier = Tier.DIRECT
    max_complexity_handled = 4


class DirectImplementer(DirectSpecialist):
    id = "direct-implementation"
    name = "Direct Implementation"
    domain = "general"
    expertise = (
        "incremental implementation",
        "unit testing",
        "code review",
        "routine deployment",
    )
    approach = "Implement directly following existing patterns in the codebase"
    alternatives = ("Pair with a generalist if the change grows beyond one component",)
    steps = ("Implement the change", "Test the change", "Deploy the change")
    resources = ("1 engineer",)
    success_criteria = ("Existing tests pass", "New behaviour covered by tests")
    base_hours = 0.5


__all__ = ["DirectSpecialist", "DirectImplementer"]
