from src.tiered_router.specialists.base import Specialist, RuleBasedSpecialist
from src.tiered_router.specialists.direct import DirectSpecialist, DirectImplementer
from src.tiered_router.specialists.generalists import Generalist, GENERALISTS
from src.tiered_router.specialists.domain_specialists import DomainSpecialist, DOMAIN_SPECIALISTS
from src.tiered_router.specialists.architects import Architect, ARCHITECTS

__all__ = [
    "Specialist",
    "RuleBasedSpecialist",
    "DirectSpecialist",
    "DirectImplementer",
    "Generalist",
    "GENERALISTS",
    "DomainSpecialist",
    "DOMAIN_SPECIALISTS",
    "Architect",
    "ARCHITECTS",
]
