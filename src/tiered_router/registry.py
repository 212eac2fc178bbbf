"""
Specialist registry.

Lookup is domain-first, then tier. Within the requested tier the registry
falls back to that tier's default specialist; it never crosses tiers.
Registration is a one-time start-up step behind a write barrier and is
refused once the registry is sealed.
"""

import threading
from typing import Dict, List, Optional, Tuple

from loguru import logger

from src.tiered_router.errors import NoSpecialistAvailable
from src.tiered_router.models import Tier, TIER_ORDER
from src.tiered_router.specialists import (
    ARCHITECTS,
    DOMAIN_SPECIALISTS,
    GENERALISTS,
    DirectImplementer,
    Specialist,
)
from src.tiered_router.specialists.architects import SystemArchitect
from src.tiered_router.specialists.domain_specialists import ApiDesignSpecialist
from src.tiered_router.specialists.generalists import ArchitectureGeneralist


class RegistrySealedError(RuntimeError):
    """Registration attempted after the registry was sealed."""
    pass


class SpecialistRegistry:
    """Read-mostly index of specialists by id and by (domain, tier)."""

    def __init__(self):
        self._by_id: Dict[str, Specialist] = {}
        self._by_key: Dict[Tuple[str, Tier], Specialist] = {}
        self._defaults: Dict[Tier, Specialist] = {}
        self._write_lock = threading.Lock()
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def register(self, specialist: Specialist, tier_default: bool = False) -> None:
        """
        Add a specialist.

        Args:
            specialist: Specialist instance, tagged with exactly one tier
            tier_default: Use this specialist when no domain match exists in its tier

        Raises:
            RegistrySealedError: If the registry has been sealed
            ValueError: If the id is already registered
        """
        with self._write_lock:
            if self._sealed:
                raise RegistrySealedError(f"Registry is sealed, cannot register {specialist.id}")
            if specialist.id in self._by_id:
                raise ValueError(f"Specialist {specialist.id} already registered")

            self._by_id[specialist.id] = specialist
            self._by_key.setdefault((specialist.domain, specialist.tier), specialist)
            if tier_default:
                self._defaults[specialist.tier] = specialist

        logger.debug("Specialist registered",
                     specialist_id=specialist.id,
                     tier=specialist.tier.value,
                     domain=specialist.domain,
                     tier_default=tier_default)

    def seal(self) -> None:
        with self._write_lock:
            if not self._sealed:
                self._sealed = True
                logger.info("Specialist registry sealed", specialists=len(self._by_id))

    def find(self, domain: str, tier: Tier, fingerprint: Optional[str] = None) -> Specialist:
        """
        Resolve the specialist for a domain at a tier.

        Args:
            domain: Task domain
            tier: Tier to search; other tiers are never consulted
            fingerprint: Fingerprint of the task being resolved, carried on the error

        Returns:
            Matching specialist, or the tier default

        Raises:
            NoSpecialistAvailable: If the tier has neither a match nor a default
        """
        specialist = self._by_key.get((domain, tier)) or self._defaults.get(tier)
        if specialist is None:
            raise NoSpecialistAvailable(
                f"No specialist for domain '{domain}' at {tier.value}",
                fingerprint=fingerprint,
                tier=tier,
                details={"domain": domain}
            )
        return specialist

    def get(self, specialist_id: str) -> Optional[Specialist]:
        return self._by_id.get(specialist_id)

    def specialists(self, tier: Optional[Tier] = None) -> List[Specialist]:
        return [s for s in self._by_id.values() if tier is None or s.tier == tier]

    def get_registry_stats(self) -> Dict[str, object]:
        return {
            "total": len(self._by_id),
            "sealed": self._sealed,
            "by_tier": {t.value: len(self.specialists(t)) for t in TIER_ORDER},
            "defaults": {t.value: s.id for t, s in self._defaults.items()},
        }

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, specialist_id: str) -> bool:
        return specialist_id in self._by_id


_TIER_DEFAULTS = (DirectImplementer, ArchitectureGeneralist, ApiDesignSpecialist, SystemArchitect)


def build_default_registry() -> SpecialistRegistry:
    """Registry holding the built-in specialists for every tier."""
    registry = SpecialistRegistry()
    for specialist_cls in (DirectImplementer,) + GENERALISTS + DOMAIN_SPECIALISTS + ARCHITECTS:
        registry.register(specialist_cls(), tier_default=specialist_cls in _TIER_DEFAULTS)

    logger.info("Default specialist registry built", **registry.get_registry_stats()["by_tier"])
    return registry


__all__ = [
    "RegistrySealedError",
    "SpecialistRegistry",
    "build_default_registry",
]
