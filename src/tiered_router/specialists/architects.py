"""
Tier 3 architects.

Architects coordinate enterprise-scope work and are the end of every
escalation path, so none of them declares handoff criteria.
"""

from typing import List

from src.tiered_router.classifier import detect_domains
from src.tiered_router.models import ConsultationContext, RiskLevel, Task, Tier
from src.tiered_router.specialists.base import RuleBasedSpecialist


class Architect(RuleBasedSpecialist):
    """Tier tag for TIER_3 handlers."""
    tier = Tier.TIER_3
    max_complexity_handled = 10
    base_hours = 24.0
    resources = ("Architecture board time", "Cross-team working group", "Programme manager")

    def domain_findings(self, task: Task, context: ConsultationContext) -> List[str]:
        domains = detect_domains(task.full_text)
        findings = []
        if len(domains) > 1:
            findings.append(f"Work spans {len(domains)} domains: {', '.join(domains)}")
        if context.handoff is not None and context.handoff.continuity.remaining_tasks:
            findings.append(f"{len(context.handoff.continuity.remaining_tasks)} tasks carried over from "
                            f"{context.handoff.source_tier.value}")
        return findings


class SystemArchitect(Architect):
    id = "system-architect"
    name = "System Architect"
    domain = "architecture"
    expertise = (
        "enterprise architecture patterns",
        "cross-system integration",
        "technology strategy",
        "architectural governance",
        "system design principles",
        "scalability architecture",
        "distributed systems",
        "architectural decision making",
    )
    approach = "Set a target architecture with decision records and migrate domain by domain"
    alternatives = ("Strangler-fig migration per capability", "Platform team owning shared concerns")
    steps = (
        "Document the current-state architecture",
        "Agree the target state and principles with the architecture board",
        "Record decisions as architecture decision records",
        "Sequence the migration across teams",
        "Review progress against the target state",
    )
    success_criteria = ("Architecture decisions recorded and adopted by all affected teams",)


class IntegrationArchitect(Architect):
    id = "integration-architect"
    name = "Integration Architect"
    domain = "integration"
    expertise = (
        "enterprise integration patterns",
        "service mesh architecture",
        "API governance and strategy",
        "event-driven architecture",
        "microservices orchestration",
        "integration platform design",
        "data integration architecture",
        "B2B integration patterns",
        "hybrid cloud integration",
        "enterprise service bus (ESB)",
    )
    approach = "Standardize integration on governed APIs and an event backbone"
    alternatives = ("Service mesh for east-west traffic", "Integration platform as a service")
    steps = (
        "Catalogue existing integrations and owners",
        "Define API and event governance",
        "Introduce the shared integration backbone",
        "Migrate point-to-point integrations",
    )
    success_criteria = ("No new point-to-point integrations outside governance",)


class ScaleArchitect(Architect):
    id = "scale-architect"
    name = "Scale Architect"
    domain = "performance"
    expertise = (
        "horizontal scaling patterns",
        "distributed system design",
        "load balancing strategies",
        "auto-scaling architectures",
        "performance optimization at scale",
        "capacity planning",
        "distributed data management",
        "microservices scaling",
        "cloud-native scaling",
        "global distribution",
    )
    approach = "Plan capacity from demand forecasts and scale stateless tiers horizontally"
    alternatives = ("Regional sharding of state", "Edge caching for global reads")
    steps = (
        "Forecast demand and define capacity targets",
        "Make services stateless and horizontally scalable",
        "Introduce autoscaling with load tests",
        "Run game days for regional failure",
    )
    success_criteria = ("Capacity headroom maintained at forecast peak",)


class SecurityArchitect(Architect):
    id = "security-architect"
    name = "Security Architect"
    domain = "security"
    expertise = (
        "enterprise security architecture",
        "security governance frameworks",
        "threat modeling and risk assessment",
        "compliance and regulatory requirements",
        "zero-trust architecture",
        "identity and access management",
        "security operations center design",
        "incident response planning",
        "security metrics and KPIs",
        "security culture and training",
    )
    approach = "Adopt a zero-trust reference architecture enforced by central identity and policy"
    alternatives = ("Phased perimeter hardening before zero-trust rollout",)
    steps = (
        "Run enterprise threat modeling per business unit",
        "Define the identity, device and network trust policies",
        "Map controls to regulatory requirements",
        "Pilot with one business unit and measure",
        "Roll out across units with security operations monitoring",
    )
    success_criteria = ("Every access decision evaluated against central policy", "Compliance controls evidenced")
    risk_templates = (
        (("regulatory", "compliance", "audit"), "Control gaps found during regulatory audit",
         RiskLevel.HIGH, "Continuous control monitoring with evidence collection"),
    )


class DataArchitect(Architect):
    id = "data-architect"
    name = "Data Architect"
    domain = "data"
    expertise = (
        "enterprise data architecture",
        "data lake and warehouse design",
        "data governance frameworks",
        "master data management",
        "data integration patterns",
        "big data technologies",
        "real-time data processing",
        "data quality frameworks",
        "metadata management",
        "data privacy and compliance",
    )
    approach = "Establish domain data ownership with shared governance and quality contracts"
    alternatives = ("Central warehouse with curated marts", "Data mesh with federated governance")
    steps = (
        "Map data domains and owners",
        "Define governance, quality and privacy policies",
        "Design the lake and warehouse topology",
        "Migrate pipelines domain by domain",
    )
    success_criteria = ("Critical datasets have owners, contracts and quality checks",)


class GovernanceArchitect(Architect):
    id = "governance-architect"
    name = "Governance Architect"
    domain = "compliance"
    expertise = (
        "enterprise governance frameworks",
        "regulatory compliance management",
        "risk management frameworks",
        "policy development and enforcement",
        "audit management",
        "governance automation",
        "compliance monitoring",
        "stakeholder management",
        "governance metrics and reporting",
        "organizational change management",
    )
    approach = "Codify policies and automate compliance evidence collection"
    alternatives = ("Periodic manual audits with remediation tracking",)
    steps = (
        "Inventory applicable regulations and policies",
        "Map policies to automated controls",
        "Automate evidence collection and reporting",
        "Run change management with affected stakeholders",
    )
    success_criteria = ("Audit evidence available on demand",)


ARCHITECTS = (
    SystemArchitect,
    IntegrationArchitect,
    ScaleArchitect,
    SecurityArchitect,
    DataArchitect,
    GovernanceArchitect,
)


__all__ = [
    "Architect",
    "SystemArchitect",
    "IntegrationArchitect",
    "ScaleArchitect",
    "SecurityArchitect",
    "DataArchitect",
    "GovernanceArchitect",
    "ARCHITECTS",
]
