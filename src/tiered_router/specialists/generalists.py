"""
Tier 1 generalists.

Broad consultation across the common domains. Each generalist hands off to a
Tier 2 specialist for deep work in its area and straight to a Tier 3 architect
when the work reaches enterprise scope.
"""

from src.tiered_router.models import HandoffCriterion, RiskLevel, Tier
from src.tiered_router.specialists.base import RuleBasedSpecialist


class Generalist(RuleBasedSpecialist):
    """Tier tag for TIER_1 handlers."""
    tier = Tier.TIER_1
    max_complexity_handled = 6
    base_hours = 2.0
    resources = ("1-2 engineers", "Generalist review session")


class ArchitectureGeneralist(Generalist):
    id = "architecture-generalist"
    name = "Architecture Generalist"
    domain = "architecture"
    max_complexity_handled = 7
    expertise = (
        "microservices architecture",
        "design patterns",
        "scalability planning",
        "system integration",
        "component design",
        "architectural patterns",
        "system design",
        "modular architecture",
    )
    handoff_criteria = (
        HandoffCriterion(condition="complex-integration-design", target_tier=Tier.TIER_2,
                         target_specialist="api-design-specialist",
                         reason="Complex service boundaries require specialized API design expertise"),
        HandoffCriterion(condition="cross-domain-coordination", target_tier=Tier.TIER_3,
                         target_specialist="system-architect",
                         reason="Multi-domain coordination requires architectural oversight"),
    )
    condition_triggers = {
        "complex-integration-design": ("microservices", "service mesh", "api gateway", "contract"),
        "cross-domain-coordination": ("enterprise-wide", "cross-domain", "organization-wide", "platform-wide"),
    }
    approach = "Define component boundaries and interfaces before implementation"
    alternatives = ("Modular monolith with clear internal boundaries", "Incremental extraction of services")
    steps = (
        "Map current components and their dependencies",
        "Define target boundaries and interfaces",
        "Implement behind stable interfaces",
        "Review the design with the owning team",
    )
    success_criteria = ("Components can be changed and deployed independently",)
    risk_templates = (
        (("distributed", "microservices"), "Distributed failure modes increase operational load",
         RiskLevel.MEDIUM, "Add timeouts, retries and tracing at every service boundary"),
    )


class SecurityGeneralist(Generalist):
    id = "security-generalist"
    name = "Security Generalist"
    domain = "security"
    expertise = (
        "authentication",
        "authorization",
        "data protection",
        "oauth",
        "jwt",
        "api security",
        "input validation",
        "secure coding",
        "basic encryption",
    )
    handoff_criteria = (
        HandoffCriterion(condition="advanced-threat-modeling", target_tier=Tier.TIER_2,
                         target_specialist="auth-systems-specialist",
                         reason="Advanced threat modeling requires specialized security expertise"),
        HandoffCriterion(condition="compliance-requirements", target_tier=Tier.TIER_3,
                         target_specialist="security-architect",
                         reason="Compliance frameworks require security architecture expertise"),
    )
    condition_triggers = {
        "advanced-threat-modeling": ("threat", "sso", "identity", "mfa", "oauth", "federation"),
        "compliance-requirements": ("compliance", "regulatory", "gdpr", "hipaa", "pci", "sox", "audit"),
    }
    approach = "Apply least-privilege access and validate all inputs at trust boundaries"
    alternatives = ("Managed identity provider instead of custom authentication",)
    steps = (
        "Identify trust boundaries and sensitive data",
        "Implement authentication and authorization checks",
        "Add input validation and secure defaults",
        "Run a security-focused code review",
    )
    success_criteria = ("No unauthenticated access to protected resources",)
    risk_templates = (
        (("token", "jwt", "session"), "Token leakage or session fixation",
         RiskLevel.MEDIUM, "Short-lived tokens with rotation and secure cookie flags"),
    )


class PerformanceGeneralist(Generalist):
    id = "performance-generalist"
    name = "Performance Generalist"
    domain = "performance"
    expertise = (
        "performance optimization",
        "caching strategies",
        "basic profiling",
        "monitoring setup",
        "query optimization",
        "resource management",
        "load testing",
        "bottleneck identification",
    )
    handoff_criteria = (
        HandoffCriterion(condition="complex-performance-analysis", target_tier=Tier.TIER_2,
                         target_specialist="performance-optimization-specialist",
                         reason="Complex performance bottlenecks require deep analysis expertise"),
        HandoffCriterion(condition="system-wide-optimization", target_tier=Tier.TIER_3,
                         target_specialist="scale-architect",
                         reason="System-wide performance architecture requires scaling expertise"),
    )
    condition_triggers = {
        "complex-performance-analysis": ("memory", "cpu", "profiling", "bottleneck", "latency"),
        "system-wide-optimization": ("system-wide", "global", "multi-region", "autoscaling", "capacity"),
    }
    approach = "Measure first, then optimize the dominant bottleneck"
    alternatives = ("Add caching in front of the slow path", "Scale vertically as a stopgap")
    steps = (
        "Establish a baseline with profiling and metrics",
        "Identify the dominant bottleneck",
        "Apply the targeted optimization",
        "Verify improvement under load",
    )
    success_criteria = ("Latency and throughput targets met under expected load",)
    risk_templates = (
        (("cache",), "Stale or inconsistent cached data",
         RiskLevel.MEDIUM, "Explicit invalidation and bounded TTLs"),
    )


class DataGeneralist(Generalist):
    id = "data-generalist"
    name = "Data Generalist"
    domain = "data"
    expertise = (
        "database schema design",
        "data modeling",
        "basic analytics",
        "data migration",
        "query optimization",
        "data validation",
        "backup strategies",
        "data relationships",
    )
    handoff_criteria = (
        HandoffCriterion(condition="complex-data-architecture", target_tier=Tier.TIER_2,
                         target_specialist="database-specialist",
                         reason="Complex data architectures require specialized database expertise"),
        HandoffCriterion(condition="enterprise-data-strategy", target_tier=Tier.TIER_3,
                         target_specialist="data-architect",
                         reason="Enterprise-wide data governance requires data architecture expertise"),
    )
    condition_triggers = {
        "complex-data-architecture": ("sharding", "replication", "partitioning", "clustering", "migration"),
        "enterprise-data-strategy": ("governance", "data lake", "warehouse", "master data", "enterprise-wide"),
    }
    approach = "Model the data explicitly and migrate in reversible steps"
    alternatives = ("Dual-write with backfill", "Read-through view over the old schema")
    steps = (
        "Document the current schema and access patterns",
        "Design the target model and migration plan",
        "Run the migration with verification queries",
        "Validate data integrity after cut-over",
    )
    success_criteria = ("Row counts and checksums match after migration",)
    risk_templates = (
        (("migration", "schema"), "Data loss or inconsistency during migration",
         RiskLevel.HIGH, "Take verified backups and rehearse the migration on a copy"),
    )


class IntegrationGeneralist(Generalist):
    id = "integration-generalist"
    name = "Integration Generalist"
    domain = "integration"
    expertise = (
        "REST API design",
        "GraphQL implementation",
        "third-party integration",
        "service communication",
        "webhook implementation",
        "basic event-driven architecture",
        "API authentication",
        "message queuing",
    )
    handoff_criteria = (
        HandoffCriterion(condition="complex-integration-patterns", target_tier=Tier.TIER_2,
                         target_specialist="api-design-specialist",
                         reason="Complex integration architectures require specialized API expertise"),
        HandoffCriterion(condition="enterprise-integration-strategy", target_tier=Tier.TIER_3,
                         target_specialist="integration-architect",
                         reason="Enterprise messaging and service mesh require integration architecture"),
    )
    condition_triggers = {
        "complex-integration-patterns": ("versioning", "gateway", "graphql", "orchestration", "saga"),
        "enterprise-integration-strategy": ("service mesh", "enterprise service bus", "b2b", "enterprise-wide"),
    }
    approach = "Integrate through versioned contracts with idempotent handlers"
    alternatives = ("Polling integration where webhooks are unreliable",)
    steps = (
        "Agree on the contract and error semantics",
        "Implement the client or handler with retries",
        "Add contract tests against the partner sandbox",
        "Monitor delivery and failure rates",
    )
    resources = ("1-2 engineers", "Partner sandbox access")
    success_criteria = ("Integration survives partner outages without data loss",)
    risk_templates = (
        (("third-party", "vendor", "external", "partner"), "External dependency availability",
         RiskLevel.MEDIUM, "Circuit breaker and queued retries for outbound calls"),
    )


class FrontendGeneralist(Generalist):
    id = "frontend-generalist"
    name = "Frontend Generalist"
    domain = "frontend"
    expertise = (
        "component architecture",
        "state management",
        "responsive design",
        "basic accessibility",
        "ui/ux patterns",
        "css frameworks",
        "javascript frameworks",
        "performance optimization",
    )
    handoff_criteria = (
        HandoffCriterion(condition="complex-frontend-architecture", target_tier=Tier.TIER_2,
                         target_specialist="testing-strategy-specialist",
                         reason="Complex frontend architectures need a dedicated testing strategy"),
        HandoffCriterion(condition="advanced-ux-patterns", target_tier=Tier.TIER_3,
                         target_specialist="system-architect",
                         reason="Design systems spanning products require architectural ownership"),
    )
    condition_triggers = {
        "complex-frontend-architecture": ("micro-frontend", "micro-frontends", "state machine", "offline"),
        "advanced-ux-patterns": ("design system", "white-label", "multi-brand"),
    }
    approach = "Build composable components with a single source of state"
    alternatives = ("Server-rendered pages for mostly static views",)
    steps = (
        "Break the view into components",
        "Define state ownership and data flow",
        "Implement with accessibility checks",
        "Test across breakpoints and browsers",
    )
    success_criteria = ("Core views meet accessibility and performance budgets",)


GENERALISTS = (
    ArchitectureGeneralist,
    SecurityGeneralist,
    PerformanceGeneralist,
    DataGeneralist,
    IntegrationGeneralist,
    FrontendGeneralist,
)


__all__ = [
    "Generalist",
    "ArchitectureGeneralist",
    "SecurityGeneralist",
    "PerformanceGeneralist",
    "DataGeneralist",
    "IntegrationGeneralist",
    "FrontendGeneralist",
    "GENERALISTS",
]
