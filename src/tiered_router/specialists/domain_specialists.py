"""
Tier 2 domain specialists.

Deep analysis inside a single domain. Escalation from here only goes to the
Tier 3 architects.
"""

from src.tiered_router.models import HandoffCriterion, RiskLevel, Tier
from src.tiered_router.specialists.base import RuleBasedSpecialist


class DomainSpecialist(RuleBasedSpecialist):
    """Tier tag for TIER_2 handlers."""
    tier = Tier.TIER_2
    max_complexity_handled = 8
    base_hours = 8.0
    resources = ("2-3 engineers", "Domain specialist", "Staging environment")


class DatabaseSpecialist(DomainSpecialist):
    id = "database-specialist"
    name = "Database Specialist"
    domain = "data"
    expertise = (
        "advanced query optimization",
        "database performance tuning",
        "complex data modeling",
        "database clustering/sharding",
        "replication strategies",
        "backup and recovery",
        "indexing strategies",
        "connection pooling",
    )
    handoff_criteria = (
        HandoffCriterion(condition="enterprise-data-architecture", target_tier=Tier.TIER_3,
                         target_specialist="data-architect",
                         reason="Enterprise-wide data architecture requires data architect oversight"),
        HandoffCriterion(condition="cross-system-consistency", target_tier=Tier.TIER_3,
                         target_specialist="data-architect",
                         reason="Cross-system data consistency requires architectural coordination"),
    )
    condition_triggers = {
        "enterprise-data-architecture": ("enterprise-wide", "data lake", "warehouse", "governance"),
        "cross-system-consistency": ("consistency", "distributed transaction", "cross-system"),
    }
    approach = "Tune the access path first, then restructure storage where the workload demands it"
    alternatives = ("Read replicas for read-heavy load", "Materialized views for reporting queries")
    steps = (
        "Capture slow query logs and execution plans",
        "Design indexes and schema changes for the hot paths",
        "Apply changes online with verification",
        "Set up replication and backup monitoring",
    )
    success_criteria = ("p95 query latency within target", "Recovery point objective verified")
    risk_templates = (
        (("sharding", "replication"), "Replication lag or split-brain during failover",
         RiskLevel.HIGH, "Automated failover drills with lag alerting"),
    )


class ApiDesignSpecialist(DomainSpecialist):
    id = "api-design-specialist"
    name = "API Design Specialist"
    domain = "integration"
    expertise = (
        "REST API design",
        "GraphQL schema design",
        "API versioning strategies",
        "OpenAPI specification",
        "API documentation",
        "rate limiting",
        "API security",
        "response optimization",
        "error handling patterns",
        "API gateway patterns",
    )
    handoff_criteria = (
        HandoffCriterion(condition="enterprise-integration-architecture", target_tier=Tier.TIER_3,
                         target_specialist="integration-architect",
                         reason="Enterprise-wide API strategy requires integration architect oversight"),
        HandoffCriterion(condition="complex-microservices-orchestration", target_tier=Tier.TIER_3,
                         target_specialist="system-architect",
                         reason="Complex service orchestration requires system architect involvement"),
    )
    condition_triggers = {
        "enterprise-integration-architecture": ("enterprise-wide", "api governance", "b2b", "service mesh"),
        "complex-microservices-orchestration": ("orchestration", "saga", "choreography", "microservices"),
    }
    approach = "Design the API contract first and version it explicitly"
    alternatives = ("GraphQL facade over existing REST endpoints",)
    steps = (
        "Write the OpenAPI contract and error model",
        "Review the contract with consumers",
        "Implement with rate limiting and validation",
        "Publish documentation and a deprecation policy",
    )
    success_criteria = ("Consumers integrate without undocumented behaviour",)
    risk_templates = (
        (("versioning", "version", "breaking change"), "Breaking changes for existing consumers",
         RiskLevel.MEDIUM, "Run old and new versions side by side with usage tracking"),
    )


class AuthSystemsSpecialist(DomainSpecialist):
    id = "auth-systems-specialist"
    name = "Authentication Systems Specialist"
    domain = "security"
    expertise = (
        "OAuth 2.0/OpenID Connect",
        "JWT token management",
        "Single Sign-On (SSO)",
        "Multi-Factor Authentication",
        "Identity providers integration",
        "Session management",
        "Password policies",
        "Account security",
        "Token security",
        "Identity federation",
    )
    handoff_criteria = (
        HandoffCriterion(condition="enterprise-identity-governance", target_tier=Tier.TIER_3,
                         target_specialist="security-architect",
                         reason="Enterprise-wide identity governance requires security architect oversight"),
        HandoffCriterion(condition="complex-compliance-requirements", target_tier=Tier.TIER_3,
                         target_specialist="governance-architect",
                         reason="Complex compliance and governance requirements need architectural guidance"),
    )
    condition_triggers = {
        "enterprise-identity-governance": ("enterprise-wide", "zero-trust", "identity governance", "business units"),
        "complex-compliance-requirements": ("regulatory", "compliance", "gdpr", "hipaa", "sox", "pci"),
    }
    approach = "Centralize identity on a standards-based provider with short-lived tokens"
    alternatives = ("Managed identity service", "Gateway-enforced authentication")
    steps = (
        "Inventory applications and current authentication flows",
        "Select the identity provider and token strategy",
        "Migrate applications to OpenID Connect",
        "Enable multi-factor authentication and session policies",
    )
    success_criteria = ("All applications authenticate through the central provider",)
    risk_templates = (
        (("sso", "identity", "oauth"), "Provider outage locks out all users",
         RiskLevel.MEDIUM, "Break-glass accounts and provider health monitoring"),
    )


class PerformanceOptimizationSpecialist(DomainSpecialist):
    id = "performance-optimization-specialist"
    name = "Performance Optimization Specialist"
    domain = "performance"
    expertise = (
        "performance profiling",
        "memory optimization",
        "CPU optimization",
        "database query optimization",
        "caching strategies",
        "load balancing",
        "code optimization",
        "resource optimization",
        "bottleneck identification",
        "performance monitoring",
    )
    handoff_criteria = (
        HandoffCriterion(condition="distributed-system-optimization", target_tier=Tier.TIER_3,
                         target_specialist="scale-architect",
                         reason="Distributed system performance requires scale architect involvement"),
        HandoffCriterion(condition="enterprise-performance-architecture", target_tier=Tier.TIER_3,
                         target_specialist="system-architect",
                         reason="Enterprise-wide performance architecture requires system architect oversight"),
    )
    condition_triggers = {
        "distributed-system-optimization": ("distributed", "multi-region", "global", "autoscaling"),
        "enterprise-performance-architecture": ("enterprise-wide", "platform-wide", "system-wide"),
    }
    approach = "Profile under production-like load and remove bottlenecks in order of impact"
    alternatives = ("Horizontal scaling with load balancing", "Asynchronous processing for slow paths")
    steps = (
        "Reproduce the workload in a load test",
        "Profile CPU, memory and I/O",
        "Fix the top bottlenecks and re-measure",
        "Add performance regression checks to CI",
    )
    success_criteria = ("Performance budget enforced in CI",)
    risk_templates = (
        (("memory", "leak"), "Memory growth under sustained load",
         RiskLevel.MEDIUM, "Soak tests with heap snapshots before release"),
    )


class MlIntegrationSpecialist(DomainSpecialist):
    id = "ml-integration-specialist"
    name = "ML Integration Specialist"
    domain = "ml"
    expertise = (
        "ML model integration",
        "model serving architectures",
        "AI API integration",
        "model lifecycle management",
        "inference optimization",
        "ML pipeline design",
        "model monitoring",
        "A/B testing for ML",
        "feature store integration",
        "real-time ML serving",
    )
    handoff_criteria = (
        HandoffCriterion(condition="enterprise-ai-architecture", target_tier=Tier.TIER_3,
                         target_specialist="system-architect",
                         reason="Enterprise-wide AI strategy requires system architect involvement"),
        HandoffCriterion(condition="data-governance-requirements", target_tier=Tier.TIER_3,
                         target_specialist="data-architect",
                         reason="Complex data governance and compliance requires data architect oversight"),
    )
    condition_triggers = {
        "enterprise-ai-architecture": ("enterprise-wide", "ai platform", "ai strategy"),
        "data-governance-requirements": ("governance", "pii", "gdpr", "lineage"),
    }
    approach = "Serve the model behind a versioned inference API with monitoring"
    alternatives = ("Batch scoring where latency allows", "Hosted model API")
    steps = (
        "Package the model with its preprocessing",
        "Deploy a versioned inference endpoint",
        "Add drift and latency monitoring",
        "Roll out with an A/B comparison",
    )
    success_criteria = ("Model quality and latency tracked per version",)
    risk_templates = (
        (("model", "prediction", "inference"), "Silent model drift degrades results",
         RiskLevel.MEDIUM, "Drift alerts with automatic fallback to the previous version"),
    )


class TestingStrategySpecialist(DomainSpecialist):
    id = "testing-strategy-specialist"
    name = "Testing Strategy Specialist"
    domain = "testing"
    expertise = (
        "test automation frameworks",
        "CI/CD pipeline testing",
        "testing pyramids and strategies",
        "performance testing",
        "security testing",
        "integration testing",
        "contract testing",
        "test data management",
        "quality gates",
        "testing in production",
    )
    handoff_criteria = (
        HandoffCriterion(condition="enterprise-testing-governance", target_tier=Tier.TIER_3,
                         target_specialist="governance-architect",
                         reason="Enterprise-wide testing governance requires governance architect oversight"),
        HandoffCriterion(condition="complex-distributed-testing", target_tier=Tier.TIER_3,
                         target_specialist="system-architect",
                         reason="Complex distributed system testing requires system architect involvement"),
    )
    condition_triggers = {
        "enterprise-testing-governance": ("enterprise-wide", "compliance", "audit"),
        "complex-distributed-testing": ("distributed", "chaos", "microservices"),
    }
    approach = "Shape the suite as a pyramid and gate releases on it"
    alternatives = ("Contract tests in place of full end-to-end coverage",)
    steps = (
        "Assess current coverage and flaky tests",
        "Define the pyramid and ownership per layer",
        "Automate the suites in CI with quality gates",
        "Track escaped defects per release",
    )
    success_criteria = ("Release pipeline blocks on failing quality gates",)


DOMAIN_SPECIALISTS = (
    DatabaseSpecialist,
    ApiDesignSpecialist,
    AuthSystemsSpecialist,
    PerformanceOptimizationSpecialist,
    MlIntegrationSpecialist,
    TestingStrategySpecialist,
)


__all__ = [
    "DomainSpecialist",
    "DatabaseSpecialist",
    "ApiDesignSpecialist",
    "AuthSystemsSpecialist",
    "PerformanceOptimizationSpecialist",
    "MlIntegrationSpecialist",
    "TestingStrategySpecialist",
    "DOMAIN_SPECIALISTS",
]
