"""Tests for handoff package construction and validation."""

import pytest

from src.tiered_router.handoff import (
    CHECKLIST_ITEMS,
    COMMUNICATION_PLAN,
    QUALITY_GATES,
    EscalationState,
    HandoffProtocol,
)
from src.tiered_router.models import (
    ArchitectEscalationPackage,
    ConsultationContext,
    ContinuityInfo,
    CrossDomainImpact,
    HandoffPackage,
    RiskLevel,
    Task,
    Tier,
)
from src.tiered_router.registry import build_default_registry
from src.tiered_router.specialists.generalists import ArchitectureGeneralist

from tests.conftest import make_decision


@pytest.fixture
def protocol():
    return HandoffProtocol()


def escalation(task, criterion_index, score=7.5):
    registry = build_default_registry()
    source = ArchitectureGeneralist()
    decision = make_decision(Tier.TIER_1, domain="architecture", score=score)
    context = ConsultationContext(decision=decision)
    analysis = source.analyze(task, context)
    recommendation = source.recommend(analysis, task, context)
    criterion = source.handoff_criteria[criterion_index]
    return EscalationState(
        task=task, decision=decision, source=source, analysis=analysis,
        recommendation=recommendation, criterion=criterion,
        target=registry.get(criterion.target_specialist),
    )


class TestSpecialistHandoff:
    @pytest.fixture
    def package(self, protocol):
        task = Task(description="Split the order monolith into microservices",
                    requirements=["Orders keep their ids"], constraints=["No downtime"])
        return protocol.build_handoff(escalation(task, 0))

    def test_package_contents(self, package):
        assert type(package) is HandoffPackage
        assert package.source_tier == Tier.TIER_1
        assert package.target_tier == Tier.TIER_2
        assert package.target_specialist == "api-design-specialist"
        assert package.summary.problem == "Split the order monolith into microservices"
        assert package.preserved_context.business_requirements == ["Orders keep their ids"]
        assert package.preserved_context.technical_constraints == ["No downtime"]
        assert package.preserved_context.timeline == "1-4 hours"
        assert package.continuity.completed_work == ["architecture-generalist consultation at TIER_1"]
        assert package.continuity.remaining_tasks[-1] == "Satisfy requirement: Orders keep their ids"
        assert package.notified == ["architecture-generalist", "api-design-specialist"]

    def test_checks_pass(self, package):
        assert [c.name for c in package.checklist] == CHECKLIST_ITEMS
        assert [c.name for c in package.quality_gates] == QUALITY_GATES
        assert all(c.passed for c in package.checklist + package.quality_gates)

    def test_validates(self, protocol, package):
        validation = protocol.validate(package)
        assert validation.valid
        assert validation.continuity_gaps == []


class TestArchitectHandoff:
    @pytest.fixture
    def package(self, protocol):
        task = Task(
            description="Coordinate enterprise-wide rollout of the new checkout design",
            context={"existing_systems": ["billing", "orders", "auth"], "stakeholder_count": 6,
                     "stakeholders": ["cfo"], "timeline": "Q3"},
        )
        return protocol.build_handoff(escalation(task, 1))

    def test_architect_package(self, package):
        assert isinstance(package, ArchitectEscalationPackage)
        assert package.target_specialist == "system-architect"
        assert package.target_tier == Tier.TIER_3
        assert package.notified == ["architecture-generalist", "system-architect", "cfo"]
        assert package.preserved_context.timeline == "Q3"
        assert package.communication_plan == COMMUNICATION_PLAN

    def test_impact_and_complexity(self, package):
        assert package.cross_domain_impact.affected_domains == ["architecture"]
        assert package.cross_domain_impact.affected_systems == ["billing", "orders", "auth"]
        complexity = package.decision_complexity
        assert complexity.stakeholder_count == 6
        assert complexity.affected_systems == 3
        assert complexity.risk_level == RiskLevel.MEDIUM
        assert complexity.score == pytest.approx(5.9)
        assert complexity.justifications == ["Multiple stakeholder coordination required"]

    def test_derived_stakeholders(self, package):
        assert package.stakeholders == [
            "enterprise-architect", "technical-leads", "program-manager", "business-stakeholders",
        ]

    def test_validates(self, protocol, package):
        assert protocol.validate(package).valid


class TestValidation:
    @pytest.fixture
    def package(self, protocol):
        return protocol.build_handoff(escalation(Task(description="Split the monolith into microservices"), 0))

    def test_missing_required_field(self, protocol, package):
        broken = package.model_copy(update={"summary": package.summary.model_copy(update={"problem": " "})})
        validation = protocol.validate(broken)
        assert not validation.valid
        assert validation.missing_fields == ["problem"]

    def test_unset_context_list_is_missing(self, protocol, package):
        context = package.preserved_context.model_copy(update={"technical_constraints": None})
        validation = protocol.validate(package.model_copy(update={"preserved_context": context}))
        assert validation.missing_fields == ["technical_constraints"]

    def test_unevaluated_checks_fail(self, protocol, package):
        validation = protocol.validate(package.model_copy(update={"checklist": []}))
        assert not validation.valid
        assert "checks-not-evaluated" in validation.failed_checks

    def test_failed_check_is_reported(self, protocol, package):
        checklist = [c.model_copy(update={"passed": False}) if c.name == "Context preserved" else c
                     for c in package.checklist]
        validation = protocol.validate(package.model_copy(update={"checklist": checklist}))
        assert validation.failed_checks == ["Context preserved"]

    def test_continuity_gaps_do_not_block(self, protocol, package):
        continuity = ContinuityInfo(completed_work=["generalist consultation"])
        validation = protocol.validate(package.model_copy(update={"continuity": continuity}))
        assert validation.valid
        assert validation.continuity_gaps == ["missing-remaining-tasks", "missing-decisions"]

    def test_empty_steps_fail_source_gate(self, protocol):
        state = escalation(Task(description="Split the monolith into microservices"), 0)
        state.recommendation = state.recommendation.model_copy(update={"implementation_steps": []})
        validation = protocol.validate(protocol.build_handoff(state))
        assert not validation.valid
        assert "Source consultation complete" in validation.failed_checks


class TestScoring:
    def test_decision_complexity_is_capped(self):
        assert HandoffProtocol.decision_complexity_score(20, 5, 10, RiskLevel.HIGH) == 10.0

    def test_security_and_data_stakeholders(self):
        impact = CrossDomainImpact(affected_domains=["security", "data"], security_impact=True, data_flow_impact=True)
        assert HandoffProtocol.derive_stakeholders(impact, 1) == [
            "enterprise-architect", "technical-leads", "security-architect", "compliance-team",
            "data-architect", "data-governance",
        ]
