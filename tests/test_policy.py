"""Tests for the routing policy."""

from advisory_router.models import QueryClassification
from advisory_router.policy import (
    PROVIDER_PREFERENCE,
    apply_tier,
    domain_solvers,
    order_fallbacks,
    route_query,
    select_rule,
)


def test_rule_order():
    assert select_rule(QueryClassification(requires_document_analysis=True, requires_research=True)).provider == "claude"
    assert select_rule(QueryClassification(requires_real_time_data=True)).provider == "perplexity"
    assert select_rule(QueryClassification(complexity="expert")).provider == "claude"
    assert select_rule(QueryClassification(complexity="basic")).provider == "gemini"
    assert select_rule(QueryClassification(complexity="advanced")).provider == "openai"


def test_fallbacks_exclude_preferred_and_dedupe():
    fallbacks = order_fallbacks("claude", ["gemini", "claude", "openai", "gemini", "custom"])
    assert fallbacks == ["openai", "gemini", "custom"]


def test_route_fallbacks_follow_preference_order():
    decision = route_query(QueryClassification(complexity="advanced"), "pro")
    assert decision.preferred_provider == "openai"
    assert decision.primary_model == "gpt-4o"
    assert decision.fallback_providers == [p for p in PROVIDER_PREFERENCE if p != "openai"]


def test_free_tier_gets_light_model():
    decision = route_query(QueryClassification(complexity="advanced"), "free")
    assert decision.primary_model == "gpt-4o-mini"
    assert apply_tier("claude-3-5-sonnet", "claude", "tax", "") == ("claude-3-5-haiku", "claude")


def test_enterprise_tax_gets_expert_alias():
    c = QueryClassification(domain="tax", complexity="advanced")
    decision = route_query(c, "enterprise")
    assert decision.primary_model == "luca-tax-expert"
    assert decision.preferred_provider == "openai"
    assert "openai" not in decision.fallback_providers


def test_tax_solvers():
    c = QueryClassification(domain="tax", sub_domain="international_tax", requires_calculation=True)
    assert domain_solvers(c) == ["multi-jurisdiction-tax", "tax-calculator"]


def test_generic_calculation_gets_financial_calculator():
    c = QueryClassification(domain="general", requires_calculation=True)
    assert domain_solvers(c) == ["financial-calculator"]


def test_document_rule_adds_parser_first():
    c = QueryClassification(domain="audit", requires_document_analysis=True)
    decision = route_query(c, "pro")
    assert decision.solvers_needed == ["document-parser", "risk-assessment"]


def test_available_limits_fallbacks():
    decision = route_query(QueryClassification(complexity="basic"), "pro", available=["openai", "gemini"])
    assert decision.preferred_provider == "gemini"
    assert decision.fallback_providers == ["openai"]


def test_route_is_pure():
    c = QueryClassification(domain="compliance", jurisdiction=("us",), complexity="intermediate")
    assert route_query(c, "pro") == route_query(c, "pro")
    assert c.jurisdiction == ("us",)
