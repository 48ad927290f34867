"""Routing policy: classification + subscription tier → RoutingDecision.

Pure functions over static tables. Nothing here performs I/O or mutates
shared state, so the policy can be exercised directly in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from advisory_router.models import QueryClassification, RoutingDecision

OPENAI = "openai"
AZURE_OPENAI = "azure-openai"
CLAUDE = "claude"
GEMINI = "gemini"
PERPLEXITY = "perplexity"

# Static preference order used for every fallback list.
PROVIDER_PREFERENCE: tuple[str, ...] = (OPENAI, AZURE_OPENAI, CLAUDE, GEMINI, PERPLEXITY)

# Always tried, even when routing or health would leave them out.
BASELINE_PROVIDERS: tuple[str, ...] = (AZURE_OPENAI, OPENAI)

TIERS = ("free", "pro", "professional", "enterprise")
PAID_TIERS = ("pro", "professional", "enterprise")

# Free tier is capped at each provider's light model.
LIGHT_MODELS: dict[str, str] = {
    OPENAI: "gpt-4o-mini",
    AZURE_OPENAI: "gpt-4o-mini",
    CLAUDE: "claude-3-5-haiku",
    GEMINI: "gemini-2.0-flash",
    PERPLEXITY: "sonar",
}

# Enterprise tier gets domain-tuned aliases, served through OpenAI.
ENTERPRISE_DOMAIN_MODELS: dict[str, str] = {
    "tax": "luca-tax-expert",
    "audit": "luca-audit-expert",
}

_BASE_TOKENS = {"basic": 500, "intermediate": 800, "advanced": 1200, "expert": 2000}


@dataclass(frozen=True)
class PolicyRule:
    name: str
    applies: Callable[[QueryClassification], bool]
    provider: str
    model: str
    solvers: tuple[str, ...] = ()


# First matching rule wins.
POLICY_RULES: tuple[PolicyRule, ...] = (
    PolicyRule(
        "document_analysis", lambda c: c.requires_document_analysis,
        CLAUDE, "claude-3-5-sonnet", ("document-parser",),
    ),
    PolicyRule(
        "research", lambda c: c.requires_real_time_data or c.requires_research,
        PERPLEXITY, "sonar-pro",
    ),
    PolicyRule(
        "deep_reasoning", lambda c: c.requires_deep_reasoning or c.complexity == "expert",
        CLAUDE, "claude-3-5-sonnet",
    ),
    PolicyRule(
        "cost_effective", lambda c: c.complexity in ("basic", "intermediate"),
        GEMINI, "gemini-2.0-flash-exp",
    ),
    PolicyRule("default", lambda c: True, OPENAI, "gpt-4o"),
)


def select_rule(classification: QueryClassification) -> PolicyRule:
    for rule in POLICY_RULES:
        if rule.applies(classification):
            return rule
    return POLICY_RULES[-1]


def domain_solvers(classification: QueryClassification) -> list[str]:
    """Solvers implied by the domain, in the order they should run."""
    c = classification
    solvers: list[str] = []
    if c.domain == "tax":
        if c.sub_domain == "international_tax":
            solvers.append("multi-jurisdiction-tax")
        if c.requires_calculation:
            solvers.append("tax-calculator")
    elif c.domain == "audit":
        solvers.append("risk-assessment")
        if c.requires_calculation:
            solvers.append("materiality-calculator")
    elif c.domain == "financial_reporting":
        if c.sub_domain in ("us_gaap", "ifrs"):
            solvers.append("standards-lookup")
        if c.requires_calculation:
            solvers.append("financial-metrics")
    elif c.domain == "compliance":
        solvers.append("regulatory-check")
        if c.jurisdiction:
            solvers.append("jurisdiction-rules")

    if c.requires_calculation and "tax-calculator" not in solvers:
        solvers.append("financial-calculator")
    return solvers


def order_fallbacks(preferred: str, available: Iterable[str]) -> list[str]:
    """Every available provider except ``preferred``, in preference order, no duplicates."""
    pool = list(dict.fromkeys(available))
    known = [p for p in PROVIDER_PREFERENCE if p in pool]
    extra = [p for p in pool if p not in PROVIDER_PREFERENCE]
    return [p for p in known + extra if p != preferred]


def apply_tier(model: str, provider: str, domain: str, tier: str) -> tuple[str, str]:
    """Gate the model by subscription tier. Returns (model, provider)."""
    tier = (tier or "free").lower()
    if tier == "enterprise" and domain in ENTERPRISE_DOMAIN_MODELS:
        return ENTERPRISE_DOMAIN_MODELS[domain], OPENAI
    if tier not in PAID_TIERS:
        return LIGHT_MODELS.get(provider, model), provider
    return model, provider


def estimate_tokens(classification: QueryClassification) -> int:
    tokens = _BASE_TOKENS.get(classification.complexity, 500)
    if classification.requires_research:
        tokens += 500
    if classification.requires_document_analysis:
        tokens += 300
    return tokens


def route_query(
    classification: QueryClassification,
    tier: str,
    available: Iterable[str] | None = None,
) -> RoutingDecision:
    """Map a classification and tier to a model, provider and solver set."""
    rule = select_rule(classification)
    model, provider = apply_tier(rule.model, rule.provider, classification.domain, tier)

    solvers = list(rule.solvers)
    for solver in domain_solvers(classification):
        if solver not in solvers:
            solvers.append(solver)

    fallbacks = order_fallbacks(provider, PROVIDER_PREFERENCE if available is None else available)

    reasoning = (
        f"Classified as {classification.domain} query with {classification.complexity} complexity "
        f"(rule: {rule.name}, tier: {tier or 'free'}). Using {provider} with {model}."
    )
    if solvers:
        reasoning += f" Engaging {', '.join(solvers)}."

    return RoutingDecision(
        primary_model=model,
        preferred_provider=provider,
        fallback_providers=fallbacks,
        solvers_needed=solvers,
        reasoning=reasoning,
        confidence=classification.confidence,
        estimated_tokens=estimate_tokens(classification),
    )
