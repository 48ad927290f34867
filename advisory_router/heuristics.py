"""Keyword heuristics that classify a query by domain, jurisdiction and complexity.

Every signal lives in an ordered rule table so each rule can be tested and
extended on its own. Classification never fails: text with no signal comes
back as a low-confidence 'general' / 'basic' guess.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

from loguru import logger

from advisory_router.models import DocumentHint, QueryClassification


@lru_cache(maxsize=1024)
def _pattern(term: str, whole_word: bool) -> re.Pattern[str]:
    head = r"\b" if term[:1].isalnum() else ""
    tail = r"(?:s|es)?\b" if whole_word and term[-1:].isalnum() else ""
    return re.compile(head + re.escape(term) + tail)


def mentions(text: str, terms: tuple[str, ...] | list[str], whole_word: bool = False) -> bool:
    """True if any term appears in lowercased ``text``.

    Terms always start on a word boundary. With ``whole_word`` they must also
    end on one (a plural suffix is allowed); otherwise they act as stems, so
    "deduct" matches "deductible".
    """
    return any(_pattern(t, whole_word).search(text) for t in terms)


def count_mentions(text: str, terms: tuple[str, ...], whole_word: bool = False) -> int:
    return sum(1 for t in terms if _pattern(t, whole_word).search(text))


@dataclass(frozen=True)
class DomainRule:
    domain: str
    terms: tuple[str, ...]
    weight: float = 1.0


# Ties between domains resolve to the earlier rule.
DOMAIN_RULES: tuple[DomainRule, ...] = (
    DomainRule("tax", ("tax", "deduction", "credit", "irs", "cra", "hmrc", "vat", "gst", "withholding")),
    DomainRule("tax", ("income tax", "corporate tax", "sales tax", "capital gain"), 2.0),
    DomainRule("audit", ("audit", "assurance", "verification", "materiality", "risk assessment", "internal control")),
    DomainRule("financial_reporting", ("gaap", "ifrs", "financial statement", "balance sheet",
                                       "income statement", "cash flow", "revenue recognition")),
    DomainRule("compliance", ("compliance", "regulation", "sox", "sec", "filing", "disclosure", "deadline")),
)

JURISDICTION_TERMS: dict[str, tuple[str, ...]] = {
    "us": ("united states", "usa", "u.s.", "irs", "delaware", "california", "new york", "texas", "florida"),
    "canada": ("canada", "canadian", "cra", "ontario", "quebec", "british columbia"),
    "uk": ("uk", "united kingdom", "britain", "england", "hmrc"),
    "eu": ("eu", "european union", "europe"),
    "australia": ("australia", "australian", "ato"),
    "india": ("india", "indian"),
    "china": ("china", "chinese", "prc"),
    "singapore": ("singapore",),
    "hong_kong": ("hong kong", "hk"),
}

SUB_DOMAIN_RULES: dict[str, tuple[tuple[str, tuple[str, ...]], ...]] = {
    "tax": (
        ("international_tax", ("international", "transfer pricing", "treaty", "cross-border")),
        ("corporate_tax", ("corporate", "c-corp", "s-corp", "corporation")),
        ("individual_tax", ("individual", "personal")),
        ("indirect_tax", ("sales tax", "vat", "gst")),
    ),
    "financial_reporting": (
        ("us_gaap", ("gaap",)),
        ("ifrs", ("ifrs",)),
    ),
}

TECHNICAL_TERMS = (
    "consolidation", "derivative", "hedge", "impairment", "amortization",
    "depreciation", "transfer pricing", "treaty", "apportionment", "deferred tax",
)

# flag name → stems that switch it on
FLAG_RULES: dict[str, tuple[str, ...]] = {
    "requires_calculation": (
        "calculate", "compute", "how much", "npv", "net present value", "irr",
        "internal rate of return", "depreciat", "amortiz", "loan payment", "total",
    ),
    "requires_research": (
        "case law", "precedent", "ruling", "regulation", "standard", "guidance",
        "interpretation", "comparison", "difference between",
    ),
    "requires_document_analysis": (
        "analyze", "analyse", "review", "document", "statement", "receipt",
        "invoice", "contract", "extract", "parse",
    ),
    "requires_real_time_data": (
        "current", "latest", "recent", "today", "now", "real-time", "this week",
    ),
    "requires_deep_reasoning": (
        "explain why", "compare", "evaluate", "analyze the impact", "what would happen if",
        "should i", "best approach", "recommend", "strategy",
    ),
}

_STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
    "is", "are", "was", "were", "what", "how", "can", "could", "should", "this", "that",
    "from", "have", "does", "about", "will", "would", "there", "their",
})


def score_domains(text: str) -> dict[str, float]:
    """Sum rule weights per domain for lowercased ``text``."""
    scores: dict[str, float] = {}
    for rule in DOMAIN_RULES:
        hits = count_mentions(text, rule.terms, whole_word=True)
        if hits:
            scores[rule.domain] = scores.get(rule.domain, 0.0) + hits * rule.weight
    return scores


def detect_domain(text: str) -> tuple[str, float, float]:
    """Return (domain, top_score, runner_up_score)."""
    scores = score_domains(text)
    if not scores:
        return "general", 0.0, 0.0
    order = [r.domain for r in DOMAIN_RULES]
    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], order.index(kv[0])))
    runner_up = ranked[1][1] if len(ranked) > 1 else 0.0
    return ranked[0][0], ranked[0][1], runner_up


def detect_sub_domain(text: str, domain: str) -> str | None:
    for sub_domain, terms in SUB_DOMAIN_RULES.get(domain, ()):
        if mentions(text, terms, whole_word=True):
            return sub_domain
    return None


def detect_jurisdictions(text: str) -> tuple[str, ...]:
    return tuple(
        name for name, terms in JURISDICTION_TERMS.items()
        if mentions(text, terms, whole_word=True)
    )


def assess_complexity(text: str, jurisdictions: tuple[str, ...] = ()) -> str:
    """Score length, question count, technical density and structure."""
    score = 0
    if len(text) > 200:
        score += 2
    elif len(text) > 100:
        score += 1
    if text.count("?") > 1:
        score += 1
    if mentions(text, TECHNICAL_TERMS):
        score += 2
    if len(re.findall(r"\band\b|&", text)) > 1:
        score += 1
    if len(jurisdictions) > 1:
        score += 1
    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
    if len(sentences) > 3:
        score += 1

    if score >= 5:
        return "expert"
    if score >= 3:
        return "advanced"
    if score >= 1:
        return "intermediate"
    return "basic"


def extract_keywords(text: str, limit: int = 10) -> tuple[str, ...]:
    words = (w.strip(".,;:!?()\"'") for w in text.split())
    return tuple(w for w in words if len(w) > 3 and w not in _STOP_WORDS)[:limit]


def calculate_confidence(text: str, domain: str, top: float, runner_up: float) -> float:
    """Normalised confidence in [0, 1]; a close second domain lowers it."""
    if not text.strip():
        return 0.1
    if domain == "general":
        return 0.2 if len(text) < 10 else 0.3
    if len(text) < 10:
        return 0.4
    confidence = 0.6 + 0.1 * min(top, 3.0)
    if runner_up and runner_up >= top:
        confidence -= 0.2
    elif runner_up:
        confidence -= 0.1
    return max(0.0, min(1.0, confidence))


def classify_query(query: str, hint: DocumentHint | None = None) -> QueryClassification:
    """Classify a raw query. Always succeeds with a best-effort guess."""
    text = (query or "").lower()

    domain, top, runner_up = detect_domain(text)
    jurisdictions = detect_jurisdictions(text)
    complexity = assess_complexity(text, jurisdictions)
    flags = {name: mentions(text, terms) for name, terms in FLAG_RULES.items()}

    if complexity in ("advanced", "expert"):
        flags["requires_deep_reasoning"] = True
    if hint is not None and hint.has_document:
        flags["requires_document_analysis"] = True

    classification = QueryClassification(
        domain=domain,
        sub_domain=detect_sub_domain(text, domain),
        jurisdiction=jurisdictions,
        complexity=complexity,
        keywords=extract_keywords(text),
        confidence=calculate_confidence(text, domain, top, runner_up),
        **flags,
    )
    logger.debug(
        f"Classified as {classification.domain}/{classification.complexity} "
        f"(confidence {classification.confidence:.2f}, jurisdictions={list(jurisdictions)})"
    )
    return classification
