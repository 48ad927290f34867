"""Requirement clarification: decide whether to ask before answering.

The analysis runs in a fixed sequence: extract what the conversation already
says, find missing case facts and vague wording, note expert nuances, then
pick an approach. Nuances are informational and never gate the decision.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Callable

from loguru import logger

from advisory_router.heuristics import mentions
from advisory_router.models import (
    ClarificationAnalysis,
    ClarificationContext,
    MissingContextItem,
)

# --- Query-kind predicates (lowercased text in, bool out) ---

_TAX_TERMS = ("tax", "deduction", "credit", "irs", "filing", "return")
_PERSONAL_TERMS = ("my", "personal", "individual")
_BUSINESS_TERMS = ("business", "company", "corporation", "llc", "partnership", "entity")
_DEDUCTION_TERMS = ("deduct", "write off", "write-off", "expense", "claim")
_COMPLIANCE_TERMS = ("deadline", "filing", "requirement", "compliance", "report", "disclosure")
_REPORTING_TERMS = ("financial statement", "balance sheet", "income statement", "cash flow", "gaap", "ifrs")
_ENTITY_INDICATORS = (
    "llc", "s-corp", "s corp", "c-corp", "c corp", "corporation",
    "partnership", "sole proprietor", "proprietorship",
)
_INCOME_TYPE_INDICATORS = (
    "salary", "wage", "capital gain", "dividend", "interest", "rental",
    "passive", "active", "ordinary", "self-employment",
)


def is_tax_query(q: str) -> bool:
    return mentions(q, _TAX_TERMS)


def is_personal_tax_query(q: str) -> bool:
    return mentions(q, _PERSONAL_TERMS, whole_word=True) and is_tax_query(q)


def is_business_query(q: str) -> bool:
    return mentions(q, _BUSINESS_TERMS)


def is_deduction_query(q: str) -> bool:
    return mentions(q, _DEDUCTION_TERMS)


def is_compliance_query(q: str) -> bool:
    return mentions(q, _COMPLIANCE_TERMS)


def is_financial_reporting_query(q: str) -> bool:
    return mentions(q, _REPORTING_TERMS)


# --- Context extraction tables (first match wins) ---

_JURISDICTIONS = (
    "us federal", "federal", "california", "new york", "texas", "florida",
    "united states", "usa", "u.s.", "irs",
    "canada", "ontario", "quebec", "british columbia",
    "united kingdom", "uk", "australia", "india", "singapore",
)
_BUSINESS_TYPES = (
    "retail", "restaurant", "consulting", "technology", "manufacturing",
    "real estate", "healthcare", "construction", "professional services",
)
_FILING_STATUSES = (
    "married filing jointly", "married filing separately",
    "head of household", "qualifying widow", "single",
)
_ENTITY_TYPES = (
    "s-corp", "s corp", "c-corp", "c corp", "llc",
    "partnership", "sole proprietorship", "corporation",
)
_ACCOUNTING_METHODS = (
    ("cash", ("cash basis", "cash method")),
    ("accrual", ("accrual basis", "accrual method")),
)
_JURISDICTION_ALIASES = {"usa": "united states", "u.s.": "united states", "irs": "us federal"}
_YEAR_RE = re.compile(r"\b(20\d{2})\b")


def _first_term(text: str, terms: tuple[str, ...]) -> str | None:
    for term in terms:
        if mentions(text, (term,), whole_word=True):
            return term
    return None


def _canonical_jurisdiction(term: str | None) -> str | None:
    return _JURISDICTION_ALIASES.get(term, term) if term else None


# --- Missing-context rule table ---

@dataclass(frozen=True)
class MissingContextRule:
    applies: Callable[[str], bool]
    field: str
    item: MissingContextItem


MISSING_CONTEXT_RULES: tuple[MissingContextRule, ...] = (
    MissingContextRule(is_tax_query, "jurisdiction", MissingContextItem(
        "jurisdiction", "critical",
        "Tax rules vary significantly by country, state, and province",
        "Which jurisdiction are you asking about? (e.g., US Federal, California, Canada, UK, etc.)",
    )),
    MissingContextRule(is_tax_query, "tax_year", MissingContextItem(
        "tax_year", "high",
        "Tax laws change annually and vary by fiscal year",
        "Which tax year are you planning for? (e.g., 2024, 2025)",
    )),
    MissingContextRule(is_personal_tax_query, "filing_status", MissingContextItem(
        "filing_status", "high",
        "Filing status affects deductions, credits, and tax brackets",
        "What's your filing status? (Single, Married Filing Jointly, Head of Household, etc.)",
    )),
    MissingContextRule(is_business_query, "entity_type", MissingContextItem(
        "entity_type", "critical",
        "Tax treatment differs dramatically between entity types",
        "What type of business entity? (Sole Proprietorship, LLC, S-Corp, C-Corp, Partnership, etc.)",
    )),
    MissingContextRule(is_business_query, "business_type", MissingContextItem(
        "business_type", "medium",
        "Industry-specific rules may apply",
        "What industry is the business in?",
    )),
    MissingContextRule(
        lambda q: is_business_query(q) and is_financial_reporting_query(q),
        "accounting_method",
        MissingContextItem(
            "accounting_method", "high",
            "Cash vs accrual accounting significantly impacts reporting",
            "Which accounting method do you use? (Cash basis or Accrual basis)",
        ),
    ),
    MissingContextRule(is_deduction_query, "jurisdiction", MissingContextItem(
        "jurisdiction", "critical",
        "Deduction eligibility and limits vary by jurisdiction",
        "Which tax jurisdiction? Deduction rules vary significantly.",
    )),
    MissingContextRule(is_compliance_query, "jurisdiction", MissingContextItem(
        "jurisdiction", "critical",
        "Filing deadlines and requirements are jurisdiction-specific",
        "Which jurisdiction's compliance requirements?",
    )),
    MissingContextRule(is_compliance_query, "entity_type", MissingContextItem(
        "entity_type", "high",
        "Compliance requirements differ by entity type",
        "What type of entity? (Individual, Corporation, Partnership, etc.)",
    )),
)

# --- Ambiguity detectors: (predicate, description, clarifying question) ---

AMBIGUITY_RULES: tuple[tuple[Callable[[str], bool], str, str], ...] = (
    (
        lambda q: mentions(q, ("recently", "soon")),
        "Timeframe is vague - specific dates/years matter for tax purposes",
        "What specific timeframe or date are you referring to? (This matters for tax purposes)",
    ),
    (
        lambda q: mentions(q, ("significant", "large", "substantial")),
        "Amount/threshold matters - specific dollar amounts determine tax treatment",
        "What is the specific dollar amount or value involved?",
    ),
    (
        lambda q: "my business" in q and not mentions(q, _ENTITY_INDICATORS),
        "Business structure unclear - tax treatment varies by entity type",
        "What is your business structure? (Sole Proprietorship, LLC, S-Corp, C-Corp, Partnership, etc.)",
    ),
    (
        lambda q: mentions(q, ("deduct",)) and not mentions(q, ("personal", "business")),
        "Personal vs business deduction unclear - rules differ significantly",
        "Is this for personal or business purposes?",
    ),
    (
        lambda q: mentions(q, ("income",)) and not mentions(q, _INCOME_TYPE_INDICATORS),
        "Type of income unclear - ordinary income, capital gains, passive income have different tax treatments",
        "What type of income is this? (Wages, capital gains, dividends, rental income, etc.)",
    ),
)

AMBIGUITY_QUESTIONS: dict[str, str] = {desc: question for _, desc, question in AMBIGUITY_RULES}

# --- Nuance triggers: stems → advisor notes ---

NUANCE_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("home office",), (
        "Exclusive and regular use requirement for home office deduction",
        "Simplified vs actual expense method options",
    )),
    (("depreciat",), (
        "Section 179 vs bonus depreciation vs regular MACRS considerations",
        "Depreciation recapture implications on future sale",
    )),
    (("stock", "equity", "shares"), (
        "Holding period affects long-term vs short-term capital gains rates",
        "Wash sale rules may apply if selling at a loss",
        "ISO vs NSO stock options have different tax treatment",
    )),
    (("401k", "401(k)", "ira", "roth"), (
        "Contribution limits vary by age (50+ catch-up contributions)",
        "Income phase-outs may limit deductibility or eligibility",
    )),
    (("rental", "real estate", "1031"), (
        "Passive activity loss limitations may apply",
        "Real estate professional status has specific requirements",
        "1031 exchange timing requirements are strict (45/180 days)",
    )),
    (("foreign", "international", "overseas"), (
        "FBAR and FATCA reporting requirements for foreign accounts",
        "Foreign tax credit vs deduction election",
        "Treaty provisions may override general rules",
    )),
    (("estimated", "quarterly"), (
        "Safe harbor rules to avoid underpayment penalties",
        "Annualized income method may reduce required payments",
    )),
)

MAX_QUESTIONS = 3


class ClarificationEngine:
    """Rule-based advisor that decides whether to clarify, answer, or both."""

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today

    def analyze_query(
        self, query: str, conversation_history: list[dict[str, str]] | None = None,
    ) -> ClarificationAnalysis:
        lowered = (query or "").lower()

        context = self.extract_conversation_context(query, conversation_history or [])
        missing = self.detect_missing_context(lowered, context)
        ambiguities = self.detect_ambiguities(lowered)
        nuances = self.detect_nuances(lowered)
        needs_clarification, confidence, approach = self.determine_approach(missing, ambiguities, lowered)

        logger.info(
            f"Clarification: {approach} (missing={[m.category for m in missing]}, "
            f"ambiguities={len(ambiguities)}, nuances={len(nuances)})"
        )
        return ClarificationAnalysis(
            needs_clarification=needs_clarification,
            confidence=confidence,
            missing_context=missing,
            ambiguities=ambiguities,
            detected_nuances=nuances,
            conversation_context=context,
            recommended_approach=approach,
        )

    def extract_conversation_context(
        self, query: str, history: list[dict[str, str]],
    ) -> ClarificationContext:
        """Scan every prior turn plus the current query for case facts."""
        text = " ".join([*(h.get("content", "") for h in history), query or ""]).lower()

        method = None
        for name, terms in _ACCOUNTING_METHODS:
            if mentions(text, terms, whole_word=True):
                method = name
                break

        return ClarificationContext(
            jurisdiction=_canonical_jurisdiction(_first_term(text, _JURISDICTIONS)),
            tax_year=self._extract_tax_year(text),
            business_type=_first_term(text, _BUSINESS_TYPES),
            filing_status=_first_term(text, _FILING_STATUSES),
            entity_type=_first_term(text, _ENTITY_TYPES),
            accounting_method=method,
        )

    def _extract_tax_year(self, text: str) -> str | None:
        match = _YEAR_RE.search(text)
        if match:
            return match.group(1)
        if "this year" in text or "current year" in text:
            return str(self._today().year)
        if "next year" in text:
            return str(self._today().year + 1)
        return None

    @staticmethod
    def detect_missing_context(query: str, context: ClarificationContext) -> list[MissingContextItem]:
        missing: list[MissingContextItem] = []
        for rule in MISSING_CONTEXT_RULES:
            if getattr(context, rule.field) is None and rule.applies(query):
                missing.append(rule.item)
        return missing

    @staticmethod
    def detect_ambiguities(query: str) -> list[str]:
        return [desc for applies, desc, _ in AMBIGUITY_RULES if applies(query)]

    @staticmethod
    def detect_nuances(query: str) -> list[str]:
        nuances: list[str] = []
        for triggers, notes in NUANCE_RULES:
            if mentions(query, triggers):
                nuances.extend(notes)
        return nuances

    @staticmethod
    def determine_approach(
        missing_context: list[MissingContextItem], ambiguities: list[str], query: str,
    ) -> tuple[bool, str, str]:
        """Return (needs_clarification, confidence, recommended_approach).

        The count thresholds are product policy; keep them exact.
        """
        critical = sum(1 for m in missing_context if m.importance == "critical")
        high = sum(1 for m in missing_context if m.importance == "high")

        if critical > 0:
            return True, "low", "clarify"
        if high >= 2 or len(ambiguities) >= 2:
            return True, "low", "clarify"
        if high == 1 or len(ambiguities) == 1:
            return True, "medium", "partial_answer_then_clarify"
        return False, "high", "answer"

    @staticmethod
    def generate_clarifying_questions(analysis: ClarificationAnalysis) -> list[str]:
        """At most three questions: critical/high gaps first, then ambiguities."""
        questions = [
            m.suggested_question for m in analysis.missing_context
            if m.importance in ("critical", "high")
        ]
        for ambiguity in analysis.ambiguities:
            question = AMBIGUITY_QUESTIONS.get(ambiguity)
            if question:
                questions.append(question)
        return questions[:MAX_QUESTIONS]
