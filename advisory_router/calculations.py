"""Solver dispatch: pull numbers out of a query and run the matching solvers.

Each trigger is independent. A trigger whose parameters cannot be extracted
is skipped, and a query with no successful trigger yields None.
"""

from __future__ import annotations

import re
from typing import Any

from loguru import logger

from advisory_router import solvers
from advisory_router.heuristics import mentions
from advisory_router.models import QueryClassification, RoutingDecision

_NUMBER = r"(\d[\d,]*(?:\.\d+)?)\s*(k|m|thousand|million)?\b"
_MULTIPLIERS = {"k": 1_000, "thousand": 1_000, "m": 1_000_000, "million": 1_000_000}

_REVENUE_RE = re.compile(r"(?:revenue|income|earnings|sales)\s*(?:of|is|was|:)?\s*\$?" + _NUMBER, re.I)
_EXPENSES_RE = re.compile(r"(?:expenses|costs|deductions)\s*(?:of|is|were|:)?\s*\$?" + _NUMBER, re.I)
_CASH_FLOWS_RE = re.compile(r"\[([-\d,.\s]+)\]")
_DISCOUNT_RATE_RE = re.compile(r"(?:discount rate|rate)\s*(?:of|is|:)?\s*(\d+(?:\.\d+)?)\s*%?", re.I)
_COST_RE = re.compile(r"(?:cost|price|asset value)\s*(?:of|is|:)?\s*\$?" + _NUMBER, re.I)
_DOLLAR_RE = re.compile(r"\$\s*" + _NUMBER, re.I)
_SALVAGE_RE = re.compile(r"(?:salvage|residual)(?:\s+value)?\s*(?:of|is|:)?\s*\$?" + _NUMBER, re.I)
_YEARS_RE = re.compile(r"(\d+)\s*-?\s*(?:years?|yrs?)\b", re.I)
_PRINCIPAL_RE = re.compile(r"(?:loan|principal|mortgage|amount)\s*(?:of|is|for|:)?\s*\$?" + _NUMBER, re.I)
_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_INTEREST_RE = re.compile(r"(?:rate|interest)\s*(?:of|is|:)?\s*(\d+(?:\.\d+)?)", re.I)
_CURRENT_ASSETS_RE = re.compile(r"current assets?\s*(?:of|is|are|=|:)?\s*\$?" + _NUMBER, re.I)
_CURRENT_LIABILITIES_RE = re.compile(r"current liabilit(?:y|ies)\s*(?:of|is|are|=|:)?\s*\$?" + _NUMBER, re.I)
_INVENTORY_RE = re.compile(r"inventor(?:y|ies)\s*(?:of|is|=|:)?\s*\$?" + _NUMBER, re.I)

RATIO_TRIGGERS = ("current ratio", "quick ratio", "liquidity ratio")
NPV_TRIGGERS = ("npv", "net present value")
IRR_TRIGGERS = ("irr", "internal rate of return")
DEPRECIATION_TRIGGERS = ("depreciation", "depreciate")
AMORTIZATION_TRIGGERS = ("amortization", "amortisation", "amortize", "loan payment", "mortgage payment")

# Longest asset life or loan term taken from query text.
MAX_TERM_YEARS = 100


def parse_amount(digits: str, suffix: str | None = None) -> float:
    """'120,000' → 120000.0; '50', 'k' → 50000.0."""
    value = float(digits.replace(",", ""))
    return value * _MULTIPLIERS.get((suffix or "").lower(), 1)


def _amount(pattern: re.Pattern[str], text: str) -> float | None:
    match = pattern.search(text)
    if not match:
        return None
    return parse_amount(match.group(1), match.group(2))


def _years(query: str) -> int | None:
    """Term in years, or None when absent or longer than MAX_TERM_YEARS."""
    match = _YEARS_RE.search(query)
    if not match:
        return None
    years = int(match.group(1))
    return years if years <= MAX_TERM_YEARS else None


def extract_tax_parameters(query: str, classification: QueryClassification) -> dict[str, Any] | None:
    revenue = _amount(_REVENUE_RE, query)
    if revenue is None:
        return None
    lowered = query.lower()
    jurisdiction = "us"
    for key in ("canada", "uk"):
        if key in classification.jurisdiction:
            jurisdiction = key
    entity_type = "s-corp" if mentions(lowered, ("s-corp", "s corp")) else "c-corp"
    return {
        "revenue": revenue,
        "expenses": _amount(_EXPENSES_RE, query) or 0.0,
        "jurisdiction": jurisdiction,
        "entity_type": entity_type,
    }


def extract_cash_flows(query: str) -> list[float] | None:
    """Cash flows written as a bracketed list: ``[-1000, 300, 400]``."""
    match = _CASH_FLOWS_RE.search(query)
    if not match:
        return None
    try:
        flows = [float(part.strip()) for part in match.group(1).split(",") if part.strip()]
    except ValueError:
        return None
    return flows or None


def extract_discount_rate(query: str) -> float | None:
    match = _DISCOUNT_RATE_RE.search(query)
    return float(match.group(1)) / 100 if match else None


def _depreciation_method(lowered: str) -> str:
    if "declining" in lowered or "double-declining" in lowered:
        return "declining-balance"
    if re.search(r"sum[- ]of[- ](?:the[- ])?years", lowered):
        return "sum-of-years"
    return "straight-line"


def extract_depreciation_parameters(query: str) -> dict[str, Any] | None:
    cost = _amount(_COST_RE, query)
    if cost is None:
        cost = _amount(_DOLLAR_RE, query)
    life = _years(query)
    if cost is None or life is None:
        return None
    return {
        "cost": cost,
        "salvage_value": _amount(_SALVAGE_RE, query) or 0.0,
        "life": life,
        "method": _depreciation_method(query.lower()),
    }


def extract_loan_parameters(query: str) -> dict[str, Any] | None:
    principal = _amount(_PRINCIPAL_RE, query)
    if principal is None:
        principal = _amount(_DOLLAR_RE, query)
    rate = _PERCENT_RE.search(query) or _INTEREST_RE.search(query)
    years = _years(query)
    if principal is None or not rate or years is None:
        return None
    return {
        "principal": principal,
        "annual_rate": float(rate.group(1)) / 100,
        "years": years,
        "payments_per_year": 12,
    }


def extract_ratio_parameters(query: str) -> dict[str, float] | None:
    current_assets = _amount(_CURRENT_ASSETS_RE, query)
    current_liabilities = _amount(_CURRENT_LIABILITIES_RE, query)
    if current_assets is None or current_liabilities is None:
        return None
    return {
        "current_assets": current_assets,
        "current_liabilities": current_liabilities,
        "inventory": _amount(_INVENTORY_RE, query) or 0.0,
    }


def execute_calculations(
    query: str, classification: QueryClassification, routing: RoutingDecision,
) -> dict[str, Any] | None:
    """Run every solver whose trigger fires and whose inputs can be extracted."""
    lowered = query.lower()
    results: dict[str, Any] = {}

    if mentions(lowered, RATIO_TRIGGERS):
        params = extract_ratio_parameters(query)
        if params:
            results["financial_ratios"] = solvers.calculate_financial_ratios(**params)

    if "tax-calculator" in routing.solvers_needed:
        params = extract_tax_parameters(query, classification)
        if params:
            results["tax_calculation"] = solvers.calculate_corporate_tax(**params)

    if mentions(lowered, NPV_TRIGGERS, whole_word=True):
        cash_flows = extract_cash_flows(query)
        rate = extract_discount_rate(query)
        if cash_flows and rate is not None:
            results["npv"] = {
                "npv": solvers.calculate_npv(cash_flows, rate),
                "cash_flows": cash_flows,
                "discount_rate": rate,
                "initial_investment": cash_flows[0],
            }

    if mentions(lowered, IRR_TRIGGERS, whole_word=True):
        cash_flows = extract_cash_flows(query)
        if cash_flows:
            results["irr"] = {
                "irr": solvers.calculate_irr(cash_flows),
                "cash_flows": cash_flows,
                "required_return": 0.10,
            }

    if mentions(lowered, DEPRECIATION_TRIGGERS):
        params = extract_depreciation_parameters(query)
        if params:
            results["depreciation"] = {
                **params,
                "annual_depreciation": solvers.calculate_depreciation(
                    params["cost"], params["salvage_value"], params["life"], params["method"], 1,
                ),
                "schedule": solvers.depreciation_schedule(
                    params["cost"], params["salvage_value"], params["life"], params["method"],
                ),
            }

    if mentions(lowered, AMORTIZATION_TRIGGERS):
        params = extract_loan_parameters(query)
        if params:
            results["amortization"] = {**params, **solvers.calculate_amortization(**params)}

    if not results:
        return None
    logger.info(f"Calculations executed: {', '.join(results)}")
    return results
