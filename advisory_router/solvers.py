"""Deterministic financial math.

Every function here is pure and total over finite numeric input: degenerate
cases (zero life, zero rate, zero denominators, a non-converging IRR) return
a defined value instead of raising.
"""

from __future__ import annotations

import math
from typing import Any

DEPRECIATION_METHODS = ("straight-line", "declining-balance", "sum-of-years")

# jurisdiction → (display name, federal rate, sub-national rate, notes)
CORPORATE_TAX_RATES: dict[str, tuple[str, float, float, tuple[str, ...]]] = {
    "us": ("United States", 0.21, 0.06, (
        "Federal corporate tax rate: 21% (flat rate post-TCJA)",
        "State tax estimated at 6% (varies by state)",
        "Actual tax may vary based on deductions, credits, and state-specific rules",
    )),
    "canada": ("Canada", 0.15, 0.11, (
        "Federal rate: 15% (general rate)",
        "Provincial rate varies by province (estimated 11%)",
        "Small business deduction may apply for CCPCs",
    )),
    "uk": ("United Kingdom", 0.25, 0.0, (
        "Corporation Tax main rate: 25%",
        "Small profits rate (19%) may apply for profits under £50,000",
        "Marginal relief available for profits between £50,000 and £250,000",
    )),
}

_JURISDICTION_KEYS = {"united states": "us", "usa": "us", "united kingdom": "uk"}

IRR_MAX_ITERATIONS = 100
IRR_TOLERANCE = 1e-5


def calculate_corporate_tax(
    revenue: float, expenses: float, jurisdiction: str = "us", entity_type: str = "c-corp",
) -> dict[str, Any]:
    """Flat-rate corporate tax estimate. Unknown jurisdictions use US rates."""
    key = jurisdiction.lower()
    key = _JURISDICTION_KEYS.get(key, key)
    name, federal_rate, local_rate, notes = CORPORATE_TAX_RATES.get(key, CORPORATE_TAX_RATES["us"])

    taxable_income = revenue - expenses
    federal = taxable_income * federal_rate
    breakdown = {"federal": federal}
    if local_rate:
        breakdown["state"] = taxable_income * local_rate

    return {
        "jurisdiction": name,
        "entity_type": entity_type,
        "taxable_income": taxable_income,
        "effective_rate": federal_rate + local_rate,
        "total_tax": sum(breakdown.values()),
        "breakdown": breakdown,
        "notes": list(notes),
    }


def _discounted(cash_flow: float, rate: float, t: int) -> float:
    try:
        factor = (1 + rate) ** t
    except OverflowError:
        return 0.0
    if factor == 0:
        return math.copysign(math.inf, cash_flow) if cash_flow else 0.0
    return cash_flow / factor


def calculate_npv(cash_flows: list[float], discount_rate: float) -> float:
    """Net present value, with ``cash_flows[0]`` at t=0. NaN for rates ≤ -100%.

    Discount factors too large for a float count as zero present value.
    """
    if discount_rate <= -1:
        return math.nan
    return sum(_discounted(cf, discount_rate, t) for t, cf in enumerate(cash_flows))


def _npv_derivative(cash_flows: list[float], rate: float) -> float:
    return sum(-t * cf / (1 + rate) ** (t + 1) for t, cf in enumerate(cash_flows) if t)


def calculate_irr(cash_flows: list[float], guess: float = 0.1) -> float | None:
    """Internal rate of return by Newton's method.

    Returns None when the iteration does not converge, hits a flat
    derivative, or leaves the domain of the NPV function.
    """
    rate = guess
    try:
        for _ in range(IRR_MAX_ITERATIONS):
            if rate <= -1:
                return None
            npv = calculate_npv(cash_flows, rate)
            if abs(npv) < IRR_TOLERANCE:
                return rate
            slope = _npv_derivative(cash_flows, rate)
            if slope == 0:
                return None
            rate -= npv / slope
    except (OverflowError, ZeroDivisionError):
        return None
    return None


def _declining_charges(cost: float, salvage_value: float, useful_life: int):
    """Double-declining charges for each period, never dropping book value below salvage."""
    rate = 2 / useful_life
    book_value = cost
    for _ in range(useful_life):
        charge = min(book_value * rate, max(book_value - salvage_value, 0.0))
        book_value -= charge
        yield charge


def calculate_depreciation(
    cost: float, salvage_value: float, useful_life: int, method: str = "straight-line", period: int = 1,
) -> float:
    """Depreciation charge for one period (1-based)."""
    if useful_life <= 0 or period < 1 or period > useful_life:
        return 0.0
    depreciable = cost - salvage_value

    if method == "declining-balance":
        for index, charge in enumerate(_declining_charges(cost, salvage_value, useful_life), start=1):
            if index == period:
                return charge

    if method == "sum-of-years":
        sum_of_years = useful_life * (useful_life + 1) / 2
        return depreciable * (useful_life - period + 1) / sum_of_years

    return depreciable / useful_life


def depreciation_schedule(
    cost: float, salvage_value: float, useful_life: int, method: str = "straight-line",
) -> list[dict[str, float]]:
    if useful_life <= 0:
        return []
    if method == "declining-balance":
        charges = _declining_charges(cost, salvage_value, useful_life)
    else:
        charges = (
            calculate_depreciation(cost, salvage_value, useful_life, method, year)
            for year in range(1, useful_life + 1)
        )

    schedule = []
    balance = cost
    accumulated = 0.0
    for year, charge in enumerate(charges, start=1):
        accumulated += charge
        schedule.append({
            "year": year,
            "beginning_balance": round(balance, 2),
            "depreciation": round(charge, 2),
            "ending_balance": round(balance - charge, 2),
            "accumulated": round(accumulated, 2),
        })
        balance -= charge
    return schedule


def _level_payment(principal: float, periodic_rate: float, total_payments: int) -> float:
    if periodic_rate == 0:
        return principal / total_payments
    try:
        growth = (1 + periodic_rate) ** total_payments
    except OverflowError:
        # the annuity factor tends to the periodic rate itself
        return principal * periodic_rate
    if growth == 1:
        return principal / total_payments
    return principal * periodic_rate * growth / (growth - 1)


def calculate_amortization(
    principal: float, annual_rate: float, years: int, payments_per_year: int = 12,
) -> dict[str, Any]:
    """Level-payment loan schedule. A zero rate divides principal evenly.

    Rates too extreme for float arithmetic still produce a payment (possibly
    infinite) rather than an error.
    """
    total_payments = int(years * payments_per_year)
    if total_payments <= 0:
        return {"payment": 0.0, "schedule": []}

    periodic_rate = annual_rate / payments_per_year
    payment = _level_payment(principal, periodic_rate, total_payments)

    schedule = []
    balance = principal
    for period in range(1, total_payments + 1):
        interest = balance * periodic_rate
        principal_part = payment - interest
        balance -= principal_part
        schedule.append({
            "period": period,
            "payment": round(payment, 2),
            "principal": round(principal_part, 2),
            "interest": round(interest, 2),
            "balance": round(max(0.0, balance), 2),
        })
    return {"payment": payment, "schedule": schedule}


def calculate_financial_ratios(
    current_assets: float,
    current_liabilities: float,
    total_assets: float | None = None,
    total_liabilities: float | None = None,
    inventory: float = 0.0,
    net_income: float = 0.0,
    equity: float = 0.0,
) -> dict[str, float]:
    """Liquidity, leverage and return ratios. A zero denominator yields 0."""
    total_assets = current_assets if total_assets is None else total_assets
    total_liabilities = current_liabilities if total_liabilities is None else total_liabilities

    def ratio(numerator: float, denominator: float) -> float:
        return numerator / denominator if denominator > 0 else 0.0

    return {
        "current_ratio": ratio(current_assets, current_liabilities),
        "quick_ratio": ratio(current_assets - inventory, current_liabilities),
        "debt_to_equity": ratio(total_liabilities, equity),
        "roe": ratio(net_income, equity),
        "roa": ratio(net_income, total_assets),
        "current_assets": current_assets,
        "current_liabilities": current_liabilities,
        "total_assets": total_assets,
        "total_liabilities": total_liabilities,
        "inventory": inventory,
        "net_income": net_income,
        "equity": equity,
    }
