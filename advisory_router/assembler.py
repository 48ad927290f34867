"""Response assembly: final user-facing text plus UI routing metadata."""

from __future__ import annotations

from typing import Any

from advisory_router.aliases import is_professional_mode
from advisory_router.heuristics import mentions
from advisory_router.models import (
    Attachment,
    ClarificationAnalysis,
    QueryClassification,
    ResponseMetadata,
)

CLARIFYING_HEADER = "**To provide more specific, tailored advice, I need a bit more information:**"
CONSIDERATIONS_HEADER = "**Important considerations to keep in mind:**"

CLARIFICATION_INTRO = (
    "I want to provide you with the most accurate and tailored advice possible. To ensure I give "
    "you expert guidance specific to your situation, I need to understand a few more details:"
)
CLARIFICATION_OUTRO = (
    "Once I have this information, I'll be able to provide precise, jurisdiction-specific advice "
    "that accounts for all relevant rules, deadlines, and nuances."
)

VISUALIZATION_KEYWORDS = (
    "chart", "graph", "plot", "visualize", "visualization", "diagram",
    "show me", "display", "draw", "bar chart", "line chart", "pie chart",
    "scatter plot", "histogram",
)
EXPORT_KEYWORDS = (
    "export", "download", "save as", "generate pdf", "generate csv",
    "create pdf", "create csv", "excel", "spreadsheet", ".pdf", ".csv", ".xlsx",
)


def _numbered(questions: list[str]) -> str:
    return "".join(f"{i}. {q}\n" for i, q in enumerate(questions, start=1))


def append_clarifying_block(text: str, questions: list[str], nuances: list[str]) -> str:
    """Append follow-up questions (and up to two nuances) to an answer."""
    if not questions:
        return text
    block = f"\n\n{CLARIFYING_HEADER}\n\n{_numbered(questions)}"
    if nuances:
        block += f"\n{CONSIDERATIONS_HEADER}\n" + "".join(f"- {n}\n" for n in nuances[:2])
    return text + block


def build_clarification_response(questions: list[str], analysis: ClarificationAnalysis) -> str:
    response = f"{CLARIFICATION_INTRO}\n\n{_numbered(questions)}\n{CLARIFICATION_OUTRO}"
    if analysis.detected_nuances:
        response += "\n\n**Important Considerations:**\n"
        response += "".join(f"- {n}\n" for n in analysis.detected_nuances[:3])
    return response


def _money(value: float) -> str:
    return f"-${-value:,.2f}" if value < 0 else f"${value:,.2f}"


def _percent(value: float | None) -> str:
    return "n/a" if value is None else f"{value * 100:.2f}%"


def _format_tax(data: dict[str, Any]) -> str:
    lines = [
        f"## Corporate Tax Estimate ({data['jurisdiction']})",
        "",
        "| Item | Amount |",
        "|---|---|",
        f"| Taxable income | {_money(data['taxable_income'])} |",
    ]
    lines += [f"| {level.capitalize()} tax | {_money(amount)} |" for level, amount in data["breakdown"].items()]
    lines += [
        f"| **Total tax** | **{_money(data['total_tax'])}** |",
        "",
        f"Effective rate: {_percent(data['effective_rate'])}",
        "",
    ]
    lines += [f"- {note}" for note in data["notes"]]
    return "\n".join(lines)


def _format_npv(data: dict[str, Any]) -> str:
    verdict = "adds value" if data["npv"] > 0 else "does not add value"
    return (
        "## Net Present Value\n\n"
        f"- Cash flows: {', '.join(_money(cf) for cf in data['cash_flows'])}\n"
        f"- Discount rate: {_percent(data['discount_rate'])}\n"
        f"- **NPV: {_money(data['npv'])}** (the project {verdict} at this rate)"
    )


def _format_irr(data: dict[str, Any]) -> str:
    if data["irr"] is None:
        return "## Internal Rate of Return\n\nThe IRR did not converge for these cash flows."
    hurdle = "exceeds" if data["irr"] > data["required_return"] else "falls below"
    return (
        "## Internal Rate of Return\n\n"
        f"- **IRR: {_percent(data['irr'])}**, which {hurdle} a "
        f"{_percent(data['required_return'])} required return"
    )


def _format_depreciation(data: dict[str, Any]) -> str:
    lines = [
        f"## Depreciation Schedule ({data['method']})",
        "",
        f"Cost {_money(data['cost'])}, salvage {_money(data['salvage_value'])}, "
        f"useful life {data['life']} years. First-year charge: {_money(data['annual_depreciation'])}.",
        "",
        "| Year | Beginning | Depreciation | Ending | Accumulated |",
        "|---|---|---|---|---|",
    ]
    lines += [
        f"| {row['year']} | {_money(row['beginning_balance'])} | {_money(row['depreciation'])} "
        f"| {_money(row['ending_balance'])} | {_money(row['accumulated'])} |"
        for row in data["schedule"]
    ]
    return "\n".join(lines)


def _format_amortization(data: dict[str, Any]) -> str:
    schedule = data["schedule"]
    total_interest = sum(row["interest"] for row in schedule)
    return (
        "## Loan Amortization\n\n"
        f"- Principal: {_money(data['principal'])} at {_percent(data['annual_rate'])} "
        f"over {data['years']} years\n"
        f"- **Monthly payment: {_money(data['payment'])}**\n"
        f"- Total interest: {_money(total_interest)} across {len(schedule)} payments"
    )


def _format_ratios(data: dict[str, Any]) -> str:
    return (
        "## Liquidity Ratios\n\n"
        f"- Current ratio: {data['current_ratio']:.2f}\n"
        f"- Quick ratio: {data['quick_ratio']:.2f}"
    )


_FORMATTERS = {
    "financial_ratios": _format_ratios,
    "tax_calculation": _format_tax,
    "npv": _format_npv,
    "irr": _format_irr,
    "depreciation": _format_depreciation,
    "amortization": _format_amortization,
}


def format_calculation_results(results: dict[str, Any]) -> str:
    """Markdown section for solver output, placed ahead of the model's analysis."""
    sections = [_FORMATTERS[key](data) for key, data in results.items() if key in _FORMATTERS]
    if not sections:
        return ""
    return (
        "---\n\n# Calculation Results\n\n"
        + "\n\n".join(sections)
        + "\n\n---\n\n# Professional Analysis\n\n"
    )


def detect_visualization_request(query: str) -> bool:
    return mentions(query.lower(), VISUALIZATION_KEYWORDS)


def detect_export_request(query: str) -> bool:
    return mentions(query.lower(), EXPORT_KEYWORDS)


def classify_response_type(
    query: str,
    classification: QueryClassification,
    calculations: dict[str, Any] | None,
    has_attachment: bool = False,
) -> str:
    """First match wins: document, visualization, export, calculation, research, analysis."""
    if classification.requires_document_analysis or has_attachment:
        return "document"
    if detect_visualization_request(query):
        return "visualization"
    if detect_export_request(query):
        return "export"
    if calculations:
        return "calculation"
    if classification.requires_research or classification.requires_real_time_data:
        return "research"
    if classification.requires_deep_reasoning or classification.complexity == "expert":
        return "analysis"
    return "general"


def build_response_metadata(
    query: str,
    classification: QueryClassification,
    calculations: dict[str, Any] | None,
    attachment: Attachment | None = None,
    chat_mode: str = "standard",
    provider_used: str | None = None,
    attempts: list[dict[str, Any]] | None = None,
) -> ResponseMetadata:
    response_type = classify_response_type(query, classification, calculations, attachment is not None)
    show_in_output_pane = is_professional_mode(chat_mode) or response_type in (
        "document", "visualization", "export", "calculation",
    )
    return ResponseMetadata(
        response_type=response_type,
        show_in_output_pane=show_in_output_pane,
        has_document=attachment is not None or classification.requires_document_analysis,
        has_visualization=detect_visualization_request(query),
        has_calculation=bool(calculations),
        has_export=detect_export_request(query),
        has_research=classification.requires_research or classification.requires_real_time_data,
        chat_mode=chat_mode,
        provider_used=provider_used,
        attempts=attempts or [],
    )
