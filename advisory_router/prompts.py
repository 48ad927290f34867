"""Tiered prompt construction.

Context is split across three places so no single message grows past
provider limits: a short system identity, a detailed instructions message,
and a compact suffix on the user's own message.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from advisory_router.models import ClarificationAnalysis, QueryClassification

SYSTEM_PROMPT = (
    "You are an expert CPA/CA advisor specializing in accounting, tax, audit, "
    "and financial analysis across all major jurisdictions."
)

_APPROACH = """## Your Professional Approach
- Cover all relevant aspects thoroughly, with scenario-based advice where details are missing
- Address jurisdiction-specific nuances that matter
- Cite specific regulations, tax code sections, and standards
- Proactively identify edge cases and variations
- Structure with clear headings, tables, and bullet points

## Accessibility Standards
1. Start with a plain-language summary
2. Define technical terms when first used
3. Provide concrete examples for abstract principles
4. Highlight key takeaways and action items
5. Recommend consulting a licensed professional for final decisions

"""

_SPLIT_OUTPUT = (
    "Format:\n<DELIVERABLE>\n[{what} here]\n</DELIVERABLE>\n\n"
    "<REASONING>\n[your thought process here]\n</REASONING>\n\n"
)

MODE_INSTRUCTIONS: dict[str, str] = {
    "deep-research": (
        "Conduct exhaustive, multi-source analysis:\n"
        "- Research all relevant regulations, standards, and case law\n"
        "- Compare approaches across jurisdictions\n"
        "- Identify conflicting interpretations\n"
        "- Include citations (IRS publications, IFRS/GAAP standards, court cases)\n\n"
    ),
    "checklist": (
        "Create two outputs. The DELIVERABLE is a checklist with [ ] task items, "
        "High/Medium/Low priority, deadlines and dependencies. The REASONING explains "
        "why each section was included and how priorities were set.\n\n"
        + _SPLIT_OUTPUT.format(what="checklist")
    ),
    "workflow": (
        "Create two outputs. The DELIVERABLE is a step-by-step workflow "
        "(Step 1: [Title] followed by substeps) including decision points and approval "
        "gates. The REASONING explains the design and the control points.\n\n"
        + _SPLIT_OUTPUT.format(what="workflow")
    ),
    "audit-plan": (
        "Create two outputs. The DELIVERABLE is an audit plan with a risk assessment, "
        "materiality thresholds, procedures per area, sample sizes, required evidence "
        "and relevant standards (GAAS, ISA, PCAOB). The REASONING explains the methodology.\n\n"
        + _SPLIT_OUTPUT.format(what="audit plan")
    ),
    "calculation": (
        "Provide comprehensive calculation analysis:\n"
        "- Methodology and step-by-step formulas\n"
        "- Scenarios and sensitivities\n"
        "- Professional interpretation and recommendations\n\n"
    ),
}

_CALCULATION_FORMAT = """## Calculation Presentation Format
1. **Quick Summary** - key results with benchmarks
2. **Detailed Breakdown** - tables with step-by-step formulas
3. **Interpretation** - what it means, plus recommendations

"""

_CONTEXT_LABELS = (
    ("jurisdiction", "Jurisdiction"),
    ("tax_year", "Tax Year"),
    ("business_type", "Business Type"),
    ("entity_type", "Entity Type"),
    ("filing_status", "Filing Status"),
    ("accounting_method", "Accounting Method"),
)


@dataclass
class PromptComponents:
    system_prompt: str
    instructions_message: str
    context_suffix: str


def mode_instructions(chat_mode: str) -> str:
    body = MODE_INSTRUCTIONS.get(chat_mode)
    if body is None:
        return ""
    return f"## Professional Mode: {chat_mode.upper().replace('-', ' ')}\n\n{body}"


def clarification_instructions(analysis: ClarificationAnalysis) -> str:
    out = ""
    ctx = analysis.conversation_context
    known = [(label, getattr(ctx, attr)) for attr, label in _CONTEXT_LABELS if getattr(ctx, attr)]
    if known:
        out += "## Detected Context\n" + "".join(f"- {label}: {value}\n" for label, value in known) + "\n"

    important = [m for m in analysis.missing_context if m.importance in ("critical", "high")]
    if important:
        out += "## Missing Context to Address\n"
        for item in important:
            out += f"- {item.category}: {item.reason}\n  Ask: \"{item.suggested_question}\"\n"
        out += "\n"
        if analysis.recommended_approach == "partial_answer_then_clarify":
            out += (
                "Provide a brief, general answer to help the user, then ask for the "
                "missing details above.\n\n"
            )

    if analysis.detected_nuances:
        out += "## Key Nuances to Address\n" + "".join(f"- {n}\n" for n in analysis.detected_nuances) + "\n"
    return out


def build_context_suffix(classification: QueryClassification, calculations: dict[str, Any] | None) -> str:
    suffix = f"\n\n---\n**Classification**: {classification.domain}"
    if classification.sub_domain:
        suffix += f" > {classification.sub_domain}"
    if classification.jurisdiction:
        suffix += f" | Jurisdiction: {', '.join(classification.jurisdiction)}"
    suffix += f" | Complexity: {classification.complexity}"
    if calculations:
        suffix += f"\n**Calculations Available**: {', '.join(calculations)}"
    return suffix


def build_prompts(
    classification: QueryClassification,
    calculations: dict[str, Any] | None = None,
    clarification: ClarificationAnalysis | None = None,
    chat_mode: str = "standard",
) -> PromptComponents:
    instructions = "# Expert Guidance Framework\n\n" + _APPROACH
    if chat_mode != "standard":
        instructions += mode_instructions(chat_mode)
    if calculations:
        instructions += _CALCULATION_FORMAT
        instructions += (
            "## Calculations Already Performed\n"
            f"{json.dumps(calculations, indent=2, default=str)}\n\n"
            "Use these results in your response and explain the methodology.\n\n"
        )
    if clarification is not None:
        instructions += clarification_instructions(clarification)

    return PromptComponents(
        system_prompt=SYSTEM_PROMPT,
        instructions_message=instructions.rstrip() + "\n",
        context_suffix=build_context_suffix(classification, calculations),
    )


def build_messages(
    prompts: PromptComponents, history: list[dict[str, str]], query: str,
) -> list[dict[str, str]]:
    """System identity, instructions, prior turns, then the query with its suffix."""
    messages = [
        {"role": "system", "content": prompts.system_prompt},
        {"role": "system", "content": prompts.instructions_message},
    ]
    messages.extend({"role": h["role"], "content": h["content"]} for h in history)
    messages.append({"role": "user", "content": query + prompts.context_suffix})
    return messages
