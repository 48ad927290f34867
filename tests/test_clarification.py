"""Tests for the clarification engine."""

from datetime import date

from advisory_router.clarification import MAX_QUESTIONS, ClarificationEngine
from advisory_router.models import ClarificationAnalysis, MissingContextItem


def _item(importance):
    return MissingContextItem("x", importance, "reason", f"{importance}?")


def test_corporate_tax_rate_needs_jurisdiction():
    engine = ClarificationEngine()
    analysis = engine.analyze_query("What is the corporate tax rate?", [])
    assert analysis.recommended_approach == "clarify"
    assert analysis.needs_clarification
    assert analysis.confidence == "low"
    categories = [m.category for m in analysis.missing_context]
    assert categories == ["jurisdiction", "tax_year"]
    questions = engine.generate_clarifying_questions(analysis)
    assert questions[0].startswith("Which jurisdiction are you asking about?")
    assert len(questions) == 2


def test_history_supplies_context():
    engine = ClarificationEngine()
    history = [{"role": "user", "content": "We're based in California and planning for 2024."}]
    analysis = engine.analyze_query("What is the corporate tax rate?", history)
    assert analysis.conversation_context.jurisdiction == "california"
    assert analysis.conversation_context.tax_year == "2024"
    assert analysis.recommended_approach == "answer"
    assert not analysis.needs_clarification


def test_single_high_gap_answers_then_asks():
    analysis = ClarificationEngine().analyze_query("What is the corporate tax rate in Canada?", [])
    assert analysis.recommended_approach == "partial_answer_then_clarify"
    assert analysis.confidence == "medium"


def test_two_ambiguities_clarify():
    analysis = ClarificationEngine().analyze_query("I recently received a large payment", [])
    assert len(analysis.ambiguities) == 2
    assert analysis.recommended_approach == "clarify"


def test_business_without_entity_type():
    engine = ClarificationEngine()
    analysis = engine.analyze_query("How should my business handle payroll?", [])
    missing = {m.category: m.importance for m in analysis.missing_context}
    assert missing["entity_type"] == "critical"
    assert missing["business_type"] == "medium"
    assert any("Business structure unclear" in a for a in analysis.ambiguities)


def test_nuances_are_informational():
    engine = ClarificationEngine()
    analysis = engine.analyze_query("Explain how depreciation works", [])
    assert any("Section 179" in n for n in analysis.detected_nuances)
    assert analysis.recommended_approach == "answer"


def test_determine_approach_thresholds():
    decide = ClarificationEngine.determine_approach
    assert decide([_item("critical")], [], "") == (True, "low", "clarify")
    assert decide([_item("high"), _item("high")], [], "") == (True, "low", "clarify")
    assert decide([], ["a", "b"], "") == (True, "low", "clarify")
    assert decide([_item("high")], [], "") == (True, "medium", "partial_answer_then_clarify")
    assert decide([], ["a"], "") == (True, "medium", "partial_answer_then_clarify")
    assert decide([_item("medium"), _item("low")], [], "what is vat") == (False, "high", "answer")


def test_questions_capped_at_three():
    engine = ClarificationEngine()
    analysis = engine.analyze_query(
        "My business wants to deduct a large expense from recently for this tax filing", [],
    )
    questions = engine.generate_clarifying_questions(analysis)
    assert 1 <= len(questions) <= MAX_QUESTIONS


def test_questions_skip_medium_items():
    analysis = ClarificationAnalysis(
        needs_clarification=True, confidence="low",
        missing_context=[_item("medium"), _item("critical")],
    )
    assert ClarificationEngine.generate_clarifying_questions(analysis) == ["critical?"]


def test_relative_tax_years_use_clock():
    engine = ClarificationEngine(today=lambda: date(2025, 3, 1))
    assert engine.extract_conversation_context("taxes for this year", []).tax_year == "2025"
    assert engine.extract_conversation_context("planning for next year", []).tax_year == "2026"


def test_entity_and_method_extraction():
    ctx = ClarificationEngine().extract_conversation_context("We are an S-corp on the accrual method", [])
    assert ctx.entity_type == "s-corp"
    assert ctx.accounting_method == "accrual"


def test_united_states_counts_as_a_jurisdiction():
    engine = ClarificationEngine()
    analysis = engine.analyze_query("What is the corporate tax rate in the United States?", [])
    assert analysis.conversation_context.jurisdiction == "united states"
    assert "jurisdiction" not in [m.category for m in analysis.missing_context]
    assert analysis.recommended_approach == "partial_answer_then_clarify"


def test_us_abbreviations_are_canonicalized():
    engine = ClarificationEngine()
    assert engine.extract_conversation_context("Corporate tax in the U.S. for 2024", []).jurisdiction == "united states"
    assert engine.extract_conversation_context("What does the IRS allow?", []).jurisdiction == "us federal"
