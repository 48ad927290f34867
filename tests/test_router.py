"""End-to-end tests for AdvisoryRouter.process_query."""

import asyncio

from conftest import FailingProvider

from advisory_router.assembler import CLARIFYING_HEADER
from advisory_router.failover import FALLBACK_MESSAGES
from advisory_router.models import Attachment, ExtractionResult, ProviderErrorCode
from advisory_router.registry import ProviderRegistry
from advisory_router.router import AdvisoryRouter


def _all_calls(registry):
    return sum(len(registry.get(name).calls) for name in registry.names())


def test_missing_jurisdiction_returns_questions_without_calling_providers(registry, monitor):
    router = AdvisoryRouter(registry, health_monitor=monitor)
    result = asyncio.run(router.process_query("What is the corporate tax rate?", [], "pro"))
    assert result.model_used == "clarification"
    assert result.needs_clarification
    assert result.tokens_used == 0
    assert "Which jurisdiction are you asking about?" in result.response
    assert result.clarification_analysis.recommended_approach == "clarify"
    assert _all_calls(registry) == 0


def test_depreciation_query_is_answered_with_calculations(registry, monitor):
    router = AdvisoryRouter(registry, health_monitor=monitor)
    result = asyncio.run(router.process_query("Calculate depreciation for a $120,000 asset over 10 years", [], "pro"))
    assert not result.needs_clarification
    assert result.calculation_results["depreciation"]["cost"] == 120_000
    assert result.calculation_results["depreciation"]["life"] == 10
    assert result.response.startswith("---\n\n# Calculation Results")
    assert result.response.endswith("gemini answer")
    assert result.model_used == "gemini-2.0-flash-exp"
    assert result.tokens_used == 42
    assert result.metadata.response_type == "calculation"
    assert result.metadata.show_in_output_pane
    assert result.metadata.provider_used == "gemini"


def test_partial_answer_appends_questions(registry, monitor):
    router = AdvisoryRouter(registry, health_monitor=monitor)
    result = asyncio.run(router.process_query("What is the corporate tax rate in Canada?", [], "pro"))
    assert result.needs_clarification
    assert result.response.startswith("gemini answer")
    assert CLARIFYING_HEADER in result.response
    assert "Which tax year" in result.response


def test_history_and_context_reach_the_provider(registry, monitor):
    router = AdvisoryRouter(registry, health_monitor=monitor)
    history = [
        {"role": "user", "content": "We're a California company planning for 2024."},
        {"role": "assistant", "content": "Got it."},
    ]
    result = asyncio.run(router.process_query("What is the corporate tax rate?", history, "pro"))
    assert result.model_used != "clarification"
    messages = registry.get(result.metadata.provider_used).calls[0]["messages"]
    assert [m["role"] for m in messages] == ["system", "system", "user", "assistant", "user"]
    assert "Jurisdiction: california" in messages[1]["content"]
    assert messages[-1]["content"].startswith("What is the corporate tax rate?")


def test_attachment_skips_clarification_and_enriches_query(registry, monitor):
    async def extractor(buffer, filename, mime_type):
        return ExtractionResult(success=True, extracted_text="Box 1 wages: 85,000")

    router = AdvisoryRouter(registry, health_monitor=monitor, document_extractor=extractor)
    attachment = Attachment(buffer=b"%PDF", filename="w2.pdf", mime_type="application/pdf")
    result = asyncio.run(router.process_query("What is the corporate tax rate?", [], "pro", attachment=attachment))

    assert result.clarification_analysis is None
    assert result.routing_decision.preferred_provider == "claude"
    call = registry.get("claude").calls[0]
    assert "--- Document Content (w2.pdf) ---" in call["messages"][-1]["content"]
    assert call["attachment"] is None
    assert result.metadata.response_type == "document"


def test_failed_extraction_hands_over_the_file(registry, monitor):
    async def extractor(buffer, filename, mime_type):
        raise RuntimeError("unreadable")

    router = AdvisoryRouter(registry, health_monitor=monitor, document_extractor=extractor)
    attachment = Attachment(buffer=b"??", filename="scan.png", mime_type="image/png")
    result = asyncio.run(router.process_query("Review this receipt", [], "pro", attachment=attachment))
    assert result.response == "claude answer"
    assert registry.get("claude").calls[0]["attachment"] is attachment


def test_all_providers_failing_gives_degraded_answer(monitor):
    names = ["openai", "azure-openai", "claude", "gemini", "perplexity"]
    registry = ProviderRegistry({n: FailingProvider(n, ProviderErrorCode.TIMEOUT) for n in names})
    router = AdvisoryRouter(registry, health_monitor=monitor)
    result = asyncio.run(router.process_query("Explain how depreciation works", [], "pro"))
    assert result.response == FALLBACK_MESSAGES[ProviderErrorCode.TIMEOUT]
    assert result.tokens_used == 0
    assert result.metadata.provider_used is None
    assert len(result.metadata.attempts) == len(names)
    assert all(not a["success"] for a in result.metadata.attempts)


def test_chat_mode_is_normalized(registry, monitor):
    router = AdvisoryRouter(registry, health_monitor=monitor)
    result = asyncio.run(router.process_query("Explain how depreciation works", [], "pro", chat_mode="research"))
    assert result.metadata.chat_mode == "deep-research"
    assert result.metadata.show_in_output_pane
    assert result.to_dict()["metadata"]["chat_mode"] == "deep-research"


def test_extreme_loan_rate_is_answered(registry, monitor):
    router = AdvisoryRouter(registry, health_monitor=monitor)
    result = asyncio.run(router.process_query(
        "What is the monthly loan payment on a $1,000 loan at 10000% over 30 years?", [], "pro",
    ))
    assert result.calculation_results["amortization"]["years"] == 30
    assert result.response.startswith("---\n\n# Calculation Results")
    assert "## Loan Amortization" in result.response
