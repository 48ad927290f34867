"""AdvisoryRouter: classify, clarify or answer, with health-ordered failover."""

from __future__ import annotations

import time
from dataclasses import asdict
from typing import Awaitable, Callable

from loguru import logger

from advisory_router.aliases import normalize_chat_mode
from advisory_router.assembler import (
    append_clarifying_block,
    build_clarification_response,
    build_response_metadata,
    format_calculation_results,
)
from advisory_router.calculations import execute_calculations
from advisory_router.clarification import ClarificationEngine
from advisory_router.failover import DEFAULT_TIMEOUT_S, FailoverChain
from advisory_router.health import ProviderHealthMonitor, get_health_monitor
from advisory_router.heuristics import classify_query
from advisory_router.models import (
    Attachment,
    ClarificationAnalysis,
    DocumentHint,
    ExtractionResult,
    OrchestrationResult,
    ResponseMetadata,
)
from advisory_router.policy import route_query
from advisory_router.prompts import build_messages, build_prompts
from advisory_router.registry import ProviderRegistry

# async (buffer, filename, mime_type) -> ExtractionResult
DocumentExtractor = Callable[[bytes, str, str], Awaitable[ExtractionResult]]


class AdvisoryRouter:
    """Runs one advisory query end to end.

    Pipeline per call:
      1. Classify the query and route it to a model/provider
      2. Without an attachment, decide whether to ask before answering;
         a ``clarify`` decision returns questions and contacts no provider
      3. Merge extracted document text into the query
      4. Run deterministic solvers on the enriched query
      5. Call providers through the failover chain
      6. Prepend calculation results, append follow-up questions, attach metadata

    Each call keeps its own state; only the health monitor is shared.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        health_monitor: ProviderHealthMonitor | None = None,
        clarification_engine: ClarificationEngine | None = None,
        document_extractor: DocumentExtractor | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        max_tokens: int = 8000,
        temperature: float = 0.7,
    ):
        self.registry = registry
        self.health = health_monitor or get_health_monitor()
        self.clarifier = clarification_engine or ClarificationEngine()
        self._extract_document = document_extractor
        self.failover = FailoverChain(
            registry,
            health_monitor=self.health,
            timeout_s=timeout_s,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    async def process_query(
        self,
        query: str,
        conversation_history: list[dict[str, str]] | None = None,
        user_tier: str = "free",
        attachment: Attachment | None = None,
        chat_mode: str | None = None,
    ) -> OrchestrationResult:
        start = time.monotonic()
        history = conversation_history or []
        mode = normalize_chat_mode(chat_mode)

        hint = DocumentHint(True, attachment.document_type) if attachment else None
        classification = classify_query(query, hint)
        routing = route_query(classification, user_tier, available=self.registry.names())
        logger.info(f"Route: {routing.preferred_provider}/{routing.primary_model} ({routing.reasoning})")

        # An attached document usually carries the missing facts, so skip clarification.
        clarification: ClarificationAnalysis | None = None
        if attachment is None:
            clarification = self.clarifier.analyze_query(query, history)
            if clarification.needs_clarification and clarification.recommended_approach == "clarify":
                questions = self.clarifier.generate_clarifying_questions(clarification)
                return OrchestrationResult(
                    response=build_clarification_response(questions, clarification),
                    model_used="clarification",
                    routing_decision=routing,
                    classification=classification,
                    metadata=ResponseMetadata(chat_mode=mode),
                    clarification_analysis=clarification,
                    needs_clarification=True,
                    tokens_used=0,
                    processing_time_ms=int((time.monotonic() - start) * 1000),
                )

        enriched_query, extracted = await self._enrich_with_document(query, attachment)
        calculations = execute_calculations(enriched_query, classification, routing)

        prompts = build_prompts(classification, calculations, clarification, mode)
        messages = build_messages(prompts, history, enriched_query)

        # Extracted text is already in the prompt; only hand over the raw file otherwise.
        invocation = await self.failover.try_providers(
            messages,
            routing.primary_model,
            routing.preferred_provider,
            routing.fallback_providers,
            attachment=None if extracted else attachment,
        )

        response = invocation.content
        if calculations:
            try:
                response = format_calculation_results(calculations) + response
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Calculation formatting failed, returning unformatted answer: {e}")

        if clarification is not None and clarification.recommended_approach == "partial_answer_then_clarify":
            questions = self.clarifier.generate_clarifying_questions(clarification)
            response = append_clarifying_block(response, questions, clarification.detected_nuances)

        metadata = build_response_metadata(
            query,
            classification,
            calculations,
            attachment=attachment,
            chat_mode=mode,
            provider_used=invocation.provider,
            attempts=[asdict(a) for a in invocation.attempts],
        )

        return OrchestrationResult(
            response=response,
            model_used=invocation.model or routing.primary_model,
            routing_decision=routing,
            classification=classification,
            metadata=metadata,
            calculation_results=calculations,
            clarification_analysis=clarification,
            needs_clarification=clarification is not None and clarification.needs_clarification,
            tokens_used=invocation.tokens_used,
            processing_time_ms=int((time.monotonic() - start) * 1000),
        )

    async def _enrich_with_document(self, query: str, attachment: Attachment | None) -> tuple[str, bool]:
        """Append extracted document text to the query. Returns (query, extracted)."""
        if attachment is None or self._extract_document is None:
            return query, False

        logger.info(f"Analyzing attached document: {attachment.filename}")
        try:
            result = await self._extract_document(attachment.buffer, attachment.filename, attachment.mime_type)
        except Exception as e:
            logger.warning(f"Document extraction failed for {attachment.filename}: {e}")
            return query, False

        if not result.success or not result.extracted_text:
            logger.warning(f"Document extraction returned no text for {attachment.filename}: {result.error}")
            return query, False

        logger.info(f"Extracted {len(result.extracted_text)} characters from {attachment.filename}")
        enriched = f"{query}\n\n--- Document Content ({attachment.filename}) ---\n{result.extracted_text}"
        return enriched, True
