"""Failover chain for LLM providers."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from loguru import logger

from advisory_router.aliases import model_for_provider
from advisory_router.health import ProviderHealthMonitor, get_health_monitor
from advisory_router.models import Attachment, ProviderError, ProviderErrorCode
from advisory_router.policy import BASELINE_PROVIDERS
from advisory_router.registry import ProviderRegistry

DEFAULT_TIMEOUT_S = 120.0

# Shown to the user when every candidate failed. Never includes error details.
FALLBACK_MESSAGES: dict[ProviderErrorCode, str] = {
    ProviderErrorCode.RATE_LIMIT: (
        "I'm currently experiencing high demand. The AI service has reached its quota limit. "
        "However, I can still help with calculations directly. Please try asking your question "
        "again, or contact support for assistance."
    ),
    ProviderErrorCode.AUTH: "There's a configuration issue with the AI service. Please contact support.",
    ProviderErrorCode.TIMEOUT: (
        "The request took too long to process. Please try a simpler question or try again."
    ),
    ProviderErrorCode.GENERIC: (
        "I apologize, but I encountered an error processing your request. Please try again."
    ),
}
NO_PROVIDERS_MESSAGE = "I apologize, but all AI providers are currently unavailable. Please try again later."


@dataclass
class Attempt:
    """One provider call made while serving a request."""

    provider: str
    model: str
    success: bool
    latency_ms: int
    error_code: str | None = None


@dataclass
class InvocationResult:
    content: str
    tokens_used: int
    provider: str | None = None
    model: str | None = None
    attempts: list[Attempt] = field(default_factory=list)
    error_code: ProviderErrorCode | None = None

    @property
    def degraded(self) -> bool:
        return self.provider is None


class FailoverChain:
    """Try providers one at a time, healthiest first, until one succeeds."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        health_monitor: ProviderHealthMonitor | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        baseline_providers: Iterable[str] = BASELINE_PROVIDERS,
        max_tokens: int = 8000,
        temperature: float = 0.7,
    ):
        self.registry = registry
        self.health = health_monitor or get_health_monitor()
        self.timeout_s = timeout_s
        self.baseline_providers = tuple(baseline_providers)
        self.max_tokens = max_tokens
        self.temperature = temperature

    def build_candidates(self, preferred: str | None, fallbacks: Iterable[str] = ()) -> list[str]:
        """Preferred first, then fallbacks, then the baseline providers. No duplicates."""
        ordered = [preferred] if preferred else []
        ordered.extend(fallbacks)
        ordered.extend(self.baseline_providers)

        candidates: list[str] = []
        for name in dict.fromkeys(ordered):
            if self.registry.has(name):
                candidates.append(name)
            else:
                logger.warning(f"Provider {name} is not registered, leaving it out of the chain")
        return candidates

    def order_candidates(self, candidates: list[str]) -> list[str]:
        """Drop providers in cooldown (unless that drops all of them), then sort by health."""
        available = [p for p in candidates if not self.health.in_cooldown(p)]
        if not available and candidates:
            logger.warning("All candidate providers are in cooldown - attempting anyway")
            available = list(candidates)

        scores = {p: self.health.get_health_score(p) for p in available}
        return sorted(available, key=lambda p: -scores[p])

    async def try_providers(
        self,
        messages: list[dict[str, Any]],
        model: str,
        preferred: str | None,
        fallbacks: Iterable[str] = (),
        attachment: Attachment | None = None,
    ) -> InvocationResult:
        """Attempt each candidate in sequence.

        Provider failures never propagate: when the chain is exhausted the
        result carries a fixed user-facing message and zero tokens.
        Cancellation of the caller does.
        """
        chain = self.order_candidates(self.build_candidates(preferred, fallbacks))
        logger.info(
            "Provider chain (by health): "
            + " -> ".join(f"{p}({self.health.get_health_score(p):.0f})" for p in chain)
        )

        attempts: list[Attempt] = []
        last_code: ProviderErrorCode | None = None

        for index, name in enumerate(chain, start=1):
            provider = self.registry.get(name)
            provider_model = model_for_provider(model, name)
            logger.info(f"Attempting {name} ({provider_model}) [{index}/{len(chain)}]")

            start = time.monotonic()
            try:
                response = await asyncio.wait_for(
                    provider.chat(
                        messages=messages,
                        model=provider_model,
                        max_tokens=self.max_tokens,
                        temperature=self.temperature,
                        attachment=attachment,
                    ),
                    timeout=self.timeout_s,
                )
                if response.finish_reason == "error":
                    raise ProviderError(response.content or "provider returned an error", name)
            except Exception as e:
                latency_ms = int((time.monotonic() - start) * 1000)
                error = ProviderError.from_exception(name, e)
                last_code = self.health.record_failure(name, error)
                attempts.append(Attempt(name, provider_model, False, latency_ms, last_code.value))
                logger.warning(f"Provider {name} ({provider_model}) failed in {latency_ms}ms: {error.message}")
                continue

            latency_ms = int((time.monotonic() - start) * 1000)
            self.health.record_success(name)
            attempts.append(Attempt(name, provider_model, True, latency_ms))
            logger.info(f"Success with {name} in {latency_ms}ms")
            return InvocationResult(
                content=response.content or "",
                tokens_used=response.tokens_used,
                provider=name,
                model=response.model_used or provider_model,
                attempts=attempts,
            )

        if last_code is None:
            logger.error("No registered providers to attempt")
            return InvocationResult(NO_PROVIDERS_MESSAGE, 0, attempts=attempts)

        logger.error(f"All {len(attempts)} providers failed, last error: {last_code.value}")
        return InvocationResult(FALLBACK_MESSAGES[last_code], 0, attempts=attempts, error_code=last_code)
