"""Tests for the health-ordered failover chain."""

import asyncio

import pytest

from conftest import FailingProvider, FakeProvider

from advisory_router.failover import FALLBACK_MESSAGES, NO_PROVIDERS_MESSAGE, FailoverChain
from advisory_router.models import LLMProvider, LLMResponse, ProviderError, ProviderErrorCode
from advisory_router.registry import ProviderRegistry

MESSAGES = [{"role": "user", "content": "hi"}]


class SlowProvider(LLMProvider):
    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def chat(self, messages, model=None, max_tokens=8000, temperature=0.7, attachment=None):
        await asyncio.sleep(self.delay)
        return LLMResponse(content="late")


class ErrorContentProvider(LLMProvider):
    async def chat(self, messages, model=None, max_tokens=8000, temperature=0.7, attachment=None):
        return LLMResponse(content="Error calling LLM: 500", finish_reason="error")


def test_candidates_append_baseline_without_duplicates(registry, monitor):
    chain = FailoverChain(registry, health_monitor=monitor)
    assert chain.build_candidates("gemini", ["claude", "gemini", "openai"]) == [
        "gemini", "claude", "openai", "azure-openai",
    ]


def test_unregistered_providers_are_dropped(monitor):
    registry = ProviderRegistry({"openai": FakeProvider(), "azure-openai": FakeProvider()})
    chain = FailoverChain(registry, health_monitor=monitor)
    assert chain.build_candidates("claude", ["gemini"]) == ["azure-openai", "openai"]


def test_candidates_sorted_by_health(registry, monitor):
    monitor.record_failure("gemini", ProviderError("x", "gemini"))
    chain = FailoverChain(registry, health_monitor=monitor)
    ordered = chain.order_candidates(["gemini", "claude", "openai", "azure-openai"])
    assert ordered == ["claude", "openai", "azure-openai", "gemini"]


def test_cooldown_providers_are_skipped(registry, monitor):
    monitor.record_failure("gemini", ProviderError("quota", "gemini", ProviderErrorCode.RATE_LIMIT))
    chain = FailoverChain(registry, health_monitor=monitor)
    assert chain.order_candidates(["gemini", "openai"]) == ["openai"]


def test_all_in_cooldown_attempts_anyway(registry, monitor):
    for name in ("gemini", "openai"):
        monitor.record_failure(name, ProviderError("quota", name, ProviderErrorCode.RATE_LIMIT))
    chain = FailoverChain(registry, health_monitor=monitor)
    assert chain.order_candidates(["gemini", "openai"]) == ["gemini", "openai"]


def test_first_healthy_provider_answers(registry, monitor):
    chain = FailoverChain(registry, health_monitor=monitor)
    result = asyncio.run(chain.try_providers(MESSAGES, "claude-3-5-sonnet", "claude", ["openai"]))
    assert result.content == "claude answer"
    assert result.tokens_used == 42
    assert result.provider == "claude"
    assert result.model == "claude-3-5-sonnet-20241022"
    assert not result.degraded
    assert monitor.get_metrics("claude").success_count == 1
    assert registry.get("openai").calls == []


def test_fallback_providers_get_their_own_model(registry, monitor):
    registry.register("claude", FailingProvider("claude"))
    chain = FailoverChain(registry, health_monitor=monitor)
    result = asyncio.run(chain.try_providers(MESSAGES, "claude-3-5-sonnet", "claude", ["openai"]))
    assert result.provider == "openai"
    assert registry.get("openai").calls[0]["model"] == "gpt-4o"
    assert [a.provider for a in result.attempts] == ["claude", "openai"]
    assert [a.success for a in result.attempts] == [False, True]
    assert monitor.get_health_score("claude") == 90.0


def test_rate_limited_provider_is_skipped_on_next_request(registry, monitor):
    limited = FailingProvider("claude", ProviderErrorCode.RATE_LIMIT)
    registry.register("claude", limited)
    chain = FailoverChain(registry, health_monitor=monitor)

    first = asyncio.run(chain.try_providers(MESSAGES, "claude-3-5-sonnet", "claude", ["gemini"]))
    assert first.provider == "gemini"
    second = asyncio.run(chain.try_providers(MESSAGES, "claude-3-5-sonnet", "claude", ["gemini"]))
    assert second.provider == "gemini"
    assert limited.calls == 1


def test_all_providers_fail(monitor):
    names = ["claude", "gemini", "azure-openai", "openai"]
    registry = ProviderRegistry({n: FailingProvider(n, ProviderErrorCode.RATE_LIMIT) for n in names})
    chain = FailoverChain(registry, health_monitor=monitor)
    result = asyncio.run(chain.try_providers(MESSAGES, "gpt-4o", "claude", ["gemini"]))
    assert result.content == FALLBACK_MESSAGES[ProviderErrorCode.RATE_LIMIT]
    assert result.tokens_used == 0
    assert result.degraded
    assert len(result.attempts) == 4
    for name in names:
        assert registry.get(name).calls == 1
        assert monitor.get_metrics(name).error_count == 1


def test_exhaustion_message_follows_last_error(monitor):
    registry = ProviderRegistry({
        "openai": FailingProvider("openai", ProviderErrorCode.RATE_LIMIT),
        "azure-openai": FailingProvider("azure-openai", ProviderErrorCode.AUTH),
    })
    chain = FailoverChain(registry, health_monitor=monitor)
    result = asyncio.run(chain.try_providers(MESSAGES, "gpt-4o", "openai"))
    assert result.content == FALLBACK_MESSAGES[ProviderErrorCode.AUTH]
    assert "key" not in result.content.lower()


def test_timeout_moves_to_next_provider(monitor):
    registry = ProviderRegistry({"openai": SlowProvider(1.0), "azure-openai": FakeProvider("azure answer")})
    chain = FailoverChain(registry, health_monitor=monitor, timeout_s=0.01)
    result = asyncio.run(chain.try_providers(MESSAGES, "gpt-4o", "openai"))
    assert result.content == "azure answer"
    assert result.attempts[0].error_code == "timeout"
    assert monitor.get_health_score("openai") == 85.0


def test_error_finish_reason_counts_as_failure(monitor):
    registry = ProviderRegistry({"openai": ErrorContentProvider(), "azure-openai": FakeProvider("azure answer")})
    chain = FailoverChain(registry, health_monitor=monitor)
    result = asyncio.run(chain.try_providers(MESSAGES, "gpt-4o", "openai"))
    assert result.provider == "azure-openai"
    assert monitor.get_metrics("openai").error_count == 1


def test_cancellation_is_not_recorded(monitor):
    registry = ProviderRegistry({"openai": SlowProvider(10.0), "azure-openai": FakeProvider()})
    chain = FailoverChain(registry, health_monitor=monitor)

    async def scenario():
        task = asyncio.create_task(chain.try_providers(MESSAGES, "gpt-4o", "openai"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    m = monitor.get_metrics("openai")
    assert (m.success_count, m.error_count) == (0, 0)
    assert registry.get("azure-openai").calls == []


def test_empty_registry(monitor):
    chain = FailoverChain(ProviderRegistry(), health_monitor=monitor)
    result = asyncio.run(chain.try_providers(MESSAGES, "gpt-4o", "openai"))
    assert result.content == NO_PROVIDERS_MESSAGE
    assert result.attempts == []
