"""Shared fakes for advisory_router tests."""

import pytest

from advisory_router.health import ProviderHealthMonitor
from advisory_router.models import LLMProvider, LLMResponse, ProviderError, ProviderErrorCode
from advisory_router.registry import ProviderRegistry


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(LLMProvider):
    """Answers every call with a fixed reply and records what it was sent."""

    def __init__(self, reply: str = "ok", tokens: int = 42):
        super().__init__()
        self.reply = reply
        self.tokens = tokens
        self.calls: list[dict] = []

    async def chat(self, messages, model=None, max_tokens=8000, temperature=0.7, attachment=None):
        self.calls.append({"messages": messages, "model": model, "attachment": attachment})
        return LLMResponse(content=self.reply, usage={"total_tokens": self.tokens}, model_used=model or "")


class FailingProvider(LLMProvider):
    """Raises a ProviderError with the given code on every call."""

    def __init__(self, name: str, code: ProviderErrorCode = ProviderErrorCode.GENERIC):
        super().__init__()
        self.provider_name = name
        self.code = code
        self.calls = 0

    async def chat(self, messages, model=None, max_tokens=8000, temperature=0.7, attachment=None):
        self.calls += 1
        raise ProviderError(f"{self.provider_name} unavailable", self.provider_name, self.code)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monitor(clock):
    return ProviderHealthMonitor(clock=clock)


@pytest.fixture
def registry():
    return ProviderRegistry({
        "openai": FakeProvider("openai answer"),
        "azure-openai": FakeProvider("azure answer"),
        "claude": FakeProvider("claude answer"),
        "gemini": FakeProvider("gemini answer"),
        "perplexity": FakeProvider("perplexity answer"),
    })
