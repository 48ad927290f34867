"""Provider registry: name to provider adapter lookup."""

from __future__ import annotations

from loguru import logger

from advisory_router.models import LLMProvider


class ProviderRegistry:
    """Holds the configured adapters, keyed by provider name.

    Registration order is kept, so ``names()`` doubles as the set of
    providers the routing policy may fall back to.
    """

    def __init__(self, providers: dict[str, LLMProvider] | None = None):
        self._providers: dict[str, LLMProvider] = {}
        for name, provider in (providers or {}).items():
            self.register(name, provider)

    def register(self, name: str, provider: LLMProvider) -> None:
        if name in self._providers:
            logger.warning(f"Replacing registered provider {name}")
        self._providers[name] = provider
        logger.debug(f"Registered provider {name} ({provider.name})")

    def get(self, name: str) -> LLMProvider:
        """Raises KeyError for an unknown name."""
        try:
            return self._providers[name]
        except KeyError:
            raise KeyError(f"Provider '{name}' is not registered") from None

    def has(self, name: str) -> bool:
        return name in self._providers

    def names(self) -> list[str]:
        return list(self._providers)

    def __len__(self) -> int:
        return len(self._providers)
