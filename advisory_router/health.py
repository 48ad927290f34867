"""Provider health monitor: per-provider reliability scores and cooldowns."""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable

from loguru import logger

from advisory_router.models import ProviderError, ProviderErrorCode, ProviderHealthMetrics

MAX_SCORE = 100.0
HEALTHY_THRESHOLD = 30.0
SUCCESS_BONUS = 5.0
RATE_LIMIT_PENALTY = 30.0
TIMEOUT_PENALTY = 15.0
GENERIC_PENALTY = 10.0
STREAK_PENALTY = 20.0
STREAK_THRESHOLD = 5
RATE_LIMIT_BASE_COOLDOWN_S = 60.0
RATE_LIMIT_MAX_COOLDOWN_S = 15 * 60.0
AUTH_COOLDOWN_S = 10 * 60.0
COOLDOWN_RECOVERY_BONUS = 20.0
IDLE_RECOVERY_BONUS = 2.0
IDLE_RECOVERY_AFTER_S = 5 * 60.0


@dataclass
class _ProviderEntry:
    metrics: ProviderHealthMetrics
    lock: threading.Lock = field(default_factory=threading.Lock)


class ProviderHealthMonitor:
    """Tracks how reliable each provider has been recently.

    Entries are created lazily at full health. Each entry carries its own lock
    and updates only ever hold that one lock, so concurrent requests touching
    different providers never contend.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, _ProviderEntry] = {}

    def _entry(self, provider: str) -> _ProviderEntry:
        entry = self._entries.get(provider)
        if entry is None:
            entry = self._entries.setdefault(provider, _ProviderEntry(ProviderHealthMetrics(provider)))
        return entry

    def record_success(self, provider: str) -> None:
        entry = self._entry(provider)
        with entry.lock:
            m = entry.metrics
            m.consecutive_failures = 0
            m.rate_limit_hits = 0
            m.rate_limit_until = None
            m.health_score = min(MAX_SCORE, m.health_score + SUCCESS_BONUS)
            m.last_success_at = self._clock()
            m.success_count += 1

    def record_failure(self, provider: str, error: BaseException) -> ProviderErrorCode:
        """Apply the penalty for ``error`` and return the code it was classed as."""
        code = ProviderError.from_exception(provider, error).code
        entry = self._entry(provider)
        with entry.lock:
            m = entry.metrics
            now = self._clock()
            m.consecutive_failures += 1
            m.error_count += 1
            m.last_failure_at = now
            m.last_error_code = code.value

            if code is ProviderErrorCode.RATE_LIMIT:
                m.rate_limit_hits += 1
                cooldown = min(
                    RATE_LIMIT_BASE_COOLDOWN_S * 2 ** (m.rate_limit_hits - 1),
                    RATE_LIMIT_MAX_COOLDOWN_S,
                )
                m.rate_limit_until = now + cooldown
                m.health_score -= RATE_LIMIT_PENALTY
            elif code is ProviderErrorCode.AUTH:
                m.rate_limit_until = now + AUTH_COOLDOWN_S
                m.health_score = 0.0
            elif code is ProviderErrorCode.TIMEOUT:
                m.health_score -= TIMEOUT_PENALTY
            else:
                m.health_score -= GENERIC_PENALTY

            if m.consecutive_failures >= STREAK_THRESHOLD:
                m.health_score -= STREAK_PENALTY
            m.health_score = max(0.0, m.health_score)
            score, failures = m.health_score, m.consecutive_failures

        if code is ProviderErrorCode.AUTH:
            logger.error(f"Provider {provider} rejected credentials; disabled for {AUTH_COOLDOWN_S:.0f}s")
        else:
            logger.warning(
                f"Provider {provider} failure ({code.value}): score={score:.0f}, consecutive={failures}"
            )
        return code

    def _cooldown_active(self, m: ProviderHealthMetrics, now: float) -> bool:
        """Caller holds the entry lock. Clears an expired cooldown."""
        if m.rate_limit_until is None:
            return False
        if now < m.rate_limit_until:
            return True
        m.rate_limit_until = None
        m.health_score = min(MAX_SCORE, m.health_score + COOLDOWN_RECOVERY_BONUS)
        logger.info(f"Provider {m.provider_name} cooldown expired, score now {m.health_score:.0f}")
        return False

    def in_cooldown(self, provider: str) -> bool:
        entry = self._entry(provider)
        with entry.lock:
            return self._cooldown_active(entry.metrics, self._clock())

    def is_healthy(self, provider: str) -> bool:
        entry = self._entry(provider)
        with entry.lock:
            if self._cooldown_active(entry.metrics, self._clock()):
                return False
            return entry.metrics.health_score >= HEALTHY_THRESHOLD

    def get_health_score(self, provider: str) -> float:
        entry = self._entry(provider)
        with entry.lock:
            return entry.metrics.health_score

    def get_metrics(self, provider: str) -> ProviderHealthMetrics:
        """Snapshot copy; mutating it does not affect the monitor."""
        entry = self._entry(provider)
        with entry.lock:
            return replace(entry.metrics)

    def get_all_health_status(self) -> dict[str, ProviderHealthMetrics]:
        return {name: self.get_metrics(name) for name in list(self._entries)}

    def reset_provider(self, provider: str) -> None:
        entry = self._entry(provider)
        with entry.lock:
            entry.metrics = ProviderHealthMetrics(provider)
        logger.info(f"Provider {provider} health reset")

    def recover_idle(self) -> None:
        """Nudge up providers with no failure in the last few minutes."""
        now = self._clock()
        for entry in list(self._entries.values()):
            with entry.lock:
                m = entry.metrics
                if m.health_score >= MAX_SCORE:
                    continue
                if m.last_failure_at is not None and now - m.last_failure_at < IDLE_RECOVERY_AFTER_S:
                    continue
                m.health_score = min(MAX_SCORE, m.health_score + IDLE_RECOVERY_BONUS)

    async def run_recovery(self, interval: float = 60.0) -> None:
        """Periodic idle recovery. Runs until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.recover_idle()


_default_monitor: ProviderHealthMonitor | None = None
_default_lock = threading.Lock()


def get_health_monitor() -> ProviderHealthMonitor:
    """Process-wide monitor shared by every router that isn't given its own."""
    global _default_monitor
    if _default_monitor is None:
        with _default_lock:
            if _default_monitor is None:
                _default_monitor = ProviderHealthMonitor()
    return _default_monitor
