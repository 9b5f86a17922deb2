"""
Embedding provider chain with circuit breaking and deterministic fallback.

``ProviderChain.embed`` never raises: live providers are tried in priority
order, each behind its own breaker and per-call deadline, and the hash
embedding is used once they are exhausted.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Dict, List, Optional, Sequence

from rag_memory.config.settings import Settings
from rag_memory.errors import DimensionMismatchError, ProviderTimeoutError
from rag_memory.telemetry import get_logger
from .breaker import CircuitBreaker
from .providers import BaseEmbeddingProvider, HTTPEmbeddingProvider, HashEmbeddingProvider

logger = get_logger(__name__)


class ProviderChain:
    """
    Ordered list of embedding providers sharing one dimensionality.

    Breaker state lives on the instance; build one chain at process start and
    share it between callers.
    """

    def __init__(
        self,
        providers: Sequence[BaseEmbeddingProvider],
        dimensions: int,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        timeout_seconds: float = 2.0,
        force_fallback: bool = False,
        clock: Callable[[], float] = time.monotonic,
        max_workers: int = 4,
    ):
        """
        Args:
            providers: Live providers in priority order
            dimensions: Length every returned vector must have
            failure_threshold: Consecutive failures that open a breaker
            cooldown_seconds: How long an open breaker skips its provider
            timeout_seconds: Deadline for a single provider call
            force_fallback: Skip live providers entirely
            clock: Monotonic time source (injectable for tests)
            max_workers: Threads used to enforce call deadlines
        """
        names = [p.name for p in providers]
        if len(set(names)) != len(names):
            raise ValueError(f"Provider names must be unique: {names}")

        self.providers = list(providers)
        self.dimensions = dimensions
        self.timeout_seconds = timeout_seconds
        self.force_fallback = force_fallback
        self.fallback = HashEmbeddingProvider(dimensions)
        self.breakers: Dict[str, CircuitBreaker] = {
            p.name: CircuitBreaker(p.name, failure_threshold, cooldown_seconds, clock)
            for p in self.providers
        }
        self._counters: Dict[str, Dict[str, int]] = {
            name: {"success": 0, "failure": 0, "skipped": 0}
            for name in names + ["fallback"]
        }
        self._counter_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="embed")

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "ProviderChain":
        """Build the chain from settings; providers without a key are left out."""
        emb = settings.embedding
        providers: List[BaseEmbeddingProvider] = [
            HTTPEmbeddingProvider(
                name=p.name,
                base_url=p.base_url,
                model=p.model,
                api_key=p.api_key,
                dimensions=emb.dimensions,
                send_dimensions=p.send_dimensions,
                timeout=emb.timeout_seconds,
            )
            for p in emb.providers
            if p.enabled and p.api_key
        ]
        return cls(
            providers,
            dimensions=emb.dimensions,
            failure_threshold=settings.breaker.failure_threshold,
            cooldown_seconds=settings.breaker.cooldown_seconds,
            timeout_seconds=emb.timeout_seconds,
            force_fallback=emb.force_fallback,
            **kwargs
        )

    def _count(self, name: str, outcome: str) -> None:
        with self._counter_lock:
            self._counters[name][outcome] += 1

    def _call(self, provider: BaseEmbeddingProvider, text: str) -> List[float]:
        """Run one provider call under the chain deadline and validate its output."""
        future = self._executor.submit(provider.embed, text)
        try:
            vector = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError as e:
            # The worker keeps running until the provider's own timeout fires.
            future.cancel()
            raise ProviderTimeoutError(provider.name, f"abandoned after {self.timeout_seconds}s") from e

        if len(vector) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(vector))
        return vector

    def embed(self, text: str) -> List[float]:
        """
        Embed ``text``; always returns a vector of ``dimensions`` floats.
        """
        if not self.force_fallback:
            for provider in self.providers:
                breaker = self.breakers[provider.name]
                if not breaker.allow_request():
                    self._count(provider.name, "skipped")
                    continue

                try:
                    vector = self._call(provider, text)
                except Exception as e:
                    breaker.record_failure()
                    self._count(provider.name, "failure")
                    logger.warning(
                        "embedding_provider_failed",
                        provider=provider.name,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    continue

                breaker.record_success()
                self._count(provider.name, "success")
                return vector

        self._count("fallback", "success")
        return self.fallback_embed(text)

    def fallback_embed(self, text: str) -> List[float]:
        """Deterministic hash embedding at the chain's dimensionality."""
        return self.fallback.embed(text)

    def stats(self) -> Dict[str, dict]:
        """Per-provider breaker state and call counters."""
        with self._counter_lock:
            counters = {name: dict(c) for name, c in self._counters.items()}
        result = {}
        for provider in self.providers:
            result[provider.name] = {
                **counters[provider.name],
                "breaker": self.breakers[provider.name].state.to_dict(),
            }
        result["fallback"] = counters["fallback"]
        return result

    def reset(self, name: Optional[str] = None) -> None:
        """Close one breaker, or all of them."""
        targets = [name] if name else list(self.breakers)
        for target in targets:
            self.breakers[target].reset()
            logger.info("breaker_reset", provider=target)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        for provider in self.providers:
            provider.close()
