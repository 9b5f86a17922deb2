"""
Embedding subsystem.

Provides:
- OpenAI-compatible HTTP embedding providers
- Deterministic FNV-1a hash embedding fallback
- Per-provider circuit breakers
- ProviderChain: ordered failover that never fails
"""

from .providers import (
    BaseEmbeddingProvider,
    HTTPEmbeddingProvider,
    HashEmbeddingProvider,
    fnv1a_32,
    hash_embedding,
)
from .breaker import BreakerState, CircuitBreaker
from .chain import ProviderChain

__all__ = [
    "BaseEmbeddingProvider",
    "HTTPEmbeddingProvider",
    "HashEmbeddingProvider",
    "fnv1a_32",
    "hash_embedding",
    "BreakerState",
    "CircuitBreaker",
    "ProviderChain",
]
