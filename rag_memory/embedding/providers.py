"""
Embedding providers.

A closed set of variants behind one interface: OpenAI-compatible HTTP
endpoints for real embeddings and a deterministic hash embedding used when
every live provider is unavailable.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import numpy as np

from rag_memory.errors import (
    ProviderError,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTimeoutError,
)


FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
_TOKEN_SPLIT = re.compile(r"\W+")


def fnv1a_32(token: str) -> int:
    """32-bit FNV-1a over the token's character codes."""
    h = FNV_OFFSET_BASIS
    for ch in token:
        h ^= ord(ch)
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def hash_embedding(text: str, dimensions: int) -> List[float]:
    """
    Deterministic bag-of-tokens embedding.

    Tokens are the lowercase non-word-split pieces of ``text``; each one adds
    1.0 at ``fnv1a_32(token) % dimensions``. The result is L2-normalized, and
    an input without tokens yields the zero vector.
    """
    vector = np.zeros(dimensions, dtype=np.float64)
    for token in _TOKEN_SPLIT.split((text or "").lower()):
        if token:
            vector[fnv1a_32(token) % dimensions] += 1.0

    norm = np.linalg.norm(vector)
    if norm > 0:
        vector /= norm
    return vector.tolist()


class BaseEmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    name: str = "base"

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Return the embedding of ``text`` or raise ProviderError."""

    def close(self) -> None:
        """Release network resources."""


class HashEmbeddingProvider(BaseEmbeddingProvider):
    """Offline provider; never fails."""

    name = "hash"

    def __init__(self, dimensions: int):
        self.dimensions = dimensions

    def embed(self, text: str) -> List[float]:
        return hash_embedding(text, self.dimensions)


class HTTPEmbeddingProvider(BaseEmbeddingProvider):
    """
    Provider for OpenAI-compatible ``/embeddings`` endpoints.

    Works against OpenRouter, OpenAI and any server speaking the same
    request/response shape. Failures are raised as distinguishable
    ProviderError subclasses so the circuit breaker can classify them.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        dimensions: Optional[int] = None,
        send_dimensions: bool = False,
        timeout: float = 2.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            name: Provider name used in logs and breaker stats
            base_url: API base, e.g. https://api.openai.com/v1
            model: Embedding model identifier
            api_key: Bearer token
            dimensions: Requested output size (sent only if send_dimensions)
            send_dimensions: Whether the API supports the ``dimensions`` field
            timeout: Per-request timeout in seconds
            client: Optional preconfigured httpx client (tests use MockTransport)
        """
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.dimensions = dimensions
        self.send_dimensions = send_dimensions
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _payload(self, text: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model, "input": text}
        if self.send_dimensions and self.dimensions:
            payload["dimensions"] = self.dimensions
        return payload

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def embed(self, text: str) -> List[float]:
        try:
            response = self._client.post(
                f"{self.base_url}/embeddings",
                json=self._payload(text),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(self.name, f"timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"transport error: {e}") from e

        if not response.is_success:
            body = response.text
            if "<!DOCTYPE" in body or "<html" in body.lower():
                body = "HTML error page (rate limited or maintenance)"
            raise ProviderHTTPError(self.name, response.status_code, body)

        try:
            vector = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(self.name, f"invalid embedding response: {e}") from e

        if not isinstance(vector, list) or not vector:
            raise ProviderResponseError(self.name, "embedding is not a non-empty list")
        try:
            return [float(x) for x in vector]
        except (TypeError, ValueError) as e:
            raise ProviderResponseError(self.name, f"non-numeric embedding: {e}") from e

    def close(self) -> None:
        self._client.close()
