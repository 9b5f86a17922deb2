"""
Exception hierarchy for the memory engine.

Provider errors are recovered inside the embedding chain, store and
generation errors are recovered by the engine facade. Nothing here is
expected to reach the chat flow.
"""

from typing import Optional


class MemoryEngineError(Exception):
    """Base class for all memory engine errors."""


class ProviderError(MemoryEngineError):
    """An embedding provider failed to return a usable vector."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider


class ProviderHTTPError(ProviderError):
    """Provider answered with a non-2xx status."""

    def __init__(self, provider: str, status_code: int, body: str = ""):
        super().__init__(provider, f"HTTP {status_code}: {body[:200]}")
        self.status_code = status_code


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its timeout or was abandoned."""


class ProviderResponseError(ProviderError):
    """Provider answered 2xx but the body was malformed."""


class DimensionMismatchError(MemoryEngineError):
    """A vector's length differs from the configured dimensionality."""

    def __init__(self, expected: int, actual: int, record_id: Optional[str] = None):
        where = f" (record {record_id})" if record_id else ""
        super().__init__(f"Expected embedding of length {expected}, got {actual}{where}")
        self.expected = expected
        self.actual = actual
        self.record_id = record_id


class MemoryStoreError(MemoryEngineError):
    """The persistence collaborator is unavailable or failed."""


class GenerationError(MemoryEngineError):
    """The text-generation collaborator returned no usable output."""
