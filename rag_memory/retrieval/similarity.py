"""Cosine similarity ranking of stored memories against a query vector."""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from rag_memory.memory.schemas import MemoryRecord
from rag_memory.telemetry import get_logger

logger = get_logger(__name__)


@dataclass
class ScoredMemory:
    """A memory with its similarity to the current query."""
    memory: MemoryRecord
    similarity: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between ``a`` and ``b``.

    Returns 0.0 for vectors of different length and when either vector has
    zero norm. The result is clipped to [-1, 1] to absorb rounding.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


def score_by_cosine(memories: Sequence[MemoryRecord], query_vector: Sequence[float]) -> List[ScoredMemory]:
    """
    Score memories against the query, highest similarity first.

    Records whose embedding length differs from the query are left out of
    the ranking; the rest of the batch is still scored. Ties keep input order.
    """
    query = np.asarray(query_vector, dtype=np.float64)
    dim = query.shape[0] if query.ndim == 1 else 0

    comparable = []
    for memory in memories:
        if len(memory.embedding) != dim or dim == 0:
            logger.warning(
                "embedding_dimension_mismatch",
                memory_id=memory.id,
                expected=dim,
                actual=len(memory.embedding),
            )
            continue
        comparable.append(memory)

    if not comparable:
        return []

    matrix = np.asarray([m.embedding for m in comparable], dtype=np.float64)
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = np.linalg.norm(query)
    denom = row_norms * query_norm

    sims = np.zeros(len(comparable), dtype=np.float64)
    nonzero = denom > 0
    sims[nonzero] = (matrix[nonzero] @ query) / denom[nonzero]
    sims = np.clip(sims, -1.0, 1.0)

    scored = [ScoredMemory(memory=m, similarity=float(s)) for m, s in zip(comparable, sims)]
    scored.sort(key=lambda s: s.similarity, reverse=True)
    return scored
