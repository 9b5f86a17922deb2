"""Similarity ranking and diversity-aware selection."""

from .similarity import ScoredMemory, cosine_similarity, score_by_cosine
from .mmr import apply_relevance_floor, embedding_similarity, mmr_select

__all__ = [
    "ScoredMemory",
    "cosine_similarity",
    "score_by_cosine",
    "apply_relevance_floor",
    "embedding_similarity",
    "mmr_select",
]
