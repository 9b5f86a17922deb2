"""
Unit tests for rag_memory/retrieval/mmr.py

Tests relevance/diversity trade-off, cardinality and tie handling.
"""
import pytest

from rag_memory.retrieval.mmr import apply_relevance_floor, mmr_select
from rag_memory.retrieval.similarity import ScoredMemory

from .conftest import make_record


def scored(memory_id, similarity, embedding=(1.0, 0.0)):
    return ScoredMemory(memory=make_record(memory_id, embedding), similarity=similarity)


def table_pairwise(table):
    """Pairwise similarity from an explicit symmetric lookup."""
    def lookup(a, b):
        key = tuple(sorted((a.memory.id, b.memory.id)))
        return table.get(key, 0.0)
    return lookup


# ============================================================================
# Selection
# ============================================================================

def test_diverse_candidate_beats_redundant_one():
    """A=0.9, B=0.8 (0.95 to A), C=0.5 (0.1 to A); k=2 picks A then C."""
    candidates = [scored("A", 0.9), scored("B", 0.8), scored("C", 0.5)]
    pairwise = table_pairwise({("A", "B"): 0.95, ("A", "C"): 0.1, ("B", "C"): 0.1})

    selected = mmr_select(candidates, k=2, lambda_=0.7, pairwise=pairwise)
    assert [s.memory.id for s in selected] == ["A", "C"]


def test_pure_relevance_keeps_rank_order():
    candidates = [scored("A", 0.9), scored("B", 0.8), scored("C", 0.5)]
    pairwise = table_pairwise({("A", "B"): 0.95, ("A", "C"): 0.1, ("B", "C"): 0.1})

    selected = mmr_select(candidates, k=2, lambda_=1.0, pairwise=pairwise)
    assert [s.memory.id for s in selected] == ["A", "B"]


def test_uses_embeddings_by_default():
    candidates = [
        scored("A", 0.9, (1.0, 0.0)),
        scored("B", 0.85, (1.0, 0.0)),
        scored("C", 0.6, (0.0, 1.0)),
    ]
    selected = mmr_select(candidates, k=2, lambda_=0.5)
    assert [s.memory.id for s in selected] == ["A", "C"]


@pytest.mark.parametrize("k", [1, 2, 3, 5])
def test_cardinality_and_uniqueness(k):
    candidates = [scored(f"m{i}", 1.0 - i * 0.1, (1.0, float(i))) for i in range(6)]
    selected = mmr_select(candidates, k=k)

    ids = [s.memory.id for s in selected]
    assert len(ids) == k
    assert len(set(ids)) == k
    assert ids[0] == "m0"


def test_small_input_returned_unchanged():
    candidates = [scored("A", 0.3), scored("B", 0.9)]
    assert mmr_select(candidates, k=2) == candidates
    assert mmr_select(candidates, k=10) == candidates


def test_non_positive_k():
    assert mmr_select([scored("A", 0.9)], k=0) == []


def test_ties_resolved_by_input_order():
    candidates = [scored("A", 0.9), scored("B", 0.5), scored("C", 0.5)]
    pairwise = table_pairwise({})

    selected = mmr_select(candidates, k=2, pairwise=pairwise)
    assert [s.memory.id for s in selected] == ["A", "B"]


# ============================================================================
# Relevance floor
# ============================================================================

def test_relevance_floor_drops_weak_matches():
    candidates = [scored("A", 0.9), scored("B", 0.2), scored("C", 0.19)]
    kept = apply_relevance_floor(candidates, 0.2)
    assert [s.memory.id for s in kept] == ["A", "B"]


def test_relevance_floor_everything_below():
    assert apply_relevance_floor([scored("A", 0.05)], 0.2) == []
