"""
Maximal Marginal Relevance selection.

MMR(d) = lambda * sim(q, d) - (1 - lambda) * max(sim(d, s) for s in selected)
"""

from typing import Callable, List, Optional, Sequence

from .similarity import ScoredMemory, cosine_similarity

PairwiseSimilarity = Callable[[ScoredMemory, ScoredMemory], float]


def embedding_similarity(a: ScoredMemory, b: ScoredMemory) -> float:
    return cosine_similarity(a.memory.embedding, b.memory.embedding)


def apply_relevance_floor(candidates: Sequence[ScoredMemory], min_similarity: float = 0.2) -> List[ScoredMemory]:
    """Drop candidates below the relevance floor, keeping order."""
    return [c for c in candidates if c.similarity >= min_similarity]


def mmr_select(
    candidates: Sequence[ScoredMemory],
    k: int = 10,
    lambda_: float = 0.7,
    pairwise: Optional[PairwiseSimilarity] = None,
) -> List[ScoredMemory]:
    """
    Pick at most ``k`` candidates balancing relevance against redundancy.

    Args:
        candidates: Ranked candidates, most similar first
        k: Maximum number to return
        lambda_: Relevance weight in [0, 1]; 1.0 is pure relevance
        pairwise: Candidate-to-candidate similarity (default: embedding cosine)

    Returns:
        Selected candidates in pick order. If there are ``k`` or fewer
        candidates they are returned unchanged.
    """
    if k <= 0:
        return []
    if len(candidates) <= k:
        return list(candidates)

    pairwise = pairwise or embedding_similarity
    remaining = list(candidates)
    selected = [remaining.pop(0)]

    while len(selected) < k and remaining:
        best_idx = 0
        best_score = float("-inf")

        for i, candidate in enumerate(remaining):
            max_sim = max(pairwise(candidate, s) for s in selected)
            score = lambda_ * candidate.similarity - (1 - lambda_) * max_sim
            # Strict comparison: the first-seen candidate wins ties.
            if score > best_score:
                best_score = score
                best_idx = i

        selected.append(remaining.pop(best_idx))

    return selected
