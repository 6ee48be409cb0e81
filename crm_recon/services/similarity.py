from __future__ import annotations

from collections.abc import Sequence
from difflib import SequenceMatcher

from .field_mapping import normalize_header

"""Bounded [0, 1] name similarity used to flag near-duplicate client names.

score = 0.6 * character ratio (difflib.SequenceMatcher) + 0.4 * token Jaccard,
computed on case-folded, accent-free names. Identical normalized names score
exactly 1.0. Ties in best_match go to the earliest candidate.
"""

__all__ = [
    "SIMILARITY_THRESHOLD",
    "name_similarity",
    "best_match",
    "is_near_duplicate",
]

SIMILARITY_THRESHOLD = 0.85

_RATIO_WEIGHT = 0.6
_TOKEN_WEIGHT = 0.4


def name_similarity(a: str | None, b: str | None) -> float:
    norm_a = normalize_header(a)
    norm_b = normalize_header(b)
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0
    ratio = SequenceMatcher(None, norm_a, norm_b).ratio()
    tokens_a = set(norm_a.split())
    tokens_b = set(norm_b.split())
    union = tokens_a | tokens_b
    token_score = len(tokens_a & tokens_b) / len(union) if union else 0.0
    return _RATIO_WEIGHT * ratio + _TOKEN_WEIGHT * token_score


def best_match(name: str, candidates: Sequence[str]) -> tuple[int, float] | None:
    """Index and score of the most similar candidate; None when there are none."""
    best: tuple[int, float] | None = None
    for idx, candidate in enumerate(candidates):
        score = name_similarity(name, candidate)
        if best is None or score > best[1]:
            best = (idx, score)
    return best


def is_near_duplicate(score: float) -> bool:
    """High but not identical: [0.85, 1.0)."""
    return SIMILARITY_THRESHOLD <= score < 1.0
