"""
Fuzzy card name matching.

Names are split into word tokens (Latin and full-width alphanumerics,
kanji, hiragana, katakana and hangul runs). A search is scored against a
name by assigning each search token to one name token at minimum total
cost, where the cost of a pair is:

- 0 if the tokens are equal
- 1 if the search token is a substring of the name token
- otherwise the restricted Damerau-Levenshtein distance, capped at 4

Multi-token searches pay 0.5 extra for pairing tokens at different
positions, and names with more tokens than the search pay a small
missing-word penalty. The score is normalized to (max - cost) / max.
"""

import re
from collections.abc import Iterable, Mapping

import numpy as np
from rapidfuzz.distance import OSA
from scipy.optimize import linear_sum_assignment

TOKEN_PATTERN = re.compile(
    r"[一-龠]+|[ぁ-ゔ]+|[ァ-ヴー]+|[a-zA-Z0-9]+|[ａ-ｚＡ-Ｚ０-９]+|[々〆〤]|[가-힣]"
)

MAX_DISTANCE = 4

# Penalty for pairing tokens that sit at different positions
POSITION_PENALTY = 0.5


def tokenize(value: str) -> list[str]:
    return TOKEN_PATTERN.findall(value.lower())


def distance_score(ref: str, hay: str) -> float:
    """Cost of pairing a search token with a name token."""
    if ref == hay:
        return 0
    if ref in hay:
        return 1
    # Length difference is a lower bound on the edit distance
    if abs(len(ref) - len(hay)) >= MAX_DISTANCE:
        return MAX_DISTANCE
    return min(MAX_DISTANCE, OSA.distance(ref, hay, score_cutoff=MAX_DISTANCE))


def match_score(ref_tokens: list[str], value: str) -> float:
    """
    Score a name against tokenized search text.

    Returns:
        1.0 for an exact match, lower for worse matches; may be negative
    """
    hay_tokens = tokenize(value)
    if not ref_tokens or not hay_tokens:
        return 0.0

    n_ref = len(ref_tokens)
    n_cols = max(len(hay_tokens), n_ref)
    cost = np.full((n_ref, n_cols), float(MAX_DISTANCE))
    for i, ref in enumerate(ref_tokens):
        for j, hay in enumerate(hay_tokens):
            score = float(distance_score(ref, hay))
            if n_ref > 1 and i != j:
                score += POSITION_PENALTY
            cost[i, j] = score

    rows, cols = linear_sum_assignment(cost)
    total = float(cost[rows, cols].sum())
    total += max(len(hay_tokens) - n_ref, 0) / len(hay_tokens)

    max_cost = MAX_DISTANCE * n_ref
    return (max_cost - total) / max_cost


def rank_matches(scores: Mapping[int, float], max_results: int) -> dict[int, float]:
    """Order by score descending, then id ascending, and truncate."""
    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return dict(ordered[:max_results])


class CardNameFilter:
    """Scores every name in a name -> ids index against one search."""

    def __init__(self, index: Mapping[str, Iterable[int]], reference: str) -> None:
        self.index = index
        self.reference = reference
        self.ref_tokens = tokenize(reference)

    def filter_index(self, max_results: int = 1) -> dict[int, float]:
        """
        Find the best-scoring ids.

        Ids <= 0 are ignored (YGOrg uses negative ids for skills). Each id
        keeps the best score of any name pointing at it.

        Returns:
            Up to max_results ids mapped to their score, best first, with
            ties broken by ascending id
        """
        if not self.ref_tokens:
            return {}

        best: dict[int, float] = {}
        for name, ids in self.index.items():
            score = match_score(self.ref_tokens, name)
            if score <= 0:
                continue
            for card_id in ids:
                if card_id > 0 and score > best.get(card_id, 0.0):
                    best[card_id] = score

        return rank_matches(best, max_results)
