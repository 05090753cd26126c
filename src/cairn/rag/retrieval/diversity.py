"""
Diversity filtering for search results.

Drops results that mostly repeat the words of a better-ranked result.
"""

from typing import FrozenSet, List

from cairn.core.logging import logger
from cairn.models.retrieval import SearchResult


def word_set(text: str) -> FrozenSet[str]:
    return frozenset(text.lower().split())


def jaccard_similarity(first: FrozenSet[str], second: FrozenSet[str]) -> float:
    """|A ∩ B| / |A ∪ B|; two empty sets count as identical."""
    union = first | second
    if not union:
        return 1.0
    return len(first & second) / len(union)


class DiversityFilter:
    """
    Greedy near-duplicate removal.

    The top result is always kept. Each later candidate is admitted only if
    its Jaccard similarity to every admitted result is below the threshold.
    """

    def __init__(self, threshold: float = 0.8):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold

    def apply(self, results: List[SearchResult]) -> List[SearchResult]:
        """Order-preserving subsequence of results."""
        if len(results) <= 1:
            return list(results)

        selected = [results[0]]
        selected_words = [word_set(results[0].text)]

        for candidate in results[1:]:
            words = word_set(candidate.text)
            if all(jaccard_similarity(words, kept) < self.threshold for kept in selected_words):
                selected.append(candidate)
                selected_words.append(words)

        if len(selected) < len(results):
            logger.debug("Diversity filter", before=len(results), after=len(selected))
        return selected
