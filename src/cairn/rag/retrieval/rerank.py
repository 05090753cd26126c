"""
Simple re-ranking for search results.

Boosts results whose text contains the query verbatim or covers many of its
terms. No ML, just heuristics.
"""

from typing import List

from cairn.core.logging import logger
from cairn.models.retrieval import SearchResult


class Reranker:
    """
    Lexical re-ranking on top of the search scores.

    boosted = score
              * exact_match_boost            (query occurs verbatim, case-insensitive)
              * (1 + coverage * term_coverage_boost)

    where coverage is the share of whitespace-separated query terms found in
    the text as substrings.
    """

    def __init__(self, exact_match_boost: float = 1.2, term_coverage_boost: float = 0.3):
        self.exact_match_boost = exact_match_boost
        self.term_coverage_boost = term_coverage_boost

    def boosted_score(self, query: str, result: SearchResult) -> float:
        text = result.text.lower()
        lowered_query = query.lower()
        terms = lowered_query.split()

        score = result.score
        if lowered_query and lowered_query in text:
            score *= self.exact_match_boost

        if terms:
            matched = sum(1 for term in terms if term in text)
            score *= 1 + matched / len(terms) * self.term_coverage_boost

        return float(score)

    def rerank(self, query: str, results: List[SearchResult]) -> List[SearchResult]:
        """
        Returns a re-sorted copy; the input list is not modified.

        Each result keeps its pre-rerank score in original_score. The sort is
        stable, so equal boosted scores keep their incoming order.
        """
        reranked = [
            result.model_copy(
                update={
                    "score": self.boosted_score(query, result),
                    "original_score": (
                        result.original_score
                        if result.original_score is not None
                        else result.score
                    ),
                }
            )
            for result in results
        ]
        reranked.sort(key=lambda r: r.score, reverse=True)

        logger.debug("Reranked results", count=len(results), query=query[:50])
        return reranked
