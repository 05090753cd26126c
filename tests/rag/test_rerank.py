"""
Tests for lexical re-ranking.
"""

from typing import Optional

import pytest

from cairn.models import Chunk, SearchResult, SearchSource
from cairn.rag.retrieval import Reranker


def result(text: str, score: float, chunk_id: Optional[str] = None) -> SearchResult:
    chunk = Chunk(text=text, source_id="doc", **({"id": chunk_id} if chunk_id else {}))
    return SearchResult(chunk_id=chunk.id, score=score, source=SearchSource.SEMANTIC, chunk=chunk)


class TestReranker:
    def test_exact_match_and_full_coverage(self):
        boosted = Reranker().boosted_score("hello world", result("Say Hello World today", 1.0))

        assert boosted == pytest.approx(1.0 * 1.2 * 1.3)

    def test_partial_coverage(self):
        boosted = Reranker().boosted_score("hello world", result("hello there", 1.0))

        assert boosted == pytest.approx(1.0 * (1 + 0.5 * 0.3))

    def test_no_match_keeps_score(self):
        assert Reranker().boosted_score("zebra", result("cats are mammals", 0.4)) == 0.4

    def test_terms_match_as_substrings(self):
        boosted = Reranker().boosted_score("cat", result("category theory", 1.0))

        assert boosted == pytest.approx(1.2 * 1.3)

    def test_rerank_reorders_and_keeps_original(self):
        plain = result("nothing relevant here", 0.5, "plain")
        exact = result("python decorators explained", 0.45, "exact")

        reranked = Reranker().rerank("python decorators", [plain, exact])

        assert [r.chunk_id for r in reranked] == ["exact", "plain"]
        assert reranked[0].original_score == 0.45
        assert reranked[1].original_score == 0.5
        assert plain.original_score is None

    def test_rerank_is_stable(self):
        first = result("cats are mammals", 1 / 16, "cats")
        second = result("dogs are mammals", 1 / 16, "dogs")

        reranked = Reranker().rerank("mammals", [first, second])

        assert [r.chunk_id for r in reranked] == ["cats", "dogs"]
        assert reranked[0].score == reranked[1].score

    def test_rerank_twice_keeps_first_original(self):
        reranker = Reranker()
        once = reranker.rerank("cats", [result("cats", 1.0)])

        twice = reranker.rerank("cats", once)

        assert twice[0].original_score == 1.0

    def test_custom_boosts(self):
        reranker = Reranker(exact_match_boost=2.0, term_coverage_boost=0.0)

        assert reranker.boosted_score("cats", result("cats", 1.0)) == pytest.approx(2.0)
