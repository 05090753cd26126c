"""
End-to-end tests for KnowledgeRetriever.
"""

import asyncio

import pytest

from cairn.core.exceptions import (
    EmbeddingTimeoutError,
    EmbeddingUnavailableError,
    EmptyQueryError,
    UnknownStrategyError,
)
from cairn.models import RetrievalOptions, SearchStrategy
from cairn.rag import KnowledgeRetriever, VectorIndex

from conftest import ClosableEmbeddings, FailingEmbeddings, HangingEmbeddings, StaticEmbeddings


@pytest.fixture
def retriever(make_settings, mammal_provider):
    return KnowledgeRetriever(make_settings(), provider=mammal_provider)


@pytest.fixture
async def loaded(retriever, mammal_chunks):
    await retriever.ingest(mammal_chunks)
    return retriever


class TestIngest:
    async def test_indexes_into_both_indexes(self, retriever, mammal_chunks):
        result = await retriever.ingest(mammal_chunks)

        assert result.indexed == 3
        assert result.failed == []
        assert len(retriever.vector_index) == 3
        assert len(retriever.keyword_index) == 3
        assert retriever.vector_index.dimension == 4

    async def test_empty_batch(self, retriever):
        result = await retriever.ingest([])

        assert result.indexed == 0

    async def test_reingest_replaces(self, retriever, make_chunk):
        await retriever.ingest([make_chunk("cats are mammals", id="x")])
        await retriever.ingest([make_chunk("dogs are mammals", id="x")])

        assert len(retriever.vector_index) == 1
        assert retriever.vector_index.get_chunk("x").text == "dogs are mammals"
        assert retriever.keyword_index.search("cats", k=5) == []

    async def test_last_duplicate_in_batch_wins(self, retriever, make_chunk):
        result = await retriever.ingest(
            [make_chunk("cats are mammals", id="x"), make_chunk("dogs are mammals", id="x")]
        )

        assert result.indexed == 1
        assert retriever.vector_index.get_chunk("x").text == "dogs are mammals"

    async def test_failed_embeddings_are_reported_and_skipped(self, make_settings, make_chunk):
        provider = StaticEmbeddings({"good": [1.0, 0.0], "zero": [0.0, 0.0]})
        retriever = KnowledgeRetriever(make_settings(), provider=provider)

        result = await retriever.ingest(
            [make_chunk("good", id="good"), make_chunk("zero", id="zero")]
        )

        assert result.indexed == 1
        assert [f.chunk_id for f in result.failed] == ["zero"]
        assert result.failed[0].reason.startswith("EmbeddingUnavailableError:")
        assert not retriever.vector_index.contains("zero")
        assert not retriever.keyword_index.contains("zero")
        assert retriever.get_stats()["ingest_failures"] == 1

    async def test_dimension_mismatch_is_a_failure(self, make_settings, make_chunk):
        retriever = KnowledgeRetriever(
            make_settings(),
            provider=StaticEmbeddings({}, default=[1.0, 0.0, 0.0, 0.0]),
            vector_index=VectorIndex(dimension=3),
        )

        result = await retriever.ingest([make_chunk("anything", id="a")])

        assert result.indexed == 0
        assert result.failed[0].reason.startswith("DimensionMismatchError:")

    async def test_provider_outage_fails_every_chunk(self, make_settings, mammal_chunks):
        retriever = KnowledgeRetriever(make_settings(), provider=FailingEmbeddings())

        result = await retriever.ingest(mammal_chunks)

        assert result.indexed == 0
        assert len(result.failed) == 3
        assert len(retriever.keyword_index) == 0


class TestRetrieve:
    async def test_keyword_mammals(self, loaded):
        response = await loaded.retrieve(
            "mammals", RetrievalOptions(strategy="keyword", threshold=0.0, limit=2)
        )

        assert response.strategy is SearchStrategy.KEYWORD
        assert [r.chunk_id for r in response.results] == ["cats", "dogs"]
        assert response.results[0].score == response.results[1].score
        assert response.context.text == "cats are mammals\n\ndogs are mammals"
        assert [s.source_ref for s in response.context.sources] == ["zoo", "zoo"]
        assert response.metadata.total_results == 2
        assert not response.metadata.degraded
        assert not response.metadata.cached

    async def test_scores_are_reranked(self, loaded):
        response = await loaded.retrieve("mammals", RetrievalOptions(strategy="keyword"))

        first = response.results[0]
        assert first.original_score == pytest.approx(1 / 16)
        assert first.score == pytest.approx(1 / 16 * 1.2 * 1.3)

    async def test_reranking_disabled(self, make_settings, mammal_provider, mammal_chunks):
        retriever = KnowledgeRetriever(
            make_settings({"retrieval.enable_reranking": False}), provider=mammal_provider
        )
        await retriever.ingest(mammal_chunks)

        response = await retriever.retrieve("mammals", RetrievalOptions(strategy="keyword"))

        assert response.results[0].original_score is None
        assert retriever.get_stats()["reranked_queries"] == 0

    async def test_semantic_threshold_excludes_unrelated(self, loaded):
        response = await loaded.retrieve("mammals", RetrievalOptions(strategy="semantic"))

        assert [r.chunk_id for r in response.results] == ["cats", "dogs"]

    async def test_auto_strategy(self, loaded):
        response = await loaded.retrieve("mammals")

        assert response.strategy is SearchStrategy.HYBRID
        assert response.results[0].chunk_id == "cats"

    async def test_query_is_normalized(self, loaded):
        response = await loaded.retrieve("   mammals  ", RetrievalOptions(strategy="keyword"))

        assert response.query == "mammals"

    @pytest.mark.parametrize("query", ["", "   "])
    async def test_empty_query(self, loaded, query):
        with pytest.raises(EmptyQueryError):
            await loaded.retrieve(query)

        assert loaded.get_stats()["failed_queries"] == 1

    @pytest.mark.parametrize("strategy", [None, "semantic", "keyword", "hybrid"])
    async def test_query_without_word_characters(self, make_settings, mammal_chunks, strategy):
        settings = make_settings({"embeddings.provider": "hashing", "embeddings.dimension": 128})

        async with KnowledgeRetriever(settings) as retriever:
            await retriever.ingest(mammal_chunks)
            response = await retriever.retrieve("???", RetrievalOptions(strategy=strategy))
            stats = retriever.get_stats()

        assert response.results == []
        assert response.context.text == ""
        assert not response.metadata.degraded
        assert stats["failed_queries"] == 0
        assert stats["degraded_searches"] == 0

    async def test_unknown_strategy_name(self, loaded):
        with pytest.raises(UnknownStrategyError):
            await loaded.retrieve("mammals", RetrievalOptions(strategy="fuzzy"))

    async def test_limit_clamped_to_max(self, make_settings, mammal_provider, make_chunk):
        retriever = KnowledgeRetriever(
            make_settings({"retrieval.default_limit": 2, "retrieval.max_limit": 2}),
            provider=mammal_provider,
        )
        await retriever.ingest([make_chunk(f"mammals fact number {i}") for i in range(5)])

        response = await retriever.retrieve(
            "mammals", RetrievalOptions(strategy="keyword", limit=50, diversity=False)
        )

        assert len(response.results) == 2

    async def test_metadata_filters(self, make_settings, mammal_provider, make_chunk):
        retriever = KnowledgeRetriever(make_settings(), provider=mammal_provider)
        await retriever.ingest(
            [
                make_chunk("cats are mammals", id="cats", metadata={"lang": "en"}),
                make_chunk("dogs are mammals", id="dogs", metadata={"lang": "fr"}),
            ]
        )

        response = await retriever.retrieve(
            "mammals", RetrievalOptions(strategy="keyword", filters={"lang": "fr"})
        )

        assert [r.chunk_id for r in response.results] == ["dogs"]

    async def test_diversity_drops_duplicates(self, make_settings, mammal_provider, make_chunk):
        retriever = KnowledgeRetriever(make_settings(), provider=mammal_provider)
        await retriever.ingest(
            [
                make_chunk("cats are mammals", id="a"),
                make_chunk("cats are mammals", id="b", source_id="mirror"),
            ]
        )

        diverse = await retriever.retrieve("mammals", RetrievalOptions(strategy="keyword"))
        everything = await retriever.retrieve(
            "mammals", RetrievalOptions(strategy="keyword", diversity=False)
        )

        assert [r.chunk_id for r in diverse.results] == ["a"]
        assert [r.chunk_id for r in everything.results] == ["a", "b"]

    async def test_context_limit(self, loaded):
        response = await loaded.retrieve(
            "mammals", RetrievalOptions(strategy="keyword", max_context_length=20)
        )

        assert response.context.text == "cats are mammals"
        assert response.context.truncated
        assert len(response.results) == 2


class TestDegraded:
    async def test_embedding_failure_propagates(self, loaded):
        loaded.embeddings.provider = FailingEmbeddings()

        with pytest.raises(EmbeddingUnavailableError):
            await loaded.retrieve("mammals", RetrievalOptions(strategy="semantic"))

    async def test_timeout_propagates(self, loaded):
        loaded.embeddings.provider = HangingEmbeddings()
        loaded.embeddings.timeout_seconds = 0.05

        with pytest.raises(EmbeddingTimeoutError):
            await loaded.retrieve("mammals", RetrievalOptions(strategy="hybrid"))

    async def test_keyword_fallback(self, make_settings, mammal_provider, mammal_chunks):
        retriever = KnowledgeRetriever(
            make_settings({"retrieval.allow_degraded_search": True}), provider=mammal_provider
        )
        await retriever.ingest(mammal_chunks)
        retriever.embeddings.provider = FailingEmbeddings()

        response = await retriever.retrieve("mammals", RetrievalOptions(strategy="semantic"))

        assert response.metadata.degraded
        assert response.strategy is SearchStrategy.SEMANTIC
        assert [r.chunk_id for r in response.results] == ["cats", "dogs"]
        # Degraded responses are never cached
        assert len(retriever.cache) == 0
        assert retriever.get_stats()["degraded_searches"] == 1


class TestCache:
    async def test_second_call_is_cached(self, loaded):
        options = RetrievalOptions(strategy="keyword")
        first = await loaded.retrieve("mammals", options)
        second = await loaded.retrieve("mammals", options)

        assert not first.metadata.cached
        assert second.metadata.cached
        assert second.results == first.results
        stats = loaded.get_stats()
        assert stats["cache_hits"] == 1
        assert stats["cache_misses"] == 1
        assert stats["cache_hit_rate"] == 0.5

    async def test_normalized_queries_share_an_entry(self, loaded):
        await loaded.retrieve("mammals", RetrievalOptions(strategy="keyword"))
        again = await loaded.retrieve(" mammals ", RetrievalOptions(strategy="keyword"))

        assert again.metadata.cached

    async def test_different_options_miss(self, loaded):
        await loaded.retrieve("mammals", RetrievalOptions(strategy="keyword", limit=1))
        other = await loaded.retrieve("mammals", RetrievalOptions(strategy="keyword", limit=2))

        assert not other.metadata.cached

    async def test_ingest_invalidates(self, loaded, make_chunk):
        options = RetrievalOptions(strategy="keyword")
        await loaded.retrieve("mammals", options)

        await loaded.ingest([make_chunk("whales are mammals", id="whales", source_id="sea")])
        response = await loaded.retrieve("mammals", options)

        assert not response.metadata.cached
        assert "whales" in [r.chunk_id for r in response.results]

    async def test_ttl_expiry(self, make_settings, mammal_provider, mammal_chunks, fake_clock):
        retriever = KnowledgeRetriever(
            make_settings({"cache.ttl_seconds": 10}), provider=mammal_provider, clock=fake_clock
        )
        await retriever.ingest(mammal_chunks)
        options = RetrievalOptions(strategy="keyword")
        await retriever.retrieve("mammals", options)

        fake_clock.advance(10)
        response = await retriever.retrieve("mammals", options)

        assert not response.metadata.cached

    async def test_cache_disabled(self, make_settings, mammal_provider, mammal_chunks):
        retriever = KnowledgeRetriever(
            make_settings({"cache.enabled": False}), provider=mammal_provider
        )
        await retriever.ingest(mammal_chunks)

        await retriever.retrieve("mammals")
        response = await retriever.retrieve("mammals")

        assert retriever.cache is None
        assert not response.metadata.cached
        assert retriever.get_stats()["query_cache"] is None

    async def test_clear_cache(self, loaded):
        options = RetrievalOptions(strategy="keyword")
        await loaded.retrieve("mammals", options)

        loaded.clear_cache()

        assert not (await loaded.retrieve("mammals", options)).metadata.cached


class TestRemoval:
    async def test_remove_source(self, retriever, make_chunk):
        chunks = [make_chunk(f"part {i} of the guide", source_id="guide.md") for i in range(5)]
        other = make_chunk("part of another text", source_id="other.md")
        await retriever.ingest(chunks + [other])

        result = retriever.remove_by_source("guide.md")

        assert result.source_id == "guide.md"
        assert result.vectors_removed == 5
        assert len(retriever.vector_index) == 1
        assert len(retriever.keyword_index) == 1
        response = await retriever.retrieve("part", RetrievalOptions(strategy="keyword"))
        assert [r.chunk_id for r in response.results] == [other.id]

    async def test_remove_unknown_source(self, loaded):
        assert loaded.remove_by_source("missing").vectors_removed == 0
        assert len(loaded.vector_index) == 3

    async def test_remove_invalidates_cache(self, loaded):
        options = RetrievalOptions(strategy="keyword")
        await loaded.retrieve("mammals", options)

        loaded.remove_by_source("zoo")
        response = await loaded.retrieve("mammals", options)

        assert not response.metadata.cached
        assert response.results == []
        assert response.context.text == ""

    async def test_clear_index(self, loaded):
        loaded.clear_index()

        assert len(loaded.vector_index) == 0
        assert len(loaded.keyword_index) == 0


class TestLifecycle:
    async def test_concurrent_queries(self, loaded):
        responses = await asyncio.gather(
            *(loaded.retrieve("mammals", RetrievalOptions(strategy="keyword")) for _ in range(10))
        )

        assert all([r.chunk_id for r in resp.results] == ["cats", "dogs"] for resp in responses)

    async def test_stats(self, loaded):
        await loaded.retrieve("mammals", RetrievalOptions(strategy="keyword"))
        await loaded.retrieve("mammals", RetrievalOptions(strategy="hybrid"))

        stats = loaded.get_stats()

        assert stats["total_queries"] == 2
        assert stats["failed_queries"] == 0
        assert stats["keyword_searches"] == 1
        assert stats["hybrid_searches"] == 1
        assert stats["ingested_chunks"] == 3
        assert stats["average_results_per_query"] > 0
        assert stats["average_relevance_score"] > 0
        assert stats["vector_index"]["size"] == 3
        assert stats["keyword_index"]["size"] == 3
        assert stats["embeddings"]["dimension"] == 4

    async def test_async_context_manager_closes_provider(self, make_settings):
        provider = ClosableEmbeddings({"x": [1.0, 0.0]})

        async with KnowledgeRetriever(make_settings(), provider=provider) as retriever:
            await retriever.ingest([])

        assert provider.closed

    async def test_hashing_provider_end_to_end(self, make_settings, mammal_chunks):
        settings = make_settings({"embeddings.dimension": 128, "retrieval.similarity_threshold": 0.1})

        async with KnowledgeRetriever(settings) as retriever:
            result = await retriever.ingest(mammal_chunks)
            response = await retriever.retrieve("are cats mammals")

        assert result.indexed == 3
        assert response.results[0].chunk_id == "cats"
