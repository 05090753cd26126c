"""
Tests for context assembly.
"""

import pytest

from cairn.models import Chunk, SearchResult, SearchSource
from cairn.rag.retrieval import ContextAssembler


def result(text: str, source_id: str = "doc", chunk_index: int = 0) -> SearchResult:
    chunk = Chunk(text=text, source_id=source_id, chunk_index=chunk_index)
    return SearchResult(chunk_id=chunk.id, score=0.5, source=SearchSource.HYBRID, chunk=chunk)


class TestContextAssembler:
    def test_joins_with_separator(self):
        block = ContextAssembler(max_length=100).assemble([result("first"), result("second")])

        assert block.text == "first\n\nsecond"
        assert block.total_length == len("first\n\nsecond")
        assert block.chunk_count == 2
        assert not block.truncated

    def test_attribution(self):
        block = ContextAssembler().assemble([result("text", source_id="zoo.md", chunk_index=3)])

        source = block.sources[0]
        assert source.source_ref == "zoo.md"
        assert source.chunk_index == 3
        assert source.score == 0.5

    def test_separator_counts_toward_limit(self):
        results = [result("a" * 5), result("b" * 5)]

        assert ContextAssembler(max_length=12).assemble(results).chunk_count == 2
        assert ContextAssembler(max_length=11).assemble(results).chunk_count == 1

    def test_stops_at_first_overflow(self):
        results = [result("a" * 5), result("b" * 50), result("c")]

        block = ContextAssembler(max_length=20).assemble(results)

        assert block.text == "a" * 5
        assert block.truncated

    def test_first_chunk_too_long(self):
        block = ContextAssembler(max_length=3).assemble([result("too long")])

        assert block.text == ""
        assert block.sources == []
        assert block.truncated

    def test_per_call_limit(self):
        assembler = ContextAssembler(max_length=1000)

        block = assembler.assemble([result("a" * 10), result("b" * 10)], max_length=15)

        assert block.chunk_count == 1

    def test_empty_results(self):
        block = ContextAssembler().assemble([])

        assert block.text == ""
        assert not block.truncated

    def test_invalid_max_length(self):
        with pytest.raises(ValueError):
            ContextAssembler(max_length=0)
