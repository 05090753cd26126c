"""
Keyword index.

Lexical match density over lowercase word tokens. An inverted index maps each
term to the chunks containing it, so a search only touches chunks that share
at least one term with the query.
"""

import re
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Mapping, Sequence, Set

from cairn.core.logging import logger
from cairn.core.tracing import MetricsCollector
from cairn.models.chunk import Chunk
from cairn.models.retrieval import SearchResult, SearchSource


_TOKEN_RE = re.compile(r"\w+")


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens, duplicates kept."""
    return _TOKEN_RE.findall(text.lower())


@dataclass(frozen=True)
class _Posting:
    chunk: Chunk
    term_counts: Mapping[str, int]
    sequence: int


@dataclass(frozen=True)
class _KeywordSnapshot:
    postings: Dict[str, _Posting]
    terms: Dict[str, FrozenSet[str]]


class KeywordIndex:
    """
    Term-frequency search.

    score = sum over query terms of tf(term, chunk) / len(chunk.text)

    Query terms are not deduplicated: a repeated term counts once per
    occurrence. Same copy-on-write scheme as VectorIndex.
    """

    def __init__(self) -> None:
        self._write_lock = threading.Lock()
        self._snapshot = _KeywordSnapshot(postings={}, terms={})
        self._sequence = 0
        self.metrics = MetricsCollector()
        logger.info("KeywordIndex initialized")

    def __len__(self) -> int:
        return len(self._snapshot.postings)

    def contains(self, chunk_id: str) -> bool:
        return chunk_id in self._snapshot.postings

    def chunk_ids_for_source(self, source_id: str) -> List[str]:
        """Ids of the indexed chunks of one source, in insertion order."""
        postings = self._snapshot.postings.values()
        return [
            p.chunk.id for p in sorted(postings, key=lambda p: p.sequence)
            if p.chunk.source_id == source_id
        ]

    def insert(self, chunk: Chunk) -> None:
        self.insert_many([chunk])

    def insert_many(self, chunks: Sequence[Chunk]) -> None:
        """Indexes chunks; an id already present is replaced."""
        if not chunks:
            return

        with self._write_lock:
            postings = dict(self._snapshot.postings)
            terms = dict(self._snapshot.terms)

            for chunk in chunks:
                self._drop(postings, terms, chunk.id)
                self._sequence += 1
                counts = Counter(tokenize(chunk.text))
                postings[chunk.id] = _Posting(
                    chunk=chunk, term_counts=dict(counts), sequence=self._sequence
                )
                for term in counts:
                    terms[term] = terms.get(term, frozenset()) | {chunk.id}

            self._snapshot = _KeywordSnapshot(postings=postings, terms=terms)

        self.metrics.increment("keyword_index.inserts", len(chunks))

    def remove(self, chunk_id: str) -> int:
        return self.remove_many([chunk_id])

    def remove_many(self, chunk_ids: Sequence[str]) -> int:
        """Removes chunks. Idempotent: unknown ids are ignored."""
        with self._write_lock:
            postings = dict(self._snapshot.postings)
            terms = dict(self._snapshot.terms)
            removed = sum(self._drop(postings, terms, chunk_id) for chunk_id in chunk_ids)
            if removed:
                self._snapshot = _KeywordSnapshot(postings=postings, terms=terms)

        if removed:
            self.metrics.increment("keyword_index.removals", removed)
        return removed

    def clear(self) -> None:
        with self._write_lock:
            self._snapshot = _KeywordSnapshot(postings={}, terms={})
        logger.info("KeywordIndex cleared")

    @staticmethod
    def _drop(
        postings: Dict[str, _Posting], terms: Dict[str, FrozenSet[str]], chunk_id: str
    ) -> int:
        posting = postings.pop(chunk_id, None)
        if posting is None:
            return 0
        for term in posting.term_counts:
            remaining = terms[term] - {chunk_id}
            if remaining:
                terms[term] = remaining
            else:
                del terms[term]
        return 1

    def search(self, query_text: str, k: int) -> List[SearchResult]:
        """
        Top-k chunks by match density.

        Returns:
            Only chunks with a positive score, descending, ties in insertion
            order
        """
        snapshot = self._snapshot
        self.metrics.increment("keyword_index.searches")

        query_terms = tokenize(query_text)
        if k <= 0 or not query_terms:
            return []

        candidate_ids: Set[str] = set()
        for term in set(query_terms):
            candidate_ids |= snapshot.terms.get(term, frozenset())

        scored = []
        for chunk_id in candidate_ids:
            posting = snapshot.postings[chunk_id]
            matches = sum(posting.term_counts.get(term, 0) for term in query_terms)
            score = matches / len(posting.chunk.text)
            if score > 0:
                scored.append((score, posting))

        scored.sort(key=lambda item: (-item[0], item[1].sequence))

        return [
            SearchResult(
                chunk_id=posting.chunk.id,
                score=score,
                source=SearchSource.KEYWORD,
                chunk=posting.chunk,
            )
            for score, posting in scored[:k]
        ]

    def get_stats(self) -> Dict[str, int]:
        metrics = self.metrics.get_metrics()
        return {
            "size": len(self),
            "terms": len(self._snapshot.terms),
            "inserts": int(metrics.get("keyword_index.inserts", 0)),
            "removals": int(metrics.get("keyword_index.removals", 0)),
            "searches": int(metrics.get("keyword_index.searches", 0)),
        }
