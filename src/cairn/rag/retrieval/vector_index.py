"""
Exact in-memory vector index.

Brute-force similarity over an immutable snapshot. Writers build a new
snapshot under a lock and publish it with a single assignment, so searches
never lock and always see a chunk either fully indexed or not at all.

Records live in an arena of slots. Each slot carries a generation that is
bumped when the slot is freed, and entry ids embed both ("<generation>:<slot>"),
so an id kept after its record was removed never resolves to whatever later
reused the slot.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np

from cairn.core.exceptions import NotFoundError
from cairn.core.logging import logger
from cairn.core.tracing import MetricsCollector
from cairn.embeddings.types import VectorLike, to_array
from cairn.models.chunk import Chunk, VectorEntry
from cairn.models.retrieval import SearchResult, SearchSource


class SimilarityMetric(str, Enum):
    """Similarity used by an index instance; fixed for its lifetime."""

    COSINE = "cosine"  # [-1, 1]
    DOT = "dot"  # Unbounded inner product
    EUCLIDEAN = "euclidean"  # 1 / (1 + distance), in (0, 1]


@runtime_checkable
class SearchIndex(Protocol):
    """
    Contract of a vector index.

    Any structure honouring it (an approximate index, a remote store) can
    replace VectorIndex inside KnowledgeRetriever.
    """

    @property
    def dimension(self) -> Optional[int]: ...  # pragma: no cover

    def insert(self, chunk: Chunk, vector: VectorLike) -> str: ...  # pragma: no cover

    def insert_many(
        self, pairs: Sequence[Tuple[Chunk, VectorLike]]
    ) -> List[str]: ...  # pragma: no cover

    def remove(self, chunk_id: str) -> int: ...  # pragma: no cover

    def remove_many(self, chunk_ids: Sequence[str]) -> int: ...  # pragma: no cover

    def clear(self) -> None: ...  # pragma: no cover

    def get_stats(self) -> Dict[str, object]: ...  # pragma: no cover

    def search(
        self, query_vector: VectorLike, k: int, score_threshold: Optional[float] = None
    ) -> List[SearchResult]: ...  # pragma: no cover

    def __len__(self) -> int: ...  # pragma: no cover


@dataclass(frozen=True)
class _Record:
    entry: VectorEntry
    chunk: Chunk
    sequence: int


@dataclass(frozen=True)
class _Snapshot:
    """Read-only view published to searchers. Never mutated after publish."""

    matrix: np.ndarray  # (n, D) float64, rows unit length for cosine
    sequences: np.ndarray  # (n,) insertion sequence per row
    records: Tuple[_Record, ...]
    rows_by_entry: Dict[str, int]
    rows_by_chunk: Dict[str, int]

    @classmethod
    def empty(cls, dimension: Optional[int]) -> "_Snapshot":
        return cls(
            matrix=np.zeros((0, dimension or 0), dtype=np.float64),
            sequences=np.zeros(0, dtype=np.int64),
            records=(),
            rows_by_entry={},
            rows_by_chunk={},
        )


class VectorIndex:
    """
    Exact nearest-neighbour search over chunk vectors.

    Search is O(N·D) per query. Inserting a chunk id that is already present
    replaces its previous vector.
    """

    def __init__(
        self,
        dimension: Optional[int] = None,
        metric: SimilarityMetric = SimilarityMetric.COSINE,
    ):
        """
        Args:
            dimension: Vector length; None to take it from the first insert
            metric: Similarity metric for every search on this index
        """
        if dimension is not None and dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")

        self.metric = SimilarityMetric(metric)
        self._dimension = dimension
        self._write_lock = threading.Lock()
        self._slots: List[Optional[_Record]] = []
        self._generations: List[int] = []
        self._free_slots: List[int] = []
        self._slot_by_chunk: Dict[str, int] = {}
        self._sequence = 0
        self._snapshot = _Snapshot.empty(dimension)
        self.metrics = MetricsCollector()

        logger.info("VectorIndex initialized", dimension=dimension, metric=self.metric.value)

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __len__(self) -> int:
        return len(self._snapshot.records)

    def contains(self, chunk_id: str) -> bool:
        return chunk_id in self._snapshot.rows_by_chunk

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        snapshot = self._snapshot
        row = snapshot.rows_by_chunk.get(chunk_id)
        return snapshot.records[row].chunk if row is not None else None

    def get_entry(self, entry_id: str) -> VectorEntry:
        """
        Resolves an entry id.

        Raises:
            NotFoundError: Unknown id, or the record it named was removed
        """
        snapshot = self._snapshot
        row = snapshot.rows_by_entry.get(entry_id)
        if row is None:
            raise NotFoundError(
                f"Vector entry not found: {entry_id}", context={"entry_id": entry_id}
            )
        return snapshot.records[row].entry

    def chunks(self) -> List[Chunk]:
        """Indexed chunks in insertion order."""
        return [record.chunk for record in self._snapshot.records]

    # ----- mutations (writer lock) -----

    def insert(self, chunk: Chunk, vector: VectorLike) -> str:
        """
        Indexes one chunk.

        Returns:
            Entry id of the stored vector

        Raises:
            DimensionMismatchError: Length differs from the index dimension
            InvalidVectorError: NaN/Inf values or the zero vector
        """
        return self.insert_many([(chunk, vector)])[0]

    def insert_many(self, pairs: Sequence[Tuple[Chunk, VectorLike]]) -> List[str]:
        """
        Indexes several chunks with a single snapshot publish.

        All vectors are validated before anything changes: one bad vector
        rejects the whole batch and leaves the index untouched.
        """
        if not pairs:
            return []

        with self._write_lock:
            dimension = self._dimension
            arrays = []
            for chunk, vector in pairs:
                array = to_array(vector, expected_dimension=dimension, name="vector")
                dimension = int(array.shape[0])
                arrays.append(array)

            if self._dimension is None:
                self._dimension = dimension
                logger.info("VectorIndex dimension set", dimension=dimension)

            entry_ids = []
            for (chunk, _), array in zip(pairs, arrays):
                self._release_chunk(chunk.id)
                entry_ids.append(self._allocate(chunk, array))

            self._publish()

        self.metrics.increment("vector_index.inserts", len(entry_ids))
        logger.debug("Vectors inserted", count=len(entry_ids), size=len(self))
        return entry_ids

    def remove(self, chunk_id: str) -> int:
        """Removes every entry of a chunk. Idempotent: 0 if absent."""
        return self.remove_many([chunk_id])

    def remove_many(self, chunk_ids: Sequence[str]) -> int:
        """Removes several chunks with a single snapshot publish."""
        with self._write_lock:
            removed = sum(self._release_chunk(chunk_id) for chunk_id in chunk_ids)
            if removed:
                self._publish()

        if removed:
            self.metrics.increment("vector_index.removals", removed)
            logger.debug("Vectors removed", count=removed, size=len(self))
        return removed

    def clear(self) -> None:
        """Drops every entry. The dimension stays pinned."""
        with self._write_lock:
            for slot, record in enumerate(self._slots):
                if record is not None:
                    self._generations[slot] += 1
                    self._slots[slot] = None
                    self._free_slots.append(slot)
            self._slot_by_chunk.clear()
            self._publish()
        logger.info("VectorIndex cleared")

    def _allocate(self, chunk: Chunk, array: np.ndarray) -> str:
        if self._free_slots:
            slot = self._free_slots.pop()
        else:
            slot = len(self._slots)
            self._slots.append(None)
            self._generations.append(0)

        entry_id = f"{self._generations[slot]}:{slot}"
        self._sequence += 1
        self._slots[slot] = _Record(
            entry=VectorEntry(id=entry_id, vector=array, chunk_id=chunk.id),
            chunk=chunk,
            sequence=self._sequence,
        )
        self._slot_by_chunk[chunk.id] = slot
        return entry_id

    def _release_chunk(self, chunk_id: str) -> int:
        slot = self._slot_by_chunk.pop(chunk_id, None)
        if slot is None:
            return 0
        self._slots[slot] = None
        self._generations[slot] += 1
        self._free_slots.append(slot)
        return 1

    def _publish(self) -> None:
        records = sorted(
            (record for record in self._slots if record is not None), key=lambda r: r.sequence
        )
        if not records:
            self._snapshot = _Snapshot.empty(self._dimension)
            return

        matrix = np.vstack([record.entry.vector for record in records]).astype(np.float64)
        if self.metric is SimilarityMetric.COSINE:
            matrix /= np.linalg.norm(matrix, axis=1, keepdims=True)

        self._snapshot = _Snapshot(
            matrix=matrix,
            sequences=np.array([record.sequence for record in records], dtype=np.int64),
            records=tuple(records),
            rows_by_entry={record.entry.id: row for row, record in enumerate(records)},
            rows_by_chunk={record.chunk.id: row for row, record in enumerate(records)},
        )

    # ----- search (lock free) -----

    def search(
        self, query_vector: VectorLike, k: int, score_threshold: Optional[float] = None
    ) -> List[SearchResult]:
        """
        Top-k chunks by similarity to the query vector.

        Args:
            query_vector: Validated like inserted vectors
            k: Maximum number of results
            score_threshold: Keep only scores >= threshold

        Returns:
            At most min(k, len(index)) results, descending score, ties in
            insertion order
        """
        snapshot = self._snapshot
        query = to_array(query_vector, expected_dimension=self._dimension, name="query vector")
        self.metrics.increment("vector_index.searches")

        if k <= 0 or not snapshot.records:
            return []

        scores = self._score(snapshot.matrix, query.astype(np.float64))

        candidates = np.arange(len(snapshot.records))
        if score_threshold is not None:
            candidates = candidates[scores >= score_threshold]
            if candidates.size == 0:
                return []

        # lexsort keys run last-to-first: score descending, then sequence
        order = np.lexsort((snapshot.sequences[candidates], -scores[candidates]))
        top = candidates[order[:k]]

        return [
            SearchResult(
                chunk_id=snapshot.records[row].chunk.id,
                score=float(scores[row]),
                source=SearchSource.SEMANTIC,
                chunk=snapshot.records[row].chunk,
            )
            for row in top
        ]

    def _score(self, matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
        if self.metric is SimilarityMetric.COSINE:
            scores = matrix @ (query / np.linalg.norm(query))
            return np.clip(scores, -1.0, 1.0)
        if self.metric is SimilarityMetric.DOT:
            return matrix @ query
        if self.metric is SimilarityMetric.EUCLIDEAN:
            distances = np.linalg.norm(matrix - query, axis=1)
            return 1.0 / (1.0 + distances)
        raise ValueError(f"Unsupported metric: {self.metric}")

    def get_stats(self) -> Dict[str, object]:
        metrics = self.metrics.get_metrics()
        return {
            "size": len(self),
            "dimension": self._dimension,
            "metric": self.metric.value,
            "slots": len(self._slots),
            "inserts": int(metrics.get("vector_index.inserts", 0)),
            "removals": int(metrics.get("vector_index.removals", 0)),
            "searches": int(metrics.get("vector_index.searches", 0)),
        }
