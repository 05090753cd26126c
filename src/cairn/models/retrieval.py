"""
Retrieval models.
Search results, assembled context and the response handed to the caller.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from cairn.core.exceptions import UnknownStrategyError
from cairn.core.utils.datetime_utils import utc_now_testable
from cairn.models.base import CairnBaseModel, FrozenModel
from cairn.models.chunk import Chunk


class SearchStrategy(str, Enum):
    """How candidates are produced for a query."""

    SEMANTIC = "semantic"  # Vector similarity only
    KEYWORD = "keyword"  # Lexical match density only
    HYBRID = "hybrid"  # Weighted fusion of both


def parse_strategy(value: object) -> SearchStrategy:
    """
    Accepts a SearchStrategy or its name in any case.

    Raises:
        UnknownStrategyError: If value names no strategy
    """
    if isinstance(value, SearchStrategy):
        return value
    try:
        return SearchStrategy(str(value).lower())
    except ValueError:
        raise UnknownStrategyError(
            f"Unknown search strategy: {value}",
            context={"allowed": [s.value for s in SearchStrategy]},
        )


class SearchSource(str, Enum):
    """Signal that produced a result's score."""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class SearchResult(FrozenModel):
    """
    Chunk with relevance score.

    The chunk travels with the result so later pipeline stages never look an
    id up again in an index that may have changed since the search.
    """

    chunk_id: str = Field(..., description="Id of the matched chunk")
    score: float = Field(..., description="Relevance score (metric dependent)")
    source: SearchSource = Field(..., description="Signal that produced the score")
    chunk: Chunk = Field(..., description="Matched chunk")
    original_score: Optional[float] = Field(
        None, description="Score before re-ranking, kept for observability"
    )

    @property
    def text(self) -> str:
        return self.chunk.text


class ContextSource(FrozenModel):
    """Attribution of one chunk included in a context block."""

    chunk_id: str
    source_ref: str
    score: float
    chunk_index: int = 0


class ContextBlock(FrozenModel):
    """Packed, length-bounded context with source attribution."""

    text: str = ""
    sources: List[ContextSource] = Field(default_factory=list)
    total_length: int = Field(0, ge=0)
    truncated: bool = False

    @property
    def chunk_count(self) -> int:
        return len(self.sources)


class RetrievalMetadata(FrozenModel):
    """Bookkeeping attached to each response."""

    total_results: int = Field(..., ge=0)
    search_time_ms: float = Field(..., ge=0)
    timestamp: datetime = Field(default_factory=utc_now_testable)
    degraded: bool = Field(False, description="Keyword-only fallback after an embedding failure")
    cached: bool = Field(False, description="Served from the query cache")


class RetrievalResponse(FrozenModel):
    """Everything the engine returns for one query."""

    query: str
    strategy: SearchStrategy
    results: List[SearchResult] = Field(default_factory=list)
    context: ContextBlock = Field(default_factory=ContextBlock)
    metadata: RetrievalMetadata


class RetrievalOptions(CairnBaseModel):
    """
    Per-call options of KnowledgeRetriever.retrieve().

    Unset values fall back to the engine configuration.
    """

    limit: Optional[int] = Field(None, gt=0)
    strategy: Optional[SearchStrategy] = None
    threshold: Optional[float] = Field(None, ge=-1.0, le=1.0)
    max_context_length: Optional[int] = Field(None, gt=0)
    diversity: Optional[bool] = None
    filters: Optional[Dict[str, Any]] = None

    @field_validator("strategy", mode="before")
    @classmethod
    def _parse_strategy(cls, value: Any) -> Optional[SearchStrategy]:
        # Surfaces as UnknownStrategyError, not as a pydantic ValidationError
        return None if value is None else parse_strategy(value)


class IngestFailure(FrozenModel):
    chunk_id: str
    reason: str


class IngestResult(CairnBaseModel):
    """Outcome of an ingest call; per-chunk failures do not abort the batch."""

    indexed: int = Field(0, ge=0)
    failed: List[IngestFailure] = Field(default_factory=list)


class RemovalResult(FrozenModel):
    source_id: str
    vectors_removed: int = Field(0, ge=0)
