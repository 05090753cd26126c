"""
Search filters for retrieval results.

Post-search filtering on chunk metadata.
"""

from typing import Any, Dict, List, Optional

from cairn.core.logging import logger
from cairn.models.retrieval import SearchResult


class SearchFilters:
    """
    Metadata equality filters.

    A result survives when chunk.metadata[key] == value for every pair. A
    missing key never matches, not even a None value.
    """

    _MISSING = object()

    def matches(self, result: SearchResult, filters: Dict[str, Any]) -> bool:
        metadata = result.chunk.metadata
        return all(
            metadata.get(key, self._MISSING) == value for key, value in filters.items()
        )

    def apply(
        self, results: List[SearchResult], filters: Optional[Dict[str, Any]] = None
    ) -> List[SearchResult]:
        if not filters:
            return results

        filtered = [result for result in results if self.matches(result, filters)]

        logger.debug(
            "Filter by metadata",
            keys=sorted(filters),
            before=len(results),
            after=len(filtered),
        )
        return filtered
