"""
Query preprocessing.

Normalizes raw query text before it reaches the cache and the indexes, with
optional expansion and rewriting.
"""

import re
from typing import Dict, Iterable, Optional, Sequence

from cairn.core.exceptions import EmptyQueryError
from cairn.core.logging import logger
from cairn.core.secure_config import Settings


# First entry of each list is the expansion that gets appended
DEFAULT_EXPANSIONS: Dict[str, Sequence[str]] = {
    "ai": ("artificial intelligence", "machine learning", "neural network"),
    "ml": ("machine learning", "artificial intelligence", "deep learning"),
    "code": ("programming", "software", "development"),
    "function": ("method", "procedure", "routine"),
}

DEFAULT_FILLERS = ("please", "can you", "could you", "would you", "help me")

_WHITESPACE_RE = re.compile(r"\s+")
_QUESTION_PREFIX_RE = re.compile(r"^(?:what is|what are|how to|how do)\b", re.IGNORECASE)
_TRAILING_QUESTION_RE = re.compile(r"\?+$")


class QueryProcessor:
    """
    Turns a raw query into the normalized form used for search and caching.

    Steps:
    1. Trim and collapse whitespace
    2. Truncate to max_query_length (logged)
    3. Reject empty queries
    4. Expansion (optional): append the first synonym of known abbreviations
    5. Rewriting (optional): strip question prefixes, "?" and filler phrases
    """

    def __init__(
        self,
        max_query_length: int = 1000,
        expansion: bool = False,
        rewriting: bool = False,
        expansions: Optional[Dict[str, Sequence[str]]] = None,
        fillers: Iterable[str] = DEFAULT_FILLERS,
    ):
        self.max_query_length = max_query_length
        self.expansion = expansion
        self.rewriting = rewriting
        if expansions is None:
            expansions = DEFAULT_EXPANSIONS
        self.expansions = {key.lower(): value for key, value in expansions.items()}
        self._filler_res = [
            re.compile(r"\b" + re.escape(filler) + r"\b", re.IGNORECASE) for filler in fillers
        ]

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueryProcessor":
        return cls(
            max_query_length=settings.get("retrieval.max_query_length", 1000),
            expansion=settings.get("retrieval.query_expansion", False),
            rewriting=settings.get("retrieval.query_rewriting", False),
        )

    def process(self, query: str) -> str:
        """
        Raises:
            EmptyQueryError: Nothing left after trimming
        """
        if not isinstance(query, str):
            raise EmptyQueryError("Query must be a string", context={"type": type(query).__name__})

        processed = _WHITESPACE_RE.sub(" ", query).strip()

        if len(processed) > self.max_query_length:
            logger.warning(
                "Query truncated",
                original_length=len(processed),
                max_query_length=self.max_query_length,
            )
            processed = processed[: self.max_query_length].rstrip()

        if not processed:
            raise EmptyQueryError("Query cannot be empty")

        if self.expansion:
            processed = self.expand(processed)
        if self.rewriting:
            processed = self.rewrite(processed)

        return processed

    def expand(self, query: str) -> str:
        expanded = query
        for term in query.lower().split():
            synonyms = self.expansions.get(term)
            if synonyms and synonyms[0] not in expanded.lower():
                expanded = f"{expanded} {synonyms[0]}"

        if expanded != query:
            logger.debug("Query expanded", original=query, expanded=expanded)
        return expanded

    def rewrite(self, query: str) -> str:
        """Question-to-statement rewrite; falls back to the input if nothing is left."""
        rewritten = _QUESTION_PREFIX_RE.sub("", query)
        rewritten = _TRAILING_QUESTION_RE.sub("", rewritten)
        for filler_re in self._filler_res:
            rewritten = filler_re.sub("", rewritten)
        rewritten = _WHITESPACE_RE.sub(" ", rewritten).strip()

        if not rewritten:
            return query
        if rewritten != query:
            logger.debug("Query rewritten", original=query, rewritten=rewritten)
        return rewritten
