"""
Context assembly.

Packs ranked chunk texts into one length-bounded block with source
attribution, ready to ground a generation step.
"""

from typing import List

from cairn.core.logging import logger
from cairn.models.retrieval import ContextBlock, ContextSource, SearchResult


CHUNK_SEPARATOR = "\n\n"


class ContextAssembler:
    """
    Concatenates chunk texts in result order.

    Stops at the first chunk that would push the text past max_length
    (separators count) and marks the block truncated. Later, shorter chunks
    are not used to fill the gap: the block is always a prefix of the ranking.
    """

    def __init__(self, max_length: int = 4000, separator: str = CHUNK_SEPARATOR):
        if max_length <= 0:
            raise ValueError(f"max_length must be positive, got {max_length}")
        self.max_length = max_length
        self.separator = separator

    def assemble(self, results: List[SearchResult], max_length: int = 0) -> ContextBlock:
        """
        Args:
            results: Ranked results
            max_length: Per-call limit in characters (0 = the assembler default)
        """
        limit = max_length or self.max_length
        parts: List[str] = []
        sources: List[ContextSource] = []
        length = 0

        for result in results:
            addition = len(result.text) + (len(self.separator) if parts else 0)
            if length + addition > limit:
                break
            parts.append(result.text)
            length += addition
            sources.append(
                ContextSource(
                    chunk_id=result.chunk_id,
                    source_ref=result.chunk.source_id,
                    score=result.score,
                    chunk_index=result.chunk.chunk_index,
                )
            )

        text = self.separator.join(parts)
        truncated = len(sources) < len(results)
        if truncated:
            logger.debug(
                "Context truncated",
                included=len(sources),
                candidates=len(results),
                max_length=limit,
            )

        return ContextBlock(text=text, sources=sources, total_length=len(text), truncated=truncated)
