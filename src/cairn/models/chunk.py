"""
Chunk models.
Defines the retrievable unit of text and its vector entry.
"""

from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
from pydantic import Field

from cairn.models.base import FrozenModel, StandardIdMixin


class Chunk(FrozenModel, StandardIdMixin):
    """
    Unit of source text plus metadata.
    The atomic retrievable item; immutable once created.
    """

    text: str = Field(..., min_length=1, description="Chunk text")
    source_id: str = Field(..., min_length=1, description="Reference of the source document")
    chunk_index: int = Field(0, ge=0, description="Position of the chunk inside its source")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")

    @property
    def length(self) -> int:
        """Length of the text in characters."""
        return len(self.text)


@dataclass(frozen=True)
class VectorEntry:
    """
    A stored vector and the chunk it belongs to.

    Attributes:
        id: Generation-checked entry id ("<generation>:<slot>")
        vector: float32 array of the index dimension
        chunk_id: Id of the owning chunk
    """

    id: str
    vector: np.ndarray
    chunk_id: str

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])
