"""
Standard types for the embeddings module.

Defines EmbeddingVector as the embedding format used throughout CAIRN and the
EmbeddingProvider protocol that external models plug into.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Union, runtime_checkable

import numpy as np

from cairn.core.exceptions import DimensionMismatchError, InvalidVectorError


VectorLike = Union["EmbeddingVector", np.ndarray, Sequence[float]]


def to_array(
    data: VectorLike, expected_dimension: Optional[int] = None, name: str = "vector"
) -> np.ndarray:
    """Converts and validates a vector.

    Args:
        data: EmbeddingVector, NumPy array or sequence of floats
        expected_dimension: Required length, if already known
        name: Label used in error messages

    Returns:
        1-D float32 array (a copy, never a view of the caller's data)

    Raises:
        InvalidVectorError: Not 1-D, empty, non-finite values or all zeros
        DimensionMismatchError: Length differs from expected_dimension
    """
    if isinstance(data, EmbeddingVector):
        array = data.numpy.copy()
    else:
        try:
            array = np.array(data, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise InvalidVectorError(f"{name} is not numeric", cause=e)

    if array.ndim != 1 or array.shape[0] == 0:
        raise InvalidVectorError(
            f"{name} must be a non-empty 1-D sequence", context={"shape": list(array.shape)}
        )

    if expected_dimension is not None and array.shape[0] != expected_dimension:
        raise DimensionMismatchError(expected_dimension, int(array.shape[0]))

    if not np.all(np.isfinite(array)):
        raise InvalidVectorError(f"{name} contains NaN or infinite values")

    if not np.any(array):
        # Cosine similarity is undefined for the zero vector
        raise InvalidVectorError(f"{name} is all zeros")

    return array


@dataclass(eq=False)
class EmbeddingVector:
    """Standard representation of embeddings in CAIRN.

    Internally uses NumPy (float32). The dimension is whatever the provider
    produced; the engine pins it on the first successful call.

    Attributes:
        _data: 1-D float32 array, finite and not all zeros
    """

    _data: np.ndarray

    def __init__(self, data: Union[np.ndarray, Sequence[float]]):
        """Initializes the embedding with validation.

        Raises:
            InvalidVectorError: If the vector is malformed, non-finite or all zeros
        """
        self._data = to_array(data, name="embedding")

    @property
    def numpy(self) -> np.ndarray:
        """For efficient mathematical operations."""
        return self._data

    @property
    def list(self) -> List[float]:
        """For generic serialization."""
        return self._data.tolist()

    @property
    def dimension(self) -> int:
        return int(self._data.shape[0])

    def normalized(self) -> "EmbeddingVector":
        """L2-normalised copy."""
        return EmbeddingVector(self._data / np.linalg.norm(self._data))

    def cosine_similarity(self, other: "EmbeddingVector") -> float:
        """Cosine similarity in [-1, 1].

        Raises:
            DimensionMismatchError: If the dimensions differ
        """
        if other.dimension != self.dimension:
            raise DimensionMismatchError(self.dimension, other.dimension)
        denominator = float(np.linalg.norm(self._data) * np.linalg.norm(other._data))
        return float(np.dot(self._data, other._data)) / denominator

    def __len__(self) -> int:
        return self.dimension


@runtime_checkable
class EmbeddingProvider(Protocol):
    """External capability mapping text to a fixed-length vector.

    Implementations raise any exception on failure; EmbeddingEngine wraps it
    as EmbeddingUnavailableError with the original as cause.
    """

    async def embed(self, text: str) -> Sequence[float]: ...  # pragma: no cover
