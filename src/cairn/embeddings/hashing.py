"""
Feature-hashing embeddings.

A deterministic bag-of-words projection: each lowercase word is hashed to a
signed bucket of a fixed-size vector. No model and no network, so it serves
local runs and tests. Texts sharing vocabulary land close in cosine space;
it carries no deeper semantics.
"""

import hashlib
import re
from typing import List

import numpy as np

from cairn.core.logging import logger


_TOKEN_RE = re.compile(r"\w+")


class HashingEmbeddings:
    """Signed feature hashing into ``dimension`` buckets, L2-normalised."""

    def __init__(self, dimension: int = 384, sublinear_tf: bool = True) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.dimension = dimension
        self.sublinear_tf = sublinear_tf
        logger.info("HashingEmbeddings ready", dimension=dimension)

    def _bucket(self, token: str) -> tuple[int, float]:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        value = int.from_bytes(digest, "big")
        sign = 1.0 if value & 1 else -1.0
        return (value >> 1) % self.dimension, sign

    def embed_sync(self, text: str) -> List[float]:
        """
        Projects the text.

        Returns the zero vector when the text has no word characters; callers
        treat that as an unusable embedding.
        """
        vector = np.zeros(self.dimension, dtype=np.float32)
        counts: dict[str, int] = {}
        for token in _TOKEN_RE.findall(text.lower()):
            counts[token] = counts.get(token, 0) + 1

        for token, count in counts.items():
            index, sign = self._bucket(token)
            weight = 1.0 + np.log(count) if self.sublinear_tf else float(count)
            vector[index] += sign * weight

        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector /= norm
        return vector.tolist()

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)
