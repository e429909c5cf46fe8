"""Deterministic local embedding provider.

Produces fixed-dimension vectors by hashing word tokens into buckets
(the "hashing trick") and L2-normalising the result.  Identical text
always yields the identical vector and no model or network access is
needed, which makes it the default for development and the test suite.
It is not a semantic model.
"""

from __future__ import annotations

import hashlib
import math

import structlog

from queue_processor.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)


class HashEmbeddingProvider(IEmbeddingProvider):
    """Feature-hashing embedder.

    Parameters
    ----------
    dimension:
        Length of every produced vector (default 768, matching
        ``BAAI/bge-base-en-v1.5``).
    """

    def __init__(self, dimension: int = 768) -> None:
        if dimension < 1:
            raise ValueError("dimension must be at least 1")
        self._dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._vectorise(text) for text in texts]

    def _vectorise(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in text.lower().split():
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "hash"

    def is_available(self) -> bool:
        return True
