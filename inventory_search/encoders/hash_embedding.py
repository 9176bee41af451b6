"""Deterministic, model-free text embeddings.

``HashingEmbeddingProvider`` hashes expanded query tokens and adjacent base
token bigrams into a fixed-size vector and L2-normalizes it. It needs no
model download, is stable across process restarts, and is the embedder used
by the local search path and the local fallback.

A model-backed provider can replace it by implementing ``EmbeddingProvider``;
callers rely only on ``embed`` and the advertised ``dimension``.
"""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np
import structlog

from inventory_libs.common.config import MAX_EMBEDDING_DIMENSION, MIN_EMBEDDING_DIMENSION
from ..ranking.query_expansion import QueryExpander, create_query_expander

logger = structlog.get_logger("search_service.hash_embedding")

LITERAL_TOKEN_WEIGHT = 1.0
EXPANDED_TOKEN_WEIGHT = 0.72
BIGRAM_WEIGHT = 1.15

_FNV_OFFSET_BASIS = 0x811C9DC5
_FNV_PRIME = 0x01000193


def fnv1a_32(value: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 bytes of ``value``."""
    hashed = _FNV_OFFSET_BASIS
    for byte in value.encode("utf-8"):
        hashed ^= byte
        hashed = (hashed * _FNV_PRIME) & 0xFFFFFFFF
    return hashed


def similarity(a: Optional[np.ndarray], b: Optional[np.ndarray]) -> float:
    """Dot product of two normalized vectors; 0.0 when either is missing or sizes differ."""
    if a is None or b is None or a.shape != b.shape:
        return 0.0
    return float(np.dot(a, b))


class EmbeddingProvider(ABC):
    """Text embedding contract."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Model identifier stored next to persisted embeddings."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector returned by ``embed``."""

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        """Embed ``text`` into an L2-normalized vector (all zeros when empty)."""


class HashingEmbeddingProvider(EmbeddingProvider):
    """Feature-hashing embedder over expanded tokens and base bigrams.

    Parameters
    - dimension: vector size, clamped to the supported range
    - expander: ``QueryExpander`` used to derive base/expanded tokens
    """

    name = "hashing-v1"

    def __init__(self, dimension: int = 256, expander: Optional[QueryExpander] = None):
        self._dimension = max(MIN_EMBEDDING_DIMENSION, min(MAX_EMBEDDING_DIMENSION, int(dimension)))
        self.expander = expander or create_query_expander()

    @property
    def dimension(self) -> int:
        return self._dimension

    def _index(self, feature: str) -> int:
        return fnv1a_32(feature) % self._dimension

    def embed(self, text: str) -> np.ndarray:
        terms = self.expander.expand(text or "")
        vector = np.zeros(self._dimension, dtype=np.float64)

        for token in terms.expanded:
            vector[self._index(token)] += LITERAL_TOKEN_WEIGHT if terms.is_literal(token) else EXPANDED_TOKEN_WEIGHT

        for left, right in zip(terms.base, terms.base[1:]):
            vector[self._index(f"{left} {right}")] += BIGRAM_WEIGHT

        magnitude = float(np.linalg.norm(vector))
        if magnitude == 0.0:
            return vector
        return vector / magnitude


def create_embedding_provider(dimension: int = 256) -> EmbeddingProvider:
    """Create the deterministic embedding provider."""
    provider = HashingEmbeddingProvider(dimension=dimension)
    logger.info("Embedding provider created", provider=provider.name, dimension=provider.dimension)
    return provider
