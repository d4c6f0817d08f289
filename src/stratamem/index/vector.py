"""Per-bucket linear-scan vector index.

Chunks are kept in insertion order next to a numpy matrix of their
embeddings.  Every search scores all stored rows; there is no approximate
index.  Scores are oriented so that higher is always better:

- ``cosine``: dot product of L2-normalised vectors, in ``[-1, 1]``
- ``euclidean``: negative L2 distance
- ``dot``: raw dot product
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np

from stratamem.errors import DimensionMismatchError
from stratamem.errors import ValidationError
from stratamem.models.chunk import Chunk

logger = logging.getLogger(__name__)


class DistanceMetric(str, Enum):
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    DOT = "dot"


@dataclass
class SearchResult:
    """A chunk paired with its similarity score."""

    chunk: Chunk
    score: float


def normalize(vector: np.ndarray) -> np.ndarray:
    """Return *vector* scaled to unit L2 norm; zero vectors pass through."""
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


def rank_results(results: list[SearchResult], k: int) -> list[SearchResult]:
    """Sort by descending score, keeping input order on ties, and cut to *k*."""
    if k <= 0:
        return []
    return sorted(results, key=lambda r: -r.score)[:k]


class VectorIndex:
    """Append-only similarity index over chunk embeddings."""

    def __init__(
        self,
        dimension: int = 1536,
        metric: DistanceMetric | str = DistanceMetric.COSINE,
    ) -> None:
        if dimension < 1:
            raise ValidationError(f"dimension must be >= 1, got {dimension}")
        try:
            self._metric = DistanceMetric(metric)
        except ValueError as exc:
            raise ValidationError(f"Unsupported metric: {metric}") from exc
        self._dimension = dimension
        self._chunks: list[Chunk] = []
        self._rows: list[np.ndarray] = []
        self._matrix: np.ndarray | None = None

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def metric(self) -> DistanceMetric:
        return self._metric

    # -- write --

    def _prepare(self, embedding: Sequence[float]) -> np.ndarray:
        if len(embedding) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(embedding))
        vector = np.asarray(embedding, dtype=np.float64)
        if self._metric is DistanceMetric.COSINE:
            vector = normalize(vector)
        return vector

    def insert(self, chunk: Chunk) -> int:
        """Store *chunk* and return its sequential position.

        With the cosine metric the index row is normalised; the chunk's own
        embedding is left as given.
        """
        vector = self._prepare(chunk.embedding)
        return self._append(chunk, vector)

    def insert_many(self, chunks: Sequence[Chunk]) -> list[int]:
        """Insert several chunks; nothing is stored unless all are valid."""
        vectors = [self._prepare(chunk.embedding) for chunk in chunks]
        return [self._append(chunk, vector) for chunk, vector in zip(chunks, vectors)]

    def _append(self, chunk: Chunk, vector: np.ndarray) -> int:
        self._chunks.append(chunk)
        self._rows.append(vector)
        self._matrix = None
        return len(self._chunks) - 1

    # -- read --

    def _stacked(self) -> np.ndarray:
        if self._matrix is None:
            self._matrix = np.vstack(self._rows)
        return self._matrix

    def search(self, query: Sequence[float], k: int = 10) -> list[SearchResult]:
        """Return up to *k* chunks ordered by descending score.

        An empty index answers ``[]`` without looking at *query*.
        """
        if not self._chunks or k <= 0:
            return []
        if len(query) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(query))

        q = np.asarray(query, dtype=np.float64)
        matrix = self._stacked()
        if self._metric is DistanceMetric.COSINE:
            scores = matrix @ normalize(q)
        elif self._metric is DistanceMetric.EUCLIDEAN:
            scores = -np.linalg.norm(matrix - q, axis=1)
        else:
            scores = matrix @ q

        order = np.argsort(-scores, kind="stable")[:k]
        return [
            SearchResult(chunk=self._chunks[i], score=float(scores[i])) for i in order
        ]

    def chunks(self) -> list[Chunk]:
        """Stored chunks in insertion order."""
        return list(self._chunks)

    def size(self) -> int:
        return len(self._chunks)

    def __len__(self) -> int:
        return len(self._chunks)
