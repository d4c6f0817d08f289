"""Index domain: per-bucket vector similarity search."""

from stratamem.index.vector import DistanceMetric
from stratamem.index.vector import normalize
from stratamem.index.vector import rank_results
from stratamem.index.vector import SearchResult
from stratamem.index.vector import VectorIndex

__all__ = [
    "DistanceMetric",
    "SearchResult",
    "VectorIndex",
    "normalize",
    "rank_results",
]
