"""Hierarchical, domain-scoped chunk containers.

A bucket owns exactly one ``VectorIndex`` and a map of child buckets.
The parent link is an id used for lookup only; ownership flows from
whichever root collection holds the bucket down through the child maps.
A child's parent is fixed when the child is created, so the tree cannot
contain cycles.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from collections.abc import Sequence
from dataclasses import dataclass

from stratamem.index import DistanceMetric
from stratamem.index import rank_results
from stratamem.index import SearchResult
from stratamem.index import VectorIndex
from stratamem.models.chunk import Chunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BucketConfig:
    """Construction parameters for a bucket."""

    name: str
    domain: str
    id: str | None = None
    description: str | None = None


class Bucket:
    """A named container of chunks and sub-buckets for one domain."""

    def __init__(
        self,
        config: BucketConfig,
        *,
        parent_id: str | None = None,
        index: VectorIndex | None = None,
        dimension: int = 1536,
        metric: DistanceMetric | str = DistanceMetric.COSINE,
    ) -> None:
        self.id = config.id or f"bucket_{uuid.uuid4().hex}"
        self.name = config.name
        self.domain = config.domain
        self.description = config.description
        self.parent_id = parent_id
        self._index = index or VectorIndex(dimension=dimension, metric=metric)
        self._children: dict[str, Bucket] = {}

    def __repr__(self) -> str:
        return f"Bucket(id={self.id!r}, name={self.name!r}, domain={self.domain!r})"

    @property
    def index(self) -> VectorIndex:
        return self._index

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> int:
        """Add *chunk*, forcing its domain to this bucket's domain."""
        chunk.metadata.domain = self.domain
        return self._index.insert(chunk)

    def add_chunks(self, chunks: Sequence[Chunk]) -> list[int]:
        for chunk in chunks:
            chunk.metadata.domain = self.domain
        return self._index.insert_many(chunks)

    def search(
        self,
        query: Sequence[float],
        k: int = 10,
        recursive: bool = True,
    ) -> list[SearchResult]:
        """Search this bucket and, when *recursive*, every sub-bucket.

        Each subtree contributes its own top-*k*; the merged list is
        re-ranked and cut to *k*.  This is not an exact global top-*k*
        over every chunk in the tree.
        """
        results = self._index.search(query, k)
        if not recursive or not self._children:
            return results

        for child in self._children.values():
            results.extend(child.search(query, k, recursive=True))
        return rank_results(results, k)

    def get_all_chunks(self, recursive: bool = True) -> list[Chunk]:
        chunks = self._index.chunks()
        if recursive:
            for child in self._children.values():
                chunks.extend(child.get_all_chunks(recursive=True))
        return chunks

    def get_chunk_count(self, recursive: bool = True) -> int:
        count = self._index.size()
        if recursive:
            count += sum(child.get_chunk_count(recursive=True) for child in self._children.values())
        return count

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def add_sub_bucket(self, config: BucketConfig) -> Bucket:
        """Create a child bucket sharing this bucket's index shape."""
        child = Bucket(
            config,
            parent_id=self.id,
            dimension=self._index.dimension,
            metric=self._index.metric,
        )
        self._children[child.id] = child
        logger.debug("Created sub-bucket %s under %s", child.id, self.id)
        return child

    def get_sub_bucket(self, bucket_id: str) -> Bucket | None:
        return self._children.get(bucket_id)

    def remove_sub_bucket(self, bucket_id: str) -> bool:
        return self._children.pop(bucket_id, None) is not None

    def sub_buckets(self) -> dict[str, Bucket]:
        return dict(self._children)

    def walk(self) -> Iterator[Bucket]:
        """Yield this bucket and every descendant, depth first."""
        yield self
        for child in self._children.values():
            yield from child.walk()

    def find_bucket(self, bucket_id: str) -> Bucket | None:
        for bucket in self.walk():
            if bucket.id == bucket_id:
                return bucket
        return None

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def summarize(self, max_chunks: int = 10, recursive: bool = True) -> str:
        """Describe the bucket using the level-1 summaries of its newest chunks."""
        chunks = self.get_all_chunks(recursive=recursive)
        header = f'Bucket "{self.name}" ({self.domain})'
        if not chunks:
            return f"{header} contains no chunks."

        recent = sorted(chunks, key=lambda c: c.metadata.timestamp, reverse=True)
        texts = []
        for chunk in recent[:max_chunks]:
            summary = chunk.level_summary(1)
            if summary is not None:
                texts.append(summary.content)

        return f"{header} contains {len(chunks)} chunks.\nRecent content includes: {' '.join(texts)}"
