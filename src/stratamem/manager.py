"""Top-level coordinator of buckets, storage providers and monitoring.

``MemoryManager`` creates chunks through the configured embedder and
summarizer, owns the root buckets and the provider registry, places
serialized chunks on providers by tier preference, and remembers where
each chunk went.  Mutating calls on one manager are expected to be
serialized by the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from time import perf_counter
from typing import Any

from stratamem.audit import AuditEventType
from stratamem.audit import AuditLogger
from stratamem.buckets import Bucket
from stratamem.buckets import BucketConfig
from stratamem.config import IndexConfig
from stratamem.config import MonitorConfig
from stratamem.config import SummarizationConfig
from stratamem.engine import Embedder
from stratamem.engine import ExtractiveSummarizer
from stratamem.engine import Summarizer
from stratamem.errors import BucketNotFoundError
from stratamem.errors import DeserializationFailedError
from stratamem.errors import EmbeddingUnavailableError
from stratamem.errors import LocationNotFoundError
from stratamem.errors import NoProviderAvailableError
from stratamem.errors import ProviderNotFoundError
from stratamem.errors import StorageError
from stratamem.errors import StrataMemError
from stratamem.index import rank_results
from stratamem.index import SearchResult
from stratamem.integrity import IntegrityVerifier
from stratamem.models.alerts import Alert
from stratamem.models.chunk import Chunk
from stratamem.models.chunk import ChunkMetadata
from stratamem.models.storage import StorageLocation
from stratamem.models.storage import StorageTier
from stratamem.monitoring import MemoryStats
from stratamem.monitoring import ResourceMonitor
from stratamem.observability import record_latency
from stratamem.observability import track_latency
from stratamem.storage import deserialize_chunk
from stratamem.storage import serialize_chunk
from stratamem.storage import StorageProvider
from stratamem.transactions import create_operation
from stratamem.transactions import TransactionManager

logger = logging.getLogger(__name__)

# Results sampled per root bucket when ranking bucket relevance.
BUCKET_SAMPLE_SIZE = 5
# Root buckets searched by retrieve_content when no bucket is named.
RELEVANT_BUCKET_COUNT = 3

DEFAULT_BUCKET_NAME = "default"
DEFAULT_BUCKET_DOMAIN = "general"
DEFAULT_MIN_SCORE = 0.7

AlertHandler = Callable[[Alert], None]


@dataclass
class BucketScore:
    """A root bucket and its mean sampled similarity to a query."""

    bucket: Bucket
    score: float


@dataclass
class StoredContent:
    """Outcome of ``store_content``: the chunk, its bucket and where it lives."""

    chunk: Chunk
    bucket: Bucket
    location: StorageLocation


@dataclass
class _ChunkRelocation:
    """Steps and compensations for moving one stored chunk.

    ``copy`` records the target it wrote to; the later steps and the
    compensations read it from here.
    """

    chunk_id: str
    source: StorageProvider
    old_location: StorageLocation
    data: bytes
    metadata: dict[str, Any]
    candidates: list[StorageProvider]
    locations: dict[str, StorageLocation]
    target: StorageProvider | None = None
    new_location: StorageLocation | None = None

    async def copy(self) -> StorageLocation:
        errors: list[Exception] = []
        for provider in self.candidates:
            if not await provider.is_connected():
                continue
            try:
                quota = await provider.get_quota()
                if quota.available < len(self.data):
                    continue
                location = await provider.store(self.data, self.metadata)
            except Exception as exc:
                errors.append(exc)
                continue
            self.target = provider
            self.new_location = location
            return location
        raise NoProviderAvailableError(self.chunk_id, errors[-1] if errors else None)

    async def uncopy(self) -> None:
        if self.target is not None and self.new_location is not None:
            await self.target.delete(self.new_location)

    async def repoint(self) -> StorageLocation:
        if self.new_location is None:
            raise StorageError(f"No copy of chunk {self.chunk_id} to point at")
        self.locations[self.chunk_id] = self.new_location
        return self.new_location

    async def restore_pointer(self) -> None:
        self.locations[self.chunk_id] = self.old_location

    async def drop_old(self) -> bool:
        if not await self.source.delete(self.old_location):
            raise StorageError(
                f"Provider {self.source.id} did not delete {self.old_location.key}"
            )
        return True

    async def keep_old(self) -> None:
        return None


class MemoryManager:
    """Coordinates chunk creation, placement, retrieval and monitoring."""

    def __init__(
        self,
        *,
        embedder: Embedder | None = None,
        summarizer: Summarizer | None = None,
        index_config: IndexConfig | None = None,
        monitor_config: MonitorConfig | None = None,
        summarization_config: SummarizationConfig | None = None,
        transaction_manager: TransactionManager | None = None,
        audit_logger: AuditLogger | None = None,
        integrity_verifier: IntegrityVerifier | None = None,
    ) -> None:
        self._embedder = embedder
        self._summarizer = summarizer
        self._index_config = index_config or IndexConfig()
        self._summarization_config = summarization_config or SummarizationConfig()
        self._transactions = transaction_manager or TransactionManager(audit_logger=audit_logger)
        self._audit_logger = audit_logger
        self._integrity = integrity_verifier
        self._root_buckets: dict[str, Bucket] = {}
        self._providers: dict[str, StorageProvider] = {}
        self._locations: dict[str, StorageLocation] = {}
        self._alert_handlers: list[AlertHandler] = []
        self._monitor = ResourceMonitor(monitor_config, alert_callback=self._handle_alert)

    @property
    def embedder(self) -> Embedder | None:
        return self._embedder

    @embedder.setter
    def embedder(self, embedder: Embedder | None) -> None:
        self._embedder = embedder

    @property
    def monitor(self) -> ResourceMonitor:
        return self._monitor

    @property
    def transactions(self) -> TransactionManager:
        return self._transactions

    # ------------------------------------------------------------------
    # Storage providers
    # ------------------------------------------------------------------

    def add_storage_provider(self, provider: StorageProvider) -> bool:
        """Register *provider*; returns False if its id is already taken."""
        if provider.id in self._providers:
            return False
        self._providers[provider.id] = provider
        return True

    def get_storage_provider(self, provider_id: str) -> StorageProvider | None:
        return self._providers.get(provider_id)

    def remove_storage_provider(self, provider_id: str) -> bool:
        return self._providers.pop(provider_id, None) is not None

    def storage_providers(self) -> dict[str, StorageProvider]:
        return dict(self._providers)

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    def create_bucket(
        self,
        name: str,
        domain: str,
        description: str | None = None,
    ) -> Bucket:
        """Create a root bucket using the manager's index shape."""
        bucket = Bucket(
            BucketConfig(name=name, domain=domain, description=description),
            dimension=self._index_config.dimension,
            metric=self._index_config.metric,
        )
        self._root_buckets[bucket.id] = bucket
        return bucket

    def get_bucket(self, bucket_id: str) -> Bucket | None:
        """Find a bucket by id among the roots and their descendants."""
        if bucket_id in self._root_buckets:
            return self._root_buckets[bucket_id]
        for root in self._root_buckets.values():
            found = root.find_bucket(bucket_id)
            if found is not None:
                return found
        return None

    def remove_bucket(self, bucket_id: str) -> bool:
        return self._root_buckets.pop(bucket_id, None) is not None

    def buckets(self) -> dict[str, Bucket]:
        return dict(self._root_buckets)

    def find_bucket_by_name(self, name: str, domain: str) -> Bucket | None:
        """Return the first root bucket with this name and domain."""
        for bucket in self._root_buckets.values():
            if bucket.name == name and bucket.domain == domain:
                return bucket
        return None

    def summarize_bucket(
        self,
        bucket_id: str,
        max_chunks: int = 10,
        recursive: bool = True,
    ) -> str:
        bucket = self.get_bucket(bucket_id)
        if bucket is None:
            raise BucketNotFoundError(bucket_id)
        return bucket.summarize(max_chunks=max_chunks, recursive=recursive)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def create_chunk(
        self,
        content: str,
        metadata: Mapping[str, Any] | None = None,
        summarize: bool = True,
    ) -> Chunk:
        """Embed (and optionally summarize) *content* into a new chunk.

        Caller metadata is layered over the defaults (domain ``default``,
        source ``user``, no tags); keys outside the closed metadata struct
        are kept in ``metadata.extra``.
        """
        if self._embedder is None:
            raise EmbeddingUnavailableError()

        embedding = await self._embedder.embed(content)
        summaries = []
        if summarize:
            summaries = await self._active_summarizer().summarize(
                content, self._summarization_config.levels
            )

        chunk = Chunk(
            content=content,
            embedding=embedding,
            metadata=ChunkMetadata.from_fields(metadata),
            summaries=summaries,
        )
        if self._integrity is not None:
            self._integrity.stamp(chunk)
        return chunk

    async def store_content(
        self,
        content: str,
        *,
        bucket_id: str | None = None,
        bucket_name: str = DEFAULT_BUCKET_NAME,
        bucket_domain: str = DEFAULT_BUCKET_DOMAIN,
        metadata: Mapping[str, Any] | None = None,
        summarize: bool = True,
        preferred_tier: StorageTier = StorageTier.LOCAL,
    ) -> StoredContent:
        """Create a chunk from *content*, store it and file it in a bucket.

        The bucket is *bucket_id* when given; otherwise the root bucket
        named *bucket_name* in *bucket_domain*, created on first use.  The
        chunk is stored before it is indexed, and the stored copy is deleted
        again if indexing fails.
        """
        if bucket_id is not None:
            bucket = self.get_bucket(bucket_id)
            if bucket is None:
                raise BucketNotFoundError(bucket_id)
        else:
            bucket = self.find_bucket_by_name(bucket_name, bucket_domain)
            if bucket is None:
                bucket = self.create_bucket(
                    bucket_name,
                    bucket_domain,
                    f"Automatically created bucket for {bucket_name} ({bucket_domain})",
                )
                logger.info("Created bucket %s for %s/%s", bucket.id, bucket_name, bucket_domain)

        fields: dict[str, Any] = {"source": "user-input", "tags": []}
        fields.update(metadata or {})
        fields["domain"] = bucket.domain
        chunk = await self.create_chunk(content, fields, summarize=summarize)
        location = await self.store_chunk(chunk, preferred_tier)
        try:
            bucket.add_chunk(chunk)
        except StrataMemError:
            await self.delete_chunk(chunk.id)
            raise
        return StoredContent(chunk=chunk, bucket=bucket, location=location)

    async def summarize(self, text: str, levels: int = 1) -> list[str]:
        """Summarize free text with the configured summarizer, one string per level."""
        summaries = await self._active_summarizer().summarize(text, levels)
        return [summary.content for summary in summaries]

    def _active_summarizer(self) -> Summarizer:
        return self._summarizer or ExtractiveSummarizer(self._summarization_config)

    def _placement_order(self, preferred_tier: StorageTier) -> list[StorageProvider]:
        # sorted() is stable, so equal keys keep registration order
        return sorted(
            self._providers.values(),
            key=lambda p: (p.tier != preferred_tier, int(p.tier)),
        )

    async def store_chunk(
        self,
        chunk: Chunk,
        preferred_tier: StorageTier = StorageTier.LOCAL,
    ) -> StorageLocation:
        """Place *chunk* on the first connected provider with room for it.

        Providers in *preferred_tier* are tried first, then the rest in
        ascending tier order.  A provider that errors is skipped; the last
        error is attached to ``NoProviderAvailableError`` when every
        candidate fails.
        """
        start = perf_counter()
        data = serialize_chunk(chunk)
        last_error: Exception | None = None

        for provider in self._placement_order(preferred_tier):
            if not await provider.is_connected():
                continue
            try:
                quota = await provider.get_quota()
                if quota.available < len(data):
                    continue
                location = await provider.store(data, chunk.metadata.model_dump(mode="json"))
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Failed to store chunk %s in provider %s: %s",
                    chunk.id,
                    provider.name,
                    exc,
                )
                continue

            self._locations[chunk.id] = location
            record_latency(
                operation="manager.store_chunk",
                duration_ms=(perf_counter() - start) * 1000,
            )
            await self._audit(
                AuditEventType.CHUNK_STORED,
                chunk_id=chunk.id,
                provider_id=location.provider_id,
                key=location.key,
                size_bytes=len(data),
            )
            return location

        record_latency(
            operation="manager.store_chunk",
            duration_ms=(perf_counter() - start) * 1000,
            ok=False,
        )
        raise NoProviderAvailableError(chunk.id, last_error)

    def get_chunk_location(self, chunk_id: str) -> StorageLocation | None:
        return self._locations.get(chunk_id)

    async def retrieve_chunk(self, chunk_id: str) -> Chunk:
        """Load a stored chunk back from its provider.

        A chunk that fails to deserialize keeps its location mapping.
        """
        location = self._locations.get(chunk_id)
        if location is None:
            raise LocationNotFoundError(chunk_id)
        provider = self._providers.get(location.provider_id)
        if provider is None:
            raise ProviderNotFoundError(location.provider_id)

        with track_latency("manager.retrieve_chunk"):
            data = await provider.retrieve(location)
            try:
                chunk = deserialize_chunk(data)
            except DeserializationFailedError:
                logger.error("Stored chunk %s at %s could not be decoded", chunk_id, location)
                raise
            if self._integrity is not None:
                self._integrity.verify(chunk)

        await self._audit(
            AuditEventType.CHUNK_RETRIEVED,
            chunk_id=chunk_id,
            provider_id=location.provider_id,
        )
        return chunk

    async def delete_chunk(self, chunk_id: str) -> bool:
        """Delete the stored copy of a chunk and forget its location."""
        location = self._locations.get(chunk_id)
        if location is None:
            return False
        provider = self._providers.get(location.provider_id)
        if provider is None:
            raise ProviderNotFoundError(location.provider_id)

        deleted = await provider.delete(location)
        if deleted:
            del self._locations[chunk_id]
            await self._audit(
                AuditEventType.CHUNK_DELETED,
                chunk_id=chunk_id,
                provider_id=location.provider_id,
            )
        return deleted

    async def relocate_chunk(self, chunk_id: str, target_tier: StorageTier) -> StorageLocation:
        """Move a stored chunk to a provider in *target_tier*.

        Runs as a transaction: copy to the target, repoint the location,
        delete the old copy.  On any failure the completed steps are undone
        in reverse order and ``TransactionError`` is raised.
        """
        old_location = self._locations.get(chunk_id)
        if old_location is None:
            raise LocationNotFoundError(chunk_id)
        source = self._providers.get(old_location.provider_id)
        if source is None:
            raise ProviderNotFoundError(old_location.provider_id)

        data = await source.retrieve(old_location)
        stored = deserialize_chunk(data)
        relocation = _ChunkRelocation(
            chunk_id=chunk_id,
            source=source,
            old_location=old_location,
            data=data,
            metadata=stored.metadata.model_dump(mode="json"),
            candidates=[
                p for p in self._placement_order(target_tier)
                if p.tier == target_tier and p.id != source.id
            ],
            locations=self._locations,
        )

        result = await self._transactions.execute_transaction(
            [
                create_operation(
                    f"copy chunk {chunk_id} to tier {target_tier.name}",
                    relocation.copy,
                    relocation.uncopy,
                ),
                create_operation(
                    f"repoint chunk {chunk_id}",
                    relocation.repoint,
                    relocation.restore_pointer,
                ),
                create_operation(
                    f"delete old copy of chunk {chunk_id}",
                    relocation.drop_old,
                    relocation.keep_old,
                ),
            ]
        )
        result.raise_for_status()

        new_location: StorageLocation = result.results[0]
        await self._audit(
            AuditEventType.CHUNK_RELOCATED,
            chunk_id=chunk_id,
            from_provider_id=old_location.provider_id,
            to_provider_id=new_location.provider_id,
        )
        return new_location

    # ------------------------------------------------------------------
    # Relevance
    # ------------------------------------------------------------------

    async def find_relevant_buckets(
        self,
        query: str | Sequence[float],
        k: int = 3,
    ) -> list[BucketScore]:
        """Rank root buckets by the mean score of a small recursive sample.

        Each root bucket contributes its top ``BUCKET_SAMPLE_SIZE`` results;
        buckets with no results are left out.  This trades accuracy for a
        bounded amount of work per bucket.
        """
        vector = await self._query_vector(query)

        scored: list[BucketScore] = []
        with track_latency("manager.find_relevant_buckets"):
            for bucket in self._root_buckets.values():
                sample = bucket.search(vector, BUCKET_SAMPLE_SIZE, recursive=True)
                if not sample:
                    continue
                mean = sum(result.score for result in sample) / len(sample)
                scored.append(BucketScore(bucket=bucket, score=mean))

        scored.sort(key=lambda s: -s.score)
        return scored[: max(k, 0)]

    async def retrieve_content(
        self,
        query: str | Sequence[float],
        *,
        bucket_id: str | None = None,
        max_results: int = 10,
        min_score: float = DEFAULT_MIN_SCORE,
        recursive: bool = True,
    ) -> list[SearchResult]:
        """Search for the chunks most similar to *query*.

        With *bucket_id* only that bucket is searched.  Otherwise the
        ``RELEVANT_BUCKET_COUNT`` most relevant root buckets are searched
        and their hits merged and re-ranked.  The result is cut to
        *max_results* before hits scoring below *min_score* are dropped.
        """
        vector = await self._query_vector(query)

        if bucket_id is not None:
            bucket = self.get_bucket(bucket_id)
            if bucket is None:
                raise BucketNotFoundError(bucket_id)
            with track_latency("manager.retrieve_content"):
                results = bucket.search(vector, max_results, recursive=recursive)
        else:
            relevant = await self.find_relevant_buckets(vector, RELEVANT_BUCKET_COUNT)
            with track_latency("manager.retrieve_content"):
                results = []
                for scored in relevant:
                    results.extend(scored.bucket.search(vector, max_results, recursive=recursive))
                results = rank_results(results, max_results)

        return [result for result in results if result.score >= min_score]

    async def _query_vector(self, query: str | Sequence[float]) -> Sequence[float]:
        if not isinstance(query, str):
            return query
        if self._embedder is None:
            raise EmbeddingUnavailableError()
        return await self._embedder.embed(query)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def add_alert_handler(self, handler: AlertHandler) -> None:
        self._alert_handlers.append(handler)

    def remove_alert_handler(self, handler: AlertHandler) -> bool:
        try:
            self._alert_handlers.remove(handler)
        except ValueError:
            return False
        return True

    async def _handle_alert(self, alert: Alert) -> None:
        for handler in list(self._alert_handlers):
            try:
                handler(alert)
            except Exception:
                logger.exception("Error in memory alert handler")
        logger.warning("Memory alert [%s]: %s", alert.severity.value, alert.message)
        await self._audit(
            AuditEventType.ALERT_RAISED,
            alert_id=alert.id,
            type=alert.type.value,
            severity=alert.severity.value,
            message=alert.message,
        )

    def refresh_monitoring(self) -> None:
        """Hand the monitor fresh snapshots of the roots and providers."""
        self._monitor.register_buckets(self._root_buckets)
        self._monitor.register_providers(self._providers)

    async def start_monitoring(self) -> None:
        self.refresh_monitoring()
        await self._monitor.start()

    async def stop_monitoring(self) -> None:
        await self._monitor.stop()

    def get_alerts(self, include_acknowledged: bool = False) -> list[Alert]:
        return self._monitor.get_alerts(include_acknowledged)

    def acknowledge_alert(self, alert_id: str) -> bool:
        return self._monitor.acknowledge_alert(alert_id)

    async def get_memory_stats(self) -> MemoryStats:
        self.refresh_monitoring()
        return await self._monitor.get_memory_stats()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _audit(self, event_type: AuditEventType, **payload: Any) -> None:
        if self._audit_logger is not None:
            await self._audit_logger.record(event_type, **payload)
