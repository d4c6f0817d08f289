"""StrataMem: FastMCP v2 server exposing the memory layer as MCP tools.

Tools delegate to a single ``MemoryManager``.  Call ``configure()``
before using the server; it always registers an in-memory provider and
optionally a local filesystem and a Redis provider.
"""

from __future__ import annotations

from time import perf_counter
from typing import Any

from fastmcp import FastMCP
from pydantic import ValidationError

from stratamem.audit import AuditLogger
from stratamem.buckets import Bucket
from stratamem.buckets import BucketConfig
from stratamem.config import AuditConfig
from stratamem.config import EmbeddingConfig
from stratamem.config import IndexConfig
from stratamem.config import LLMConfig
from stratamem.config import LocalStorageConfig
from stratamem.config import MonitorConfig
from stratamem.config import SummarizationConfig
from stratamem.engine import build_embedder
from stratamem.engine import build_llm_adapter
from stratamem.engine import Embedder
from stratamem.engine import ExtractiveSummarizer
from stratamem.engine import LLMSummarizer
from stratamem.engine import Summarizer
from stratamem.errors import BucketNotFoundError
from stratamem.errors import StrataMemError
from stratamem.integrity import IntegrityVerifier
from stratamem.manager import MemoryManager
from stratamem.models.schemas import AcknowledgeAlertResult
from stratamem.models.schemas import AlertsResult
from stratamem.models.schemas import BucketEntry
from stratamem.models.schemas import BucketScoreEntry
from stratamem.models.schemas import BucketSummaryResult
from stratamem.models.schemas import CreateBucketInput
from stratamem.models.schemas import CreateBucketResult
from stratamem.models.schemas import FindBucketsInput
from stratamem.models.schemas import FindBucketsResult
from stratamem.models.schemas import MemoryStatsResult
from stratamem.models.schemas import RecallHit
from stratamem.models.schemas import RecallInput
from stratamem.models.schemas import RecallResult
from stratamem.models.schemas import RememberInput
from stratamem.models.schemas import RememberResult
from stratamem.models.schemas import SummarizeBucketInput
from stratamem.models.schemas import SummarizeTextInput
from stratamem.models.schemas import TextSummaryResult
from stratamem.observability import record_latency
from stratamem.storage import InMemoryStorageProvider
from stratamem.storage import LocalStorageProvider
from stratamem.storage import RedisStorageProvider
from stratamem.storage import StorageProvider

mcp = FastMCP("StrataMem")

# ---------------------------------------------------------------------------
# Memory manager instance (set via configure())
# ---------------------------------------------------------------------------

_manager: MemoryManager | None = None
_redis_provider: RedisStorageProvider | None = None


async def configure(
    *,
    local_storage: LocalStorageConfig | None = None,
    redis_url: str | None = None,
    memory_max_size_bytes: int = 256 * 1024 * 1024,
    embedding_config: EmbeddingConfig | None = None,
    embedder: Embedder | None = None,
    llm_config: LLMConfig | None = None,
    summarizer: Summarizer | None = None,
    index_config: IndexConfig | None = None,
    monitor_config: MonitorConfig | None = None,
    summarization_config: SummarizationConfig | None = None,
    audit_config: AuditConfig | None = None,
    verify_integrity: bool = True,
    start_monitoring: bool = False,
) -> MemoryManager:
    """Build the memory manager and connect its storage providers.

    Must be called before the MCP tools can function.  The index
    dimension follows the embedding dimension unless *index_config* is
    given explicitly.
    """
    global _manager, _redis_provider
    await shutdown()

    embed_cfg = embedding_config or EmbeddingConfig()
    summary_cfg = summarization_config or SummarizationConfig()
    if summarizer is None:
        if llm_config is not None:
            summarizer = LLMSummarizer(
                build_llm_adapter(llm_config),
                llm_config=llm_config,
                config=summary_cfg,
            )
        else:
            summarizer = ExtractiveSummarizer(summary_cfg)

    manager = MemoryManager(
        embedder=embedder or build_embedder(embed_cfg),
        summarizer=summarizer,
        index_config=index_config or IndexConfig(dimension=embed_cfg.dimension),
        monitor_config=monitor_config,
        summarization_config=summary_cfg,
        audit_logger=AuditLogger(audit_config or AuditConfig()),
        integrity_verifier=IntegrityVerifier() if verify_integrity else None,
    )

    providers: list[StorageProvider] = [
        InMemoryStorageProvider(max_size_bytes=memory_max_size_bytes),
    ]
    if local_storage is not None:
        providers.append(LocalStorageProvider(config=local_storage))
    if redis_url is not None:
        _redis_provider = RedisStorageProvider.from_url(redis_url)
        providers.append(_redis_provider)

    for provider in providers:
        await provider.connect()
        manager.add_storage_provider(provider)

    _manager = manager
    if start_monitoring:
        await manager.start_monitoring()
    return manager


async def shutdown() -> None:
    """Stop monitoring, close backend clients and release server resources."""
    global _manager, _redis_provider
    if _manager is not None:
        await _manager.stop_monitoring()
        _manager = None
    if _redis_provider is not None:
        provider, _redis_provider = _redis_provider, None
        await provider.close()


def _get_manager() -> MemoryManager:
    """Return the memory manager instance or raise."""
    if _manager is None:
        raise RuntimeError("Memory manager not configured. Call configure() first.")
    return _manager


def _require_bucket(manager: MemoryManager, bucket_id: str) -> Bucket:
    bucket = manager.get_bucket(bucket_id)
    if bucket is None:
        raise BucketNotFoundError(bucket_id)
    return bucket


def _bucket_entry(bucket: Bucket) -> BucketEntry:
    return BucketEntry(
        id=bucket.id,
        name=bucket.name,
        domain=bucket.domain,
        description=bucket.description,
        parent_id=bucket.parent_id,
        chunk_count=bucket.get_chunk_count(recursive=True),
    )


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    return str(err.get("msg", "Invalid input"))


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool
async def create_bucket(
    name: str,
    domain: str,
    description: str | None = None,
    parent_id: str | None = None,
) -> CreateBucketResult:
    """Create a bucket for one knowledge domain.

    Args:
        name: Display name of the bucket.
        domain: Domain every chunk in the bucket is tagged with.
        description: Optional free-text description.
        parent_id: Create as a sub-bucket of this bucket.
    """
    start = perf_counter()
    ok = False
    try:
        manager = _get_manager()
        try:
            validated = CreateBucketInput.model_validate(
                {
                    "name": name,
                    "domain": domain,
                    "description": description,
                    "parent_id": parent_id,
                }
            )
        except ValidationError as exc:
            return CreateBucketResult(
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        try:
            if validated.parent_id is None:
                bucket = manager.create_bucket(
                    validated.name, validated.domain, validated.description
                )
            else:
                parent = _require_bucket(manager, validated.parent_id)
                bucket = parent.add_sub_bucket(
                    BucketConfig(
                        name=validated.name,
                        domain=validated.domain,
                        description=validated.description,
                    )
                )
        except StrataMemError as exc:
            return CreateBucketResult(status="error", error_code=exc.code, message=exc.message)

        ok = True
        return CreateBucketResult(bucket=_bucket_entry(bucket))
    finally:
        record_latency(
            operation="mcp.create_bucket",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def remember(
    content: str,
    bucket_id: str | None = None,
    bucket_name: str | None = None,
    bucket_domain: str | None = None,
    source: str | None = None,
    tags: list[str] | None = None,
    preferred_tier: int = 1,
    summarize: bool = True,
) -> RememberResult:
    """Embed, summarize and store a piece of content in a bucket.

    Without a bucket_id the content goes to the root bucket named
    bucket_name in bucket_domain ("default" in "general" unless given),
    which is created on first use.

    Args:
        content: Text to remember.
        bucket_id: Bucket the new chunk is added to.
        bucket_name: Root bucket used when bucket_id is omitted.
        bucket_domain: Domain of that root bucket.
        source: Where the content came from.
        tags: Free-form labels.
        preferred_tier: Storage tier tried first (0 memory .. 4 extended).
        summarize: Whether to generate multi-level summaries.
    """
    start = perf_counter()
    ok = False
    try:
        manager = _get_manager()
        payload: dict[str, Any] = {
            "content": content,
            "bucket_id": bucket_id,
            "source": source,
            "tags": tags or [],
            "preferred_tier": preferred_tier,
            "summarize": summarize,
        }
        if bucket_name is not None:
            payload["bucket_name"] = bucket_name
        if bucket_domain is not None:
            payload["bucket_domain"] = bucket_domain
        try:
            validated = RememberInput.model_validate(payload)
        except ValidationError as exc:
            return RememberResult(
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        metadata: dict[str, Any] = {"tags": validated.tags}
        if validated.source is not None:
            metadata["source"] = validated.source
        try:
            stored = await manager.store_content(
                validated.content,
                bucket_id=validated.bucket_id,
                bucket_name=validated.bucket_name,
                bucket_domain=validated.bucket_domain,
                metadata=metadata,
                summarize=validated.summarize,
                preferred_tier=validated.preferred_tier,
            )
        except StrataMemError as exc:
            return RememberResult(status="error", error_code=exc.code, message=exc.message)

        ok = True
        return RememberResult(
            chunk_id=stored.chunk.id,
            bucket_id=stored.bucket.id,
            provider_id=stored.location.provider_id,
            key=stored.location.key,
        )
    finally:
        record_latency(
            operation="mcp.remember",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def recall(
    query: str,
    bucket_id: str | None = None,
    limit: int = 10,
    min_score: float = 0.7,
    recursive: bool = True,
) -> RecallResult:
    """Search for the chunks most similar to a query.

    Without a bucket_id the three most relevant root buckets are searched
    and their hits merged.

    Args:
        query: Natural language query.
        bucket_id: Bucket to search.
        limit: Maximum number of hits.
        min_score: Hits scoring below this are dropped.
        recursive: Include sub-buckets in the search.
    """
    start = perf_counter()
    ok = False
    try:
        manager = _get_manager()
        try:
            validated = RecallInput.model_validate(
                {
                    "query": query,
                    "bucket_id": bucket_id,
                    "limit": limit,
                    "min_score": min_score,
                    "recursive": recursive,
                }
            )
        except ValidationError as exc:
            return RecallResult(
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
                query=query,
            )

        try:
            results = await manager.retrieve_content(
                validated.query,
                bucket_id=validated.bucket_id,
                max_results=validated.limit,
                min_score=validated.min_score,
                recursive=validated.recursive,
            )
        except StrataMemError as exc:
            return RecallResult(
                status="error",
                error_code=exc.code,
                message=exc.message,
                query=validated.query,
            )

        hits = []
        for result in results:
            chunk = result.chunk
            summary = chunk.level_summary(1)
            hits.append(
                RecallHit(
                    chunk_id=chunk.id,
                    score=result.score,
                    content=chunk.content,
                    summary=summary.content if summary is not None else None,
                    domain=chunk.metadata.domain,
                    tags=list(chunk.metadata.tags),
                    metadata=dict(chunk.metadata.extra),
                )
            )
        ok = True
        return RecallResult(query=validated.query, hits=hits)
    finally:
        record_latency(
            operation="mcp.recall",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def find_buckets(query: str, limit: int = 3) -> FindBucketsResult:
    """Rank root buckets by relevance to a query.

    Args:
        query: Natural language query.
        limit: Maximum number of buckets returned.
    """
    start = perf_counter()
    ok = False
    try:
        manager = _get_manager()
        try:
            validated = FindBucketsInput.model_validate({"query": query, "limit": limit})
        except ValidationError as exc:
            return FindBucketsResult(
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
                query=query,
            )

        try:
            scored = await manager.find_relevant_buckets(validated.query, validated.limit)
        except StrataMemError as exc:
            return FindBucketsResult(
                status="error",
                error_code=exc.code,
                message=exc.message,
                query=validated.query,
            )

        ok = True
        return FindBucketsResult(
            query=validated.query,
            buckets=[
                BucketScoreEntry(bucket=_bucket_entry(s.bucket), score=s.score) for s in scored
            ],
        )
    finally:
        record_latency(
            operation="mcp.find_buckets",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def summarize_bucket(
    bucket_id: str,
    max_chunks: int = 10,
    recursive: bool = True,
) -> BucketSummaryResult:
    """Describe a bucket from the summaries of its newest chunks.

    Args:
        bucket_id: Bucket to describe.
        max_chunks: Number of recent chunks whose summaries are included.
        recursive: Include chunks held by sub-buckets.
    """
    start = perf_counter()
    ok = False
    try:
        manager = _get_manager()
        try:
            validated = SummarizeBucketInput.model_validate(
                {"bucket_id": bucket_id, "max_chunks": max_chunks, "recursive": recursive}
            )
        except ValidationError as exc:
            return BucketSummaryResult(
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
                bucket_id=bucket_id,
            )

        try:
            summary = manager.summarize_bucket(
                validated.bucket_id,
                max_chunks=validated.max_chunks,
                recursive=validated.recursive,
            )
        except StrataMemError as exc:
            return BucketSummaryResult(
                status="error",
                error_code=exc.code,
                message=exc.message,
                bucket_id=validated.bucket_id,
            )

        ok = True
        return BucketSummaryResult(bucket_id=validated.bucket_id, summary=summary)
    finally:
        record_latency(
            operation="mcp.summarize_bucket",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def summarize_text(text: str, levels: int = 1) -> TextSummaryResult:
    """Summarize free text without storing it.

    Args:
        text: Text to summarize.
        levels: Number of summary levels, level 1 first.
    """
    start = perf_counter()
    ok = False
    try:
        manager = _get_manager()
        try:
            validated = SummarizeTextInput.model_validate({"text": text, "levels": levels})
        except ValidationError as exc:
            return TextSummaryResult(
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        summaries = await manager.summarize(validated.text, validated.levels)
        ok = True
        return TextSummaryResult(summaries=summaries)
    finally:
        record_latency(
            operation="mcp.summarize_text",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def get_alerts(include_acknowledged: bool = False) -> AlertsResult:
    """List retained resource alerts.

    Args:
        include_acknowledged: Also return alerts already acknowledged.
    """
    manager = _get_manager()
    return AlertsResult(alerts=manager.get_alerts(include_acknowledged))


@mcp.tool
async def acknowledge_alert(alert_id: str) -> AcknowledgeAlertResult:
    """Mark a retained alert as acknowledged.

    Args:
        alert_id: ID of the alert.
    """
    manager = _get_manager()
    if not manager.acknowledge_alert(alert_id):
        return AcknowledgeAlertResult(
            status="error",
            error_code="alert_not_found",
            message=f"Alert not found for ID: {alert_id}",
            alert_id=alert_id,
        )
    return AcknowledgeAlertResult(alert_id=alert_id, acknowledged=True)


@mcp.tool
async def memory_stats() -> MemoryStatsResult:
    """Report usage per bucket, provider and domain."""
    start = perf_counter()
    ok = False
    try:
        stats = await _get_manager().get_memory_stats()
        ok = True
        return MemoryStatsResult(stats=stats.model_dump(mode="json"))
    finally:
        record_latency(
            operation="mcp.memory_stats",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )
