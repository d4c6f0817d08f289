"""Pydantic models for the MCP interface.

Input models validate tool arguments; output models shape responses.
Every result carries ``status`` plus an optional ``error_code`` and
``message`` so that tool failures are reported instead of raised.
FastMCP v2 serializes Pydantic models automatically.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import Field

from stratamem.models.alerts import Alert
from stratamem.models.storage import StorageTier

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ToolResult(BaseModel):
    """Status fields common to every tool response."""

    status: str = Field(
        default="ok",
        description="Outcome status (ok, error).",
    )
    error_code: str | None = Field(
        default=None,
        description="Machine-readable failure reason when status is error.",
    )
    message: str | None = Field(
        default=None,
        description="Human-readable failure description.",
    )


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class CreateBucketInput(BaseModel):
    """Input for create_bucket tool."""

    name: str = Field(
        min_length=1,
        description="Display name of the bucket.",
    )
    domain: str = Field(
        min_length=1,
        description="Domain every chunk in the bucket is tagged with.",
    )
    description: str | None = Field(
        default=None,
        description="Optional free-text description.",
    )
    parent_id: str | None = Field(
        default=None,
        description="Create as a sub-bucket of this bucket instead of a root.",
    )


class RememberInput(BaseModel):
    """Input for remember tool."""

    content: str = Field(
        min_length=1,
        description="Text to embed, summarize and store.",
    )
    bucket_id: str | None = Field(
        default=None,
        description="Bucket the new chunk is added to; overrides bucket_name.",
    )
    bucket_name: str = Field(
        default="default",
        min_length=1,
        description="Root bucket looked up, or created, when no bucket_id is given.",
    )
    bucket_domain: str = Field(
        default="general",
        min_length=1,
        description="Domain of the root bucket named by bucket_name.",
    )
    source: str | None = Field(
        default=None,
        description="Where the content came from (defaults to 'user-input').",
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Free-form labels attached to the chunk.",
    )
    preferred_tier: StorageTier = Field(
        default=StorageTier.LOCAL,
        description="Storage tier tried first when placing the chunk.",
    )
    summarize: bool = Field(
        default=True,
        description="Whether to generate multi-level summaries.",
    )


class RecallInput(BaseModel):
    """Input for recall tool."""

    query: str = Field(
        min_length=1,
        description="Natural language search query.",
    )
    bucket_id: str | None = Field(
        default=None,
        description="Bucket to search; the most relevant root buckets when omitted.",
    )
    limit: int = Field(
        default=10,
        ge=0,
        description="Maximum number of hits to return.",
    )
    min_score: float = Field(
        default=0.7,
        description="Hits scoring below this are dropped.",
    )
    recursive: bool = Field(
        default=True,
        description="Whether to include sub-buckets in the search.",
    )


class FindBucketsInput(BaseModel):
    """Input for find_buckets tool."""

    query: str = Field(
        min_length=1,
        description="Natural language query used to rank root buckets.",
    )
    limit: int = Field(
        default=3,
        ge=0,
        description="Maximum number of buckets to return.",
    )


class SummarizeBucketInput(BaseModel):
    """Input for summarize_bucket tool."""

    bucket_id: str = Field(
        description="Bucket to describe.",
    )
    max_chunks: int = Field(
        default=10,
        ge=1,
        description="Newest chunks whose summaries are listed.",
    )
    recursive: bool = Field(
        default=True,
        description="Whether to include chunks of sub-buckets.",
    )


class SummarizeTextInput(BaseModel):
    """Input for summarize_text tool."""

    text: str = Field(
        min_length=1,
        description="Text to summarize.",
    )
    levels: int = Field(
        default=1,
        ge=1,
        description="Number of summary levels to produce.",
    )


# ---------------------------------------------------------------------------
# Output models
# ---------------------------------------------------------------------------


class BucketEntry(BaseModel):
    """A bucket as reported by the tools."""

    id: str = Field(description="Unique identifier of the bucket.")
    name: str = Field(description="Display name of the bucket.")
    domain: str = Field(description="Domain of the bucket.")
    description: str | None = Field(default=None, description="Bucket description.")
    parent_id: str | None = Field(default=None, description="Parent bucket id, if any.")
    chunk_count: int = Field(default=0, description="Chunks held, including sub-buckets.")


class CreateBucketResult(ToolResult):
    """Response from create_bucket."""

    bucket: BucketEntry | None = Field(
        default=None,
        description="The bucket that was created.",
    )


class RememberResult(ToolResult):
    """Response from remember."""

    chunk_id: str = Field(
        default="",
        description="ID assigned to the new chunk.",
    )
    bucket_id: str | None = Field(
        default=None,
        description="Bucket the chunk was added to.",
    )
    provider_id: str | None = Field(
        default=None,
        description="Storage provider that holds the serialized chunk.",
    )
    key: str | None = Field(
        default=None,
        description="Provider-specific key of the stored chunk.",
    )


class RecallHit(BaseModel):
    """A single search hit."""

    chunk_id: str = Field(description="ID of the matching chunk.")
    score: float = Field(description="Similarity score; higher is more similar.")
    content: str = Field(description="Full text of the chunk.")
    summary: str | None = Field(
        default=None,
        description="Level-1 summary, when one was generated.",
    )
    domain: str = Field(description="Domain the chunk is tagged with.")
    tags: list[str] = Field(default_factory=list, description="Chunk labels.")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Extra metadata recorded with the chunk.",
    )


class RecallResult(ToolResult):
    """Response from recall."""

    query: str = Field(description="Original search query.")
    hits: list[RecallHit] = Field(
        default_factory=list,
        description="Matching chunks ordered by descending score.",
    )


class BucketScoreEntry(BaseModel):
    """A root bucket ranked by relevance."""

    bucket: BucketEntry = Field(description="The ranked bucket.")
    score: float = Field(description="Mean score of the sampled results.")


class FindBucketsResult(ToolResult):
    """Response from find_buckets."""

    query: str = Field(description="Original query.")
    buckets: list[BucketScoreEntry] = Field(
        default_factory=list,
        description="Buckets ordered by descending relevance.",
    )


class AlertsResult(ToolResult):
    """Response from get_alerts."""

    alerts: list[Alert] = Field(
        default_factory=list,
        description="Retained alerts, oldest first.",
    )


class AcknowledgeAlertResult(ToolResult):
    """Response from acknowledge_alert."""

    alert_id: str = Field(description="ID of the alert.")
    acknowledged: bool = Field(
        default=False,
        description="Whether a retained alert with this id was found.",
    )


class MemoryStatsResult(ToolResult):
    """Response from memory_stats."""

    stats: dict[str, Any] = Field(
        default_factory=dict,
        description="Usage per bucket, provider and domain, plus totals.",
    )


class BucketSummaryResult(ToolResult):
    """Response from summarize_bucket."""

    bucket_id: str = Field(description="ID of the summarized bucket.")
    summary: str = Field(default="", description="Description of the bucket contents.")


class TextSummaryResult(ToolResult):
    """Response from summarize_text."""

    summaries: list[str] = Field(
        default_factory=list,
        description="One summary per level, level 1 first.",
    )
