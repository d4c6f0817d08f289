"""Chunk data models."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime
from datetime import UTC
from typing import Any

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator

_METADATA_FIELDS = ("domain", "timestamp", "source", "tags")


class ChunkSummary(BaseModel):
    """One summary of a chunk at a given level of detail (1 = highest level)."""

    level: int = Field(
        ge=1,
        description="Summary level; 1 is the highest-level summary.",
    )
    content: str = Field(
        description="Summary text.",
    )
    concepts: list[str] = Field(
        default_factory=list,
        description="Key concepts extracted from the summary.",
    )


class ChunkMetadata(BaseModel):
    """Closed metadata struct plus an ordered extension map."""

    domain: str = Field(
        default="default",
        description="Domain of the bucket holding the chunk.",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=UTC),
        description="Creation time (UTC).",
    )
    source: str = Field(
        default="user",
        description="Where the content came from.",
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Ordered free-form tags.",
    )
    extra: dict[str, Any] = Field(
        default_factory=dict,
        description="Caller-supplied fields outside the closed struct, in insertion order.",
    )

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any] | None = None) -> ChunkMetadata:
        """Build metadata from a flat mapping.

        Known keys fill the closed struct; everything else is kept in
        ``extra`` in the order given.  ``None`` values for known keys fall
        back to the defaults.
        """
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in (fields or {}).items():
            if key in _METADATA_FIELDS:
                if value is not None:
                    known[key] = value
            elif key == "extra" and isinstance(value, Mapping):
                extra.update(value)
            else:
                extra[key] = value
        return cls(**known, extra=extra)


class Chunk(BaseModel):
    """A content unit with its embedding, metadata and summaries."""

    id: str = Field(
        default_factory=lambda: f"chunk_{uuid.uuid4().hex}",
        description="Unique identifier, auto-generated as chunk_{uuid4_hex}.",
    )
    content: str = Field(
        description="Raw textual content.",
    )
    embedding: list[float] = Field(
        default_factory=list,
        description="Embedding vector of the content.",
    )
    metadata: ChunkMetadata = Field(
        default_factory=ChunkMetadata,
    )
    summaries: list[ChunkSummary] = Field(
        default_factory=list,
        description="Summaries ordered by level.",
    )

    def level_summary(self, level: int = 1) -> ChunkSummary | None:
        """Return the first summary at *level*, if any."""
        for summary in self.summaries:
            if summary.level == level:
                return summary
        return None
