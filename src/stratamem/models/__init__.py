"""Models domain: chunks, storage descriptors and alerts."""

from __future__ import annotations

from stratamem.models.alerts import Alert
from stratamem.models.alerts import AlertSeverity
from stratamem.models.alerts import AlertType
from stratamem.models.chunk import Chunk
from stratamem.models.chunk import ChunkMetadata
from stratamem.models.chunk import ChunkSummary
from stratamem.models.storage import StorageLocation
from stratamem.models.storage import StorageProviderInfo
from stratamem.models.storage import StorageQuota
from stratamem.models.storage import StorageTier

__all__ = [
    # Alerts
    "Alert",
    "AlertSeverity",
    "AlertType",
    # Chunks
    "Chunk",
    "ChunkMetadata",
    "ChunkSummary",
    # Storage
    "StorageLocation",
    "StorageProviderInfo",
    "StorageQuota",
    "StorageTier",
]
