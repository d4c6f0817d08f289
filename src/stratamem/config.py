"""Configuration for the index, monitor, engine, storage and audit layers.

Every config is a frozen dataclass; callers override fields at
construction time and nothing is read from the environment.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class IndexConfig:
    """Shape of the per-bucket vector indexes."""

    dimension: int = 1536
    metric: str = "cosine"


@dataclass(frozen=True)
class MonitorConfig:
    """Thresholds and cadence for the resource monitor."""

    bucket_size_threshold_mb: float = 100.0
    provider_capacity_threshold_percent: float = 80.0
    domain_growth_threshold_percent: float = 50.0
    interval_seconds: float = 60.0
    # Retention
    max_alerts: int = 100
    history_size: int = 10
    # Size estimation
    average_chunk_size_kb: float = 5.0


@dataclass(frozen=True)
class SummarizationConfig:
    """Summary levels generated per chunk."""

    levels: int = 3
    max_keywords: int = 5


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding provider settings used by ``create_chunk``."""

    provider: str = "hashing"
    model: str = "text-embedding-3-small"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    dimension: int = 1536
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class LLMConfig:
    """LLM provider settings used by the LLM summarizer."""

    provider: str = "openai"
    model: str = "gpt-4"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.2
    max_tokens: int = 1024
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class LocalStorageConfig:
    """Filesystem provider settings."""

    base_path: str = ".stratamem/storage"
    max_size_bytes: int = 5 * 1024 * 1024 * 1024


@dataclass(frozen=True)
class AuditConfig:
    """Settings for the JSONL audit logger."""

    file_path: str = "stratamem_audit.jsonl"
    enabled: bool = True
