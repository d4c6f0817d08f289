"""Storage placement models: tiers, quotas and locations."""

from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel
from pydantic import Field


class StorageTier(IntEnum):
    """Ordinal preference rank across storage providers (lower is closer)."""

    MEMORY = 0
    LOCAL = 1
    CLOUD = 2
    PLATFORM = 3
    EXTENDED = 4


class StorageQuota(BaseModel):
    """Point-in-time capacity snapshot of a provider, in bytes."""

    used: int = Field(ge=0)
    total: int = Field(ge=0)
    available: int

    @property
    def usage_percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.used / self.total * 100


class StorageLocation(BaseModel):
    """Where a serialized chunk lives: a provider id and an opaque key."""

    model_config = {"frozen": True}

    provider_id: str
    key: str


class StorageProviderInfo(BaseModel):
    """Descriptor of a registered provider."""

    id: str
    name: str
    tier: StorageTier
    is_connected: bool
    quota: StorageQuota | None = None
