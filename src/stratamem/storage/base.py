"""Storage provider contract.

Providers hold serialized chunks.  The manager only ever talks to them
through this protocol, so cloud drives, databases or test doubles can be
plugged in without touching placement logic.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from typing import Protocol
from typing import runtime_checkable

from stratamem.errors import StorageError
from stratamem.models.storage import StorageLocation
from stratamem.models.storage import StorageProviderInfo
from stratamem.models.storage import StorageQuota
from stratamem.models.storage import StorageTier


@runtime_checkable
class StorageProvider(Protocol):
    """Protocol for pluggable chunk storage backends."""

    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def tier(self) -> StorageTier: ...

    async def is_connected(self) -> bool: ...

    async def connect(self) -> bool: ...

    async def disconnect(self) -> None: ...

    async def store(
        self,
        data: bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> StorageLocation: ...

    async def retrieve(self, location: StorageLocation) -> bytes: ...

    async def exists(self, location: StorageLocation) -> bool: ...

    async def delete(self, location: StorageLocation) -> bool: ...

    async def get_quota(self) -> StorageQuota: ...


async def describe_provider(provider: StorageProvider) -> StorageProviderInfo:
    """Snapshot a provider's descriptor; quota only when connected."""
    connected = await provider.is_connected()
    quota = await provider.get_quota() if connected else None
    return StorageProviderInfo(
        id=provider.id,
        name=provider.name,
        tier=provider.tier,
        is_connected=connected,
        quota=quota,
    )


def ensure_owned(provider_id: str, location: StorageLocation) -> None:
    """Raise if *location* belongs to another provider."""
    if location.provider_id != provider_id:
        raise StorageError(
            f"Location provider ID {location.provider_id} does not match "
            f"this provider's ID {provider_id}",
            details={"provider_id": provider_id, "location": location.model_dump()},
        )
