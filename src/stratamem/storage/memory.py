"""Process-local storage provider (MEMORY tier)."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from stratamem.errors import StorageError
from stratamem.models.storage import StorageLocation
from stratamem.models.storage import StorageQuota
from stratamem.models.storage import StorageTier
from stratamem.storage.base import ensure_owned

logger = logging.getLogger(__name__)


class InMemoryStorageProvider:
    """Keeps payloads in a dict, bounded by ``max_size_bytes``.

    Nothing survives the process; useful as the fastest tier and in tests.
    """

    def __init__(
        self,
        id: str = "memory",
        name: str = "In-Memory Storage",
        *,
        max_size_bytes: int = 256 * 1024 * 1024,
        tier: StorageTier = StorageTier.MEMORY,
    ) -> None:
        self._id = id
        self._name = name
        self._tier = tier
        self._max_size_bytes = max_size_bytes
        self._connected = False
        self._blobs: dict[str, bytes] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def tier(self) -> StorageTier:
        return self._tier

    @property
    def used_bytes(self) -> int:
        return sum(len(blob) for blob in self._blobs.values())

    async def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self._connected = True
        return True

    async def disconnect(self) -> None:
        self._connected = False

    def _require_connected(self) -> None:
        if not self._connected:
            raise StorageError(f"Provider {self._id} not connected")

    async def store(
        self,
        data: bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> StorageLocation:
        self._require_connected()
        if self.used_bytes + len(data) > self._max_size_bytes:
            raise StorageError(
                "Not enough space available",
                details={"provider_id": self._id, "requested": len(data)},
            )
        key = uuid.uuid4().hex
        self._blobs[key] = bytes(data)
        if metadata:
            self._metadata[key] = dict(metadata)
        return StorageLocation(provider_id=self._id, key=key)

    async def retrieve(self, location: StorageLocation) -> bytes:
        self._require_connected()
        ensure_owned(self._id, location)
        try:
            return self._blobs[location.key]
        except KeyError:
            raise StorageError(f"No data stored under key {location.key}") from None

    async def exists(self, location: StorageLocation) -> bool:
        self._require_connected()
        return location.provider_id == self._id and location.key in self._blobs

    async def delete(self, location: StorageLocation) -> bool:
        self._require_connected()
        if location.provider_id != self._id:
            return False
        self._metadata.pop(location.key, None)
        return self._blobs.pop(location.key, None) is not None

    async def get_quota(self) -> StorageQuota:
        self._require_connected()
        used = self.used_bytes
        return StorageQuota(
            used=used,
            total=self._max_size_bytes,
            available=self._max_size_bytes - used,
        )
