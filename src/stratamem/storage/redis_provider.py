"""Redis-backed storage provider.

Payloads are stored as raw bytes keyed by ``stratamem:{provider}:blob:{key}``
with an optional JSON sidecar at ``stratamem:{provider}:meta:{key}``.
A counter key ``stratamem:{provider}:used`` tracks stored bytes so that
quota checks do not need to scan the keyspace.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any

from redis.asyncio import Redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from stratamem.errors import StorageError
from stratamem.models.storage import StorageLocation
from stratamem.models.storage import StorageQuota
from stratamem.models.storage import StorageTier
from stratamem.storage.base import ensure_owned

logger = logging.getLogger(__name__)

_PREFIX = "stratamem"
_CLEAR_BATCH_SIZE = 100


class RedisStorageProvider:
    """Stores chunks in Redis under a per-provider key namespace."""

    def __init__(
        self,
        redis: Redis,
        id: str = "redis",
        name: str = "Redis Storage",
        *,
        tier: StorageTier = StorageTier.MEMORY,
        max_size_bytes: int = 512 * 1024 * 1024,
    ) -> None:
        self._redis = redis
        self._id = id
        self._name = name
        self._tier = tier
        self._max_size_bytes = max_size_bytes
        self._connected = False
        self._namespace = f"{_PREFIX}:{id}"

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisStorageProvider:
        return cls(Redis.from_url(url), **kwargs)

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def tier(self) -> StorageTier:
        return self._tier

    # -- keys --

    def _blob_key(self, key: str) -> str:
        return f"{self._namespace}:blob:{key}"

    def _meta_key(self, key: str) -> str:
        return f"{self._namespace}:meta:{key}"

    @property
    def _used_key(self) -> str:
        return f"{self._namespace}:used"

    # -- connection --

    async def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        try:
            await self._redis.ping()
        except RedisError as exc:
            logger.error("Failed to connect Redis provider %s: %s", self._id, exc)
            self._connected = False
            return False
        self._connected = True
        return True

    async def disconnect(self) -> None:
        self._connected = False

    async def close(self) -> None:
        """Disconnect and release the Redis client."""
        self._connected = False
        await self._redis.aclose()

    def _require_connected(self) -> None:
        if not self._connected:
            raise StorageError(f"Provider {self._id} not connected")

    # -- write --

    async def store(
        self,
        data: bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> StorageLocation:
        self._require_connected()
        key = uuid.uuid4().hex
        try:
            used = int(await self._redis.get(self._used_key) or 0)
            if used + len(data) > self._max_size_bytes:
                raise StorageError(
                    "Not enough space available",
                    details={"provider_id": self._id, "requested": len(data)},
                )
            pipe = self._redis.pipeline()
            pipe.set(self._blob_key(key), data)
            if metadata:
                pipe.set(self._meta_key(key), json.dumps(dict(metadata), default=str))
            pipe.incrby(self._used_key, len(data))
            await pipe.execute()
        except RedisError as exc:
            raise StorageError(f"Redis store failed: {exc}") from exc
        return StorageLocation(provider_id=self._id, key=key)

    async def delete(self, location: StorageLocation) -> bool:
        self._require_connected()
        if location.provider_id != self._id:
            return False
        blob_key = self._blob_key(location.key)
        try:
            size = await self._redis.strlen(blob_key)
            if not size and not await self._redis.exists(blob_key):
                return False
            pipe = self._redis.pipeline()
            pipe.delete(blob_key)
            pipe.delete(self._meta_key(location.key))
            pipe.decrby(self._used_key, size)
            await pipe.execute()
        except RedisError as exc:
            raise StorageError(f"Redis delete failed: {exc}") from exc
        return True

    async def clear(self) -> None:
        """Remove every key in this provider's namespace."""
        batch: list = []
        async for key in self._redis.scan_iter(match=f"{self._namespace}:*"):
            batch.append(key)
            if len(batch) >= _CLEAR_BATCH_SIZE:
                await self._redis.delete(*batch)
                batch.clear()
        if batch:
            await self._redis.delete(*batch)

    # -- read --

    async def retrieve(self, location: StorageLocation) -> bytes:
        self._require_connected()
        ensure_owned(self._id, location)
        try:
            data = await self._redis.get(self._blob_key(location.key))
        except RedisError as exc:
            raise StorageError(f"Redis retrieve failed: {exc}") from exc
        if data is None:
            raise StorageError(f"No data stored under key {location.key}")
        return bytes(data)

    async def exists(self, location: StorageLocation) -> bool:
        self._require_connected()
        if location.provider_id != self._id:
            return False
        return bool(await self._redis.exists(self._blob_key(location.key)))

    async def get_quota(self) -> StorageQuota:
        self._require_connected()
        used = max(int(await self._redis.get(self._used_key) or 0), 0)
        return StorageQuota(
            used=used,
            total=self._max_size_bytes,
            available=self._max_size_bytes - used,
        )
