"""Filesystem storage provider (LOCAL tier).

Each payload is one file named by a random key under ``base_path``;
metadata, when given, goes to a ``<key>.meta`` JSON sidecar.  Blocking
file I/O runs in worker threads via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from stratamem.config import LocalStorageConfig
from stratamem.errors import StorageError
from stratamem.models.storage import StorageLocation
from stratamem.models.storage import StorageQuota
from stratamem.models.storage import StorageTier
from stratamem.storage.base import ensure_owned

logger = logging.getLogger(__name__)

_META_SUFFIX = ".meta"


def _directory_size(path: Path) -> int:
    if not path.exists():
        return 0
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())


class LocalStorageProvider:
    """Stores chunks as files on the local disk."""

    def __init__(
        self,
        id: str = "local",
        name: str = "Local Filesystem",
        config: LocalStorageConfig | None = None,
    ) -> None:
        cfg = config or LocalStorageConfig()
        self._id = id
        self._name = name
        self._base_path = Path(cfg.base_path)
        self._max_size_bytes = cfg.max_size_bytes
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def tier(self) -> StorageTier:
        return StorageTier.LOCAL

    @property
    def base_path(self) -> Path:
        return self._base_path

    async def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        try:
            await asyncio.to_thread(self._base_path.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Failed to connect local storage at %s: %s", self._base_path, exc)
            return False
        self._connected = True
        return True

    async def disconnect(self) -> None:
        self._connected = False

    def _require_connected(self) -> None:
        if not self._connected:
            raise StorageError(f"Provider {self._id} not connected")

    def _path_for(self, location: StorageLocation) -> Path:
        return self._base_path / location.key

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def store(
        self,
        data: bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> StorageLocation:
        self._require_connected()
        key = uuid.uuid4().hex
        path = self._base_path / key
        async with self._lock:
            used = await asyncio.to_thread(_directory_size, self._base_path)
            if used + len(data) > self._max_size_bytes:
                raise StorageError(
                    "Not enough space available",
                    details={"provider_id": self._id, "requested": len(data)},
                )
            try:
                await asyncio.to_thread(path.write_bytes, data)
                if metadata:
                    meta = json.dumps(dict(metadata), default=str)
                    await asyncio.to_thread(
                        path.with_name(key + _META_SUFFIX).write_text, meta
                    )
            except OSError as exc:
                raise StorageError(f"Failed to write {path}: {exc}") from exc
        return StorageLocation(provider_id=self._id, key=key)

    async def delete(self, location: StorageLocation) -> bool:
        self._require_connected()
        if location.provider_id != self._id:
            return False
        path = self._path_for(location)
        async with self._lock:
            try:
                await asyncio.to_thread(path.unlink)
            except FileNotFoundError:
                return False
            await asyncio.to_thread(
                path.with_name(location.key + _META_SUFFIX).unlink, missing_ok=True
            )
        return True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def retrieve(self, location: StorageLocation) -> bytes:
        self._require_connected()
        ensure_owned(self._id, location)
        path = self._path_for(location)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise StorageError(f"Failed to retrieve data: {exc}") from exc

    async def exists(self, location: StorageLocation) -> bool:
        self._require_connected()
        if location.provider_id != self._id:
            return False
        return await asyncio.to_thread(self._path_for(location).is_file)

    async def get_quota(self) -> StorageQuota:
        self._require_connected()
        used = await asyncio.to_thread(_directory_size, self._base_path)
        return StorageQuota(
            used=used,
            total=self._max_size_bytes,
            available=self._max_size_bytes - used,
        )
