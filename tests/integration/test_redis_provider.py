"""Integration tests for the Redis storage provider against a real Redis."""

from __future__ import annotations

import json

import pytest
from fastmcp import Client

from stratamem.audit import AuditEventType
from stratamem.audit import AuditLogger
from stratamem.config import AuditConfig
from stratamem.config import EmbeddingConfig
from stratamem.config import IndexConfig
from stratamem.engine import HashingEmbedder
from stratamem.errors import StorageError
from stratamem.integrity import IntegrityVerifier
from stratamem.manager import MemoryManager
from stratamem.models.storage import StorageLocation
from stratamem.models.storage import StorageTier
from stratamem.storage import describe_provider
from stratamem.storage import RedisStorageProvider

DIM = 16


async def _provider(redis_client, id: str = "redis", **kwargs) -> RedisStorageProvider:
    provider = RedisStorageProvider(redis_client, id=id, **kwargs)
    assert await provider.connect() is True
    return provider


def _parse(result) -> dict:
    return json.loads(result.content[0].text)


# ---------------------------------------------------------------------------
# Provider contract
# ---------------------------------------------------------------------------


class TestRedisProvider:
    async def test_store_retrieve_delete(self, redis_client):
        provider = await _provider(redis_client)
        location = await provider.store(b"payload", {"domain": "science"})

        assert location.provider_id == "redis"
        assert await provider.exists(location) is True
        assert await provider.retrieve(location) == b"payload"
        meta = await redis_client.get(f"stratamem:redis:meta:{location.key}")
        assert json.loads(meta) == {"domain": "science"}

        assert await provider.delete(location) is True
        assert await provider.exists(location) is False
        assert await provider.delete(location) is False

    async def test_quota_counter(self, redis_client):
        provider = await _provider(redis_client, max_size_bytes=100)
        first = await provider.store(b"x" * 30)
        await provider.store(b"y" * 20)
        assert (await provider.get_quota()).used == 50

        await provider.delete(first)
        quota = await provider.get_quota()
        assert quota.used == 20
        assert quota.available == 80

    async def test_rejects_when_full(self, redis_client):
        provider = await _provider(redis_client, max_size_bytes=10)
        with pytest.raises(StorageError):
            await provider.store(b"x" * 11)
        assert (await provider.get_quota()).used == 0

    async def test_foreign_location(self, redis_client):
        provider = await _provider(redis_client)
        foreign = StorageLocation(provider_id="other", key="k")
        with pytest.raises(StorageError):
            await provider.retrieve(foreign)
        assert await provider.exists(foreign) is False
        assert await provider.delete(foreign) is False

    async def test_requires_connect(self, redis_client):
        provider = RedisStorageProvider(redis_client)
        with pytest.raises(StorageError):
            await provider.store(b"x")

    async def test_clear_only_touches_own_namespace(self, redis_client):
        a = await _provider(redis_client, id="a")
        b = await _provider(redis_client, id="b")
        await a.store(b"one")
        kept = await b.store(b"two")

        await a.clear()
        assert await redis_client.keys("stratamem:a:*") == []
        assert await b.retrieve(kept) == b"two"

    async def test_describe(self, redis_client):
        info = await describe_provider(await _provider(redis_client, max_size_bytes=64))
        assert info.tier is StorageTier.MEMORY
        assert info.is_connected is True
        assert info.quota.total == 64


# ---------------------------------------------------------------------------
# Memory manager over Redis
# ---------------------------------------------------------------------------


class TestManagerOverRedis:
    async def test_store_retrieve_and_relocate(self, redis_client, tmp_path):
        audit = AuditLogger(AuditConfig(file_path=str(tmp_path / "audit.jsonl")))
        manager = MemoryManager(
            embedder=HashingEmbedder(dimension=DIM),
            index_config=IndexConfig(dimension=DIM),
            audit_logger=audit,
            integrity_verifier=IntegrityVerifier(),
        )
        primary = await _provider(redis_client, id="primary")
        secondary = await _provider(redis_client, id="secondary")
        manager.add_storage_provider(primary)
        manager.add_storage_provider(secondary)

        chunk = await manager.create_chunk("Redis keeps chunks in memory.", {"domain": "infra"})
        location = await manager.store_chunk(chunk, StorageTier.MEMORY)
        assert location.provider_id == "primary"

        restored = await manager.retrieve_chunk(chunk.id)
        assert restored == chunk

        moved = await manager.relocate_chunk(chunk.id, StorageTier.MEMORY)
        assert moved.provider_id == "secondary"
        assert await primary.exists(location) is False
        assert (await manager.retrieve_chunk(chunk.id)).content == chunk.content

        relocated = await audit.read_events(event_type=AuditEventType.CHUNK_RELOCATED)
        assert relocated[0].payload["to_provider_id"] == "secondary"


# ---------------------------------------------------------------------------
# MCP server with a Redis provider
# ---------------------------------------------------------------------------


class TestServerWithRedis:
    async def test_remember_spills_to_redis(self, redis_container, redis_client, tmp_path):
        from stratamem.server import configure
        from stratamem.server import mcp
        from stratamem.server import shutdown

        await configure(
            redis_url=redis_container,
            memory_max_size_bytes=1,
            embedding_config=EmbeddingConfig(dimension=DIM),
            audit_config=AuditConfig(file_path=str(tmp_path / "audit.jsonl")),
        )
        try:
            async with Client(mcp) as client:
                bucket = _parse(
                    await client.call_tool("create_bucket", {"name": "Ops", "domain": "ops"})
                )["bucket"]
                data = _parse(
                    await client.call_tool(
                        "remember",
                        {
                            "content": "Rotate the Redis password monthly.",
                            "bucket_id": bucket["id"],
                            "preferred_tier": 0,
                        },
                    )
                )
        finally:
            await shutdown()

        assert data["status"] == "ok"
        assert data["provider_id"] == "redis"
        assert await redis_client.exists(f"stratamem:redis:blob:{data['key']}") == 1
