"""Storage domain: provider contract, chunk codec and built-in providers."""

from stratamem.storage.base import describe_provider
from stratamem.storage.base import StorageProvider
from stratamem.storage.codec import deserialize_chunk
from stratamem.storage.codec import serialize_chunk
from stratamem.storage.local import LocalStorageProvider
from stratamem.storage.memory import InMemoryStorageProvider
from stratamem.storage.redis_provider import RedisStorageProvider

__all__ = [
    "InMemoryStorageProvider",
    "LocalStorageProvider",
    "RedisStorageProvider",
    "StorageProvider",
    "describe_provider",
    "deserialize_chunk",
    "serialize_chunk",
]
