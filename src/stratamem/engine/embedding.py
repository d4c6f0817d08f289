"""Embedders turn chunk text into vectors."""

from __future__ import annotations

import asyncio
import hashlib
import re
from typing import Protocol
from typing import runtime_checkable
from urllib.error import HTTPError
from urllib.error import URLError

import numpy as np

from stratamem.config import EmbeddingConfig
from stratamem.engine.llm_adapters import post_json
from stratamem.errors import EmbeddingError
from stratamem.index import normalize


@runtime_checkable
class Embedder(Protocol):
    """Protocol for embedding providers."""

    async def embed(self, text: str) -> list[float]: ...


_WORD_RE = re.compile(r"[a-z0-9]+")


class HashingEmbedder(Embedder):
    """Offline bag-of-words embedder using the hashing trick.

    Each lowercase token is hashed to a bucket and a sign; the counts are
    L2-normalised.  Identical texts always map to identical vectors and
    texts sharing vocabulary score higher under cosine similarity.
    """

    def __init__(self, dimension: int = 1536) -> None:
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        vector = np.zeros(self._dimension, dtype=np.float64)
        for token in _WORD_RE.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            value = int.from_bytes(digest, "big")
            sign = 1.0 if value & 1 else -1.0
            vector[(value >> 1) % self._dimension] += sign
        return normalize(vector).tolist()


class OpenAICompatibleEmbedder(Embedder):
    """OpenAI-compatible ``/embeddings`` adapter."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 30.0,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    async def embed(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._embed_sync, text)

    def _embed_sync(self, text: str) -> list[float]:
        try:
            data = post_json(
                f"{self._base_url}/embeddings",
                {"model": self._model, "input": text},
                api_key=self._api_key,
                timeout_seconds=self._timeout_seconds,
            )
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise EmbeddingError(f"provider HTTP {exc.code}: {detail[:200]}") from exc
        except URLError as exc:
            raise EmbeddingError(f"provider network error: {exc.reason}") from exc
        except OSError as exc:
            raise EmbeddingError(f"provider IO error: {exc}") from exc
        except ValueError as exc:
            raise EmbeddingError("provider response is not valid JSON") from exc

        try:
            embedding = data["data"][0]["embedding"]
            return [float(value) for value in embedding]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise EmbeddingError("provider response missing data[0].embedding") from exc


def build_embedder(config: EmbeddingConfig) -> Embedder:
    """Create a concrete embedder from ``EmbeddingConfig``."""

    provider = config.provider.strip().lower()
    if provider == "openai":
        if not config.api_key:
            raise ValueError("embedding_config.api_key is required when provider='openai'")
        return OpenAICompatibleEmbedder(
            model=config.model,
            api_key=config.api_key,
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
        )
    if provider == "hashing":
        return HashingEmbedder(dimension=config.dimension)
    raise ValueError(
        f"Unsupported embedding_config.provider '{config.provider}'. "
        "Supported providers: openai, hashing."
    )
