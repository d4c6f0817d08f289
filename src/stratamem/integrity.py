"""Content hashes stamped into chunk metadata and checked on read."""

from __future__ import annotations

import hashlib
import json

from stratamem.errors import IntegrityError
from stratamem.models.chunk import Chunk

HASH_FIELD = "integrity_hash"


class IntegrityVerifier:
    """SHA-256 over a chunk's content, embedding and summaries.

    Metadata is excluded so that enrichment (including the hash itself and
    the bucket's domain override) does not invalidate a chunk.
    """

    def compute(self, chunk: Chunk) -> str:
        payload = {
            "id": chunk.id,
            "content": chunk.content,
            "embedding": [round(value, 6) for value in chunk.embedding],
            "summaries": [s.model_dump() for s in chunk.summaries],
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def stamp(self, chunk: Chunk) -> str:
        """Record the chunk's hash in ``metadata.extra`` and return it."""
        digest = self.compute(chunk)
        chunk.metadata.extra[HASH_FIELD] = digest
        return digest

    def verify(self, chunk: Chunk) -> None:
        """Raise ``IntegrityError`` when the recorded hash does not match.

        Chunks without a recorded hash pass.
        """
        expected = chunk.metadata.extra.get(HASH_FIELD)
        if expected is None:
            return
        actual = self.compute(chunk)
        if actual != expected:
            raise IntegrityError(
                f"Integrity check failed for chunk {chunk.id}",
                details={"chunk_id": chunk.id, "expected": expected, "actual": actual},
            )
