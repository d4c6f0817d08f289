"""Chunk wire format.

A stored chunk is the UTF-8 JSON record
``{id, content, embedding[], metadata{...}, summaries[{level, content, concepts}]}``.
"""

from __future__ import annotations

from pydantic import ValidationError

from stratamem.errors import DeserializationFailedError
from stratamem.models.chunk import Chunk


def serialize_chunk(chunk: Chunk) -> bytes:
    return chunk.model_dump_json().encode("utf-8")


def deserialize_chunk(data: bytes) -> Chunk:
    try:
        return Chunk.model_validate_json(data)
    except (ValidationError, UnicodeDecodeError) as exc:
        raise DeserializationFailedError(f"Failed to deserialize chunk: {exc}") from exc
