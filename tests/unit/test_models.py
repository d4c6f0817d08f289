"""Unit tests for chunk, alert and error models."""

from __future__ import annotations

from datetime import datetime
from datetime import UTC

import pytest
from pydantic import ValidationError

from stratamem.errors import CapacityError
from stratamem.errors import DimensionMismatchError
from stratamem.errors import IntegrityError
from stratamem.errors import NoProviderAvailableError
from stratamem.errors import NotFoundError
from stratamem.errors import ProviderNotFoundError
from stratamem.errors import StrataMemError
from stratamem.errors import UnavailableError
from stratamem.integrity import HASH_FIELD
from stratamem.integrity import IntegrityVerifier
from stratamem.models import Alert
from stratamem.models import AlertSeverity
from stratamem.models import AlertType
from stratamem.models import Chunk
from stratamem.models import ChunkMetadata
from stratamem.models import ChunkSummary


class TestChunkMetadata:
    def test_defaults(self):
        metadata = ChunkMetadata()
        assert metadata.domain == "default"
        assert metadata.source == "user"
        assert metadata.tags == []
        assert metadata.extra == {}
        assert metadata.timestamp.tzinfo is not None

    def test_naive_timestamp_assumed_utc(self):
        metadata = ChunkMetadata(timestamp=datetime(2024, 1, 1, 12, 0))
        assert metadata.timestamp.tzinfo == UTC

    def test_from_fields_splits_known_and_extra(self):
        metadata = ChunkMetadata.from_fields(
            {"source": "import", "zeta": 1, "alpha": 2, "domain": None}
        )
        assert metadata.source == "import"
        assert metadata.domain == "default"
        assert list(metadata.extra.items()) == [("zeta", 1), ("alpha", 2)]

    def test_from_fields_merges_extra_mapping(self):
        metadata = ChunkMetadata.from_fields({"extra": {"a": 1}, "b": 2})
        assert metadata.extra == {"a": 1, "b": 2}

    def test_from_fields_none(self):
        assert ChunkMetadata.from_fields(None).domain == "default"


class TestChunk:
    def test_generated_id(self):
        assert Chunk(content="x").id.startswith("chunk_")

    def test_level_summary(self):
        chunk = Chunk(
            content="x",
            summaries=[ChunkSummary(level=2, content="two"), ChunkSummary(level=1, content="one")],
        )
        assert chunk.level_summary(1).content == "one"
        assert chunk.level_summary(3) is None

    def test_summary_level_must_be_positive(self):
        with pytest.raises(ValidationError):
            ChunkSummary(level=0, content="x")


class TestAlert:
    def test_defaults(self):
        alert = Alert(type=AlertType.system, severity=AlertSeverity.warning, message="m")
        assert alert.id.startswith("alert_")
        assert alert.acknowledged is False
        assert alert.details == {}

    def test_wire_values(self):
        assert AlertType.bucket_size.value == "bucket-size"
        assert AlertType.provider_capacity.value == "provider-capacity"
        assert AlertType.domain_growth.value == "domain-growth"


class TestErrors:
    def test_no_provider_is_capacity_and_unavailable(self):
        cause = RuntimeError("disk full")
        err = NoProviderAvailableError("chunk_1", cause)
        assert isinstance(err, CapacityError)
        assert isinstance(err, UnavailableError)
        assert err.last_error is cause
        assert "disk full" in str(err)
        assert err.details == {"chunk_id": "chunk_1"}

    def test_codes(self):
        assert DimensionMismatchError(3, 2).code == "dimension_mismatch"
        assert ProviderNotFoundError("p").code == "provider_not_found"
        assert isinstance(ProviderNotFoundError("p"), NotFoundError)
        assert isinstance(ProviderNotFoundError("p"), StrataMemError)


class TestIntegrityVerifier:
    def test_stamp_and_verify(self):
        verifier = IntegrityVerifier()
        chunk = Chunk(content="x", embedding=[0.1, 0.2])
        digest = verifier.stamp(chunk)
        assert chunk.metadata.extra[HASH_FIELD] == digest
        verifier.verify(chunk)

    def test_metadata_changes_do_not_break_hash(self):
        verifier = IntegrityVerifier()
        chunk = Chunk(content="x")
        verifier.stamp(chunk)
        chunk.metadata.domain = "moved"
        chunk.metadata.tags.append("new")
        verifier.verify(chunk)

    def test_content_change_detected(self):
        verifier = IntegrityVerifier()
        chunk = Chunk(content="x")
        verifier.stamp(chunk)
        chunk.content = "y"
        with pytest.raises(IntegrityError):
            verifier.verify(chunk)

    def test_unstamped_chunks_pass(self):
        IntegrityVerifier().verify(Chunk(content="x"))
