"""Exception hierarchy shared by the memory core and its collaborators."""

from __future__ import annotations

from typing import Any


class StrataMemError(Exception):
    """Base class for every error raised by stratamem."""

    code = "stratamem_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class ValidationError(StrataMemError):
    """Input failed a structural check (dimension, metadata shape)."""

    code = "validation_error"


class UnavailableError(StrataMemError):
    """A required collaborator is not configured or not reachable."""

    code = "unavailable"


class NotFoundError(StrataMemError):
    """A referenced chunk location, bucket, or provider does not exist."""

    code = "not_found"


class CapacityError(StrataMemError):
    """No storage provider has room for the payload."""

    code = "capacity_exceeded"


class StorageError(StrataMemError):
    """A storage provider failed to complete an operation."""

    code = "storage_error"


class EmbeddingError(StrataMemError):
    """The embedder failed to produce a vector."""

    code = "embedding_failed"


class IntegrityError(StrataMemError):
    """Stored chunk content does not match its recorded hash."""

    code = "integrity_error"


# ---------------------------------------------------------------------------
# Concrete errors
# ---------------------------------------------------------------------------


class DimensionMismatchError(ValidationError):
    code = "dimension_mismatch"

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Vector dimension {actual} does not match index dimension {expected}",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class EmbeddingUnavailableError(UnavailableError):
    code = "embedding_unavailable"

    def __init__(self, message: str = "No embedder configured") -> None:
        super().__init__(message)


class NoProviderAvailableError(CapacityError, UnavailableError):
    """Every candidate provider was disconnected, full, or failed."""

    code = "no_provider_available"

    def __init__(self, chunk_id: str, last_error: BaseException | None = None) -> None:
        message = f"Failed to store chunk {chunk_id} in any storage provider"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message, details={"chunk_id": chunk_id})
        self.chunk_id = chunk_id
        self.last_error = last_error


class LocationNotFoundError(NotFoundError):
    code = "location_not_found"

    def __init__(self, chunk_id: str) -> None:
        super().__init__(
            f"Chunk location not found for ID: {chunk_id}",
            details={"chunk_id": chunk_id},
        )
        self.chunk_id = chunk_id


class ProviderNotFoundError(NotFoundError):
    code = "provider_not_found"

    def __init__(self, provider_id: str) -> None:
        super().__init__(
            f"Storage provider not found for ID: {provider_id}",
            details={"provider_id": provider_id},
        )
        self.provider_id = provider_id


class BucketNotFoundError(NotFoundError):
    code = "bucket_not_found"

    def __init__(self, bucket_id: str) -> None:
        super().__init__(
            f"Bucket not found for ID: {bucket_id}",
            details={"bucket_id": bucket_id},
        )
        self.bucket_id = bucket_id


class DeserializationFailedError(StrataMemError):
    code = "deserialization_failed"


class TransactionError(StrataMemError):
    """A rolled-back transaction, carrying the trigger and compensation warnings."""

    code = "transaction_rolled_back"

    def __init__(
        self,
        message: str,
        *,
        original_error: BaseException | None = None,
        warnings: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.original_error = original_error
        self.warnings = list(warnings or [])
