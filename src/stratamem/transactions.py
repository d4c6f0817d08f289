"""Sequential multi-step operations with ordered compensation.

A transaction is a list of ``TransactionOperation`` values.  Steps run
strictly in order; when step *i* fails, the compensations of steps
*i-1* down to *1* run in exactly that reverse order.  Compensation errors
are recorded as warnings and never stop the remaining compensations or
hide the error that triggered the rollback.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from time import perf_counter
from typing import Any

from stratamem.audit import AuditEvent
from stratamem.audit import AuditEventType
from stratamem.audit import AuditLogger
from stratamem.errors import TransactionError
from stratamem.observability import record_latency

logger = logging.getLogger(__name__)


class TransactionStatus(str, Enum):
    committed = "committed"
    rolled_back = "rolled_back"


@dataclass(frozen=True)
class TransactionOperation:
    """One step: a description, an execute action and its compensation."""

    description: str
    execute: Callable[[], Awaitable[Any]]
    compensate: Callable[[], Awaitable[None]]
    id: str = field(default_factory=lambda: f"op_{uuid.uuid4().hex}")


@dataclass(frozen=True)
class CompensationWarning:
    """A compensation that raised while rolling back."""

    operation_id: str
    description: str
    error: str


@dataclass
class TransactionResult:
    status: TransactionStatus
    results: list[Any] = field(default_factory=list)
    error: BaseException | None = None
    failed_step: int | None = None
    warnings: list[CompensationWarning] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.status is TransactionStatus.committed

    def raise_for_status(self) -> None:
        """Raise ``TransactionError`` if the transaction rolled back."""
        if self.committed:
            return
        raise TransactionError(
            f"Transaction rolled back at step {self.failed_step}: {self.error}",
            original_error=self.error,
            warnings=self.warnings,
        ) from self.error


def create_operation(
    description: str,
    execute: Callable[[], Awaitable[Any]],
    compensate: Callable[[], Awaitable[None]],
) -> TransactionOperation:
    """Build a ``TransactionOperation``."""
    return TransactionOperation(
        description=description,
        execute=execute,
        compensate=compensate,
    )


class TransactionManager:
    """Runs transactions one step at a time, never concurrently."""

    def __init__(self, *, audit_logger: AuditLogger | None = None) -> None:
        self._audit_logger = audit_logger

    async def execute_transaction(
        self,
        operations: Sequence[TransactionOperation],
    ) -> TransactionResult:
        start = perf_counter()
        results: list[Any] = []
        executed: list[TransactionOperation] = []

        for step, operation in enumerate(operations, start=1):
            try:
                results.append(await operation.execute())
            except Exception as exc:
                logger.error(
                    "Transaction step %d (%s) failed: %s",
                    step,
                    operation.description,
                    exc,
                )
                warnings = await self._compensate(executed)
                result = TransactionResult(
                    status=TransactionStatus.rolled_back,
                    results=results,
                    error=exc,
                    failed_step=step,
                    warnings=warnings,
                )
                await self._audit(result, operations)
                record_latency(
                    operation="transaction.execute",
                    duration_ms=(perf_counter() - start) * 1000,
                    ok=False,
                )
                return result
            executed.append(operation)

        result = TransactionResult(status=TransactionStatus.committed, results=results)
        await self._audit(result, operations)
        record_latency(
            operation="transaction.execute",
            duration_ms=(perf_counter() - start) * 1000,
        )
        return result

    async def _compensate(
        self,
        executed: list[TransactionOperation],
    ) -> list[CompensationWarning]:
        warnings: list[CompensationWarning] = []
        for operation in reversed(executed):
            try:
                await operation.compensate()
            except Exception as exc:
                logger.warning(
                    "Failed to compensate operation %r: %s",
                    operation.description,
                    exc,
                )
                warnings.append(
                    CompensationWarning(
                        operation_id=operation.id,
                        description=operation.description,
                        error=str(exc),
                    )
                )
        return warnings

    async def _audit(
        self,
        result: TransactionResult,
        operations: Sequence[TransactionOperation],
    ) -> None:
        if self._audit_logger is None:
            return
        event_type = (
            AuditEventType.TRANSACTION_COMMITTED
            if result.committed
            else AuditEventType.TRANSACTION_ROLLED_BACK
        )
        payload: dict[str, Any] = {
            "operations": [op.description for op in operations],
            "completed": len(result.results),
        }
        if not result.committed:
            payload["failed_step"] = result.failed_step
            payload["error"] = str(result.error)
            payload["compensation_warnings"] = [w.description for w in result.warnings]
        await self._audit_logger.log(AuditEvent(event_type=event_type, payload=payload))

