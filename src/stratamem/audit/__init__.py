"""Audit subsystem: async JSONL log of storage and transaction events."""

from stratamem.audit.schemas import AuditEvent
from stratamem.audit.schemas import AuditEventType
from stratamem.audit.store import AuditLogger

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
]
