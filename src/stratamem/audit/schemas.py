"""Audit event types and data models."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class AuditEventType(str, Enum):
    """Categories of auditable events."""

    CHUNK_STORED = "CHUNK_STORED"
    CHUNK_RETRIEVED = "CHUNK_RETRIEVED"
    CHUNK_DELETED = "CHUNK_DELETED"
    CHUNK_RELOCATED = "CHUNK_RELOCATED"
    TRANSACTION_COMMITTED = "TRANSACTION_COMMITTED"
    TRANSACTION_ROLLED_BACK = "TRANSACTION_ROLLED_BACK"
    ALERT_RAISED = "ALERT_RAISED"


class AuditEvent(BaseModel):
    """A single immutable audit log entry."""

    model_config = {"frozen": True}

    timestamp: float = Field(
        default_factory=time.time,
        description="Unix epoch when the event occurred.",
    )
    event_type: AuditEventType = Field(
        description="Category of the audited action.",
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific data (chunk ids, locations, step counts).",
    )
