"""Monitoring alert models."""

from __future__ import annotations

import uuid
from datetime import datetime
from datetime import UTC
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class AlertType(str, Enum):
    """What a monitoring alert is about."""

    bucket_size = "bucket-size"
    provider_capacity = "provider-capacity"
    domain_growth = "domain-growth"
    system = "system"


class AlertSeverity(str, Enum):
    info = "info"
    warning = "warning"
    critical = "critical"


class Alert(BaseModel):
    """A notice raised by the resource monitor.

    Only ``acknowledged`` changes after creation.
    """

    id: str = Field(
        default_factory=lambda: f"alert_{uuid.uuid4().hex}",
    )
    type: AlertType
    severity: AlertSeverity
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=UTC),
    )
    acknowledged: bool = False
