"""Async JSONL audit logger."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from stratamem.audit.schemas import AuditEvent
from stratamem.audit.schemas import AuditEventType
from stratamem.config import AuditConfig

logger = logging.getLogger(__name__)


class AuditLogger:
    """Append-only JSONL audit log.

    File writes are pushed to a worker thread with ``asyncio.to_thread``
    and serialised by an ``asyncio.Lock``.  A failed write is logged and
    dropped so that auditing never breaks the operation being audited.
    """

    def __init__(self, config: AuditConfig) -> None:
        self.config = config
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def log(self, event: AuditEvent) -> None:
        """Append *event* as a single JSON line to the audit file."""
        if not self.config.enabled:
            return
        line = event.model_dump_json() + "\n"
        async with self._lock:
            try:
                await asyncio.to_thread(
                    partial(self._append, self.config.file_path, line),
                )
            except OSError as exc:
                logger.warning(
                    "Dropping %s audit event, write to %s failed: %s",
                    event.event_type.value,
                    self.config.file_path,
                    exc,
                )

    async def record(self, event_type: AuditEventType, **payload: Any) -> None:
        """Shorthand for ``log(AuditEvent(event_type=..., payload=...))``."""
        await self.log(AuditEvent(event_type=event_type, payload=payload))

    @staticmethod
    def _append(path: str, line: str) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as fh:
            fh.write(line)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def read_events(
        self,
        *,
        event_type: AuditEventType | None = None,
        since: float | None = None,
        chunk_id: str | None = None,
    ) -> list[AuditEvent]:
        """Read events back from the audit file, optionally filtered."""
        path = Path(self.config.file_path)
        if not path.exists():
            return []

        async with self._lock:
            raw = await asyncio.to_thread(path.read_text)
        events: list[AuditEvent] = []
        for line_no, line in enumerate(raw.strip().splitlines(), start=1):
            try:
                evt = AuditEvent.model_validate_json(line)
            except ValidationError:
                logger.warning(
                    "Skipping malformed audit event line %d in %s",
                    line_no,
                    path,
                )
                continue
            if event_type is not None and evt.event_type != event_type:
                continue
            if since is not None and evt.timestamp < since:
                continue
            if chunk_id is not None and evt.payload.get("chunk_id") != chunk_id:
                continue
            events.append(evt)
        return events
