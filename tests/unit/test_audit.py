"""Unit tests for the audit logger."""

from __future__ import annotations

import json
from pathlib import Path

from stratamem.audit import AuditEvent
from stratamem.audit import AuditEventType
from stratamem.audit import AuditLogger
from stratamem.config import AuditConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_event(
    event_type: AuditEventType = AuditEventType.CHUNK_STORED,
    timestamp: float = 1000.0,
    payload: dict | None = None,
) -> AuditEvent:
    return AuditEvent(
        timestamp=timestamp,
        event_type=event_type,
        payload=payload or {},
    )


def _config(tmp_path: Path, *, enabled: bool = True) -> AuditConfig:
    return AuditConfig(file_path=str(tmp_path / "logs" / "audit.jsonl"), enabled=enabled)


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------


class TestAuditLogWrite:
    async def test_log_event_writes_jsonl_line(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        await logger.log(_make_event(payload={"chunk_id": "chunk_1"}))

        lines = Path(logger.config.file_path).read_text().strip().splitlines()
        assert len(lines) == 1
        data = json.loads(lines[0])
        assert data["event_type"] == "CHUNK_STORED"
        assert data["payload"] == {"chunk_id": "chunk_1"}

    async def test_record_shorthand(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        await logger.record(AuditEventType.CHUNK_DELETED, chunk_id="chunk_9", provider_id="p")

        events = await logger.read_events()
        assert events[0].event_type == AuditEventType.CHUNK_DELETED
        assert events[0].payload == {"chunk_id": "chunk_9", "provider_id": "p"}

    async def test_creates_parent_directory(self, tmp_path: Path):
        cfg = _config(tmp_path)
        assert not Path(cfg.file_path).parent.exists()

        await AuditLogger(cfg).log(_make_event())
        assert Path(cfg.file_path).exists()

    async def test_disabled_audit_does_not_write(self, tmp_path: Path):
        cfg = _config(tmp_path, enabled=False)
        await AuditLogger(cfg).log(_make_event())
        assert not Path(cfg.file_path).exists()

    async def test_write_failure_is_dropped(self, tmp_path: Path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        cfg = AuditConfig(file_path=str(blocker / "audit.jsonl"))

        await AuditLogger(cfg).log(_make_event())


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


class TestAuditLogRead:
    async def test_filter_by_type(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        await logger.log(_make_event(event_type=AuditEventType.CHUNK_STORED, timestamp=1.0))
        await logger.log(_make_event(event_type=AuditEventType.ALERT_RAISED, timestamp=2.0))
        await logger.log(_make_event(event_type=AuditEventType.CHUNK_STORED, timestamp=3.0))

        events = await logger.read_events(event_type=AuditEventType.CHUNK_STORED)
        assert [e.timestamp for e in events] == [1.0, 3.0]

    async def test_filter_by_since(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        for ts in (100.0, 200.0, 300.0):
            await logger.log(_make_event(timestamp=ts))

        events = await logger.read_events(since=200.0)
        assert [e.timestamp for e in events] == [200.0, 300.0]

    async def test_filter_by_chunk_id(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        await logger.log(_make_event(payload={"chunk_id": "a"}))
        await logger.log(_make_event(payload={"chunk_id": "b"}))

        events = await logger.read_events(chunk_id="b")
        assert [e.payload["chunk_id"] for e in events] == ["b"]

    async def test_skips_malformed_lines(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        await logger.log(_make_event())
        with open(logger.config.file_path, "a") as fh:
            fh.write("{broken\n")
        await logger.log(_make_event())

        assert len(await logger.read_events()) == 2

    async def test_empty_when_no_file(self, tmp_path: Path):
        assert await AuditLogger(_config(tmp_path)).read_events() == []
