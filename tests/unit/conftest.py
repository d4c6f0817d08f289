"""Unit test fixtures: in-process manager wiring and the FastMCP client."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastmcp import Client

from stratamem.config import AuditConfig
from stratamem.config import EmbeddingConfig
from stratamem.observability import reset_latency_metrics

TEST_DIMENSION = 32


@pytest.fixture()
def audit_config(tmp_path: Path) -> AuditConfig:
    return AuditConfig(file_path=str(tmp_path / "audit.jsonl"))


@pytest.fixture()
async def mcp_client(audit_config):
    """Yield a FastMCP Client wired to a freshly configured StrataMem server."""
    from stratamem.server import configure
    from stratamem.server import mcp
    from stratamem.server import shutdown

    await configure(
        embedding_config=EmbeddingConfig(provider="hashing", dimension=TEST_DIMENSION),
        audit_config=audit_config,
    )

    async with Client(mcp) as client:
        yield client

    await shutdown()


@pytest.fixture(autouse=True)
def clean_latency_metrics():
    """Reset process-wide latency aggregates between tests."""
    reset_latency_metrics()
    yield
    reset_latency_metrics()
