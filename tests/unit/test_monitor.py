"""Unit tests for the resource monitor's checks, alert ring and stats."""

from __future__ import annotations

import asyncio

import pytest

from stratamem.config import MonitorConfig
from stratamem.models.alerts import AlertSeverity
from stratamem.models.alerts import AlertType
from stratamem.models.storage import StorageQuota
from stratamem.models.storage import StorageTier
from stratamem.monitoring import ResourceMonitor


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FakeBucket:
    """Bucket stand-in whose recursive chunk count is set directly."""

    def __init__(self, id: str, domain: str = "science", count: int = 0) -> None:
        self.id = id
        self.name = f"Bucket {id}"
        self.domain = domain
        self.count = count

    def get_chunk_count(self, recursive: bool = True) -> int:
        return self.count


class _BrokenBucket(_FakeBucket):
    def get_chunk_count(self, recursive: bool = True) -> int:
        raise RuntimeError("index unavailable")


class _FakeProvider:
    def __init__(
        self,
        id: str,
        used: int,
        total: int,
        *,
        connected: bool = True,
    ) -> None:
        self.id = id
        self.name = f"Provider {id}"
        self.tier = StorageTier.LOCAL
        self.used = used
        self.total = total
        self.connected = connected

    async def is_connected(self) -> bool:
        return self.connected

    async def get_quota(self) -> StorageQuota:
        return StorageQuota(used=self.used, total=self.total, available=self.total - self.used)


def _monitor(**overrides) -> ResourceMonitor:
    return ResourceMonitor(MonitorConfig(**overrides))


# ---------------------------------------------------------------------------
# Bucket size
# ---------------------------------------------------------------------------


class TestBucketSizeCheck:
    @pytest.mark.parametrize(
        ("count", "expected"),
        [
            (20_000, None),
            (20_001, AlertSeverity.warning),
            (40_000, AlertSeverity.warning),
            (40_001, AlertSeverity.critical),
        ],
    )
    async def test_thresholds(self, count, expected):
        monitor = _monitor()
        monitor.register_buckets({"b": _FakeBucket("b", count=count)})
        await monitor.check_now()

        alerts = [a for a in monitor.get_alerts() if a.type is AlertType.bucket_size]
        if expected is None:
            assert alerts == []
        else:
            assert [a.severity for a in alerts] == [expected]

    async def test_alert_details(self):
        monitor = _monitor()
        monitor.register_buckets({"b": _FakeBucket("b", count=20_001)})
        await monitor.check_now()

        alert = monitor.get_alerts()[0]
        assert alert.details["chunk_count"] == 20_001
        assert alert.details["estimated_size_mb"] == pytest.approx(100.005)
        assert alert.details["threshold_mb"] == 100.0

    async def test_history_is_bounded(self):
        monitor = _monitor(history_size=3)
        bucket = _FakeBucket("b", count=1000)
        monitor.register_buckets({"b": bucket})
        for _ in range(5):
            await monitor.check_now()
        assert monitor.bucket_history("b") == [5.0, 5.0, 5.0]


# ---------------------------------------------------------------------------
# Provider capacity
# ---------------------------------------------------------------------------


class TestProviderCapacityCheck:
    @pytest.mark.parametrize(
        ("used", "expected"),
        [
            (80, None),
            (81, AlertSeverity.warning),
            (95, AlertSeverity.warning),
            (96, AlertSeverity.critical),
        ],
    )
    async def test_thresholds(self, used, expected):
        monitor = _monitor()
        monitor.register_providers({"p": _FakeProvider("p", used=used, total=100)})
        await monitor.check_now()

        alerts = monitor.get_alerts()
        if expected is None:
            assert alerts == []
        else:
            assert [(a.type, a.severity) for a in alerts] == [
                (AlertType.provider_capacity, expected)
            ]

    async def test_zero_total_counts_as_empty(self):
        monitor = _monitor()
        monitor.register_providers({"p": _FakeProvider("p", used=0, total=0)})
        await monitor.check_now()
        assert monitor.get_alerts() == []

    async def test_disconnected_providers_are_skipped(self):
        monitor = _monitor()
        monitor.register_providers(
            {"p": _FakeProvider("p", used=99, total=100, connected=False)}
        )
        await monitor.check_now()
        assert monitor.get_alerts() == []
        assert monitor.provider_history("p") == []


# ---------------------------------------------------------------------------
# Domain growth
# ---------------------------------------------------------------------------


class TestDomainGrowthCheck:
    async def test_no_alert_without_previous_sample(self):
        monitor = _monitor()
        monitor.register_buckets({"b": _FakeBucket("b", count=100)})
        await monitor.check_now()
        assert monitor.get_alerts() == []

    @pytest.mark.parametrize(
        ("after", "expected"),
        [
            (150, None),
            (160, AlertSeverity.info),
            (200, AlertSeverity.info),
            (210, AlertSeverity.warning),
        ],
    )
    async def test_growth_thresholds(self, after, expected):
        monitor = _monitor()
        bucket = _FakeBucket("b", count=100)
        monitor.register_buckets({"b": bucket})
        await monitor.check_now()
        bucket.count = after
        await monitor.check_now()

        alerts = [a for a in monitor.get_alerts() if a.type is AlertType.domain_growth]
        if expected is None:
            assert alerts == []
        else:
            assert [a.severity for a in alerts] == [expected]
            assert alerts[0].details["domain"] == "science"

    async def test_aggregates_buckets_per_domain(self):
        monitor = _monitor()
        a = _FakeBucket("a", domain="shared", count=100)
        b = _FakeBucket("b", domain="shared", count=100)
        monitor.register_buckets({"a": a, "b": b})
        await monitor.check_now()
        a.count = 250
        await monitor.check_now()

        alerts = [x for x in monitor.get_alerts() if x.type is AlertType.domain_growth]
        assert len(alerts) == 1
        assert alerts[0].details["growth_percent"] == pytest.approx(75.0)
        assert alerts[0].details["bucket_count"] == 2
        assert alerts[0].severity is AlertSeverity.info


# ---------------------------------------------------------------------------
# Failure isolation and alert ring
# ---------------------------------------------------------------------------


class TestFailureIsolation:
    async def test_check_exception_becomes_system_alert(self):
        monitor = _monitor()
        monitor.register_buckets({"bad": _BrokenBucket("bad")})
        monitor.register_providers({"p": _FakeProvider("p", used=99, total=100)})
        await monitor.check_now()

        types = [a.type for a in monitor.get_alerts()]
        assert AlertType.system in types
        assert AlertType.provider_capacity in types
        system = next(a for a in monitor.get_alerts() if a.type is AlertType.system)
        assert system.severity is AlertSeverity.warning
        assert system.details["error"] == "index unavailable"

    async def test_callback_errors_are_contained(self):
        def broken(alert):
            raise RuntimeError("sink down")

        monitor = ResourceMonitor(MonitorConfig(), alert_callback=broken)
        monitor.register_buckets({"b": _FakeBucket("b", count=40_001)})
        await monitor.check_now()
        assert len(monitor.get_alerts()) == 1

    async def test_async_callback_is_awaited(self):
        received = []

        async def sink(alert):
            received.append(alert)

        monitor = ResourceMonitor(MonitorConfig(), alert_callback=sink)
        monitor.register_buckets({"b": _FakeBucket("b", count=40_001)})
        await monitor.check_now()
        assert len(received) == 1


class TestAlertRing:
    async def test_retains_newest_alerts(self):
        monitor = _monitor(max_alerts=100)
        monitor.register_providers({"p": _FakeProvider("p", used=99, total=100)})
        for _ in range(105):
            await monitor.check_now()

        alerts = monitor.get_alerts(include_acknowledged=True)
        assert len(alerts) == 100

    async def test_oldest_evicted_first(self):
        monitor = _monitor(max_alerts=2)
        monitor.register_providers({"p": _FakeProvider("p", used=99, total=100)})
        await monitor.check_now()
        first = monitor.get_alerts()[0]
        await monitor.check_now()
        await monitor.check_now()
        assert first.id not in {a.id for a in monitor.get_alerts()}

    async def test_acknowledge(self):
        monitor = _monitor()
        monitor.register_providers({"p": _FakeProvider("p", used=99, total=100)})
        await monitor.check_now()
        alert = monitor.get_alerts()[0]

        assert monitor.acknowledge_alert(alert.id) is True
        assert monitor.get_alerts() == []
        assert monitor.get_alerts(include_acknowledged=True)[0].acknowledged is True
        assert monitor.acknowledge_alert("alert_missing") is False


# ---------------------------------------------------------------------------
# Lifecycle and stats
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_start_runs_immediate_check(self):
        monitor = _monitor(interval_seconds=3600)
        monitor.register_buckets({"b": _FakeBucket("b", count=40_001)})
        await monitor.start()
        try:
            assert monitor.is_running
            assert len(monitor.get_alerts()) == 1
        finally:
            await monitor.stop()
        assert not monitor.is_running

    async def test_periodic_checks(self):
        monitor = _monitor(interval_seconds=0.01)
        bucket = _FakeBucket("b", count=10)
        monitor.register_buckets({"b": bucket})
        await monitor.start()
        try:
            await asyncio.sleep(0.1)
        finally:
            await monitor.stop()
        assert len(monitor.bucket_history("b")) >= 2

    async def test_stop_without_start(self):
        await _monitor().stop()

    async def test_registration_is_a_snapshot(self):
        monitor = _monitor()
        buckets = {"b": _FakeBucket("b", count=40_001)}
        monitor.register_buckets(buckets)
        buckets["late"] = _FakeBucket("late", count=40_001)
        await monitor.check_now()
        assert len(monitor.get_alerts()) == 1


class TestMemoryStats:
    async def test_aggregates(self):
        monitor = _monitor()
        monitor.register_buckets(
            {
                "a": _FakeBucket("a", domain="x", count=1000),
                "b": _FakeBucket("b", domain="x", count=1000),
                "c": _FakeBucket("c", domain="y", count=200),
            }
        )
        monitor.register_providers(
            {
                "p": _FakeProvider("p", used=0, total=1024 * 1024),
                "off": _FakeProvider("off", used=0, total=1024 * 1024, connected=False),
            }
        )
        stats = await monitor.get_memory_stats()

        assert stats.totals.chunk_count == 2200
        assert stats.totals.estimated_size_mb == pytest.approx(11.0)
        assert stats.totals.available_storage_mb == pytest.approx(1.0)
        assert [p.id for p in stats.providers] == ["p"]
        domains = {d.domain: d for d in stats.domains}
        assert domains["x"].chunk_count == 2000
        assert domains["y"].estimated_size_mb == pytest.approx(1.0)
