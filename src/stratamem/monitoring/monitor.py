"""Threshold and trend monitoring of buckets and storage providers.

The monitor works on snapshots: ``register_buckets`` and
``register_providers`` copy the given mappings, and nothing is discovered
later on.  Callers re-register whenever topology changes.

Every check is isolated; an exception inside a check becomes a ``system``
alert instead of reaching the caller or killing the polling task.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections import deque
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from contextlib import suppress
from typing import Any

from pydantic import BaseModel

from stratamem.buckets import Bucket
from stratamem.config import MonitorConfig
from stratamem.models.alerts import Alert
from stratamem.models.alerts import AlertSeverity
from stratamem.models.alerts import AlertType
from stratamem.models.storage import StorageQuota
from stratamem.models.storage import StorageTier
from stratamem.observability import track_latency
from stratamem.storage import StorageProvider

logger = logging.getLogger(__name__)

_CRITICAL_USAGE_PERCENT = 95.0

AlertCallback = Callable[[Alert], Awaitable[None] | None]


# ---------------------------------------------------------------------------
# Stats models
# ---------------------------------------------------------------------------


class BucketStats(BaseModel):
    id: str
    name: str
    domain: str
    chunk_count: int
    estimated_size_mb: float


class ProviderStats(BaseModel):
    id: str
    name: str
    tier: StorageTier
    quota: StorageQuota
    usage_percent: float


class DomainStats(BaseModel):
    domain: str
    chunk_count: int
    estimated_size_mb: float


class TotalStats(BaseModel):
    chunk_count: int
    estimated_size_mb: float
    available_storage_mb: float


class MemoryStats(BaseModel):
    """Usage across the registered buckets and connected providers."""

    buckets: list[BucketStats]
    providers: list[ProviderStats]
    domains: list[DomainStats]
    totals: TotalStats


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------


class ResourceMonitor:
    """Polls registered buckets and providers and raises alerts."""

    def __init__(
        self,
        config: MonitorConfig | None = None,
        *,
        alert_callback: AlertCallback | None = None,
    ) -> None:
        self.config = config or MonitorConfig()
        self._alert_callback = alert_callback
        self._buckets: dict[str, Bucket] = {}
        self._providers: dict[str, StorageProvider] = {}
        self._alerts: deque[Alert] = deque(maxlen=self.config.max_alerts)
        self._bucket_history: dict[str, deque[float]] = {}
        self._provider_history: dict[str, deque[StorageQuota]] = {}
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_buckets(self, buckets: Mapping[str, Bucket]) -> None:
        self._buckets = dict(buckets)
        for bucket_id in self._buckets:
            self._bucket_history.setdefault(bucket_id, deque(maxlen=self.config.history_size))

    def register_providers(self, providers: Mapping[str, StorageProvider]) -> None:
        self._providers = dict(providers)
        for provider_id in self._providers:
            self._provider_history.setdefault(
                provider_id, deque(maxlen=self.config.history_size)
            )

    def bucket_history(self, bucket_id: str) -> list[float]:
        return list(self._bucket_history.get(bucket_id, ()))

    def provider_history(self, provider_id: str) -> list[StorageQuota]:
        return list(self._provider_history.get(provider_id, ()))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Run one check now, then keep checking every ``interval_seconds``."""
        if self.is_running:
            return
        await self.check_now()
        self._task = asyncio.create_task(self._run(), name="stratamem-monitor")
        logger.info("Resource monitoring started (interval=%ss)", self.config.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("Resource monitoring stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.config.interval_seconds)
            await self.check_now()

    async def check_now(self) -> None:
        """Run every check once over snapshots of the registered collections."""
        buckets = dict(self._buckets)
        providers = dict(self._providers)
        with track_latency("monitor.check"):
            await self._guarded("bucket-size", self._check_bucket_sizes(buckets))
            await self._guarded("provider-capacity", self._check_provider_capacities(providers))
            await self._guarded("domain-growth", self._check_domain_growth(buckets))

    async def _guarded(self, name: str, check: Awaitable[None]) -> None:
        try:
            await check
        except Exception as exc:
            logger.exception("Monitoring check %s failed", name)
            await self._raise_alert(
                AlertType.system,
                AlertSeverity.warning,
                "Error monitoring memory usage",
                {"check": name, "error": str(exc)},
            )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _estimate_mb(self, chunk_count: int) -> float:
        return chunk_count * self.config.average_chunk_size_kb / 1000

    async def _check_bucket_sizes(self, buckets: Mapping[str, Bucket]) -> None:
        threshold = self.config.bucket_size_threshold_mb
        for bucket_id, bucket in buckets.items():
            chunk_count = bucket.get_chunk_count(recursive=True)
            size_mb = self._estimate_mb(chunk_count)
            self._bucket_history.setdefault(
                bucket_id, deque(maxlen=self.config.history_size)
            ).append(size_mb)

            if size_mb <= threshold:
                continue
            severity = AlertSeverity.critical if size_mb > threshold * 2 else AlertSeverity.warning
            await self._raise_alert(
                AlertType.bucket_size,
                severity,
                f'Bucket "{bucket.name}" ({bucket.domain}) exceeds size threshold',
                {
                    "bucket_id": bucket_id,
                    "bucket_name": bucket.name,
                    "bucket_domain": bucket.domain,
                    "chunk_count": chunk_count,
                    "estimated_size_mb": size_mb,
                    "threshold_mb": threshold,
                },
            )

    async def _check_provider_capacities(self, providers: Mapping[str, StorageProvider]) -> None:
        threshold = self.config.provider_capacity_threshold_percent
        for provider_id, provider in providers.items():
            if not await provider.is_connected():
                continue
            quota = await provider.get_quota()
            self._provider_history.setdefault(
                provider_id, deque(maxlen=self.config.history_size)
            ).append(quota)

            usage = quota.usage_percent
            if usage <= threshold:
                continue
            severity = (
                AlertSeverity.critical
                if usage > _CRITICAL_USAGE_PERCENT
                else AlertSeverity.warning
            )
            await self._raise_alert(
                AlertType.provider_capacity,
                severity,
                f'Storage provider "{provider.name}" exceeds capacity threshold',
                {
                    "provider_id": provider_id,
                    "provider_name": provider.name,
                    "provider_tier": int(provider.tier),
                    "usage_percent": usage,
                    "used_bytes": quota.used,
                    "total_bytes": quota.total,
                    "available_bytes": quota.available,
                    "threshold_percent": threshold,
                },
            )

    async def _check_domain_growth(self, buckets: Mapping[str, Bucket]) -> None:
        threshold = self.config.domain_growth_threshold_percent
        by_domain: dict[str, list[tuple[str, Bucket]]] = defaultdict(list)
        for bucket_id, bucket in buckets.items():
            by_domain[bucket.domain].append((bucket_id, bucket))

        for domain, members in by_domain.items():
            current = sum(
                self._estimate_mb(bucket.get_chunk_count(recursive=True)) for _, bucket in members
            )
            previous = 0.0
            for bucket_id, _ in members:
                history = self._bucket_history.get(bucket_id)
                if history and len(history) >= 2:
                    previous += history[-2]
            if previous <= 0:
                continue

            growth = (current - previous) / previous * 100
            if growth <= threshold:
                continue
            severity = AlertSeverity.warning if growth > threshold * 2 else AlertSeverity.info
            await self._raise_alert(
                AlertType.domain_growth,
                severity,
                f'Domain "{domain}" is growing rapidly',
                {
                    "domain": domain,
                    "current_size_mb": current,
                    "previous_size_mb": previous,
                    "growth_percent": growth,
                    "bucket_count": len(members),
                    "threshold_percent": threshold,
                },
            )

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def _raise_alert(
        self,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
        details: dict[str, Any],
    ) -> Alert:
        alert = Alert(type=alert_type, severity=severity, message=message, details=details)
        self._alerts.append(alert)
        if self._alert_callback is not None:
            try:
                outcome = self._alert_callback(alert)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Alert callback failed for %s", alert.id)
        return alert

    def get_alerts(self, include_acknowledged: bool = False) -> list[Alert]:
        if include_acknowledged:
            return list(self._alerts)
        return [alert for alert in self._alerts if not alert.acknowledged]

    def acknowledge_alert(self, alert_id: str) -> bool:
        for alert in self._alerts:
            if alert.id == alert_id:
                alert.acknowledged = True
                return True
        return False

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def get_memory_stats(self) -> MemoryStats:
        bucket_stats: list[BucketStats] = []
        domains: dict[str, DomainStats] = {}
        for bucket_id, bucket in dict(self._buckets).items():
            chunk_count = bucket.get_chunk_count(recursive=True)
            size_mb = self._estimate_mb(chunk_count)
            bucket_stats.append(
                BucketStats(
                    id=bucket_id,
                    name=bucket.name,
                    domain=bucket.domain,
                    chunk_count=chunk_count,
                    estimated_size_mb=size_mb,
                )
            )
            entry = domains.setdefault(
                bucket.domain,
                DomainStats(domain=bucket.domain, chunk_count=0, estimated_size_mb=0.0),
            )
            entry.chunk_count += chunk_count
            entry.estimated_size_mb += size_mb

        provider_stats: list[ProviderStats] = []
        available_bytes = 0
        for provider_id, provider in dict(self._providers).items():
            if not await provider.is_connected():
                continue
            quota = await provider.get_quota()
            provider_stats.append(
                ProviderStats(
                    id=provider_id,
                    name=provider.name,
                    tier=provider.tier,
                    quota=quota,
                    usage_percent=quota.usage_percent,
                )
            )
            available_bytes += max(quota.available, 0)

        return MemoryStats(
            buckets=bucket_stats,
            providers=provider_stats,
            domains=list(domains.values()),
            totals=TotalStats(
                chunk_count=sum(s.chunk_count for s in bucket_stats),
                estimated_size_mb=sum(s.estimated_size_mb for s in bucket_stats),
                available_storage_mb=available_bytes / (1024 * 1024),
            ),
        )
