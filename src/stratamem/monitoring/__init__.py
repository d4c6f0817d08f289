"""Monitoring domain: resource thresholds, trends and alerts."""

from stratamem.monitoring.monitor import AlertCallback
from stratamem.monitoring.monitor import BucketStats
from stratamem.monitoring.monitor import DomainStats
from stratamem.monitoring.monitor import MemoryStats
from stratamem.monitoring.monitor import ProviderStats
from stratamem.monitoring.monitor import ResourceMonitor
from stratamem.monitoring.monitor import TotalStats

__all__ = [
    "AlertCallback",
    "BucketStats",
    "DomainStats",
    "MemoryStats",
    "ProviderStats",
    "ResourceMonitor",
    "TotalStats",
]
