"""Monitoring: Prometheus metrics for provider calls and sync runs."""

from staffsync.monitoring.metrics import SyncMetrics

__all__ = ["SyncMetrics"]
