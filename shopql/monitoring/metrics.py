"""
PerformanceMonitor - Rolling window of upstream call metrics.

Every upstream call records one sample (operation, latency, outcome). The
summary covers the last ``window`` seconds: totals, average latency, error
rate in percent and a per-operation breakdown.
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from shopql.services.store import Clock
from shopql.settings import Settings, global_settings


@dataclass
class QueryMetric:
    """One upstream call."""

    shop: str
    operation: str
    duration_ms: float
    success: bool
    timestamp: float
    status_code: int | None = None
    error_category: str | None = None


@dataclass
class RateLimitSnapshot:
    """Latest known rate-limit budget for a shop."""

    shop: str
    calls_made: int | None
    calls_limit: int | None
    timestamp: float
    query_cost: float | None = None
    currently_available: float | None = None
    maximum_available: float | None = None
    restore_rate: float | None = None

    @property
    def remaining(self) -> int | None:
        if self.calls_made is None or self.calls_limit is None:
            return None
        return self.calls_limit - self.calls_made

    def to_dict(self) -> dict[str, Any]:
        return {
            "calls_made": self.calls_made,
            "calls_limit": self.calls_limit,
            "calls_remaining": self.remaining,
            "query_cost": self.query_cost,
            "currently_available": self.currently_available,
            "maximum_available": self.maximum_available,
            "restore_rate": self.restore_rate,
            "timestamp": self.timestamp,
        }


class PerformanceMonitor:
    """
    In-process metrics over a rolling window.

    Usage:
        monitor = PerformanceMonitor()
        monitor.record("shop.myshopify.com", "products", 123.4, success=True)
        summary = monitor.summary("shop.myshopify.com")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        clock: Clock | None = None,
        max_samples: int = 10000,
    ):
        settings = settings or global_settings
        self.window = settings.metrics_window
        self.slow_query_ms = settings.slow_query_ms
        self._clock = clock or time.time
        self._samples: deque[QueryMetric] = deque(maxlen=max_samples)
        self._rate_limits: dict[str, RateLimitSnapshot] = {}

    def record(
        self,
        shop: str,
        operation: str,
        duration_ms: float,
        success: bool,
        status_code: int | None = None,
        error_category: str | None = None,
    ) -> QueryMetric:
        metric = QueryMetric(
            shop=shop,
            operation=operation,
            duration_ms=duration_ms,
            success=success,
            timestamp=self._clock(),
            status_code=status_code,
            error_category=error_category,
        )
        self._samples.append(metric)
        return metric

    def record_rate_limit(self, snapshot: RateLimitSnapshot) -> None:
        self._rate_limits[snapshot.shop] = snapshot

    def rate_limit(self, shop: str) -> RateLimitSnapshot | None:
        return self._rate_limits.get(shop)

    def _prune(self) -> None:
        cutoff = self._clock() - self.window
        while self._samples and self._samples[0].timestamp < cutoff:
            self._samples.popleft()

    def samples(self, shop: str | None = None) -> list[QueryMetric]:
        self._prune()
        return [m for m in self._samples if shop is None or m.shop == shop]

    def summary(self, shop: str | None = None) -> dict[str, Any]:
        """Aggregate metrics for the window, optionally for a single shop."""
        samples = self.samples(shop)
        total = len(samples)

        operations: dict[str, dict[str, Any]] = {}
        categories: dict[str, int] = {}
        for metric in samples:
            stats = operations.setdefault(
                metric.operation, {"count": 0, "total_time_ms": 0.0, "errors": 0}
            )
            stats["count"] += 1
            stats["total_time_ms"] += metric.duration_ms
            if not metric.success:
                stats["errors"] += 1
                category = metric.error_category or "GENERAL"
                categories[category] = categories.get(category, 0) + 1

        errors = sum(stats["errors"] for stats in operations.values())
        total_time = sum(stats["total_time_ms"] for stats in operations.values())

        return {
            "shop": shop,
            "time_window": self.window,
            "total_requests": total,
            "avg_response_time": round(total_time / total, 2) if total else 0.0,
            "error_rate": round(errors / total * 100, 2) if total else 0.0,
            "slow_requests": sum(1 for m in samples if m.duration_ms > self.slow_query_ms),
            "errors_by_category": categories,
            "operations": {
                name: {
                    "count": stats["count"],
                    "avg_response_time": round(stats["total_time_ms"] / stats["count"], 2),
                    "error_rate": round(stats["errors"] / stats["count"] * 100, 2),
                }
                for name, stats in sorted(operations.items())
            },
        }

    def reset(self) -> None:
        self._samples.clear()
        self._rate_limits.clear()
