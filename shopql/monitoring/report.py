"""
Combined monitoring report: health check, performance metrics, cache stats
and the recommendations derived from them.
"""

from datetime import datetime, timezone
from typing import Any

from shopql.graphql.types import ShopCredentials
from shopql.monitoring.health import HealthChecker, HealthStatus
from shopql.monitoring.metrics import PerformanceMonitor
from shopql.services.cache import ResponseCache
from shopql.settings import Settings, global_settings


def generate_recommendations(
    report: dict[str, Any], settings: Settings | None = None
) -> list[dict[str, str]]:
    settings = settings or global_settings
    recommendations: list[dict[str, str]] = []
    metrics = report.get("performance_metrics") or {}

    if (metrics.get("avg_response_time") or 0) > settings.slow_query_ms:
        recommendations.append(
            {
                "type": "performance",
                "priority": "high",
                "message": "Average response time is high. Consider implementing caching or optimizing queries.",
            }
        )

    if (metrics.get("error_rate") or 0) > settings.error_rate_threshold:
        recommendations.append(
            {
                "type": "reliability",
                "priority": "high",
                "message": "Error rate is elevated. Review error logs and implement retry logic.",
            }
        )

    if not (report.get("cache_stats") or {}).get("enabled", False):
        recommendations.append(
            {
                "type": "performance",
                "priority": "medium",
                "message": "Enable caching to improve response times and reduce API calls.",
            }
        )

    overall = (report.get("health_check") or {}).get("overall_status")
    if overall is not None and overall != HealthStatus.HEALTHY.value:
        recommendations.append(
            {
                "type": "health",
                "priority": "high",
                "message": "Health checks indicate issues. Review individual check results.",
            }
        )

    return recommendations


async def generate_report(
    credentials: ShopCredentials,
    checker: HealthChecker,
    monitor: PerformanceMonitor,
    cache: ResponseCache,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Build the full operator report for one shop."""
    report: dict[str, Any] = {
        "shop_domain": credentials.shop_domain,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "health_check": await checker.check(credentials),
        "performance_metrics": monitor.summary(credentials.shop_domain),
        "cache_stats": cache.get_stats(),
    }
    report["recommendations"] = generate_recommendations(report, settings)
    return report
