"""
HealthChecker - Operator-facing diagnostics for one shop.

Checks, each reporting healthy / warning / critical:
- configuration: required credentials, domain, api version, token shape
- connectivity: schema probe round trip and latency
- authentication: shop probe with the configured token
- rate_limits: latest call-limit snapshot
- circuit_breakers: open breakers
- cache: store write/read/delete smoke test

The overall status is the worst individual status.
"""

import re
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from loguru import logger

from shopql.graphql.types import ShopCredentials
from shopql.services.cache import ResponseCache
from shopql.services.circuit_breaker import CircuitBreakerRegistry
from shopql.services.client import ShopifyGraphQLClient
from shopql.services.errors import (
    AuthError,
    ServiceError,
    ServiceUnavailableError,
    TransportError,
    UpstreamHTTPError,
)
from shopql.settings import Settings, global_settings

CONNECTIVITY_PROBE = "{ __schema { queryType { name } } }"
AUTH_PROBE = "{ shop { name plan { displayName } } }"

MYSHOPIFY_DOMAIN = re.compile(r"^[a-zA-Z0-9\-]+\.myshopify\.com$")
CUSTOM_DOMAIN = re.compile(r"^[a-zA-Z0-9\-]+\.[a-zA-Z]{2,}$")
API_VERSION = re.compile(r"^(\d{4})-(\d{2})$")

MIN_TOKEN_LENGTH = 20
DEFAULT_CALL_LIMIT = 40

# Breakers reported even before they have been used
CORE_OPERATIONS = ("products", "orders", "customers", "collections")


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.WARNING: 1, HealthStatus.CRITICAL: 2}


def worst(*statuses: HealthStatus) -> HealthStatus:
    return max(statuses, key=lambda s: _SEVERITY[s], default=HealthStatus.HEALTHY)


def validate_configuration(
    shop_domain: str | None,
    access_token: str | None,
    api_version: str | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Static checks on credentials; never touches the network."""
    status = HealthStatus.HEALTHY
    issues: list[str] = []
    recommendations: list[str] = []

    for name, value in (
        ("shop_domain", shop_domain),
        ("access_token", access_token),
        ("api_version", api_version),
    ):
        if not value:
            issues.append(f"Missing required field: {name}")
            status = HealthStatus.CRITICAL

    if shop_domain and not (MYSHOPIFY_DOMAIN.match(shop_domain) or CUSTOM_DOMAIN.match(shop_domain)):
        issues.append("Invalid shop domain format")
        status = HealthStatus.CRITICAL

    if api_version:
        match = API_VERSION.match(api_version)
        if not match:
            issues.append("Invalid API version format (expected: YYYY-MM)")
            status = worst(status, HealthStatus.WARNING)
        else:
            now = now or datetime.now(timezone.utc)
            year, month = int(match.group(1)), int(match.group(2))
            if (year, month) < (now.year - 2, now.month):
                recommendations.append("Consider upgrading to a newer API version")
                status = worst(status, HealthStatus.WARNING)

    if access_token and len(access_token) < MIN_TOKEN_LENGTH:
        issues.append("Access token appears to be invalid (too short)")
        status = HealthStatus.CRITICAL

    if not issues:
        recommendations.append("Configuration appears valid")

    return {"status": status.value, "issues": issues, "recommendations": recommendations}


class HealthChecker:
    """
    Runs the full health check for a shop.

    Usage:
        checker = HealthChecker(client, cache, breakers)
        report = await checker.check(credentials)
        report["overall_status"]  # "healthy" | "warning" | "critical"
    """

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        cache: ResponseCache,
        breakers: CircuitBreakerRegistry,
        settings: Settings | None = None,
    ):
        self._settings = settings or global_settings
        self.client = client
        self.cache = cache
        self.breakers = breakers

    async def check(self, credentials: ShopCredentials) -> dict[str, Any]:
        configuration = validate_configuration(
            credentials.shop_domain, credentials.access_token, credentials.api_version
        )

        if configuration["status"] == HealthStatus.CRITICAL.value:
            skipped = {
                "status": HealthStatus.CRITICAL.value,
                "issues": ["Skipped: configuration is invalid"],
            }
            connectivity, authentication = dict(skipped), dict(skipped)
        else:
            connectivity = await self.check_connectivity(credentials)
            authentication = await self.check_authentication(credentials)

        checks = {
            "configuration": configuration,
            "connectivity": connectivity,
            "authentication": authentication,
            "rate_limits": self.check_rate_limits(credentials.shop_domain),
            "circuit_breakers": await self.check_circuit_breakers(credentials.shop_domain),
            "cache": await self.check_cache(),
        }
        overall = worst(*(HealthStatus(c["status"]) for c in checks.values()))

        if overall != HealthStatus.HEALTHY:
            logger.warning(f"Health check for {credentials.shop_domain}: {overall.value}")

        return {
            "shop_domain": credentials.shop_domain,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "overall_status": overall.value,
            "checks": checks,
        }

    async def check_connectivity(self, credentials: ShopCredentials) -> dict[str, Any]:
        status = HealthStatus.HEALTHY
        issues: list[str] = []
        started = time.perf_counter()

        try:
            await self.client.execute(
                credentials, CONNECTIVITY_PROBE, "health.connectivity", record_metrics=False
            )
        except AuthError as e:
            issues.append(f"Authentication failed: HTTP {e.status_code}")
            status = HealthStatus.CRITICAL
        except ServiceUnavailableError as e:
            issues.append(f"Server error: HTTP {e.status_code}")
            status = HealthStatus.CRITICAL
        except TransportError as e:
            issues.append(f"Connection error: {e.message}")
            status = HealthStatus.CRITICAL
        except ServiceError as e:
            issues.append(f"Unexpected response: HTTP {e.status_code}")
            status = HealthStatus.WARNING

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        if elapsed_ms > self._settings.response_time_warning_ms:
            issues.append(f"Slow response time: {elapsed_ms}ms")
            status = worst(status, HealthStatus.WARNING)

        return {
            "status": status.value,
            "response_time_ms": elapsed_ms,
            "issues": issues,
            "last_checked": datetime.now(timezone.utc).isoformat(),
        }

    async def check_authentication(self, credentials: ShopCredentials) -> dict[str, Any]:
        status = HealthStatus.HEALTHY
        issues: list[str] = []
        shop: dict[str, Any] = {}

        try:
            payload = await self.client.execute(
                credentials, AUTH_PROBE, "health.authentication", record_metrics=False
            )
        except AuthError:
            issues.append("Invalid access token or expired credentials")
            status = HealthStatus.CRITICAL
        except UpstreamHTTPError as e:
            if e.status_code == 403:
                issues.append("Insufficient permissions for requested operations")
            else:
                issues.append(f"Authentication check failed: HTTP {e.status_code}")
            status = HealthStatus.CRITICAL
        except ServiceError as e:
            issues.append(f"Authentication check failed: {e.message}")
            status = HealthStatus.CRITICAL
        else:
            if payload.get("errors"):
                issues.append("Authentication query returned errors")
                status = HealthStatus.WARNING
            else:
                data = (payload.get("data") or {}).get("shop") or {}
                shop = {
                    "name": data.get("name"),
                    "plan": (data.get("plan") or {}).get("displayName"),
                }

        return {
            "status": status.value,
            "shop": shop,
            "issues": issues,
            "last_checked": datetime.now(timezone.utc).isoformat(),
        }

    def check_rate_limits(self, shop_domain: str) -> dict[str, Any]:
        status = HealthStatus.HEALTHY
        issues: list[str] = []
        snapshot = self.client.monitor.rate_limit(shop_domain)

        usage, limit, remaining = 0, DEFAULT_CALL_LIMIT, DEFAULT_CALL_LIMIT
        if snapshot and snapshot.remaining is not None:
            usage, limit, remaining = snapshot.calls_made, snapshot.calls_limit, snapshot.remaining
            if remaining <= 1:
                issues.append("Rate limit nearly exhausted")
                status = HealthStatus.CRITICAL
            elif remaining <= self._settings.rate_limit_buffer:
                issues.append("Approaching rate limit threshold")
                status = HealthStatus.WARNING

        return {
            "status": status.value,
            "current_usage": usage,
            "limit": limit,
            "remaining": remaining,
            "snapshot": snapshot.to_dict() if snapshot else None,
            "issues": issues,
        }

    async def check_circuit_breakers(self, shop_domain: str) -> dict[str, Any]:
        if self._settings.breaker_scope == "shop":
            names = [f"{shop_domain}:{op}" for op in CORE_OPERATIONS]
        else:
            names = list(CORE_OPERATIONS)
        statuses = await self.breakers.get_all_status(names)
        statuses.update(await self.breakers.get_all_status())

        open_circuits = [name for name, s in statuses.items() if not s["healthy"]]
        return {
            "status": (HealthStatus.WARNING if open_circuits else HealthStatus.HEALTHY).value,
            "circuit_breakers": statuses,
            "open_circuits": open_circuits,
            "issues": [f"Circuit open: {name}" for name in open_circuits],
        }

    async def check_cache(self) -> dict[str, Any]:
        status = HealthStatus.HEALTHY
        issues: list[str] = []

        try:
            if not await self.cache.smoke_test():
                issues.append("Cache read/write test failed")
                status = HealthStatus.CRITICAL
        except Exception as e:
            logger.warning(f"Cache health check failed: {e}")
            issues.append(f"Cache health check failed: {e}")
            status = HealthStatus.WARNING

        stats = self.cache.get_stats()
        return {
            "status": status.value,
            "enabled": self.cache.enabled,
            "hit_rate": stats["hit_rate"],
            "issues": issues,
        }
