"""
ShopifyGraphQLClient - Async transport for the Admin GraphQL API.

Handles:
- One POST per call with the shop's access token
- Mapping of HTTP/transport failures onto the service error taxonomy
- Rate-limit snapshots from the call-limit header and query cost extensions
- Per-call metrics for the performance monitor

Retries and circuit breaking live one level up (see retry.py); a client call
is exactly one upstream attempt.
"""

import asyncio
import time
from typing import Any

import httpx
from loguru import logger

from shopql.events import categorize_error, log_query, log_rate_limit, log_response
from shopql.graphql.types import ShopCredentials
from shopql.monitoring.metrics import PerformanceMonitor, RateLimitSnapshot
from shopql.services.errors import (
    AuthError,
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
    ServiceUnavailableError,
    TransportError,
    UnknownResourceError,
    UpstreamHTTPError,
)
from shopql.settings import Settings, global_settings

CALL_LIMIT_HEADER = "X-Shopify-Shop-Api-Call-Limit"


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def parse_call_limit(value: str | None) -> tuple[int | None, int | None]:
    """'32/40' -> (32, 40)"""
    if not value or "/" not in value:
        return None, None
    made, _, limit = value.partition("/")
    try:
        return int(made), int(limit)
    except ValueError:
        return None, None


def raise_for_status(response: httpx.Response, operation: str) -> None:
    """Map a non-2xx upstream response to a ServiceError."""
    status = response.status_code
    if 200 <= status < 300:
        return

    if status == 401:
        raise AuthError(
            "Authentication failed: invalid or expired access token",
            service_id=operation,
        )
    if status == 404:
        raise UnknownResourceError(f"Shopify returned HTTP 404 for {operation}", service_id=operation)
    if status == 429:
        raise RateLimitError(operation, parse_retry_after(response.headers.get("Retry-After")))
    if status >= 500:
        raise ServiceUnavailableError(
            f"Shopify server error: HTTP {status}", status_code=status, service_id=operation
        )
    raise UpstreamHTTPError(
        f"HTTP {status}: {response.text[:200]}", status_code=status, service_id=operation
    )


class ShopifyGraphQLClient:
    """
    One-attempt GraphQL client.

    Usage:
        async with ShopifyGraphQLClient() as client:
            payload = await client.execute(credentials, query, operation="products")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        monitor: PerformanceMonitor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings or global_settings
        self.monitor = monitor or PerformanceMonitor(self._settings)
        self._transport = transport
        self._timeout = httpx.Timeout(
            self._settings.request_timeout, connect=self._settings.connect_timeout
        )

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http_client

    async def execute(
        self,
        credentials: ShopCredentials,
        query: str,
        operation: str = "query",
        record_metrics: bool = True,
    ) -> dict[str, Any]:
        """
        Run one GraphQL document and return the decoded JSON payload.

        A payload carrying ``errors`` is returned as-is; turning it into an
        error is the normalizer's job.

        Raises:
            AuthError, RateLimitError, UnknownResourceError, UpstreamHTTPError,
            ServiceUnavailableError, RequestTimeoutError, TransportError
        """
        log_query(operation, query, credentials.shop_domain, self._settings)
        started = time.perf_counter()
        status_code: int | None = None

        try:
            response = await self._send(credentials, query, operation)
            status_code = response.status_code
            header_counts = self._track_rate_limit(credentials.shop_domain, response)
            raise_for_status(response, operation)
            payload = self._decode(response, operation)
        except ServiceError as e:
            if record_metrics:
                self._record(credentials, operation, started, False, status_code, e)
            raise

        self._track_query_cost(credentials.shop_domain, payload, header_counts)
        elapsed = time.perf_counter() - started
        log_response(operation, status_code, payload, elapsed)
        if record_metrics:
            self._record(credentials, operation, started, not payload.get("errors"), status_code)
        return payload

    async def _send(
        self, credentials: ShopCredentials, query: str, operation: str
    ) -> httpx.Response:
        client = await self._get_http_client()
        try:
            # httpx times each phase separately; this bounds the whole attempt
            return await asyncio.wait_for(
                client.post(
                    credentials.graphql_url,
                    json={"query": query},
                    headers={
                        "X-Shopify-Access-Token": credentials.access_token,
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                    },
                ),
                timeout=self._settings.request_timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise RequestTimeoutError(operation, self._settings.request_timeout) from e
        except httpx.RequestError as e:
            raise TransportError(
                f"Network error calling Shopify: {type(e).__name__}: {e}",
                service_id=operation,
            ) from e

    @staticmethod
    def _decode(response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON from Shopify for {operation}", service_id=operation
            ) from e
        if not isinstance(payload, dict):
            raise TransportError(
                f"Unexpected response shape from Shopify for {operation}", service_id=operation
            )
        return payload

    def _record(
        self,
        credentials: ShopCredentials,
        operation: str,
        started: float,
        success: bool,
        status_code: int | None,
        error: BaseException | None = None,
    ) -> None:
        self.monitor.record(
            shop=credentials.shop_domain,
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            success=success,
            status_code=status_code,
            error_category=categorize_error(error) if error else None,
        )

    def _track_rate_limit(
        self, shop: str, response: httpx.Response
    ) -> tuple[int | None, int | None]:
        made, limit = parse_call_limit(response.headers.get(CALL_LIMIT_HEADER))
        if made is None:
            return None, None
        self.monitor.record_rate_limit(
            RateLimitSnapshot(shop=shop, calls_made=made, calls_limit=limit, timestamp=time.time())
        )
        log_rate_limit(shop, made, limit, self._settings.rate_limit_buffer)
        return made, limit

    def _track_query_cost(
        self,
        shop: str,
        payload: dict[str, Any],
        header_counts: tuple[int | None, int | None] = (None, None),
    ) -> None:
        cost = (payload.get("extensions") or {}).get("cost") or {}
        throttle = cost.get("throttleStatus") or {}
        if not throttle:
            return

        maximum = throttle.get("maximumAvailable")
        available = throttle.get("currentlyAvailable")
        if header_counts[0] is not None:
            made, limit = header_counts
        elif maximum is not None and available is not None:
            made, limit = int(maximum - available), int(maximum)
        else:
            made, limit = None, None

        self.monitor.record_rate_limit(
            RateLimitSnapshot(
                shop=shop,
                calls_made=made,
                calls_limit=limit,
                timestamp=time.time(),
                query_cost=cost.get("actualQueryCost", cost.get("requestedQueryCost")),
                currently_available=available,
                maximum_available=maximum,
                restore_rate=throttle.get("restoreRate"),
            )
        )
        if made is not None and header_counts[0] is None:
            log_rate_limit(shop, made, limit, self._settings.rate_limit_buffer)
        logger.debug(f"Query cost for {shop}: {cost.get('actualQueryCost')} ({available}/{maximum} available)")

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("ShopifyGraphQLClient closed")

    async def __aenter__(self) -> "ShopifyGraphQLClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
