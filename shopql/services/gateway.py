"""
ResourceGateway - REST-style reads over the GraphQL API.

Flow for one request:
1. Validate input and translate filters (nothing bad is sent upstream)
2. Plan and render the query
3. Serve from cache when fresh
4. Otherwise execute with retry + circuit breaker, normalize, cache, return
"""

import asyncio
from typing import Any

from loguru import logger

from shopql.events import log_error
from shopql.graphql.filters import translate
from shopql.graphql.ids import to_global_id
from shopql.graphql.normalizer import normalize
from shopql.graphql.query_builder import build_query, plan_query
from shopql.graphql.types import QueryMode, ResourceKind, ResourceRequest, ShopCredentials
from shopql.services.cache import ResponseCache
from shopql.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from shopql.services.client import ShopifyGraphQLClient
from shopql.services.errors import ServiceError, ValidationError
from shopql.services.retry import RetryConfig, Sleep, execute_with_retry
from shopql.services.store import Clock, InMemoryStore, KeyValueStore
from shopql.settings import Settings, global_settings


class ResourceGateway:
    """
    Read-only REST facade.

    Usage:
        gateway = ResourceGateway.from_settings()
        result = await gateway.fetch(
            ResourceRequest(resource="products", limit=2, filter="vendor='Nike'"),
            credentials,
        )
        # {"resource": [...], "meta": {"has_next_page": ..., ...}}
    """

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        cache: ResponseCache,
        breakers: CircuitBreakerRegistry,
        settings: Settings | None = None,
        retry_config: RetryConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._settings = settings or global_settings
        self.client = client
        self.cache = cache
        self.breakers = breakers
        self.retry_config = retry_config or RetryConfig(
            max_attempts=self._settings.retry_max_attempts,
            base_delay=self._settings.retry_base_delay,
            max_delay=self._settings.retry_max_delay,
            exponential_base=self._settings.retry_exponential_base,
            jitter=self._settings.retry_jitter,
        )
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        store: KeyValueStore | None = None,
        client: ShopifyGraphQLClient | None = None,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> "ResourceGateway":
        """Wire a gateway whose cache and breakers share one store."""
        settings = settings or global_settings
        # An empty InMemoryStore is falsy
        if store is None:
            store = InMemoryStore(clock=clock)
        breakers = CircuitBreakerRegistry(
            store,
            CircuitBreakerConfig(
                failure_threshold=settings.breaker_failure_threshold,
                success_threshold=settings.breaker_success_threshold,
                timeout=settings.breaker_timeout,
                window=settings.breaker_window,
            ),
            clock=clock,
        )
        return cls(
            client=client or ShopifyGraphQLClient(settings),
            cache=ResponseCache(store, settings, clock=clock),
            breakers=breakers,
            settings=settings,
            sleep=sleep,
        )

    def breaker_name(self, shop: str, operation: str) -> str:
        if self._settings.breaker_scope == "shop":
            return f"{shop}:{operation}"
        return operation

    async def fetch(self, request: ResourceRequest, credentials: ShopCredentials) -> dict[str, Any]:
        """
        Serve one REST-style read.

        Raises:
            ValidationError: bad resource, id, sub-resource or filter
            UpstreamQueryError: upstream rejected the query
            UnknownResourceError: the item does not exist
            AuthError / UpstreamHTTPError: fatal upstream responses
            RetryExhaustedError: retryable failures outlasted the attempts
        """
        try:
            kind = ResourceKind.from_resource(request.resource)
        except ValueError as e:
            raise ValidationError(str(e), service_id=request.resource) from e

        if request.offset is not None and request.offset < 0:
            raise ValidationError("offset must not be negative", service_id=kind.plural)
        if request.limit is not None and request.limit < 1:
            raise ValidationError("limit must be at least 1", service_id=kind.plural)

        global_id = to_global_id(kind, request.id) if request.id is not None else None
        mode = QueryMode.SINGLE if global_id and not request.sub_resource else QueryMode.LIST

        filter_query = None
        if mode == QueryMode.LIST and not request.sub_resource:
            filter_query = translate(
                kind,
                request.filter,
                request.id_list(),
                request.passthrough,
                strict=self._settings.filter_strict,
            ).to_query()

        plan = plan_query(
            kind,
            mode,
            limit=request.limit,
            cursor=request.cursor,
            offset=request.offset,
            filter_query=filter_query,
            fields=request.field_list(),
            global_id=global_id,
            sub_resource=request.sub_resource,
            default_limit=self._settings.default_limit,
            max_limit=self._settings.max_limit,
        )
        operation = plan.operation
        shop = credentials.shop_domain
        params = request.cache_params()

        cached = await self.cache.get(shop, operation, params)
        if cached is not None:
            return cached

        query = build_query(plan)

        async def attempt() -> dict[str, Any]:
            return await self.client.execute(credentials, query, operation)

        raw = await execute_with_retry(
            attempt,
            self.breaker_name(shop, operation),
            self.breakers,
            self.retry_config,
            sleep=self._sleep,
        )

        try:
            result = normalize(kind, raw, plan.mode, plan.sub_resource).to_response()
        except ServiceError as e:
            log_error(operation, e, {"shop_domain": shop})
            raise

        await self.cache.put(shop, operation, params, result)
        return result

    async def warm_up(
        self,
        credentials: ShopCredentials,
        queries: list[tuple[str, dict[str, Any]]] | None = None,
    ) -> int:
        """Prefetch common uncached queries; returns how many were fetched."""
        missing = await self.cache.warm_up_keys(credentials.shop_domain, queries)
        fetched = 0
        for resource, params in missing:
            try:
                await self.fetch(ResourceRequest(resource=resource, **params), credentials)
                fetched += 1
            except ServiceError as e:
                logger.warning(f"Cache warm-up failed for {resource}: {e}")
        logger.info(f"Cache warm-up fetched {fetched}/{len(missing)} queries")
        return fetched

    async def close(self) -> None:
        await self.client.close()
