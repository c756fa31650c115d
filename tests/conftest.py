from typing import Any, Callable

import pytest

from shopql.graphql.types import ShopCredentials
from shopql.monitoring.metrics import PerformanceMonitor
from shopql.services.cache import ResponseCache
from shopql.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from shopql.services.client import ShopifyGraphQLClient
from shopql.services.gateway import ResourceGateway
from shopql.services.store import InMemoryStore
from shopql.settings import Settings
from tests.fakes import SHOP, TOKEN, FakeClock, FakeUpstream, SleepRecorder


@pytest.fixture
def settings() -> Settings:
    return Settings(shop_domain=SHOP, access_token=TOKEN, api_version="2024-01")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def breakers(store, clock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(store, CircuitBreakerConfig(), clock=clock)


@pytest.fixture
def cache(store, settings, clock) -> ResponseCache:
    return ResponseCache(store, settings, clock=clock)


@pytest.fixture
def credentials() -> ShopCredentials:
    return ShopCredentials(shop_domain=SHOP, access_token=TOKEN, api_version="2024-01")


@pytest.fixture
def make_client(settings, clock) -> Callable[..., ShopifyGraphQLClient]:
    def factory(upstream: FakeUpstream) -> ShopifyGraphQLClient:
        return ShopifyGraphQLClient(
            settings,
            monitor=PerformanceMonitor(settings, clock=clock),
            transport=upstream.transport(),
        )

    return factory


@pytest.fixture
def make_gateway(settings, store, clock, sleep) -> Callable[..., ResourceGateway]:
    """Build a gateway wired to a FakeUpstream; keyword args override settings."""

    def factory(upstream: FakeUpstream, **overrides: Any) -> ResourceGateway:
        gateway_settings = settings.model_copy(update=overrides) if overrides else settings
        client = ShopifyGraphQLClient(
            gateway_settings,
            monitor=PerformanceMonitor(gateway_settings, clock=clock),
            transport=upstream.transport(),
        )
        return ResourceGateway.from_settings(
            gateway_settings, store=store, client=client, clock=clock, sleep=sleep
        )

    return factory
