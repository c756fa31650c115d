"""Tests for the store-backed circuit breaker."""

import pytest

from shopql.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from shopql.services.store import InMemoryStore
from tests.fakes import BrokenStore

NAME = "products"


@pytest.fixture
def registry(store, clock) -> CircuitBreakerRegistry:
    config = CircuitBreakerConfig(failure_threshold=3, success_threshold=2, timeout=60.0, window=300.0)
    return CircuitBreakerRegistry(store, config, clock=clock)


async def fail(registry: CircuitBreakerRegistry, times: int) -> None:
    for _ in range(times):
        await registry.record_failure(NAME)


class TestTransitions:
    """CLOSED -> OPEN -> HALF_OPEN -> CLOSED, with a relapse in between."""

    @pytest.mark.asyncio
    async def test_full_cycle(self, registry, clock):
        assert await registry.allow_request(NAME)

        await fail(registry, 2)
        assert (await registry.get_record(NAME)).state == CircuitState.CLOSED

        await fail(registry, 1)
        assert (await registry.get_record(NAME)).state == CircuitState.OPEN
        assert not await registry.allow_request(NAME)

        clock.advance(59)
        assert not await registry.allow_request(NAME)
        assert await registry.get_time_until_reset(NAME) == pytest.approx(1.0)

        clock.advance(1)
        assert await registry.allow_request(NAME)
        assert (await registry.get_record(NAME)).state == CircuitState.HALF_OPEN

        await registry.record_success(NAME)
        await registry.record_failure(NAME)
        assert (await registry.get_record(NAME)).state == CircuitState.OPEN
        assert not await registry.allow_request(NAME)

        clock.advance(60)
        assert await registry.allow_request(NAME)
        await registry.record_success(NAME)
        assert (await registry.get_record(NAME)).state == CircuitState.HALF_OPEN
        await registry.record_success(NAME)

        record = await registry.get_record(NAME)
        assert record.state == CircuitState.CLOSED
        assert record.failure_count == 0

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_failures(self, registry):
        await fail(registry, 2)
        await registry.record_success(NAME)
        await fail(registry, 2)
        assert (await registry.get_record(NAME)).state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_breakers_are_independent(self, registry):
        await fail(registry, 3)
        assert not await registry.allow_request(NAME)
        assert await registry.allow_request("orders")

    @pytest.mark.asyncio
    async def test_record_expires_after_window(self, registry, clock):
        await fail(registry, 3)
        clock.advance(301)
        record = await registry.get_record(NAME)
        assert record.state == CircuitState.CLOSED
        assert record.failure_count == 0


class TestSharedStore:
    @pytest.mark.asyncio
    async def test_two_registries_see_the_same_state(self, store, clock):
        config = CircuitBreakerConfig(failure_threshold=2)
        first = CircuitBreakerRegistry(store, config, clock=clock)
        second = CircuitBreakerRegistry(store, config, clock=clock)

        await first.record_failure(NAME)
        await second.record_failure(NAME)

        assert not await first.allow_request(NAME)
        assert not await second.allow_request(NAME)


class TestStatusAndReset:
    @pytest.mark.asyncio
    async def test_status(self, registry):
        await fail(registry, 3)
        status = await registry.get_status(NAME)
        assert status["state"] == "OPEN"
        assert status["failure_count"] == 3
        assert status["healthy"] is False
        assert status["time_until_reset"] == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_open_circuits(self, registry):
        await fail(registry, 3)
        await registry.record_success("orders")
        assert await registry.get_open_circuits() == [NAME]
        assert set(await registry.get_all_status()) == {NAME, "orders"}

    @pytest.mark.asyncio
    async def test_reset(self, registry):
        await fail(registry, 3)
        assert await registry.reset(NAME) is True
        assert await registry.allow_request(NAME)
        assert await registry.reset(NAME) is False

    @pytest.mark.asyncio
    async def test_reset_all(self, registry, store):
        await fail(registry, 3)
        await fail(registry, 1)
        await registry.record_failure("orders")
        await store.set("shopql:cache:products:x", {"resource": []})

        assert await registry.reset_all() == 2
        assert await store.get("shopql:cache:products:x") is not None


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_values_are_copied(self, store):
        value = {"a": [1]}
        await store.set("k", value)
        value["a"].append(2)
        fetched = await store.get("k")
        fetched["a"].append(3)
        assert await store.get("k") == {"a": [1]}

    @pytest.mark.asyncio
    async def test_ttl(self, store, clock):
        await store.set("k", 1, ttl=10)
        clock.advance(9.9)
        assert await store.get("k") == 1
        clock.advance(0.1)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_eviction_keeps_size_bounded(self, clock):
        small = InMemoryStore(max_size=2, clock=clock)
        await small.set("a", 1, ttl=10)
        await small.set("b", 2, ttl=100)
        await small.set("c", 3, ttl=100)
        assert len(small) == 2
        assert await small.get("a") is None
        assert await small.get("c") == 3

    @pytest.mark.asyncio
    async def test_breaker_records_are_not_evicted(self, clock):
        small = InMemoryStore(max_size=2, clock=clock)
        registry = CircuitBreakerRegistry(small, CircuitBreakerConfig(failure_threshold=1), clock=clock)
        await registry.record_failure(NAME)

        for i in range(5):
            await small.set(f"shopql:{i}", i, ttl=1800)

        assert (await registry.get_record(NAME)).state == CircuitState.OPEN
        assert len(small) == 3


class TestStoreOutage:
    """A failing store turns the breaker into a pass-through."""

    @pytest.fixture
    def broken(self, clock) -> CircuitBreakerRegistry:
        return CircuitBreakerRegistry(BrokenStore(), CircuitBreakerConfig(), clock=clock)

    @pytest.mark.asyncio
    async def test_requests_are_allowed(self, broken):
        assert await broken.allow_request(NAME)
        await broken.record_failure(NAME)
        await broken.record_success(NAME)
        assert await broken.allow_request(NAME)

    @pytest.mark.asyncio
    async def test_status_reads_closed(self, broken):
        status = await broken.get_status(NAME)
        assert status["state"] == "CLOSED"
        assert status["time_until_reset"] is None

    @pytest.mark.asyncio
    async def test_reset_reports_nothing(self, broken):
        assert await broken.reset(NAME) is False
        assert await broken.reset_all() == 0
