"""Tests for the response cache."""

import pytest

from shopql.graphql.types import ResourceKind
from shopql.services.cache import ResponseCache
from tests.fakes import SHOP, BrokenStore

PAYLOAD = {"resource": [{"id": 10}], "meta": {"has_next_page": False}}


class TestKeys:
    def test_param_order_does_not_matter(self, cache):
        a = cache.generate_key(SHOP, "products", {"limit": 10, "fields": "id,title"})
        b = cache.generate_key(SHOP, "products", {"fields": "id,title", "limit": 10})
        assert a == b

    def test_key_layout(self, cache):
        key = cache.generate_key(SHOP, "products.single", {"id": "5"})
        prefix, shop, operation, digest = key.split(":")
        assert (prefix, shop, operation) == ("shopql", SHOP, "products.single")
        assert len(digest) == 32

    def test_credentials_are_stripped(self, cache):
        with_token = cache.generate_key(SHOP, "orders", {"limit": 5, "access_token": "shpat_secret"})
        without = cache.generate_key(SHOP, "orders", {"limit": 5})
        assert with_token == without
        assert "shpat_secret" not in with_token

    def test_different_params_differ(self, cache):
        assert cache.generate_key(SHOP, "orders", {"limit": 5}) != cache.generate_key(SHOP, "orders", {"limit": 6})
        assert cache.generate_key(SHOP, "orders") != cache.generate_key("other.myshopify.com", "orders")


class TestTtl:
    @pytest.mark.parametrize(
        ("operation", "ttl"),
        [
            ("products", 600),
            ("orders", 120),
            ("customers", 300),
            ("collections", 1800),
            ("orders.single", 300),
            ("products.variants", 600),
            ("something_else", 300),
        ],
    )
    def test_get_ttl(self, cache, operation, ttl):
        assert cache.get_ttl(operation) == ttl

    def test_overrides_from_settings(self, store, settings, clock):
        custom = ResponseCache(store, settings.model_copy(update={"cache_orders_ttl": 30}), clock=clock)
        assert custom.get_ttl("orders") == 30


class TestGetPut:
    @pytest.mark.asyncio
    async def test_round_trip(self, cache):
        assert await cache.get(SHOP, "products", {"limit": 2}) is None
        await cache.put(SHOP, "products", {"limit": 2}, PAYLOAD)
        assert await cache.get(SHOP, "products", {"limit": 2}) == PAYLOAD

    @pytest.mark.asyncio
    async def test_expiry(self, cache, clock):
        await cache.put(SHOP, "products", {}, PAYLOAD)
        clock.advance(599)
        assert await cache.get(SHOP, "products", {}) == PAYLOAD
        clock.advance(2)
        assert await cache.get(SHOP, "products", {}) is None

    @pytest.mark.asyncio
    async def test_cached_payload_is_a_copy(self, cache):
        payload = {"resource": [{"id": 1}]}
        await cache.put(SHOP, "customers", {}, payload)
        payload["resource"].clear()
        assert await cache.get(SHOP, "customers", {}) == {"resource": [{"id": 1}]}

    @pytest.mark.asyncio
    async def test_disabled(self, store, settings, clock):
        disabled = ResponseCache(store, settings.model_copy(update={"cache_enabled": False}), clock=clock)
        await disabled.put(SHOP, "products", {}, PAYLOAD)
        assert await disabled.get(SHOP, "products", {}) is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        await cache.get(SHOP, "orders", {})
        await cache.put(SHOP, "orders", {}, PAYLOAD)
        await cache.get(SHOP, "orders", {})
        stats = cache.get_stats()
        assert (stats["hits"], stats["misses"], stats["writes"]) == (1, 1, 1)
        assert stats["hit_rate"] == "50.00%"


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_failures_degrade_to_miss(self, settings, clock):
        broken = ResponseCache(BrokenStore(), settings, clock=clock)
        await broken.put(SHOP, "products", {}, PAYLOAD)
        assert await broken.get(SHOP, "products", {}) is None
        assert await broken.invalidate(SHOP, "products", {}) is False
        assert await broken.invalidate_related(SHOP, ResourceKind.PRODUCT) == 0
        assert broken.get_stats()["errors"] >= 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not-an-entry", {"payload": PAYLOAD}, {"unexpected": 1}])
    async def test_malformed_entry_is_a_miss(self, cache, store, raw):
        await store.set(cache.generate_key(SHOP, "products", {}), raw)
        assert await cache.get(SHOP, "products", {}) is None
        assert cache.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_smoke_test_propagates(self, settings, clock):
        with pytest.raises(ConnectionError):
            await ResponseCache(BrokenStore(), settings, clock=clock).smoke_test()

    @pytest.mark.asyncio
    async def test_smoke_test_cleans_up(self, cache, store):
        assert await cache.smoke_test() is True
        assert len(store) == 0


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_invalidate_single_key(self, cache):
        await cache.put(SHOP, "orders", {"limit": 1}, PAYLOAD)
        assert await cache.invalidate(SHOP, "orders", {"limit": 1}) is True
        assert await cache.get(SHOP, "orders", {"limit": 1}) is None

    @pytest.mark.asyncio
    async def test_invalidate_related(self, cache):
        await cache.put(SHOP, "products", {"limit": 1}, PAYLOAD)
        await cache.put(SHOP, "products.single", {"id": "5"}, PAYLOAD)
        await cache.put(SHOP, "collections", {}, PAYLOAD)
        await cache.put(SHOP, "orders", {}, PAYLOAD)
        await cache.put("other.myshopify.com", "products", {}, PAYLOAD)

        assert await cache.invalidate_related(SHOP, ResourceKind.PRODUCT, 5) == 3
        assert await cache.get(SHOP, "orders", {}) == PAYLOAD
        assert await cache.get("other.myshopify.com", "products", {}) == PAYLOAD
        assert await cache.get(SHOP, "products.single", {"id": "5"}) is None

    @pytest.mark.asyncio
    async def test_invalidate_shop(self, cache):
        await cache.put(SHOP, "products", {}, PAYLOAD)
        await cache.put(SHOP, "orders", {}, PAYLOAD)
        assert await cache.invalidate_shop(SHOP) == 2


class TestFreshnessAndWarmUp:
    @pytest.mark.asyncio
    async def test_is_fresh(self, cache, store, clock):
        await cache.put(SHOP, "orders", {}, PAYLOAD)
        entry = await store.get(cache.generate_key(SHOP, "orders", {}))
        assert cache.is_fresh(entry)
        clock.advance(60)
        assert cache.is_fresh(entry)
        assert not cache.is_fresh(entry, max_age=30)
        clock.advance(61)
        assert not cache.is_fresh(entry)
        assert not cache.is_fresh({"payload": PAYLOAD})

    @pytest.mark.asyncio
    async def test_freshness_agrees_with_get_at_ttl(self, cache, store, clock):
        await cache.put(SHOP, "orders", {}, PAYLOAD)
        entry = await store.get(cache.generate_key(SHOP, "orders", {}))

        clock.advance(119)
        assert cache.is_fresh(entry)
        assert await cache.get(SHOP, "orders", {}) == PAYLOAD

        clock.advance(1)
        assert not cache.is_fresh(entry)
        assert await cache.get(SHOP, "orders", {}) is None

    @pytest.mark.asyncio
    async def test_warm_up_keys(self, cache):
        await cache.put(SHOP, "products", {"limit": 50}, PAYLOAD)
        missing = await cache.warm_up_keys(SHOP, [("customers", {"limit": 10})])
        assert missing == [
            ("collections", {"limit": 20}),
            ("orders", {"limit": 20}),
            ("customers", {"limit": 10}),
        ]
