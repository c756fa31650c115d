"""
ResponseCache - Normalized-response cache with per-resource TTL.

Features:
- Keys derived from (shop, operation, sanitized params), order-insensitive
- TTL resolved from the operation name (products, orders, ..., single, variants)
- Related-namespace invalidation for future write support
- Never raises: any store failure degrades to a miss / no-op
"""

import hashlib
import json
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger

from shopql.events import log_cache
from shopql.graphql.types import ResourceKind
from shopql.services.store import Clock, KeyValueStore
from shopql.settings import Settings, global_settings

KEY_PREFIX = "shopql"

DEFAULT_TTL = 300

DEFAULT_TTLS: dict[str, int] = {
    "products": 600,  # products change less frequently
    "orders": 120,  # orders are more dynamic
    "customers": 300,
    "collections": 1800,  # collections are relatively static
    "single": 300,  # single resource queries
    "variants": 600,
}

SENSITIVE_PARAMS = frozenset({"access_token", "api_key", "api_secret", "password", "token"})

# Namespaces whose cached data goes stale when a resource kind changes
INVALIDATION_MAP: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.PRODUCT: ("products", "collections"),
    ResourceKind.ORDER: ("orders", "customers"),
    ResourceKind.CUSTOMER: ("customers",),
    ResourceKind.COLLECTION: ("collections", "products"),
}


@dataclass
class CacheEntry:
    """A cached normalized payload with metadata."""

    payload: Any
    cached_at: float
    expires_at: float
    operation: str
    shop: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        return cls(**data)


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "errors": self.errors,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class ResponseCache:
    """
    Store-backed cache for normalized responses.

    Usage:
        cache = ResponseCache(store)

        cached = await cache.get(shop, "products", params)
        if cached is not None:
            return cached

        payload = await fetch()
        await cache.put(shop, "products", params, payload)
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ):
        settings = settings or global_settings
        self._store = store
        self._clock = clock or time.time
        self.enabled = settings.cache_enabled
        self.default_ttl = settings.cache_default_ttl
        self.ttls = settings.cache_ttls()
        self._stats = CacheStats()

    @staticmethod
    def sanitize_params(params: dict[str, Any] | None) -> dict[str, Any]:
        """Drop credential keys and sort the rest."""
        return {
            key: params[key]
            for key in sorted(params or {}, key=str)
            if str(key).lower() not in SENSITIVE_PARAMS
        }

    def generate_key(self, shop: str, operation: str, params: dict[str, Any] | None = None) -> str:
        """Generate the cache key for a request."""
        encoded = json.dumps(
            self.sanitize_params(params), sort_keys=True, separators=(",", ":"), default=str
        )
        digest = hashlib.md5(encoded.encode()).hexdigest()
        return f"{KEY_PREFIX}:{shop}:{operation}:{digest}"

    def get_ttl(self, operation: str) -> int:
        """Resolve the TTL for an operation name such as 'products.single'."""
        segments = operation.split(".")
        for qualifier in ("variants", "single"):
            if qualifier in segments[1:] and qualifier in self.ttls:
                return self.ttls[qualifier]
        return self.ttls.get(segments[0], self.default_ttl)

    async def get(self, shop: str, operation: str, params: dict[str, Any] | None = None) -> Any | None:
        """Return the cached payload, or None on miss/expiry/failure."""
        if not self.enabled:
            return None

        key = self.generate_key(shop, operation, params)
        try:
            raw = await self._store.get(key)
            entry = CacheEntry.from_dict(raw) if raw else None
            expired = entry is None or self._clock() >= entry.expires_at
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache read failed for {operation}, bypassing cache: {e}")
            return None

        if expired:
            self._stats.misses += 1
            log_cache(operation, key, hit=False)
            return None

        self._stats.hits += 1
        log_cache(operation, key, hit=True)
        return entry.payload

    async def put(
        self,
        shop: str,
        operation: str,
        params: dict[str, Any] | None,
        payload: Any,
    ) -> None:
        """Cache a payload with the operation's TTL."""
        if not self.enabled:
            return

        key = self.generate_key(shop, operation, params)
        ttl = self.get_ttl(operation)
        now = self._clock()
        entry = CacheEntry(
            payload=payload,
            cached_at=now,
            expires_at=now + ttl,
            operation=operation,
            shop=shop,
        )
        try:
            await self._store.set(key, asdict(entry), ttl)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache write failed for {operation}: {e}")
            return

        self._stats.writes += 1
        log_cache(operation, key, hit=False, ttl=ttl)

    async def invalidate(self, shop: str, operation: str, params: dict[str, Any] | None = None) -> bool:
        """Invalidate a single cached request."""
        if not self.enabled:
            return False
        key = self.generate_key(shop, operation, params)
        try:
            removed = await self._store.delete(key)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache invalidation failed for {operation}: {e}")
            return False
        log_cache(f"{operation}_invalidate", key, hit=False)
        return removed

    async def invalidate_related(
        self,
        shop: str,
        kind: ResourceKind,
        resource_id: int | str | None = None,
    ) -> int:
        """
        Invalidate namespaces affected by a change to ``kind``.

        Keys are hashed, so an id cannot be targeted individually: list,
        single-item and sub-resource entries of each affected namespace are
        all dropped. Read-only deployments never call this.
        """
        if not self.enabled:
            return 0

        removed = 0
        for namespace in INVALIDATION_MAP[kind]:
            for separator in (":", "."):
                removed += await self._delete_prefix(
                    f"{KEY_PREFIX}:{shop}:{namespace}{separator}"
                )

        logger.debug(
            f"Invalidated {removed} cache entries for {kind.value} change"
            + (f" (id={resource_id})" if resource_id is not None else "")
        )
        return removed

    async def invalidate_shop(self, shop: str) -> int:
        """Invalidate every cached entry for a shop."""
        if not self.enabled:
            return 0
        return await self._delete_prefix(f"{KEY_PREFIX}:{shop}:")

    async def _delete_prefix(self, prefix: str) -> int:
        try:
            return await self._store.delete_prefix(prefix)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache prefix invalidation failed for {prefix}: {e}")
            return 0

    def is_fresh(self, entry: CacheEntry | dict[str, Any], max_age: float | None = None) -> bool:
        """
        Check entry age against ``max_age`` or the operation's own TTL.

        Same boundary as ``get``: an entry is fresh while its age is below the
        limit and stale from the moment it reaches it.
        """
        if isinstance(entry, dict):
            if "cached_at" not in entry:
                return False
            entry = CacheEntry.from_dict(entry)

        age = self._clock() - entry.cached_at
        if max_age is not None:
            return age < max_age
        return age < self.get_ttl(entry.operation)

    async def warm_up_keys(
        self,
        shop: str,
        queries: list[tuple[str, dict[str, Any]]] | None = None,
    ) -> list[tuple[str, dict[str, Any]]]:
        """
        Return the common queries that are not cached yet.

        The caller executes them through the gateway, which fills the cache.
        """
        defaults: list[tuple[str, dict[str, Any]]] = [
            ("products", {"limit": 50}),
            ("collections", {"limit": 20}),
            ("orders", {"limit": 20}),
        ]
        missing = []
        for operation, params in defaults + list(queries or []):
            if await self.get(shop, operation, params) is None:
                missing.append((operation, params))
        return missing

    async def smoke_test(self) -> bool:
        """Write, read back and delete a probe value. Store errors propagate."""
        key = f"{KEY_PREFIX}:health_check:{uuid.uuid4().hex}"
        probe = {"test": True, "timestamp": self._clock()}
        await self._store.set(key, probe, 60)
        retrieved = await self._store.get(key)
        await self._store.delete(key)
        return retrieved == probe

    def get_stats(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "default_ttl": self.default_ttl,
            "ttl_config": dict(self.ttls),
            **self._stats.to_dict(),
        }
