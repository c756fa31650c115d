"""
Service layer - resilience patterns around the upstream GraphQL API.

Provides:
- ResponseCache: Normalized-response cache with per-resource TTL
- CircuitBreakerRegistry: Store-backed circuit breakers
- execute_with_retry: Exponential backoff guarded by the breaker

The httpx client (client.py) and the request orchestration (gateway.py)
depend on the graphql and monitoring packages and are imported from their
modules directly.
"""

from shopql.services.errors import (
    ServiceError,
    ValidationError,
    UpstreamQueryError,
    TransportError,
    RequestTimeoutError,
    AuthError,
    RateLimitError,
    UnknownResourceError,
    UpstreamHTTPError,
    ServiceUnavailableError,
    CircuitOpenError,
    RetryExhaustedError,
)
from shopql.services.store import KeyValueStore, InMemoryStore
from shopql.services.cache import ResponseCache, CacheEntry, CacheStats
from shopql.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRecord,
    CircuitBreakerRegistry,
    CircuitState,
)
from shopql.services.retry import (
    RetryConfig,
    execute_with_retry,
    is_retryable,
    recovery_suggestions,
)

__all__ = [
    # Errors
    "ServiceError",
    "ValidationError",
    "UpstreamQueryError",
    "TransportError",
    "RequestTimeoutError",
    "AuthError",
    "RateLimitError",
    "UnknownResourceError",
    "UpstreamHTTPError",
    "ServiceUnavailableError",
    "CircuitOpenError",
    "RetryExhaustedError",
    # Store
    "KeyValueStore",
    "InMemoryStore",
    # Cache
    "ResponseCache",
    "CacheEntry",
    "CacheStats",
    # Circuit Breaker
    "CircuitBreakerConfig",
    "CircuitBreakerRecord",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Retry
    "RetryConfig",
    "execute_with_retry",
    "is_retryable",
    "recovery_suggestions",
]
