"""Tests for retry with backoff under circuit-breaker protection."""

import random

import pytest

from shopql.services.circuit_breaker import CircuitBreakerRegistry
from shopql.services.errors import (
    AuthError,
    CircuitOpenError,
    RateLimitError,
    RequestTimeoutError,
    RetryExhaustedError,
    ServiceUnavailableError,
    UpstreamHTTPError,
    UpstreamQueryError,
    ValidationError,
)
from shopql.services.retry import (
    RetryConfig,
    calculate_delay,
    execute_with_retry,
    is_retryable,
    recovery_suggestions,
)
from tests.fakes import BrokenStore


class Flaky:
    """Operation that fails with the queued errors, then returns ``result``."""

    def __init__(self, *errors: Exception, result: str = "ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestExecuteWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_try(self, breakers, sleep):
        operation = Flaky()
        assert await execute_with_retry(operation, "products", breakers, sleep=sleep) == "ok"
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self, breakers, sleep):
        operation = Flaky(AuthError("Invalid API key or access token"))
        with pytest.raises(AuthError):
            await execute_with_retry(operation, "products", breakers, sleep=sleep)
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_attempts(self, breakers, sleep):
        operation = Flaky(*(ServiceUnavailableError("upstream 503") for _ in range(3)))
        with pytest.raises(RetryExhaustedError) as exc_info:
            await execute_with_retry(operation, "products", breakers, RetryConfig(max_attempts=3), sleep=sleep)

        assert operation.calls == 3
        assert len(sleep.delays) == 2
        assert 1.0 <= sleep.delays[0] <= 1.1
        assert 2.0 <= sleep.delays[1] <= 2.2
        error = exc_info.value
        assert error.attempts == 3
        assert isinstance(error.last_error, ServiceUnavailableError)
        assert error.status_code == 503

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, breakers, sleep):
        operation = Flaky(RequestTimeoutError("products", 30.0))
        assert await execute_with_retry(operation, "products", breakers, sleep=sleep) == "ok"
        assert operation.calls == 2
        record = await breakers.get_record("products")
        assert record.failure_count == 0

    @pytest.mark.asyncio
    async def test_rate_limit_waits_at_least_retry_after(self, breakers, sleep):
        operation = Flaky(RateLimitError("products", retry_after=5.0))
        assert await execute_with_retry(operation, "products", breakers, sleep=sleep) == "ok"
        assert sleep.delays == [5.0]

    @pytest.mark.asyncio
    async def test_retry_after_is_capped(self, breakers, sleep):
        operation = Flaky(RateLimitError("products", retry_after=120.0))
        config = RetryConfig(max_delay=10.0, jitter=False)
        await execute_with_retry(operation, "products", breakers, config, sleep=sleep)
        assert sleep.delays == [10.0]

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits(self, breakers, sleep):
        for _ in range(breakers.config.failure_threshold):
            await breakers.record_failure("orders")

        operation = Flaky()
        with pytest.raises(RetryExhaustedError) as exc_info:
            await execute_with_retry(operation, "orders", breakers, sleep=sleep)

        assert operation.calls == 0
        assert sleep.delays == []
        assert isinstance(exc_info.value.last_error, CircuitOpenError)

    @pytest.mark.asyncio
    async def test_failures_open_the_breaker(self, breakers, sleep):
        config = RetryConfig(max_attempts=6, jitter=False)
        operation = Flaky(*(ServiceUnavailableError("down") for _ in range(10)))
        with pytest.raises(RetryExhaustedError) as exc_info:
            await execute_with_retry(operation, "customers", breakers, config, sleep=sleep)

        # Five real failures open the breaker, the sixth attempt is blocked
        assert operation.calls == 5
        assert isinstance(exc_info.value.last_error, CircuitOpenError)
        assert len(sleep.delays) == 5

    @pytest.mark.asyncio
    async def test_breaker_store_outage(self, clock, sleep):
        broken = CircuitBreakerRegistry(BrokenStore(), clock=clock)

        operation = Flaky(ServiceUnavailableError("upstream 503"))
        assert await execute_with_retry(operation, "products", broken, sleep=sleep) == "ok"
        assert operation.calls == 2

        with pytest.raises(AuthError):
            await execute_with_retry(Flaky(AuthError("nope")), "products", broken, sleep=sleep)

    @pytest.mark.asyncio
    async def test_unknown_exceptions_are_retried(self, breakers, sleep):
        operation = Flaky(ConnectionResetError("peer reset"))
        assert await execute_with_retry(operation, "products", breakers, sleep=sleep) == "ok"
        assert operation.calls == 2


class TestClassification:
    @pytest.mark.parametrize(
        "error",
        [
            AuthError("bad token"),
            ValidationError("bad id"),
            UpstreamQueryError([{"message": "x"}]),
            UpstreamHTTPError("forbidden", 403),
            RuntimeError("Unauthorized request"),
        ],
    )
    def test_not_retryable(self, error):
        assert not is_retryable(error)

    @pytest.mark.parametrize(
        "error",
        [
            RateLimitError("products"),
            RequestTimeoutError("products", 5.0),
            ServiceUnavailableError("bad gateway", status_code=502),
            RuntimeError("boom"),
        ],
    )
    def test_retryable(self, error):
        assert is_retryable(error)


class TestDelay:
    def test_exponential_without_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=10.0, jitter=False)
        assert [calculate_delay(n, config) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_jitter_is_bounded(self):
        config = RetryConfig(base_delay=2.0)
        rng = random.Random(7)
        for _ in range(50):
            assert 2.0 <= calculate_delay(1, config, rng) <= 2.2


class TestRecoverySuggestions:
    def test_auth(self):
        assert "Check API credentials and access token validity" in recovery_suggestions(AuthError("nope"))

    def test_rate_limit(self):
        assert "Use cache to reduce API calls" in recovery_suggestions(RateLimitError("orders"))

    def test_unwraps_retry_exhausted(self):
        wrapped = RetryExhaustedError("orders", 3, RequestTimeoutError("orders", 30.0))
        assert "Check network connectivity" in recovery_suggestions(wrapped)

    def test_server_error(self):
        assert "Check Shopify service status" in recovery_suggestions(ServiceUnavailableError("down"))

    def test_fallback(self):
        assert recovery_suggestions(ValueError("odd")) == [
            "Review error logs for more details",
            "Check Shopify API documentation",
        ]
