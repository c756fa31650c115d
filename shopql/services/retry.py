"""
Retry with exponential backoff, guarded by the circuit breaker.

Attempt loop:
1. Ask the breaker; an open circuit counts as a failed attempt and the
   operation is not invoked.
2. Success is recorded and returned immediately.
3. Failures are recorded and classified. Auth errors and 4xx (except 429)
   abort at once; network errors, timeouts, 5xx and 429 are retried.
4. Between attempts sleep min(base * exp_base^(attempt-1), max_delay) plus
   up to 10% jitter.
5. When attempts run out a RetryExhaustedError wraps the last failure.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from shopql.events import log_error, log_performance
from shopql.services.circuit_breaker import CircuitBreakerRegistry
from shopql.services.errors import (
    AuthError,
    CircuitOpenError,
    RateLimitError,
    RetryExhaustedError,
    ServiceError,
    UpstreamQueryError,
    ValidationError,
)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class RetryConfig:
    """Retry behaviour; delays are in seconds."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True


def is_retryable(error: BaseException) -> bool:
    """Decide whether a failure is worth another attempt."""
    if isinstance(error, (AuthError, ValidationError, UpstreamQueryError)):
        return False
    if isinstance(error, ServiceError):
        if error.retryable:
            return True
        status = error.status_code
        if 400 <= status < 500 and status != 429:
            return False
        return status >= 500
    message = str(error).lower()
    if "authentication" in message or "unauthorized" in message:
        return False
    # Unknown exceptions are treated like transient transport failures
    return True


def calculate_delay(attempt: int, config: RetryConfig, rng: random.Random | None = None) -> float:
    """Backoff before the attempt following ``attempt`` (1-based)."""
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    delay = min(delay, config.max_delay)
    if config.jitter:
        delay += (rng or random).uniform(0, delay * 0.1)
    return delay


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    name: str,
    breakers: CircuitBreakerRegistry,
    config: RetryConfig | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run ``operation`` under retry and circuit-breaker protection.

    Args:
        operation: Zero-argument coroutine factory performing one attempt
        name: Breaker name / operation label used in logs
        breakers: Registry holding breaker records
        config: Retry settings (defaults to 3 attempts, 1s base, 10s cap)
        sleep: Awaitable sleep, injectable for tests

    Raises:
        The original error for non-retryable failures, otherwise
        RetryExhaustedError wrapping the last failure.
    """
    config = config or RetryConfig()
    last_error: Exception | None = None

    for attempt in range(1, config.max_attempts + 1):
        if not await breakers.allow_request(name):
            reset_after = await breakers.get_time_until_reset(name) or 0.0
            last_error = CircuitOpenError(name, reset_after)
            logger.warning(
                f"Attempt {attempt}/{config.max_attempts} for '{name}' short-circuited: "
                f"circuit open for another {reset_after:.1f}s"
            )
            continue

        started = time.perf_counter()
        try:
            result = await operation()
        except Exception as e:
            last_error = e
            await breakers.record_failure(name)

            if not is_retryable(e):
                log_error(name, e, {"attempt": attempt, "will_retry": False})
                raise

            will_retry = attempt < config.max_attempts
            delay = calculate_delay(attempt, config) if will_retry else 0.0
            if isinstance(e, RateLimitError):
                if will_retry and e.retry_after:
                    delay = max(delay, min(e.retry_after, config.max_delay))
                logger.bind(event="rate_limited", operation=name).warning(
                    f"Rate limited on '{name}' (attempt {attempt}/{config.max_attempts})"
                )

            log_error(
                name,
                e,
                {
                    "attempt": attempt,
                    "max_attempts": config.max_attempts,
                    "retry_delay_s": round(delay, 3),
                    "will_retry": will_retry,
                },
            )
            if will_retry:
                await sleep(delay)
            continue

        await breakers.record_success(name)
        log_performance(name, time.perf_counter() - started)
        return result

    raise RetryExhaustedError(name, config.max_attempts, last_error)


def recovery_suggestions(error: BaseException) -> list[str]:
    """Operator-facing hints for an error. Diagnostic only."""
    if isinstance(error, RetryExhaustedError) and error.last_error:
        return recovery_suggestions(error.last_error)

    message = str(error).lower()
    status = getattr(error, "status_code", 0) or 0

    if isinstance(error, AuthError) or "authentication" in message or status == 401:
        return [
            "Check API credentials and access token validity",
            "Verify shop domain is correct",
            "Ensure API permissions are properly configured",
        ]
    if isinstance(error, RateLimitError) or "rate limit" in message or status == 429:
        return [
            "Implement request throttling",
            "Use cache to reduce API calls",
            "Consider upgrading Shopify plan for higher limits",
        ]
    if "network" in message or "timeout" in message or "timed out" in message:
        return [
            "Check network connectivity",
            "Increase timeout values",
            "Verify Shopify service status",
        ]
    if isinstance(error, UpstreamQueryError) or "graphql" in message or "field" in message:
        return [
            "Verify GraphQL query syntax",
            "Check if requested fields exist in current API version",
            "Review Shopify GraphQL schema documentation",
        ]
    if status >= 500:
        return [
            "Check Shopify service status",
            "Retry the operation after a delay",
            "Contact Shopify support if issue persists",
        ]
    return [
        "Review error logs for more details",
        "Check Shopify API documentation",
    ]
