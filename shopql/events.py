"""
Structured log events.

Every event is a loguru record bound with ``event=<name>`` plus a sanitized
context, so a sink can route the stream to metrics or alerting without
parsing message text.
"""

import sys
from typing import Any

from loguru import logger

from shopql.settings import Settings, global_settings

SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "api_key",
        "api_secret",
        "password",
        "private_key",
        "secret",
        "token",
        "x-shopify-access-token",
    }
)

REDACTED = "[REDACTED]"


def sanitize(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``context`` with credential values redacted."""
    clean: dict[str, Any] = {}
    for key, value in context.items():
        if str(key).lower() in SENSITIVE_KEYS:
            clean[key] = REDACTED
        elif isinstance(value, dict):
            clean[key] = sanitize(value)
        else:
            clean[key] = value
    return clean


def categorize_error(error: BaseException) -> str:
    """Bucket an error for monitoring (AUTHENTICATION, RATE_LIMIT, ...)."""
    from shopql.services import errors

    if isinstance(error, errors.RetryExhaustedError) and error.last_error:
        return categorize_error(error.last_error)
    if isinstance(error, errors.AuthError):
        return "AUTHENTICATION"
    if isinstance(error, errors.RateLimitError):
        return "RATE_LIMIT"
    if isinstance(error, errors.TransportError):
        return "NETWORK"
    if isinstance(error, errors.UpstreamQueryError):
        return "GRAPHQL"
    if isinstance(error, errors.UnknownResourceError):
        return "NOT_FOUND"

    status = getattr(error, "status_code", 0) or 0
    if status >= 500:
        return "SERVER_ERROR"

    message = str(error).lower()
    if "authentication" in message or "unauthorized" in message:
        return "AUTHENTICATION"
    if "rate limit" in message or "throttle" in message:
        return "RATE_LIMIT"
    if "network" in message or "connection" in message or "timeout" in message:
        return "NETWORK"
    if "graphql" in message or "field" in message:
        return "GRAPHQL"
    return "GENERAL"


def log_query(
    operation: str,
    query: str,
    shop_domain: str | None = None,
    settings: Settings | None = None,
) -> None:
    settings = settings or global_settings
    context: dict[str, Any] = {
        "operation": operation,
        "shop_domain": shop_domain,
        "query_length": len(query),
    }
    if settings.debug_mode:
        context["query"] = query
    logger.bind(event="graphql_query", **context).info(
        f"GraphQL query executing: {operation}"
    )


def log_response(
    operation: str,
    status_code: int,
    payload: dict[str, Any],
    execution_time: float,
) -> None:
    context = {
        "operation": operation,
        "http_code": status_code,
        "has_errors": "errors" in payload,
        "execution_time_ms": round(execution_time * 1000, 2),
    }
    bound = logger.bind(event="graphql_response", **context)
    if "errors" in payload:
        bound.bind(errors=payload["errors"]).error(
            f"GraphQL response error: {operation}"
        )
    else:
        bound.info(f"GraphQL response success: {operation}")


def log_cache(operation: str, cache_key: str, hit: bool, ttl: int | None = None) -> None:
    logger.bind(
        event="cache", operation=operation, cache_key=cache_key, hit=hit, ttl=ttl
    ).debug(f"Cache {'hit' if hit else 'miss'}: {operation}")


def log_rate_limit(
    shop_domain: str,
    calls_made: int | None,
    calls_limit: int | None,
    buffer: int = 5,
) -> None:
    remaining = (
        calls_limit - calls_made
        if calls_made is not None and calls_limit is not None
        else None
    )
    bound = logger.bind(
        event="rate_limit",
        shop_domain=shop_domain,
        calls_made=calls_made,
        calls_limit=calls_limit,
        calls_remaining=remaining,
    )
    if remaining is not None and remaining < buffer:
        bound.warning(f"Rate limit nearly reached for {shop_domain}: {remaining} left")
    else:
        bound.debug(f"Rate limit status for {shop_domain}")


def log_performance(operation: str, execution_time: float, slow_ms: float = 2000.0) -> None:
    elapsed_ms = round(execution_time * 1000, 2)
    bound = logger.bind(event="performance", operation=operation, execution_time_ms=elapsed_ms)
    if elapsed_ms > slow_ms:
        bound.warning(f"Slow query detected: {operation} took {elapsed_ms}ms")
    else:
        bound.debug(f"{operation} completed in {elapsed_ms}ms")


def log_error(operation: str, error: BaseException, context: dict[str, Any] | None = None) -> None:
    category = categorize_error(error)
    logger.bind(
        event="error",
        operation=operation,
        error_type=type(error).__name__,
        error_category=category,
        context=sanitize(context or {}),
    ).error(f"Shopify error [{category}]: {operation}: {error}")


def configure_logging(settings: Settings | None = None) -> None:
    """Install the stderr sink; debug mode lowers the level to DEBUG."""
    settings = settings or global_settings
    level = "DEBUG" if settings.debug_mode else settings.log_level.upper()
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[event]}</cyan> | {message}"
        ),
    )
    logger.configure(extra={"event": "-"})
