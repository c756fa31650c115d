"""Tests for structured log events and settings loading."""

import pytest
from loguru import logger

from shopql.events import REDACTED, categorize_error, log_error, sanitize
from shopql.services.errors import (
    AuthError,
    RateLimitError,
    RequestTimeoutError,
    RetryExhaustedError,
    ServiceUnavailableError,
    UnknownResourceError,
    UpstreamQueryError,
)
from shopql.settings import Settings


@pytest.fixture
def captured():
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


class TestSanitize:
    def test_nested_credentials_are_redacted(self):
        context = {
            "shop": "x.myshopify.com",
            "access_token": "shpat_secret",
            "headers": {"X-Shopify-Access-Token": "shpat_secret", "Accept": "application/json"},
        }
        clean = sanitize(context)
        assert clean["access_token"] == REDACTED
        assert clean["headers"] == {"X-Shopify-Access-Token": REDACTED, "Accept": "application/json"}
        assert context["access_token"] == "shpat_secret"


class TestCategorizeError:
    @pytest.mark.parametrize(
        ("error", "category"),
        [
            (AuthError("nope"), "AUTHENTICATION"),
            (RateLimitError("products"), "RATE_LIMIT"),
            (RequestTimeoutError("products", 5.0), "NETWORK"),
            (UpstreamQueryError([]), "GRAPHQL"),
            (UnknownResourceError("gone"), "NOT_FOUND"),
            (ServiceUnavailableError("down", status_code=502), "SERVER_ERROR"),
            (RetryExhaustedError("orders", 3, RateLimitError("orders")), "RATE_LIMIT"),
            (RuntimeError("connection reset"), "NETWORK"),
            (ValueError("odd"), "GENERAL"),
        ],
    )
    def test_categories(self, error, category):
        assert categorize_error(error) == category


class TestLogError:
    def test_bound_context(self, captured):
        log_error("products", AuthError("nope"), {"attempt": 1, "access_token": "shpat_secret"})

        record = captured[-1]
        assert record["extra"]["event"] == "error"
        assert record["extra"]["error_category"] == "AUTHENTICATION"
        assert record["extra"]["context"] == {"attempt": 1, "access_token": REDACTED}


class TestSettings:
    def test_env_aliases(self):
        settings = Settings.model_validate(
            {
                "SHOPIFY_SHOP_DOMAIN": "env-shop.myshopify.com",
                "SHOPIFY_CACHE_ORDERS_TTL": "45",
                "SHOPIFY_FILTER_STRICT": "true",
                "UNRELATED": "ignored",
            }
        )
        assert settings.shop_domain == "env-shop.myshopify.com"
        assert settings.cache_ttls()["orders"] == 45
        assert settings.filter_strict is True

    def test_field_names(self):
        settings = Settings(shop_domain="a.myshopify.com", retry_max_attempts=5)
        assert settings.retry_max_attempts == 5
        assert settings.breaker_scope == "operation"
