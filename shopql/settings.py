import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # General
    debug_mode: bool = Field(default=False, alias="SHOPIFY_DEBUG_MODE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Default shop credentials (resolved upstream of the gateway)
    shop_domain: str = Field(default="", alias="SHOPIFY_SHOP_DOMAIN")
    access_token: str = Field(default="", alias="SHOPIFY_ACCESS_TOKEN")
    api_version: str = Field(default="2024-01", alias="SHOPIFY_API_VERSION")

    # API
    request_timeout: float = Field(default=30.0, alias="SHOPIFY_API_TIMEOUT")
    connect_timeout: float = Field(default=10.0, alias="SHOPIFY_API_CONNECT_TIMEOUT")
    rate_limit_buffer: int = Field(default=5, alias="SHOPIFY_API_RATE_LIMIT_BUFFER")
    default_limit: int = Field(default=50, alias="SHOPIFY_DEFAULT_LIMIT")
    max_limit: int = Field(default=250, alias="SHOPIFY_MAX_LIMIT")

    # Caching
    cache_enabled: bool = Field(default=True, alias="SHOPIFY_CACHE_ENABLED")
    cache_default_ttl: int = Field(default=300, alias="SHOPIFY_CACHE_DEFAULT_TTL")
    cache_products_ttl: int = Field(default=600, alias="SHOPIFY_CACHE_PRODUCTS_TTL")
    cache_orders_ttl: int = Field(default=120, alias="SHOPIFY_CACHE_ORDERS_TTL")
    cache_customers_ttl: int = Field(default=300, alias="SHOPIFY_CACHE_CUSTOMERS_TTL")
    cache_collections_ttl: int = Field(
        default=1800, alias="SHOPIFY_CACHE_COLLECTIONS_TTL"
    )
    cache_single_ttl: int = Field(default=300, alias="SHOPIFY_CACHE_SINGLE_TTL")
    cache_variants_ttl: int = Field(default=600, alias="SHOPIFY_CACHE_VARIANTS_TTL")

    # Retry
    retry_max_attempts: int = Field(default=3, alias="SHOPIFY_RETRY_MAX_ATTEMPTS")
    retry_base_delay: float = Field(default=1.0, alias="SHOPIFY_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(default=10.0, alias="SHOPIFY_RETRY_MAX_DELAY")
    retry_exponential_base: float = Field(
        default=2.0, alias="SHOPIFY_RETRY_EXPONENTIAL_BASE"
    )
    retry_jitter: bool = Field(default=True, alias="SHOPIFY_RETRY_JITTER")

    # Circuit breaker
    breaker_failure_threshold: int = Field(
        default=5, alias="SHOPIFY_CIRCUIT_BREAKER_FAILURE_THRESHOLD"
    )
    breaker_success_threshold: int = Field(
        default=3, alias="SHOPIFY_CIRCUIT_BREAKER_SUCCESS_THRESHOLD"
    )
    breaker_timeout: float = Field(default=60.0, alias="SHOPIFY_CIRCUIT_BREAKER_TIMEOUT")
    breaker_window: int = Field(default=300, alias="SHOPIFY_CIRCUIT_BREAKER_WINDOW")
    # 'operation' shares one breaker per operation across shops, 'shop' isolates them
    breaker_scope: str = Field(default="operation", alias="SHOPIFY_CIRCUIT_BREAKER_SCOPE")

    # Filters
    filter_strict: bool = Field(default=False, alias="SHOPIFY_FILTER_STRICT")

    # Monitoring
    metrics_window: int = Field(default=3600, alias="SHOPIFY_MONITORING_METRICS_WINDOW")
    slow_query_ms: float = Field(default=2000.0, alias="SHOPIFY_MONITORING_SLOW_QUERY_MS")
    error_rate_threshold: float = Field(
        default=5.0, alias="SHOPIFY_MONITORING_ERROR_RATE_THRESHOLD"
    )
    response_time_warning_ms: float = Field(
        default=5000.0, alias="SHOPIFY_MONITORING_RESPONSE_TIME_WARNING_MS"
    )

    # HTTP surface
    server_host: str = Field(default="127.0.0.1", alias="SHOPQL_HOST")
    server_port: int = Field(default=8080, alias="SHOPQL_PORT")

    def cache_ttls(self) -> dict[str, int]:
        """TTL table keyed by cache namespace."""
        return {
            "products": self.cache_products_ttl,
            "orders": self.cache_orders_ttl,
            "customers": self.cache_customers_ttl,
            "collections": self.cache_collections_ttl,
            "single": self.cache_single_ttl,
            "variants": self.cache_variants_ttl,
        }


def load_settings() -> Settings:
    """Build settings from the process environment (after .env is loaded)."""
    return Settings.model_validate(dict(os.environ))


global_settings = load_settings()
