"""FastAPI surface: read-only REST resources plus operator diagnostics."""

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Header, Request
from loguru import logger

from shopql.exceptions import BadRequestError, MethodNotAllowedError, to_http_exception
from shopql.graphql.types import ResourceRequest, ShopCredentials
from shopql.monitoring.health import HealthChecker
from shopql.monitoring.report import generate_report
from shopql.services.errors import ServiceError
from shopql.services.gateway import ResourceGateway
from shopql.settings import Settings, global_settings

# Query parameters consumed by the gateway itself; the rest is passthrough
RESERVED_PARAMS = frozenset({"limit", "offset", "cursor", "fields", "filter", "ids"})

WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]


def parse_int(name: str, value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise BadRequestError(f"{name} must be an integer") from None


class GatewayServer:
    """HTTP server exposing the gateway."""

    def __init__(self, gateway: ResourceGateway, settings: Settings | None = None):
        self.gateway = gateway
        self.settings = settings or global_settings
        self.checker = HealthChecker(
            gateway.client, gateway.cache, gateway.breakers, self.settings
        )
        self.app = FastAPI(title="shopql", lifespan=self.lifespan)

        # Diagnostics
        self.app.get("/health")(self.health_check)
        self.app.get("/diagnostics/health")(self.diagnostics_health)
        self.app.get("/diagnostics/metrics")(self.diagnostics_metrics)
        self.app.get("/diagnostics/report")(self.diagnostics_report)
        self.app.post("/diagnostics/circuits/reset")(self.reset_circuits)
        self.app.post("/diagnostics/cache/warmup")(self.warm_up_cache)

        # Resources
        self.app.get("/api/{resource}")(self.list_resource)
        self.app.get("/api/{resource}/{resource_id}")(self.get_resource)
        self.app.get("/api/{resource}/{resource_id}/{sub_resource}")(self.list_sub_resource)
        for path in (
            "/api/{resource}",
            "/api/{resource}/{resource_id}",
            "/api/{resource}/{resource_id}/{sub_resource}",
        ):
            self.app.api_route(path, methods=WRITE_METHODS)(self.read_only)

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        yield
        await self.gateway.close()

    def credentials(
        self,
        shop_domain: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> ShopCredentials:
        """Per-request credential headers override the configured shop."""
        return ShopCredentials(
            shop_domain=shop_domain or self.settings.shop_domain,
            access_token=access_token or self.settings.access_token,
            api_version=api_version or self.settings.api_version,
        )

    async def _fetch(
        self,
        request: Request,
        credentials: ShopCredentials,
        resource: str,
        resource_id: str | None = None,
        sub_resource: str | None = None,
    ) -> dict[str, Any]:
        params = request.query_params
        resource_request = ResourceRequest(
            resource=resource,
            id=resource_id,
            sub_resource=sub_resource,
            limit=parse_int("limit", params.get("limit")),
            offset=parse_int("offset", params.get("offset")),
            cursor=params.get("cursor") or None,
            fields=params.get("fields") or None,
            filter=params.get("filter") or None,
            ids=params.get("ids") or None,
            passthrough={k: v for k, v in params.items() if k not in RESERVED_PARAMS},
        )
        try:
            return await self.gateway.fetch(resource_request, credentials)
        except ServiceError as e:
            logger.info(f"{request.method} {request.url.path} failed: {e.kind}")
            raise to_http_exception(e) from e

    async def list_resource(
        self,
        resource: str,
        request: Request,
        x_shopify_shop_domain: Optional[str] = Header(None),
        x_shopify_access_token: Optional[str] = Header(None),
        x_shopify_api_version: Optional[str] = Header(None),
    ):
        """List resources: products, orders, customers, collections."""
        credentials = self.credentials(
            x_shopify_shop_domain, x_shopify_access_token, x_shopify_api_version
        )
        return await self._fetch(request, credentials, resource)

    async def get_resource(
        self,
        resource: str,
        resource_id: str,
        request: Request,
        x_shopify_shop_domain: Optional[str] = Header(None),
        x_shopify_access_token: Optional[str] = Header(None),
        x_shopify_api_version: Optional[str] = Header(None),
    ):
        """Fetch a single resource by numeric id."""
        credentials = self.credentials(
            x_shopify_shop_domain, x_shopify_access_token, x_shopify_api_version
        )
        return await self._fetch(request, credentials, resource, resource_id)

    async def list_sub_resource(
        self,
        resource: str,
        resource_id: str,
        sub_resource: str,
        request: Request,
        x_shopify_shop_domain: Optional[str] = Header(None),
        x_shopify_access_token: Optional[str] = Header(None),
        x_shopify_api_version: Optional[str] = Header(None),
    ):
        """List a sub-resource: products/{id}/variants, collections/{id}/products."""
        credentials = self.credentials(
            x_shopify_shop_domain, x_shopify_access_token, x_shopify_api_version
        )
        return await self._fetch(request, credentials, resource, resource_id, sub_resource)

    async def read_only(self, request: Request):
        logger.warning(f"Rejected {request.method} {request.url.path}: read-only API")
        raise MethodNotAllowedError()

    async def health_check(self):
        """Health check endpoint."""
        return {"status": "ok", "service": "shopql"}

    async def diagnostics_health(
        self,
        x_shopify_shop_domain: Optional[str] = Header(None),
        x_shopify_access_token: Optional[str] = Header(None),
        x_shopify_api_version: Optional[str] = Header(None),
    ):
        credentials = self.credentials(
            x_shopify_shop_domain, x_shopify_access_token, x_shopify_api_version
        )
        return await self.checker.check(credentials)

    async def diagnostics_metrics(self, shop: Optional[str] = None):
        return {
            "performance": self.gateway.client.monitor.summary(shop),
            "cache": self.gateway.cache.get_stats(),
            "circuit_breakers": await self.gateway.breakers.get_all_status(),
        }

    async def diagnostics_report(
        self,
        x_shopify_shop_domain: Optional[str] = Header(None),
        x_shopify_access_token: Optional[str] = Header(None),
        x_shopify_api_version: Optional[str] = Header(None),
    ):
        credentials = self.credentials(
            x_shopify_shop_domain, x_shopify_access_token, x_shopify_api_version
        )
        return await generate_report(
            credentials,
            self.checker,
            self.gateway.client.monitor,
            self.gateway.cache,
            self.settings,
        )

    async def reset_circuits(self, name: Optional[str] = None):
        """Reset one circuit breaker, or all of them."""
        if name:
            return {"reset": [name] if await self.gateway.breakers.reset(name) else []}
        count = await self.gateway.breakers.reset_all()
        return {"reset_count": count}

    async def warm_up_cache(
        self,
        x_shopify_shop_domain: Optional[str] = Header(None),
        x_shopify_access_token: Optional[str] = Header(None),
        x_shopify_api_version: Optional[str] = Header(None),
    ):
        """Prefetch the common list queries into the cache."""
        credentials = self.credentials(
            x_shopify_shop_domain, x_shopify_access_token, x_shopify_api_version
        )
        return {"fetched": await self.gateway.warm_up(credentials)}


def create_app(
    gateway: ResourceGateway | None = None, settings: Settings | None = None
) -> FastAPI:
    """Create the FastAPI app.

    Args:
        gateway: ResourceGateway instance (built from settings when omitted)
        settings: Settings override

    Returns:
        FastAPI app
    """
    settings = settings or global_settings
    server = GatewayServer(gateway or ResourceGateway.from_settings(settings), settings)
    return server.app
