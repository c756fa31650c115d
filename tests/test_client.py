"""Tests for the one-attempt GraphQL client."""

import asyncio
import json

import httpx
import pytest

from shopql.services.client import ShopifyGraphQLClient, parse_call_limit, parse_retry_after
from shopql.services.errors import (
    AuthError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    TransportError,
    UnknownResourceError,
    UpstreamHTTPError,
)
from shopql.services.retry import is_retryable
from tests.fakes import SHOP, TOKEN, FakeUpstream, connection, product_node

QUERY = "query getProducts {\n  products(first: 1) {\n    edges {\n      node {\n        id\n      }\n    }\n  }\n}"


class TestHeaders:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("32/40", (32, 40)), ("1/2000", (1, 2000)), ("", (None, None)), (None, (None, None)), ("x/y", (None, None))],
    )
    def test_parse_call_limit(self, value, expected):
        assert parse_call_limit(value) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("2", 2.0), ("0.5", 0.5), ("-1", None), ("Wed, 21 Oct 2015 07:28:00 GMT", None), (None, None)],
    )
    def test_parse_retry_after(self, value, expected):
        assert parse_retry_after(value) == expected


class TestExecute:
    @pytest.mark.asyncio
    async def test_posts_query_with_token(self, make_client, credentials):
        upstream = FakeUpstream(connection("products", [product_node(1)]))
        async with make_client(upstream) as client:
            payload = await client.execute(credentials, QUERY, operation="products")

        assert payload["data"]["products"]["edges"][0]["node"]["id"] == "gid://shopify/Product/1"
        request = upstream.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"https://{SHOP}/admin/api/2024-01/graphql.json"
        assert request.headers["X-Shopify-Access-Token"] == TOKEN
        assert json.loads(request.content) == {"query": QUERY}

    @pytest.mark.asyncio
    async def test_graphql_errors_are_returned(self, make_client, credentials):
        upstream = FakeUpstream({"errors": [{"message": "syntax error"}]})
        client = make_client(upstream)
        payload = await client.execute(credentials, QUERY, operation="products")
        assert payload["errors"][0]["message"] == "syntax error"
        assert client.monitor.samples()[0].success is False
        await client.close()

    @pytest.mark.parametrize(
        ("status", "error_type"),
        [
            (401, AuthError),
            (404, UnknownResourceError),
            (429, RateLimitError),
            (500, ServiceUnavailableError),
            (503, ServiceUnavailableError),
            (403, UpstreamHTTPError),
            (422, UpstreamHTTPError),
        ],
    )
    @pytest.mark.asyncio
    async def test_status_mapping(self, make_client, credentials, status, error_type):
        upstream = FakeUpstream(httpx.Response(status, text="nope"))
        client = make_client(upstream)
        with pytest.raises(error_type) as exc_info:
            await client.execute(credentials, QUERY, operation="products")
        assert exc_info.value.status_code == status
        assert TOKEN not in str(exc_info.value)
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limited_carries_retry_after(self, make_client, credentials):
        upstream = FakeUpstream(httpx.Response(429, headers={"Retry-After": "2.0"}))
        client = make_client(upstream)
        with pytest.raises(RateLimitError) as exc_info:
            await client.execute(credentials, QUERY, operation="orders")
        assert exc_info.value.retry_after == 2.0
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout(self, make_client, credentials):
        client = make_client(FakeUpstream(httpx.ReadTimeout("read timed out")))
        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.execute(credentials, QUERY, operation="products")
        assert exc_info.value.status_code == 504
        await client.close()

    @pytest.mark.asyncio
    async def test_whole_attempt_is_bounded(self, settings, credentials):
        async def trickle(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={"data": {}})

        client = ShopifyGraphQLClient(
            settings.model_copy(update={"request_timeout": 0.05}),
            transport=httpx.MockTransport(trickle),
        )
        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.execute(credentials, QUERY, operation="products")
        assert is_retryable(exc_info.value)
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error(self, make_client, credentials):
        client = make_client(FakeUpstream(httpx.ConnectError("connection refused")))
        with pytest.raises(TransportError) as exc_info:
            await client.execute(credentials, QUERY, operation="products")
        assert "ConnectError" in str(exc_info.value)
        await client.close()

    @pytest.mark.parametrize("body", ["<html>maintenance</html>", "[1, 2]"])
    @pytest.mark.asyncio
    async def test_unexpected_body(self, make_client, credentials, body):
        client = make_client(FakeUpstream(httpx.Response(200, text=body)))
        with pytest.raises(TransportError):
            await client.execute(credentials, QUERY, operation="products")
        await client.close()


class TestObservations:
    @pytest.mark.asyncio
    async def test_call_limit_header_snapshot(self, make_client, credentials):
        response = httpx.Response(
            200,
            json=connection("products", []),
            headers={"X-Shopify-Shop-Api-Call-Limit": "38/40"},
        )
        client = make_client(FakeUpstream(response))
        await client.execute(credentials, QUERY, operation="products")

        snapshot = client.monitor.rate_limit(SHOP)
        assert (snapshot.calls_made, snapshot.calls_limit, snapshot.remaining) == (38, 40, 2)
        await client.close()

    @pytest.mark.asyncio
    async def test_query_cost_snapshot(self, make_client, credentials):
        payload = connection("products", [])
        payload["extensions"] = {
            "cost": {
                "requestedQueryCost": 12,
                "actualQueryCost": 6,
                "throttleStatus": {"maximumAvailable": 1000.0, "currentlyAvailable": 994.0, "restoreRate": 50.0},
            }
        }
        client = make_client(FakeUpstream(payload))
        await client.execute(credentials, QUERY, operation="products")

        snapshot = client.monitor.rate_limit(SHOP)
        assert snapshot.query_cost == 6
        assert (snapshot.calls_made, snapshot.calls_limit) == (6, 1000)
        assert snapshot.restore_rate == 50.0
        await client.close()

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, make_client, credentials):
        upstream = FakeUpstream(connection("products", []), httpx.Response(401))
        client = make_client(upstream)
        await client.execute(credentials, QUERY, operation="products")
        with pytest.raises(AuthError):
            await client.execute(credentials, QUERY, operation="orders")

        ok, failed = client.monitor.samples(SHOP)
        assert (ok.operation, ok.success, ok.status_code) == ("products", True, 200)
        assert (failed.operation, failed.success, failed.status_code) == ("orders", False, 401)
        assert failed.error_category == "AUTHENTICATION"
        await client.close()

    @pytest.mark.asyncio
    async def test_metrics_can_be_skipped(self, make_client, credentials):
        client = make_client(FakeUpstream(connection("products", [])))
        await client.execute(credentials, QUERY, operation="health_check", record_metrics=False)
        assert client.monitor.samples() == []
        await client.close()
