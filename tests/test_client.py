"""Test Admin GraphQL client over a mocked transport."""
import json

import httpx
import pytest

from storelink.errors import PlatformApiError
from storelink.platform import AdminApiClient, GraphQLError, ProductClient, product_gid
from storelink.reporting import ErrorCategory, ErrorSeverity
from storelink.resilience import RateLimitedExecutor

SHOP = "acme.myshopify.com"


class RecordingReporter:
    def __init__(self):
        self.reports = []

    async def report(self, error, severity=ErrorSeverity.MEDIUM, category=ErrorCategory.UNKNOWN, context=None):
        self.reports.append((error, severity, category, context))


async def no_sleep(seconds):
    return None


class Script:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.responses.pop(0)


def make_client(script):
    reporter = RecordingReporter()
    http = httpx.AsyncClient(transport=httpx.MockTransport(script))
    executor = RateLimitedExecutor(reporter, sleep=no_sleep)
    return AdminApiClient(http, executor, reporter, api_version="2025-07"), reporter


@pytest.mark.asyncio
async def test_successful_query_sends_token_and_parses_cost():
    script = Script(httpx.Response(200, json={
        "data": {"shop": {"name": "Acme"}},
        "extensions": {"cost": {
            "requestedQueryCost": 3,
            "actualQueryCost": 2,
            "throttleStatus": {"maximumAvailable": 2000, "currentlyAvailable": 1998, "restoreRate": 100},
        }},
    }))
    client, _ = make_client(script)

    result = await client.execute(SHOP, "shpat_abc", "{ shop { name } }", operation="getShop")

    assert result.success is True
    assert result.data.data == {"shop": {"name": "Acme"}}
    assert result.rate_limit.actual_query_cost == 2
    assert result.rate_limit.throttle_status.currently_available == 1998

    sent = script.requests[0]
    assert str(sent.url) == f"https://{SHOP}/admin/api/2025-07/graphql.json"
    assert sent.headers["X-Shopify-Access-Token"] == "shpat_abc"
    assert json.loads(sent.content) == {"query": "{ shop { name } }", "variables": {}}


@pytest.mark.asyncio
async def test_call_limit_header_used_without_cost_extension():
    script = Script(httpx.Response(
        200,
        json={"data": {}},
        headers={"X-Shopify-Shop-Api-Call-Limit": "39/40"},
    ))
    client, _ = make_client(script)

    result = await client.execute(SHOP, "t", "{ shop { name } }")

    assert result.rate_limit.throttle_status.currently_available == 39


@pytest.mark.asyncio
async def test_graphql_errors_become_failure_and_are_reported():
    script = Script(httpx.Response(200, json={
        "data": None,
        "errors": [{"message": "Field 'nope' doesn't exist"}],
    }))
    client, reporter = make_client(script)

    result = await client.execute(SHOP, "t", "{ nope }", operation="badQuery")

    assert result.success is False
    assert isinstance(result.error, GraphQLError)
    assert result.error.errors == [{"message": "Field 'nope' doesn't exist"}]
    assert len(script.requests) == 1
    _, severity, category, context = reporter.reports[0]
    assert severity == ErrorSeverity.MEDIUM
    assert category == ErrorCategory.PLATFORM_API
    assert context.operation == "badQuery"


@pytest.mark.asyncio
async def test_throttled_then_success():
    script = Script(
        httpx.Response(429, text="Throttled", headers={"Retry-After": "1"}),
        httpx.Response(200, json={"data": {"ok": True}}),
    )
    client, reporter = make_client(script)

    result = await client.execute(SHOP, "t", "{ ok }")

    assert result.success is True
    assert result.retry_count == 1
    assert result.total_delay_ms >= 1000
    assert reporter.reports == []


@pytest.mark.asyncio
async def test_unauthorized_not_retried():
    script = Script(httpx.Response(401, text="Invalid API key or access token"))
    client, reporter = make_client(script)

    result = await client.execute(SHOP, "bad", "{ shop { name } }")

    assert result.success is False
    assert isinstance(result.error, PlatformApiError)
    assert result.error.status_code == 401
    assert str(result.error).startswith("HTTP 401: ")
    assert len(script.requests) == 1
    assert reporter.reports[0][2] == ErrorCategory.AUTHENTICATION


def test_product_gid():
    assert product_gid(42) == "gid://shopify/Product/42"
    assert product_gid("gid://shopify/Product/42") == "gid://shopify/Product/42"


@pytest.mark.asyncio
async def test_product_client_sends_gid_variable():
    script = Script(httpx.Response(200, json={"data": {"product": {"id": "gid://shopify/Product/42"}}}))
    client, _ = make_client(script)

    result = await ProductClient(client).get_product(SHOP, "t", 42)

    assert result.data.data["product"]["id"] == "gid://shopify/Product/42"
    body = json.loads(script.requests[0].content)
    assert body["variables"] == {"id": "gid://shopify/Product/42"}
    assert "product(id: $id)" in body["query"]
