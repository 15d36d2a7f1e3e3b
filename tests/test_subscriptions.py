"""Test webhook subscription management: client over a mocked transport and HTTP routes."""
import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from storelink.api import create_app
from storelink.config import PlatformConfig, Settings, VaultConfig
from storelink.container import ServiceContainer
from storelink.platform import (
    AdminApiClient,
    WebhookSubscriptionClient,
    from_subscription_topic,
    to_subscription_topic,
)
from storelink.platform.subscriptions import to_rest_webhook
from storelink.reporting import LoggingErrorReporter
from storelink.resilience import RateLimitedExecutor
from storelink.stores import InMemoryKeyValueStore
from storelink.vault import CredentialVault, TokenCipher

SHOP = "acme.myshopify.com"
ADDRESS = "https://app.test/webhooks/orders/create"

NODE = {
    "id": "gid://shopify/WebhookSubscription/8675309",
    "callbackUrl": ADDRESS,
    "topic": "ORDERS_CREATE",
    "format": "JSON",
    "apiVersion": "2025-07",
    "createdAt": "2025-01-01T00:00:00Z",
    "updatedAt": "2025-01-02T00:00:00Z",
}


async def no_sleep(seconds):
    return None


class Script:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.responses.pop(0)

    def sent(self, index=0):
        return json.loads(self.requests[index].content)


async def make_subscriptions(script, token="shpat_abc"):
    reporter = LoggingErrorReporter()
    http = httpx.AsyncClient(transport=httpx.MockTransport(script))
    executor = RateLimitedExecutor(reporter, sleep=no_sleep)
    client = AdminApiClient(http, executor, reporter, api_version="2025-07")
    vault = CredentialVault(InMemoryKeyValueStore(), TokenCipher(bytes(range(32))))
    if token:
        await vault.store_secret(SHOP, token)
    return WebhookSubscriptionClient(client, vault)


def graphql(data, status=200):
    return httpx.Response(status, json={"data": data})


# -- Conversions --

def test_topic_conversions():
    assert to_subscription_topic("orders/create") == "ORDERS_CREATE"
    assert to_subscription_topic("app/uninstalled") == "APP_UNINSTALLED"
    assert from_subscription_topic("ORDERS_CREATE") == "orders/create"
    assert from_subscription_topic("ORDERS_PARTIALLY_FULFILLED") == "orders/partially_fulfilled"


def test_rest_shape():
    assert to_rest_webhook(NODE) == {
        "id": 8675309,
        "address": ADDRESS,
        "topic": "orders/create",
        "format": "json",
        "api_version": "2025-07",
        "created_at": "2025-01-01T00:00:00Z",
        "updated_at": "2025-01-02T00:00:00Z",
    }


# -- Client --

@pytest.mark.asyncio
async def test_create_sends_mutation_with_stored_token():
    script = Script(graphql({"webhookSubscriptionCreate": {"webhookSubscription": NODE, "userErrors": []}}))
    subscriptions = await make_subscriptions(script)

    result = await subscriptions.create(SHOP, "orders/create", ADDRESS, fields=["id", "total_price"])

    assert result.success is True
    assert result.data["id"] == 8675309
    assert result.data["topic"] == "orders/create"

    assert script.requests[0].headers["X-Shopify-Access-Token"] == "shpat_abc"
    variables = script.sent()["variables"]
    assert variables["topic"] == "ORDERS_CREATE"
    assert variables["webhookSubscription"] == {
        "callbackUrl": ADDRESS,
        "format": "JSON",
        "apiVersion": "2025-07",
        "includeFields": ["id", "total_price"],
    }


@pytest.mark.asyncio
async def test_create_user_errors_fail():
    script = Script(graphql({"webhookSubscriptionCreate": {
        "webhookSubscription": None,
        "userErrors": [{"field": ["callbackUrl"], "message": "Address for this topic has already been taken"}],
    }}))
    subscriptions = await make_subscriptions(script)

    result = await subscriptions.create(SHOP, "orders/create", ADDRESS)

    assert result.success is False
    assert result.message == "Address for this topic has already been taken"
    assert result.error == "Webhook registration rejected"


@pytest.mark.asyncio
async def test_no_token_skips_the_network():
    script = Script()
    subscriptions = await make_subscriptions(script, token=None)

    result = await subscriptions.list_subscriptions(SHOP)

    assert result.success is False
    assert result.error == "No access token found"
    assert "Please reinstall the app" in result.message
    assert script.requests == []


@pytest.mark.asyncio
async def test_list_retries_through_executor():
    script = Script(
        httpx.Response(429, headers={"Retry-After": "0"}),
        graphql({"webhookSubscriptions": {"nodes": [NODE, {**NODE, "id": "gid://shopify/WebhookSubscription/2"}]}}),
    )
    subscriptions = await make_subscriptions(script)

    result = await subscriptions.list_subscriptions(SHOP, limit=10)

    assert result.success is True
    assert [w["id"] for w in result.data] == [8675309, 2]
    assert len(script.requests) == 2
    assert script.sent(1)["variables"] == {"first": 10}


@pytest.mark.asyncio
async def test_get_missing_subscription_fails():
    script = Script(graphql({"webhookSubscription": None}))
    subscriptions = await make_subscriptions(script)

    result = await subscriptions.get(SHOP, 42)

    assert result.success is False
    assert result.error == "Webhook not found"
    assert script.sent()["variables"] == {"id": "gid://shopify/WebhookSubscription/42"}


@pytest.mark.asyncio
async def test_delete():
    script = Script(
        graphql({"webhookSubscriptionDelete": {
            "deletedWebhookSubscriptionId": "gid://shopify/WebhookSubscription/42",
            "userErrors": [],
        }}),
        graphql({"webhookSubscriptionDelete": {
            "deletedWebhookSubscriptionId": None,
            "userErrors": [{"field": ["id"], "message": "Webhook subscription does not exist"}],
        }}),
    )
    subscriptions = await make_subscriptions(script)

    assert (await subscriptions.delete(SHOP, 42)).success is True
    missing = await subscriptions.delete(SHOP, 42)
    assert missing.success is False
    assert missing.message == "Webhook subscription does not exist"


# -- Routes --

SETTINGS = Settings(
    vault=VaultConfig(encryption_key="test-encryption-key"),
    platform=PlatformConfig(webhook_secret="whsec-test"),
    environment="test",
)


class AdminApi:
    """Answers GraphQL documents by operation name."""

    def __init__(self):
        self.operations = []

    def __call__(self, request):
        query = json.loads(request.content)["query"]
        if "webhookSubscriptionCreate" in query:
            self.operations.append("create")
            return graphql({"webhookSubscriptionCreate": {"webhookSubscription": NODE, "userErrors": []}})
        if "webhookSubscriptionDelete" in query:
            self.operations.append("delete")
            return graphql({"webhookSubscriptionDelete": {"deletedWebhookSubscriptionId": None, "userErrors": []}})
        if "webhookSubscriptions" in query:
            self.operations.append("list")
            return graphql({"webhookSubscriptions": {"nodes": [NODE]}})
        self.operations.append("get")
        return graphql({"webhookSubscription": NODE})


def make_app(with_token=True):
    api = AdminApi()
    http = httpx.AsyncClient(transport=httpx.MockTransport(api))
    container = ServiceContainer.build(SETTINGS, http=http)
    if with_token:
        asyncio.run(container.vault.store_secret(SHOP, "shpat_abc"))
    return TestClient(create_app(container=container)), api


def test_subscription_routes():
    client, api = make_app()
    with client:
        created = client.post(
            "/webhooks/subscriptions",
            params={"shop": "acme"},
            json={"topic": "orders/create", "address": ADDRESS},
        )
        assert created.status_code == 201
        assert created.json()["data"]["id"] == 8675309
        assert created.json()["shop"] == SHOP

        listing = client.get("/webhooks/subscriptions", params={"shop": SHOP})
        assert listing.status_code == 200
        assert [w["topic"] for w in listing.json()["data"]] == ["orders/create"]

        one = client.get("/webhooks/subscriptions/8675309", params={"shop": SHOP})
        assert one.status_code == 200
        assert one.json()["data"]["address"] == ADDRESS

        gone = client.delete("/webhooks/subscriptions/8675309", params={"shop": SHOP})
        assert gone.status_code == 404
        assert gone.json()["error"] == "Webhook not found"

    assert api.operations == ["create", "list", "get", "delete"]


def test_register_without_token_400():
    client, api = make_app(with_token=False)
    with client:
        resp = client.post(
            "/webhooks/subscriptions",
            params={"shop": SHOP},
            json={"topic": "orders/create", "address": ADDRESS},
        )
    assert resp.status_code == 400
    assert resp.json()["error"] == "No access token found"
    assert api.operations == []


def test_register_validates_body():
    client, _ = make_app()
    with client:
        bad_address = client.post(
            "/webhooks/subscriptions",
            params={"shop": SHOP},
            json={"topic": "orders/create", "address": "not-a-url"},
        )
        bad_format = client.post(
            "/webhooks/subscriptions",
            params={"shop": SHOP},
            json={"topic": "orders/create", "address": ADDRESS, "format": "yaml"},
        )
        bad_id = client.get("/webhooks/subscriptions/abc", params={"shop": SHOP})
    assert bad_address.status_code == 422
    assert bad_format.status_code == 422
    assert bad_id.status_code == 422
