"""Test HTTP surface: health, webhooks, OAuth endpoints, and event queries."""
import json

import httpx
from fastapi.testclient import TestClient

from storelink.api import create_app
from storelink.config import PlatformConfig, Settings, VaultConfig
from storelink.container import ServiceContainer
from storelink.events import sign_payload

SECRET = "whsec-test"
SHOP = "acme.myshopify.com"

SETTINGS = Settings(
    vault=VaultConfig(encryption_key="test-encryption-key"),
    platform=PlatformConfig(
        client_id="client-123",
        client_secret="shh",
        redirect_uri="https://app.test/auth/callback",
        webhook_secret=SECRET,
    ),
    environment="test",
)


def token_endpoint(request):
    return httpx.Response(200, json={"access_token": "shpat_abc", "scope": "read_products,write_products"})


def make_client(settings=SETTINGS):
    http = httpx.AsyncClient(transport=httpx.MockTransport(token_endpoint))
    container = ServiceContainer.build(settings, http=http)
    return TestClient(create_app(container=container)), container


def post_webhook(client, payload, topic="orders/create", delivery_id="d-1", secret=SECRET, headers=None):
    body = json.dumps(payload).encode()
    base = {
        "Content-Type": "application/json",
        "X-Shopify-Hmac-Sha256": sign_payload(body, secret),
        "X-Shopify-Shop-Domain": SHOP,
        "X-Shopify-Topic": topic,
        "X-Shopify-Webhook-Id": delivery_id,
    }
    base.update(headers or {})
    return client.post(f"/webhooks/{topic}", content=body, headers={k: v for k, v in base.items() if v is not None})


ORDER = {
    "id": 1001,
    "name": "#1001",
    "total_price": "25.50",
    "customer": {"id": 501, "email": "kim@example.com"},
}


# -- Health --

def test_health_lists_handlers():
    client, _ = make_client()
    with client:
        resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "test"
    assert body["handlers"] == ["app", "customers", "orders", "products"]


# -- Webhooks --

def test_webhook_processed():
    client, container = make_client()
    with client:
        resp = post_webhook(client, ORDER)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["state"] == "processed"
    assert body["delivery_id"] == "d-1"
    assert body["topic"] == "orders/create"


def test_webhook_duplicate_acknowledged():
    client, _ = make_client()
    with client:
        post_webhook(client, ORDER)
        resp = post_webhook(client, ORDER)

    assert resp.status_code == 200
    assert resp.json()["duplicate"] is True


def test_webhook_bad_signature_401():
    client, _ = make_client()
    with client:
        resp = post_webhook(client, ORDER, secret="wrong")
    assert resp.status_code == 401
    assert resp.json()["success"] is False


def test_webhook_missing_headers_400():
    client, _ = make_client()
    with client:
        resp = post_webhook(client, ORDER, headers={"X-Shopify-Hmac-Sha256": None, "X-Shopify-Shop-Domain": None})
    assert resp.status_code == 400
    message = resp.json()["message"]
    assert "X-Shopify-Hmac-Sha256" in message
    assert "X-Shopify-Shop-Domain" in message


def test_webhook_handler_failure_still_200():
    client, _ = make_client()
    with client:
        resp = post_webhook(client, {"name": "no id"})
    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["state"] == "failed"


def test_webhook_unknown_topic_200():
    client, _ = make_client()
    with client:
        resp = post_webhook(client, {"id": 1}, topic="carts/update")
    assert resp.status_code == 200
    assert resp.json()["state"] == "unroutable"


def test_webhook_topic_and_id_fall_back_to_path_and_hash():
    client, _ = make_client()
    with client:
        first = post_webhook(client, ORDER, headers={"X-Shopify-Topic": None, "X-Shopify-Webhook-Id": None})
        second = post_webhook(client, ORDER, headers={"X-Shopify-Topic": None, "X-Shopify-Webhook-Id": None})

    assert first.json()["topic"] == "orders/create"
    assert len(first.json()["delivery_id"]) == 32
    assert second.json()["duplicate"] is True


def test_webhook_without_secret_configured_500():
    settings = Settings(vault=VaultConfig(encryption_key="k"))
    client, _ = make_client(settings)
    with client:
        resp = post_webhook(client, ORDER)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Service misconfigured"


# -- OAuth --

def test_oauth_install_flow():
    client, container = make_client()
    with client:
        resp = client.get("/auth/authorize", params={"shop": "acme"})
        assert resp.status_code == 200
        auth_url = httpx.URL(resp.json()["auth_url"])
        state = auth_url.params["state"]

        resp = client.get("/auth/callback", params={"shop": SHOP, "code": "abc", "state": state})
        assert resp.status_code == 200
        assert resp.json()["scopes"] == ["read_products", "write_products"]

        status = client.get("/auth/status", params={"shop": "acme"}).json()
        assert status["authenticated"] is True
        assert status["expires_at"] is not None

        replay = client.get("/auth/callback", params={"shop": SHOP, "code": "abc", "state": state})
        assert replay.status_code == 401

        revoked = client.delete("/auth/token", params={"shop": "acme"})
        assert revoked.json()["success"] is True
        assert client.get("/auth/status", params={"shop": "acme"}).json()["authenticated"] is False


def test_authorize_rejects_bad_shop():
    client, _ = make_client()
    with client:
        resp = client.get("/auth/authorize", params={"shop": "bad shop!"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Validation failed"


def test_authorize_without_oauth_settings_500():
    client, _ = make_client(Settings(vault=VaultConfig(encryption_key="k")))
    with client:
        resp = client.get("/auth/authorize", params={"shop": "acme"})
    assert resp.status_code == 500


# -- Events --

def test_event_endpoints():
    client, _ = make_client()
    with client:
        post_webhook(client, ORDER, delivery_id="d-1")
        post_webhook(client, {"id": 5}, topic="customers/create", delivery_id="d-2")

        listing = client.get("/events", params={"shop": SHOP}).json()
        assert listing["count"] == 2
        assert [e["event_id"] for e in listing["events"]] == ["d-2", "d-1"]

        filtered = client.get("/events", params={"shop": SHOP, "topic": "orders/create"}).json()
        assert filtered["count"] == 1

        stats = client.get("/events/stats", params={"shop": SHOP}).json()
        assert stats["data"]["by_topic"] == {"customers/create": 1, "orders/create": 1}

        event = client.get("/events/d-1", params={"shop": SHOP})
        assert event.status_code == 200
        assert event.json()["data"]["topic"] == "orders/create"

        assert client.get("/events/d-1", params={"shop": "other.myshopify.com"}).status_code == 404
        assert client.get("/events/missing", params={"shop": SHOP}).status_code == 404
