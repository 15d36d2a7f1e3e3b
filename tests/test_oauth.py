"""Test OAuth install flow: shop sanitizing, state binding, code exchange."""
import json

import httpx
import pytest

from storelink.config import PlatformConfig
from storelink.errors import AuthError, ValidationError
from storelink.platform import OAuthService, sanitize_shop_domain
from storelink.reporting import ErrorCategory, ErrorSeverity
from storelink.resilience import RateLimitedExecutor
from storelink.stores import InMemoryKeyValueStore
from storelink.vault import CredentialVault, TokenCipher

SHOP = "acme.myshopify.com"
CONFIG = PlatformConfig(
    client_id="client-123",
    client_secret="shh",
    redirect_uri="https://app.test/auth/callback",
    scopes=("read_products", "read_orders"),
)


class RecordingReporter:
    def __init__(self):
        self.reports = []

    async def report(self, error, severity=ErrorSeverity.MEDIUM, category=ErrorCategory.UNKNOWN, context=None):
        self.reports.append((error, severity, category, context))


async def no_sleep(seconds):
    return None


class TokenEndpoint:
    """MockTransport handler for the token exchange."""

    def __init__(self, *responses):
        self.responses = list(responses) or [
            httpx.Response(200, json={"access_token": "shpat_abc", "scope": "read_products,read_orders"})
        ]
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def make_service(endpoint=None):
    endpoint = endpoint or TokenEndpoint()
    vault = CredentialVault(InMemoryKeyValueStore(), TokenCipher(bytes(range(32))))
    http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    executor = RateLimitedExecutor(RecordingReporter(), sleep=no_sleep)
    return OAuthService(vault, http, executor, CONFIG), vault, endpoint


# -- sanitize_shop_domain --

@pytest.mark.parametrize("raw", [
    "acme",
    "acme.myshopify.com",
    "https://acme.myshopify.com",
    "http://acme.myshopify.com/",
    "  acme  ",
])
def test_sanitize_accepts_variants(raw):
    assert sanitize_shop_domain(raw) == SHOP


@pytest.mark.parametrize("raw", [None, "", "-acme", "acme-", "ac me", "acme.evil.com", "a", "acme/../x"])
def test_sanitize_rejects_malformed(raw):
    with pytest.raises(ValidationError):
        sanitize_shop_domain(raw)


# -- authorize_url --

@pytest.mark.asyncio
async def test_authorize_url_contains_params_and_state():
    service, vault, _ = make_service()

    request = await service.authorize_url("acme")

    url = httpx.URL(request.url)
    assert url.host == SHOP
    assert url.path == "/admin/oauth/authorize"
    assert url.params["client_id"] == "client-123"
    assert url.params["scope"] == "read_products,read_orders"
    assert url.params["redirect_uri"] == "https://app.test/auth/callback"
    assert url.params["state"] == request.state
    assert len(request.state) == 64


# -- complete_callback --

@pytest.mark.asyncio
async def test_callback_exchanges_and_stores_token():
    service, vault, endpoint = make_service()
    request = await service.authorize_url(SHOP)

    grant = await service.complete_callback(SHOP, "code-xyz", request.state)

    assert grant.shop_domain == SHOP
    assert grant.scopes == ["read_products", "read_orders"]

    sent = endpoint.requests[0]
    assert str(sent.url) == f"https://{SHOP}/admin/oauth/access_token"
    assert json.loads(sent.content) == {"client_id": "client-123", "client_secret": "shh", "code": "code-xyz"}

    record = await vault.get_secret(SHOP)
    assert record.secret == "shpat_abc"
    assert record.scope == ["read_products", "read_orders"]


@pytest.mark.asyncio
async def test_callback_state_is_single_use():
    service, _, endpoint = make_service()
    request = await service.authorize_url(SHOP)
    await service.complete_callback(SHOP, "code-xyz", request.state)

    with pytest.raises(AuthError, match="Invalid state"):
        await service.complete_callback(SHOP, "code-xyz", request.state)
    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_callback_unknown_state():
    service, _, endpoint = make_service()
    with pytest.raises(AuthError):
        await service.complete_callback(SHOP, "code-xyz", "f" * 64)
    assert endpoint.requests == []


@pytest.mark.asyncio
async def test_callback_shop_mismatch():
    service, vault, endpoint = make_service()
    request = await service.authorize_url(SHOP)

    with pytest.raises(AuthError, match="Shop domain mismatch"):
        await service.complete_callback("evil", "code-xyz", request.state)
    assert endpoint.requests == []
    assert await vault.get_secret("evil.myshopify.com") is None


@pytest.mark.asyncio
async def test_callback_requires_code():
    service, _, _ = make_service()
    request = await service.authorize_url(SHOP)
    with pytest.raises(ValidationError):
        await service.complete_callback(SHOP, "", request.state)


@pytest.mark.asyncio
async def test_exchange_rejected_code():
    endpoint = TokenEndpoint(httpx.Response(400, json={"error": "invalid_request"}))
    service, vault, _ = make_service(endpoint)
    request = await service.authorize_url(SHOP)

    with pytest.raises(AuthError, match="Failed to exchange"):
        await service.complete_callback(SHOP, "bad", request.state)
    assert len(endpoint.requests) == 1
    assert await vault.get_secret(SHOP) is None


@pytest.mark.asyncio
async def test_exchange_retries_once_on_server_error():
    endpoint = TokenEndpoint(
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, json={"access_token": "shpat_abc", "scope": "read_products"}),
    )
    service, _, _ = make_service(endpoint)
    request = await service.authorize_url(SHOP)

    grant = await service.complete_callback(SHOP, "code-xyz", request.state)

    assert grant.scopes == ["read_products"]
    assert len(endpoint.requests) == 2


@pytest.mark.asyncio
async def test_exchange_without_access_token():
    endpoint = TokenEndpoint(httpx.Response(200, json={"scope": "read_products"}))
    service, _, _ = make_service(endpoint)
    request = await service.authorize_url(SHOP)
    with pytest.raises(AuthError):
        await service.complete_callback(SHOP, "code-xyz", request.state)


# -- Stored token --

@pytest.mark.asyncio
async def test_get_and_revoke_stored_token():
    service, vault, _ = make_service()
    await vault.store_secret(SHOP, "shpat_abc", ["read_products"])

    assert (await service.get_stored_token("acme")).secret == "shpat_abc"
    assert await service.revoke_token("https://acme.myshopify.com") is True
    assert await service.get_stored_token("acme") is None
    assert await service.revoke_token("acme") is False
