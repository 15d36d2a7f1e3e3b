"""
OAuth2 install flow for the commerce platform.

1. ``authorize_url(shop)`` issues a single-use state bound to the shop
2. the merchant approves and the platform redirects with ``code`` + ``state``
3. ``complete_callback(shop, code, state)`` burns the state, checks the shop,
   exchanges the code, and stores the token encrypted in the vault
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any
import logging
import re

import httpx

from storelink.config import PlatformConfig
from storelink.errors import AuthError, PlatformApiError, ValidationError
from storelink.resilience.executor import RateLimitedExecutor, RetryConfig, RetryContext
from storelink.vault import CredentialVault, SecretRecord

logger = logging.getLogger(__name__)

SHOP_SUFFIX = ".myshopify.com"

_SCHEME = re.compile(r"^https?://")
_SHOP_NAME = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9\-]*[a-zA-Z0-9]")

# The authorization code is single-use; one retry covers a dropped connection.
EXCHANGE_RETRY = RetryConfig(max_retries=1)


def sanitize_shop_domain(shop: str | None) -> str:
    """Normalise ``acme``, ``https://acme.myshopify.com`` etc. to ``acme.myshopify.com``."""
    if not shop or not isinstance(shop, str):
        raise ValidationError("Shop domain is required", field="shop")

    name = _SCHEME.sub("", shop.strip()).rstrip("/")
    if name.endswith(SHOP_SUFFIX):
        name = name[: -len(SHOP_SUFFIX)]
    if not _SHOP_NAME.fullmatch(name):
        raise ValidationError("Invalid shop domain format", field="shop", value=shop)
    return name + SHOP_SUFFIX


@dataclass
class AuthorizationRequest:
    shop_domain: str
    url: str
    state: str


@dataclass
class TokenGrant:
    """A completed install. The token itself stays in the vault."""
    shop_domain: str
    scopes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"shop_domain": self.shop_domain, "scopes": self.scopes}


class OAuthService:
    """Authorization-code flow backed by the CredentialVault."""

    def __init__(
        self,
        vault: CredentialVault,
        http: httpx.AsyncClient,
        executor: RateLimitedExecutor,
        config: PlatformConfig,
    ):
        self.vault = vault
        self.http = http
        self.executor = executor
        self.config = config

    async def authorize_url(self, shop: str) -> AuthorizationRequest:
        shop_domain = sanitize_shop_domain(shop)
        state = await self.vault.issue_state(shop_domain)
        url = httpx.URL(
            f"https://{shop_domain}/admin/oauth/authorize",
            params={
                "client_id": self.config.client_id,
                "scope": ",".join(self.config.scopes),
                "redirect_uri": self.config.redirect_uri,
                "state": state,
            },
        )
        return AuthorizationRequest(shop_domain=shop_domain, url=str(url), state=state)

    async def complete_callback(self, shop: str, code: str, state: str) -> TokenGrant:
        """Validate the callback and persist the token.

        Raises AuthError for an invalid/expired/replayed state, a shop that
        does not match the state, or a failed code exchange.
        """
        shop_domain = sanitize_shop_domain(shop)
        if not code:
            raise ValidationError("Authorization code is required", field="code")

        validation = await self.vault.consume_state(state)
        if not validation.valid:
            raise AuthError("Invalid state parameter. Possible CSRF attack.", shop=shop_domain)
        if validation.domain_id != shop_domain:
            logger.warning("OAuth callback shop %s does not match state", shop_domain)
            raise AuthError("Shop domain mismatch", shop=shop_domain)

        token_data = await self.exchange_code(shop_domain, code)
        scopes = [s for s in str(token_data.get("scope", "")).split(",") if s]
        await self.vault.store_secret(shop_domain, token_data["access_token"], scopes)
        logger.info("Completed install for %s", shop_domain)
        return TokenGrant(shop_domain=shop_domain, scopes=scopes)

    async def exchange_code(self, shop_domain: str, code: str) -> dict[str, Any]:
        async def post() -> dict[str, Any]:
            resp = await self.http.post(
                f"https://{shop_domain}/admin/oauth/access_token",
                json={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "code": code,
                },
                timeout=self.config.request_timeout_s,
            )
            if not resp.is_success:
                raise PlatformApiError(
                    f"HTTP {resp.status_code}: token exchange failed",
                    status_code=resp.status_code,
                    headers=dict(resp.headers),
                )
            return resp.json()

        result = await self.executor.execute(
            post,
            RetryContext(operation="exchangeCodeForToken", shop_domain=shop_domain),
            EXCHANGE_RETRY,
        )
        if not result.success or not result.data or "access_token" not in result.data:
            raise AuthError(
                "Failed to exchange code for token",
                shop=shop_domain,
                reason=str(result.error) if result.error else "missing access_token",
            )
        return result.data

    async def get_stored_token(self, shop: str) -> SecretRecord | None:
        return await self.vault.get_secret(sanitize_shop_domain(shop))

    async def revoke_token(self, shop: str) -> bool:
        return await self.vault.delete_secret(sanitize_shop_domain(shop))
