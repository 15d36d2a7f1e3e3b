"""OAuth install endpoints.

- GET    /auth/authorize?shop=        → authorize URL with a fresh state
- GET    /auth/callback?code&state&shop → burn state, exchange, store token
- GET    /auth/status?shop=           → whether a token is stored
- DELETE /auth/token?shop=            → remove the stored token
"""

from fastapi import APIRouter, Depends, Query

from storelink.api.routes import get_container
from storelink.api.schemas import (
    AuthorizeResponse,
    CallbackResponse,
    RevokeResponse,
    TokenStatusResponse,
)
from storelink.container import ServiceContainer
from storelink.platform import sanitize_shop_domain

router = APIRouter()


@router.get("/authorize", response_model=AuthorizeResponse)
async def authorize(
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    container.settings.require_oauth_credentials()
    request = await container.oauth.authorize_url(shop)
    return AuthorizeResponse(shop=request.shop_domain, auth_url=request.url)


@router.get("/callback", response_model=CallbackResponse)
async def callback(
    code: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    container.settings.require_oauth_credentials()
    grant = await container.oauth.complete_callback(shop, code, state)
    return CallbackResponse(shop=grant.shop_domain, scopes=grant.scopes)


@router.get("/status", response_model=TokenStatusResponse)
async def status(
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    shop_domain = sanitize_shop_domain(shop)
    record = await container.oauth.get_stored_token(shop_domain)
    if record is None:
        return TokenStatusResponse(shop=shop_domain, authenticated=False)
    return TokenStatusResponse(
        shop=shop_domain,
        authenticated=True,
        scopes=record.scope,
        expires_at=record.expires_at.isoformat() if record.expires_at else None,
    )


@router.delete("/token", response_model=RevokeResponse)
async def revoke(
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    shop_domain = sanitize_shop_domain(shop)
    removed = await container.oauth.revoke_token(shop_domain)
    return RevokeResponse(
        success=removed,
        shop=shop_domain,
        message="Token revoked" if removed else "No token stored for this shop",
    )
