"""Webhook subscription management for installed shops.

- POST   /webhooks/subscriptions?shop=        → register a subscription
- GET    /webhooks/subscriptions?shop=        → list subscriptions
- GET    /webhooks/subscriptions/{id}?shop=   → a single subscription
- DELETE /webhooks/subscriptions/{id}?shop=   → remove a subscription
"""

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import JSONResponse

from storelink.api.routes import get_container
from storelink.api.schemas import ErrorResponse, SubscriptionCreate, SubscriptionResponse
from storelink.container import ServiceContainer
from storelink.platform import SubscriptionResult, sanitize_shop_domain

router = APIRouter()


def _respond(shop: str, result: SubscriptionResult, ok: int, failed: int):
    if not result.success:
        return JSONResponse(
            status_code=failed,
            content=ErrorResponse(error=result.error or "Request failed", message=result.message).model_dump(),
        )
    body = SubscriptionResponse(shop=shop, message=result.message, data=result.data)
    return JSONResponse(status_code=ok, content=body.model_dump())


@router.post("", status_code=201, response_model=SubscriptionResponse)
async def register_subscription(
    body: SubscriptionCreate,
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    shop_domain = sanitize_shop_domain(shop)
    result = await container.subscriptions.create(
        shop_domain,
        body.topic,
        body.address,
        format=body.format.value,
        fields=body.fields,
        metafield_namespaces=body.metafield_namespaces,
        private_metafield_namespaces=body.private_metafield_namespaces,
    )
    return _respond(shop_domain, result, 201, 400)


@router.get("", response_model=SubscriptionResponse)
async def list_subscriptions(
    shop: str = Query(..., min_length=1),
    limit: int = Query(100, ge=1, le=250),
    container: ServiceContainer = Depends(get_container),
):
    shop_domain = sanitize_shop_domain(shop)
    result = await container.subscriptions.list_subscriptions(shop_domain, limit=limit)
    return _respond(shop_domain, result, 200, 400)


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription(
    subscription_id: int = Path(..., gt=0),
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    shop_domain = sanitize_shop_domain(shop)
    result = await container.subscriptions.get(shop_domain, subscription_id)
    return _respond(shop_domain, result, 200, 404)


@router.delete("/{subscription_id}", response_model=SubscriptionResponse)
async def delete_subscription(
    subscription_id: int = Path(..., gt=0),
    shop: str = Query(..., min_length=1),
    container: ServiceContainer = Depends(get_container),
):
    shop_domain = sanitize_shop_domain(shop)
    result = await container.subscriptions.delete(shop_domain, subscription_id)
    return _respond(shop_domain, result, 200, 404)
