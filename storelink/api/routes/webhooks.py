"""Inbound webhook endpoint.

POST /webhooks/{topic}/{action}

The raw body is verified before it is parsed. Status codes:
- 400: required delivery headers missing
- 401: signature rejected
- 200: everything the dispatcher handled, including handler failures and
  duplicates, so the platform does not redeliver work already attempted
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from storelink.api.routes import get_container
from storelink.api.schemas import ErrorResponse, WebhookResponse
from storelink.container import ServiceContainer
from storelink.events import DeliveryState, EventMetadata
from storelink.resilience import fallback_delivery_id

logger = logging.getLogger(__name__)

router = APIRouter()

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
SHOP_HEADER = "X-Shopify-Shop-Domain"
TOPIC_HEADER = "X-Shopify-Topic"
WEBHOOK_ID_HEADER = "X-Shopify-Webhook-Id"
API_VERSION_HEADER = "X-Shopify-API-Version"


@router.post(
    "/{topic}/{action}",
    response_model=WebhookResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def receive_webhook(
    topic: str,
    action: str,
    request: Request,
    container: ServiceContainer = Depends(get_container),
):
    raw_body = await request.body()
    signature = request.headers.get(HMAC_HEADER)
    shop = request.headers.get(SHOP_HEADER)

    missing = [name for name, value in ((HMAC_HEADER, signature), (SHOP_HEADER, shop)) if not value]
    if missing:
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error="Missing webhook headers",
                message=", ".join(missing),
            ).model_dump(),
        )

    full_topic = request.headers.get(TOPIC_HEADER) or f"{topic}/{action}"
    delivery_id = request.headers.get(WEBHOOK_ID_HEADER) or fallback_delivery_id(full_topic, shop, raw_body)
    metadata = EventMetadata(
        topic=full_topic,
        shop_domain=shop.strip(),
        delivery_id=delivery_id,
        api_version=request.headers.get(API_VERSION_HEADER),
    )
    logger.info("Webhook received: %s (%s)", full_topic, delivery_id)

    outcome = await container.dispatcher.process_delivery(
        raw_body,
        signature,
        metadata,
        container.settings.require_webhook_secret(),
    )

    if outcome.state == DeliveryState.REJECTED:
        return JSONResponse(
            status_code=401,
            content=ErrorResponse(error="Invalid webhook signature").model_dump(),
        )

    result = outcome.result
    return WebhookResponse(
        success=result.success if result else False,
        message=result.message if result else "",
        state=outcome.state.value,
        delivery_id=delivery_id,
        topic=full_topic,
        duplicate=outcome.duplicate,
        data=result.data if result else None,
    )
