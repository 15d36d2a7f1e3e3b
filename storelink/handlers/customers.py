"""customers/* webhooks: save the payload as the customer record."""
from __future__ import annotations
from typing import Any
import logging

from storelink.events.dispatcher import EventMetadata, HandlerResult
from storelink.events.topics import WebhookTopic
from storelink.handlers.repository import ResourceRepository

logger = logging.getLogger(__name__)


def _tags(value: Any) -> list[str]:
    if isinstance(value, list):
        return value
    return [t.strip() for t in str(value or "").split(",") if t.strip()]


def customer_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Platform customer payload → stored fields (spend totals excluded)."""
    return {
        "email": data.get("email") or "",
        "first_name": data.get("first_name") or "",
        "last_name": data.get("last_name") or "",
        "phone": data.get("phone") or "",
        "state": data.get("state") or "disabled",
        "verified_email": bool(data.get("verified_email")),
        "tax_exempt": bool(data.get("tax_exempt")),
        "tags": _tags(data.get("tags")),
        "note": data.get("note") or "",
        "default_address": data.get("default_address") or {},
    }


class CustomerHandler:
    def __init__(self, customers: ResourceRepository):
        self.customers = customers

    async def handle(self, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        if metadata.topic not in (WebhookTopic.CUSTOMERS_CREATE, WebhookTopic.CUSTOMERS_UPDATE):
            return HandlerResult(False, f"Unsupported customer webhook topic: {metadata.topic}")

        customer_id = payload.get("id")
        if customer_id is None:
            return HandlerResult(False, "Customer payload has no id")

        existing = await self.customers.get(metadata.shop_domain, customer_id) or {}
        # Spend totals are owned by the order ledger; never overwrite them here.
        record = {**existing, **customer_fields(payload)}
        await self.customers.save(metadata.shop_domain, customer_id, record)

        action = "created" if metadata.topic == WebhookTopic.CUSTOMERS_CREATE else "updated"
        logger.info("Customer %s %s", customer_id, action)
        return HandlerResult(
            True,
            f"Customer {action}",
            {"customer_id": customer_id, "action": action},
        )
