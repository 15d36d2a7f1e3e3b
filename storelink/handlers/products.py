"""products/* webhooks: enrich from the Admin API and persist."""
from __future__ import annotations
from typing import Any
import logging

from storelink.events.dispatcher import EventMetadata, HandlerResult
from storelink.events.topics import WebhookTopic
from storelink.handlers.repository import ResourceRepository
from storelink.platform.client import PRODUCT_GID_PREFIX, ProductClient
from storelink.reporting import ErrorReporter, report_webhook_error
from storelink.vault import CredentialVault

logger = logging.getLogger(__name__)


def product_fields(product: dict[str, Any]) -> dict[str, Any]:
    """Admin API ``product`` node → stored fields."""
    return {
        "title": product.get("title") or "",
        "handle": product.get("handle") or "",
        "vendor": product.get("vendor") or "",
        "product_type": product.get("productType") or "",
        "status": product.get("status") or "ACTIVE",
        "tags": product.get("tags") or [],
        "description": product.get("descriptionHtml") or product.get("description") or "",
        "variants": (product.get("variants") or {}).get("nodes", []),
        "images": (product.get("images") or {}).get("nodes", []),
        "options": product.get("options") or [],
    }


class ProductHandler:
    """
    create/update: fetch the full product with the shop's token and save it.
    delete: remove the stored product.

    A missing token or a failed fetch is not a delivery failure: the event
    is acknowledged with ``synchronized=False`` so the platform stops
    redelivering something a retry cannot fix.
    """

    def __init__(
        self,
        products: ResourceRepository,
        vault: CredentialVault,
        client: ProductClient,
        reporter: ErrorReporter,
    ):
        self.products = products
        self.vault = vault
        self.client = client
        self.reporter = reporter

    async def handle(self, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        product_id = payload.get("id")
        if product_id is None:
            return HandlerResult(False, "Product payload has no id")

        if metadata.topic in (WebhookTopic.PRODUCTS_CREATE, WebhookTopic.PRODUCTS_UPDATE):
            return await self._sync(product_id, payload, metadata)
        if metadata.topic == WebhookTopic.PRODUCTS_DELETE:
            removed = await self.products.delete(metadata.shop_domain, product_id)
            return HandlerResult(
                True,
                "Product deleted",
                {"product_id": product_id, "action": "deleted", "removed": removed},
            )
        return HandlerResult(False, f"Unsupported product webhook topic: {metadata.topic}")

    async def _sync(self, product_id: Any, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        action = "created" if metadata.topic == WebhookTopic.PRODUCTS_CREATE else "updated"
        shop = metadata.shop_domain

        credential = await self.vault.get_secret(shop)
        if credential is None:
            logger.warning("No access token for %s; product %s sync skipped", shop, product_id)
            return HandlerResult(
                True,
                f"Product {action} logged (sync skipped, no access token)",
                {"product_id": product_id, "action": action, "synchronized": False, "reason": "no_token"},
            )

        result = await self.client.get_product(
            shop, credential.secret, product_id, request_id=metadata.delivery_id
        )
        product = ((result.data.data or {}).get("product") if result.success and result.data else None)
        if not product:
            error = result.error or "Product not found"
            await report_webhook_error(
                self.reporter,
                f"Failed to fetch product data: {error}",
                topic=metadata.topic,
                shop_domain=shop,
                operation="sync_product",
                product_id=product_id,
            )
            return HandlerResult(
                True,
                f"Product {action} processed (data sync failed)",
                {"product_id": product_id, "action": action, "synchronized": False},
            )

        stored_id = str(product.get("id", product_id)).removeprefix(PRODUCT_GID_PREFIX)
        record = await self.products.save(shop, stored_id, product_fields(product))
        return HandlerResult(
            True,
            f"Product {action} and synchronized",
            {
                "product_id": product_id,
                "action": action,
                "synchronized": True,
                "variants_count": len(record["variants"]),
                "images_count": len(record["images"]),
            },
        )
