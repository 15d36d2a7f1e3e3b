"""
Webhook subscription management over the Admin GraphQL API.

Registers, lists, reads, and deletes a shop's webhook subscriptions with
the access token held in the CredentialVault. Every call goes through
AdminApiClient, so it is retried and reported like any other platform
call. Subscriptions come back in the REST webhook shape the rest of the
service speaks:

    {"id": 123, "address": "https://...", "topic": "orders/create",
     "format": "json", "api_version": "2025-07",
     "created_at": "...", "updated_at": "..."}
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any
import logging

from storelink.platform.client import AdminApiClient
from storelink.vault import CredentialVault

logger = logging.getLogger(__name__)

SUBSCRIPTION_GID_PREFIX = "gid://shopify/WebhookSubscription/"
DEFAULT_PAGE_SIZE = 100

_FIELDS = "id callbackUrl topic format apiVersion createdAt updatedAt"

CREATE_MUTATION = f"""
mutation webhookSubscriptionCreate($topic: WebhookSubscriptionTopic!, $webhookSubscription: WebhookSubscriptionInput!) {{
  webhookSubscriptionCreate(topic: $topic, webhookSubscription: $webhookSubscription) {{
    webhookSubscription {{ {_FIELDS} }}
    userErrors {{ field message }}
  }}
}}
"""

LIST_QUERY = f"""
query webhookSubscriptions($first: Int!) {{
  webhookSubscriptions(first: $first) {{
    nodes {{ {_FIELDS} }}
  }}
}}
"""

GET_QUERY = f"""
query webhookSubscription($id: ID!) {{
  webhookSubscription(id: $id) {{ {_FIELDS} }}
}}
"""

DELETE_MUTATION = """
mutation webhookSubscriptionDelete($id: ID!) {
  webhookSubscriptionDelete(id: $id) {
    deletedWebhookSubscriptionId
    userErrors { field message }
  }
}
"""


def to_subscription_topic(topic: str) -> str:
    """``orders/create`` -> ``ORDERS_CREATE``."""
    return topic.strip().upper().replace("/", "_")


def from_subscription_topic(topic: str) -> str:
    """``ORDERS_PARTIALLY_FULFILLED`` -> ``orders/partially_fulfilled``."""
    return topic.lower().replace("_", "/", 1)


def subscription_gid(subscription_id: int | str) -> str:
    subscription_id = str(subscription_id)
    if subscription_id.startswith("gid://"):
        return subscription_id
    return SUBSCRIPTION_GID_PREFIX + subscription_id


def to_rest_webhook(node: dict[str, Any]) -> dict[str, Any]:
    """Convert a GraphQL WebhookSubscription node to the REST webhook shape."""
    raw_id = str(node.get("id", ""))
    numeric = raw_id.removeprefix(SUBSCRIPTION_GID_PREFIX)
    return {
        "id": int(numeric) if numeric.isdigit() else raw_id,
        "address": node.get("callbackUrl"),
        "topic": from_subscription_topic(node.get("topic") or ""),
        "format": (node.get("format") or "JSON").lower(),
        "api_version": node.get("apiVersion"),
        "created_at": node.get("createdAt"),
        "updated_at": node.get("updatedAt"),
    }


@dataclass
class SubscriptionResult:
    success: bool
    message: str
    data: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            body["data"] = self.data
        if self.error is not None:
            body["error"] = self.error
        return body


def _user_errors(payload: dict[str, Any] | None) -> str | None:
    errors = (payload or {}).get("userErrors") or []
    if not errors:
        return None
    return ", ".join(str(e.get("message", e)) for e in errors)


class WebhookSubscriptionClient:
    """
    Manages webhook subscriptions for installed shops.

    Usage::

        subscriptions = WebhookSubscriptionClient(admin_client, vault)
        result = await subscriptions.create(
            "acme.myshopify.com", "orders/create", "https://app.example.com/webhooks/orders/create"
        )
        if result.success:
            webhook_id = result.data["id"]
    """

    def __init__(self, client: AdminApiClient, vault: CredentialVault):
        self.client = client
        self.vault = vault

    async def create(
        self,
        shop_domain: str,
        topic: str,
        address: str,
        format: str = "json",
        fields: list[str] | None = None,
        metafield_namespaces: list[str] | None = None,
        private_metafield_namespaces: list[str] | None = None,
        request_id: str | None = None,
    ) -> SubscriptionResult:
        token = await self._token(shop_domain)
        if token is None:
            return _no_token(shop_domain)

        subscription: dict[str, Any] = {
            "callbackUrl": address,
            "format": format.upper(),
            "apiVersion": self.client.api_version,
        }
        optional = {
            "includeFields": fields,
            "metafieldNamespaces": metafield_namespaces,
            "privateMetafieldNamespaces": private_metafield_namespaces,
        }
        subscription.update({k: v for k, v in optional.items() if v is not None})

        result = await self.client.execute(
            shop_domain,
            token,
            CREATE_MUTATION,
            {"topic": to_subscription_topic(topic), "webhookSubscription": subscription},
            operation="registerWebhook",
            request_id=request_id,
        )
        if not result.success:
            return SubscriptionResult(False, str(result.error), error="GraphQL mutation failed")

        payload = (result.data.data or {}).get("webhookSubscriptionCreate")
        problems = _user_errors(payload)
        if problems:
            return SubscriptionResult(False, problems, error="Webhook registration rejected")

        node = (payload or {}).get("webhookSubscription")
        if not node:
            return SubscriptionResult(
                False, "No webhook subscription data returned", error="Invalid response"
            )

        webhook = to_rest_webhook(node)
        logger.info("Registered %s webhook %s for %s", webhook["topic"], webhook["id"], shop_domain)
        return SubscriptionResult(True, "Webhook registered successfully", data=webhook)

    async def list_subscriptions(
        self,
        shop_domain: str,
        limit: int = DEFAULT_PAGE_SIZE,
        request_id: str | None = None,
    ) -> SubscriptionResult:
        token = await self._token(shop_domain)
        if token is None:
            return _no_token(shop_domain)

        result = await self.client.execute(
            shop_domain,
            token,
            LIST_QUERY,
            {"first": limit},
            operation="listWebhooks",
            request_id=request_id,
        )
        if not result.success:
            return SubscriptionResult(False, str(result.error), error="Failed to list webhooks")

        connection = (result.data.data or {}).get("webhookSubscriptions") or {}
        webhooks = [to_rest_webhook(node) for node in connection.get("nodes") or []]
        return SubscriptionResult(True, "Webhooks retrieved successfully", data=webhooks)

    async def get(
        self,
        shop_domain: str,
        subscription_id: int | str,
        request_id: str | None = None,
    ) -> SubscriptionResult:
        token = await self._token(shop_domain)
        if token is None:
            return _no_token(shop_domain)

        result = await self.client.execute(
            shop_domain,
            token,
            GET_QUERY,
            {"id": subscription_gid(subscription_id)},
            operation="getWebhook",
            request_id=request_id,
        )
        if not result.success:
            return SubscriptionResult(False, str(result.error), error="Failed to get webhook")

        node = (result.data.data or {}).get("webhookSubscription")
        if not node:
            return SubscriptionResult(
                False, f"No webhook subscription with ID {subscription_id}", error="Webhook not found"
            )
        return SubscriptionResult(True, "Webhook retrieved successfully", data=to_rest_webhook(node))

    async def delete(
        self,
        shop_domain: str,
        subscription_id: int | str,
        request_id: str | None = None,
    ) -> SubscriptionResult:
        token = await self._token(shop_domain)
        if token is None:
            return _no_token(shop_domain)

        result = await self.client.execute(
            shop_domain,
            token,
            DELETE_MUTATION,
            {"id": subscription_gid(subscription_id)},
            operation="deleteWebhook",
            request_id=request_id,
        )
        if not result.success:
            return SubscriptionResult(False, str(result.error), error="Failed to delete webhook")

        payload = (result.data.data or {}).get("webhookSubscriptionDelete")
        problems = _user_errors(payload)
        if problems:
            return SubscriptionResult(False, problems, error="Failed to delete webhook")
        if not (payload or {}).get("deletedWebhookSubscriptionId"):
            return SubscriptionResult(
                False, f"No webhook subscription with ID {subscription_id}", error="Webhook not found"
            )

        logger.info("Deleted webhook %s for %s", subscription_id, shop_domain)
        return SubscriptionResult(True, "Webhook deleted successfully")

    async def _token(self, shop_domain: str) -> str | None:
        record = await self.vault.get_secret(shop_domain)
        return record.secret if record else None


def _no_token(shop_domain: str) -> SubscriptionResult:
    logger.warning("No access token for %s; cannot manage webhooks", shop_domain)
    return SubscriptionResult(
        False,
        f"No valid access token found for shop: {shop_domain}. Please reinstall the app.",
        error="No access token found",
    )
