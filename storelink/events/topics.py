"""Webhook topics delivered by the commerce platform."""
from enum import Enum


class WebhookTopic(str, Enum):
    PRODUCTS_CREATE = "products/create"
    PRODUCTS_UPDATE = "products/update"
    PRODUCTS_DELETE = "products/delete"

    ORDERS_CREATE = "orders/create"
    ORDERS_UPDATED = "orders/updated"
    ORDERS_PAID = "orders/paid"
    ORDERS_CANCELLED = "orders/cancelled"
    ORDERS_FULFILLED = "orders/fulfilled"

    CUSTOMERS_CREATE = "customers/create"
    CUSTOMERS_UPDATE = "customers/update"

    APP_UNINSTALLED = "app/uninstalled"


def namespace_of(topic: str) -> str:
    """``"orders/paid"`` → ``"orders"``."""
    return (topic or "").split("/", 1)[0]
