"""Domain webhook handlers, one per topic namespace."""
from storelink.events.dispatcher import EventDispatcher
from storelink.handlers.app import AppHandler
from storelink.handlers.customers import CustomerHandler
from storelink.handlers.orders import OrderHandler
from storelink.handlers.products import ProductHandler
from storelink.handlers.repository import ResourceRepository
from storelink.platform.client import ProductClient
from storelink.reporting import ErrorReporter
from storelink.stores.base import KeyValueStore
from storelink.vault import CredentialVault


def register_default_handlers(
    dispatcher: EventDispatcher,
    store: KeyValueStore,
    vault: CredentialVault,
    product_client: ProductClient,
    reporter: ErrorReporter,
) -> None:
    """Wire the products/orders/customers/app handlers into ``dispatcher``."""
    customers = ResourceRepository(store, "customers")
    dispatcher.register_handler(
        "products",
        ProductHandler(ResourceRepository(store, "products"), vault, product_client, reporter),
    )
    dispatcher.register_handler("orders", OrderHandler(ResourceRepository(store, "orders"), customers))
    dispatcher.register_handler("customers", CustomerHandler(customers))
    dispatcher.register_handler("app", AppHandler(vault))


__all__ = [
    "AppHandler",
    "CustomerHandler",
    "OrderHandler",
    "ProductHandler",
    "ResourceRepository",
    "register_default_handlers",
]
