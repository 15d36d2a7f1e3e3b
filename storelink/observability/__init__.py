"""Logging and request-context helpers."""
from storelink.observability.logging_setup import (
    ShopContextFilter,
    bind_shop,
    configure_logging,
    get_current_shop,
    unbind_shop,
)

__all__ = [
    "ShopContextFilter",
    "bind_shop",
    "configure_logging",
    "get_current_shop",
    "unbind_shop",
]
