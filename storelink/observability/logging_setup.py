"""Logging setup with request context.

Every record gets a ``shop_domain`` attribute taken from the ContextVar the
transport middleware sets, so log lines for one delivery or one OAuth
callback can be correlated without passing the shop around.
"""
from __future__ import annotations
from contextvars import ContextVar
import logging

_current_shop: ContextVar[str] = ContextVar("current_shop", default="-")

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s [shop=%(shop_domain)s] %(message)s"


def get_current_shop() -> str:
    """Return the shop domain bound to the current request, or ``-``."""
    return _current_shop.get()


def bind_shop(shop_domain: str | None):
    """Bind a shop domain to the current context. Returns a reset token."""
    return _current_shop.set(shop_domain or "-")


def unbind_shop(token) -> None:
    _current_shop.reset(token)


class ShopContextFilter(logging.Filter):
    """Stamp ``shop_domain`` onto log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "shop_domain"):
            record.shop_domain = get_current_shop()
        return True


def configure_logging(level: str = "INFO", fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    """Install a stream handler on the ``storelink`` logger.

    Safe to call more than once; the handler is only added the first time.
    """
    logger = logging.getLogger("storelink")
    logger.setLevel(level.upper())

    if not any(getattr(h, "_storelink", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(ShopContextFilter())
        handler._storelink = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger
