"""Shop context middleware using ContextVar.

Extracts the shop the request concerns from the X-Shopify-Shop-Domain header
(webhooks) or the ``shop`` query parameter (OAuth endpoints) and binds it to
the logging ContextVar, so every log line emitted while handling the request
carries it without explicit parameter passing.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from storelink.observability import bind_shop, get_current_shop, unbind_shop

SHOP_HEADER = "X-Shopify-Shop-Domain"

__all__ = ["ShopContextMiddleware", "get_current_shop"]


class ShopContextMiddleware(BaseHTTPMiddleware):
    """Bind the request's shop domain for the duration of the request.

    Priority:
    1. X-Shopify-Shop-Domain header
    2. ``shop`` query parameter
    3. Falls back to "-"
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        shop = request.headers.get(SHOP_HEADER) or request.query_params.get("shop")
        token = bind_shop(shop)
        try:
            return await call_next(request)
        finally:
            unbind_shop(token)
