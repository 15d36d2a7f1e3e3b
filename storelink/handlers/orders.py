"""
orders/* webhooks: persist orders and keep customer spend in step.

Customer totals are derived, not accumulated: the customer record holds a
ledger ``{order_id: total}`` and ``total_spent`` / ``orders_count`` are
recomputed from it on every change. Redelivering the same order therefore
leaves the totals unchanged.
"""
from __future__ import annotations
from decimal import Decimal, InvalidOperation
from typing import Any
import asyncio
import logging
import weakref

from storelink.events.dispatcher import EventMetadata, HandlerResult
from storelink.events.topics import WebhookTopic
from storelink.handlers.customers import customer_fields
from storelink.handlers.repository import ResourceRepository

logger = logging.getLogger(__name__)


def _money(value: Any) -> Decimal:
    try:
        return Decimal(str(value or "0"))
    except InvalidOperation:
        return Decimal("0")


def _customer_id(customer: dict[str, Any] | None) -> str | None:
    if not customer or customer.get("id") is None:
        return None
    return str(customer["id"])


def _tags(value: Any) -> list[str]:
    if isinstance(value, list):
        return value
    return [t.strip() for t in str(value or "").split(",") if t.strip()]


def order_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Webhook order payload → stored fields."""
    return {
        "order_name": data.get("name") or f"#{data.get('order_number', '')}",
        "order_number": data.get("order_number"),
        "email": data.get("email") or data.get("contact_email") or "",
        "total_price": str(_money(data.get("total_price"))),
        "subtotal_price": str(_money(data.get("subtotal_price"))),
        "total_tax": str(_money(data.get("total_tax"))),
        "total_discounts": str(_money(data.get("total_discounts"))),
        "currency": data.get("currency") or "USD",
        "financial_status": data.get("financial_status") or "pending",
        "fulfillment_status": data.get("fulfillment_status") or "unfulfilled",
        "line_items": data.get("line_items") or [],
        "shipping_address": data.get("shipping_address") or {},
        "tags": _tags(data.get("tags")),
        "test": bool(data.get("test")),
        "cancelled_at": data.get("cancelled_at"),
        "cancel_reason": data.get("cancel_reason"),
    }


class OrderHandler:
    """
    Handles every orders/* topic.

    Spend updates for one customer are serialised with an in-process lock
    keyed by shop and customer id. Separate processes can still interleave
    the read-modify-write of a customer record, the same limit the delivery
    ledger has; a later redelivery of either order repairs the ledger.
    """

    def __init__(self, orders: ResourceRepository, customers: ResourceRepository):
        self.orders = orders
        self.customers = customers
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def handle(self, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        order_id = payload.get("id")
        if order_id is None:
            return HandlerResult(False, "Order payload has no id")

        topic = metadata.topic
        if topic in (WebhookTopic.ORDERS_CREATE, WebhookTopic.ORDERS_UPDATED):
            return await self._save(order_id, payload, metadata)
        if topic == WebhookTopic.ORDERS_PAID:
            return await self._set_status(order_id, payload, metadata, "paid", financial_status="paid")
        if topic == WebhookTopic.ORDERS_FULFILLED:
            return await self._set_status(order_id, payload, metadata, "fulfilled", fulfillment_status="fulfilled")
        if topic == WebhookTopic.ORDERS_CANCELLED:
            return await self._cancel(order_id, payload, metadata)
        return HandlerResult(False, f"Unsupported order webhook topic: {topic}")

    async def _save(self, order_id: Any, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        shop = metadata.shop_domain
        customer = payload.get("customer")
        customer_id = _customer_id(customer)

        record = await self.orders.save(shop, order_id, {**order_fields(payload), "customer_id": customer_id})
        await self._sync_customer(shop, customer, order_id, record)

        action = "created" if metadata.topic == WebhookTopic.ORDERS_CREATE else "updated"
        return HandlerResult(
            True,
            f"Order {action}",
            {"order_id": order_id, "action": action, "customer_id": customer_id},
        )

    async def _set_status(
        self,
        order_id: Any,
        payload: dict[str, Any],
        metadata: EventMetadata,
        action: str,
        **status: str,
    ) -> HandlerResult:
        shop = metadata.shop_domain
        updated = await self.orders.update(shop, order_id, status)
        if updated is None:
            # Status webhook arrived before the create; the payload is a full order.
            customer = payload.get("customer")
            updated = await self.orders.save(
                shop, order_id, {**order_fields(payload), "customer_id": _customer_id(customer), **status}
            )
            await self._sync_customer(shop, customer, order_id, updated)
        return HandlerResult(True, f"Order {action}", {"order_id": order_id, "action": action, **status})

    async def _cancel(self, order_id: Any, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        shop = metadata.shop_domain
        changes = {
            "financial_status": payload.get("financial_status") or "voided",
            "cancelled_at": payload.get("cancelled_at"),
            "cancel_reason": payload.get("cancel_reason"),
        }
        updated = await self.orders.update(shop, order_id, changes)
        customer_id = (updated or {}).get("customer_id") or _customer_id(payload.get("customer"))
        if customer_id is not None:
            async with self._customer_lock(shop, customer_id):
                await self._record_spend(shop, customer_id, order_id, None)
        return HandlerResult(True, "Order cancelled", {"order_id": order_id, "action": "cancelled"})

    # --- Customer spend ---

    def _customer_lock(self, shop: str, customer_id: str) -> asyncio.Lock:
        key = (shop, customer_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def _sync_customer(
        self,
        shop: str,
        customer: dict[str, Any] | None,
        order_id: Any,
        order: dict[str, Any],
    ) -> None:
        """Upsert the order's customer and set its spend entry. Cancelled orders count nothing."""
        customer_id = _customer_id(customer)
        if customer_id is None:
            return
        total = None if order.get("cancelled_at") else _money(order["total_price"])
        async with self._customer_lock(shop, customer_id):
            await self._upsert_customer(shop, customer_id, customer)
            await self._record_spend(shop, customer_id, order_id, total)

    async def _upsert_customer(self, shop: str, customer_id: str, customer: dict[str, Any]) -> None:
        if await self.customers.get(shop, customer_id) is None:
            await self.customers.save(
                shop,
                customer_id,
                {**customer_fields(customer), "order_totals": {}, "total_spent": "0", "orders_count": 0},
            )

    async def _record_spend(self, shop: str, customer_id: str, order_id: Any, total: Decimal | None) -> None:
        """Set (or with ``total=None`` remove) one order's entry and recompute totals."""
        customer = await self.customers.get(shop, customer_id)
        if customer is None:
            logger.warning("Customer %s missing; spend not updated", customer_id)
            return
        ledger = dict(customer.get("order_totals") or {})
        if total is None:
            ledger.pop(str(order_id), None)
        else:
            ledger[str(order_id)] = str(total)
        await self.customers.save(
            shop,
            customer_id,
            {
                **customer,
                "order_totals": ledger,
                "total_spent": str(sum((_money(v) for v in ledger.values()), Decimal("0"))),
                "orders_count": len(ledger),
            },
        )
