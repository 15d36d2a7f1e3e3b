"""KV-backed repository for synced platform resources.

Records are keyed ``{resource}:{shop}:{id}``, so every read and write is
isolated per shop. ``save`` is an upsert: the first write stamps
``created_at``, later ones keep it and refresh ``updated_at``.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any

from storelink.stores.base import KeyValueStore


class ResourceRepository:
    """CRUD over one resource type for many shops.

    Usage::

        orders = ResourceRepository(store, "orders")
        await orders.save("acme.myshopify.com", "1001", {"total_price": "10.00"})
        order = await orders.get("acme.myshopify.com", "1001")
    """

    def __init__(self, store: KeyValueStore, resource: str):
        self.store = store
        self.resource = resource

    def _key(self, shop_domain: str, item_id: str | int) -> str:
        return f"{self.resource}:{shop_domain}:{item_id}"

    async def get(self, shop_domain: str, item_id: str | int) -> dict[str, Any] | None:
        return await self.store.get(self._key(shop_domain, item_id))

    async def save(self, shop_domain: str, item_id: str | int, data: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        existing = await self.get(shop_domain, item_id)
        record = {
            **data,
            "id": str(item_id),
            "shop_domain": shop_domain,
            "created_at": (existing or {}).get("created_at", now),
            "updated_at": now,
        }
        await self.store.put(self._key(shop_domain, item_id), record)
        return record

    async def update(self, shop_domain: str, item_id: str | int, changes: dict[str, Any]) -> dict[str, Any] | None:
        """Merge ``changes`` into an existing record. None if not found."""
        existing = await self.get(shop_domain, item_id)
        if existing is None:
            return None
        return await self.save(shop_domain, item_id, {**existing, **changes})

    async def delete(self, shop_domain: str, item_id: str | int) -> bool:
        return await self.store.delete_if_exists(self._key(shop_domain, item_id))
