"""
Webhook Event Log: audit trail of verified deliveries.

Each delivery is stored at ``event:{delivery_id}`` with a 30-day TTL. A
bounded per-shop index at ``events:{shop}`` (newest first) supports listing
and stats without a scan, since the KeyValueStore has no range queries.
"""
from __future__ import annotations
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable
import logging
import time

from storelink.stores.base import KeyValueStore

logger = logging.getLogger(__name__)

EVENT_PREFIX = "event:"
INDEX_PREFIX = "events:"


class WebhookEventLog:
    """Persists processed deliveries for later inspection."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = 30 * 24 * 60 * 60,
        index_limit: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.index_limit = index_limit
        self._clock = clock

    async def record(
        self,
        delivery_id: str,
        shop_domain: str,
        topic: str,
        status: str,
        message: str = "",
        event_data: Any = None,
    ) -> dict[str, Any]:
        """Write one event and push it onto the shop index."""
        item = {
            "event_id": delivery_id,
            "shop_domain": shop_domain,
            "topic": topic,
            "status": status,
            "message": message,
            "created_at": datetime.fromtimestamp(self._clock(), timezone.utc).isoformat(),
            "event_data": event_data,
        }
        await self.store.put(EVENT_PREFIX + delivery_id, item, ttl_seconds=self.ttl_seconds)

        index_key = INDEX_PREFIX + shop_domain
        index = await self.store.get(index_key) or {"event_ids": []}
        ids = [delivery_id] + [i for i in index["event_ids"] if i != delivery_id]
        await self.store.put(
            index_key,
            {"event_ids": ids[: self.index_limit]},
            ttl_seconds=self.ttl_seconds,
        )
        logger.debug("Logged %s event %s", topic, delivery_id)
        return item

    async def get_event(self, delivery_id: str) -> dict[str, Any] | None:
        return await self.store.get(EVENT_PREFIX + delivery_id)

    async def list_events(
        self,
        shop_domain: str,
        limit: int = 50,
        topic: str | None = None,
    ) -> list[dict[str, Any]]:
        """Most recent events for a shop, optionally filtered by topic."""
        index = await self.store.get(INDEX_PREFIX + shop_domain) or {"event_ids": []}
        events: list[dict[str, Any]] = []
        for event_id in index["event_ids"]:
            event = await self.get_event(event_id)
            if event is None:
                continue
            if topic and event.get("topic") != topic:
                continue
            events.append(event)
            if len(events) >= limit:
                break
        return events

    async def stats(self, shop_domain: str) -> dict[str, Any]:
        events = await self.list_events(shop_domain, limit=self.index_limit)
        return {
            "total": len(events),
            "by_topic": dict(Counter(e.get("topic", "unknown") for e in events)),
            "by_status": dict(Counter(e.get("status", "unknown") for e in events)),
            "recent": events[:10],
            "last_event": events[0]["created_at"] if events else None,
        }
