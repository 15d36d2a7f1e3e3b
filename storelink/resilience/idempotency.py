"""
Delivery Ledger: acknowledge duplicate webhook deliveries without rerunning them.

The platform delivers at-least-once and retries anything it did not see a
2xx for, so the same delivery id can arrive more than once. The ledger keeps
one record per delivery id in the KeyValueStore:

- reserve()  → claims the id (IN_PROGRESS); None if already claimed
- complete() → stores the outcome (COMPLETED)
- release()  → drops the claim so a later redelivery can run again

Handlers stay idempotent regardless; the ledger only saves repeated work.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
import hashlib
import json
import logging
import time

from storelink.stores.base import KeyValueStore

logger = logging.getLogger(__name__)

DELIVERY_PREFIX = "delivery:"


class DeliveryStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class DeliveryRecord:
    """Ledger entry for one delivery id."""
    delivery_id: str
    shop_domain: str
    topic: str
    status: DeliveryStatus = DeliveryStatus.IN_PROGRESS
    result: Any = None
    reserved_at: float = 0.0
    completed_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivery_id": self.delivery_id,
            "shop_domain": self.shop_domain,
            "topic": self.topic,
            "status": self.status.value,
            "result": self.result,
            "reserved_at": self.reserved_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeliveryRecord":
        return cls(
            delivery_id=data["delivery_id"],
            shop_domain=data.get("shop_domain", ""),
            topic=data.get("topic", ""),
            status=DeliveryStatus(data.get("status", DeliveryStatus.IN_PROGRESS.value)),
            result=data.get("result"),
            reserved_at=data.get("reserved_at", 0.0),
            completed_at=data.get("completed_at"),
        )


def fallback_delivery_id(topic: str, shop_domain: str, raw_body: bytes) -> str:
    """Deterministic id for deliveries that arrive without one."""
    digest = hashlib.sha256(raw_body).hexdigest()
    data = json.dumps({"topic": topic, "shop": shop_domain, "body": digest}, sort_keys=True)
    return hashlib.sha256(data.encode()).hexdigest()[:32]


class DeliveryLedger:
    """KV-backed idempotency ledger keyed by delivery id."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _key(self, delivery_id: str) -> str:
        return DELIVERY_PREFIX + delivery_id

    async def check(self, delivery_id: str) -> DeliveryRecord | None:
        data = await self.store.get(self._key(delivery_id))
        return DeliveryRecord.from_dict(data) if data else None

    async def reserve(self, delivery_id: str, shop_domain: str, topic: str) -> DeliveryRecord | None:
        """
        Claim a delivery id. Returns None if it is already claimed or done.

        Check-then-put is not atomic across processes; two racing copies of
        one delivery may both run, which idempotent handlers tolerate.
        """
        if await self.check(delivery_id) is not None:
            return None

        record = DeliveryRecord(
            delivery_id=delivery_id,
            shop_domain=shop_domain,
            topic=topic,
            reserved_at=self._clock(),
        )
        await self.store.put(self._key(delivery_id), record.to_dict(), ttl_seconds=self.ttl_seconds)
        return record

    async def complete(self, delivery_id: str, result: Any) -> bool:
        """Mark a reserved delivery as done, keeping its result."""
        record = await self.check(delivery_id)
        if record is None:
            return False
        record.status = DeliveryStatus.COMPLETED
        record.result = result
        record.completed_at = self._clock()
        await self.store.put(self._key(delivery_id), record.to_dict(), ttl_seconds=self.ttl_seconds)
        return True

    async def release(self, delivery_id: str) -> bool:
        """Drop a claim so the delivery can be processed again."""
        released = await self.store.delete_if_exists(self._key(delivery_id))
        if released:
            logger.debug("Released delivery %s", delivery_id)
        return released
