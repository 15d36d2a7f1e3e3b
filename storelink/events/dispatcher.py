"""
Event Dispatcher: verify, route, and handle inbound webhook deliveries.

Lifecycle of one delivery::

    RECEIVED ──► VERIFIED ──► PROCESSED | FAILED | UNROUTABLE
        └──────► REJECTED

Routing is by namespace, the topic segment before the first ``/``
("orders/paid" → "orders"). Handler exceptions never escape: they are
reported and turned into a failed HandlerResult, so the transport can
always produce a response.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable
import json
import logging

from storelink.events.audit import WebhookEventLog
from storelink.events.signature import verify_signature
from storelink.events.topics import namespace_of
from storelink.reporting import ErrorReporter, report_webhook_error
from storelink.resilience.idempotency import DeliveryLedger

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Handler contract
# ---------------------------------------------------------------------------

@dataclass
class EventMetadata:
    """Transport-level facts about a delivery."""
    topic: str
    shop_domain: str
    delivery_id: str
    api_version: str | None = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def namespace(self) -> str:
        return namespace_of(self.topic)


@dataclass
class HandlerResult:
    success: bool
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message, "data": self.data}


@runtime_checkable
class WebhookHandler(Protocol):
    async def handle(self, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        ...


# ---------------------------------------------------------------------------
# Delivery state machine
# ---------------------------------------------------------------------------

class DeliveryState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    REJECTED = "rejected"
    PROCESSED = "processed"
    FAILED = "failed"
    UNROUTABLE = "unroutable"


_DELIVERY_TRANSITIONS: dict[DeliveryState, list[DeliveryState]] = {
    DeliveryState.RECEIVED: [DeliveryState.VERIFIED, DeliveryState.REJECTED],
    DeliveryState.VERIFIED: [
        DeliveryState.PROCESSED,
        DeliveryState.FAILED,
        DeliveryState.UNROUTABLE,
    ],
    DeliveryState.REJECTED: [],    # terminal
    DeliveryState.PROCESSED: [],   # terminal
    DeliveryState.FAILED: [],      # terminal
    DeliveryState.UNROUTABLE: [],  # terminal
}


@dataclass
class DeliveryTransition:
    from_state: str
    to_state: str
    timestamp: datetime
    reason: str = ""


@dataclass
class InboundDelivery:
    """One delivery moving through its lifecycle."""
    metadata: EventMetadata
    current_state: DeliveryState = DeliveryState.RECEIVED
    history: list[DeliveryTransition] = field(default_factory=list)

    def can_transition(self, to_state: DeliveryState) -> bool:
        return to_state in _DELIVERY_TRANSITIONS.get(self.current_state, [])

    def transition(self, to_state: DeliveryState, reason: str = "") -> DeliveryTransition:
        """Move to ``to_state``. Raises ValueError if not allowed."""
        if not self.can_transition(to_state):
            allowed = [s.value for s in _DELIVERY_TRANSITIONS.get(self.current_state, [])]
            raise ValueError(
                f"Cannot transition from {self.current_state.value} to {to_state.value}. "
                f"Allowed: {allowed}"
            )
        record = DeliveryTransition(
            from_state=self.current_state.value,
            to_state=to_state.value,
            timestamp=datetime.now(timezone.utc),
            reason=reason,
        )
        self.history.append(record)
        self.current_state = to_state
        return record

    @property
    def is_terminal(self) -> bool:
        return not _DELIVERY_TRANSITIONS.get(self.current_state)


@dataclass
class DeliveryOutcome:
    """What the transport needs to answer the platform."""
    delivery: InboundDelivery
    result: HandlerResult | None = None
    duplicate: bool = False

    @property
    def state(self) -> DeliveryState:
        return self.delivery.current_state

    def to_dict(self) -> dict[str, Any]:
        data = {
            "delivery_id": self.delivery.metadata.delivery_id,
            "topic": self.delivery.metadata.topic,
            "state": self.state.value,
            "duplicate": self.duplicate,
        }
        if self.result is not None:
            data.update(self.result.to_dict())
        return data


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class EventDispatcher:
    """
    Namespace → handler registry with verification and bookkeeping.

    Usage::

        dispatcher = EventDispatcher(reporter, ledger=ledger, event_log=log)
        dispatcher.register_handler("orders", OrderHandler(repository))
        outcome = await dispatcher.process_delivery(body, signature, metadata, secret)
    """

    def __init__(
        self,
        reporter: ErrorReporter,
        ledger: DeliveryLedger | None = None,
        event_log: WebhookEventLog | None = None,
    ):
        self.reporter = reporter
        self.ledger = ledger
        self.event_log = event_log
        self._handlers: dict[str, WebhookHandler] = {}

    def register_handler(self, namespace: str, handler: WebhookHandler) -> None:
        """Register (or replace) the handler for a namespace."""
        if namespace in self._handlers:
            logger.info("Replacing webhook handler for %s", namespace)
        self._handlers[namespace] = handler

    def handler_for(self, namespace: str) -> WebhookHandler | None:
        return self._handlers.get(namespace)

    @property
    def namespaces(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        """Route a verified payload to its handler."""
        handler = self.handler_for(metadata.namespace)
        if handler is None:
            return HandlerResult(
                success=False,
                message=f"No handler found for topic {metadata.topic}",
            )

        try:
            return await handler.handle(payload, metadata)
        except Exception as exc:
            logger.exception("Handler for %s failed", metadata.topic)
            try:
                await report_webhook_error(
                    self.reporter,
                    exc,
                    topic=metadata.topic,
                    shop_domain=metadata.shop_domain,
                    operation="dispatch",
                    delivery_id=metadata.delivery_id,
                )
            except Exception:
                logger.exception("Error reporter failed for %s", metadata.topic)
            return HandlerResult(
                success=False,
                message=f"Handler for {metadata.topic} failed",
                data={"error": str(exc)},
            )

    async def process_delivery(
        self,
        raw_body: bytes,
        signature: str | None,
        metadata: EventMetadata,
        secret: str,
    ) -> DeliveryOutcome:
        """Verify, deduplicate, parse, and dispatch one delivery."""
        delivery = InboundDelivery(metadata=metadata)

        if not verify_signature(raw_body, signature, secret):
            delivery.transition(DeliveryState.REJECTED, "invalid signature")
            logger.warning("Rejected %s delivery %s: invalid signature", metadata.topic, metadata.delivery_id)
            return DeliveryOutcome(delivery=delivery)
        delivery.transition(DeliveryState.VERIFIED)

        if await self._reserve(metadata) is False:
            delivery.transition(DeliveryState.PROCESSED, "duplicate delivery")
            logger.info("Duplicate delivery %s acknowledged", metadata.delivery_id)
            return DeliveryOutcome(
                delivery=delivery,
                result=HandlerResult(success=True, message="Duplicate delivery ignored"),
                duplicate=True,
            )

        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as exc:
            payload = None
            parse_error = f"Invalid JSON payload: {exc}"
        else:
            parse_error = None if isinstance(payload, dict) else "Payload must be a JSON object"

        if parse_error:
            delivery.transition(DeliveryState.FAILED, parse_error)
            result = HandlerResult(success=False, message=parse_error)
            await self._release(metadata)
            await self._audit(delivery, result, None)
            return DeliveryOutcome(delivery=delivery, result=result)

        result = await self.dispatch(payload, metadata)
        if self.handler_for(metadata.namespace) is None:
            delivery.transition(DeliveryState.UNROUTABLE, result.message)
            await self._complete(metadata, result)
        elif result.success:
            delivery.transition(DeliveryState.PROCESSED, result.message)
            await self._complete(metadata, result)
        else:
            delivery.transition(DeliveryState.FAILED, result.message)
            await self._release(metadata)

        await self._audit(delivery, result, payload)
        return DeliveryOutcome(delivery=delivery, result=result)

    # --- Bookkeeping (best effort) ---

    async def _reserve(self, metadata: EventMetadata) -> bool | None:
        if self.ledger is None:
            return None
        try:
            record = await self.ledger.reserve(metadata.delivery_id, metadata.shop_domain, metadata.topic)
        except Exception:
            logger.exception("Delivery ledger unavailable; processing %s without dedupe", metadata.delivery_id)
            return None
        return record is not None

    async def _complete(self, metadata: EventMetadata, result: HandlerResult) -> None:
        if self.ledger is None:
            return
        try:
            await self.ledger.complete(metadata.delivery_id, {"success": result.success, "message": result.message})
        except Exception:
            logger.exception("Failed to mark delivery %s complete", metadata.delivery_id)

    async def _release(self, metadata: EventMetadata) -> None:
        if self.ledger is None:
            return
        try:
            await self.ledger.release(metadata.delivery_id)
        except Exception:
            logger.exception("Failed to release delivery %s", metadata.delivery_id)

    async def _audit(self, delivery: InboundDelivery, result: HandlerResult, payload: Any) -> None:
        if self.event_log is None:
            return
        meta = delivery.metadata
        try:
            await self.event_log.record(
                meta.delivery_id,
                meta.shop_domain,
                meta.topic,
                delivery.current_state.value,
                message=result.message,
                event_data=payload,
            )
        except Exception:
            logger.exception("Failed to log webhook event %s", meta.delivery_id)
