"""Event Dispatcher: signature verification and topic-based webhook routing."""
from storelink.events.audit import WebhookEventLog
from storelink.events.dispatcher import (
    DeliveryOutcome,
    DeliveryState,
    DeliveryTransition,
    EventDispatcher,
    EventMetadata,
    HandlerResult,
    InboundDelivery,
    WebhookHandler,
)
from storelink.events.signature import sign_payload, verify_signature
from storelink.events.topics import WebhookTopic, namespace_of

__all__ = [
    "DeliveryOutcome",
    "DeliveryState",
    "DeliveryTransition",
    "EventDispatcher",
    "EventMetadata",
    "HandlerResult",
    "InboundDelivery",
    "WebhookEventLog",
    "WebhookHandler",
    "WebhookTopic",
    "namespace_of",
    "sign_payload",
    "verify_signature",
]
