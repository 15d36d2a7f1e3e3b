"""Resilience: retry/backoff executor, rate-limit telemetry, delivery ledger."""
from storelink.resilience.executor import (
    ExecutionResult,
    RateLimitedExecutor,
    RetryConfig,
    RetryContext,
    backoff_delay,
    extract_status_code,
    is_retryable,
    retry_after_ms,
)
from storelink.resilience.idempotency import (
    DeliveryLedger,
    DeliveryRecord,
    DeliveryStatus,
    fallback_delivery_id,
)
from storelink.resilience.telemetry import (
    RateLimitInfo,
    ThrottleStatus,
    parse_query_cost,
    parse_rate_limit_telemetry,
)

__all__ = [
    "DeliveryLedger",
    "DeliveryRecord",
    "DeliveryStatus",
    "ExecutionResult",
    "RateLimitInfo",
    "RateLimitedExecutor",
    "RetryConfig",
    "RetryContext",
    "ThrottleStatus",
    "backoff_delay",
    "extract_status_code",
    "fallback_delivery_id",
    "is_retryable",
    "parse_query_cost",
    "parse_rate_limit_telemetry",
    "retry_after_ms",
]
