"""Rate-limit telemetry from Admin API responses.

Two sources:
- REST-style header ``X-Shopify-Shop-Api-Call-Limit: <current>/<max>``
- GraphQL ``extensions.cost`` block (requested/actual cost plus bucket state)
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping
import logging
import re

logger = logging.getLogger(__name__)

CALL_LIMIT_HEADER = "x-shopify-shop-api-call-limit"
COST_HEADER = "x-shopify-api-call-limit"
DEFAULT_RESTORE_RATE = 2

_LEADING_INT = re.compile(r"\s*(\d+)")


@dataclass
class ThrottleStatus:
    maximum_available: int = 0
    currently_available: int = 0
    restore_rate: int = DEFAULT_RESTORE_RATE

    def seconds_until_available(self, cost: int) -> float:
        """How long until the bucket can afford ``cost`` points."""
        shortfall = cost - self.currently_available
        if shortfall <= 0:
            return 0.0
        if self.restore_rate <= 0:
            return float("inf")
        return shortfall / self.restore_rate

    def to_dict(self) -> dict[str, int]:
        return {
            "maximum_available": self.maximum_available,
            "currently_available": self.currently_available,
            "restore_rate": self.restore_rate,
        }


@dataclass
class RateLimitInfo:
    """Provider-reported rate-limit state for one response."""
    requested_query_cost: int = 0
    actual_query_cost: int = 0
    throttle_status: ThrottleStatus = field(default_factory=ThrottleStatus)

    def to_dict(self) -> dict[str, Any]:
        return {
            "requested_query_cost": self.requested_query_cost,
            "actual_query_cost": self.actual_query_cost,
            "throttle_status": self.throttle_status.to_dict(),
        }


def _leading_int(value: Any) -> int:
    if value is None:
        return 0
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def parse_rate_limit_telemetry(headers: Mapping[str, str] | None) -> RateLimitInfo | None:
    """Read rate-limit state from response headers.

    Returns None when the call-limit header is absent. A present but
    malformed header yields zeroed defaults rather than an error.
    """
    if not headers:
        return None
    raw = _header(headers, CALL_LIMIT_HEADER)
    if raw is None:
        return None

    cost = _leading_int(_header(headers, COST_HEADER))
    parts = raw.split("/")
    if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
        logger.debug("Malformed call-limit header: %r", raw)
        return RateLimitInfo(requested_query_cost=cost, actual_query_cost=cost)

    return RateLimitInfo(
        requested_query_cost=cost,
        actual_query_cost=cost,
        throttle_status=ThrottleStatus(
            maximum_available=int(parts[1]),
            currently_available=int(parts[0]),
        ),
    )


def parse_query_cost(extensions: Mapping[str, Any] | None) -> RateLimitInfo | None:
    """Read the GraphQL ``extensions.cost`` block, if present."""
    if not extensions:
        return None
    cost = extensions.get("cost")
    if not isinstance(cost, Mapping):
        return None

    throttle = cost.get("throttleStatus") or {}
    return RateLimitInfo(
        requested_query_cost=_leading_int(cost.get("requestedQueryCost")),
        actual_query_cost=_leading_int(cost.get("actualQueryCost")),
        throttle_status=ThrottleStatus(
            maximum_available=_leading_int(throttle.get("maximumAvailable")),
            currently_available=_leading_int(throttle.get("currentlyAvailable")),
            restore_rate=_leading_int(throttle.get("restoreRate")) or DEFAULT_RESTORE_RATE,
        ),
    )
