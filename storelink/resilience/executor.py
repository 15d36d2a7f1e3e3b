"""
Rate-Limited Executor: retry with exponential backoff for platform calls.

Wraps any fallible coroutine factory and:
- Classifies failures (status code, transient message, timeout/transport type)
- Backs off ``base * multiplier^(n-1)`` with optional ±25% jitter, clamped
- Honours ``Retry-After`` when the failure carries response headers
- Bounds each attempt with an optional timeout
- Reports terminal failures to the ErrorReporter, never raises them
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Mapping, TypeVar
import asyncio
import logging
import random
import re

import httpx
from pydantic import BaseModel, Field

from storelink.errors import PlatformApiError, TransientError
from storelink.reporting import (
    ErrorCategory,
    ErrorContext,
    ErrorReporter,
    ErrorSeverity,
)
from storelink.resilience.telemetry import RateLimitInfo, parse_rate_limit_telemetry

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_DELAY_MS = 100
JITTER_RATIO = 0.25

TRANSIENT_INDICATORS = (
    "rate limit",
    "too many requests",
    "throttled",
    "quota exceeded",
    "service unavailable",
    "temporary failure",
    "timeout",
)

_STATUS_IN_MESSAGE = re.compile(r"\b([1-5]\d{2})\b")


class RetryConfig(BaseModel):
    """Retry policy. Delays are in milliseconds."""
    enabled: bool = True
    max_retries: int = Field(3, ge=0, le=10)
    base_delay_ms: int = Field(1000, ge=MIN_DELAY_MS)
    max_delay_ms: int = Field(30000, ge=MIN_DELAY_MS)
    backoff_multiplier: float = Field(2.0, ge=1.0, le=5.0)
    jitter: bool = True
    retryable_status_codes: list[int] = Field(default_factory=lambda: [429, 500, 502, 503, 504])
    attempt_timeout_s: float | None = Field(None, gt=0)
    respect_retry_after: bool = True


@dataclass
class RetryContext:
    """State of one ``execute`` call. Never persisted."""
    operation: str
    shop_domain: str
    request_id: str | None = None
    additional_data: dict[str, Any] = field(default_factory=dict)
    attempt: int = 0
    total_delay_ms: int = 0
    last_error: BaseException | None = None


@dataclass
class ExecutionResult(Generic[T]):
    success: bool
    data: T | None = None
    error: BaseException | None = None
    retry_count: int = 0
    total_delay_ms: int = 0
    rate_limit: RateLimitInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error": str(self.error) if self.error else None,
            "retry_count": self.retry_count,
            "total_delay_ms": self.total_delay_ms,
            "rate_limit": self.rate_limit.to_dict() if self.rate_limit else None,
        }


# ---------------------------------------------------------------------------
# Policy helpers
# ---------------------------------------------------------------------------

def backoff_delay(attempt: int, config: RetryConfig, rng: random.Random | None = None) -> int:
    """Delay in ms before retry number ``attempt`` (0 means no wait)."""
    if attempt <= 0:
        return 0

    delay = config.base_delay_ms * config.backoff_multiplier ** (attempt - 1)
    if config.jitter:
        spread = delay * JITTER_RATIO
        delay += (rng or random).uniform(-spread, spread)

    delay = min(delay, config.max_delay_ms)
    delay = max(delay, MIN_DELAY_MS)
    return round(delay)


def extract_status_code(error: BaseException) -> int | None:
    """Find an HTTP status on the error, its response, or in its message."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status

    match = _STATUS_IN_MESSAGE.search(str(error))
    return int(match.group(1)) if match else None


def is_retryable(error: BaseException, config: RetryConfig) -> bool:
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, httpx.TransportError, TransientError)):
        return True

    status = extract_status_code(error)
    if status is not None and status in config.retryable_status_codes:
        return True

    message = str(error).lower()
    return any(indicator in message for indicator in TRANSIENT_INDICATORS)


def retry_after_ms(error: BaseException) -> int | None:
    """Parse a ``Retry-After`` seconds value off the error's headers."""
    headers = _error_headers(error)
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == "retry-after":
            try:
                return int(float(value) * 1000)
            except (TypeError, ValueError):
                return None
    return None


def _error_headers(error: BaseException) -> Mapping[str, str] | None:
    headers = getattr(error, "headers", None)
    if headers is None:
        headers = getattr(getattr(error, "response", None), "headers", None)
    return headers


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

class RateLimitedExecutor:
    """
    Runs operations under a RetryConfig.

    Usage::

        executor = RateLimitedExecutor(reporter)
        result = await executor.execute(
            lambda: client.graphql(shop, token, query),
            RetryContext(operation="getProduct", shop_domain=shop),
        )
        if result.success:
            ...
    """

    def __init__(
        self,
        reporter: ErrorReporter,
        default_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.reporter = reporter
        self.default_config = default_config or RetryConfig()
        self._sleep = sleep
        self._rng = rng

    def merge_config(self, overrides: RetryConfig | Mapping[str, Any] | None) -> RetryConfig:
        if overrides is None:
            return self.default_config
        if isinstance(overrides, RetryConfig):
            return overrides
        return RetryConfig.model_validate({**self.default_config.model_dump(), **overrides})

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: RetryContext,
        config: RetryConfig | Mapping[str, Any] | None = None,
    ) -> ExecutionResult[T]:
        cfg = self.merge_config(config)

        if not cfg.enabled:
            try:
                data = await self._attempt(operation, cfg)
            except Exception as exc:
                context.last_error = exc
                return ExecutionResult(success=False, error=exc, rate_limit=_telemetry(exc))
            return ExecutionResult(success=True, data=data, rate_limit=_telemetry(data))

        rate_limit: RateLimitInfo | None = None
        while True:
            try:
                data = await self._attempt(operation, cfg)
            except Exception as exc:
                context.last_error = exc
                rate_limit = _telemetry(exc) or rate_limit

                retryable = is_retryable(exc, cfg)
                if not retryable or context.attempt >= cfg.max_retries:
                    await self._report(exc, context, retryable)
                    return ExecutionResult(
                        success=False,
                        error=exc,
                        retry_count=context.attempt,
                        total_delay_ms=context.total_delay_ms,
                        rate_limit=rate_limit,
                    )

                delay = self._next_delay(context.attempt + 1, exc, cfg)
                context.total_delay_ms += delay
                logger.info(
                    "Retry %d/%d for %s in %dms: %s",
                    context.attempt + 1, cfg.max_retries, context.operation, delay, exc,
                )
                await self._sleep(delay / 1000)
                context.attempt += 1
                continue

            if context.attempt:
                logger.info(
                    "%s succeeded after %d retries", context.operation, context.attempt
                )
            return ExecutionResult(
                success=True,
                data=data,
                retry_count=context.attempt,
                total_delay_ms=context.total_delay_ms,
                rate_limit=_telemetry(data) or rate_limit,
            )

    async def _attempt(self, operation: Callable[[], Awaitable[T]], cfg: RetryConfig) -> T:
        if cfg.attempt_timeout_s is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=cfg.attempt_timeout_s)

    def _next_delay(self, attempt: int, error: BaseException, cfg: RetryConfig) -> int:
        delay = backoff_delay(attempt, cfg, self._rng)
        if cfg.respect_retry_after:
            hinted = retry_after_ms(error)
            if hinted is not None:
                delay = min(max(delay, hinted), cfg.max_delay_ms)
        return delay

    async def _report(self, error: BaseException, context: RetryContext, exhausted: bool) -> None:
        status = extract_status_code(error)
        if isinstance(error, PlatformApiError):
            auth_failure = error.is_auth_failure
        else:
            auth_failure = status in (401, 403)
        if auth_failure:
            severity, category = ErrorSeverity.HIGH, ErrorCategory.AUTHENTICATION
        elif exhausted:
            severity, category = ErrorSeverity.HIGH, ErrorCategory.PLATFORM_API
        else:
            severity, category = ErrorSeverity.MEDIUM, ErrorCategory.PLATFORM_API

        logger.warning(
            "%s failed after %d retries: %s", context.operation, context.attempt, error
        )
        try:
            await self.reporter.report(
                error,
                severity,
                category,
                ErrorContext(
                    service="rate-limited-executor",
                    operation=context.operation,
                    shop_domain=context.shop_domain,
                    request_id=context.request_id,
                    additional_data={
                        "retry_count": context.attempt,
                        "total_delay_ms": context.total_delay_ms,
                        "status_code": status,
                        **context.additional_data,
                    },
                ),
            )
        except Exception:
            logger.exception("Error reporter failed for %s", context.operation)


def _telemetry(source: Any) -> RateLimitInfo | None:
    """Pull rate-limit info off an error's headers or a result object."""
    info = getattr(source, "rate_limit", None)
    if isinstance(info, RateLimitInfo):
        return info
    if isinstance(source, BaseException):
        return parse_rate_limit_telemetry(_error_headers(source))
    return None
