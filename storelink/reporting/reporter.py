"""Error reporting sink consumed by the executor and the dispatcher.

The core only depends on the narrow ``ErrorReporter.report`` capability.
Two implementations ship here:
- LoggingErrorReporter: structured log line at a level matching severity
- AlertingErrorReporter: logs, then forwards to an async ``notify`` sink
  (email, pager, chat) above a severity threshold with hourly/daily caps
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable
import logging
import time

logger = logging.getLogger(__name__)


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [ErrorSeverity.LOW, ErrorSeverity.MEDIUM, ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]

_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


class ErrorCategory(str, Enum):
    AUTHENTICATION = "authentication"
    WEBHOOK_PROCESSING = "webhook_processing"
    PLATFORM_API = "platform_api"
    STORAGE = "storage"
    NETWORK = "network"
    VALIDATION = "validation"
    SYSTEM = "system"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Where an error happened."""
    service: str | None = None
    operation: str | None = None
    shop_domain: str | None = None
    webhook_topic: str | None = None
    request_id: str | None = None
    additional_data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "service": self.service,
            "operation": self.operation,
            "shop_domain": self.shop_domain,
            "webhook_topic": self.webhook_topic,
            "request_id": self.request_id,
        }
        data = {k: v for k, v in data.items() if v is not None}
        if self.additional_data:
            data["additional_data"] = self.additional_data
        return data


@dataclass
class ErrorReport:
    """A categorized failure as handed to a notification sink."""
    message: str
    error_type: str
    severity: ErrorSeverity
    category: ErrorCategory
    context: ErrorContext
    reported_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "error_type": self.error_type,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context.to_dict(),
            "reported_at": self.reported_at.isoformat(),
        }


@runtime_checkable
class ErrorReporter(Protocol):
    async def report(
        self,
        error: BaseException | str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: ErrorContext | None = None,
    ) -> None:
        ...


def build_report(
    error: BaseException | str,
    severity: ErrorSeverity,
    category: ErrorCategory,
    context: ErrorContext | None,
) -> ErrorReport:
    if isinstance(error, BaseException):
        message, error_type = str(error) or type(error).__name__, type(error).__name__
    else:
        message, error_type = str(error), "str"
    return ErrorReport(
        message=message,
        error_type=error_type,
        severity=ErrorSeverity(severity),
        category=ErrorCategory(category),
        context=context or ErrorContext(),
    )


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------

class LoggingErrorReporter:
    """Writes every report to the log."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    async def report(
        self,
        error: BaseException | str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: ErrorContext | None = None,
    ) -> None:
        self._emit(build_report(error, severity, category, context))

    def _emit(self, report: ErrorReport) -> None:
        ctx = report.context
        self._log.log(
            _LOG_LEVELS[report.severity],
            "%s error [%s] %s: %s",
            report.severity.value.upper(),
            report.category.value,
            report.error_type,
            report.message,
            extra={
                "error_category": report.category.value,
                "error_context": ctx.to_dict(),
                "shop_domain": ctx.shop_domain or "-",
            },
        )


NotifySink = Callable[[ErrorReport], Awaitable[None]]


class AlertingErrorReporter(LoggingErrorReporter):
    """Logs every report and alerts on severe ones, with rate limiting.

    Alerts are keyed by ``{category}-{shop_domain}`` so one noisy shop cannot
    exhaust the budget for everything else.
    """

    def __init__(
        self,
        notify: NotifySink,
        severity_threshold: ErrorSeverity = ErrorSeverity.HIGH,
        max_per_hour: int = 5,
        max_per_day: int = 20,
        clock: Callable[[], float] = time.time,
        log: logging.Logger | None = None,
    ):
        super().__init__(log)
        self._notify = notify
        self.severity_threshold = ErrorSeverity(severity_threshold)
        self.max_per_hour = max_per_hour
        self.max_per_day = max_per_day
        self._clock = clock
        self._sent: dict[str, list[float]] = {}

    async def report(
        self,
        error: BaseException | str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: ErrorContext | None = None,
    ) -> None:
        report = build_report(error, severity, category, context)
        self._emit(report)

        if not self._should_alert(report):
            return

        try:
            await self._notify(report)
        except Exception:
            # Alert delivery must never break the caller.
            self._log.exception("Failed to deliver error alert for %s", report.category.value)
            return
        self._sent.setdefault(self._key(report), []).append(self._clock())

    def _key(self, report: ErrorReport) -> str:
        return f"{report.category.value}-{report.context.shop_domain or 'unknown'}"

    def _should_alert(self, report: ErrorReport) -> bool:
        if report.severity.rank < self.severity_threshold.rank:
            return False

        now = self._clock()
        self._prune(now)
        sent = self._sent.get(self._key(report), [])

        if len(sent) >= self.max_per_day:
            return False
        last_hour = [t for t in sent if now - t < 3600]
        return len(last_hour) < self.max_per_hour

    def _prune(self, now: float) -> None:
        """Drop send times older than a day, and keys left with none."""
        for key, times in list(self._sent.items()):
            fresh = [t for t in times if now - t < 86400]
            if fresh:
                self._sent[key] = fresh
            else:
                del self._sent[key]


# ---------------------------------------------------------------------------
# Convenience wrappers
# ---------------------------------------------------------------------------

async def report_webhook_error(
    reporter: ErrorReporter,
    error: BaseException | str,
    topic: str,
    shop_domain: str,
    operation: str | None = None,
    **additional: Any,
) -> None:
    await reporter.report(
        error,
        ErrorSeverity.HIGH,
        ErrorCategory.WEBHOOK_PROCESSING,
        ErrorContext(
            service="webhook-processor",
            operation=operation,
            shop_domain=shop_domain,
            webhook_topic=topic,
            additional_data=additional,
        ),
    )
