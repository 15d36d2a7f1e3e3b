"""Categorized error reporting."""
from storelink.reporting.reporter import (
    AlertingErrorReporter,
    ErrorCategory,
    ErrorContext,
    ErrorReport,
    ErrorReporter,
    ErrorSeverity,
    LoggingErrorReporter,
    build_report,
    report_webhook_error,
)

__all__ = [
    "AlertingErrorReporter",
    "ErrorCategory",
    "ErrorContext",
    "ErrorReport",
    "ErrorReporter",
    "ErrorSeverity",
    "LoggingErrorReporter",
    "build_report",
    "report_webhook_error",
]
