"""Error taxonomy shared by the vault, executor, and dispatcher.

- ValidationError: malformed input, never retried
- AuthError: bad signature, bad/expired state, unauthorized call
- TransientError: rate limiting, timeouts, upstream unavailability
- IntegrityError: authentication-tag failure on decryption
- ConfigurationError: missing or invalid settings (programmer error)
- PlatformApiError: non-2xx response from the commerce platform
"""
from __future__ import annotations
from typing import Any


class StorelinkError(Exception):
    """Base class for every error raised by storelink."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
        }


class ValidationError(StorelinkError):
    """Malformed input (bad shop domain, malformed ciphertext)."""

    def __init__(self, message: str, field: str | None = None, **context: Any):
        if field:
            context["field"] = field
        super().__init__(message, **context)
        self.field = field


class AuthError(StorelinkError):
    """Invalid signature, invalid/expired OAuth state, or unauthorized call."""


class TransientError(StorelinkError):
    """Failure that is expected to clear on retry."""


class IntegrityError(StorelinkError):
    """Ciphertext failed authentication; retrying cannot help."""


class ConfigurationError(StorelinkError):
    """Required configuration is missing or invalid."""


class PlatformApiError(StorelinkError):
    """Non-success HTTP response from the commerce platform.

    Carries the status code and response headers so the executor can
    classify it and honour ``Retry-After``.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        headers: dict[str, str] | None = None,
        **context: Any,
    ):
        context["status_code"] = status_code
        super().__init__(message, **context)
        self.status_code = status_code
        self.headers = dict(headers or {})

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)
