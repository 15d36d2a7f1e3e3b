"""HMAC-SHA256 webhook signatures (base64, as sent in ``X-Shopify-Hmac-Sha256``)."""
from __future__ import annotations
import base64
import hashlib
import hmac


def sign_payload(raw_body: bytes | str, secret: str) -> str:
    """Base64 HMAC-SHA256 of the exact request body."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(raw_body: bytes | str, signature: str | None, secret: str | None) -> bool:
    """Constant-time check of a delivery signature. Never raises."""
    if not signature or not secret or raw_body is None:
        return False
    try:
        expected = sign_payload(raw_body, secret).encode("ascii")
        presented = signature.strip().encode("ascii")
    except (UnicodeError, AttributeError, TypeError):
        return False
    return hmac.compare_digest(expected, presented)
