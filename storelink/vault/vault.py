"""
Credential Vault: encrypted access tokens and single-use OAuth state.

Persisted layout in the backing KeyValueStore:
- ``secret:{domain}`` → encrypted token, scopes, timestamps
- ``state:{token}``   → bound domain, creation time, TTL

Expected failures (tampered blob, unknown/expired/replayed state, store
outage on read) come back as None / ``valid=False``. Only caller mistakes
(malformed domain) and missing configuration raise.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable
import logging
import re
import secrets
import time

from storelink.errors import IntegrityError, ValidationError
from storelink.stores.base import KeyValueStore
from storelink.vault.cipher import TokenCipher

logger = logging.getLogger(__name__)

SECRET_PREFIX = "secret:"
STATE_PREFIX = "state:"
STATE_TOKEN_BYTES = 32

_DOMAIN = re.compile(r"[A-Za-z0-9][A-Za-z0-9.\-]*[A-Za-z0-9]")


def validate_domain(domain_id: str) -> str:
    """Return the domain unchanged, or raise ValidationError."""
    if not isinstance(domain_id, str) or not _DOMAIN.fullmatch(domain_id):
        raise ValidationError("Invalid domain identifier", field="domain_id", value=repr(domain_id))
    return domain_id


def _scope_list(scope: str | Iterable[str] | None) -> list[str]:
    if scope is None:
        return []
    if isinstance(scope, str):
        return [s.strip() for s in scope.split(",") if s.strip()]
    return [s for s in scope if s]


@dataclass
class SecretRecord:
    """A decrypted credential."""
    domain_id: str
    secret: str
    scope: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def has_scopes(self, required: Iterable[str]) -> bool:
        return all(s in self.scope for s in required)

    def to_dict(self) -> dict[str, Any]:
        # Never includes the secret itself.
        return {
            "domain_id": self.domain_id,
            "scope": list(self.scope),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(frozen=True)
class StateValidation:
    """Outcome of presenting an OAuth state token."""
    valid: bool
    domain_id: str | None = None


class CredentialVault:
    """Stores secrets encrypted and issues/consumes CSRF state tokens."""

    def __init__(
        self,
        store: KeyValueStore,
        cipher: TokenCipher,
        state_ttl_seconds: int = 600,
        secret_ttl_seconds: int | None = 30 * 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.cipher = cipher
        self.state_ttl_seconds = state_ttl_seconds
        self.secret_ttl_seconds = secret_ttl_seconds
        self._clock = clock

    # --- Encryption ---

    def encrypt(self, plaintext: str) -> str:
        return self.cipher.encrypt(plaintext)

    def decrypt(self, blob: str) -> str | None:
        return self.cipher.decrypt(blob)

    # --- Secrets ---

    async def store_secret(
        self,
        domain_id: str,
        secret: str,
        scope: str | Iterable[str] | None = None,
    ) -> None:
        """Encrypt and persist a secret. Store failures propagate."""
        validate_domain(domain_id)
        now = datetime.fromtimestamp(self._clock(), timezone.utc)
        expires_at = (
            now + timedelta(seconds=self.secret_ttl_seconds)
            if self.secret_ttl_seconds else None
        )
        await self.store.put(
            SECRET_PREFIX + domain_id,
            {
                "encrypted_token": self.cipher.encrypt(secret),
                "scopes": _scope_list(scope),
                "created_at": now.isoformat(),
                "expires_at": expires_at.isoformat() if expires_at else None,
            },
            ttl_seconds=self.secret_ttl_seconds,
        )
        logger.info("Stored credential for %s", domain_id)

    async def get_secret(self, domain_id: str) -> SecretRecord | None:
        """Load and decrypt a secret. None if absent, expired, tampered, or unreadable."""
        validate_domain(domain_id)
        try:
            item = await self.store.get(SECRET_PREFIX + domain_id)
        except Exception:
            logger.exception("Failed to read credential for %s", domain_id)
            return None

        if not item:
            return None

        try:
            secret = self.cipher.decrypt_strict(item.get("encrypted_token", ""))
        except (ValidationError, IntegrityError) as exc:
            logger.error("Stored credential for %s is unreadable: %s", domain_id, exc.message)
            return None

        created_at = item.get("created_at")
        expires_at = item.get("expires_at")
        record = SecretRecord(
            domain_id=domain_id,
            secret=secret,
            scope=_scope_list(item.get("scopes")),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )
        if record.is_expired(datetime.fromtimestamp(self._clock(), timezone.utc)):
            logger.info("Stored credential for %s has expired", domain_id)
            return None
        return record

    async def delete_secret(self, domain_id: str) -> bool:
        """Remove a stored secret. Returns True if one existed."""
        validate_domain(domain_id)
        removed = await self.store.delete_if_exists(SECRET_PREFIX + domain_id)
        if removed:
            logger.info("Deleted credential for %s", domain_id)
        return removed

    # --- OAuth state ---

    async def issue_state(self, domain_id: str) -> str:
        """Generate a 256-bit state token bound to ``domain_id``."""
        validate_domain(domain_id)
        token = secrets.token_hex(STATE_TOKEN_BYTES)
        await self.store.put(
            STATE_PREFIX + token,
            {
                "domain_id": domain_id,
                "created_at": self._clock(),
                "ttl": self.state_ttl_seconds,
            },
            ttl_seconds=self.state_ttl_seconds,
        )
        return token

    async def consume_state(self, token: str) -> StateValidation:
        """Validate and burn a state token. Exactly one presentation can win."""
        if not token or not isinstance(token, str):
            return StateValidation(valid=False)

        key = STATE_PREFIX + token
        try:
            record = await self.store.get(key)
            if not record:
                return StateValidation(valid=False)
            # Only the caller whose conditional delete removed the row may proceed.
            if not await self.store.delete_if_exists(key):
                logger.warning("OAuth state already consumed by a concurrent callback")
                return StateValidation(valid=False)
        except Exception:
            logger.exception("OAuth state validation failed; rejecting")
            return StateValidation(valid=False)

        created_at = float(record.get("created_at", 0))
        ttl = float(record.get("ttl", self.state_ttl_seconds))
        if self._clock() - created_at > ttl:
            logger.info("OAuth state expired for %s", record.get("domain_id"))
            return StateValidation(valid=False)

        domain_id = record.get("domain_id")
        if not domain_id:
            return StateValidation(valid=False)
        return StateValidation(valid=True, domain_id=domain_id)
