"""Dataclass-based service configuration.

Each concern gets a frozen dataclass with sensible defaults and a
``from_env`` constructor. Secrets default to empty strings; the
``require_*`` helpers on Settings raise ConfigurationError when a code path
actually needs one, so tests can build partial configs freely.

Environment variables use the ``STORELINK_`` prefix, e.g.
``STORELINK_ENCRYPTION_KEY`` or ``STORELINK_API_VERSION``.
"""

import os
from dataclasses import dataclass, field

from storelink.errors import ConfigurationError


def _env(prefix: str, name: str, default: str = "") -> str:
    return os.getenv(f"{prefix}{name}", default)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VaultConfig:
    """Token encryption and OAuth state settings."""

    encryption_key: str = ""
    # Fixed salt keeps blobs written by earlier deployments decryptable.
    key_salt: str = "salt"
    state_ttl_seconds: int = 600
    secret_ttl_seconds: int = 30 * 24 * 60 * 60


@dataclass(frozen=True)
class PlatformConfig:
    """Commerce platform app credentials and API settings."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    webhook_secret: str = ""
    scopes: tuple[str, ...] = ("read_products", "write_products")
    api_version: str = "2025-07"
    request_timeout_s: float = 30.0


@dataclass(frozen=True)
class AlertConfig:
    """Error alert thresholds and rate limits."""

    enabled: bool = False
    severity_threshold: str = "high"
    max_alerts_per_hour: int = 5
    max_alerts_per_day: int = 20


@dataclass(frozen=True)
class StoreConfig:
    """Backing key-value store selection."""

    # Empty URL selects the in-memory store.
    database_url: str = ""
    echo_sql: bool = False
    event_log_ttl_seconds: int = 30 * 24 * 60 * 60
    delivery_ttl_seconds: int = 24 * 60 * 60


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    """Complete service configuration.

    Usage::

        settings = Settings.from_env()
        key = settings.require_encryption_key()
    """

    vault: VaultConfig = field(default_factory=VaultConfig)
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    log_level: str = "INFO"
    environment: str = "development"

    @classmethod
    def default(cls) -> "Settings":
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "STORELINK_") -> "Settings":
        """Create settings from environment variables."""
        scopes = _env(prefix, "SCOPES")
        vault = VaultConfig(
            encryption_key=_env(prefix, "ENCRYPTION_KEY"),
            key_salt=_env(prefix, "KEY_SALT", "salt"),
            state_ttl_seconds=int(_env(prefix, "STATE_TTL_SECONDS", "600")),
            secret_ttl_seconds=int(_env(prefix, "SECRET_TTL_SECONDS", str(30 * 24 * 60 * 60))),
        )
        platform = PlatformConfig(
            client_id=_env(prefix, "CLIENT_ID"),
            client_secret=_env(prefix, "CLIENT_SECRET"),
            redirect_uri=_env(prefix, "REDIRECT_URI"),
            webhook_secret=_env(prefix, "WEBHOOK_SECRET"),
            scopes=tuple(s.strip() for s in scopes.split(",") if s.strip())
            if scopes else PlatformConfig.scopes,
            api_version=_env(prefix, "API_VERSION", PlatformConfig.api_version),
            request_timeout_s=float(_env(prefix, "REQUEST_TIMEOUT_S", "30")),
        )
        alerts = AlertConfig(
            enabled=_env(prefix, "ALERTS_ENABLED", "false").lower() == "true",
            severity_threshold=_env(prefix, "ALERT_SEVERITY_THRESHOLD", "high").lower(),
            max_alerts_per_hour=int(_env(prefix, "MAX_ALERTS_PER_HOUR", "5")),
            max_alerts_per_day=int(_env(prefix, "MAX_ALERTS_PER_DAY", "20")),
        )
        store = StoreConfig(
            database_url=_env(prefix, "DATABASE_URL"),
            echo_sql=_env(prefix, "DB_ECHO", "false").lower() == "true",
        )
        return cls(
            vault=vault,
            platform=platform,
            alerts=alerts,
            store=store,
            log_level=_env(prefix, "LOG_LEVEL", "INFO").upper(),
            environment=_env(prefix, "ENV", "development"),
        )

    # -- Required secrets --

    def require_encryption_key(self) -> str:
        if not self.vault.encryption_key:
            raise ConfigurationError(
                "STORELINK_ENCRYPTION_KEY is required to encrypt access tokens"
            )
        return self.vault.encryption_key

    def require_webhook_secret(self) -> str:
        if not self.platform.webhook_secret:
            raise ConfigurationError(
                "STORELINK_WEBHOOK_SECRET is required to verify webhook signatures"
            )
        return self.platform.webhook_secret

    def require_oauth_credentials(self) -> PlatformConfig:
        missing = [
            name for name, value in (
                ("CLIENT_ID", self.platform.client_id),
                ("CLIENT_SECRET", self.platform.client_secret),
                ("REDIRECT_URI", self.platform.redirect_uri),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing OAuth settings: {', '.join('STORELINK_' + m for m in missing)}"
            )
        return self.platform
