"""Test settings loading and required-secret checks."""
import pytest

from storelink.config import PlatformConfig, Settings
from storelink.errors import ConfigurationError


def test_defaults():
    settings = Settings.default()
    assert settings.vault.state_ttl_seconds == 600
    assert settings.vault.key_salt == "salt"
    assert settings.platform.api_version == "2025-07"
    assert settings.store.database_url == ""
    assert settings.alerts.enabled is False


def test_from_env(monkeypatch):
    monkeypatch.setenv("STORELINK_ENCRYPTION_KEY", "k")
    monkeypatch.setenv("STORELINK_SCOPES", "read_orders, read_products")
    monkeypatch.setenv("STORELINK_ALERTS_ENABLED", "true")
    monkeypatch.setenv("STORELINK_STATE_TTL_SECONDS", "60")
    monkeypatch.setenv("STORELINK_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.require_encryption_key() == "k"
    assert settings.platform.scopes == ("read_orders", "read_products")
    assert settings.alerts.enabled is True
    assert settings.vault.state_ttl_seconds == 60
    assert settings.log_level == "DEBUG"


def test_missing_secrets_raise():
    settings = Settings.default()
    with pytest.raises(ConfigurationError):
        settings.require_encryption_key()
    with pytest.raises(ConfigurationError):
        settings.require_webhook_secret()
    with pytest.raises(ConfigurationError, match="STORELINK_CLIENT_ID"):
        settings.require_oauth_credentials()


def test_oauth_credentials_present():
    platform = PlatformConfig(client_id="a", client_secret="b", redirect_uri="https://x.test/cb")
    assert Settings(platform=platform).require_oauth_credentials() is platform
