"""app/* webhooks."""
from __future__ import annotations
from typing import Any
import logging

from storelink.events.dispatcher import EventMetadata, HandlerResult
from storelink.events.topics import WebhookTopic
from storelink.vault import CredentialVault

logger = logging.getLogger(__name__)


class AppHandler:
    """Drops the stored credential when the app is uninstalled."""

    def __init__(self, vault: CredentialVault):
        self.vault = vault

    async def handle(self, payload: dict[str, Any], metadata: EventMetadata) -> HandlerResult:
        if metadata.topic != WebhookTopic.APP_UNINSTALLED:
            return HandlerResult(False, f"Unsupported app webhook topic: {metadata.topic}")

        removed = await self.vault.delete_secret(metadata.shop_domain)
        logger.info("App uninstalled from %s (credential removed: %s)", metadata.shop_domain, removed)
        return HandlerResult(
            True,
            "App uninstalled",
            {"shop_domain": metadata.shop_domain, "token_removed": removed},
        )
