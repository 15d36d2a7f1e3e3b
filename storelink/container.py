"""
Service wiring.

Builds every collaborator exactly once from Settings and hands them out as
plain attributes. The transport attaches the container to ``app.state``;
tests build one directly with in-memory stores and fakes.
"""
from __future__ import annotations
from dataclasses import dataclass
import logging

import httpx

from storelink.config import Settings
from storelink.events import EventDispatcher, WebhookEventLog
from storelink.handlers import register_default_handlers
from storelink.platform import (
    AdminApiClient,
    OAuthService,
    ProductClient,
    WebhookSubscriptionClient,
)
from storelink.reporting import (
    AlertingErrorReporter,
    ErrorReport,
    ErrorReporter,
    ErrorSeverity,
    LoggingErrorReporter,
)
from storelink.resilience import DeliveryLedger, RateLimitedExecutor
from storelink.stores import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore
from storelink.vault import CredentialVault, TokenCipher

logger = logging.getLogger(__name__)


async def _log_alert(report: ErrorReport) -> None:
    logger.critical("ALERT %s", report.to_dict())


@dataclass
class ServiceContainer:
    settings: Settings
    store: KeyValueStore
    reporter: ErrorReporter
    http: httpx.AsyncClient
    vault: CredentialVault
    executor: RateLimitedExecutor
    admin_client: AdminApiClient
    oauth: OAuthService
    event_log: WebhookEventLog
    ledger: DeliveryLedger
    dispatcher: EventDispatcher
    subscriptions: WebhookSubscriptionClient
    owns_http: bool = True

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: KeyValueStore | None = None,
        reporter: ErrorReporter | None = None,
        http: httpx.AsyncClient | None = None,
        cipher: TokenCipher | None = None,
        executor: RateLimitedExecutor | None = None,
    ) -> "ServiceContainer":
        """Build from settings. Any collaborator can be injected instead."""
        if store is None:
            if settings.store.database_url:
                store = SqlKeyValueStore.from_url(settings.store.database_url, echo=settings.store.echo_sql)
            else:
                logger.warning("No database URL configured; using in-memory store")
                store = InMemoryKeyValueStore()

        if reporter is None:
            if settings.alerts.enabled:
                reporter = AlertingErrorReporter(
                    _log_alert,
                    severity_threshold=ErrorSeverity(settings.alerts.severity_threshold),
                    max_per_hour=settings.alerts.max_alerts_per_hour,
                    max_per_day=settings.alerts.max_alerts_per_day,
                )
            else:
                reporter = LoggingErrorReporter()

        owns_http = http is None
        if http is None:
            http = httpx.AsyncClient(timeout=settings.platform.request_timeout_s)

        if cipher is None:
            cipher = TokenCipher.from_secret(
                settings.require_encryption_key(), settings.vault.key_salt
            )
        vault = CredentialVault(
            store,
            cipher,
            state_ttl_seconds=settings.vault.state_ttl_seconds,
            secret_ttl_seconds=settings.vault.secret_ttl_seconds,
        )

        executor = executor or RateLimitedExecutor(reporter)
        admin_client = AdminApiClient(
            http,
            executor,
            reporter,
            api_version=settings.platform.api_version,
            timeout_s=settings.platform.request_timeout_s,
        )
        oauth = OAuthService(vault, http, executor, settings.platform)

        event_log = WebhookEventLog(store, ttl_seconds=settings.store.event_log_ttl_seconds)
        ledger = DeliveryLedger(store, ttl_seconds=settings.store.delivery_ttl_seconds)
        dispatcher = EventDispatcher(reporter, ledger=ledger, event_log=event_log)
        register_default_handlers(dispatcher, store, vault, ProductClient(admin_client), reporter)

        return cls(
            settings=settings,
            store=store,
            reporter=reporter,
            http=http,
            vault=vault,
            executor=executor,
            admin_client=admin_client,
            oauth=oauth,
            event_log=event_log,
            ledger=ledger,
            dispatcher=dispatcher,
            subscriptions=WebhookSubscriptionClient(admin_client, vault),
            owns_http=owns_http,
        )

    async def startup(self) -> None:
        if isinstance(self.store, SqlKeyValueStore):
            await self.store.create_tables()
        logger.info("storelink services started (%s)", self.settings.environment)

    async def shutdown(self) -> None:
        if self.owns_http:
            await self.http.aclose()
        if isinstance(self.store, SqlKeyValueStore):
            await self.store.close()
        logger.info("storelink services stopped")
