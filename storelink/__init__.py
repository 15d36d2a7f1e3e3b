"""storelink: credential vault, rate-limited executor, and webhook dispatcher
for a third-party commerce platform.

Packages:
- vault: AES-256-GCM token encryption and single-use OAuth state
- resilience: retry/backoff executor, rate-limit telemetry, delivery ledger
- events: webhook signature checks and topic-based dispatch
- handlers: product, order, customer, and app webhook handlers
- platform: Admin GraphQL client and OAuth service
- api: FastAPI transport layer
"""

__version__ = "0.1.0"
