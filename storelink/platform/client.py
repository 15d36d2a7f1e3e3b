"""
Admin GraphQL client for the commerce platform.

Every request goes through the RateLimitedExecutor:
- non-2xx responses raise PlatformApiError (status + headers) so the
  executor can classify them and honour ``Retry-After``
- GraphQL ``errors`` in a 2xx body become a failed result and are reported
- rate-limit telemetry from ``extensions.cost`` or the call-limit header is
  attached to the result
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any
import logging

import httpx

from storelink.errors import PlatformApiError, StorelinkError
from storelink.reporting import ErrorCategory, ErrorContext, ErrorReporter, ErrorSeverity
from storelink.resilience.executor import (
    ExecutionResult,
    RateLimitedExecutor,
    RetryConfig,
    RetryContext,
)
from storelink.resilience.telemetry import (
    RateLimitInfo,
    parse_query_cost,
    parse_rate_limit_telemetry,
)

logger = logging.getLogger(__name__)

USER_AGENT = "storelink/0.1"
PRODUCT_GID_PREFIX = "gid://shopify/Product/"


class GraphQLError(StorelinkError):
    """A 2xx response whose body carried GraphQL ``errors``."""

    def __init__(self, errors: list[dict[str, Any]]):
        messages = ", ".join(str(e.get("message", e)) for e in errors)
        super().__init__(f"GraphQL errors: {messages}", errors=errors)
        self.errors = errors


@dataclass
class GraphQLResponse:
    data: dict[str, Any] | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)
    extensions: dict[str, Any] = field(default_factory=dict)
    rate_limit: RateLimitInfo | None = None


class AdminApiClient:
    """Posts GraphQL documents to ``https://{shop}/admin/api/{version}/graphql.json``."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        executor: RateLimitedExecutor,
        reporter: ErrorReporter,
        api_version: str = "2025-07",
        timeout_s: float = 30.0,
    ):
        self.http = http
        self.executor = executor
        self.reporter = reporter
        self.api_version = api_version
        self.timeout_s = timeout_s

    def endpoint(self, shop_domain: str) -> str:
        return f"https://{shop_domain}/admin/api/{self.api_version}/graphql.json"

    async def execute(
        self,
        shop_domain: str,
        access_token: str,
        query: str,
        variables: dict[str, Any] | None = None,
        operation: str = "query",
        request_id: str | None = None,
        retry: RetryConfig | dict[str, Any] | None = None,
    ) -> ExecutionResult[GraphQLResponse]:
        context = RetryContext(
            operation=operation,
            shop_domain=shop_domain,
            request_id=request_id,
            additional_data={"query": query.strip()[:100]},
        )
        result = await self.executor.execute(
            lambda: self._post(shop_domain, access_token, query, variables or {}),
            context,
            retry,
        )
        if not result.success or result.data is None or not result.data.errors:
            return result

        error = GraphQLError(result.data.errors)
        logger.warning("%s on %s returned GraphQL errors: %s", operation, shop_domain, error.message)
        try:
            await self.reporter.report(
                error,
                ErrorSeverity.MEDIUM,
                ErrorCategory.PLATFORM_API,
                ErrorContext(
                    service="graphql-client",
                    operation=operation,
                    shop_domain=shop_domain,
                    request_id=request_id,
                    additional_data={"errors": result.data.errors},
                ),
            )
        except Exception:
            logger.exception("Error reporter failed for %s", operation)
        return ExecutionResult(
            success=False,
            error=error,
            retry_count=result.retry_count,
            total_delay_ms=result.total_delay_ms,
            rate_limit=result.rate_limit,
        )

    async def _post(
        self,
        shop_domain: str,
        access_token: str,
        query: str,
        variables: dict[str, Any],
    ) -> GraphQLResponse:
        resp = await self.http.post(
            self.endpoint(shop_domain),
            json={"query": query, "variables": variables},
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": access_token,
                "User-Agent": USER_AGENT,
            },
            timeout=self.timeout_s,
        )
        if not resp.is_success:
            raise PlatformApiError(
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
                headers=dict(resp.headers),
            )

        body = resp.json()
        extensions = body.get("extensions") or {}
        return GraphQLResponse(
            data=body.get("data"),
            errors=body.get("errors") or [],
            extensions=extensions,
            rate_limit=parse_query_cost(extensions) or parse_rate_limit_telemetry(resp.headers),
        )


# ---------------------------------------------------------------------------
# Resource clients
# ---------------------------------------------------------------------------

PRODUCT_QUERY = """
query getProduct($id: ID!) {
  product(id: $id) {
    id
    title
    handle
    vendor
    productType
    status
    tags
    description
    descriptionHtml
    createdAt
    updatedAt
    images(first: 50) { nodes { id url altText width height } }
    variants(first: 100) {
      nodes { id title price compareAtPrice sku barcode inventoryQuantity }
    }
    options { id name values }
  }
}
"""


def product_gid(product_id: int | str) -> str:
    product_id = str(product_id)
    return product_id if product_id.startswith("gid://") else PRODUCT_GID_PREFIX + product_id


class ProductClient:
    """Product reads used to enrich product webhooks."""

    def __init__(self, client: AdminApiClient):
        self.client = client

    async def get_product(
        self,
        shop_domain: str,
        access_token: str,
        product_id: int | str,
        request_id: str | None = None,
    ) -> ExecutionResult[GraphQLResponse]:
        return await self.client.execute(
            shop_domain,
            access_token,
            PRODUCT_QUERY,
            {"id": product_gid(product_id)},
            operation="getProduct",
            request_id=request_id,
        )
