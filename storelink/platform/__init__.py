"""Commerce platform integration: Admin GraphQL client, OAuth install flow, webhook subscriptions."""
from storelink.platform.client import (
    AdminApiClient,
    GraphQLError,
    GraphQLResponse,
    ProductClient,
    product_gid,
)
from storelink.platform.oauth import (
    AuthorizationRequest,
    OAuthService,
    TokenGrant,
    sanitize_shop_domain,
)
from storelink.platform.subscriptions import (
    SubscriptionResult,
    WebhookSubscriptionClient,
    from_subscription_topic,
    to_subscription_topic,
)

__all__ = [
    "AdminApiClient",
    "AuthorizationRequest",
    "GraphQLError",
    "GraphQLResponse",
    "OAuthService",
    "ProductClient",
    "SubscriptionResult",
    "TokenGrant",
    "WebhookSubscriptionClient",
    "from_subscription_topic",
    "product_gid",
    "sanitize_shop_domain",
    "to_subscription_topic",
]
