"""
Typed errors raised by the Shopify gateway, the upsert layer and the sync pipeline.
Controllers translate these into HTTP responses.
"""
from typing import Optional


class ShopifyConfigError(Exception):
    """Store domain, access token or webhook secret is not configured."""


class ShopifyAPIError(Exception):
    """Non-2xx response, GraphQL errors/userErrors, or an unreadable body from Shopify."""

    def __init__(self, endpoint: str, status_code: Optional[int] = None, body: str = "", message: Optional[str] = None):
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body or ""
        detail = message or f"Shopify API error on {endpoint}"
        if status_code is not None:
            detail = f"{detail} (HTTP {status_code})"
        if self.body:
            detail = f"{detail}: {self.body[:300]}"
        super().__init__(detail)


class InvalidPayloadError(ValueError):
    """Input rejected before any external call or database mutation."""


class OrderSyncError(Exception):
    """Bulk sync aborted; orders committed before the failure stay committed."""

    def __init__(self, orders_synced: int, cause: Exception):
        self.orders_synced = orders_synced
        self.cause = cause
        super().__init__(f"Order sync aborted after {orders_synced} order(s): {cause}")
