"""
Shopify Admin API gateway - authenticated REST and GraphQL requests for one store.
Every call sends X-Shopify-Access-Token. Non-2xx responses and GraphQL errors raise
ShopifyAPIError carrying the endpoint and response body. No automatic retry: callers
own retry/backoff (bulk loops only sleep a fixed delay between requests).
"""
import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.services.errors import ShopifyAPIError, ShopifyConfigError

logger = logging.getLogger(__name__)

FULFILLABLE_STATUSES = ("open", "in_progress")
REFUND_TRANSACTION_KINDS = ("refund", "suggested_refund")

ORDER_EDIT_BEGIN = """
mutation orderEditBegin($id: ID!) {
  orderEditBegin(id: $id) {
    calculatedOrder { id }
    userErrors { field message }
  }
}
"""

ORDER_EDIT_SET_QUANTITY = """
mutation orderEditSetQuantity($id: ID!, $lineItemId: ID!, $quantity: Int!) {
  orderEditSetQuantity(id: $id, lineItemId: $lineItemId, quantity: $quantity) {
    calculatedOrder { id }
    userErrors { field message }
  }
}
"""

ORDER_EDIT_COMMIT = """
mutation orderEditCommit($id: ID!) {
  orderEditCommit(id: $id) {
    order { id }
    userErrors { field message }
  }
}
"""


def _log_shopify_response(method: str, url: str, status: int, body_preview: str = "") -> None:
    """Log every Shopify API call. No sensitive data."""
    if status >= 400:
        logger.warning("Shopify API %s %s -> %s %s", method, url, status, body_preview[:200] if body_preview else "")
    else:
        logger.info("Shopify API %s %s -> %s", method, url, status)


def _base_url(shop_domain: str, api_version: str) -> str:
    shop = shop_domain.lower().strip()
    if shop.startswith("https://"):
        shop = shop[len("https://"):]
    shop = shop.rstrip("/")
    if not shop.endswith(".myshopify.com"):
        shop = f"{shop}.myshopify.com" if "." not in shop else shop
    return f"https://{shop}/admin/api/{api_version}"


def _headers(access_token: str) -> dict:
    return {
        "X-Shopify-Access-Token": access_token,
        "Content-Type": "application/json",
    }


def _raise_user_errors(endpoint: str, step: str, result: Optional[dict]) -> None:
    errors = (result or {}).get("userErrors") or []
    if errors:
        message = errors[0].get("message") or "unknown error"
        raise ShopifyAPIError(endpoint, body=str(errors), message=f"{step} error: {message}")


class ShopifyClient:
    """Authenticated client for the configured store."""

    def __init__(
        self,
        shop_domain: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.shop_domain = (shop_domain if shop_domain is not None else settings.SHOPIFY_STORE_DOMAIN).strip()
        self.access_token = (access_token if access_token is not None else settings.SHOPIFY_ACCESS_TOKEN).strip()
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.timeout = timeout if timeout is not None else settings.SHOPIFY_TIMEOUT_SEC
        self.transport = transport
        if not self.shop_domain or not self.access_token:
            raise ShopifyConfigError("Shopify configuration is missing (SHOPIFY_STORE_DOMAIN / SHOPIFY_ACCESS_TOKEN)")
        self.base_url = _base_url(self.shop_domain, self.api_version)
        self.headers = _headers(self.access_token)

    async def _request(self, method: str, endpoint: str, *, params: Optional[dict] = None, body: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, params=params, json=body, headers=self.headers)
        except httpx.HTTPError as e:
            logger.warning("Shopify API %s %s failed: %s", method, url, e)
            raise ShopifyAPIError(endpoint, message=f"Shopify request failed: {e}") from e

        text = response.text or ""
        _log_shopify_response(method, url, response.status_code, text[:300])
        if response.status_code < 200 or response.status_code >= 300:
            raise ShopifyAPIError(endpoint, response.status_code, text)
        if not text.strip():
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise ShopifyAPIError(endpoint, response.status_code, text, message="Invalid JSON from Shopify") from e
        if not isinstance(data, dict):
            raise ShopifyAPIError(endpoint, response.status_code, text, message="Unexpected response shape from Shopify")
        return data

    async def get(self, endpoint: str, params: Optional[dict] = None) -> dict:
        return await self._request("GET", endpoint, params=params)

    async def post(self, endpoint: str, body: Optional[dict] = None) -> dict:
        return await self._request("POST", endpoint, body=body or {})

    async def graphql(self, query: str, variables: Optional[dict] = None) -> dict:
        """POST graphql.json; returns the `data` object. A non-empty `errors` array raises."""
        payload = await self._request("POST", "graphql.json", body={"query": query, "variables": variables or {}})
        if payload.get("errors"):
            logger.error("Shopify GraphQL errors: %s", payload["errors"])
            raise ShopifyAPIError("graphql.json", body=str(payload["errors"]), message="Shopify GraphQL error")
        return payload.get("data") or {}

    # --- Orders / refunds / transactions (sync) ---

    async def list_orders(self, since_id: Optional[str] = None, limit: int = 250) -> list[dict]:
        """One page of orders.json ordered by id; since_id is the cursor (last seen order id)."""
        params: dict[str, Any] = {"status": "any", "limit": limit}
        if since_id:
            params["since_id"] = since_id
        data = await self.get("orders.json", params)
        return data.get("orders") or []

    async def get_order_refunds(self, order_id: str) -> list[dict]:
        data = await self.get(f"orders/{order_id}/refunds.json")
        return data.get("refunds") or []

    async def get_order_transactions(self, order_id: str) -> list[dict]:
        data = await self.get(f"orders/{order_id}/transactions.json")
        return data.get("transactions") or []

    # --- Operator actions ---

    async def get_locations(self) -> list[dict]:
        data = await self.get("locations.json")
        return data.get("locations") or []

    async def create_fulfillment(
        self,
        order_id: str,
        tracking_number: Optional[str] = None,
        tracking_company: Optional[str] = None,
    ) -> dict:
        """Fulfill the first open/in-progress fulfillment order of an order."""
        endpoint = f"orders/{order_id}/fulfillment_orders.json"
        fulfillment_orders = (await self.get(endpoint)).get("fulfillment_orders") or []
        if not fulfillment_orders:
            raise ShopifyAPIError(endpoint, message="No fulfillment orders returned from Shopify")

        target = next((fo for fo in fulfillment_orders if fo.get("status") in FULFILLABLE_STATUSES), None)
        if target is None:
            statuses = ", ".join(str(fo.get("status")) for fo in fulfillment_orders)
            raise ShopifyAPIError(endpoint, message=f"No open or in_progress fulfillment orders found. Statuses: {statuses}")

        fulfillment: dict[str, Any] = {
            "line_items_by_fulfillment_order": [{"fulfillment_order_id": target["id"]}],
            "notify_customer": True,
        }
        if tracking_number:
            fulfillment["tracking_info"] = {"number": tracking_number, "company": tracking_company}
        return await self.post("fulfillments.json", {"fulfillment": fulfillment})

    async def cancel_order(self, order_id: str, reason: str = "customer") -> dict:
        return await self.post(
            f"orders/{order_id}/cancel.json",
            {"restock": True, "email": True, "reason": reason},
        )

    async def update_line_item_quantity(self, order_id: str, line_item_id: str, quantity: int) -> dict:
        """Order edit: begin -> set quantity -> commit. Returns the committed order ({id})."""
        begin = await self.graphql(ORDER_EDIT_BEGIN, {"id": f"gid://shopify/Order/{order_id}"})
        result = begin.get("orderEditBegin") or {}
        _raise_user_errors("graphql.json", "Edit begin", result)
        calculated_id = ((result.get("calculatedOrder") or {}).get("id"))
        if not calculated_id:
            raise ShopifyAPIError("graphql.json", message="Edit begin returned no calculated order")

        set_qty = await self.graphql(
            ORDER_EDIT_SET_QUANTITY,
            {
                "id": calculated_id,
                "lineItemId": f"gid://shopify/LineItem/{line_item_id}",
                "quantity": quantity,
            },
        )
        _raise_user_errors("graphql.json", "Set quantity", set_qty.get("orderEditSetQuantity"))

        commit = await self.graphql(ORDER_EDIT_COMMIT, {"id": calculated_id})
        commit_result = commit.get("orderEditCommit") or {}
        _raise_user_errors("graphql.json", "Commit", commit_result)
        return commit_result.get("order") or {}

    async def create_refund(
        self,
        order_id: str,
        refund_line_items: list[dict],
        refund_shipping: bool = False,
        location_id: Optional[str] = None,
    ) -> dict:
        """
        Calculate the refund first (Shopify computes taxes and transactions), then create it
        using the calculated refund transactions.
        """
        line_items = []
        for item in refund_line_items:
            item = dict(item)
            if location_id and item.get("restock_type") == "return":
                item["location_id"] = location_id
            line_items.append(item)

        calculate_body: dict[str, Any] = {"refund_line_items": line_items}
        if refund_shipping:
            calculate_body["shipping"] = {"full_refund": True}
        calculated = await self.post(f"orders/{order_id}/refunds/calculate.json", {"refund": calculate_body})
        refund_data = calculated.get("refund") or {}

        transactions = [
            {
                "parent_id": t.get("parent_id"),
                "amount": t.get("amount"),
                "kind": "refund",
                "gateway": t.get("gateway"),
            }
            for t in refund_data.get("transactions") or []
            if t.get("kind") in REFUND_TRANSACTION_KINDS
        ]
        final_body: dict[str, Any] = {
            "currency": refund_data.get("currency"),
            "notify": True,
            "refund_line_items": line_items,
            "transactions": transactions,
        }
        if refund_shipping:
            final_body["shipping"] = {"full_refund": True}
        return await self.post(f"orders/{order_id}/refunds.json", {"refund": final_body})
