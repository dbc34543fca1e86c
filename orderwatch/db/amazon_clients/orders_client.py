"""
Orders client for the Amazon Selling Partner API.

This module provides the order source used by each check cycle: listing the
orders updated inside a time window and fetching the line items of a single
order. Both follow NextToken pagination until the listing is exhausted.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Optional

from orderwatch.core.config import Settings
from orderwatch.domain.models import Order, OrderItem
from orderwatch.utils.error_handler import OrderSourceException

from .base_client import BaseSPAPIClient

logger = logging.getLogger(__name__)

ORDERS_PATH = "/orders/v0/orders"
ORDER_ITEMS_PATH = "/orders/v0/orders/{order_id}/orderItems"


def format_api_datetime(value: datetime) -> str:
    """Format a datetime as the ISO-8601 UTC string the API expects."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class AmazonOrdersClient(BaseSPAPIClient):
    """
    Order source backed by the SP-API Orders v0 endpoints.
    """

    def __init__(self, settings: Optional[Settings] = None, max_pages: int = 50):
        """
        Initialize the orders client.

        Args:
            settings: Application settings (default: global settings)
            max_pages: Safety limit on pages followed per listing
        """
        super().__init__(settings)
        self.max_pages = max_pages

    async def list_orders(self, marketplace_id: str, updated_after: datetime) -> list[Order]:
        """
        List every order of a marketplace updated after a given time.

        Args:
            marketplace_id: Marketplace to query (e.g. ATVPDKIKX0DER)
            updated_after: Lower bound of LastUpdateDate

        Returns:
            list[Order]: Orders in the API's listing order

        Raises:
            OrderSourceException: If any page fails or the listing exceeds max_pages
        """
        params: dict[str, Any] = {
            "MarketplaceIds": marketplace_id,
            "LastUpdatedAfter": format_api_datetime(updated_after),
        }

        orders: list[Order] = []
        for page in range(1, self.max_pages + 1):
            payload = await self._get(ORDERS_PATH, params)

            for raw in payload.get("Orders") or []:
                try:
                    orders.append(Order.from_api(raw))
                except ValueError as e:
                    raise OrderSourceException(f"Malformed order in listing: {e}", endpoint=ORDERS_PATH) from e

            next_token = payload.get("NextToken")
            if not next_token:
                break
            # A NextToken request keeps MarketplaceIds and drops the other filters
            params = {"MarketplaceIds": marketplace_id, "NextToken": next_token}
        else:
            # Never return a partial listing
            logger.error(f"❌ Order listing still had a NextToken after {self.max_pages} pages")
            raise OrderSourceException(
                f"Order listing exceeded {self.max_pages} pages; refusing to reconcile a partial listing",
                endpoint=ORDERS_PATH,
            )

        logger.info(
            f"📦 Fetched {len(orders)} orders from {marketplace_id} updated after {format_api_datetime(updated_after)} "
            f"({page} pages)"
        )
        return orders

    async def list_order_items(self, order_id: str) -> list[OrderItem]:
        """
        List the line items of an order.

        Args:
            order_id: AmazonOrderId

        Returns:
            list[OrderItem]

        Raises:
            OrderSourceException: If the request fails
        """
        path = ORDER_ITEMS_PATH.format(order_id=order_id)
        params: Optional[dict[str, Any]] = None

        items: list[OrderItem] = []
        for _ in range(self.max_pages):
            payload = await self._get(path, params)
            items.extend(OrderItem.from_api(raw) for raw in payload.get("OrderItems") or [])

            next_token = payload.get("NextToken")
            if not next_token:
                break
            params = {"NextToken": next_token}
        else:
            raise OrderSourceException(
                f"Item listing for order {order_id} exceeded {self.max_pages} pages", endpoint=path
            )

        logger.debug(f"Fetched {len(items)} items for order {order_id}")
        return items
