"""
Order domain model.

Represents a marketplace order as reported by the Selling Partner Orders API.
Orders are immutable value payloads: the reconciliation engine only decides
which collection an order belongs to, it never modifies one.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from orderwatch.domain.value_objects.money import Money

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    """Order statuses reported by the Orders API."""

    PENDING_AVAILABILITY = "PendingAvailability"
    PENDING = "Pending"
    UNSHIPPED = "Unshipped"
    PARTIALLY_SHIPPED = "PartiallyShipped"
    SHIPPED = "Shipped"
    INVOICE_UNCONFIRMED = "InvoiceUnconfirmed"
    CANCELED = "Canceled"
    UNFULFILLABLE = "Unfulfillable"


def parse_api_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp as returned by the API ("...Z")."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable timestamp from order source: {value!r}")
        return None


@dataclass(frozen=True)
class ShippingAddress:
    """Shipping destination, reduced to the parts shown in notifications."""

    city: str | None = None
    state_or_region: str | None = None
    country_code: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> "ShippingAddress | None":
        if not data:
            return None
        return cls(
            city=data.get("City") or None,
            state_or_region=data.get("StateOrRegion") or None,
            country_code=data.get("CountryCode") or None,
        )

    def to_api(self) -> dict[str, str]:
        result = {}
        if self.city:
            result["City"] = self.city
        if self.state_or_region:
            result["StateOrRegion"] = self.state_or_region
        if self.country_code:
            result["CountryCode"] = self.country_code
        return result

    def is_domestic(self, domestic_country_code: str) -> bool:
        """An address without a country code is treated as domestic."""
        if not self.country_code:
            return True
        return self.country_code.upper() == domestic_country_code.upper()


@dataclass(frozen=True)
class OrderItem:
    """A single line item of an order."""

    title: str
    quantity: int = 1
    asin: str | None = None
    seller_sku: str | None = None
    order_item_id: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            title=data.get("Title") or "",
            quantity=int(data.get("QuantityOrdered") or 0),
            asin=data.get("ASIN"),
            seller_sku=data.get("SellerSKU"),
            order_item_id=data.get("OrderItemId"),
        )


@dataclass(frozen=True)
class Order:
    """
    Domain model representing a marketplace order.

    Identity is ``order_id``; every other attribute is either the status the
    engine looks at or display data used by the notification formatter.

    Attributes:
        order_id: Marketplace order id (AmazonOrderId)
        status: Raw order status; known values are listed in OrderStatus
        order_total: Order total, if the marketplace reported one
        shipping_address: Shipping destination, if available
        purchase_date: When the order was placed
        last_update_date: When the marketplace last changed the order
        payload: Full API payload, persisted wholesale in the snapshot
    """

    order_id: str
    status: str = OrderStatus.PENDING.value
    order_total: Money | None = None
    shipping_address: ShippingAddress | None = None
    purchase_date: datetime | None = None
    last_update_date: datetime | None = None
    payload: dict[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    def __post_init__(self) -> None:
        """Validate order data after initialization."""
        if not self.order_id:
            raise ValueError("Order id is required")

        if isinstance(self.status, OrderStatus):
            object.__setattr__(self, "status", self.status.value)

    @property
    def is_shipped(self) -> bool:
        """Only the ``Shipped`` status counts; ``PartiallyShipped`` does not."""
        return self.status == OrderStatus.SHIPPED.value

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Order":
        """
        Create an order from an Orders API payload.

        Args:
            data: Order dict as returned by getOrders

        Returns:
            Order

        Raises:
            ValueError: If the payload has no AmazonOrderId
        """
        order_id = data.get("AmazonOrderId")
        if not order_id:
            raise ValueError(f"Order payload without AmazonOrderId: {sorted(data.keys())}")

        return cls(
            order_id=str(order_id),
            status=data.get("OrderStatus") or OrderStatus.PENDING.value,
            order_total=Money.from_api(data.get("OrderTotal")),
            shipping_address=ShippingAddress.from_api(data.get("ShippingAddress")),
            purchase_date=parse_api_datetime(data.get("PurchaseDate")),
            last_update_date=parse_api_datetime(data.get("LastUpdateDate")),
            payload=dict(data),
        )

    # Snapshots store the API payload, so persistence and parsing share a shape
    from_dict = from_api

    def to_dict(self) -> dict[str, Any]:
        """Convert order to dictionary for persistence."""
        result: dict[str, Any] = {
            "AmazonOrderId": self.order_id,
            "OrderStatus": self.status,
        }
        if self.order_total is not None:
            result["OrderTotal"] = self.order_total.to_api()
        if self.shipping_address is not None:
            result["ShippingAddress"] = self.shipping_address.to_api()
        if self.purchase_date is not None:
            result["PurchaseDate"] = self.purchase_date.isoformat()
        if self.last_update_date is not None:
            result["LastUpdateDate"] = self.last_update_date.isoformat()

        result.update(self.payload)
        return result
