"""
Notification formatter for order diffs.

Renders an OrderDiff as the plain-text summary delivered to the owner,
enriching each order with the titles of its line items.
"""

import logging
from typing import Awaitable, Callable, Sequence

from orderwatch.domain.models import Order, OrderDiff, OrderItem

logger = logging.getLogger(__name__)

ItemsLookup = Callable[[str], Awaitable[Sequence[OrderItem]]]

ADDED_HEADER = "🎊 New Orders 🎉"
REMOVED_HEADER = "🛑 Deleted Orders 🗑"
SHIPPED_HEADER = "📦 Shipped Orders 🛫"


def format_shipping_suffix(order: Order, domestic_country_code: str = "US") -> str:
    """
    Build the " in <city>, <region>[, <country>]" suffix for an order.

    The country code is only shown for foreign destinations. Returns an
    empty string when neither city nor region is known.
    """
    address = order.shipping_address
    if address is None or not (address.city or address.state_or_region):
        return ""

    parts = [part for part in (address.city, address.state_or_region) if part]
    if not address.is_domestic(domestic_country_code):
        parts.append(address.country_code)
    return " in " + ", ".join(parts)


async def format_order(order: Order, items_lookup: ItemsLookup, domestic_country_code: str = "US") -> str:
    """
    Render one order as "$<amount>: <titles> in <city>, <region>".

    Args:
        order: Order to render
        items_lookup: Coroutine returning the line items of an order id
        domestic_country_code: Country whose code is omitted from the suffix

    Returns:
        str: Order line without the leading bullet
    """
    items = await items_lookup(order.order_id)
    items_str = ", ".join(item.title for item in items)

    order_str = ""
    if order.order_total is not None:
        order_str += f"${order.order_total.amount}: "
    order_str += items_str
    order_str += format_shipping_suffix(order, domestic_country_code)
    return order_str


async def format_order_diff(
    order_diff: OrderDiff,
    items_lookup: ItemsLookup,
    domestic_country_code: str = "US",
) -> str:
    """
    Render a diff as the notification message.

    Sections are emitted in a fixed order (new, deleted, shipped) and only
    when non-empty. Line items are fetched one order at a time.

    Returns:
        str: Message text, empty when the diff is empty
    """
    sections = (
        (ADDED_HEADER, order_diff.added),
        (REMOVED_HEADER, order_diff.removed),
        (SHIPPED_HEADER, order_diff.shipped),
    )

    msg = ""
    for header, orders in sections:
        if not orders:
            continue
        msg += f"{header}\n"
        for order in orders:
            order_str = await format_order(order, items_lookup, domestic_country_code)
            msg += f"- {order_str}\n"
        msg += "\n"

    if msg:
        logger.debug(f"📝 Formatted notification ({len(msg)} chars) for {order_diff.counts()}")
    return msg
