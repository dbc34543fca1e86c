"""
Domain models for business entities.

These models represent the orders observed in the marketplace and the
state the reconciliation engine carries from one cycle to the next.
"""

from .order import Order, OrderItem, OrderStatus, ShippingAddress
from .order_diff import OrderDiff, ReconcileResult
from .snapshot import Snapshot, Tombstone

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "ShippingAddress",
    "OrderDiff",
    "ReconcileResult",
    "Snapshot",
    "Tombstone",
]
