"""
Snapshot domain model.

The snapshot is the only durable state of the service: the orders seen in
the previous cycle, the tombstones of orders that vanished from the source,
and the time of the last successful cycle.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping

from .order import Order, parse_api_datetime

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class Tombstone:
    """
    Record of an order that is no longer returned by the order source.

    Attributes:
        order: Last known version of the order
        deleted_at: Cycle time at which the order was first found missing
    """

    order: Order
    deleted_at: datetime = EPOCH

    @property
    def order_id(self) -> str:
        return self.order.order_id

    def to_dict(self) -> dict[str, Any]:
        return {"order": self.order.to_dict(), "deletedAt": self.deleted_at.isoformat()}

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_deleted_at: datetime) -> "Tombstone":
        """
        Decode a stored tombstone.

        Older documents stored the bare order payload; those entries get
        ``default_deleted_at`` as their deletion time.
        """
        if "order" in data:
            deleted_at = parse_api_datetime(data.get("deletedAt")) or default_deleted_at
            return cls(order=Order.from_dict(data["order"]), deleted_at=deleted_at)
        return cls(order=Order.from_dict(data), deleted_at=default_deleted_at)


@dataclass(frozen=True)
class Snapshot:
    """
    Persisted state between cycles.

    Attributes:
        saved_orders: Orders returned by the source in the previous cycle
        last_update_time: Time of the previous successful cycle
        deleted_orders: Tombstones keyed by order id
    """

    saved_orders: tuple[Order, ...] = ()
    last_update_time: datetime = EPOCH
    deleted_orders: Mapping[str, Tombstone] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "saved_orders", tuple(self.saved_orders))
        object.__setattr__(self, "deleted_orders", dict(self.deleted_orders))

    @classmethod
    def empty(cls) -> "Snapshot":
        """Snapshot used on the first run."""
        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert snapshot to the stored JSON document."""
        return {
            "savedOrders": [order.to_dict() for order in self.saved_orders],
            "lastUpdateTime": self.last_update_time.isoformat(),
            "deletedOrders": {order_id: tombstone.to_dict() for order_id, tombstone in self.deleted_orders.items()},
        }

    @classmethod
    def from_dict(cls, data: Any, now: datetime | None = None) -> "Snapshot":
        """
        Decode a stored document, defaulting anything missing or malformed.

        Args:
            data: Stored document (normally a dict)
            now: Deletion time given to tombstones stored without one

        Returns:
            Snapshot
        """
        if not isinstance(data, dict):
            if data is not None:
                logger.warning(f"⚠️ Ignoring malformed snapshot document of type {type(data).__name__}")
            return cls.empty()

        now = now or datetime.now(UTC)

        saved_orders = []
        raw_orders = data.get("savedOrders")
        if not isinstance(raw_orders, list):
            raw_orders = []
        for raw in raw_orders:
            try:
                saved_orders.append(Order.from_dict(raw))
            except (ValueError, TypeError, AttributeError, ArithmeticError) as e:
                logger.warning(f"⚠️ Skipping undecodable saved order: {e}")

        deleted_orders: dict[str, Tombstone] = {}
        raw_deleted = data.get("deletedOrders")
        if not isinstance(raw_deleted, dict):
            raw_deleted = {}
        for order_id, raw in raw_deleted.items():
            try:
                deleted_orders[str(order_id)] = Tombstone.from_dict(raw, default_deleted_at=now)
            except (ValueError, TypeError, AttributeError, ArithmeticError) as e:
                logger.warning(f"⚠️ Skipping undecodable tombstone {order_id}: {e}")

        last_update_time = parse_api_datetime(data.get("lastUpdateTime")) or EPOCH
        if last_update_time.tzinfo is None:
            last_update_time = last_update_time.replace(tzinfo=UTC)

        return cls(
            saved_orders=tuple(saved_orders),
            last_update_time=last_update_time,
            deleted_orders=deleted_orders,
        )
