"""
Interfaces/Protocols for the collaborators of a check cycle.

The cycle service depends only on these contracts, so the SP-API client,
the Discord notifier and the snapshot store can be replaced in tests.
"""

from datetime import datetime
from typing import Protocol

from orderwatch.domain.models import Order, OrderItem, Snapshot


class IOrderSource(Protocol):
    """Protocol for the marketplace order source."""

    async def list_orders(self, marketplace_id: str, updated_after: datetime) -> list[Order]:
        """List the orders of a marketplace updated after a time."""
        ...

    async def list_order_items(self, order_id: str) -> list[OrderItem]:
        """List the line items of one order."""
        ...


class INotificationChannel(Protocol):
    """Protocol for the notification delivery channel."""

    async def send(self, text: str) -> int:
        """Deliver a message, returning the number of chunks sent."""
        ...


class ISnapshotStore(Protocol):
    """Protocol for the persistent snapshot store."""

    async def get(self) -> Snapshot:
        """Load the snapshot, or an empty one on first run."""
        ...

    async def set(self, snapshot: Snapshot) -> None:
        """Persist the snapshot (last write wins)."""
        ...
