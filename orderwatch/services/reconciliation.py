"""
Order reconciliation engine.

Compares the orders saved in the previous cycle with the orders currently
returned by the order source, and turns the raw difference into the events
worth notifying:

- Diff: classify ids as added / removed / shipped
- Tombstones: a removal is provisional, recorded silently in the tombstone map
- Reappearance: a tombstoned order that comes back produces no event
- Shipment: a tombstoned order that comes back shipped is reported as shipped

Every function here is pure. Each policy step takes the current diff and
tombstone map and returns new ones; nothing passed in is mutated.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Iterable, Mapping

from orderwatch.domain.models import Order, OrderDiff, ReconcileResult, Snapshot, Tombstone

logger = logging.getLogger(__name__)

Tombstones = Mapping[str, Tombstone]


def _index_by_id(orders: Iterable[Order]) -> dict[str, Order]:
    return {order.order_id: order for order in orders}


def diff(old_orders: Iterable[Order], new_orders: Iterable[Order]) -> OrderDiff:
    """
    Classify the differences between two order sets.

    Args:
        old_orders: Orders from the previous cycle
        new_orders: Orders currently returned by the source

    Returns:
        OrderDiff where ``added`` holds ids only in new, ``removed`` ids only
        in old, and ``shipped`` shared ids whose status changed to Shipped
    """
    old_by_id = _index_by_id(old_orders)
    new_by_id = _index_by_id(new_orders)

    added: list[Order] = []
    shipped: list[Order] = []
    for order_id, new_order in new_by_id.items():
        old_order = old_by_id.get(order_id)
        if old_order is None:
            added.append(new_order)
        elif new_order.is_shipped and not old_order.is_shipped:
            shipped.append(new_order)

    removed = [old_order for order_id, old_order in old_by_id.items() if order_id not in new_by_id]

    return OrderDiff(added=tuple(added), removed=tuple(removed), shipped=tuple(shipped))


def record_removals(
    order_diff: OrderDiff, tombstones: Tombstones, now: datetime
) -> tuple[OrderDiff, dict[str, Tombstone], tuple[str, ...]]:
    """
    Move removed orders into the tombstone map.

    An id that is already tombstoned keeps its existing entry and is
    reported back as a duplicate deletion.

    Returns:
        (diff with ``removed`` cleared, new tombstone map, duplicate ids)
    """
    next_tombstones = dict(tombstones)
    duplicates: list[str] = []

    for order in order_diff.removed:
        if order.order_id in next_tombstones:
            logger.warning(f"⚠️ Order {order.order_id} removed again while already tombstoned; keeping first record")
            duplicates.append(order.order_id)
            continue
        next_tombstones[order.order_id] = Tombstone(order=order, deleted_at=now)
        logger.debug(f"🪦 Order {order.order_id} tombstoned")

    cleared = OrderDiff(added=order_diff.added, removed=(), shipped=order_diff.shipped)
    return cleared, next_tombstones, tuple(duplicates)


def resolve_reappeared(
    order_diff: OrderDiff, tombstones: Tombstones
) -> tuple[OrderDiff, dict[str, Tombstone], tuple[str, ...], tuple[str, ...]]:
    """
    Handle added orders that are actually tombstoned orders coming back.

    A returning order leaves the tombstone map. If it comes back shipped
    while its tombstoned version was not, it is reported as shipped;
    otherwise it produces no event.

    Returns:
        (new diff, new tombstone map, reappeared ids, shipped-after-deletion ids)
    """
    next_tombstones = dict(tombstones)
    added: list[Order] = []
    promoted: list[Order] = []
    reappeared: list[str] = []
    shipped_after_deletion: list[str] = []

    for order in order_diff.added:
        tombstone = next_tombstones.pop(order.order_id, None)
        if tombstone is None:
            added.append(order)
        elif order.is_shipped and not tombstone.order.is_shipped:
            promoted.append(order)
            shipped_after_deletion.append(order.order_id)
        else:
            reappeared.append(order.order_id)

    new_diff = OrderDiff(
        added=tuple(added),
        removed=order_diff.removed,
        shipped=order_diff.shipped + tuple(promoted),
    )
    return new_diff, next_tombstones, tuple(reappeared), tuple(shipped_after_deletion)


def release_shipped(
    order_diff: OrderDiff, tombstones: Tombstones
) -> tuple[OrderDiff, dict[str, Tombstone], tuple[str, ...]]:
    """
    Drop tombstones of orders reported as shipped. Shipped events are kept.

    Returns:
        (unchanged diff, new tombstone map, released ids)
    """
    next_tombstones = dict(tombstones)
    released = tuple(order.order_id for order in order_diff.shipped if next_tombstones.pop(order.order_id, None))
    return order_diff, next_tombstones, released


def reconcile(snapshot: Snapshot, new_orders: Iterable[Order], now: datetime | None = None) -> ReconcileResult:
    """
    Tombstone-aware reconciliation of the current orders against a snapshot.

    Args:
        snapshot: State persisted by the previous cycle
        new_orders: Orders currently returned by the source
        now: Time of this cycle, stamped on new tombstones

    Returns:
        ReconcileResult with the visible diff (``removed`` always empty)
        and the tombstone map to persist
    """
    now = now or datetime.now(UTC)
    new_orders = tuple(new_orders)

    raw_diff = diff(snapshot.saved_orders, new_orders)
    order_diff, tombstones, duplicates = record_removals(raw_diff, snapshot.deleted_orders, now)
    order_diff, tombstones, reappeared, promoted = resolve_reappeared(order_diff, tombstones)
    order_diff, tombstones, released = release_shipped(order_diff, tombstones)

    shipped_after_deletion = promoted + released

    if raw_diff.removed or reappeared or shipped_after_deletion:
        logger.info(
            f"🔍 Reconciled: {len(raw_diff.removed)} removed (tombstoned), "
            f"{len(reappeared)} reappeared, {len(shipped_after_deletion)} shipped after deletion, "
            f"{len(tombstones)} tombstones held"
        )

    return ReconcileResult(
        diff=order_diff,
        tombstones=tombstones,
        duplicate_deletions=duplicates,
        reappeared=reappeared,
        shipped_after_deletion=shipped_after_deletion,
    )


def expire_tombstones(
    tombstones: Tombstones, now: datetime, max_age: timedelta | None
) -> tuple[dict[str, Tombstone], tuple[Tombstone, ...]]:
    """
    Evict tombstones older than ``max_age``.

    With ``max_age`` None nothing expires and the map grows without bound.

    Returns:
        (kept tombstones, expired tombstones)
    """
    if max_age is None:
        return dict(tombstones), ()

    kept: dict[str, Tombstone] = {}
    expired: list[Tombstone] = []
    for order_id, tombstone in tombstones.items():
        if now - tombstone.deleted_at > max_age:
            expired.append(tombstone)
        else:
            kept[order_id] = tombstone

    if expired:
        logger.info(f"🧹 Expired {len(expired)} tombstones older than {max_age.days} days")

    return kept, tuple(expired)
