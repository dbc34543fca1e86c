"""
Order Cycle Service - Orchestrator for one order check cycle.

This service wires the collaborators of a cycle together:

Architecture:
- Load: SnapshotStore returns the state saved by the previous cycle
- Fetch: the order source lists the orders inside the configured window
- Reconcile: the reconciliation engine classifies changes and updates tombstones
- Notify: the formatter renders the diff and the channel delivers it
- Persist: the new snapshot is written, only after everything above succeeded
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Optional

from orderwatch.core.config import Settings, get_settings
from orderwatch.domain.models import Snapshot
from orderwatch.services.interfaces import INotificationChannel, IOrderSource, ISnapshotStore
from orderwatch.services.notification_formatter import format_order_diff
from orderwatch.services.reconciliation import expire_tombstones, reconcile
from orderwatch.utils.cycle_lock import cycle_lock
from orderwatch.utils.error_handler import CycleInProgressException, convert_to_app_exception, log_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleResult:
    """Outcome of a completed cycle."""

    message: str
    started_at: datetime
    duration_seconds: float
    total_orders: int
    added: int
    shipped: int
    tombstones: int
    reappeared: int = 0
    shipped_after_deletion: int = 0
    duplicate_deletions: int = 0
    expired_tombstones: int = 0
    chunks_sent: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 2),
            "notified": bool(self.message),
            "chunks_sent": self.chunks_sent,
            "statistics": {
                "total_orders": self.total_orders,
                "added": self.added,
                "shipped": self.shipped,
                "tombstones": self.tombstones,
                "reappeared": self.reappeared,
                "shipped_after_deletion": self.shipped_after_deletion,
                "duplicate_deletions": self.duplicate_deletions,
                "expired_tombstones": self.expired_tombstones,
            },
        }


class OrderCycleService:
    """
    Orchestrator service for the fetch → reconcile → notify → persist cycle.

    Only one cycle runs at a time: concurrent triggers in this process are
    rejected, and a file lock keyed by the snapshot rejects other processes.
    """

    def __init__(
        self,
        order_source: IOrderSource,
        notifier: INotificationChannel,
        snapshot_store: ISnapshotStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the cycle service.

        Args:
            order_source: Marketplace order source
            notifier: Notification channel
            snapshot_store: Persistent snapshot store
            settings: Application settings (default: global settings)
            clock: Returns the current time (default: UTC now)
        """
        self.order_source = order_source
        self.notifier = notifier
        self.snapshot_store = snapshot_store
        self.settings = settings or get_settings()
        self.clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()

        self.stats: dict[str, Any] = {
            "total_cycles": 0,
            "failed_cycles": 0,
            "notifications_sent": 0,
            "last_cycle_time": None,
            "last_result": None,
            "last_error": None,
        }

        logger.info("OrderCycleService initialized")

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self) -> CycleResult:
        """
        Run one complete check cycle.

        Returns:
            CycleResult whose ``message`` is the text sent to the owner
            (empty when nothing changed)

        Raises:
            CycleInProgressException: If another cycle holds the lock
            OrderSourceException: If the order source fails
            NotificationDeliveryException: If delivery fails
            SnapshotStoreException: If the snapshot cannot be saved
        """
        if self._lock.locked():
            raise CycleInProgressException()

        async with self._lock:
            async with cycle_lock(
                self.settings.SNAPSHOT_REDIS_KEY,
                lock_dir=self.settings.CYCLE_LOCK_DIR,
                timeout_seconds=self.settings.CYCLE_LOCK_TIMEOUT_SECONDS,
            ) as acquired:
                if not acquired:
                    raise CycleInProgressException("An order check cycle is running in another process")

                try:
                    result = await self._run_cycle_locked()
                except Exception as e:
                    app_error = convert_to_app_exception(e, {"operation": "order_check_cycle"})
                    self.stats["failed_cycles"] += 1
                    self.stats["last_error"] = str(app_error)
                    log_error(app_error)
                    if app_error is e:
                        raise
                    raise app_error from e

        self.stats["total_cycles"] += 1
        self.stats["last_cycle_time"] = result.started_at.isoformat()
        self.stats["last_result"] = result.to_dict()
        self.stats["last_error"] = None
        if result.message:
            self.stats["notifications_sent"] += 1
        return result

    async def _run_cycle_locked(self) -> CycleResult:
        now = self.clock()
        logger.info(f"🔄 Starting order check cycle at {now.isoformat()}")

        # Step 1: Load previous state
        snapshot = await self.snapshot_store.get()

        # Step 2: Fetch current orders
        new_orders = await self.order_source.list_orders(
            self.settings.AMAZON_MARKETPLACE_ID,
            self.settings.order_window_start(now),
        )

        # Step 3: Reconcile against the snapshot
        result = reconcile(snapshot, new_orders, now=now)
        tombstones, expired = expire_tombstones(result.tombstones, now, self.settings.tombstone_max_age)

        # Step 4: Notify
        message = await format_order_diff(
            result.diff,
            self.order_source.list_order_items,
            domestic_country_code=self.settings.DOMESTIC_COUNTRY_CODE,
        )
        chunks_sent = 0
        if message:
            chunks_sent = await self.notifier.send(message)
        else:
            logger.info("📭 No order changes to notify")

        # Step 5: Persist, only once everything above succeeded
        await self.snapshot_store.set(
            Snapshot(saved_orders=tuple(new_orders), last_update_time=now, deleted_orders=tombstones)
        )

        duration = (self.clock() - now).total_seconds()
        logger.info(
            f"✅ Cycle complete in {duration:.2f}s: {len(new_orders)} orders, "
            f"{len(result.diff.added)} new, {len(result.diff.shipped)} shipped, {len(tombstones)} tombstones"
        )

        return CycleResult(
            message=message,
            started_at=now,
            duration_seconds=duration,
            total_orders=len(new_orders),
            added=len(result.diff.added),
            shipped=len(result.diff.shipped),
            tombstones=len(tombstones),
            reappeared=len(result.reappeared),
            shipped_after_deletion=len(result.shipped_after_deletion),
            duplicate_deletions=len(result.duplicate_deletions),
            expired_tombstones=len(expired),
            chunks_sent=chunks_sent or 0,
        )

    async def get_status(self) -> dict[str, Any]:
        """
        Summarize the persisted snapshot and the last cycles.

        Returns:
            Dict with snapshot counters and service statistics
        """
        snapshot = await self.snapshot_store.get()
        return {
            "running": self.is_running,
            "snapshot": {
                "saved_orders": len(snapshot.saved_orders),
                "tombstones": len(snapshot.deleted_orders),
                "last_update_time": snapshot.last_update_time.isoformat(),
            },
            "statistics": dict(self.stats),
        }
