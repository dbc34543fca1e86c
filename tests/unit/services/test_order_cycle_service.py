"""Tests unitarios para el orquestador del ciclo de revisión de órdenes."""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from orderwatch.core.config import Settings
from orderwatch.domain.models import Order, OrderItem, Snapshot, Tombstone
from orderwatch.domain.value_objects import Money
from orderwatch.services.notification_formatter import ADDED_HEADER
from orderwatch.services.order_cycle_service import OrderCycleService
from orderwatch.utils.error_handler import (
    AppException,
    CycleInProgressException,
    ErrorCode,
    NotificationDeliveryException,
    OrderSourceException,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def make_order(order_id: str, status: str = "Unshipped") -> Order:
    return Order(order_id=order_id, status=status, order_total=Money(amount=Decimal("12.50")))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        CYCLE_LOCK_DIR=str(tmp_path),
        SNAPSHOT_FILE_PATH=str(tmp_path / "snapshot.json"),
        ORDER_LOOKBACK_DAYS=30,
        TOMBSTONE_MAX_AGE_DAYS=None,
    )


@pytest.fixture
def order_source():
    source = MagicMock()
    source.list_orders = AsyncMock(return_value=[])
    source.list_order_items = AsyncMock(return_value=[OrderItem(title="Widget")])
    return source


@pytest.fixture
def notifier():
    channel = MagicMock()
    channel.send = AsyncMock(return_value=1)
    return channel


@pytest.fixture
def snapshot_store():
    store = MagicMock()
    store.get = AsyncMock(return_value=Snapshot.empty())
    store.set = AsyncMock()
    return store


@pytest.fixture
def service(order_source, notifier, snapshot_store, settings):
    return OrderCycleService(
        order_source=order_source,
        notifier=notifier,
        snapshot_store=snapshot_store,
        settings=settings,
        clock=lambda: NOW,
    )


class TestRunCycle:
    """Tests para la ejecución de un ciclo completo."""

    @pytest.mark.asyncio
    async def test_no_changes_skips_delivery(self, service, notifier, snapshot_store):
        """No debe enviar notificación si el diff está vacío, pero sí persistir."""
        result = await service.run_cycle()

        assert result.message == ""
        notifier.send.assert_not_awaited()
        snapshot_store.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_orders_are_notified_and_persisted(self, service, order_source, notifier, snapshot_store):
        """Debe notificar las órdenes nuevas y guardar el nuevo snapshot."""
        order_source.list_orders.return_value = [make_order("A")]

        result = await service.run_cycle()

        assert result.message == f"{ADDED_HEADER}\n- $12.50: Widget\n\n"
        assert result.added == 1
        notifier.send.assert_awaited_once_with(result.message)

        saved = snapshot_store.set.await_args.args[0]
        assert [order.order_id for order in saved.saved_orders] == ["A"]
        assert saved.last_update_time == NOW

    @pytest.mark.asyncio
    async def test_queries_configured_window(self, service, order_source, settings):
        """Debe consultar el marketplace configurado desde el inicio de la ventana."""
        await service.run_cycle()

        order_source.list_orders.assert_awaited_once_with(settings.AMAZON_MARKETPLACE_ID, NOW - timedelta(days=30))

    @pytest.mark.asyncio
    async def test_removed_order_tombstoned(self, service, snapshot_store, notifier):
        """Debe guardar como tombstone una orden desaparecida sin notificar."""
        snapshot_store.get.return_value = Snapshot(saved_orders=(make_order("A"),))

        result = await service.run_cycle()

        assert result.message == ""
        notifier.send.assert_not_awaited()
        saved = snapshot_store.set.await_args.args[0]
        assert list(saved.deleted_orders) == ["A"]
        assert saved.deleted_orders["A"].deleted_at == NOW

    @pytest.mark.asyncio
    async def test_expires_old_tombstones(self, service, snapshot_store, settings):
        """Debe expirar tombstones viejos cuando hay edad máxima configurada."""
        settings.TOMBSTONE_MAX_AGE_DAYS = 30
        snapshot_store.get.return_value = Snapshot(
            deleted_orders={"OLD": Tombstone(order=make_order("OLD"), deleted_at=NOW - timedelta(days=60))}
        )

        result = await service.run_cycle()

        assert result.expired_tombstones == 1
        saved = snapshot_store.set.await_args.args[0]
        assert saved.deleted_orders == {}

    @pytest.mark.asyncio
    async def test_source_failure_keeps_previous_snapshot(self, service, order_source, snapshot_store, notifier):
        """Si la fuente falla no debe notificar ni escribir el snapshot."""
        order_source.list_orders.side_effect = OrderSourceException("boom", api_response_code=500)

        with pytest.raises(OrderSourceException):
            await service.run_cycle()

        notifier.send.assert_not_awaited()
        snapshot_store.set.assert_not_awaited()
        assert service.stats["failed_cycles"] == 1

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_previous_snapshot(self, service, order_source, notifier, snapshot_store):
        """Si la entrega falla no debe escribir el snapshot."""
        order_source.list_orders.return_value = [make_order("A")]
        notifier.send.side_effect = NotificationDeliveryException("rejected", api_response_code=403)

        with pytest.raises(NotificationDeliveryException):
            await service.run_cycle()

        snapshot_store.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_items_lookup_failure_keeps_previous_snapshot(self, service, order_source, snapshot_store):
        """Si falla la consulta de items no debe escribir el snapshot."""
        order_source.list_orders.return_value = [make_order("A")]
        order_source.list_order_items.side_effect = OrderSourceException("timeout")

        with pytest.raises(OrderSourceException):
            await service.run_cycle()

        snapshot_store.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, service, snapshot_store):
        """Debe convertir errores inesperados en AppException con CYCLE_FAILED."""
        snapshot_store.get.side_effect = KeyError("savedOrders")

        with pytest.raises(AppException) as exc_info:
            await service.run_cycle()

        assert exc_info.value.error_code == ErrorCode.CYCLE_FAILED
        assert isinstance(exc_info.value.__cause__, KeyError)
        snapshot_store.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_cycle_rejected(self, service, snapshot_store):
        """Debe rechazar un segundo ciclo mientras otro está en curso."""
        release = asyncio.Event()

        async def slow_get():
            await release.wait()
            return Snapshot.empty()

        snapshot_store.get.side_effect = slow_get

        first = asyncio.create_task(service.run_cycle())
        await asyncio.sleep(0)

        with pytest.raises(CycleInProgressException):
            await service.run_cycle()

        release.set()
        await first
        assert service.stats["total_cycles"] == 1


class TestGetStatus:
    """Tests para el resumen de estado."""

    @pytest.mark.asyncio
    async def test_status_summarizes_snapshot(self, service, snapshot_store):
        """Debe reportar conteos del snapshot y estadísticas."""
        snapshot_store.get.return_value = Snapshot(
            saved_orders=(make_order("A"), make_order("B")),
            last_update_time=NOW,
            deleted_orders={"C": Tombstone(order=make_order("C"), deleted_at=NOW)},
        )

        status = await service.get_status()

        assert status["snapshot"] == {
            "saved_orders": 2,
            "tombstones": 1,
            "last_update_time": NOW.isoformat(),
        }
        assert status["running"] is False
        assert status["statistics"]["total_cycles"] == 0
