"""Tests unitarios para el almacén de snapshots."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from orderwatch.core.config import Settings
from orderwatch.db.snapshot_store import SnapshotStore
from orderwatch.domain.models import Order, Snapshot, Tombstone
from orderwatch.domain.models.snapshot import EPOCH
from orderwatch.utils.error_handler import SnapshotStoreException

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "data" / "snapshot.json"


@pytest.fixture
def store(snapshot_path):
    snapshot_path.parent.mkdir(parents=True, exist_ok=True)
    return SnapshotStore(Settings(REDIS_URL=None, SNAPSHOT_FILE_PATH=str(snapshot_path)))


class TestFileBackend:
    """Tests para el respaldo en archivo JSON."""

    @pytest.mark.asyncio
    async def test_first_run_is_empty(self, store):
        """Debe retornar un snapshot vacío si no existe el archivo."""
        snapshot = await store.get()

        assert snapshot.saved_orders == ()
        assert snapshot.deleted_orders == {}
        assert snapshot.last_update_time == EPOCH

    @pytest.mark.asyncio
    async def test_set_then_get(self, store, snapshot_path):
        """Debe guardar y recuperar órdenes, tombstones y fecha."""
        snapshot = Snapshot(
            saved_orders=(Order(order_id="A", status="Shipped"),),
            last_update_time=NOW,
            deleted_orders={"B": Tombstone(order=Order(order_id="B"), deleted_at=NOW)},
        )

        await store.set(snapshot)
        loaded = await store.get()

        assert snapshot_path.exists()
        assert [order.order_id for order in loaded.saved_orders] == ["A"]
        assert loaded.saved_orders[0].is_shipped
        assert loaded.deleted_orders["B"].deleted_at == NOW
        assert loaded.last_update_time == NOW

    @pytest.mark.asyncio
    async def test_corrupted_file_is_empty(self, store, snapshot_path):
        """Debe tratar un archivo corrupto como primer arranque."""
        snapshot_path.write_text("{not json", encoding="utf-8")

        snapshot = await store.get()

        assert snapshot.saved_orders == ()

    @pytest.mark.asyncio
    async def test_missing_fields_default(self, store, snapshot_path):
        """Debe completar con valores por defecto los campos faltantes."""
        snapshot_path.write_text(json.dumps({"savedOrders": [{"AmazonOrderId": "A"}]}), encoding="utf-8")

        snapshot = await store.get()

        assert [order.order_id for order in snapshot.saved_orders] == ["A"]
        assert snapshot.deleted_orders == {}
        assert snapshot.last_update_time == EPOCH

    @pytest.mark.asyncio
    async def test_legacy_tombstone_gets_load_time(self, store, snapshot_path):
        """Debe aceptar tombstones guardados como orden sin fecha de eliminación."""
        document = {"deletedOrders": {"A": {"AmazonOrderId": "A", "OrderStatus": "Unshipped"}}}
        snapshot_path.write_text(json.dumps(document), encoding="utf-8")

        snapshot = await store.get(now=NOW)

        assert snapshot.deleted_orders["A"].order.order_id == "A"
        assert snapshot.deleted_orders["A"].deleted_at == NOW


class TestRedisBackend:
    """Tests para el almacenamiento en Redis."""

    @pytest.mark.asyncio
    async def test_reads_redis_first(self, snapshot_path):
        """Debe leer el documento desde Redis cuando existe."""
        redis_client = AsyncMock()
        redis_client.get.return_value = json.dumps({"savedOrders": [{"AmazonOrderId": "R"}]})
        store = SnapshotStore(Settings(SNAPSHOT_FILE_PATH=str(snapshot_path)), redis_client=redis_client)

        snapshot = await store.get()

        assert [order.order_id for order in snapshot.saved_orders] == ["R"]
        redis_client.get.assert_awaited_once_with("orderwatch:data")

    @pytest.mark.asyncio
    async def test_writes_both_backends(self, snapshot_path):
        """Debe escribir en Redis y en el archivo."""
        redis_client = AsyncMock()
        store = SnapshotStore(Settings(SNAPSHOT_FILE_PATH=str(snapshot_path)), redis_client=redis_client)
        await store.initialize()

        await store.set(Snapshot(last_update_time=NOW))

        redis_client.set.assert_awaited_once()
        assert json.loads(snapshot_path.read_text(encoding="utf-8"))["lastUpdateTime"] == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_fails_when_no_backend_saved(self):
        """Debe fallar si ningún backend pudo guardar."""
        redis_client = AsyncMock()
        redis_client.set.side_effect = ConnectionError("down")
        store = SnapshotStore(Settings(SNAPSHOT_FILE_PATH=None), redis_client=redis_client)

        with pytest.raises(SnapshotStoreException):
            await store.set(Snapshot.empty())

    @pytest.mark.asyncio
    async def test_redis_write_failure_keeps_previous_snapshot(self, snapshot_path):
        """Si Redis falla al guardar, debe fallar sin tocar el archivo y seguir leyendo el snapshot anterior."""
        stored = {}

        async def redis_set(key, value):
            stored[key] = value

        async def redis_get(key):
            return stored.get(key)

        redis_client = AsyncMock()
        redis_client.set.side_effect = redis_set
        redis_client.get.side_effect = redis_get
        store = SnapshotStore(Settings(SNAPSHOT_FILE_PATH=str(snapshot_path)), redis_client=redis_client)
        await store.initialize()
        await store.set(Snapshot(saved_orders=(Order(order_id="OLD"),), last_update_time=NOW))

        redis_client.set.side_effect = ConnectionError("redis blip")
        with pytest.raises(SnapshotStoreException) as exc_info:
            await store.set(Snapshot(saved_orders=(Order(order_id="NEW"),), last_update_time=NOW))

        assert exc_info.value.backend == "redis"
        file_document = json.loads(snapshot_path.read_text(encoding="utf-8"))
        assert [order["AmazonOrderId"] for order in file_document["savedOrders"]] == ["OLD"]
        snapshot = await store.get()
        assert [order.order_id for order in snapshot.saved_orders] == ["OLD"]

    @pytest.mark.asyncio
    async def test_file_failure_tolerated_when_redis_saved(self, snapshot_path, monkeypatch):
        """Debe aceptar el guardado si Redis lo guardó aunque falle el archivo."""
        redis_client = AsyncMock()
        store = SnapshotStore(Settings(SNAPSHOT_FILE_PATH=str(snapshot_path)), redis_client=redis_client)

        def broken_write(document):
            raise OSError("disk full")

        monkeypatch.setattr(store, "_write_file", broken_write)

        await store.set(Snapshot(last_update_time=NOW))

        redis_client.set.assert_awaited_once()
