"""Tests unitarios para los endpoints HTTP de revisión de órdenes."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from orderwatch.main import create_application
from orderwatch.services.order_cycle_service import CycleResult
from orderwatch.utils.error_handler import CycleInProgressException, OrderSourceException

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def make_result(message: str) -> CycleResult:
    return CycleResult(
        message=message,
        started_at=NOW,
        duration_seconds=0.5,
        total_orders=3,
        added=1,
        shipped=0,
        tombstones=0,
    )


@pytest.fixture
def app():
    # Sin "with TestClient(...)" el lifespan no corre y no se crean clientes reales
    return create_application()


@pytest.fixture
def cycle_service():
    service = MagicMock()
    service.run_cycle = AsyncMock(return_value=make_result("🎊 New Orders 🎉\n- $5.00: Mug\n\n"))
    service.get_status = AsyncMock(
        return_value={
            "running": False,
            "snapshot": {"saved_orders": 3, "tombstones": 1, "last_update_time": NOW.isoformat()},
            "statistics": {"total_cycles": 4},
        }
    )
    return service


@pytest.fixture
def client(app, cycle_service):
    app.state.cycle_service = cycle_service
    snapshot_store = MagicMock()
    snapshot_store.ping = AsyncMock(return_value=True)
    app.state.snapshot_store = snapshot_store
    return TestClient(app)


class TestCheckEndpoint:
    """Tests para /api/v1/orders/check."""

    @pytest.mark.parametrize("method", ["get", "post"])
    def test_returns_message_as_plain_text(self, client, cycle_service, method):
        """Debe ejecutar un ciclo y devolver el mensaje como texto plano."""
        response = getattr(client, method)("/api/v1/orders/check")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "🎊 New Orders 🎉\n- $5.00: Mug\n\n"
        cycle_service.run_cycle.assert_awaited_once()

    def test_empty_message(self, client, cycle_service):
        """Debe devolver cuerpo vacío si no hubo cambios."""
        cycle_service.run_cycle.return_value = make_result("")

        response = client.get("/api/v1/orders/check")

        assert response.status_code == 200
        assert response.text == ""

    def test_cycle_in_progress(self, client, cycle_service):
        """Debe responder 409 si otro ciclo está en curso."""
        cycle_service.run_cycle.side_effect = CycleInProgressException()

        response = client.post("/api/v1/orders/check")

        assert response.status_code == 409
        assert response.json()["error_code"] == "CYCLE_IN_PROGRESS"

    def test_source_failure(self, client, cycle_service):
        """Debe responder 503 si la fuente de órdenes falla."""
        cycle_service.run_cycle.side_effect = OrderSourceException("HTTP 500", api_response_code=500)

        response = client.get("/api/v1/orders/check")

        assert response.status_code == 503
        assert response.json()["error_type"] == "order_source_error"

    def test_service_not_initialized(self, app):
        """Debe responder 503 si el servicio no está inicializado."""
        response = TestClient(app).get("/api/v1/orders/check")

        assert response.status_code == 503


class TestStatusEndpoint:
    """Tests para /api/v1/orders/status."""

    def test_status(self, client):
        """Debe devolver el resumen del snapshot y del scheduler."""
        response = client.get("/api/v1/orders/status")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["snapshot"]["saved_orders"] == 3
        assert data["snapshot"]["tombstones"] == 1
        assert "scheduler" in data


class TestRootEndpoints:
    """Tests para los endpoints base."""

    def test_ping(self, client):
        """Debe responder pong."""
        assert client.get("/ping").json()["message"] == "pong"

    def test_health(self, client):
        """Debe reportar saludable con servicio y almacén disponibles."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["services"] == {"cycle_service": True, "snapshot_store": True}

    def test_version(self, client):
        """Debe devolver la versión."""
        response = client.get("/api/v1/version/short")

        assert response.status_code == 200
        assert "version" in response.json()
