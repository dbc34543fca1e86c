"""Tests unitarios para el scheduler de revisiones periódicas."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from orderwatch.core import scheduler
from orderwatch.utils.error_handler import CycleInProgressException, OrderSourceException


@pytest.fixture
def cycle_service():
    service = MagicMock()
    service.run_cycle = AsyncMock()
    return service


class TestScheduler:
    """Tests para el ciclo de vida del scheduler."""

    @pytest.mark.asyncio
    async def test_start_runs_cycle_and_stop(self, cycle_service):
        """Debe ejecutar un ciclo al iniciar y detenerse limpiamente."""
        await scheduler.start_scheduler(cycle_service, interval_minutes=60)
        await asyncio.sleep(0)

        status = scheduler.get_scheduler_status()
        assert status["running"] is True
        assert status["interval_minutes"] == 60
        cycle_service.run_cycle.assert_awaited_once()

        await scheduler.stop_scheduler()
        assert scheduler.get_scheduler_status()["running"] is False

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_loop(self, cycle_service):
        """Debe registrar el error del ciclo y seguir activo."""
        cycle_service.run_cycle.side_effect = OrderSourceException("HTTP 500")

        await scheduler.start_scheduler(cycle_service, interval_minutes=60)
        await asyncio.sleep(0)

        status = scheduler.get_scheduler_status()
        assert status["task_active"] is True
        assert "HTTP 500" in status["last_error"]

        await scheduler.stop_scheduler()

    @pytest.mark.asyncio
    async def test_cycle_in_progress_is_skipped(self, cycle_service):
        """Debe omitir la ejecución si otro ciclo está en curso, sin registrar error."""
        cycle_service.run_cycle.side_effect = CycleInProgressException()

        await scheduler.start_scheduler(cycle_service, interval_minutes=60)
        await asyncio.sleep(0)

        assert scheduler.get_scheduler_status()["last_error"] is None

        await scheduler.stop_scheduler()
