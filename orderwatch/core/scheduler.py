"""
Motor de scheduling para la revisión periódica de órdenes.

Ejecuta un ciclo de revisión cada CHECK_INTERVAL_MINUTES mientras la
aplicación está activa.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from orderwatch.core.config import get_settings
from orderwatch.utils.error_handler import CycleInProgressException

logger = logging.getLogger(__name__)

# Global scheduler state
_scheduler_running = False
_scheduler_task: Optional[asyncio.Task] = None
_cycle_service = None
_interval_minutes: Optional[int] = None
_last_tick: Optional[datetime] = None
_last_tick_error: Optional[str] = None
_ticks = 0


async def start_scheduler(cycle_service, interval_minutes: Optional[int] = None):
    """
    Inicia el scheduler.

    Args:
        cycle_service: Servicio con un método ``run_cycle()`` asíncrono
        interval_minutes: Intervalo entre ciclos (default: CHECK_INTERVAL_MINUTES)
    """
    global _scheduler_running, _scheduler_task, _cycle_service, _interval_minutes, _last_tick_error

    if _scheduler_running:
        logger.warning("Scheduler ya está ejecutándose")
        return

    _cycle_service = cycle_service
    _last_tick_error = None
    _interval_minutes = interval_minutes or get_settings().CHECK_INTERVAL_MINUTES
    _scheduler_running = True
    _scheduler_task = asyncio.create_task(_scheduler_loop())

    logger.info(f"🕒 Scheduler iniciado - revisión de órdenes cada {_interval_minutes} minutos")


async def stop_scheduler():
    """
    Detiene el scheduler y espera a que la tarea termine.
    """
    global _scheduler_running, _scheduler_task, _cycle_service

    if not _scheduler_running:
        logger.info("Scheduler no está ejecutándose")
        return

    logger.info("🛑 Deteniendo scheduler")
    _scheduler_running = False

    if _scheduler_task and not _scheduler_task.done():
        _scheduler_task.cancel()
        try:
            await _scheduler_task
        except asyncio.CancelledError:
            pass

    _scheduler_task = None
    _cycle_service = None
    logger.info("✅ Scheduler detenido correctamente")


async def _run_tick():
    """
    Ejecuta un ciclo; los errores se registran y el loop continúa.
    """
    global _last_tick, _last_tick_error, _ticks

    _last_tick = datetime.now(UTC)
    _ticks += 1
    try:
        await _cycle_service.run_cycle()
        _last_tick_error = None
    except CycleInProgressException:
        logger.info("⏭️ Ciclo anterior aún en curso, se omite esta ejecución")
    except Exception as e:
        _last_tick_error = str(e)
        logger.error(f"❌ Error en ciclo programado: {e}")


async def _scheduler_loop():
    """
    Loop principal del scheduler.
    """
    try:
        while _scheduler_running:
            await _run_tick()
            await asyncio.sleep(_interval_minutes * 60)
    except asyncio.CancelledError:
        logger.info("Loop del scheduler cancelado")
        raise


def get_scheduler_status() -> Dict[str, Any]:
    """
    Obtiene el estado actual del scheduler.

    Returns:
        Dict: Información del estado
    """
    return {
        "running": _scheduler_running,
        "task_active": _scheduler_task is not None and not _scheduler_task.done(),
        "interval_minutes": _interval_minutes,
        "ticks": _ticks,
        "last_tick": _last_tick.isoformat() if _last_tick else None,
        "last_error": _last_tick_error,
    }
