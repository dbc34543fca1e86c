"""
Endpoints para disparar y monitorear la revisión de órdenes.

``/check`` ejecuta un ciclo completo (fetch → reconciliar → notificar →
persistir) y devuelve el texto enviado al dueño como texto plano, para
que un cron externo pueda invocarlo con un simple GET.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import PlainTextResponse

from orderwatch.core.scheduler import get_scheduler_status
from orderwatch.services.order_cycle_service import OrderCycleService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_cycle_service(request: Request) -> OrderCycleService:
    """
    Obtiene el servicio de ciclo creado en el lifespan.

    Raises:
        HTTPException: 503 si el servicio no está inicializado
    """
    service = getattr(request.app.state, "cycle_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Order cycle service not initialized",
        )
    return service


@router.api_route(
    "/check",
    methods=["GET", "POST"],
    response_class=PlainTextResponse,
    summary="Run one order check cycle",
    responses={
        409: {"description": "Another cycle is already running"},
        502: {"description": "Notification delivery failed"},
        503: {"description": "Order source or snapshot store unavailable"},
    },
)
async def run_order_check(request: Request) -> PlainTextResponse:
    """
    Ejecuta un ciclo de revisión de órdenes.

    Returns:
        PlainTextResponse: El mensaje enviado (vacío si no hubo cambios)
    """
    service = get_cycle_service(request)
    logger.info("🔄 Manual order check triggered via API")

    result = await service.run_cycle()
    return PlainTextResponse(content=result.message, status_code=status.HTTP_200_OK)


@router.get("/status", status_code=status.HTTP_200_OK, summary="Order snapshot status")
async def get_order_check_status(request: Request) -> dict[str, Any]:
    """
    Obtiene el resumen del snapshot persistido y del último ciclo.

    Example:
        ```json
        {
            "status": "success",
            "data": {
                "running": false,
                "snapshot": {
                    "saved_orders": 42,
                    "tombstones": 3,
                    "last_update_time": "2025-01-23T15:30:00+00:00"
                },
                "statistics": {"total_cycles": 12, "failed_cycles": 0, "...": "..."},
                "scheduler": {"running": true, "interval_minutes": 15, "...": "..."}
            }
        }
        ```
    """
    service = get_cycle_service(request)
    data = await service.get_status()
    data["scheduler"] = get_scheduler_status()

    return {
        "status": "success",
        "data": data,
        "message": "Order check status retrieved successfully",
    }
