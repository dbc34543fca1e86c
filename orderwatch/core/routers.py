"""
Configuración centralizada de routers para la aplicación FastAPI.

Este módulo registra los routers de la API y los endpoints base
(raíz, ping y health check).
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orderwatch.api.v1.endpoints.order_check import router as order_check_router
from orderwatch.api.v1.endpoints.version import router as version_router
from orderwatch.core.config import get_settings

logger = logging.getLogger(__name__)


def create_root_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints raíz de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    @app.get("/", tags=["Root"], summary="API Info")
    async def root():
        """
        Endpoint raíz que proporciona información básica de la API.
        """
        return {
            "message": f"{settings.APP_NAME} API",
            "description": "Monitoreo de órdenes de Amazon con notificaciones por Discord",
            "version": settings.APP_VERSION,
            "status": "running",
            "documentation": "/docs" if (settings.DEBUG or settings.ENABLE_DOCS) else "disabled",
            "timestamp": datetime.now(UTC).isoformat(),
            "endpoints": {
                "health": "/health",
                "check": "/api/v1/orders/check",
                "status": "/api/v1/orders/status",
                "version": "/api/v1/version",
            },
        }

    @app.get("/ping", tags=["Root"], summary="Simple Ping")
    async def ping():
        return {"message": "pong", "timestamp": datetime.now(UTC).isoformat()}


def create_health_endpoints(app: FastAPI) -> None:
    """
    Crea el endpoint de health check.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    @app.get("/health", tags=["Health"], summary="Health Check")
    async def health_check(request: Request):
        """
        Verifica que el servicio de ciclo esté inicializado y que el
        almacén de snapshots responda.
        """
        service = getattr(request.app.state, "cycle_service", None)
        store = getattr(request.app.state, "snapshot_store", None)

        try:
            store_ok = bool(store is not None and await store.ping())
        except Exception as e:
            logger.error(f"Error en health check: {e}")
            store_ok = False

        services = {
            "cycle_service": service is not None,
            "snapshot_store": store_ok,
        }
        healthy = all(services.values())

        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "version": settings.APP_VERSION,
                "timestamp": datetime.now(UTC).isoformat(),
                "services": services,
                "environment": settings.ENVIRONMENT,
            },
        )


def configure_api_v1_routers(app: FastAPI) -> None:
    """
    Configura los routers de la API v1.

    Args:
        app: Instancia de FastAPI
    """
    app.include_router(
        order_check_router,
        prefix="/api/v1/orders",
        tags=["Orders"],
        responses={
            500: {"description": "Order check error"},
        },
    )
    logger.info("✅ Router de revisión de órdenes configurado")

    app.include_router(version_router, prefix="/api/v1/version", tags=["Version"])
    logger.info("✅ Router de versión configurado")


def configure_all_routers(app: FastAPI) -> None:
    """
    Configura todos los routers de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando todos los routers...")

    create_root_endpoints(app)
    create_health_endpoints(app)
    configure_api_v1_routers(app)

    logger.info("✅ Todos los routers configurados correctamente")
