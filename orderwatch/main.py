"""
Order Watch - FastAPI Application Entry Point

Vigila las órdenes de una cuenta de vendedor de Amazon y avisa al dueño por
mensaje directo de Discord cuando aparecen órdenes nuevas, se envían o se
eliminan.

Este archivo actúa como el punto de entrada principal de la aplicación.
"""

import logging

import uvicorn
from fastapi import FastAPI

from orderwatch.core.config import get_settings
from orderwatch.core.exception_handlers import configure_exception_handlers
from orderwatch.core.lifespan import lifespan
from orderwatch.core.routers import configure_all_routers

logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    """
    Factory para crear y configurar la aplicación FastAPI.

    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    settings = get_settings()
    docs_enabled = settings.DEBUG or settings.ENABLE_DOCS

    app = FastAPI(
        title=settings.APP_NAME,
        description="Reconciliación de órdenes de Amazon con notificaciones por Discord",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    # 1. Manejadores de excepciones
    configure_exception_handlers(app)

    # 2. Routers y endpoints
    configure_all_routers(app)

    logger.info("✅ Aplicación FastAPI creada y configurada")
    return app


# Instancia principal que usa el servidor ASGI
app = create_application()


def run():
    """
    Ejecuta la aplicación con uvicorn.

    Para desarrollo con auto-reload:
    uvicorn orderwatch.main:app --reload
    """
    settings = get_settings()

    uvicorn_config = {
        "app": "orderwatch.main:app",
        "host": settings.HOST,
        "port": settings.PORT,
        "reload": settings.DEBUG,
        "log_level": settings.LOG_LEVEL.lower(),
        "access_log": True,
    }

    logger.info(f"🔧 Configuración Uvicorn: {uvicorn_config}")

    try:
        uvicorn.run(**uvicorn_config)
    except KeyboardInterrupt:
        logger.info("🛑 Aplicación detenida por el usuario")


if __name__ == "__main__":
    run()
