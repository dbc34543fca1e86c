"""
Manejadores de excepciones centralizados para la aplicación FastAPI.

Este módulo define los manejadores de excepciones personalizados y globales,
proporcionando respuestas consistentes y logging apropiado para cada tipo de error.
"""

import logging
import traceback
from datetime import UTC, datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from orderwatch.core.config import get_settings
from orderwatch.utils.error_handler import (
    AppException,
    CycleInProgressException,
    OrderSourceException,
)

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Manejador para excepciones personalizadas de la aplicación.

    Args:
        request: Request de FastAPI
        exc: Excepción personalizada de la app

    Returns:
        JSONResponse: Respuesta JSON con error formateado
    """
    logger.error(
        f"App Exception: {exc.message} - "
        f"Code: {exc.error_code.value} - "
        f"URL: {request.url} - "
        f"Details: {exc.details}"
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "error_type": "application_error",
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details if get_settings().DEBUG else None,
            "retryable": exc.is_retryable,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


async def order_source_exception_handler(request: Request, exc: OrderSourceException) -> JSONResponse:
    """
    Manejador específico para errores de la API de órdenes.

    Args:
        request: Request de FastAPI
        exc: Excepción de la fuente de órdenes

    Returns:
        JSONResponse: Respuesta JSON con información del error de Amazon
    """
    logger.error(
        f"Order Source Exception: {exc.message} - "
        f"API Code: {exc.api_response_code} - "
        f"Rate Limited: {exc.rate_limited} - "
        f"Endpoint: {exc.endpoint}"
    )

    headers = {}
    if exc.rate_limited and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "error_type": "order_source_error",
            "error_code": exc.error_code.value,
            "message": exc.message,
            "api_response_code": exc.api_response_code,
            "rate_limited": exc.rate_limited,
            "retry_after": exc.retry_after,
            "endpoint": exc.endpoint,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
        headers=headers,
    )


async def cycle_in_progress_exception_handler(request: Request, exc: CycleInProgressException) -> JSONResponse:
    """
    Manejador para solicitudes de ciclo mientras otro está en curso.
    """
    logger.info(f"⏳ Cycle request rejected: {exc.message}")

    return JSONResponse(
        status_code=409,
        content={
            "error": True,
            "error_type": "cycle_in_progress",
            "error_code": exc.error_code.value,
            "message": exc.message,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Manejador para HTTPException estándar de FastAPI y Starlette.
    """
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "error_type": "http_error",
            "status_code": exc.status_code,
            "message": exc.detail,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Manejador global para excepciones no capturadas.

    Args:
        request: Request de FastAPI
        exc: Excepción no manejada

    Returns:
        JSONResponse: Respuesta JSON de error interno
    """
    logger.error(
        f"Unhandled Exception: {exc} - "
        f"Type: {type(exc).__name__} - "
        f"URL: {request.url} - "
        f"Traceback: {traceback.format_exc()}"
    )

    debug = get_settings().DEBUG
    # Respuesta genérica, sin exponer detalles internos fuera de debug
    error_message = f"{type(exc).__name__}: {exc}" if debug else "Internal server error occurred"

    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "error_type": "internal_server_error",
            "message": error_message,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configura todos los manejadores de excepciones de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando manejadores de excepciones...")

    # Manejadores específicos (orden de especificidad)
    app.add_exception_handler(CycleInProgressException, cycle_in_progress_exception_handler)
    app.add_exception_handler(OrderSourceException, order_source_exception_handler)
    app.add_exception_handler(AppException, app_exception_handler)

    # Manejadores HTTP estándar
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Manejador global (debe ser el último)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("✅ Manejadores de excepciones configurados correctamente")
