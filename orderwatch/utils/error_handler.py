"""
Sistema de manejo de errores personalizado.

Este módulo define todas las excepciones personalizadas de la aplicación
y proporciona utilidades para manejo consistente de errores.
"""

import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """
    Códigos de error estandardizados para la aplicación.
    """

    # Errores generales
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Errores de servicios externos
    ORDER_SOURCE_UNAVAILABLE = "ORDER_SOURCE_UNAVAILABLE"
    ORDER_SOURCE_AUTH_FAILED = "ORDER_SOURCE_AUTH_FAILED"
    NOTIFICATION_DELIVERY_FAILED = "NOTIFICATION_DELIVERY_FAILED"
    SNAPSHOT_STORE_FAILED = "SNAPSHOT_STORE_FAILED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Errores del ciclo
    CYCLE_IN_PROGRESS = "CYCLE_IN_PROGRESS"
    CYCLE_FAILED = "CYCLE_FAILED"


class ErrorSeverity(Enum):
    """
    Niveles de severidad para errores.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppException(Exception):
    """
    Excepción base para todas las excepciones personalizadas de la aplicación.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_retryable: bool = False,
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error
            error_code: Código de error estandardizado
            details: Información adicional del error
            status_code: Código HTTP asociado
            severity: Severidad del error
            is_retryable: Si la operación puede reintentarse
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.severity = severity
        self.is_retryable = is_retryable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convierte la excepción a diccionario.

        Returns:
            Dict: Representación de la excepción
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details,
            "status_code": self.status_code,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        """String representation del error."""
        return f"{self.error_code.value}: {self.message}"


class ConfigurationException(AppException):
    """
    Excepción para configuración faltante o inválida.
    """

    def __init__(self, message: str, missing: Optional[list] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            severity=ErrorSeverity.CRITICAL,
            **kwargs,
        )
        self.missing = missing or []
        self.details.update({"missing": self.missing})


class OrderSourceException(AppException):
    """
    Excepción para errores de la API de órdenes (Amazon SP-API).
    """

    def __init__(
        self,
        message: str,
        api_response_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        rate_limited: bool = False,
        retry_after: Optional[int] = None,
        auth_failed: bool = False,
        **kwargs,
    ):
        """
        Inicializa la excepción de la fuente de órdenes.

        Args:
            message: Mensaje de error
            api_response_code: Código de respuesta HTTP
            endpoint: Endpoint que falló
            rate_limited: Si es por rate limiting
            retry_after: Segundos para reintentar
            auth_failed: Si falló la autenticación LWA
            **kwargs: Argumentos adicionales para AppException
        """
        error_code = ErrorCode.ORDER_SOURCE_UNAVAILABLE
        severity = ErrorSeverity.MEDIUM

        if auth_failed:
            error_code = ErrorCode.ORDER_SOURCE_AUTH_FAILED
            severity = ErrorSeverity.CRITICAL
        elif rate_limited:
            error_code = ErrorCode.RATE_LIMIT_EXCEEDED
            severity = ErrorSeverity.LOW
        elif api_response_code and api_response_code >= 500:
            severity = ErrorSeverity.HIGH

        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            severity=severity,
            is_retryable=not auth_failed,
            **kwargs,
        )

        self.api_response_code = api_response_code
        self.endpoint = endpoint
        self.rate_limited = rate_limited
        self.retry_after = retry_after

        self.details.update(
            {
                "api_response_code": api_response_code,
                "endpoint": endpoint,
                "rate_limited": rate_limited,
                "retry_after": retry_after,
            }
        )


class NotificationDeliveryException(AppException):
    """
    Excepción para fallos al entregar la notificación (Discord).
    """

    def __init__(
        self,
        message: str,
        api_response_code: Optional[int] = None,
        chunk_index: Optional[int] = None,
        chunk_count: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.NOTIFICATION_DELIVERY_FAILED,
            status_code=502,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )
        self.api_response_code = api_response_code
        self.chunk_index = chunk_index
        self.chunk_count = chunk_count

        self.details.update(
            {
                "api_response_code": api_response_code,
                "chunk_index": chunk_index,
                "chunk_count": chunk_count,
            }
        )


class SnapshotStoreException(AppException):
    """
    Excepción para errores del almacén de snapshots.
    """

    def __init__(self, message: str, backend: str = "redis", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.SNAPSHOT_STORE_FAILED,
            status_code=503,
            severity=ErrorSeverity.HIGH,
            is_retryable=True,
            **kwargs,
        )
        self.backend = backend
        self.details.update({"backend": backend})


class CycleInProgressException(AppException):
    """
    Otro ciclo de reconciliación ya tiene el lock.
    """

    def __init__(self, message: str = "An order check cycle is already running", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CYCLE_IN_PROGRESS,
            status_code=409,
            severity=ErrorSeverity.LOW,
            is_retryable=True,
            **kwargs,
        )


# === FUNCIONES DE UTILIDAD ===


def convert_to_app_exception(exception: Exception, context: Optional[Dict[str, Any]] = None) -> AppException:
    """
    Convierte una excepción estándar a AppException.

    Args:
        exception: Excepción a convertir
        context: Contexto adicional

    Returns:
        AppException: Excepción convertida
    """
    if isinstance(exception, AppException):
        exception.details.update(context or {})
        return exception

    exception_type = type(exception).__name__
    return AppException(
        message=f"{exception_type}: {exception}",
        error_code=ErrorCode.CYCLE_FAILED,
        details={"original_exception": exception_type, **(context or {})},
    )


def log_error(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Loggea un error de manera consistente.

    Args:
        exception: Excepción a loggear
        context: Contexto adicional
        level: Nivel de logging
    """
    context = context or {}

    log_data = {
        "exception_type": type(exception).__name__,
        "exception_message": str(exception),
        "traceback": traceback.format_exc(),
        **context,
    }

    if isinstance(exception, AppException):
        message = f"{exception.error_code.value}: {exception.message}"
        log_data.update(
            {
                "error_code": exception.error_code.value,
                "severity": exception.severity.value,
                "is_retryable": exception.is_retryable,
            }
        )
    else:
        message = f"Unhandled exception: {type(exception).__name__}: {str(exception)}"

    logger.log(level, message, extra=log_data)
