"""
Configuración centralizada de la aplicación.

Este módulo maneja todas las variables de entorno y configuraciones
de la aplicación usando Pydantic Settings para validación automática.
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from orderwatch.utils.error_handler import ConfigurationException
from orderwatch.version import VERSION


class Settings(BaseSettings):
    """
    Configuración de la aplicación usando Pydantic Settings.

    Todas las configuraciones se cargan desde variables de entorno
    con valores por defecto apropiados para desarrollo.
    """

    # === CONFIGURACIÓN BÁSICA DE LA APP ===
    APP_NAME: str = "Order Watch"
    APP_VERSION: str = VERSION
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # === CONFIGURACIÓN DEL SERVIDOR ===
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8080)
    LOG_LEVEL: str = Field(default="INFO")

    # === CONFIGURACIÓN DE AMAZON SELLING PARTNER API ===
    AMAZON_LWA_CLIENT_ID: Optional[str] = Field(default=None)
    AMAZON_LWA_CLIENT_SECRET: Optional[str] = Field(default=None)
    AMAZON_LWA_REFRESH_TOKEN: Optional[str] = Field(default=None)
    AMAZON_LWA_TOKEN_URL: str = Field(default="https://api.amazon.com/auth/o2/token")
    AMAZON_SP_API_ENDPOINT: str = Field(default="https://sellingpartnerapi-na.amazon.com")
    # Marketplace US
    AMAZON_MARKETPLACE_ID: str = Field(default="ATVPDKIKX0DER")
    AMAZON_REQUEST_TIMEOUT: int = Field(default=30)

    # === VENTANA DE ÓRDENES ===
    # Si se define, la ventana es fija; si no, se usa ORDER_LOOKBACK_DAYS
    ORDER_WINDOW_START: Optional[datetime] = Field(default=None)
    ORDER_LOOKBACK_DAYS: int = Field(default=30)

    # === CONFIGURACIÓN DE DISCORD ===
    DISCORD_TOKEN: Optional[str] = Field(default=None)
    DISCORD_OWNER_ID: Optional[str] = Field(default=None)
    DISCORD_API_BASE: str = Field(default="https://discord.com/api/v10")
    DISCORD_MESSAGE_LIMIT: int = Field(default=2000)

    # === CONFIGURACIÓN DEL SNAPSHOT ===
    REDIS_URL: Optional[str] = Field(default=None)
    REDIS_SOCKET_TIMEOUT: int = Field(default=5)
    SNAPSHOT_REDIS_KEY: str = Field(default="orderwatch:data")
    SNAPSHOT_FILE_PATH: Optional[str] = Field(default="data/snapshot.json")

    # === POLÍTICA DE RECONCILIACIÓN ===
    DOMESTIC_COUNTRY_CODE: str = Field(default="US")
    # Sin valor: los tombstones nunca expiran
    TOMBSTONE_MAX_AGE_DAYS: Optional[int] = Field(default=None)

    # === CONFIGURACIÓN DEL SCHEDULER ===
    ENABLE_SCHEDULED_CHECKS: bool = Field(default=True)
    CHECK_INTERVAL_MINUTES: int = Field(default=15)
    CYCLE_LOCK_TIMEOUT_SECONDS: int = Field(default=600)
    CYCLE_LOCK_DIR: str = Field(default="/tmp")

    # === CONFIGURACIÓN DE LOGGING ===
    LOG_FILE_PATH: Optional[str] = Field(default="logs/app.log")
    LOG_MAX_SIZE_MB: int = Field(default=10)
    LOG_BACKUP_COUNT: int = Field(default=5)

    # === CONFIGURACIÓN DE DOCUMENTACIÓN ===
    ENABLE_DOCS: bool = Field(default=True)

    # === CONFIGURACIÓN DE RETRIES ===
    MAX_RETRIES: int = Field(default=3)
    RETRY_BACKOFF_FACTOR: float = Field(default=2.0)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "allow",
    }

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Valida que el entorno sea válido."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT debe ser uno de: {valid_envs}")
        return v.lower()

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, v):
        """Valida que el puerto esté en rango válido."""
        if not 1 <= v <= 65535:
            raise ValueError("PORT debe estar entre 1 y 65535")
        return v

    @field_validator("DISCORD_MESSAGE_LIMIT", "CHECK_INTERVAL_MINUTES", "ORDER_LOOKBACK_DAYS")
    @classmethod
    def validate_positive(cls, v):
        """Valida que el valor sea positivo."""
        if v < 1:
            raise ValueError("El valor debe ser mayor que 0")
        return v

    @field_validator("TOMBSTONE_MAX_AGE_DAYS", mode="before")
    @classmethod
    def parse_tombstone_max_age(cls, v):
        """Una cadena vacía deshabilita la expiración."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("DOMESTIC_COUNTRY_CODE")
    @classmethod
    def normalize_country_code(cls, v):
        """Normaliza el código de país a mayúsculas."""
        return v.strip().upper()

    @property
    def is_production(self) -> bool:
        """Verifica si está en entorno de producción."""
        return self.ENVIRONMENT == "production"

    @property
    def tombstone_max_age(self) -> Optional[timedelta]:
        """Edad máxima de un tombstone, o None si no expiran."""
        if self.TOMBSTONE_MAX_AGE_DAYS is None:
            return None
        return timedelta(days=self.TOMBSTONE_MAX_AGE_DAYS)

    def order_window_start(self, now: Optional[datetime] = None) -> datetime:
        """
        Calcula el inicio de la ventana de órdenes consultada en cada ciclo.

        Args:
            now: Momento de referencia (default: ahora en UTC)

        Returns:
            datetime: Inicio de la ventana (UTC)
        """
        if self.ORDER_WINDOW_START is not None:
            start = self.ORDER_WINDOW_START
            if start.tzinfo is None:
                start = start.replace(tzinfo=timezone.utc)
            return start

        now = now or datetime.now(timezone.utc)
        return now - timedelta(days=self.ORDER_LOOKBACK_DAYS)


@lru_cache()
def get_settings() -> Settings:
    """
    Obtiene instancia singleton de configuración.

    Usa LRU cache para evitar recrear la configuración
    múltiples veces durante la ejecución.

    Returns:
        Settings: Instancia de configuración
    """
    return Settings()


def get_missing_settings(settings: Optional[Settings] = None) -> List[str]:
    """
    Lista las credenciales requeridas que no están configuradas.

    Args:
        settings: Configuración a revisar (default: la global)

    Returns:
        List[str]: Nombres de variables faltantes
    """
    settings = settings or get_settings()
    required_fields = [
        "AMAZON_LWA_CLIENT_ID",
        "AMAZON_LWA_CLIENT_SECRET",
        "AMAZON_LWA_REFRESH_TOKEN",
        "DISCORD_TOKEN",
        "DISCORD_OWNER_ID",
    ]
    return [field for field in required_fields if not getattr(settings, field, None)]


def validate_required_settings(settings: Optional[Settings] = None) -> bool:
    """
    Valida que todas las configuraciones requeridas estén presentes.

    Returns:
        bool: True si todas las configuraciones están presentes

    Raises:
        ConfigurationException: Si alguna configuración requerida falta
    """
    missing_fields = get_missing_settings(settings)
    if missing_fields:
        raise ConfigurationException(
            f"Configuraciones requeridas faltantes: {missing_fields}", missing=missing_fields
        )
    return True
