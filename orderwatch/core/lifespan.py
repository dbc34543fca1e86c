"""
Gestión del ciclo de vida de la aplicación FastAPI.

Este módulo maneja los eventos de startup y shutdown: construye los clientes
externos, el almacén de snapshots y el servicio de ciclo, los deja en
``app.state`` y los cierra de forma ordenada al terminar.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from orderwatch.core.config import get_missing_settings, get_settings, validate_required_settings
from orderwatch.core.logging_config import setup_logging
from orderwatch.core.scheduler import start_scheduler, stop_scheduler
from orderwatch.db.amazon_clients import AmazonOrdersClient
from orderwatch.db.discord_client import DiscordNotifier
from orderwatch.db.snapshot_store import SnapshotStore
from orderwatch.services.order_cycle_service import OrderCycleService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestión del ciclo de vida de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    # === STARTUP ===
    try:
        # 1. Configurar logging
        setup_logging(settings)
        logger.info(f"🚀 Iniciando {settings.APP_NAME} v{settings.APP_VERSION}...")

        # 2. Verificar configuración
        startup_verify_configuration()

        # 3. Inicializar clientes y servicio de ciclo
        await startup_initialize_services(app)

        # 4. Configurar tareas programadas
        await startup_configure_scheduled_tasks(app)

        logger.info("🎉 Aplicación iniciada correctamente")

    except Exception as e:
        logger.error(f"❌ Error durante el startup: {e}")
        await shutdown_cleanup_services(app)
        sys.exit(1)

    # === YIELD (aplicación corriendo) ===
    yield

    # === SHUTDOWN ===
    logger.info(f"🛑 Cerrando {settings.APP_NAME}...")

    if settings.ENABLE_SCHEDULED_CHECKS:
        await stop_scheduler()

    await shutdown_cleanup_services(app)
    logger.info("👋 Aplicación cerrada correctamente")


# === FUNCIONES DE STARTUP ===


def startup_verify_configuration():
    """
    Verifica las credenciales requeridas.

    En producción la falta de credenciales detiene el arranque; en otros
    entornos solo se advierte.
    """
    settings = get_settings()
    if settings.is_production:
        validate_required_settings(settings)
    else:
        missing = get_missing_settings(settings)
        if missing:
            logger.warning(f"⚠️ Configuraciones faltantes (los ciclos fallarán): {missing}")
    logger.info("✅ Configuración verificada")


async def startup_initialize_services(app: FastAPI):
    """Construye e inicializa los clientes y el servicio de ciclo."""
    settings = get_settings()

    order_source = AmazonOrdersClient(settings)
    notifier = DiscordNotifier(settings)
    snapshot_store = SnapshotStore(settings)

    app.state.order_source = order_source
    app.state.notifier = notifier
    app.state.snapshot_store = snapshot_store

    await order_source.initialize()
    logger.info("✅ Cliente Amazon SP-API inicializado")

    await notifier.initialize()
    await snapshot_store.initialize()

    app.state.cycle_service = OrderCycleService(
        order_source=order_source,
        notifier=notifier,
        snapshot_store=snapshot_store,
        settings=settings,
    )
    logger.info("✅ Servicios asíncronos inicializados")


async def startup_configure_scheduled_tasks(app: FastAPI):
    """Configura la revisión periódica de órdenes."""
    settings = get_settings()
    if settings.ENABLE_SCHEDULED_CHECKS:
        await start_scheduler(app.state.cycle_service, settings.CHECK_INTERVAL_MINUTES)
    else:
        logger.info("ℹ️ Revisiones programadas deshabilitadas")


# === FUNCIONES DE SHUTDOWN ===


async def shutdown_cleanup_services(app: FastAPI):
    """Cierra los clientes externos y el almacén."""
    for name in ("order_source", "notifier", "snapshot_store"):
        client = getattr(app.state, name, None)
        if client is None:
            continue
        try:
            await client.close()
            logger.info(f"✅ {name} cerrado")
        except Exception as e:
            logger.error(f"Error cerrando {name}: {e}")
