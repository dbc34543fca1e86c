"""
Persistencia del snapshot de órdenes.

Guarda el documento del snapshot en Redis para acceso rápido y
en un archivo JSON local como respaldo. El documento es único y
la última escritura gana.
"""

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Optional

import redis.asyncio as redis

from orderwatch.core.config import Settings, get_settings
from orderwatch.domain.models import Snapshot
from orderwatch.utils.error_handler import SnapshotStoreException

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    Almacén del snapshot entre ciclos.

    Lee primero de Redis (si está configurado) y luego del archivo;
    escribe en ambos, siempre Redis antes que el archivo.
    """

    def __init__(self, settings: Optional[Settings] = None, redis_client: Optional[redis.Redis] = None):
        """
        Inicializa el almacén.

        Args:
            settings: Configuración de la aplicación
            redis_client: Cliente Redis ya construido (opcional)
        """
        self.settings = settings or get_settings()
        self.redis_client = redis_client
        self.redis_key = self.settings.SNAPSHOT_REDIS_KEY
        self.snapshot_file = Path(self.settings.SNAPSHOT_FILE_PATH) if self.settings.SNAPSHOT_FILE_PATH else None

    async def initialize(self):
        """Inicializa la conexión con Redis si está disponible."""
        if self.snapshot_file:
            self.snapshot_file.parent.mkdir(parents=True, exist_ok=True)

        if self.redis_client is None and self.settings.REDIS_URL:
            try:
                self.redis_client = redis.from_url(
                    self.settings.REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=self.settings.REDIS_SOCKET_TIMEOUT,
                )
                await self.redis_client.ping()
                logger.info(f"📡 Snapshot store initialized with Redis key {self.redis_key}")
            except Exception as e:
                logger.warning(f"⚠️ Redis not available, using file-based snapshot only: {e}")
                self.redis_client = None

        if self.redis_client is None:
            if not self.snapshot_file:
                raise SnapshotStoreException("Neither REDIS_URL nor SNAPSHOT_FILE_PATH is configured", backend="none")
            logger.info(f"📁 Snapshot store initialized with file {self.snapshot_file}")

    async def close(self):
        """Cierra la conexión con Redis."""
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None

    async def ping(self) -> bool:
        """Verifica que algún backend esté disponible."""
        if self.redis_client is not None:
            try:
                return bool(await self.redis_client.ping())
            except Exception as e:
                logger.warning(f"Redis ping failed: {e}")
                return False
        return self.snapshot_file is not None

    async def get(self, now: Optional[datetime] = None) -> Snapshot:
        """
        Carga el snapshot guardado.

        Un documento ausente o ilegible se trata como primer arranque.

        Returns:
            Snapshot: Snapshot guardado, o uno vacío
        """
        document = await self._load_document()
        if document is None:
            logger.info("ℹ️ No snapshot found - starting from empty state")
            return Snapshot.empty()

        snapshot = Snapshot.from_dict(document, now=now or datetime.now(UTC))
        logger.info(
            f"📂 Snapshot loaded: {len(snapshot.saved_orders)} orders, "
            f"{len(snapshot.deleted_orders)} tombstones, last update {snapshot.last_update_time.isoformat()}"
        )
        return snapshot

    async def set(self, snapshot: Snapshot) -> None:
        """
        Guarda el snapshot en todos los backends configurados.

        Con Redis configurado, Redis es la fuente de lectura: si su escritura
        falla no se toca el archivo y ambos backends conservan el snapshot
        anterior.

        Raises:
            SnapshotStoreException: Si Redis falla, o si no hay Redis y el archivo falla
        """
        document = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        saved_to = []

        if self.redis_client is not None:
            try:
                await self.redis_client.set(self.redis_key, document)
                saved_to.append("redis")
            except Exception as e:
                logger.error(f"Error saving snapshot to Redis: {e}")
                raise SnapshotStoreException(f"Snapshot could not be saved to Redis: {e}", backend="redis") from e

        if self.snapshot_file:
            try:
                self._write_file(document)
                saved_to.append("file")
            except OSError as e:
                logger.error(f"Error saving snapshot file: {e}")
                if not saved_to:
                    raise SnapshotStoreException(f"Snapshot could not be saved: file: {e}", backend="file") from e

        if not saved_to:
            raise SnapshotStoreException("Snapshot could not be saved: no backend", backend="none")

        logger.info(
            f"💾 Snapshot saved to {', '.join(saved_to)}: {len(snapshot.saved_orders)} orders, "
            f"{len(snapshot.deleted_orders)} tombstones"
        )

    async def _load_document(self) -> Optional[Any]:
        """Lee el documento crudo, primero de Redis y luego del archivo."""
        if self.redis_client is not None:
            try:
                data = await self.redis_client.get(self.redis_key)
                if data:
                    return self._decode(data, source="redis")
            except Exception as e:
                logger.warning(f"⚠️ Could not load snapshot from Redis: {e}")

        if self.snapshot_file and self.snapshot_file.exists():
            with open(self.snapshot_file, "r", encoding="utf-8") as f:
                return self._decode(f.read(), source="file")

        return None

    @staticmethod
    def _decode(data: str, source: str) -> Optional[Any]:
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning(f"⚠️ Corrupted snapshot in {source} - JSON decode error: {e}")
            return None

    def _write_file(self, document: str) -> None:
        """Escribe el archivo de forma atómica (archivo temporal + rename)."""
        tmp_file = self.snapshot_file.with_suffix(self.snapshot_file.suffix + ".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            f.write(document)
        os.replace(tmp_file, self.snapshot_file)
