"""Tests unitarios para el lock de ciclos basado en archivo."""

import time

import pytest

from orderwatch.utils.cycle_lock import CycleLock, cycle_lock


class TestCycleLock:
    """Tests para adquisición y liberación del lock."""

    def test_second_holder_rejected(self, tmp_path):
        """Debe rechazar un segundo lock mientras el primero es válido."""
        first = CycleLock("orderwatch:data", lock_dir=str(tmp_path))
        second = CycleLock("orderwatch:data", lock_dir=str(tmp_path))

        assert first.acquire() is True
        assert second.acquire() is False

        first.release()
        assert second.acquire() is True
        second.release()

    def test_stale_lock_taken_over(self, tmp_path):
        """Debe tomar un lock vencido."""
        lock = CycleLock("orderwatch:data", lock_dir=str(tmp_path), timeout_seconds=60)
        lock.lock_file.write_text(str(time.time() - 120))

        assert lock.acquire() is True
        lock.release()
        assert not lock.lock_file.exists()

    def test_invalid_lock_file_replaced(self, tmp_path):
        """Debe reemplazar un archivo de lock ilegible."""
        lock = CycleLock("orderwatch:data", lock_dir=str(tmp_path))
        lock.lock_file.write_text("garbage")

        assert lock.acquire() is True
        lock.release()


class TestCycleLockContextManager:
    """Tests para el context manager asíncrono."""

    @pytest.mark.asyncio
    async def test_releases_on_exit(self, tmp_path):
        """Debe liberar el lock al salir, incluso con error."""
        with pytest.raises(RuntimeError):
            async with cycle_lock("key", lock_dir=str(tmp_path)) as acquired:
                assert acquired is True
                raise RuntimeError("boom")

        async with cycle_lock("key", lock_dir=str(tmp_path)) as acquired:
            assert acquired is True
