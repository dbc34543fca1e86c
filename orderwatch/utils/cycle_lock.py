"""
File-based lock serializing order check cycles across processes.

Two cycles racing on the same snapshot would lose tombstone updates, so a
cycle only runs while holding this lock. A lock older than its timeout is
considered stale and taken over.
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class CycleLock:
    """
    Lock backed by an exclusively-created file holding the acquisition time.
    """

    def __init__(self, lock_key: str, lock_dir: str = "/tmp", timeout_seconds: int = 600):
        """
        Initialize the lock.

        Args:
            lock_key: Unique key for the lock (e.g. the snapshot key)
            lock_dir: Directory for the lock file
            timeout_seconds: Age after which a held lock is considered stale
        """
        self.lock_key = lock_key.replace("/", "_").replace(":", "_")
        self.timeout_seconds = timeout_seconds
        self.lock_file = Path(lock_dir) / f"orderwatch_cycle_{self.lock_key}.lock"
        self.acquired = False
        self.start_time: Optional[float] = None

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            bool: True if the lock was acquired, False if another holder has it
        """
        if self.lock_file.exists():
            try:
                lock_time = float(self.lock_file.read_text().strip())
                if time.time() - lock_time < self.timeout_seconds:
                    logger.debug(f"Lock '{self.lock_key}' already held and valid")
                    return False
                logger.warning(f"⚠️ Lock '{self.lock_key}' expired, removing stale lock")
            except (ValueError, OSError):
                logger.warning(f"⚠️ Invalid lock file {self.lock_file}, removing it")
            try:
                os.remove(self.lock_file)
            except FileNotFoundError:
                pass

        self.start_time = time.time()
        try:
            # 'x' fails if another process created the file in the meantime
            with open(self.lock_file, "x") as f:
                f.write(str(self.start_time))
        except FileExistsError:
            logger.debug(f"Failed to acquire lock '{self.lock_key}' - race condition")
            return False

        self.acquired = True
        logger.debug(f"🔒 Acquired lock '{self.lock_key}'")
        return True

    def release(self) -> None:
        """Release the lock if held."""
        if not self.acquired:
            return
        try:
            os.remove(self.lock_file)
            duration = time.time() - (self.start_time or 0)
            logger.debug(f"🔓 Released lock '{self.lock_key}' (held for {duration:.2f}s)")
        except OSError as e:
            logger.warning(f"Failed to release lock '{self.lock_key}': {e}")
        finally:
            self.acquired = False


@asynccontextmanager
async def cycle_lock(lock_key: str, lock_dir: str = "/tmp", timeout_seconds: int = 600):
    """
    Context manager around CycleLock.

    Yields:
        bool: Whether the lock was acquired

    Usage:
        async with cycle_lock("orderwatch:data") as acquired:
            if acquired:
                ...
    """
    lock = CycleLock(lock_key, lock_dir=lock_dir, timeout_seconds=timeout_seconds)
    acquired = lock.acquire()
    try:
        yield acquired
    finally:
        lock.release()
