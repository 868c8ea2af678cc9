"""
Concurrent access control for SharpKit.

Only one process may install into a canonical binary directory at a time.
This module wraps the `filelock` library to serialize installations across
processes sharing the same directory.

Usage:
    from sharpkit.core.locking import LockManager

    lock_manager = LockManager(binary_dir)
    with lock_manager.install_lock(timeout=300):
        # Safely download and extract into binary_dir
        pass
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

from sharpkit.core.exceptions import InstallLockTimeout

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".install.lock"


class LockManager:
    """
    Manages the install lock of a canonical binary directory.

    Uses file-based locking with the `filelock` library for cross-platform
    compatibility and automatic cleanup on process death.

    Attributes:
        lock_path: Lock file guarding the directory
    """

    def __init__(self, lock_dir: Path):
        """
        Initialize lock manager.

        Args:
            lock_dir: Directory to guard; the lock file is created inside it
        """
        self.lock_dir = Path(lock_dir)
        self.lock_path = self.lock_dir / LOCK_FILE_NAME

    @contextmanager
    def install_lock(self, timeout: float = 300):
        """
        Acquire the install lock for the guarded directory.

        Args:
            timeout: Maximum wait time in seconds (default: 300 for long downloads)

        Yields:
            None

        Raises:
            InstallLockTimeout: If lock can't be acquired within timeout
        """
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self.lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired install lock: {self.lock_path}")
                yield
                logger.debug(f"Released install lock: {self.lock_path}")
        except LockTimeout as e:
            logger.error(
                f"Could not acquire install lock after {timeout}s. "
                "Another process may be installing sharp."
            )
            raise InstallLockTimeout(
                f"Could not acquire install lock {self.lock_path} after {timeout}s. "
                "Another process may be installing sharp."
            ) from e


__all__ = [
    "LockManager",
    "LockTimeout",
    "LOCK_FILE_NAME",
]
