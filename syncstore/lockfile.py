"""Exclusive instance lock guarding a data directory."""

from __future__ import annotations

import fcntl
import logging
import os
from typing import TYPE_CHECKING

from syncstore.exceptions import LockConflictError

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class InstanceLock:
    """Advisory ``flock`` on a lock file, held for the lifetime of the instance.

    Locks belong to the open file description, so two ``InstanceLock``
    objects on the same path conflict even within a single process.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fd: int | None = None

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def try_acquire(self) -> bool:
        """Take the lock without blocking. Returns False if another holder has it."""
        if self._fd is not None:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False
        except OSError:
            os.close(fd)
            raise
        self._fd = fd
        logger.debug("Acquired instance lock %s", self.path)
        return True

    def release(self) -> None:
        fd, self._fd = self._fd, None
        if fd is None:
            return
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
        logger.debug("Released instance lock %s", self.path)

    def __enter__(self) -> InstanceLock:
        if not self.try_acquire():
            msg = f"Lock {self.path} is held by another process; is the syncstore instance running?"
            raise LockConflictError(msg)
        return self

    def __exit__(self, *args: object) -> None:
        self.release()
