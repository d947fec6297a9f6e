"""Store-level exception types.

Convention:
- ``StorageError``: the underlying database failed (I/O, corruption,
  locking timeouts). The failing pass is abandoned and the GC watermark is
  left untouched, so retrying later is safe.
- ``LockConflictError``: another process holds the instance lock. Nothing
  has been opened or modified when this is raised.
- ``ValueError``: invalid arguments (programmer errors); never retried.
- ``asyncio.CancelledError``: the surrounding task was cancelled; committed
  chunks stay committed.
"""

from __future__ import annotations


class StorageError(Exception):
    """Raised when the underlying database fails.

    The originating ``SQLAlchemyError`` is always chained as ``__cause__``.
    """


class FolderNotFoundError(LookupError):
    """Raised when a folder id is not present in the folder registry."""

    def __init__(self, folder: str) -> None:
        super().__init__(f"Folder not found: {folder!r}")
        self.folder = folder


class LockConflictError(Exception):
    """Raised when the instance lock is already held by another process."""
