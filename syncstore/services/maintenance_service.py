"""Periodic store maintenance: change-aware tombstone GC across all folders."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from syncstore.services.datetime_service import now_utc
from syncstore.services.gc_service import collect_tombstones
from syncstore.services.metadata_service import INTERNAL_META_PREFIX, TypedMetadata

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from syncstore.store import FolderDB, Store

logger = logging.getLogger(__name__)

LAST_SUCCESSFUL_GC_SEQ_KEY = "lastSuccessfulGCSeq"
LAST_SUCCESSFUL_GC_TIME_KEY = "lastSuccessfulGCTime"


class ServiceState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"


@runtime_checkable
class BackgroundService(Protocol):
    """Handle for a store's background maintenance."""

    def start(self) -> None:
        """Start the periodic loop on the running event loop."""
        ...

    async def stop(self) -> None:
        """Stop the periodic loop and wait for it to finish."""
        ...

    async def run_maintenance_once(self) -> None:
        """Run one unconditional maintenance pass over every folder."""
        ...


class MaintenanceService:
    """Runs tombstone GC for every folder of a store on a fixed interval.

    ``periodic`` skips folders whose top sequence equals the watermark saved
    after the last successful pass: with no record written since, the only
    newly collectable tombstones are ones that aged past the retention in the
    meantime, and those wait for the next change (or for ``max_skip`` to
    elapse, when set). ``run_maintenance_once`` never skips.

    Folders are processed sequentially and a pass stops at the first failing
    folder; the error propagates and that folder's watermark stays untouched.
    """

    def __init__(
        self,
        store: Store,
        interval: timedelta,
        *,
        max_skip: timedelta = timedelta(0),
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        if interval <= timedelta(0):
            raise ValueError(f"Maintenance interval must be positive, got {interval}")
        self._store = store
        self._interval = interval
        self._max_skip = max_skip
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._running = 0

    @property
    def state(self) -> ServiceState:
        return ServiceState.RUNNING if self._running else ServiceState.IDLE

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.serve(), name="syncstore-maintenance")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def serve(self) -> None:
        """Run ``periodic`` once per interval until cancelled."""
        logger.info("Maintenance service started (interval=%s)", self._interval)
        while True:
            await asyncio.sleep(self._interval.total_seconds())
            try:
                await self.periodic()
            except Exception as exc:
                logger.error("Periodic maintenance failed: %s", exc, exc_info=exc)

    async def periodic(self) -> None:
        """Run a maintenance pass, skipping folders unchanged since their last GC."""
        await self._run(force=False)

    async def run_maintenance_once(self) -> None:
        await self._run(force=True)

    async def last_gc_sequence(self, folder: str) -> int | None:
        """Return the watermark saved after ``folder``'s last successful GC."""
        fdb = await self._store.folder_db(folder)
        return await TypedMetadata(fdb, INTERNAL_META_PREFIX).get_int(LAST_SUCCESSFUL_GC_SEQ_KEY)

    async def _run(self, *, force: bool) -> None:
        retention = self._store.delete_retention
        if retention <= timedelta(0):
            logger.debug("Tombstone GC disabled (delete retention is zero)")
            return

        self._running += 1
        started = time.monotonic()
        try:
            folders = await self._store.list_folders()
            for folder in folders:
                fdb = await self._store.folder_db(folder)
                await self._gc_folder(fdb, retention, force=force)
        finally:
            self._running -= 1
        logger.debug(
            "Maintenance pass over %d folders done in %.3fs (forced=%s)",
            len(folders),
            time.monotonic() - started,
            force,
        )

    async def _gc_folder(self, fdb: FolderDB, retention: timedelta, *, force: bool) -> None:
        meta = TypedMetadata(fdb, INTERNAL_META_PREFIX)
        if not force and await self._unchanged(fdb, meta):
            logger.debug("Skipping GC of folder %r: no changes since last pass", fdb.folder)
            return

        now = self._clock()
        high_sequence = await collect_tombstones(fdb, retention, now)
        await meta.set_int(LAST_SUCCESSFUL_GC_SEQ_KEY, high_sequence)
        await meta.set_time(LAST_SUCCESSFUL_GC_TIME_KEY, now)
        await fdb.tidy()

    async def _unchanged(self, fdb: FolderDB, meta: TypedMetadata) -> bool:
        last_sequence = await meta.get_int(LAST_SUCCESSFUL_GC_SEQ_KEY)
        if last_sequence is None or last_sequence != await fdb.top_sequence():
            return False
        if self._max_skip <= timedelta(0):
            return True
        last_time = await meta.get_time(LAST_SUCCESSFUL_GC_TIME_KEY)
        return last_time is not None and self._clock() - last_time < self._max_skip
