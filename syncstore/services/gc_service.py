"""Tombstone garbage collection: chunked removal of expired deleted records."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete

from syncstore.database import storage_errors
from syncstore.models.file import FileRow
from syncstore.protocol import FLAG_LOCAL_NEEDED, LOCAL_DEVICE_ID
from syncstore.services.datetime_service import format_iso, to_unix_nanos
from syncstore.services.partition import partition_key_space

if TYPE_CHECKING:
    from datetime import datetime, timedelta

    from syncstore.store import FolderDB

logger = logging.getLogger(__name__)

# Number of key ranges a pass is split into; each range is one transaction.
GC_FANOUT = 8


async def collect_tombstones(
    fdb: FolderDB,
    retention: timedelta,
    now: datetime,
    *,
    fanout: int = GC_FANOUT,
) -> int:
    """Delete the local device's tombstones older than ``retention``.

    A record is removed when it is deleted, its modification time is strictly
    before ``now - retention`` and it does not carry LOCAL_NEEDED. The table
    is processed in ``fanout`` ranges of the name hash, each in its own short
    transaction, so concurrent writers are only blocked for one chunk at a
    time. The task yields to the event loop between chunks; a cancellation
    leaves already committed chunks deleted.

    The caller is responsible for not calling this with a zero retention.

    Args:
        fdb: The folder database to collect.
        retention: Minimum age of a tombstone before it may be removed.
        now: Reference time for the age computation.
        fanout: Number of chunks the pass is split into.

    Returns:
        The folder's top sequence as read before the first chunk. Any write
        that lands during the pass moves the top sequence past this value, so
        a watermark built from it never hides unevaluated rows.

    Raises:
        StorageError: A chunk failed. Earlier chunks stay committed.
        ValueError: ``fanout`` is less than 1.
    """
    ranges = partition_key_space(fanout)
    cutoff = now - retention
    cutoff_nanos = to_unix_nanos(cutoff)
    high_sequence = await fdb.top_sequence()

    removed = 0
    for index, key_range in enumerate(ranges):
        await asyncio.sleep(0)
        stmt = delete(FileRow).where(
            FileRow.device == LOCAL_DEVICE_ID.hex(),
            FileRow.deleted.is_(True),
            FileRow.modified < cutoff_nanos,
            FileRow.local_flags.op("&")(FLAG_LOCAL_NEEDED) == 0,
            key_range.clause(FileRow.name_hash),
        )
        with storage_errors(f"collect tombstones in folder {fdb.folder!r}"):
            async with fdb.session_factory() as session, session.begin():
                result = await session.execute(
                    stmt, execution_options={"synchronize_session": False}
                )
        chunk_removed = result.rowcount or 0
        removed += chunk_removed
        logger.debug(
            "GC chunk %d/%d of folder %r (%s): removed %d",
            index + 1,
            len(ranges),
            fdb.folder,
            key_range.sql("name_hash"),
            chunk_removed,
        )

    logger.info(
        "Tombstone GC of folder %r removed %d records deleted before %s (%d chunks)",
        fdb.folder,
        removed,
        format_iso(cutoff),
        len(ranges),
    )
    return high_sequence
