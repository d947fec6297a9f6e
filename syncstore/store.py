"""File index store: a folder registry plus one SQLite database per folder."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, text

from syncstore.database import create_engine, storage_errors
from syncstore.exceptions import FolderNotFoundError
from syncstore.models import Base, FileRow, Folder, FolderBase
from syncstore.protocol import FLAG_LOCAL_NEEDED, LOCAL_DEVICE_ID, DeviceID, FileInfo, Vector

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from syncstore.services.maintenance_service import BackgroundService

logger = logging.getLogger(__name__)

MAIN_DATABASE_NAME = "main.db"


def folder_database_name(folder: str) -> str:
    """Return the database file name for a folder id (stable, filesystem safe)."""
    digest = hashlib.sha256(folder.encode("utf-8")).hexdigest()[:16]
    return f"folder.{digest}.db"


def name_hash(name: str) -> bytes:
    """Return the partitioning key for a file name."""
    return hashlib.sha256(name.encode("utf-8")).digest()


def _to_file_info(row: FileRow) -> FileInfo:
    seconds, nanos = divmod(row.modified, 1_000_000_000)
    return FileInfo(
        name=row.name,
        modified_s=seconds,
        modified_ns=nanos,
        version=Vector.decode(row.version),
        deleted=row.deleted,
        size=row.size,
        local_flags=row.local_flags,
        sequence=row.sequence,
    )


class FolderDB:
    """One folder's database: its file records and internal bookkeeping."""

    def __init__(self, folder: str, path: Path, *, debug: bool = False) -> None:
        self.folder = folder
        self.path = path
        self.engine, self.session_factory = create_engine(path, debug=debug)

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(FolderBase.metadata.create_all)

    async def top_sequence(self) -> int:
        """Return the highest sequence ever assigned in this folder.

        Read from the AUTOINCREMENT counter rather than ``max(sequence)`` so the
        value does not drop when the newest row is garbage-collected.
        """
        with storage_errors(f"read top sequence of folder {self.folder!r}"):
            async with self.session_factory() as session:
                result = await session.execute(
                    text("SELECT seq FROM sqlite_sequence WHERE name = :table"),
                    {"table": FileRow.__tablename__},
                )
                return int(result.scalar() or 0)

    async def count_files(self, *, deleted: bool | None = None) -> int:
        stmt = select(func.count()).select_from(FileRow)
        if deleted is not None:
            stmt = stmt.where(FileRow.deleted == deleted)
        with storage_errors(f"count files of folder {self.folder!r}"):
            async with self.session_factory() as session:
                return int(await session.scalar(stmt) or 0)

    async def tidy(self) -> None:
        """Refresh planner statistics and fold the WAL back into the database."""
        with storage_errors(f"tidy folder {self.folder!r}"):
            async with self.engine.connect() as conn:
                conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                await conn.execute(text("PRAGMA optimize"))
                await conn.execute(text("PRAGMA wal_checkpoint(TRUNCATE)"))

    async def close(self) -> None:
        await self.engine.dispose()


class Store:
    """File index for all folders, rooted at one directory.

    Use ``await Store.open(path)`` rather than the constructor; it creates the
    directory and the folder registry schema.
    """

    def __init__(
        self,
        path: Path,
        *,
        delete_retention: timedelta = timedelta(0),
        debug: bool = False,
    ) -> None:
        if delete_retention < timedelta(0):
            raise ValueError(f"Delete retention must not be negative, got {delete_retention}")
        self.path = path
        self.delete_retention = delete_retention
        self._debug = debug
        self._engine, self._session_factory = create_engine(path / MAIN_DATABASE_NAME, debug=debug)
        self._folders: dict[str, FolderDB] = {}
        self._folders_lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        path: Path,
        *,
        delete_retention: timedelta = timedelta(0),
        debug: bool = False,
    ) -> Store:
        """Open (creating if needed) the store rooted at ``path``."""
        path.mkdir(parents=True, exist_ok=True)
        store = cls(path, delete_retention=delete_retention, debug=debug)
        try:
            with storage_errors(f"open store at {path}"):
                async with store._engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
        except BaseException:
            await store.close()
            raise
        logger.debug("Opened store at %s (delete_retention=%s)", path, delete_retention)
        return store

    async def close(self) -> None:
        for fdb in self._folders.values():
            await fdb.close()
        self._folders.clear()
        await self._engine.dispose()

    async def __aenter__(self) -> Store:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def list_folders(self) -> list[str]:
        """Return every registered folder id, sorted."""
        with storage_errors("list folders"):
            async with self._session_factory() as session:
                result = await session.scalars(select(Folder.folder_id).order_by(Folder.folder_id))
                return list(result)

    async def folder_db(self, folder: str, *, create: bool = False) -> FolderDB:
        """Return the database for ``folder``, registering it when ``create`` is set."""
        async with self._folders_lock:
            fdb = self._folders.get(folder)
            if fdb is not None:
                return fdb

            with storage_errors(f"open folder {folder!r}"):
                async with self._session_factory() as session:
                    entry = await session.get(Folder, folder)
                    if entry is None:
                        if not create:
                            raise FolderNotFoundError(folder)
                        entry = Folder(folder_id=folder, database_name=folder_database_name(folder))
                        session.add(entry)
                        await session.commit()
                        logger.info("Registered folder %r (%s)", folder, entry.database_name)

                fdb = FolderDB(folder, self.path / entry.database_name, debug=self._debug)
                await fdb.create_schema()
            self._folders[folder] = fdb
            return fdb

    async def update(self, folder: str, device: DeviceID, files: Sequence[FileInfo]) -> None:
        """Replace ``device``'s records for the given file names in one transaction.

        Every written row receives a fresh sequence number. Records announced by
        a remote device are flagged LOCAL_NEEDED unless the local device
        already holds the same version.
        """
        fdb = await self.folder_db(folder, create=True)
        device_key = device.hex()
        local_key = LOCAL_DEVICE_ID.hex()

        with storage_errors(f"update folder {folder!r}"):
            async with fdb.session_factory() as session, session.begin():
                for info in files:
                    version = info.version.encode()
                    flags = info.local_flags
                    if device != LOCAL_DEVICE_ID:
                        local_version = await session.scalar(
                            select(FileRow.version).where(
                                FileRow.device == local_key, FileRow.name == info.name
                            )
                        )
                        if local_version != version:
                            flags |= FLAG_LOCAL_NEEDED

                    await session.execute(
                        delete(FileRow).where(
                            FileRow.device == device_key, FileRow.name == info.name
                        )
                    )
                    session.add(
                        FileRow(
                            device=device_key,
                            name=info.name,
                            name_hash=name_hash(info.name),
                            modified=info.modified_nanos,
                            size=info.size,
                            deleted=info.deleted,
                            local_flags=flags,
                            version=version,
                        )
                    )

    async def get_device_file(
        self, folder: str, device: DeviceID, name: str
    ) -> FileInfo | None:
        """Return ``device``'s record for ``name``, or None when absent."""
        try:
            fdb = await self.folder_db(folder)
        except FolderNotFoundError:
            return None
        with storage_errors(f"read file {name!r} in folder {folder!r}"):
            async with fdb.session_factory() as session:
                row = await session.scalar(
                    select(FileRow).where(FileRow.device == device.hex(), FileRow.name == name)
                )
        return None if row is None else _to_file_info(row)

    def service(
        self, interval: timedelta, *, max_skip: timedelta = timedelta(0)
    ) -> BackgroundService:
        """Return the periodic maintenance service for this store."""
        from syncstore.services.maintenance_service import MaintenanceService

        return MaintenanceService(self, interval, max_skip=max_skip)
