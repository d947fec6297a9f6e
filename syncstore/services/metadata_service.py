"""Typed key/value bookkeeping inside a folder's database."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from syncstore.database import storage_errors
from syncstore.models.kv import KeyValue
from syncstore.services.datetime_service import from_unix_nanos, to_unix_nanos

if TYPE_CHECKING:
    from datetime import datetime

    from syncstore.store import FolderDB

# Reserved namespace for the store's own bookkeeping.
INTERNAL_META_PREFIX = "internal/"


class TypedMetadata:
    """Typed accessors over the ``kv`` table, scoped to a key prefix.

    Values are stored as text; each getter returns None when the key is
    absent and raises ValueError when the stored text does not parse as the
    requested type.
    """

    def __init__(self, fdb: FolderDB, prefix: str) -> None:
        self._fdb = fdb
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return self._prefix + key

    async def _get(self, key: str) -> str | None:
        with storage_errors(f"read metadata {key!r} of folder {self._fdb.folder!r}"):
            async with self._fdb.session_factory() as session:
                return await session.scalar(
                    select(KeyValue.value).where(KeyValue.key == self._key(key))
                )

    async def _set(self, key: str, value: str) -> None:
        full_key = self._key(key)
        with storage_errors(f"write metadata {key!r} of folder {self._fdb.folder!r}"):
            async with self._fdb.session_factory() as session, session.begin():
                await session.execute(delete(KeyValue).where(KeyValue.key == full_key))
                session.add(KeyValue(key=full_key, value=value))

    async def get_int(self, key: str) -> int | None:
        raw = await self._get(key)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError as exc:
            raise ValueError(f"Metadata {key!r} is not an integer: {raw!r}") from exc

    async def set_int(self, key: str, value: int) -> None:
        await self._set(key, str(int(value)))

    async def get_time(self, key: str) -> datetime | None:
        nanos = await self.get_int(key)
        return None if nanos is None else from_unix_nanos(nanos)

    async def set_time(self, key: str, value: datetime) -> None:
        await self.set_int(key, to_unix_nanos(value))
