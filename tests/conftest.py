"""Shared test fixtures for syncstore."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from syncstore.protocol import FileInfo, Vector
from syncstore.services.maintenance_service import MaintenanceService
from syncstore.store import Store

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from datetime import datetime
    from pathlib import Path

DELETE_RETENTION = timedelta(hours=48)


def make_file(
    name: str,
    modified: datetime,
    *,
    deleted: bool = False,
    local_flags: int = 0,
    counter_device: int = 1,
) -> FileInfo:
    """Build a file record; tombstones have size 0, live files size 100."""
    return FileInfo.at(
        name,
        modified,
        version=Vector().update(counter_device),
        deleted=deleted,
        size=0 if deleted else 100,
        local_flags=local_flags,
    )


async def count_files(store: Store, folder: str, *, deleted: bool | None = None) -> int:
    fdb = await store.folder_db(folder)
    return await fdb.count_files(deleted=deleted)


def get_service(store: Store) -> MaintenanceService:
    """Return the store's maintenance service as its concrete type."""
    svc = store.service(timedelta(hours=1))
    assert isinstance(svc, MaintenanceService), "failed to get service"
    return svc


@pytest.fixture
async def store(tmp_path: Path) -> AsyncGenerator[Store]:
    """Open a store with a 48h delete retention."""
    s = await Store.open(tmp_path / "index", delete_retention=DELETE_RETENTION)
    yield s
    await s.close()


@pytest.fixture
async def store_without_retention(tmp_path: Path) -> AsyncGenerator[Store]:
    """Open a store with tombstone GC disabled."""
    s = await Store.open(tmp_path / "index")
    yield s
    await s.close()


@pytest.fixture
def service(store: Store) -> MaintenanceService:
    return get_service(store)
