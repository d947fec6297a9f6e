"""Database engine and session management."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from syncstore.exceptions import StorageError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

BUSY_TIMEOUT_MS = 30_000


def _set_sqlite_pragmas(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    cursor.close()


def create_engine(
    db_path: Path,
    *,
    debug: bool = False,
) -> tuple[
    AsyncEngine,
    async_sessionmaker[AsyncSession],
]:
    """Create async engine and session factory for one SQLite file.

    Every connection runs in WAL mode with a busy timeout, so short GC
    transactions and ordinary writers wait on each other instead of failing.

    Returns (engine, session_factory) tuple.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        echo=debug,
    )
    event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise database failures inside the block as ``StorageError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to {action}: {exc}") from exc
