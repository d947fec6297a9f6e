"""Offline maintenance command: one unconditional GC pass over a stopped store."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from pydantic import ValidationError

from syncstore.config import Settings
from syncstore.exceptions import LockConflictError, StorageError
from syncstore.lockfile import InstanceLock
from syncstore.services.datetime_service import format_duration, parse_duration
from syncstore.store import Store

logger = logging.getLogger(__name__)

EXIT_STORAGE_ERROR = 1
EXIT_USAGE = 2
EXIT_LOCK_CONFLICT = 3


def _configure_logging(debug: bool) -> None:
    """Configure command logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


@dataclass
class MaintenanceCommand:
    """Run database maintenance while no syncstore instance is running."""

    delete_retention: timedelta
    data_dir: Path
    debug: bool = False

    @property
    def settings(self) -> Settings:
        return Settings(
            data_dir=self.data_dir,
            delete_retention=self.delete_retention,
            debug=self.debug,
        )

    def run(self) -> None:
        """Acquire the instance lock and run one maintenance pass.

        Raises:
            LockConflictError: Another process holds the lock; the store was
                not opened.
            StorageError: The maintenance pass failed.
        """
        asyncio.run(self.run_async())

    async def run_async(self) -> None:
        settings = self.settings
        with InstanceLock(settings.lock_path):
            store = await Store.open(
                settings.database_dir,
                delete_retention=settings.delete_retention,
                debug=settings.debug,
            )
            try:
                service = store.service(
                    settings.maintenance_interval, max_skip=settings.gc_max_skip
                )
                await service.run_maintenance_once()
            finally:
                await store.close()
        logger.info(
            "Maintenance of %s complete (delete retention %s)",
            settings.database_dir,
            format_duration(settings.delete_retention),
        )


def _duration_arg(value: str) -> timedelta:
    try:
        duration = parse_duration(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    if duration < timedelta(0):
        raise argparse.ArgumentTypeError(f"duration must not be negative: {value!r}")
    return duration


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="syncstore-maintenance",
        description=(
            "Run database maintenance (tombstone garbage collection) on a stopped store"
        ),
    )
    parser.add_argument(
        "--data-dir",
        "-d",
        type=Path,
        default=settings.data_dir,
        help=f"Data directory (default: {settings.data_dir})",
    )
    parser.add_argument(
        "--delete-retention",
        type=_duration_arg,
        default=settings.delete_retention,
        help="Remove deleted-file records older than this, e.g. 48h or P2D (0 disables)",
    )
    parser.add_argument("--debug", action="store_true", default=settings.debug)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    args = build_parser(settings).parse_args(argv)
    _configure_logging(args.debug)

    command = MaintenanceCommand(
        delete_retention=args.delete_retention,
        data_dir=args.data_dir,
        debug=args.debug,
    )
    try:
        command.run()
    except LockConflictError as exc:
        print(f"Error: could not acquire exclusive access: {exc}", file=sys.stderr)
        sys.exit(EXIT_LOCK_CONFLICT)
    except StorageError as exc:
        print(f"Error: database maintenance failed: {exc}", file=sys.stderr)
        sys.exit(EXIT_STORAGE_ERROR)


if __name__ == "__main__":
    main()
