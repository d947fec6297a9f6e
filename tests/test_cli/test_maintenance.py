"""Tests for the offline maintenance command."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from cli.maintenance import (
    EXIT_LOCK_CONFLICT,
    EXIT_STORAGE_ERROR,
    EXIT_USAGE,
    MaintenanceCommand,
    build_parser,
    main,
)
from syncstore.config import Settings
from syncstore.exceptions import LockConflictError
from syncstore.lockfile import InstanceLock
from syncstore.protocol import LOCAL_DEVICE_ID
from syncstore.services.datetime_service import now_utc
from syncstore.store import Store
from tests.conftest import DELETE_RETENTION, make_file

if TYPE_CHECKING:
    from pathlib import Path

    from syncstore.protocol import FileInfo
    from syncstore.services.maintenance_service import BackgroundService


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("cli.maintenance._configure_logging", lambda _debug: None)


def _seed(data_dir: Path, files_by_folder: dict[str, list[FileInfo]]) -> None:
    async def seed() -> None:
        async with await Store.open(data_dir / "index") as store:
            for folder, files in files_by_folder.items():
                await store.update(folder, LOCAL_DEVICE_ID, files)

    asyncio.run(seed())


def _names(data_dir: Path, folder: str) -> set[str]:
    async def names() -> set[str]:
        async with await Store.open(data_dir / "index") as store:
            found = set()
            for name in ("live", "recent-delete", "old-delete", "25h-delete", "50h-delete"):
                if await store.get_device_file(folder, LOCAL_DEVICE_ID, name) is not None:
                    found.add(name)
            return found

    return asyncio.run(names())


def _standard_files() -> list[FileInfo]:
    now = now_utc()
    return [
        make_file("live", now),
        make_file("recent-delete", now - timedelta(hours=1), deleted=True),
        make_file("old-delete", now - timedelta(hours=50), deleted=True),
    ]


class TestMaintenanceCommand:
    def test_run(self, tmp_path: Path) -> None:
        _seed(tmp_path, {"default": _standard_files()})

        MaintenanceCommand(delete_retention=DELETE_RETENTION, data_dir=tmp_path).run()

        assert _names(tmp_path, "default") == {"live", "recent-delete"}

    def test_lock_conflict(self, tmp_path: Path) -> None:
        _seed(tmp_path, {"default": _standard_files()})
        command = MaintenanceCommand(delete_retention=DELETE_RETENTION, data_dir=tmp_path)

        with InstanceLock(command.settings.lock_path):
            with pytest.raises(LockConflictError):
                command.run()

        assert "old-delete" in _names(tmp_path, "default")

    @pytest.mark.parametrize(
        ("retention", "expected"),
        [
            (timedelta(hours=24), {"live"}),
            (timedelta(hours=48), {"live", "25h-delete"}),
        ],
    )
    def test_delete_retention_flag(
        self, tmp_path: Path, retention: timedelta, expected: set[str]
    ) -> None:
        now = now_utc()
        _seed(
            tmp_path,
            {
                "default": [
                    make_file("live", now),
                    make_file("25h-delete", now - timedelta(hours=25), deleted=True),
                    make_file("50h-delete", now - timedelta(hours=50), deleted=True),
                ]
            },
        )

        MaintenanceCommand(delete_retention=retention, data_dir=tmp_path).run()

        assert _names(tmp_path, "default") == expected

    def test_zero_retention_keeps_everything(self, tmp_path: Path) -> None:
        _seed(tmp_path, {"default": _standard_files()})

        MaintenanceCommand(delete_retention=timedelta(0), data_dir=tmp_path).run()

        assert _names(tmp_path, "default") == {"live", "recent-delete", "old-delete"}

    def test_empty_database(self, tmp_path: Path) -> None:
        MaintenanceCommand(delete_retention=DELETE_RETENTION, data_dir=tmp_path).run()
        assert (tmp_path / "index" / "main.db").exists()

    def test_multiple_folders(self, tmp_path: Path) -> None:
        folders = ["folder-a", "folder-b", "folder-c"]
        _seed(tmp_path, {folder: _standard_files() for folder in folders})

        MaintenanceCommand(delete_retention=DELETE_RETENTION, data_dir=tmp_path).run()

        for folder in folders:
            assert _names(tmp_path, folder) == {"live", "recent-delete"}

    def test_lock_released_after_run(self, tmp_path: Path) -> None:
        command = MaintenanceCommand(delete_retention=DELETE_RETENTION, data_dir=tmp_path)
        command.run()
        command.run()
        lock = InstanceLock(command.settings.lock_path)
        assert lock.try_acquire()
        lock.release()


class TestParser:
    def test_defaults_come_from_settings(self, tmp_path: Path) -> None:
        settings = Settings(
            _env_file=None, data_dir=tmp_path, delete_retention=timedelta(hours=5)
        )
        args = build_parser(settings).parse_args([])
        assert args.data_dir == tmp_path
        assert args.delete_retention == timedelta(hours=5)
        assert args.debug is False

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("48h", timedelta(hours=48)), ("P2D", timedelta(days=2)), ("0", timedelta(0))],
    )
    def test_delete_retention_formats(self, value: str, expected: timedelta) -> None:
        parser = build_parser(Settings(_env_file=None))
        args = parser.parse_args(["--delete-retention", value, "-d", "/srv/sync", "--debug"])
        assert args.delete_retention == expected
        assert str(args.data_dir) == "/srv/sync"
        assert args.debug is True


class TestMain:
    def test_success(self, tmp_path: Path) -> None:
        _seed(tmp_path, {"default": _standard_files()})

        main(["--data-dir", str(tmp_path), "--delete-retention", "48h"])

        assert _names(tmp_path, "default") == {"live", "recent-delete"}

    def test_lock_conflict_exit_code(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with InstanceLock(tmp_path / "syncstore.lock"):
            with pytest.raises(SystemExit) as exc_info:
                main(["--data-dir", str(tmp_path), "--delete-retention", "48h"])

        assert exc_info.value.code == EXIT_LOCK_CONFLICT
        assert "could not acquire exclusive access" in capsys.readouterr().err
        assert not (tmp_path / "index").exists()

    def test_storage_error_exit_code(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        database_dir = tmp_path / "index"
        database_dir.mkdir()
        (database_dir / "main.db").write_bytes(b"this is not a sqlite database" * 100)

        with pytest.raises(SystemExit) as exc_info:
            main(["--data-dir", str(tmp_path), "--delete-retention", "48h"])

        assert exc_info.value.code == EXIT_STORAGE_ERROR
        assert "database maintenance failed" in capsys.readouterr().err

    def test_invalid_duration_is_usage_error(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--data-dir", str(tmp_path), "--delete-retention", "soon"])

        assert exc_info.value.code == EXIT_USAGE
        assert "Invalid duration" in capsys.readouterr().err

    def test_duration_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DELETE_RETENTION", "48h")
        _seed(tmp_path, {"default": _standard_files()})

        main(["--data-dir", str(tmp_path)])

        assert _names(tmp_path, "default") == {"live", "recent-delete"}

    def test_invalid_environment_is_usage_error(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("DELETE_RETENTION", "soon")

        with pytest.raises(SystemExit) as exc_info:
            main(["--data-dir", str(tmp_path)])

        assert exc_info.value.code == EXIT_USAGE
        assert "invalid configuration" in capsys.readouterr().err
        assert not (tmp_path / "index").exists()


class TestServiceSettings:
    def test_max_skip_reaches_service(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GC_MAX_SKIP", "12h")
        monkeypatch.setenv("MAINTENANCE_INTERVAL", "30m")
        calls: list[tuple[timedelta, timedelta]] = []
        original = Store.service

        def recording_service(
            self: Store, interval: timedelta, *, max_skip: timedelta = timedelta(0)
        ) -> BackgroundService:
            calls.append((interval, max_skip))
            return original(self, interval, max_skip=max_skip)

        monkeypatch.setattr(Store, "service", recording_service)

        MaintenanceCommand(delete_retention=DELETE_RETENTION, data_dir=tmp_path).run()

        assert calls == [(timedelta(minutes=30), timedelta(hours=12))]
