"""File and device types shared by the store and its peers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

DEVICE_ID_LENGTH = 32

# Local flag bit marking a record the local replica has not reconciled yet.
FLAG_LOCAL_NEEDED = 1 << 5

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True, order=True)
class DeviceID:
    """A 32-byte device identifier."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != DEVICE_ID_LENGTH:
            msg = f"Device ID must be {DEVICE_ID_LENGTH} bytes, got {len(self.raw)}"
            raise ValueError(msg)

    @classmethod
    def from_prefix(cls, *prefix: int) -> DeviceID:
        """Build an ID from leading byte values, zero-padded to full length."""
        return cls(bytes(prefix).ljust(DEVICE_ID_LENGTH, b"\x00"))

    def hex(self) -> str:
        return self.raw.hex()


LOCAL_DEVICE_ID = DeviceID(b"\xff" * DEVICE_ID_LENGTH)


@dataclass(frozen=True)
class Vector:
    """Version vector: per-device logical counters, ordered by device short id."""

    counters: tuple[tuple[int, int], ...] = ()

    def update(self, short_id: int) -> Vector:
        """Return a copy with the counter for ``short_id`` incremented."""
        values = dict(self.counters)
        values[short_id] = values.get(short_id, 0) + 1
        return Vector(tuple(sorted(values.items())))

    def counter(self, short_id: int) -> int:
        return dict(self.counters).get(short_id, 0)

    def encode(self) -> str:
        return ",".join(f"{short_id:x}:{value}" for short_id, value in self.counters)

    @classmethod
    def decode(cls, value: str) -> Vector:
        if not value:
            return cls()
        counters = []
        for part in value.split(","):
            short_id, _, count = part.partition(":")
            counters.append((int(short_id, 16), int(count)))
        return cls(tuple(sorted(counters)))


def split_timestamp(dt: datetime) -> tuple[int, int]:
    """Split a datetime into (unix seconds, nanoseconds); naive values are UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    delta = dt - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return seconds, delta.microseconds * 1000


@dataclass
class FileInfo:
    """A file record as announced by one device."""

    name: str
    modified_s: int = 0
    modified_ns: int = 0
    version: Vector = field(default_factory=Vector)
    deleted: bool = False
    size: int = 0
    local_flags: int = 0
    sequence: int = 0

    @classmethod
    def at(
        cls,
        name: str,
        modified: datetime,
        *,
        version: Vector | None = None,
        deleted: bool = False,
        size: int = 0,
        local_flags: int = 0,
    ) -> FileInfo:
        """Build a record whose modification time is ``modified``."""
        seconds, nanos = split_timestamp(modified)
        return cls(
            name=name,
            modified_s=seconds,
            modified_ns=nanos,
            version=version if version is not None else Vector(),
            deleted=deleted,
            size=size,
            local_flags=local_flags,
        )

    @property
    def modified_nanos(self) -> int:
        return self.modified_s * 1_000_000_000 + self.modified_ns

    @property
    def modified(self) -> datetime:
        return _EPOCH + timedelta(seconds=self.modified_s, microseconds=self.modified_ns // 1000)

    def is_needed(self) -> bool:
        return bool(self.local_flags & FLAG_LOCAL_NEEDED)

    def with_flags(self, local_flags: int) -> FileInfo:
        return replace(self, local_flags=local_flags)
