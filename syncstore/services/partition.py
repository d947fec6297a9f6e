"""Key-space partitioning for chunked table maintenance."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import and_, true

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement
    from sqlalchemy.orm import InstrumentedAttribute

DEFAULT_PREFIX_WIDTH = 3


@dataclass(frozen=True)
class KeyRange:
    """A half-open slice ``[lower, upper)`` of a binary key space.

    ``lower`` is None for the first range and ``upper`` is None for the last.
    Bounds are fixed-width byte strings; keys longer than the bound width
    compare bytewise against them, so the range selects keys by prefix.
    """

    lower: bytes | None
    upper: bytes | None

    def sql(self, column: str) -> str:
        """Render the range as a SQLite predicate on ``column``."""
        if self.lower is None and self.upper is None:
            return "TRUE"
        if self.lower is None:
            return f"{column} < x'{self.upper.hex()}'"  # type: ignore[union-attr]
        if self.upper is None:
            return f"{column} >= x'{self.lower.hex()}'"
        return f"{column} >= x'{self.lower.hex()}' AND {column} < x'{self.upper.hex()}'"

    def clause(self, column: InstrumentedAttribute[bytes]) -> ColumnElement[bool]:
        """Render the range as a SQLAlchemy expression with bound parameters."""
        conditions = []
        if self.lower is not None:
            conditions.append(column >= self.lower)
        if self.upper is not None:
            conditions.append(column < self.upper)
        return and_(true(), *conditions)

    def contains(self, key: bytes) -> bool:
        if self.lower is not None and key < self.lower:
            return False
        return self.upper is None or key < self.upper


def partition_key_space(n: int, width: int = DEFAULT_PREFIX_WIDTH) -> list[KeyRange]:
    """Split the ``width``-byte prefix space into ``n`` contiguous ranges.

    Boundary ``i`` sits at ``floor(i * 2**(8*width) / n)``, computed in exact
    integer arithmetic so boundaries are strictly increasing whenever
    ``n <= 2**(8*width)``. Consecutive ranges share their boundary (upper of
    one is lower of the next), which makes the set gap-free and disjoint.

    Args:
        n: Number of ranges, at least 1.
        width: Prefix width in bytes.

    Returns:
        The ranges in ascending key order.
    """
    if n < 1:
        raise ValueError(f"Range count must be at least 1, got {n}")
    if width < 1:
        raise ValueError(f"Prefix width must be at least 1 byte, got {width}")
    space = 1 << (8 * width)
    if n > space:
        raise ValueError(f"Cannot split a {width}-byte key space into {n} ranges")

    bounds: list[bytes | None] = [None]
    bounds.extend((i * space // n).to_bytes(width, "big") for i in range(1, n))
    bounds.append(None)
    return [KeyRange(lower=bounds[i], upper=bounds[i + 1]) for i in range(n)]
