"""File index models."""

from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, LargeBinary, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from syncstore.models.base import FolderBase


class FileRow(FolderBase):
    """One device's view of one file in a folder.

    ``sequence`` is AUTOINCREMENT so values are never reused, even after the
    row holding the highest value has been deleted.
    """

    __tablename__ = "files"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    name_hash: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    modified: Mapped[int] = mapped_column(Integer, nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    local_flags: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("device", "name", name="uq_files_device_name"),
        Index("idx_files_name_hash", "name_hash"),
        Index("idx_files_deleted_modified", "deleted", "modified"),
        {"sqlite_autoincrement": True},
    )
