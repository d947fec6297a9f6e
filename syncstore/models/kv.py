"""Key/value bookkeeping model."""

from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from syncstore.models.base import FolderBase


class KeyValue(FolderBase):
    """Internal bookkeeping stored next to a folder's file data."""

    __tablename__ = "kv"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
